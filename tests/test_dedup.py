from datetime import datetime, timedelta, timezone

from signal_bridge.services.dedup import DeduplicationIndex, message_key


class Clock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def test_message_key_depends_on_channel_message_and_content():
    key = message_key("-1001", 5, "BUY EURUSD")

    assert key == message_key("-1001", 5, "BUY EURUSD")
    assert key != message_key("-1002", 5, "BUY EURUSD")
    assert key != message_key("-1001", 6, "BUY EURUSD")
    assert key != message_key("-1001", 5, "SELL EURUSD")


def test_second_sighting_inside_window_is_duplicate():
    clock = Clock()
    index = DeduplicationIndex(clock=clock)

    assert index.check_and_add("-1001", 1, "BUY EURUSD") is False
    clock.advance(minutes=9)
    assert index.check_and_add("-1001", 1, "BUY EURUSD") is True


def test_sighting_after_window_is_accepted_again():
    clock = Clock()
    index = DeduplicationIndex(window=timedelta(minutes=10), clock=clock)

    index.check_and_add("-1001", 1, "BUY EURUSD")
    clock.advance(minutes=11)

    assert index.check_and_add("-1001", 1, "BUY EURUSD") is False


def test_purge_drops_stale_hashes_only():
    clock = Clock()
    index = DeduplicationIndex(clock=clock)
    index.check_and_add("-1001", 1, "old")
    clock.advance(minutes=8)
    index.check_and_add("-1001", 2, "fresh")
    clock.advance(minutes=5)

    assert index.purge() == 1
    assert len(index) == 1
    assert index.check_and_add("-1001", 2, "fresh") is True


def test_discarded_message_is_accepted_again():
    index = DeduplicationIndex(clock=Clock())
    index.check_and_add("-1001", 1, "BUY EURUSD")

    index.discard("-1001", 1, "BUY EURUSD")
    index.discard("-1001", 2, "never seen")

    assert len(index) == 0
    assert index.check_and_add("-1001", 1, "BUY EURUSD") is False
