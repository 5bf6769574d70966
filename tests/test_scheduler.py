from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from signal_bridge.domain.models import ChannelInfo, ChannelMonitorState, ChannelPriority, SourceMessage
from signal_bridge.services.dedup import DeduplicationIndex
from signal_bridge.services.scheduler import AdaptivePollScheduler, adaptive_interval


def _state(priority=ChannelPriority.LOW, rate=0.0, empty_polls=0):
    return ChannelMonitorState(
        channel_id="-1001",
        name="Channel",
        handle="handle",
        priority=priority,
        recent_message_rate=rate,
        consecutive_empty_polls=empty_polls,
    )


class TestAdaptiveInterval:
    @pytest.mark.parametrize(
        "priority, rate, empty_polls, expected",
        [
            (ChannelPriority.LOW, 12.0, 0, timedelta(milliseconds=500)),
            (ChannelPriority.MEDIUM, 6.0, 0, timedelta(seconds=2)),
            (ChannelPriority.HIGH, 2.0, 0, timedelta(seconds=2)),
            (ChannelPriority.LOW, 0.0, 11, timedelta(seconds=30)),
            (ChannelPriority.HIGH, 0.0, 6, timedelta(seconds=10)),
            (ChannelPriority.LOW, 0.0, 0, timedelta(seconds=15)),
            (ChannelPriority.HIGH, 1.0, 0, timedelta(seconds=3)),
        ],
    )
    def test_adaptive_interval(self, priority, rate, empty_polls, expected):
        assert adaptive_interval(_state(priority, rate, empty_polls)) == expected


@pytest.fixture
def enqueue():
    return AsyncMock()


@pytest.fixture
def scheduler(source, sink, enqueue):
    return AdaptivePollScheduler(
        source,
        DeduplicationIndex(),
        enqueue,
        sink,
        tick_interval=60,
        retry_delay=0,
    )


class TestStartAndStop:
    @pytest.mark.asyncio
    async def test_start_begins_at_latest_message(self, scheduler, source, enqueue):
        source.add("vip", 10, "old signal BUY EURUSD")
        try:
            count = await scheduler.start([ChannelInfo(channel_id="-1001", title="VIP Gold", handle="vip")])

            state = scheduler.states["-1001"]
            assert count == 1
            assert state.last_processed_message_id == 10
            assert state.priority is ChannelPriority.HIGH
            assert scheduler.is_running

            assert await scheduler.poll_channel(state) == 0
            enqueue.assert_not_awaited()
        finally:
            await scheduler.stop()

        assert scheduler.states == {}
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_start_resumes_from_cursors(self, scheduler, source):
        source.add("a", 50, "latest")
        try:
            await scheduler.start(
                [ChannelInfo(channel_id="a", title="A", handle="a", priority=ChannelPriority.MEDIUM)],
                cursors={"a": 42},
            )
            state = scheduler.states["a"]
            assert state.last_processed_message_id == 42
            assert state.priority is ChannelPriority.MEDIUM
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_failed_cursor_lookup_starts_at_zero(self, scheduler, source, sink):
        source.get_latest_message_id = AsyncMock(side_effect=ConnectionError("offline"))
        try:
            await scheduler.start([ChannelInfo(channel_id="a", title="Broken", handle="a")])

            assert scheduler.states["a"].last_processed_message_id == 0
            assert any("Failed to get latest message ID for Broken" in message for message in sink.debugs)
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_channels_snapshot(self, scheduler):
        try:
            await scheduler.start([ChannelInfo(channel_id="a", title="A", handle="h")])
            [info] = scheduler.channels()
            assert (info.channel_id, info.title, info.handle) == ("a", "A", "h")
        finally:
            await scheduler.stop()


class TestPollChannel:
    @pytest.mark.asyncio
    async def test_new_messages_are_enqueued_in_order(self, scheduler, source, enqueue):
        state = _state()
        state.handle = "vip"
        state.last_processed_message_id = 10
        source.add("vip", 12, "SELL GBPUSD")
        source.add("vip", 11, "BUY EURUSD")
        source.add("vip", 13, "")

        assert await scheduler.poll_channel(state) == 2

        enqueued = [call.args[0] for call in enqueue.await_args_list]
        assert [pending.message_id for pending in enqueued] == [11, 12]
        assert enqueued[0].channel_id == "-1001"
        assert enqueued[0].content == "BUY EURUSD"
        assert state.last_processed_message_id == 12
        assert state.message_count == 2
        assert state.consecutive_empty_polls == 0
        assert state.recent_message_rate == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_empty_poll_increments_counter(self, scheduler, source):
        state = _state()
        state.last_processed_message_id = 5

        await scheduler.poll_channel(state)
        await scheduler.poll_channel(state)

        assert state.consecutive_empty_polls == 2
        assert state.last_processed_message_id == 5

    @pytest.mark.asyncio
    async def test_cursor_never_moves_backwards(self, sink, enqueue):
        now = datetime.now(timezone.utc)
        stale_source = Mock()
        stale_source.get_history_since = AsyncMock(
            return_value=[SourceMessage(message_id=7, text="BUY EURUSD", timestamp=now)]
        )
        scheduler = AdaptivePollScheduler(stale_source, DeduplicationIndex(), enqueue, sink)
        state = _state()
        state.last_processed_message_id = 20

        assert await scheduler.poll_channel(state) == 0

        assert state.last_processed_message_id == 20
        enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_seen_message_is_enqueued_once(self, scheduler, source, enqueue):
        state = _state()
        source.add("handle", 3, "BUY EURUSD")

        await scheduler.poll_channel(state)
        state.last_processed_message_id = 0
        await scheduler.poll_channel(state)

        assert enqueue.await_count == 1
        assert state.message_count == 1


class TestRetry:
    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self, scheduler, source):
        state = _state()
        source.failures["handle"] = 2

        assert await scheduler.poll_with_retry(state) is True

        assert len(source.history_calls) == 3
        assert state.consecutive_errors == 0

    @pytest.mark.asyncio
    async def test_failed_enqueue_is_redelivered_on_retry(self, source, sink):
        enqueue = AsyncMock(side_effect=[RuntimeError("db locked"), None])
        scheduler = AdaptivePollScheduler(source, DeduplicationIndex(), enqueue, sink, retry_delay=0)
        state = _state()
        source.add("handle", 1, "BUY EURUSD")

        assert await scheduler.poll_with_retry(state) is True

        assert enqueue.await_count == 2
        assert enqueue.await_args.args[0].message_id == 1
        assert state.last_processed_message_id == 1
        assert state.message_count == 1
        assert sink.errors == []

    @pytest.mark.asyncio
    async def test_exhausted_retries_report_and_call_back(self, source, sink, enqueue):
        on_failure = AsyncMock()
        scheduler = AdaptivePollScheduler(
            source, DeduplicationIndex(), enqueue, sink, retry_delay=0, on_poll_failure=on_failure
        )
        state = _state()
        state.name = "Broken"
        source.failures["handle"] = 5

        assert await scheduler.poll_with_retry(state) is False

        assert state.consecutive_errors == 3
        assert sink.errors == ["Failed to poll Broken after 3 attempts: channel handle unavailable"]
        on_failure.assert_awaited_once_with(state)


class TestCycle:
    @pytest.mark.asyncio
    async def test_due_channels_prefer_high_priority(self, scheduler):
        channels = [
            ChannelInfo(channel_id=f"low-{index}", title=f"Low {index}", handle=index, priority=ChannelPriority.LOW)
            for index in range(10)
        ]
        channels.append(ChannelInfo(channel_id="vip", title="VIP", handle="vip", priority=ChannelPriority.HIGH))
        channels.append(ChannelInfo(channel_id="mid", title="Mid", handle="mid", priority=ChannelPriority.MEDIUM))
        try:
            await scheduler.start(channels)
            past = datetime.now(timezone.utc) - timedelta(hours=1)
            for state in scheduler.states.values():
                state.last_poll_time = past

            due = scheduler.due_channels()

            assert len(due) == 10
            assert [state.channel_id for state in due[:2]] == ["vip", "mid"]
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_recently_polled_channel_is_not_due(self, scheduler):
        try:
            await scheduler.start([ChannelInfo(channel_id="a", title="A", handle="a")])

            assert scheduler.due_channels() == []
            assert await scheduler.run_cycle() == 0
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_cycle_polls_due_channels(self, scheduler, sink):
        try:
            await scheduler.start([ChannelInfo(channel_id="a", title="A", handle="a")])
            scheduler.states["a"].last_poll_time = datetime.now(timezone.utc) - timedelta(minutes=1)

            assert await scheduler.run_cycle() == 1
            assert any(message.startswith("Polled 1 channels") for message in sink.debugs)
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_cycle_is_skipped_while_previous_runs(self, scheduler):
        try:
            await scheduler.start([ChannelInfo(channel_id="a", title="A", handle="a")])
            scheduler.states["a"].last_poll_time = datetime.now(timezone.utc) - timedelta(minutes=1)

            async with scheduler._cycle_lock:
                assert await scheduler.run_cycle() == 0
        finally:
            await scheduler.stop()
