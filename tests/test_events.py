from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from signal_bridge.domain.models import (
    ChannelHealth,
    ChannelHealthEvent,
    Direction,
    MonitoringStatusEvent,
    NewSignalEvent,
    ParsedSignal,
    ProcessedSignalRecord,
    SignalStatus,
)
from signal_bridge.services.events import EventDispatcher
from signal_bridge.services.message_stream import SignalStreamManager

STAMP = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


def _signal_event():
    record = ProcessedSignalRecord(
        id="abc",
        timestamp=STAMP,
        channel_id="-1001",
        channel_name="VIP Forex",
        original_text="BUY EURUSD",
        status=SignalStatus.SENT,
        parsed=ParsedSignal(symbol="EURUSD", final_symbol="EURUSD", direction=Direction.BUY),
        message_id=7,
    )
    return NewSignalEvent(record=record, message_time=STAMP, received_at=STAMP, processed_at=STAMP)


class TestEventDispatcher:
    @pytest.mark.asyncio
    async def test_signal_event_is_forwarded_to_listeners(self):
        dispatcher = EventDispatcher()
        listener = AsyncMock()
        dispatcher.add_listener(listener)

        await dispatcher.new_signal(_signal_event())

        event_type, payload = listener.await_args.args
        assert event_type == "signal"
        assert payload["id"] == "abc"
        assert payload["parsed"]["direction"] == "BUY"
        assert payload["message_time"] == "2024-05-01T12:00:00+00:00"

    @pytest.mark.asyncio
    async def test_status_health_and_error_events(self):
        dispatcher = EventDispatcher()
        listener = AsyncMock()
        dispatcher.add_listener(listener)

        await dispatcher.monitoring_status_changed(
            MonitoringStatusEvent(active=False, channel_count=0, reason="stopped", fatal=True, timestamp=STAMP)
        )
        await dispatcher.channel_health_changed(
            ChannelHealthEvent(channel_id="-1001", channel_name="VIP", health=ChannelHealth.WARNING, timestamp=STAMP)
        )
        await dispatcher.error("boom")
        await dispatcher.debug("quiet")

        assert [entry.args[0] for entry in listener.await_args_list] == ["monitoring_status", "channel_health", "error"]
        assert listener.await_args_list[0].args[1]["fatal"] is True
        assert listener.await_args_list[1].args[1]["health"] == "Warning"
        assert listener.await_args_list[2].args[1] == {"message": "boom"}

    @pytest.mark.asyncio
    async def test_debug_events_are_forwarded_when_enabled(self):
        dispatcher = EventDispatcher(forward_debug=True)
        listener = AsyncMock()
        dispatcher.add_listener(listener)

        await dispatcher.debug("Polled 2 channels in 40ms")

        listener.assert_awaited_once_with("debug", {"message": "Polled 2 channels in 40ms"})

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self):
        dispatcher = EventDispatcher()
        broken = AsyncMock(side_effect=RuntimeError("listener crashed"))
        healthy = AsyncMock()
        dispatcher.add_listener(broken)
        dispatcher.add_listener(healthy)

        await dispatcher.error("boom")

        healthy.assert_awaited_once_with("error", {"message": "boom"})

    @pytest.mark.asyncio
    async def test_removed_listener_is_not_called(self):
        dispatcher = EventDispatcher()
        listener = AsyncMock()
        dispatcher.add_listener(listener)
        dispatcher.remove_listener(listener)

        await dispatcher.error("boom")

        listener.assert_not_awaited()


class TestSignalStreamManager:
    @pytest.mark.asyncio
    async def test_broadcast_reaches_connected_clients(self):
        manager = SignalStreamManager()
        websocket = AsyncMock()
        await manager.connect(websocket)

        await manager.handle_event("error", {"message": "boom"})

        websocket.accept.assert_awaited_once()
        websocket.send_json.assert_awaited_once_with({"type": "error", "data": {"message": "boom"}})

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self):
        manager = SignalStreamManager()
        websocket = AsyncMock()
        websocket.send_json.side_effect = RuntimeError("closed")
        await manager.connect(websocket)

        await manager.handle_event("error", {"message": "boom"})

        assert manager.connection_count == 0
