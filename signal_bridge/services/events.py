from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List

from ..domain.models import ChannelHealthEvent, MonitoringStatusEvent, NewSignalEvent

logger = logging.getLogger(__name__)

EventListener = Callable[[str, Dict[str, Any]], Awaitable[None]]


def signal_event_payload(event: NewSignalEvent) -> Dict[str, Any]:
    record = event.record
    return {
        "id": record.id,
        "channel_id": record.channel_id,
        "channel_name": record.channel_name,
        "message_id": record.message_id,
        "status": record.status,
        "original_text": record.original_text,
        "parsed": record.parsed.to_dict() if record.parsed else None,
        "message_time": event.message_time.replace(microsecond=0).isoformat(),
        "received_at": event.received_at.replace(microsecond=0).isoformat(),
        "processed_at": event.processed_at.replace(microsecond=0).isoformat(),
    }


class EventDispatcher:
    """Event sink that logs every event and fans it out to async listeners.

    Debug events reach listeners only with ``forward_debug``; otherwise they
    go to the log alone.
    """

    def __init__(self, forward_debug: bool = False) -> None:
        self._listeners: List[EventListener] = []
        self._forward_debug = forward_debug

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def new_signal(self, event: NewSignalEvent) -> None:
        signal = event.record.parsed
        logger.info(
            "New signal from %s: %s %s",
            event.record.channel_name,
            signal.order_description() if signal else "",
            (signal.final_symbol or signal.symbol) if signal else "",
        )
        await self._notify("signal", signal_event_payload(event))

    async def error(self, message: str) -> None:
        logger.error(message)
        await self._notify("error", {"message": message})

    async def debug(self, message: str) -> None:
        logger.debug(message)
        if self._forward_debug:
            await self._notify("debug", {"message": message})

    async def monitoring_status_changed(self, event: MonitoringStatusEvent) -> None:
        log = logger.error if event.fatal else logger.info
        log(
            "Monitoring %s (%s channels): %s",
            "active" if event.active else "stopped",
            event.channel_count,
            event.reason,
        )
        await self._notify(
            "monitoring_status",
            {
                "active": event.active,
                "channel_count": event.channel_count,
                "reason": event.reason,
                "fatal": event.fatal,
                "timestamp": event.timestamp.replace(microsecond=0).isoformat(),
            },
        )

    async def channel_health_changed(self, event: ChannelHealthEvent) -> None:
        logger.info("Channel %s health is now %s", event.channel_name, event.health.value)
        await self._notify(
            "channel_health",
            {
                "channel_id": event.channel_id,
                "channel_name": event.channel_name,
                "health": event.health.value,
                "timestamp": event.timestamp.replace(microsecond=0).isoformat(),
            },
        )

    async def _notify(self, event_type: str, payload: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                await listener(event_type, payload)
            except Exception:
                logger.exception("Error notifying listener about %s event", event_type)
