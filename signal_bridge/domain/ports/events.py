from __future__ import annotations

from typing import Protocol

from ..models import ChannelHealthEvent, MonitoringStatusEvent, NewSignalEvent


class EventSink(Protocol):
    """Receives notifications raised by the monitoring core."""

    async def new_signal(self, event: NewSignalEvent) -> None:
        ...

    async def error(self, message: str) -> None:
        ...

    async def debug(self, message: str) -> None:
        ...

    async def monitoring_status_changed(self, event: MonitoringStatusEvent) -> None:
        ...

    async def channel_health_changed(self, event: ChannelHealthEvent) -> None:
        ...
