from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from ..domain.models import ChannelHealth, ChannelHealthEvent, ChannelMonitorState
from ..domain.ports.events import EventSink

logger = logging.getLogger(__name__)

STALE_POLL = timedelta(minutes=5)
SILENT_CHANNEL = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify_health(state: ChannelMonitorState, now: Optional[datetime] = None) -> ChannelHealth:
    now = now or _utcnow()
    if state.consecutive_errors > 5:
        return ChannelHealth.CRITICAL
    if state.consecutive_errors > 2 or now - state.last_poll_time > STALE_POLL:
        return ChannelHealth.WARNING
    if now - state.last_message_time > SILENT_CHANNEL and state.message_count > 0:
        return ChannelHealth.INACTIVE
    return ChannelHealth.HEALTHY


class ChannelHealthMonitor:
    """Reclassifies channel health and reports transitions to the event sink."""

    def __init__(self, sink: EventSink, clock: Callable[[], datetime] = _utcnow) -> None:
        self._sink = sink
        self._clock = clock

    async def check(self, states: Iterable[ChannelMonitorState]) -> List[ChannelHealthEvent]:
        now = self._clock()
        changes: List[ChannelHealthEvent] = []
        for state in states:
            health = classify_health(state, now)
            if health is state.health:
                continue
            logger.debug("Channel %s health %s -> %s", state.name, state.health.value, health.value)
            state.health = health
            event = ChannelHealthEvent(channel_id=state.channel_id, channel_name=state.name, health=health)
            changes.append(event)
            await self._sink.channel_health_changed(event)
        return changes
