from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from signal_bridge.domain.models import (
    ChannelHealthEvent,
    MonitoringStatusEvent,
    NewSignalEvent,
    PendingMessage,
    SourceMessage,
)


class RecordingSink:
    """Event sink that keeps every event for assertions."""

    def __init__(self) -> None:
        self.signals: List[NewSignalEvent] = []
        self.errors: List[str] = []
        self.debugs: List[str] = []
        self.statuses: List[MonitoringStatusEvent] = []
        self.health: List[ChannelHealthEvent] = []

    async def new_signal(self, event: NewSignalEvent) -> None:
        self.signals.append(event)

    async def error(self, message: str) -> None:
        self.errors.append(message)

    async def debug(self, message: str) -> None:
        self.debugs.append(message)

    async def monitoring_status_changed(self, event: MonitoringStatusEvent) -> None:
        self.statuses.append(event)

    async def channel_health_changed(self, event: ChannelHealthEvent) -> None:
        self.health.append(event)


class FakeMessageSource:
    """In-memory message source keyed by channel handle."""

    def __init__(self) -> None:
        self.messages: Dict[Any, List[SourceMessage]] = {}
        self.failures: Dict[Any, int] = {}
        self.history_calls: List[tuple] = []
        self.probe_result = True
        self.reconnect_results: List[bool] = []
        self.reconnect_calls = 0

    def add(self, handle: Any, message_id: int, text: str, timestamp: Optional[datetime] = None) -> None:
        self.messages.setdefault(handle, []).append(
            SourceMessage(message_id=message_id, text=text, timestamp=timestamp or datetime.now(timezone.utc))
        )

    async def get_history_since(self, handle: Any, since_id: int, limit: int) -> List[SourceMessage]:
        self.history_calls.append((handle, since_id, limit))
        if self.failures.get(handle, 0) > 0:
            self.failures[handle] -= 1
            raise ConnectionError(f"channel {handle} unavailable")
        newer = [message for message in self.messages.get(handle, []) if message.message_id > since_id]
        # Telegram returns newest first.
        return sorted(newer, key=lambda message: message.message_id, reverse=True)[:limit]

    async def get_latest_message_id(self, handle: Any) -> int:
        messages = self.messages.get(handle, [])
        return max((message.message_id for message in messages), default=0)

    async def probe(self) -> bool:
        return self.probe_result

    async def reconnect(self) -> bool:
        self.reconnect_calls += 1
        if self.reconnect_results:
            return self.reconnect_results.pop(0)
        return False


def make_pending(
    content: str,
    *,
    channel_id: str = "-1001",
    channel_name: str = "VIP Forex",
    message_id: int = 1,
) -> PendingMessage:
    now = datetime.now(timezone.utc)
    return PendingMessage(
        content=content,
        channel_id=channel_id,
        channel_name=channel_name,
        message_id=message_id,
        message_time=now,
        received_at=now,
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def source() -> FakeMessageSource:
    return FakeMessageSource()
