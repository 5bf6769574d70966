from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ChannelPriority(int, Enum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2


class ChannelHealth(str, Enum):
    UNKNOWN = "Unknown"
    HEALTHY = "Healthy"
    WARNING = "Warning"
    INACTIVE = "Inactive"
    CRITICAL = "Critical"


_HIGH_PRIORITY_KEYWORDS = ("vip", "premium", "gold")
_MEDIUM_PRIORITY_KEYWORDS = ("signal", "forex", "crypto")


def priority_from_title(title: Optional[str]) -> ChannelPriority:
    """Infer polling priority from the keywords providers put in channel titles."""
    lowered = (title or "").lower()
    if any(keyword in lowered for keyword in _HIGH_PRIORITY_KEYWORDS):
        return ChannelPriority.HIGH
    if any(keyword in lowered for keyword in _MEDIUM_PRIORITY_KEYWORDS):
        return ChannelPriority.MEDIUM
    return ChannelPriority.LOW


@dataclass(slots=True)
class ChannelInfo:
    """Identity of a monitored channel plus the adapter's opaque handle."""

    channel_id: str
    title: str
    handle: Any = None
    priority: Optional[ChannelPriority] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ChannelMonitorState:
    channel_id: str
    name: str
    handle: Any
    priority: ChannelPriority = ChannelPriority.LOW
    last_processed_message_id: int = 0
    last_poll_time: datetime = field(default_factory=_utcnow)
    last_message_time: datetime = field(default_factory=_utcnow)
    message_count: int = 0
    consecutive_empty_polls: int = 0
    consecutive_errors: int = 0
    recent_message_rate: float = 0.0
    health: ChannelHealth = ChannelHealth.UNKNOWN

    def advance_cursor(self, message_id: int) -> None:
        if message_id > self.last_processed_message_id:
            self.last_processed_message_id = message_id

    def to_info(self) -> ChannelInfo:
        return ChannelInfo(
            channel_id=self.channel_id,
            title=self.name,
            handle=self.handle,
            priority=self.priority,
        )
