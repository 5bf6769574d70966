from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from .channel import ChannelHealth
from .signal import ProcessedSignalRecord


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class NewSignalEvent:
    record: ProcessedSignalRecord
    message_time: datetime
    received_at: datetime
    processed_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class MonitoringStatusEvent:
    active: bool
    channel_count: int
    reason: str
    fatal: bool = False
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class ChannelHealthEvent:
    channel_id: str
    channel_name: str
    health: ChannelHealth
    timestamp: datetime = field(default_factory=_utcnow)
