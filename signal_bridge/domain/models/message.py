from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True, frozen=True)
class SourceMessage:
    """A single message as returned by the message source adapter."""

    message_id: int
    text: str
    timestamp: datetime


@dataclass(slots=True)
class PendingMessage:
    content: str
    channel_id: str
    channel_name: str
    message_id: int
    message_time: datetime
    received_at: datetime
