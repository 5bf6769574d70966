from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class MonitoringStartRequest(BaseModel):
    """Channels to monitor; falls back to TELEGRAM_CHANNELS when omitted."""

    channels: Optional[List[str]] = Field(default=None, max_length=200)

    @field_validator("channels")
    @classmethod
    def dedupe_channels(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        deduped: List[str] = []
        for item in value:
            normalized = item.strip()
            if normalized and normalized not in deduped:
                deduped.append(normalized)
        return deduped


class ChannelStatusResponse(BaseModel):
    channel_id: str
    channel_name: str
    priority: str
    message_count: int
    last_message_time: datetime
    health: str
    message_rate: float
    consecutive_errors: int


class MonitoringStatisticsResponse(BaseModel):
    active: bool
    monitored_channels: int
    messages_processed: int
    processing_errors: int
    average_latency_ms: float
    queue_size: int
    reconnection_state: str
    channels: List[ChannelStatusResponse]
