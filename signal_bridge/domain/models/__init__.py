"""Domain models for the signal bridge."""

from .channel import (
    ChannelHealth,
    ChannelInfo,
    ChannelMonitorState,
    ChannelPriority,
    priority_from_title,
)
from .events import ChannelHealthEvent, MonitoringStatusEvent, NewSignalEvent
from .message import PendingMessage, SourceMessage
from .signal import Direction, OrderType, ParsedSignal, ProcessedSignalRecord, SignalStatus

__all__ = [
    "ChannelHealth",
    "ChannelHealthEvent",
    "ChannelInfo",
    "ChannelMonitorState",
    "ChannelPriority",
    "Direction",
    "MonitoringStatusEvent",
    "NewSignalEvent",
    "OrderType",
    "ParsedSignal",
    "PendingMessage",
    "ProcessedSignalRecord",
    "SignalStatus",
    "SourceMessage",
    "priority_from_title",
]
