from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class Direction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP = "STOP"


class SignalStatus:
    """Status strings recorded on processed signal records."""

    SENT = "Processed - Sent to EA"
    NO_SIGNAL = "No trading signal detected"
    INVALID = "Invalid - Missing required data"
    DUPLICATE = "Duplicate - Already processed"
    EMPTY = "Empty message"
    ERROR_PREFIX = "Error - "
    WRITE_FAILED_PREFIX = "Write failed - "


@dataclass(slots=True)
class ParsedSignal:
    symbol: str = ""
    direction: Optional[Direction] = None
    order_type: OrderType = OrderType.MARKET
    original_symbol: str = ""
    final_symbol: str = ""
    entry: float = 0.0
    stop_loss: float = 0.0
    take_profit1: float = 0.0
    take_profit2: float = 0.0
    take_profit3: float = 0.0

    def order_description(self) -> str:
        direction = self.direction.value if self.direction else ""
        if self.order_type is OrderType.MARKET:
            return direction
        return f"{direction} {self.order_type.value}"

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["direction"] = self.direction.value if self.direction else None
        payload["order_type"] = self.order_type.value
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParsedSignal":
        direction = data.get("direction")
        return cls(
            symbol=data.get("symbol") or "",
            direction=Direction(direction) if direction else None,
            order_type=OrderType(data.get("order_type") or OrderType.MARKET.value),
            original_symbol=data.get("original_symbol") or "",
            final_symbol=data.get("final_symbol") or "",
            entry=float(data.get("entry") or 0.0),
            stop_loss=float(data.get("stop_loss") or 0.0),
            take_profit1=float(data.get("take_profit1") or 0.0),
            take_profit2=float(data.get("take_profit2") or 0.0),
            take_profit3=float(data.get("take_profit3") or 0.0),
        )


@dataclass(slots=True)
class ProcessedSignalRecord:
    id: str
    timestamp: datetime
    channel_id: str
    channel_name: str
    original_text: str
    status: str
    parsed: Optional[ParsedSignal] = None
    error: Optional[str] = None
    message_id: Optional[int] = None

    @property
    def is_duplicate(self) -> bool:
        return self.status.startswith("Duplicate")

    @property
    def was_sent(self) -> bool:
        return self.status == SignalStatus.SENT
