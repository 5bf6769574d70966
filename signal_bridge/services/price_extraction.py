"""Price and order-type extraction shared by every signal phrasing.

All helpers only fill fields that are still empty (``0.0``); the first
pattern that matches a field wins.
"""

from __future__ import annotations

import re
from typing import Sequence, Tuple

from ..domain.models import Direction, OrderType, ParsedSignal

# A whole price that is not itself a level label such as the "2" in "TP 2: 1.09".
_PRICE = r"(\d+(?:\.\d+)?)(?!\d|\.\d|\s*[:=])"
_SEP = r"\s*[:=@]?\s*"
# STOP right after a direction word is an order type, not a stop-loss label.
_STOP_LABEL = r"(?<!BUY )(?<!SELL )STOP"

_STOP_LOSS_PATTERNS = (
    re.compile(rf"\b(?:SL|STOP\s*LOSS|STOPLOSS|S\.L|S/L|{_STOP_LABEL}){_SEP}{_PRICE}"),
    re.compile(rf"\b(?:{_STOP_LABEL}|SL)\s*(?:AT|@)\s*{_PRICE}"),
    re.compile(rf"\b(?:RISK|INVALIDATION){_SEP}{_PRICE}"),
)

_TAKE_PROFIT_PATTERNS: Sequence[Tuple[re.Pattern, int]] = (
    (re.compile(rf"\b(?:TP|TAKE\s*PROFIT|TAKEPROFIT|T\.P|T/P|TARGET)\s*(?:1(?![\d.])\s*)?[:=@]?\s*{_PRICE}"), 1),
    (re.compile(rf"\b(?:TP|TAKE\s*PROFIT|TARGET)\s*2(?![\d.]){_SEP}{_PRICE}"), 2),
    (re.compile(rf"\b(?:TP|TAKE\s*PROFIT|TARGET)\s*3(?![\d.]){_SEP}{_PRICE}"), 3),
    (re.compile(rf"\b(?:PROFIT|GOAL|OBJECTIVE){_SEP}{_PRICE}"), 1),
    (re.compile(rf"\b(?:1ST|FIRST)\s*(?:TP|TARGET){_SEP}{_PRICE}"), 1),
    (re.compile(rf"\b(?:2ND|SECOND)\s*(?:TP|TARGET){_SEP}{_PRICE}"), 2),
    (re.compile(rf"\b(?:3RD|THIRD)\s*(?:TP|TARGET){_SEP}{_PRICE}"), 3),
)

_TAKE_PROFIT_LIST = re.compile(r"\b(?:TP|TARGET|PROFIT)S?\s*[:=]?\s*((?:\d+(?:\.\d+)?\s*[,;]\s*)+\d+(?:\.\d+)?)")

_ENTRY_PATTERNS = (
    re.compile(rf"(?:\bENTRY|\bENTER|\bPRICE|\bBUY\s*AT|\bSELL\s*AT|@|\bEXECUTION){_SEP}{_PRICE}"),
    re.compile(rf"\b(?:MARKET|NOW|CURRENT)\s*(?:PRICE)?{_SEP}{_PRICE}"),
    re.compile(rf"\b(?:OPEN|LIMIT|(?<=BUY )STOP|(?<=SELL )STOP){_SEP}{_PRICE}"),
)
# Two prices joined by a dash, but not the parts of a date such as 2024-05-01.
_PRICE_RANGE = re.compile(r"(?<![\d.-])(\d+(?:\.\d+)?)\s*-\s*(\d+(?:\.\d+)?)(?!\d|\.\d|\s*-\s*\d)")

_EXPLICIT_LIMIT = re.compile(r"\b(?:BUY|SELL)\s+LIMIT\b|\bLIMIT\s+ORDER\b")
_EXPLICIT_STOP = re.compile(r"\b(?:BUY|SELL)\s+STOP\b(?!\s*LOSS)|\bSTOP\s+ORDER\b")
_PENDING = re.compile(r"\bPENDING\b")
_BELOW = re.compile(r"\bBELOW\b")
_ABOVE = re.compile(r"\bABOVE\b")
_MARKET = re.compile(r"\b(?:NOW|INSTANT|MARKET|CURRENT|IMMEDIATELY)\b")


def extract_stop_loss_and_take_profits(text: str, signal: ParsedSignal) -> None:
    if not signal.stop_loss:
        for pattern in _STOP_LOSS_PATTERNS:
            match = pattern.search(text)
            if match:
                signal.stop_loss = float(match.group(1))
                break

    for pattern, level in _TAKE_PROFIT_PATTERNS:
        match = pattern.search(text)
        if match:
            _set_take_profit(signal, level, float(match.group(1)))

    # "TP: 1.0900, 1.0950, 1.1000"
    list_match = _TAKE_PROFIT_LIST.search(text)
    if list_match:
        values = [float(item) for item in re.split(r"[,;]", list_match.group(1)) if item.strip()]
        for level, value in enumerate(values[:3], start=1):
            if value > 0:
                _set_take_profit(signal, level, value)


def _set_take_profit(signal: ParsedSignal, level: int, value: float) -> None:
    field = f"take_profit{level}"
    if not getattr(signal, field):
        setattr(signal, field, value)


def extract_entry(text: str, signal: ParsedSignal) -> None:
    if not signal.entry:
        for pattern in _ENTRY_PATTERNS:
            match = pattern.search(text)
            if match:
                signal.entry = float(match.group(1))
                break

    # "1.0890-1.0900": the side nearest the market is the entry.
    range_match = _PRICE_RANGE.search(text)
    if not range_match:
        return
    low, high = sorted((float(range_match.group(1)), float(range_match.group(2))))
    if signal.direction is Direction.BUY:
        signal.entry = signal.entry or low
        signal.take_profit1 = signal.take_profit1 or high
    elif signal.direction is Direction.SELL:
        signal.entry = signal.entry or high
        signal.take_profit1 = signal.take_profit1 or low


def infer_order_type(text: str, signal: ParsedSignal) -> None:
    if signal.order_type is not OrderType.MARKET:
        return

    if _EXPLICIT_LIMIT.search(text):
        signal.order_type = OrderType.LIMIT
    elif _EXPLICIT_STOP.search(text):
        signal.order_type = OrderType.STOP
    elif _PENDING.search(text):
        if not signal.entry:
            return
        below = bool(_BELOW.search(text))
        above = bool(_ABOVE.search(text))
        if signal.direction is Direction.BUY:
            if below:
                signal.order_type = OrderType.LIMIT
            elif above:
                signal.order_type = OrderType.STOP
        elif signal.direction is Direction.SELL:
            if above:
                signal.order_type = OrderType.LIMIT
            elif below:
                signal.order_type = OrderType.STOP
    elif _MARKET.search(text):
        signal.order_type = OrderType.MARKET


def correct_inverted_stops(signal: ParsedSignal) -> bool:
    """Swap stop loss and first target when they sit on the wrong side.

    Returns True when a swap happened.
    """
    if not signal.stop_loss or not signal.take_profit1:
        return False
    if signal.direction is Direction.BUY and signal.stop_loss > signal.take_profit1:
        signal.stop_loss, signal.take_profit1 = signal.take_profit1, signal.stop_loss
        return True
    if signal.direction is Direction.SELL and signal.stop_loss < signal.take_profit1:
        signal.stop_loss, signal.take_profit1 = signal.take_profit1, signal.stop_loss
        return True
    return False
