from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

from ..domain.errors import ValidationError
from ..domain.models import Direction, ParsedSignal
from .price_extraction import (
    correct_inverted_stops,
    extract_entry,
    extract_stop_loss_and_take_profits,
    infer_order_type,
)
from .signal_extractors import EXTRACTORS, Extractor, normalize_text
from .symbol_mapper import SymbolMapper, normalize_symbol

logger = logging.getLogger(__name__)


class SignalParser:
    """Turn free-text channel messages into structured trading signals.

    ``parse`` returns ``None`` when no phrasing is recognised.  Mapping and
    validation are separate steps so the caller can record their outcomes.
    """

    def __init__(
        self,
        mapper: Optional[SymbolMapper] = None,
        extractors: Sequence[Tuple[str, Extractor]] = EXTRACTORS,
    ) -> None:
        self._mapper = mapper or SymbolMapper()
        self._extractors = tuple(extractors)

    @property
    def mapper(self) -> SymbolMapper:
        return self._mapper

    def parse(self, message: str) -> Optional[ParsedSignal]:
        if not message or not message.strip():
            return None

        text = normalize_text(message)
        logger.debug("Normalized text: %s", text[:100])

        signal: Optional[ParsedSignal] = None
        for name, extractor in self._extractors:
            signal = extractor(text)
            if signal is not None:
                logger.debug("Signal recognised by %s extractor: %s %s", name, signal.direction, signal.symbol)
                break
        if signal is None:
            return None

        extract_stop_loss_and_take_profits(text, signal)
        extract_entry(text, signal)
        infer_order_type(text, signal)

        signal.symbol = normalize_symbol(signal.symbol)
        if not signal.original_symbol:
            signal.original_symbol = signal.symbol
        if correct_inverted_stops(signal):
            logger.debug("Swapped inverted stop loss and take profit for %s", signal.symbol)
        return signal

    def map_symbol(self, signal: ParsedSignal) -> ParsedSignal:
        """Apply broker symbol mapping; raises ``MappingError`` on a rejected symbol."""
        return self._mapper.apply(signal)

    @staticmethod
    def validate(signal: ParsedSignal) -> None:
        if not signal.symbol:
            raise ValidationError("Symbol is empty")
        if signal.direction is None:
            raise ValidationError("Direction is empty")
        if not signal.final_symbol:
            raise ValidationError("Final symbol is empty")

        if signal.stop_loss > 0 and signal.take_profit1 > 0:
            if signal.direction is Direction.BUY and signal.stop_loss >= signal.take_profit1:
                raise ValidationError(
                    f"Invalid BUY stops: SL ({signal.stop_loss}) >= TP ({signal.take_profit1})"
                )
            if signal.direction is Direction.SELL and signal.stop_loss <= signal.take_profit1:
                raise ValidationError(
                    f"Invalid SELL stops: SL ({signal.stop_loss}) <= TP ({signal.take_profit1})"
                )
