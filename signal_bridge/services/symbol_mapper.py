from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from ..domain.errors import MappingError
from ..domain.models import ParsedSignal

logger = logging.getLogger(__name__)

# Trader shorthand written in channels, expanded before broker mapping.
SHORTHAND_SYMBOLS: Mapping[str, str] = {
    "EU": "EURUSD",
    "GU": "GBPUSD",
    "UJ": "USDJPY",
    "UC": "USDCHF",
    "AU": "AUDUSD",
    "NU": "NZDUSD",
    "UCAD": "USDCAD",
    "GJ": "GBPJPY",
    "EJ": "EURJPY",
    "EG": "EURGBP",
    "XAU": "XAUUSD",
    "GOLD": "XAUUSD",
    "XAG": "XAGUSD",
    "SILVER": "XAGUSD",
    "BTC": "BTCUSD",
    "ETH": "ETHUSD",
    "OIL": "USOIL",
    "GER": "GER30",
    "NAS": "NAS100",
    "SPX": "SPX500",
    "DJI": "US30",
    "DOW": "US30",
}

_SEPARATORS = re.compile(r"[/\-_]")


def normalize_symbol(symbol: str) -> str:
    """Strip separators and expand shorthand: ``eur/usd`` -> ``EURUSD``, ``GU`` -> ``GBPUSD``."""
    cleaned = _SEPARATORS.sub("", symbol.strip().upper())
    return SHORTHAND_SYMBOLS.get(cleaned, cleaned)


def _upper_set(values: Optional[Iterable[str]]) -> FrozenSet[str]:
    return frozenset(value.strip().upper() for value in values or () if value.strip())


@dataclass(slots=True)
class SymbolMapper:
    """Translate parsed symbols into the broker's naming and enforce symbol filters."""

    aliases: Dict[str, str] = field(default_factory=dict)
    prefix: str = ""
    suffix: str = ""
    skip_prefix_suffix: FrozenSet[str] = frozenset()
    allowed: FrozenSet[str] = frozenset()
    excluded: FrozenSet[str] = frozenset()

    @classmethod
    def from_settings(
        cls,
        *,
        aliases: Optional[Mapping[str, str]] = None,
        prefix: str = "",
        suffix: str = "",
        skip_prefix_suffix: Optional[Iterable[str]] = None,
        allowed: Optional[Iterable[str]] = None,
        excluded: Optional[Iterable[str]] = None,
    ) -> "SymbolMapper":
        return cls(
            aliases={key.strip().upper(): value.strip().upper() for key, value in (aliases or {}).items()},
            prefix=prefix,
            suffix=suffix,
            skip_prefix_suffix=_upper_set(skip_prefix_suffix),
            allowed=_upper_set(allowed),
            excluded=_upper_set(excluded),
        )

    def map_symbol(self, symbol: str, original: Optional[str] = None) -> str:
        """Return the broker symbol for the normalized ``symbol``.

        ``original`` is the name as written in the message.  Aliases are looked
        up on it first, then on the normalized name.  Raises ``MappingError``
        when the symbol is excluded or outside a non-empty allow-list; both
        checks accept either the original or the final name.
        """
        normalized = symbol.strip().upper()
        original = (original or normalized).strip().upper()
        base = self.aliases.get(original) or self.aliases.get(normalized) or normalized

        if base in self.skip_prefix_suffix or original in self.skip_prefix_suffix:
            final = base
        else:
            final = f"{self.prefix}{base}{self.suffix}"

        if final in self.excluded or original in self.excluded or normalized in self.excluded:
            raise MappingError(original, "is excluded")
        if self.allowed and not {final, original, normalized} & self.allowed:
            raise MappingError(original, "not in whitelist")

        if final != original:
            logger.debug("Mapped symbol %s -> %s", original, final)
        return final

    def apply(self, signal: ParsedSignal) -> ParsedSignal:
        if not signal.original_symbol:
            signal.original_symbol = signal.symbol
        signal.final_symbol = self.map_symbol(signal.symbol or signal.original_symbol, signal.original_symbol)
        return signal
