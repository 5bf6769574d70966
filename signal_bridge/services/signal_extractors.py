"""Ordered heuristic extractors that recognise signal phrasings.

Every extractor is a pure function taking normalized text and returning a
``ParsedSignal`` with at least symbol and direction set, or ``None``.  The
parser tries them in ``EXTRACTORS`` order and keeps the first match.
"""

from __future__ import annotations

import re
from typing import Callable, Optional, Sequence, Tuple

from ..domain.models import Direction, OrderType, ParsedSignal

Extractor = Callable[[str], Optional[ParsedSignal]]

BUY_EMOJI = "🟢✅📈⬆🚀💹"
SELL_EMOJI = "🔴❌📉⬇🔻💔"

_SYMBOL = r"[A-Z]{2,}[A-Z0-9]*(?:/[A-Z]{3})?"
_DIRECTION = r"BUY|SELL|LONG|SHORT"
_DISALLOWED = re.compile(r"[^\w\s.,:@\-/+#$%&*()\[\]{}" + BUY_EMOJI + SELL_EMOJI + "]")
_WHITESPACE = re.compile(r"\s+")

_BUY_ALIASES = frozenset({"BUY", "LONG", "BULLISH", "UP", "CALL"})
_SELL_ALIASES = frozenset({"SELL", "SHORT", "BEARISH", "DOWN", "PUT"})

# Words that follow a direction in common phrasings but are never a symbol.
_NOT_A_SYMBOL = frozenset(
    {
        "NOW", "LIMIT", "STOP", "ORDER", "AT", "ENTRY", "PRICE", "MARKET", "ZONE",
        "AREA", "FROM", "SIGNAL", "INSTANT", "PENDING", "TP", "SL", "TARGET",
        "SETUP", "TRADE", "POSITION", "CURRENT", "IMMEDIATELY", "LOSS", "PROFIT",
    }
)

FALLBACK_DIRECTIONS: Tuple[str, ...] = ("BUY", "SELL", "LONG", "SHORT", "BULLISH", "BEARISH", "UP", "DOWN")

KNOWN_SYMBOLS: Tuple[str, ...] = (
    # Major forex
    "EURUSD", "GBPUSD", "USDJPY", "USDCHF", "AUDUSD", "USDCAD", "NZDUSD",
    # Minor forex
    "EURJPY", "GBPJPY", "EURGBP", "EURAUD", "EURCAD", "EURNZD", "EURCHF",
    "GBPAUD", "GBPCAD", "GBPNZD", "GBPCHF", "AUDJPY", "CADJPY", "NZDJPY",
    "AUDNZD", "AUDCAD", "AUDCHF", "NZDCAD", "NZDCHF", "CADCHF", "CHFJPY",
    # Exotics
    "USDZAR", "USDTRY", "USDMXN", "USDSEK", "USDNOK", "USDDKK", "USDPLN",
    "USDHUF", "USDCZK", "USDSGD", "USDHKD", "USDCNH", "USDRUB", "USDINR",
    "EURTRY", "EURPLN", "EURHUF", "EURCZK", "EURSEK", "EURNOK", "EURDKK",
    "GBPTRY", "GBPPLN", "GBPSEK", "GBPNOK", "GBPDKK",
    # Metals
    "XAUUSD", "GOLD", "XAGUSD", "SILVER", "XPTUSD", "PLATINUM", "XPDUSD", "PALLADIUM",
    "XAUEUR", "XAGEUR", "XAUAUD", "XAUGBP", "XAUCHF", "XAUJPY",
    # Energy
    "USOIL", "UKOIL", "BRENT", "WTI", "CRUDE", "NATGAS", "NGAS", "GAS",
    # Indices
    "US30", "DJIA", "DOW", "DJ30", "US100", "NAS100", "NASDAQ", "NDX", "USTEC",
    "SPX500", "SP500", "SPX", "US500", "USA500",
    "GER30", "GER40", "DAX", "DAX30", "DAX40", "DE30", "DE40",
    "UK100", "FTSE", "FTSE100", "UKX",
    "FRA40", "CAC", "CAC40", "FR40",
    "EU50", "STOXX50", "EUSTX50",
    "JPN225", "NIKKEI", "N225", "JP225",
    "AUS200", "ASX200", "AU200",
    "HK50", "HSI", "HANG", "HANGSENG",
    "CHINA50", "CHN50", "CN50",
    "ESP35", "IBEX", "IBEX35",
    "ITA40", "IT40", "MIB40",
    "SUI20", "SMI", "SMI20",
    "NED25", "AEX", "AEX25",
    # Crypto
    "BTCUSD", "BITCOIN", "BTC", "ETHUSD", "ETHEREUM", "ETH",
    "XRPUSD", "RIPPLE", "XRP", "LTCUSD", "LITECOIN", "LTC",
    "BCHUSD", "BITCOINCASH", "BCH", "BNBUSD", "BINANCE", "BNB",
    "ADAUSD", "CARDANO", "ADA", "DOTUSD", "POLKADOT", "DOT",
    "LINKUSD", "CHAINLINK", "LINK", "XLMUSD", "STELLAR", "XLM",
    "DOGEUSD", "DOGECOIN", "DOGE", "UNIUSD", "UNISWAP", "UNI",
    "SOLUSD", "SOLANA", "SOL", "MATICUSD", "POLYGON", "MATIC",
    "AVAXUSD", "AVALANCHE", "AVAX", "ATOMUSD", "COSMOS", "ATOM",
    "BTCEUR", "ETHEUR", "BTCGBP", "ETHGBP", "BTCJPY", "ETHJPY",
    "BTCAUD", "ETHAUD", "BTCCAD", "ETHCAD",
    # Soft and base commodities
    "CORN", "WHEAT", "SOYBEAN", "SOYB", "SUGAR", "COFFEE", "COCOA",
    "COTTON", "RICE", "OATS", "CATTLE", "HOGS", "COPPER", "ZINC",
    "ALUMINUM", "NICKEL", "LEAD", "TIN",
    # Stock CFDs
    "AAPL", "APPLE", "GOOGL", "GOOGLE", "MSFT", "MICROSOFT",
    "AMZN", "AMAZON", "FB", "META", "FACEBOOK", "TSLA", "TESLA",
    "NVDA", "NVIDIA", "JPM", "JPMORGAN", "BAC", "BANKOFAMERICA",
    "V", "VISA", "MA", "MASTERCARD", "JNJ", "JOHNSON",
    "WMT", "WALMART", "PG", "PROCTER", "UNH", "UNITEDHEALTH",
    "HD", "HOMEDEPOT", "DIS", "DISNEY", "PYPL", "PAYPAL",
    "NFLX", "NETFLIX", "ADBE", "ADOBE", "CRM", "SALESFORCE",
    "PFE", "PFIZER", "AMD", "INTEL", "INTC",
    # Bonds
    "USB02Y", "USB05Y", "USB10Y", "USB30Y", "BUND", "GILT", "JGB",
    # Trader shorthand
    "EU", "GU", "UJ", "UC", "AU", "NU", "UCAD", "GJ", "EJ", "EG",
    "GA", "GN", "EA", "EN", "AJ", "NJ", "OIL",
)

_KNOWN_SYMBOL_PATTERNS = tuple((symbol, re.compile(rf"\b{re.escape(symbol)}\b")) for symbol in KNOWN_SYMBOLS)
_FALLBACK_DIRECTION_PATTERNS = tuple(
    (direction, re.compile(rf"\b{direction}\b")) for direction in FALLBACK_DIRECTIONS
)

_GOLD_MARKER = re.compile(r"\b(?:XAUUSD|GOLD|XAU)\b")
_GOLD_DIRECTION = re.compile(r"\b(BUY|SELL)\b")
_GOLD_ENTRY_PATTERNS = (
    re.compile(r"\bNOW\s+(\d{4,5}(?:\.\d+)?)"),
    re.compile(r"\b(?:BUY|SELL)\s+(\d{4,5}(?:\.\d+)?)"),
)
_GOLD_MIN_PRICE = 1000.0
_GOLD_MAX_PRICE = 5000.0

_DIRECTION_THEN_SYMBOL = re.compile(rf"\b({_DIRECTION})\s+(?:NOW\s+)?({_SYMBOL})\b")
_FALLBACK_SYMBOL = re.compile(r"\b(XAUUSD|EURUSD|GBPUSD|USDJPY|USDCHF|AUDUSD|USDCAD|NZDUSD|[A-Z]{6,7})\b")
_PRICE_AFTER_NOW = re.compile(r"\bNOW\s+(\d+(?:\.\d+)?)\b")
# "EURUSD BUY STOP 1.0850" is a pending order; "EURUSD BUY STOP LOSS 1.08" is not.
_SYMBOL_THEN_DIRECTION = re.compile(rf"\b({_SYMBOL})\s+({_DIRECTION})\b(?!\s+(?:LIMIT|STOP(?!\s*LOSS))\b)")
_EMOJI_BUY = re.compile(rf"[{BUY_EMOJI}]\s*({_SYMBOL})")
_EMOJI_SELL = re.compile(rf"[{SELL_EMOJI}]\s*({_SYMBOL})")
_LABELED_SYMBOL = re.compile(rf"\b(?:PAIR|SYMBOL|CURRENCY|ASSET|INSTRUMENT)[:\s]*({_SYMBOL})")
_LABELED_DIRECTION = re.compile(rf"\b(?:ACTION|DIRECTION|SIGNAL|TYPE|SIDE)[:\s]*({_DIRECTION})")
_COMPACT = re.compile(rf"\b({_SYMBOL})\s*-\s*({_DIRECTION})\s*@?\s*(\d+(?:\.\d+)?)")
_PENDING = re.compile(rf"\b(BUY|SELL)\s+(LIMIT|STOP)\s+({_SYMBOL})\b(?:\s*(?:AT|@)?\s*(\d+(?:\.\d+)?))?")
_PENDING_REVERSED = re.compile(rf"\b({_SYMBOL})\s+(BUY|SELL)\s+(LIMIT|STOP)\b(?:\s*(?:AT|@)?\s*(\d+(?:\.\d+)?))?")


def normalize_text(text: str) -> str:
    """Uppercase, flatten newlines, drop disallowed punctuation and collapse spaces."""
    normalized = text.upper().replace("\ufe0f", "")
    normalized = _DISALLOWED.sub(" ", normalized)
    normalized = _WHITESPACE.sub(" ", normalized)
    return normalized.strip()


def normalize_direction(value: str) -> Optional[Direction]:
    word = value.strip().upper()
    if word in _BUY_ALIASES:
        return Direction.BUY
    if word in _SELL_ALIASES:
        return Direction.SELL
    return None


def _signal(symbol: str, direction: Optional[Direction], **fields: object) -> Optional[ParsedSignal]:
    if direction is None or not symbol:
        return None
    return ParsedSignal(symbol=symbol, original_symbol=symbol, direction=direction, **fields)  # type: ignore[arg-type]


def extract_gold(text: str) -> Optional[ParsedSignal]:
    """Gold channels often write ``SELL NOW 3342`` with no pair at all."""
    if not _GOLD_MARKER.search(text):
        return None
    direction_match = _GOLD_DIRECTION.search(text)
    if not direction_match:
        return None

    signal = _signal("XAUUSD", Direction(direction_match.group(1)), final_symbol="XAUUSD")
    if signal is None:
        return None
    for pattern in _GOLD_ENTRY_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        price = float(match.group(1))
        if _GOLD_MIN_PRICE < price < _GOLD_MAX_PRICE:
            signal.entry = price
            break
    return signal


def extract_direction_then_symbol(text: str) -> Optional[ParsedSignal]:
    match = _DIRECTION_THEN_SYMBOL.search(text)
    if not match:
        return None

    symbol = match.group(2)
    if symbol == "NOW":
        # "BUY NOW 1.0890 ... EURUSD": look for the pair elsewhere.
        fallback = _FALLBACK_SYMBOL.search(text)
        if not fallback:
            return None
        symbol = fallback.group(1)
    elif symbol in _NOT_A_SYMBOL:
        return None

    signal = _signal(symbol, normalize_direction(match.group(1)))
    if signal is None:
        return None
    entry = _PRICE_AFTER_NOW.search(text)
    if entry:
        signal.entry = float(entry.group(1))
    return signal


def extract_symbol_then_direction(text: str) -> Optional[ParsedSignal]:
    match = _SYMBOL_THEN_DIRECTION.search(text)
    if not match or match.group(1) in _NOT_A_SYMBOL:
        return None
    return _signal(match.group(1), normalize_direction(match.group(2)))


def extract_emoji(text: str) -> Optional[ParsedSignal]:
    match = _EMOJI_BUY.search(text)
    if match:
        return _signal(match.group(1), Direction.BUY)
    match = _EMOJI_SELL.search(text)
    if match:
        return _signal(match.group(1), Direction.SELL)
    return None


def extract_labeled(text: str) -> Optional[ParsedSignal]:
    symbol_match = _LABELED_SYMBOL.search(text)
    direction_match = _LABELED_DIRECTION.search(text)
    if not symbol_match or not direction_match:
        return None
    return _signal(symbol_match.group(1), normalize_direction(direction_match.group(1)))


def extract_compact(text: str) -> Optional[ParsedSignal]:
    match = _COMPACT.search(text)
    if not match:
        return None
    return _signal(match.group(1), normalize_direction(match.group(2)), entry=float(match.group(3)))


def extract_pending_order(text: str) -> Optional[ParsedSignal]:
    match = _PENDING.search(text)
    if match and match.group(3) not in _NOT_A_SYMBOL:
        direction, order_type, symbol, price = match.groups()
    else:
        match = _PENDING_REVERSED.search(text)
        if not match or match.group(1) in _NOT_A_SYMBOL:
            return None
        symbol, direction, order_type, price = match.groups()

    signal = _signal(symbol, normalize_direction(direction), order_type=OrderType(order_type))
    if signal is not None and price:
        signal.entry = float(price)
    return signal


def extract_known_symbol(text: str) -> Optional[ParsedSignal]:
    """Last resort: any known symbol paired with any direction word in the text."""
    for symbol, pattern in _KNOWN_SYMBOL_PATTERNS:
        if not pattern.search(text):
            continue
        for direction, direction_pattern in _FALLBACK_DIRECTION_PATTERNS:
            if direction_pattern.search(text):
                return _signal(symbol, normalize_direction(direction))
    return None


EXTRACTORS: Sequence[Tuple[str, Extractor]] = (
    ("gold", extract_gold),
    ("direction_symbol", extract_direction_then_symbol),
    ("symbol_direction", extract_symbol_then_direction),
    ("emoji", extract_emoji),
    ("labeled", extract_labeled),
    ("compact", extract_compact),
    ("pending_order", extract_pending_order),
    ("known_symbol", extract_known_symbol),
)
