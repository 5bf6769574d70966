import pytest

from signal_bridge.domain.errors import MappingError, ValidationError
from signal_bridge.domain.models import Direction, OrderType, ParsedSignal
from signal_bridge.services.signal_extractors import normalize_direction, normalize_text
from signal_bridge.services.signal_parser import SignalParser
from signal_bridge.services.symbol_mapper import SymbolMapper


@pytest.fixture
def parser():
    return SignalParser()


class TestNormalization:
    def test_normalize_text_uppercases_and_collapses_whitespace(self):
        assert normalize_text("buy  eurusd\n\nsl: 1.08") == "BUY EURUSD SL: 1.08"

    def test_normalize_text_keeps_direction_emoji(self):
        assert normalize_text("🟢 eurusd") == "🟢 EURUSD"

    def test_normalize_text_drops_unlisted_punctuation(self):
        assert normalize_text("BUY EURUSD!!! ~~") == "BUY EURUSD"

    @pytest.mark.parametrize(
        "word, expected",
        [
            ("long", Direction.BUY),
            ("Bullish", Direction.BUY),
            ("CALL", Direction.BUY),
            ("short", Direction.SELL),
            ("PUT", Direction.SELL),
            ("sideways", None),
        ],
    )
    def test_normalize_direction_aliases(self, word, expected):
        assert normalize_direction(word) is expected


class TestParse:
    def test_full_market_signal(self, parser):
        signal = parser.parse("BUY EURUSD SL: 1.0860 TP1: 1.0920 TP2: 1.0950 TP3: 1.0980")

        assert signal.symbol == "EURUSD"
        assert signal.direction is Direction.BUY
        assert signal.order_type is OrderType.MARKET
        assert signal.stop_loss == pytest.approx(1.0860)
        assert signal.take_profit1 == pytest.approx(1.0920)
        assert signal.take_profit2 == pytest.approx(1.0950)
        assert signal.take_profit3 == pytest.approx(1.0980)

    def test_multiline_signal_with_spelled_out_levels(self, parser):
        signal = parser.parse("SELL GBPUSD NOW\nStop Loss: 1.2650\nTake Profit 1: 1.2600")

        assert signal.symbol == "GBPUSD"
        assert signal.direction is Direction.SELL
        assert signal.order_type is OrderType.MARKET
        assert signal.stop_loss == pytest.approx(1.2650)
        assert signal.take_profit1 == pytest.approx(1.2600)

    def test_gold_signal_without_pair(self, parser):
        signal = parser.parse("GOLD SELL NOW 3342\nSL 3350\nTP 3330")

        assert signal.symbol == "XAUUSD"
        assert signal.direction is Direction.SELL
        assert signal.entry == pytest.approx(3342)
        assert signal.stop_loss == pytest.approx(3350)
        assert signal.take_profit1 == pytest.approx(3330)

    def test_buy_limit_order(self, parser):
        signal = parser.parse("BUY LIMIT EURUSD 1.0850 SL 1.0800 TP 1.0950")

        assert signal.symbol == "EURUSD"
        assert signal.order_type is OrderType.LIMIT
        assert signal.entry == pytest.approx(1.0850)
        assert signal.stop_loss == pytest.approx(1.0800)
        assert signal.take_profit1 == pytest.approx(1.0950)

    def test_sell_stop_order(self, parser):
        signal = parser.parse("SELL STOP GBPUSD 1.2500 SL 1.2550 TP 1.2400")

        assert signal.symbol == "GBPUSD"
        assert signal.direction is Direction.SELL
        assert signal.order_type is OrderType.STOP
        assert signal.entry == pytest.approx(1.2500)
        assert signal.stop_loss == pytest.approx(1.2550)
        assert signal.take_profit1 == pytest.approx(1.2400)

    @pytest.mark.parametrize(
        "message, direction, order_type, entry, stop_loss, take_profit",
        [
            ("EURUSD BUY LIMIT 1.0850 SL 1.0800 TP 1.0950", Direction.BUY, OrderType.LIMIT, 1.0850, 1.0800, 1.0950),
            ("EURUSD BUY STOP 1.0850 SL 1.0800 TP 1.0950", Direction.BUY, OrderType.STOP, 1.0850, 1.0800, 1.0950),
            ("GBPUSD SELL LIMIT 1.2500 SL 1.2550 TP 1.2400", Direction.SELL, OrderType.LIMIT, 1.2500, 1.2550, 1.2400),
            ("GBPUSD SELL STOP 1.2500 SL 1.2550 TP 1.2400", Direction.SELL, OrderType.STOP, 1.2500, 1.2550, 1.2400),
        ],
    )
    def test_symbol_first_pending_order(self, parser, message, direction, order_type, entry, stop_loss, take_profit):
        signal = parser.parse(message)

        assert signal.direction is direction
        assert signal.order_type is order_type
        assert signal.entry == pytest.approx(entry)
        assert signal.stop_loss == pytest.approx(stop_loss)
        assert signal.take_profit1 == pytest.approx(take_profit)

    def test_symbol_first_stop_loss_is_not_a_pending_order(self, parser):
        signal = parser.parse("EURUSD BUY STOP LOSS 1.0800 TP 1.0950")

        assert signal.symbol == "EURUSD"
        assert signal.order_type is OrderType.MARKET
        assert signal.stop_loss == pytest.approx(1.0800)

    def test_gold_buy_stop_reads_entry_not_stop_loss(self, parser):
        signal = parser.parse("XAUUSD BUY STOP 2350 SL 2340 TP 2370")

        assert signal.order_type is OrderType.STOP
        assert signal.entry == pytest.approx(2350)
        assert signal.stop_loss == pytest.approx(2340)

    def test_pending_below_market_becomes_limit(self, parser):
        signal = parser.parse("PENDING BUY EURUSD @ 1.0800 BELOW MARKET")

        assert signal.order_type is OrderType.LIMIT
        assert signal.entry == pytest.approx(1.0800)

    def test_emoji_signal(self, parser):
        signal = parser.parse("🟢 EURUSD")

        assert signal.symbol == "EURUSD"
        assert signal.direction is Direction.BUY

    def test_sell_emoji_signal(self, parser):
        signal = parser.parse("🔴 USDJPY")

        assert signal.symbol == "USDJPY"
        assert signal.direction is Direction.SELL

    def test_labeled_signal_with_slashed_pair(self, parser):
        signal = parser.parse("Pair: GBP/JPY\nAction: Sell\nSL: 191.50\nTP: 189.00")

        assert signal.symbol == "GBPJPY"
        assert signal.original_symbol == "GBP/JPY"
        assert signal.direction is Direction.SELL
        assert signal.stop_loss == pytest.approx(191.50)
        assert signal.take_profit1 == pytest.approx(189.00)

    def test_compact_signal(self, parser):
        signal = parser.parse("EURUSD-BUY@1.0850")

        assert signal.symbol == "EURUSD"
        assert signal.direction is Direction.BUY
        assert signal.entry == pytest.approx(1.0850)

    def test_known_symbol_with_loose_direction_word(self, parser):
        signal = parser.parse("Looking bullish on XAGUSD today")

        assert signal.symbol == "XAGUSD"
        assert signal.direction is Direction.BUY

    @pytest.mark.parametrize(
        "text",
        [
            "Good morning traders, market opens soon",
            "",
            "   \n  ",
        ],
    )
    def test_non_signal_returns_none(self, parser, text):
        assert parser.parse(text) is None

    def test_shorthand_symbol_is_expanded(self, parser):
        signal = parser.parse("BUY GU SL 1.2500 TP 1.2700")

        assert signal.symbol == "GBPUSD"
        assert signal.original_symbol == "GU"

    def test_inverted_stops_are_swapped(self, parser):
        signal = parser.parse("BUY EURUSD SL 1.0950 TP 1.0850")

        assert signal.stop_loss == pytest.approx(1.0850)
        assert signal.take_profit1 == pytest.approx(1.0950)
        parser.map_symbol(signal)
        parser.validate(signal)

    def test_comma_separated_targets(self, parser):
        signal = parser.parse("SELL USDJPY\nSL: 151.20\nTP: 150.50, 150.00, 149.50")

        assert signal.stop_loss == pytest.approx(151.20)
        assert signal.take_profit1 == pytest.approx(150.50)
        assert signal.take_profit2 == pytest.approx(150.00)
        assert signal.take_profit3 == pytest.approx(149.50)


class TestMappingAndValidation:
    def test_map_symbol_applies_broker_suffix(self):
        parser = SignalParser(SymbolMapper(suffix=".m"))
        signal = parser.parse("BUY EURUSD SL 1.0800 TP 1.0900")

        parser.map_symbol(signal)

        assert signal.final_symbol == "EURUSD.m"

    def test_map_symbol_raises_for_excluded_symbol(self):
        parser = SignalParser(SymbolMapper(excluded=frozenset({"EURUSD"})))
        signal = parser.parse("BUY EURUSD")

        with pytest.raises(MappingError, match="is excluded"):
            parser.map_symbol(signal)

    def test_validate_rejects_missing_final_symbol(self):
        signal = ParsedSignal(symbol="EURUSD", direction=Direction.BUY)

        with pytest.raises(ValidationError, match="Final symbol"):
            SignalParser.validate(signal)

    def test_validate_rejects_missing_direction(self):
        signal = ParsedSignal(symbol="EURUSD", final_symbol="EURUSD")

        with pytest.raises(ValidationError, match="Direction"):
            SignalParser.validate(signal)

    def test_validate_rejects_buy_with_stop_above_target(self):
        signal = ParsedSignal(
            symbol="EURUSD",
            final_symbol="EURUSD",
            direction=Direction.BUY,
            stop_loss=1.10,
            take_profit1=1.09,
        )

        with pytest.raises(ValidationError, match="Invalid BUY stops"):
            SignalParser.validate(signal)

    def test_validate_rejects_sell_with_equal_stops(self):
        signal = ParsedSignal(
            symbol="EURUSD",
            final_symbol="EURUSD",
            direction=Direction.SELL,
            stop_loss=1.09,
            take_profit1=1.09,
        )

        with pytest.raises(ValidationError, match="Invalid SELL stops"):
            SignalParser.validate(signal)

    def test_validate_accepts_signal_without_stops(self):
        signal = ParsedSignal(symbol="EURUSD", final_symbol="EURUSD", direction=Direction.SELL)

        SignalParser.validate(signal)
