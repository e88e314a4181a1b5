import pytest
from filters.trade_parser import (
    UNPARSEABLE, Parsed, parse_risk_reward, parse_price, extract_trade_prices,
    is_valid_trade_structure, as_number, get_section
)


def test_parse_colon_ratio():
    assert parse_risk_reward("2.5:1") == Parsed(2.5)
    assert parse_risk_reward("3:1.5") == Parsed(2.0)
    assert parse_risk_reward("1:1") == Parsed(1.0)


def test_parse_colon_is_reward_over_risk():
    # every "a:b" is a/b, whichever side is 1
    assert parse_risk_reward("1:2.5") == Parsed(0.4)
    assert parse_risk_reward("1:2") == parse_risk_reward("2:4") == Parsed(0.5)
    assert parse_risk_reward("1:3").value == pytest.approx(1 / 3)


def test_parse_multiple_forms():
    assert parse_risk_reward("2.5x") == Parsed(2.5)
    assert parse_risk_reward("2.5X") == Parsed(2.5)
    assert parse_risk_reward("RR = 2.5") == Parsed(2.5)
    assert parse_risk_reward("r=3") == Parsed(3.0)
    assert parse_risk_reward(" 2 ") == Parsed(2.0)
    assert parse_risk_reward(1.75) == Parsed(1.75)


def test_parse_rejects_garbage():
    for raw in ["garbage", "", "2.5:", ":1", "-2:1", "0:1", "2:0", "0", "abc2.5", None, True, [2.5], float("nan")]:
        assert parse_risk_reward(raw) is UNPARSEABLE, raw


def test_unparseable_is_falsy_singleton():
    assert not UNPARSEABLE
    assert repr(UNPARSEABLE) == "UNPARSEABLE"
    assert type(UNPARSEABLE)() is UNPARSEABLE


def test_parse_price():
    assert parse_price("$1,234.50") == 1234.5
    assert parse_price(" 100 ") == 100.0
    assert parse_price(42) == 42.0
    assert parse_price("n/a") is None
    assert parse_price(None) is None
    assert parse_price(False) is None


def test_extract_trade_prices():
    result = {"trade": {"entryPrice": "100", "takeProfit": "110", "stopLoss": "95"}}
    assert extract_trade_prices(result) == (100.0, 110.0, 95.0)
    assert extract_trade_prices({"trade": None}) is None
    assert extract_trade_prices({"trade": {"entryPrice": "100", "takeProfit": "110"}}) is None


def test_valid_buy_and_sell():
    buy = {"signal": "BUY", "trade": {"entryPrice": "100", "takeProfit": "110", "stopLoss": "95"}}
    sell = {"signal": "SELL", "trade": {"entryPrice": "100", "takeProfit": "90", "stopLoss": "105"}}
    assert is_valid_trade_structure(buy)
    assert is_valid_trade_structure(sell)


def test_invalid_structures():
    # SELL with tp == entry
    assert not is_valid_trade_structure(
        {"signal": "SELL", "trade": {"entryPrice": "100", "takeProfit": "100", "stopLoss": "105"}})
    # BUY with the stop above entry
    assert not is_valid_trade_structure(
        {"signal": "BUY", "trade": {"entryPrice": "100", "takeProfit": "110", "stopLoss": "101"}})
    # Non-positive price
    assert not is_valid_trade_structure(
        {"signal": "SELL", "trade": {"entryPrice": "10", "takeProfit": "-5", "stopLoss": "12"}})
    # NEUTRAL never carries a trade
    assert not is_valid_trade_structure(
        {"signal": "NEUTRAL", "trade": {"entryPrice": "100", "takeProfit": "110", "stopLoss": "95"}})
    assert not is_valid_trade_structure({"signal": "BUY", "trade": None})


def test_as_number_and_get_section():
    assert as_number(5) == 5.0
    assert as_number("5") == 0.0
    assert as_number(True, None) is None
    assert as_number(float("inf"), 1.0) == 1.0
    assert get_section({"a": {"b": 1}}, "a") == {"b": 1}
    assert get_section({"a": [1]}, "a") == {}
    assert get_section(None, "a") == {}
