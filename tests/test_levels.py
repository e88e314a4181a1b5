import pytest
import pandas as pd
from structure.levels import SupportResistanceAnalyzer, SupportResistanceLevel


def make_level(price, level_type="SUPPORT", strength="WEAK"):
    return SupportResistanceLevel(price=price, type=level_type, strength=strength, touches=1,
                                  distance=0.0, reliability=50, source="SWING")


def test_psychological_step():
    assert SupportResistanceAnalyzer.psychological_step(100.2) == 1
    assert SupportResistanceAnalyzer.psychological_step(50000) == 100
    assert SupportResistanceAnalyzer.psychological_step(1.1) == pytest.approx(0.01)


def test_psychological_levels_skip_current_price():
    levels = SupportResistanceAnalyzer.find_psychological_levels(100.2)
    prices = [l.price for l in levels]
    assert 99 in prices
    assert 102 in prices
    # within one step of the current price
    assert 100 not in prices
    assert 101 not in prices

    by_price = {l.price: l for l in levels}
    assert by_price[99].type == "SUPPORT"
    assert by_price[102].type == "RESISTANCE"
    assert by_price[102].strength == "STRONG" # 1.8% away
    assert by_price[95].strength == "WEAK"    # 5.2% away


def test_pivot_levels(calm_df):
    # Last candle: high 100.5, low 99.9, close 100.2
    levels = SupportResistanceAnalyzer.find_pivot_levels(calm_df, 100.2)
    pivot = [l for l in levels if l.strength == "VERY_STRONG"]
    assert len(pivot) == 1
    assert pivot[0].price == pytest.approx(100.2)

    others = [l for l in levels if l.strength == "STRONG"]
    resistances = sorted(l.price for l in others if l.type == "RESISTANCE")
    supports = sorted(l.price for l in others if l.type == "SUPPORT")
    assert resistances == pytest.approx([100.5, 100.8, 101.1])
    assert supports == pytest.approx([99.3, 99.6, 99.9])


def test_level_strength():
    assert SupportResistanceAnalyzer.level_strength(1, 0) == "WEAK"
    assert SupportResistanceAnalyzer.level_strength(2, 1000) == "MODERATE"       # 20 + 6
    assert SupportResistanceAnalyzer.level_strength(3, 1000, True) == "VERY_STRONG" # 30 + 10 + 6


def test_count_touches(calm_df):
    # Only the four wick bars reach 97
    assert SupportResistanceAnalyzer.count_touches(calm_df, 97.0, 0.002) == 4


def test_count_penetrations():
    df = pd.DataFrame({
        "high": [100.05, 100.05, 100.05, 100.05],
        "low": [99.95, 98.0, 99.95, 98.0],
        "close": [100.0, 100.0, 100.0, 100.0],
    })
    # Dip through 100 and back inside the band, then dip again without coming back
    assert SupportResistanceAnalyzer.count_penetrations(df, 100.0) == 1


def test_merge_keeps_strongest():
    merged = SupportResistanceAnalyzer.merge_levels([
        make_level(100.0, strength="WEAK"),
        make_level(100.1, strength="STRONG"),
        make_level(100.05, level_type="RESISTANCE"),
    ])
    assert len(merged) == 2
    assert merged[0].strength == "STRONG"
    assert merged[0].price == 100.1


def test_merge_does_not_downgrade():
    merged = SupportResistanceAnalyzer.merge_levels([
        make_level(100.0, strength="VERY_STRONG"),
        make_level(100.1, strength="STRONG"),
        make_level(100.15, strength="MODERATE"),
    ])
    assert len(merged) == 1
    assert merged[0].strength == "VERY_STRONG"


def test_identify_levels_sorted(calm_df):
    levels = SupportResistanceAnalyzer.identify_levels(calm_df, 100.2, "1H")
    assert levels
    distances = [l.distance for l in levels]
    assert distances == sorted(distances)
    assert {l.type for l in levels} == {"SUPPORT", "RESISTANCE"}
    for level in levels:
        assert 0 <= level.reliability <= 100


def test_identify_levels_without_history():
    empty = pd.DataFrame(columns=["open", "high", "low", "close", "volume"])
    levels = SupportResistanceAnalyzer.identify_levels(empty, 100.2)
    assert levels
    assert all(l.source == "PSYCHOLOGICAL" for l in levels)


def test_swing_levels_need_retest():
    closes = [100.0] * 10 + [98.0] + [100.0] * 10 + [98.0] + [100.0] * 10
    df = pd.DataFrame({
        "open": closes, "high": [c + 0.3 for c in closes], "low": [c - 0.3 for c in closes],
        "close": closes, "volume": [500.0] * len(closes),
    })
    levels = SupportResistanceAnalyzer.find_swing_levels(df, 100.0, "1H")
    supports = [l for l in levels if l.type == "SUPPORT"]
    assert len(supports) == 2
    assert all(l.price == pytest.approx(97.7) for l in supports)
    assert all(l.touches == 2 for l in supports)
