import pytest
import pandas as pd
import numpy as np
from indicators.calculations import IndicatorCalculator


def test_to_frame_from_bars(calm_bars):
    df = IndicatorCalculator.to_frame(list(reversed(calm_bars)))
    assert len(df) == 60
    # oldest first after sorting by timestamp
    assert df['timestamp'].is_monotonic_increasing
    assert str(df['timestamp'].dt.tz) == "UTC"
    assert df['close'].dtype == np.float64


def test_to_frame_accepts_dataframe(calm_df):
    df = IndicatorCalculator.to_frame(calm_df)
    assert df.equals(calm_df)
    assert df is not calm_df


def test_to_frame_empty():
    assert IndicatorCalculator.to_frame([]).empty
    assert IndicatorCalculator.to_frame(None).empty


def test_to_frame_rejects_bad_input():
    with pytest.raises(ValueError):
        IndicatorCalculator.to_frame([{"open": 1, "high": 2, "low": 0.5, "close": 1.5}])
    with pytest.raises(ValueError):
        IndicatorCalculator.to_frame([{"open": 1, "high": 2, "low": -0.5, "close": 1.5, "volume": 10}])


def test_normalize_timeframe():
    assert IndicatorCalculator.normalize_timeframe("H1") == "1H"
    assert IndicatorCalculator.normalize_timeframe("m15") == "15M"
    assert IndicatorCalculator.normalize_timeframe("D1") == "1D"
    assert IndicatorCalculator.normalize_timeframe("4h") == "4H"
    assert IndicatorCalculator.normalize_timeframe(None) == "1H"
    assert IndicatorCalculator.normalize_timeframe("") == "1H"


def test_find_swing_points():
    df = pd.DataFrame({"high": [1, 2, 5, 2, 1, 2, 3], "low": [1, 0, 2, 1, 0.5, 1, 1]})
    assert IndicatorCalculator.find_swing_points(df, 2, 'high') == [2]
    assert IndicatorCalculator.find_swing_points(df, 2, 'low') == [4]


def test_volatility_metrics_default_for_short_history():
    metrics = IndicatorCalculator.calculate_volatility_metrics(None)
    assert metrics['volatility_regime'] == "MEDIUM"
    assert metrics['current_volatility'] == 0.02
    assert metrics['volatility_trend'] == "STABLE"


def test_volatility_metrics(calm_df):
    metrics = IndicatorCalculator.calculate_volatility_metrics(calm_df)
    assert metrics['volatility_regime'] == "LOW"
    assert metrics['current_volatility'] == pytest.approx(0.002, abs=0.0003)
    assert metrics['volatility_trend'] == "STABLE"
    assert metrics['atr'] > 0
    assert metrics['bollinger_band_width'] > 0


def test_volatility_metrics_atr_and_band_width(calm_df, quiet_bars):
    metrics = IndicatorCalculator.calculate_volatility_metrics(calm_df)
    prev_close = calm_df['close'].shift(1)
    tr = pd.concat([calm_df['high'] - calm_df['low'],
                    (calm_df['high'] - prev_close).abs(),
                    (calm_df['low'] - prev_close).abs()], axis=1).max(axis=1)
    assert metrics['atr'] == pytest.approx(tr.tail(14).mean())
    recent = calm_df['close'].tail(20)
    # upper - lower = 4 population sigmas
    assert metrics['bollinger_band_width'] == pytest.approx(4 * recent.std(ddof=0) / recent.mean())

    flat = IndicatorCalculator.calculate_volatility_metrics(IndicatorCalculator.to_frame(quiet_bars))
    assert flat['atr'] == pytest.approx(0.02)   # high - low = 2 * 0.01
    assert flat['bollinger_band_width'] == pytest.approx(0.0, abs=1e-9)


def test_classify_volatility_regime():
    assert IndicatorCalculator.classify_volatility_regime(0.005) == "LOW"
    assert IndicatorCalculator.classify_volatility_regime(0.01) == "MEDIUM"
    assert IndicatorCalculator.classify_volatility_regime(0.03) == "HIGH"
    assert IndicatorCalculator.classify_volatility_regime(0.05) == "EXTREME"


def test_atr_volatility_regime(wild_bars, quiet_bars):
    assert IndicatorCalculator.get_volatility_regime(IndicatorCalculator.to_frame(wild_bars)) == "EXTREME"
    assert IndicatorCalculator.get_volatility_regime(IndicatorCalculator.to_frame(quiet_bars)) == "LOW"
    assert IndicatorCalculator.get_volatility_regime(IndicatorCalculator.to_frame(quiet_bars[:10])) == "NORMAL"
