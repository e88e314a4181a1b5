import pytest
import pandas as pd
import pytz
from datetime import datetime

# Closes cycle 99.6 - 100.4, every bar spans close +/- 0.3
CLOSE_CYCLE = [100.0, 100.2, 100.4, 100.2, 100.0, 99.8, 99.6, 99.8]
SWEPT_LOW_BARS = (20, 30, 40, 50)


def make_bars(closes, spread=0.3, volume=1000.0, start="2024-01-01 00:00", freq="1h"):
    stamps = pd.date_range(start=start, periods=len(closes), freq=freq, tz="UTC")
    bars = []
    prev = closes[0]
    for ts, close in zip(stamps, closes):
        bars.append({
            "timestamp": ts.isoformat(),
            "open": prev,
            "high": close + spread,
            "low": close - spread,
            "close": close,
            "volume": volume,
        })
        prev = close
    return bars


@pytest.fixture
def calm_bars():
    """
    60 hourly bars around 100 (last close 100.2). Bars 20/30/40/50 wick down
    to exactly 97.0, leaving an equal-lows liquidity pool there.
    """
    closes = [CLOSE_CYCLE[i % len(CLOSE_CYCLE)] for i in range(60)]
    bars = make_bars(closes)
    for i in SWEPT_LOW_BARS:
        bars[i]["low"] = 97.0
    return bars


@pytest.fixture
def calm_df(calm_bars):
    from indicators.calculations import IndicatorCalculator
    return IndicatorCalculator.to_frame(calm_bars)


@pytest.fixture
def midweek_noon():
    # Wednesday 12:00 UTC: no liquidity discount, no news window, neutral activity
    return datetime(2024, 1, 3, 12, 0, tzinfo=pytz.UTC)


@pytest.fixture
def buy_result():
    return {
        "signal": "BUY",
        "confidence": "HIGH",
        "overallConfidenceScore": 85,
        "trade": {"entryPrice": "100", "takeProfit": "110", "stopLoss": "95"},
        "riskRewardRatio": "2.5:1",
        "timeframe": "1H",
        "summary": "Bullish continuation setup",
    }


@pytest.fixture
def smc_context():
    return {
        "overallStructure": "BULLISH_STRUCTURE",
        "tradingBias": {"direction": "BULLISH", "confidence": 90},
        "confluences": {
            "liquidityConfluence": ["eqh", "asia high", "pdh"],
            "orderBlockConfluence": ["h1 ob", "h4 ob"],
            "fvgConfluence": ["m15 fvg"],
        },
        "criticalLevels": {
            "highestProbabilityZones": ["z1", "z2", "z3"],
            "liquidityTargets": ["t1", "t2"],
            "structuralSupports": ["s1", "s2"],
            "structuralResistances": ["r1", "r2"],
        },
        "riskAssessment": {"liquidityRisks": [], "structuralRisks": []},
    }


@pytest.fixture
def mtf_context():
    return {"confluenceScore": 90, "overallTrend": "BULLISH", "conflictingSignals": []}


@pytest.fixture
def breakout_bars():
    # Flat at 100 on heavy volume, one close above the prior 10-bar high at bar 20
    closes = [100.0] * 40
    closes[20] = 102.0
    return make_bars(closes, spread=0.5, volume=100000.0)


@pytest.fixture
def wild_bars():
    # 10% candle ranges -> ATR far above 3% of price
    return make_bars([100.0 + (i % 2) for i in range(30)], spread=5.0)


@pytest.fixture
def quiet_bars():
    return make_bars([100.0] * 30, spread=0.01)
