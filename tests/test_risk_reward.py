import pytest
import pytz
from datetime import datetime
from audit.performance import HistoricalPerformance
from filters.risk_reward import DynamicRiskReward, RiskRewardRecommendation


def test_resolve_asset_type():
    assert DynamicRiskReward.resolve_asset_type({"summary": "Gold breaking out of range"}) == "GOLD"
    assert DynamicRiskReward.resolve_asset_type({"summary": "ETH looks strong"}) == "ETH"
    assert DynamicRiskReward.resolve_asset_type({"summary": "Apple stock earnings run"}) == "AAPL"
    assert DynamicRiskReward.resolve_asset_type({"summary": "EURUSD rejecting highs"}) == "EURUSD"
    # First keyword group wins
    assert DynamicRiskReward.resolve_asset_type({"summary": "Bitcoin and gold both bid"}) == "BTC"
    assert DynamicRiskReward.resolve_asset_type({"summary": "Range play"}) == "BTC"
    assert DynamicRiskReward.resolve_asset_type({}) == "BTC"


def test_unknown_asset_gets_default_profile():
    profile = DynamicRiskReward.get_asset_profile("DOGE")
    assert profile["volatility_profile"] == "HIGH"
    assert DynamicRiskReward.get_asset_profile("eurusd")["asset_class"] == "FOREX"


def test_time_patterns():
    at = lambda h: datetime(2024, 1, 3, h, 0, tzinfo=pytz.UTC)

    asian = DynamicRiskReward.analyze_time_patterns(at(3), "EURUSD")
    assert asian["session_strength"] == "WEAK"
    assert asian["market_session"] == "ASIAN"
    assert asian["time_based_volatility"] == 0.3

    london = DynamicRiskReward.analyze_time_patterns(at(10), "EURUSD")
    assert london["session_strength"] == "STRONG"
    assert london["market_session"] == "LONDON"

    ny = DynamicRiskReward.analyze_time_patterns(at(17), "EURUSD")
    assert ny["session_strength"] == "MODERATE"
    assert ny["market_session"] == "NEW_YORK"

    crypto = DynamicRiskReward.analyze_time_patterns(at(3), "BTC")
    assert crypto["session_strength"] == "STRONG"
    assert crypto["market_session"] == "CRYPTO_24H"
    assert crypto["is_active_trading_time"] is True

    assert DynamicRiskReward.analyze_time_patterns(at(10), "AAPL")["is_active_trading_time"] is False
    assert DynamicRiskReward.analyze_time_patterns(at(15), "AAPL")["is_active_trading_time"] is True


def test_high_volatility_adjustments():
    # 1.8 - 0.3 (HIGH regime) - 0.2 (HIGH profile) + 0.1 (STRONG session)
    result = DynamicRiskReward.calculate(
        1.8, {"volatility_regime": "HIGH"}, DynamicRiskReward.get_asset_profile("BTC"),
        HistoricalPerformance.neutral(), {"session_strength": "STRONG"}, 80
    )
    assert result.adjusted_rr == 1.4
    assert result.recommendation.min_rr == 1.4
    assert result.recommendation.optimal_rr == 1.7
    assert result.recommendation.max_rr == 2.0
    assert "Volatility adjustment: -0.30 (HIGH volatility regime)" in result.reasoning
    assert "Asset type adjustment: -0.20 (HIGH volatility profile)" in result.reasoning


def test_floors_apply():
    # 1.8 - 0.5 - 0.2 - 0.2 - 0.1 - 0.2 = 0.6 -> floors 1.0 / 1.3 / 1.6
    poor_history = HistoricalPerformance(total_trades=20, successful_trades=6, success_rate=0.3)
    result = DynamicRiskReward.calculate(
        1.8, {"volatility_regime": "EXTREME"}, {"volatility_profile": "HIGH"},
        poor_history, {"session_strength": "WEAK"}, 50
    )
    assert result.adjustments["historical_success"] == -0.2
    assert result.recommendation.min_rr == 1.0
    assert result.recommendation.optimal_rr == 1.3
    assert result.recommendation.max_rr == 1.6


def test_small_history_is_ignored():
    lucky = HistoricalPerformance(total_trades=5, successful_trades=5, success_rate=1.0)
    adjustments = DynamicRiskReward.calculate_adjustments(
        {"volatility_regime": "MEDIUM"}, {"volatility_profile": "MEDIUM"}, lucky, {"session_strength": "MODERATE"}, 75
    )
    assert adjustments == {'volatility': 0.0, 'asset_type': 0.0, 'historical_success': 0.0,
                           'time_pattern': 0.0, 'confidence': 0.0}


def test_strong_history_and_confidence():
    strong = HistoricalPerformance(total_trades=12, successful_trades=10, success_rate=10 / 12)
    adjustments = DynamicRiskReward.calculate_adjustments(
        {}, {"volatility_profile": "MEDIUM"}, strong, {}, 90
    )
    assert adjustments["historical_success"] == 0.1
    assert adjustments["confidence"] == 0.1


def test_required_rr_both_modes(midweek_noon):
    # BTC, no price history: 1.8 - 0.2 + 0.1 (crypto session) + 0.1 (score 85)
    required = DynamicRiskReward.required_rr(85, "BTC", HistoricalPerformance.neutral(), now=midweek_noon)
    assert required["standard"].recommendation.min_rr == 1.8
    assert required["ultra"].recommendation.min_rr == 2.2
    assert required["ultra"].recommendation.confidence == 90
    assert required["standard"].recommendation.confidence == 85


def test_required_rr_with_calm_history(calm_bars, midweek_noon):
    required = DynamicRiskReward.required_rr(85, "BTC", HistoricalPerformance.neutral(), calm_bars, midweek_noon)
    assert required["standard"].adjustments["volatility"] == 0.0
    assert required["standard"].recommendation.min_rr == 1.8


def test_recommendation_must_be_ordered():
    with pytest.raises(ValueError):
        RiskRewardRecommendation(min_rr=2.0, optimal_rr=1.5, max_rr=2.5)


def test_recommendation_ordering_always_holds(midweek_noon):
    for score in (0, 50, 69, 70, 84, 85, 100):
        for asset in ("BTC", "EURUSD", "AAPL", "GOLD", "XYZ"):
            required = DynamicRiskReward.required_rr(score, asset, None, now=midweek_noon)
            for mode in ("standard", "ultra"):
                rec = required[mode].recommendation
                assert 1.0 <= rec.min_rr <= rec.optimal_rr <= rec.max_rr
