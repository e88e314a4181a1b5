import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from config.config import (
    BASE_RR_STANDARD, BASE_RR_ULTRA, RR_FLOOR_MIN, RR_FLOOR_OPTIMAL, RR_FLOOR_MAX,
    TRADE_HISTORY_MIN_TRADES, DEFAULT_ASSET
)
from filters.session_filter import SessionFilter
from indicators.calculations import IndicatorCalculator

logger = logging.getLogger(__name__)


@dataclass
class RiskRewardRecommendation:
    min_rr: float
    optimal_rr: float
    max_rr: float
    confidence: float = 0.0

    def __post_init__(self):
        if not self.min_rr <= self.optimal_rr <= self.max_rr:
            raise ValueError(f"R:R recommendation must be ordered, got {self.min_rr}/{self.optimal_rr}/{self.max_rr}")


@dataclass
class RiskRewardResult:
    base_rr: float
    adjusted_rr: float
    adjustments: dict
    recommendation: RiskRewardRecommendation
    reasoning: List[str] = field(default_factory=list)


class DynamicRiskReward:
    # Asset class, volatility profile, typical R:R range and active UTC hours (None = 24h)
    ASSET_PROFILES = {
        "BTC": {"asset_class": "CRYPTO", "volatility_profile": "HIGH",
                "typical_rr": {"min": 1.8, "max": 3.5, "optimal": 2.2}, "active_hours": None},
        "ETH": {"asset_class": "CRYPTO", "volatility_profile": "HIGH",
                "typical_rr": {"min": 1.8, "max": 3.5, "optimal": 2.2}, "active_hours": None},
        "EURUSD": {"asset_class": "FOREX", "volatility_profile": "MEDIUM",
                   "typical_rr": {"min": 1.5, "max": 2.8, "optimal": 2.0}, "active_hours": list(range(24))},
        "AAPL": {"asset_class": "STOCKS", "volatility_profile": "MEDIUM",
                 "typical_rr": {"min": 1.5, "max": 2.5, "optimal": 1.8}, "active_hours": list(range(13, 22))},
        "GOLD": {"asset_class": "COMMODITIES", "volatility_profile": "MEDIUM",
                 "typical_rr": {"min": 1.6, "max": 2.8, "optimal": 2.0}, "active_hours": list(range(24))},
    }
    DEFAULT_PROFILE = {"asset_class": "CRYPTO", "volatility_profile": "HIGH",
                       "typical_rr": {"min": 1.8, "max": 3.0, "optimal": 2.2}, "active_hours": None}

    # Checked in order, first hit wins
    ASSET_KEYWORDS = [
        ("BTC", ("bitcoin", "btc")),
        ("ETH", ("ethereum", "eth")),
        ("EURUSD", ("eurusd", "forex")),
        ("GOLD", ("gold", "commodity")),
        ("AAPL", ("stock", "aapl")),
    ]

    @staticmethod
    def resolve_asset_type(result: dict) -> str:
        """
        Keyword heuristic over the analysis summary.
        Callers that know the instrument pass an explicit override instead.
        """
        summary = result.get('summary') if isinstance(result, dict) else None
        if not isinstance(summary, str):
            return DEFAULT_ASSET
        text = summary.lower()
        for asset, keywords in DynamicRiskReward.ASSET_KEYWORDS:
            if any(k in text for k in keywords):
                return asset
        return DEFAULT_ASSET

    @staticmethod
    def get_asset_profile(asset_type: str) -> dict:
        key = (asset_type or "").upper()
        return DynamicRiskReward.ASSET_PROFILES.get(key, DynamicRiskReward.DEFAULT_PROFILE)

    @staticmethod
    def analyze_time_patterns(now: Optional[datetime], asset_type: str) -> dict:
        moment = SessionFilter.to_utc(now)
        profile = DynamicRiskReward.get_asset_profile(asset_type)
        is_crypto = profile['asset_class'] == "CRYPTO"
        active_hours = profile['active_hours']

        return {
            'hour': moment.hour,
            'weekday': moment.weekday(),
            'is_active_trading_time': active_hours is None or moment.hour in active_hours,
            'time_based_volatility': SessionFilter.get_time_based_volatility(moment.hour),
            'session_strength': SessionFilter.get_session_strength(moment.hour, is_crypto),
            'market_session': SessionFilter.get_session_name(moment.hour, is_crypto),
        }

    @staticmethod
    def calculate_adjustments(volatility_metrics: dict, asset_profile: dict, historical_performance,
                              time_patterns: dict, confidence_score: float) -> dict:
        regime = volatility_metrics.get('volatility_regime')
        volatility_adj = {"HIGH": -0.3, "EXTREME": -0.5}.get(regime, 0.0)

        asset_adj = -0.2 if asset_profile.get('volatility_profile') == "HIGH" else 0.0

        # Too few completed trades -> history is ignored
        history_adj = 0.0
        if historical_performance is not None and historical_performance.total_trades >= TRADE_HISTORY_MIN_TRADES:
            if historical_performance.success_rate > 0.7:
                history_adj = 0.1
            elif historical_performance.success_rate < 0.5:
                history_adj = -0.2

        session_adj = {"STRONG": 0.1, "WEAK": -0.1}.get(time_patterns.get('session_strength'), 0.0)

        confidence_adj = 0.0
        if confidence_score >= 85:
            confidence_adj = 0.1
        elif confidence_score < 70:
            confidence_adj = -0.2

        return {
            'volatility': volatility_adj,
            'asset_type': asset_adj,
            'historical_success': history_adj,
            'time_pattern': session_adj,
            'confidence': confidence_adj,
        }

    @staticmethod
    def build_reasoning(adjustments: dict, volatility_metrics: dict, asset_profile: dict, time_patterns: dict) -> list:
        reasons = []
        labels = {
            'volatility': f"{volatility_metrics.get('volatility_regime')} volatility regime",
            'asset_type': f"{asset_profile.get('volatility_profile')} volatility profile",
            'historical_success': "based on past performance",
            'time_pattern': (f"{time_patterns.get('session_strength')} session, "
                             f"{'active' if time_patterns.get('is_active_trading_time') else 'inactive'} trading time"),
            'confidence': "analysis confidence factor",
        }
        for key, value in adjustments.items():
            if value != 0:
                name = key.replace('_', ' ').capitalize()
                reasons.append(f"{name} adjustment: {value:+.2f} ({labels[key]})")
        return reasons

    @staticmethod
    def calculate(base_rr: float, volatility_metrics: dict, asset_profile: dict, historical_performance,
                  time_patterns: dict, confidence_score: float, is_ultra: bool = False) -> RiskRewardResult:
        adjustments = DynamicRiskReward.calculate_adjustments(
            volatility_metrics, asset_profile, historical_performance, time_patterns, confidence_score
        )
        adjusted = round(max(RR_FLOOR_MIN, base_rr + sum(adjustments.values())), 4)

        recommendation = RiskRewardRecommendation(
            min_rr=adjusted,
            optimal_rr=round(max(RR_FLOOR_OPTIMAL, adjusted + 0.3), 4),
            max_rr=round(max(RR_FLOOR_MAX, adjusted + 0.6), 4),
            confidence=min(95, confidence_score + 5) if is_ultra else confidence_score,
        )

        return RiskRewardResult(
            base_rr=base_rr,
            adjusted_rr=adjusted,
            adjustments=adjustments,
            recommendation=recommendation,
            reasoning=DynamicRiskReward.build_reasoning(adjustments, volatility_metrics, asset_profile, time_patterns),
        )

    @staticmethod
    def required_rr(confidence_score: float, asset_type: str, historical_performance,
                    price_history=None, now=None) -> dict:
        """
        Minimum acceptable R:R for both modes.
        Returns {'standard': RiskRewardResult, 'ultra': RiskRewardResult}.
        """
        df = IndicatorCalculator.to_frame(price_history) if price_history is not None else None
        volatility_metrics = IndicatorCalculator.calculate_volatility_metrics(df)
        asset_profile = DynamicRiskReward.get_asset_profile(asset_type)
        time_patterns = DynamicRiskReward.analyze_time_patterns(now, asset_type)

        standard = DynamicRiskReward.calculate(
            BASE_RR_STANDARD, volatility_metrics, asset_profile, historical_performance,
            time_patterns, confidence_score, is_ultra=False
        )
        ultra = DynamicRiskReward.calculate(
            BASE_RR_ULTRA, volatility_metrics, asset_profile, historical_performance,
            time_patterns, confidence_score, is_ultra=True
        )
        logger.debug(f"📐 {asset_type} min R:R standard={standard.recommendation.min_rr} ultra={ultra.recommendation.min_rr}")
        return {'standard': standard, 'ultra': ultra}
