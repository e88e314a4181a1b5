import copy
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from config.config import (
    GATE_CONFIDENCE_THRESHOLD, STANDARD_MIN_SCORE, ULTRA_MIN_SCORE,
    SMC_MIN_BIAS, SMC_MIN_BIAS_ULTRA, PATTERN_MIN_CONFLUENCE, PATTERN_MIN_CONFLUENCE_ULTRA,
    MTF_MIN_CONFLUENCE, MTF_MIN_CONFLUENCE_ULTRA, EXTREME_VOLATILITY_RR_BUMP, DEFAULT_TIMEFRAME
)
from audit.performance import NeutralPerformanceReader
from filters.risk_reward import DynamicRiskReward
from filters.trade_parser import (
    UNPARSEABLE, parse_risk_reward, is_valid_trade_structure, extract_trade_prices,
    get_section, as_number
)
from indicators.calculations import IndicatorCalculator
from structure.validator import StructuralValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatePolicy:
    name: str
    applies: Callable[[dict], bool]
    secondary: Optional[Callable[[dict], Optional[float]]] = None
    min_secondary: Optional[float] = None
    min_secondary_ultra: Optional[float] = None

    def secondary_threshold(self, is_ultra_mode: bool) -> Optional[float]:
        return self.min_secondary_ultra if is_ultra_mode else self.min_secondary


def _smc_bias(result: dict):
    return as_number(get_section(get_section(result, 'smcAnalysis'), 'tradingBias').get('confidence'), None)


def _pattern_confluence(result: dict):
    confluence = get_section(get_section(result, 'patternAnalysis'), 'patternConfluence')
    return as_number(confluence.get('confidenceScore'), None)


def _mtf_confluence(result: dict):
    return as_number(get_section(result, 'multiTimeframeContext').get('confluenceScore'), None)


# Precedence, first match wins: SMC > PATTERN > MULTI_TIMEFRAME > STANDARD.
# Policies never combine.
GATE_POLICIES = [
    GatePolicy("SMC", lambda r: bool(get_section(r, 'smcAnalysis')),
               _smc_bias, SMC_MIN_BIAS, SMC_MIN_BIAS_ULTRA),
    GatePolicy("PATTERN", lambda r: bool(get_section(r, 'patternAnalysis')),
               _pattern_confluence, PATTERN_MIN_CONFLUENCE, PATTERN_MIN_CONFLUENCE_ULTRA),
    GatePolicy("MULTI_TIMEFRAME", lambda r: bool(get_section(r, 'multiTimeframeContext')),
               _mtf_confluence, MTF_MIN_CONFLUENCE, MTF_MIN_CONFLUENCE_ULTRA),
    GatePolicy("STANDARD", lambda r: True),
]


@dataclass
class GateDecision:
    result: dict
    admitted: bool
    reason: Optional[str] = None
    policy: Optional[str] = None
    min_score: Optional[float] = None
    min_rr: Optional[float] = None
    volatility_regime: Optional[str] = None


class AdmissionGate:
    """
    Fail-closed admission control for model trade recommendations.
    A trade either passes through untouched or is forced to the
    no-trade state (signal NEUTRAL, trade and ratio null).
    """

    def __init__(self, performance_reader=None, validator=None, rr_calculator=DynamicRiskReward,
                 policies=None):
        self.performance_reader = performance_reader or NeutralPerformanceReader()
        self.validator = validator or StructuralValidator()
        self.rr_calculator = rr_calculator
        self.policies = policies or GATE_POLICIES

    @staticmethod
    def select_policy(result: dict, policies=None) -> GatePolicy:
        for policy in policies or GATE_POLICIES:
            if policy.applies(result):
                return policy
        return GATE_POLICIES[-1]

    @staticmethod
    def reject(gated: dict, reason: str, **details) -> GateDecision:
        gated['signal'] = "NEUTRAL"
        gated['trade'] = None
        gated['riskRewardRatio'] = None
        logger.info(f"🚫 Trade rejected: {reason}")
        return GateDecision(result=gated, admitted=False, reason=reason, **details)

    def evaluate(self, result: dict, is_ultra_mode: bool = False, price_history=None,
                 asset_override: Optional[str] = None, timeframe_override: Optional[str] = None,
                 now=None) -> GateDecision:
        if not isinstance(result, dict):
            raise ValueError(f"analysis result must be a dict, got {type(result).__name__}")

        gated = copy.deepcopy(result)

        # 1. Confidence label from score (fixed threshold in both modes)
        score = as_number(gated.get('overallConfidenceScore'))
        gated['confidence'] = "HIGH" if score >= GATE_CONFIDENCE_THRESHOLD else "LOW"

        # 2. Ratio + 3. trade structure
        ratio = parse_risk_reward(gated.get('riskRewardRatio'))
        has_valid_trade = is_valid_trade_structure(gated)

        # 4. Dynamic R:R for both modes
        df = IndicatorCalculator.to_frame(price_history) if price_history is not None else None
        asset_type = asset_override or self.rr_calculator.resolve_asset_type(gated)
        timeframe = IndicatorCalculator.normalize_timeframe(
            timeframe_override or gated.get('timeframe') or DEFAULT_TIMEFRAME
        )
        performance = self.performance_reader.get_historical_performance(asset_type, timeframe)
        required = self.rr_calculator.required_rr(score, asset_type, performance, df, now)
        min_rr_standard = required['standard'].recommendation.min_rr
        min_rr_ultra = required['ultra'].recommendation.min_rr

        # 5. Structure and liquidity, only with history and a well-formed trade
        regime = None
        if df is not None and not df.empty and has_valid_trade:
            entry, _, stop = extract_trade_prices(gated)
            validation = self.validator.validate(gated['signal'], entry, stop, df, timeframe)
            regime = validation.volatility_regime
            if regime == "EXTREME":
                min_rr_standard = round(min_rr_standard + EXTREME_VOLATILITY_RR_BUMP, 4)
                min_rr_ultra = round(min_rr_ultra + EXTREME_VOLATILITY_RR_BUMP, 4)
            if not validation.ok:
                return self.reject(gated, f"structural validation failed: {validation.reason}",
                                   volatility_regime=regime)

        # 6. One policy, by precedence
        policy = self.select_policy(gated, self.policies)
        min_score = ULTRA_MIN_SCORE if is_ultra_mode else STANDARD_MIN_SCORE
        min_rr = min_rr_ultra if is_ultra_mode else min_rr_standard
        details = dict(policy=policy.name, min_score=min_score, min_rr=min_rr, volatility_regime=regime)

        # 7. Thresholds
        if gated.get('signal') == "NEUTRAL" or gated['confidence'] == "LOW":
            gated['trade'] = None
            gated['riskRewardRatio'] = None
            return GateDecision(result=gated, admitted=False,
                                reason=f"signal {gated.get('signal')} / confidence {gated['confidence']}", **details)

        if score < min_score:
            return self.reject(gated, f"{policy.name}: score {score:g} < {min_score}", **details)
        if not has_valid_trade:
            return self.reject(gated, f"{policy.name}: invalid trade structure", **details)
        if ratio is UNPARSEABLE:
            return self.reject(gated, f"{policy.name}: unparseable risk/reward {result.get('riskRewardRatio')!r}",
                               **details)
        if ratio.value < min_rr:
            return self.reject(gated, f"{policy.name}: R:R {ratio.value:g} < required {min_rr:g}", **details)

        if policy.secondary is not None:
            secondary = policy.secondary(gated)
            threshold = policy.secondary_threshold(is_ultra_mode)
            if secondary is None:
                return self.reject(gated, f"{policy.name}: secondary confidence missing", **details)
            if secondary < threshold:
                return self.reject(gated, f"{policy.name}: secondary confidence {secondary:g} < {threshold}",
                                   **details)

        logger.info(f"✅ Trade admitted ({policy.name}, R:R {ratio.value:g} >= {min_rr:g})")
        return GateDecision(result=gated, admitted=True, **details)

    def gate(self, result: dict, is_ultra_mode: bool = False, price_history=None,
             asset_override: Optional[str] = None, timeframe_override: Optional[str] = None,
             now=None) -> dict:
        return self.evaluate(result, is_ultra_mode, price_history, asset_override, timeframe_override, now).result
