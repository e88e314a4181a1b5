import copy
import logging
import math
from dataclasses import dataclass, field, asdict
from typing import Dict, Optional

import numpy as np

from config.config import (
    STANDARD_WEIGHTS, ULTRA_WEIGHTS, HIGH_CONFIDENCE_STANDARD, HIGH_CONFIDENCE_ULTRA,
    ULTRA_SCORE_MULTIPLIER, MIN_UNCERTAINTY, MAX_UNCERTAINTY, LIQUIDITY_DISCOUNT, NEWS_RISK
)
from filters.session_filter import SessionFilter
from filters.trade_parser import get_section, as_number

logger = logging.getLogger(__name__)

FACTOR_NAMES = list(STANDARD_WEIGHTS.keys())


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _items(data, key) -> list:
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, list) else []


@dataclass
class ConfidenceFactors:
    technical_confluence: float = 50.0
    historical_pattern_success: float = 60.0
    market_conditions: float = 50.0
    volatility_adjustment: float = 70.0
    volume_confirmation: float = 50.0
    structural_integrity: float = 50.0

    def values(self) -> list:
        return [getattr(self, name) for name in FACTOR_NAMES]


@dataclass
class ConfidenceWeights:
    technical_confluence: float
    historical_pattern_success: float
    market_conditions: float
    volatility_adjustment: float
    volume_confirmation: float
    structural_integrity: float

    def __post_init__(self):
        for name in FACTOR_NAMES:
            weight = getattr(self, name)
            if not isinstance(weight, (int, float)) or not 0.0 <= weight <= 1.0:
                raise ValueError(f"weight '{name}' must be within [0, 1], got {weight!r}")
        total = sum(getattr(self, name) for name in FACTOR_NAMES)
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"weights must sum to 1.0, got {total:.6f}")

    @classmethod
    def for_mode(cls, is_ultra_mode: bool, override: Optional[Dict[str, float]] = None) -> "ConfidenceWeights":
        """
        Selects the standard or ultra profile and merges a partial override on top.
        Unknown keys and profiles that do not sum to 1.0 are caller errors.
        """
        base = dict(ULTRA_WEIGHTS if is_ultra_mode else STANDARD_WEIGHTS)
        if override:
            unknown = set(override) - set(FACTOR_NAMES)
            if unknown:
                raise ValueError(f"unknown weight keys: {', '.join(sorted(unknown))}")
            base.update(override)
        return cls(**base)


@dataclass
class ConfidenceInterval:
    center: float
    lower_bound: float
    upper_bound: float
    uncertainty: int
    reliability: str


@dataclass
class CalibratedConfidence:
    overall_score: int
    confidence: str
    factors: ConfidenceFactors
    weights: ConfidenceWeights
    interval: ConfidenceInterval
    breakdown: dict = field(default_factory=dict)
    historical_context: dict = field(default_factory=dict)
    risk_adjustments: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


class ConfidenceCalibrator:
    """
    Multi-factor confidence scoring.
    Recomputes an independent, bounded score for a model analysis result
    from its nested multi-timeframe / SMC / pattern context.
    """

    @staticmethod
    def calibrate(result: dict, is_ultra_mode: bool = False, weights_override: Optional[dict] = None,
                  now=None) -> CalibratedConfidence:
        weights = ConfidenceWeights.for_mode(is_ultra_mode, weights_override)
        moment = SessionFilter.to_utc(now)

        factors = ConfidenceCalibrator.calculate_factors(result, moment)
        raw_score = ConfidenceCalibrator.weighted_score(factors, weights)
        interval = ConfidenceCalibrator.calculate_interval(factors, raw_score, result)
        risk_adjustments = ConfidenceCalibrator.calculate_risk_adjustments(moment)
        final_score = ConfidenceCalibrator.apply_final_adjustments(raw_score, risk_adjustments, is_ultra_mode)

        threshold = HIGH_CONFIDENCE_ULTRA if is_ultra_mode else HIGH_CONFIDENCE_STANDARD
        calibrated = CalibratedConfidence(
            overall_score=final_score,
            confidence="HIGH" if final_score >= threshold else "LOW",
            factors=factors,
            weights=weights,
            interval=interval,
            breakdown=ConfidenceCalibrator.build_breakdown(factors, weights, result),
            historical_context=ConfidenceCalibrator.gather_historical_context(result),
            risk_adjustments=risk_adjustments,
        )
        logger.debug(f"🎯 Calibrated {raw_score} -> {final_score} ({calibrated.confidence}, ±{interval.uncertainty})")
        return calibrated

    @staticmethod
    def apply(result: dict, is_ultra_mode: bool = False, weights_override: Optional[dict] = None,
              now=None) -> dict:
        """Returns a copy of `result` with the confidence fields replaced by the calibrated ones."""
        calibrated = ConfidenceCalibrator.calibrate(result, is_ultra_mode, weights_override, now)
        updated = copy.deepcopy(result)
        updated['overallConfidenceScore'] = calibrated.overall_score
        updated['confidence'] = calibrated.confidence
        return updated

    @staticmethod
    def calculate_factors(result: dict, moment) -> ConfidenceFactors:
        return ConfidenceFactors(
            technical_confluence=ConfidenceCalibrator.technical_confluence(result),
            historical_pattern_success=ConfidenceCalibrator.historical_pattern_success(result),
            market_conditions=ConfidenceCalibrator.market_conditions(result),
            volatility_adjustment=ConfidenceCalibrator.volatility_adjustment(result, moment.hour),
            volume_confirmation=ConfidenceCalibrator.volume_confirmation(result),
            structural_integrity=ConfidenceCalibrator.structural_integrity(result),
        )

    @staticmethod
    def technical_confluence(result: dict) -> float:
        score = 50.0

        # 1. Multi-timeframe alignment
        mtf = get_section(result, 'multiTimeframeContext')
        if mtf:
            score += as_number(mtf.get('confluenceScore')) * 0.4
            score -= len(_items(mtf, 'conflictingSignals')) * 5
            if mtf.get('overallTrend') != 'MIXED':
                score += 10

        # 2. Pattern confluence
        pattern = get_section(result, 'patternAnalysis')
        if pattern:
            pattern_score = as_number(get_section(pattern, 'patternConfluence').get('confidenceScore'), 50.0)
            score += (pattern_score - 50) * 0.3
            score -= len(_items(pattern, 'conflictingPatterns')) * 3
            trend = get_section(pattern, 'marketCondition').get('trend')
            if isinstance(trend, str) and 'STRONG' in trend:
                score += 5

        # 3. SMC alignment
        smc = get_section(result, 'smcAnalysis')
        if smc:
            bias = get_section(smc, 'tradingBias')
            if bias.get('direction', 'NEUTRAL') != 'NEUTRAL':
                score += as_number(bias.get('confidence')) * 0.2
            confluences = get_section(smc, 'confluences')
            if len(_items(confluences, 'liquidityConfluence')) > 2:
                score += 8
            if len(_items(confluences, 'orderBlockConfluence')) > 1:
                score += 6

        return clamp(score)

    @staticmethod
    def historical_pattern_success(result: dict) -> float:
        score = 60.0
        model_score = as_number(result.get('overallConfidenceScore'))

        if result.get('signal', 'NEUTRAL') != 'NEUTRAL':
            if model_score >= 80:
                score += 15
            elif model_score >= 60:
                score += 8
            else:
                score -= 10

        pattern = get_section(result, 'patternAnalysis')
        classic = [p for p in _items(pattern, 'classicPatterns') if isinstance(p, dict)]
        if classic:
            avg_reliability = float(np.mean([as_number(p.get('reliability')) for p in classic]))
            score += (avg_reliability - 50) * 0.4

        completed = [p for p in _items(pattern, 'harmonicPatterns')
                     if isinstance(p, dict) and p.get('status') == 'COMPLETED']
        if completed:
            avg_validity = float(np.mean([as_number(p.get('validity')) for p in completed]))
            score += (avg_validity - 50) * 0.3

        mtf = get_section(result, 'multiTimeframeContext')
        if mtf and mtf.get('overallTrend') != 'MIXED' and as_number(mtf.get('confluenceScore')) > 70:
            score += 12

        return clamp(score)

    @staticmethod
    def market_conditions(result: dict) -> float:
        score = 50.0
        condition = get_section(get_section(result, 'patternAnalysis'), 'marketCondition')

        phase = condition.get('phase')
        if phase in ('MARKUP', 'ACCUMULATION'):
            score += 10
        elif phase in ('DISTRIBUTION', 'MARKDOWN'):
            score -= 5
        elif phase in ('REACCUMULATION', 'REDISTRIBUTION'):
            score += 3

        score += {'LOW': 8, 'MEDIUM': 2, 'HIGH': -5, 'EXTREME': -12}.get(condition.get('volatility'), 0)
        return clamp(score)

    @staticmethod
    def volatility_adjustment(result: dict, hour: int) -> float:
        bucket = get_section(get_section(result, 'patternAnalysis'), 'marketCondition').get('volatility')
        if bucket not in ('LOW', 'MEDIUM', 'HIGH', 'EXTREME'):
            bucket = 'MEDIUM'

        score = {'LOW': 85.0, 'MEDIUM': 70.0, 'HIGH': 45.0, 'EXTREME': 25.0}[bucket]
        if as_number(result.get('overallConfidenceScore')) < 60 and bucket in ('HIGH', 'EXTREME'):
            score -= 15

        score += SessionFilter.get_activity_adjustment(hour)
        return clamp(score)

    @staticmethod
    def volume_confirmation(result: dict) -> float:
        score = 50.0
        pattern = get_section(result, 'patternAnalysis')

        profile = get_section(pattern, 'volumeProfile')
        if profile:
            structure = get_section(profile, 'marketStructure')
            if structure.get('balanced'):
                score += 8
            if structure.get('trending'):
                score += 12
            if structure.get('rotational'):
                score -= 5
            implications = get_section(profile, 'tradingImplications')
            if implications.get('acceptance'):
                score += 10
            if len(_items(implications, 'support')) > 2:
                score += 6
            if len(_items(implications, 'resistance')) > 2:
                score += 6

        for p in _items(pattern, 'classicPatterns'):
            volume = get_section(p, 'volume')
            breakout = volume.get('breakoutVolume')
            if breakout == 'CONFIRMED':
                score += 15
            elif breakout == 'WEAK':
                score -= 8
            trend = volume.get('patternVolume')
            if trend == 'INCREASING':
                score += 8
            elif trend == 'DECREASING':
                score -= 5

        wyckoff = get_section(get_section(pattern, 'wyckoffAnalysis'), 'volumeCharacteristics')
        if wyckoff.get('climacticVolume'):
            score += 12
        if wyckoff.get('volumeConfirmation'):
            score += 15
        if wyckoff.get('volumeDrying'):
            score -= 8

        return clamp(score)

    @staticmethod
    def structural_integrity(result: dict) -> float:
        smc = get_section(result, 'smcAnalysis')
        if not smc:
            return 50.0

        score = 50.0
        structure = smc.get('overallStructure')
        if structure in ('BULLISH_STRUCTURE', 'BEARISH_STRUCTURE'):
            score += 20
        elif structure == 'RANGING':
            score += 5
        elif structure == 'TRANSITIONAL':
            score -= 10

        score += (as_number(get_section(smc, 'tradingBias').get('confidence'), 50.0) - 50) * 0.4

        levels = get_section(smc, 'criticalLevels')
        if len(_items(levels, 'highestProbabilityZones')) > 2:
            score += 8
        if len(_items(levels, 'liquidityTargets')) > 1:
            score += 6
        if len(_items(levels, 'structuralSupports')) + len(_items(levels, 'structuralResistances')) > 3:
            score += 5

        confluences = get_section(smc, 'confluences')
        if len(_items(confluences, 'orderBlockConfluence')) > 1:
            score += 8
        if len(_items(confluences, 'fvgConfluence')) > 0:
            score += 5
        if len(_items(confluences, 'liquidityConfluence')) > 1:
            score += 7

        risks = get_section(smc, 'riskAssessment')
        score -= len(_items(risks, 'liquidityRisks')) * 3
        score -= len(_items(risks, 'structuralRisks')) * 4

        return clamp(score)

    @staticmethod
    def weighted_score(factors: ConfidenceFactors, weights: ConfidenceWeights) -> int:
        total = sum(getattr(factors, name) * getattr(weights, name) for name in FACTOR_NAMES)
        return round_half_up(total)

    @staticmethod
    def data_quality(result: dict) -> float:
        quality = 70
        if get_section(result, 'multiTimeframeContext'):
            quality += 15
        if get_section(result, 'smcAnalysis'):
            quality += 10
        if get_section(result, 'patternAnalysis'):
            quality += 10
        return min(100, quality)

    @staticmethod
    def signal_clarity(result: dict) -> float:
        clarity = 50
        if result.get('signal', 'NEUTRAL') != 'NEUTRAL':
            clarity += 20
            model_score = as_number(result.get('overallConfidenceScore'))
            if model_score >= 75:
                clarity += 20
            elif model_score >= 50:
                clarity += 10

        trend = get_section(result, 'multiTimeframeContext').get('overallTrend')
        if trend and trend != 'MIXED':
            clarity += 15
        return min(100, clarity)

    @staticmethod
    def market_noise(result: dict) -> float:
        noise = 30
        confluence = get_section(get_section(result, 'patternAnalysis'), 'patternConfluence')
        if as_number(confluence.get('confidenceScore')) > 70:
            noise -= 8
        return clamp(noise)

    @staticmethod
    def calculate_interval(factors: ConfidenceFactors, center: int, result: dict) -> ConfidenceInterval:
        """
        Uncertainty grows with factor disagreement, missing context,
        an unclear signal and market noise. Clamped to [5, 30].
        """
        std = float(np.std(factors.values())) # population std
        uncertainty = min(25.0, std * 0.6)
        uncertainty += (100 - ConfidenceCalibrator.data_quality(result)) * 0.15
        uncertainty += (100 - ConfidenceCalibrator.signal_clarity(result)) * 0.1
        uncertainty += ConfidenceCalibrator.market_noise(result) * 0.08
        uncertainty = round_half_up(clamp(uncertainty, MIN_UNCERTAINTY, MAX_UNCERTAINTY))

        if uncertainty <= 8:
            reliability = "VERY_HIGH"
        elif uncertainty <= 15:
            reliability = "HIGH"
        elif uncertainty <= 22:
            reliability = "MEDIUM"
        else:
            reliability = "LOW"

        return ConfidenceInterval(
            center=center,
            lower_bound=max(0, center - uncertainty),
            upper_bound=min(100, center + uncertainty),
            uncertainty=uncertainty,
            reliability=reliability,
        )

    @staticmethod
    def build_breakdown(factors: ConfidenceFactors, weights: ConfidenceWeights, result: dict) -> dict:
        return {
            'factor_contributions': {
                name: round_half_up(getattr(factors, name) * getattr(weights, name)) for name in FACTOR_NAMES
            },
            'quality_metrics': {
                'data_quality': ConfidenceCalibrator.data_quality(result),
                'signal_clarity': ConfidenceCalibrator.signal_clarity(result),
                'market_noise': ConfidenceCalibrator.market_noise(result),
            },
        }

    @staticmethod
    def gather_historical_context(result: dict) -> dict:
        """
        Prior estimate for similar setups. Not backed by a pattern database;
        it only reflects signal strength and the richness of the context.
        """
        count, success, avg_return, avg_loss = 50, 65, 8.5, -4.2

        if result.get('signal', 'NEUTRAL') != 'NEUTRAL':
            model_score = as_number(result.get('overallConfidenceScore'))
            if model_score >= 80:
                count += 20
                success += 15
                avg_return += 3.2
                avg_loss -= 1.1
            elif model_score >= 60:
                count += 10
                success += 8
                avg_return += 1.5
                avg_loss -= 0.5

        if _items(get_section(result, 'patternAnalysis'), 'harmonicPatterns'):
            success += 5
            avg_return += 1.2

        if as_number(get_section(result, 'multiTimeframeContext').get('confluenceScore')) > 70:
            success += 10
            avg_return += 2.1

        return {
            'similar_pattern_count': count,
            'success_rate': success,
            'avg_return_on_success': round(avg_return, 2),
            'avg_loss_on_failure': round(avg_loss, 2),
        }

    @staticmethod
    def calculate_risk_adjustments(moment) -> dict:
        return {
            'volatility_penalty': 0, # Reserved, no volatility event feed yet
            'liquidity_discount': LIQUIDITY_DISCOUNT if SessionFilter.is_low_liquidity_window(moment.hour) else 0,
            'news_risk': NEWS_RISK if SessionFilter.is_news_window(moment) else 0,
        }

    @staticmethod
    def apply_final_adjustments(raw_score: int, risk_adjustments: dict, is_ultra_mode: bool) -> int:
        score = float(raw_score)
        score -= risk_adjustments['volatility_penalty']
        score -= risk_adjustments['liquidity_discount']
        score -= risk_adjustments['news_risk']

        if is_ultra_mode:
            score *= ULTRA_SCORE_MULTIPLIER

        return round_half_up(clamp(score))

    @staticmethod
    def format_confidence_display(calibrated: CalibratedConfidence) -> str:
        interval = calibrated.interval
        uncertainty = f" ±{interval.uncertainty}%" if interval.uncertainty > 0 else ""
        return f"{calibrated.overall_score}%{uncertainty} ({interval.reliability.lower()} reliability)"

    @staticmethod
    def get_confidence_level(calibrated: CalibratedConfidence, is_ultra_mode: bool = False) -> str:
        threshold = HIGH_CONFIDENCE_ULTRA if is_ultra_mode else HIGH_CONFIDENCE_STANDARD
        return "HIGH" if calibrated.overall_score >= threshold else "LOW"
