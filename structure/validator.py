import logging
from dataclasses import dataclass
from typing import Optional

from config.config import STRUCTURE_BUFFER_PCT
from indicators.calculations import IndicatorCalculator
from liquidity.pools import LiquidityPool, LiquidityPoolDetector
from structure.levels import SupportResistanceAnalyzer, SupportResistanceLevel

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    ok: bool
    reason: Optional[str] = None
    volatility_regime: str = "NORMAL"
    nearest_level: Optional[SupportResistanceLevel] = None
    blocking_pool: Optional[LiquidityPool] = None


class StructuralValidator:
    """
    Checks a proposed stop against market structure:
    it must sit beyond the nearest support (BUY) / resistance (SELL)
    and outside every liquidity pool's avoidance zone.
    """

    def __init__(self, level_analyzer=SupportResistanceAnalyzer, pool_detector=LiquidityPoolDetector):
        self.level_analyzer = level_analyzer
        self.pool_detector = pool_detector

    def validate(self, signal: str, entry: float, stop: float, price_history, timeframe: str = '1H') -> ValidationResult:
        if entry is None or stop is None or entry <= 0 or stop <= 0:
            raise ValueError(f"entry and stop must be positive, got entry={entry} stop={stop}")

        df = IndicatorCalculator.to_frame(price_history)
        if df.empty:
            return ValidationResult(ok=True, reason="no price history")

        timeframe = IndicatorCalculator.normalize_timeframe(timeframe)
        current_price = float(df['close'].iloc[-1])
        regime = IndicatorCalculator.get_volatility_regime(df)
        buffer = current_price * STRUCTURE_BUFFER_PCT

        levels = self.level_analyzer.identify_levels(df, current_price, timeframe)
        nearest = self.nearest_level(levels, signal, entry)

        structure_ok, reason = self.check_structure(signal, entry, stop, nearest, buffer)
        if not structure_ok:
            logger.info(f"🧱 Structure check failed: {reason}")
            return ValidationResult(ok=False, reason=reason, volatility_regime=regime, nearest_level=nearest)

        pools = self.pool_detector.detect_pools(df, current_price, timeframe)
        for pool in pools:
            if pool.contains(stop):
                reason = (f"stop {stop:g} inside {pool.type} liquidity zone "
                          f"[{pool.zone_lower:.5g}, {pool.zone_upper:.5g}]")
                logger.info(f"💧 Liquidity check failed: {reason}")
                return ValidationResult(ok=False, reason=reason, volatility_regime=regime,
                                        nearest_level=nearest, blocking_pool=pool)

        return ValidationResult(ok=True, volatility_regime=regime, nearest_level=nearest)

    @staticmethod
    def nearest_level(levels: list, signal: str, entry: float) -> Optional[SupportResistanceLevel]:
        """Closest support strictly below entry (BUY) or resistance strictly above it (SELL)."""
        if signal == "BUY":
            candidates = [l for l in levels if l.type == "SUPPORT" and l.price < entry]
        elif signal == "SELL":
            candidates = [l for l in levels if l.type == "RESISTANCE" and l.price > entry]
        else:
            return None
        return min(candidates, key=lambda l: abs(l.price - entry), default=None)

    @staticmethod
    def check_structure(signal: str, entry: float, stop: float, nearest, buffer: float):
        if signal == "BUY":
            if nearest is not None:
                if stop <= nearest.price - buffer:
                    return True, None
                return False, f"stop {stop:g} is not below support {nearest.price:.5g} by {buffer:.5g}"
            if stop < entry - buffer:
                return True, None
            return False, f"stop {stop:g} is not below entry {entry:g} by {buffer:.5g}"

        if signal == "SELL":
            if nearest is not None:
                if stop >= nearest.price + buffer:
                    return True, None
                return False, f"stop {stop:g} is not above resistance {nearest.price:.5g} by {buffer:.5g}"
            if stop > entry + buffer:
                return True, None
            return False, f"stop {stop:g} is not above entry {entry:g} by {buffer:.5g}"

        return False, f"no directional signal ({signal})"
