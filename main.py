import logging
import os
from typing import Optional

from config.config import LOG_LEVEL, LOG_FORMAT, TRADE_HISTORY_DB
from audit.performance import JournalPerformanceReader, NeutralPerformanceReader
from filters.gate import AdmissionGate, GateDecision
from filters.risk_reward import DynamicRiskReward
from strategy.calibration import ConfidenceCalibrator
from structure.validator import StructuralValidator

logger = logging.getLogger(__name__)


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)


class AdmissionPipeline:
    """
    calibrate -> dynamic R:R -> [structure + liquidity] -> gate policy.
    Every collaborator is injected; nothing here holds per-request state.
    """

    def __init__(self, performance_reader=None, validator=None, rr_calculator=DynamicRiskReward,
                 calibrator=ConfidenceCalibrator):
        self.calibrator = calibrator
        self.gate = AdmissionGate(
            performance_reader=performance_reader or NeutralPerformanceReader(),
            validator=validator or StructuralValidator(),
            rr_calculator=rr_calculator,
        )

    @classmethod
    def from_journal(cls, db_path: str = TRADE_HISTORY_DB) -> "AdmissionPipeline":
        """Pipeline backed by the SQLite trade journal when it exists."""
        if os.path.exists(db_path):
            return cls(performance_reader=JournalPerformanceReader(db_path))
        logger.warning(f"⚠️ Trade journal {db_path} not found, using neutral history")
        return cls()

    def evaluate(self, result: dict, is_ultra_mode: bool = False, price_history=None,
                 asset_override: Optional[str] = None, timeframe_override: Optional[str] = None,
                 weights_override: Optional[dict] = None, now=None) -> GateDecision:
        if not isinstance(result, dict):
            raise ValueError(f"analysis result must be a dict, got {type(result).__name__}")

        calibrated = self.calibrator.apply(result, is_ultra_mode, weights_override, now)
        logger.info(
            f"🎯 Calibrated confidence {result.get('overallConfidenceScore')} -> "
            f"{calibrated['overallConfidenceScore']} ({calibrated['confidence']})"
        )
        return self.gate.evaluate(calibrated, is_ultra_mode, price_history, asset_override, timeframe_override, now)

    def process(self, result: dict, is_ultra_mode: bool = False, price_history=None,
                asset_override: Optional[str] = None, timeframe_override: Optional[str] = None,
                weights_override: Optional[dict] = None, now=None) -> dict:
        """Sanitized, safe-to-display analysis result."""
        return self.evaluate(result, is_ultra_mode, price_history, asset_override, timeframe_override,
                             weights_override, now).result
