import json
import logging
import os
import sqlite3
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from config.config import TRADE_HISTORY_DB, TRADE_HISTORY_KEY

logger = logging.getLogger(__name__)

# Trade-tracking records are written camelCase by the tracking service
OUTCOME_COLUMNS = {
    'assetType': 'asset_type',
    'timeframe': 'timeframe',
    'success': 'success',
    'rr': 'rr',
    'volatility': 'volatility',
    'entryTime': 'entry_time',
}

SUCCESS_STRINGS = {
    'true': True, '1': True, 'win': True, 'won': True, 'success': True,
    'false': False, '0': False, 'loss': False, 'lost': False, 'fail': False,
}


@dataclass
class HistoricalPerformance:
    total_trades: int = 0
    successful_trades: int = 0
    success_rate: float = 0.0
    average_rr: float = 2.0
    volatility_success: dict = field(default_factory=dict)
    hourly_success: dict = field(default_factory=dict)
    daily_success: dict = field(default_factory=dict)
    asset_success: dict = field(default_factory=dict)

    @classmethod
    def neutral(cls) -> "HistoricalPerformance":
        """No history: zero trades, 0 success rate, 2.0 average R:R."""
        return cls()


def _bucket_stats(df: pd.DataFrame, key) -> dict:
    stats = df.groupby(key)['success'].agg(['size', 'mean'])
    return {
        k: {'trades': int(row['size']), 'success_rate': float(row['mean'])}
        for k, row in stats.iterrows()
    }


def _volatility_bucket(volatility: float) -> str:
    if volatility < 0.01:
        return "LOW"
    if volatility < 0.025:
        return "MEDIUM"
    if volatility < 0.05:
        return "HIGH"
    return "EXTREME"


def _as_outcome(value):
    """True/False for a completed trade, None when still open or unrecognised."""
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, float, np.integer, np.floating)):
        if pd.isna(value) or value not in (0, 1):
            return None
        return bool(value == 1)
    if isinstance(value, str):
        return SUCCESS_STRINGS.get(value.strip().lower())
    return None


def summarize_outcomes(outcomes: pd.DataFrame, asset_type: str, timeframe: str) -> HistoricalPerformance:
    """
    Aggregates completed trade outcomes (success not null) for one asset/timeframe.
    Expects snake_case columns: asset_type, timeframe, success, rr, volatility, entry_time.
    """
    required = {'asset_type', 'timeframe', 'success'}
    if outcomes is None or outcomes.empty or not required.issubset(outcomes.columns):
        return HistoricalPerformance.neutral()

    df = outcomes.assign(success=outcomes['success'].map(_as_outcome))
    df = df[df['success'].notna()]
    df = df[(df['asset_type'] == asset_type) & (df['timeframe'] == timeframe)].copy()
    if df.empty:
        return HistoricalPerformance.neutral()

    df['success'] = df['success'].astype(bool)
    total = len(df)
    wins = int(df['success'].sum())

    rr = pd.to_numeric(df['rr'], errors='coerce') if 'rr' in df.columns else pd.Series(dtype=float)
    average_rr = float(rr.mean()) if rr.notna().any() else 2.0

    volatility_success = {}
    if 'volatility' in df.columns:
        vol = pd.to_numeric(df['volatility'], errors='coerce')
        with_vol = df[vol.notna()].assign(vol_bucket=vol[vol.notna()].map(_volatility_bucket))
        if not with_vol.empty:
            volatility_success = _bucket_stats(with_vol, 'vol_bucket')

    hourly, daily = {}, {}
    if 'entry_time' in df.columns:
        times = pd.to_datetime(df['entry_time'], utc=True, errors='coerce')
        timed = df[times.notna()].assign(hour=times[times.notna()].dt.hour,
                                          weekday=times[times.notna()].dt.weekday)
        if not timed.empty:
            hourly = _bucket_stats(timed, 'hour')
            daily = _bucket_stats(timed, 'weekday')

    return HistoricalPerformance(
        total_trades=total,
        successful_trades=wins,
        success_rate=wins / total,
        average_rr=average_rr,
        volatility_success=volatility_success,
        hourly_success=hourly,
        daily_success=daily,
        asset_success=_bucket_stats(df, 'asset_type'),
    )


class PerformanceReader:
    """Read-only view of the trade-history store keyed by (asset_type, timeframe)."""

    def get_historical_performance(self, asset_type: str, timeframe: str) -> HistoricalPerformance:
        raise NotImplementedError


class NeutralPerformanceReader(PerformanceReader):
    def get_historical_performance(self, asset_type: str, timeframe: str) -> HistoricalPerformance:
        return HistoricalPerformance.neutral()


class KeyValuePerformanceReader(PerformanceReader):
    """
    Reads trade outcomes from any key-value store exposing `get(key)`.
    The stored value is a list of outcome dicts or the same list as JSON text.
    """

    def __init__(self, store, key: str = TRADE_HISTORY_KEY):
        self.store = store
        self.key = key

    def load_outcomes(self) -> pd.DataFrame:
        try:
            raw = self.store.get(self.key)
        except Exception as e:
            logger.warning(f"⚠️ Could not read trade history '{self.key}': {e}")
            return pd.DataFrame()
        if raw is None:
            return pd.DataFrame()
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.warning(f"⚠️ Trade history under '{self.key}' is not valid JSON: {e}")
                return pd.DataFrame()
        if not isinstance(raw, list):
            logger.warning(f"⚠️ Trade history under '{self.key}' is not a list")
            return pd.DataFrame()

        df = pd.DataFrame([r for r in raw if isinstance(r, dict)])
        return df.rename(columns=OUTCOME_COLUMNS)

    def get_historical_performance(self, asset_type: str, timeframe: str) -> HistoricalPerformance:
        return summarize_outcomes(self.load_outcomes(), asset_type, timeframe)


class JournalPerformanceReader(PerformanceReader):
    """
    Reads the `trade_outcomes` table of a SQLite trade journal, opened read-only.
    A missing or unreadable journal yields the neutral default.
    """

    def __init__(self, db_path: str = TRADE_HISTORY_DB):
        self.db_path = db_path

    def get_historical_performance(self, asset_type: str, timeframe: str) -> HistoricalPerformance:
        if not os.path.exists(self.db_path):
            return HistoricalPerformance.neutral()

        query = """
            SELECT asset_type, timeframe, success, rr, volatility, entry_time
            FROM trade_outcomes
            WHERE asset_type = ? AND timeframe = ? AND success IS NOT NULL
        """
        try:
            with sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True) as conn:
                df = pd.read_sql_query(query, conn, params=(asset_type, timeframe))
        except (sqlite3.Error, pd.errors.DatabaseError) as e:
            logger.warning(f"⚠️ Could not read trade journal {self.db_path}: {e}")
            return HistoricalPerformance.neutral()

        return summarize_outcomes(df, asset_type, timeframe)
