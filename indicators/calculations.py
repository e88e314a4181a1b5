import logging
import numpy as np
import pandas as pd
import pandas_ta_classic as ta
from config.config import (
    ATR_PERIOD, ATR_REGIME_MIN_BARS, ATR_REGIME_LOW, ATR_REGIME_NORMAL,
    ATR_REGIME_HIGH, VOLATILITY_LOOKBACK, BOLLINGER_PERIOD, DEFAULT_TIMEFRAME
)

logger = logging.getLogger(__name__)

OHLCV_COLUMNS = ['open', 'high', 'low', 'close', 'volume']

TIMEFRAME_ALIASES = {
    "M1": "1M", "M5": "5M", "M15": "15M", "M30": "30M",
    "H1": "1H", "H4": "4H", "H12": "12H", "D1": "1D", "D": "1D",
    "W1": "1W", "W": "1W", "MN": "1M_MONTHLY", "1MO": "1M_MONTHLY",
}


class IndicatorCalculator:
    @staticmethod
    def to_frame(price_history) -> pd.DataFrame:
        """
        Normalizes an OHLCV history (list of bar dicts or a DataFrame)
        into a float DataFrame ordered oldest first.
        Raises ValueError for missing columns or negative prices.
        """
        if isinstance(price_history, pd.DataFrame):
            df = price_history.copy()
        else:
            df = pd.DataFrame(list(price_history or []))

        if df.empty:
            return pd.DataFrame(columns=OHLCV_COLUMNS + ['timestamp'])

        missing = [c for c in OHLCV_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"price history is missing columns: {', '.join(missing)}")

        for col in OHLCV_COLUMNS:
            df[col] = pd.to_numeric(df[col], errors='raise').astype(float)

        if (df[['open', 'high', 'low', 'close']] < 0).any().any():
            raise ValueError("price history contains negative prices")

        if 'timestamp' in df.columns:
            df['timestamp'] = pd.to_datetime(df['timestamp'], utc=True)
            df = df.sort_values('timestamp')

        return df.reset_index(drop=True)

    @staticmethod
    def normalize_timeframe(timeframe) -> str:
        if not timeframe or not isinstance(timeframe, str):
            return DEFAULT_TIMEFRAME
        tf = timeframe.strip().upper()
        return TIMEFRAME_ALIASES.get(tf, tf) or DEFAULT_TIMEFRAME

    @staticmethod
    def calculate_returns(df: pd.DataFrame) -> pd.Series:
        """Simple close-to-close returns."""
        return df['close'].pct_change().dropna()

    @staticmethod
    def find_swing_points(df: pd.DataFrame, strength: int, column: str = 'high') -> list:
        """
        Positions of strict swing highs (column='high') or swing lows (column='low'):
        the bar must beat every other bar `strength` bars either side.
        """
        values = df[column].to_numpy()
        swings = []
        for i in range(strength, len(values) - strength):
            neighbours = np.concatenate((values[i - strength:i], values[i + 1:i + strength + 1]))
            if column == 'high' and values[i] > neighbours.max():
                swings.append(i)
            elif column == 'low' and values[i] < neighbours.min():
                swings.append(i)
        return swings

    @staticmethod
    def classify_volatility_regime(volatility: float) -> str:
        if volatility < 0.01:
            return "LOW"
        if volatility < 0.025:
            return "MEDIUM"
        if volatility < 0.05:
            return "HIGH"
        return "EXTREME"

    @staticmethod
    def calculate_volatility_metrics(df: pd.DataFrame) -> dict:
        """
        Return-based volatility profile used by the dynamic R:R calculator.
        Needs at least 20 bars, otherwise a MEDIUM/STABLE default is returned.
        """
        if df is None or len(df) < VOLATILITY_LOOKBACK:
            return {
                'current_volatility': 0.02,
                'historical_volatility': 0.02,
                'volatility_regime': "MEDIUM",
                'volatility_trend': "STABLE",
                'atr': None,
                'bollinger_band_width': None,
            }

        returns = IndicatorCalculator.calculate_returns(df).to_numpy()
        # Population std (ddof=0) on both windows
        current_vol = float(np.std(returns[-VOLATILITY_LOOKBACK:]))
        historical_vol = float(np.std(returns))

        trend = "STABLE"
        if len(returns) >= 40:
            half = len(returns) // 2
            first_vol = float(np.std(returns[:half]))
            second_vol = float(np.std(returns[half:]))
            if first_vol > 0:
                change = (second_vol - first_vol) / first_vol
                if change > 0.2:
                    trend = "INCREASING"
                elif change < -0.2:
                    trend = "DECREASING"

        # Simple mean of the last 14 true ranges
        atr_series = ta.atr(df['high'], df['low'], df['close'], length=ATR_PERIOD, mamode="sma", talib=False)
        atr = float(atr_series.dropna().iloc[-1]) if atr_series is not None and atr_series.notna().any() else None

        # (upper - lower) / middle of 20-bar, 2-sigma population bands
        bands = ta.bbands(df['close'], length=BOLLINGER_PERIOD, std=2, ddof=0, mamode="sma", talib=False)
        bb_width = None
        if bands is not None and not bands.empty:
            # Column suffixes differ between releases, match on prefix
            last = {c[:3]: v for c, v in bands.iloc[-1].items()}
            middle = last.get('BBM')
            bb_width = float((last['BBU'] - last['BBL']) / middle) if middle else 0.0

        return {
            'current_volatility': current_vol,
            'historical_volatility': historical_vol,
            'volatility_regime': IndicatorCalculator.classify_volatility_regime(current_vol),
            'volatility_trend': trend,
            'atr': atr,
            'bollinger_band_width': bb_width,
        }

    @staticmethod
    def get_volatility_regime(df: pd.DataFrame) -> str:
        """
        ATR-normalized volatility regime (ATR as % of the last close).
        LOW < 0.5% <= NORMAL < 1.5% <= HIGH < 3.0% <= EXTREME
        """
        if df is None or len(df) < ATR_REGIME_MIN_BARS:
            return "NORMAL"

        atr = ta.atr(df['high'], df['low'], df['close'], length=ATR_PERIOD)
        if atr is None or atr.dropna().empty:
            return "NORMAL"

        last_close = df['close'].iloc[-1]
        if last_close <= 0:
            return "NORMAL"

        atr_pct = float(atr.dropna().iloc[-1]) / last_close * 100
        if atr_pct < ATR_REGIME_LOW:
            return "LOW"
        if atr_pct < ATR_REGIME_NORMAL:
            return "NORMAL"
        if atr_pct < ATR_REGIME_HIGH:
            return "HIGH"
        return "EXTREME"
