import math
from dataclasses import dataclass
from typing import Optional

import pandas as pd

from config.config import POOL_MERGE_TOLERANCE, POOL_BASE_BUFFER_PCT
from indicators.calculations import IndicatorCalculator

INTENSITY_RANK = {"LOW": 1, "MEDIUM": 2, "HIGH": 3, "EXTREME": 4}
TYPE_SIGNIFICANCE = {"STOP_CLUSTER": 6, "EQUAL_HIGHS": 5, "EQUAL_LOWS": 5, "PREVIOUS_HIGH_LOW": 4, "ROUND_NUMBER": 3}
TYPE_BUFFER_FACTOR = {"EQUAL_HIGHS": 1.5, "EQUAL_LOWS": 1.5, "STOP_CLUSTER": 2.0, "ROUND_NUMBER": 1.2}
INTENSITY_BUFFER_FACTOR = {"EXTREME": 2.5, "HIGH": 2.0, "MEDIUM": 1.5, "LOW": 1.0}


@dataclass
class LiquidityPool:
    price: float
    type: str
    intensity: str
    estimated_liquidity: float
    proximity: float
    touches: int = 1
    last_touch: Optional[pd.Timestamp] = None
    sweep_probability: float = 0.0
    zone_lower: float = 0.0
    zone_upper: float = 0.0
    buffer: float = 0.0

    def __post_init__(self):
        self.refresh_zone()

    def refresh_zone(self):
        self.buffer = LiquidityPoolDetector.avoidance_buffer(self.price, self.type, self.intensity)
        self.zone_lower = self.price - self.buffer
        self.zone_upper = self.price + self.buffer

    def contains(self, price: float) -> bool:
        # Both edges count as inside
        return self.zone_lower <= price <= self.zone_upper


class LiquidityPoolDetector:
    LOOKBACK = {
        '1M': 500, '5M': 200, '15M': 100, '30M': 75, '1H': 50, '4H': 30,
        '12H': 20, '1D': 15, '3D': 10, '1W': 8, '1M_MONTHLY': 6
    }
    SWING_STRENGTH = {
        '1M': 5, '5M': 5, '15M': 7, '30M': 10, '1H': 12, '4H': 15,
        '12H': 20, '1D': 25, '3D': 30, '1W': 35, '1M_MONTHLY': 40
    }
    MIN_STOP_ORDERS = 1000

    @staticmethod
    def detect_pools(df: pd.DataFrame, current_price: float, timeframe: str = '1H') -> list:
        """
        Liquidity pools where resting stops are likely to sit:
        equal highs/lows, stop clusters behind structure breaks,
        round numbers and previous swing extremes.
        Sorted by proximity to the current price.
        """
        pools = []
        if not df.empty:
            pools += LiquidityPoolDetector.find_equal_highs_lows(df, current_price, timeframe)
            pools += LiquidityPoolDetector.find_stop_clusters(df, current_price)
        pools += LiquidityPoolDetector.find_round_numbers(current_price)
        if not df.empty:
            pools += LiquidityPoolDetector.find_previous_highs_lows(df, current_price, timeframe)

        merged = LiquidityPoolDetector.merge_pools(pools)
        for pool in merged:
            pool.sweep_probability = LiquidityPoolDetector.sweep_probability(pool, df, current_price)
        return sorted(merged, key=lambda p: p.proximity)

    @staticmethod
    def avoidance_buffer(price: float, pool_type: str, intensity: str) -> float:
        buffer = price * POOL_BASE_BUFFER_PCT
        buffer *= TYPE_BUFFER_FACTOR.get(pool_type, 1.0)
        buffer *= INTENSITY_BUFFER_FACTOR.get(intensity, 1.0)
        return buffer

    @staticmethod
    def equal_level_tolerance(current_price: float) -> float:
        if current_price >= 1000:
            return 0.001
        if current_price >= 100:
            return 0.0015
        if current_price >= 10:
            return 0.002
        return 0.003

    @staticmethod
    def group_equal_levels(points: list, tolerance: float) -> list:
        """Greedy grouping of (price, volume, timestamp) against each group's running average."""
        groups = []
        for point in points:
            for group in groups:
                avg = sum(p[0] for p in group) / len(group)
                if avg > 0 and abs(point[0] - avg) / avg <= tolerance:
                    group.append(point)
                    break
            else:
                groups.append([point])
        return groups

    @staticmethod
    def pool_intensity(touches: int, estimated_liquidity: float) -> str:
        score = touches * 10 + math.log10(estimated_liquidity + 1) * 5
        if score >= 40:
            return "EXTREME"
        if score >= 25:
            return "HIGH"
        if score >= 15:
            return "MEDIUM"
        return "LOW"

    @staticmethod
    def find_equal_highs_lows(df: pd.DataFrame, current_price: float, timeframe: str) -> list:
        tolerance = LiquidityPoolDetector.equal_level_tolerance(current_price)
        recent = df.tail(LiquidityPoolDetector.LOOKBACK.get(timeframe, 50))
        timestamps = recent['timestamp'] if 'timestamp' in recent.columns else [None] * len(recent)

        pools = []
        for column, pool_type in (('high', "EQUAL_HIGHS"), ('low', "EQUAL_LOWS")):
            points = list(zip(recent[column], recent['volume'], timestamps))
            for group in LiquidityPoolDetector.group_equal_levels(points, tolerance):
                if len(group) < 2:
                    continue
                avg_price = sum(p[0] for p in group) / len(group)
                liquidity = sum(p[1] for p in group) * len(group) * 0.1
                pools.append(LiquidityPool(
                    price=avg_price,
                    type=pool_type,
                    intensity=LiquidityPoolDetector.pool_intensity(len(group), liquidity),
                    estimated_liquidity=liquidity,
                    proximity=abs(current_price - avg_price),
                    touches=len(group),
                    last_touch=group[-1][2],
                ))
        return pools

    @staticmethod
    def find_structure_breaks(df: pd.DataFrame) -> list:
        """Closes beyond the prior 10-bar extreme. Returns (broken level, direction, bar position)."""
        highs, lows, closes = df['high'].to_numpy(), df['low'].to_numpy(), df['close'].to_numpy()
        breaks = []
        for i in range(10, len(df) - 5):
            recent_high = highs[i - 10:i].max()
            recent_low = lows[i - 10:i].min()
            if closes[i] > recent_high:
                breaks.append((recent_high, "BULLISH_BREAK", i))
            if closes[i] < recent_low:
                breaks.append((recent_low, "BEARISH_BREAK", i))
        return breaks

    @staticmethod
    def find_stop_clusters(df: pd.DataFrame, current_price: float) -> list:
        # Same estimate for every break: 15% of the average volume of the last 20 bars
        estimated_stops = df['volume'].tail(20).sum() / 20 * 0.15
        if estimated_stops <= LiquidityPoolDetector.MIN_STOP_ORDERS:
            return []

        if estimated_stops >= 10000:
            intensity = "EXTREME"
        elif estimated_stops >= 5000:
            intensity = "HIGH"
        elif estimated_stops >= 2000:
            intensity = "MEDIUM"
        else:
            intensity = "LOW"

        pools = []
        for level, direction, i in LiquidityPoolDetector.find_structure_breaks(df):
            # Stops sit 0.5% behind the broken level
            offset = level * 0.005
            price = level - offset if direction == "BULLISH_BREAK" else level + offset
            pools.append(LiquidityPool(
                price=price,
                type="STOP_CLUSTER",
                intensity=intensity,
                estimated_liquidity=estimated_stops,
                proximity=abs(current_price - price),
                last_touch=df['timestamp'].iloc[i] if 'timestamp' in df.columns else None,
            ))
        return pools

    @staticmethod
    def round_intervals(current_price: float) -> list:
        if current_price >= 1000:
            return [100, 50, 25]
        if current_price >= 100:
            return [10, 5, 2.5]
        if current_price >= 10:
            return [1, 0.5, 0.25]
        return [0.1, 0.05, 0.01]

    @staticmethod
    def is_major_round_number(price: float) -> bool:
        if price >= 1000:
            major = 100
        elif price >= 100:
            major = 10
        elif price >= 10:
            major = 1
        else:
            major = 0.1
        return abs(price / major - round(price / major)) < 1e-9

    @staticmethod
    def find_round_numbers(current_price: float) -> list:
        if current_price <= 0:
            return []

        span = current_price * 0.15
        prices = set()
        for interval in LiquidityPoolDetector.round_intervals(current_price):
            first = math.ceil((current_price - span) / interval)
            last = math.floor((current_price + span) / interval)
            for k in range(first, last + 1):
                price = round(k * interval, 4)
                if abs(price - current_price) > interval * 0.1:
                    prices.add(price)

        pools = []
        for price in sorted(prices):
            distance = abs(price - current_price) / current_price
            major = LiquidityPoolDetector.is_major_round_number(price)
            if major and distance < 0.02:
                intensity = "EXTREME"
            elif major and distance < 0.05:
                intensity = "HIGH"
            elif distance < 0.01:
                intensity = "HIGH"
            elif distance < 0.03:
                intensity = "MEDIUM"
            else:
                intensity = "LOW"

            liquidity = 1000.0
            if major:
                liquidity *= 3
            if distance < 0.01:
                liquidity *= 2
            if distance < 0.05:
                liquidity *= 1.5

            pools.append(LiquidityPool(
                price=price,
                type="ROUND_NUMBER",
                intensity=intensity,
                estimated_liquidity=liquidity,
                proximity=abs(current_price - price),
            ))
        return pools

    @staticmethod
    def find_previous_highs_lows(df: pd.DataFrame, current_price: float, timeframe: str) -> list:
        history = df.tail(LiquidityPoolDetector.LOOKBACK.get(timeframe, 50) * 2)
        strength = LiquidityPoolDetector.SWING_STRENGTH.get(timeframe, 10)
        liquidity = history['volume'].tail(50).sum() / 50 * 0.08

        pools = []
        for column in ('high', 'low'):
            for i in IndicatorCalculator.find_swing_points(history, strength, column):
                price = history[column].iloc[i]
                distance = abs(price - current_price) / current_price
                if distance < 0.01:
                    intensity = "HIGH"
                elif distance < 0.03:
                    intensity = "MEDIUM"
                else:
                    intensity = "LOW"
                pools.append(LiquidityPool(
                    price=float(price),
                    type="PREVIOUS_HIGH_LOW",
                    intensity=intensity,
                    estimated_liquidity=liquidity,
                    proximity=abs(current_price - price),
                    last_touch=history['timestamp'].iloc[i] if 'timestamp' in history.columns else None,
                ))
        return pools

    @staticmethod
    def merge_pools(pools: list) -> list:
        """Pools within 0.1% merge: liquidity adds up, the stronger intensity and type win."""
        merged = []
        for pool in pools:
            existing = next((m for m in merged
                             if pool.price > 0 and abs(m.price - pool.price) / pool.price < POOL_MERGE_TOLERANCE), None)
            if existing is None:
                merged.append(pool)
                continue

            existing.estimated_liquidity += pool.estimated_liquidity
            if INTENSITY_RANK[pool.intensity] > INTENSITY_RANK[existing.intensity]:
                existing.intensity = pool.intensity
            if TYPE_SIGNIFICANCE[pool.type] > TYPE_SIGNIFICANCE[existing.type]:
                existing.type = pool.type
            existing.refresh_zone()
        return merged

    @staticmethod
    def recent_volatility(df: pd.DataFrame) -> float:
        """Mean absolute close-to-close change over the last 20 bars."""
        if len(df) < 2:
            return 0.0
        return float(df['close'].tail(20).pct_change().abs().dropna().mean())

    @staticmethod
    def sweep_probability(pool: LiquidityPool, df: pd.DataFrame, current_price: float) -> float:
        probability = 30
        probability += {"EXTREME": 40, "HIGH": 25, "MEDIUM": 10}.get(pool.intensity, 0)

        distance = pool.proximity / current_price if current_price > 0 else 1.0
        if distance < 0.01:
            probability += 20
        elif distance < 0.02:
            probability += 15
        elif distance < 0.05:
            probability += 10
        elif distance > 0.1:
            probability -= 20

        probability += {"EQUAL_HIGHS": 15, "EQUAL_LOWS": 15, "STOP_CLUSTER": 20,
                        "ROUND_NUMBER": 10, "PREVIOUS_HIGH_LOW": 12}.get(pool.type, 0)

        volatility = LiquidityPoolDetector.recent_volatility(df)
        if volatility > 0.03:
            probability += 15
        elif volatility < 0.01:
            probability -= 10

        # Touched within a day of the latest bar
        if pool.last_touch is not None and 'timestamp' in df.columns and not df.empty:
            if df['timestamp'].iloc[-1] - pool.last_touch < pd.Timedelta(days=1):
                probability += 10

        return max(0, min(100, probability))
