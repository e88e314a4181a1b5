import math
from dataclasses import dataclass

import numpy as np
import pandas as pd

from config.config import LEVEL_TOUCH_TOLERANCE, LEVEL_MERGE_TOLERANCE
from indicators.calculations import IndicatorCalculator


@dataclass
class SupportResistanceLevel:
    price: float
    type: str          # SUPPORT / RESISTANCE
    strength: str      # WEAK / MODERATE / STRONG / VERY_STRONG
    touches: int
    distance: float
    reliability: float
    source: str        # SWING / VOLUME / PSYCHOLOGICAL / PIVOT


class SupportResistanceAnalyzer:
    # Bars either side a swing point must beat
    SWING_STRENGTH = {
        '1M': 3, '5M': 3, '15M': 5, '30M': 5, '1H': 7, '4H': 10,
        '12H': 12, '1D': 15, '3D': 20, '1W': 25, '1M_MONTHLY': 30
    }

    @staticmethod
    def identify_levels(df: pd.DataFrame, current_price: float, timeframe: str = '1H') -> list:
        """
        Support/resistance from swing points, volume nodes, round numbers and
        pivot points. Near-duplicates of the same type are merged, strongest wins.
        Sorted by distance from the current price.
        """
        levels = []
        if not df.empty:
            levels += SupportResistanceAnalyzer.find_swing_levels(df, current_price, timeframe)
            levels += SupportResistanceAnalyzer.find_volume_levels(df, current_price)
        levels += SupportResistanceAnalyzer.find_psychological_levels(current_price)
        if not df.empty:
            levels += SupportResistanceAnalyzer.find_pivot_levels(df, current_price)

        merged = SupportResistanceAnalyzer.merge_levels(levels)
        return sorted(merged, key=lambda l: l.distance)

    @staticmethod
    def count_touches(df: pd.DataFrame, level: float, tolerance: float) -> int:
        threshold = level * tolerance
        touched = ((df['high'] - level).abs() <= threshold) | \
                  ((df['low'] - level).abs() <= threshold) | \
                  ((df['close'] - level).abs() <= threshold)
        return int(touched.sum())

    @staticmethod
    def level_strength(touches: int, volume: float, volume_based: bool = False) -> str:
        score = touches * 10
        if volume_based:
            score += 10
        if volume > 0:
            score += min(20, math.log10(volume) * 2)

        if score >= 40:
            return "VERY_STRONG"
        if score >= 30:
            return "STRONG"
        if score >= 20:
            return "MODERATE"
        return "WEAK"

    @staticmethod
    def count_penetrations(df: pd.DataFrame, level: float) -> int:
        """Completed excursions more than 0.1% through the level that came back."""
        tolerance = level * 0.001
        lows = np.minimum(df['low'].to_numpy(), df['close'].to_numpy())
        highs = np.maximum(df['high'].to_numpy(), df['close'].to_numpy())
        penetrated = (lows < level - tolerance) | (highs > level + tolerance)

        count = 0
        inside = False
        for flag in penetrated:
            if flag and not inside:
                inside = True
            elif not flag and inside:
                count += 1
                inside = False
        return count

    @staticmethod
    def level_reliability(df: pd.DataFrame, level: float, touches: int) -> float:
        reliability = 50 + touches * 10

        penetrations = SupportResistanceAnalyzer.count_penetrations(df, level)
        if penetrations > 0:
            reliability += 20 # every counted excursion recovered
            if penetrations > touches * 0.5:
                reliability -= 15

        # Older series -> more established level
        if len(df) > 30:
            reliability += 10

        return max(0, min(100, reliability))

    @staticmethod
    def _make_level(df, price, level_type, touches, volume, current_price, source, volume_based=False):
        return SupportResistanceLevel(
            price=float(price),
            type=level_type,
            strength=SupportResistanceAnalyzer.level_strength(touches, volume, volume_based),
            touches=touches,
            distance=abs(current_price - price),
            reliability=SupportResistanceAnalyzer.level_reliability(df, price, touches),
            source=source,
        )

    @staticmethod
    def find_swing_levels(df: pd.DataFrame, current_price: float, timeframe: str) -> list:
        strength = SupportResistanceAnalyzer.SWING_STRENGTH.get(timeframe, 5)
        levels = []

        for column, level_type in (('high', "RESISTANCE"), ('low', "SUPPORT")):
            for i in IndicatorCalculator.find_swing_points(df, strength, column):
                price = df[column].iloc[i]
                touches = SupportResistanceAnalyzer.count_touches(df, price, LEVEL_TOUCH_TOLERANCE)
                if touches >= 2:
                    levels.append(SupportResistanceAnalyzer._make_level(
                        df, price, level_type, touches, df['volume'].iloc[i], current_price, "SWING"
                    ))
        return levels

    @staticmethod
    def volume_profile(df: pd.DataFrame) -> dict:
        """Spreads each candle's volume evenly over 10 price steps from its low."""
        profile = {}
        for low, high, volume in zip(df['low'], df['high'], df['volume']):
            step = (high - low) / 10
            for i in range(10):
                price = round(low + i * step, 4)
                profile[price] = profile.get(price, 0.0) + volume / 10
        return profile

    @staticmethod
    def find_volume_levels(df: pd.DataFrame, current_price: float) -> list:
        profile = SupportResistanceAnalyzer.volume_profile(df)
        if not profile:
            return []

        # 80th percentile cut, then the 10 heaviest nodes
        volumes = sorted(profile.values(), reverse=True)
        threshold = volumes[int(len(volumes) * 0.2)]
        nodes = sorted(((p, v) for p, v in profile.items() if v > threshold), key=lambda n: n[1], reverse=True)[:10]

        levels = []
        for price, volume in nodes:
            touches = max(2, SupportResistanceAnalyzer.count_touches(df, price, 0.001))
            level_type = "SUPPORT" if current_price > price else "RESISTANCE"
            levels.append(SupportResistanceAnalyzer._make_level(
                df, price, level_type, touches, volume, current_price, "VOLUME", volume_based=True
            ))
        return levels

    @staticmethod
    def psychological_step(price: float) -> float:
        # 100 -> 1, 50_000 -> 100, 1.1 -> 0.01
        return 10 ** (math.floor(math.log10(price)) - 2)

    @staticmethod
    def find_psychological_levels(current_price: float) -> list:
        if current_price <= 0:
            return []

        step = SupportResistanceAnalyzer.psychological_step(current_price)
        span = current_price * 0.1
        first = math.ceil((current_price - span) / step)
        last = math.floor((current_price + span) / step)

        levels = []
        for k in range(first, last + 1):
            price = round(k * step, 10)
            if abs(price - current_price) <= step:
                continue
            distance_pct = abs(price - current_price) / current_price
            if distance_pct < 0.01:
                strength, reliability = "VERY_STRONG", 85
            elif distance_pct < 0.02:
                strength, reliability = "STRONG", 75
            elif distance_pct < 0.05:
                strength, reliability = "MODERATE", 65
            else:
                strength, reliability = "WEAK", 50
            levels.append(SupportResistanceLevel(
                price=price,
                type="SUPPORT" if current_price > price else "RESISTANCE",
                strength=strength,
                touches=1,
                distance=abs(current_price - price),
                reliability=reliability,
                source="PSYCHOLOGICAL",
            ))
        return levels

    @staticmethod
    def find_pivot_levels(df: pd.DataFrame, current_price: float) -> list:
        """Classic floor pivots from the last complete candle."""
        last = df.iloc[-1]
        high, low, close = last['high'], last['low'], last['close']

        pivot = (high + low + close) / 3
        points = [
            (pivot, "PIVOT"),
            (2 * pivot - low, "RESISTANCE"),
            (pivot + (high - low), "RESISTANCE"),
            (high + 2 * (pivot - low), "RESISTANCE"),
            (2 * pivot - high, "SUPPORT"),
            (pivot - (high - low), "SUPPORT"),
            (low - 2 * (high - pivot), "SUPPORT"),
        ]

        levels = []
        for price, kind in points:
            if kind == "PIVOT":
                level_type = "SUPPORT" if current_price > price else "RESISTANCE"
                strength, reliability = "VERY_STRONG", 85
            else:
                level_type = kind
                strength, reliability = "STRONG", 75
            levels.append(SupportResistanceLevel(
                price=float(price),
                type=level_type,
                strength=strength,
                touches=1,
                distance=abs(current_price - price),
                reliability=reliability,
                source="PIVOT",
            ))
        return levels

    @staticmethod
    def merge_levels(levels: list) -> list:
        merged = []
        for level in levels:
            match = None
            for i, existing in enumerate(merged):
                if existing.type == level.type and level.price > 0 and \
                        abs(existing.price - level.price) / level.price < LEVEL_MERGE_TOLERANCE:
                    match = i
                    break

            if match is None:
                merged.append(level)
            elif level.strength == "VERY_STRONG" or \
                    (level.strength == "STRONG" and merged[match].strength != "VERY_STRONG"):
                merged[match] = level
        return merged
