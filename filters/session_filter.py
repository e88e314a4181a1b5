from datetime import datetime
import pytz
from config.config import LONDON_OPEN, LONDON_CLOSE, NY_OPEN, NY_CLOSE, ASIAN_SESSION_START, ASIAN_SESSION_END


class SessionFilter:
    """
    UTC clock helpers shared by calibration and the dynamic R:R calculator.
    Every method takes an explicit datetime so callers stay deterministic;
    `now()` is the only place the wall clock is read.
    """

    @staticmethod
    def now() -> datetime:
        return datetime.now(pytz.UTC)

    @staticmethod
    def to_utc(moment) -> datetime:
        if moment is None:
            return SessionFilter.now()
        if isinstance(moment, str):
            moment = datetime.fromisoformat(moment.replace("Z", "+00:00"))
        if moment.tzinfo is None:
            return pytz.UTC.localize(moment)
        return moment.astimezone(pytz.UTC)

    @staticmethod
    def get_session_strength(hour: int, is_crypto: bool = False) -> str:
        if is_crypto:
            return "STRONG" # 24h market
        if LONDON_OPEN <= hour <= LONDON_CLOSE:
            return "STRONG"
        if 6 <= hour <= 18:
            return "MODERATE"
        return "WEAK"

    @staticmethod
    def get_session_name(hour: int, is_crypto: bool = False) -> str:
        if is_crypto:
            return "CRYPTO_24H"
        if ASIAN_SESSION_START <= hour < ASIAN_SESSION_END:
            return "ASIAN"
        if LONDON_OPEN <= hour < LONDON_CLOSE:
            return "LONDON"
        if NY_OPEN <= hour < NY_CLOSE:
            return "NEW_YORK"
        return "ASIAN"

    @staticmethod
    def get_time_based_volatility(hour: int) -> float:
        # Opens/closes run hotter than the overnight lull
        if hour in (LONDON_OPEN, LONDON_CLOSE):
            return 0.7
        if hour in (0, 12):
            return 0.6
        if hour >= 22 or hour <= 6:
            return 0.3
        return 0.5

    @staticmethod
    def is_low_liquidity_window(hour: int) -> bool:
        """22:00 - 06:59 UTC"""
        return hour >= 22 or hour <= 6

    @staticmethod
    def is_news_window(moment: datetime) -> bool:
        """Weekday mornings 08:00 - 10:59 UTC, when most scheduled releases land."""
        return moment.weekday() < 5 and 8 <= moment.hour <= 10

    @staticmethod
    def get_activity_adjustment(hour: int) -> int:
        """
        Adjustment applied to the volatility confidence factor.
        Quiet hours (02:00 - 06:59) +5, London/NY activity (08:00 - 16:59) -3.
        """
        if 2 <= hour <= 6:
            return 5
        if 8 <= hour <= 16:
            return -3
        return 0
