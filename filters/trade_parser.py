import math
import re
from dataclasses import dataclass
from typing import Optional

COLON_RATIO = re.compile(r'^(\d+(?:\.\d+)?):(\d+(?:\.\d+)?)$')
MULTIPLE_RATIO = re.compile(r'^(?:rr=|r=)?(\d+(?:\.\d+)?)x?$')
NON_NUMERIC = re.compile(r'[^0-9.+-]')


@dataclass(frozen=True)
class Parsed:
    value: float


class Unparseable:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNPARSEABLE"

    def __bool__(self):
        return False


UNPARSEABLE = Unparseable()


def get_section(data, key) -> dict:
    """Nested dict under `key`, or {} when absent or not a dict."""
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, dict) else {}


def as_number(value, default: float = 0.0) -> float:
    """Finite int/float as float; anything else (bools, strings, NaN) -> default."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    return default


def parse_risk_reward(ratio):
    """
    Parses a model-written reward:risk ratio.
    Accepts "2.5:1", "2.5x", "rr=2.5", "r=2.5" and "2.5". Any "a:b" is a/b,
    so "1:2.5" reads as 0.4.
    Whitespace and case are ignored. Anything else, or a non-positive ratio,
    is UNPARSEABLE. Never returns a numeric default.
    """
    if isinstance(ratio, bool) or ratio is None:
        return UNPARSEABLE
    if isinstance(ratio, (int, float)):
        value = float(ratio)
        return Parsed(value) if math.isfinite(value) and value > 0 else UNPARSEABLE
    if not isinstance(ratio, str):
        return UNPARSEABLE

    cleaned = re.sub(r'\s+', '', ratio.lower())

    value = None
    colon = COLON_RATIO.match(cleaned)
    if colon:
        reward, risk = float(colon.group(1)), float(colon.group(2))
        if risk > 0:
            value = reward / risk
    else:
        multiple = MULTIPLE_RATIO.match(cleaned)
        if multiple:
            value = float(multiple.group(1))

    if value is None or not math.isfinite(value) or value <= 0:
        return UNPARSEABLE
    return Parsed(value)


def parse_price(raw) -> Optional[float]:
    """'$1,234.50' -> 1234.5; anything that does not yield a finite number -> None."""
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, (int, float)):
        return float(raw) if math.isfinite(raw) else None
    if not isinstance(raw, str):
        return None

    cleaned = NON_NUMERIC.sub('', raw)
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def extract_trade_prices(result: dict):
    """Returns (entry, take_profit, stop_loss) or None when any price is missing or non-numeric."""
    trade = result.get('trade') if isinstance(result, dict) else None
    if not isinstance(trade, dict):
        return None

    prices = tuple(parse_price(trade.get(k)) for k in ('entryPrice', 'takeProfit', 'stopLoss'))
    if any(p is None for p in prices):
        return None
    return prices


def is_valid_trade_structure(result: dict) -> bool:
    """
    BUY: take_profit > entry > stop_loss
    SELL: take_profit < entry < stop_loss
    Prices must be positive; a NEUTRAL signal never carries a valid trade.
    """
    prices = extract_trade_prices(result)
    if prices is None:
        return False

    entry, tp, sl = prices
    if min(entry, tp, sl) <= 0:
        return False
    if tp == entry or sl == entry:
        return False

    signal = result.get('signal')
    if signal == "BUY":
        return tp > entry > sl
    if signal == "SELL":
        return tp < entry < sl
    return False
