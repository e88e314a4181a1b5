import os
from dotenv import load_dotenv

load_dotenv()

# LOGGING
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

# TRADE HISTORY (read-only)
TRADE_HISTORY_DB = os.getenv("TRADE_HISTORY_DB", "database/trade_history.db")
TRADE_HISTORY_KEY = os.getenv("TRADE_HISTORY_KEY", "trade_outcomes")
TRADE_HISTORY_MIN_TRADES = 10 # Below this the history is not trusted

# GATE
GATE_CONFIDENCE_THRESHOLD = 75 # Fixed, applies to both modes
STANDARD_MIN_SCORE = 75
ULTRA_MIN_SCORE = 85
SMC_MIN_BIAS = 70
SMC_MIN_BIAS_ULTRA = 80
PATTERN_MIN_CONFLUENCE = 75
PATTERN_MIN_CONFLUENCE_ULTRA = 85
MTF_MIN_CONFLUENCE = 70
MTF_MIN_CONFLUENCE_ULTRA = 80
EXTREME_VOLATILITY_RR_BUMP = 0.2
DEFAULT_TIMEFRAME = "1H"
DEFAULT_ASSET = "BTC"

# CALIBRATION
HIGH_CONFIDENCE_STANDARD = 75
HIGH_CONFIDENCE_ULTRA = 85
ULTRA_SCORE_MULTIPLIER = 0.95
STANDARD_WEIGHTS = {
    "technical_confluence": 0.25,
    "historical_pattern_success": 0.20,
    "market_conditions": 0.15,
    "volatility_adjustment": 0.15,
    "volume_confirmation": 0.15,
    "structural_integrity": 0.10,
}
ULTRA_WEIGHTS = {
    "technical_confluence": 0.30,
    "historical_pattern_success": 0.25,
    "market_conditions": 0.15,
    "volatility_adjustment": 0.10,
    "volume_confirmation": 0.15,
    "structural_integrity": 0.05,
}
MIN_UNCERTAINTY = 5
MAX_UNCERTAINTY = 30
LIQUIDITY_DISCOUNT = 5
NEWS_RISK = 3

# RISK / REWARD
BASE_RR_STANDARD = 1.8
BASE_RR_ULTRA = 2.2
RR_FLOOR_MIN = 1.0
RR_FLOOR_OPTIMAL = 1.3
RR_FLOOR_MAX = 1.6
VOLATILITY_LOOKBACK = 20 # bars of returns
BOLLINGER_PERIOD = 20

# STRUCTURE
STRUCTURE_BUFFER_PCT = 0.0005 # 5 bps of current price
LEVEL_TOUCH_TOLERANCE = 0.002
LEVEL_MERGE_TOLERANCE = 0.002
POOL_MERGE_TOLERANCE = 0.001
POOL_BASE_BUFFER_PCT = 0.002
ATR_PERIOD = 14
ATR_REGIME_MIN_BARS = 15
ATR_REGIME_LOW = 0.5
ATR_REGIME_NORMAL = 1.5
ATR_REGIME_HIGH = 3.0

# SESSION TIMES (UTC)
# London: 08:00 - 16:00
# NY: 13:00 - 21:00
LONDON_OPEN = 8
LONDON_CLOSE = 16
NY_OPEN = 13
NY_CLOSE = 21
ASIAN_SESSION_START = 0 # UTC
ASIAN_SESSION_END = 8 # UTC
