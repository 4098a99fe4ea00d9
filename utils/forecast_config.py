Z95 = 1.65  # 95% service level for safety stock
LEAD_TIME_DAYS = 7  # used when a material has no lead time on record
LEAD_TIME_VARIABILITY = 2

# Demand estimation
RECENT_WINDOW = 7
EXTENDED_WINDOW = 14
RECENT_WEIGHT = 0.6
EXTENDED_WEIGHT = 0.4
MIN_PLAUSIBLE_RATIO = 0.5  # calculated / expected outside these bounds is anomalous
MAX_PLAUSIBLE_RATIO = 2.0
DEFAULT_AVG_DAILY_OUTPUT = 15  # stocked output assumed when the log is empty

# Reorder sizing
SAFETY_STOCK_FALLBACK = 0.2  # share of lead-time demand when usage has no variance
MAX_LEVEL_LEAD_TIMES = 2
BUFFER_DAYS = 7
EXPEDITE_DAYS = {"critical": 3, "high": 2}
MIN_LEAD_TIME = 1

# Projection
STOCKOUT_SENTINEL = 999
CONFIDENCE_UPPER = 1.15
CONFIDENCE_LOWER = 0.85
BASE_CONFIDENCE = 70
HISTORY_CONFIDENCE_BONUS = 20
DEPTH_CONFIDENCE_BONUS = 10
CONFIDENCE_DEPTH_POINTS = 14
