"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

TOKEN_TTL_SECONDS = 15
TOKEN_SECRET_BYTES = 24
TOKEN_SWEEP_INTERVAL_SECONDS = 300

POLICY_CACHE_TTL_SECONDS = 60
DEFAULT_FIRST_HOUR_LATE_MINUTES = 20
DEFAULT_BREAK_LATE_MINUTES = 10
DEFAULT_GRACE_MINUTES = 0
DEFAULT_POLICY_NAME = "Global Default v1"

# Fraud heuristics tuning, kept as-is for parity with existing data.
RAPID_BURST_WINDOW_SECONDS = 60
RAPID_BURST_MIN_COUNT = 3
GPS_CLUSTER_WINDOW_SECONDS = 120
GPS_CLUSTER_MIN_COUNT = 1
GPS_ROUNDING_DIGITS = 4
GPS_CLUSTER_TOLERANCE_DEGREES = 0.0001
EDGE_SCAN_SECONDS = 15

FRAUD_WORKERS = 2
EXCUSE_REASON_MIN_LENGTH = 5
DEFAULT_HISTORY_LIMIT = 200

SCAN_RATE_LIMIT = "20 per minute"
SCAN_RATE_LIMIT_MESSAGE = "Too many scans detected. Please try again in a minute."
