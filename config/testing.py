import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "classscan_test"),
}

DEBUG = False
TESTING = True

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))

TOKEN_TTL_SECONDS = 15
POLICY_CACHE_TTL_SECONDS = 60
TOKEN_SWEEP_INTERVAL_SECONDS = 300
FRAUD_WORKERS = 1

SCAN_RATE_LIMIT = "20 per minute"
RATELIMIT_STORAGE_URI = "memory://"

LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")
LOG_FILE = None
