import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "classscan"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "classscan"),
}

DEBUG = False

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))

TOKEN_TTL_SECONDS = int(os.getenv("TOKEN_TTL_SECONDS", "15"))
POLICY_CACHE_TTL_SECONDS = int(os.getenv("POLICY_CACHE_TTL_SECONDS", "60"))
TOKEN_SWEEP_INTERVAL_SECONDS = int(os.getenv("TOKEN_SWEEP_INTERVAL_SECONDS", "300"))
FRAUD_WORKERS = int(os.getenv("FRAUD_WORKERS", "4"))

SCAN_RATE_LIMIT = os.getenv("SCAN_RATE_LIMIT", "20 per minute")
RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "logs/classscan.log")
