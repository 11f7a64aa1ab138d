import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "site_gate_test"),
}

DEBUG = False
TESTING = True
LOG_LEVEL = "WARNING"

JWT_ALGORITHM = "HS256"
TOKEN_TTL_MINUTES = 60

SITE_TIMEZONE = None

DISPATCH_BATCH_SIZE = 10
DISPATCH_ITEM_DELAY_SECONDS = 0
DISPATCH_BATCH_DELAY_SECONDS = 0
DISPATCH_MAX_RETRIES = 2
DISPATCH_RETRY_DELAY_SECONDS = 0
DISPATCH_RETENTION_HOURS = 24

AUTO_INIT_DB = False
AUTO_SEED_DB = False
