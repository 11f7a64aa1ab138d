import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "site_gate_db"),
}

DEBUG = False
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

JWT_ALGORITHM = "HS256"
TOKEN_TTL_MINUTES = int(os.getenv("TOKEN_TTL_MINUTES", "720"))

SITE_TIMEZONE = os.getenv("SITE_TIMEZONE") or None

DISPATCH_BATCH_SIZE = int(os.getenv("DISPATCH_BATCH_SIZE", "10"))
DISPATCH_ITEM_DELAY_SECONDS = float(os.getenv("DISPATCH_ITEM_DELAY_SECONDS", "1"))
DISPATCH_BATCH_DELAY_SECONDS = float(os.getenv("DISPATCH_BATCH_DELAY_SECONDS", "2"))
DISPATCH_MAX_RETRIES = int(os.getenv("DISPATCH_MAX_RETRIES", "2"))
DISPATCH_RETRY_DELAY_SECONDS = float(os.getenv("DISPATCH_RETRY_DELAY_SECONDS", "2"))
DISPATCH_RETENTION_HOURS = float(os.getenv("DISPATCH_RETENTION_HOURS", "24"))

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
AUTO_SEED_DB = bool(int(os.getenv("AUTO_SEED_DB", "0")))
