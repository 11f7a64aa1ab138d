"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_HISTORY_LIMIT = 200
DEFAULT_TOKEN_TTL_MINUTES = 12 * 60

DISPATCH_BATCH_SIZE = 10
DISPATCH_ITEM_DELAY_SECONDS = 1.0
DISPATCH_BATCH_DELAY_SECONDS = 2.0
DISPATCH_RETRY_DELAY_SECONDS = 2.0
DISPATCH_MAX_RETRIES = 2
DISPATCH_RETENTION_HOURS = 24

JOB_POLL_INTERVAL_SECONDS = 2.0

CLIENT_MAX_ATTEMPTS = 3
CLIENT_BACKOFF_SECONDS = 0.5

EXIT_REMARK_PREFIX = "Unreturned at exit: "
NO_ACTIVITY_TIME = "--:--"
