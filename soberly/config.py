import logging
import os

logger = logging.getLogger(__name__)

# Get DATABASE_URL, but validate it; fallback to SQLite if invalid
_raw_db_url = os.getenv("DATABASE_URL", "sqlite:///soberly.db")

# If DATABASE_URL looks malformed, use SQLite instead
if _raw_db_url and not _raw_db_url.startswith(("sqlite://", "postgresql://", "postgres://")):
    logger.warning("Invalid DATABASE_URL detected. Using SQLite fallback.")
    DATABASE_URL = "sqlite:///soberly.db"
else:
    DATABASE_URL = _raw_db_url

APP_ENV = os.getenv("SOBERLY_ENV", "development").lower()

# Time travel shifts "now" by whole days; developer builds only
TIME_TRAVEL_ENABLED = APP_ENV != "production"

DEFAULT_TIMEZONE = "UTC"
DEVICE_TIMEZONE = os.getenv("SOBERLY_DEVICE_TIMEZONE") or os.getenv("TZ") or DEFAULT_TIMEZONE

def get_diagnostics():
    return {
        "Database": "SQLite (Default)" if "sqlite" in DATABASE_URL else "Postgres",
        "Environment": APP_ENV,
        "Time Travel": "Enabled" if TIME_TRAVEL_ENABLED else "Disabled",
        "Device Timezone": DEVICE_TIMEZONE,
    }
