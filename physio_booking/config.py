"""Runtime settings for the booking service, read from the environment."""
from __future__ import annotations
import logging
import os
from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REFRESH_TOKEN = os.getenv("GOOGLE_REFRESH_TOKEN")
GOOGLE_TOKEN_URL = os.getenv("GOOGLE_TOKEN_URL", "https://oauth2.googleapis.com/token")
GOOGLE_CALENDAR_API = os.getenv("GOOGLE_CALENDAR_API", "https://www.googleapis.com/calendar/v3")
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")

CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "America/New_York")
SITE_URL = os.getenv("SITE_URL", "http://localhost:5173")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", SITE_URL).split(",") if o.strip()]

# httpx timeout applied to every calendar request
CALENDAR_TIMEOUT_SECONDS = float(os.getenv("CALENDAR_TIMEOUT_SECONDS", "15"))

BUSINESS_START_HOUR = _get_int("BUSINESS_START_HOUR", 9)
BUSINESS_END_HOUR = _get_int("BUSINESS_END_HOUR", 17)
LUNCH_HOUR = _get_int("LUNCH_HOUR", 12)
SLOT_INTERVAL_MINUTES = _get_int("SLOT_INTERVAL_MINUTES", 60)
MIN_DURATION_MINUTES = _get_int("MIN_DURATION_MINUTES", 15)
MAX_DURATION_MINUTES = _get_int("MAX_DURATION_MINUTES", 180)
DEFAULT_DURATION_MINUTES = _get_int("DEFAULT_DURATION_MINUTES", 60)
# widest date range a single slot listing may cover
MAX_SLOT_RANGE_DAYS = _get_int("MAX_SLOT_RANGE_DAYS", 90)

RETRY_MAX_ATTEMPTS = _get_int("RETRY_MAX_ATTEMPTS", 3)
RETRY_BASE_DELAY_SECONDS = float(os.getenv("RETRY_BASE_DELAY_SECONDS", "1.0"))

# False keeps the event and flips its status property instead
CANCEL_DELETES_EVENT = _get_bool(os.getenv("CANCEL_DELETES_EVENT"), default=True)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def missing_google_credentials() -> list[str]:
    """Names of the OAuth variables that are not set."""
    required = {
        "GOOGLE_CLIENT_ID": GOOGLE_CLIENT_ID,
        "GOOGLE_CLIENT_SECRET": GOOGLE_CLIENT_SECRET,
        "GOOGLE_REFRESH_TOKEN": GOOGLE_REFRESH_TOKEN,
    }
    return [name for name, value in required.items() if not value]


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
