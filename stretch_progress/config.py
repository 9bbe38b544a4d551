"""Configuration management"""
import os
from pathlib import Path
import pytz
from dotenv import load_dotenv

load_dotenv()

# Logging
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# Storage
DATA_PATH: Path = Path(os.getenv("DATA_PATH", "./data"))

# Calendar days ("today", "yesterday", week/month boundaries) are evaluated in this zone
TIMEZONE: str = os.getenv("TIMEZONE", "UTC")

# Persistent store behaviour
# - STORE_TIMEOUT_SECONDS: upper bound for a single load/save call
# - STORE_MAX_RETRIES: retries of a read-modify-write after a version conflict
# - STORE_RETRY_BASE_DELAY: first backoff delay, doubled per attempt
STORE_TIMEOUT_SECONDS: float = float(os.getenv("STORE_TIMEOUT_SECONDS", "5.0"))
STORE_MAX_RETRIES: int = int(os.getenv("STORE_MAX_RETRIES", "3"))
STORE_RETRY_BASE_DELAY: float = float(os.getenv("STORE_RETRY_BASE_DELAY", "0.05"))


# Validation
def validate_config() -> None:
    """Validate configuration values"""
    if STORE_TIMEOUT_SECONDS <= 0:
        raise ValueError("STORE_TIMEOUT_SECONDS must be positive")
    if STORE_MAX_RETRIES < 0:
        raise ValueError("STORE_MAX_RETRIES must not be negative")
    if STORE_RETRY_BASE_DELAY < 0:
        raise ValueError("STORE_RETRY_BASE_DELAY must not be negative")
    try:
        pytz.timezone(TIMEZONE)
    except pytz.exceptions.UnknownTimeZoneError as e:
        raise ValueError(f"TIMEZONE '{TIMEZONE}' is not a known time zone") from e
