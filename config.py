# config.py
# Role: Environment-driven settings for the finance hub.
#       Loads .env, resolves the database URL, the virtual expansion knobs,
#       and the logging configuration shared by the app and scripts.

"""
Application settings.

All values come from environment variables (optionally via a .env file).
"""

import logging
import logging.config
import os

from dotenv import load_dotenv

load_dotenv()


def _env_truthy(name: str, default: str = "0") -> bool:
    v = os.getenv(name, default)
    return str(v).strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# -------------------------------------------------------------------
# Database
# -------------------------------------------------------------------

# Base directory of the project (where this module lives)
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Folder for the default SQLite DB
DB_DIR = os.path.join(BASE_DIR, "database")

DATABASE_URL = os.getenv("DATABASE_URL") or f"sqlite:///{os.path.join(DB_DIR, 'finance.db')}"

if DATABASE_URL.startswith("sqlite:///") and not os.getenv("DATABASE_URL"):
    os.makedirs(DB_DIR, exist_ok=True)

# -------------------------------------------------------------------
# Virtual transactions
# -------------------------------------------------------------------

# Series stop producing occurrences once they run this many years past the anchor year
MAX_LOOKAHEAD_YEARS = _env_int("VIRTUAL_MAX_LOOKAHEAD_YEARS", 10)

# Off: synthetic occurrences keep the PENDING status they are generated with
DERIVE_OVERDUE_STATUS = _env_truthy("VIRTUAL_DERIVE_OVERDUE", "0")

# -------------------------------------------------------------------
# Logging
# -------------------------------------------------------------------

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(module)s.%(funcName)s:%(lineno)d - %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
}


def configure_logging() -> None:
    """Apply LOGGING_CONFIG. Safe to call more than once."""
    logging.config.dictConfig(LOGGING_CONFIG)
