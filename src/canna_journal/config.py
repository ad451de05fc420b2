"""
Configuration constants for the cannabis journal.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_bool_env(key: str, default: bool) -> bool:
    """Parse a boolean flag ("1", "true", "yes", "on" / "0", "false", "no", "off")."""
    raw = os.environ.get(key)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    logger.warning(f"Invalid {key}='{raw}', using default {default}")
    return default


# Database Configuration
DB_PATH = Path(os.environ.get("CANNA_JOURNAL_DB", "data/journal.db"))
DB_BUSY_TIMEOUT_MS = _get_int_env("CANNA_JOURNAL_BUSY_TIMEOUT_MS", 5000, min_val=0)

# Retry on "database is locked"
MAX_WRITE_RETRIES = _get_int_env("CANNA_JOURNAL_WRITE_RETRIES", 3, min_val=1)
WRITE_RETRY_DELAY = _get_float_env("CANNA_JOURNAL_WRITE_RETRY_DELAY", 0.1, min_val=0.0)

# Recommendation gate
MIN_ENTRIES_FOR_RECOMMENDATIONS = 3
NOT_ENOUGH_DATA_MESSAGE = (
    "Keep logging your experiences! We need at least 3 entries "
    "to provide personalized recommendations."
)
DEFAULT_RECOMMENDATION_LIMIT = _get_int_env("CANNA_JOURNAL_RECOMMENDATION_LIMIT", 5, min_val=1)

# Preference learning
HIGH_RATING_THRESHOLD = 4  # Entries rated 4-5 feed the preference profile
TOP_EFFECTS = 5
TOP_CANNABINOIDS = 3
TOP_TERPENES = 5

# Rating bounds
MIN_RATING = 1
MAX_RATING = 5

# Statistics: whether an unrated entry (rating 0) still counts toward averages
COUNT_UNRATED_ENTRIES = _get_bool_env("CANNA_JOURNAL_COUNT_UNRATED", True)

# Scorer weights
TRIED_BEFORE_MULTIPLIER = 10.0   # mean past rating x 10
CANNABINOID_MATCH_WEIGHT = 0.3
TERPENE_MATCH_WEIGHT = 0.5       # terpenes outweigh cannabinoids
STRAIN_MATCH_BONUS = 5.0

# Presentation: assumed score ceiling when rendering a match percentage
SCORE_DISPLAY_MAX = 50.0

# Label parsing
UNKNOWN_PRODUCT_NAME = "Unknown Product"
LABEL_NAME_SCAN_LINES = 5
MENTIONED_TERPENE_DEFAULT = 1.0  # Terpene named on a label without an amount

# Import/export
IMPORT_CHUNK_SIZE = 500
