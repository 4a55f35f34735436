"""
Utility functions for Cellarplan.

Includes logging setup, numeric helpers and clock access.
"""

import logging
from datetime import datetime, timezone

from cellarplan.config import LOG_LEVEL

# Configure logging
logging.basicConfig(
    level=getattr(logging, str(LOG_LEVEL).upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# =======================
# NUMERIC HELPERS
# =======================

def clamp(value: float, low: float, high: float) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Safely divide two numbers, handling zero division.

    Args:
        numerator: Number to divide
        denominator: Number to divide by
        default: Value to return if division by zero

    Returns:
        Result of division or default
    """
    if denominator == 0:
        logger.debug(f"Division by zero: {numerator}/{denominator}, returning {default}")
        return default
    return numerator / denominator


# =======================
# CLOCK
# =======================

def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)
