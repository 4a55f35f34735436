"""
Cellarplan Configuration
Centralized settings for the application
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Database Configuration
DATABASE_URL = os.getenv("DATABASE_URL")
DB_POOL_MIN_SIZE = 1
DB_POOL_MAX_SIZE = 5

# Supabase Configuration (collection reads through the REST client)
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Logging
LOG_LEVEL = os.getenv("CELLARPLAN_LOG_LEVEL", "INFO")

# Lineup Composition
GROUP_SIZE_COUNTS = {
    "small": 3,
    "medium": 4,
    "large": 5,
}
DEFAULT_GROUP_SIZE = "medium"
JITTER_MAX = float(os.getenv("CELLARPLAN_JITTER_MAX", "10.0"))

# Optional JSON file overriding the default food pairing rule table
PAIRING_RULES_PATH = os.getenv("CELLARPLAN_PAIRING_RULES")

# Candidate Filters
HIGH_RATING_THRESHOLD = 4.2  # "High rating only" toggle
MAX_ALTERNATIVES = 6  # Swap suggestions shown per slot

# Wine Profiles
PROFILE_MAX_AGE_DAYS = 30  # Stored profiles older than this are re-estimated

# Plan Creation
CREATE_PLAN_MAX_ATTEMPTS = 3  # Retries when a concurrent creator wins the race
