"""
Cellarplan Constants and Enums

Centralized constants, enums, and magic values shared by the scorers,
the lineup composer and the evening plan state machine.
"""

from enum import Enum
from typing import Dict, Tuple


# =======================
# WINE ATTRIBUTE ENUMS
# =======================

class WineColor(str, Enum):
    """Wine color categories (as stored in the cellar)."""
    RED = "red"
    WHITE = "white"
    ROSE = "rose"
    SPARKLING = "sparkling"

    @classmethod
    def normalize(cls, value) -> 'WineColor':
        """Accept display spellings such as 'Rosé' or 'Red'."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower().replace("é", "e")
        return cls(text)


class Readiness(str, Enum):
    """Drinking-window classification produced by the readiness analysis."""
    READY = "READY"
    PEAK_SOON = "PEAK_SOON"
    HOLD = "HOLD"


class ProfileSource(str, Enum):
    AI = "ai"
    VIVINO = "vivino"
    HEURISTIC = "heuristic"


class Confidence(str, Enum):
    LOW = "low"
    MED = "med"
    HIGH = "high"


# =======================
# FOOD PROFILE ENUMS
# =======================

class Protein(str, Enum):
    """Main protein of the dish."""
    BEEF = "beef"
    LAMB = "lamb"
    CHICKEN = "chicken"
    FISH = "fish"
    VEGETARIAN = "vegetarian"
    NONE = "none"


class Level(str, Enum):
    """Three-step intensity scale used for fat, spice and smoke."""
    LOW = "low"
    MED = "med"
    HIGH = "high"


class Sauce(str, Enum):
    TOMATO = "tomato"
    BBQ = "bbq"
    CREAMY = "creamy"
    NONE = "none"


# Fat level implied by the protein when the caller does not set one
PROTEIN_FAT: Dict[Protein, Level] = {
    Protein.BEEF: Level.HIGH,
    Protein.LAMB: Level.HIGH,
    Protein.CHICKEN: Level.MED,
    Protein.FISH: Level.LOW,
    Protein.VEGETARIAN: Level.LOW,
    Protein.NONE: Level.LOW,
}


# =======================
# PLAN ENUMS
# =======================

class PlanStatus(str, Enum):
    """Evening plan lifecycle. COMPLETED and CANCELLED are terminal."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not PlanStatus.ACTIVE


class GroupSize(str, Enum):
    """Gathering size buckets."""
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"

    @classmethod
    def parse(cls, value) -> 'GroupSize':
        """Parse a bucket name or one of the UI aliases ("2-4", "5-8", "9+")."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        aliases = {"2-4": cls.SMALL, "5-8": cls.MEDIUM, "9+": cls.LARGE}
        if text in aliases:
            return aliases[text]
        return cls(text)


# =======================
# ALGORITHM CONSTANTS
# =======================

class AlgorithmConstants:
    """
    Scoring and ordering constants with documentation.
    """

    # READINESS TIERS
    # Jitter must stay below the smallest gap between adjacent tiers (10)
    READINESS_TIER_SCORES = {
        Readiness.READY: 100,
        Readiness.PEAK_SOON: 50,
        Readiness.HOLD: 10,
    }
    READINESS_UNKNOWN_SCORE = 0

    # OWNERSHIP DEPTH BONUS
    # 5 points per bottle owned, capped at 25 (five bottles)
    OWNERSHIP_BONUS_PER_BOTTLE = 5
    OWNERSHIP_BONUS_CAP = 25

    # FOOD PAIRING
    PAIRING_SCORE_MIN = 0
    PAIRING_SCORE_MAX = 40

    # POWER FORMULA
    # power = Σ weight * attribute, alcohol mapped to 0-10 first:
    #   alcohol_score = (abv - 9.0) * 2.0  → 9% = 0, 14% = 10
    POWER_WEIGHTS = {
        'body': 0.35,
        'tannin': 0.30,
        'oak': 0.15,
        'alcohol': 0.20,
    }
    ALCOHOL_POWER_FLOOR = 9.0
    ALCOHOL_POWER_SCALE = 2.0

    # Stored power may differ from the recomputed value by rounding only
    POWER_CONSISTENCY_TOLERANCE = 0.5

    # HEAVY POUR DEFINITION
    # Two heavy pours should not be served back-to-back
    HEAVY_TANNIN_THRESHOLD = 4.0
    HEAVY_OAK_THRESHOLD = 4.0


# =======================
# FEATURE RANGE CONSTANTS
# =======================

class FeatureRanges:
    """Valid ranges for profile scalars and user inputs."""

    MIN_FEATURE_VALUE = 0.0
    MAX_FEATURE_VALUE = 10.0

    MIN_ABV = 0.0
    MAX_ABV = 25.0

    MIN_VINTAGE = 1900
    MAX_VINTAGE = 2100

    MIN_USER_RATING = 1.0
    MAX_USER_RATING = 5.0

    MIN_COMMUNITY_RATING = 0.0
    MAX_COMMUNITY_RATING = 5.0


# =======================
# HEURISTIC PROFILE TABLES
# =======================

class HeuristicTables:
    """
    Lookup tables for the heuristic profile estimate (0-10 scale).

    Order of application: color baseline → ABV → region → grapes → style.
    """

    # (body, tannin, acidity, oak, sweetness, abv)
    COLOR_BASELINES: Dict[WineColor, Tuple[float, float, float, float, float, float]] = {
        WineColor.RED: (6.0, 6.0, 5.0, 4.0, 0.0, 13.5),
        WineColor.WHITE: (4.0, 1.0, 7.0, 2.0, 1.0, 12.5),
        WineColor.ROSE: (4.0, 2.0, 7.0, 1.0, 1.0, 12.0),
        WineColor.SPARKLING: (3.0, 0.0, 9.0, 1.0, 2.0, 12.0),
    }

    BASELINE_TAGS: Dict[WineColor, Tuple[str, ...]] = {
        WineColor.RED: ('red-wine',),
        WineColor.WHITE: ('white-wine',),
        WineColor.ROSE: ('rose',),
        WineColor.SPARKLING: ('sparkling', 'refreshing'),
    }

    # Body shift per ABV point away from the color baseline
    ABV_BODY_PER_POINT = 1.0
    # Reds at or above this ABV gain extra grip
    HIGH_ABV_RED_THRESHOLD = 14.0
    HIGH_ABV_RED_TANNIN_PER_POINT = 1.5

    # region keyword → (deltas, tags)
    REGION_NUDGES = (
        (('bordeaux', 'napa'), {'body': 2, 'tannin': 2, 'oak': 2}, ('structured', 'age-worthy')),
        (('burgundy', 'bourgogne', 'willamette'), {'body': -2, 'acidity': 2, 'oak': 2}, ('elegant', 'terroir-driven')),
        (('rioja', 'barolo'), {'tannin': 2, 'oak': 2}, ('traditional', 'complex')),
        (('rhone', 'rhône', 'barossa'), {'body': 2, 'oak': -2}, ('bold', 'fruit-forward')),
    )

    # grape keyword → (deltas, absolute overrides, tags)
    GRAPE_NUDGES = (
        (('cabernet', 'syrah', 'shiraz'), {'body': 2, 'tannin': 2}, {}, ('full-bodied', 'powerful')),
        (('pinot noir',), {'body': -2, 'tannin': -2, 'acidity': 2}, {}, ('elegant', 'silky')),
        (('merlot',), {}, {'body': 6.0, 'tannin': 6.0, 'oak': 6.0}, ('smooth', 'approachable')),
        (('sauvignon blanc', 'riesling'), {'acidity': 2}, {'oak': 1.0}, ('crisp', 'refreshing')),
        (('chardonnay',), {'body': 2, 'oak': 2}, {}, ('versatile',)),
    )

    # style keyword → (deltas, tags)
    # Keywords match whole words only ("port" is not "Oporto")
    STYLE_NUDGES = (
        (('reserva', 'reserve', 'réserve'), {'oak': 2, 'body': 2}, ('premium', 'age-worthy')),
        (('dessert', 'late harvest', 'port', 'sauternes', 'ice wine', 'icewine', 'eiswein'),
         {'sweetness': 6}, ('sweet',)),
    )

    MAX_STYLE_TAGS = 8


# =======================
# SERVING LABELS
# =======================

class ServingLabels:
    """Labels derived purely from a slot's position in the lineup."""

    SOLO = "Main"
    FIRST = "Warm-up"
    MIDDLE = "Mid"
    PENULTIMATE = "Main"
    LAST = "Finale"
    LAST_LARGE = "Grand Finale"

    # Lineups at least this long end on a "Grand Finale"
    GRAND_FINALE_MIN_TOTAL = 5
