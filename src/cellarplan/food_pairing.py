"""
Food Pairing Scorer

Scores how well a wine profile fits the dish using a tunable rule table.
Each rule says: "when the food looks like X, a wine whose <attribute> lies
in [minimum, maximum] earns <points>". Weights are data, not control flow,
so they can be tuned (or loaded from JSON) without touching the composer.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Dict, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from cellarplan.config import PAIRING_RULES_PATH
from cellarplan.constants import AlgorithmConstants, Protein
from cellarplan.schema import FoodProfile, WineProfile
from cellarplan.utils import clamp, logger

FOOD_FIELDS = ('protein', 'fat', 'sauce', 'spice', 'smoke')


class PairingRule(BaseModel):
    """One row of the pairing table."""

    name: str
    when: Dict[str, List[str]] = Field(..., description="FoodProfile field → allowed values (all must match)")
    attribute: Literal['body', 'tannin', 'oak', 'acidity', 'sweetness']
    minimum: Optional[float] = Field(None, ge=0.0, le=10.0)
    maximum: Optional[float] = Field(None, ge=0.0, le=10.0)
    points: int

    @field_validator('when')
    @classmethod
    def _known_food_fields(cls, value: Dict[str, List[str]]) -> Dict[str, List[str]]:
        unknown = set(value) - set(FOOD_FIELDS)
        if unknown:
            raise ValueError(f"unknown food fields: {sorted(unknown)}")
        return value

    def applies_to(self, food: FoodProfile) -> bool:
        for field, allowed in self.when.items():
            value = getattr(food, field)
            if isinstance(value, Enum):
                value = value.value
            if value not in allowed:
                return False
        return True

    def rewards(self, profile: WineProfile) -> bool:
        value = getattr(profile, self.attribute)
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True


def _rule(name, when, attribute, points, minimum=None, maximum=None) -> PairingRule:
    return PairingRule(name=name, when=when, attribute=attribute, minimum=minimum, maximum=maximum, points=points)


RED_MEAT = ['beef', 'lamb']

# Weights are illustrative starting points; tune via CELLARPLAN_PAIRING_RULES
DEFAULT_PAIRING_RULES: Tuple[PairingRule, ...] = (
    # Rich red meat wants structure
    _rule('fatty-red-meat-body', {'protein': RED_MEAT, 'fat': ['high']}, 'body', 10, minimum=7),
    _rule('fatty-red-meat-tannin', {'protein': RED_MEAT, 'fat': ['high']}, 'tannin', 10, minimum=6),
    _rule('fatty-red-meat-acidity', {'protein': RED_MEAT, 'fat': ['high']}, 'acidity', 4, minimum=5),
    _rule('fatty-red-meat-thin', {'protein': RED_MEAT, 'fat': ['high']}, 'body', -8, maximum=4.9),
    _rule('red-meat-body', {'protein': RED_MEAT}, 'body', 4, minimum=6),
    _rule('red-meat-tannin', {'protein': RED_MEAT}, 'tannin', 4, minimum=5),

    # Heat: soft tannins, fresh acid or a touch of sugar
    _rule('spicy-sweetness', {'spice': ['high']}, 'sweetness', 8, minimum=2),
    _rule('spicy-soft-tannin', {'spice': ['high']}, 'tannin', 6, maximum=3),
    _rule('spicy-acidity', {'spice': ['high']}, 'acidity', 4, minimum=7),
    _rule('spicy-hard-tannin', {'spice': ['high']}, 'tannin', -8, minimum=7),
    _rule('medium-spice-soft-tannin', {'spice': ['med']}, 'tannin', 3, maximum=5),

    # Smoke and barbecue want oak and weight
    _rule('smoke-oak', {'smoke': ['high']}, 'oak', 8, minimum=6),
    _rule('smoke-body', {'smoke': ['high']}, 'body', 5, minimum=7),
    _rule('smoke-unoaked', {'smoke': ['high']}, 'oak', -6, maximum=3),
    _rule('bbq-oak', {'sauce': ['bbq']}, 'oak', 5, minimum=6),
    _rule('bbq-body', {'sauce': ['bbq']}, 'body', 5, minimum=7),

    # Delicate proteins want freshness and little tannin
    _rule('fish-acidity', {'protein': ['fish']}, 'acidity', 10, minimum=7),
    _rule('fish-light-body', {'protein': ['fish']}, 'body', 6, maximum=4),
    _rule('fish-restrained-oak', {'protein': ['fish']}, 'oak', 4, maximum=5),
    _rule('fish-tannin', {'protein': ['fish']}, 'tannin', -10, minimum=5),
    _rule('vegetarian-acidity', {'protein': ['vegetarian']}, 'acidity', 8, minimum=6),
    _rule('vegetarian-soft-tannin', {'protein': ['vegetarian']}, 'tannin', 6, maximum=4),
    _rule('vegetarian-medium-body', {'protein': ['vegetarian']}, 'body', 4, minimum=3, maximum=7),
    _rule('chicken-medium-body', {'protein': ['chicken']}, 'body', 8, minimum=4, maximum=8),
    _rule('chicken-acidity', {'protein': ['chicken']}, 'acidity', 8, minimum=6),
    _rule('chicken-moderate-tannin', {'protein': ['chicken']}, 'tannin', 4, maximum=6),

    # Sauces
    _rule('tomato-acidity', {'sauce': ['tomato']}, 'acidity', 8, minimum=7),
    _rule('tomato-medium-body', {'sauce': ['tomato']}, 'body', 4, minimum=4, maximum=8),
    _rule('tomato-flat', {'sauce': ['tomato']}, 'acidity', -6, maximum=4.9),
    _rule('creamy-body', {'sauce': ['creamy']}, 'body', 6, minimum=6),
    _rule('creamy-acidity', {'sauce': ['creamy']}, 'acidity', 6, minimum=6),
    _rule('creamy-oak', {'sauce': ['creamy']}, 'oak', 3, minimum=4),
)


_RULES_ADAPTER = TypeAdapter(List[PairingRule])


def load_pairing_rules(path: Union[str, Path]) -> List[PairingRule]:
    """
    Load a pairing rule table from a JSON file (a list of rule objects).

    Raises:
        FileNotFoundError, pydantic.ValidationError on a malformed table
    """
    with open(path, 'r') as f:
        data = json.load(f)
    rules = _RULES_ADAPTER.validate_python(data)
    logger.info(f"Loaded {len(rules)} pairing rules from {path}")
    return rules


def get_pairing_rules() -> Sequence[PairingRule]:
    """Configured rule table: the JSON override when set, else the defaults."""
    if PAIRING_RULES_PATH:
        return load_pairing_rules(PAIRING_RULES_PATH)
    return DEFAULT_PAIRING_RULES


def matching_rules(
    profile: WineProfile,
    food: Optional[FoodProfile],
    rules: Optional[Sequence[PairingRule]] = None,
) -> List[PairingRule]:
    """Rules that fire for this wine and dish."""
    if food is None or food.protein is Protein.NONE:
        return []
    table = DEFAULT_PAIRING_RULES if rules is None else rules
    return [rule for rule in table if rule.applies_to(food) and rule.rewards(profile)]


def food_pairing_score(
    profile: WineProfile,
    food: Optional[FoodProfile],
    rules: Optional[Sequence[PairingRule]] = None,
) -> int:
    """
    Calculate food pairing score.

    Args:
        profile: Wine profile
        food: Dish profile; None or protein 'none' skips pairing (score 0)
        rules: Rule table (defaults to DEFAULT_PAIRING_RULES)

    Returns:
        Integer in [0, 40]; higher is a better fit
    """
    fired = matching_rules(profile, food, rules)
    if not fired:
        return 0
    raw = sum(rule.points for rule in fired)
    return int(clamp(raw, AlgorithmConstants.PAIRING_SCORE_MIN, AlgorithmConstants.PAIRING_SCORE_MAX))


# Export key functions
__all__ = [
    'PairingRule',
    'DEFAULT_PAIRING_RULES',
    'load_pairing_rules',
    'get_pairing_rules',
    'matching_rules',
    'food_pairing_score',
]
