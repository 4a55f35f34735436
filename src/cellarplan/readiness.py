"""Readiness scorer: how much a bottle wants to be opened tonight."""

from cellarplan.constants import AlgorithmConstants
from cellarplan.schema import CollectionItem


def ownership_bonus(quantity: int) -> int:
    """More bottles of the same wine lowers the cost of opening one."""
    bonus = max(quantity, 0) * AlgorithmConstants.OWNERSHIP_BONUS_PER_BOTTLE
    return min(bonus, AlgorithmConstants.OWNERSHIP_BONUS_CAP)


def readiness_score(item: CollectionItem) -> int:
    """
    Drink-now score for an item.

    READY → 100, PEAK_SOON → 50, HOLD → 10, unknown → 0, plus an ownership
    bonus of 5 per bottle capped at 25. Zero-quantity items are filtered out
    by the composer before they get here.
    """
    if item.readiness is None:
        tier = AlgorithmConstants.READINESS_UNKNOWN_SCORE
    else:
        tier = AlgorithmConstants.READINESS_TIER_SCORES[item.readiness]
    return tier + ownership_bonus(item.quantity)


def min_tier_gap() -> int:
    """Smallest gap between adjacent readiness tiers (upper bound for jitter)."""
    tiers = sorted(
        set(AlgorithmConstants.READINESS_TIER_SCORES.values())
        | {AlgorithmConstants.READINESS_UNKNOWN_SCORE}
    )
    return min(b - a for a, b in zip(tiers, tiers[1:]))
