"""
Centralized Power Formula

SINGLE SOURCE OF TRUTH for the "power" ordering scalar and the heavy-pour
definition. The WineProfile model, the lineup composer and the CLI all call
into this module instead of re-deriving the weights.
"""

from typing import Dict, Mapping, Union

from cellarplan.constants import AlgorithmConstants, FeatureRanges
from cellarplan.utils import clamp


def alcohol_score(alcohol_est: float) -> float:
    """Map an ABV estimate onto the 0-10 feature scale (9% → 0, 14% → 10)."""
    raw = (alcohol_est - AlgorithmConstants.ALCOHOL_POWER_FLOOR) * AlgorithmConstants.ALCOHOL_POWER_SCALE
    return clamp(raw, FeatureRanges.MIN_FEATURE_VALUE, FeatureRanges.MAX_FEATURE_VALUE)


def calculate_power(body: float, tannin: float, oak: float, alcohol_est: float) -> float:
    """
    Calculate the power scalar used to sequence a lineup from light to bold.

    Formula:
        power = w_body * body + w_tannin * tannin + w_oak * oak + w_alcohol * alcohol_score

    The weights sum to 1 and every term is on the 0-10 scale, so power is
    in [0, 10] and non-decreasing in each input.

    Returns:
        Power rounded to one decimal
    """
    weights = AlgorithmConstants.POWER_WEIGHTS
    power = (
        weights['body'] * body
        + weights['tannin'] * tannin
        + weights['oak'] * oak
        + weights['alcohol'] * alcohol_score(alcohol_est)
    )
    return round(clamp(power, FeatureRanges.MIN_FEATURE_VALUE, FeatureRanges.MAX_FEATURE_VALUE), 1)


def is_heavy(profile: Union[Mapping[str, float], object]) -> bool:
    """A pour is heavy when both tannin and oak reach their thresholds."""
    if isinstance(profile, Mapping):
        tannin = profile.get('tannin', 0)
        oak = profile.get('oak', 0)
    else:
        tannin = getattr(profile, 'tannin', 0)
        oak = getattr(profile, 'oak', 0)
    return (
        tannin >= AlgorithmConstants.HEAVY_TANNIN_THRESHOLD
        and oak >= AlgorithmConstants.HEAVY_OAK_THRESHOLD
    )


def count_heavy_adjacent(heavy_flags) -> int:
    """Number of consecutive (i, i+1) pairs where both pours are heavy."""
    flags = list(heavy_flags)
    return sum(1 for left, right in zip(flags, flags[1:]) if left and right)


def power_breakdown(body: float, tannin: float, oak: float, alcohol_est: float) -> Dict[str, float]:
    """Per-term contributions to power (for explanations in the CLI)."""
    weights = AlgorithmConstants.POWER_WEIGHTS
    return {
        'body': round(weights['body'] * body, 2),
        'tannin': round(weights['tannin'] * tannin, 2),
        'oak': round(weights['oak'] * oak, 2),
        'alcohol': round(weights['alcohol'] * alcohol_score(alcohol_est), 2),
    }


# Export key functions
__all__ = [
    'alcohol_score',
    'calculate_power',
    'is_heavy',
    'count_heavy_adjacent',
    'power_breakdown',
]
