"""
WineProfile Estimator

Returns the structure profile for a cellar item:
1. Stored branch: the previously computed profile, verbatim, when it is
   valid, internally consistent and (optionally) fresh
2. Heuristic branch: color baseline nudged by ABV, region, grapes and style

Pure function of its inputs: no I/O, no randomness, never raises.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from cellarplan.config import PROFILE_MAX_AGE_DAYS
from cellarplan.constants import (
    AlgorithmConstants,
    Confidence,
    FeatureRanges,
    HeuristicTables,
    ProfileSource,
    WineColor,
)
from cellarplan.schema import CollectionItem, WineProfile
from cellarplan.utils import clamp, logger

SCALAR_FIELDS = ('body', 'tannin', 'acidity', 'oak', 'sweetness')


def estimate_profile(item: CollectionItem, as_of: Optional[datetime] = None) -> WineProfile:
    """
    Get the wine profile for an item with graceful fallback.

    Args:
        item: Cellar item
        as_of: Reference time for the freshness check. When None, stored
            profiles are never considered stale.

    Returns:
        Complete, in-range WineProfile
    """
    stored = stored_profile(item, as_of=as_of)
    if stored is not None:
        return stored
    return heuristic_profile(item)


def stored_profile(item: CollectionItem, as_of: Optional[datetime] = None) -> Optional[WineProfile]:
    """Return the stored profile if it can be trusted, otherwise None."""
    if not item.wine_profile:
        return None
    raw = _fill_stored_gaps(item, item.wine_profile)

    try:
        profile = WineProfile.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Stored profile for item {item.id} is invalid, using heuristics: {e.error_count()} errors")
        return None

    # Power stored next to a null ABV cannot be checked against its inputs
    stored_power = raw.get('power')
    if stored_power is not None and item.wine_profile.get('alcohol_est') is not None:
        try:
            drift = abs(float(stored_power) - profile.power)
        except (TypeError, ValueError):
            drift = float('inf')
        if drift > AlgorithmConstants.POWER_CONSISTENCY_TOLERANCE:
            logger.warning(
                f"Stored profile for item {item.id} is inconsistent "
                f"(power {stored_power} vs {profile.power}), using heuristics"
            )
            return None

    if as_of is not None and item.wine_profile_updated_at is not None:
        age = _as_utc(as_of) - _as_utc(item.wine_profile_updated_at)
        if age >= timedelta(days=PROFILE_MAX_AGE_DAYS):
            logger.debug(f"Stored profile for item {item.id} is {age.days} days old, using heuristics")
            return None

    return profile


def _fill_stored_gaps(item: CollectionItem, raw: Dict[str, Any]) -> Dict[str, Any]:
    """Null ABV falls back to the bottle's ABV (or the color baseline); extra tags are dropped."""
    data = dict(raw)
    if data.get('alcohol_est') is None:
        if item.alcohol_abv is not None:
            data['alcohol_est'] = item.alcohol_abv
        else:
            color = item.color if isinstance(item.color, WineColor) else WineColor.RED
            data['alcohol_est'] = HeuristicTables.COLOR_BASELINES[color][5]

    tags = data.get('style_tags')
    if isinstance(tags, list) and len(tags) > HeuristicTables.MAX_STYLE_TAGS:
        data['style_tags'] = tags[:HeuristicTables.MAX_STYLE_TAGS]
    return data


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _apply(values: Dict[str, float], deltas: Dict[str, float]) -> None:
    for key, delta in deltas.items():
        values[key] += delta


def _matches(text: str, keywords) -> bool:
    return any(re.search(rf"\b{re.escape(keyword)}\b", text) for keyword in keywords)


def heuristic_profile(item: CollectionItem) -> WineProfile:
    """
    Generate heuristic profile based on wine metadata.

    Color sets the baseline; ABV, region, grapes and style then nudge it.
    Every scalar is clamped to [0, 10] at the end.
    """
    color = item.color if isinstance(item.color, WineColor) else WineColor.RED
    body, tannin, acidity, oak, sweetness, baseline_abv = HeuristicTables.COLOR_BASELINES[color]
    values = {'body': body, 'tannin': tannin, 'acidity': acidity, 'oak': oak, 'sweetness': sweetness}
    tags: List[str] = list(HeuristicTables.BASELINE_TAGS[color])

    # ABV: more alcohol reads as more body; hot reds also bring more grip
    alcohol_est = baseline_abv
    if item.alcohol_abv is not None:
        alcohol_est = item.alcohol_abv
        values['body'] += (item.alcohol_abv - baseline_abv) * HeuristicTables.ABV_BODY_PER_POINT
        if color is WineColor.RED and item.alcohol_abv >= HeuristicTables.HIGH_ABV_RED_THRESHOLD:
            values['tannin'] += (item.alcohol_abv - baseline_abv) * HeuristicTables.HIGH_ABV_RED_TANNIN_PER_POINT

    region = (item.region or '').lower()
    if region:
        for keywords, deltas, region_tags in HeuristicTables.REGION_NUDGES:
            if _matches(region, keywords):
                _apply(values, deltas)
                tags.extend(region_tags)
                break

    grapes = ' '.join(item.grapes).lower()
    if grapes:
        for keywords, deltas, overrides, grape_tags in HeuristicTables.GRAPE_NUDGES:
            if _matches(grapes, keywords):
                _apply(values, deltas)
                values.update(overrides)
                tags.extend(grape_tags)
                break

    style = (item.style or '').lower()
    if style:
        for keywords, deltas, style_tags in HeuristicTables.STYLE_NUDGES:
            if _matches(style, keywords):
                _apply(values, deltas)
                tags.extend(style_tags)

    for key in SCALAR_FIELDS:
        values[key] = round(clamp(values[key], FeatureRanges.MIN_FEATURE_VALUE, FeatureRanges.MAX_FEATURE_VALUE), 1)

    # Ensure at least 3 tags
    if len(tags) < 3:
        if values['body'] >= 7:
            tags.append('full-bodied')
        if values['tannin'] >= 7:
            tags.append('structured')
        if values['acidity'] >= 7:
            tags.append('fresh')

    confidence = Confidence.MED if (item.alcohol_abv is not None and region) else Confidence.LOW

    return WineProfile(
        **values,
        alcohol_est=clamp(alcohol_est, FeatureRanges.MIN_ABV, FeatureRanges.MAX_ABV),
        style_tags=list(dict.fromkeys(tags))[:HeuristicTables.MAX_STYLE_TAGS],
        confidence=confidence,
        source=ProfileSource.HEURISTIC,
    )


# Export key functions
__all__ = [
    'estimate_profile',
    'stored_profile',
    'heuristic_profile',
]
