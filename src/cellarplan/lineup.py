"""
Lineup Composer: picks and sequences the wines for one evening.

Pipeline:
1. Score every available candidate: readiness + food pairing + jitter
2. Keep the top N by score (never padded)
3. Order the selection by power, lightest first
4. Single repair pass to break up back-to-back heavy pours
5. Label each slot from its final position

Jitter is the only source of randomness and is bounded below the smallest
gap between readiness tiers, so it reshuffles ties without overriding them.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from cellarplan.config import DEFAULT_GROUP_SIZE, GROUP_SIZE_COUNTS, JITTER_MAX
from cellarplan.constants import GroupSize, ServingLabels
from cellarplan.food_pairing import PairingRule, food_pairing_score, get_pairing_rules
from cellarplan.power_formula import count_heavy_adjacent, is_heavy
from cellarplan.readiness import min_tier_gap, readiness_score
from cellarplan.schema import CandidateScore, CollectionItem, FoodProfile, Lineup, LineupSlot
from cellarplan.utils import logger
from cellarplan.wine_profile import estimate_profile

SCORE_COLUMNS = ['item_id', 'readiness', 'pairing', 'jitter', 'total', 'power', 'heavy']


def target_count_for_group(group_size: Union[str, GroupSize, None]) -> int:
    """Number of wines for a group size bucket (or UI alias like '5-8')."""
    if group_size is None:
        return GROUP_SIZE_COUNTS[DEFAULT_GROUP_SIZE]
    try:
        bucket = GroupSize.parse(group_size)
    except ValueError:
        logger.warning(f"Unknown group size {group_size!r}, using {DEFAULT_GROUP_SIZE}")
        return GROUP_SIZE_COUNTS[DEFAULT_GROUP_SIZE]
    return GROUP_SIZE_COUNTS.get(bucket.value, GROUP_SIZE_COUNTS[DEFAULT_GROUP_SIZE])


def serving_label(position: int, total: int) -> str:
    """Serving label derived purely from a 1-based position."""
    if total <= 1:
        return ServingLabels.SOLO
    if position == 1:
        return ServingLabels.FIRST
    if position == total:
        return ServingLabels.LAST_LARGE if total >= ServingLabels.GRAND_FINALE_MIN_TOTAL else ServingLabels.LAST
    if position == total - 1:
        return ServingLabels.PENULTIMATE
    return ServingLabels.MIDDLE


def repair_heavy_adjacency(order: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Best-effort, single-pass repair of back-to-back heavy pours.

    Scans consecutive triples (i, i+1, i+2). When i and i+1 are both heavy
    and i+2 is not, swaps i+1 and i+2, but only if that strictly lowers the
    number of heavy-adjacent pairs and neither slot is locked.

    Limitation: pools dominated by heavy wines (e.g. all heavy) are returned
    unchanged. Each index is visited once, so this always terminates.

    Args:
        order: Slot records with at least 'heavy' (and optionally 'locked')

    Returns:
        New list with the repaired order
    """
    result = list(order)
    for i in range(len(result) - 2):
        first, second, third = result[i], result[i + 1], result[i + 2]
        if not (first['heavy'] and second['heavy']) or third['heavy']:
            continue
        if second.get('locked') or third.get('locked'):
            continue

        candidate = result[:i + 1] + [third, second] + result[i + 3:]
        before = count_heavy_adjacent(r['heavy'] for r in result)
        after = count_heavy_adjacent(r['heavy'] for r in candidate)
        if after < before:
            logger.debug(f"Swapped positions {i + 2} and {i + 3} to separate heavy pours")
            result = candidate
    return result


class LineupComposer:
    """
    Ranks cellar candidates and sequences a lineup.

    Scoring is pure apart from the jitter term, which comes from an injectable
    numpy Generator (pass ``seed`` or ``rng`` for reproducible output).
    """

    def __init__(
        self,
        rules: Optional[Sequence[PairingRule]] = None,
        jitter_max: float = JITTER_MAX,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
    ):
        """
        Initialize the composer

        Args:
            rules: Food pairing rule table (defaults to the configured table)
            jitter_max: Upper bound (exclusive) of the tie-breaking jitter
            rng: Random generator for jitter
            seed: Seed used when no rng is given

        Raises:
            ValueError: if jitter could outweigh a readiness tier
        """
        gap = min_tier_gap()
        if jitter_max < 0 or jitter_max > gap:
            raise ValueError(f"jitter_max must be in [0, {gap}], got {jitter_max}")

        self.rules = list(get_pairing_rules() if rules is None else rules)
        self.jitter_max = jitter_max
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def _draw_jitter(self) -> float:
        if self.jitter_max == 0:
            return 0.0
        return float(self.rng.uniform(0.0, self.jitter_max))

    def score_candidates(
        self,
        candidates: Sequence[CollectionItem],
        food: Optional[FoodProfile] = None,
        as_of: Optional[datetime] = None,
    ) -> pd.DataFrame:
        """
        Score every eligible candidate.

        Zero-quantity items and repeated ids never enter the pool.

        Returns:
            DataFrame with SCORE_COLUMNS, one row per eligible candidate,
            in input order
        """
        rows = []
        seen = set()
        for item in candidates:
            if item.quantity <= 0 or item.id in seen:
                continue
            seen.add(item.id)

            profile = estimate_profile(item, as_of=as_of)
            readiness = readiness_score(item)
            pairing = food_pairing_score(profile, food, self.rules)
            jitter = self._draw_jitter()
            rows.append({
                'item_id': item.id,
                'readiness': readiness,
                'pairing': pairing,
                'jitter': jitter,
                'total': readiness + pairing + jitter,
                'power': profile.power,
                'heavy': is_heavy(profile),
            })

        return pd.DataFrame(rows, columns=SCORE_COLUMNS)

    def compose(
        self,
        candidates: Sequence[CollectionItem],
        target_count: int,
        food: Optional[FoodProfile] = None,
        as_of: Optional[datetime] = None,
    ) -> Lineup:
        """
        Compose an ordered lineup.

        Args:
            candidates: Pre-filtered cellar items
            target_count: Desired number of wines
            food: Optional dish profile
            as_of: Reference time for stored-profile freshness

        Returns:
            Lineup (empty when nothing qualifies; never raises for that)
        """
        items: Dict[str, CollectionItem] = {}
        for item in candidates:
            items.setdefault(item.id, item)

        scored = self.score_candidates(candidates, food=food, as_of=as_of)
        if scored.empty or target_count <= 0:
            logger.info(f"Nothing qualifies for a lineup ({len(scored)} eligible candidates)")
            return Lineup(target_count=max(target_count, 0), candidate_count=len(scored))

        # Stable sorts keep input order for exact ties
        top = scored.sort_values('total', ascending=False, kind='mergesort').head(target_count)
        by_power = top.sort_values('power', ascending=True, kind='mergesort')

        order = repair_heavy_adjacency(by_power.to_dict('records'))

        total = len(order)
        slots = []
        scores = []
        for position, record in enumerate(order, start=1):
            slots.append(LineupSlot.from_item(
                items[record['item_id']],
                position=position,
                label=serving_label(position, total),
            ))
            scores.append(CandidateScore(
                item_id=str(record['item_id']),
                readiness=int(record['readiness']),
                pairing=int(record['pairing']),
                jitter=float(record['jitter']),
                total=float(record['total']),
                power=float(record['power']),
                heavy=bool(record['heavy']),
            ))

        logger.info(f"Composed lineup of {total}/{target_count} wines from {len(scored)} candidates")
        return Lineup(slots=slots, scores=scores, target_count=target_count, candidate_count=len(scored))


__all__ = [
    'LineupComposer',
    'repair_heavy_adjacency',
    'serving_label',
    'target_count_for_group',
]
