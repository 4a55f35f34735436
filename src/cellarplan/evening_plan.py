"""
Evening Plan State Machine

Pure transitions over EveningPlan. Each function validates the transition,
then returns a new plan; persistence (and version checks) belong to the
store. States: active → completed | cancelled, both terminal.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from cellarplan.constants import PlanStatus
from cellarplan.error_handling import InvalidPosition, InvalidTransition
from cellarplan.lineup import serving_label
from cellarplan.schema import CollectionItem, EveningPlan, LineupSlot, SlotOutcome
from cellarplan.utils import safe_divide, utc_now


def _evolve(plan: EveningPlan, **changes: Any) -> EveningPlan:
    """Copy with changes, re-running model validation."""
    data = plan.model_dump()
    data.update(changes)
    return EveningPlan.model_validate(data)


def _require_active(plan: EveningPlan, action: str) -> None:
    if plan.status is not PlanStatus.ACTIVE:
        raise InvalidTransition(plan.id, plan.status.value, action)


def renumber(slots: Sequence[LineupSlot]) -> List[LineupSlot]:
    """Re-derive positions and labels from list order."""
    total = len(slots)
    return [
        slot.model_copy(update={'position': position, 'label': serving_label(position, total)})
        for position, slot in enumerate(slots, start=1)
    ]


def create_plan(
    owner_id: str,
    slots: Sequence[LineupSlot],
    occasion: Optional[str] = None,
    group_size: Optional[str] = None,
    settings: Optional[Dict[str, Any]] = None,
    plan_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EveningPlan:
    """
    New active plan with the cursor on the first pour.

    Raises:
        InvalidPosition: if the lineup is empty (no valid cursor exists)
    """
    if not slots:
        raise InvalidPosition("Cannot start a plan with an empty lineup")
    now = now or utc_now()
    return EveningPlan(
        owner_id=owner_id,
        status=PlanStatus.ACTIVE,
        plan_name=plan_name,
        occasion=occasion,
        group_size=group_size,
        settings=dict(settings or {}),
        queue=renumber(slots),
        now_playing_index=0,
        version=1,
        created_at=now,
        updated_at=now,
    )


def move(plan: EveningPlan, target_index: int, now: Optional[datetime] = None) -> EveningPlan:
    """
    Move the cursor. Out-of-range targets are rejected, never clamped.

    Raises:
        InvalidTransition, InvalidPosition
    """
    _require_active(plan, "move")
    if not 0 <= target_index < len(plan.queue):
        raise InvalidPosition(
            f"Target index {target_index} outside [0, {len(plan.queue) - 1}]",
            {"plan_id": plan.id, "target_index": target_index, "queue_length": len(plan.queue)},
        )
    return _evolve(plan, now_playing_index=target_index, updated_at=now or utc_now())


def advance(plan: EveningPlan, now: Optional[datetime] = None) -> EveningPlan:
    """Next pour."""
    return move(plan, plan.now_playing_index + 1, now=now)


def rewind(plan: EveningPlan, now: Optional[datetime] = None) -> EveningPlan:
    """Previous pour."""
    return move(plan, plan.now_playing_index - 1, now=now)


def update_queue(plan: EveningPlan, new_queue: Sequence[LineupSlot], now: Optional[datetime] = None) -> EveningPlan:
    """
    Replace the queue wholesale. Positions and labels follow the new order.

    Raises:
        InvalidTransition, InvalidPosition (empty queue, or cursor would fall outside it)
    """
    _require_active(plan, "update queue of")
    if not new_queue:
        raise InvalidPosition("Queue of an active plan cannot be empty", {"plan_id": plan.id})
    if plan.now_playing_index >= len(new_queue):
        raise InvalidPosition(
            f"Cursor {plan.now_playing_index} would fall outside a queue of {len(new_queue)}",
            {"plan_id": plan.id, "now_playing_index": plan.now_playing_index, "queue_length": len(new_queue)},
        )
    return _evolve(plan, queue=renumber(new_queue), updated_at=now or utc_now())


def swap_slot(plan: EveningPlan, position: int, item: CollectionItem, now: Optional[datetime] = None) -> EveningPlan:
    """
    Put a different bottle at a position, keeping the rest of the queue.

    Raises:
        InvalidTransition, InvalidPosition (unknown or locked position)
    """
    _require_active(plan, "swap a slot of")
    if not 1 <= position <= len(plan.queue):
        raise InvalidPosition(f"No slot at position {position}", {"plan_id": plan.id, "position": position})
    current = plan.queue[position - 1]
    if current.locked:
        raise InvalidPosition(f"Slot at position {position} is locked", {"plan_id": plan.id, "position": position})

    replacement = LineupSlot.from_item(item, position=position, label=current.label)
    new_queue = list(plan.queue)
    new_queue[position - 1] = replacement
    return update_queue(plan, new_queue, now=now)


def _validate_outcomes(plan: EveningPlan, outcomes: Sequence[SlotOutcome]) -> Dict[int, SlotOutcome]:
    by_position: Dict[int, SlotOutcome] = {}
    for outcome in outcomes:
        if not 1 <= outcome.position <= len(plan.queue):
            raise InvalidPosition(
                f"Outcome for unknown position {outcome.position}",
                {"plan_id": plan.id, "position": outcome.position},
            )
        if outcome.position in by_position:
            raise InvalidPosition(
                f"Duplicate outcome for position {outcome.position}",
                {"plan_id": plan.id, "position": outcome.position},
            )
        by_position[outcome.position] = outcome
    return by_position


def opened_outcomes(plan: EveningPlan, outcomes: Sequence[SlotOutcome]) -> List[tuple]:
    """
    (slot, outcome) pairs for every slot reported as opened, in queue order.

    Raises:
        InvalidTransition, InvalidPosition
    """
    _require_active(plan, "complete")
    by_position = _validate_outcomes(plan, outcomes)
    return [
        (slot, by_position[slot.position])
        for slot in plan.queue
        if slot.position in by_position and by_position[slot.position].opened
    ]


def apply_completion(
    plan: EveningPlan,
    outcomes: Sequence[SlotOutcome],
    now: Optional[datetime] = None,
) -> EveningPlan:
    """
    Terminal transition to completed with per-slot results and aggregates.

    Aggregates: total_bottles_opened (sum of opened quantities), wines_opened
    (opened slots), average_rating (over rated, opened slots; None if none).

    Raises:
        InvalidTransition, InvalidPosition
    """
    opened = opened_outcomes(plan, outcomes)
    opened_by_position = {slot.position: outcome for slot, outcome in opened}
    now = now or utc_now()

    queue = []
    for slot in plan.queue:
        outcome = opened_by_position.get(slot.position)
        if outcome is None:
            queue.append(slot.model_copy(update={'opened': False, 'opened_quantity': 0,
                                                 'user_rating': None, 'notes': None}))
        else:
            queue.append(slot.model_copy(update={'opened': True, 'opened_quantity': outcome.opened_quantity,
                                                 'user_rating': outcome.rating, 'notes': outcome.notes}))

    ratings = [outcome.rating for _, outcome in opened if outcome.rating is not None]
    average_rating = round(safe_divide(sum(ratings), len(ratings)), 2) if ratings else None

    return _evolve(
        plan,
        status=PlanStatus.COMPLETED,
        queue=queue,
        completed_at=now,
        updated_at=now,
        total_bottles_opened=sum(outcome.opened_quantity for _, outcome in opened),
        wines_opened=len(opened),
        average_rating=average_rating,
    )


def cancel(plan: EveningPlan, now: Optional[datetime] = None) -> EveningPlan:
    """
    Terminal transition to cancelled. No completion payload.

    Raises:
        InvalidTransition
    """
    _require_active(plan, "cancel")
    return _evolve(plan, status=PlanStatus.CANCELLED, updated_at=now or utc_now())


__all__ = [
    'create_plan',
    'move',
    'advance',
    'rewind',
    'update_queue',
    'swap_slot',
    'opened_outcomes',
    'apply_completion',
    'cancel',
    'renumber',
]
