"""
Evening Planner

Facade over the composer, the plan state machine and a CellarStore. This is
the surface a UI or API layer talks to.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from cellarplan import evening_plan
from cellarplan.config import MAX_ALTERNATIVES
from cellarplan.constants import PlanStatus
from cellarplan.error_handling import ConflictError, InsufficientQuantity, InvalidPosition
from cellarplan.lineup import LineupComposer, target_count_for_group
from cellarplan.readiness import readiness_score
from cellarplan.schema import (
    CollectionFilters,
    CollectionItem,
    EveningPlan,
    FoodProfile,
    Lineup,
    LineupSlot,
    SlotOutcome,
)
from cellarplan.stores import CellarStore
from cellarplan.utils import logger, utc_now


class EveningPlanner:
    """
    Compose lineups and drive evening plans against a store.

    Every plan mutation re-reads the plan, applies a pure transition and
    saves it with a version check. Passing ``expected_version`` lets a client
    detect that someone else changed the plan since it last looked.
    """

    def __init__(
        self,
        store: CellarStore,
        composer: Optional[LineupComposer] = None,
        clock: Callable = utc_now,
    ):
        self.store = store
        self.composer = composer or LineupComposer()
        self.clock = clock

    # =======================
    # COMPOSITION
    # =======================

    def compose_lineup(
        self,
        owner_id: str,
        group_size: Optional[str] = None,
        filters: Optional[CollectionFilters] = None,
        food: Optional[FoodProfile] = None,
    ) -> Lineup:
        """Ordered lineup for tonight. Check ``is_empty`` before starting a plan."""
        candidates = self.store.list_available_items(owner_id, filters or CollectionFilters())
        target = target_count_for_group(group_size)
        lineup = self.composer.compose(candidates, target, food=food, as_of=self.clock())
        if lineup.is_empty:
            logger.info(f"No lineup for {owner_id}: {lineup.reason}")
        return lineup

    # =======================
    # PLAN LIFECYCLE
    # =======================

    def start_plan(
        self,
        owner_id: str,
        lineup: Union[Lineup, Sequence[LineupSlot]],
        occasion: Optional[str] = None,
        group_size: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
        plan_name: Optional[str] = None,
    ) -> EveningPlan:
        """
        Start a plan from a lineup, cancelling any plan already active.

        Raises:
            InvalidPosition: if the lineup is empty
        """
        slots = lineup.slots if isinstance(lineup, Lineup) else list(lineup)
        plan = evening_plan.create_plan(
            owner_id,
            slots,
            occasion=occasion,
            group_size=group_size,
            settings=settings,
            plan_name=plan_name,
            now=self.clock(),
        )
        created = self.store.create_plan_replacing_active(plan)
        logger.info(f"Started plan {created.id} for {owner_id} with {len(created.queue)} wines")
        return created

    def get_active_plan(self, owner_id: str) -> Optional[EveningPlan]:
        return self.store.load_active_plan(owner_id)

    def get_completed_plans(self, owner_id: str) -> List[EveningPlan]:
        """Completed plans, newest first."""
        return self.store.list_plans(owner_id, PlanStatus.COMPLETED)

    def _load(self, plan_id: str, expected_version: Optional[int]) -> EveningPlan:
        plan = self.store.load_plan(plan_id)
        if expected_version is not None and plan.version != expected_version:
            raise ConflictError(plan_id, expected_version, plan.version)
        return plan

    def _transition(
        self,
        plan_id: str,
        expected_version: Optional[int],
        change: Callable[[EveningPlan], EveningPlan],
    ) -> EveningPlan:
        plan = self._load(plan_id, expected_version)
        return self.store.save_plan(change(plan), expected_version=plan.version)

    def move_plan_cursor(self, plan_id: str, target_index: int, expected_version: Optional[int] = None) -> EveningPlan:
        return self._transition(
            plan_id, expected_version,
            lambda plan: evening_plan.move(plan, target_index, now=self.clock()),
        )

    def advance_plan(self, plan_id: str, expected_version: Optional[int] = None) -> EveningPlan:
        return self._transition(plan_id, expected_version, lambda plan: evening_plan.advance(plan, now=self.clock()))

    def rewind_plan(self, plan_id: str, expected_version: Optional[int] = None) -> EveningPlan:
        return self._transition(plan_id, expected_version, lambda plan: evening_plan.rewind(plan, now=self.clock()))

    def update_plan_queue(
        self,
        plan_id: str,
        new_queue: Sequence[LineupSlot],
        expected_version: Optional[int] = None,
    ) -> EveningPlan:
        return self._transition(
            plan_id, expected_version,
            lambda plan: evening_plan.update_queue(plan, new_queue, now=self.clock()),
        )

    def cancel_plan(self, plan_id: str, expected_version: Optional[int] = None) -> None:
        cancelled = self._transition(
            plan_id, expected_version,
            lambda plan: evening_plan.cancel(plan, now=self.clock()),
        )
        logger.info(f"Cancelled plan {cancelled.id}")

    def complete_plan(
        self,
        plan_id: str,
        outcomes: Sequence[Union[SlotOutcome, Mapping[str, Any]]],
        expected_version: Optional[int] = None,
    ) -> EveningPlan:
        """
        Complete a plan in one unit of work.

        Writes, in order: one history record per opened slot, one inventory
        decrement per opened slot, then the completed plan. If any step
        fails nothing is kept and the plan stays active.

        Raises:
            InvalidTransition, InvalidPosition, InsufficientQuantity,
            ConflictError, PlanNotFound, StoreUnavailable
        """
        outcomes = [SlotOutcome.model_validate(outcome) for outcome in outcomes]
        now = self.clock()

        with self.store.transaction():
            plan = self._load(plan_id, expected_version)
            opened = evening_plan.opened_outcomes(plan, outcomes)
            completed = evening_plan.apply_completion(plan, outcomes, now=now)

            for slot, outcome in opened:
                self.store.record_opening(
                    plan.owner_id, slot.item_id, outcome.opened_quantity,
                    outcome.rating, outcome.notes, now, plan_id=plan.id,
                )
            for slot, outcome in opened:
                self.store.decrement_quantity(plan.owner_id, slot.item_id, outcome.opened_quantity)

            saved = self.store.save_plan(completed, expected_version=plan.version)

        logger.info(
            f"Completed plan {saved.id}: {saved.wines_opened} wines, "
            f"{saved.total_bottles_opened} bottles, average rating {saved.average_rating}"
        )
        return saved

    # =======================
    # SWAPS
    # =======================

    def suggest_alternatives(
        self,
        owner_id: str,
        plan_id: str,
        position: int,
        filters: Optional[CollectionFilters] = None,
        limit: int = MAX_ALTERNATIVES,
    ) -> List[CollectionItem]:
        """
        Bottles that could replace the wine at ``position``.

        Items already in the queue are excluded; the rest are ranked by
        readiness (stable for ties).
        """
        plan = self.store.load_plan(plan_id)
        if not 1 <= position <= len(plan.queue):
            raise InvalidPosition(f"No slot at position {position}", {"plan_id": plan_id, "position": position})

        in_queue = {slot.item_id for slot in plan.queue}
        candidates = [
            item for item in self.store.list_available_items(owner_id, filters or CollectionFilters())
            if item.id not in in_queue
        ]
        ranked = sorted(candidates, key=lambda item: -readiness_score(item))
        return ranked[:max(limit, 0)]

    def swap_plan_slot(
        self,
        plan_id: str,
        position: int,
        item_id: str,
        expected_version: Optional[int] = None,
    ) -> EveningPlan:
        """
        Replace the wine at a position with another bottle from the cellar.

        Raises:
            InsufficientQuantity: if the bottle is unknown or out of stock
            InvalidPosition: if the position is unknown or locked
        """
        plan = self._load(plan_id, expected_version)
        item = self.store.get_item(plan.owner_id, item_id)
        if item is None or item.quantity <= 0:
            raise InsufficientQuantity(item_id, 1, item.quantity if item else 0)

        swapped = evening_plan.swap_slot(plan, position, item, now=self.clock())
        saved = self.store.save_plan(swapped, expected_version=plan.version)
        logger.info(f"Swapped position {position} of plan {plan_id} to item {item_id}")
        return saved


__all__ = ['EveningPlanner']
