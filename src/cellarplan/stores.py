"""
Collection and plan stores.

CellarStore is the contract the planner consumes. InMemoryCellarStore keeps
everything in dictionaries and implements transactions with snapshot and
rollback; it backs the tests and the CLI. The PostgreSQL implementation
lives in cellarplan.database.
"""

import copy
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol

from cellarplan.constants import PlanStatus
from cellarplan.error_handling import ConflictError, InsufficientQuantity, PlanNotFound
from cellarplan.schema import CollectionFilters, CollectionItem, EveningPlan, HistoryRecord
from cellarplan.utils import logger, utc_now


class CellarStore(Protocol):
    """Persistence operations used by the planner."""

    def list_available_items(self, owner_id: str, filters: Optional[CollectionFilters] = None) -> List[CollectionItem]:
        ...

    def get_item(self, owner_id: str, item_id: str) -> Optional[CollectionItem]:
        ...

    def record_opening(self, owner_id: str, item_id: str, quantity: int, rating: Optional[float],
                       notes: Optional[str], timestamp: datetime, plan_id: Optional[str] = None) -> HistoryRecord:
        ...

    def decrement_quantity(self, owner_id: str, item_id: str, amount: int) -> int:
        ...

    def load_active_plan(self, owner_id: str) -> Optional[EveningPlan]:
        ...

    def load_plan(self, plan_id: str) -> EveningPlan:
        ...

    def list_plans(self, owner_id: str, status: Optional[PlanStatus] = None) -> List[EveningPlan]:
        ...

    def create_plan_replacing_active(self, plan: EveningPlan) -> EveningPlan:
        ...

    def save_plan(self, plan: EveningPlan, expected_version: int) -> EveningPlan:
        ...

    def transaction(self):
        ...


def collection_item_from_row(row: Mapping[str, Any]) -> CollectionItem:
    """
    Build a CollectionItem from a bottles row joined with its wine.

    Accepts the flat shape returned by SQL joins and the nested shape
    returned by Supabase embedded selects (``{"wines": {...}}``).
    """
    data = dict(row)
    wine = data.pop('wines', None) or data.pop('wine', None) or {}
    merged = {**wine, **{k: v for k, v in data.items() if v is not None}}

    return CollectionItem(
        id=str(merged.get('bottle_id') or merged['id']),
        wine_id=None if merged.get('wine_id') is None else str(merged['wine_id']),
        wine_name=merged.get('wine_name') or merged.get('name') or "",
        producer=merged.get('producer'),
        color=merged.get('color') or merged.get('wine_color'),
        vintage=merged.get('vintage'),
        region=merged.get('region'),
        country=merged.get('country'),
        grapes=merged.get('grapes'),
        style=merged.get('style'),
        alcohol_abv=merged.get('alcohol_abv'),
        quantity=merged.get('quantity') or 0,
        rating=merged.get('rating'),
        readiness=merged.get('readiness'),
        wine_profile=merged.get('wine_profile'),
        wine_profile_updated_at=merged.get('wine_profile_updated_at'),
    )


class InMemoryCellarStore:
    """
    Dictionary-backed CellarStore.

    Transactions snapshot items, history and plans on entry and restore the
    snapshot if the block raises. Nested transactions join the outer one.
    """

    def __init__(self, items: Optional[Mapping[str, Iterable[CollectionItem]]] = None):
        self.items: Dict[str, Dict[str, CollectionItem]] = {}
        self.history: List[HistoryRecord] = []
        self.plans: Dict[str, EveningPlan] = {}
        self._lock = threading.RLock()
        self._depth = 0

        for owner_id, owner_items in (items or {}).items():
            self.add_items(owner_id, owner_items)

    def add_items(self, owner_id: str, items: Iterable[CollectionItem]) -> None:
        owner_items = self.items.setdefault(owner_id, {})
        for item in items:
            owner_items[item.id] = item

    @contextmanager
    def transaction(self) -> Iterator['InMemoryCellarStore']:
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = (copy.deepcopy(self.items), list(self.history), dict(self.plans))
            self._depth = 1
            try:
                yield self
            except BaseException:
                self.items, self.history, self.plans = snapshot
                logger.debug("In-memory transaction rolled back")
                raise
            finally:
                self._depth = 0

    # Collection

    def list_available_items(self, owner_id: str, filters: Optional[CollectionFilters] = None) -> List[CollectionItem]:
        filters = filters or CollectionFilters()
        return [item for item in self.items.get(owner_id, {}).values() if filters.matches(item)]

    def get_item(self, owner_id: str, item_id: str) -> Optional[CollectionItem]:
        return self.items.get(owner_id, {}).get(item_id)

    def record_opening(self, owner_id: str, item_id: str, quantity: int, rating: Optional[float],
                       notes: Optional[str], timestamp: datetime, plan_id: Optional[str] = None) -> HistoryRecord:
        item = self.get_item(owner_id, item_id)
        record = HistoryRecord(
            owner_id=owner_id,
            item_id=item_id,
            wine_id=item.wine_id if item else None,
            quantity=quantity,
            rating=rating,
            notes=notes,
            opened_at=timestamp,
            plan_id=plan_id,
        )
        with self._lock:
            self.history.append(record)
        return record

    def decrement_quantity(self, owner_id: str, item_id: str, amount: int) -> int:
        """Remove bottles from stock and return what is left."""
        with self._lock:
            item = self.get_item(owner_id, item_id)
            available = item.quantity if item else 0
            if item is None or amount > available:
                raise InsufficientQuantity(item_id, amount, available)
            remaining = available - amount
            self.items[owner_id][item_id] = item.model_copy(update={'quantity': remaining})
            return remaining

    def history_for(self, owner_id: str) -> List[HistoryRecord]:
        return [record for record in self.history if record.owner_id == owner_id]

    # Plans

    def load_active_plan(self, owner_id: str) -> Optional[EveningPlan]:
        for plan in self.plans.values():
            if plan.owner_id == owner_id and plan.status is PlanStatus.ACTIVE:
                return plan
        return None

    def load_plan(self, plan_id: str) -> EveningPlan:
        plan = self.plans.get(plan_id)
        if plan is None:
            raise PlanNotFound(plan_id)
        return plan

    def list_plans(self, owner_id: str, status: Optional[PlanStatus] = None) -> List[EveningPlan]:
        plans = [
            plan for plan in self.plans.values()
            if plan.owner_id == owner_id and (status is None or plan.status is status)
        ]
        if status is PlanStatus.COMPLETED:
            return sorted(plans, key=lambda plan: plan.completed_at or plan.created_at, reverse=True)
        return sorted(plans, key=lambda plan: plan.created_at, reverse=True)

    def create_plan_replacing_active(self, plan: EveningPlan) -> EveningPlan:
        with self.transaction():
            previous = self.load_active_plan(plan.owner_id)
            if previous is not None:
                self.plans[previous.id] = previous.model_copy(update={
                    'status': PlanStatus.CANCELLED,
                    'version': previous.version + 1,
                    'updated_at': utc_now(),
                })
                logger.info(f"Cancelled plan {previous.id} for owner {plan.owner_id} (replaced)")
            self.plans[plan.id] = plan
        return plan

    def save_plan(self, plan: EveningPlan, expected_version: int) -> EveningPlan:
        with self._lock:
            stored = self.load_plan(plan.id)
            if stored.version != expected_version:
                raise ConflictError(plan.id, expected_version, stored.version)
            saved = plan.model_copy(update={'version': expected_version + 1})
            self.plans[plan.id] = saved
            return saved


__all__ = [
    'CellarStore',
    'InMemoryCellarStore',
    'collection_item_from_row',
]
