"""
PostgreSQL store for Cellarplan.

Reads the cellar (wines joined with bottles), writes consumption history and
inventory decrements, and persists evening plans. A partial unique index
guarantees at most one active plan per user even under concurrent creators.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

import psycopg
from psycopg.errors import UniqueViolation
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from cellarplan.config import CREATE_PLAN_MAX_ATTEMPTS, DATABASE_URL, DB_POOL_MAX_SIZE, DB_POOL_MIN_SIZE
from cellarplan.constants import PlanStatus
from cellarplan.error_handling import ConflictError, InsufficientQuantity, PlanNotFound, handle_store_error
from cellarplan.schema import CollectionFilters, CollectionItem, EveningPlan, HistoryRecord
from cellarplan.stores import collection_item_from_row
from cellarplan.utils import logger

# Global connection pool
_connection_pool: Optional[ConnectionPool] = None

PLAN_COLUMNS = [
    'id', 'user_id', 'status', 'plan_name', 'occasion', 'group_size', 'settings', 'queue',
    'now_playing_index', 'version', 'created_at', 'updated_at', 'completed_at',
    'total_bottles_opened', 'wines_opened', 'average_rating',
]

ITEM_SELECT = """
    SELECT
        b.id AS bottle_id, b.wine_id, b.quantity, b.readiness,
        w.name AS wine_name, w.producer, w.color, w.vintage, w.region, w.country,
        w.grapes, w.style, w.alcohol_abv, w.rating,
        w.wine_profile, w.wine_profile_updated_at
    FROM bottles b
    JOIN wines w ON w.id = b.wine_id
"""

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS evening_plans (
        id UUID PRIMARY KEY,
        user_id TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('active', 'completed', 'cancelled')),
        plan_name TEXT,
        occasion TEXT,
        group_size TEXT,
        settings JSONB NOT NULL DEFAULT '{}'::jsonb,
        queue JSONB NOT NULL DEFAULT '[]'::jsonb,
        now_playing_index INTEGER NOT NULL DEFAULT 0 CHECK (now_playing_index >= 0),
        version INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        completed_at TIMESTAMPTZ,
        total_bottles_opened INTEGER NOT NULL DEFAULT 0,
        wines_opened INTEGER NOT NULL DEFAULT 0,
        average_rating NUMERIC(4, 2)
    );

    CREATE UNIQUE INDEX IF NOT EXISTS uniq_active_plan_per_user
        ON evening_plans(user_id) WHERE status = 'active';

    CREATE INDEX IF NOT EXISTS idx_evening_plans_user_created
        ON evening_plans(user_id, created_at DESC);
"""


def get_database_url() -> Optional[str]:
    """Get database URL from the environment (or .env)."""
    return DATABASE_URL


def get_connection_pool() -> ConnectionPool:
    """
    Get or create the shared connection pool.

    Pool configuration comes from DB_POOL_MIN_SIZE / DB_POOL_MAX_SIZE.
    """
    global _connection_pool

    if _connection_pool is None:
        database_url = get_database_url()
        if not database_url:
            raise ValueError("DATABASE_URL not found in environment")

        _connection_pool = ConnectionPool(
            database_url,
            min_size=DB_POOL_MIN_SIZE,
            max_size=DB_POOL_MAX_SIZE,
            open=True,
        )
        logger.info(f"Opened database pool ({DB_POOL_MIN_SIZE}-{DB_POOL_MAX_SIZE} connections)")

    return _connection_pool


def close_connection_pool() -> None:
    global _connection_pool
    if _connection_pool is not None:
        _connection_pool.close()
        _connection_pool = None


def init_database(pool: Optional[ConnectionPool] = None) -> None:
    """Create the evening_plans table and the single-active-plan index."""
    pool = pool or get_connection_pool()
    try:
        with pool.connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(SCHEMA_SQL)
    except psycopg.Error as e:
        raise handle_store_error(e, "init database") from e
    logger.info("Database schema ready")


def plan_to_params(plan: EveningPlan) -> Dict[str, Any]:
    """Query parameters for an evening_plans row."""
    record = plan.to_record()
    params = {column: record.get(column) for column in PLAN_COLUMNS if column != 'user_id'}
    params['user_id'] = plan.owner_id
    params['status'] = plan.status.value
    params['queue'] = Jsonb([slot.model_dump(mode='json') for slot in plan.queue])
    params['settings'] = Jsonb(plan.settings)
    params['created_at'] = plan.created_at
    params['updated_at'] = plan.updated_at
    params['completed_at'] = plan.completed_at
    return params


def plan_from_row(row: Dict[str, Any]) -> EveningPlan:
    """EveningPlan from an evening_plans row (JSONB arrives decoded)."""
    data = dict(row)
    data['id'] = str(data['id'])
    data['owner_id'] = data.pop('user_id')
    return EveningPlan.from_record(data)


class PostgresCellarStore:
    """
    CellarStore backed by PostgreSQL through a psycopg_pool ConnectionPool.

    Every public method runs in its own transaction unless it is called inside
    ``transaction()``, in which case it joins the caller's connection.
    """

    def __init__(self, pool: Optional[ConnectionPool] = None):
        self._pool = pool
        self._local = threading.local()

    @property
    def pool(self) -> ConnectionPool:
        if self._pool is None:
            self._pool = get_connection_pool()
        return self._pool

    @property
    def _active_conn(self) -> Optional[psycopg.Connection]:
        return getattr(self._local, 'conn', None)

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        if self._active_conn is not None:
            # Nested: savepoint on the caller's connection
            with self._active_conn.transaction():
                yield
            return

        with self.pool.connection() as conn:
            self._local.conn = conn
            try:
                with conn.transaction():
                    yield
            finally:
                self._local.conn = None

    @contextmanager
    def transaction(self) -> Iterator['PostgresCellarStore']:
        """Unit of work: commits on success, rolls back on any exception."""
        try:
            with self._unit_of_work():
                yield self
        except psycopg.Error as e:
            raise handle_store_error(e, "transaction") from e

    @contextmanager
    def _cursor(self) -> Iterator[psycopg.Cursor]:
        conn = self._active_conn
        if conn is not None:
            with conn.cursor(row_factory=dict_row) as cursor:
                yield cursor
            return
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cursor:
                yield cursor

    # =======================
    # COLLECTION
    # =======================

    def list_available_items(self, owner_id: str, filters: Optional[CollectionFilters] = None) -> List[CollectionItem]:
        """Bottles in stock for a user, narrowed by the hard filters."""
        if not owner_id:
            raise ValueError("owner_id is required for data isolation")
        filters = filters or CollectionFilters()

        clauses = ["b.user_id = %(user_id)s", "b.quantity > 0"]
        params: Dict[str, Any] = {'user_id': owner_id}
        if filters.effective_color is not None:
            clauses.append("lower(w.color) = %(color)s")
            params['color'] = filters.effective_color.value
        if filters.effective_min_rating is not None:
            clauses.append("COALESCE(w.rating, 0) >= %(min_rating)s")
            params['min_rating'] = filters.effective_min_rating

        query = ITEM_SELECT + " WHERE " + " AND ".join(clauses) + " ORDER BY b.created_at, b.id"
        try:
            with self._cursor() as cursor:
                cursor.execute(query, params)
                rows = cursor.fetchall()
        except psycopg.Error as e:
            raise handle_store_error(e, "list available items") from e

        items = [collection_item_from_row(row) for row in rows]
        logger.debug(f"Loaded {len(items)} available items for {owner_id}")
        return items

    def get_item(self, owner_id: str, item_id: str) -> Optional[CollectionItem]:
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    ITEM_SELECT + " WHERE b.user_id = %s AND b.id::text = %s",
                    (owner_id, item_id),
                )
                row = cursor.fetchone()
        except psycopg.Error as e:
            raise handle_store_error(e, "get item") from e
        return collection_item_from_row(row) if row else None

    def record_opening(self, owner_id: str, item_id: str, quantity: int, rating: Optional[float],
                       notes: Optional[str], timestamp: datetime, plan_id: Optional[str] = None) -> HistoryRecord:
        """Insert one consumption_history row."""
        try:
            with self._cursor() as cursor:
                cursor.execute("""
                    INSERT INTO consumption_history (
                        user_id, bottle_id, wine_id, quantity, rating, notes, opened_at, plan_id
                    )
                    SELECT %(user_id)s, b.id, b.wine_id, %(quantity)s, %(rating)s, %(notes)s,
                           %(opened_at)s, %(plan_id)s
                    FROM bottles b
                    WHERE b.user_id = %(user_id)s AND b.id::text = %(item_id)s
                    RETURNING wine_id
                """, {
                    'user_id': owner_id,
                    'item_id': item_id,
                    'quantity': quantity,
                    'rating': rating,
                    'notes': notes,
                    'opened_at': timestamp,
                    'plan_id': plan_id,
                })
                row = cursor.fetchone()
        except psycopg.Error as e:
            raise handle_store_error(e, "record opening") from e

        if row is None:
            raise InsufficientQuantity(item_id, quantity, 0)
        return HistoryRecord(
            owner_id=owner_id,
            item_id=item_id,
            wine_id=None if row['wine_id'] is None else str(row['wine_id']),
            quantity=quantity,
            rating=rating,
            notes=notes,
            opened_at=timestamp,
            plan_id=plan_id,
        )

    def decrement_quantity(self, owner_id: str, item_id: str, amount: int) -> int:
        """Conditional decrement; never lets stock go negative."""
        try:
            with self._cursor() as cursor:
                cursor.execute("""
                    UPDATE bottles
                    SET quantity = quantity - %(amount)s, updated_at = now()
                    WHERE user_id = %(user_id)s AND id::text = %(item_id)s AND quantity >= %(amount)s
                    RETURNING quantity
                """, {'user_id': owner_id, 'item_id': item_id, 'amount': amount})
                row = cursor.fetchone()
                if row is None:
                    cursor.execute(
                        "SELECT quantity FROM bottles WHERE user_id = %s AND id::text = %s",
                        (owner_id, item_id),
                    )
                    current = cursor.fetchone()
                    raise InsufficientQuantity(item_id, amount, current['quantity'] if current else 0)
        except psycopg.Error as e:
            raise handle_store_error(e, "decrement quantity") from e
        return row['quantity']

    # =======================
    # PLANS
    # =======================

    def _select_plans(self, where: str, params: Any, operation: str,
                      order_by: str = "created_at DESC") -> List[EveningPlan]:
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    f"SELECT {', '.join(PLAN_COLUMNS)} FROM evening_plans WHERE {where} ORDER BY {order_by}",
                    params,
                )
                rows = cursor.fetchall()
        except psycopg.Error as e:
            raise handle_store_error(e, operation) from e
        return [plan_from_row(row) for row in rows]

    def load_active_plan(self, owner_id: str) -> Optional[EveningPlan]:
        plans = self._select_plans("user_id = %s AND status = 'active'", (owner_id,), "load active plan")
        return plans[0] if plans else None

    def load_plan(self, plan_id: str) -> EveningPlan:
        plans = self._select_plans("id::text = %s", (plan_id,), "load plan")
        if not plans:
            raise PlanNotFound(plan_id)
        return plans[0]

    def list_plans(self, owner_id: str, status: Optional[PlanStatus] = None) -> List[EveningPlan]:
        if status is None:
            return self._select_plans("user_id = %s", (owner_id,), "list plans")
        order_by = "completed_at DESC, created_at DESC" if status is PlanStatus.COMPLETED else "created_at DESC"
        return self._select_plans("user_id = %s AND status = %s", (owner_id, status.value), "list plans", order_by)

    @retry(
        stop=stop_after_attempt(CREATE_PLAN_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=0.05, max=1),
        retry=retry_if_exception_type(UniqueViolation),
        reraise=True
    )
    def _cancel_active_and_insert(self, plan: EveningPlan) -> None:
        with self._unit_of_work():
            with self._cursor() as cursor:
                cursor.execute("""
                    UPDATE evening_plans
                    SET status = 'cancelled', version = version + 1, updated_at = now()
                    WHERE user_id = %s AND status = 'active'
                """, (plan.owner_id,))
                if cursor.rowcount:
                    logger.info(f"Cancelled {cursor.rowcount} active plan(s) for {plan.owner_id} (replaced)")

                params = plan_to_params(plan)
                cursor.execute(
                    f"INSERT INTO evening_plans ({', '.join(PLAN_COLUMNS)}) "
                    f"VALUES ({', '.join(f'%({c})s' for c in PLAN_COLUMNS)})",
                    params,
                )

    def create_plan_replacing_active(self, plan: EveningPlan) -> EveningPlan:
        """
        Cancel the owner's active plan and insert the new one atomically.

        A concurrent creator can win the race on the partial unique index;
        the whole cancel-then-insert is retried in that case.
        """
        try:
            self._cancel_active_and_insert(plan)
        except psycopg.Error as e:
            raise handle_store_error(e, "create plan") from e
        return plan

    def save_plan(self, plan: EveningPlan, expected_version: int) -> EveningPlan:
        """Compare-and-swap on version. Returns the plan with its new version."""
        saved = plan.model_copy(update={'version': expected_version + 1})
        params = plan_to_params(saved)
        params['expected_version'] = expected_version
        assignments = ', '.join(f"{c} = %({c})s" for c in PLAN_COLUMNS if c not in ('id', 'user_id', 'created_at'))

        try:
            with self._cursor() as cursor:
                cursor.execute(
                    f"UPDATE evening_plans SET {assignments} "
                    f"WHERE id = %(id)s AND version = %(expected_version)s",
                    params,
                )
                updated = cursor.rowcount
                if not updated:
                    cursor.execute("SELECT version FROM evening_plans WHERE id = %s", (plan.id,))
                    current = cursor.fetchone()
        except psycopg.Error as e:
            raise handle_store_error(e, "save plan") from e

        if not updated:
            if current is None:
                raise PlanNotFound(plan.id)
            raise ConflictError(plan.id, expected_version, current['version'])
        return saved


# Export key functions and classes
__all__ = [
    'PostgresCellarStore',
    'get_database_url',
    'get_connection_pool',
    'close_connection_pool',
    'init_database',
    'plan_to_params',
    'plan_from_row',
]
