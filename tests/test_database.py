"""
Tests for the PostgreSQL store using mocked psycopg connections.
"""

from unittest.mock import MagicMock

import psycopg
import pytest
from psycopg.errors import UniqueViolation

from cellarplan import database
from cellarplan.constants import PlanStatus
from cellarplan.database import PostgresCellarStore, init_database, plan_from_row, plan_to_params
from cellarplan.error_handling import ConflictError, InsufficientQuantity, PlanNotFound, StoreUnavailable
from cellarplan.evening_plan import create_plan
from cellarplan.schema import CollectionFilters, LineupSlot
from conftest import FIXED_NOW, OWNER


def make_plan():
    slots = [LineupSlot(position=i, item_id=f"item-{i}", wine_name=f"Wine {i}") for i in range(1, 4)]
    return create_plan(OWNER, slots, occasion="Tasting", settings={'group_size': 'small'}, now=FIXED_NOW)


@pytest.fixture
def cursor():
    cur = MagicMock()
    cur.rowcount = 0
    return cur


@pytest.fixture
def pool(cursor):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    mock_pool = MagicMock()
    mock_pool.connection.return_value.__enter__.return_value = conn
    return mock_pool


@pytest.fixture
def pg_store(pool):
    return PostgresCellarStore(pool=pool)


class TestPlanRows:
    """Conversion between EveningPlan and evening_plans rows."""

    def test_params_use_user_id(self):
        params = plan_to_params(make_plan())
        assert params['user_id'] == OWNER
        assert params['status'] == "active"
        assert params['created_at'] == FIXED_NOW
        assert set(database.PLAN_COLUMNS) <= set(params)

    def test_row_round_trip(self):
        plan = make_plan()
        params = plan_to_params(plan)
        row = dict(params, queue=params['queue'].obj, settings=params['settings'].obj)
        assert plan_from_row(row) == plan


class TestInitDatabase:
    """Schema bootstrap."""

    def test_creates_partial_unique_index(self, pool, cursor):
        init_database(pool)
        sql = cursor.execute.call_args[0][0]
        assert "CREATE TABLE IF NOT EXISTS evening_plans" in sql
        assert "WHERE status = 'active'" in sql

    def test_failure_is_store_unavailable(self, pool, cursor):
        cursor.execute.side_effect = psycopg.OperationalError("connection refused")
        with pytest.raises(StoreUnavailable):
            init_database(pool)


class TestCollectionQueries:
    """Cellar reads and inventory writes."""

    def test_list_available_items(self, pg_store, cursor):
        cursor.fetchall.return_value = [
            {'bottle_id': 1, 'wine_id': 10, 'quantity': 2, 'readiness': "READY",
             'wine_name': "Barolo", 'color': "red", 'grapes': ["Nebbiolo"], 'rating': 4.4},
        ]
        items = pg_store.list_available_items(OWNER, CollectionFilters(reds_only=True, min_rating=4.0))

        assert [item.id for item in items] == ["1"]
        query, params = cursor.execute.call_args[0]
        assert "b.quantity > 0" in query
        assert params['color'] == "red"
        assert params['min_rating'] == 4.0

    def test_owner_required(self, pg_store):
        with pytest.raises(ValueError):
            pg_store.list_available_items("")

    def test_decrement(self, pg_store, cursor):
        cursor.fetchone.return_value = {'quantity': 1}
        assert pg_store.decrement_quantity(OWNER, "1", 1) == 1

    def test_decrement_beyond_stock(self, pg_store, cursor):
        cursor.fetchone.side_effect = [None, {'quantity': 1}]
        with pytest.raises(InsufficientQuantity) as exc_info:
            pg_store.decrement_quantity(OWNER, "1", 3)
        assert exc_info.value.details['available'] == 1

    def test_record_opening(self, pg_store, cursor):
        cursor.fetchone.return_value = {'wine_id': 10}
        record = pg_store.record_opening(OWNER, "1", 2, 4.5, None, FIXED_NOW, plan_id="p")
        assert record.wine_id == "10"
        assert record.quantity == 2

    def test_driver_error_becomes_store_unavailable(self, pg_store, cursor):
        cursor.execute.side_effect = psycopg.OperationalError("server closed the connection")
        with pytest.raises(StoreUnavailable) as exc_info:
            pg_store.get_item(OWNER, "1")
        assert exc_info.value.details['error_type'] == "OperationalError"


class TestPlanPersistence:
    """Version-checked saves and single-active creation."""

    def test_save_plan(self, pg_store, cursor):
        cursor.rowcount = 1
        saved = pg_store.save_plan(make_plan(), expected_version=1)
        assert saved.version == 2
        params = cursor.execute.call_args[0][1]
        assert params['expected_version'] == 1
        assert params['version'] == 2

    def test_save_plan_conflict(self, pg_store, cursor):
        cursor.fetchone.return_value = {'version': 3}
        with pytest.raises(ConflictError) as exc_info:
            pg_store.save_plan(make_plan(), expected_version=1)
        assert exc_info.value.details['actual_version'] == 3

    def test_save_plan_missing(self, pg_store, cursor):
        cursor.fetchone.return_value = None
        with pytest.raises(PlanNotFound):
            pg_store.save_plan(make_plan(), expected_version=1)

    def test_load_plan_missing(self, pg_store, cursor):
        cursor.fetchall.return_value = []
        with pytest.raises(PlanNotFound):
            pg_store.load_plan("nope")

    def test_load_active_plan(self, pg_store, cursor):
        plan = make_plan()
        params = plan_to_params(plan)
        cursor.fetchall.return_value = [dict(params, queue=params['queue'].obj, settings=params['settings'].obj)]
        assert pg_store.load_active_plan(OWNER) == plan

    def test_completed_plans_ordered_by_completion(self, pg_store, cursor):
        cursor.fetchall.return_value = []
        pg_store.list_plans(OWNER, PlanStatus.COMPLETED)
        assert "ORDER BY completed_at DESC" in cursor.execute.call_args[0][0]

    def test_create_retries_on_unique_violation(self, pg_store, cursor):
        """A concurrent creator won the race once; the second attempt succeeds."""
        calls = []

        def execute(query, params=None):
            calls.append(query)
            if "INSERT" in query and len([q for q in calls if "INSERT" in q]) == 1:
                raise UniqueViolation("duplicate key value violates unique constraint")

        cursor.execute.side_effect = execute
        plan = make_plan()
        assert pg_store.create_plan_replacing_active(plan) is plan
        assert len([q for q in calls if "INSERT" in q]) == 2
        assert len([q for q in calls if "UPDATE" in q]) == 2

    def test_create_gives_up_after_retries(self, pg_store, cursor):
        def execute(query, params=None):
            if "INSERT" in query:
                raise UniqueViolation("duplicate key value violates unique constraint")

        cursor.execute.side_effect = execute
        with pytest.raises(StoreUnavailable):
            pg_store.create_plan_replacing_active(make_plan())
        assert cursor.execute.call_count == 2 * database.CREATE_PLAN_MAX_ATTEMPTS

    def test_transaction_shares_connection(self, pg_store, pool, cursor):
        cursor.fetchone.return_value = {'quantity': 0}
        with pg_store.transaction():
            pg_store.decrement_quantity(OWNER, "1", 1)
            pg_store.decrement_quantity(OWNER, "2", 1)
        assert pool.connection.call_count == 1

    def test_transaction_translates_driver_errors(self, pg_store, cursor):
        cursor.execute.side_effect = psycopg.OperationalError("gone")
        with pytest.raises(StoreUnavailable):
            with pg_store.transaction():
                pg_store.get_item(OWNER, "1")
