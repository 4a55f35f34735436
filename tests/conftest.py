"""Shared fixtures for Cellarplan tests."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cellarplan.lineup import LineupComposer
from cellarplan.planner import EveningPlanner
from cellarplan.schema import CollectionItem
from cellarplan.stores import InMemoryCellarStore

OWNER = "owner-1"
FIXED_NOW = datetime(2026, 3, 14, 19, 30, tzinfo=timezone.utc)


def profile(body, tannin, oak, acidity=5.0, alcohol_est=13.0, **extra):
    """Stored profile dict (power is recomputed by the model)."""
    data = {
        'body': body,
        'tannin': tannin,
        'oak': oak,
        'acidity': acidity,
        'alcohol_est': alcohol_est,
        'sweetness': 0.0,
        'confidence': 'high',
        'source': 'ai',
    }
    data.update(extra)
    return data


LIGHT = dict(body=3.0, tannin=1.0, oak=1.0, acidity=8.0, alcohol_est=12.0)
MEDIUM = dict(body=5.0, tannin=3.0, oak=2.0, acidity=6.0, alcohol_est=13.0)
HEAVY = dict(body=8.0, tannin=7.0, oak=6.0, acidity=5.0, alcohol_est=14.5)


def make_item(item_id, color="red", quantity=1, readiness="READY", wine_profile=None, **kwargs):
    """CollectionItem with sensible defaults."""
    return CollectionItem(
        id=item_id,
        wine_id=f"wine-{item_id}",
        wine_name=kwargs.pop('wine_name', f"Wine {item_id}"),
        color=color,
        quantity=quantity,
        readiness=readiness,
        wine_profile=wine_profile,
        **kwargs,
    )


@pytest.fixture
def zero_jitter_composer():
    """Deterministic composer: ties keep input order."""
    return LineupComposer(jitter_max=0)


@pytest.fixture
def cellar_items():
    """Mixed cellar: two light, one medium, three heavy, one empty."""
    return [
        make_item("white-1", color="white", quantity=2, wine_profile=profile(**LIGHT)),
        make_item("rose-1", color="rose", quantity=1, wine_profile=profile(**LIGHT)),
        make_item("red-med", quantity=1, wine_profile=profile(**MEDIUM)),
        make_item("red-heavy-1", quantity=1, wine_profile=profile(**HEAVY)),
        make_item("red-heavy-2", quantity=1, wine_profile=profile(**HEAVY)),
        make_item("red-heavy-3", quantity=3, readiness="HOLD", wine_profile=profile(**HEAVY)),
        make_item("empty-1", quantity=0, wine_profile=profile(**LIGHT)),
    ]


@pytest.fixture
def store(cellar_items):
    return InMemoryCellarStore({OWNER: cellar_items})


@pytest.fixture
def planner(store, zero_jitter_composer):
    return EveningPlanner(store, composer=zero_jitter_composer, clock=lambda: FIXED_NOW)
