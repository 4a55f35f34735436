"""Cellarplan - What to open tonight, and in what order."""

from cellarplan.lineup import LineupComposer
from cellarplan.planner import EveningPlanner
from cellarplan.schema import CollectionFilters, CollectionItem, EveningPlan, FoodProfile, Lineup, WineProfile
from cellarplan.stores import InMemoryCellarStore

__version__ = "0.1.0"

__all__ = [
    'EveningPlanner',
    'LineupComposer',
    'InMemoryCellarStore',
    'CollectionFilters',
    'CollectionItem',
    'EveningPlan',
    'FoodProfile',
    'Lineup',
    'WineProfile',
    '__version__',
]
