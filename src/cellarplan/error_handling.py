"""
Standardized Error Handling for Cellarplan

Typed errors raised by plan transitions and store adapters, plus the helper
that turns driver exceptions into StoreUnavailable.
"""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class CellarPlanError(Exception):
    """Base exception for Cellarplan."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidPosition(CellarPlanError):
    """Cursor or queue consistency violation (out-of-range index, bad slot position)."""
    pass


class InvalidTransition(CellarPlanError):
    """Transition requested on a plan that is no longer active."""

    def __init__(self, plan_id: str, status: str, action: str):
        super().__init__(
            f"Cannot {action} plan {plan_id}: status is {status}",
            {"plan_id": plan_id, "status": status, "action": action},
        )


class InsufficientQuantity(CellarPlanError):
    """Attempted to open more bottles than are in the cellar."""

    def __init__(self, item_id: str, requested: int, available: Optional[int] = None):
        message = f"Cannot open {requested} of item {item_id}"
        if available is not None:
            message += f": only {available} left"
        super().__init__(message, {"item_id": item_id, "requested": requested, "available": available})


class ConflictError(CellarPlanError):
    """Write targeted a stale plan version; re-read and retry."""

    def __init__(self, plan_id: str, expected_version: int, actual_version: Optional[int]):
        super().__init__(
            f"Plan {plan_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})",
            {"plan_id": plan_id, "expected_version": expected_version, "actual_version": actual_version},
        )


class PlanNotFound(CellarPlanError):
    """No plan with the requested id."""

    def __init__(self, plan_id: str):
        super().__init__(f"Plan {plan_id} not found", {"plan_id": plan_id})


class StoreUnavailable(CellarPlanError):
    """External store I/O failure (database, Supabase)."""
    pass


def handle_store_error(error: Exception, operation: str) -> StoreUnavailable:
    """
    Standardized store error handling.

    Domain errors pass through untouched; anything else is logged and
    wrapped so callers only ever see the typed taxonomy.

    Args:
        error: Exception that occurred
        operation: Description of operation

    Returns:
        The StoreUnavailable to raise (use ``raise handle_store_error(...) from e``)

    Raises:
        CellarPlanError: if the error already belongs to the taxonomy
    """
    if isinstance(error, CellarPlanError):
        raise error

    error_type = type(error).__name__
    logger.error(f"Store error during {operation}: {error_type} - {error}")
    return StoreUnavailable(f"Store unavailable during {operation}", {"error_type": error_type})


# Export key functions and classes
__all__ = [
    'CellarPlanError',
    'InvalidPosition',
    'InvalidTransition',
    'InsufficientQuantity',
    'ConflictError',
    'PlanNotFound',
    'StoreUnavailable',
    'handle_store_error',
]
