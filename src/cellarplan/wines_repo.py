"""Supabase repository helpers for reading the cellar."""

from typing import Any, List, Optional

import pandas as pd
from supabase import Client, create_client

from cellarplan.config import SUPABASE_KEY, SUPABASE_URL
from cellarplan.error_handling import handle_store_error
from cellarplan.schema import CollectionFilters, CollectionItem
from cellarplan.stores import collection_item_from_row
from cellarplan.utils import logger

BOTTLE_SELECT = "*, wines(*)"


def _normalize_secret_string(raw_value: Any, secret_name: str) -> str:
    """Normalize a string setting and guard against copied quotes."""
    if raw_value is None:
        raise ValueError(f"{secret_name} is missing")

    value = str(raw_value).strip()
    quote_pairs = [
        ('"', '"'),
        ("'", "'"),
        ("“", "”"),
        ("‘", "’"),
    ]
    for left_quote, right_quote in quote_pairs:
        if value.startswith(left_quote) and value.endswith(right_quote) and len(value) >= 2:
            value = value[1:-1].strip()
            break

    if not value:
        raise ValueError(f"{secret_name} is empty")
    return value


def get_supabase_client(url: Optional[str] = None, key: Optional[str] = None) -> Client:
    """Supabase client from explicit credentials or SUPABASE_URL / SUPABASE_KEY."""
    supabase_url = _normalize_secret_string(url or SUPABASE_URL, "SUPABASE_URL")
    supabase_key = _normalize_secret_string(key or SUPABASE_KEY, "SUPABASE_KEY")
    return create_client(supabase_url, supabase_key)


def repo_list_bottles(sb: Client, owner_id: str) -> pd.DataFrame:
    """In-stock bottles for a user (with embedded wine rows), oldest first."""
    if not owner_id:
        raise ValueError("owner_id is required for data isolation")
    try:
        res = (
            sb.table("bottles")
            .select(BOTTLE_SELECT)
            .eq("user_id", owner_id)
            .gt("quantity", 0)
            .order("created_at")
            .execute()
        )
    except Exception as e:
        raise handle_store_error(e, "list bottles") from e

    rows = res.data or []
    return pd.DataFrame(rows)


def repo_list_available_items(
    sb: Client,
    owner_id: str,
    filters: Optional[CollectionFilters] = None,
) -> List[CollectionItem]:
    """
    Candidate pool for the composer, read through the Supabase REST client.

    Color and rating live on the embedded wine row, so the hard filters are
    applied after conversion. Rows that fail validation are skipped with a
    warning rather than poisoning the whole pool.
    """
    filters = filters or CollectionFilters()
    df = repo_list_bottles(sb, owner_id)
    if df.empty:
        logger.info(f"No bottles in stock for {owner_id}")
        return []

    items = []
    for row in df.to_dict('records'):
        row = {k: (None if _is_missing(v) else v) for k, v in row.items()}
        try:
            item = collection_item_from_row(row)
        except (KeyError, ValueError) as e:
            logger.warning(f"Skipping malformed bottle row {row.get('id')}: {e}")
            continue
        if filters.matches(item):
            items.append(item)
    return items


def repo_get_item(sb: Client, owner_id: str, item_id: str) -> Optional[CollectionItem]:
    """Single bottle by id, or None."""
    try:
        res = (
            sb.table("bottles")
            .select(BOTTLE_SELECT)
            .eq("user_id", owner_id)
            .eq("id", item_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        raise handle_store_error(e, "get bottle") from e
    data = res.data or []
    return collection_item_from_row(data[0]) if data else None


def _is_missing(value: Any) -> bool:
    if isinstance(value, (list, dict)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False
