"""Metadata filter construction for vector searches."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from docqa.models import IS_ACTIVE_KEY

CATEGORY_KEY = "category"


def build_filter_expression(
    category: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> Optional[Dict[str, Any]]:
    """Build a Chroma style ``where`` clause from the optional equality predicates.

    Returns ``None`` when no predicate is set, the bare clause for one predicate
    and an ``$and`` of both otherwise.
    """

    clauses: List[Dict[str, Any]] = []
    if category:
        clauses.append({CATEGORY_KEY: category})
    if is_active is not None:
        clauses.append({IS_ACTIVE_KEY: bool(is_active)})

    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


__all__ = ["CATEGORY_KEY", "build_filter_expression"]
