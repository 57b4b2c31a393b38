from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import AppError, invalid_id
from .models import CategoryEntity, TodoEntity
from .schemas import MAX_ID

_ID_PATTERN = re.compile(r"[+-]?[0-9]+")


# PUBLIC_INTERFACE
def parse_id(raw: str, resource: str) -> int:
    """
    Parse a path id, raising VALIDATION_ERROR (field 'id') when it is not a number.

    Numbers that cannot name a stored row (beyond the SQLite integer range)
    raise NOT_FOUND; zero and negative ids are left for the lookup to miss.
    """
    value = raw.strip()
    if not _ID_PATTERN.fullmatch(value):
        raise invalid_id(resource)
    parsed = int(value)
    if not -MAX_ID - 1 <= parsed <= MAX_ID:
        raise AppError.not_found(f"{resource.capitalize()} not found")
    return parsed


# PUBLIC_INTERFACE
def group_todos_by_category(
    todos: Iterable[TodoEntity],
    categories: Sequence[CategoryEntity],
) -> List[Dict[str, Any]]:
    """
    Partition an already ordered todo list into category buckets.

    Args:
        todos: Todos in display order; order is preserved inside each bucket.
        categories: All categories ordered by name ascending.

    Returns:
        A list of {"category": {id, name} | None, "todos": [...]} dicts. Category
        buckets follow the order of ``categories``, the uncategorized bucket
        comes last, and empty buckets are omitted.
    """
    buckets: Dict[Optional[int], List[TodoEntity]] = {}
    for todo in todos:
        buckets.setdefault(todo["category_id"], []).append(todo)

    grouped: List[Dict[str, Any]] = []
    for category in categories:
        members = buckets.get(category["id"])
        if members:
            grouped.append({"category": {"id": category["id"], "name": category["name"]}, "todos": members})

    uncategorized = buckets.get(None)
    if uncategorized:
        grouped.append({"category": None, "todos": uncategorized})
    return grouped
