from __future__ import annotations

from datetime import datetime
from typing import Optional, TypedDict


# PUBLIC_INTERFACE
class CategoryEntity(TypedDict):
    """
    A category row as returned by the repository.

    Fields:
    - id: Unique integer identifier
    - name: Unique display name (1..50 chars, trimmed on input via schemas)
    - todo_count: Number of todos referencing this category, aggregated at read time
    - created_at / updated_at: UTC timestamps
    """

    id: int
    name: str
    todo_count: int
    created_at: datetime
    updated_at: datetime


class CategorySummaryEntity(TypedDict):
    id: int
    name: str


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A todo row joined with its category summary.

    Fields:
    - id: Unique integer identifier
    - title: Short title (1..200 chars)
    - description: Optional detailed description
    - due_date: Optional due datetime (UTC)
    - completed: Boolean completion flag
    - category_id: Optional reference to a category
    - category: Optional {id, name} of the referenced category
    - created_at / updated_at: UTC timestamps
    """

    id: int
    title: str
    description: Optional[str]
    due_date: Optional[datetime]
    completed: bool
    category_id: Optional[int]
    category: Optional[CategorySummaryEntity]
    created_at: datetime
    updated_at: datetime
