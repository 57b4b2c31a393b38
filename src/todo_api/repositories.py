from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from fastapi import Request

from .models import CategoryEntity, TodoEntity
from .schemas import TodoCreate, TodoUpdate
from .settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ListQuery:
    """
    Query parameters for listing todos.
    """
    completed: Optional[bool] = None
    category_id: Optional[int] = None
    uncategorized: bool = False
    sort_by: str = "created_at"  # allowed: created_at, due_date
    sort_order: str = "desc"  # allowed: asc, desc


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract repository contract for category and todo storage backends."""

    # Categories

    @abstractmethod
    def list_categories(self) -> List[CategoryEntity]:
        """Return all categories ordered by name, each with its live todo count."""

    @abstractmethod
    def get_category(self, category_id: int) -> Optional[CategoryEntity]:
        """Return a CategoryEntity by id, or None if not found."""

    @abstractmethod
    def create_category(self, name: str) -> CategoryEntity:
        """Create a category. Raises ConflictError if the name is taken."""

    @abstractmethod
    def update_category(self, category_id: int, name: str) -> Optional[CategoryEntity]:
        """Rename a category. Return None if not found; raises ConflictError on a name clash."""

    @abstractmethod
    def delete_category(self, category_id: int) -> bool:
        """Delete a category, detaching its todos. Return False if not found."""

    def category_exists(self, category_id: int) -> bool:
        return self.get_category(category_id) is not None

    # Todos

    @abstractmethod
    def list_todos(self, query: Optional[ListQuery] = None) -> List[TodoEntity]:
        """
        Return todos matching the filters, in the requested order.
        - Filter by completed
        - Filter by category id, or to uncategorized todos only
        - Sorting by created_at/due_date (asc/desc)
        """

    @abstractmethod
    def get_todo(self, todo_id: int) -> Optional[TodoEntity]:
        """Return a TodoEntity by id, or None if not found."""

    @abstractmethod
    def create_todo(self, data: TodoCreate) -> TodoEntity:
        """Create and return a new, active TodoEntity."""

    @abstractmethod
    def update_todo(self, todo_id: int, data: TodoUpdate) -> Optional[TodoEntity]:
        """Apply an update body to a todo. Return the updated entity or None if not found."""

    @abstractmethod
    def delete_todo(self, todo_id: int) -> bool:
        """Delete a TodoEntity by id. Return True if deleted, False if not found."""

    @abstractmethod
    def toggle_todo(self, todo_id: int) -> Optional[TodoEntity]:
        """Flip the completed flag. Return the updated entity or None if not found."""

    def close(self) -> None:
        """Release the underlying storage handle."""


# PUBLIC_INTERFACE
def open_repository(settings: Settings) -> Repository:
    """
    Construct the repository configured by settings.
    - memory: SQLiteRepository on a private in-process database
    - sqlite: SQLiteRepository on settings.sqlite_db_path
    """
    from .db import SQLiteRepository

    logger.info("Opening %s repository at %s", settings.persistence_backend, settings.database_path)
    return SQLiteRepository(settings.database_path)


# PUBLIC_INTERFACE
def get_repository(request: Request) -> Repository:
    """FastAPI dependency returning the repository owned by the running app."""
    return request.app.state.repository
