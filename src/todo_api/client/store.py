from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Tuple

from .api import ApiClient, ApiError
from .deletion import DEFAULT_UNDO_SECONDS, DeletionQueue, StagedDeletion

logger = logging.getLogger(__name__)

Todo = Dict[str, Any]
Category = Dict[str, Any]

STATUS_FILTERS = ("all", "active", "completed")
SORT_FIELDS = ("createdAt", "dueDate")
SORT_ORDERS = ("asc", "desc")


# PUBLIC_INTERFACE
@dataclass
class TodoFilters:
    """
    Filter, sort and grouping settings of the todo list view.

    ``uncategorized`` restricts the list to todos without a category and takes
    precedence over ``category_id``.
    """

    status: str = "all"
    category_id: Optional[int] = None
    uncategorized: bool = False
    sort_by: str = "createdAt"
    sort_order: str = "desc"
    group_by_category: bool = False

    def to_params(self) -> Dict[str, str]:
        """Query string for GET /api/todos."""
        params: Dict[str, str] = {}
        if self.status != "all":
            params["status"] = self.status
        if self.uncategorized:
            params["categoryId"] = "null"
        elif self.category_id is not None:
            params["categoryId"] = str(self.category_id)
        params["sortBy"] = self.sort_by
        params["sortOrder"] = self.sort_order
        if self.group_by_category:
            params["groupByCategory"] = "true"
        return params

    def matches(self, todo: Todo) -> bool:
        """Whether a todo belongs in a list fetched with these filters."""
        if self.status == "active" and todo["completed"]:
            return False
        if self.status == "completed" and not todo["completed"]:
            return False
        if self.uncategorized:
            return todo.get("categoryId") is None
        if self.category_id is not None:
            return todo.get("categoryId") == self.category_id
        return True

    def sort_key(self, todo: Todo) -> Tuple[bool, datetime, int]:
        # Missing due dates sort first ascending and last descending
        raw = todo.get(self.sort_by)
        value = datetime.fromisoformat(raw) if raw else datetime.min
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return (raw is not None, value, int(todo["id"]))


@dataclass
class TodosState:
    items: List[Todo] = field(default_factory=list)
    grouped: Optional[List[Dict[str, Any]]] = None
    selected: Optional[Todo] = None
    loading: bool = False
    error: Optional[str] = None
    filters: TodoFilters = field(default_factory=TodoFilters)


@dataclass
class CategoriesState:
    items: List[Category] = field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None


# PUBLIC_INTERFACE
class TodosStore:
    """
    Client-side state for the todo list.

    Fetches replace the held list (or grouped view) wholesale; mutations patch
    it in place by id. Failed calls are recorded in ``state.error``; mutations
    re-raise the ApiError so callers can notify the user.
    """

    def __init__(self, api: ApiClient, undo_window: float = DEFAULT_UNDO_SECONDS) -> None:
        self.api = api
        self.state = TodosState()
        self.deletions = DeletionQueue(window=undo_window)
        self._lock = RLock()

    # Filters

    def set_status_filter(self, status: str) -> None:
        if status not in STATUS_FILTERS:
            raise ValueError(f"status must be one of {', '.join(STATUS_FILTERS)}")
        self.state.filters.status = status

    def set_category_filter(self, category_id: Optional[int], uncategorized: bool = False) -> None:
        self.state.filters.category_id = category_id
        self.state.filters.uncategorized = uncategorized

    def set_sort_by(self, sort_by: str) -> None:
        if sort_by not in SORT_FIELDS:
            raise ValueError(f"sort_by must be one of {', '.join(SORT_FIELDS)}")
        self.state.filters.sort_by = sort_by

    def set_sort_order(self, sort_order: str) -> None:
        if sort_order not in SORT_ORDERS:
            raise ValueError("sort_order must be 'asc' or 'desc'")
        self.state.filters.sort_order = sort_order

    def set_group_by_category(self, enabled: bool) -> None:
        self.state.filters.group_by_category = enabled

    def set_selected(self, todo: Optional[Todo]) -> None:
        self.state.selected = todo

    def clear_error(self) -> None:
        self.state.error = None

    # Reads

    def fetch_todos(self) -> bool:
        """
        Load the list for the current filters. Returns False when the request failed.
        """
        with self._lock:
            self.state.loading = True
            self.state.error = None
            params = self.state.filters.to_params()
        try:
            data = self.api.list_todos(params)
        except ApiError as exc:
            with self._lock:
                self.state.loading = False
                self.state.error = exc.message
            return False

        with self._lock:
            self.state.loading = False
            # The payload shape follows the request, not the filters at completion time
            if isinstance(data, dict):
                self.state.grouped = data["grouped"]
                self.state.items = []
            else:
                self.state.items = list(data)
                self.state.grouped = None
        return True

    def fetch_todo(self, todo_id: int) -> Todo:
        todo = self._call(self.api.get_todo, todo_id)
        self.state.selected = todo
        return todo

    # Mutations

    def create_todo(self, payload: Dict[str, Any]) -> Todo:
        todo = self._call(self.api.create_todo, payload)
        self._upsert(todo)
        return todo

    def update_todo(self, todo_id: int, payload: Dict[str, Any]) -> Todo:
        todo = self._call(self.api.update_todo, todo_id, payload)
        self._upsert(todo)
        return todo

    def toggle_todo(self, todo_id: int) -> Todo:
        todo = self._call(self.api.toggle_todo, todo_id)
        self._upsert(todo)
        return todo

    def delete_todo(self, todo_id: int) -> None:
        self._call(self.api.delete_todo, todo_id)
        self.remove_optimistic(todo_id)

    def request_delete(
        self,
        todo: Todo,
        window: Optional[float] = None,
        on_error: Optional[Callable[[ApiError], Any]] = None,
    ) -> StagedDeletion:
        """
        Stage a deletion: hide the todo now, delete it on the server once the
        undo window closes unless ``undo()`` is called first.
        """
        def delete(todo_id: int) -> None:
            try:
                self.api.delete_todo(todo_id)
            except ApiError as exc:
                with self._lock:
                    self.state.error = exc.message
                raise

        return self.deletions.stage(
            todo,
            hide=self.remove_optimistic,
            show=self.restore,
            delete=delete,
            window=window,
            on_error=on_error,
        )

    def remove_optimistic(self, todo_id: int) -> Optional[Todo]:
        """Drop a todo from the held view, pruning groups left empty."""
        with self._lock:
            removed = None
            kept = []
            for todo in self.state.items:
                if todo["id"] == todo_id:
                    removed = todo
                else:
                    kept.append(todo)
            self.state.items = kept

            if self.state.grouped is not None:
                groups = []
                for group in self.state.grouped:
                    todos = [t for t in group["todos"] if t["id"] != todo_id]
                    if len(todos) != len(group["todos"]):
                        removed = removed or next(t for t in group["todos"] if t["id"] == todo_id)
                    if todos:
                        groups.append({**group, "todos": todos})
                self.state.grouped = groups

            if self.state.selected is not None and self.state.selected["id"] == todo_id:
                self.state.selected = None
            return removed

    def restore(self, todo: Todo) -> None:
        """Put a todo back into the held view at its sorted position."""
        self._upsert(todo)

    # Internals

    def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except ApiError as exc:
            with self._lock:
                self.state.error = exc.message
            raise

    def _upsert(self, todo: Todo) -> None:
        with self._lock:
            selected = self.state.selected
            self.remove_optimistic(todo["id"])
            if selected is not None and selected["id"] == todo["id"]:
                self.state.selected = todo

            filters = self.state.filters
            if not filters.matches(todo):
                return
            reverse = filters.sort_order == "desc"

            if self.state.grouped is None:
                self.state.items = sorted(
                    [*self.state.items, todo], key=filters.sort_key, reverse=reverse
                )
                return

            category = todo.get("category")
            for group in self.state.grouped:
                current = group["category"]
                if (current is None and category is None) or (
                    current is not None and category is not None and current["id"] == category["id"]
                ):
                    group["todos"] = sorted([*group["todos"], todo], key=filters.sort_key, reverse=reverse)
                    return
            self.state.grouped.append({"category": category, "todos": [todo]})
            # Named buckets by name, uncategorized last
            self.state.grouped.sort(
                key=lambda g: (g["category"] is None, g["category"]["name"] if g["category"] else "")
            )


# PUBLIC_INTERFACE
class CategoriesStore:
    """Client-side state for the category list, kept sorted by name."""

    def __init__(self, api: ApiClient) -> None:
        self.api = api
        self.state = CategoriesState()
        self._lock = RLock()

    def clear_error(self) -> None:
        self.state.error = None

    def fetch_categories(self) -> bool:
        with self._lock:
            self.state.loading = True
            self.state.error = None
        try:
            data = self.api.list_categories()
        except ApiError as exc:
            with self._lock:
                self.state.loading = False
                self.state.error = exc.message
            return False
        with self._lock:
            self.state.loading = False
            self.state.items = list(data)
        return True

    def create_category(self, name: str) -> Category:
        with self._lock:
            self.state.error = None
        category = self._call(self.api.create_category, name)
        self._put(category)
        return category

    def update_category(self, category_id: int, name: str) -> Category:
        category = self._call(self.api.update_category, category_id, name)
        self._put(category)
        return category

    def delete_category(self, category_id: int) -> None:
        self._call(self.api.delete_category, category_id)
        with self._lock:
            self.state.items = [c for c in self.state.items if c["id"] != category_id]

    def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except ApiError as exc:
            with self._lock:
                self.state.error = exc.message
            raise

    def _put(self, category: Category) -> None:
        with self._lock:
            items = [c for c in self.state.items if c["id"] != category["id"]]
            items.append(category)
            self.state.items = sorted(items, key=lambda c: c["name"])


# PUBLIC_INTERFACE
class Store:
    """
    Both stores over one API client, with the cross-store flows of the UI.
    """

    def __init__(self, api: ApiClient, undo_window: float = DEFAULT_UNDO_SECONDS) -> None:
        self.api = api
        self.todos = TodosStore(api, undo_window=undo_window)
        self.categories = CategoriesStore(api)

    def load(self) -> bool:
        """Initial load of both lists."""
        todos_ok = self.todos.fetch_todos()
        categories_ok = self.categories.fetch_categories()
        return todos_ok and categories_ok

    def delete_category(self, category: Category) -> None:
        """Delete a category, then refresh todos whose category was cleared."""
        self.categories.delete_category(category["id"])
        self.todos.fetch_todos()

    def restore_category(self, category: Category) -> Category:
        """
        Undo a category deletion by recreating it under the same name.

        The todos it held stay uncategorized.
        """
        restored = self.categories.create_category(category["name"])
        self.todos.fetch_todos()
        return restored

    def close(self) -> None:
        self.todos.deletions.flush()
        self.api.close()
