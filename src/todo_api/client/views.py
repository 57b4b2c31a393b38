"""Derived view state computed from the stores."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .store import TodosState

Todo = Dict[str, Any]

APP_TITLE = "Todo App"


def is_overdue(todo: Todo, now: Optional[datetime] = None) -> bool:
    """An active todo whose due date has passed."""
    due = todo.get("dueDate")
    if not due or todo.get("completed"):
        return False
    now = now or datetime.now(timezone.utc)
    due_at = datetime.fromisoformat(due)
    if due_at.tzinfo is None:
        due_at = due_at.replace(tzinfo=timezone.utc)
    return due_at < now


def empty_state_message(status: str, has_category: bool) -> str:
    if has_category:
        if status == "active":
            return "No active todos in this category."
        if status == "completed":
            return "No completed todos in this category."
        return "No todos in this category yet."

    if status == "active":
        return "No active todos. Time to add something!"
    if status == "completed":
        return "No completed todos yet. Keep working!"
    return "No todos yet. Create your first one!"


def visible_todos(state: TodosState) -> List[Todo]:
    """The todos on screen, flattened in display order."""
    if state.grouped is None:
        return list(state.items)
    return [todo for group in state.grouped for todo in group["todos"]]


def status_counts(todos: List[Todo]) -> Dict[str, int]:
    completed = sum(1 for t in todos if t.get("completed"))
    return {"all": len(todos), "active": len(todos) - completed, "completed": completed}


def page_title(
    status: str = "all",
    view: str = "list",
    todo_title: Optional[str] = None,
) -> str:
    """
    Window title for a view.

    ``view`` is one of list, new, edit or categories.
    """
    if view == "categories":
        return f"Manage Categories - {APP_TITLE}"
    if view == "new":
        return f"New Todo - {APP_TITLE}"
    if view == "edit":
        return f"Edit: {todo_title} - {APP_TITLE}" if todo_title else f"Edit Todo - {APP_TITLE}"
    if status == "active":
        return f"Active Todos - {APP_TITLE}"
    if status == "completed":
        return f"Completed Todos - {APP_TITLE}"
    return f"All Todos - {APP_TITLE}"
