from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import ValidationError

from ..errors import AppError, validation_details
from ..repositories import ListQuery, Repository, get_repository
from ..schemas import (
    ErrorResponse,
    GroupedTodos,
    TodoCreate,
    TodoGroup,
    TodoListQuery,
    TodoListResponse,
    TodoOut,
    TodoResponse,
    TodoUpdate,
)
from ..utils import group_todos_by_category, parse_id

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/todos",
    tags=["todos"],
)

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    404: {"model": ErrorResponse, "description": "Todo or category not found"},
}

_SORT_COLUMNS = {"createdAt": "created_at", "dueDate": "due_date"}
_COMPLETED_BY_STATUS = {"all": None, "active": False, "completed": True}


def _ensure_category(repo: Repository, category_id: Optional[int]) -> None:
    if category_id is not None and not repo.category_exists(category_id):
        raise AppError.not_found("Category not found")


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=TodoListResponse,
    summary="List Todos",
    description=(
        "List todos with optional filters.\n\n"
        "Query parameters:\n"
        "- status: all (default), active or completed\n"
        "- categoryId: a category id, or 'null' for uncategorized todos\n"
        "- sortBy: createdAt (default) or dueDate\n"
        "- sortOrder: asc or desc (default)\n"
        "- groupByCategory: 'true' to return {grouped: [{category, todos}]} instead of a flat list"
    ),
    responses={400: _ERRORS[400]},
)
def list_todos(
    status_: Optional[str] = Query(None, alias="status", description="all, active or completed"),
    category_id: Optional[str] = Query(None, alias="categoryId", description="Category id or 'null'"),
    sort_by: Optional[str] = Query(None, alias="sortBy", description="createdAt or dueDate"),
    sort_order: Optional[str] = Query(None, alias="sortOrder", description="asc or desc"),
    group_by_category: Optional[str] = Query(None, alias="groupByCategory", description="'true' to group"),
    repo: Repository = Depends(get_repository),
) -> TodoListResponse:
    """
    List todos, flat or grouped by category.
    """
    raw = {
        "status": status_,
        "categoryId": category_id,
        "sortBy": sort_by,
        "sortOrder": sort_order,
        "groupByCategory": group_by_category,
    }
    try:
        params = TodoListQuery.model_validate({k: v for k, v in raw.items() if v is not None})
    except ValidationError as exc:
        raise AppError.validation("Validation failed", validation_details(exc.errors())) from exc

    query = ListQuery(
        completed=_COMPLETED_BY_STATUS[params.status],
        category_id=params.category_filter,
        uncategorized=params.uncategorized,
        sort_by=_SORT_COLUMNS[params.sort_by],
        sort_order=params.sort_order,
    )
    todos = repo.list_todos(query)

    if params.group_by_category:
        groups = group_todos_by_category(todos, repo.list_categories())
        return TodoListResponse(data=GroupedTodos(grouped=[TodoGroup.model_validate(g) for g in groups]))
    return TodoListResponse(data=[TodoOut.model_validate(t) for t in todos])


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    response_model=TodoResponse,
    summary="Get Todo",
    responses=_ERRORS,
)
def get_todo(todo_id: str, repo: Repository = Depends(get_repository)) -> TodoResponse:
    """
    Retrieve a single Todo item with its category summary.
    """
    item = repo.get_todo(parse_id(todo_id, "todo"))
    if item is None:
        raise AppError.not_found("Todo not found")
    return TodoResponse(data=TodoOut.model_validate(item))


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TodoResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description="Create a new, active Todo item and return the created resource.",
    responses=_ERRORS,
)
def create_todo(payload: TodoCreate, repo: Repository = Depends(get_repository)) -> TodoResponse:
    """
    Create a new Todo. A given categoryId must reference an existing category.
    """
    _ensure_category(repo, payload.category_id)
    created = repo.create_todo(payload)
    logger.info("Created todo %s", created["id"])
    return TodoResponse(data=TodoOut.model_validate(created))


# PUBLIC_INTERFACE
@router.put(
    "/{todo_id}",
    response_model=TodoResponse,
    summary="Update Todo",
    description=(
        "Update a Todo item. The title is required. Optional fields omitted from the body keep "
        "their value; description, dueDate and categoryId are cleared by sending null."
    ),
    responses=_ERRORS,
)
def update_todo(todo_id: str, payload: TodoUpdate, repo: Repository = Depends(get_repository)) -> TodoResponse:
    """
    Update a Todo, preserving omitted optional fields.
    """
    tid = parse_id(todo_id, "todo")
    if repo.get_todo(tid) is None:
        raise AppError.not_found("Todo not found")
    _ensure_category(repo, payload.category_id)
    updated = repo.update_todo(tid, payload)
    if updated is None:
        raise AppError.not_found("Todo not found")
    return TodoResponse(data=TodoOut.model_validate(updated))


# PUBLIC_INTERFACE
@router.delete(
    "/{todo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Todo",
    responses=_ERRORS,
)
def delete_todo(todo_id: str, repo: Repository = Depends(get_repository)) -> Response:
    """
    Delete a Todo. Returns 204 on success, 404 if not found.
    """
    tid = parse_id(todo_id, "todo")
    if not repo.delete_todo(tid):
        raise AppError.not_found("Todo not found")
    logger.info("Deleted todo %s", tid)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}/toggle",
    response_model=TodoResponse,
    summary="Toggle Todo",
    description="Flip the completion flag of a Todo item.",
    responses=_ERRORS,
)
def toggle_todo(todo_id: str, repo: Repository = Depends(get_repository)) -> TodoResponse:
    """
    Toggle completed <-> active.
    """
    toggled = repo.toggle_todo(parse_id(todo_id, "todo"))
    if toggled is None:
        raise AppError.not_found("Todo not found")
    return TodoResponse(data=TodoOut.model_validate(toggled))
