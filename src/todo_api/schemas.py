from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

NAME_MAX_LENGTH = 50
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000
# Largest value an SQLite INTEGER column holds
MAX_ID = 2**63 - 1

StatusFilter = Literal["all", "active", "completed"]
SortBy = Literal["createdAt", "dueDate"]
SortOrder = Literal["asc", "desc"]


class CamelModel(BaseModel):
    """
    Base model exchanging camelCase JSON while keeping snake_case attributes.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _parse_due_date(value: Optional[Union[str, datetime]]) -> Optional[datetime]:
    """
    Internal helper to normalize dueDate input into an aware UTC datetime.
    - Strings are parsed via datetime.fromisoformat (a trailing 'Z' is accepted).
    - A time component is required; date-only strings are rejected.
    - Naive values are taken to be UTC.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        s = value.strip()
        if "T" not in s.upper() and " " not in s:
            raise ValueError("Due date must be a valid ISO 8601 date")
        try:
            parsed = datetime.fromisoformat(s)
        except ValueError as e:
            raise ValueError("Due date must be a valid ISO 8601 date") from e
    else:
        raise ValueError("Due date must be a valid ISO 8601 date")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _trimmed_length(value: str, label: str, min_length: int, max_length: int) -> str:
    s = value.strip()
    if len(s) < min_length:
        raise ValueError(f"{label} is required")
    if len(s) > max_length:
        raise ValueError(f"{label} must be at most {max_length} characters")
    return s


# PUBLIC_INTERFACE
class CategoryCreate(CamelModel):
    """
    Schema for creating a category.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"name": "Work"}})

    name: str = Field(..., description="Unique category name (1..50 characters after trimming)")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..50 length.
        """
        return _trimmed_length(v, "Name", 1, NAME_MAX_LENGTH)


# Renaming a category takes the same body as creating one.
CategoryUpdate = CategoryCreate


class _TodoFields(CamelModel):
    title: str = Field(..., description="Short title for the todo item (1..200 characters)")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    due_date: Optional[datetime] = Field(
        default=None, description="Due date/time as an ISO8601 datetime; naive values are UTC"
    )
    category_id: Optional[int] = Field(
        default=None, gt=0, le=MAX_ID, strict=True, description="Optional id of an existing category"
    )

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        return _trimmed_length(v, "Title", 1, TITLE_MAX_LENGTH)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _trimmed_length(v, "Description", 0, DESCRIPTION_MAX_LENGTH)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[Union[str, datetime]]) -> Optional[datetime]:
        """
        Normalize dueDate from an ISO8601 string to an aware datetime.
        """
        return _parse_due_date(v)


# PUBLIC_INTERFACE
class TodoCreate(_TodoFields):
    """
    Schema for creating a new Todo item. New todos always start active.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Buy groceries",
                "description": "Milk, eggs, bread",
                "dueDate": "2025-02-01T09:00:00Z",
                "categoryId": 1,
            }
        }
    )


# PUBLIC_INTERFACE
class TodoUpdate(_TodoFields):
    """
    Schema for updating an existing Todo item.

    The title is always required. Optional fields left out of the body keep
    their stored value; sending null for description, dueDate or categoryId
    clears it. Use ``model_fields_set`` to tell the two apart.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Buy groceries and supplies",
                "description": None,
                "completed": True,
            }
        }
    )

    completed: Optional[bool] = Field(default=None, strict=True, description="Completion status flag")

    @field_validator("completed", mode="before")
    @classmethod
    def reject_null_completed(cls, v: Optional[bool]) -> bool:
        if v is None:
            raise ValueError("Completed must be a boolean")
        return v


# PUBLIC_INTERFACE
class TodoListQuery(CamelModel):
    """
    Query parameters accepted by the todo list endpoint.
    """

    status: StatusFilter = "all"
    category_id: Optional[str] = Field(
        default=None, description="Positive category id, or the literal 'null' for uncategorized todos"
    )
    sort_by: SortBy = "createdAt"
    sort_order: SortOrder = "desc"
    group_by_category: bool = False

    @field_validator("category_id")
    @classmethod
    def validate_category_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "null":
            return v
        if not (v.isascii() and v.isdigit()) or not 0 < int(v) <= MAX_ID:
            raise ValueError("Category id must be a positive integer or 'null'")
        return str(int(v))

    @field_validator("group_by_category", mode="before")
    @classmethod
    def parse_group_by_category(cls, v: object) -> bool:
        if isinstance(v, bool):
            return v
        return v == "true"

    @property
    def uncategorized(self) -> bool:
        return self.category_id == "null"

    @property
    def category_filter(self) -> Optional[int]:
        if self.category_id is None or self.uncategorized:
            return None
        return int(self.category_id)


# PUBLIC_INTERFACE
class CategoryOut(CamelModel):
    """
    Schema returned by the API for a category.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 1,
                "name": "Work",
                "todoCount": 3,
                "createdAt": "2025-01-25T10:15:30.123456Z",
                "updatedAt": "2025-01-25T10:15:30.123456Z",
            }
        }
    )

    id: int
    name: str
    todo_count: int = Field(..., description="Number of todos currently in this category")
    created_at: datetime
    updated_at: datetime


class CategorySummary(CamelModel):
    id: int
    name: str


# PUBLIC_INTERFACE
class TodoOut(CamelModel):
    """
    Schema returned by the API for a Todo item.
    """

    id: int = Field(..., description="Unique identifier of the todo item")
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    completed: bool
    category_id: Optional[int] = None
    category: Optional[CategorySummary] = Field(default=None, description="Id and name of the category")
    created_at: datetime
    updated_at: datetime


class TodoGroup(CamelModel):
    category: Optional[CategorySummary] = Field(..., description="Null for the uncategorized bucket")
    todos: List[TodoOut]


class GroupedTodos(CamelModel):
    grouped: List[TodoGroup]


class CategoryListResponse(CamelModel):
    data: List[CategoryOut]


class CategoryResponse(CamelModel):
    data: CategoryOut


class TodoListResponse(CamelModel):
    data: Union[GroupedTodos, List[TodoOut]]


class TodoResponse(CamelModel):
    data: TodoOut


class ErrorDetail(CamelModel):
    field: str
    message: str


class ErrorBody(CamelModel):
    code: str
    message: str
    details: Optional[List[ErrorDetail]] = None


class ErrorResponse(CamelModel):
    error: ErrorBody
