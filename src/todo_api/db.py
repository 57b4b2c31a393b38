from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Generator, List, Optional

from .errors import AppError, ConflictError, NotFoundError
from .models import CategoryEntity, TodoEntity
from .repositories import ListQuery, Repository
from .schemas import TodoCreate, TodoUpdate

logger = logging.getLogger(__name__)

_CATEGORIES = "categories"
_TODOS = "todos"

_SCHEMA = (
    f"""
    CREATE TABLE IF NOT EXISTS {_CATEGORIES} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {_TODOS} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT NULL,
        due_date TEXT NULL,
        completed INTEGER NOT NULL DEFAULT 0,
        category_id INTEGER NULL REFERENCES {_CATEGORIES}(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_{_TODOS}_completed ON {_TODOS}(completed)",
    f"CREATE INDEX IF NOT EXISTS idx_{_TODOS}_category_id ON {_TODOS}(category_id)",
    f"CREATE INDEX IF NOT EXISTS idx_{_TODOS}_created_at ON {_TODOS}(created_at)",
    f"CREATE INDEX IF NOT EXISTS idx_{_TODOS}_due_date ON {_TODOS}(due_date)",
)

# Todo rows always carry the name of their category, if any.
_SELECT_TODOS = f"""
    SELECT t.*, c.name AS category_name
    FROM {_TODOS} t
    LEFT JOIN {_CATEGORIES} c ON c.id = t.category_id
"""

# The todo count is aggregated on every read, never stored.
_SELECT_CATEGORIES = f"""
    SELECT c.*, COALESCE(n.todo_count, 0) AS todo_count
    FROM {_CATEGORIES} c
    LEFT JOIN (
        SELECT category_id, COUNT(*) AS todo_count
        FROM {_TODOS}
        WHERE category_id IS NOT NULL
        GROUP BY category_id
    ) n ON n.category_id = c.id
"""

_SORT_COLUMNS = {"created_at", "due_date"}


def _to_text(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    # Fixed-width text keeps lexical order equal to chronological order
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


# PUBLIC_INTERFACE
def classify_integrity_error(exc: sqlite3.IntegrityError) -> Optional[AppError]:
    """
    Translate a driver constraint failure into the API error taxonomy.

    Unique violations become ConflictError and foreign key violations become
    NotFoundError. Returns None for anything else, which callers re-raise as
    an unexpected storage failure.
    """
    name = getattr(exc, "sqlite_errorname", "") or ""
    text = str(exc)
    if name == "SQLITE_CONSTRAINT_UNIQUE" or text.startswith("UNIQUE constraint failed"):
        # "UNIQUE constraint failed: categories.name"
        field = text.rsplit(".", 1)[-1] if "." in text else "field"
        return ConflictError(f"A record with this {field} already exists")
    if name == "SQLITE_CONSTRAINT_FOREIGNKEY" or text.startswith("FOREIGN KEY constraint failed"):
        return NotFoundError("Category not found")
    return None


class SQLiteRepository(Repository):
    """
    SQLite repository implementing the Repository interface.

    The repository owns a single connection for its whole lifetime, so a
    ':memory:' path gives a private database that lives as long as the handle.
    """

    def __init__(self, db_path: str) -> None:
        if db_path != ":memory:":
            os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._lock = RLock()
        self._last_ts: Optional[datetime] = None
        self._connection = sqlite3.connect(db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA foreign_keys = ON")
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        with self._lock:
            conn = self._connection
            try:
                yield conn
                conn.commit()
            except sqlite3.IntegrityError as exc:
                conn.rollback()
                error = classify_integrity_error(exc)
                if error is None:
                    raise
                raise error from exc
            except Exception:
                conn.rollback()
                raise

    def _init_db(self) -> None:
        with self._conn() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    def _now(self) -> datetime:
        """UTC clock that never repeats or goes backwards for this handle."""
        with self._lock:
            now = datetime.now(timezone.utc)
            if self._last_ts is not None and now <= self._last_ts:
                now = self._last_ts + timedelta(microseconds=1)
            self._last_ts = now
            return now

    def close(self) -> None:
        with self._lock:
            logger.info("Closing SQLite repository at %s", self._db_path)
            self._connection.close()

    # Row mapping

    def _row_to_category(self, row: sqlite3.Row) -> CategoryEntity:
        return {
            "id": int(row["id"]),
            "name": str(row["name"]),
            "todo_count": int(row["todo_count"]),
            "created_at": _parse_dt(row["created_at"]),  # type: ignore
            "updated_at": _parse_dt(row["updated_at"]),  # type: ignore
        }

    def _row_to_todo(self, row: sqlite3.Row) -> TodoEntity:
        category_id = row["category_id"]
        category = None
        if category_id is not None:
            category = {"id": int(category_id), "name": str(row["category_name"])}
        return {
            "id": int(row["id"]),
            "title": str(row["title"]),
            "description": row["description"],
            "due_date": _parse_dt(row["due_date"]),
            "completed": bool(row["completed"]),
            "category_id": int(category_id) if category_id is not None else None,
            "category": category,  # type: ignore[typeddict-item]
            "created_at": _parse_dt(row["created_at"]),  # type: ignore
            "updated_at": _parse_dt(row["updated_at"]),  # type: ignore
        }

    def _fetch_category(self, conn: sqlite3.Connection, category_id: int) -> Optional[CategoryEntity]:
        row = conn.execute(f"{_SELECT_CATEGORIES} WHERE c.id = ?", (category_id,)).fetchone()
        return self._row_to_category(row) if row else None

    def _fetch_todo(self, conn: sqlite3.Connection, todo_id: int) -> Optional[TodoEntity]:
        row = conn.execute(f"{_SELECT_TODOS} WHERE t.id = ?", (todo_id,)).fetchone()
        return self._row_to_todo(row) if row else None

    # Categories

    def list_categories(self) -> List[CategoryEntity]:
        with self._conn() as conn:
            rows = conn.execute(f"{_SELECT_CATEGORIES} ORDER BY c.name ASC").fetchall()
            return [self._row_to_category(r) for r in rows]

    def get_category(self, category_id: int) -> Optional[CategoryEntity]:
        with self._conn() as conn:
            return self._fetch_category(conn, category_id)

    def category_exists(self, category_id: int) -> bool:
        with self._conn() as conn:
            row = conn.execute(f"SELECT 1 FROM {_CATEGORIES} WHERE id = ?", (category_id,)).fetchone()
            return row is not None

    def create_category(self, name: str) -> CategoryEntity:
        now = _to_text(self._now())
        with self._conn() as conn:
            cur = conn.execute(
                f"INSERT INTO {_CATEGORIES} (name, created_at, updated_at) VALUES (?, ?, ?)",
                (name, now, now),
            )
            created = self._fetch_category(conn, int(cur.lastrowid))
            assert created is not None
            return created

    def update_category(self, category_id: int, name: str) -> Optional[CategoryEntity]:
        now = _to_text(self._now())
        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE {_CATEGORIES} SET name = ?, updated_at = ? WHERE id = ?",
                (name, now, category_id),
            )
            if cur.rowcount == 0:
                return None
            return self._fetch_category(conn, category_id)

    def delete_category(self, category_id: int) -> bool:
        with self._conn() as conn:
            # ON DELETE SET NULL detaches the category's todos
            cur = conn.execute(f"DELETE FROM {_CATEGORIES} WHERE id = ?", (category_id,))
            return cur.rowcount > 0

    # Todos

    def list_todos(self, query: Optional[ListQuery] = None) -> List[TodoEntity]:
        q = query or ListQuery()
        clauses = []
        params: list = []

        if q.completed is not None:
            clauses.append("t.completed = ?")
            params.append(1 if q.completed else 0)

        if q.uncategorized:
            clauses.append("t.category_id IS NULL")
        elif q.category_id is not None:
            clauses.append("t.category_id = ?")
            params.append(q.category_id)

        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        field = q.sort_by if q.sort_by in _SORT_COLUMNS else "created_at"
        direction = "ASC" if q.sort_order == "asc" else "DESC"
        order_sql = f"ORDER BY t.{field} {direction}, t.id {direction}"

        with self._conn() as conn:
            rows = conn.execute(f"{_SELECT_TODOS} {where_sql} {order_sql}", params).fetchall()
            return [self._row_to_todo(r) for r in rows]

    def get_todo(self, todo_id: int) -> Optional[TodoEntity]:
        with self._conn() as conn:
            return self._fetch_todo(conn, todo_id)

    def create_todo(self, data: TodoCreate) -> TodoEntity:
        now = _to_text(self._now())
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                INSERT INTO {_TODOS} (title, description, due_date, completed, category_id,
                    created_at, updated_at)
                VALUES (?, ?, ?, 0, ?, ?, ?)
                """,
                (data.title, data.description, _to_text(data.due_date), data.category_id, now, now),
            )
            created = self._fetch_todo(conn, int(cur.lastrowid))
            assert created is not None
            return created

    def update_todo(self, todo_id: int, data: TodoUpdate) -> Optional[TodoEntity]:
        now = _to_text(self._now())
        with self._conn() as conn:
            current = self._fetch_todo(conn, todo_id)
            if current is None:
                return None

            fields = data.model_fields_set
            description = data.description if "description" in fields else current["description"]
            due_date = data.due_date if "due_date" in fields else current["due_date"]
            category_id = data.category_id if "category_id" in fields else current["category_id"]
            completed = data.completed if "completed" in fields else current["completed"]

            conn.execute(
                f"""
                UPDATE {_TODOS}
                SET title = ?, description = ?, due_date = ?, completed = ?,
                    category_id = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    data.title,
                    description,
                    _to_text(due_date),
                    1 if completed else 0,
                    category_id,
                    now,
                    todo_id,
                ),
            )
            return self._fetch_todo(conn, todo_id)

    def delete_todo(self, todo_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {_TODOS} WHERE id = ?", (todo_id,))
            return cur.rowcount > 0

    def toggle_todo(self, todo_id: int) -> Optional[TodoEntity]:
        now = _to_text(self._now())
        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE {_TODOS} SET completed = 1 - completed, updated_at = ? WHERE id = ?",
                (now, todo_id),
            )
            if cur.rowcount == 0:
                return None
            return self._fetch_todo(conn, todo_id)
