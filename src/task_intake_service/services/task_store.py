"""Task storage: the contract the core relies on, plus a SQLite implementation.

Every operation is scoped by user id. Nothing here looks a task up by id alone.
"""

import asyncio
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Protocol
from uuid import uuid4

from ..models.task import StoredTask

UPDATABLE_FIELDS = ("task_name", "due_date", "is_completed", "original_request")


class TaskStore(Protocol):
    """Storage collaborator used by the dispatcher and confirmation flow."""

    async def list_tasks(self, user_id: str, include_archived: bool = False) -> list[StoredTask]: ...

    async def insert_task(
        self,
        user_id: str,
        task_name: str,
        due_date: str | None,
        is_completed: bool,
        original_request: str | None,
    ) -> StoredTask: ...

    async def update_task(self, task_id: str, user_id: str, fields: dict[str, Any]) -> StoredTask | None: ...

    async def set_archived(self, task_id: str, user_id: str, is_archived: bool) -> StoredTask | None: ...

    async def task_exists(self, task_id: str, user_id: str) -> bool: ...

    async def delete_task(self, task_id: str, user_id: str) -> bool: ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_task(row: sqlite3.Row) -> StoredTask:
    return StoredTask(
        id=row["id"],
        user_id=row["user_id"],
        task_name=row["task_name"],
        due_date=row["due_date"],
        is_completed=bool(row["is_completed"]),
        original_request=row["original_request"],
        is_archived=bool(row["is_archived"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class SQLiteTaskStore:
    """SQLite-backed task store. Opens one connection per operation."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        """Initialize the database schema."""
        if self.db_path.parent != Path("."):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    task_name TEXT NOT NULL,
                    due_date TEXT,
                    is_completed INTEGER NOT NULL DEFAULT 0,
                    original_request TEXT,
                    is_archived INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks(user_id)
            """)
            conn.commit()

    def _list_tasks(self, user_id: str, include_archived: bool) -> list[StoredTask]:
        query = "SELECT * FROM tasks WHERE user_id = ?"
        if not include_archived:
            query += " AND is_archived = 0"
        query += " ORDER BY due_date IS NOT NULL, due_date ASC, created_at ASC"
        with self.get_connection() as conn:
            rows = conn.execute(query, (user_id,)).fetchall()
        return [_row_to_task(row) for row in rows]

    def _insert_task(
        self,
        user_id: str,
        task_name: str,
        due_date: str | None,
        is_completed: bool,
        original_request: str | None,
    ) -> StoredTask:
        task_id = str(uuid4())
        now = _now()
        with self.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO tasks
                (id, user_id, task_name, due_date, is_completed, original_request,
                 is_archived, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?)
                """,
                (task_id, user_id, task_name, due_date, int(is_completed), original_request, now, now),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
            ).fetchone()
        return _row_to_task(row)

    def _update_task(self, task_id: str, user_id: str, fields: dict[str, Any]) -> StoredTask | None:
        # None never overwrites an existing value
        updates = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
        if "is_completed" in updates:
            updates["is_completed"] = int(updates["is_completed"])

        assignments = ", ".join(f"{column} = ?" for column in updates)
        assignments = f"{assignments}, updated_at = ?" if assignments else "updated_at = ?"
        params = [*updates.values(), _now(), task_id, user_id]

        with self.get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ? AND user_id = ?",
                params,
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
            ).fetchone()
        return _row_to_task(row)

    def _set_archived(self, task_id: str, user_id: str, is_archived: bool) -> StoredTask | None:
        with self.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE tasks SET is_archived = ?, updated_at = ? WHERE id = ? AND user_id = ?",
                (int(is_archived), _now(), task_id, user_id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
            ).fetchone()
        return _row_to_task(row)

    def _task_exists(self, task_id: str, user_id: str) -> bool:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT id FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
            ).fetchone()
        return row is not None

    def _delete_task(self, task_id: str, user_id: str) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id))
            conn.commit()
        return cursor.rowcount > 0

    async def list_tasks(self, user_id: str, include_archived: bool = False) -> list[StoredTask]:
        return await asyncio.to_thread(self._list_tasks, user_id, include_archived)

    async def insert_task(
        self,
        user_id: str,
        task_name: str,
        due_date: str | None,
        is_completed: bool,
        original_request: str | None,
    ) -> StoredTask:
        return await asyncio.to_thread(
            self._insert_task, user_id, task_name, due_date, is_completed, original_request
        )

    async def update_task(self, task_id: str, user_id: str, fields: dict[str, Any]) -> StoredTask | None:
        return await asyncio.to_thread(self._update_task, task_id, user_id, fields)

    async def set_archived(self, task_id: str, user_id: str, is_archived: bool) -> StoredTask | None:
        return await asyncio.to_thread(self._set_archived, task_id, user_id, is_archived)

    async def task_exists(self, task_id: str, user_id: str) -> bool:
        return await asyncio.to_thread(self._task_exists, task_id, user_id)

    async def delete_task(self, task_id: str, user_id: str) -> bool:
        return await asyncio.to_thread(self._delete_task, task_id, user_id)
