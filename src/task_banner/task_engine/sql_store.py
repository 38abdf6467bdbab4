"""Relational gateway: one SQLite row per task.

Each row points at its parent through a foreign key declared ``ON DELETE
CASCADE``, so deleting a task row deletes its descendants in the database
itself. Sibling order lives in the ``position`` column. Every row also
carries its serialized subtree in ``sub_tasks`` so a single row can be handed
out without walking its children.

Saving diffs the new forest against the stored ids: rows that disappeared are
deleted (cascading to their descendants), everything else is upserted in
pre-order so a parent row always exists before its children. The whole save
runs in one transaction.
"""

from __future__ import annotations

import contextlib
import json
import sqlite3
from pathlib import Path
from typing import Any, Iterator, Optional

from loguru import logger

from ..errors import DocumentDecodeError, InvalidArgumentError, StorageIOError
from .gateway import TaskGateway
from .model import TaskMode, TaskNode, TaskStatus, coerce_label, forest_to_list, label_of
from .tree import duplicate_ids

DB_FILENAME = "tasks.db"

SCHEMA = """
CREATE TABLE IF NOT EXISTS tasks (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL,
    status TEXT NOT NULL,
    mode TEXT NOT NULL,
    start_time REAL NOT NULL,
    parent_id INTEGER REFERENCES tasks(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    notes TEXT NOT NULL,
    sub_tasks TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tasks_parent ON tasks(parent_id, position);
"""

_UPSERT = """
INSERT INTO tasks (id, title, status, mode, start_time, parent_id, position, notes, sub_tasks)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    title = excluded.title,
    status = excluded.status,
    mode = excluded.mode,
    start_time = excluded.start_time,
    parent_id = excluded.parent_id,
    position = excluded.position,
    notes = excluded.notes,
    sub_tasks = excluded.sub_tasks
"""


class SQLiteGateway(TaskGateway):
    """Forest persisted as rows of a ``tasks`` table.

    Parameters
    ----------
    db_path:
        SQLite database file. Created (with its directory) on first use.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._schema_ready = False

    # -- connection helpers -------------------------------------------------

    def _get_conn(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection; commit on success, roll back on error, always close."""
        try:
            conn = self._get_conn()
        except (OSError, sqlite3.Error) as exc:
            raise StorageIOError(f"{self.db_path.name}: {exc}") from exc
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug("Transaction failed, rolling back: {}", e)
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.executescript(SCHEMA)
        except sqlite3.Error as exc:
            raise StorageIOError(f"{self.db_path.name}: {exc}") from exc
        self._schema_ready = True

    def _ensure_schema(self) -> None:
        if not self._schema_ready:
            self.init_schema()

    # -- gateway ------------------------------------------------------------

    def load(self) -> list[TaskNode]:
        self._ensure_schema()
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT id, title, status, mode, start_time, parent_id, notes "
                    "FROM tasks ORDER BY position, id"
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageIOError(f"{self.db_path.name}: {exc}") from exc

        nodes: dict[int, TaskNode] = {}
        children: dict[Optional[int], list[TaskNode]] = {}
        for row in rows:
            node = _row_to_node(row)
            nodes[node.id] = node
            children.setdefault(row["parent_id"], []).append(node)
        for node_id, node in nodes.items():
            node.sub_tasks = children.get(node_id, [])
        forest = children.get(None, [])
        logger.debug("Loaded {} task row(s) from {}", len(rows), self.db_path)
        return forest

    def save(self, forest: list[TaskNode]) -> None:
        self._ensure_schema()
        dupes = duplicate_ids(forest)
        if dupes:
            raise InvalidArgumentError(f"duplicate task id(s): {dupes}")
        rows = list(_flatten(forest))
        new_ids = {row[0] for row in rows}
        try:
            with self._connect() as conn:
                existing = {r["id"] for r in conn.execute("SELECT id FROM tasks")}
                gone = sorted(existing - new_ids)
                conn.executemany("DELETE FROM tasks WHERE id = ?", [(i,) for i in gone])
                conn.executemany(_UPSERT, rows)
        except sqlite3.IntegrityError as exc:
            raise InvalidArgumentError(f"forest violates table constraints: {exc}") from exc
        except sqlite3.Error as exc:
            raise StorageIOError(f"{self.db_path.name}: {exc}") from exc
        logger.debug("Saved {} task row(s) to {} ({} deleted)", len(rows), self.db_path, len(gone))

    def get_row_subtree(self, task_id: int) -> Optional[list[dict[str, Any]]]:
        """Return the denormalized ``sub_tasks`` column of one row."""
        self._ensure_schema()
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT sub_tasks FROM tasks WHERE id = ?", (task_id,)).fetchone()
        except sqlite3.Error as exc:
            raise StorageIOError(f"{self.db_path.name}: {exc}") from exc
        if row is None:
            return None
        return _decode_json(row["sub_tasks"], "sub_tasks", task_id)

    def __repr__(self) -> str:
        return f"SQLiteGateway({str(self.db_path)!r})"


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------

def _flatten(forest: list[TaskNode], parent_id: Optional[int] = None) -> Iterator[tuple[Any, ...]]:
    """Yield upsert rows in pre-order; ``parent_id`` follows tree placement."""
    for position, node in enumerate(forest):
        yield (
            node.id,
            node.title,
            label_of(node.status),
            label_of(node.mode),
            float(node.start_time),
            parent_id,
            position,
            json.dumps(list(node.notes), ensure_ascii=False),
            json.dumps(forest_to_list(node.sub_tasks), ensure_ascii=False),
        )
        yield from _flatten(node.sub_tasks, node.id)


def _decode_json(raw: str, column: str, task_id: int) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise DocumentDecodeError(f"task {task_id}: invalid {column} column: {exc}") from exc


def _row_to_node(row: sqlite3.Row) -> TaskNode:
    notes = _decode_json(row["notes"], "notes", row["id"])
    if not isinstance(notes, list):
        raise DocumentDecodeError(f"task {row['id']}: notes column is not an array")
    return TaskNode(
        id=row["id"],
        title=row["title"],
        start_time=row["start_time"],
        parent_id=row["parent_id"] or 0,
        mode=coerce_label(TaskMode, row["mode"]),
        status=coerce_label(TaskStatus, row["status"]),
        notes=[str(n) for n in notes],
    )
