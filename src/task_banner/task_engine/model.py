"""Task tree model.

A :class:`TaskNode` owns its ``sub_tasks`` outright, so the whole forest is a
plain list of nested dataclasses that serializes to one JSON/YAML document.
Field names on disk follow the client wire format (``startTime``,
``parentID``, ``subTasks``), which is why :meth:`TaskNode.to_dict` and
:meth:`TaskNode.from_dict` map them explicitly instead of using ``asdict``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel

from ..utils import swift_timestamp_to_datetime


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskMode(str, Enum):
    """Category used to split the board into filtered views."""

    WORK = "work"
    LIFE = "life"
    SHARED = "shared"  # wildcard: visible in every view


class TaskStatus(str, Enum):
    """Lifecycle label of a task."""

    CREATED = "created"
    DONE = "done"
    ARCHIVED = "archived"


# Modes and statuses written by other clients are kept verbatim rather than
# coerced, so a field is either a known enum member or the raw string.
ModeValue = Union[TaskMode, str]
StatusValue = Union[TaskStatus, str]


def coerce_label(enum_cls: type[Enum], raw: Any) -> Any:
    if raw is None:
        return ""
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw))
    except ValueError:
        return str(raw)


def label_of(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value or "")


def mode_matches(node_mode: ModeValue, mode: ModeValue) -> bool:
    """True if a node with *node_mode* is visible in the *mode* view."""
    label = label_of(node_mode)
    return label in ("", TaskMode.SHARED.value) or label == label_of(mode)


def is_wildcard_mode(mode: Optional[ModeValue]) -> bool:
    return label_of(mode) in ("", TaskMode.SHARED.value)


# ---------------------------------------------------------------------------
# TaskNode
# ---------------------------------------------------------------------------

@dataclass
class TaskNode:
    """One task record together with its ordered sub-tasks."""

    id: int = 0
    title: str = ""
    start_time: float = 0.0
    parent_id: int = 0
    sub_tasks: list["TaskNode"] = field(default_factory=list)
    mode: ModeValue = ""
    status: StatusValue = TaskStatus.CREATED
    notes: list[str] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return not self.parent_id

    @property
    def started_at(self) -> datetime:
        return swift_timestamp_to_datetime(self.start_time)

    def shallow_clone(self) -> "TaskNode":
        """Copy the node; ``sub_tasks`` and ``notes`` get fresh outer lists."""
        return replace(self, sub_tasks=list(self.sub_tasks), notes=list(self.notes))

    def deep_clone(self) -> "TaskNode":
        return replace(
            self,
            sub_tasks=[child.deep_clone() for child in self.sub_tasks],
            notes=list(self.notes),
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the document layout, keys in a stable order."""
        return {
            "id": self.id,
            "title": self.title,
            "startTime": self.start_time,
            "parentID": self.parent_id,
            "subTasks": [child.to_dict() for child in self.sub_tasks],
            "mode": label_of(self.mode),
            "status": label_of(self.status),
            "notes": list(self.notes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskNode":
        """Deserialize from the document layout.

        Raises:
            ValueError / TypeError: If a field has the wrong shape. Callers
            loading a persisted document turn these into decode errors.
        """
        if not isinstance(data, dict):
            raise TypeError(f"expected task object, got {type(data).__name__}")
        sub_tasks = data.get("subTasks") or []
        notes = data.get("notes") or []
        if not isinstance(sub_tasks, list):
            raise TypeError("'subTasks' must be an array")
        if not isinstance(notes, list):
            raise TypeError("'notes' must be an array")
        return cls(
            id=int(data.get("id", 0) or 0),
            title=str(data.get("title", "") or ""),
            start_time=float(data.get("startTime", 0) or 0),
            parent_id=int(data.get("parentID", 0) or 0),
            sub_tasks=[cls.from_dict(child) for child in sub_tasks],
            mode=coerce_label(TaskMode, data.get("mode")),
            status=coerce_label(TaskStatus, data.get("status")),
            notes=[str(n) for n in notes],
        )


def forest_to_list(forest: list[TaskNode]) -> list[dict[str, Any]]:
    return [node.to_dict() for node in forest]


def forest_from_list(raw: list[Any]) -> list[TaskNode]:
    return [TaskNode.from_dict(item) for item in raw]


# ---------------------------------------------------------------------------
# Partial update
# ---------------------------------------------------------------------------

class TaskUpdate(BaseModel):
    """Fields a caller may change on an existing task.

    Only fields that were explicitly provided are applied. ``notes`` is a
    single note appended to the task, not a replacement list.
    """

    title: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    mode: Optional[str] = None

    def present_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    def apply_to(self, node: TaskNode) -> TaskNode:
        """Return a copy of *node* with this update applied."""
        updated = node.shallow_clone()
        changes = self.present_fields()
        if changes.get("title") is not None:
            updated.title = changes["title"]
        if changes.get("status") is not None:
            updated.status = coerce_label(TaskStatus, changes["status"])
        if changes.get("notes") is not None:
            updated.notes.append(changes["notes"])
        if changes.get("mode") is not None:
            updated.mode = coerce_label(TaskMode, changes["mode"])
        return updated
