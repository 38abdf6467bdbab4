"""Provide the public `task_banner` package exports."""

from __future__ import annotations

from .errors import (
    DocumentDecodeError,
    InvalidArgumentError,
    StorageIOError,
    TaskNotFoundError,
    TaskStoreError,
)
from .task_engine.engine import TaskTreeEngine
from .task_engine.model import TaskMode, TaskNode, TaskStatus, TaskUpdate

__all__ = [
    "DocumentDecodeError",
    "InvalidArgumentError",
    "StorageIOError",
    "TaskMode",
    "TaskNode",
    "TaskNotFoundError",
    "TaskStatus",
    "TaskStoreError",
    "TaskTreeEngine",
    "TaskUpdate",
]
