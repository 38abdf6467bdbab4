"""Exception taxonomy for the task tree store."""

from __future__ import annotations


class TaskStoreError(Exception):
    """Base class for every error raised by the task store."""

    pass


class TaskNotFoundError(TaskStoreError):
    """A task (or the parent a new task should attach to) does not exist."""

    pass


class InvalidArgumentError(TaskStoreError, ValueError):
    """An identifier argument is missing where the operation requires one."""

    pass


class StorageIOError(TaskStoreError):
    """Reading from or writing to the backing store failed."""

    pass


class DocumentDecodeError(TaskStoreError):
    """The persisted document could not be decoded into a task forest."""

    pass
