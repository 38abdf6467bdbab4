"""Task tree engine: the operations behind the task API.

Every call reloads the whole forest from the gateway; nothing is cached
between calls. Mutations hold the exclusive lock across the complete
load → compute → save cycle, so two concurrent mutations can never both
load the same forest and overwrite each other's result. Reads hold the
shared lock only while loading.

A mutation that fails while computing (unknown id, bad arguments) raises
before anything is saved, leaving the backing store untouched.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

from loguru import logger
from pydantic import ValidationError

from ..errors import InvalidArgumentError, TaskNotFoundError
from .gateway import TaskGateway
from .locking import ReadWriteLock
from .model import ModeValue, TaskNode, TaskUpdate
from .tree import (
    Forest,
    apply_at_id,
    duplicate_ids,
    exchange_siblings,
    filter_by_mode,
    find_by_id,
    max_id,
    prepend_child,
    relink_parents,
    remove_by_id,
)

# A compute step returns the forest to persist (None = nothing to write)
# together with the value handed back to the caller.
_Compute = Callable[[Forest], "tuple[Optional[Forest], Any]"]


class TaskTreeEngine:
    """Tree-aware task storage on top of a :class:`TaskGateway`.

    Parameters
    ----------
    gateway:
        Backing store. The engine owns all access to it; sharing one gateway
        between two engines defeats the locking.
    """

    def __init__(self, gateway: TaskGateway) -> None:
        self.gateway = gateway
        self._lock = ReadWriteLock()

    def close(self) -> None:
        self.gateway.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read(self, operation_name: str) -> Forest:
        with self._lock.read_locked(operation_name):
            return self.gateway.load()

    def _mutate(self, operation_name: str, compute: _Compute) -> Any:
        with self._lock.write_locked(operation_name):
            forest = self.gateway.load()
            new_forest, result = compute(forest)
            if new_forest is not None:
                try:
                    self.gateway.save(new_forest)
                except Exception as exc:
                    logger.error("{} failed to save: {}", operation_name, exc)
                    raise
            return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load_tasks(self, mode: Optional[ModeValue] = "") -> Forest:
        """Return the forest, restricted to the *mode* view when one is given.

        An empty mode or the shared wildcard returns every task.
        """
        forest = self._read("load_tasks")
        return filter_by_mode(forest, mode)

    def get_task(self, task_id: int) -> TaskNode:
        """Return the first task with *task_id* in pre-order.

        Raises:
            TaskNotFoundError: If no task has that id.
        """
        node = find_by_id(self._read("get_task"), task_id)
        if node is None:
            raise TaskNotFoundError("task not found")
        return node

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def save_tasks(self, forest: Forest) -> None:
        """Replace the stored forest wholesale; nothing is merged.

        ``parent_id`` fields are rewritten to match where each task sits.
        """

        def compute(_current: Forest) -> tuple[Forest, None]:
            dupes = duplicate_ids(forest)
            if dupes:
                logger.warning("save_tasks: forest contains duplicate task ids {}", dupes)
            return relink_parents(forest), None

        self._mutate("save_tasks", compute)
        logger.info("Replaced task forest ({} root task(s))", len(forest))

    def add_task(self, task: TaskNode) -> TaskNode:
        """Create *task* and return the stored copy with its assigned id.

        The new id is one above the highest id anywhere in the forest. A task
        with a ``parent_id`` goes to the front of that parent's sub-tasks;
        otherwise it goes to the front of the root list. Caller-supplied
        sub-tasks are discarded.

        Raises:
            TaskNotFoundError: If ``parent_id`` is set but no such task exists.
        """

        def compute(forest: Forest) -> tuple[Forest, TaskNode]:
            node = task.shallow_clone()
            node.id = max_id(forest) + 1
            node.sub_tasks = []
            if node.is_root:
                node.parent_id = 0
                new_forest = [node] + forest
            else:
                new_forest, found = prepend_child(forest, node.parent_id, node)
                if not found:
                    raise TaskNotFoundError("parent task not found")
            return new_forest, node.deep_clone()

        created = self._mutate("add_task", compute)
        logger.info("Added task {} (parent {})", created.id, created.parent_id)
        return created

    def remove_task(self, task_id: int) -> None:
        """Delete a task together with its whole subtree.

        Raises:
            TaskNotFoundError: If no task has *task_id*.
        """

        def compute(forest: Forest) -> tuple[Forest, None]:
            new_forest, found = remove_by_id(forest, task_id)
            if not found:
                raise TaskNotFoundError("task not found")
            return new_forest, None

        self._mutate("remove_task", compute)
        logger.info("Removed task {}", task_id)

    def update_task(self, task_id: int, update: Union[TaskUpdate, dict[str, Any]]) -> None:
        """Apply the fields present in *update*; ``notes`` appends one note.

        Raises:
            InvalidArgumentError: If a dict *update* has wrongly typed fields.
            TaskNotFoundError: If no task has *task_id*.
        """
        if not isinstance(update, TaskUpdate):
            try:
                update = TaskUpdate.model_validate(update)
            except ValidationError as exc:
                raise InvalidArgumentError(f"invalid task update: {exc}") from exc

        def compute(forest: Forest) -> tuple[Forest, None]:
            new_forest, found = apply_at_id(forest, task_id, update.apply_to)
            if not found:
                raise TaskNotFoundError("task not found")
            return new_forest, None

        self._mutate("update_task", compute)
        logger.info("Updated task {} ({})", task_id, ", ".join(update.present_fields()) or "no fields")

    def exchange_order(self, task_id: int, exchange_task_id: int) -> None:
        """Swap two tasks that are siblings (or both roots).

        Swapping a task with itself succeeds without writing anything.

        Raises:
            InvalidArgumentError: If either id is 0.
            TaskNotFoundError: If the two tasks are not in the same sibling list.
        """
        if not task_id:
            raise InvalidArgumentError("requires taskID")
        if not exchange_task_id:
            raise InvalidArgumentError("requires exchangeTaskID")
        if task_id == exchange_task_id:
            return

        def compute(forest: Forest) -> tuple[Forest, None]:
            new_forest, found = exchange_siblings(forest, task_id, exchange_task_id)
            if not found:
                raise TaskNotFoundError("tasks not found or not at same level")
            return new_forest, None

        self._mutate("exchange_order", compute)
        logger.info("Exchanged order of tasks {} and {}", task_id, exchange_task_id)

    def add_task_note(self, task_id: int, note: str) -> None:
        """Append *note* to the task's notes.

        Raises:
            TaskNotFoundError: If no task has *task_id*.
        """

        def _append(node: TaskNode) -> TaskNode:
            updated = node.shallow_clone()
            updated.notes.append(note)
            return updated

        def compute(forest: Forest) -> tuple[Forest, None]:
            new_forest, found = apply_at_id(forest, task_id, _append)
            if not found:
                raise TaskNotFoundError("task not found")
            return new_forest, None

        self._mutate("add_task_note", compute)
        logger.info("Added note to task {}", task_id)

    def update_task_note(self, task_id: int, note_index: int, new_text: str) -> None:
        """Replace the note at *note_index*.

        An index outside the task's notes is ignored: the call succeeds,
        nothing is written and a warning is logged.

        Raises:
            TaskNotFoundError: If no task has *task_id*.
        """

        def compute(forest: Forest) -> tuple[Optional[Forest], None]:
            node = find_by_id(forest, task_id)
            if node is None:
                raise TaskNotFoundError("task not found")
            if not 0 <= note_index < len(node.notes):
                logger.warning(
                    "update_task_note: index {} out of range for task {} ({} note(s)); ignored",
                    note_index,
                    task_id,
                    len(node.notes),
                )
                return None, None

            def _replace(target: TaskNode) -> TaskNode:
                updated = target.shallow_clone()
                updated.notes[note_index] = new_text
                return updated

            new_forest, _ = apply_at_id(forest, task_id, _replace)
            return new_forest, None

        self._mutate("update_task_note", compute)
