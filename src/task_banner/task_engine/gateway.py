"""Persistence gateways: load and save the whole task forest at once.

Stores the forest in a single document (``tasks.json`` by default) inside
the state directory. There is no incremental persistence: every save
replaces the full document, which keeps the file human-diffable and means a
reader only ever sees a complete forest.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from loguru import logger

from ..errors import DocumentDecodeError
from ..io_utils import load_document, save_document
from .model import TaskNode, forest_from_list, forest_to_list

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

STORE_FILENAME = "tasks.json"


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class TaskGateway(ABC):
    """Backing store for a task forest.

    Implementations are not expected to be thread-safe on their own; the
    engine serializes access with its reader/writer lock.
    """

    @abstractmethod
    def load(self) -> list[TaskNode]:
        """Return the stored forest, or ``[]`` when nothing was stored yet.

        Raises:
            StorageIOError: If the backing store cannot be read.
            DocumentDecodeError: If the stored data is corrupt.
        """

    @abstractmethod
    def save(self, forest: list[TaskNode]) -> None:
        """Replace the stored forest with *forest*.

        Raises:
            StorageIOError: If the backing store cannot be written.
        """

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Document store
# ---------------------------------------------------------------------------

class DocumentGateway(TaskGateway):
    """Forest persisted as one pretty-printed JSON (or YAML) document.

    Parameters
    ----------
    path:
        Document location. A ``.yaml``/``.yml`` suffix selects YAML; anything
        else is written as JSON. Missing parent directories are created on
        the first save.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> list[TaskNode]:
        raw = load_document(self.path, [])
        if raw is None:
            raw = []
        if not isinstance(raw, list):
            raise DocumentDecodeError(f"{self.path.name}: expected array, got {type(raw).__name__}")
        try:
            forest = forest_from_list(raw)
        except (TypeError, ValueError) as exc:
            raise DocumentDecodeError(f"{self.path.name}: {exc}") from exc
        logger.debug("Loaded {} root task(s) from {}", len(forest), self.path)
        return forest

    def save(self, forest: list[TaskNode]) -> None:
        save_document(self.path, forest_to_list(forest))
        logger.debug("Saved {} root task(s) to {}", len(forest), self.path)

    def __repr__(self) -> str:
        return f"DocumentGateway({str(self.path)!r})"
