"""Load optional store configuration from `<state_dir>/config.yaml`."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from .io_utils import load_data_with_error
from .task_engine.engine import TaskTreeEngine
from .task_engine.gateway import STORE_FILENAME, DocumentGateway, TaskGateway
from .task_engine.sql_store import DB_FILENAME, SQLiteGateway

CONFIG_FILE = "config.yaml"
DEFAULT_STATE_DIR = "~/.task-banner"

ENV_STATE_DIR = "TASK_BANNER_STATE_DIR"
ENV_BACKEND = "TASK_BANNER_BACKEND"
ENV_PATH = "TASK_BANNER_PATH"

BACKEND_DOCUMENT = "document"
BACKEND_SQLITE = "sqlite"
VALID_BACKENDS = {BACKEND_DOCUMENT, BACKEND_SQLITE}

_DEFAULT_FILENAMES = {BACKEND_DOCUMENT: STORE_FILENAME, BACKEND_SQLITE: DB_FILENAME}


@dataclass(frozen=True)
class StoreSettings:
    state_dir: Path
    backend: str = BACKEND_DOCUMENT
    path: Optional[Path] = None

    @property
    def store_path(self) -> Path:
        if self.path is None:
            return self.state_dir / _DEFAULT_FILENAMES[self.backend]
        if self.path.is_absolute():
            return self.path
        return self.state_dir / self.path


def resolve_state_dir(state_dir: Optional[str | Path] = None, env: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if env is None else env
    raw = state_dir or env.get(ENV_STATE_DIR) or DEFAULT_STATE_DIR
    return Path(raw).expanduser().resolve()


def load_store_config(state_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional config file.

    Args:
        state_dir: Directory holding the task store and its config.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    return load_data_with_error(state_dir / CONFIG_FILE, {})


def load_settings(
    state_dir: Optional[str | Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> tuple[StoreSettings, str | None]:
    """Combine the config file and environment overrides into settings.

    Environment variables win over the file. An invalid backend name falls
    back to the document store and is reported in the error message rather
    than raised, matching how a broken config file is handled.

    Returns:
        A tuple of `(settings, error_message)`.
    """
    env = os.environ if env is None else env
    root = resolve_state_dir(state_dir, env)
    config, err = load_store_config(root)

    backend = str(env.get(ENV_BACKEND) or config.get("backend") or BACKEND_DOCUMENT).strip().lower()
    if backend not in VALID_BACKENDS:
        problem = f"unknown backend {backend!r}; expected one of {sorted(VALID_BACKENDS)}"
        err = f"{err}; {problem}" if err else problem
        backend = BACKEND_DOCUMENT

    raw_path = env.get(ENV_PATH) or config.get("path")
    path = Path(str(raw_path)).expanduser() if raw_path else None
    return StoreSettings(state_dir=root, backend=backend, path=path), err


def open_gateway(settings: StoreSettings) -> TaskGateway:
    if settings.backend == BACKEND_SQLITE:
        return SQLiteGateway(settings.store_path)
    return DocumentGateway(settings.store_path)


def open_engine(settings: StoreSettings) -> TaskTreeEngine:
    """Build the engine over the backend chosen in *settings*."""
    return TaskTreeEngine(open_gateway(settings))
