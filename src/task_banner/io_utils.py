"""Whole-document JSON/YAML persistence helpers."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from .errors import DocumentDecodeError, StorageIOError


def _is_yaml(path: Path) -> bool:
    return path.suffix in {".yaml", ".yml"}


def _dump_text(path: Path, data: Any) -> str:
    if _is_yaml(path):
        return yaml.safe_dump(
            data,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def _atomic_write(path: Path, text: str) -> None:
    """Write *text* to *path* via write-tmp-then-rename.

    A concurrent reader sees either the previous document or the new one,
    never a truncated file.
    """
    parent = path.parent
    parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def save_document(path: Path, data: Any) -> None:
    """Serialize *data* (pretty-printed, insertion order kept) and replace *path*.

    Raises:
        StorageIOError: If the directory cannot be created or the file written.
    """
    text = _dump_text(path, data)
    try:
        _atomic_write(path, text)
    except OSError as exc:
        raise StorageIOError(f"{path.name}: {exc.__class__.__name__}: {exc}") from exc


def load_document(path: Path, default: Any) -> Any:
    """Load a JSON/YAML document, returning *default* when the file is missing.

    Unlike a best-effort loader this never hides a corrupt document: callers
    must not overwrite durable state they failed to read.

    Raises:
        StorageIOError: If the file exists but cannot be read.
        DocumentDecodeError: If the file content cannot be parsed.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return default
    except OSError as exc:
        raise StorageIOError(f"{path.name}: {exc.__class__.__name__}: {exc}") from exc

    try:
        if _is_yaml(path):
            data = yaml.safe_load(text)
            # An empty YAML file parses to None.
            return default if data is None else data
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise DocumentDecodeError(f"{path.name}: JSONDecodeError: {exc}") from exc
    except yaml.YAMLError as exc:
        raise DocumentDecodeError(f"{path.name}: YAMLError: {exc}") from exc


def load_data_with_error(path: Path, default: dict[str, Any]) -> tuple[dict[str, Any], str | None]:
    """
    Load a JSON/YAML mapping and return (data, error_message).

    Used for optional settings files where a broken file should be reported,
    not fatal.
    """
    try:
        data = load_document(path, default)
    except (StorageIOError, DocumentDecodeError) as exc:
        return default, str(exc)
    if not isinstance(data, dict):
        return default, f"{path.name}: expected object, got {type(data).__name__}"
    return data, None
