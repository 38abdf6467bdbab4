from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Optional

from loguru import logger

from .config import load_settings, open_engine
from .errors import InvalidArgumentError, TaskNotFoundError, TaskStoreError
from .task_engine.engine import TaskTreeEngine
from .task_engine.model import TaskMode, TaskNode, TaskStatus, TaskUpdate
from .utils import swift_now


def _configure_logging(level: str = "WARNING") -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan> - {message}"
        ),
    )


def _engine(args: argparse.Namespace) -> TaskTreeEngine:
    settings, err = load_settings(args.state_dir)
    if err:
        logger.warning("Ignoring config problem: {}", err)
    return open_engine(settings)


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, ensure_ascii=False) + '\n')


def _ok() -> int:
    _emit({'status': 'ok'})
    return 0


def _task_list(args: argparse.Namespace) -> int:
    tasks = _engine(args).load_tasks(args.mode or '')
    _emit({'tasks': [t.to_dict() for t in tasks]})
    return 0


def _task_show(args: argparse.Namespace) -> int:
    task = _engine(args).get_task(args.task_id)
    data = task.to_dict()
    data['startedAt'] = task.started_at.isoformat()
    _emit({'task': data})
    return 0


def _task_add(args: argparse.Namespace) -> int:
    node = TaskNode(
        title=args.title,
        start_time=swift_now(),
        parent_id=args.parent,
        mode=args.mode or '',
        status=args.status,
    )
    created = _engine(args).add_task(node)
    _emit({'task': created.to_dict()})
    return 0


def _task_update(args: argparse.Namespace) -> int:
    fields = {
        'title': args.title,
        'status': args.status,
        'notes': args.note,
        'mode': args.mode,
    }
    update = TaskUpdate(**{k: v for k, v in fields.items() if v is not None})
    _engine(args).update_task(args.task_id, update)
    return _ok()


def _task_remove(args: argparse.Namespace) -> int:
    _engine(args).remove_task(args.task_id)
    return _ok()


def _task_swap(args: argparse.Namespace) -> int:
    _engine(args).exchange_order(args.task_id, args.exchange_task_id)
    return _ok()


def _note_add(args: argparse.Namespace) -> int:
    _engine(args).add_task_note(args.task_id, args.text)
    return _ok()


def _note_edit(args: argparse.Namespace) -> int:
    _engine(args).update_task_note(args.task_id, args.index, args.text)
    return _ok()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Task banner: nested task tree store')
    parser.add_argument('--state-dir', default=None, help='Store directory (default: $TASK_BANNER_STATE_DIR or ~/.task-banner)')
    parser.add_argument('--log-level', default='WARNING', help='Log level for stderr output')
    subparsers = parser.add_subparsers(dest='command', required=True)

    modes = [m.value for m in TaskMode]
    statuses = [s.value for s in TaskStatus]

    tlist = subparsers.add_parser('list', help='Print the task forest')
    tlist.add_argument('--mode', default='', choices=[''] + modes)
    tlist.set_defaults(func=_task_list)

    tshow = subparsers.add_parser('show', help='Print one task and its sub-tasks')
    tshow.add_argument('task_id', type=int)
    tshow.set_defaults(func=_task_show)

    tadd = subparsers.add_parser('add', help='Create a task')
    tadd.add_argument('title')
    tadd.add_argument('--parent', type=int, default=0, help='Parent task id (default: new root task)')
    tadd.add_argument('--mode', default='', choices=[''] + modes)
    tadd.add_argument('--status', default=TaskStatus.CREATED.value, choices=statuses)
    tadd.set_defaults(func=_task_add)

    tupdate = subparsers.add_parser('update', help='Change fields of a task')
    tupdate.add_argument('task_id', type=int)
    tupdate.add_argument('--title', default=None)
    tupdate.add_argument('--status', default=None, choices=statuses)
    tupdate.add_argument('--mode', default=None, choices=modes)
    tupdate.add_argument('--note', default=None, help='Append a note')
    tupdate.set_defaults(func=_task_update)

    tremove = subparsers.add_parser('remove', help='Delete a task and its sub-tasks')
    tremove.add_argument('task_id', type=int)
    tremove.set_defaults(func=_task_remove)

    tswap = subparsers.add_parser('swap', help='Exchange the position of two sibling tasks')
    tswap.add_argument('task_id', type=int)
    tswap.add_argument('exchange_task_id', type=int)
    tswap.set_defaults(func=_task_swap)

    note = subparsers.add_parser('note', help='Append a note to a task')
    note.add_argument('task_id', type=int)
    note.add_argument('text')
    note.set_defaults(func=_note_add)

    note_edit = subparsers.add_parser('note-edit', help='Replace a note of a task by index')
    note_edit.add_argument('task_id', type=int)
    note_edit.add_argument('index', type=int)
    note_edit.add_argument('text')
    note_edit.set_defaults(func=_note_edit)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    handler = getattr(args, 'func', None)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return int(handler(args) or 0)
    except (TaskNotFoundError, InvalidArgumentError) as exc:
        sys.stderr.write(f"{exc}\n")
        return 1
    except TaskStoreError as exc:
        logger.error("{}: {}", exc.__class__.__name__, exc)
        return 2


if __name__ == '__main__':
    raise SystemExit(main())
