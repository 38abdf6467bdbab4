from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Iterator

import pytest
from loguru import logger

from task_banner.cli import main


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    yield
    # main() swaps in its own stderr sink bound to the captured stream.
    logger.remove()
    logger.add(sys.stderr)


def _run(capsys: pytest.CaptureFixture[str], tmp_path: Path, *argv: str) -> tuple[int, dict]:
    rc = main(['--state-dir', str(tmp_path), *argv])
    out = capsys.readouterr().out
    return rc, (json.loads(out) if out.strip() else {})


def test_add_list_and_show(capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    rc, data = _run(capsys, tmp_path, 'add', 'Write report', '--mode', 'work')
    assert rc == 0
    assert data['task']['id'] == 1
    assert data['task']['mode'] == 'work'

    rc, data = _run(capsys, tmp_path, 'add', 'Outline', '--parent', '1')
    assert rc == 0
    assert data['task']['parentID'] == 1

    rc, data = _run(capsys, tmp_path, 'list', '--mode', 'life')
    assert rc == 0
    assert data == {'tasks': []}

    rc, data = _run(capsys, tmp_path, 'show', '1')
    assert rc == 0
    assert [c['id'] for c in data['task']['subTasks']] == [2]
    assert data['task']['startedAt'].startswith('20')


def test_update_notes_and_swap(capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    _run(capsys, tmp_path, 'add', 'A')
    _run(capsys, tmp_path, 'add', 'B')

    assert _run(capsys, tmp_path, 'update', '1', '--status', 'done', '--note', 'first')[0] == 0
    assert _run(capsys, tmp_path, 'note', '1', 'second')[0] == 0
    assert _run(capsys, tmp_path, 'note-edit', '1', '0', 'FIRST')[0] == 0
    assert _run(capsys, tmp_path, 'swap', '1', '2')[0] == 0

    _, data = _run(capsys, tmp_path, 'list')
    assert [t['id'] for t in data['tasks']] == [1, 2]
    assert data['tasks'][0]['status'] == 'done'
    assert data['tasks'][0]['notes'] == ['FIRST', 'second']


def test_errors_map_to_exit_codes(capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    assert main(['--state-dir', str(tmp_path), 'remove', '5']) == 1
    assert 'task not found' in capsys.readouterr().err

    assert main(['--state-dir', str(tmp_path), 'swap', '0', '1']) == 1
    assert 'requires taskID' in capsys.readouterr().err

    (tmp_path / 'tasks.json').write_text('{oops', encoding='utf-8')
    assert main(['--state-dir', str(tmp_path), 'list']) == 2
