"""Tests for the task tree engine (task_engine/engine.py) over every gateway."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest
from loguru import logger

from task_banner.errors import (
    DocumentDecodeError,
    InvalidArgumentError,
    StorageIOError,
    TaskNotFoundError,
)
from task_banner.task_engine.engine import TaskTreeEngine
from task_banner.task_engine.gateway import DocumentGateway, TaskGateway
from task_banner.task_engine.model import TaskMode, TaskNode, TaskStatus, TaskUpdate
from task_banner.task_engine.sql_store import SQLiteGateway
from task_banner.task_engine.tree import count_nodes, duplicate_ids, find_by_id, iter_nodes


@pytest.fixture(params=["json", "yaml", "sqlite"])
def gateway(request: pytest.FixtureRequest, tmp_path: Path) -> TaskGateway:
    state_dir = tmp_path / "state"
    if request.param == "json":
        return DocumentGateway(state_dir / "tasks.json")
    if request.param == "yaml":
        return DocumentGateway(state_dir / "tasks.yaml")
    return SQLiteGateway(state_dir / "tasks.db")


@pytest.fixture
def engine(gateway: TaskGateway) -> TaskTreeEngine:
    return TaskTreeEngine(gateway)


def _ids(forest: list[TaskNode]) -> list[int]:
    return [n.id for n in iter_nodes(forest)]


def _build(engine: TaskTreeEngine) -> None:
    """Create
        3
        1 ── 4 ── 5
          └─ 2
    """
    engine.add_task(TaskNode(title="A"))  # 1
    engine.add_task(TaskNode(title="B", parent_id=1))  # 2
    engine.add_task(TaskNode(title="C"))  # 3
    engine.add_task(TaskNode(title="D", parent_id=1))  # 4
    engine.add_task(TaskNode(title="E", parent_id=4))  # 5


# ---------------------------------------------------------------------------
# Scenario
# ---------------------------------------------------------------------------

class TestScenario:
    def test_add_nest_remove_then_note_fails(self, engine: TaskTreeEngine) -> None:
        a = engine.add_task(TaskNode(title="A", parent_id=0))
        assert a.id == 1

        b = engine.add_task(TaskNode(title="B", parent_id=1))
        assert b.id == 2

        forest = engine.load_tasks("")
        assert [n.id for n in forest] == [1]
        assert [c.id for c in forest[0].sub_tasks] == [2]

        engine.remove_task(1)
        assert engine.load_tasks("") == []

        with pytest.raises(TaskNotFoundError):
            engine.add_task_note(1, "x")


# ---------------------------------------------------------------------------
# AddTask
# ---------------------------------------------------------------------------

class TestAddTask:
    def test_empty_store_loads_empty(self, engine: TaskTreeEngine) -> None:
        assert engine.load_tasks() == []

    def test_roots_are_prepended(self, engine: TaskTreeEngine) -> None:
        engine.add_task(TaskNode(title="first"))
        engine.add_task(TaskNode(title="second"))
        assert [n.title for n in engine.load_tasks()] == ["second", "first"]

    def test_children_are_prepended(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        root = engine.get_task(1)
        assert [c.id for c in root.sub_tasks] == [4, 2]

    def test_id_is_global_max_plus_one(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        # Highest id (5) sits three levels deep.
        created = engine.add_task(TaskNode(title="F"))
        assert created.id == 6

    def test_ids_never_duplicate(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        engine.add_task(TaskNode(title="x", parent_id=5))
        engine.add_task(TaskNode(title="y", parent_id=2))
        forest = engine.load_tasks()
        assert duplicate_ids(forest) == []
        assert sorted(_ids(forest)) == [1, 2, 3, 4, 5, 6, 7]

    def test_returned_node(self, engine: TaskTreeEngine) -> None:
        engine.add_task(TaskNode(title="parent"))
        payload = TaskNode(
            id=99,
            title="child",
            start_time=12.5,
            parent_id=1,
            mode=TaskMode.WORK,
            notes=["n"],
            sub_tasks=[TaskNode(id=50)],
        )
        created = engine.add_task(payload)
        assert created.id == 2
        assert created.parent_id == 1
        assert created.sub_tasks == []
        assert created.notes == ["n"]
        assert created.mode == TaskMode.WORK
        assert payload.id == 99  # caller's object untouched

        created.title = "mutated after the fact"
        assert engine.get_task(2).title == "child"

    def test_missing_parent_fails_closed(self, engine: TaskTreeEngine) -> None:
        engine.add_task(TaskNode(title="A"))
        with pytest.raises(TaskNotFoundError, match="parent task not found"):
            engine.add_task(TaskNode(title="orphan", parent_id=42))
        assert _ids(engine.load_tasks()) == [1]


# ---------------------------------------------------------------------------
# RemoveTask
# ---------------------------------------------------------------------------

class TestRemoveTask:
    def test_removes_subtree(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        before = count_nodes(engine.load_tasks())
        engine.remove_task(4)
        forest = engine.load_tasks()
        assert count_nodes(forest) == before - 2
        assert find_by_id(forest, 5) is None
        assert _ids(forest) == [3, 1, 2]

    def test_remove_leaf(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        engine.remove_task(5)
        assert engine.get_task(4).sub_tasks == []

    def test_remove_missing(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        with pytest.raises(TaskNotFoundError, match="task not found"):
            engine.remove_task(77)

    def test_ids_not_reused_below_max(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        engine.remove_task(2)
        assert engine.add_task(TaskNode(title="new")).id == 6


# ---------------------------------------------------------------------------
# UpdateTask
# ---------------------------------------------------------------------------

class TestUpdateTask:
    def test_partial_update(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        engine.update_task(5, TaskUpdate(status="done"))
        node = engine.get_task(5)
        assert node.status == TaskStatus.DONE
        assert node.title == "E"

    def test_notes_field_appends(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        engine.add_task_note(2, "one")
        engine.update_task(2, {"notes": "two", "title": "B2", "mode": "life"})
        node = engine.get_task(2)
        assert node.notes == ["one", "two"]
        assert node.title == "B2"
        assert node.mode == TaskMode.LIFE

    def test_update_missing(self, engine: TaskTreeEngine) -> None:
        with pytest.raises(TaskNotFoundError):
            engine.update_task(1, TaskUpdate(title="x"))

    def test_wrongly_typed_dict_is_invalid_argument(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        with pytest.raises(InvalidArgumentError, match="invalid task update"):
            engine.update_task(1, {"notes": 5})
        assert engine.get_task(1).notes == []

    def test_sibling_order_preserved(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        engine.update_task(2, TaskUpdate(title="changed"))
        assert _ids(engine.load_tasks()) == [3, 1, 4, 5, 2]


# ---------------------------------------------------------------------------
# ExchangeOrder
# ---------------------------------------------------------------------------

class TestExchangeOrder:
    def test_swap_roots(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        engine.exchange_order(1, 3)
        assert [n.id for n in engine.load_tasks()] == [1, 3]

    def test_swap_children(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        engine.exchange_order(2, 4)
        assert [c.id for c in engine.get_task(1).sub_tasks] == [2, 4]
        assert [c.id for c in engine.get_task(4).sub_tasks] == [5]

    def test_different_levels_fail(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        with pytest.raises(TaskNotFoundError, match="not at same level"):
            engine.exchange_order(3, 2)
        with pytest.raises(TaskNotFoundError):
            engine.exchange_order(5, 2)

    def test_zero_ids_rejected(self, engine: TaskTreeEngine) -> None:
        with pytest.raises(InvalidArgumentError, match="requires taskID"):
            engine.exchange_order(0, 1)
        with pytest.raises(InvalidArgumentError, match="requires exchangeTaskID"):
            engine.exchange_order(1, 0)

    def test_same_id_is_noop(self, engine: TaskTreeEngine) -> None:
        # Succeeds even when the id does not exist.
        engine.exchange_order(8, 8)
        assert engine.load_tasks() == []


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------

class TestNotes:
    def test_add_note_grows_by_one(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        for i in range(3):
            engine.add_task_note(5, f"note {i}")
            assert len(engine.get_task(5).notes) == i + 1

    def test_update_note_replaces_in_place(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        engine.add_task_note(4, "a")
        engine.add_task_note(4, "b")
        engine.update_task_note(4, 1, "B")
        assert engine.get_task(4).notes == ["a", "B"]

    @pytest.mark.parametrize("index", [2, 5, -1])
    def test_update_note_out_of_range_is_silent(self, engine: TaskTreeEngine, index: int) -> None:
        _build(engine)
        engine.add_task_note(4, "a")
        engine.add_task_note(4, "b")
        messages: list[str] = []
        handler_id = logger.add(messages.append, level="WARNING")
        try:
            engine.update_task_note(4, index, "zzz")
        finally:
            logger.remove(handler_id)
        assert engine.get_task(4).notes == ["a", "b"]
        assert any("out of range" in m for m in messages)

    def test_update_note_missing_task(self, engine: TaskTreeEngine) -> None:
        with pytest.raises(TaskNotFoundError):
            engine.update_task_note(3, 0, "x")

    def test_add_note_missing_task(self, engine: TaskTreeEngine) -> None:
        with pytest.raises(TaskNotFoundError):
            engine.add_task_note(3, "x")


# ---------------------------------------------------------------------------
# LoadTasks / SaveTasks
# ---------------------------------------------------------------------------

class TestLoadAndSave:
    def test_mode_filter(self, engine: TaskTreeEngine) -> None:
        engine.add_task(TaskNode(title="work", mode=TaskMode.WORK))  # 1
        engine.add_task(TaskNode(title="life", mode=TaskMode.LIFE))  # 2
        engine.add_task(TaskNode(title="shared", mode=TaskMode.SHARED))  # 3
        engine.add_task(TaskNode(title="unset"))  # 4
        engine.add_task(TaskNode(title="life child", parent_id=1, mode=TaskMode.LIFE))  # 5

        assert _ids(engine.load_tasks("work")) == [4, 3, 1]
        assert _ids(engine.load_tasks("life")) == [4, 3, 2]
        assert _ids(engine.load_tasks("")) == [4, 3, 2, 1, 5]
        assert _ids(engine.load_tasks("shared")) == [4, 3, 2, 1, 5]

    def test_filter_does_not_persist(self, engine: TaskTreeEngine) -> None:
        engine.add_task(TaskNode(title="w", mode="work"))
        engine.add_task(TaskNode(title="l", mode="life"))
        engine.load_tasks("work")
        assert len(engine.load_tasks()) == 2

    def test_save_round_trip(self, engine: TaskTreeEngine) -> None:
        forest = [
            TaskNode(
                id=10,
                title="root",
                start_time=700000000.25,
                mode=TaskMode.WORK,
                status=TaskStatus.ARCHIVED,
                notes=["x", "y"],
                sub_tasks=[
                    TaskNode(id=3, title="c1", parent_id=10, sub_tasks=[TaskNode(id=11, parent_id=3)]),
                    TaskNode(id=2, title="c2", parent_id=10, mode="custom", status="paused"),
                ],
            ),
            TaskNode(id=1, title="other", notes=["ü"]),
        ]
        engine.save_tasks(forest)
        assert engine.load_tasks() == forest

    def test_save_overwrites_without_merge(self, engine: TaskTreeEngine) -> None:
        _build(engine)
        engine.save_tasks([TaskNode(id=9, title="only")])
        assert _ids(engine.load_tasks()) == [9]
        assert engine.add_task(TaskNode(title="next")).id == 10

    def test_save_relinks_parent_ids(self, engine: TaskTreeEngine) -> None:
        engine.save_tasks([TaskNode(id=1, parent_id=5, sub_tasks=[TaskNode(id=2, parent_id=0)])])
        assert engine.get_task(1).parent_id == 0
        assert engine.get_task(2).parent_id == 1

    def test_get_task_missing(self, engine: TaskTreeEngine) -> None:
        with pytest.raises(TaskNotFoundError):
            engine.get_task(1)


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

class TestConcurrency:
    def test_concurrent_adds_lose_nothing(self, engine: TaskTreeEngine) -> None:
        engine.add_task(TaskNode(title="root"))
        errors: list[BaseException] = []

        def worker(n: int) -> None:
            try:
                for i in range(5):
                    engine.add_task(TaskNode(title=f"w{n}-{i}", parent_id=1 if i % 2 else 0))
                    engine.add_task_note(1, f"w{n}-{i}")
                    engine.load_tasks("work")
            except BaseException as exc:  # pragma: no cover - surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        forest = engine.load_tasks()
        assert count_nodes(forest) == 1 + 6 * 5
        assert duplicate_ids(forest) == []
        assert sorted(_ids(forest)) == list(range(1, 32))
        assert len(engine.get_task(1).notes) == 30


# ---------------------------------------------------------------------------
# Failure handling (document store)
# ---------------------------------------------------------------------------

class TestDocumentFailures:
    def test_corrupt_document_is_fatal(self, tmp_path: Path) -> None:
        path = tmp_path / "tasks.json"
        path.write_text("[{not json", encoding="utf-8")
        engine = TaskTreeEngine(DocumentGateway(path))
        with pytest.raises(DocumentDecodeError):
            engine.load_tasks()
        with pytest.raises(DocumentDecodeError):
            engine.add_task(TaskNode(title="x"))
        assert path.read_text(encoding="utf-8") == "[{not json"

    def test_null_document_is_empty_forest(self, tmp_path: Path) -> None:
        path = tmp_path / "tasks.json"
        path.write_text("null", encoding="utf-8")
        engine = TaskTreeEngine(DocumentGateway(path))
        assert engine.load_tasks() == []
        assert engine.add_task(TaskNode(title="x")).id == 1
        assert json.loads(path.read_text(encoding="utf-8"))[0]["title"] == "x"

    def test_wrong_document_shape(self, tmp_path: Path) -> None:
        path = tmp_path / "tasks.json"
        path.write_text(json.dumps({"tasks": []}), encoding="utf-8")
        with pytest.raises(DocumentDecodeError, match="expected array"):
            TaskTreeEngine(DocumentGateway(path)).load_tasks()

    def test_bad_task_field(self, tmp_path: Path) -> None:
        path = tmp_path / "tasks.json"
        path.write_text(json.dumps([{"id": 1, "subTasks": "x"}]), encoding="utf-8")
        with pytest.raises(DocumentDecodeError):
            TaskTreeEngine(DocumentGateway(path)).load_tasks()

    def test_unwritable_target(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("", encoding="utf-8")
        engine = TaskTreeEngine(DocumentGateway(blocker / "tasks.json"))
        with pytest.raises(StorageIOError):
            engine.add_task(TaskNode(title="x"))

    def test_failed_compute_leaves_file_untouched(self, tmp_path: Path) -> None:
        path = tmp_path / "tasks.json"
        engine = TaskTreeEngine(DocumentGateway(path))
        engine.add_task(TaskNode(title="A"))
        before = path.read_bytes()
        with pytest.raises(TaskNotFoundError):
            engine.update_task(2, TaskUpdate(title="x"))
        with pytest.raises(TaskNotFoundError):
            engine.exchange_order(1, 2)
        assert path.read_bytes() == before
