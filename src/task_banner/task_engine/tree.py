"""Recursive navigation over a task forest.

Every structural operation walks the forest in the same order: depth-first,
pre-order, first match wins. A node is checked before its sub-tasks, and its
sub-tasks are searched before its next sibling. Because the walk stops at the
first match, a forest that (incorrectly) contains a duplicate id still behaves
deterministically.

The rebuilding helpers never mutate their input. They return
``(new_forest, found)``; along the path to the match each ancestor is a
shallow clone carrying the rebuilt child list, and every untouched subtree is
shared with the input.
"""

from __future__ import annotations

from collections import Counter
from typing import Callable, Iterator, Optional

from .model import ModeValue, TaskNode, is_wildcard_mode, mode_matches

Forest = list[TaskNode]

# Receives the matched node; returns its replacement, or None to drop it
# (together with its subtree).
Mutator = Callable[[TaskNode], Optional[TaskNode]]


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def iter_nodes(forest: Forest) -> Iterator[TaskNode]:
    """Yield every node in pre-order."""
    for node in forest:
        yield node
        yield from iter_nodes(node.sub_tasks)


def find_by_id(forest: Forest, task_id: int) -> Optional[TaskNode]:
    for node in forest:
        if node.id == task_id:
            return node
        found = find_by_id(node.sub_tasks, task_id)
        if found is not None:
            return found
    return None


def max_id(forest: Forest) -> int:
    """Highest id at any depth, 0 for an empty forest."""
    return max((node.id for node in iter_nodes(forest)), default=0)


def count_nodes(forest: Forest) -> int:
    return sum(1 for _ in iter_nodes(forest))


def duplicate_ids(forest: Forest) -> list[int]:
    counts = Counter(node.id for node in iter_nodes(forest))
    return sorted(task_id for task_id, n in counts.items() if n > 1)


# ---------------------------------------------------------------------------
# Rebuilds
# ---------------------------------------------------------------------------

def apply_at_id(forest: Forest, task_id: int, mutator: Mutator) -> tuple[Forest, bool]:
    """Apply *mutator* to the first node with *task_id*.

    The matched node's own sub-tasks are not searched. Returns the input
    forest unchanged and ``False`` when nothing matched.
    """
    for i, node in enumerate(forest):
        if node.id == task_id:
            replacement = mutator(node)
            middle = [] if replacement is None else [replacement]
            return forest[:i] + middle + forest[i + 1:], True
        children, found = apply_at_id(node.sub_tasks, task_id, mutator)
        if found:
            parent = node.shallow_clone()
            parent.sub_tasks = children
            return forest[:i] + [parent] + forest[i + 1:], True
    return forest, False


def remove_by_id(forest: Forest, task_id: int) -> tuple[Forest, bool]:
    return apply_at_id(forest, task_id, lambda _node: None)


def prepend_child(forest: Forest, parent_id: int, child: TaskNode) -> tuple[Forest, bool]:
    """Insert *child* at the front of the sub-tasks of node *parent_id*."""

    def _attach(parent: TaskNode) -> TaskNode:
        updated = parent.shallow_clone()
        updated.sub_tasks = [child] + updated.sub_tasks
        return updated

    return apply_at_id(forest, parent_id, _attach)


def exchange_siblings(forest: Forest, a_id: int, b_id: int) -> tuple[Forest, bool]:
    """Swap two nodes that share a sibling list.

    A level is checked as a whole before descending: if both ids are present
    in *forest* they are swapped there. Otherwise each node's sub-tasks are
    searched in order and the first level holding both wins. Ids found at
    different levels never match.
    """
    a_index = _index_of(forest, a_id)
    b_index = _index_of(forest, b_id)
    if a_index is not None and b_index is not None:
        swapped = list(forest)
        swapped[a_index], swapped[b_index] = swapped[b_index], swapped[a_index]
        return swapped, True

    for i, node in enumerate(forest):
        children, found = exchange_siblings(node.sub_tasks, a_id, b_id)
        if found:
            parent = node.shallow_clone()
            parent.sub_tasks = children
            return forest[:i] + [parent] + forest[i + 1:], True
    return forest, False


def _index_of(forest: Forest, task_id: int) -> Optional[int]:
    for i, node in enumerate(forest):
        if node.id == task_id:
            return i
    return None


def filter_by_mode(forest: Forest, mode: Optional[ModeValue]) -> Forest:
    """Keep nodes visible in the *mode* view.

    A node survives if its mode equals *mode*, is unset, or is the shared
    wildcard. Children of a surviving node are filtered independently; a
    dropped node takes its whole subtree with it. Requesting the wildcard
    (or no mode) returns the forest as is.
    """
    if is_wildcard_mode(mode):
        return forest
    return _filter(forest, mode)


def _filter(forest: Forest, mode: ModeValue) -> Forest:
    kept: Forest = []
    for node in forest:
        if not mode_matches(node.mode, mode):
            continue
        copy = node.shallow_clone()
        copy.sub_tasks = _filter(node.sub_tasks, mode)
        kept.append(copy)
    return kept


def relink_parents(forest: Forest, parent_id: int = 0) -> Forest:
    """Return a copy whose ``parent_id`` fields agree with tree placement."""
    relinked: Forest = []
    for node in forest:
        copy = node.shallow_clone()
        copy.parent_id = parent_id
        copy.sub_tasks = relink_parents(node.sub_tasks, node.id)
        relinked.append(copy)
    return relinked
