"""Message tree derivations over a flat, append-only list of messages.

Every function here is pure: it takes the flat list fetched for one
conversation (ORM rows, API schemas, anything exposing ``id``,
``parent_message_id``, ``is_thread_message`` and ``created_at``) and derives
a view of it. Nothing is cached between calls; the forest is rebuilt from the
list each time and discarded afterwards.

Branch selections are a plain ``dict`` mapping a normalized parent key to the
chosen sibling index at that branch point. Missing keys mean index ``0`` and
out-of-range indices are clamped rather than rejected.
"""

from __future__ import annotations

from datetime import datetime
from typing import Mapping, Optional, Protocol, Sequence, TypeVar


ROOT_PARENT_KEY = -1


class TreeMessage(Protocol):
    id: int
    parent_message_id: Optional[int]
    is_thread_message: bool
    created_at: datetime


M = TypeVar("M", bound=TreeMessage)

BranchSelections = Mapping[int, int]


def normalize_parent_id(parent_id: Optional[int]) -> int:
    """Map a missing parent to the sentinel root key."""
    return ROOT_PARENT_KEY if parent_id is None else parent_id


def creation_order(message: TreeMessage) -> tuple[datetime, int]:
    # Ids grow with insertion order, so they break timestamp ties.
    return (message.created_at, message.id)


def build_message_tree(messages: Sequence[M], include_thread_messages: bool = False) -> dict[int, list[M]]:
    """Group messages by normalized parent key, each group in creation order."""
    tree: dict[int, list[M]] = {}
    for message in messages:
        if message.is_thread_message and not include_thread_messages:
            continue
        tree.setdefault(normalize_parent_id(message.parent_message_id), []).append(message)

    for children in tree.values():
        children.sort(key=creation_order)
    return tree


def _clamp(index: int, count: int) -> int:
    return min(max(0, index), count - 1)


def get_active_path(messages: Sequence[M], branch_selections: BranchSelections) -> list[M]:
    """Return the main-view path from the root to a leaf."""
    tree = build_message_tree(messages)
    path: list[M] = []
    current_key = ROOT_PARENT_KEY
    while True:
        children = tree.get(current_key)
        if not children:
            break
        selected = children[_clamp(branch_selections.get(current_key, 0), len(children))]
        path.append(selected)
        current_key = selected.id
    return path


def get_thread_messages(
    messages: Sequence[M],
    root_message_id: int,
    branch_selections: BranchSelections,
) -> list[M]:
    """Return the thread rooted at ``root_message_id``, the root included.

    Only thread-flagged children are followed, so the main-tree continuation
    below the root never leaks into the thread view.
    """
    root = next((m for m in messages if m.id == root_message_id), None)
    if root is None:
        return []

    tree = build_message_tree(messages, include_thread_messages=True)
    path: list[M] = [root]
    current_key = root.id
    while True:
        thread_children = [c for c in tree.get(current_key, []) if c.is_thread_message]
        if not thread_children:
            break
        index = _clamp(branch_selections.get(current_key, 0), len(thread_children))
        selected = thread_children[index]
        path.append(selected)
        current_key = selected.id
    return path


def get_siblings(messages: Sequence[M], message: TreeMessage) -> list[M]:
    """Return the sibling group of ``message``, itself included.

    Siblings share the normalized parent and the thread flag of ``message``.
    """
    parent_key = normalize_parent_id(message.parent_message_id)
    siblings = [
        m
        for m in messages
        if normalize_parent_id(m.parent_message_id) == parent_key
        and bool(m.is_thread_message) == bool(message.is_thread_message)
    ]
    if not any(m.id == message.id for m in siblings):
        siblings.append(message)  # type: ignore[arg-type]
    siblings.sort(key=creation_order)
    return siblings


def get_sibling_index(messages: Sequence[M], message: TreeMessage) -> int:
    siblings = get_siblings(messages, message)
    return next(i for i, sibling in enumerate(siblings) if sibling.id == message.id)


def next_branch_index(
    messages: Sequence[TreeMessage],
    parent_message_id: Optional[int],
    is_thread_message: bool = False,
) -> int:
    """Index the next message created under ``parent_message_id`` will occupy."""
    parent_key = normalize_parent_id(parent_message_id)
    return sum(
        1
        for m in messages
        if normalize_parent_id(m.parent_message_id) == parent_key
        and bool(m.is_thread_message) == is_thread_message
    )


def has_branches(messages: Sequence[M], message: TreeMessage) -> bool:
    return len(get_siblings(messages, message)) > 1


def find_last_message_in_path(path: Sequence[M]) -> Optional[M]:
    return path[-1] if path else None


def get_parent_message(messages: Sequence[M], message: TreeMessage) -> Optional[M]:
    if message.parent_message_id is None:
        return None
    return next((m for m in messages if m.id == message.parent_message_id), None)


def _thread_root(by_id: Mapping[int, M], message: M) -> Optional[M]:
    current: Optional[M] = message
    seen: set[int] = set()
    while current is not None and current.is_thread_message and current.id not in seen:
        seen.add(current.id)
        parent_id = current.parent_message_id
        current = by_id.get(parent_id) if parent_id is not None else None
    if current is None or current.is_thread_message:
        return None
    return current


def find_thread_root(messages: Sequence[M], message: M) -> Optional[M]:
    """Return the main-tree message a message's thread hangs off.

    A non-thread message is its own root. ``None`` when the parent chain is
    broken before reaching the main tree.
    """
    return _thread_root({m.id: m for m in messages}, message)


def list_threads(messages: Sequence[M]) -> list[tuple[M, int]]:
    """Return ``(root, reply_count)`` for every main-tree message that has a thread.

    A reply belongs to the thread of the first non-thread ancestor found by
    following parent links. Roots are returned in creation order.
    """
    by_id = {m.id: m for m in messages}
    counts: dict[int, int] = {}
    for message in messages:
        if not message.is_thread_message:
            continue
        root = _thread_root(by_id, message)
        if root is not None:
            counts[root.id] = counts.get(root.id, 0) + 1

    roots = sorted((by_id[root_id] for root_id in counts), key=creation_order)
    return [(root, counts[root.id]) for root in roots]


__all__ = [
    "ROOT_PARENT_KEY",
    "BranchSelections",
    "TreeMessage",
    "build_message_tree",
    "creation_order",
    "find_last_message_in_path",
    "find_thread_root",
    "get_active_path",
    "get_parent_message",
    "get_sibling_index",
    "get_siblings",
    "get_thread_messages",
    "has_branches",
    "list_threads",
    "next_branch_index",
    "normalize_parent_id",
]
