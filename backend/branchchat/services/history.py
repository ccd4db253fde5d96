"""Reconstruction of the history submitted to the model for a new turn.

Two walks over the flat message list of a conversation:

* main tree: from the target message back along parent links to the root,
  yielding the ancestor chain oldest first;
* thread: from the thread root forward, always taking the oldest
  thread-flagged child at each level.

Both degrade to whatever prefix they could resolve when a row is missing.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..storage import Message, MessageFile
from ..tree import M, build_message_tree
from .content_blocks import Attachment, MessageContent, attachments_from_files, build_content
from .conversations import get_message_files_for_messages

logger = logging.getLogger(__name__)

Turn = dict[str, object]


def build_conversation_path(messages: Sequence[M], target_message_id: int) -> list[M]:
    """Return the ancestor chain of ``target_message_id``, root first."""
    by_id = {m.id: m for m in messages}
    chain: list[M] = []
    current_id: Optional[int] = target_message_id
    visited: set[int] = set()
    while current_id is not None:
        message = by_id.get(current_id)
        if message is None:
            if chain:
                logger.warning("Parent %s missing while walking back from %s", current_id, target_message_id)
            break
        if message.id in visited:
            break
        visited.add(message.id)
        chain.append(message)
        current_id = message.parent_message_id
    chain.reverse()
    return chain


def build_thread_path(messages: Sequence[M], thread_root_id: int) -> list[M]:
    """Return the thread root followed by the oldest reply at every level.

    The walk ignores any branch the user selected in the thread view.
    """
    root = next((m for m in messages if m.id == thread_root_id), None)
    if root is None:
        return []
    tree = build_message_tree(messages, include_thread_messages=True)
    path: list[M] = [root]
    current_id = root.id
    while True:
        replies = [child for child in tree.get(current_id, []) if child.is_thread_message]
        if not replies:
            break
        path.append(replies[0])
        current_id = replies[0].id
    return path


def _files_by_message(files: Sequence[MessageFile]) -> dict[int, list[MessageFile]]:
    grouped: dict[int, list[MessageFile]] = {}
    for row in files:
        grouped.setdefault(row.message_id, []).append(row)
    return grouped


def turns_from_path(
    path: Sequence[Message],
    files: Sequence[MessageFile],
    *,
    live_message_id: Optional[int] = None,
    live_content: Optional[MessageContent] = None,
) -> list[Turn]:
    """Map a message path to ``{role, content}`` turns.

    Stored messages get their attachments reattached from ``files``; the
    message matching ``live_message_id`` takes ``live_content`` instead.
    """
    grouped = _files_by_message(files)
    turns: list[Turn] = []
    for message in path:
        if live_message_id is not None and message.id == live_message_id and live_content is not None:
            content: MessageContent = live_content
        else:
            content = build_content(message.content, attachments_from_files(grouped.get(message.id, [])))
        turns.append({"role": message.role, "content": content})
    return turns


async def assemble_main_history(
    messages: Sequence[Message],
    target_message_id: int,
    live_text: str,
    live_attachments: Sequence[Attachment] = (),
) -> list[Turn]:
    """History for a main-tree turn ending at the freshly stored user message."""
    path = build_conversation_path(messages, target_message_id)
    live_content = build_content(live_text, live_attachments)
    if not path:
        logger.warning("Target message %s not found; sending it without history", target_message_id)
        return [{"role": "user", "content": live_content}]

    ancestor_ids = [m.id for m in path if m.id != target_message_id]
    files = await get_message_files_for_messages(ancestor_ids)
    return turns_from_path(path, files, live_message_id=target_message_id, live_content=live_content)


async def assemble_thread_history(
    messages: Sequence[Message],
    thread_root_id: int,
    live_text: str,
    live_attachments: Sequence[Attachment] = (),
    *,
    exclude_message_id: Optional[int] = None,
) -> list[Turn]:
    """History for a thread turn: the thread path plus the new user turn.

    ``exclude_message_id`` drops the just-stored user message from the walk so
    it is not sent twice.
    """
    candidates = [m for m in messages if m.id != exclude_message_id] if exclude_message_id else list(messages)
    path = build_thread_path(candidates, thread_root_id)
    if not path:
        logger.warning("Thread root %s not found; sending the turn without history", thread_root_id)
    files = await get_message_files_for_messages([m.id for m in path])
    turns = turns_from_path(path, files)
    turns.append({"role": "user", "content": build_content(live_text, live_attachments)})
    return turns


__all__ = [
    "Turn",
    "assemble_main_history",
    "assemble_thread_history",
    "build_conversation_path",
    "build_thread_path",
    "turns_from_path",
]
