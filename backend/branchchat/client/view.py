"""Client-side view state for one open conversation.

A :class:`ConversationView` holds the flat message list last fetched from
the server plus the branch selections the user made. Selections live only as
long as the view; the rendered path is re-derived from both on every call.

Edits and regenerations never touch an existing message. They are planned as
a :class:`Resubmission`: new content attached under an existing parent, plus
the sibling index the new message will get so the view can switch to it
before the server round trip finishes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .. import tree
from ..schemas import MessageOut


@dataclass(frozen=True)
class Resubmission:
    content: str
    parent_message_id: Optional[int]
    is_thread_message: bool
    branch_key: int
    branch_index: int
    thread_root_id: Optional[int] = None


class ConversationView:
    def __init__(
        self,
        messages: Iterable[MessageOut] = (),
        branch_selections: Optional[dict[int, int]] = None,
    ) -> None:
        self._messages: list[MessageOut] = list(messages)
        self.branch_selections: dict[int, int] = dict(branch_selections or {})
        # Thread replies hang off main-tree messages, so they get their own map.
        self.thread_selections: dict[int, int] = {}

    @property
    def messages(self) -> list[MessageOut]:
        return list(self._messages)

    def refresh(self, messages: Iterable[MessageOut]) -> None:
        self._messages = list(messages)

    def get(self, message_id: int) -> MessageOut:
        for message in self._messages:
            if message.id == message_id:
                return message
        raise KeyError(message_id)

    def active_path(self) -> list[MessageOut]:
        return tree.get_active_path(self._messages, self.branch_selections)

    def thread_path(self, root_message_id: int) -> list[MessageOut]:
        return tree.get_thread_messages(self._messages, root_message_id, self.thread_selections)

    def _selections_for(self, message: MessageOut) -> dict[int, int]:
        return self.thread_selections if message.is_thread_message else self.branch_selections

    def branch_position(self, message_id: int) -> tuple[int, int]:
        """Return ``(index, total)`` of a message within its sibling group."""
        message = self.get(message_id)
        siblings = tree.get_siblings(self._messages, message)
        return tree.get_sibling_index(self._messages, message), len(siblings)

    def select_branch(self, message_id: int, index: int) -> int:
        """Show sibling ``index`` at the branch point of ``message_id``; returns the clamped index."""
        message = self.get(message_id)
        total = len(tree.get_siblings(self._messages, message))
        clamped = min(max(0, index), total - 1)
        self._selections_for(message)[tree.normalize_parent_id(message.parent_message_id)] = clamped
        return clamped

    def previous_branch(self, message_id: int) -> int:
        index, _ = self.branch_position(message_id)
        return self.select_branch(message_id, index - 1)

    def next_branch(self, message_id: int) -> int:
        index, _ = self.branch_position(message_id)
        return self.select_branch(message_id, index + 1)

    def _plan(
        self,
        content: str,
        parent_message_id: Optional[int],
        is_thread_message: bool,
        thread_root_id: Optional[int] = None,
    ) -> Resubmission:
        return Resubmission(
            content=content,
            parent_message_id=parent_message_id,
            is_thread_message=is_thread_message,
            branch_key=tree.normalize_parent_id(parent_message_id),
            branch_index=tree.next_branch_index(self._messages, parent_message_id, is_thread_message),
            thread_root_id=thread_root_id,
        )

    def _thread_root_of(self, message: MessageOut) -> Optional[int]:
        current: Optional[MessageOut] = message
        while current is not None and current.is_thread_message:
            current = tree.get_parent_message(self._messages, current)
        return current.id if current is not None else None

    def plan_send(self, content: str, thread_root_id: Optional[int] = None) -> Resubmission:
        """Plan a new turn at the end of the active path, or of a thread."""
        if thread_root_id is None:
            last = tree.find_last_message_in_path(self.active_path())
            return self._plan(content, last.id if last else None, False)
        last = tree.find_last_message_in_path(self.thread_path(thread_root_id))
        if last is None:
            raise KeyError(thread_root_id)
        return self._plan(content, last.id, True, thread_root_id)

    def plan_edit(self, message_id: int, content: str) -> Resubmission:
        """Plan an edit of a user message as a new sibling with ``content``."""
        message = self.get(message_id)
        if message.role != "user":
            raise ValueError(f"Message {message_id} is not a user message")
        thread_root = self._thread_root_of(message) if message.is_thread_message else None
        return self._plan(content, message.parent_message_id, message.is_thread_message, thread_root)

    def plan_regenerate(self, message_id: int) -> Resubmission:
        """Plan a regeneration of an assistant reply.

        The user turn it answered is resubmitted as a new sibling of that
        turn, so regeneration adds a user and an assistant message.
        """
        message = self.get(message_id)
        if message.role != "assistant":
            raise ValueError(f"Message {message_id} is not an assistant message")
        parent = tree.get_parent_message(self._messages, message)
        if parent is None or parent.role != "user":
            raise ValueError(f"Message {message_id} does not answer a user message")
        thread_root = self._thread_root_of(parent) if parent.is_thread_message else None
        return self._plan(parent.content, parent.parent_message_id, parent.is_thread_message, thread_root)

    def apply(self, plan: Resubmission) -> None:
        """Select the branch a planned message will land on."""
        selections = self.thread_selections if plan.is_thread_message else self.branch_selections
        selections[plan.branch_key] = plan.branch_index
