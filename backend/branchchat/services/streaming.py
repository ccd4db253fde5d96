"""Coordinator for streamed chat turns."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from ..config import get_settings
from ..errors import UpstreamModelError
from ..schemas import ChatRequest
from ..storage import Conversation, Message
from .content_blocks import Attachment
from .conversations import (
    create_message,
    get_conversation,
    get_messages,
    serialize_message,
    store_attachments,
    update_conversation,
)
from .history import assemble_main_history, assemble_thread_history
from .llm import get_llm_client
from .projects import get_project

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Conversation"
TITLE_LENGTH = 50


@dataclass
class StreamingChunk:
    """Represents a chunk of streamed data."""

    type: str
    data: dict[str, object]


class AccumulatingRelay:
    """Forwards text fragments from a model stream while collecting them.

    Iterating the relay is the forwarding side; ``text`` is the accumulated
    side and is only meaningful once ``completed`` is true. ``completed`` is
    set by the source's ``done`` event, never by the source simply running
    out.
    """

    def __init__(self, source: AsyncIterator[dict[str, object]]) -> None:
        self._source = source
        self._parts: list[str] = []
        self.completed = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    async def __aiter__(self) -> AsyncIterator[str]:
        async for event in self._source:
            if event.get("done"):
                self.completed = True
                break
            message = event.get("message")
            if not isinstance(message, dict):
                continue
            piece = message.get("content") or ""
            if piece:
                self._parts.append(piece)
                yield piece


def derive_title(text: str) -> str:
    title = " ".join(text.split())
    if len(title) > TITLE_LENGTH:
        return title[:TITLE_LENGTH] + "..."
    return title or DEFAULT_TITLE


class StreamingCoordinator:
    """Stores the user turn, streams the reply, and stores it once complete."""

    async def handle_chat(self, request: ChatRequest) -> AsyncIterator[StreamingChunk]:
        conversation = await get_conversation(request.conversation_id)
        if conversation is None:
            yield StreamingChunk(type="error", data={"error": "Conversation not found"})
            return

        attachments = [
            Attachment(filename=f.filename, mime_type=f.mime_type, data=f.data, size=f.size)
            for f in request.files
        ]
        is_thread = request.thread_context

        user_message = await create_message(
            request.conversation_id,
            request.parent_message_id,
            "user",
            request.message,
            is_thread_message=is_thread,
        )
        stored_files = await store_attachments(user_message.id, attachments)
        yield StreamingChunk(type="user_message", data={"message": serialize_message(user_message, stored_files)})

        messages = await get_messages(request.conversation_id)
        if is_thread:
            history = await assemble_thread_history(
                messages,
                request.thread_root_id,
                request.message,
                attachments,
                exclude_message_id=user_message.id,
            )
        else:
            history = await assemble_main_history(messages, user_message.id, request.message, attachments)

        system_prompt = await self._system_prompt(request, conversation)
        llm = await get_llm_client()
        relay = AccumulatingRelay(llm.stream_chat(history, request.model, system_prompt))
        try:
            async for piece in relay:
                yield StreamingChunk(type="delta", data={"content": piece})
        except UpstreamModelError as exc:
            logger.warning("Model stream failed for conversation %s: %s", request.conversation_id, exc)
            yield StreamingChunk(type="error", data={"error": str(exc)})
            return

        if not relay.completed:
            logger.warning("Model stream for conversation %s ended without completing", request.conversation_id)
            yield StreamingChunk(type="error", data={"error": "Model stream ended before completion"})
            return
        if not relay.text:
            return

        assistant_message = await create_message(
            request.conversation_id,
            user_message.id,
            "assistant",
            relay.text,
            model=request.model,
            is_thread_message=is_thread,
        )
        yield StreamingChunk(type="assistant_message", data={"message": serialize_message(assistant_message)})

        new_title = await self._maybe_assign_conversation_title(conversation, messages, user_message)
        if new_title is not None:
            yield StreamingChunk(
                type="conversation_title",
                data={"title": new_title, "conversation_id": conversation.id},
            )

    @staticmethod
    async def _system_prompt(request: ChatRequest, conversation: Conversation) -> Optional[str]:
        """Request, then conversation, then project instructions, then the configured default."""
        if request.system_prompt or conversation.system_prompt:
            return request.system_prompt or conversation.system_prompt
        if conversation.project_id is not None:
            project = await get_project(conversation.project_id)
            if project is not None and project.instructions:
                return project.instructions
        return get_settings().LLM.default_system_prompt

    async def _maybe_assign_conversation_title(
        self,
        conversation: Conversation,
        messages: list[Message],
        user_message: Message,
    ) -> str | None:
        if conversation.title != DEFAULT_TITLE or user_message.is_thread_message:
            return None
        if any(m.role == "assistant" for m in messages):
            return None
        title = derive_title(user_message.content)
        updated = await update_conversation(conversation.id, title=title)
        return title if updated is not None else None


_streaming_coordinator: StreamingCoordinator | None = None


async def get_streaming_coordinator() -> StreamingCoordinator:
    global _streaming_coordinator
    if _streaming_coordinator is None:
        _streaming_coordinator = StreamingCoordinator()
    return _streaming_coordinator
