"""Streaming chat endpoint."""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from .. import tree
from ..config import get_settings
from ..schemas import ChatRequest
from ..services import conversations as convo_service
from ..services.streaming import get_streaming_coordinator
from ..storage import Message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

DONE_MARKER = "[DONE]"


def _sse(data: str) -> str:
    return f"data: {data}\n\n"


async def _validate(request: ChatRequest) -> None:
    settings = get_settings()
    if request.model not in settings.LLM.available_models:
        raise HTTPException(status_code=400, detail=f"Unsupported model: {request.model}")
    if await convo_service.get_conversation(request.conversation_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    found: dict[str, Message] = {}
    for label, message_id in (("Parent", request.parent_message_id), ("Thread root", request.thread_root_id)):
        if message_id is None:
            continue
        message = await convo_service.get_message(message_id)
        if message is None or message.conversation_id != request.conversation_id:
            raise HTTPException(status_code=404, detail=f"{label} message not found")
        found[label] = message
    if request.thread_context:
        _validate_thread_target(
            found["Thread root"],
            found["Parent"],
            await convo_service.get_messages(request.conversation_id),
        )


def _validate_thread_target(root: Message, parent: Message, messages: list[Message]) -> None:
    """A thread hangs off a main-tree assistant reply; new turns go under it or its replies."""
    if root.role != "assistant" or root.is_thread_message:
        raise HTTPException(status_code=400, detail="Thread root must be an assistant message outside any thread")
    if parent.id == root.id:
        return
    thread_root = tree.find_thread_root(messages, parent) if parent.is_thread_message else None
    if thread_root is None or thread_root.id != root.id:
        raise HTTPException(status_code=400, detail="Parent message is not part of this thread")


@router.post("/chat")
async def chat(request: ChatRequest) -> StreamingResponse:
    """Store a user turn and stream the model's reply as server-sent events."""

    await _validate(request)
    coordinator = await get_streaming_coordinator()

    async def event_stream() -> AsyncIterator[str]:
        try:
            async for chunk in coordinator.handle_chat(request):
                yield _sse(json.dumps({"type": chunk.type, **chunk.data}))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Chat stream failed for conversation %s", request.conversation_id)
            yield _sse(json.dumps({"type": "error", "error": str(exc)}))
        yield _sse(DONE_MARKER)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
