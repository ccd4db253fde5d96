"""Endpoints operating on individual messages."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from .. import tree
from ..schemas import MessageCreate, SiblingsOut, ThreadDraftUpdate
from ..services import conversations as convo_service

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.post("")
async def create_message(payload: MessageCreate) -> dict[str, object]:
    """Store a message without contacting the model."""

    if await convo_service.get_conversation(payload.conversation_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if payload.parent_message_id is not None:
        parent = await convo_service.get_message(payload.parent_message_id)
        if parent is None or parent.conversation_id != payload.conversation_id:
            raise HTTPException(status_code=404, detail="Parent message not found")
    message = await convo_service.create_message(
        payload.conversation_id,
        payload.parent_message_id,
        payload.role,
        payload.content,
        model=payload.model,
        is_thread_message=payload.is_thread_message,
    )
    return convo_service.serialize_message(message)


@router.delete("/{message_id}")
async def delete_message(message_id: int) -> dict[str, str]:
    """Delete a message together with every reply below it."""

    deleted = await convo_service.delete_message(message_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Message not found")
    return {"status": "deleted"}


@router.patch("/{message_id}/thread-draft")
async def save_thread_draft(message_id: int, payload: ThreadDraftUpdate) -> dict[str, str]:
    updated = await convo_service.update_thread_draft(message_id, payload.thread_draft or None)
    if not updated:
        raise HTTPException(status_code=404, detail="Message not found")
    return {"status": "saved"}


@router.get("/{message_id}/siblings")
async def get_siblings(message_id: int) -> SiblingsOut:
    """Return the branch group of a message and its position in it."""

    message = await convo_service.get_message(message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    messages = await convo_service.get_messages(message.conversation_id)
    siblings = tree.get_siblings(messages, message)
    return SiblingsOut(
        siblings=[convo_service.serialize_message(m) for m in siblings],
        index=tree.get_sibling_index(messages, message),
        total=len(siblings),
    )
