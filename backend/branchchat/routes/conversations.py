"""Conversation management and message-tree endpoints."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse

from .. import tree
from ..schemas import BranchSelectionRequest, ConversationCreate, ConversationUpdate, ThreadSummary
from ..services import conversations as convo_service
from ..services import projects as project_service
from ..services.export import export_filename, render_export

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


async def _require_project(project_id: Optional[int]) -> None:
    if project_id is not None and await project_service.get_project(project_id) is None:
        raise HTTPException(status_code=404, detail="Project not found")


async def _require_conversation(conversation_id: int):
    conversation = await convo_service.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@router.get("")
async def list_conversations(project_id: Optional[int] = None) -> list[dict[str, object]]:
    """Return available conversations, most recently active first."""

    conversations = await convo_service.list_conversations(project_id)
    return [convo_service.serialize_conversation(c) for c in conversations]


@router.post("")
async def create_conversation(payload: ConversationCreate) -> dict[str, object]:
    await _require_project(payload.project_id)
    conversation = await convo_service.create_conversation(
        payload.title,
        system_prompt=payload.system_prompt,
        model=payload.model,
        project_id=payload.project_id,
    )
    return convo_service.serialize_conversation(conversation)


@router.get("/{conversation_id}")
async def get_conversation(conversation_id: int) -> dict[str, object]:
    conversation = await _require_conversation(conversation_id)
    return convo_service.serialize_conversation(conversation)


@router.patch("/{conversation_id}")
async def update_conversation(conversation_id: int, payload: ConversationUpdate) -> dict[str, object]:
    changes = payload.model_dump(exclude_unset=True)
    if "title" in changes and not changes["title"]:
        raise HTTPException(status_code=400, detail="Title is required")
    await _require_project(changes.get("project_id"))
    updated = await convo_service.update_conversation(conversation_id, **changes)
    if updated is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return convo_service.serialize_conversation(updated)


@router.delete("/{conversation_id}")
async def remove_conversation(conversation_id: int) -> dict[str, str]:
    deleted = await convo_service.delete_conversation(conversation_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"status": "deleted"}


@router.delete("")
async def remove_all_conversations() -> dict[str, str]:
    await convo_service.delete_all_conversations()
    return {"status": "cleared"}


@router.get("/{conversation_id}/messages")
async def list_messages(conversation_id: int) -> list[dict[str, object]]:
    """Return the flat message list, threads included, with attachments."""

    await _require_conversation(conversation_id)
    messages = await convo_service.get_messages(conversation_id, with_files=True)
    return [convo_service.serialize_message(m, m.files) for m in messages]


@router.post("/{conversation_id}/active-path")
async def resolve_active_path(conversation_id: int, payload: BranchSelectionRequest) -> list[dict[str, object]]:
    """Return the main-view path for the given branch selections."""

    await _require_conversation(conversation_id)
    messages = await convo_service.get_messages(conversation_id)
    path = tree.get_active_path(messages, payload.branch_selections)
    return [convo_service.serialize_message(m) for m in path]


@router.get("/{conversation_id}/threads")
async def list_threads(conversation_id: int) -> list[ThreadSummary]:
    await _require_conversation(conversation_id)
    messages = await convo_service.get_messages(conversation_id)
    return [
        ThreadSummary(root=convo_service.serialize_message(root), reply_count=count)
        for root, count in tree.list_threads(messages)
    ]


@router.post("/{conversation_id}/threads/{root_message_id}")
async def resolve_thread(
    conversation_id: int,
    root_message_id: int,
    payload: BranchSelectionRequest,
) -> list[dict[str, object]]:
    """Return the thread rooted at ``root_message_id`` for the given selections."""

    await _require_conversation(conversation_id)
    messages = await convo_service.get_messages(conversation_id)
    path = tree.get_thread_messages(messages, root_message_id, payload.branch_selections)
    if not path:
        raise HTTPException(status_code=404, detail="Thread root not found")
    return [convo_service.serialize_message(m) for m in path]


@router.post("/{conversation_id}/export")
async def export_conversation(
    conversation_id: int,
    payload: BranchSelectionRequest,
    format: Literal["markdown", "text"] = "markdown",
) -> PlainTextResponse:
    """Render the active path for the given selections as a download."""

    conversation = await _require_conversation(conversation_id)
    messages = await convo_service.get_messages(conversation_id)
    path = tree.get_active_path(messages, payload.branch_selections)
    if not path:
        raise HTTPException(status_code=404, detail="Conversation has no messages")
    body = render_export(conversation, path, format)
    media_type = "text/markdown" if format == "markdown" else "text/plain"
    filename = export_filename(conversation.title, format)
    return PlainTextResponse(
        body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
