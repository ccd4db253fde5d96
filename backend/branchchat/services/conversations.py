"""Conversation, message and attachment storage operations."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.orm import selectinload

from ..schemas import ConversationOut, MessageFileOut, MessageOut
from ..storage import Conversation, Message, MessageFile, get_db_manager
from ..storage.models import utcnow
from .content_blocks import Attachment, stored_fields_for
from .projects import touch_projects

logger = logging.getLogger(__name__)

_UNSET = object()


def serialize_conversation(conversation: Conversation) -> dict[str, object]:
    return ConversationOut.model_validate(conversation).model_dump(mode="json")


def serialize_message(message: Message, files: Iterable[MessageFile] = ()) -> dict[str, object]:
    dto = MessageOut(
        id=message.id,
        conversation_id=message.conversation_id,
        parent_message_id=message.parent_message_id,
        role=message.role,
        content=message.content,
        model=message.model,
        is_thread_message=bool(message.is_thread_message),
        thread_draft=message.thread_draft,
        created_at=message.created_at,
        files=[MessageFileOut.model_validate(f) for f in files],
    )
    return dto.model_dump(mode="json")


async def list_conversations(project_id: Optional[int] = None) -> list[Conversation]:
    db = await get_db_manager()
    async with db.session() as session:
        statement = select(Conversation).order_by(Conversation.updated_at.desc())
        if project_id is not None:
            statement = statement.where(Conversation.project_id == project_id)
        result = await session.execute(statement)
        return list(result.scalars().all())


async def get_conversation(conversation_id: int) -> Optional[Conversation]:
    db = await get_db_manager()
    async with db.session() as session:
        return await session.get(Conversation, conversation_id)


async def create_conversation(
    title: str = "New Conversation",
    *,
    system_prompt: Optional[str] = None,
    model: Optional[str] = None,
    project_id: Optional[int] = None,
) -> Conversation:
    db = await get_db_manager()
    async with db.session() as session:
        conversation = Conversation(title=title, system_prompt=system_prompt, model=model, project_id=project_id)
        session.add(conversation)
        await touch_projects(session, [project_id])
        await session.flush()
        await session.refresh(conversation)
        return conversation


async def update_conversation(
    conversation_id: int,
    *,
    title: object = _UNSET,
    system_prompt: object = _UNSET,
    model: object = _UNSET,
    project_id: object = _UNSET,
) -> Optional[Conversation]:
    """Apply the given fields; fields left unset keep their value.

    The projects the conversation moves out of and into are both touched.
    """
    values = {
        key: value
        for key, value in (
            ("title", title),
            ("system_prompt", system_prompt),
            ("model", model),
            ("project_id", project_id),
        )
        if value is not _UNSET
    }
    db = await get_db_manager()
    async with db.session() as session:
        conversation = await session.get(Conversation, conversation_id)
        if conversation is None:
            return None
        previous_project_id = conversation.project_id
        for key, value in values.items():
            setattr(conversation, key, value)
        await touch_projects(session, [previous_project_id, conversation.project_id])
        await session.flush()
        await session.refresh(conversation)
        return conversation


async def delete_conversation(conversation_id: int) -> bool:
    db = await get_db_manager()
    async with db.session() as session:
        result = await session.execute(delete(Conversation).where(Conversation.id == conversation_id))
        return result.rowcount > 0


async def delete_all_conversations() -> None:
    db = await get_db_manager()
    async with db.session() as session:
        await session.execute(delete(MessageFile))
        await session.execute(delete(Message))
        await session.execute(delete(Conversation))


async def get_messages(conversation_id: int, *, with_files: bool = False) -> list[Message]:
    """Return every message of a conversation, main tree and threads alike."""
    db = await get_db_manager()
    async with db.session() as session:
        statement = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at, Message.id)
        )
        if with_files:
            statement = statement.options(selectinload(Message.files))
        result = await session.execute(statement)
        return list(result.scalars().all())


async def get_message(message_id: int) -> Optional[Message]:
    db = await get_db_manager()
    async with db.session() as session:
        return await session.get(Message, message_id)


async def create_message(
    conversation_id: int,
    parent_message_id: Optional[int],
    role: str,
    content: str,
    model: Optional[str] = None,
    is_thread_message: bool = False,
) -> Message:
    db = await get_db_manager()
    async with db.session() as session:
        message = Message(
            conversation_id=conversation_id,
            parent_message_id=parent_message_id,
            role=role,
            content=content,
            model=model,
            is_thread_message=is_thread_message,
        )
        session.add(message)
        await session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(updated_at=utcnow())
        )
        project_id = await session.scalar(select(Conversation.project_id).where(Conversation.id == conversation_id))
        await touch_projects(session, [project_id])
        await session.flush()
        await session.refresh(message)
        logger.debug(
            "Stored %s message %s in conversation %s (parent=%s, thread=%s)",
            role,
            message.id,
            conversation_id,
            parent_message_id,
            is_thread_message,
        )
        return message


async def delete_message(message_id: int) -> bool:
    """Delete a message; descendants and attachments go with it."""
    db = await get_db_manager()
    async with db.session() as session:
        result = await session.execute(delete(Message).where(Message.id == message_id))
        return result.rowcount > 0


async def update_thread_draft(message_id: int, thread_draft: Optional[str]) -> bool:
    db = await get_db_manager()
    async with db.session() as session:
        result = await session.execute(
            update(Message).where(Message.id == message_id).values(thread_draft=thread_draft)
        )
        return result.rowcount > 0


async def create_message_file(
    message_id: int,
    filename: str,
    mime_type: str,
    size: int = 0,
    *,
    data: Optional[str] = None,
    text_content: Optional[str] = None,
) -> MessageFile:
    db = await get_db_manager()
    async with db.session() as session:
        row = MessageFile(
            message_id=message_id,
            filename=filename,
            mime_type=mime_type,
            size=size,
            data=data,
            text_content=text_content,
        )
        session.add(row)
        await session.flush()
        await session.refresh(row)
        return row


async def store_attachments(message_id: int, attachments: Iterable[Attachment]) -> list[MessageFile]:
    """Persist the supported attachments of a message, skipping the rest."""
    rows: list[MessageFile] = []
    for attachment in attachments:
        fields = stored_fields_for(attachment)
        if fields is None:
            logger.info("Not storing attachment %s (%s)", attachment.filename, attachment.mime_type)
            continue
        rows.append(
            await create_message_file(
                message_id,
                fields["filename"],
                fields["mime_type"],
                fields["size"],
                data=fields["data"],
                text_content=fields["text_content"],
            )
        )
    return rows


async def get_message_files_for_messages(message_ids: Sequence[int]) -> list[MessageFile]:
    if not message_ids:
        return []
    db = await get_db_manager()
    async with db.session() as session:
        result = await session.execute(
            select(MessageFile)
            .where(MessageFile.message_id.in_(list(message_ids)))
            .order_by(MessageFile.created_at, MessageFile.id)
        )
        return list(result.scalars().all())
