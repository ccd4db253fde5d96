"""Request and response schemas shared by the routes and the client."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


Role = Literal["user", "assistant"]


class FileAttachment(BaseModel):
    """A file sent with a chat request, payload base64 encoded."""

    filename: str = Field(min_length=1)
    mime_type: str = Field(min_length=1)
    size: int = Field(default=0, ge=0)
    data: str


class MessageFileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    message_id: int
    filename: str
    mime_type: str
    size: int
    data: Optional[str] = None
    text_content: Optional[str] = None
    created_at: datetime


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: int
    parent_message_id: Optional[int] = None
    role: Role
    content: str
    model: Optional[str] = None
    is_thread_message: bool = False
    thread_draft: Optional[str] = None
    created_at: datetime
    files: list[MessageFileOut] = Field(default_factory=list)


class MessageCreate(BaseModel):
    conversation_id: int
    parent_message_id: Optional[int] = None
    role: Role
    content: str
    model: Optional[str] = None
    is_thread_message: bool = False


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    instructions: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1)
    instructions: Optional[str] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    instructions: Optional[str] = None


class ProjectFileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    filename: str
    mime_type: str
    size: int
    data: Optional[str] = None
    text_content: Optional[str] = None
    created_at: datetime


class ConversationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    project_id: Optional[int] = None
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ConversationCreate(BaseModel):
    title: str = "New Conversation"
    project_id: Optional[int] = None
    system_prompt: Optional[str] = None
    model: Optional[str] = None


class ConversationUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    project_id: Optional[int] = None
    system_prompt: Optional[str] = None
    model: Optional[str] = None


class ThreadDraftUpdate(BaseModel):
    thread_draft: Optional[str] = None


class BranchSelectionRequest(BaseModel):
    """Branch index chosen at each parent key; ``-1`` is the root."""

    branch_selections: dict[int, int] = Field(default_factory=dict)


class SiblingsOut(BaseModel):
    siblings: list[MessageOut]
    index: int
    total: int


class ThreadSummary(BaseModel):
    root: MessageOut
    reply_count: int


class ChatRequest(BaseModel):
    """A new user turn plus where it attaches in the message tree."""

    message: str = Field(min_length=1)
    model: str
    conversation_id: int
    parent_message_id: Optional[int] = None
    system_prompt: Optional[str] = None
    files: list[FileAttachment] = Field(default_factory=list)
    thread_context: bool = False
    thread_root_id: Optional[int] = None

    @model_validator(mode="after")
    def _thread_root_required(self) -> "ChatRequest":
        if self.thread_context and self.thread_root_id is None:
            raise ValueError("thread_root_id is required when thread_context is set")
        if self.thread_context and self.parent_message_id is None:
            raise ValueError("parent_message_id is required when thread_context is set")
        return self
