"""Service layer exports."""

from .content_blocks import Attachment, attachments_from_files, build_content, classify_mime
from .conversations import (
    create_conversation,
    create_message,
    create_message_file,
    delete_all_conversations,
    delete_conversation,
    delete_message,
    get_conversation,
    get_message,
    get_message_files_for_messages,
    get_messages,
    list_conversations,
    update_conversation,
    update_thread_draft,
)
from .history import assemble_main_history, assemble_thread_history, build_conversation_path, build_thread_path
from .llm import LLMClient, get_llm_client, shutdown_llm_client
from .projects import (
    create_project,
    create_project_file,
    delete_project,
    delete_project_file,
    get_project,
    list_project_files,
    list_projects,
    touch_project,
    update_project,
)
from .streaming import AccumulatingRelay, StreamingChunk, StreamingCoordinator, get_streaming_coordinator

__all__ = [
    "Attachment",
    "attachments_from_files",
    "build_content",
    "classify_mime",
    "create_conversation",
    "create_message",
    "create_message_file",
    "delete_all_conversations",
    "delete_conversation",
    "delete_message",
    "get_conversation",
    "get_message",
    "get_message_files_for_messages",
    "get_messages",
    "list_conversations",
    "update_conversation",
    "update_thread_draft",
    "assemble_main_history",
    "assemble_thread_history",
    "build_conversation_path",
    "build_thread_path",
    "LLMClient",
    "get_llm_client",
    "shutdown_llm_client",
    "create_project",
    "create_project_file",
    "delete_project",
    "delete_project_file",
    "get_project",
    "list_project_files",
    "list_projects",
    "touch_project",
    "update_project",
    "AccumulatingRelay",
    "StreamingChunk",
    "StreamingCoordinator",
    "get_streaming_coordinator",
]
