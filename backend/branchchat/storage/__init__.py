"""Storage layer exports."""

from .database import DatabaseManager, get_db_manager, shutdown_database
from .models import Conversation, Message, MessageFile, Project, ProjectFile

__all__ = [
    "DatabaseManager",
    "get_db_manager",
    "shutdown_database",
    "Conversation",
    "Message",
    "MessageFile",
    "Project",
    "ProjectFile",
]
