"""Route modules for the backend."""

from . import chat, conversations, messages, projects, settings

__all__ = ["chat", "conversations", "messages", "projects", "settings"]
