"""Python client for the branchchat API."""

from .http import ChatClient, ChatResult
from .view import ConversationView, Resubmission

__all__ = ["ChatClient", "ChatResult", "ConversationView", "Resubmission"]
