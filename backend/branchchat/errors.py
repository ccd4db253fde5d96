"""Branchchat error hierarchy.

    BranchChatError
    ├── UpstreamModelError      # the hosted model failed or returned an error event
    └── ChatClientError         # the HTTP API answered a client call with an error
"""

from __future__ import annotations


class BranchChatError(Exception):
    """Base class for all branchchat errors."""


class UpstreamModelError(BranchChatError):
    """Raised when the model request fails or the stream reports an error."""

    def __init__(self, message: str, *, status_code: int | None = None, error_type: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type


class ChatClientError(BranchChatError):
    """Raised by the Python client when the server rejects a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
