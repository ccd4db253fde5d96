"""Shared fixtures: a throwaway database, a scripted model, message factories."""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest
import pytest_asyncio

from branchchat.config import reset_settings
from branchchat.schemas import MessageOut
from branchchat.services.llm import LLMClient, set_llm_client
from branchchat.storage.database import get_db_manager, shutdown_database


def sse_event(event: dict) -> str:
    return f"event: {event['type']}\ndata: {json.dumps(event)}\n\n"


def model_stream(*pieces: str, error: Optional[str] = None, cut_off: bool = False) -> str:
    """Body of a Messages API stream emitting ``pieces`` as text deltas.

    ``cut_off`` ends the body after the deltas, with no ``message_stop``.
    """
    events = [
        {"type": "message_start", "message": {"id": "msg_test", "role": "assistant", "content": []}},
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
    ]
    events += [
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": piece}}
        for piece in pieces
    ]
    if error is not None:
        events.append({"type": "error", "error": {"type": "overloaded_error", "message": error}})
    elif not cut_off:
        events += [
            {"type": "content_block_stop", "index": 0},
            {"type": "message_delta", "delta": {"stop_reason": "end_turn"}},
            {"type": "message_stop"},
        ]
    return "".join(sse_event(e) for e in events)


class ScriptedModel:
    """Mock transport for the Messages API that replays queued responses."""

    def __init__(self) -> None:
        self.requests: list[dict] = []
        self.headers: list[httpx.Headers] = []
        self._responses: list[httpx.Response] = []

    def reply(self, *pieces: str) -> None:
        self._responses.append(
            httpx.Response(200, text=model_stream(*pieces), headers={"content-type": "text/event-stream"})
        )

    def fail_midstream(self, *pieces: str, error: str = "Overloaded") -> None:
        self._responses.append(
            httpx.Response(200, text=model_stream(*pieces, error=error), headers={"content-type": "text/event-stream"})
        )

    def cut_off(self, *pieces: str) -> None:
        self._responses.append(
            httpx.Response(200, text=model_stream(*pieces, cut_off=True), headers={"content-type": "text/event-stream"})
        )

    def fail_http(self, status_code: int = 500, message: str = "Internal server error") -> None:
        self._responses.append(
            httpx.Response(status_code, json={"type": "error", "error": {"type": "api_error", "message": message}})
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        self.headers.append(request.headers)
        if not self._responses:
            return httpx.Response(200, text=model_stream("ok"), headers={"content-type": "text/event-stream"})
        return self._responses.pop(0)

    @property
    def last_messages(self) -> list[dict]:
        return self.requests[-1]["messages"]


@pytest.fixture
def settings_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    db_path = tmp_path / "conversations.db"
    monkeypatch.setenv("BRANCHCHAT_CONVERSATION_DB_PATH", str(db_path))
    monkeypatch.setenv("BRANCHCHAT_LLM__API_KEY", "test-key")
    reset_settings()
    yield db_path
    reset_settings()


@pytest.fixture
def scripted_model(settings_env: Path) -> ScriptedModel:
    model = ScriptedModel()
    set_llm_client(LLMClient(transport=httpx.MockTransport(model.handler)))
    yield model
    set_llm_client(None)


@pytest_asyncio.fixture
async def db(settings_env: Path):
    manager = await get_db_manager()
    yield manager
    await shutdown_database()


@pytest.fixture
def make_message() -> Callable[..., MessageOut]:
    """Factory for in-memory messages with increasing ids and timestamps."""
    base = datetime(2025, 1, 1, 12, 0, 0)
    counter = {"id": 0}

    def factory(
        parent: Optional[int] = None,
        role: str = "user",
        content: str = "",
        *,
        thread: bool = False,
        message_id: Optional[int] = None,
        created_at: Optional[datetime] = None,
    ) -> MessageOut:
        counter["id"] = message_id if message_id is not None else counter["id"] + 1
        return MessageOut(
            id=counter["id"],
            conversation_id=1,
            parent_message_id=parent,
            role=role,
            content=content or f"{role} {counter['id']}",
            is_thread_message=thread,
            created_at=created_at or base + timedelta(seconds=counter["id"]),
        )

    return factory
