"""Async HTTP client for the branchchat API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Sequence

import httpx

from ..errors import ChatClientError
from ..schemas import ChatRequest, ConversationOut, FileAttachment, MessageOut, ProjectFileOut, ProjectOut
from .view import ConversationView, Resubmission

logger = logging.getLogger(__name__)

DONE_MARKER = "[DONE]"


@dataclass
class ChatResult:
    """Outcome of one streamed turn."""

    text: str = ""
    user_message: Optional[MessageOut] = None
    assistant_message: Optional[MessageOut] = None
    error: Optional[str] = None
    events: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and self.assistant_message is not None


class ChatClient:
    """Talks to the API and keeps a :class:`ConversationView` in sync."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 120.0,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        response = await self._client.request(method, url, **kwargs)
        if response.status_code >= 400:
            raise ChatClientError(_error_detail(response), status_code=response.status_code)
        return response

    async def list_conversations(self, project_id: Optional[int] = None) -> list[ConversationOut]:
        params = {"project_id": project_id} if project_id is not None else None
        response = await self._request("GET", "/api/conversations", params=params)
        return [ConversationOut.model_validate(item) for item in response.json()]

    async def create_conversation(
        self,
        title: str = "New Conversation",
        *,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        project_id: Optional[int] = None,
    ) -> ConversationOut:
        response = await self._request(
            "POST",
            "/api/conversations",
            json={"title": title, "system_prompt": system_prompt, "model": model, "project_id": project_id},
        )
        return ConversationOut.model_validate(response.json())

    async def update_conversation(self, conversation_id: int, **changes) -> ConversationOut:
        response = await self._request("PATCH", f"/api/conversations/{conversation_id}", json=changes)
        return ConversationOut.model_validate(response.json())

    async def delete_conversation(self, conversation_id: int) -> None:
        await self._request("DELETE", f"/api/conversations/{conversation_id}")

    async def list_projects(self) -> list[ProjectOut]:
        response = await self._request("GET", "/api/projects")
        return [ProjectOut.model_validate(item) for item in response.json()]

    async def create_project(self, name: str, *, instructions: Optional[str] = None) -> ProjectOut:
        response = await self._request("POST", "/api/projects", json={"name": name, "instructions": instructions})
        return ProjectOut.model_validate(response.json())

    async def update_project(self, project_id: int, **changes) -> ProjectOut:
        response = await self._request("PATCH", f"/api/projects/{project_id}", json=changes)
        return ProjectOut.model_validate(response.json())

    async def delete_project(self, project_id: int) -> None:
        await self._request("DELETE", f"/api/projects/{project_id}")

    async def upload_project_file(
        self, project_id: int, filename: str, content: bytes, mime_type: str
    ) -> ProjectFileOut:
        response = await self._request(
            "POST",
            f"/api/projects/{project_id}/files",
            files={"file": (filename, content, mime_type)},
        )
        return ProjectFileOut.model_validate(response.json())

    async def get_messages(self, conversation_id: int) -> list[MessageOut]:
        response = await self._request("GET", f"/api/conversations/{conversation_id}/messages")
        return [MessageOut.model_validate(item) for item in response.json()]

    async def delete_message(self, message_id: int) -> None:
        await self._request("DELETE", f"/api/messages/{message_id}")

    async def save_thread_draft(self, message_id: int, draft: Optional[str]) -> None:
        await self._request("PATCH", f"/api/messages/{message_id}/thread-draft", json={"thread_draft": draft})

    async def open_view(self, conversation_id: int) -> ConversationView:
        return ConversationView(await self.get_messages(conversation_id))

    async def refresh(self, view: ConversationView, conversation_id: int) -> None:
        view.refresh(await self.get_messages(conversation_id))

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[dict]:
        """Yield decoded stream events until the terminal marker."""
        payload = request.model_dump(mode="json")
        async with self._client.stream("POST", "/api/chat", json=payload) as response:
            if response.status_code >= 400:
                await response.aread()
                raise ChatClientError(_error_detail(response), status_code=response.status_code)
            async for raw_line in response.aiter_lines():
                if not raw_line.startswith("data:"):
                    continue
                data = raw_line[len("data:") :].strip()
                if data == DONE_MARKER:
                    return
                try:
                    yield json.loads(data)
                except json.JSONDecodeError as exc:
                    logger.debug("Skipping undecodable event: %s", exc)

    async def submit(
        self,
        view: ConversationView,
        conversation_id: int,
        plan: Resubmission,
        model: str,
        *,
        files: Sequence[FileAttachment] = (),
        system_prompt: Optional[str] = None,
    ) -> ChatResult:
        """Send a planned turn, select its branch, then refetch the messages."""
        request = ChatRequest(
            message=plan.content,
            model=model,
            conversation_id=conversation_id,
            parent_message_id=plan.parent_message_id,
            system_prompt=system_prompt,
            files=list(files),
            thread_context=plan.is_thread_message,
            thread_root_id=plan.thread_root_id,
        )
        view.apply(plan)

        result = ChatResult()
        parts: list[str] = []
        async for event in self.stream_chat(request):
            result.events.append(event)
            kind = event.get("type")
            if kind == "delta":
                parts.append(event.get("content", ""))
            elif kind == "user_message":
                result.user_message = MessageOut.model_validate(event["message"])
            elif kind == "assistant_message":
                result.assistant_message = MessageOut.model_validate(event["message"])
            elif kind == "error":
                result.error = event.get("error") or "unknown error"
        result.text = "".join(parts)

        await self.refresh(view, conversation_id)
        return result

    async def send(
        self,
        view: ConversationView,
        conversation_id: int,
        content: str,
        model: str,
        *,
        thread_root_id: Optional[int] = None,
        files: Sequence[FileAttachment] = (),
        system_prompt: Optional[str] = None,
    ) -> ChatResult:
        plan = view.plan_send(content, thread_root_id)
        return await self.submit(view, conversation_id, plan, model, files=files, system_prompt=system_prompt)

    async def edit(
        self, view: ConversationView, conversation_id: int, message_id: int, content: str, model: str
    ) -> ChatResult:
        return await self.submit(view, conversation_id, view.plan_edit(message_id, content), model)

    async def regenerate(
        self, view: ConversationView, conversation_id: int, message_id: int, model: str
    ) -> ChatResult:
        return await self.submit(view, conversation_id, view.plan_regenerate(message_id), model)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)
