"""Service for streaming completions from the Anthropic Messages API."""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Optional, Sequence

import httpx

from ..config import LLMSettings, get_settings
from ..errors import UpstreamModelError

logger = logging.getLogger(__name__)


class LLMClient:
    """Streams text deltas for a list of ``{role, content}`` turns.

    Endpoint, credentials and limits are read from the current settings on
    every request, so runtime settings changes apply to the next turn.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        settings = get_settings()
        self._client = httpx.AsyncClient(timeout=settings.LLM.timeout, follow_redirects=True, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _headers(settings: LLMSettings) -> dict[str, str]:
        headers = {
            "anthropic-version": settings.api_version,
            "content-type": "application/json",
        }
        if settings.api_key:
            headers["x-api-key"] = settings.api_key
        return headers

    async def stream_chat(
        self,
        messages: Sequence[dict[str, object]],
        model: str,
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[dict[str, object]]:
        """Yield ``{"message": {"content": ...}}`` per text delta, then ``{"done": True}``.

        Raises :class:`UpstreamModelError` on HTTP failures, on ``error``
        events inside the stream, and when the stream closes before
        ``message_stop``.
        """
        settings = get_settings().LLM
        payload: dict[str, object] = {
            "model": model,
            "max_tokens": settings.max_tokens,
            "messages": list(messages),
            "stream": True,
        }
        if system_prompt:
            payload["system"] = system_prompt
        logger.debug("Messages API request: model=%s turns=%d", model, len(messages))

        url = f"{settings.base_url.rstrip('/')}/v1/messages"
        try:
            async with self._client.stream(
                "POST",
                url,
                json=payload,
                headers=self._headers(settings),
                timeout=settings.timeout,
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise UpstreamModelError(
                        _error_message(body, response.status_code),
                        status_code=response.status_code,
                    )
                async for event in _iter_sse_events(response):
                    event_type = event.get("type")
                    if event_type == "content_block_delta":
                        delta = event.get("delta") or {}
                        if delta.get("type") == "text_delta" and delta.get("text"):
                            yield {"message": {"content": delta["text"]}}
                    elif event_type == "message_stop":
                        yield {"done": True}
                        return
                    elif event_type == "error":
                        error = event.get("error") or {}
                        raise UpstreamModelError(
                            error.get("message") or "Model stream reported an error",
                            error_type=error.get("type"),
                        )
        except httpx.HTTPError as exc:
            raise UpstreamModelError(f"Model request failed: {exc}") from exc
        raise UpstreamModelError("Model stream ended before message_stop")


async def _iter_sse_events(response: httpx.Response) -> AsyncIterator[dict]:
    async for raw_line in response.aiter_lines():
        if not raw_line or not raw_line.startswith("data:"):
            continue
        data = raw_line[len("data:") :].strip()
        if not data:
            continue
        try:
            event = json.loads(data)
        except json.JSONDecodeError as exc:
            logger.debug("Failed to decode stream event: %s", exc)
            continue
        if isinstance(event, dict):
            yield event


def _error_message(body: bytes, status_code: int) -> str:
    try:
        error = json.loads(body).get("error") or {}
        message = error.get("message")
    except (ValueError, AttributeError):
        message = None
    return message or f"Model request failed with status {status_code}"


_llm_client: LLMClient | None = None


async def get_llm_client() -> LLMClient:
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client


async def shutdown_llm_client() -> None:
    global _llm_client
    if _llm_client is not None:
        await _llm_client.close()
        _llm_client = None


def set_llm_client(client: LLMClient | None) -> None:
    """Replace the shared client, e.g. with one bound to a mock transport."""
    global _llm_client
    _llm_client = client
