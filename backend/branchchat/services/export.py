"""Plain-text and Markdown renderings of a conversation's active path."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Literal, Optional, Sequence

from ..config import get_settings
from ..storage import Conversation, Message

ExportFormat = Literal["markdown", "text"]

_MODEL_LABELS = {
    "claude-opus-4-20250514": "Claude 4.1 Opus",
    "claude-sonnet-4-5": "Claude 4.5 Sonnet",
    "claude-haiku-4-5": "Claude 4.5 Haiku",
}


def model_label(model: Optional[str]) -> str:
    if not model:
        return "Unknown Model"
    return _MODEL_LABELS.get(model, model)


def export_filename(title: str, export_format: ExportFormat) -> str:
    stem = re.sub(r"[^a-z0-9]", "_", title.lower()) or "conversation"
    return f"{stem}.{'md' if export_format == 'markdown' else 'txt'}"


def export_markdown(conversation: Conversation, path: Sequence[Message], exported_at: datetime | None = None) -> str:
    exported_at = exported_at or datetime.now(timezone.utc)
    lines = [f"# {conversation.title}", "", f"*Exported: {exported_at:%Y-%m-%d %H:%M:%S %Z}*".rstrip(), ""]
    system_prompt = conversation.system_prompt or get_settings().LLM.default_system_prompt
    if system_prompt:
        lines += ["## System Prompt", "", system_prompt, ""]
    lines += ["## Conversation", ""]
    for message in path:
        speaker = "**You**" if message.role == "user" else "**Claude**"
        model = f" ({model_label(message.model)})" if message.model else ""
        lines += [f"### {speaker}{model}", "", message.content, "", "---", ""]
    return "\n".join(lines)


def export_text(conversation: Conversation, path: Sequence[Message], exported_at: datetime | None = None) -> str:
    exported_at = exported_at or datetime.now(timezone.utc)
    lines = [conversation.title, "=" * len(conversation.title), "", f"Exported: {exported_at:%Y-%m-%d %H:%M:%S %Z}".rstrip(), ""]
    system_prompt = conversation.system_prompt or get_settings().LLM.default_system_prompt
    if system_prompt:
        lines += ["SYSTEM PROMPT:", system_prompt, "", "-" * 50, ""]
    for message in path:
        speaker = "YOU" if message.role == "user" else "CLAUDE"
        model = f" ({model_label(message.model)})" if message.model else ""
        lines += [f"[{speaker}{model}]", message.content, ""]
    return "\n".join(lines)


def render_export(
    conversation: Conversation,
    path: Sequence[Message],
    export_format: ExportFormat,
    exported_at: datetime | None = None,
) -> str:
    if export_format == "markdown":
        return export_markdown(conversation, path, exported_at)
    return export_text(conversation, path, exported_at)
