"""Conversion of message text plus attachments into Messages API content."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Protocol, Union

logger = logging.getLogger(__name__)


FileKind = Literal["image", "pdf", "text"]

IMAGE_MIME_TYPES = frozenset({"image/png", "image/jpeg", "image/gif", "image/webp"})
PDF_MIME_TYPE = "application/pdf"
TEXT_MIME_TYPES = frozenset(
    {
        "application/json",
        "application/xml",
        "application/javascript",
        "application/x-javascript",
        "application/typescript",
        "application/x-typescript",
        "application/x-python",
        "application/x-python-code",
        "application/x-sh",
        "application/x-shellscript",
        "application/x-yaml",
        "application/yaml",
        "application/toml",
        "application/sql",
        "application/x-sql",
        "application/csv",
        "application/x-httpd-php",
        "application/x-ruby",
        "application/graphql",
        "application/ld+json",
    }
)

ContentBlock = dict[str, object]
MessageContent = Union[str, list[ContentBlock]]


@dataclass(frozen=True)
class Attachment:
    """A file ready for the model: base64 payload plus its type."""

    filename: str
    mime_type: str
    data: str
    size: int = 0


class StoredFile(Protocol):
    filename: str
    mime_type: str
    size: int
    data: Optional[str]
    text_content: Optional[str]


def classify_mime(mime_type: str) -> Optional[FileKind]:
    """Bucket a MIME type as image, pdf or text; ``None`` means unsupported."""
    normalized = (mime_type or "").split(";", 1)[0].strip().lower()
    if normalized in IMAGE_MIME_TYPES:
        return "image"
    if normalized == PDF_MIME_TYPE:
        return "pdf"
    if normalized in TEXT_MIME_TYPES or normalized.startswith("text/"):
        return "text"
    return None


def _decode_text(data: str) -> Optional[str]:
    try:
        return base64.b64decode(data, validate=False).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None


def attachment_to_block(attachment: Attachment) -> Optional[ContentBlock]:
    kind = classify_mime(attachment.mime_type)
    media_type = attachment.mime_type.split(";", 1)[0].strip().lower()
    if kind == "image":
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": media_type, "data": attachment.data},
        }
    if kind == "pdf":
        return {
            "type": "document",
            "source": {"type": "base64", "media_type": PDF_MIME_TYPE, "data": attachment.data},
        }
    if kind == "text":
        text = _decode_text(attachment.data)
        if text is None:
            logger.warning("Dropping undecodable text attachment %s", attachment.filename)
            return None
        return {"type": "text", "text": f"File: {attachment.filename}\n```\n{text}\n```"}
    logger.debug("Dropping attachment %s with unsupported type %s", attachment.filename, attachment.mime_type)
    return None


def build_content(text: str, attachments: Iterable[Attachment] = ()) -> MessageContent:
    """Return plain text, or content blocks with the user's text as the last block."""
    blocks = [block for block in (attachment_to_block(a) for a in attachments) if block is not None]
    if not blocks:
        return text
    blocks.append({"type": "text", "text": text})
    return blocks


def attachments_from_files(files: Iterable[StoredFile]) -> list[Attachment]:
    """Rebuild attachments from stored file rows of a historical message.

    Images and PDFs reuse the stored payload. Text files only keep their
    extracted text, which is re-encoded so it goes through the same path as
    a fresh upload.
    """
    attachments: list[Attachment] = []
    for row in files:
        kind = classify_mime(row.mime_type)
        if kind in ("image", "pdf"):
            if not row.data:
                continue
            payload = row.data
        elif kind == "text":
            if row.text_content is not None:
                payload = base64.b64encode(row.text_content.encode("utf-8")).decode("ascii")
            elif row.data:
                payload = row.data
            else:
                continue
        else:
            continue
        attachments.append(Attachment(filename=row.filename, mime_type=row.mime_type, data=payload, size=row.size))
    return attachments


def stored_fields_for(attachment: Attachment) -> Optional[dict[str, object]]:
    """Column values for persisting an uploaded attachment, ``None`` if unsupported."""
    kind = classify_mime(attachment.mime_type)
    if kind is None:
        return None
    fields: dict[str, object] = {
        "filename": attachment.filename,
        "mime_type": attachment.mime_type,
        "size": attachment.size,
        "data": None,
        "text_content": None,
    }
    if kind == "text":
        text = _decode_text(attachment.data)
        if text is None:
            return None
        fields["text_content"] = text
    else:
        fields["data"] = attachment.data
    return fields


__all__ = [
    "Attachment",
    "ContentBlock",
    "MessageContent",
    "attachment_to_block",
    "attachments_from_files",
    "build_content",
    "classify_mime",
    "stored_fields_for",
]
