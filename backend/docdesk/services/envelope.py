"""Message content envelope.

Every message body is persisted as one JSON string
``{"text": ..., "attachments": [...]}``. Older rows (and the first message of
tickets imported from the legacy intake form) hold plain text instead, so
decoding never fails: anything that is not an envelope is returned verbatim as
the text with ``attachments=None``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Attachment:
    url: str
    public_id: str
    original_filename: str
    bytes: int
    resource_type: str
    format: str | None = None

    @property
    def is_image(self) -> bool:
        return self.resource_type == "image"

    def to_envelope_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "public_id": self.public_id,
            "original_filename": self.original_filename,
            "bytes": self.bytes,
            "resource_type": self.resource_type,
        }

    def to_record(self) -> dict[str, Any]:
        return {**self.to_envelope_dict(), "format": self.format}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Attachment":
        # Legacy intake rows used "filename"; some clients send camelCase.
        original_filename = raw.get("original_filename") or raw.get("originalFilename") or raw.get("filename") or ""
        resource_type = raw.get("resource_type") or raw.get("resourceType") or "raw"
        try:
            size = int(raw.get("bytes") or 0)
        except (TypeError, ValueError):
            size = 0
        return cls(
            url=str(raw.get("url") or ""),
            public_id=str(raw.get("public_id") or raw.get("publicId") or ""),
            original_filename=str(original_filename),
            bytes=size,
            resource_type=str(resource_type),
            format=raw.get("format"),
        )


@dataclass(frozen=True)
class MessageEnvelope:
    text: str
    attachments: list[Attachment] | None = field(default_factory=list)

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "attachments": [item.to_envelope_dict() for item in self.attachments] if self.attachments is not None else None,
        }


def encode_envelope(envelope: MessageEnvelope) -> str:
    payload = {
        "text": envelope.text,
        "attachments": [item.to_envelope_dict() for item in (envelope.attachments or [])],
    }
    return json.dumps(payload, ensure_ascii=False)


def decode_envelope(content: Any) -> MessageEnvelope:
    if content is None:
        return MessageEnvelope(text="", attachments=None)
    if not isinstance(content, str):
        return MessageEnvelope(text=str(content), attachments=None)

    try:
        parsed = json.loads(content)
    except (json.JSONDecodeError, ValueError):
        return MessageEnvelope(text=content, attachments=None)

    if not isinstance(parsed, dict) or not ({"text", "attachments"} & parsed.keys()):
        return MessageEnvelope(text=content, attachments=None)

    raw_attachments = parsed.get("attachments")
    attachments: list[Attachment] | None = None
    if isinstance(raw_attachments, list):
        attachments = [Attachment.from_dict(item) for item in raw_attachments if isinstance(item, dict)]

    text = parsed.get("text")
    return MessageEnvelope(text=text if isinstance(text, str) else "", attachments=attachments)


def summarize_for_email(envelope: MessageEnvelope) -> str:
    if envelope.text.strip():
        return envelope.text
    if envelope.has_attachments:
        return "(Attachment included - view online)"
    return "(No content provided - view online)"
