from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from docdesk.services.envelope import Attachment, decode_envelope


@dataclass(frozen=True)
class RenderedMessage:
    id: str
    sender: str
    sender_kind: str
    is_staff: bool
    text: str
    attachments: list[Attachment]
    timestamp: datetime | None

    @property
    def images(self) -> list[Attachment]:
        return [item for item in self.attachments if item.is_image]

    @property
    def documents(self) -> list[Attachment]:
        return [item for item in self.attachments if not item.is_image]


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def sender_label(message: dict[str, Any]) -> str:
    kind = message.get("sender_kind") or message.get("sender")
    if kind == "admin":
        return "Support Team"
    if kind == "user":
        return "You"
    return str(message.get("sender") or "Anonymous")


def render_message(message: dict[str, Any]) -> RenderedMessage:
    envelope = decode_envelope(message.get("content"))
    kind = str(message.get("sender_kind") or message.get("sender") or "")
    return RenderedMessage(
        id=str(message.get("id") or ""),
        sender=sender_label(message),
        sender_kind=kind,
        is_staff=kind == "admin",
        text=envelope.text,
        attachments=list(envelope.attachments or []),
        timestamp=_parse_timestamp(message.get("timestamp")),
    )


def render_messages(ticket: dict[str, Any]) -> list[RenderedMessage]:
    return [render_message(item) for item in ticket.get("messages") or [] if isinstance(item, dict)]
