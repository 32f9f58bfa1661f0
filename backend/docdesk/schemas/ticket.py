from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator

from docdesk.core.enums import SenderKind, TicketStatus
from docdesk.services.envelope import Attachment


class AttachmentRead(BaseModel):
    url: str
    public_id: str
    original_filename: str
    bytes: int
    resource_type: str
    format: str | None = None


class TicketMessageRead(BaseModel):
    id: str
    sender: str
    sender_kind: SenderKind
    sender_info: str | None = None
    content: str
    timestamp: datetime


class TicketRead(BaseModel):
    id: str
    title: str
    description: str
    user_name: str
    user_email: str
    project_id: str | None = None
    project_name: str
    status: TicketStatus
    is_anonymous: bool
    attachments: list[AttachmentRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    last_message_timestamp: datetime | None = None


class TicketDetailRead(TicketRead):
    messages: list[TicketMessageRead] = Field(default_factory=list)


class TicketCreated(BaseModel):
    success: Literal[True] = True
    ticket_id: str
    message: str = "Ticket created successfully. Check your email for the secure access link."


class TicketIntake(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    user_name: str = Field(min_length=1, max_length=120)
    email: EmailStr
    project_id: str | None = Field(default=None, max_length=64)
    project_name: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)

    @field_validator("title")
    @classmethod
    def single_line_title(cls, value: str) -> str:
        # Titles end up in mail subjects.
        return " ".join(value.split())

    @field_validator("project_id")
    @classmethod
    def blank_project_id(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None


class TicketStatusUpdate(BaseModel):
    status: TicketStatus


class TicketTokenVerifyRequest(BaseModel):
    token: str = Field(min_length=1)


class TicketTokenVerifyResponse(BaseModel):
    ticket_id: str
    email: str


def serialize_attachment(raw: dict) -> AttachmentRead:
    item = Attachment.from_dict(raw)
    return AttachmentRead(
        url=item.url,
        public_id=item.public_id,
        original_filename=item.original_filename,
        bytes=item.bytes,
        resource_type=item.resource_type,
        format=item.format,
    )


def serialize_message(message) -> TicketMessageRead:
    return TicketMessageRead(
        id=str(message.id),
        sender=message.sender,
        sender_kind=message.sender_kind,
        sender_info=message.sender_info,
        content=message.content,
        timestamp=message.timestamp,
    )


def serialize_ticket(ticket, *, include_messages: bool = False) -> TicketRead | TicketDetailRead:
    payload = {
        "id": str(ticket.id),
        "title": ticket.title,
        "description": ticket.description,
        "user_name": ticket.user_name,
        "user_email": ticket.user_email,
        "project_id": ticket.project_id,
        "project_name": ticket.project_name,
        "status": ticket.status,
        "is_anonymous": bool(ticket.is_anonymous),
        "attachments": [serialize_attachment(item) for item in (ticket.attachments_json or []) if isinstance(item, dict)],
        "created_at": ticket.created_at,
        "updated_at": ticket.updated_at,
        "last_message_timestamp": ticket.last_message_timestamp,
    }
    if include_messages:
        return TicketDetailRead(**payload, messages=[serialize_message(item) for item in ticket.messages])
    return TicketRead(**payload)
