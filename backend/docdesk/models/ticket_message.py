from __future__ import annotations

from datetime import datetime
from uuid import UUID as UUIDType

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docdesk.core.enums import SenderKind
from docdesk.db.base import Base
from docdesk.db.types import UTCDateTime, db_enum, utc_now
from docdesk.models.mixins import UUIDPrimaryKeyMixin


class SupportTicketMessage(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "support_ticket_messages"
    __table_args__ = (
        Index("ix_support_ticket_messages_ticket_id_timestamp", "ticket_id", "timestamp"),
    )

    ticket_id: Mapped[UUIDType] = mapped_column(Uuid(as_uuid=True), ForeignKey("support_tickets.id"), nullable=False)
    sender_kind: Mapped[SenderKind] = mapped_column(db_enum(SenderKind, "support_sender_kind"), nullable=False)
    # Wire value: "admin", "user" or the submitter's display name.
    sender: Mapped[str] = mapped_column(String(120), nullable=False)
    sender_info: Mapped[str | None] = mapped_column(String(320), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)

    ticket = relationship("SupportTicket", back_populates="messages")
