from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, Index, String, Text, true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docdesk.core.enums import TicketStatus
from docdesk.db.base import Base
from docdesk.db.types import UTCDateTime, db_enum
from docdesk.models.mixins import TimestampMixin, UUIDPrimaryKeyMixin


class SupportTicket(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "support_tickets"
    __table_args__ = (
        Index("ix_support_tickets_status", "status"),
        Index("ix_support_tickets_user_email", "user_email"),
        Index("ix_support_tickets_updated_at", "updated_at"),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    user_name: Mapped[str] = mapped_column(String(120), nullable=False)
    user_email: Mapped[str] = mapped_column(String(320), nullable=False)
    # Contextual tag only; projects live in the documentation CMS.
    project_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    project_name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[TicketStatus] = mapped_column(
        db_enum(TicketStatus, "support_ticket_status"),
        nullable=False,
        default=TicketStatus.OPEN,
        server_default=TicketStatus.OPEN.value,
    )
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    attachments_json: Mapped[list[dict] | None] = mapped_column(JSON, nullable=True)
    last_message_timestamp: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    messages = relationship(
        "SupportTicketMessage",
        back_populates="ticket",
        cascade="all,delete-orphan",
        order_by="SupportTicketMessage.timestamp",
    )
