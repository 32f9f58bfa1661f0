from __future__ import annotations

from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from docdesk.core.enums import TicketStatus
from docdesk.core.exceptions import NotFoundError
from docdesk.db.types import utc_now
from docdesk.models import SupportTicket, SupportTicketMessage
from docdesk.services.envelope import Attachment, MessageEnvelope, encode_envelope
from docdesk.services.senders import AnonymousSubmitter, Sender, sender_audit_info, sender_kind, sender_wire_value
from docdesk.services.ticket_state import TicketStatusMachine


class TicketRepository:
    """Persistence for the ticket aggregate.

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_ticket_by_id(self, ticket_id: UUID, *, with_messages: bool = True) -> SupportTicket | None:
        stmt = select(SupportTicket).where(SupportTicket.id == ticket_id)
        if with_messages:
            stmt = stmt.options(selectinload(SupportTicket.messages))
        return await self.session.scalar(stmt)

    async def require_ticket(self, ticket_id: UUID, *, with_messages: bool = True) -> SupportTicket:
        ticket = await self.get_ticket_by_id(ticket_id, with_messages=with_messages)
        if ticket is None:
            raise NotFoundError("Ticket not found")
        return ticket

    def _search_conditions(self, q: str | None, status: TicketStatus | None) -> list:
        conditions = []
        if q:
            pattern = f"%{q.strip().lower()}%"
            conditions.append(
                or_(
                    func.lower(SupportTicket.title).like(pattern),
                    func.lower(SupportTicket.user_email).like(pattern),
                    func.lower(SupportTicket.user_name).like(pattern),
                    func.lower(SupportTicket.project_name).like(pattern),
                )
            )
        if status:
            conditions.append(SupportTicket.status == status)
        return conditions

    async def list_tickets(
        self,
        *,
        q: str | None = None,
        status: TicketStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[SupportTicket]:
        stmt = select(SupportTicket).order_by(SupportTicket.updated_at.desc(), SupportTicket.created_at.desc()).limit(limit).offset(offset)
        conditions = self._search_conditions(q, status)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        result = await self.session.scalars(stmt)
        return list(result.all())

    async def count_tickets(self, *, q: str | None = None, status: TicketStatus | None = None) -> int:
        stmt = select(func.count()).select_from(SupportTicket)
        conditions = self._search_conditions(q, status)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        value = await self.session.scalar(stmt)
        return int(value or 0)

    async def create_ticket(
        self,
        *,
        title: str,
        description: str,
        user_name: str,
        user_email: str,
        project_name: str,
        project_id: str | None = None,
        attachments: list[Attachment] | None = None,
    ) -> SupportTicket:
        now = utc_now()
        attachments = list(attachments or [])
        ticket = SupportTicket(
            title=title,
            description=description,
            user_name=user_name,
            user_email=user_email,
            project_id=project_id,
            project_name=project_name,
            status=TicketStatusMachine.initial_state(),
            is_anonymous=True,
            attachments_json=[item.to_record() for item in attachments],
            created_at=now,
            updated_at=now,
            last_message_timestamp=now,
        )
        submitter = AnonymousSubmitter(name=user_name, email=user_email)
        ticket.messages = [
            self._build_message(submitter, MessageEnvelope(text=description, attachments=attachments), timestamp=now),
        ]
        self.session.add(ticket)
        await self.session.flush()
        return ticket

    async def append_message(self, ticket_id: UUID, sender: Sender, envelope: MessageEnvelope) -> SupportTicket:
        ticket = await self.require_ticket(ticket_id, with_messages=True)

        now = utc_now()
        message = self._build_message(sender, envelope, timestamp=now)
        message.ticket_id = ticket.id
        ticket.messages.append(message)
        # Arrival order is not trusted; the log is ordered by timestamp only.
        ticket.messages.sort(key=lambda item: item.timestamp)

        ticket.status = TicketStatusMachine.after_append(ticket.status, sender)
        ticket.last_message_timestamp = now
        ticket.updated_at = now
        await self.session.flush()
        return ticket

    async def update_status(self, ticket_id: UUID, status: TicketStatus | str) -> SupportTicket:
        ticket = await self.require_ticket(ticket_id, with_messages=True)
        now = utc_now()
        ticket.status = TicketStatusMachine.explicit(status)
        ticket.updated_at = now
        ticket.last_message_timestamp = now
        await self.session.flush()
        return ticket

    @staticmethod
    def _build_message(sender: Sender, envelope: MessageEnvelope, *, timestamp) -> SupportTicketMessage:
        return SupportTicketMessage(
            sender_kind=sender_kind(sender),
            sender=sender_wire_value(sender),
            sender_info=sender_audit_info(sender),
            content=encode_envelope(envelope),
            timestamp=timestamp,
        )
