from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import NoReturn
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from docdesk.core.enums import TicketStatus
from docdesk.core.exceptions import PersistenceError, ValidationAppError
from docdesk.models import SupportTicket
from docdesk.repositories.ticket import TicketRepository
from docdesk.schemas.ticket import TicketIntake, serialize_ticket
from docdesk.services.authorizer import Principal, TicketAuthorizer
from docdesk.services.envelope import Attachment, MessageEnvelope
from docdesk.services.notifier import BackgroundDispatcher, TicketNotifications
from docdesk.services.uploads import AttachmentUploader, UploadItem

logger = logging.getLogger(__name__)


class TicketService:
    """Coordinates uploads, persistence and notifications for one request.

    Commits happen here, never in the repository. Notifications are detached
    through the dispatcher after the commit succeeds.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        uploader: AttachmentUploader,
        notifications: TicketNotifications,
        dispatcher: BackgroundDispatcher,
    ) -> None:
        self.session = session
        self.repo = TicketRepository(session)
        self.uploader = uploader
        self.notifications = notifications
        self.dispatcher = dispatcher

    async def _abort(self, exc: SQLAlchemyError, attachments: Sequence[Attachment], message: str) -> NoReturn:
        logger.error("%s: %s", message, exc)
        await self.session.rollback()
        await self.uploader.rollback(attachments)
        raise PersistenceError(message) from exc

    async def create_anonymous_ticket(self, intake: TicketIntake, files: Sequence[UploadItem] = ()) -> SupportTicket:
        attachments = await self.uploader.upload_batch(files)

        try:
            ticket = await self.repo.create_ticket(
                title=intake.title.strip(),
                description=intake.description.strip(),
                user_name=intake.user_name.strip(),
                user_email=str(intake.email).strip(),
                project_id=intake.project_id,
                project_name=intake.project_name.strip(),
                attachments=attachments,
            )
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self._abort(exc, attachments, "Failed to save ticket")

        logger.info("Created ticket %s for %s with %d attachment(s)", ticket.id, ticket.user_email, len(attachments))
        self.dispatcher.dispatch(
            self.notifications.ticket_created(serialize_ticket(ticket)),
            name=f"ticket-created:{ticket.id}",
        )
        return ticket

    async def get_ticket(self, principal: Principal, ticket_id: UUID) -> SupportTicket:
        ticket = await self.repo.require_ticket(ticket_id, with_messages=True)
        TicketAuthorizer.ensure_owner(principal, ticket)
        return ticket

    async def post_message(
        self,
        principal: Principal,
        ticket_id: UUID,
        content: str | None,
        files: Sequence[UploadItem] = (),
    ) -> SupportTicket:
        text = (content or "").strip()
        files = list(files)
        if not text and not files:
            raise ValidationAppError("Message content or files are required")

        ticket = await self.repo.require_ticket(ticket_id, with_messages=True)
        TicketAuthorizer.ensure_owner(principal, ticket)

        attachments = await self.uploader.upload_batch(files, scope=str(ticket_id))
        envelope = MessageEnvelope(text=text, attachments=attachments)
        sender = principal.as_sender()

        try:
            ticket = await self.repo.append_message(ticket_id, sender, envelope)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self._abort(exc, attachments, "Failed to save message")

        logger.info("Appended %s message to ticket %s (status %s)", principal.role.value, ticket.id, ticket.status.value)
        if principal.is_admin:
            self.dispatcher.dispatch(
                self.notifications.admin_replied(serialize_ticket(ticket), envelope),
                name=f"admin-reply:{ticket.id}",
            )
        return ticket

    async def update_status(self, ticket_id: UUID, status: TicketStatus) -> SupportTicket:
        try:
            ticket = await self.repo.update_status(ticket_id, status)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self._abort(exc, (), "Failed to update ticket status")
        logger.info("Ticket %s status set to %s", ticket.id, ticket.status.value)
        return ticket

    async def list_tickets(
        self,
        *,
        q: str | None = None,
        status: TicketStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[SupportTicket], int]:
        items = await self.repo.list_tickets(q=q, status=status, limit=limit, offset=offset)
        total = await self.repo.count_tickets(q=q, status=status)
        return items, total
