from __future__ import annotations

from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jinja2 import Environment
from sqlalchemy.ext.asyncio import AsyncSession

from docdesk.core.config import get_settings
from docdesk.db.session import get_session
from docdesk.services.authorizer import Principal, StaffTokenVerifier, TicketAuthorizer
from docdesk.services.blob_store import BlobStore, CloudinaryBlobStore
from docdesk.services.notifier import (
    BackgroundDispatcher,
    Notifier,
    SmtpNotifier,
    TicketNotifications,
    build_template_environment,
)
from docdesk.services.tickets import TicketService
from docdesk.services.uploads import AttachmentUploader

bearer_scheme = HTTPBearer(auto_error=False)
settings = get_settings()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


@lru_cache(maxsize=1)
def get_authorizer() -> TicketAuthorizer:
    return TicketAuthorizer(StaffTokenVerifier.from_settings(settings))


@lru_cache(maxsize=1)
def get_blob_store() -> BlobStore:
    return CloudinaryBlobStore(settings.cloudinary_config())


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    return SmtpNotifier(settings.mailer_config())


@lru_cache(maxsize=1)
def get_dispatcher() -> BackgroundDispatcher:
    return BackgroundDispatcher()


@lru_cache(maxsize=1)
def get_template_environment() -> Environment:
    return build_template_environment(project_name=settings.project_name, signature=settings.mail_from_name)


def get_uploader(blob_store: BlobStore = Depends(get_blob_store)) -> AttachmentUploader:
    return AttachmentUploader(
        blob_store,
        base_folder=settings.cloudinary_config().folder,
        max_files=settings.max_attachments_per_message,
        max_bytes=settings.max_attachment_bytes,
    )


def get_ticket_notifications(
    notifier: Notifier = Depends(get_notifier),
    authorizer: TicketAuthorizer = Depends(get_authorizer),
) -> TicketNotifications:
    return TicketNotifications(
        notifier,
        templates=get_template_environment(),
        app_base_url=settings.app_base_url,
        support_inbox=settings.support_inbox_email,
        issue_ticket_token=authorizer.issue_ticket_token,
    )


def get_ticket_service(
    session: AsyncSession = Depends(get_db_session),
    uploader: AttachmentUploader = Depends(get_uploader),
    notifications: TicketNotifications = Depends(get_ticket_notifications),
    dispatcher: BackgroundDispatcher = Depends(get_dispatcher),
) -> TicketService:
    return TicketService(session, uploader=uploader, notifications=notifications, dispatcher=dispatcher)


def get_bearer_token(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> str | None:
    if credentials is None:
        return None
    return credentials.credentials


async def get_current_staff(
    token: str | None = Depends(get_bearer_token),
    authorizer: TicketAuthorizer = Depends(get_authorizer),
) -> Principal:
    return await authorizer.authenticate_staff(token)
