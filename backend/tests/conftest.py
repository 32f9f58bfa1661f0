from __future__ import annotations

import os

os.environ.setdefault("STAFF_JWT_SECRET", "test-staff-secret")
os.environ.setdefault("TICKET_TOKEN_SECRET", "test-ticket-secret")
os.environ.setdefault("SUPPORT_INBOX_EMAIL", "it-support@example.com")
os.environ.setdefault("APP_BASE_URL", "http://docs.test")

from collections.abc import AsyncGenerator
from uuid import UUID

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from docdesk.api import deps
from docdesk.core.security import create_staff_token, create_ticket_token
from docdesk.db.base import Base
from docdesk.main import app
from docdesk.models import *  # noqa: F401,F403
from docdesk.services.blob_store import StoredBlob
from docdesk.services.notifier import BackgroundDispatcher, TicketNotifications, build_template_environment
from docdesk.services.tickets import TicketService
from docdesk.services.uploads import AttachmentUploader


TEST_DB_URL = "sqlite+aiosqlite:///:memory:"
STAFF_EMAIL = "agent@example.com"


class FakeBlobStore:
    def __init__(self) -> None:
        self.uploads: list[dict] = []
        self.deleted: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()
        self.fail_delete: set[str] = set()

    async def upload(self, content: bytes, *, folder: str, filename: str) -> StoredBlob:
        if filename in self.fail_on:
            raise RuntimeError(f"upload rejected for {filename}")
        public_id = f"{folder}/{len(self.uploads) + 1}-{filename}"
        extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else None
        resource_type = "image" if extension in {"png", "jpg", "jpeg", "gif"} else "raw"
        self.uploads.append({"folder": folder, "filename": filename, "public_id": public_id, "bytes": len(content)})
        return StoredBlob(
            url=f"https://blobs.test/{public_id}",
            public_id=public_id,
            bytes=len(content),
            resource_type=resource_type,
            format=extension,
        )

    async def delete(self, public_id: str, *, resource_type: str = "image") -> None:
        if public_id in self.fail_delete:
            raise RuntimeError(f"delete rejected for {public_id}")
        self.deleted.append((public_id, resource_type))


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.succeed = True

    async def send_mail(self, to: str, subject: str, html: str) -> bool:
        self.sent.append({"to": to, "subject": subject, "html": html})
        return self.succeed


@pytest.fixture()
async def engine():
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture()
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def dispatcher() -> BackgroundDispatcher:
    return BackgroundDispatcher()


@pytest.fixture()
def uploader(blob_store: FakeBlobStore) -> AttachmentUploader:
    return AttachmentUploader(blob_store, base_folder="support-tickets", max_files=3, max_bytes=1024)


@pytest.fixture()
def notifications(notifier: FakeNotifier) -> TicketNotifications:
    return TicketNotifications(
        notifier,
        templates=build_template_environment(project_name="DocDesk Support", signature="Support Team"),
        app_base_url="http://docs.test",
        support_inbox="it-support@example.com",
        issue_ticket_token=create_ticket_token,
    )


@pytest.fixture()
def ticket_service(db_session, uploader, notifications, dispatcher) -> TicketService:
    return TicketService(db_session, uploader=uploader, notifications=notifications, dispatcher=dispatcher)


@pytest.fixture()
async def app_client(session_maker, blob_store, notifier, dispatcher):
    async def override_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[deps.get_db_session] = override_db
    app.dependency_overrides[deps.get_blob_store] = lambda: blob_store
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_dispatcher] = lambda: dispatcher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    await dispatcher.drain(timeout=5)
    app.dependency_overrides.clear()


@pytest.fixture()
def staff_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_staff_token(STAFF_EMAIL)}"}


@pytest.fixture()
def ticket_headers():
    def _build(ticket_id: UUID | str, email: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_ticket_token(ticket_id, email)}"}

    return _build
