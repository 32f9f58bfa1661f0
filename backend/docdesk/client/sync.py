"""Polling synchronisation for an open conversation view.

A ``ConversationSync`` starts from a snapshot the caller already has, polls the
ticket endpoint on a fixed interval and replaces its copy only when
``updated_at`` moves forward. The reply draft is owned by the view and is never
touched by a poll; it is cleared only after a successful send.

Polling runs as one task per view. It ends when the context manager exits or
when the ticket becomes ``closed``; a closed ticket also refuses new replies.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from docdesk.client.api import SupportApiClient, TicketClientError
from docdesk.client.render import RenderedMessage, render_messages
from docdesk.core.config import get_settings
from docdesk.core.enums import TicketStatus
from docdesk.services.ticket_state import TicketStatusMachine

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[dict[str, Any]], None]
MessagesCallback = Callable[[list[RenderedMessage]], None]
AuthLostCallback = Callable[[TicketClientError], None]


@dataclass
class ReplyDraft:
    text: str = ""
    files: list[tuple[str, bytes, str | None]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.files

    def clear(self) -> None:
        self.text = ""
        self.files = []


def _message_ids(snapshot: dict[str, Any]) -> list[str]:
    return [str(item.get("id")) for item in snapshot.get("messages") or [] if isinstance(item, dict)]


def _parse_updated_at(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class ConversationSync:
    def __init__(
        self,
        client: SupportApiClient,
        ticket_id: str,
        initial_snapshot: dict[str, Any],
        *,
        poll_interval: float | None = None,
        on_snapshot: SnapshotCallback | None = None,
        on_messages_changed: MessagesCallback | None = None,
        on_auth_lost: AuthLostCallback | None = None,
    ) -> None:
        self.client = client
        self.ticket_id = ticket_id
        self.poll_interval = poll_interval if poll_interval is not None else get_settings().poll_interval_sec
        self.on_snapshot = on_snapshot
        self.on_messages_changed = on_messages_changed
        self.on_auth_lost = on_auth_lost

        self.ticket: dict[str, Any] = initial_snapshot
        self.draft = ReplyDraft()
        self._last_updated_at = initial_snapshot.get("updated_at")
        self._message_ids = _message_ids(initial_snapshot)
        self._task: asyncio.Task | None = None

    @property
    def messages(self) -> list[RenderedMessage]:
        return render_messages(self.ticket)

    @property
    def is_closed(self) -> bool:
        return self.ticket.get("status") == TicketStatus.CLOSED.value

    @property
    def can_reply(self) -> bool:
        try:
            status = TicketStatus(self.ticket.get("status"))
        except ValueError:
            return True
        return TicketStatusMachine.accepts_replies(status)

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def _is_newer(self, updated_at: Any) -> bool:
        if updated_at == self._last_updated_at:
            return False
        incoming = _parse_updated_at(updated_at)
        current = _parse_updated_at(self._last_updated_at)
        if incoming is None or current is None:
            return True
        return incoming > current

    def apply_snapshot(self, snapshot: dict[str, Any], *, force: bool = False) -> bool:
        """Replace the local ticket if ``updated_at`` moved forward. Returns whether it did.

        A poll that was in flight while a reply was sent can resolve with an
        older snapshot; it is dropped instead of hiding the new message.
        """
        if not force and not self._is_newer(snapshot.get("updated_at")):
            return False

        self.ticket = snapshot
        self._last_updated_at = snapshot.get("updated_at")
        if self.on_snapshot is not None:
            self.on_snapshot(snapshot)

        # Header-only changes (a status edit) must not scroll the view.
        message_ids = _message_ids(snapshot)
        if message_ids != self._message_ids:
            self._message_ids = message_ids
            if self.on_messages_changed is not None:
                self.on_messages_changed(render_messages(snapshot))
        return True

    async def poll_once(self) -> bool:
        try:
            snapshot = await self.client.get_ticket(self.ticket_id)
        except TicketClientError as exc:
            if exc.auth_failed:
                logger.warning("Ticket %s poll rejected (%s): %s", self.ticket_id, exc.status_code, exc.message)
                if self.on_auth_lost is not None:
                    self.on_auth_lost(exc)
            else:
                logger.warning("Ticket %s poll failed: %s", self.ticket_id, exc.message)
            return False
        return self.apply_snapshot(snapshot)

    async def _run(self) -> None:
        logger.info("Polling ticket %s every %.1fs", self.ticket_id, self.poll_interval)
        while not self.is_closed:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Ticket %s poll iteration failed", self.ticket_id)
        logger.info("Ticket %s is closed; polling stopped", self.ticket_id)

    def start(self) -> None:
        if self.is_closed or self.is_polling:
            return
        self._task = asyncio.create_task(self._run(), name=f"ticket-sync:{self.ticket_id}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def __aenter__(self) -> "ConversationSync":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def send(self) -> dict[str, Any]:
        if self.draft.is_empty:
            raise ValueError("Message content or files are required")
        if not self.can_reply:
            raise ValueError("This ticket is closed")
        try:
            snapshot = await self.client.post_message(self.ticket_id, self.draft.text.strip(), self.draft.files)
        except TicketClientError as exc:
            logger.error("Sending reply to ticket %s failed: %s", self.ticket_id, exc.message)
            raise

        self.draft.clear()
        self.apply_snapshot(snapshot, force=True)
        if self.is_closed:
            await self.stop()
        return snapshot
