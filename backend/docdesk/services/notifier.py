from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Coroutine
from email.message import EmailMessage
from typing import Any, Protocol

import aiosmtplib
from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

from docdesk.core.config import MailerConfig
from docdesk.core.exceptions import NotificationError
from docdesk.schemas.ticket import TicketRead
from docdesk.services.envelope import MessageEnvelope, summarize_for_email

logger = logging.getLogger(__name__)

_LINE_BREAKS = re.compile(r"[\r\n]+")


def header_text(value: str) -> str:
    """Collapse line breaks so user text can be placed in a mail header."""
    return " ".join(_LINE_BREAKS.sub(" ", value).split())


class Notifier(Protocol):
    async def send_mail(self, to: str, subject: str, html: str) -> bool: ...


class SmtpNotifier:
    """Sends HTML mail over SMTP. Never raises; returns ``False`` on failure."""

    def __init__(self, config: MailerConfig) -> None:
        self.config = config

    def _build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.config.from_address
        message["To"] = to
        message["Subject"] = header_text(subject)
        if self.config.reply_to:
            message["Reply-To"] = self.config.reply_to
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")
        return message

    async def send_mail(self, to: str, subject: str, html: str) -> bool:
        config = self.config
        if not config.configured:
            logger.warning("Mailer is not configured; skipping mail to %s", to)
            return False
        try:
            message = self._build_message(to, subject, html)
        except ValueError as exc:
            logger.error("Refusing to send malformed mail to %r: %s", to, exc)
            return False
        try:
            await aiosmtplib.send(
                message,
                hostname=config.host,
                port=config.port,
                username=config.username or None,
                password=config.password or None,
                use_tls=config.use_ssl,
                start_tls=config.starttls and not config.use_ssl,
                timeout=config.timeout_sec,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send mail to %s (%s): %s", to, subject, exc)
            return False
        logger.info("Mail sent to %s (%s)", to, subject)
        return True


def build_template_environment(*, project_name: str, signature: str) -> Environment:
    env = Environment(
        loader=PackageLoader("docdesk", "templates"),
        autoescape=select_autoescape(["html"]),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.globals.update(project_name=project_name, signature=signature)
    return env


class TicketNotifications:
    """Composes ticket emails and hands them to a ``Notifier``.

    Methods raise ``NotificationError`` when a send reports failure; they are
    meant to run under ``BackgroundDispatcher`` which logs and drops the error.
    """

    def __init__(
        self,
        notifier: Notifier,
        *,
        templates: Environment,
        app_base_url: str,
        support_inbox: str | None,
        issue_ticket_token: Callable[[str, str], str],
    ) -> None:
        self.notifier = notifier
        self.templates = templates
        self.app_base_url = app_base_url.rstrip("/")
        self.support_inbox = support_inbox or None
        self.issue_ticket_token = issue_ticket_token

    def ticket_link(self, ticket: TicketRead) -> str:
        token = self.issue_ticket_token(ticket.id, ticket.user_email)
        return f"{self.app_base_url}/support/tickets/{token}"

    def admin_link(self, ticket: TicketRead) -> str:
        return f"{self.app_base_url}/admin/tickets/{ticket.id}"

    def _render(self, name: str, **context: Any) -> str:
        return self.templates.get_template(f"email/{name}").render(**context)

    async def _send(self, to: str, subject: str, html: str) -> None:
        sent = await self.notifier.send_mail(to, subject, html)
        if not sent:
            raise NotificationError(f"Mail to {to} was not delivered: {subject}")

    async def ticket_created(self, ticket: TicketRead) -> None:
        failures: list[str] = []
        html = self._render("ticket_created.html", ticket=ticket, ticket_link=self.ticket_link(ticket))
        if not await self.notifier.send_mail(ticket.user_email, f"Support Ticket Received: {header_text(ticket.title)}", html):
            failures.append(ticket.user_email)

        if self.support_inbox:
            html = self._render("ticket_created_inbox.html", ticket=ticket, admin_link=self.admin_link(ticket))
            subject = f"[Support Ticket #{ticket.id}] New Anonymous Ticket: {header_text(ticket.title)}"
            if not await self.notifier.send_mail(self.support_inbox, subject, html):
                failures.append(self.support_inbox)
        else:
            logger.warning("Support inbox is not configured; skipping staff notice for ticket %s", ticket.id)

        if failures:
            raise NotificationError(f"Ticket {ticket.id} notifications failed for {', '.join(failures)}")

    async def admin_replied(self, ticket: TicketRead, envelope: MessageEnvelope) -> None:
        html = self._render(
            "admin_reply.html",
            ticket=ticket,
            message_text=summarize_for_email(envelope),
            has_attachments=envelope.has_attachments,
            ticket_link=self.ticket_link(ticket),
        )
        subject = f"Re:[Ticket #{ticket.id[:8]}] {header_text(ticket.title) or 'Update'}"
        await self._send(ticket.user_email, subject, html)


class BackgroundDispatcher:
    """Owns detached tasks so the event loop cannot garbage-collect them.

    Failures are logged here and go nowhere else. ``drain`` waits for pending
    tasks with a bounded timeout and cancels whatever is left.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, NotificationError):
            logger.warning("Notification failed in %s: %s", task.get_name(), exc)
        else:
            logger.error("Background task %s failed", task.get_name(), exc_info=exc)

    async def drain(self, timeout: float | None = None) -> None:
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled %d background task(s) still pending at drain", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
