from __future__ import annotations

from docdesk.core.enums import TicketStatus
from docdesk.services.senders import AdminSender, AnonymousSubmitter, Sender, UserSender


class TicketStatusMachine:
    """Status rules for support tickets.

    Explicit updates may set any status. Appending a message changes status in
    exactly one case: an admin reply to an open ticket moves it to
    in-progress. A user reply never reopens a closed ticket.
    """

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.OPEN

    @classmethod
    def after_append(cls, current: TicketStatus, sender: Sender) -> TicketStatus:
        if isinstance(sender, AdminSender):
            return TicketStatus.IN_PROGRESS if current == TicketStatus.OPEN else current
        if isinstance(sender, (UserSender, AnonymousSubmitter)):
            return current
        raise TypeError(f"Unknown sender type: {type(sender).__name__}")

    @classmethod
    def explicit(cls, requested: TicketStatus | str) -> TicketStatus:
        try:
            return TicketStatus(requested)
        except ValueError as exc:
            raise ValueError(f"Invalid ticket status: {requested!s}") from exc

    @classmethod
    def accepts_replies(cls, status: TicketStatus) -> bool:
        # Advisory for UIs; the store accepts appends in every state.
        return status != TicketStatus.CLOSED
