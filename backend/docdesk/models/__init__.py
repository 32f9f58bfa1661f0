from docdesk.models.ticket import SupportTicket
from docdesk.models.ticket_message import SupportTicketMessage

__all__ = [
    "SupportTicket",
    "SupportTicketMessage",
]
