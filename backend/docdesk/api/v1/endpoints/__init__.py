from docdesk.api.v1.endpoints import admin_tickets, tickets

__all__ = [
    "tickets",
    "admin_tickets",
]
