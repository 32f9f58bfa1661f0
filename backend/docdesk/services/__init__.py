from docdesk.services.authorizer import Principal, StaffTokenVerifier, TicketAuthorizer
from docdesk.services.notifier import BackgroundDispatcher, SmtpNotifier, TicketNotifications
from docdesk.services.tickets import TicketService
from docdesk.services.uploads import AttachmentUploader, UploadItem

__all__ = [
    "AttachmentUploader",
    "BackgroundDispatcher",
    "Principal",
    "SmtpNotifier",
    "StaffTokenVerifier",
    "TicketAuthorizer",
    "TicketNotifications",
    "TicketService",
    "UploadItem",
]
