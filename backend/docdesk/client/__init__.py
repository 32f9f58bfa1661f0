from docdesk.client.api import SupportApiClient, TicketClientError
from docdesk.client.render import RenderedMessage, render_message, render_messages
from docdesk.client.sync import ConversationSync, ReplyDraft

__all__ = [
    "SupportApiClient",
    "TicketClientError",
    "ConversationSync",
    "ReplyDraft",
    "RenderedMessage",
    "render_message",
    "render_messages",
]
