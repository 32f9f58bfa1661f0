from enum import Enum


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    CLOSED = "closed"


class SenderRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class SenderKind(str, Enum):
    ADMIN = "admin"
    USER = "user"
    ANONYMOUS = "anonymous"
