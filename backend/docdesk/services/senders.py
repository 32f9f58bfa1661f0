from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from docdesk.core.enums import SenderKind


@dataclass(frozen=True)
class AdminSender:
    identifier: str


@dataclass(frozen=True)
class UserSender:
    email: str


@dataclass(frozen=True)
class AnonymousSubmitter:
    name: str
    email: str | None = None


Sender = Union[AdminSender, UserSender, AnonymousSubmitter]


def sender_kind(sender: Sender) -> SenderKind:
    if isinstance(sender, AdminSender):
        return SenderKind.ADMIN
    if isinstance(sender, UserSender):
        return SenderKind.USER
    if isinstance(sender, AnonymousSubmitter):
        return SenderKind.ANONYMOUS
    raise TypeError(f"Unknown sender type: {type(sender).__name__}")


def sender_wire_value(sender: Sender) -> str:
    if isinstance(sender, AdminSender):
        return "admin"
    if isinstance(sender, UserSender):
        return "user"
    if isinstance(sender, AnonymousSubmitter):
        return sender.name
    raise TypeError(f"Unknown sender type: {type(sender).__name__}")


def sender_audit_info(sender: Sender) -> str | None:
    if isinstance(sender, AdminSender):
        return sender.identifier
    if isinstance(sender, UserSender):
        return sender.email
    if isinstance(sender, AnonymousSubmitter):
        return sender.email
    raise TypeError(f"Unknown sender type: {type(sender).__name__}")
