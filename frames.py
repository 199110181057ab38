"""
Text conventions spoken by the chat server and their client-side classification.

The server frames carry no envelope: a message's kind is recognised by
marker substrings inside the payload. :func:`classify` maps that convention
onto :class:`MessageKind` so the rest of the client works with a tagged value.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional

# === Wire conventions ===

USER_LIST_REQUEST = "getConnectedUsers"
SYSTEM_MARKER = "SystemDisplay(System)"
SYSTEM_PREFIX = "SystemDisplay"  # stripped from system notices, "(System)" stays
USER_LIST_MARKER = "(System)ConnectedUserList:"
SELF_TAG_FORMAT = "({})"


class MessageKind(enum.Enum):
    PLAIN_BROADCAST = "broadcast"
    SELF_ECHO = "self"
    SYSTEM_NOTICE = "system"
    USER_LIST_REPLY = "user_list"


@dataclass(frozen=True)
class InboundMessage:
    kind: MessageKind
    text: str
    users: List[str] = field(default_factory=list)


def self_tag(identity: str) -> str:
    return SELF_TAG_FORMAT.format(identity)


def parse_user_list(payload: str) -> List[str]:
    """Strip the user-list marker and return the trimmed, non-empty names."""
    names = payload.replace(USER_LIST_MARKER, "", 1)
    return [name.strip() for name in names.split(",") if name.strip()]


def classify(payload: str, identity: Optional[str]) -> InboundMessage:
    """Classify one decoded frame.

    Checked in order: user list, echo of our own message, system notice;
    anything else is a plain broadcast. A user-list reply is always
    rendered as a list, even when one of the names is our own.
    """
    if USER_LIST_MARKER in payload:
        users = parse_user_list(payload)
        return InboundMessage(MessageKind.USER_LIST_REPLY, ", ".join(users), users)
    if identity and self_tag(identity) in payload:
        return InboundMessage(MessageKind.SELF_ECHO, payload)
    if SYSTEM_MARKER in payload:
        return InboundMessage(MessageKind.SYSTEM_NOTICE, payload.replace(SYSTEM_PREFIX, ""))
    return InboundMessage(MessageKind.PLAIN_BROADCAST, payload)
