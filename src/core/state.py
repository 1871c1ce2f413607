"""Per-user session states for multi-step flows."""

from __future__ import annotations

from datetime import timedelta
from enum import Enum


class SessionState(str, Enum):
    """Closed set of flow markers. Absence of a state means no flow.

    Every member needs a handler in the router's state table; the router
    refuses to start otherwise.
    """

    AWAITING_CHAT_CONNECT = "settings:channels-and-chats:connect"


DEFAULT_STATE_TTL = timedelta(minutes=10)
