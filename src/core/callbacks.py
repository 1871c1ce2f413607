"""Callback payload matching (core domain).

The table is an ordered list of patterns evaluated top-down; the first entry
whose expression is found in the payload wins. Anchoring lives in the
expression itself, so an unanchored entry matches as a substring and can
shadow later entries. Callers must order entries from most specific to least
specific.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from core.errors import MalformedCallbackParameter

LOGGER = logging.getLogger(__name__)

# Payload prefixes shared with the renderer so buttons and patterns agree.
SETTINGS = "settings"
SETTINGS_LONG_IDS = "settings:long-ids"
SETTINGS_CHATS = "settings:channels-and-chats"
SETTINGS_CHATS_CONNECT = "settings:channels-and-chats:connect"


@dataclass(frozen=True)
class CallbackPattern:
    """One table entry: name, compiled expression, bound handler."""

    name: str
    expression: re.Pattern
    handler: Callable[..., Any]

    @property
    def anchored(self) -> bool:
        raw = self.expression.pattern
        return raw.startswith("^") and raw.endswith("$")

    def extract(self, data: str) -> Optional[Tuple[int, ...]]:
        """Return integer params when the payload matches, else None."""

        found = self.expression.search(data)
        if found is None:
            return None
        params = []
        for value in found.groups():
            try:
                params.append(int(value))
            except (TypeError, ValueError) as exc:
                raise MalformedCallbackParameter(self.name, str(value)) from exc
        return tuple(params)


@dataclass(frozen=True)
class CallbackMatch:
    pattern: CallbackPattern
    params: Tuple[int, ...]


def pattern(name: str, expression: str, handler: Callable[..., Any]) -> CallbackPattern:
    # re.ASCII keeps \d to 0-9 so captures always fit int().
    return CallbackPattern(name=name, expression=re.compile(expression, re.ASCII), handler=handler)


class CallbackTable:
    """Ordered first-match table of callback patterns."""

    def __init__(self, patterns: Iterable[CallbackPattern]) -> None:
        self._patterns: List[CallbackPattern] = list(patterns)
        names = [entry.name for entry in self._patterns]
        if len(names) != len(set(names)):
            raise ValueError("callback pattern names must be unique")

    @property
    def patterns(self) -> Sequence[CallbackPattern]:
        return tuple(self._patterns)

    def names(self) -> List[str]:
        return [entry.name for entry in self._patterns]

    def match(self, data: str) -> Optional[CallbackMatch]:
        """Return the first matching entry with its params.

        Raises MalformedCallbackParameter when the first matching entry
        captures something that is not an integer; later entries are not
        consulted in that case.
        """

        for entry in self._patterns:
            params = entry.extract(data)
            if params is not None:
                return CallbackMatch(pattern=entry, params=params)
        return None


def build_default_table(handlers: Any) -> CallbackTable:
    """Bind the bot's callback grammar to handler methods.

    `handlers` must provide the on_* coroutine methods named below. The
    chat-subscription toggle entry is deliberately unanchored: menus append
    variable suffixes to it and rely on substring matching.
    """

    return CallbackTable(
        [
            pattern(
                "file-restrictions-chat-check",
                r"^file:(\d+):restrictions:chat:check$",
                handlers.on_file_restrictions_chat_check,
            ),
            pattern("file-refresh", r"^file:(\d+):refresh$", handlers.on_file_refresh),
            pattern("file-delete", r"^file:(\d+):delete$", handlers.on_file_delete),
            pattern(
                "file-delete-confirm",
                r"^file:(\d+):delete:confirm$",
                handlers.on_file_delete_confirm,
            ),
            pattern("file-restrictions", r"^file:(\d+):restrictions$", handlers.on_file_restrictions),
            pattern(
                "file-restrictions-chat-toggle",
                r"file:(\d+):restrictions:chat-subscription:(\d+):toggl",
                handlers.on_file_restrictions_chat_toggle,
            ),
            pattern("settings", rf"^{SETTINGS}$", handlers.on_settings_menu),
            pattern("settings-long-ids", rf"^{SETTINGS_LONG_IDS}$", handlers.on_settings_toggle_long_ids),
            pattern("settings-chats", rf"^{SETTINGS_CHATS}$", handlers.on_settings_chats),
            pattern(
                "settings-chats-connect",
                rf"^{SETTINGS_CHATS_CONNECT}$",
                handlers.on_settings_chats_connect,
            ),
            pattern(
                "settings-chat-details",
                rf"^{SETTINGS_CHATS}:(\d+)$",
                handlers.on_settings_chat_details,
            ),
            pattern(
                "settings-chat-delete",
                rf"^{SETTINGS_CHATS}:(\d+):delete$",
                handlers.on_settings_chat_delete,
            ),
            pattern(
                "settings-chat-delete-confirm",
                rf"^{SETTINGS_CHATS}:(\d+):delete:confirm$",
                handlers.on_settings_chat_delete_confirm,
            ),
        ]
    )


# Payload builders used by the renderer.


def file_refresh(file_id: int) -> str:
    return f"file:{file_id}:refresh"


def file_delete(file_id: int) -> str:
    return f"file:{file_id}:delete"


def file_delete_confirm(file_id: int) -> str:
    return f"file:{file_id}:delete:confirm"


def file_restrictions(file_id: int) -> str:
    return f"file:{file_id}:restrictions"


def file_restrictions_chat_toggle(file_id: int, chat_id: int) -> str:
    return f"file:{file_id}:restrictions:chat-subscription:{chat_id}:toggle"


def file_restrictions_chat_check(file_id: int) -> str:
    return f"file:{file_id}:restrictions:chat:check"


def settings_chat_details(chat_id: int) -> str:
    return f"{SETTINGS_CHATS}:{chat_id}"


def settings_chat_delete(chat_id: int) -> str:
    return f"{SETTINGS_CHATS}:{chat_id}:delete"


def settings_chat_delete_confirm(chat_id: int) -> str:
    return f"{SETTINGS_CHATS}:{chat_id}:delete:confirm"
