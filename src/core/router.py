"""Update routing (core domain).

Routing order for a single update:
1) Channel post with a new title -> rename handler
2) Message -> pending session state, then command table, then media kind
3) Callback query -> first matching callback pattern

Exactly one handler runs per update. Handler errors propagate unchanged to the
caller, which reports them; nothing is retried here.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from core.callbacks import CallbackTable, build_default_table
from core.errors import AuthError
from core.handlers import BotHandlers
from core.models import FileKind, Message, Update, User
from core.ports import SessionStorePort
from core.state import SessionState

LOGGER = logging.getLogger(__name__)

MessageHandler = Callable[[User, Message], Awaitable[Any]]


def detect_kind(msg: Message) -> FileKind:
    if msg.media is None:
        return FileKind.UNKNOWN
    return msg.media.kind


class UpdateRouter:
    """Classifies updates and hands each to exactly one handler."""

    def __init__(
        self,
        handlers: BotHandlers,
        state: SessionStorePort,
        callback_table: Optional[CallbackTable] = None,
    ) -> None:
        self._handlers = handlers
        self._state = state
        self._callbacks = callback_table or build_default_table(handlers)
        self._commands: Mapping[str, MessageHandler] = handlers.command_table()
        self._state_handlers: Mapping[SessionState, MessageHandler] = handlers.state_table()

        missing = set(SessionState) - set(self._state_handlers)
        if missing:
            names = ", ".join(sorted(state.name for state in missing))
            raise ValueError(f"no handler for session state(s): {names}")

    @property
    def callbacks(self) -> CallbackTable:
        return self._callbacks

    async def dispatch(self, update: Update, user: Optional[User]) -> None:
        if update.channel_post is not None:
            if update.channel_post.new_chat_title:
                await self._handlers.on_chat_new_title(update.channel_post)
            return

        if user is None:
            raise AuthError(f"update {update.update_id} has no resolvable sender")

        if update.message is not None:
            await self._dispatch_message(update.message, user)
            return

        if update.callback_query is not None:
            cbq = update.callback_query
            match = self._callbacks.match(cbq.data)
            if match is None:
                # Stale buttons from old messages are expected; drop quietly.
                LOGGER.debug("No callback pattern for %r (user %s)", cbq.data, user.id)
                return
            LOGGER.debug("Callback %r -> %s%s", cbq.data, match.pattern.name, match.params)
            await match.pattern.handler(user, cbq, *match.params)

    async def _dispatch_message(self, msg: Message, user: User) -> None:
        pending = self._state.get(user.id)
        if pending is not None:
            await self._state_handlers[pending](user, msg)
            return

        command = msg.command()
        if command is not None and command in self._commands:
            await self._commands[command](user, msg)
            return

        if detect_kind(msg) is not FileKind.UNKNOWN:
            await self._handlers.on_file(user, msg)
            return

        await self._handlers.on_unsupported_kind(user, msg)
