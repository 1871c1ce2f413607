"""Command, content and callback handlers.

Handlers receive the resolved user explicitly and talk to the platform only
through the MessengerPort. Each one renders a single response.
"""

from __future__ import annotations

import functools
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

from core.access import AccessControl, Deliver, FileDeliveryResult, Gated, NotFound, Owned
from core.errors import ChatConnectError, NotFoundError
from core.models import CallbackQuery, Message, OutboundMessage, User
from core.ports import MessengerPort, SessionStorePort
from core.rendering import TEXT_STILL_NOT_MEMBER, Renderer
from core.services import AdminService, AuthService, ChatService, FileService
from core.state import DEFAULT_STATE_TTL, SessionState

LOGGER = logging.getLogger(__name__)

REFERRAL_DEEP_LINK_PREFIX = "ref_"

CallbackHandler = Callable[..., Awaitable[None]]


def _callback_chat_id(user: User, cbq: CallbackQuery) -> int:
    return cbq.chat_id if cbq.chat_id is not None else user.id


def renders_not_found(handler: CallbackHandler) -> CallbackHandler:
    """Turn NotFound errors of a callback handler into a friendly edit."""

    @functools.wraps(handler)
    async def wrapper(self: "BotHandlers", user: User, cbq: CallbackQuery, *params: int) -> None:
        try:
            await handler(self, user, cbq, *params)
        except NotFoundError as exc:
            LOGGER.debug("Callback %r refers to a missing entity: %s", cbq.data, exc)
            await self._messenger.answer_callback(cbq.id)
            await self._messenger.deliver(
                self._renderer.file_not_found(_callback_chat_id(user, cbq), edit_message_id=cbq.message_id)
            )

    return wrapper


class BotHandlers:
    """All bot reactions, grouped by entry point."""

    def __init__(
        self,
        auth: AuthService,
        files: FileService,
        chats: ChatService,
        admin: AdminService,
        access: AccessControl,
        state: SessionStorePort,
        messenger: MessengerPort,
        renderer: Renderer,
        state_ttl: timedelta = DEFAULT_STATE_TTL,
    ) -> None:
        self._auth = auth
        self._files = files
        self._chats = chats
        self._admin = admin
        self._access = access
        self._state = state
        self._messenger = messenger
        self._renderer = renderer
        self._state_ttl = state_ttl

    async def _send(self, message: OutboundMessage) -> None:
        await self._messenger.deliver(message)

    async def _send_result(
        self,
        user: User,
        chat_id: int,
        result: FileDeliveryResult,
        edit_message_id: Optional[int] = None,
    ) -> None:
        if isinstance(result, NotFound):
            await self._send(self._renderer.file_not_found(chat_id, edit_message_id=edit_message_id))
        elif isinstance(result, Owned):
            await self._send(
                self._renderer.owned_file(chat_id, result.file, result.stats, edit_message_id=edit_message_id)
            )
        elif isinstance(result, Gated):
            await self._send(self._renderer.gated(chat_id, result, edit_message_id=edit_message_id))
        elif isinstance(result, Deliver):
            await self._send(self._renderer.delivery(chat_id, result.file))
            self._files.register_download(result.file, user)
        else:
            raise TypeError(f"unexpected delivery result {result!r}")

    # Commands ---------------------------------------------------------------

    async def on_start(self, user: User, msg: Message) -> None:
        args = msg.command_arguments()
        if args and not args.startswith(REFERRAL_DEEP_LINK_PREFIX):
            LOGGER.debug("Query file %s for %s", args, user.id)
            result = await self._access.resolve_file(args, user)
            await self._send_result(user, msg.chat_id, result)
            return
        await self._send(self._renderer.start(msg.chat_id))

    async def on_help(self, user: User, msg: Message) -> None:
        await self._send(self._renderer.help(msg.chat_id))

    async def on_version(self, user: User, msg: Message) -> None:
        await self._send(self._renderer.version(msg.chat_id, reply_to=msg.message_id))

    async def on_admin(self, user: User, msg: Message) -> None:
        if not user.is_admin:
            await self._send(self._renderer.help(msg.chat_id))
            return
        await self._send(self._renderer.admin(msg.chat_id, self._admin.stats()))

    async def on_settings(self, user: User, msg: Message) -> None:
        await self._send(self._renderer.settings(msg.chat_id, user))

    # Content ----------------------------------------------------------------

    async def on_file(self, user: User, msg: Message) -> None:
        file = self._files.add_file(user, msg)
        stats = self._files.stats(file)
        await self._send(self._renderer.owned_file(msg.chat_id, file, stats, reply_to=msg.message_id))

    async def on_unsupported_kind(self, user: User, msg: Message) -> None:
        await self._send(self._renderer.unsupported_kind(msg.chat_id, reply_to=msg.message_id))

    async def on_chat_new_title(self, post: Message) -> None:
        renamed = self._chats.rename(post.chat_id, post.new_chat_title or "")
        LOGGER.info("Chat %s renamed to %r (%s records)", post.chat_id, post.new_chat_title, renamed)

    # Session flows ----------------------------------------------------------

    async def on_chat_connect_state(self, user: User, msg: Message) -> None:
        try:
            chat = await self._chats.connect(user, msg)
        except ChatConnectError as exc:
            reply = self._renderer.chat_connect_failed(msg.chat_id, exc)
        else:
            reply = self._renderer.chat_connected(msg.chat_id, chat)
        finally:
            self._state.clear(user.id)
        await self._send(reply)

    # File callbacks ---------------------------------------------------------

    @renders_not_found
    async def on_file_restrictions_chat_check(self, user: User, cbq: CallbackQuery, file_id: int) -> None:
        chat_id = _callback_chat_id(user, cbq)
        result = await self._access.recheck_file(file_id, user)
        if isinstance(result, Gated):
            await self._messenger.answer_callback(cbq.id, TEXT_STILL_NOT_MEMBER, alert=True)
            return
        await self._messenger.answer_callback(cbq.id)
        # The file goes out as a new message; the gate message stays as-is.
        edit_message_id = None if isinstance(result, Deliver) else cbq.message_id
        await self._send_result(user, chat_id, result, edit_message_id=edit_message_id)

    @renders_not_found
    async def on_file_refresh(self, user: User, cbq: CallbackQuery, file_id: int) -> None:
        file = self._files.get_owned(user, file_id)
        await self._messenger.answer_callback(cbq.id)
        await self._send(
            self._renderer.owned_file(
                _callback_chat_id(user, cbq), file, self._files.stats(file), edit_message_id=cbq.message_id
            )
        )

    @renders_not_found
    async def on_file_delete(self, user: User, cbq: CallbackQuery, file_id: int) -> None:
        file = self._files.get_owned(user, file_id)
        await self._messenger.answer_callback(cbq.id)
        await self._send(self._renderer.file_delete_confirm(_callback_chat_id(user, cbq), file, cbq.message_id))

    async def on_file_delete_confirm(self, user: User, cbq: CallbackQuery, file_id: int) -> None:
        # Deleting twice is fine: the second call finds nothing and still reports success.
        self._files.delete(user, file_id)
        await self._messenger.answer_callback(cbq.id)
        await self._send(self._renderer.file_deleted(_callback_chat_id(user, cbq), cbq.message_id))

    @renders_not_found
    async def on_file_restrictions(self, user: User, cbq: CallbackQuery, file_id: int) -> None:
        file = self._files.get_owned(user, file_id)
        await self._messenger.answer_callback(cbq.id)
        await self._send(
            self._renderer.file_restrictions(
                _callback_chat_id(user, cbq), file, self._chats.list(user), cbq.message_id
            )
        )

    @renders_not_found
    async def on_file_restrictions_chat_toggle(
        self, user: User, cbq: CallbackQuery, file_id: int, chat_id: int
    ) -> None:
        file = self._files.toggle_chat_restriction(user, file_id, chat_id)
        await self._messenger.answer_callback(cbq.id)
        await self._send(
            self._renderer.file_restrictions(
                _callback_chat_id(user, cbq), file, self._chats.list(user), cbq.message_id
            )
        )

    # Settings callbacks -----------------------------------------------------

    async def on_settings_menu(self, user: User, cbq: CallbackQuery) -> None:
        await self._messenger.answer_callback(cbq.id)
        await self._send(self._renderer.settings(_callback_chat_id(user, cbq), user, cbq.message_id))

    async def on_settings_toggle_long_ids(self, user: User, cbq: CallbackQuery) -> None:
        user = self._auth.toggle_long_ids(user)
        await self._messenger.answer_callback(cbq.id)
        await self._send(self._renderer.settings(_callback_chat_id(user, cbq), user, cbq.message_id))

    async def on_settings_chats(self, user: User, cbq: CallbackQuery) -> None:
        await self._messenger.answer_callback(cbq.id)
        await self._send(
            self._renderer.chats(_callback_chat_id(user, cbq), self._chats.list(user), cbq.message_id)
        )

    async def on_settings_chats_connect(self, user: User, cbq: CallbackQuery) -> None:
        self._state.set(user.id, SessionState.AWAITING_CHAT_CONNECT, self._state_ttl)
        await self._messenger.answer_callback(cbq.id)
        await self._send(self._renderer.chat_connect_prompt(_callback_chat_id(user, cbq), cbq.message_id))

    @renders_not_found
    async def on_settings_chat_details(self, user: User, cbq: CallbackQuery, chat_id: int) -> None:
        chat = self._chats.get(user, chat_id)
        await self._messenger.answer_callback(cbq.id)
        await self._send(self._renderer.chat_details(_callback_chat_id(user, cbq), chat, cbq.message_id))

    @renders_not_found
    async def on_settings_chat_delete(self, user: User, cbq: CallbackQuery, chat_id: int) -> None:
        chat = self._chats.get(user, chat_id)
        await self._messenger.answer_callback(cbq.id)
        await self._send(self._renderer.chat_delete_confirm(_callback_chat_id(user, cbq), chat, cbq.message_id))

    async def on_settings_chat_delete_confirm(self, user: User, cbq: CallbackQuery, chat_id: int) -> None:
        self._chats.delete(user, chat_id)
        await self._messenger.answer_callback(cbq.id)
        await self._send(
            self._renderer.chats(_callback_chat_id(user, cbq), self._chats.list(user), cbq.message_id)
        )

    def state_table(self) -> dict[SessionState, Callable[[User, Message], Awaitable[Any]]]:
        return {SessionState.AWAITING_CHAT_CONNECT: self.on_chat_connect_state}

    def command_table(self) -> dict[str, Callable[[User, Message], Awaitable[Any]]]:
        return {
            "start": self.on_start,
            "help": self.on_help,
            "admin": self.on_admin,
            "settings": self.on_settings,
            "version": self.on_version,
        }
