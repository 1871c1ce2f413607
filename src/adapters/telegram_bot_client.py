"""Telethon adapters for outbound messages and membership checks.

Updates arrive through the webhook; Telethon, logged in as the bot, handles
text messages, edits, callback answers and membership checks. Telethon cannot
resolve current Bot API file ids, so media goes out through the Bot API.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from telethon import Button, errors, functions

from adapters.bot_api import BotAPIClient
from core.models import ForwardedChat, InlineButton, Keyboard, OutboundMessage

LOGGER = logging.getLogger(__name__)

PARSE_MODE = "html"


def build_buttons(keyboard: Keyboard) -> Optional[List[list]]:
    """Translate core keyboards into Telethon buttons."""

    if not keyboard:
        return None
    rows: List[list] = []
    for row in keyboard:
        rows.append([_button(item) for item in row])
    return rows


def _button(item: InlineButton):
    if item.url:
        return Button.url(item.text, item.url)
    return Button.inline(item.text, data=(item.data or "").encode("utf-8"))


class TelethonMessenger:
    """MessengerPort over a connected Telethon bot client."""

    def __init__(self, client, bot_api: BotAPIClient) -> None:
        self._client = client
        self._bot_api = bot_api

    async def deliver(self, message: OutboundMessage) -> None:
        if message.media is not None:
            await self._bot_api.send_media(
                message.chat_id,
                message.media,
                caption=message.text or None,
                keyboard=message.keyboard,
                reply_to=message.reply_to,
            )
            return

        buttons = build_buttons(message.keyboard)

        if message.edit_message_id is not None:
            try:
                await self._client.edit_message(
                    message.chat_id,
                    message.edit_message_id,
                    message.text,
                    parse_mode=PARSE_MODE,
                    buttons=buttons,
                    link_preview=False,
                )
            except errors.MessageNotModifiedError:
                # Refresh with identical content; nothing to do.
                LOGGER.debug("Message %s not modified", message.edit_message_id)
            return

        await self._client.send_message(
            message.chat_id,
            message.text,
            parse_mode=PARSE_MODE,
            buttons=buttons,
            reply_to=message.reply_to,
            link_preview=False,
        )

    async def answer_callback(self, callback_id: str, text: Optional[str] = None, alert: bool = False) -> None:
        await self._client(
            functions.messages.SetBotCallbackAnswerRequest(
                query_id=int(callback_id),
                cache_time=0,
                alert=alert,
                message=text,
            )
        )


class TelethonMembership:
    """MembershipPort asking Telegram on every call; results are never cached."""

    def __init__(self, client) -> None:
        self._client = client

    async def is_member(self, user_id: int, chat_telegram_id: int) -> bool:
        try:
            permissions = await self._client.get_permissions(chat_telegram_id, user_id)
        except errors.UserNotParticipantError:
            return False
        return not (permissions.has_left or permissions.is_banned)

    async def is_bot_admin(self, chat: ForwardedChat) -> bool:
        try:
            permissions = await self._client.get_permissions(chat.id, "me")
        except (errors.ChannelPrivateError, errors.UserNotParticipantError, errors.ChatAdminRequiredError):
            return False
        return bool(permissions.is_admin)
