"""Response rendering.

Keeping every user-visible string here prevents drift between handlers.
Texts are HTML (Telegram subset); user-provided values are escaped.
"""

from __future__ import annotations

import html
from typing import List, Optional, Sequence

from core import callbacks
from core.access import Gated
from core.errors import BotIsNotAdmin, ChatAlreadyConnected, ChatConnectError
from core.models import (
    AdminStats,
    Chat,
    File,
    FileStats,
    InlineButton,
    Keyboard,
    Media,
    OutboundMessage,
    User,
)

TEXT_HELP = (
    "I help you share any media file (photos, videos, documents, audio, voice) "
    "with the subscribers of your channel. Send me one of these files and I will "
    "reply with a link. Add a caption so people remember who shared it.\n\n"
    "/settings - fine-tune the bot"
)
TEXT_START = "Hi! 👋\n\n" + TEXT_HELP
TEXT_UNSUPPORTED_KIND = (
    "Sorry, I don't support this kind of file. Right now I work with documents, "
    "videos, photos, audio and voice messages. Send or forward one of those and "
    "I will reply with a link."
)
TEXT_FILE_NOT_FOUND = "😐 I don't know anything about this file, check the link..."
TEXT_FILE_DELETED = "🗑 File deleted, the link no longer works."
TEXT_CONNECT_PROMPT = (
    "To connect a channel or chat:\n"
    "1. Add me as an administrator there.\n"
    "2. Forward any post from it to me.\n\n"
    "I will wait for the forwarded message for a few minutes."
)
TEXT_NOT_A_FORWARD = "This is not a forwarded post from a channel or chat. Connection cancelled."
TEXT_NO_CHATS = "You have no connected channels or chats yet."
TEXT_STILL_NOT_MEMBER = "You are still not subscribed 🙁"

BUTTON_BACK = "« Back"


def _escape(value: Optional[str]) -> str:
    return html.escape(value or "")


def _human_size(size: Optional[int]) -> str:
    if size is None:
        return "unknown"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def _keyboard(*rows: Sequence[InlineButton]) -> Keyboard:
    return tuple(tuple(row) for row in rows if row)


class Renderer:
    """Builds outbound messages for handler results."""

    def __init__(self, bot_username: str, revision: str) -> None:
        self._bot_username = bot_username
        self._revision = revision

    def share_link(self, file: File) -> str:
        return f"https://t.me/{self._bot_username}?start={file.public_id}"

    # Commands -------------------------------------------------------------

    def start(self, chat_id: int) -> OutboundMessage:
        return OutboundMessage(chat_id=chat_id, text=TEXT_START)

    def help(self, chat_id: int) -> OutboundMessage:
        return OutboundMessage(chat_id=chat_id, text=TEXT_HELP)

    def version(self, chat_id: int, reply_to: int) -> OutboundMessage:
        return OutboundMessage(chat_id=chat_id, text=f"<code>{_escape(self._revision)}</code>", reply_to=reply_to)

    def unsupported_kind(self, chat_id: int, reply_to: int) -> OutboundMessage:
        return OutboundMessage(chat_id=chat_id, text=TEXT_UNSUPPORTED_KIND, reply_to=reply_to)

    def file_not_found(self, chat_id: int, edit_message_id: Optional[int] = None) -> OutboundMessage:
        return OutboundMessage(chat_id=chat_id, text=TEXT_FILE_NOT_FOUND, edit_message_id=edit_message_id)

    def admin(self, chat_id: int, stats: AdminStats) -> OutboundMessage:
        text = (
            "<b>Stats</b>\n\n"
            f"Users: {stats.users}\n"
            f"Files: {stats.files}\n"
            f"Downloads: {stats.downloads}\n"
            f"Chats: {stats.chats}"
        )
        return OutboundMessage(chat_id=chat_id, text=text)

    # Files ----------------------------------------------------------------

    def owned_file(
        self,
        chat_id: int,
        file: File,
        stats: FileStats,
        edit_message_id: Optional[int] = None,
        reply_to: Optional[int] = None,
    ) -> OutboundMessage:
        lines = [f"<b>Kind:</b> {file.kind.value}"]
        if file.caption:
            lines.append(f"<b>Caption:</b> {_escape(file.caption)}")
        if file.file_name:
            lines.append(f"<b>Name:</b> {_escape(file.file_name)}")
        lines.append(f"<b>Size:</b> {_human_size(file.size)}")
        lines.append(f"<b>Downloads:</b> {stats.downloads}")
        if file.chat_subscription is not None:
            lines.append("<b>Restrictions:</b> chat subscription")
        lines.append(f"\n<b>Link:</b> {self.share_link(file)}")

        keyboard = _keyboard(
            [
                InlineButton("🔒 Restrictions", data=callbacks.file_restrictions(file.id)),
                InlineButton("🗑 Delete", data=callbacks.file_delete(file.id)),
            ],
            [InlineButton("🔄 Refresh", data=callbacks.file_refresh(file.id))],
        )
        return OutboundMessage(
            chat_id=chat_id,
            text="\n".join(lines),
            keyboard=keyboard,
            edit_message_id=edit_message_id,
            reply_to=reply_to,
        )

    def delivery(self, chat_id: int, file: File) -> OutboundMessage:
        return OutboundMessage(
            chat_id=chat_id,
            text=_escape(file.caption),
            media=Media(
                kind=file.kind,
                file_id=file.telegram_file_id,
                mime_type=file.mime_type,
                file_name=file.file_name,
                size=file.size,
            ),
        )

    def gated(self, chat_id: int, result: Gated, edit_message_id: Optional[int] = None) -> OutboundMessage:
        chat = result.chat
        text = (
            "To get this file, subscribe to "
            f"<b>{_escape(chat.title)}</b> and press the button below."
        )
        rows: List[List[InlineButton]] = []
        if chat.username:
            rows.append([InlineButton(f"➡️ {chat.title}", url=f"https://t.me/{chat.username}")])
        rows.append(
            [InlineButton("✅ I subscribed", data=callbacks.file_restrictions_chat_check(result.file.id))]
        )
        return OutboundMessage(
            chat_id=chat_id,
            text=text,
            keyboard=_keyboard(*rows),
            edit_message_id=edit_message_id,
        )

    def file_restrictions(
        self, chat_id: int, file: File, chats: Sequence[Chat], edit_message_id: Optional[int]
    ) -> OutboundMessage:
        current = file.chat_subscription
        rows: List[List[InlineButton]] = []
        for chat in chats:
            mark = "✅" if current is not None and current.chat_id == chat.id else "▫️"
            rows.append(
                [
                    InlineButton(
                        f"{mark} {chat.title}",
                        data=callbacks.file_restrictions_chat_toggle(file.id, chat.id),
                    )
                ]
            )
        if chats:
            text = "Choose a channel or chat the recipient must be subscribed to:"
        else:
            text = TEXT_NO_CHATS + " Connect one in /settings first."
            rows.append([InlineButton("➕ Connect", data=callbacks.SETTINGS_CHATS_CONNECT)])
        rows.append([InlineButton(BUTTON_BACK, data=callbacks.file_refresh(file.id))])
        return OutboundMessage(chat_id=chat_id, text=text, keyboard=_keyboard(*rows), edit_message_id=edit_message_id)

    def file_delete_confirm(self, chat_id: int, file: File, edit_message_id: Optional[int]) -> OutboundMessage:
        keyboard = _keyboard(
            [
                InlineButton("🗑 Yes, delete", data=callbacks.file_delete_confirm(file.id)),
                InlineButton(BUTTON_BACK, data=callbacks.file_refresh(file.id)),
            ]
        )
        return OutboundMessage(
            chat_id=chat_id,
            text="Delete this file? The link will stop working.",
            keyboard=keyboard,
            edit_message_id=edit_message_id,
        )

    def file_deleted(self, chat_id: int, edit_message_id: Optional[int]) -> OutboundMessage:
        return OutboundMessage(chat_id=chat_id, text=TEXT_FILE_DELETED, edit_message_id=edit_message_id)

    # Settings -------------------------------------------------------------

    def settings(self, chat_id: int, user: User, edit_message_id: Optional[int] = None) -> OutboundMessage:
        long_ids = "on" if user.settings_long_ids else "off"
        keyboard = _keyboard(
            [InlineButton(f"Long IDs: {long_ids}", data=callbacks.SETTINGS_LONG_IDS)],
            [InlineButton("📢 Channels and chats", data=callbacks.SETTINGS_CHATS)],
        )
        text = (
            "<b>Settings</b>\n\n"
            "<b>Long IDs</b> make new links harder to guess.\n"
            "<b>Channels and chats</b> can be required as a subscription before download."
        )
        return OutboundMessage(chat_id=chat_id, text=text, keyboard=keyboard, edit_message_id=edit_message_id)

    def chats(self, chat_id: int, chats: Sequence[Chat], edit_message_id: Optional[int]) -> OutboundMessage:
        rows = [[InlineButton(chat.title, data=callbacks.settings_chat_details(chat.id))] for chat in chats]
        rows.append([InlineButton("➕ Connect", data=callbacks.SETTINGS_CHATS_CONNECT)])
        rows.append([InlineButton(BUTTON_BACK, data=callbacks.SETTINGS)])
        text = "<b>Channels and chats</b>" if chats else TEXT_NO_CHATS
        return OutboundMessage(chat_id=chat_id, text=text, keyboard=_keyboard(*rows), edit_message_id=edit_message_id)

    def chat_connect_prompt(self, chat_id: int, edit_message_id: Optional[int]) -> OutboundMessage:
        keyboard = _keyboard([InlineButton(BUTTON_BACK, data=callbacks.SETTINGS_CHATS)])
        return OutboundMessage(
            chat_id=chat_id,
            text=TEXT_CONNECT_PROMPT,
            keyboard=keyboard,
            edit_message_id=edit_message_id,
        )

    def chat_connected(self, chat_id: int, chat: Chat) -> OutboundMessage:
        keyboard = _keyboard([InlineButton("📢 Channels and chats", data=callbacks.SETTINGS_CHATS)])
        return OutboundMessage(
            chat_id=chat_id,
            text=f"<b>{_escape(chat.title)}</b> connected 🎉",
            keyboard=keyboard,
        )

    def chat_connect_failed(self, chat_id: int, error: ChatConnectError) -> OutboundMessage:
        if isinstance(error, ChatAlreadyConnected):
            text = f"<b>{_escape(str(error))}</b> is already connected."
        elif isinstance(error, BotIsNotAdmin):
            text = f"I am not an administrator of <b>{_escape(str(error))}</b>. Add me and forward a post again."
        else:
            text = TEXT_NOT_A_FORWARD
        return OutboundMessage(chat_id=chat_id, text=text)

    def chat_details(self, chat_id: int, chat: Chat, edit_message_id: Optional[int]) -> OutboundMessage:
        lines = [f"<b>{_escape(chat.title)}</b>", f"Type: {_escape(chat.type)}"]
        if chat.username:
            lines.append(f"Link: https://t.me/{_escape(chat.username)}")
        keyboard = _keyboard(
            [InlineButton("🗑 Disconnect", data=callbacks.settings_chat_delete(chat.id))],
            [InlineButton(BUTTON_BACK, data=callbacks.SETTINGS_CHATS)],
        )
        return OutboundMessage(chat_id=chat_id, text="\n".join(lines), keyboard=keyboard, edit_message_id=edit_message_id)

    def chat_delete_confirm(self, chat_id: int, chat: Chat, edit_message_id: Optional[int]) -> OutboundMessage:
        keyboard = _keyboard(
            [
                InlineButton("🗑 Yes, disconnect", data=callbacks.settings_chat_delete_confirm(chat.id)),
                InlineButton(BUTTON_BACK, data=callbacks.settings_chat_details(chat.id)),
            ]
        )
        text = (
            f"Disconnect <b>{_escape(chat.title)}</b>? "
            "Files restricted by this chat become available to everyone."
        )
        return OutboundMessage(chat_id=chat_id, text=text, keyboard=keyboard, edit_message_id=edit_message_id)
