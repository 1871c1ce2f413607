"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types (Bot API JSON, Telethon objects,
SQLite rows).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional, Tuple


class FileKind(str, Enum):
    """Media kinds the bot accepts for sharing."""

    DOCUMENT = "document"
    PHOTO = "photo"
    VIDEO = "video"
    AUDIO = "audio"
    VOICE = "voice"
    ANIMATION = "animation"
    UNKNOWN = "unknown"


# Inbound update ---------------------------------------------------------------


@dataclass(frozen=True)
class Sender:
    """The platform account that produced an update."""

    id: int
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None
    language_code: Optional[str] = None
    is_bot: bool = False


@dataclass(frozen=True)
class Media:
    """A single attachment of a message."""

    kind: FileKind
    file_id: str
    mime_type: Optional[str] = None
    file_name: Optional[str] = None
    size: Optional[int] = None


@dataclass(frozen=True)
class ForwardedChat:
    """Origin chat of a forwarded message."""

    id: int
    title: str
    type: str
    username: Optional[str] = None


@dataclass(frozen=True)
class Message:
    """A message (private chat message or channel post)."""

    message_id: int
    chat_id: int
    sender: Optional[Sender] = None
    text: str = ""
    caption: Optional[str] = None
    media: Optional[Media] = None
    forward_from_chat: Optional[ForwardedChat] = None
    new_chat_title: Optional[str] = None

    def command(self) -> Optional[str]:
        """Return the bot command without slash and @botname, if any."""

        if not self.text.startswith("/"):
            return None
        token = self.text.split(maxsplit=1)[0][1:]
        name, _, _ = token.partition("@")
        return name.lower() or None

    def command_arguments(self) -> str:
        if self.command() is None:
            return ""
        parts = self.text.split(maxsplit=1)
        return parts[1].strip() if len(parts) > 1 else ""


@dataclass(frozen=True)
class CallbackQuery:
    """Inline button press with its opaque payload."""

    id: str
    sender: Sender
    data: str
    chat_id: Optional[int] = None
    message_id: Optional[int] = None


@dataclass(frozen=True)
class Update:
    """One inbound platform event; exactly one variant is populated."""

    update_id: int
    message: Optional[Message] = None
    callback_query: Optional[CallbackQuery] = None
    channel_post: Optional[Message] = None

    def __post_init__(self) -> None:
        populated = [
            variant
            for variant in (self.message, self.callback_query, self.channel_post)
            if variant is not None
        ]
        if len(populated) != 1:
            raise ValueError(
                f"update {self.update_id} must carry exactly one variant, got {len(populated)}"
            )

    @property
    def sender(self) -> Optional[Sender]:
        if self.message is not None:
            return self.message.sender
        if self.callback_query is not None:
            return self.callback_query.sender
        return None


# Domain entities --------------------------------------------------------------


@dataclass
class User:
    """Bot user as persisted by storage."""

    id: int
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None
    language_code: Optional[str] = None
    is_admin: bool = False
    settings_long_ids: bool = False
    joined_at: Optional[datetime] = None


@dataclass
class Chat:
    """A channel or group connected by its owner for subscription checks."""

    id: int
    telegram_id: int
    title: str
    type: str
    owner_id: int
    username: Optional[str] = None
    linked_at: Optional[datetime] = None


@dataclass(frozen=True)
class ChatSubscription:
    """Requester must be a member of the chat with this (storage) id."""

    chat_id: int


# Only one restriction kind exists today; widen this alias when adding more.
Restriction = ChatSubscription


@dataclass
class File:
    """A shared media item."""

    id: int
    owner_id: int
    kind: FileKind
    telegram_file_id: str
    public_id: str
    caption: Optional[str] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None
    size: Optional[int] = None
    restrictions: FrozenSet[Restriction] = field(default_factory=frozenset)
    created_at: Optional[datetime] = None

    @property
    def chat_subscription(self) -> Optional[ChatSubscription]:
        for restriction in self.restrictions:
            if isinstance(restriction, ChatSubscription):
                return restriction
        return None


@dataclass(frozen=True)
class FileStats:
    """Owner-facing counters for a file."""

    downloads: int


@dataclass(frozen=True)
class AdminStats:
    """Aggregate counters shown by /admin."""

    users: int
    files: int
    downloads: int
    chats: int


# Outbound ---------------------------------------------------------------------


@dataclass(frozen=True)
class InlineButton:
    """Inline keyboard button: either a callback payload or a URL."""

    text: str
    data: Optional[str] = None
    url: Optional[str] = None


Keyboard = Tuple[Tuple[InlineButton, ...], ...]


@dataclass(frozen=True)
class OutboundMessage:
    """Rendered reply. `edit_message_id` turns a send into an edit."""

    chat_id: int
    text: str
    keyboard: Keyboard = ()
    reply_to: Optional[int] = None
    edit_message_id: Optional[int] = None
    media: Optional[Media] = None
