"""Domain services consumed by the bot handlers.

Services are thin: they validate ownership, translate absent rows into
NotFound errors and keep every mutation safe to repeat, because the transport
may redeliver the same update.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from core.errors import (
    AuthError,
    BotIsNotAdmin,
    ChatAlreadyConnected,
    ChatNotFound,
    FileNotFoundInStorage,
    NotAChannelForward,
)
from core.models import (
    AdminStats,
    Chat,
    ChatSubscription,
    File,
    FileStats,
    Message,
    Sender,
    User,
)
from core.ports import MembershipPort, StoragePort

LOGGER = logging.getLogger(__name__)

PUBLIC_ID_ALPHABET = string.ascii_letters + string.digits
SHORT_PUBLIC_ID_LEN = 8
LONG_PUBLIC_ID_LEN = 16
CONNECTABLE_CHAT_TYPES = frozenset({"channel", "supergroup", "group"})


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AuthService:
    """Maps platform senders to persisted users."""

    def __init__(self, storage: StoragePort, admin_ids: Iterable[int] = ()) -> None:
        self._storage = storage
        self._admin_ids = frozenset(admin_ids)

    def resolve_or_create_user(self, sender: Sender) -> User:
        if sender.is_bot:
            raise AuthError(f"sender {sender.id} is a bot")
        try:
            user = self._storage.get_user(sender.id)
            if user is None:
                user = User(
                    id=sender.id,
                    first_name=sender.first_name,
                    last_name=sender.last_name,
                    username=sender.username,
                    language_code=sender.language_code,
                    is_admin=sender.id in self._admin_ids,
                    joined_at=_now(),
                )
                self._storage.save_user(user)
                LOGGER.info("New user %s", user.id)
                return user

            changed = (
                user.first_name != sender.first_name
                or user.last_name != sender.last_name
                or user.username != sender.username
                or user.language_code != sender.language_code
                or user.is_admin != (sender.id in self._admin_ids)
            )
            if changed:
                user.first_name = sender.first_name
                user.last_name = sender.last_name
                user.username = sender.username
                user.language_code = sender.language_code
                user.is_admin = sender.id in self._admin_ids
                self._storage.save_user(user)
            return user
        except Exception as exc:
            raise AuthError(f"resolve user {sender.id}") from exc

    def toggle_long_ids(self, user: User) -> User:
        user.settings_long_ids = not user.settings_long_ids
        self._storage.save_user(user)
        return user


class FileService:
    """Shared files and their restrictions."""

    def __init__(self, storage: StoragePort) -> None:
        self._storage = storage

    def _new_public_id(self, long_ids: bool) -> str:
        length = LONG_PUBLIC_ID_LEN if long_ids else SHORT_PUBLIC_ID_LEN
        while True:
            public_id = "".join(secrets.choice(PUBLIC_ID_ALPHABET) for _ in range(length))
            if self._storage.get_file_by_public_id(public_id) is None:
                return public_id

    def add_file(self, owner: User, message: Message) -> File:
        if message.media is None:
            raise ValueError("message has no media")
        media = message.media
        file = File(
            id=0,
            owner_id=owner.id,
            kind=media.kind,
            telegram_file_id=media.file_id,
            public_id=self._new_public_id(owner.settings_long_ids),
            caption=message.caption,
            mime_type=media.mime_type,
            file_name=media.file_name,
            size=media.size,
            created_at=_now(),
        )
        file = self._storage.add_file(file)
        LOGGER.info("File %s added by %s (%s)", file.id, owner.id, file.kind.value)
        return file

    def get_by_public_id(self, public_id: str) -> File:
        file = self._storage.get_file_by_public_id(public_id)
        if file is None:
            raise FileNotFoundInStorage(public_id)
        return file

    def get_by_id(self, file_id: int) -> File:
        file = self._storage.get_file(file_id)
        if file is None:
            raise FileNotFoundInStorage(str(file_id))
        return file

    def get_owned(self, user: User, file_id: int) -> File:
        file = self.get_by_id(file_id)
        if file.owner_id != user.id:
            raise FileNotFoundInStorage(str(file_id))
        return file

    def toggle_chat_restriction(self, user: User, file_id: int, chat_id: int) -> File:
        """Enable the chat subscription or disable it when it is the current one.

        A file holds at most one chat subscription; picking another chat
        replaces the current one.
        """

        file = self.get_owned(user, file_id)
        chat = self._storage.get_chat(chat_id)
        if chat is None or chat.owner_id != user.id:
            raise ChatNotFound(str(chat_id))

        current = file.chat_subscription
        if current is not None and current.chat_id == chat_id:
            restrictions: frozenset[ChatSubscription] = frozenset()
        else:
            restrictions = frozenset({ChatSubscription(chat_id=chat_id)})

        self._storage.set_file_restrictions(file.id, restrictions)
        file.restrictions = restrictions
        LOGGER.debug("File %s restrictions set to %s", file.id, restrictions)
        return file

    def delete(self, user: User, file_id: int) -> bool:
        file = self._storage.get_file(file_id)
        if file is None or file.owner_id != user.id:
            return False
        return self._storage.delete_file(file_id)

    def register_download(self, file: File, user: User) -> None:
        if file.owner_id == user.id:
            return
        self._storage.add_download(file.id, user.id)

    def stats(self, file: File) -> FileStats:
        return FileStats(downloads=self._storage.count_downloads(file.id))


class ChatService:
    """Chats connected by owners, plus live membership checks."""

    def __init__(self, storage: StoragePort, membership: MembershipPort) -> None:
        self._storage = storage
        self._membership = membership

    async def is_member(self, user: User, chat: Chat) -> bool:
        return await self._membership.is_member(user.id, chat.telegram_id)

    async def connect(self, user: User, message: Message) -> Chat:
        origin = message.forward_from_chat
        if origin is None or origin.type not in CONNECTABLE_CHAT_TYPES:
            raise NotAChannelForward()
        if self._storage.get_chat_by_telegram_id(user.id, origin.id) is not None:
            raise ChatAlreadyConnected(origin.title)
        if not await self._membership.is_bot_admin(origin):
            raise BotIsNotAdmin(origin.title)

        chat = self._storage.add_chat(
            Chat(
                id=0,
                telegram_id=origin.id,
                title=origin.title,
                type=origin.type,
                owner_id=user.id,
                username=origin.username,
                linked_at=_now(),
            )
        )
        LOGGER.info("Chat %s (%s) connected by %s", chat.id, chat.telegram_id, user.id)
        return chat

    def list(self, user: User) -> List[Chat]:
        return self._storage.list_chats(user.id)

    def get(self, user: User, chat_id: int) -> Chat:
        chat = self._storage.get_chat(chat_id)
        if chat is None or chat.owner_id != user.id:
            raise ChatNotFound(str(chat_id))
        return chat

    def get_any(self, chat_id: int) -> Optional[Chat]:
        return self._storage.get_chat(chat_id)

    def rename(self, telegram_id: int, title: str) -> int:
        renamed = 0
        for chat in self._storage.list_chats_by_telegram_id(telegram_id):
            if chat.title == title:
                continue
            chat.title = title
            self._storage.update_chat(chat)
            renamed += 1
        return renamed

    def delete(self, user: User, chat_id: int) -> bool:
        chat = self._storage.get_chat(chat_id)
        if chat is None or chat.owner_id != user.id:
            return False
        return self._storage.delete_chat(chat_id)


class AdminService:
    def __init__(self, storage: StoragePort) -> None:
        self._storage = storage

    def stats(self) -> AdminStats:
        return self._storage.admin_stats()
