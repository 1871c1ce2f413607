"""Ports (interfaces) used by the core engine.

Ports define the minimal contracts for storage, session state, membership,
messaging and error reporting so the core can run against SQLite and Telethon
in production and against fakes in tests.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, List, Mapping, Optional, Protocol

from core.models import (
    AdminStats,
    Chat,
    ChatSubscription,
    File,
    ForwardedChat,
    OutboundMessage,
    User,
)
from core.state import SessionState


class StoragePort(Protocol):
    """Persistence of users, chats, files and downloads."""

    def get_user(self, user_id: int) -> Optional[User]:
        ...

    def save_user(self, user: User) -> None:
        ...

    def add_file(self, file: File) -> File:
        ...

    def get_file(self, file_id: int) -> Optional[File]:
        ...

    def get_file_by_public_id(self, public_id: str) -> Optional[File]:
        ...

    def set_file_restrictions(self, file_id: int, restrictions: frozenset[ChatSubscription]) -> None:
        ...

    def delete_file(self, file_id: int) -> bool:
        ...

    def add_download(self, file_id: int, user_id: int) -> None:
        ...

    def count_downloads(self, file_id: int) -> int:
        ...

    def add_chat(self, chat: Chat) -> Chat:
        ...

    def get_chat(self, chat_id: int) -> Optional[Chat]:
        ...

    def get_chat_by_telegram_id(self, owner_id: int, telegram_id: int) -> Optional[Chat]:
        ...

    def list_chats(self, owner_id: int) -> List[Chat]:
        ...

    def list_chats_by_telegram_id(self, telegram_id: int) -> List[Chat]:
        ...

    def update_chat(self, chat: Chat) -> None:
        ...

    def delete_chat(self, chat_id: int) -> bool:
        ...

    def admin_stats(self) -> AdminStats:
        ...

    def ping(self) -> None:
        ...


class SessionStorePort(Protocol):
    """Per-user flow state with expiry. Each call is atomic per key."""

    def get(self, user_id: int) -> Optional[SessionState]:
        ...

    def set(self, user_id: int, state: SessionState, ttl: timedelta) -> None:
        ...

    def clear(self, user_id: int) -> None:
        ...


class MembershipPort(Protocol):
    """Live platform queries about chats."""

    async def is_member(self, user_id: int, chat_telegram_id: int) -> bool:
        ...

    async def is_bot_admin(self, chat: ForwardedChat) -> bool:
        ...


class MessengerPort(Protocol):
    """Outbound platform calls."""

    async def deliver(self, message: OutboundMessage) -> None:
        ...

    async def answer_callback(self, callback_id: str, text: Optional[str] = None, alert: bool = False) -> None:
        ...


class ErrorReporterPort(Protocol):
    def report(self, error: BaseException, update: Optional[Mapping[str, Any]] = None) -> None:
        ...
