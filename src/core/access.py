"""Access control for file delivery (core domain).

Restriction outcomes are computed from live membership on every request and
are never stored. Re-checking only observes state, so running it twice, or
concurrently with a delivery, is harmless.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Union

from core.errors import FileNotFoundInStorage
from core.models import Chat, File, FileStats, User
from core.services import ChatService, FileService

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Satisfied:
    pass


@dataclass(frozen=True)
class NotSatisfied:
    missing_chat: Chat


RestrictionOutcome = Union[Satisfied, NotSatisfied]


@dataclass(frozen=True)
class NotFound:
    public_id: str


@dataclass(frozen=True)
class Owned:
    """The requester owns the file: show the management view."""

    file: File
    stats: FileStats


@dataclass(frozen=True)
class Deliver:
    file: File


@dataclass(frozen=True)
class Gated:
    """Delivery blocked until the requester joins `chat`."""

    chat: Chat
    file: File


FileDeliveryResult = Union[NotFound, Owned, Deliver, Gated]


class AccessControl:
    """Resolves public links into delivery decisions."""

    def __init__(self, files: FileService, chats: ChatService) -> None:
        self._files = files
        self._chats = chats

    async def evaluate(self, file: File, requester: User) -> RestrictionOutcome:
        """Check every restriction of `file` against live membership."""

        for restriction in sorted(file.restrictions, key=lambda item: item.chat_id):
            chat = self._chats.get_any(restriction.chat_id)
            if chat is None:
                LOGGER.warning(
                    "File %s restricted by missing chat %s, ignoring restriction",
                    file.id,
                    restriction.chat_id,
                )
                continue
            if not await self._chats.is_member(requester, chat):
                return NotSatisfied(missing_chat=chat)
        return Satisfied()

    async def _decide(self, file: File, requester: User) -> FileDeliveryResult:
        outcome = await self.evaluate(file, requester)
        if isinstance(outcome, NotSatisfied):
            return Gated(chat=outcome.missing_chat, file=file)
        return Deliver(file=file)

    async def _resolve(self, file: File, requester: User) -> FileDeliveryResult:
        if file.owner_id == requester.id:
            return Owned(file=file, stats=self._files.stats(file))

        if not file.restrictions:
            return Deliver(file=file)

        return await self._decide(file, requester)

    async def resolve_file(self, public_id: str, requester: User) -> FileDeliveryResult:
        try:
            file = self._files.get_by_public_id(public_id)
        except FileNotFoundInStorage:
            return NotFound(public_id=public_id)
        return await self._resolve(file, requester)

    async def recheck_file(self, file_id: int, requester: User) -> FileDeliveryResult:
        """Re-run the restriction check after the requester claims to have joined."""

        try:
            file = self._files.get_by_id(file_id)
        except FileNotFoundInStorage:
            return NotFound(public_id=str(file_id))
        return await self._resolve(file, requester)
