from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

import pytest

from adapters.memory_state import InMemoryStateStore
from adapters.sqlite_storage import SQLiteStorage
from core.access import AccessControl
from core.handlers import BotHandlers
from core.models import (
    CallbackQuery,
    Chat,
    ChatSubscription,
    File,
    FileKind,
    ForwardedChat,
    Message,
    OutboundMessage,
    Sender,
    Update,
    User,
)
from core.rendering import Renderer
from core.router import UpdateRouter
from core.services import AdminService, AuthService, ChatService, FileService


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMessenger:
    def __init__(self) -> None:
        self.delivered: list[OutboundMessage] = []
        self.answers: list[tuple[str, Optional[str], bool]] = []

    async def deliver(self, message: OutboundMessage) -> None:
        self.delivered.append(message)

    async def answer_callback(self, callback_id: str, text: Optional[str] = None, alert: bool = False) -> None:
        self.answers.append((callback_id, text, alert))

    @property
    def last(self) -> OutboundMessage:
        return self.delivered[-1]


class FakeMembership:
    def __init__(self) -> None:
        self.members: set[tuple[int, int]] = set()
        self.admin_in: set[int] = set()
        self.calls = 0

    async def is_member(self, user_id: int, chat_telegram_id: int) -> bool:
        self.calls += 1
        return (user_id, chat_telegram_id) in self.members

    async def is_bot_admin(self, chat: ForwardedChat) -> bool:
        return chat.id in self.admin_in


@dataclass
class Harness:
    storage: SQLiteStorage
    state: InMemoryStateStore
    clock: FakeClock
    messenger: FakeMessenger
    membership: FakeMembership
    auth: AuthService
    files: FileService
    chats: ChatService
    access: AccessControl
    handlers: BotHandlers
    router: UpdateRouter
    _update_ids: list[int] = field(default_factory=lambda: [0])

    def user(self, user_id: int, first_name: str = "Test") -> User:
        return self.auth.resolve_or_create_user(Sender(id=user_id, first_name=first_name))

    def add_file(
        self,
        owner: User,
        public_id: str,
        file_id: int = 0,
        restrictions: frozenset = frozenset(),
    ) -> File:
        return self.storage.add_file(
            File(
                id=file_id,
                owner_id=owner.id,
                kind=FileKind.DOCUMENT,
                telegram_file_id=f"tg-{public_id}",
                public_id=public_id,
                caption="report",
                file_name="report.pdf",
                size=2048,
                restrictions=restrictions,
            )
        )

    def add_chat(self, owner: User, telegram_id: int, chat_id: int = 0, title: str = "News") -> Chat:
        return self.storage.add_chat(
            Chat(id=chat_id, telegram_id=telegram_id, title=title, type="channel", owner_id=owner.id, username="news")
        )

    def _next_update_id(self) -> int:
        self._update_ids[0] += 1
        return self._update_ids[0]

    def message(self, user: User, text: str = "", **kwargs) -> Update:
        msg = Message(
            message_id=100 + self._update_ids[0],
            chat_id=user.id,
            sender=Sender(id=user.id, first_name=user.first_name),
            text=text,
            **kwargs,
        )
        return Update(update_id=self._next_update_id(), message=msg)

    def callback(self, user: User, data: str, message_id: int = 55) -> Update:
        cbq = CallbackQuery(
            id=f"cbq-{self._update_ids[0]}",
            sender=Sender(id=user.id, first_name=user.first_name),
            data=data,
            chat_id=user.id,
            message_id=message_id,
        )
        return Update(update_id=self._next_update_id(), callback_query=cbq)

    def dispatch(self, update: Update, user: Optional[User]) -> None:
        asyncio.run(self.router.dispatch(update, user))


def restricted_by(chat: Chat) -> frozenset:
    return frozenset({ChatSubscription(chat_id=chat.id)})


@pytest.fixture
def harness(tmp_path) -> Harness:
    storage = SQLiteStorage(str(tmp_path / "bot.db"))
    storage.init_db()
    clock = FakeClock()
    state = InMemoryStateStore(clock=clock)
    messenger = FakeMessenger()
    membership = FakeMembership()
    auth = AuthService(storage, admin_ids=[1])
    files = FileService(storage)
    chats = ChatService(storage, membership)
    access = AccessControl(files, chats)
    handlers = BotHandlers(
        auth=auth,
        files=files,
        chats=chats,
        admin=AdminService(storage),
        access=access,
        state=state,
        messenger=messenger,
        renderer=Renderer(bot_username="share_bot", revision="rev-123"),
    )
    router = UpdateRouter(handlers, state)
    return Harness(
        storage=storage,
        state=state,
        clock=clock,
        messenger=messenger,
        membership=membership,
        auth=auth,
        files=files,
        chats=chats,
        access=access,
        handlers=handlers,
        router=router,
    )
