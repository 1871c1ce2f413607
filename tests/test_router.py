from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from conftest import restricted_by
from core.access import Deliver, Gated
from core.errors import AuthError, MalformedCallbackParameter
from core.callbacks import CallbackTable, pattern
from core.models import (
    ChatSubscription,
    FileKind,
    ForwardedChat,
    Media,
    Message,
    Update,
)
from core.rendering import TEXT_FILE_NOT_FOUND, TEXT_HELP, TEXT_START, TEXT_STILL_NOT_MEMBER, TEXT_UNSUPPORTED_KIND
from core.router import UpdateRouter
from core.state import SessionState


def _buttons(message) -> list[str]:
    return [button.data or button.url for row in message.keyboard for button in row]


# Commands ---------------------------------------------------------------------


def test_start_without_payload_greets(harness) -> None:
    user = harness.user(20)

    harness.dispatch(harness.message(user, "/start"), user)

    assert harness.messenger.last.text == TEXT_START


def test_start_with_referral_payload_greets(harness) -> None:
    user = harness.user(20)

    harness.dispatch(harness.message(user, "/start ref_partner"), user)

    assert harness.messenger.last.text == TEXT_START


def test_start_with_owned_file_shows_management_view(harness) -> None:
    owner = harness.user(10)
    file = harness.add_file(owner, "ABC123")

    harness.dispatch(harness.message(owner, "/start ABC123"), owner)

    reply = harness.messenger.last
    assert reply.media is None
    assert "https://t.me/share_bot?start=ABC123" in reply.text
    assert f"file:{file.id}:restrictions" in _buttons(reply)
    assert f"file:{file.id}:delete" in _buttons(reply)


def test_start_with_unrestricted_file_delivers_it(harness) -> None:
    owner = harness.user(10)
    requester = harness.user(20)
    file = harness.add_file(owner, "ABC123")

    harness.dispatch(harness.message(requester, "/start ABC123"), requester)

    reply = harness.messenger.last
    assert reply.media is not None
    assert reply.media.file_id == "tg-ABC123"
    assert reply.chat_id == requester.id
    assert harness.files.stats(file).downloads == 1


def test_start_with_unknown_file_is_friendly(harness) -> None:
    user = harness.user(20)

    harness.dispatch(harness.message(user, "/start missing"), user)

    assert harness.messenger.last.text == TEXT_FILE_NOT_FOUND


def test_start_with_restricted_file_renders_gate(harness) -> None:
    owner = harness.user(10)
    requester = harness.user(20)
    chat = harness.add_chat(owner, telegram_id=-1001)
    file = harness.add_file(owner, "ABC123", restrictions=restricted_by(chat))

    harness.dispatch(harness.message(requester, "/start ABC123"), requester)

    reply = harness.messenger.last
    assert reply.media is None
    assert f"file:{file.id}:restrictions:chat:check" in _buttons(reply)
    assert "https://t.me/news" in _buttons(reply)
    assert harness.files.stats(file).downloads == 0


def test_command_with_bot_suffix(harness) -> None:
    user = harness.user(20)

    harness.dispatch(harness.message(user, "/help@share_bot"), user)

    assert harness.messenger.last.text == TEXT_HELP


def test_version_replies_with_revision(harness) -> None:
    user = harness.user(20)
    update = harness.message(user, "/version")

    harness.dispatch(update, user)

    assert "rev-123" in harness.messenger.last.text
    assert harness.messenger.last.reply_to == update.message.message_id


def test_admin_requires_admin_flag(harness) -> None:
    admin = harness.user(1)
    regular = harness.user(20)

    harness.dispatch(harness.message(regular, "/admin"), regular)
    assert harness.messenger.last.text == TEXT_HELP

    harness.dispatch(harness.message(admin, "/admin"), admin)
    assert "Users: 2" in harness.messenger.last.text


def test_settings_command_shows_menu(harness) -> None:
    user = harness.user(20)

    harness.dispatch(harness.message(user, "/settings"), user)

    assert "settings:long-ids" in _buttons(harness.messenger.last)


# Content ----------------------------------------------------------------------


def test_media_message_is_stored_and_linked(harness) -> None:
    owner = harness.user(10)
    media = Media(kind=FileKind.VIDEO, file_id="tg-video", mime_type="video/mp4", size=10)

    harness.dispatch(harness.message(owner, caption="clip", media=media), owner)

    reply = harness.messenger.last
    assert "https://t.me/share_bot?start=" in reply.text
    public_id = reply.text.rsplit("start=", 1)[1]
    stored = harness.files.get_by_public_id(public_id)
    assert stored.kind is FileKind.VIDEO
    assert stored.owner_id == owner.id
    assert len(public_id) == 8


def test_long_ids_setting_changes_public_id_length(harness) -> None:
    owner = harness.user(10)
    harness.dispatch(harness.callback(owner, "settings:long-ids"), owner)
    owner = harness.storage.get_user(owner.id)
    media = Media(kind=FileKind.DOCUMENT, file_id="tg-doc")

    harness.dispatch(harness.message(owner, media=media), owner)

    public_id = harness.messenger.last.text.rsplit("start=", 1)[1]
    assert len(public_id) == 16


def test_plain_text_is_unsupported(harness) -> None:
    user = harness.user(20)

    harness.dispatch(harness.message(user, "hello"), user)

    assert harness.messenger.last.text == TEXT_UNSUPPORTED_KIND


def test_unknown_media_kind_is_unsupported(harness) -> None:
    user = harness.user(20)

    harness.dispatch(harness.message(user, media=Media(kind=FileKind.UNKNOWN, file_id="")), user)

    assert harness.messenger.last.text == TEXT_UNSUPPORTED_KIND


# Session flow -----------------------------------------------------------------


def test_connect_flow_preempts_commands_and_clears_state(harness) -> None:
    owner = harness.user(10)
    harness.dispatch(harness.callback(owner, "settings:channels-and-chats:connect"), owner)
    assert harness.state.get(owner.id) is SessionState.AWAITING_CHAT_CONNECT

    # Even a command goes to the pending flow.
    harness.dispatch(harness.message(owner, "/help"), owner)

    assert harness.messenger.last.text != TEXT_HELP
    assert harness.state.get(owner.id) is None
    assert harness.chats.list(owner) == []

    harness.dispatch(harness.message(owner, "/help"), owner)
    assert harness.messenger.last.text == TEXT_HELP


def test_connect_flow_connects_forwarded_channel(harness) -> None:
    owner = harness.user(10)
    origin = ForwardedChat(id=-1009, title="Daily", type="channel", username="daily")
    harness.membership.admin_in.add(origin.id)
    harness.dispatch(harness.callback(owner, "settings:channels-and-chats:connect"), owner)

    harness.dispatch(harness.message(owner, "fwd", forward_from_chat=origin), owner)

    chats = harness.chats.list(owner)
    assert [chat.telegram_id for chat in chats] == [-1009]
    assert "Daily" in harness.messenger.last.text
    assert harness.state.get(owner.id) is None


def test_connect_flow_requires_bot_admin(harness) -> None:
    owner = harness.user(10)
    origin = ForwardedChat(id=-1009, title="Daily", type="channel")
    harness.dispatch(harness.callback(owner, "settings:channels-and-chats:connect"), owner)

    harness.dispatch(harness.message(owner, "fwd", forward_from_chat=origin), owner)

    assert harness.chats.list(owner) == []
    assert "not an administrator" in harness.messenger.last.text


def test_connect_state_expires(harness) -> None:
    owner = harness.user(10)
    harness.dispatch(harness.callback(owner, "settings:channels-and-chats:connect"), owner)

    harness.clock.advance(timedelta(minutes=11).total_seconds())
    harness.dispatch(harness.message(owner, "/help"), owner)

    assert harness.messenger.last.text == TEXT_HELP


def test_router_requires_handler_for_every_state(harness) -> None:
    class NoStateHandlers:
        def __init__(self, wrapped) -> None:
            self._wrapped = wrapped

        def __getattr__(self, name):
            return getattr(self._wrapped, name)

        def state_table(self):
            return {}

    with pytest.raises(ValueError):
        UpdateRouter(NoStateHandlers(harness.handlers), harness.state)


# Callbacks --------------------------------------------------------------------


def test_toggle_callback_changes_restrictions_seen_by_resolve(harness) -> None:
    owner = harness.user(10)
    requester = harness.user(20)
    harness.add_chat(owner, telegram_id=-1007, chat_id=7)
    harness.add_file(owner, "ABC123", file_id=42)

    harness.dispatch(harness.callback(owner, "file:42:restrictions:chat-subscription:7:toggl"), owner)

    assert harness.files.get_by_id(42).restrictions == frozenset({ChatSubscription(chat_id=7)})
    gated = asyncio.run(harness.access.resolve_file("ABC123", requester))
    assert isinstance(gated, Gated)
    assert gated.chat.id == 7

    # Toggling the same chat again lifts the restriction.
    harness.dispatch(harness.callback(owner, "file:42:restrictions:chat-subscription:7:toggle"), owner)

    assert harness.files.get_by_id(42).restrictions == frozenset()
    assert isinstance(asyncio.run(harness.access.resolve_file("ABC123", requester)), Deliver)


def test_toggle_other_owners_chat_is_not_found(harness) -> None:
    owner = harness.user(10)
    other = harness.user(11)
    harness.add_chat(other, telegram_id=-1007, chat_id=7)
    harness.add_file(owner, "ABC123", file_id=42)

    harness.dispatch(harness.callback(owner, "file:42:restrictions:chat-subscription:7:toggle"), owner)

    assert harness.messenger.last.text == TEXT_FILE_NOT_FOUND
    assert harness.files.get_by_id(42).restrictions == frozenset()


def test_chat_check_callback_delivers_after_join(harness) -> None:
    owner = harness.user(10)
    requester = harness.user(20)
    chat = harness.add_chat(owner, telegram_id=-1001)
    file = harness.add_file(owner, "ABC123", restrictions=restricted_by(chat))
    data = f"file:{file.id}:restrictions:chat:check"

    harness.dispatch(harness.callback(requester, data), requester)
    assert harness.messenger.answers[-1][1] == TEXT_STILL_NOT_MEMBER
    assert harness.messenger.delivered == []

    harness.membership.members.add((requester.id, chat.telegram_id))
    harness.dispatch(harness.callback(requester, data), requester)

    assert harness.messenger.last.media is not None
    assert harness.files.stats(file).downloads == 1


def test_chat_check_callback_by_owner_shows_management_view(harness) -> None:
    owner = harness.user(10)
    chat = harness.add_chat(owner, telegram_id=-1001)
    file = harness.add_file(owner, "ABC123", restrictions=restricted_by(chat))

    harness.dispatch(harness.callback(owner, f"file:{file.id}:restrictions:chat:check", message_id=77), owner)

    reply = harness.messenger.last
    assert harness.messenger.answers[-1][1] != TEXT_STILL_NOT_MEMBER
    assert reply.edit_message_id == 77
    assert f"file:{file.id}:refresh" in _buttons(reply)
    assert harness.files.stats(file).downloads == 0


def test_file_refresh_for_non_owner_is_not_found(harness) -> None:
    owner = harness.user(10)
    stranger = harness.user(20)
    file = harness.add_file(owner, "ABC123")

    harness.dispatch(harness.callback(stranger, f"file:{file.id}:refresh", message_id=77), stranger)

    assert harness.messenger.last.text == TEXT_FILE_NOT_FOUND
    assert harness.messenger.last.edit_message_id == 77


def test_file_delete_confirm_is_repeatable(harness) -> None:
    owner = harness.user(10)
    file = harness.add_file(owner, "ABC123")

    harness.dispatch(harness.callback(owner, f"file:{file.id}:delete:confirm"), owner)
    harness.dispatch(harness.callback(owner, f"file:{file.id}:delete:confirm"), owner)

    assert harness.storage.get_file(file.id) is None
    assert len(harness.messenger.delivered) == 2


def test_chat_delete_confirm_lifts_restrictions(harness) -> None:
    owner = harness.user(10)
    chat = harness.add_chat(owner, telegram_id=-1001)
    file = harness.add_file(owner, "ABC123", restrictions=restricted_by(chat))

    harness.dispatch(harness.callback(owner, f"settings:channels-and-chats:{chat.id}:delete:confirm"), owner)

    assert harness.chats.list(owner) == []
    assert harness.files.get_by_id(file.id).restrictions == frozenset()


def test_unknown_callback_is_dropped_silently(harness) -> None:
    user = harness.user(20)

    harness.dispatch(harness.callback(user, "legacy:button:1"), user)

    assert harness.messenger.delivered == []
    assert harness.messenger.answers == []


def test_malformed_callback_parameter_propagates(harness) -> None:
    user = harness.user(20)

    async def never(*args) -> None:
        raise AssertionError("handler must not run")

    table = CallbackTable([pattern("loose", r"^file:(\w+):refresh$", never)])
    router = UpdateRouter(harness.handlers, harness.state, callback_table=table)

    with pytest.raises(MalformedCallbackParameter):
        asyncio.run(router.dispatch(harness.callback(user, "file:abc:refresh"), user))


def test_handler_errors_propagate(harness) -> None:
    user = harness.user(20)

    async def boom(*args) -> None:
        raise RuntimeError("storage down")

    table = CallbackTable([pattern("settings", r"^settings$", boom)])
    router = UpdateRouter(harness.handlers, harness.state, callback_table=table)

    with pytest.raises(RuntimeError):
        asyncio.run(router.dispatch(harness.callback(user, "settings"), user))


# Channel posts ------------------------------------------------------------------


def test_channel_title_change_renames_chat(harness) -> None:
    owner = harness.user(10)
    chat = harness.add_chat(owner, telegram_id=-1001, title="Old")
    post = Message(message_id=1, chat_id=-1001, new_chat_title="New")

    harness.dispatch(Update(update_id=999, channel_post=post), None)

    assert harness.storage.get_chat(chat.id).title == "New"
    assert harness.messenger.delivered == []


def test_plain_channel_post_is_ignored(harness) -> None:
    post = Message(message_id=1, chat_id=-1001, text="news")

    harness.dispatch(Update(update_id=999, channel_post=post), None)

    assert harness.messenger.delivered == []


def test_message_without_user_is_auth_error(harness) -> None:
    user = harness.user(20)

    with pytest.raises(AuthError):
        harness.dispatch(harness.message(user, "/help"), None)
