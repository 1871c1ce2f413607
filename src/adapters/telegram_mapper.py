"""Bot API update decoding adapter.

This keeps Bot API JSON details out of the core engine: the webhook hands a
parsed JSON object here and gets a core Update back.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from core.errors import DecodeError
from core.models import (
    CallbackQuery,
    FileKind,
    ForwardedChat,
    Media,
    Message,
    Sender,
    Update,
)

# Checked in this order; a message carries at most one of them.
_MEDIA_FIELDS = (
    ("document", FileKind.DOCUMENT),
    ("video", FileKind.VIDEO),
    ("audio", FileKind.AUDIO),
    ("voice", FileKind.VOICE),
)


def _require(payload: Mapping[str, Any], key: str, kind: type) -> Any:
    value = payload.get(key)
    # bool is an int subclass; ids are never booleans.
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise DecodeError(f"field {key!r} must be {kind.__name__}")
    return value


def _object(payload: Mapping[str, Any], key: str) -> Optional[Mapping[str, Any]]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise DecodeError(f"field {key!r} must be an object")
    return value


def _sender(payload: Optional[Mapping[str, Any]]) -> Optional[Sender]:
    if payload is None:
        return None
    return Sender(
        id=_require(payload, "id", int),
        first_name=str(payload.get("first_name") or ""),
        last_name=payload.get("last_name"),
        username=payload.get("username"),
        language_code=payload.get("language_code"),
        is_bot=bool(payload.get("is_bot", False)),
    )


def _media(payload: Mapping[str, Any]) -> Optional[Media]:
    # Animations also carry a "document" field; check them first.
    animation = _object(payload, "animation")
    if animation is not None:
        return _media_from(animation, FileKind.ANIMATION)

    for field_name, kind in _MEDIA_FIELDS:
        item = _object(payload, field_name)
        if item is not None:
            return _media_from(item, kind)

    photo = payload.get("photo")
    if photo:
        if not isinstance(photo, list) or not all(isinstance(size, Mapping) for size in photo):
            raise DecodeError("field 'photo' must be a list of objects")
        # Sizes come smallest first; keep the largest.
        largest = max(photo, key=lambda size: size.get("file_size") or size.get("width") or 0)
        return _media_from(largest, FileKind.PHOTO)

    if any(payload.get(key) is not None for key in ("sticker", "video_note", "contact", "location", "poll")):
        return Media(kind=FileKind.UNKNOWN, file_id="")
    return None


def _media_from(item: Mapping[str, Any], kind: FileKind) -> Media:
    return Media(
        kind=kind,
        file_id=_require(item, "file_id", str),
        mime_type=item.get("mime_type"),
        file_name=item.get("file_name"),
        size=item.get("file_size"),
    )


def _forwarded_chat(payload: Mapping[str, Any]) -> Optional[ForwardedChat]:
    chat = _object(payload, "forward_from_chat")
    if chat is None:
        origin = _object(payload, "forward_origin")
        if origin is not None and origin.get("type") == "channel":
            chat = _object(origin, "chat")
    if chat is None:
        return None
    return ForwardedChat(
        id=_require(chat, "id", int),
        title=str(chat.get("title") or ""),
        type=str(chat.get("type") or ""),
        username=chat.get("username"),
    )


def build_message(payload: Mapping[str, Any]) -> Message:
    """Build a core Message from a Bot API Message object."""

    chat = _object(payload, "chat")
    if chat is None:
        raise DecodeError("message without chat")
    return Message(
        message_id=_require(payload, "message_id", int),
        chat_id=_require(chat, "id", int),
        sender=_sender(_object(payload, "from")),
        text=str(payload.get("text") or ""),
        caption=payload.get("caption"),
        media=_media(payload),
        forward_from_chat=_forwarded_chat(payload),
        new_chat_title=payload.get("new_chat_title"),
    )


def build_callback_query(payload: Mapping[str, Any]) -> CallbackQuery:
    sender = _sender(_object(payload, "from"))
    if sender is None:
        raise DecodeError("callback query without sender")
    message = _object(payload, "message")
    chat = _object(message, "chat") if message is not None else None
    return CallbackQuery(
        id=_require(payload, "id", str),
        sender=sender,
        data=str(payload.get("data") or ""),
        chat_id=_require(chat, "id", int) if chat is not None else None,
        message_id=message.get("message_id") if message is not None else None,
    )


def decode_update(payload: Any) -> Optional[Update]:
    """Decode a Bot API Update.

    Returns None for update kinds the bot does not handle (edited messages,
    inline queries, ...). Raises DecodeError for malformed payloads.
    """

    if not isinstance(payload, Mapping):
        raise DecodeError("update must be a JSON object")
    update_id = _require(payload, "update_id", int)

    message = _object(payload, "message")
    if message is not None:
        return Update(update_id=update_id, message=build_message(message))

    callback_query = _object(payload, "callback_query")
    if callback_query is not None:
        return Update(update_id=update_id, callback_query=build_callback_query(callback_query))

    channel_post = _object(payload, "channel_post")
    if channel_post is not None:
        return Update(update_id=update_id, channel_post=build_message(channel_post))

    return None
