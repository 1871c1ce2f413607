"""Telegram Bot API adapter.

MTProto has no webhook concept and does not understand current Bot API file
ids, so webhook registration and media delivery go through the HTTP Bot API.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from core.models import FileKind, Keyboard, Media

LOGGER = logging.getLogger(__name__)

MAX_CONNECTIONS = 40
PARSE_MODE = "HTML"

# FileKind -> (method, file parameter)
MEDIA_METHODS: Dict[FileKind, Tuple[str, str]] = {
    FileKind.DOCUMENT: ("sendDocument", "document"),
    FileKind.PHOTO: ("sendPhoto", "photo"),
    FileKind.VIDEO: ("sendVideo", "video"),
    FileKind.AUDIO: ("sendAudio", "audio"),
    FileKind.VOICE: ("sendVoice", "voice"),
    FileKind.ANIMATION: ("sendAnimation", "animation"),
}


class BotAPIError(RuntimeError):
    pass


def inline_keyboard(keyboard: Keyboard) -> Optional[Dict[str, List[List[Dict[str, str]]]]]:
    if not keyboard:
        return None
    rows = []
    for row in keyboard:
        buttons = []
        for item in row:
            if item.url:
                buttons.append({"text": item.text, "url": item.url})
            else:
                buttons.append({"text": item.text, "callback_data": item.data or ""})
        rows.append(buttons)
    return {"inline_keyboard": rows}


class BotAPIClient:
    """Minimal async Bot API client."""

    def __init__(self, token: str, http: Optional[httpx.AsyncClient] = None) -> None:
        self._token = token
        self._http = http or httpx.AsyncClient(timeout=10)

    def _endpoint(self, method: str) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._token}/{method}"

    async def call(self, method: str, **params: Any) -> Any:
        response = await self._http.post(self._endpoint(method), json=params)
        payload = response.json()
        if not payload.get("ok"):
            raise BotAPIError(f"Bot API error {response.status_code}: {payload.get('description')}")
        return payload.get("result")

    async def set_webhook_if_needed(self, url: str) -> bool:
        """Point the bot's webhook at `url` unless it already is. Returns True on change."""

        info = await self.call("getWebhookInfo")
        current = (info or {}).get("url", "")
        if current == url:
            return False
        LOGGER.info("Update bot webhook: %s -> %s", current or "<none>", url)
        await self.call("setWebhook", url=url, max_connections=MAX_CONNECTIONS)
        return True

    async def send_media(
        self,
        chat_id: int,
        media: Media,
        caption: Optional[str] = None,
        keyboard: Keyboard = (),
        reply_to: Optional[int] = None,
    ) -> Any:
        """Send a stored file by its Bot API file id, using the method for its kind."""

        try:
            method, field = MEDIA_METHODS[media.kind]
        except KeyError:
            raise ValueError(f"cannot send media of kind {media.kind.value}") from None

        params: Dict[str, Any] = {"chat_id": chat_id, field: media.file_id}
        if caption:
            params["caption"] = caption
            params["parse_mode"] = PARSE_MODE
        markup = inline_keyboard(keyboard)
        if markup is not None:
            params["reply_markup"] = markup
        if reply_to is not None:
            params["reply_to_message_id"] = reply_to
            params["allow_sending_without_reply"] = True
        return await self.call(method, **params)

    async def aclose(self) -> None:
        await self._http.aclose()
