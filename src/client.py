"""Telegram client factory for share-file-bot.

We explicitly manage the client's lifecycle (start/disconnect) so it is
obvious when the bot session is created and when it ends.
"""

from __future__ import annotations

import logging

from telethon import TelegramClient

from settings import Settings


def build_client(settings: Settings) -> TelegramClient:
    """Create a Telethon client for the bot account.

    The client is started with the bot token by the caller; the session name
    creates a local .session file that caches entity access hashes.
    """

    logging.getLogger(__name__).info("Initializing Telegram client")

    return TelegramClient(settings.session_name, settings.api_id, settings.api_hash)
