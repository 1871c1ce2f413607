"""Application entry point for share-file-bot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

import httpx
import uvicorn
from art import tprint

from adapters.bot_api import BotAPIClient
from adapters.error_reporter import LoggingErrorReporter
from adapters.sqlite_storage import SQLiteStateStore, SQLiteStorage
from adapters.telegram_bot_client import TelethonMembership, TelethonMessenger
from adapters.webhook import create_app, parse_networks
from client import build_client
from core.access import AccessControl
from core.handlers import BotHandlers
from core.rendering import Renderer
from core.router import UpdateRouter
from core.services import AdminService, AuthService, ChatService, FileService
from settings import Settings, load_settings

NAME = "SHARE FILE"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(settings.secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    if settings.log_file:
        path = settings.log_file
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    # Telethon is chatty at DEBUG; keep it at INFO unless something breaks.
    logging.getLogger("telethon").setLevel(max(level, logging.INFO))


async def _serve(settings: Settings) -> None:
    logger = logging.getLogger(__name__)
    logger.info("Start, revision %s (env %s)", settings.revision, settings.env)

    logger.info("Open database %s", settings.db_path)
    storage = SQLiteStorage(settings.db_path)
    storage.init_db()
    state = SQLiteStateStore(settings.db_path)
    removed = state.cleanup_expired()
    logger.info("Session cleanup removed %s expired states", removed)

    client = build_client(settings)
    await client.start(bot_token=settings.token)
    me = await client.get_me()
    logger.info("Bot is alive: https://t.me/%s", me.username)

    bot_api = BotAPIClient(settings.token)
    try:
        auth = AuthService(storage, admin_ids=settings.admin_ids)
        files = FileService(storage)
        chats = ChatService(storage, TelethonMembership(client))
        handlers = BotHandlers(
            auth=auth,
            files=files,
            chats=chats,
            admin=AdminService(storage),
            access=AccessControl(files, chats),
            state=state,
            messenger=TelethonMessenger(client, bot_api),
            renderer=Renderer(bot_username=me.username, revision=settings.revision),
            state_ttl=settings.state_ttl,
        )
        router = UpdateRouter(handlers, state)
        app = create_app(
            router=router,
            auth=auth,
            reporter=LoggingErrorReporter(),
            storage=storage,
            webhook_path=settings.webhook_path,
            trusted_networks=parse_networks(settings.trusted_networks),
            trusted_proxies=parse_networks(settings.trusted_proxies),
        )

        if settings.webhook_url.startswith("https://"):
            await bot_api.set_webhook_if_needed(settings.webhook_url)
        else:
            logger.warning("Webhook URL %s is not absolute https, skip registration", settings.webhook_url)

        # Dry run validates configuration and connectivity, then exits.
        if settings.dry_run:
            logger.info("Dry run, exiting")
            return

        logger.info("Start server on %s:%s, webhook path %s", settings.host, settings.port, settings.webhook_path)
        config = uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
        await uvicorn.Server(config).serve()
    finally:
        logger.info("Shutdown")
        await bot_api.aclose()
        await client.disconnect()


def _run(env_file: Optional[str]) -> None:
    _print_banner()
    settings = load_settings(env_file)
    _configure_logging(settings)
    asyncio.run(_serve(settings))


def _health(env_file: Optional[str]) -> int:
    settings = load_settings(env_file)
    url = f"http://127.0.0.1:{settings.port}/health"
    try:
        response = httpx.get(url, timeout=5)
    except httpx.HTTPError as exc:
        print(f"health check failed: {exc}", file=sys.stderr)
        return 1
    if response.status_code != 200:
        print(f"health check failed: HTTP {response.status_code}", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="share-file-bot")
    parser.add_argument("--config", help="Load environment variables from this dotenv file")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the webhook server")
    subparsers.add_parser("health", help="Check a running server and exit non-zero when unhealthy")

    args = parser.parse_args(argv)
    if args.command == "health":
        sys.exit(_health(args.config))
    _run(args.config)


if __name__ == "__main__":
    main()
