"""Process configuration for share-file-bot.

All settings come from SFB_* environment variables. A dotenv file is loaded
first (the one passed with --config, else ./.env) so secrets stay out of the
repo.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional, Tuple
from urllib.parse import urlparse

from dotenv import load_dotenv

from adapters.webhook import LOCAL_PROXIES, TELEGRAM_NETWORKS
from core.errors import ConfigError
from core.state import DEFAULT_STATE_TTL

ENV_PREFIX = "SFB_"

ENV_LOCAL = "local"
ENV_STAGING = "staging"
ENV_PRODUCTION = "production"


@dataclass(frozen=True)
class Settings:
    token: str
    api_id: int
    api_hash: str
    session_name: str = "share-file-bot"
    env: str = ENV_LOCAL
    db_path: str = "share_file_bot.db"
    host: str = "0.0.0.0"
    port: int = 8000
    webhook_url: str = "/"
    trusted_networks: Tuple[str, ...] = TELEGRAM_NETWORKS
    trusted_proxies: Tuple[str, ...] = LOCAL_PROXIES
    state_ttl: timedelta = DEFAULT_STATE_TTL
    admin_ids: Tuple[int, ...] = ()
    revision: str = "unknown"
    dry_run: bool = False
    log_level: str = "DEBUG"
    log_file: Optional[str] = None

    @property
    def webhook_path(self) -> str:
        return urlparse(self.webhook_url).path or "/"

    @property
    def secrets(self) -> list[str]:
        """Values the log formatter must redact."""

        return [self.token, self.api_hash]


def _bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _csv(value: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _env_name(value: str) -> str:
    # Unknown environments fall back to local.
    lowered = value.strip().lower()
    if lowered in {ENV_LOCAL, ENV_STAGING, ENV_PRODUCTION}:
        return lowered
    return ENV_LOCAL


def settings_from_env(environ: Mapping[str, str]) -> Settings:
    """Build Settings from a mapping of environment variables."""

    def get(name: str, default: Optional[str] = None) -> Optional[str]:
        value = environ.get(ENV_PREFIX + name)
        return value if value not in (None, "") else default

    missing = [ENV_PREFIX + name for name in ("TOKEN", "API_ID", "API_HASH") if not get(name)]
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    try:
        api_id = int(get("API_ID") or "")
        port = int(get("PORT", "8000") or "8000")
        state_ttl = timedelta(seconds=int(get("STATE_TTL", "") or DEFAULT_STATE_TTL.total_seconds()))
        admin_ids = tuple(int(item) for item in _csv(get("ADMIN_IDS", "") or ""))
    except ValueError as exc:
        raise ConfigError(f"Invalid numeric setting: {exc}") from exc

    networks = _csv(get("TRUSTED_NETWORKS", "") or "") or TELEGRAM_NETWORKS
    proxies = _csv(get("TRUSTED_PROXIES", "") or "") or LOCAL_PROXIES

    return Settings(
        token=get("TOKEN") or "",
        api_id=api_id,
        api_hash=get("API_HASH") or "",
        session_name=get("SESSION_NAME", "share-file-bot") or "share-file-bot",
        env=_env_name(get("ENV", ENV_LOCAL) or ENV_LOCAL),
        db_path=get("DB_PATH", "share_file_bot.db") or "share_file_bot.db",
        host=get("HOST", "0.0.0.0") or "0.0.0.0",
        port=port,
        webhook_url=get("WEBHOOK_URL", "/") or "/",
        trusted_networks=networks,
        trusted_proxies=proxies,
        state_ttl=state_ttl,
        admin_ids=admin_ids,
        revision=get("REVISION", "unknown") or "unknown",
        dry_run=_bool(get("DRY_RUN", "false") or "false"),
        log_level=(get("LOG_LEVEL", "DEBUG") or "DEBUG").upper(),
        log_file=get("LOG_FILE"),
    )


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Load a dotenv file into the process environment and parse settings."""

    if env_file:
        if not os.path.exists(env_file):
            raise ConfigError(f"Config file not found: {env_file}")
        load_dotenv(env_file)
    else:
        load_dotenv()
    return settings_from_env(os.environ)
