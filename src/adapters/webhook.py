"""HTTP transport: webhook endpoint and health check.

The webhook enforces a strict order:
1) Source IP must belong to the platform's published ranges (401 otherwise)
2) Body must be JSON and decode into an Update (400 otherwise)
3) Resolve the sender to a user
4) Route the update
Failures after step 2 are reported with the raw update and answered with 200,
so the platform does not retry an update the bot already failed on.
"""

from __future__ import annotations

import ipaddress
import logging
import sqlite3
from typing import Iterable, List, Optional, Sequence, Union

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from adapters.telegram_mapper import decode_update
from core.errors import DecodeError
from core.ports import ErrorReporterPort, StoragePort
from core.router import UpdateRouter
from core.services import AuthService

LOGGER = logging.getLogger(__name__)

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

# https://core.telegram.org/bots/webhooks#the-short-version
TELEGRAM_NETWORKS = ("149.154.160.0/20", "91.108.4.0/22")
# Reverse proxies whose forwarding headers are trusted.
LOCAL_PROXIES = ("127.0.0.1/32", "::1/128")


def parse_networks(raw: Iterable[str]) -> List[IPNetwork]:
    return [ipaddress.ip_network(item.strip(), strict=False) for item in raw if item.strip()]


def _is_public(ip: str) -> bool:
    try:
        return ipaddress.ip_address(ip).is_global
    except ValueError:
        return False


def client_ip(request: Request, proxies: Sequence[IPNetwork] = ()) -> Optional[str]:
    """Return the originating client address.

    Forwarding headers are only honored when the socket peer is one of
    `proxies`. The first public X-Forwarded-For hop wins, then X-Real-IP.
    """

    peer = request.client.host if request.client else None
    if not is_trusted(peer, proxies):
        return peer

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        for candidate in forwarded.split(","):
            candidate = candidate.strip()
            if _is_public(candidate):
                return candidate
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return peer


def is_trusted(ip: Optional[str], networks: Sequence[IPNetwork]) -> bool:
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(address in network for network in networks)


def create_app(
    *,
    router: UpdateRouter,
    auth: AuthService,
    reporter: ErrorReporterPort,
    storage: StoragePort,
    webhook_path: str = "/",
    trusted_networks: Optional[Sequence[IPNetwork]] = None,
    trusted_proxies: Optional[Sequence[IPNetwork]] = None,
) -> FastAPI:
    """Create the FastAPI application serving the bot webhook."""

    networks = list(trusted_networks) if trusted_networks is not None else parse_networks(TELEGRAM_NETWORKS)
    proxies = list(trusted_proxies) if trusted_proxies is not None else parse_networks(LOCAL_PROXIES)
    app = FastAPI(title="share-file-bot", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/health")
    def health() -> Response:
        try:
            storage.ping()
        except sqlite3.Error as exc:
            LOGGER.warning("Health check failed: %s", exc)
            return JSONResponse({"status": "unhealthy"}, status_code=503)
        return JSONResponse({"status": "ok"})

    @app.post(webhook_path)
    async def webhook(request: Request) -> Response:
        ip = client_ip(request, proxies)
        if not is_trusted(ip, networks):
            LOGGER.warning("Rejected webhook call from untrusted address %s", ip)
            return Response(status_code=401)

        try:
            payload = await request.json()
        except ValueError as exc:
            return PlainTextResponse(f"invalid payload: {exc}", status_code=400)

        try:
            update = decode_update(payload)
        except (DecodeError, ValueError) as exc:
            return PlainTextResponse(f"invalid payload: {exc}", status_code=400)

        if update is None:
            LOGGER.debug("Skip unsupported update %s", payload.get("update_id"))
            return Response(status_code=200)

        try:
            sender = update.sender
            user = auth.resolve_or_create_user(sender) if sender is not None else None
            await router.dispatch(update, user)
        except Exception as exc:
            reporter.report(exc, payload)

        return Response(status_code=200)

    return app
