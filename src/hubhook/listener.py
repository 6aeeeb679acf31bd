"""Webhook listener that turns GitHub push notifications into queued updates."""

import asyncio
import hashlib
import hmac
import json
import logging
from typing import Any

from aiohttp import web

from .config import Config
from .constants import APP_NAME
from .dispatch import DispatchQueue, QueueClosed

logger = logging.getLogger(APP_NAME)

CONFIG_KEY = web.AppKey("config", Config)
QUEUE_KEY = web.AppKey("queue", DispatchQueue)

_DIGESTS = {"sha256": hashlib.sha256, "sha1": hashlib.sha1}


def verify_signature(secret: str, payload: bytes, signature: str) -> bool:
    """Verifies a GitHub webhook HMAC signature header.

    Args:
        secret (str): The shared secret.
        payload (bytes): The raw request body.
        signature (str): The header value, e.g. 'sha256=<hex>' or 'sha1=<hex>'.

    Returns:
        bool: True if the signature matches the payload.
    """
    algorithm, _, expected = signature.partition("=")
    digest = _DIGESTS.get(algorithm)
    if digest is None or not expected:
        logger.warning(f"Invalid signature format: {signature!r}")
        return False

    computed = hmac.new(secret.encode(), payload, digest).hexdigest()
    return hmac.compare_digest(computed, expected)


def extract_repository(data: Any) -> str | None:
    """Returns the `owner/name` of the repository a notification refers to."""
    if not isinstance(data, dict):
        return None
    repo = data.get("repository")
    if not isinstance(repo, dict):
        return None

    full_name = repo.get("full_name")
    if isinstance(full_name, str) and full_name:
        return full_name

    owner = repo.get("owner")
    if not isinstance(owner, dict):
        return None
    owner_name = owner.get("login") or owner.get("name")
    name = repo.get("name")
    if owner_name and name:
        return f"{owner_name}/{name}"
    return None


async def handle_webhook(request: web.Request) -> web.Response:
    """Authenticates a notification and queues its repository for update."""
    config = request.app[CONFIG_KEY]
    queue = request.app[QUEUE_KEY]

    try:
        payload = await request.read()
    except Exception:
        logger.exception("Failed to read webhook payload")
        return web.Response(text="Bad Request", status=400)

    if config.secret:
        signature = request.headers.get("X-Hub-Signature-256") or request.headers.get(
            "X-Hub-Signature", ""
        )
        if not verify_signature(config.secret, payload, signature):
            logger.warning("Webhook signature verification failed")
            return web.Response(text="Forbidden", status=403)
    elif not config.allow_unsigned:
        logger.warning("Rejecting webhook: no secret configured")
        return web.Response(text="Forbidden", status=403)

    event_type = request.headers.get("X-GitHub-Event", "push")
    if event_type == "ping":
        logger.info("Received ping event")
        return web.Response(text="OK", status=200)

    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Failed to parse webhook JSON")
        return web.Response(text="Bad Request", status=400)

    repository = extract_repository(data)
    if repository is None:
        logger.warning("Missing repository info in webhook payload")
        return web.Response(text="Bad Request", status=400)

    try:
        queue.put(repository)
    except QueueClosed:
        logger.error(f"Dropping {event_type} event for {repository}: shutting down")
        return web.Response(text="Service Unavailable", status=503)

    logger.info(f"Received {event_type} event for {repository}: queued")
    return web.Response(text="Accepted", status=202)


async def handle_health(_request: web.Request) -> web.Response:
    """Health check endpoint."""
    return web.Response(text="OK", status=200)


def create_app(config: Config, queue: DispatchQueue) -> web.Application:
    """Builds the listener application.

    Args:
        config (Config): The configuration snapshot (for the shared secret).
        queue (DispatchQueue): Where accepted notifications are queued.

    Returns:
        web.Application: The configured application.
    """
    app = web.Application()
    app[CONFIG_KEY] = config
    app[QUEUE_KEY] = queue
    app.router.add_post("/", handle_webhook)
    app.router.add_post("/webhook", handle_webhook)
    app.router.add_get("/health", handle_health)
    return app


def parse_address(address: str) -> tuple[str, int]:
    """Splits a 'HOST:PORT' string.

    Raises:
        ValueError: If the port is missing or not a valid number.
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit() or not 0 < int(port) < 65536:
        raise ValueError(f"Invalid server address '{address}' (expected HOST:PORT)")
    return host.strip("[]") or "0.0.0.0", int(port)


class WebhookServer:
    """Runs the listener application until cancelled."""

    def __init__(self, config: Config, queue: DispatchQueue, host: str, port: int):
        self._app = create_app(config, queue)
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    async def start(self) -> None:
        """Start the webhook server."""
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()

        logger.info(f"Starting {APP_NAME} server on {self._host}:{self._port}")

    async def stop(self) -> None:
        """Stop the webhook server."""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()

        logger.info("Webhook server stopped")

    async def run_forever(self) -> None:
        """Start server and run until cancelled."""
        await self.start()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await self.stop()
