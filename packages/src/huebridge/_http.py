"""HTTP surface of the emulated bridge (aiohttp).

Routes::

    GET  /                          plain-text greeting
    GET  /description.xml           UPnP device description
    GET  /api/config                configuration document
    GET  /api/{user}/config         configuration document
    GET  /api/{user}                configuration document
    GET  /api/{user}/{resource}     {}
    POST /api, /api/                pairing acknowledgment
    *    /api/...                   {}

Handlers read the immutable :class:`BridgeIdentity` from the
application mapping; the app is only built once the identity exists.
Every client is treated as paired.  There is no authentication.
"""

from __future__ import annotations

import logging
import ssl
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from aiohttp import web

from huebridge._description import build_config, dumps_compact, render_description
from huebridge._errors import ListenError
from huebridge._identity import BridgeIdentity
from huebridge._settings import BridgeSettings, HttpSettings

logger = logging.getLogger(__name__)

IDENTITY_KEY = web.AppKey("identity", BridgeIdentity)
SETTINGS_KEY = web.AppKey("settings", BridgeSettings)
CLOCK_KEY = web.AppKey("clock", object)

GREETING = "Hello, World!"


def _json(data: Any) -> web.Response:
    return web.json_response(data, dumps=dumps_compact)


def _config(request: web.Request) -> dict[str, Any]:
    settings = request.app[SETTINGS_KEY]
    clock: Callable[[], datetime] | None = request.app[CLOCK_KEY]  # type: ignore[assignment]
    return build_config(
        request.app[IDENTITY_KEY],
        name=settings.bridge.name,
        api_username=settings.bridge.api_username,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def handle_index(request: web.Request) -> web.Response:
    """Plain-text liveness greeting."""
    return web.Response(text=GREETING)


async def handle_description(request: web.Request) -> web.Response:
    """Serve the UPnP device description pointed to by SSDP ``LOCATION``."""
    server = request.app.get(SERVER_KEY)
    # The bound plain-HTTP port, even when this request came in over HTTPS.
    port = server.port if server is not None else request.app[SETTINGS_KEY].http.port
    body = render_description(request.app[IDENTITY_KEY], port=port)
    return web.Response(text=body, content_type="text/xml", charset="utf-8")


async def handle_config(request: web.Request) -> web.Response:
    """Serve the bridge configuration document."""
    return _json(_config(request))


async def handle_api_root(request: web.Request) -> web.Response:
    """``POST`` pairs unconditionally; any other method gets ``{}``."""
    if request.method != "POST":
        return _json({})
    username = request.app[SETTINGS_KEY].bridge.api_username
    logger.info("Pairing request from %s acknowledged", request.remote)
    return _json([{"success": {"username": username}}])


async def handle_empty(request: web.Request) -> web.Response:
    """Resources the bridge does not model."""
    return _json({})


async def _add_security_headers(
    request: web.Request,
    response: web.StreamResponse,
) -> None:
    response.headers["X-Content-Type-Options"] = "nosniff"


def build_app(
    identity: BridgeIdentity,
    settings: BridgeSettings,
    *,
    clock: Callable[[], datetime] | None = None,
) -> web.Application:
    """Build the aiohttp application serving *identity*.

    Args:
        identity: The resolved bridge identity.
        settings: Bridge settings (HTTP port, bridge name, username).
        clock: Optional clock for the ``UTC`` config field.
    """
    app = web.Application()
    app[IDENTITY_KEY] = identity
    app[SETTINGS_KEY] = settings
    app[CLOCK_KEY] = clock
    app.on_response_prepare.append(_add_security_headers)

    router = app.router
    router.add_get("/", handle_index)
    router.add_get("/description.xml", handle_description)
    router.add_route("*", "/api", handle_api_root)
    router.add_route("*", "/api/", handle_api_root)
    router.add_get("/api/config", handle_config)
    router.add_get("/api/{user}/config", handle_config)
    router.add_get("/api/{user}", handle_config)
    router.add_get("/api/{user}/{resource}", handle_empty)
    router.add_route("*", "/api/{tail:.*}", handle_empty)
    return app


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


def load_tls_context(cert_file: str, key_file: str) -> ssl.SSLContext:
    """Server TLS context from a PEM key pair.

    Raises:
        OSError: If a file is missing or unreadable (``ssl.SSLError``
            is an ``OSError`` too).
    """
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(certfile=cert_file, keyfile=key_file)
    return context


class HttpServer:
    """Plain HTTP listener plus an optional HTTPS listener.

    The plain listener is required: a bind failure raises
    :class:`ListenError`.  The HTTPS listener is optional: any failure to
    load the key pair or bind is logged and the server carries on
    without it.
    """

    def __init__(self, app: web.Application, settings: HttpSettings) -> None:
        self._app = app
        app[SERVER_KEY] = self
        self._settings = settings
        self._runner: web.AppRunner | None = None
        self._tls_enabled = False

    @property
    def port(self) -> int:
        """Bound plain-HTTP port (resolves ``0`` to the ephemeral port)."""
        if self._runner is not None:
            for address in self._runner.addresses:
                if isinstance(address, tuple):
                    return address[1]
        return self._settings.port

    @property
    def tls_enabled(self) -> bool:
        """Whether the HTTPS listener is up."""
        return self._tls_enabled

    async def start(self) -> None:
        """Set up the runner and bind the listeners."""
        runner = web.AppRunner(self._app)
        await runner.setup()
        site = web.TCPSite(runner, self._settings.host, self._settings.port)
        try:
            await site.start()
        except OSError as exc:
            await runner.cleanup()
            msg = f"Cannot listen on {self._settings.host}:{self._settings.port}: {exc}"
            raise ListenError(msg) from exc
        self._runner = runner
        logger.info("HTTP listening on %s:%d", self._settings.host, self.port)

        if self._settings.tls_enabled:
            await self._start_tls(runner)

    async def _start_tls(self, runner: web.AppRunner) -> None:
        cert_file = self._settings.cert_file
        key_file = self._settings.key_file
        if not (Path(cert_file).is_file() and Path(key_file).is_file()):
            logger.info("HTTPS disabled: %s / %s not found", cert_file, key_file)
            return
        try:
            context = load_tls_context(cert_file, key_file)
            site = web.TCPSite(
                runner,
                self._settings.host,
                self._settings.https_port,
                ssl_context=context,
            )
            await site.start()
        except OSError as exc:
            logger.warning("HTTPS listener not started: %s", exc)
            return
        self._tls_enabled = True
        logger.info(
            "HTTPS listening on %s:%d",
            self._settings.host,
            self._settings.https_port,
        )

    async def stop(self) -> None:
        """Close all listeners.  Idempotent."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            self._tls_enabled = False
            logger.info("HTTP listeners stopped")


SERVER_KEY = web.AppKey("http_server", HttpServer)
