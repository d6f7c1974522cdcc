"""Application configuration via pydantic-settings.

Configuration is loaded from environment variables and/or ``.env``
files.  Every variable carries the ``HUEBRIDGE_`` prefix and nested
models use ``__`` as the delimiter, e.g.
``HUEBRIDGE_HTTP__PORT=8080``.

The schema covers four concerns:

* **HTTP** — listen address, ports and the optional TLS key pair.
* **Discovery** — SSDP / mDNS switches and the advertisement timing.
* **Bridge** — the emulated bridge's name and API username.
* **Logging** — level, format, optional file sink, rotation.

All durations are in **seconds**.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# -------------------------------------------------------------------
# Sub-models (BaseModel, NOT BaseSettings — nested via composition)
# -------------------------------------------------------------------


class HttpSettings(BaseModel):
    """HTTP(S) listener configuration.

    Environment variables (with ``__`` nesting)::

        HUEBRIDGE_HTTP__HOST=0.0.0.0
        HUEBRIDGE_HTTP__PORT=80
        HUEBRIDGE_HTTP__HTTPS_PORT=443
        HUEBRIDGE_HTTP__CERT_FILE=cert.pem
        HUEBRIDGE_HTTP__KEY_FILE=key.pem
    """

    host: str = Field(
        default="0.0.0.0",  # noqa: S104
        description="Address the HTTP listeners bind to.",
    )
    port: Annotated[int, Field(ge=0, le=65535)] = Field(
        default=80,
        description=(
            "Plain HTTP port.  Hue clients expect 80; the SSDP location "
            "URL only carries an explicit port when this differs.  ``0`` "
            "binds an ephemeral port."
        ),
    )
    https_port: Annotated[int, Field(ge=0, le=65535)] = Field(
        default=443,
        description="HTTPS port, used when ``tls_enabled`` and the key pair exists.",
    )
    tls_enabled: bool = Field(
        default=True,
        description="Start the HTTPS listener when the certificate files exist.",
    )
    cert_file: str = Field(
        default="cert.pem",
        description="PEM certificate for the HTTPS listener.",
    )
    key_file: str = Field(
        default="key.pem",
        description="PEM private key for the HTTPS listener.",
    )


class DiscoverySettings(BaseModel):
    """SSDP and mDNS advertisement configuration."""

    reannounce_interval: Annotated[float, Field(gt=0)] = Field(
        default=300.0,
        description="Seconds between SSDP ``ssdp:alive`` re-announcements.",
    )
    max_age: Annotated[int, Field(ge=1)] = Field(
        default=1200,
        description=(
            "Advertisement TTL sent as ``CACHE-CONTROL: max-age``. "
            "Should comfortably exceed ``reannounce_interval``."
        ),
    )
    ssdp_enabled: bool = Field(
        default=True,
        description="Advertise over SSDP (UPnP multicast discovery).",
    )
    mdns_enabled: bool = Field(
        default=True,
        description="Register the ``_hue._tcp`` mDNS service record.",
    )
    mdns_port: Annotated[int, Field(ge=1, le=65535)] | None = Field(
        default=None,
        description="Port published in the mDNS record.  ``None`` means the HTTP port.",
    )
    probe_target: str = Field(
        default="8.8.8.8",
        description=(
            "Public IPv4 address used for the route probe that picks the "
            "local address.  No packet is ever sent to it."
        ),
    )

    def published_mdns_port(self, http_port: int) -> int:
        """Port for the mDNS record: ``mdns_port``, else the bound *http_port*."""
        return self.mdns_port or http_port


class BridgeInfoSettings(BaseModel):
    """Values surfaced by the emulated bridge's configuration document."""

    name: str = Field(
        default="Go Hue Bridge",
        description="Bridge name reported in the ``config`` document.",
    )
    api_username: str = Field(
        default="nouser",
        min_length=1,
        description=(
            "Username handed out by the pairing stub and listed as the "
            "single whitelist entry."
        ),
    )


class LoggingSettings(BaseModel):
    """Where and how the bridge logs.

    stderr is always a sink.  Setting ``file`` adds a size-rotated log
    file next to it.  ``format="json"`` suits journald or a container
    log collector; ``format="text"`` is meant for a terminal.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level.",
    )
    format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format: 'json' lines or human-readable 'text'.",
    )
    library_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description=(
            "Level for the zeroconf and aiohttp access loggers. "
            "Ignored when ``level`` is DEBUG."
        ),
    )
    file: str | None = Field(
        default=None,
        description="Optional log file path. ``None`` means stderr only.",
    )
    max_file_size_mb: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description=(
            "Maximum log file size in megabytes before rotation. "
            "Only applies when ``file`` is set."
        ),
    )
    backup_count: Annotated[int, Field(ge=0)] = Field(
        default=3,
        description="Number of rotated log files to keep.",
    )


# -------------------------------------------------------------------
# Root settings
# -------------------------------------------------------------------


class BridgeSettings(BaseSettings):
    """Root settings for the emulated bridge.

    Example ``.env``::

        HUEBRIDGE_HTTP__PORT=8080
        HUEBRIDGE_HTTP__TLS_ENABLED=false
        HUEBRIDGE_DISCOVERY__REANNOUNCE_INTERVAL=120
        HUEBRIDGE_LOGGING__LEVEL=DEBUG
        HUEBRIDGE_LOGGING__FORMAT=text
    """

    model_config = SettingsConfigDict(
        env_prefix="HUEBRIDGE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    http: HttpSettings = Field(
        default_factory=HttpSettings,
        description="HTTP(S) listener settings.",
    )
    discovery: DiscoverySettings = Field(
        default_factory=DiscoverySettings,
        description="SSDP / mDNS advertisement settings.",
    )
    bridge: BridgeInfoSettings = Field(
        default_factory=BridgeInfoSettings,
        description="Emulated bridge metadata.",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration.",
    )
