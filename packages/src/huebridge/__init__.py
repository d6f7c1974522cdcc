"""huebridge.

Emulates a Philips Hue bridge on the local network: derives a stable
identity from the host, advertises it over SSDP and mDNS, and answers
the minimal HTTP API clients need for discovery and pairing.
"""

from importlib.metadata import PackageNotFoundError, version

from huebridge._advertiser import AdvertiserState, DiscoveryAdvertiser
from huebridge._description import (
    build_config,
    render_config,
    render_description,
)
from huebridge._errors import (
    AdvertiseError,
    AdvertiserStateError,
    BridgeError,
    ListenError,
    RenderError,
    ResolutionError,
    ResolutionErrorKind,
)
from huebridge._http import HttpServer, build_app
from huebridge._identity import (
    BridgeIdentity,
    InterfaceSource,
    NetworkInterface,
    PsutilInterfaceSource,
    StaticInterfaceSource,
    resolve_identity,
)
from huebridge._lifecycle import BridgeController
from huebridge._logging import JsonFormatter, configure_logging
from huebridge._mdns import MdnsPort, MdnsPublisher, NullMdnsPublisher, ServiceRecord
from huebridge._settings import (
    BridgeInfoSettings,
    BridgeSettings,
    DiscoverySettings,
    HttpSettings,
    LoggingSettings,
)
from huebridge._ssdp import (
    AdvertisementRecord,
    NullSsdpAdvertiser,
    SsdpAdvertiser,
    SsdpPort,
)

try:
    __version__ = version("huebridge")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Controller
    "BridgeController",
    # Identity
    "BridgeIdentity",
    "InterfaceSource",
    "NetworkInterface",
    "PsutilInterfaceSource",
    "StaticInterfaceSource",
    "resolve_identity",
    # Documents
    "build_config",
    "render_config",
    "render_description",
    # Discovery
    "AdvertisementRecord",
    "AdvertiserState",
    "DiscoveryAdvertiser",
    "MdnsPort",
    "MdnsPublisher",
    "NullMdnsPublisher",
    "NullSsdpAdvertiser",
    "ServiceRecord",
    "SsdpAdvertiser",
    "SsdpPort",
    # HTTP
    "HttpServer",
    "build_app",
    # Errors
    "AdvertiseError",
    "AdvertiserStateError",
    "BridgeError",
    "ListenError",
    "RenderError",
    "ResolutionError",
    "ResolutionErrorKind",
    # Logging
    "JsonFormatter",
    "configure_logging",
    # Settings
    "BridgeInfoSettings",
    "BridgeSettings",
    "DiscoverySettings",
    "HttpSettings",
    "LoggingSettings",
]
