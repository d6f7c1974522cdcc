"""Public test-support utilities for huebridge.

Re-exports test doubles and factories so test suites can import
everything from a single ``huebridge.testing`` namespace.

Provided symbols:

- :class:`BridgeHarness`: controller wired with the doubles below.
- :class:`MockSsdpAdvertiser` / :class:`NullSsdpAdvertiser`: SSDP doubles.
- :class:`MockMdnsPublisher` / :class:`NullMdnsPublisher`: mDNS doubles.
- :class:`StaticInterfaceSource`: fixed interface snapshot.
- :class:`FakeClock`: deterministic clock for the ``UTC`` field.
- :func:`make_settings`: ``BridgeSettings`` without ``.env`` files.
"""

from huebridge._identity import StaticInterfaceSource
from huebridge._mdns import MockMdnsPublisher, NullMdnsPublisher
from huebridge._ssdp import MockSsdpAdvertiser, NullSsdpAdvertiser
from huebridge.testing._clock import FakeClock
from huebridge.testing._harness import BridgeHarness
from huebridge.testing._interfaces import (
    LOCAL_ADDRESS,
    VENDOR_HARDWARE_ADDRESS,
    eligible_interface,
    failing_probe,
    fixed_probe,
    loopback_interface,
)
from huebridge.testing._settings import make_settings

__all__ = [
    "LOCAL_ADDRESS",
    "VENDOR_HARDWARE_ADDRESS",
    "BridgeHarness",
    "FakeClock",
    "MockMdnsPublisher",
    "MockSsdpAdvertiser",
    "NullMdnsPublisher",
    "NullSsdpAdvertiser",
    "StaticInterfaceSource",
    "eligible_interface",
    "failing_probe",
    "fixed_probe",
    "loopback_interface",
    "make_settings",
]
