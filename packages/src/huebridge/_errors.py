"""Exception taxonomy for the emulated bridge.

Hierarchy::

    BridgeError
    ├── ResolutionError        ← identity could not be derived (fatal)
    ├── AdvertiseError         ← discovery registration failed (fatal)
    ├── ListenError            ← plain HTTP listener could not bind (fatal)
    ├── AdvertiserStateError   ← operation invalid in the current state
    └── RenderError            ← unresolved template placeholder (bug)

Startup behaviour:

- **No retries** — resolution, registration and the HTTP bind either
  succeed once or the process refuses to run.  The CLI maps all three to
  :data:`EXIT_STARTUP_ERROR`.
- ``RenderError`` marks a programming error.  Nothing catches it.
- Failures of the recurring re-announcement are logged by the
  advertiser and never reach this module's types.
"""

from __future__ import annotations

import enum


class BridgeError(Exception):
    """Base class for all huebridge errors."""


class ResolutionErrorKind(enum.Enum):
    """Which half of the identity could not be resolved."""

    NO_HARDWARE_ADDRESS = "no_hardware_address"
    NO_LOCAL_ADDRESS = "no_local_address"


class ResolutionError(BridgeError):
    """The bridge identity could not be derived from host network state.

    Args:
        kind: Which part of the identity failed.
        message: Optional human-readable detail.  Defaults to a
            description of *kind*.
    """

    _DEFAULT_MESSAGES = {
        ResolutionErrorKind.NO_HARDWARE_ADDRESS: (
            "No eligible network interface with a vendor-assigned hardware address"
        ),
        ResolutionErrorKind.NO_LOCAL_ADDRESS: "Could not determine a local IPv4 address",
    }

    def __init__(self, kind: ResolutionErrorKind, message: str | None = None) -> None:
        self.kind = kind
        super().__init__(message or self._DEFAULT_MESSAGES[kind])


class AdvertiseError(BridgeError):
    """A discovery mechanism could not bind, join or register."""


class ListenError(BridgeError):
    """The plain HTTP listener could not bind its address."""


class AdvertiserStateError(BridgeError):
    """An advertiser operation was called in a state that forbids it."""


class RenderError(BridgeError):
    """A document template still contains an unresolved placeholder."""
