"""
Error Types

All failures raised by peernet derive from PeernetError so callers can
catch the whole family in one place.

Receive timeouts are not part of this hierarchy: the builtin TimeoutError
(raised by asyncio.wait_for) is the expected "tick" of the detector loop.
"""


class PeernetError(Exception):
    """Base class for all peernet errors."""


class TransportError(PeernetError):
    """A socket could not be bound, configured, written or read."""


class DecodeError(PeernetError):
    """A datagram did not hold a valid encoded value."""


class SinkClosedError(PeernetError):
    """The consumer of membership updates is gone or cannot keep up."""


class ConfigError(PeernetError, ValueError):
    """Configuration values are missing or inconsistent."""
