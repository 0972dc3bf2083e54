"""
Exception taxonomy for hostprobe.

A missing registry key or value is never an exception: readers return None
(or an empty collection). Everything below is reserved for real failures.
"""
from typing import Optional


class HostProbeError(Exception):
    """Base class for all hostprobe errors."""


class TransportError(HostProbeError):
    """The target's configuration store could not be reached (network, access denied, RPC)."""

    def __init__(self, message: str, host: Optional[str] = None, winerror: Optional[int] = None):
        super().__init__(message)
        self.host = host
        self.winerror = winerror


class ProbeCancelled(HostProbeError):
    """Raised by an accessor read after the owning probe was cancelled or timed out."""


class SelectionError(HostProbeError):
    """No runnable command could be selected."""


class CatalogError(HostProbeError):
    """Invalid command or formatter registration."""


class InvalidTargetError(HostProbeError):
    """A target specification could not be parsed."""


class ConfigError(HostProbeError):
    """Invalid configuration file, environment variable or snapshot."""


class VersionFormatError(HostProbeError, ValueError):
    """A version string is not made of numeric dotted components."""


class ProbeTimeout(HostProbeError):
    """A command did not finish within the per-probe timeout."""
