"""Exception hierarchy for prxs-mesh.

All exceptions inherit from :class:`PrxsError` so callers can
catch broadly or narrowly as needed.
"""

from __future__ import annotations


class PrxsError(Exception):
    """Base exception for all prxs-mesh errors."""


class ConfigurationError(PrxsError):
    """A required setting is missing or malformed."""


class TransportError(PrxsError):
    """HTTP failure: connection error, non-2xx status, or malformed JSON."""


class TimeoutError(TransportError):
    """Request exceeded the configured timeout."""


# -- Registry errors ---------------------------------------------------------


class RegistryError(PrxsError):
    """Base exception for service registry operations."""


class ServiceNotFoundError(RegistryError):
    """The requested service does not exist in the registry."""


class BootstrapError(RegistryError):
    """No usable bootstrap multiaddr could be resolved."""


# -- Chain errors ------------------------------------------------------------


class ChainError(PrxsError):
    """The JSON-RPC endpoint returned an error or an invalid result."""


class AbiError(PrxsError):
    """ABI encoding failed or return data is malformed."""


class IdentityError(PrxsError):
    """Identity anchor lookup was called with invalid input."""


# -- Planning & tools --------------------------------------------------------


class PlanError(PrxsError):
    """An execution plan could not be built."""


class ToolError(PrxsError):
    """Error during tool registration or invocation."""
