"""
Exceptions
==========
Only contract violations surface to the caller. Numerical degeneracies
(empty boundaries, solver breakdown, GPU failures, ...) are logged and
recovered inside the solver and never raise.
"""


class PermeabilityError(Exception):
    """Base class for all errors raised by this package."""


class NetworkError(PermeabilityError, ValueError):
    """A pore network violates its construction contract (e.g. a dangling throat)."""


class DeviceError(PermeabilityError, RuntimeError):
    """The GPU device context could not be created or a kernel failed."""
