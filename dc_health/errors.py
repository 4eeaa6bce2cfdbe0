# errors.py
# DiscoveryError aborts a run; ProbeError and its subclasses stay inside one result cell.


class DiscoveryError(Exception):
    """Directory lookup could not produce a complete host list."""


class ProbeError(Exception):
    """An external capability call failed to produce an answer."""


class RemoteTimeoutError(ProbeError):
    """Remote call exceeded its time bound."""


class RemoteAccessDenied(ProbeError):
    """Remote host refused the credentials."""


class RemoteQueryError(ProbeError):
    """Remote call failed or returned output that could not be parsed."""
