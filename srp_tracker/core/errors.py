"""
Typed errors for the SRP engine.

Every failure a caller can recover from is one of these classes, each with a
machine-readable code so the service boundary can report it without parsing
messages.
"""

from typing import Optional


class SrpError(Exception):
    """Base class for all recoverable SRP failures."""
    code = "srp_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SrpError, ValueError):
    """Malformed or out-of-range input. Safe to show the user verbatim."""
    code = "validation_error"


class NotFoundError(SrpError, LookupError):
    """A request id, asset type or fleet reference did not resolve."""
    code = "not_found"

    def __init__(self, kind: str, ref: object):
        super().__init__(f"{kind} not found: {ref}")
        self.kind = kind
        self.ref = ref


class InvalidTransitionError(SrpError):
    """The input is legal but the request's current status forbids it."""
    code = "invalid_transition"

    def __init__(self, current_status: str, event: str, detail: Optional[str] = None):
        message = f"cannot transition from {current_status} via {event}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.current_status = current_status
        self.event = event


class PermissionDeniedError(SrpError):
    """The actor's role does not allow the requested transition."""
    code = "permission_denied"


class ConfigError(SrpError):
    """Tier, catalog or settings data is missing or malformed."""
    code = "config_error"
