"""
Platform-wide exception hierarchy.

Services raise these types; blueprints translate them into the standard
JSON error body once (see ``app.utils.errors``).

Usage:
    from app.core.exceptions import MatrixSourceError, ValidationError

    raise ValidationError("interval_seconds must be one of 10, 30, 60, 300")
    raise MatrixSourceError("people", "relation \"users\" does not exist")
    raise LiveRefreshStoppedError("Training matrix live host is not running")
"""


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 400 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class MatrixSourceError(Exception):
    """Raised when a training-matrix data source cannot be read.

    Only required sources escalate to this error; the optional
    historical-completions source degrades to an empty set instead.
    A fetch that times out is reported with ``source="all"``.

    Maps to HTTP 503.

    Args:
        source: Logical source name (people, modules, documents, assignments).
        reason: Underlying failure text. Logged; echoed to API callers.
    """

    def __init__(self, source: str, reason: str = "") -> None:
        self.source = source
        self.reason = reason
        msg = f"Failed to load {source}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class LiveRefreshStoppedError(RuntimeError):
    """Raised when a command is sent to a live matrix host whose loop has exited.

    Maps to HTTP 409.
    """
