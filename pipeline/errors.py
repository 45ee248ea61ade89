"""
Exception types raised by the purchase-order pipeline.

Lower layers (data source, webhook dispatch) raise these; the flow and the
loaders catch them at their boundary and turn them into displayable state.
"""
from typing import Optional


class PODrafterError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(PODrafterError):
    """A required setting (endpoint, credentials) is missing."""


class DataSourceError(PODrafterError):
    """A query against the hosted data API failed."""

    def __init__(self, message: str, code: Optional[str] = None,
                 status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class FetchError(PODrafterError):
    """Suppliers or templates could not be loaded. The message is user-facing."""


class SubmissionValidationError(PODrafterError):
    """The order is not ready to submit (no supplier, or nothing selected)."""


class SubmissionError(PODrafterError):
    """The workflow webhook rejected the order or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthorizationError(PODrafterError):
    """The current session may not perform the requested action."""
