"""
Exception hierarchy for the tracker.

Every error carries the HTTP status class it maps to and whether a caller
may safely retry. Nothing in the tracker retries on its own.
"""

from typing import Optional


class TrackerError(Exception):
    """Base exception for all tracker errors."""

    status_code: int = 500
    retryable: bool = False


class ValidationError(TrackerError):
    """Bad or missing input. User-correctable."""

    status_code = 400


class CarrierDetectionError(TrackerError):
    """The identifier does not match any known carrier format."""

    status_code = 400

    def __init__(self, tracking_number: str):
        self.tracking_number = tracking_number
        super().__init__(f'Could not detect carrier for "{tracking_number}".')


class ConfigurationError(TrackerError):
    """Required configuration (e.g. provider credentials) is missing."""


class UpstreamError(TrackerError):
    """Base class for failures talking to a carrier or provider."""


class UpstreamAuthError(UpstreamError):
    """
    Authentication with the provider was rejected.

    When ``requires_manual_action`` is set the provider asked for a second
    factor or a bot-verification challenge; an operator has to resolve it.
    """

    def __init__(self, message: str, *, requires_manual_action: bool = False):
        self.requires_manual_action = requires_manual_action
        if requires_manual_action:
            message = f"{message} Manual resolution is required."
        super().__init__(message)


class UpstreamFetchError(UpstreamError):
    """Network or transport failure reaching a provider."""

    retryable = True

    def __init__(
        self,
        message: str,
        *,
        url: str = "",
        status: Optional[int] = None,
    ):
        self.url = url
        self.status = status
        super().__init__(message)


class UpstreamParseError(UpstreamError):
    """Provider page had no recognizable structure and no status text."""
