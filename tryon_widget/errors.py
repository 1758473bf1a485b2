"""
Exceptions raised by the try-on widget adapters.

The orchestrator and the frame bridge catch these and turn them into
user-facing messages; listeners never see them raised.
"""


class TryOnError(Exception):
    """Base exception for try-on widget errors."""
    pass


class ValidationError(TryOnError):
    """A precondition failed before any network call was made."""
    pass


class BlobConversionError(ValidationError):
    """An image could not be turned into an uploadable payload."""

    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.source = source


class NetworkError(TryOnError):
    """Transport failure, non-2xx response or malformed payload."""

    def __init__(self, message: str, status_code: int = None, code: str = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class ActionTimeoutError(TryOnError):
    """The host page did not acknowledge a cart action in time."""

    def __init__(self, action: str, timeout: float):
        super().__init__(
            f"No confirmation received from the store for {action} after {timeout:g} seconds. "
            "Check your cart before trying again."
        )
        self.action = action
        self.timeout = timeout
