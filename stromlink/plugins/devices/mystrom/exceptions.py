"""
Exceptions raised by the myStrom integration.
"""
from typing import Optional


class MyStromError(Exception):
    """Base class for all myStrom errors."""

    def __init__(self, message: str, device_id: Optional[str] = None):
        super().__init__(message)
        self.device_id = device_id


class NotReachableError(MyStromError):
    """Raised when a device is unknown or currently marked unreachable.

    Callers should treat this as "try again later"; no network I/O has been
    attempted.
    """

    def __init__(self, device_id: str):
        super().__init__(f"Device not reachable: {device_id}", device_id)


class InvalidResponseError(MyStromError):
    """Raised when a device answers with a malformed payload."""

    def __init__(self, device_id: str, reason: str):
        super().__init__(f"Invalid answer from {device_id}: {reason}", device_id)
        self.reason = reason


class TransportError(MyStromError):
    """Raised for network failures, non-200 answers and request timeouts."""

    def __init__(self, device_id: str, message: str, status: Optional[int] = None):
        super().__init__(f"Request to {device_id} failed: {message}", device_id)
        self.status = status
