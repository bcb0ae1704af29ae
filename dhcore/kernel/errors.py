"""
Error taxonomy shared by every dhcore service.

Precondition errors (InvalidInputError, InvalidStateError, InvalidPathError)
are raised before anything is mutated. RemoteError wraps Core API failures,
TransferError wraps object store and local I/O failures for a single object,
and PartialSuccessError reports a transfer whose final status write failed.
"""
from typing import Any, Optional


class DHCoreError(Exception):
    """Base class for all dhcore errors."""


class InvalidInputError(DHCoreError, ValueError):
    """A required identifier, name or path was missing or unusable."""


class InvalidStateError(DHCoreError):
    def __init__(self, message: str, state: Optional[str] = None):
        super().__init__(message)
        self.state = state


class InvalidPathError(DHCoreError, ValueError):
    """A storage locator could not be parsed or has the wrong scheme."""


class RemoteError(DHCoreError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def __str__(self) -> str:
        if self.status_code:
            return f"core responded with {self.status_code}: {self.message}"
        return self.message


class TransferError(DHCoreError):
    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key
        # Set when the best-effort ERROR transition after this failure also failed.
        self.state_update_error: Optional[Exception] = None


class TransferCancelledError(TransferError):
    """Cancellation was observed at a per-file boundary."""


class PartialSuccessError(DHCoreError):
    """
    Every file was transferred but the final READY update was not persisted.

    `result` holds what a successful upload would have returned, so a caller
    can retry only the metadata write.
    """

    def __init__(self, message: str, result: Any, cause: Optional[Exception] = None):
        super().__init__(message)
        self.result = result
        self.cause = cause
