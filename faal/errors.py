# faal/errors.py
"""
Error taxonomy for FAAL.

Every error raised by an adapter or by the factory derives from StorageError.
Where a builtin exception already names the condition (ConnectionError,
FileNotFoundError, ValueError) it is mixed in, so callers catching builtins
keep working.
"""
from typing import List, Optional, Tuple


class StorageError(Exception):
    """Base class for all FAAL errors."""


class NotConnectedError(StorageError, ConnectionError):
    """A file or directory operation was attempted while disconnected."""

    def __init__(self, protocol: str, operation: str):
        self.protocol = protocol
        self.operation = operation
        super().__init__(
            f"not connected: {protocol} {operation} requires an active connection, "
            f"call connect() first"
        )


class ConnectionFailureError(StorageError, ConnectionError):
    """A step of connection establishment failed."""

    def __init__(self, protocol: str, step: str, cause: Optional[BaseException] = None):
        self.protocol = protocol
        self.step = step
        self.cause = cause
        message = f"{protocol} connect failed at step '{step}'"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class DisconnectError(StorageError):
    """
    One or more teardown steps failed.

    Teardown attempts every step regardless of earlier failures; ``errors``
    holds a ``(step, exception)`` pair for each one that failed.
    """

    def __init__(self, protocol: str, errors: List[Tuple[str, BaseException]]):
        self.protocol = protocol
        self.errors = list(errors)
        details = "; ".join(f"{step}: {exc}" for step, exc in self.errors)
        super().__init__(f"errors closing {protocol} client: {details}")


class StorageOperationError(StorageError):
    """A file or directory operation failed against the backend."""

    def __init__(
        self,
        operation: str,
        path: str,
        cause: Optional[BaseException] = None,
        message: Optional[str] = None,
    ):
        self.operation = operation
        self.path = path
        self.cause = cause
        if message is None:
            message = f"{operation} failed for {path}"
            if cause is not None:
                message = f"{message}: {cause}"
        super().__init__(message)


class NotFoundError(StorageOperationError, FileNotFoundError):
    """The target of a read, stat or delete does not exist."""


class BackendProtocolError(StorageOperationError):
    """The backend answered with a non-success status."""

    def __init__(
        self,
        operation: str,
        path: str,
        status: object,
        cause: Optional[BaseException] = None,
    ):
        self.status = status
        super().__init__(
            operation,
            path,
            cause=cause,
            message=f"{operation} failed for {path}: backend returned status {status}",
        )


class UnsupportedProtocolError(StorageError, ValueError):
    """The descriptor names a protocol no adapter exists for."""

    def __init__(self, protocol: str):
        self.protocol = protocol
        super().__init__(f"unsupported protocol: {protocol}")


class UnsupportedPlatformError(StorageError):
    """The protocol is known but cannot run on this host OS."""

    def __init__(self, protocol: str, platform: str, message: Optional[str] = None):
        self.protocol = protocol
        self.platform = platform
        super().__init__(
            message or f"{protocol} protocol is not supported on platform {platform}"
        )


class ConfigurationError(StorageError, ValueError):
    """Backend configuration is missing a required value or is invalid."""
