# faal/base_fs.py
"""
Base filesystem interface for all storage protocols.

This interface defines the contract every protocol adapter implements.
It is protocol-agnostic: SMB, FTP, NFS, WebDAV and the local filesystem
all satisfy it, so a consumer switches backends by changing configuration.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, ClassVar, List, Protocol

from faal.errors import NotConnectedError
from faal.models import BackendConfig, StorageDescriptor

DEFAULT_PERMISSION_BITS = 0o644


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FileEntry:
    """
    Information about a file or directory.

    ``path`` is always caller-relative, never rooted at the backend.
    """
    name: str
    size: int = 0
    modified_at: datetime = field(default_factory=_utcnow)
    is_directory: bool = False
    permission_bits: int = DEFAULT_PERMISSION_BITS
    path: str = ""


class FileStorageProvider(ABC):
    """
    Abstract base class for protocol adapters.

    Every adapter owns its connection handles exclusively. An instance is not
    safe for concurrent use: operations on one instance must be awaited one
    at a time.

    Lifecycle is Disconnected -> Connected -> Disconnected. Every file and
    directory operation checks the state first and raises NotConnectedError
    without touching the backend when disconnected.
    """

    protocol: ClassVar[str] = "unknown"

    def __init__(self, config: BackendConfig):
        """
        Initialize adapter with configuration.

        Args:
            config: Typed, immutable backend configuration
        """
        self.config = config

    def _ensure_connected(self, operation: str) -> None:
        """Fail fast when the adapter is not connected."""
        if not self.is_connected():
            raise NotConnectedError(self.protocol, operation)

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish connection to the storage backend.

        Either every establishment step succeeds, or handles opened so far are
        torn down and ConnectionFailureError names the failing step.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """
        Close connection to the storage backend.

        Missing handles are a no-op, so calling it twice is safe.
        """

    @abstractmethod
    def is_connected(self) -> bool:
        """Report whether live connection handles are present."""

    @abstractmethod
    async def test_connection(self) -> None:
        """
        Run a cheap probe against the live backend.

        Raises:
            NotConnectedError: If not connected
        """

    @abstractmethod
    async def read_file(self, path: str) -> bytes:
        """
        Read file contents as bytes.

        Raises:
            NotFoundError: If file doesn't exist
        """

    @abstractmethod
    async def write_file(self, path: str, data: bytes) -> None:
        """Create or truncate a file and write ``data`` to it."""

    @abstractmethod
    async def get_file_info(self, path: str) -> FileEntry:
        """
        Get information about a file or directory.

        Raises:
            NotFoundError: If path doesn't exist
        """

    @abstractmethod
    async def file_exists(self, path: str) -> bool:
        """
        Check if file or directory exists.

        A missing path is reported as False, never as an error.
        """

    @abstractmethod
    async def delete_file(self, path: str) -> None:
        """Delete a file."""

    @abstractmethod
    async def copy_file(self, source: str, destination: str) -> None:
        """Copy a file within the same backend."""

    @abstractmethod
    async def list_directory(self, path: str = "") -> List[FileEntry]:
        """List the entries of one directory level."""

    @abstractmethod
    async def create_directory(self, path: str) -> None:
        """Create a directory."""

    @abstractmethod
    async def delete_directory(self, path: str) -> None:
        """Delete a directory."""

    def get_protocol(self) -> str:
        """Return the protocol tag."""
        return self.protocol

    def get_config(self) -> BackendConfig:
        """Return the adapter's backend configuration."""
        return self.config

    async def stream_read(
        self,
        path: str,
        chunk_size: int = 8192
    ) -> AsyncIterator[bytes]:
        """
        Stream read a file in chunks.

        Default implementation reads entire file and yields it.
        Protocol adapters may override for true streaming.

        Args:
            path: File path
            chunk_size: Size of chunks to read

        Yields:
            Bytes chunks
        """
        data = await self.read_file(path)
        for i in range(0, len(data), chunk_size):
            yield data[i:i + chunk_size]

    async def stream_write(
        self,
        path: str,
        data_iterator: AsyncIterator[bytes],
    ) -> None:
        """
        Stream write a file from chunks.

        Default implementation collects all chunks and writes at once.
        """
        chunks = []
        async for chunk in data_iterator:
            chunks.append(chunk)
        await self.write_file(path, b"".join(chunks))

    async def __aenter__(self):
        """Context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        await self.disconnect()
        return False

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} protocol={self.protocol}>"


class ConnectionPool(Protocol):
    """
    Pool of adapters keyed by descriptor.

    Declared so consumers can type against it; FAAL ships no implementation.
    """

    def get_client(self, descriptor: StorageDescriptor) -> FileStorageProvider:
        ...

    def return_client(self, client: FileStorageProvider) -> None:
        ...

    def close_all(self) -> None:
        ...
