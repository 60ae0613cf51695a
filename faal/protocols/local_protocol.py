# faal/protocols/local_protocol.py
"""
Local filesystem protocol adapter.

Works with local directories and with anything the OS already mounts
(NFS, SMB/CIFS, ...). The NFS adapter reuses every file operation here on
its mount point.
"""
import asyncio
import os
import shutil
import stat
from datetime import datetime, timezone
from typing import List, Optional

import aiofiles
import aiofiles.os
import structlog

from faal.base_fs import FileEntry, FileStorageProvider
from faal.errors import (
    ConnectionFailureError,
    NotFoundError,
    StorageOperationError,
)
from faal.models import LocalConfig
from faal.paths import join_relative, resolve_path, sanitize_relative_path

logger = structlog.get_logger()

COPY_CHUNK_SIZE = 64 * 1024
DIRECTORY_MODE = 0o755


def _operation_error(operation: str, path: str, exc: OSError) -> StorageOperationError:
    if isinstance(exc, FileNotFoundError):
        return NotFoundError(operation, path, exc)
    return StorageOperationError(operation, path, exc)


def _entry_from_stat(name: str, path: str, st: os.stat_result) -> FileEntry:
    return FileEntry(
        name=name,
        size=st.st_size,
        modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        is_directory=stat.S_ISDIR(st.st_mode),
        permission_bits=stat.S_IMODE(st.st_mode),
        path=path,
    )


class LocalProtocolAdapter(FileStorageProvider):
    """
    Local filesystem adapter.

    Configuration:
    {
        "protocol": "local",
        "settings": {
            "base_path": "/srv/storage"     # Root every path resolves under
        }
    }

    Connecting only checks that base_path is an existing directory.
    """

    protocol = "local"

    def __init__(self, config: LocalConfig):
        super().__init__(config)
        self._root: Optional[str] = None
        self._connected = False

        logger.info("local_adapter_initialized", base_path=config.base_path)

    @property
    def _root_path(self) -> str:
        return self.config.base_path

    def _resolve(self, path: str) -> str:
        return resolve_path(self._root, path)

    async def connect(self) -> None:
        """
        Verify the base path exists and is a directory.

        Raises:
            ConnectionFailureError: If the base path is missing or not a directory
        """
        root = self._root_path
        try:
            st = await aiofiles.os.stat(root)
        except OSError as e:
            logger.error("local_connect_failed", base_path=root, error=str(e))
            raise ConnectionFailureError(self.protocol, "stat base path", e) from e

        if not stat.S_ISDIR(st.st_mode):
            cause = NotADirectoryError(f"base path {root} is not a directory")
            logger.error("local_connect_failed", base_path=root, error=str(cause))
            raise ConnectionFailureError(self.protocol, "stat base path", cause)

        self._root = root
        self._connected = True
        logger.info("local_connected", base_path=root)

    async def disconnect(self) -> None:
        """Forget the root; nothing to close."""
        self._root = None
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected and self._root is not None

    async def test_connection(self) -> None:
        self._ensure_connected("test_connection")
        try:
            await aiofiles.os.stat(self._root)
        except OSError as e:
            raise _operation_error("test_connection", self._root, e) from e

    async def read_file(self, path: str) -> bytes:
        self._ensure_connected("read_file")
        full_path = self._resolve(path)
        try:
            async with aiofiles.open(full_path, "rb") as f:
                data = await f.read()
        except OSError as e:
            logger.error(f"{self.protocol}_read_file_failed", path=full_path, error=str(e))
            raise _operation_error("read_file", full_path, e) from e

        logger.debug(f"{self.protocol}_read_file", path=path, size=len(data))
        return data

    async def write_file(self, path: str, data: bytes) -> None:
        """Write bytes, creating missing parent directories first."""
        self._ensure_connected("write_file")
        full_path = self._resolve(path)
        parent = os.path.dirname(full_path)
        try:
            await aiofiles.os.makedirs(parent, mode=DIRECTORY_MODE, exist_ok=True)
        except OSError as e:
            logger.error(f"{self.protocol}_write_file_failed", path=parent, error=str(e))
            raise _operation_error("create parent directory", parent, e) from e

        try:
            async with aiofiles.open(full_path, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error(f"{self.protocol}_write_file_failed", path=full_path, error=str(e))
            raise _operation_error("write_file", full_path, e) from e

        logger.info(f"{self.protocol}_write_file", path=path, size=len(data))

    async def get_file_info(self, path: str) -> FileEntry:
        self._ensure_connected("get_file_info")
        full_path = self._resolve(path)
        try:
            st = await aiofiles.os.stat(full_path)
        except OSError as e:
            raise _operation_error("get_file_info", full_path, e) from e
        return _entry_from_stat(os.path.basename(full_path), sanitize_relative_path(path), st)

    async def list_directory(self, path: str = "") -> List[FileEntry]:
        self._ensure_connected("list_directory")
        full_path = self._resolve(path)
        relative = sanitize_relative_path(path)
        try:
            names = await aiofiles.os.listdir(full_path)
        except OSError as e:
            logger.error(f"{self.protocol}_list_directory_failed", path=full_path, error=str(e))
            raise _operation_error("list_directory", full_path, e) from e

        entries = []
        for name in sorted(names):
            try:
                st = await aiofiles.os.stat(os.path.join(full_path, name))
            except FileNotFoundError:
                # Removed between listdir and stat
                continue
            except OSError as e:
                raise _operation_error("list_directory", full_path, e) from e
            entries.append(_entry_from_stat(name, join_relative(relative, name), st))

        logger.debug(f"{self.protocol}_list_directory", path=path, count=len(entries))
        return entries

    async def file_exists(self, path: str) -> bool:
        self._ensure_connected("file_exists")
        full_path = self._resolve(path)
        try:
            await aiofiles.os.stat(full_path)
        except (FileNotFoundError, NotADirectoryError):
            return False
        except OSError as e:
            raise StorageOperationError("file_exists", full_path, e) from e
        return True

    async def delete_file(self, path: str) -> None:
        self._ensure_connected("delete_file")
        full_path = self._resolve(path)
        try:
            await aiofiles.os.remove(full_path)
        except OSError as e:
            logger.error(f"{self.protocol}_delete_file_failed", path=full_path, error=str(e))
            raise _operation_error("delete_file", full_path, e) from e
        logger.info(f"{self.protocol}_delete_file", path=path)

    async def create_directory(self, path: str) -> None:
        """Create a directory and every missing intermediate segment."""
        self._ensure_connected("create_directory")
        full_path = self._resolve(path)
        try:
            await aiofiles.os.makedirs(full_path, mode=DIRECTORY_MODE, exist_ok=True)
        except OSError as e:
            logger.error(f"{self.protocol}_create_directory_failed", path=full_path, error=str(e))
            raise _operation_error("create_directory", full_path, e) from e
        logger.info(f"{self.protocol}_create_directory", path=path)

    async def delete_directory(self, path: str) -> None:
        """Delete a directory and everything below it."""
        self._ensure_connected("delete_directory")
        full_path = self._resolve(path)
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, shutil.rmtree, full_path)
        except OSError as e:
            logger.error(f"{self.protocol}_delete_directory_failed", path=full_path, error=str(e))
            raise _operation_error("delete_directory", full_path, e) from e
        logger.info(f"{self.protocol}_delete_directory", path=path)

    async def copy_file(self, source: str, destination: str) -> None:
        """Stream source to destination, creating the destination's parents."""
        self._ensure_connected("copy_file")
        source_path = self._resolve(source)
        destination_path = self._resolve(destination)
        parent = os.path.dirname(destination_path)
        try:
            await aiofiles.os.makedirs(parent, mode=DIRECTORY_MODE, exist_ok=True)
        except OSError as e:
            raise _operation_error("create parent directory", parent, e) from e

        try:
            async with aiofiles.open(source_path, "rb") as src:
                async with aiofiles.open(destination_path, "wb") as dst:
                    while True:
                        chunk = await src.read(COPY_CHUNK_SIZE)
                        if not chunk:
                            break
                        await dst.write(chunk)
        except FileNotFoundError as e:
            raise NotFoundError("copy_file", source_path, e) from e
        except OSError as e:
            logger.error(
                f"{self.protocol}_copy_file_failed",
                source=source_path,
                destination=destination_path,
                error=str(e)
            )
            raise StorageOperationError(
                "copy_file", f"{source_path} -> {destination_path}", e
            ) from e

        logger.info(f"{self.protocol}_copy_file", source=source, destination=destination)
