# faal/protocols/smb_protocol.py
"""
SMB/CIFS protocol adapter for network file access.

Uses the pysmb library over direct TCP (port 445). pysmb is synchronous, so
every call runs in the default executor.
"""
import asyncio
import functools
import io
import tempfile
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

import structlog
from smb.SMBConnection import SMBConnection
from smb.smb_structs import OperationFailure

from faal.base_fs import FileEntry, FileStorageProvider
from faal.config import settings
from faal.errors import (
    BackendProtocolError,
    ConnectionFailureError,
    DisconnectError,
    NotFoundError,
    StorageOperationError,
)
from faal.models import SMBConfig
from faal.paths import join_relative, sanitize_relative_path

logger = structlog.get_logger()

STATUS_NO_SUCH_FILE = 0xC000000F
STATUS_OBJECT_NAME_NOT_FOUND = 0xC0000034
STATUS_OBJECT_PATH_NOT_FOUND = 0xC000003A

NOT_FOUND_STATUSES = {
    STATUS_NO_SUCH_FILE,
    STATUS_OBJECT_NAME_NOT_FOUND,
    STATUS_OBJECT_PATH_NOT_FOUND,
}

NOT_FOUND_NAMES = (
    "STATUS_NO_SUCH_FILE",
    "STATUS_OBJECT_NAME_NOT_FOUND",
    "STATUS_OBJECT_PATH_NOT_FOUND",
)

# Spool copies in memory up to this size before falling back to disk
COPY_SPOOL_SIZE = 8 * 1024 * 1024

READ_ONLY_PERMISSION_BITS = 0o444
READ_WRITE_PERMISSION_BITS = 0o644

# deleteFiles treats these as a pattern; they are not valid in SMB names
WILDCARD_CHARACTERS = ("*", "?")


def _failure_status(exc: OperationFailure) -> Optional[int]:
    """Return the last NT status carried by a failed SMB exchange."""
    for message in reversed(getattr(exc, "smb_messages", None) or []):
        status = getattr(message, "status", None)
        if status:
            return status
    return None


def _is_not_found(exc: BaseException) -> bool:
    if isinstance(exc, OperationFailure):
        for message in getattr(exc, "smb_messages", None) or []:
            if getattr(message, "status", None) in NOT_FOUND_STATUSES:
                return True
    text = str(exc)
    if any(name in text for name in NOT_FOUND_NAMES):
        return True
    return any(f"0x{status:08X}" in text.upper() for status in NOT_FOUND_STATUSES)


class SMBProtocolAdapter(FileStorageProvider):
    """
    SMB/CIFS protocol adapter.

    Configuration:
    {
        "protocol": "smb",
        "settings": {
            "host": "nas.company.local",   # SMB server hostname/IP
            "port": 445,                   # SMB port (optional, default: 445)
            "share": "documents",          # Share name
            "username": "faal_app",        # SMB username
            "password": "secret",          # SMB password
            "domain": "WORKGROUP"          # Domain/workgroup (optional, default: WORKGROUP)
        }
    }

    Connecting runs three steps: open the transport, authenticate the
    session, then open the share. pysmb keeps transport and session in one
    SMBConnection, so the adapter holds that connection plus the share name.
    """

    protocol = "smb"

    def __init__(self, config: SMBConfig):
        super().__init__(config)
        self._conn: Optional[SMBConnection] = None
        self._share: Optional[str] = None

        logger.info(
            "smb_adapter_initialized",
            host=config.host,
            port=config.port,
            share=config.share
        )

    def _normalize_path(self, path: str) -> str:
        """
        Normalize path for SMB operations.

        pysmb expects share-relative paths with forward slashes and no
        leading slash.
        """
        return sanitize_relative_path(path)

    def _new_connection(self) -> SMBConnection:
        return SMBConnection(
            self.config.username,
            self.config.password,
            settings.SMB_CLIENT_NAME,
            self.config.host,
            domain=self.config.domain,
            use_ntlm_v2=True,
            is_direct_tcp=True
        )

    async def _close_quietly(self, conn: SMBConnection, step: str) -> None:
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, conn.close)
        except Exception as e:
            logger.warning("smb_connect_unwind_failed", step=step, error=str(e))

    async def connect(self) -> None:
        """
        Establish connection to SMB server.

        Raises:
            ConnectionFailureError: Naming the failed step (transport,
                session or share)
        """
        if self.is_connected():
            logger.debug("smb_already_connected", host=self.config.host)
            return

        host, port, share = self.config.host, self.config.port, self.config.share
        logger.info("smb_connecting", host=host, port=port, share=share)

        loop = asyncio.get_event_loop()
        conn = self._new_connection()

        try:
            authenticated = await loop.run_in_executor(
                None,
                functools.partial(conn.connect, host, port, timeout=settings.SMB_TIMEOUT)
            )
        except Exception as e:
            logger.error("smb_connect_failed", host=host, step="transport", error=str(e))
            await self._close_quietly(conn, "transport")
            raise ConnectionFailureError(self.protocol, "transport", e) from e

        if not authenticated:
            cause = PermissionError(f"authentication rejected for user {self.config.username!r}")
            logger.error("smb_connect_failed", host=host, step="session", error=str(cause))
            await self._close_quietly(conn, "session")
            raise ConnectionFailureError(self.protocol, "session", cause)

        try:
            await loop.run_in_executor(None, conn.listPath, share, "/")
        except Exception as e:
            logger.error("smb_connect_failed", host=host, step="share", share=share, error=str(e))
            await self._close_quietly(conn, "share")
            raise ConnectionFailureError(self.protocol, "share", e) from e

        self._conn = conn
        self._share = share
        logger.info("smb_connected", host=host, share=share)

    async def disconnect(self) -> None:
        """
        Disconnect from SMB server.

        Handles are cleared first, so a failed close still leaves the adapter
        disconnected. pysmb closes the session together with its tree
        connections.
        """
        conn = self._conn
        self._conn = None
        self._share = None

        if conn is None:
            return

        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, conn.close)
        except Exception as e:
            logger.warning("smb_disconnect_error", step="close connection", error=str(e))
            raise DisconnectError(self.protocol, [("close connection", e)]) from e

        logger.info("smb_disconnected", host=self.config.host)

    def is_connected(self) -> bool:
        return self._conn is not None and self._share is not None

    async def _run(self, operation: str, path: str, func: Callable, *args: Any) -> Any:
        """Run a pysmb call in the executor and translate its failures."""
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, func, *args)
        except OperationFailure as e:
            if _is_not_found(e):
                raise NotFoundError(operation, path, e) from e
            status = _failure_status(e)
            logger.error(f"smb_{operation}_failed", path=path, status=status, error=str(e))
            if status is not None:
                raise BackendProtocolError(operation, path, f"0x{status:08X}", e) from e
            raise StorageOperationError(operation, path, e) from e
        except Exception as e:
            logger.error(f"smb_{operation}_failed", path=path, error=str(e))
            raise StorageOperationError(operation, path, e) from e

    def _entry(self, shared_file: Any, path: str) -> FileEntry:
        permission_bits = (
            READ_ONLY_PERMISSION_BITS if shared_file.isReadOnly else READ_WRITE_PERMISSION_BITS
        )
        return FileEntry(
            name=shared_file.filename,
            size=shared_file.file_size,
            modified_at=datetime.fromtimestamp(shared_file.last_write_time, tz=timezone.utc),
            is_directory=shared_file.isDirectory,
            permission_bits=permission_bits,
            path=path,
        )

    async def test_connection(self) -> None:
        """List the root of the share."""
        self._ensure_connected("test_connection")
        await self._run("test_connection", "/", self._conn.listPath, self._share, "/")

    async def read_file(self, path: str) -> bytes:
        """
        Read file contents.

        Raises:
            NotFoundError: If file does not exist
        """
        self._ensure_connected("read_file")
        normalized_path = self._normalize_path(path)
        buffer = io.BytesIO()
        await self._run(
            "read_file", normalized_path,
            self._conn.retrieveFile, self._share, normalized_path, buffer
        )
        data = buffer.getvalue()
        logger.debug("smb_read_file", path=normalized_path, size=len(data))
        return data

    async def write_file(self, path: str, data: bytes) -> None:
        """Create or overwrite a file. The parent directory must exist."""
        self._ensure_connected("write_file")
        normalized_path = self._normalize_path(path)
        await self._run(
            "write_file", normalized_path,
            self._conn.storeFile, self._share, normalized_path, io.BytesIO(data)
        )
        logger.info("smb_write_file", path=normalized_path, size=len(data))

    async def get_file_info(self, path: str) -> FileEntry:
        self._ensure_connected("get_file_info")
        normalized_path = self._normalize_path(path)
        attributes = await self._run(
            "get_file_info", normalized_path,
            self._conn.getAttributes, self._share, normalized_path or "/"
        )
        return self._entry(attributes, normalized_path)

    async def file_exists(self, path: str) -> bool:
        self._ensure_connected("file_exists")
        try:
            await self.get_file_info(path)
        except NotFoundError:
            return False
        return True

    async def delete_file(self, path: str) -> None:
        """Delete exactly one file. Wildcard characters are rejected."""
        self._ensure_connected("delete_file")
        normalized_path = self._normalize_path(path)
        if any(char in normalized_path for char in WILDCARD_CHARACTERS):
            logger.error("smb_delete_file_failed", path=normalized_path, error="wildcard in path")
            raise StorageOperationError(
                "delete_file",
                normalized_path,
                message=f"delete_file failed for {normalized_path}: wildcards are not allowed"
            )
        await self._run(
            "delete_file", normalized_path,
            self._conn.deleteFiles, self._share, normalized_path
        )
        logger.info("smb_delete_file", path=normalized_path)

    async def copy_file(self, source: str, destination: str) -> None:
        """
        Copy file.

        SMB has no server-side copy in pysmb, so the source is downloaded into
        a spooled temporary file and uploaded to the destination.
        """
        self._ensure_connected("copy_file")
        source_path = self._normalize_path(source)
        destination_path = self._normalize_path(destination)

        with tempfile.SpooledTemporaryFile(max_size=COPY_SPOOL_SIZE) as spool:
            await self._run(
                "copy_file", source_path,
                self._conn.retrieveFile, self._share, source_path, spool
            )
            spool.seek(0)
            await self._run(
                "copy_file", destination_path,
                self._conn.storeFile, self._share, destination_path, spool
            )

        logger.info("smb_copy_file", source=source_path, destination=destination_path)

    async def list_directory(self, path: str = "") -> List[FileEntry]:
        self._ensure_connected("list_directory")
        normalized_path = self._normalize_path(path)
        shared_files = await self._run(
            "list_directory", normalized_path,
            self._conn.listPath, self._share, normalized_path or "/"
        )

        entries = [
            self._entry(f, join_relative(normalized_path, f.filename))
            for f in shared_files
            if f.filename not in (".", "..")
        ]
        logger.debug("smb_list_directory", path=normalized_path, count=len(entries))
        return entries

    async def create_directory(self, path: str) -> None:
        """Create one directory level; the parent must exist."""
        self._ensure_connected("create_directory")
        normalized_path = self._normalize_path(path)
        await self._run(
            "create_directory", normalized_path,
            self._conn.createDirectory, self._share, normalized_path
        )
        logger.info("smb_create_directory", path=normalized_path)

    async def delete_directory(self, path: str) -> None:
        """Delete an empty directory."""
        self._ensure_connected("delete_directory")
        normalized_path = self._normalize_path(path)
        await self._run(
            "delete_directory", normalized_path,
            self._conn.deleteDirectory, self._share, normalized_path
        )
        logger.info("smb_delete_directory", path=normalized_path)
