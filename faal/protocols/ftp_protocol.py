# faal/protocols/ftp_protocol.py
"""
FTP protocol adapter for network file access.

Uses the standard library ftplib in binary mode. ftplib is synchronous, so
every command runs in the default executor.

Only the initial dial is bounded by a timeout (30 seconds); once connected,
commands block for as long as the server takes.
"""
import asyncio
import dataclasses
import ftplib
import io
import posixpath
import tempfile
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from faal.base_fs import DEFAULT_PERMISSION_BITS, FileEntry, FileStorageProvider
from faal.errors import (
    BackendProtocolError,
    ConnectionFailureError,
    DisconnectError,
    NotFoundError,
    StorageOperationError,
)
from faal.models import FTPConfig
from faal.paths import join_relative, resolve_remote_path, sanitize_relative_path

logger = structlog.get_logger()

FTP_CONNECT_TIMEOUT = 30

MLSD_FACTS = ["type", "size", "modify", "unix.mode"]

# Reply codes meaning "command not implemented / not understood"
UNSUPPORTED_COMMAND_CODES = ("500", "502", "504")

NOT_FOUND_CODES = ("550",)

# Some servers answer LIST/MLSD on a missing directory with a transient 450
LIST_NOT_FOUND_CODES = ("450", "550")

COPY_SPOOL_SIZE = 8 * 1024 * 1024

LIST_MONTHS = {
    month: index
    for index, month in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"],
        start=1
    )
}


def _reply_code(exc: BaseException) -> str:
    return str(exc)[:3]


def _parse_mlsd_modify(value: Optional[str]) -> Optional[datetime]:
    """Parse an MLSD modify fact (YYYYMMDDHHMMSS[.sss], always UTC)."""
    if not value:
        return None
    try:
        return datetime.strptime(value[:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _mode_from_symbolic(symbolic: str) -> int:
    """Convert 'rwxr-xr-x' (the nine permission characters) to mode bits."""
    bits = 0
    for char, bit in zip(symbolic[:9], (0o400, 0o200, 0o100, 0o40, 0o20, 0o10, 0o4, 0o2, 0o1)):
        if char not in ("-", "S", "T"):
            bits |= bit
    return bits


def _parse_list_time(month: str, day: str, year_or_time: str) -> Optional[datetime]:
    month_number = LIST_MONTHS.get(month[:3].lower())
    if month_number is None or not day.isdigit():
        return None
    try:
        if ":" in year_or_time:
            hour, minute = (int(part) for part in year_or_time.split(":", 1))
            now = datetime.now(timezone.utc)
            parsed = datetime(now.year, month_number, int(day), hour, minute, tzinfo=timezone.utc)
            # Listings without a year show the last six months
            if parsed > now:
                parsed = parsed.replace(year=now.year - 1)
            return parsed
        return datetime(int(year_or_time), month_number, int(day), tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_list_line(line: str) -> Optional[FileEntry]:
    """
    Parse one line of Unix-style LIST output.

    Example:
        drwxr-xr-x   2 owner group     4096 Jan 01 12:00 reports

    Returns None for lines that are not entries (the 'total' header,
    blank lines, '.' and '..').
    """
    parts = line.split(None, 8)
    if len(parts) < 9 or len(parts[0]) < 10:
        return None

    permissions, _, _, _, size, month, day, year_or_time, name = parts
    if permissions[0] == "l" and " -> " in name:
        name = name.split(" -> ", 1)[0]
    if name in (".", ".."):
        return None

    modified_at = _parse_list_time(month, day, year_or_time) or datetime.now(timezone.utc)
    return FileEntry(
        name=name,
        size=int(size) if size.isdigit() else 0,
        modified_at=modified_at,
        is_directory=permissions[0] == "d",
        permission_bits=_mode_from_symbolic(permissions[1:]),
    )


def _entry_from_facts(name: str, facts: Dict[str, str]) -> FileEntry:
    size = facts.get("size", "0")
    mode = facts.get("unix.mode")
    try:
        permission_bits = int(mode, 8) & 0o7777 if mode else DEFAULT_PERMISSION_BITS
    except ValueError:
        permission_bits = DEFAULT_PERMISSION_BITS
    return FileEntry(
        name=name,
        size=int(size) if size.isdigit() else 0,
        modified_at=_parse_mlsd_modify(facts.get("modify")) or datetime.now(timezone.utc),
        is_directory=facts.get("type", "").lower() == "dir",
        permission_bits=permission_bits,
    )


class FTPProtocolAdapter(FileStorageProvider):
    """
    FTP protocol adapter.

    Configuration:
    {
        "protocol": "ftp",
        "settings": {
            "host": "ftp.company.local",   # FTP server hostname/IP
            "port": 21,                    # FTP port (optional, default: 21)
            "username": "faal_app",        # Username
            "password": "secret",          # Password
            "path": "/data"                # Base directory (optional)
        }
    }

    Caller paths are sandboxed the same way as the other backends and then
    joined onto the base directory.
    """

    protocol = "ftp"

    def __init__(self, config: FTPConfig):
        super().__init__(config)
        self._ftp: Optional[ftplib.FTP] = None
        self._connected = False

        logger.info(
            "ftp_adapter_initialized",
            host=config.host,
            port=config.port,
            base_path=config.path
        )

    def _resolve(self, path: str) -> str:
        return resolve_remote_path(self.config.path, path)

    async def _quit_quietly(self, ftp: ftplib.FTP, step: str) -> None:
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, ftp.quit)
        except ftplib.all_errors as e:
            logger.warning("ftp_connect_unwind_failed", step=step, error=str(e))
            ftp.close()

    async def connect(self) -> None:
        """
        Dial, log in and change into the base directory.

        Raises:
            ConnectionFailureError: Naming the failed step (dial, login or
                change directory)
        """
        if self.is_connected():
            logger.debug("ftp_already_connected", host=self.config.host)
            return

        host, port = self.config.host, self.config.port
        logger.info("ftp_connecting", host=host, port=port)

        loop = asyncio.get_event_loop()
        ftp = ftplib.FTP()

        try:
            await loop.run_in_executor(None, ftp.connect, host, port, FTP_CONNECT_TIMEOUT)
        except ftplib.all_errors as e:
            logger.error("ftp_connect_failed", host=host, step="dial", error=str(e))
            ftp.close()
            raise ConnectionFailureError(self.protocol, "dial", e) from e

        try:
            await loop.run_in_executor(None, ftp.login, self.config.username, self.config.password)
        except ftplib.all_errors as e:
            logger.error("ftp_connect_failed", host=host, step="login", error=str(e))
            await self._quit_quietly(ftp, "login")
            raise ConnectionFailureError(self.protocol, "login", e) from e

        if self.config.path:
            try:
                await loop.run_in_executor(None, ftp.cwd, self.config.path)
            except ftplib.all_errors as e:
                logger.error(
                    "ftp_connect_failed",
                    host=host,
                    step="change directory",
                    base_path=self.config.path,
                    error=str(e)
                )
                await self._quit_quietly(ftp, "change directory")
                raise ConnectionFailureError(self.protocol, "change directory", e) from e

        # The timeout bounds the dial only
        ftp.timeout = None
        if ftp.sock is not None:
            ftp.sock.settimeout(None)

        self._ftp = ftp
        self._connected = True
        logger.info("ftp_connected", host=host, base_path=self.config.path)

    async def disconnect(self) -> None:
        """Send QUIT, closing the socket directly if the server does not answer."""
        ftp = self._ftp
        self._ftp = None
        self._connected = False

        if ftp is None:
            return

        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, ftp.quit)
        except ftplib.all_errors as e:
            logger.warning("ftp_disconnect_error", error=str(e))
            ftp.close()
            raise DisconnectError(self.protocol, [("quit", e)]) from e

        logger.info("ftp_disconnected", host=self.config.host)

    def is_connected(self) -> bool:
        return self._connected and self._ftp is not None

    async def _run(
        self,
        operation: str,
        path: str,
        func: Callable,
        *args: Any,
        not_found_codes: Tuple[str, ...] = NOT_FOUND_CODES
    ) -> Any:
        """Run an ftplib call in the executor and translate its failures."""
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, func, *args)
        except (ftplib.error_perm, ftplib.error_temp) as e:
            code = _reply_code(e)
            if code in not_found_codes:
                raise NotFoundError(operation, path, e) from e
            logger.error(f"ftp_{operation}_failed", path=path, code=code, error=str(e))
            raise BackendProtocolError(operation, path, code, e) from e
        except (ftplib.error_reply, ftplib.error_proto) as e:
            code = _reply_code(e)
            logger.error(f"ftp_{operation}_failed", path=path, code=code, error=str(e))
            raise BackendProtocolError(operation, path, code, e) from e
        except (OSError, EOFError) as e:
            logger.error(f"ftp_{operation}_failed", path=path, error=str(e))
            raise StorageOperationError(operation, path, e) from e

    async def _make_parents(self, full_path: str) -> None:
        """Create each parent directory of full_path that does not exist yet."""
        parent = posixpath.dirname(full_path)
        if parent in ("", ".", "/"):
            return

        current = "/" if parent.startswith("/") else ""
        loop = asyncio.get_event_loop()
        for segment in parent.split("/"):
            if not segment:
                continue
            current = posixpath.join(current, segment) if current else segment
            try:
                await loop.run_in_executor(None, self._ftp.mkd, current)
            except ftplib.error_perm as e:
                # Usually "already exists"; a real problem resurfaces on STOR
                logger.debug("ftp_mkd_skipped", path=current, error=str(e))
            except (OSError, EOFError, ftplib.Error) as e:
                logger.error("ftp_create_parent_failed", path=current, error=str(e))
                raise StorageOperationError("create parent directory", current, e) from e

    def _mlsd(self, full_path: str) -> Optional[List[Tuple[str, Dict[str, str]]]]:
        """Return MLSD records, or None when the server does not implement MLSD."""
        try:
            return list(self._ftp.mlsd(full_path, facts=MLSD_FACTS))
        except ftplib.error_perm as e:
            if _reply_code(e) in UNSUPPORTED_COMMAND_CODES:
                return None
            raise

    def _list_lines(self, full_path: str) -> List[str]:
        lines: List[str] = []
        self._ftp.retrlines(f"LIST {full_path}", lines.append)
        return lines

    async def _list(self, full_path: str) -> List[FileEntry]:
        """List one level, preferring MLSD and falling back to LIST."""
        facts = await self._run(
            "list_directory", full_path, self._mlsd, full_path,
            not_found_codes=LIST_NOT_FOUND_CODES
        )
        if facts is None:
            logger.debug("ftp_mlsd_unsupported", path=full_path)
            lines = await self._run(
                "list_directory", full_path, self._list_lines, full_path,
                not_found_codes=LIST_NOT_FOUND_CODES
            )
            return [entry for entry in map(parse_list_line, lines) if entry is not None]

        return [
            _entry_from_facts(name, entry_facts)
            for name, entry_facts in facts
            if name not in (".", "..")
            and entry_facts.get("type", "").lower() not in ("cdir", "pdir")
        ]

    async def test_connection(self) -> None:
        """Ask the server for the working directory."""
        self._ensure_connected("test_connection")
        await self._run("test_connection", ".", self._ftp.pwd)

    async def read_file(self, path: str) -> bytes:
        self._ensure_connected("read_file")
        full_path = self._resolve(path)
        buffer = io.BytesIO()
        await self._run("read_file", full_path, self._ftp.retrbinary, f"RETR {full_path}", buffer.write)
        data = buffer.getvalue()
        logger.debug("ftp_read_file", path=full_path, size=len(data))
        return data

    async def write_file(self, path: str, data: bytes) -> None:
        """Upload data, creating missing parent directories first."""
        self._ensure_connected("write_file")
        full_path = self._resolve(path)
        await self._make_parents(full_path)
        await self._run(
            "write_file", full_path,
            self._ftp.storbinary, f"STOR {full_path}", io.BytesIO(data)
        )
        logger.info("ftp_write_file", path=full_path, size=len(data))

    async def get_file_info(self, path: str) -> FileEntry:
        """
        Get file/directory metadata.

        FTP has no portable stat command, so the parent directory is listed
        and the entry picked out by name.
        """
        self._ensure_connected("get_file_info")
        relative = sanitize_relative_path(path)
        full_path = self._resolve(path)

        if not relative:
            name = posixpath.basename(full_path.rstrip("/")) or "/"
            return FileEntry(name=name, is_directory=True, path="")

        parent = posixpath.dirname(full_path) or "."
        name = posixpath.basename(full_path)
        for entry in await self._list(parent):
            if entry.name == name:
                return dataclasses.replace(entry, path=relative)

        raise NotFoundError("get_file_info", full_path)

    async def file_exists(self, path: str) -> bool:
        self._ensure_connected("file_exists")
        try:
            await self.get_file_info(path)
        except NotFoundError:
            return False
        return True

    async def delete_file(self, path: str) -> None:
        self._ensure_connected("delete_file")
        full_path = self._resolve(path)
        await self._run("delete_file", full_path, self._ftp.delete, full_path)
        logger.info("ftp_delete_file", path=full_path)

    async def copy_file(self, source: str, destination: str) -> None:
        """Download source into a spooled temp file and upload it to destination."""
        self._ensure_connected("copy_file")
        source_path = self._resolve(source)
        destination_path = self._resolve(destination)

        with tempfile.SpooledTemporaryFile(max_size=COPY_SPOOL_SIZE) as spool:
            await self._run(
                "copy_file", source_path,
                self._ftp.retrbinary, f"RETR {source_path}", spool.write
            )
            spool.seek(0)
            await self._make_parents(destination_path)
            await self._run(
                "copy_file", destination_path,
                self._ftp.storbinary, f"STOR {destination_path}", spool
            )

        logger.info("ftp_copy_file", source=source_path, destination=destination_path)

    async def list_directory(self, path: str = "") -> List[FileEntry]:
        self._ensure_connected("list_directory")
        relative = sanitize_relative_path(path)
        full_path = self._resolve(path)

        entries = [
            dataclasses.replace(entry, path=join_relative(relative, entry.name))
            for entry in await self._list(full_path)
        ]
        logger.debug("ftp_list_directory", path=full_path, count=len(entries))
        return entries

    async def create_directory(self, path: str) -> None:
        self._ensure_connected("create_directory")
        full_path = self._resolve(path)
        await self._run("create_directory", full_path, self._ftp.mkd, full_path)
        logger.info("ftp_create_directory", path=full_path)

    async def delete_directory(self, path: str) -> None:
        """Remove an empty directory."""
        self._ensure_connected("delete_directory")
        full_path = self._resolve(path)
        await self._run("delete_directory", full_path, self._ftp.rmd, full_path)
        logger.info("ftp_delete_directory", path=full_path)
