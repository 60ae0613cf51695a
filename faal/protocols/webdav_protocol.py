# faal/protocols/webdav_protocol.py
"""
WebDAV protocol adapter for network file access.

Uses httpx.AsyncClient, so every request honors task cancellation and the
per-request timeout (settings.WEBDAV_TIMEOUT). Listings and metadata come
from PROPFIND multistatus responses (see faal.protocols.multistatus).
"""
import dataclasses
from typing import AsyncIterator, List, Optional
from urllib.parse import quote, unquote, urlsplit, urlunsplit

import httpx
import structlog

from faal.base_fs import FileEntry, FileStorageProvider
from faal.config import settings
from faal.errors import (
    BackendProtocolError,
    ConnectionFailureError,
    DisconnectError,
    NotFoundError,
    StorageOperationError,
)
from faal.models import WebDAVConfig
from faal.paths import resolve_url_path, sanitize_relative_path
from faal.protocols.multistatus import (
    PROPFIND_BODY,
    MultistatusParseError,
    parse_multistatus,
)

logger = structlog.get_logger()

MULTI_STATUS = 207

GONE_STATUSES = (404, 410)

XML_CONTENT_TYPE = "application/xml; charset=utf-8"


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def build_base_url(url: str, path: str) -> str:
    """Replace the URL's path with ``path`` unless path is empty or "/"."""
    if path in ("", "/"):
        return url
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, "/" + path.strip("/"), "", ""))


class WebDAVProtocolAdapter(FileStorageProvider):
    """
    WebDAV protocol adapter.

    Configuration:
    {
        "protocol": "webdav",
        "settings": {
            "url": "https://cloud.company.local/remote.php/dav/files/faal",
            "username": "faal_app",     # Optional, enables HTTP Basic auth
            "password": "secret",
            "path": "/projects"         # Optional, replaces the URL path
        }
    }
    """

    protocol = "webdav"

    def __init__(self, config: WebDAVConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize WebDAV adapter.

        Args:
            config: WebDAV configuration
            transport: Optional httpx transport (e.g. httpx.MockTransport)
        """
        super().__init__(config)
        self.base_url = build_base_url(config.url, config.path)

        parts = urlsplit(self.base_url)
        self._scheme = parts.scheme
        self._netloc = parts.netloc
        self._base_path = unquote(parts.path) or "/"

        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        logger.info("webdav_adapter_initialized", base_url=self.base_url)

    def _resolve(self, path: str) -> str:
        return resolve_url_path(self._base_path, path)

    def _url(self, resolved_path: str, collection: bool = False) -> str:
        url_path = quote(resolved_path)
        if collection and not url_path.endswith("/"):
            url_path += "/"
        return urlunsplit((self._scheme, self._netloc, url_path, "", ""))

    def _new_client(self) -> httpx.AsyncClient:
        auth = None
        if self.config.username:
            auth = httpx.BasicAuth(self.config.username, self.config.password)
        return httpx.AsyncClient(
            auth=auth,
            timeout=settings.WEBDAV_TIMEOUT,
            follow_redirects=True,
            transport=self._transport
        )

    async def _probe(self, client: httpx.AsyncClient) -> httpx.Response:
        return await client.request(
            "PROPFIND",
            self.base_url,
            headers={"Depth": "0"}
        )

    async def connect(self) -> None:
        """
        Create the HTTP client and probe the base URL with PROPFIND (Depth 0).

        Raises:
            ConnectionFailureError: If the probe fails or answers non-2xx
        """
        if self.is_connected():
            logger.debug("webdav_already_connected", base_url=self.base_url)
            return

        logger.info("webdav_connecting", base_url=self.base_url)
        client = self._new_client()

        try:
            response = await self._probe(client)
        except httpx.HTTPError as e:
            logger.error("webdav_connect_failed", base_url=self.base_url, step="probe", error=str(e))
            await client.aclose()
            raise ConnectionFailureError(self.protocol, "probe", e) from e

        if not _is_success(response.status_code):
            cause = BackendProtocolError("probe", self.base_url, response.status_code)
            logger.error(
                "webdav_connect_failed",
                base_url=self.base_url,
                step="probe",
                status=response.status_code
            )
            await client.aclose()
            raise ConnectionFailureError(self.protocol, "probe", cause)

        self._client = client
        logger.info("webdav_connected", base_url=self.base_url)

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        client = self._client
        self._client = None

        if client is None:
            return

        try:
            await client.aclose()
        except Exception as e:
            logger.warning("webdav_disconnect_error", error=str(e))
            raise DisconnectError(self.protocol, [("close client", e)]) from e

        logger.info("webdav_disconnected", base_url=self.base_url)

    def is_connected(self) -> bool:
        return self._client is not None and not self._client.is_closed

    async def _request(
        self,
        operation: str,
        path: str,
        method: str,
        url: str,
        **kwargs
    ) -> httpx.Response:
        """Send one request, translating transport failures."""
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"webdav_{operation}_failed", path=path, method=method, error=str(e))
            raise StorageOperationError(operation, path, e) from e

    def _check(self, operation: str, path: str, response: httpx.Response) -> None:
        """Raise for a 404 or any non-2xx status."""
        if response.status_code in GONE_STATUSES:
            raise NotFoundError(operation, path, message=f"{operation} failed for {path}: not found")
        if not _is_success(response.status_code):
            logger.error(f"webdav_{operation}_failed", path=path, status=response.status_code)
            raise BackendProtocolError(operation, path, response.status_code)

    async def _propfind(self, operation: str, path: str, url: str, depth: str) -> httpx.Response:
        response = await self._request(
            operation, path, "PROPFIND", url,
            headers={"Depth": depth, "Content-Type": XML_CONTENT_TYPE},
            content=PROPFIND_BODY.encode("utf-8")
        )
        self._check(operation, path, response)
        if response.status_code != MULTI_STATUS:
            logger.error(f"webdav_{operation}_failed", path=path, status=response.status_code)
            raise BackendProtocolError(operation, path, response.status_code)
        return response

    def _parse(
        self,
        operation: str,
        path: str,
        response: httpx.Response,
        collection_path: Optional[str] = None
    ) -> List[FileEntry]:
        try:
            return parse_multistatus(
                response.content,
                collection_path=collection_path,
                relative_to=self._base_path
            )
        except MultistatusParseError as e:
            logger.error(f"webdav_{operation}_failed", path=path, error=str(e))
            raise BackendProtocolError(operation, path, response.status_code, e) from e

    async def test_connection(self) -> None:
        """Re-run the connect probe on the live client."""
        self._ensure_connected("test_connection")
        try:
            response = await self._probe(self._client)
        except httpx.HTTPError as e:
            raise StorageOperationError("test_connection", self.base_url, e) from e
        self._check("test_connection", self.base_url, response)

    async def read_file(self, path: str) -> bytes:
        self._ensure_connected("read_file")
        resolved = self._resolve(path)
        response = await self._request("read_file", resolved, "GET", self._url(resolved))
        self._check("read_file", resolved, response)
        logger.debug("webdav_read_file", path=resolved, size=len(response.content))
        return response.content

    async def stream_read(self, path: str, chunk_size: int = 8192) -> AsyncIterator[bytes]:
        """Stream a GET response body in chunks."""
        self._ensure_connected("read_file")
        resolved = self._resolve(path)
        try:
            async with self._client.stream("GET", self._url(resolved)) as response:
                if not _is_success(response.status_code):
                    await response.aread()
                    self._check("read_file", resolved, response)
                async for chunk in response.aiter_bytes(chunk_size):
                    yield chunk
        except httpx.HTTPError as e:
            logger.error("webdav_read_file_failed", path=resolved, error=str(e))
            raise StorageOperationError("read_file", resolved, e) from e

    async def write_file(self, path: str, data: bytes) -> None:
        """PUT the data. The parent collection must exist."""
        self._ensure_connected("write_file")
        resolved = self._resolve(path)
        response = await self._request("write_file", resolved, "PUT", self._url(resolved), content=data)
        self._check("write_file", resolved, response)
        logger.info("webdav_write_file", path=resolved, size=len(data))

    async def get_file_info(self, path: str) -> FileEntry:
        """
        Get file/directory metadata with a Depth 0 PROPFIND.

        The directory flag comes from the returned resourcetype or content
        type; a caller path ending in "/" also marks a directory.
        """
        self._ensure_connected("get_file_info")
        resolved = self._resolve(path)
        response = await self._propfind("get_file_info", resolved, self._url(resolved), "0")

        entries = self._parse("get_file_info", resolved, response)
        if not entries:
            raise BackendProtocolError("get_file_info", resolved, response.status_code)

        entry = entries[0]
        return dataclasses.replace(
            entry,
            is_directory=entry.is_directory or path.endswith("/"),
            path=sanitize_relative_path(path),
        )

    async def file_exists(self, path: str) -> bool:
        self._ensure_connected("file_exists")
        resolved = self._resolve(path)
        response = await self._request("file_exists", resolved, "HEAD", self._url(resolved))
        if response.status_code in GONE_STATUSES:
            return False
        if _is_success(response.status_code):
            return True
        logger.error("webdav_file_exists_failed", path=resolved, status=response.status_code)
        raise BackendProtocolError("file_exists", resolved, response.status_code)

    async def delete_file(self, path: str) -> None:
        self._ensure_connected("delete_file")
        resolved = self._resolve(path)
        response = await self._request("delete_file", resolved, "DELETE", self._url(resolved))
        self._check("delete_file", resolved, response)
        logger.info("webdav_delete_file", path=resolved)

    async def copy_file(self, source: str, destination: str) -> None:
        """Server-side COPY in a single request."""
        self._ensure_connected("copy_file")
        source_path = self._resolve(source)
        destination_path = self._resolve(destination)
        response = await self._request(
            "copy_file", source_path, "COPY", self._url(source_path),
            headers={"Destination": self._url(destination_path), "Overwrite": "T"}
        )
        self._check("copy_file", source_path, response)
        logger.info("webdav_copy_file", source=source_path, destination=destination_path)

    async def list_directory(self, path: str = "") -> List[FileEntry]:
        self._ensure_connected("list_directory")
        resolved = self._resolve(path)
        response = await self._propfind(
            "list_directory", resolved, self._url(resolved, collection=True), "1"
        )
        entries = self._parse("list_directory", resolved, response, collection_path=resolved)
        logger.debug("webdav_list_directory", path=resolved, count=len(entries))
        return entries

    async def create_directory(self, path: str) -> None:
        """MKCOL one collection; the parent must exist."""
        self._ensure_connected("create_directory")
        resolved = self._resolve(path)
        response = await self._request(
            "create_directory", resolved, "MKCOL", self._url(resolved, collection=True)
        )
        self._check("create_directory", resolved, response)
        logger.info("webdav_create_directory", path=resolved)

    async def delete_directory(self, path: str) -> None:
        self._ensure_connected("delete_directory")
        resolved = self._resolve(path)
        response = await self._request(
            "delete_directory", resolved, "DELETE", self._url(resolved, collection=True)
        )
        self._check("delete_directory", resolved, response)
        logger.info("webdav_delete_directory", path=resolved)
