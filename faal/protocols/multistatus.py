# faal/protocols/multistatus.py
"""
WebDAV multistatus response parser.

Turns a PROPFIND response body into FileEntry records. Parsing is lenient:
a missing or unreadable property falls back to its default instead of failing
the whole listing, and a response record without an href is skipped.
"""
import posixpath
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional, Union
from urllib.parse import unquote, urlsplit
from xml.etree import ElementTree as ET

from faal.base_fs import DEFAULT_PERMISSION_BITS, FileEntry

DAV = "{DAV:}"

COLLECTION_CONTENT_TYPE = "httpd/unix-directory"

PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8" ?>\n'
    '<D:propfind xmlns:D="DAV:">\n'
    "  <D:prop>\n"
    "    <D:displayname/>\n"
    "    <D:getcontentlength/>\n"
    "    <D:getlastmodified/>\n"
    "    <D:getcontenttype/>\n"
    "    <D:resourcetype/>\n"
    "  </D:prop>\n"
    "</D:propfind>\n"
)


class MultistatusParseError(ValueError):
    """The response body is not well-formed XML."""


def href_to_path(href: str) -> str:
    """Reduce an href (absolute URL or absolute path) to its decoded path."""
    return unquote(urlsplit(href.strip()).path)


def parse_last_modified(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an HTTP date (RFC 1123, e.g. "Tue, 14 Nov 2023 22:13:20 GMT").

    Month and day names are matched in English whatever the process locale.
    Zone abbreviations without a known offset are read as UTC. Returns None
    when the value is not an HTTP date.
    """
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError, OverflowError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _prop_text(response: ET.Element, name: str) -> Optional[str]:
    # Properties may be spread over several propstat blocks
    for element in response.iter(f"{DAV}{name}"):
        if element.text and element.text.strip():
            return element.text.strip()
    return None


def _is_collection(response: ET.Element) -> bool:
    for resourcetype in response.iter(f"{DAV}resourcetype"):
        for child in resourcetype:
            if child.tag in (f"{DAV}collection", f"{DAV}directory"):
                return True
    content_type = _prop_text(response, "getcontenttype")
    return content_type == COLLECTION_CONTENT_TYPE


def _relative_path(href_path: str, relative_to: str, display_name: str) -> str:
    prefix = relative_to.rstrip("/")
    relative = href_path
    if prefix and (href_path == prefix or href_path.startswith(prefix + "/")):
        relative = href_path[len(prefix):]
    relative = relative.strip("/")
    return relative or display_name


def parse_multistatus(
    body: Union[bytes, str],
    collection_path: Optional[str] = None,
    relative_to: Optional[str] = None,
) -> List[FileEntry]:
    """
    Parse a multistatus body into entries.

    Args:
        body: Raw PROPFIND response body
        collection_path: Decoded path of the queried collection; its own
            record is dropped. None keeps every record (depth-0 queries).
        relative_to: Path prefix stripped from each href to build the
            entry's caller-relative path. Defaults to collection_path.

    Returns:
        One FileEntry per child record, in document order

    Raises:
        MultistatusParseError: If body is not well-formed XML
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise MultistatusParseError(f"malformed multistatus body: {e}") from e

    if relative_to is None:
        relative_to = collection_path or ""
    self_path = collection_path.rstrip("/") if collection_path is not None else None

    entries = []
    for response in root.iter(f"{DAV}response"):
        href = response.findtext(f"{DAV}href")
        if not href or not href.strip():
            continue

        href_path = href_to_path(href)
        if self_path is not None and href_path.rstrip("/") == self_path:
            continue

        display_name = _prop_text(response, "displayname")
        if not display_name:
            display_name = posixpath.basename(href_path.rstrip("/")) or "/"

        size = 0
        raw_size = _prop_text(response, "getcontentlength")
        if raw_size:
            try:
                size = max(int(raw_size), 0)
            except ValueError:
                size = 0

        modified_at = parse_last_modified(_prop_text(response, "getlastmodified"))
        if modified_at is None:
            modified_at = datetime.now(timezone.utc)

        entries.append(FileEntry(
            name=display_name,
            size=size,
            modified_at=modified_at,
            is_directory=_is_collection(response),
            permission_bits=DEFAULT_PERMISSION_BITS,
            path=_relative_path(href_path, relative_to, display_name),
        ))

    return entries
