# faal/registry.py
"""
Adapter factory for FAAL.

Maps a StorageDescriptor (protocol tag + untyped settings) to a constructed,
not yet connected, protocol adapter. The untyped settings bag is converted
into a typed BackendConfig here and goes no further.
"""
import math
import sys
from typing import Any, Callable, Dict, List, Mapping, Union

import structlog

from faal.base_fs import FileStorageProvider
from faal.errors import UnsupportedPlatformError, UnsupportedProtocolError
from faal.models import (
    FTPConfig,
    LocalConfig,
    NFSConfig,
    SMBConfig,
    StorageDescriptor,
    WebDAVConfig,
)
from faal.protocols.ftp_protocol import FTPProtocolAdapter
from faal.protocols.local_protocol import LocalProtocolAdapter
from faal.protocols.nfs_protocol import NFSProtocolAdapter
from faal.protocols.smb_protocol import SMBProtocolAdapter
from faal.protocols.webdav_protocol import WebDAVProtocolAdapter

logger = structlog.get_logger()

SUPPORTED_PROTOCOLS = ["smb", "ftp", "nfs", "webdav", "local"]

SettingsMap = Mapping[str, Any]


def _lookup(settings: SettingsMap, key: str) -> Any:
    """Find key as given, falling back to its camelCase spelling."""
    if key in settings:
        return settings[key]
    head, *rest = key.split("_")
    camel = head + "".join(part.capitalize() for part in rest)
    return settings.get(camel)


def get_string_setting(settings: SettingsMap, key: str, default: str = "") -> str:
    """
    Extract a string setting.

    Any value that is not a string yields the default.
    """
    value = _lookup(settings, key)
    if isinstance(value, str):
        return value
    return default


def get_int_setting(settings: SettingsMap, key: str, default: int = 0) -> int:
    """
    Extract an integer setting.

    Ints are returned as-is and floats are truncated (JSON sources decode
    numbers as floats). Non-finite floats and anything else, booleans and
    numeric strings included, yield the default.
    """
    value = _lookup(settings, key)
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return default


def _nfs_supported() -> bool:
    return sys.platform.startswith("linux")


def _create_smb(settings: SettingsMap) -> FileStorageProvider:
    return SMBProtocolAdapter(SMBConfig(
        host=get_string_setting(settings, "host"),
        port=get_int_setting(settings, "port", 445),
        share=get_string_setting(settings, "share"),
        username=get_string_setting(settings, "username"),
        password=get_string_setting(settings, "password"),
        domain=get_string_setting(settings, "domain", "WORKGROUP"),
    ))


def _create_ftp(settings: SettingsMap) -> FileStorageProvider:
    return FTPProtocolAdapter(FTPConfig(
        host=get_string_setting(settings, "host"),
        port=get_int_setting(settings, "port", 21),
        username=get_string_setting(settings, "username"),
        password=get_string_setting(settings, "password"),
        path=get_string_setting(settings, "path"),
    ))


def _create_nfs(settings: SettingsMap) -> FileStorageProvider:
    if not _nfs_supported():
        raise UnsupportedPlatformError(
            "nfs", sys.platform, "NFS protocol is only supported on Linux"
        )
    return NFSProtocolAdapter(NFSConfig(
        host=get_string_setting(settings, "host"),
        path=get_string_setting(settings, "path"),
        mount_point=get_string_setting(settings, "mount_point"),
        options=get_string_setting(settings, "options", "vers=3"),
    ))


def _create_webdav(settings: SettingsMap) -> FileStorageProvider:
    return WebDAVProtocolAdapter(WebDAVConfig(
        url=get_string_setting(settings, "url"),
        username=get_string_setting(settings, "username"),
        password=get_string_setting(settings, "password"),
        path=get_string_setting(settings, "path"),
    ))


def _create_local(settings: SettingsMap) -> FileStorageProvider:
    return LocalProtocolAdapter(LocalConfig(
        base_path=get_string_setting(settings, "base_path"),
    ))


# Registry of adapter constructors, keyed by protocol tag
PROTOCOL_REGISTRY: Dict[str, Callable[[SettingsMap], FileStorageProvider]] = {
    "smb": _create_smb,
    "ftp": _create_ftp,
    "nfs": _create_nfs,
    "webdav": _create_webdav,
    "local": _create_local,
}


def create_client(descriptor: Union[StorageDescriptor, Dict[str, Any]]) -> FileStorageProvider:
    """
    Create the adapter for a storage descriptor.

    The adapter is returned disconnected; call connect() (or use it as an
    async context manager) before any file operation.

    Args:
        descriptor: StorageDescriptor, or a dict it can be validated from

    Returns:
        Adapter for descriptor.protocol

    Raises:
        UnsupportedProtocolError: If the protocol tag is unknown
        UnsupportedPlatformError: If the protocol cannot run on this OS
        ConfigurationError: If a required setting is missing

    Example:
        client = create_client({"protocol": "local", "settings": {"base_path": "/srv"}})
        async with client:
            data = await client.read_file("reports/q1.csv")
    """
    if not isinstance(descriptor, StorageDescriptor):
        descriptor = StorageDescriptor.model_validate(descriptor)

    create = PROTOCOL_REGISTRY.get(descriptor.protocol)
    if create is None:
        logger.error("unsupported_protocol", protocol=descriptor.protocol)
        raise UnsupportedProtocolError(descriptor.protocol)

    client = create(descriptor.settings)
    logger.info(
        "storage_client_created",
        protocol=descriptor.protocol,
        storage_id=descriptor.id,
        storage_name=descriptor.name
    )
    return client


def supported_protocols() -> List[str]:
    """
    List every protocol tag the factory knows.

    NFS is listed on every platform; off Linux it fails at construction.
    """
    return list(SUPPORTED_PROTOCOLS)
