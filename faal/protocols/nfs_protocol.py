# faal/protocols/nfs_protocol.py
"""
NFS protocol adapter for network file access.

Linux only. The export is mounted at the configured mount point with the
kernel NFS client, after which every file operation is a local filesystem
operation on the mounted path (see LocalProtocolAdapter).

Mounting requires CAP_SYS_ADMIN. A mount point that is already mounted (for
example through /etc/fstab) is adopted as-is and left mounted on disconnect.
"""
import asyncio
import ctypes
import ctypes.util
import os

import aiofiles.os
import structlog

from faal.base_fs import FileStorageProvider
from faal.errors import ConfigurationError, ConnectionFailureError, DisconnectError
from faal.models import NFSConfig
from faal.protocols.local_protocol import DIRECTORY_MODE, LocalProtocolAdapter

logger = structlog.get_logger()

NFS_FSTYPE = "nfs"
DEFAULT_MOUNT_OPTIONS = "vers=3"


def _libc():
    return ctypes.CDLL(ctypes.util.find_library("c"), use_errno=True)


def _mount(source: str, target: str, options: str) -> None:
    """mount(2) the NFS export at target."""
    result = _libc().mount(
        source.encode(),
        target.encode(),
        NFS_FSTYPE.encode(),
        ctypes.c_ulong(0),
        options.encode(),
    )
    if result != 0:
        errno = ctypes.get_errno()
        raise OSError(errno, os.strerror(errno), target)


def _unmount(target: str) -> None:
    """umount2(2) target without flags."""
    result = _libc().umount2(target.encode(), 0)
    if result != 0:
        errno = ctypes.get_errno()
        raise OSError(errno, os.strerror(errno), target)


def _is_mounted(target: str) -> bool:
    return os.path.ismount(target)


class NFSProtocolAdapter(LocalProtocolAdapter):
    """
    NFS adapter.

    Configuration:
    {
        "protocol": "nfs",
        "settings": {
            "host": "nfs.company.local",      # NFS server hostname/IP
            "path": "/exports/data",          # Export path on the server
            "mount_point": "/mnt/faal/data",  # Local mount point (required)
            "options": "vers=3"               # Mount options (optional, default: vers=3)
        }
    }
    """

    protocol = "nfs"

    def __init__(self, config: NFSConfig):
        if not config.mount_point:
            raise ConfigurationError("mount point is required")

        FileStorageProvider.__init__(self, config)
        self._root = None
        self._connected = False
        self._mounted_here = False

        logger.info(
            "nfs_adapter_initialized",
            host=config.host,
            export=config.path,
            mount_point=config.mount_point
        )

    @property
    def _root_path(self) -> str:
        return self.config.mount_point

    @property
    def source(self) -> str:
        return f"{self.config.host}:{self.config.path}"

    async def connect(self) -> None:
        """
        Mount the export, or adopt an existing mount at the mount point.

        Raises:
            ConnectionFailureError: If the mount point cannot be created or
                the mount call fails
        """
        if self.is_connected():
            logger.debug("nfs_already_connected", mount_point=self.config.mount_point)
            return

        mount_point = self.config.mount_point
        loop = asyncio.get_event_loop()

        if await loop.run_in_executor(None, _is_mounted, mount_point):
            logger.info("nfs_mount_adopted", mount_point=mount_point)
            self._mounted_here = False
        else:
            try:
                await aiofiles.os.makedirs(mount_point, mode=DIRECTORY_MODE, exist_ok=True)
            except OSError as e:
                logger.error("nfs_connect_failed", step="create mount point", error=str(e))
                raise ConnectionFailureError(self.protocol, "create mount point", e) from e

            options = self.config.options or DEFAULT_MOUNT_OPTIONS
            logger.info(
                "nfs_mounting",
                source=self.source,
                mount_point=mount_point,
                options=options
            )
            try:
                await loop.run_in_executor(None, _mount, self.source, mount_point, options)
            except OSError as e:
                logger.error("nfs_connect_failed", step="mount", error=str(e))
                raise ConnectionFailureError(self.protocol, "mount", e) from e
            self._mounted_here = True

        self._root = mount_point
        self._connected = True
        logger.info("nfs_connected", source=self.source, mount_point=mount_point)

    async def disconnect(self) -> None:
        """Unmount if this adapter mounted the export."""
        mounted_here = self._mounted_here
        root = self._root
        self._root = None
        self._connected = False
        self._mounted_here = False

        if not mounted_here or root is None:
            return

        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, _unmount, root)
        except OSError as e:
            logger.warning("nfs_unmount_failed", mount_point=root, error=str(e))
            raise DisconnectError(self.protocol, [("unmount", e)]) from e

        logger.info("nfs_disconnected", mount_point=root)

    def is_connected(self) -> bool:
        return self._connected and self._root is not None and _is_mounted(self._root)
