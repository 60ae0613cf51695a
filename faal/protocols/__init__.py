"""
Protocol adapters for FAAL.

Each protocol adapter implements the FileStorageProvider interface
for one storage protocol (local, SMB, FTP, NFS, WebDAV).
"""

from faal.protocols.ftp_protocol import FTPProtocolAdapter
from faal.protocols.local_protocol import LocalProtocolAdapter
from faal.protocols.nfs_protocol import NFSProtocolAdapter
from faal.protocols.smb_protocol import SMBProtocolAdapter
from faal.protocols.webdav_protocol import WebDAVProtocolAdapter

__all__ = [
    "FTPProtocolAdapter",
    "LocalProtocolAdapter",
    "NFSProtocolAdapter",
    "SMBProtocolAdapter",
    "WebDAVProtocolAdapter",
]
