"""
File Access Abstraction Layer (FAAL)

Unified interface for accessing different file storage backends:
- Local filesystem
- SMB/CIFS shares
- FTP servers
- NFS exports (Linux)
- WebDAV collections
"""

from faal.base_fs import ConnectionPool, FileEntry, FileStorageProvider
from faal.models import StorageDescriptor, load_descriptors
from faal.registry import create_client, supported_protocols

__all__ = [
    "ConnectionPool",
    "FileEntry",
    "FileStorageProvider",
    "StorageDescriptor",
    "create_client",
    "load_descriptors",
    "supported_protocols",
]
