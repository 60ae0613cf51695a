# faal/models.py
"""
Configuration models.

StorageDescriptor is the declarative, serializable description of a storage
backend that the factory consumes. The *Config dataclasses are the typed,
immutable per-protocol configurations an adapter owns for its lifetime.
"""
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Union

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StorageDescriptor(BaseModel):
    """
    Declarative configuration of one storage backend.

    Example:
    {
        "id": "nas-main",
        "name": "Main NAS",
        "protocol": "smb",
        "enabled": true,
        "max_depth": 10,
        "settings": {
            "host": "nas.company.local",
            "share": "documents",
            "username": "faal_app",
            "password": "secret"
        }
    }
    """

    id: str = ""
    name: str = ""
    protocol: str
    enabled: bool = True
    max_depth: int = 0
    settings: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


def load_descriptors(path: Union[str, Path]) -> List[StorageDescriptor]:
    """
    Load storage descriptors from a JSON file.

    The file holds either a single descriptor object or a list of them.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = [raw]
    return [StorageDescriptor.model_validate(item) for item in raw]


@dataclass(frozen=True)
class LocalConfig:
    """Local filesystem rooted at base_path."""
    base_path: str
    protocol: ClassVar[str] = "local"


@dataclass(frozen=True)
class SMBConfig:
    """SMB/CIFS share."""
    host: str
    share: str
    port: int = 445
    username: str = ""
    password: str = field(default="", repr=False)
    domain: str = "WORKGROUP"
    protocol: ClassVar[str] = "smb"


@dataclass(frozen=True)
class FTPConfig:
    """FTP server, optionally rooted at a base directory (path)."""
    host: str
    port: int = 21
    username: str = ""
    password: str = field(default="", repr=False)
    path: str = ""
    protocol: ClassVar[str] = "ftp"


@dataclass(frozen=True)
class NFSConfig:
    """NFS export (host:path) mounted at mount_point."""
    host: str
    path: str
    mount_point: str
    options: str = "vers=3"
    protocol: ClassVar[str] = "nfs"


@dataclass(frozen=True)
class WebDAVConfig:
    """WebDAV collection; a non-root path replaces the URL's path."""
    url: str
    username: str = ""
    password: str = field(default="", repr=False)
    path: str = ""
    protocol: ClassVar[str] = "webdav"


BackendConfig = Union[LocalConfig, SMBConfig, FTPConfig, NFSConfig, WebDAVConfig]
