# faal/paths.py
"""
Path sandboxing shared by the adapters.

A caller-supplied relative path is cleaned in two passes before it is joined
onto a backend root:

1. lexical normalization (``.`` and ``..`` segments collapsed as a string
   operation, the real filesystem is never consulted);
2. every literal ``..`` left after normalization is removed.

The result never contains ``..`` and always lands at or below the root. Only
the join differs between backends: a filesystem join for Local/NFS, a URL path
join for WebDAV, a posix join onto the base directory for FTP.
"""
import os
import posixpath


def sanitize_relative_path(path: str) -> str:
    """
    Clean a caller path into a root-relative posix path.

    Args:
        path: Caller-relative path, "/" or "\\" separated

    Returns:
        Cleaned path without leading slash, "" for the root
    """
    if not path:
        return ""

    cleaned = posixpath.normpath(path.replace("\\", "/"))
    cleaned = cleaned.replace("..", "")

    segments = [segment for segment in cleaned.split("/") if segment not in ("", ".")]
    return "/".join(segments)


def resolve_path(base_path: str, path: str) -> str:
    """Resolve a caller path onto a local filesystem root."""
    relative = sanitize_relative_path(path)
    if not relative:
        return os.path.normpath(base_path)
    return os.path.normpath(os.path.join(base_path, *relative.split("/")))


def resolve_url_path(base_path: str, path: str) -> str:
    """Resolve a caller path onto the path component of a URL."""
    root = base_path or "/"
    relative = sanitize_relative_path(path)
    if not relative:
        return posixpath.normpath(root)
    return posixpath.normpath(posixpath.join(root, relative))


def resolve_remote_path(base_path: str, path: str) -> str:
    """
    Resolve a caller path onto an FTP base directory.

    Without a base directory the result is relative to the login directory
    ("." for the login directory itself).
    """
    relative = sanitize_relative_path(path)
    if not base_path:
        return relative or "."
    if not relative:
        return base_path
    return f"{base_path.rstrip('/')}/{relative}"


def join_relative(directory: str, name: str) -> str:
    """Build the caller-relative path of a directory entry."""
    directory = directory.replace("\\", "/").strip("/")
    if not directory or directory == ".":
        return name
    return f"{directory}/{name}"
