# tests/test_paths.py
"""
Tests for path sandboxing.
"""
import os

import pytest

from faal.paths import (
    join_relative,
    resolve_path,
    resolve_remote_path,
    resolve_url_path,
    sanitize_relative_path,
)

TRAVERSALS = [
    "../../../etc/passwd",
    "..",
    "../",
    "a/../../b",
    "a/b/../../../../c",
    "./../x",
    "....//....//secret",
    "..\\..\\windows\\system32",
    "/../../root/.ssh",
    "a/..../b",
]


class TestSanitizeRelativePath:
    """Test the two-pass relative path cleaning."""

    def test_plain_path_unchanged(self):
        """Test an ordinary relative path passes through."""
        assert sanitize_relative_path("reports/2024/q1.csv") == "reports/2024/q1.csv"

    def test_root_spellings(self):
        """Test empty, '.', and '/' all mean the root."""
        assert sanitize_relative_path("") == ""
        assert sanitize_relative_path(".") == ""
        assert sanitize_relative_path("/") == ""

    def test_leading_slash_dropped(self):
        """Test absolute-looking paths are made relative."""
        assert sanitize_relative_path("/a/b.txt") == "a/b.txt"

    def test_backslashes_converted(self):
        """Test Windows separators become forward slashes."""
        assert sanitize_relative_path("a\\b\\c.txt") == "a/b/c.txt"

    def test_inner_dotdot_collapsed(self):
        """Test '..' inside the path is resolved lexically."""
        assert sanitize_relative_path("a/b/../c.txt") == "a/c.txt"

    @pytest.mark.parametrize("path", TRAVERSALS)
    def test_never_contains_dotdot(self, path):
        """Test no traversal sequence survives sanitizing."""
        assert ".." not in sanitize_relative_path(path)


class TestResolvePath:
    """Test resolution onto the different backend roots."""

    def test_etc_passwd_stays_inside_base(self):
        """Test the classic traversal cannot escape /data."""
        resolved = resolve_path("/data", "../../../etc/passwd")

        assert resolved != "/etc/passwd"
        assert ".." not in resolved
        assert resolved == os.path.normpath("/data/etc/passwd")

    @pytest.mark.parametrize("path", TRAVERSALS)
    def test_local_resolution_stays_under_base(self, path):
        """Test every traversal resolves at or below the base."""
        resolved = resolve_path("/data", path)

        assert ".." not in resolved
        assert resolved == "/data" or resolved.startswith("/data/")

    @pytest.mark.parametrize("path", TRAVERSALS)
    def test_url_resolution_stays_under_base(self, path):
        """Test URL paths stay under the collection path."""
        resolved = resolve_url_path("/dav/files", path)

        assert ".." not in resolved
        assert resolved == "/dav/files" or resolved.startswith("/dav/files/")

    def test_url_resolution_default_root(self):
        """Test an empty base path resolves from '/'."""
        assert resolve_url_path("", "a/b") == "/a/b"
        assert resolve_url_path("", "") == "/"

    def test_remote_resolution_with_base(self):
        """Test FTP paths are joined onto the base directory."""
        assert resolve_remote_path("/data/", "a/b.txt") == "/data/a/b.txt"
        assert resolve_remote_path("/data", "") == "/data"

    def test_remote_resolution_without_base(self):
        """Test FTP paths stay relative to the login directory."""
        assert resolve_remote_path("", "a/b.txt") == "a/b.txt"
        assert resolve_remote_path("", "") == "."

    @pytest.mark.parametrize("path", TRAVERSALS)
    def test_remote_resolution_is_sandboxed(self, path):
        """Test FTP resolution applies the same sandbox."""
        resolved = resolve_remote_path("/data", path)

        assert ".." not in resolved
        assert resolved == "/data" or resolved.startswith("/data/")


class TestJoinRelative:
    """Test caller-relative entry paths."""

    def test_root_directory(self):
        """Test entries of the root are bare names."""
        assert join_relative("", "b.txt") == "b.txt"
        assert join_relative(".", "b.txt") == "b.txt"

    def test_nested_directory(self):
        """Test entries are prefixed with their directory."""
        assert join_relative("a", "b.txt") == "a/b.txt"
        assert join_relative("/a/", "b.txt") == "a/b.txt"
