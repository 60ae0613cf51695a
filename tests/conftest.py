"""
Shared fixtures: in-memory stand-ins for the SMB, FTP and WebDAV backends.

Each fake implements just the part of the library API the adapters call, so
the adapters can be exercised end to end without a server.
"""
import ftplib
import posixpath
from types import SimpleNamespace
from urllib.parse import quote, unquote

import httpx
import pytest
from smb.smb_structs import OperationFailure

STATUS_OBJECT_NAME_NOT_FOUND = 0xC0000034
STATUS_ACCESS_DENIED = 0xC0000022
STATUS_OBJECT_NAME_COLLISION = 0xC0000035

FIXED_MTIME = 1700000000.0
HTTP_DATE = "Tue, 14 Nov 2023 22:13:20 GMT"


class FakeSMBConnection:
    """In-memory pysmb SMBConnection serving a single share."""

    def __init__(self, share="docs", authenticate=True, fail_connect=None, fail_share=False):
        self.share = share
        self.authenticate = authenticate
        self.fail_connect = fail_connect
        self.fail_share = fail_share
        self.files = {}
        self.dirs = {""}
        self.closed = False
        self.calls = []

    def _key(self, path):
        return path.replace("\\", "/").strip("/")

    def _fail(self, status):
        raise OperationFailure("Failed", [SimpleNamespace(status=status, raw_data=b"")])

    def _check_share(self, service_name):
        if service_name != self.share or self.fail_share:
            self._fail(STATUS_ACCESS_DENIED)

    def _shared_file(self, key):
        is_dir = key in self.dirs
        return SimpleNamespace(
            filename=posixpath.basename(key),
            file_size=0 if is_dir else len(self.files[key]),
            isDirectory=is_dir,
            isReadOnly=False,
            last_write_time=FIXED_MTIME,
        )

    def connect(self, ip, port=139, timeout=60):
        self.calls.append(("connect", ip, port))
        if self.fail_connect is not None:
            raise self.fail_connect
        return self.authenticate

    def close(self):
        self.calls.append(("close",))
        self.closed = True

    def listPath(self, service_name, path, timeout=30):
        self.calls.append(("listPath", service_name, path))
        self._check_share(service_name)
        key = self._key(path)
        if key not in self.dirs:
            self._fail(STATUS_OBJECT_NAME_NOT_FOUND)
        children = [
            self._shared_file(p)
            for p in sorted(self.files.keys() | self.dirs)
            if p and posixpath.dirname(p) == key
        ]
        dot = SimpleNamespace(
            filename=".", file_size=0, isDirectory=True, isReadOnly=False,
            last_write_time=FIXED_MTIME
        )
        return [dot] + children

    def retrieveFile(self, service_name, path, file_obj, timeout=30):
        self._check_share(service_name)
        key = self._key(path)
        if key not in self.files:
            self._fail(STATUS_OBJECT_NAME_NOT_FOUND)
        file_obj.write(self.files[key])
        return 0, len(self.files[key])

    def storeFile(self, service_name, path, file_obj, timeout=30):
        self._check_share(service_name)
        key = self._key(path)
        if posixpath.dirname(key) not in self.dirs:
            self._fail(STATUS_OBJECT_NAME_NOT_FOUND)
        self.files[key] = file_obj.read()
        return len(self.files[key])

    def getAttributes(self, service_name, path, timeout=30):
        self._check_share(service_name)
        key = self._key(path)
        if key not in self.files and key not in self.dirs:
            self._fail(STATUS_OBJECT_NAME_NOT_FOUND)
        return self._shared_file(key)

    def deleteFiles(self, service_name, path_file_pattern, timeout=30):
        self._check_share(service_name)
        key = self._key(path_file_pattern)
        if key not in self.files:
            self._fail(STATUS_OBJECT_NAME_NOT_FOUND)
        del self.files[key]

    def createDirectory(self, service_name, path, timeout=30):
        self._check_share(service_name)
        key = self._key(path)
        if posixpath.dirname(key) not in self.dirs:
            self._fail(STATUS_OBJECT_NAME_NOT_FOUND)
        if key in self.dirs or key in self.files:
            self._fail(STATUS_OBJECT_NAME_COLLISION)
        self.dirs.add(key)

    def deleteDirectory(self, service_name, path, timeout=30):
        self._check_share(service_name)
        key = self._key(path)
        if key not in self.dirs:
            self._fail(STATUS_OBJECT_NAME_NOT_FOUND)
        self.dirs.discard(key)


class FakeFTP:
    """In-memory ftplib.FTP with a Unix-like directory tree."""

    def __init__(self, mlsd_supported=True, fail_login=False):
        self.mlsd_supported = mlsd_supported
        self.fail_login = fail_login
        self.files = {}
        self.dirs = {"/"}
        self.cwd_path = "/"
        self.sock = None
        self.timeout = None
        self.quit_called = False
        self.closed = False
        self.commands = []

    def _abs(self, path):
        return posixpath.normpath(posixpath.join(self.cwd_path, path))

    def _arg(self, cmd):
        return cmd.split(" ", 1)[1]

    def connect(self, host="", port=0, timeout=-999):
        self.commands.append(("connect", host, port, timeout))
        self.timeout = timeout
        self.sock = SimpleNamespace(settimeout=lambda value: None)
        return "220 ready"

    def login(self, user="", passwd=""):
        self.commands.append(("login", user))
        if self.fail_login:
            raise ftplib.error_perm("530 Login incorrect.")
        return "230 Login successful."

    def cwd(self, dirname):
        path = self._abs(dirname)
        if path not in self.dirs:
            raise ftplib.error_perm("550 Failed to change directory.")
        self.cwd_path = path
        return "250 OK"

    def pwd(self):
        return self.cwd_path

    def quit(self):
        self.quit_called = True
        return "221 Goodbye."

    def close(self):
        self.closed = True

    def retrbinary(self, cmd, callback, blocksize=8192, rest=None):
        path = self._abs(self._arg(cmd))
        if path not in self.files:
            raise ftplib.error_perm("550 Failed to open file.")
        callback(self.files[path])
        return "226 Transfer complete."

    def storbinary(self, cmd, fp, blocksize=8192, callback=None, rest=None):
        path = self._abs(self._arg(cmd))
        if posixpath.dirname(path) not in self.dirs:
            raise ftplib.error_perm("553 Could not create file.")
        self.files[path] = fp.read()
        return "226 Transfer complete."

    def mkd(self, dirname):
        path = self._abs(dirname)
        if path in self.dirs or path in self.files:
            raise ftplib.error_perm("550 Create directory operation failed.")
        if posixpath.dirname(path) not in self.dirs:
            raise ftplib.error_perm("550 Create directory operation failed.")
        self.dirs.add(path)
        return path

    def rmd(self, dirname):
        path = self._abs(dirname)
        if path not in self.dirs:
            raise ftplib.error_perm("550 Remove directory operation failed.")
        if any(posixpath.dirname(p) == path for p in self.files.keys() | self.dirs if p != path):
            raise ftplib.error_perm("550 Directory not empty.")
        self.dirs.discard(path)
        return "250 Remove directory operation successful."

    def delete(self, filename):
        path = self._abs(filename)
        if path not in self.files:
            raise ftplib.error_perm("550 Delete operation failed.")
        del self.files[path]
        return "250 Delete operation successful."

    def _children(self, path):
        if path not in self.dirs:
            raise ftplib.error_perm("550 No such directory.")
        return sorted(
            p for p in self.files.keys() | self.dirs
            if p != path and posixpath.dirname(p) == path
        )

    def mlsd(self, path="", facts=[]):
        if not self.mlsd_supported:
            raise ftplib.error_perm("500 Unknown command.")
        directory = self._abs(path or ".")
        children = self._children(directory)
        yield ".", {"type": "cdir"}
        for child in children:
            if child in self.dirs:
                yield posixpath.basename(child), {
                    "type": "dir", "modify": "20231114221320", "unix.mode": "0755"
                }
            else:
                yield posixpath.basename(child), {
                    "type": "file",
                    "size": str(len(self.files[child])),
                    "modify": "20231114221320",
                    "unix.mode": "0640",
                }

    def retrlines(self, cmd, callback=None):
        directory = self._abs(self._arg(cmd))
        callback("total 8")
        for child in self._children(directory):
            if child in self.dirs:
                line = f"drwxr-xr-x    2 ftp      ftp          4096 Nov 14  2023 {posixpath.basename(child)}"
            else:
                size = len(self.files[child])
                line = f"-rw-r-----    1 ftp      ftp      {size:>8} Nov 14  2023 {posixpath.basename(child)}"
            callback(line)
        return "226 Directory send OK."


class FakeDAVServer:
    """In-memory WebDAV server, served through httpx.MockTransport."""

    def __init__(self, root="/dav"):
        self.root = root
        self.files = {}
        self.collections = {root}
        self.requests = []

    def transport(self):
        return httpx.MockTransport(self.handler)

    def _exists(self, path):
        return path in self.files or path in self.collections

    def _record(self, path):
        is_collection = path in self.collections
        href = quote(path) + ("/" if is_collection else "")
        props = [f"<D:displayname>{posixpath.basename(path)}</D:displayname>"]
        if is_collection:
            props.append("<D:resourcetype><D:collection/></D:resourcetype>")
        else:
            props.append(f"<D:getcontentlength>{len(self.files[path])}</D:getcontentlength>")
            props.append("<D:resourcetype/>")
        props.append(f"<D:getlastmodified>{HTTP_DATE}</D:getlastmodified>")
        return (
            "<D:response>"
            f"<D:href>{href}</D:href>"
            f"<D:propstat><D:prop>{''.join(props)}</D:prop>"
            "<D:status>HTTP/1.1 200 OK</D:status></D:propstat>"
            "</D:response>"
        )

    def _children(self, path):
        return sorted(
            p for p in self.files.keys() | self.collections
            if p != path and posixpath.dirname(p) == path
        )

    def handler(self, request):
        self.requests.append(request)
        path = unquote(request.url.path).rstrip("/") or "/"
        method = request.method

        if method == "PROPFIND":
            if not self._exists(path):
                return httpx.Response(404)
            records = [self._record(path)]
            if request.headers.get("Depth") == "1" and path in self.collections:
                records.extend(self._record(child) for child in self._children(path))
            body = '<?xml version="1.0"?><D:multistatus xmlns:D="DAV:">' + "".join(records) + "</D:multistatus>"
            return httpx.Response(207, content=body.encode("utf-8"))

        if method == "GET":
            if path not in self.files:
                return httpx.Response(404)
            return httpx.Response(200, content=self.files[path])

        if method == "HEAD":
            return httpx.Response(200 if self._exists(path) else 404)

        if method == "PUT":
            if posixpath.dirname(path) not in self.collections:
                return httpx.Response(409)
            created = path not in self.files
            self.files[path] = request.content
            return httpx.Response(201 if created else 204)

        if method == "MKCOL":
            if self._exists(path):
                return httpx.Response(405)
            if posixpath.dirname(path) not in self.collections:
                return httpx.Response(409)
            self.collections.add(path)
            return httpx.Response(201)

        if method == "DELETE":
            if path in self.files:
                del self.files[path]
                return httpx.Response(204)
            if path in self.collections:
                prefix = path + "/"
                self.files = {p: d for p, d in self.files.items() if not p.startswith(prefix)}
                self.collections = {p for p in self.collections if p != path and not p.startswith(prefix)}
                return httpx.Response(204)
            return httpx.Response(404)

        if method == "COPY":
            if path not in self.files:
                return httpx.Response(404)
            destination = unquote(httpx.URL(request.headers["Destination"]).path)
            if posixpath.dirname(destination) not in self.collections:
                return httpx.Response(409)
            self.files[destination] = self.files[path]
            return httpx.Response(201)

        return httpx.Response(405)


@pytest.fixture
def fake_smb():
    return FakeSMBConnection()


@pytest.fixture
def fake_ftp():
    return FakeFTP()


@pytest.fixture
def dav_server():
    return FakeDAVServer()


@pytest.fixture
def smb_statuses():
    return SimpleNamespace(
        not_found=STATUS_OBJECT_NAME_NOT_FOUND,
        access_denied=STATUS_ACCESS_DENIED,
    )


@pytest.fixture
def byte_chunks():
    async def _chunks(*parts):
        for part in parts:
            yield part
    return _chunks

