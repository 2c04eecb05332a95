from __future__ import annotations

import logging
import mimetypes
import os
import posixpath
import re
from email.utils import formatdate, parsedate_to_datetime
from typing import TYPE_CHECKING, Dict, Optional, Tuple, Union

from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.staticfiles import StaticFiles
from starlette.types import Receive, Scope, Send

from core.metrics import observe_asset

from .errors import AssetNotFoundError, PathValidationError
from .filesystem import DiskFileSystem, FileInfo
from .fingerprint import is_fingerprinted, is_valid_path, strip_fingerprint

if TYPE_CHECKING:
    from .manager import AssetManager


logger = logging.getLogger("asset_pipeline.handler")

IMMUTABLE_CACHE = "public, max-age=31536000, immutable"
DEFAULT_CACHE = "public, max-age=3600"

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")
_UNSATISFIABLE = "unsatisfiable"


def parse_range(header: Optional[str], size: int) -> Union[None, str, Tuple[int, int]]:
    """Parse a single ``bytes=`` range into an inclusive ``(start, end)``.

    Returns None when the header should be ignored (absent, malformed or a
    multi-range request) and ``"unsatisfiable"`` when it cannot be served.
    """
    if not header:
        return None
    m = _RANGE_RE.match(header.strip())
    if not m:
        return None
    first, last = m.group(1), m.group(2)
    if not first and not last:
        return None
    if not first:
        suffix = int(last)
        if suffix == 0 or size == 0:
            return _UNSATISFIABLE
        return max(size - suffix, 0), size - 1
    start = int(first)
    end = int(last) if last else size - 1
    if start >= size:
        return _UNSATISFIABLE
    if end < start:
        return None
    return start, min(end, size - 1)


def content_type_for(path: str) -> str:
    guessed, _ = mimetypes.guess_type(posixpath.basename(path))
    return guessed or "application/octet-stream"


class AssetHandler:
    """ASGI app serving a manager's asset tree under its static prefix.

    Fingerprinted names (``app.1a2b3c4d.css``) are mapped back to the real
    file; in production they get a year-long immutable cache lifetime.
    """

    def __init__(self, manager: "AssetManager") -> None:
        self.manager = manager
        self._static: Optional[Tuple[str, StaticFiles]] = None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return
        request = Request(scope, receive)
        try:
            response = await self.respond(request)
        except PathValidationError:
            response = PlainTextResponse("Invalid path", status_code=400)
        except AssetNotFoundError:
            response = PlainTextResponse("Not found", status_code=404)
        except Exception:
            logger.exception("Asset handler failed for %s", scope.get("path"))
            response = PlainTextResponse("Internal server error", status_code=500)
        observe_asset(response.status_code)
        await response(scope, receive, send)

    def asset_path(self, scope: Scope) -> str:
        """Request path with the static prefix removed."""
        path = scope.get("path", "") or ""
        prefix = self.manager.static_path
        if path.startswith(prefix):
            return path[len(prefix):]
        root_path = scope.get("root_path", "") or ""
        if root_path and path.startswith(root_path):
            path = path[len(root_path):]
        if path.startswith("/"):
            path = path[1:]
        return path

    def _load(self, actual: str) -> Tuple[FileInfo, bytes]:
        fs = self.manager.file_system
        try:
            info = fs.stat(actual)
            if info.is_dir:
                raise AssetNotFoundError(actual)
            with fs.open(actual) as f:
                data = f.read()
        except OSError as exc:
            raise AssetNotFoundError(actual) from exc
        return info, data

    def _static_files(self, fs: DiskFileSystem) -> StaticFiles:
        root = str(fs.root)
        cached = self._static
        if cached is None or cached[0] != root:
            cached = self._static = (root, StaticFiles(directory=root, check_dir=False))
        return cached[1]

    async def respond(self, request: Request) -> Response:
        if request.method not in ("GET", "HEAD"):
            return PlainTextResponse("Method not allowed", status_code=405, headers={"Allow": "GET, HEAD"})

        path = self.asset_path(request.scope)
        if not is_valid_path(path):
            logger.warning("Rejected asset path %r", path, extra={"asset": path})
            raise PathValidationError(path)

        actual = strip_fingerprint(path)
        fs = self.manager.file_system
        if isinstance(fs, DiskFileSystem):
            response = await self._disk_response(fs, actual, request)
        else:
            response = await self._memory_response(actual, request)

        if not self.manager.is_dev and is_fingerprinted(path):
            response.headers["Cache-Control"] = IMMUTABLE_CACHE
        else:
            response.headers["Cache-Control"] = DEFAULT_CACHE
        return response

    async def _disk_response(self, fs: DiskFileSystem, actual: str, request: Request) -> Response:
        # StaticFiles streams the file and handles ranges and conditional requests
        static = self._static_files(fs)
        rel = os.path.normpath(os.path.join(*actual.split("/")))
        try:
            return await static.get_response(rel, request.scope)
        except HTTPException as exc:
            if exc.status_code == 404:
                raise AssetNotFoundError(actual) from exc
            raise

    async def _memory_response(self, actual: str, request: Request) -> Response:
        info, data = await run_in_threadpool(self._load, actual)

        headers: Dict[str, str] = {"Accept-Ranges": "bytes"}
        if info.mtime is not None:
            headers["Last-Modified"] = formatdate(info.mtime, usegmt=True)
            if self._not_modified(request, info.mtime):
                return Response(status_code=304, headers=headers)

        media_type = content_type_for(actual)
        size = len(data)
        status = 200
        rng = parse_range(request.headers.get("range"), size)
        if rng == _UNSATISFIABLE:
            headers["Content-Range"] = f"bytes */{size}"
            return Response(status_code=416, headers=headers)
        if isinstance(rng, tuple):
            start, end = rng
            data = data[start : end + 1]
            headers["Content-Range"] = f"bytes {start}-{end}/{size}"
            status = 206

        headers["Content-Length"] = str(len(data))
        body = b"" if request.method == "HEAD" else data
        return Response(content=body, status_code=status, headers=headers, media_type=media_type)

    @staticmethod
    def _not_modified(request: Request, mtime: float) -> bool:
        since = request.headers.get("if-modified-since")
        if not since or request.headers.get("range"):
            return False
        try:
            ts = parsedate_to_datetime(since).timestamp()
        except (TypeError, ValueError):
            return False
        return int(mtime) <= int(ts)
