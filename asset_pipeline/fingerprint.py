from __future__ import annotations

import hashlib
import posixpath
import re
from pathlib import PureWindowsPath
from typing import BinaryIO


FINGERPRINT_LENGTH = 8
FINGERPRINT_RE = re.compile(r"^(.+)\.([a-f0-9]{8})(\.[^.]+)$")


def content_hash(stream: BinaryIO, chunk: int = 65536) -> str:
    """Return the short SHA-256 fingerprint of everything left in ``stream``."""
    h = hashlib.sha256()
    while True:
        b = stream.read(chunk)
        if not b:
            break
        h.update(b)
    return h.hexdigest()[:FINGERPRINT_LENGTH]


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()[:FINGERPRINT_LENGTH]


def split_ext(path: str) -> tuple[str, str]:
    # posixpath.splitext treats ".nojekyll" as having no extension, which keeps
    # dot-files out of the fingerprinting scheme.
    return posixpath.splitext(path)


def fingerprint_name(path: str, digest: str) -> str:
    """Embed ``digest`` before the final extension: ``css/app.css`` -> ``css/app.<digest>.css``.

    Paths without an extension are returned unchanged since the result could
    never be recognized (and stripped) again.
    """
    base, ext = split_ext(path)
    if not ext or not base or base.endswith("/"):
        return path
    return f"{base}.{digest}{ext}"


def strip_fingerprint(path: str) -> str:
    m = FINGERPRINT_RE.match(path)
    if m:
        return m.group(1) + m.group(3)
    return path


def is_fingerprinted(path: str) -> bool:
    return FINGERPRINT_RE.match(path) is not None


def is_valid_path(path: str) -> bool:
    """Reject traversal and absolute paths before any filesystem access."""
    if ".." in path:
        return False
    if path.startswith("/") or path.startswith("\\"):
        return False
    # C:\x, C:x and \\host\share style paths are absolute somewhere
    win = PureWindowsPath(path)
    if win.drive or win.root:
        return False
    if "\x00" in path:
        return False
    cleaned = posixpath.normpath(path.replace("\\", "/")) if path else path
    return not cleaned.startswith("..")
