from __future__ import annotations

import io
import os
import time
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, Mapping, Optional, Protocol, Union, runtime_checkable


@dataclass(frozen=True)
class FileInfo:
    is_dir: bool
    size: int = 0
    mtime: Optional[float] = None


@runtime_checkable
class AssetFileSystem(Protocol):
    """Read-only view of an asset tree addressed by posix logical paths.

    ``""`` names the root. Missing entries raise ``FileNotFoundError``;
    opening a directory raises ``IsADirectoryError``.
    """

    def open(self, path: str) -> BinaryIO:
        ...

    def stat(self, path: str) -> FileInfo:
        ...

    def walk(self) -> Iterator[str]:
        ...


def _parts(path: str) -> list[str]:
    return [p for p in path.replace("\\", "/").split("/") if p and p != "."]


class DiskFileSystem:
    """Assets on disk under ``root``; nothing outside the root is reachable."""

    def __init__(self, root: Union[str, os.PathLike]) -> None:
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"DiskFileSystem({str(self.root)!r})"

    def _resolve(self, path: str) -> Path:
        root = self.root.resolve()
        candidate = root.joinpath(*_parts(path)).resolve()
        if candidate != root and root not in candidate.parents:
            raise FileNotFoundError(path)
        return candidate

    def open(self, path: str) -> BinaryIO:
        target = self._resolve(path)
        if target.is_dir():
            raise IsADirectoryError(path)
        return target.open("rb")

    def stat(self, path: str) -> FileInfo:
        target = self._resolve(path)
        st = target.stat()
        return FileInfo(is_dir=target.is_dir(), size=st.st_size, mtime=st.st_mtime)

    def walk(self) -> Iterator[str]:
        root = self.root
        if not root.is_dir():
            raise FileNotFoundError(str(root))
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            rel_dir = Path(dirpath).relative_to(root)
            for name in sorted(filenames):
                yield (rel_dir / name).as_posix()


class PackageFileSystem:
    """Assets shipped inside an installed package (package data).

    ``PackageFileSystem("myapp", "static")`` serves ``myapp/static/**`` whether
    the package lives on disk, in a wheel or in a zip.
    """

    def __init__(self, package: str, subdir: str = "") -> None:
        self.package = package
        self.subdir = subdir
        base = resources.files(package)
        for part in _parts(subdir):
            base = base.joinpath(part)
        self._base = base

    def __repr__(self) -> str:
        return f"PackageFileSystem({self.package!r}, {self.subdir!r})"

    def _entry(self, path: str):
        entry = self._base
        for part in _parts(path):
            if part == "..":
                raise FileNotFoundError(path)
            entry = entry.joinpath(part)
        if not (entry.is_file() or entry.is_dir()):
            raise FileNotFoundError(path)
        return entry

    def open(self, path: str) -> BinaryIO:
        entry = self._entry(path)
        if entry.is_dir():
            raise IsADirectoryError(path)
        return entry.open("rb")

    def stat(self, path: str) -> FileInfo:
        entry = self._entry(path)
        if entry.is_dir():
            return FileInfo(is_dir=True)
        return FileInfo(is_dir=False, size=len(entry.read_bytes()))

    def walk(self) -> Iterator[str]:
        def _visit(entry, prefix: str) -> Iterator[str]:
            for child in sorted(entry.iterdir(), key=lambda c: c.name):
                rel = f"{prefix}{child.name}"
                if child.is_dir():
                    if child.name == "__pycache__":
                        continue
                    yield from _visit(child, rel + "/")
                else:
                    yield rel

        yield from _visit(self._base, "")


class MemoryFileSystem:
    """In-memory asset tree; directories are implied by file paths."""

    def __init__(self, files: Optional[Mapping[str, Union[bytes, str]]] = None) -> None:
        self._files: Dict[str, bytes] = {}
        self._mtime = time.time()
        for path, content in (files or {}).items():
            self.write(path, content)

    def write(self, path: str, content: Union[bytes, str]) -> None:
        key = "/".join(_parts(path))
        data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        self._files[key] = data
        self._mtime = time.time()

    def remove(self, path: str) -> None:
        self._files.pop("/".join(_parts(path)), None)

    def _is_dir(self, key: str) -> bool:
        if key == "":
            return True
        prefix = key + "/"
        return any(name.startswith(prefix) for name in self._files)

    def open(self, path: str) -> BinaryIO:
        key = "/".join(_parts(path))
        if key in self._files:
            return io.BytesIO(self._files[key])
        if self._is_dir(key):
            raise IsADirectoryError(path)
        raise FileNotFoundError(path)

    def stat(self, path: str) -> FileInfo:
        key = "/".join(_parts(path))
        if key in self._files:
            return FileInfo(is_dir=False, size=len(self._files[key]), mtime=self._mtime)
        if self._is_dir(key):
            return FileInfo(is_dir=True)
        raise FileNotFoundError(path)

    def walk(self) -> Iterator[str]:
        yield from sorted(self._files)
