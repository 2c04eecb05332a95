from __future__ import annotations

import os
import re
from pathlib import Path

import pytest

from asset_pipeline import AssetManager, DiskFileSystem, MemoryFileSystem, PackageFileSystem


def test_disk_walk_lists_files_as_posix_paths(public_dir: Path):
    fs = DiskFileSystem(public_dir)
    assert list(fs.walk()) == ["app.css", "css/site.css", "img/logo.png", "js/main.js"]


def test_disk_open_and_stat(public_dir: Path):
    fs = DiskFileSystem(public_dir)
    with fs.open("css/site.css") as f:
        assert f.read() == b"h1{margin:0}"
    info = fs.stat("css/site.css")
    assert not info.is_dir
    assert info.size == 12
    assert info.mtime is not None
    assert fs.stat("css").is_dir


def test_disk_is_confined_to_root(public_dir: Path, tmp_path: Path):
    (tmp_path / "secret.txt").write_text("nope", encoding="utf-8")
    fs = DiskFileSystem(public_dir)
    with pytest.raises(FileNotFoundError):
        fs.open("../secret.txt")
    with pytest.raises(FileNotFoundError):
        fs.stat("css/../../secret.txt")


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="no symlinks")
def test_disk_symlink_out_of_root_is_not_found(public_dir: Path, tmp_path: Path):
    (tmp_path / "secret.txt").write_text("nope", encoding="utf-8")
    try:
        (public_dir / "link.txt").symlink_to(tmp_path / "secret.txt")
    except OSError:
        pytest.skip("symlinks not permitted")
    with pytest.raises(FileNotFoundError):
        DiskFileSystem(public_dir).open("link.txt")


def test_disk_directory_cannot_be_opened(public_dir: Path):
    with pytest.raises(IsADirectoryError):
        DiskFileSystem(public_dir).open("css")


def test_disk_walk_of_missing_root(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        list(DiskFileSystem(tmp_path / "missing").walk())


def test_memory_file_system():
    fs = MemoryFileSystem({"css/app.css": "a{}", "/js/main.js": b"x"})
    assert list(fs.walk()) == ["css/app.css", "js/main.js"]
    assert fs.stat("css").is_dir
    assert fs.stat("css/app.css").size == 3
    with pytest.raises(IsADirectoryError):
        fs.open("css")
    with pytest.raises(FileNotFoundError):
        fs.open("css/missing.css")
    fs.write("css/app.css", "b{}")
    assert fs.open("css/app.css").read() == b"b{}"
    fs.remove("css/app.css")
    with pytest.raises(FileNotFoundError):
        fs.stat("css/app.css")


@pytest.fixture()
def asset_package(tmp_path: Path, monkeypatch) -> str:
    name = "embedded_assets_pkg"
    pkg = tmp_path / "site-packages" / name
    (pkg / "static" / "css").mkdir(parents=True)
    (pkg / "static" / "__pycache__").mkdir()
    (pkg / "__init__.py").write_text("", encoding="utf-8")
    (pkg / "static" / "app.css").write_text("body{color:red}", encoding="utf-8")
    (pkg / "static" / "css" / "site.css").write_text("h1{margin:0}", encoding="utf-8")
    (pkg / "static" / "__pycache__" / "junk.pyc").write_bytes(b"\0")
    monkeypatch.syspath_prepend(str(tmp_path / "site-packages"))
    return name


def test_package_file_system(asset_package: str):
    fs = PackageFileSystem(asset_package, "static")
    assert list(fs.walk()) == ["app.css", "css/site.css"]
    with fs.open("css/site.css") as f:
        assert f.read() == b"h1{margin:0}"
    assert fs.stat("css").is_dir
    assert fs.stat("app.css").size == 15
    with pytest.raises(FileNotFoundError):
        fs.open("../__init__.py")
    with pytest.raises(FileNotFoundError):
        fs.open("missing.css")


def test_manager_serves_package_assets(asset_package: str):
    manager = AssetManager(file_system=PackageFileSystem(asset_package, "static"))
    assert re.fullmatch(r"/static/app\.[0-9a-f]{8}\.css", manager.url("app.css"))
    assert manager.fingerprint_all() == 2
