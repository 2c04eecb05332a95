from __future__ import annotations

import json
import re
from pathlib import Path

import pytest

from asset_pipeline import AssetManager, Manifest, ManifestError, MemoryFileSystem, generate_manifest


def test_save_writes_two_space_indented_json(tmp_path: Path):
    m = Manifest({"app.css": "app.abc12345.css", "js/main.js": "js/main.0123abcd.js"})
    target = tmp_path / "nested" / "manifest.json"
    m.save(target)
    text = target.read_text(encoding="utf-8")
    assert text == json.dumps(
        {"app.css": "app.abc12345.css", "js/main.js": "js/main.0123abcd.js"}, indent=2
    )
    assert '\n  "app.css": "app.abc12345.css"' in text


def test_load_save_round_trip(tmp_path: Path):
    original = Manifest({"app.css": "app.abc12345.css", "é/ü.css": "é/ü.0123abcd.css"})
    target = tmp_path / "manifest.json"
    original.save(target)
    loaded = Manifest.load(target)
    assert loaded.as_dict() == original.as_dict()
    assert loaded.get("app.css") == "app.abc12345.css"
    assert "é/ü.css" in loaded
    assert len(loaded) == 2


def test_set_and_get():
    m = Manifest()
    assert m.get("app.css") is None
    m.set("app.css", "app.abc12345.css")
    assert m.get("app.css") == "app.abc12345.css"
    assert list(m) == ["app.css"]


def test_load_missing_file_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        Manifest.load(tmp_path / "nope.json")


@pytest.mark.parametrize("content", ["not json", "[1, 2]", '{"app.css": 3}'])
def test_load_invalid_manifest(tmp_path: Path, content: str):
    target = tmp_path / "manifest.json"
    target.write_text(content, encoding="utf-8")
    with pytest.raises(ManifestError):
        Manifest.load(target)


def test_load_non_utf8_manifest(tmp_path: Path):
    target = tmp_path / "manifest.json"
    target.write_bytes(b'{"app.css": "app.\xff\xfe.css"}')
    with pytest.raises(ManifestError, match="not UTF-8"):
        Manifest.load(target)


def test_generate_manifest_covers_every_file(prod_manager: AssetManager):
    manifest = generate_manifest(prod_manager)
    assert set(manifest) == {"app.css", "css/site.css", "js/main.js", "img/logo.png"}
    assert re.fullmatch(r"css/site\.[0-9a-f]{8}\.css", manifest.get("css/site.css"))


def test_generate_manifest_ignores_cache():
    fs = MemoryFileSystem({"app.css": "body{color:red}"})
    manager = AssetManager(file_system=fs)
    stale = manager.url("app.css")
    fs.write("app.css", "body{color:blue}")
    fresh = generate_manifest(manager).get("app.css")
    assert "/static/" + fresh != stale
    # the cache itself is untouched
    assert manager.url("app.css") == stale


def test_generate_manifest_exclude(prod_manager: AssetManager):
    manifest = generate_manifest(prod_manager, exclude=["app.css"])
    assert "app.css" not in manifest
    assert len(manifest) == 3
