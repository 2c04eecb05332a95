from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure project root is importable as a module path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from asset_pipeline import AssetManager  # noqa: E402
from core.metrics import reset_metrics  # noqa: E402
from core.settings import reset_settings_cache  # noqa: E402


class FakeObserver:
    """Stands in for a watchdog observer; records scheduled paths."""

    def __init__(self) -> None:
        self.scheduled = []
        self.alive = False
        self.stopped = False

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append(path)
        return object()

    def start(self) -> None:
        self.alive = True

    def stop(self) -> None:
        self.stopped = True
        self.alive = False

    def join(self, timeout=None) -> None:
        pass

    def is_alive(self) -> bool:
        return self.alive


@pytest.fixture(autouse=True)
def _isolated_state(monkeypatch):
    for key in ("ASSETS_DEV", "ASSETS_MANIFEST", "ASSETS_PUBLIC_DIR", "ASSETS_OUTPUT_DIR", "JSON_LOGS", "SENTRY_DSN"):
        monkeypatch.delenv(key, raising=False)
    reset_settings_cache()
    reset_metrics()
    yield
    reset_settings_cache()


@pytest.fixture()
def public_dir(tmp_path: Path) -> Path:
    """A small asset tree: css/js/image plus a nested directory."""
    root = tmp_path / "public"
    (root / "css").mkdir(parents=True)
    (root / "js").mkdir()
    (root / "img").mkdir()
    (root / "app.css").write_text("body{color:red}", encoding="utf-8")
    (root / "css" / "site.css").write_text("h1{margin:0}", encoding="utf-8")
    (root / "js" / "main.js").write_text("console.log('hi');", encoding="utf-8")
    (root / "img" / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n" + bytes(range(64)))
    return root


@pytest.fixture()
def prod_manager(public_dir: Path, tmp_path: Path) -> AssetManager:
    return AssetManager(public_dir=public_dir, output_dir=tmp_path / "dist", static_path="/static", is_dev=False)


@pytest.fixture()
def dev_manager(public_dir: Path, tmp_path: Path) -> AssetManager:
    return AssetManager(public_dir=public_dir, output_dir=tmp_path / "dist", static_path="/static", is_dev=True)
