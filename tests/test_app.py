from __future__ import annotations

import json
import re
from pathlib import Path

from fastapi.testclient import TestClient

from app.main import create_app
from core.settings import AssetSettings


def _settings(public_dir: Path, tmp_path: Path, **kw) -> AssetSettings:
    return AssetSettings(
        public_dir=str(public_dir),
        output_dir=str(tmp_path / "dist"),
        watch_paths_raw=str(public_dir),
        debounce_ms=50,
        **kw,
    )


def test_dev_mode_end_to_end(public_dir: Path, tmp_path: Path):
    app = create_app(_settings(public_dir, tmp_path, is_dev=True))
    manager = app.state.assets
    assert manager.url("app.css") == "/static/app.css"
    with TestClient(app) as client:
        assert manager.dev_server is not None
        assert "EventSource('/_assets/reload')" in manager.hot_reload_script()
        r = client.get("/static/app.css")
        assert r.status_code == 200
        assert r.text == "body{color:red}"
        assert r.headers["cache-control"] == "public, max-age=3600"
        assert client.get("/healthz").json() == {"ok": True, "dev": True, "version": "dev"}
    assert manager.dev_server is None
    assert manager.hot_reload_script() == ""


def test_prod_mode_end_to_end(public_dir: Path, tmp_path: Path):
    app = create_app(_settings(public_dir, tmp_path))
    manager = app.state.assets
    with TestClient(app) as client:
        # startup hashed the whole tree
        assert set(manager.fingerprints()) == {"app.css", "css/site.css", "js/main.js", "img/logo.png"}
        url = manager.url("app.css")
        assert re.fullmatch(r"/static/app\.[0-9a-f]{8}\.css", url)
        r = client.get(url)
        assert r.status_code == 200
        assert r.text == "body{color:red}"
        assert r.headers["cache-control"] == "public, max-age=31536000, immutable"
        assert client.get("/_assets/reload").status_code == 404
        assert client.get("/static/../app.py").status_code in (400, 404)
        assert client.get("/healthz").json()["dev"] is False


def test_manifest_from_settings_wins(public_dir: Path, tmp_path: Path):
    manifest = tmp_path / "manifest.json"
    manifest.write_text(json.dumps({"app.css": "app.deadbeef.css"}), encoding="utf-8")
    app = create_app(_settings(public_dir, tmp_path, manifest=str(manifest)))
    manager = app.state.assets
    with TestClient(app) as client:
        assert manager.url("app.css") == "/static/app.deadbeef.css"
        # a manifest is present, so startup does not hash the tree
        assert manager.fingerprints() == {}
        assert client.get("/static/app.deadbeef.css").text == "body{color:red}"


def test_broken_manifest_is_ignored(public_dir: Path, tmp_path: Path):
    manifest = tmp_path / "manifest.json"
    manifest.write_text("{not json", encoding="utf-8")
    app = create_app(_settings(public_dir, tmp_path, manifest=str(manifest), fingerprint_on_startup=False))
    assert len(app.state.assets.manifest()) == 0
    assert re.fullmatch(r"/static/app\.[0-9a-f]{8}\.css", app.state.assets.url("app.css"))


def test_custom_static_path(public_dir: Path, tmp_path: Path):
    app = create_app(_settings(public_dir, tmp_path, static_path="/assets", is_dev=True))
    client = TestClient(app)
    assert app.state.assets.url("css/site.css") == "/assets/css/site.css"
    assert client.get("/assets/css/site.css").text == "h1{margin:0}"


def test_request_id_and_metrics(public_dir: Path, tmp_path: Path):
    app = create_app(_settings(public_dir, tmp_path, fingerprint_on_startup=False))
    client = TestClient(app)
    r = client.get("/static/app.css", headers={"X-Request-ID": "abc-123"})
    assert r.headers["x-request-id"] == "abc-123"
    assert client.get("/static/missing.css").status_code == 404
    assert client.get("/healthz").headers.get("x-request-id")

    text = client.get("/metrics").text
    assert 'assets_served_total{status="200"} 1' in text
    assert 'assets_served_total{status="404"} 1' in text
    assert re.search(r'assets_http_request_total\{handler="/?healthz",method="GET",status="200"\} 1', text)
    assert "assets_sse_clients 0" in text


def test_asset_requests_share_one_metric_series(public_dir: Path, tmp_path: Path):
    app = create_app(_settings(public_dir, tmp_path, fingerprint_on_startup=False))
    client = TestClient(app)
    for i in range(50):
        assert client.get(f"/static/nope{i}.css").status_code == 404
    client.get("/no-such-route")

    text = client.get("/metrics").text
    series = [line for line in text.splitlines() if line.startswith("assets_http_request_total{")]
    assert 'assets_http_request_total{handler="static",method="GET",status="404"} 50' in text
    assert 'assets_http_request_total{handler="unmatched",method="GET",status="404"} 1' in text
    assert not any("nope" in line for line in series)
