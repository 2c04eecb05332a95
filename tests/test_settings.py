from __future__ import annotations

from core.settings import AssetSettings, get_settings, reset_settings_cache


def test_defaults():
    s = AssetSettings()
    assert s.public_dir == "public"
    assert s.output_dir == "dist"
    assert s.static_path == "/static"
    assert s.is_dev is False
    assert s.manifest is None
    assert s.reload_path == "/_assets/reload"
    assert s.watch_paths == ["."]
    assert s.watch_patterns == ["*.py", "*.html", "*.css", "*.js", "*.ts"]
    assert s.debounce_seconds == 0.5
    assert s.fingerprint_on_startup is True


def test_environment(monkeypatch):
    monkeypatch.setenv("ASSETS_DEV", "yes")
    monkeypatch.setenv("ASSETS_STATIC_PATH", "assets")
    monkeypatch.setenv("ASSETS_WATCH_PATHS", "src, templates ,")
    monkeypatch.setenv("ASSETS_WATCH_PATTERNS", "*.scss")
    monkeypatch.setenv("ASSETS_DEBOUNCE_MS", "250")
    monkeypatch.setenv("ASSETS_MANIFEST", "  ")
    monkeypatch.setenv("ASSETS_FINGERPRINT_ON_STARTUP", "0")
    s = AssetSettings()
    assert s.is_dev is True
    assert s.static_path == "/assets"
    assert s.watch_paths == ["src", "templates"]
    assert s.watch_patterns == ["*.scss"]
    assert s.debounce_seconds == 0.25
    assert s.manifest is None
    assert s.fingerprint_on_startup is False


def test_bad_values_fall_back(monkeypatch):
    monkeypatch.setenv("ASSETS_DEBOUNCE_MS", "soon")
    monkeypatch.setenv("ASSETS_PUBLIC_DIR", "   ")
    s = AssetSettings()
    assert s.debounce_ms == 500
    assert s.public_dir == "public"


def test_get_settings_is_cached(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("ASSETS_DEV", "1")
    assert get_settings() is first
    reset_settings_cache()
    assert get_settings().is_dev is True
