from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_TRUTHY = {"1", "true", "yes", "on"}


def _parse_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [v.strip() for v in str(value).split(",") if v.strip()]


class AssetSettings(BaseSettings):
    """Centralized asset pipeline configuration pulled from environment/.env."""

    public_dir: str = Field("public", alias="ASSETS_PUBLIC_DIR")
    output_dir: str = Field("dist", alias="ASSETS_OUTPUT_DIR")
    static_path: str = Field("/static", alias="ASSETS_STATIC_PATH")
    is_dev: bool = Field(False, alias="ASSETS_DEV")
    # Manifest written by a previous production build (e.g. dist/manifest.json)
    manifest: Optional[str] = Field(None, alias="ASSETS_MANIFEST")
    minify: bool = Field(False, alias="ASSETS_MINIFY")
    source_maps: bool = Field(False, alias="ASSETS_SOURCE_MAPS")
    clean_output: bool = Field(False, alias="ASSETS_CLEAN_OUTPUT")
    # Comma separated; split by the properties below
    watch_paths_raw: str = Field(".", alias="ASSETS_WATCH_PATHS")
    watch_patterns_raw: str = Field("*.py,*.html,*.css,*.js,*.ts", alias="ASSETS_WATCH_PATTERNS")
    debounce_ms: int = Field(500, alias="ASSETS_DEBOUNCE_MS")
    reload_path: str = Field("/_assets/reload", alias="ASSETS_RELOAD_PATH")
    fingerprint_on_startup: bool = Field(True, alias="ASSETS_FINGERPRINT_ON_STARTUP")
    # Build/meta info
    app_version: str = Field("dev", alias="APP_VERSION")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("public_dir", "output_dir", mode="before")
    @classmethod
    def _strip_dir(cls, value: str | None, info) -> str:
        default = "public" if info.field_name == "public_dir" else "dist"
        val = (value or "").strip()
        return val or default

    @field_validator("static_path", "reload_path", mode="before")
    @classmethod
    def _normalize_url_path(cls, value: str | None, info) -> str:
        default = "/static" if info.field_name == "static_path" else "/_assets/reload"
        val = (value or "").strip() or default
        if not val.startswith("/"):
            val = "/" + val
        return val

    @field_validator("manifest", mode="before")
    @classmethod
    def _strip_manifest(cls, value: str | None) -> Optional[str]:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator(
        "is_dev", "minify", "source_maps", "clean_output", mode="before"
    )
    @classmethod
    def _parse_bool(cls, value) -> bool:
        if isinstance(value, bool):
            return value
        if value is None or value == "":
            return False
        return str(value).strip().lower() in _TRUTHY

    @field_validator("fingerprint_on_startup", mode="before")
    @classmethod
    def _parse_bool_default_on(cls, value) -> bool:
        if isinstance(value, bool):
            return value
        if value is None or value == "":
            return True
        return str(value).strip().lower() in _TRUTHY

    @field_validator("debounce_ms", mode="before")
    @classmethod
    def _parse_debounce(cls, value) -> int:
        try:
            ms = int(str(value).strip())
        except (TypeError, ValueError):
            return 500
        return max(ms, 0)

    @property
    def watch_paths(self) -> List[str]:
        return _parse_list(self.watch_paths_raw) or ["."]

    @property
    def watch_patterns(self) -> List[str]:
        return _parse_list(self.watch_patterns_raw)

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> AssetSettings:
    return AssetSettings()


def reset_settings_cache() -> None:
    """Testing helper to clear cached settings."""
    get_settings.cache_clear()
