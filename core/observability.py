from __future__ import annotations

import os
from typing import Any, Optional


_REDACTED_HEADERS = {"authorization", "cookie", "set-cookie"}


def _before_send(event: dict[str, Any], hint: dict[str, Any] | None) -> dict[str, Any] | None:
    # Missing assets and bad paths are client errors, not incidents
    exc_info = (hint or {}).get("exc_info")
    if exc_info:
        from asset_pipeline.errors import AssetNotFoundError, PathValidationError

        if isinstance(exc_info[1], (AssetNotFoundError, PathValidationError)):
            return None
    req = event.get("request") or {}
    url = str(req.get("url") or "")
    reload_path = os.environ.get("ASSETS_RELOAD_PATH") or "/_assets/reload"
    if url.endswith(reload_path):
        # reload streams disconnect on every page load
        return None
    hdrs = req.get("headers") or {}
    for k in list(hdrs.keys()):
        if str(k).lower() in _REDACTED_HEADERS:
            hdrs[k] = "[redacted]"
    if hdrs:
        req["headers"] = hdrs
        event["request"] = req
    return event


def init_sentry() -> Optional[object]:
    """Initialize Sentry if SENTRY_DSN is set and sentry_sdk is installed.

    Returns the sentry SDK module when initialized, otherwise None.
    """
    dsn = (os.environ.get("SENTRY_DSN") or "").strip()
    if not dsn:
        return None
    try:
        import sentry_sdk  # type: ignore
        from sentry_sdk.integrations.starlette import StarletteIntegration  # type: ignore
    except ImportError:
        return None

    dev = (os.environ.get("ASSETS_DEV") or "").strip().lower() in {"1", "true", "yes", "on"}
    sentry_sdk.init(
        dsn=dsn,
        traces_sample_rate=float(os.environ.get("SENTRY_TRACES_SAMPLE_RATE", "0.0") or 0.0),
        environment=os.environ.get("SENTRY_ENV") or ("dev" if dev else "production"),
        release=os.environ.get("APP_VERSION") or None,
        integrations=[StarletteIntegration()],
        before_send=_before_send,
    )
    return sentry_sdk
