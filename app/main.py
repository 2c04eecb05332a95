from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from asset_pipeline import AssetManager
from core.logging_utils import maybe_enable_json_logging, set_request_id
from core.metrics import export_prometheus, observe_request
from core.observability import init_sentry
from core.settings import AssetSettings, get_settings


logger = logging.getLogger("asset_pipeline.app")


@asynccontextmanager
async def lifespan(application: FastAPI):
    settings: AssetSettings = application.state.settings
    manager: AssetManager = application.state.assets
    if manager.is_dev:
        await manager.start_dev_server(
            reload_path=settings.reload_path,
            watch_paths=settings.watch_paths,
            patterns=settings.watch_patterns,
            debounce=settings.debounce_seconds,
        )
    elif settings.fingerprint_on_startup and not len(manager.manifest()):
        # No manifest from a build: hash the tree once instead of per request
        try:
            await run_in_threadpool(manager.fingerprint_all)
        except OSError as exc:
            logger.warning("Startup fingerprinting skipped: %s", exc)
    try:
        yield
    finally:
        await manager.stop_dev_server()


def _mount_label(path: str, static_path: str) -> str:
    if path.startswith(static_path) or path == static_path.rstrip("/"):
        return "static"
    return "unmatched"


def create_app(settings: Optional[AssetSettings] = None, manager: Optional[AssetManager] = None) -> FastAPI:
    # Optional observability wiring (no-op if not configured)
    maybe_enable_json_logging()
    init_sentry()
    settings = settings or get_settings()
    manager = manager or AssetManager.from_settings(settings)

    application = FastAPI(title="Asset Pipeline", version=settings.app_version, lifespan=lifespan)
    application.state.settings = settings
    application.state.assets = manager

    @application.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        set_request_id(rid)
        resp = await call_next(request)
        resp.headers["X-Request-ID"] = rid
        return resp

    @application.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        t0 = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = getattr(response, "status_code", 200) or 200
        finally:
            dur = max(0.0, time.perf_counter() - t0)
            # named route, else the static mount, else one shared label
            route = request.scope.get("route", None)
            handler = getattr(route, "name", None) or _mount_label(request.url.path, manager.static_path)
            observe_request(str(handler), str(request.method), int(status), float(dur))
        return response

    @application.get("/healthz", include_in_schema=False)
    async def healthz():
        return {"ok": True, "dev": manager.is_dev, "version": settings.app_version}

    @application.get("/metrics", include_in_schema=False)
    async def metrics():
        return PlainTextResponse(export_prometheus(), media_type="text/plain; version=0.0.4; charset=utf-8")

    @application.get(settings.reload_path, include_in_schema=False, name="hot_reload")
    async def hot_reload(request: Request):
        endpoint = manager.sse_endpoint()
        if endpoint is None:
            raise HTTPException(status_code=404, detail="hot reload is not running")
        return await endpoint(request)

    application.mount(manager.static_path.rstrip("/"), manager.handler(), name="static")
    return application


app = create_app()
