from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, Optional, Union

from .errors import DevServerStateError, HashIOError, ManifestError
from .filesystem import AssetFileSystem, DiskFileSystem
from .fingerprint import (
    content_hash,
    fingerprint_name,
    is_fingerprinted,
    is_valid_path,
    strip_fingerprint,
)
from .locks import ReadWriteLock
from .manifest import Manifest
from .pipeline import Pipeline, PipelineConfig

if TYPE_CHECKING:
    from core.settings import AssetSettings

    from .devserver import DevServer
    from .handler import AssetHandler


logger = logging.getLogger("asset_pipeline.manager")


def normalize_static_path(static_path: Optional[str]) -> str:
    path = (static_path or "").strip() or "/static"
    if not path.startswith("/"):
        path = "/" + path
    if not path.endswith("/"):
        path += "/"
    return path


class AssetManager:
    """Resolves public asset URLs and serves the asset tree.

    In development mode URLs are the plain logical paths. In production every
    URL carries a content fingerprint, taken from the loaded manifest when it
    has an entry, otherwise from the in-memory cache, otherwise computed on
    first use. Manifest entries always win over computed fingerprints.
    """

    def __init__(
        self,
        public_dir: Union[str, os.PathLike] = "public",
        output_dir: Union[str, os.PathLike] = "dist",
        static_path: str = "/static",
        is_dev: bool = False,
        manifest_path: Optional[Union[str, os.PathLike]] = None,
        file_system: Optional[AssetFileSystem] = None,
    ) -> None:
        self._public_dir = str(public_dir) or "public"
        self._output_dir = str(output_dir) or "dist"
        self._static_path = normalize_static_path(static_path)
        self._is_dev = bool(is_dev)
        self._fs: AssetFileSystem = file_system if file_system is not None else DiskFileSystem(self._public_dir)
        self._lock = ReadWriteLock()
        self._fingerprints: Dict[str, str] = {}
        self._manifest: Dict[str, str] = {}
        # pipeline/dev server slots have their own lock; never held with _lock
        self._state_lock = threading.Lock()
        self._pipeline: Optional[Pipeline] = None
        self._dev_server: Optional["DevServer"] = None
        if manifest_path:
            try:
                self.load_manifest(manifest_path)
            except (OSError, ManifestError) as exc:
                logger.warning("Asset manifest %s not loaded: %s", manifest_path, exc)

    @classmethod
    def from_settings(
        cls, settings: "AssetSettings", file_system: Optional[AssetFileSystem] = None
    ) -> "AssetManager":
        return cls(
            public_dir=settings.public_dir,
            output_dir=settings.output_dir,
            static_path=settings.static_path,
            is_dev=settings.is_dev,
            manifest_path=settings.manifest,
            file_system=file_system,
        )

    @property
    def is_dev(self) -> bool:
        return self._is_dev

    @property
    def public_dir(self) -> str:
        return self._public_dir

    @property
    def output_dir(self) -> str:
        return self._output_dir

    @property
    def static_path(self) -> str:
        return self._static_path

    @property
    def file_system(self) -> AssetFileSystem:
        return self._fs

    def set_file_system(self, fs: AssetFileSystem) -> None:
        with self._lock.write():
            self._fs = fs

    # --- URL resolution -------------------------------------------------

    def url(self, path: str) -> str:
        """Public URL for ``path``, fingerprinted outside development mode."""
        path = str(path).lstrip("/")
        if self._is_dev:
            return self._static_path + path

        cached = self.lookup(path)
        if cached is not None:
            return self._static_path + cached

        try:
            fp = self.compute_fingerprint(path)
        except HashIOError as exc:
            logger.warning("Serving %s without fingerprint: %s", path, exc, extra={"asset": path})
            return self._static_path + path

        with self._lock.write():
            # A manifest loaded meanwhile still wins
            fp = self._manifest.get(path) or fp
            self._fingerprints[path] = fp
        return self._static_path + fp

    def lookup(self, path: str) -> Optional[str]:
        """Known fingerprinted path for ``path`` (manifest first, then cache)."""
        with self._lock.read():
            fp = self._manifest.get(path)
            if fp is not None:
                return fp
            return self._fingerprints.get(path)

    def compute_fingerprint(self, path: str) -> str:
        """Hash the current content of ``path``; raises ``HashIOError`` when unreadable."""
        if not is_valid_path(path):
            raise HashIOError(f"invalid asset path: {path!r}")
        try:
            with self._fs.open(path) as f:
                digest = content_hash(f)
        except OSError as exc:
            raise HashIOError(f"{path}: {exc}") from exc
        return fingerprint_name(path, digest)

    def fingerprint(self, path: str) -> str:
        """Fingerprinted path, or ``path`` itself when it cannot be hashed."""
        try:
            return self.compute_fingerprint(path)
        except HashIOError as exc:
            logger.debug("Fingerprint skipped: %s", exc, extra={"asset": path})
            return path

    def fingerprint_all(self, exclude: Iterable[str] = ()) -> int:
        """Fingerprint the whole asset tree and refresh the cache.

        Hashing happens before the write lock is taken; the batch is then
        stored in one step. A lazy ``url()`` racing with this call stores the
        same value, since fingerprints depend on content only, so whichever
        write lands last is correct. Files that cannot be read are left out so
        a later ``url()`` retries them; paths in ``exclude`` are skipped.
        Returns the number of assets fingerprinted.
        """
        skip = set(exclude)
        computed: Dict[str, str] = {}
        for rel in self._fs.walk():
            if rel in skip:
                continue
            try:
                computed[rel] = self.compute_fingerprint(rel)
            except HashIOError as exc:
                logger.warning("Not fingerprinted: %s", exc, extra={"asset": rel})
        with self._lock.write():
            self._fingerprints.update(computed)
        logger.info("Fingerprinted %d assets", len(computed))
        return len(computed)

    def fingerprints(self) -> Dict[str, str]:
        with self._lock.read():
            return dict(self._fingerprints)

    def manifest(self) -> Manifest:
        with self._lock.read():
            return Manifest(dict(self._manifest))

    def clear_cache(self) -> None:
        with self._lock.write():
            self._fingerprints.clear()

    def strip_fingerprint(self, path: str) -> str:
        return strip_fingerprint(path)

    def is_fingerprinted(self, path: str) -> bool:
        return is_fingerprinted(path)

    # --- manifest persistence ---------------------------------------------

    def load_manifest(self, path: Union[str, os.PathLike]) -> Manifest:
        manifest = Manifest.load(path)
        with self._lock.write():
            self._manifest = manifest.as_dict()
        logger.info("Loaded asset manifest %s (%d entries)", path, len(manifest))
        return manifest

    def save_manifest(self, path: Union[str, os.PathLike]) -> Path:
        """Write the current fingerprint cache as a manifest file."""
        with self._lock.read():
            data = dict(self._fingerprints)
        Manifest(data).save(path)
        return Path(path)

    # --- HTTP --------------------------------------------------------------

    def handler(self) -> "AssetHandler":
        from .handler import AssetHandler

        return AssetHandler(self)

    # --- build / dev loop --------------------------------------------------

    def pipeline(self) -> Pipeline:
        with self._state_lock:
            if self._pipeline is None:
                self._pipeline = Pipeline(
                    PipelineConfig(
                        input_dir=self._public_dir,
                        output_dir=self._output_dir,
                        is_dev=self._is_dev,
                    ),
                    manager=self,
                )
            return self._pipeline

    def set_pipeline(self, pipeline: Pipeline) -> None:
        with self._state_lock:
            self._pipeline = pipeline

    def _ensure_default_processors(self, pipeline: Pipeline) -> None:
        if pipeline.processor_count() == 0:
            from .processors import default_processors

            for processor in default_processors():
                pipeline.add_processor(processor)

    async def build(self) -> None:
        pipeline = self.pipeline()
        self._ensure_default_processors(pipeline)
        await pipeline.build()

    async def start_dev_server(self, **options) -> "DevServer":
        from .devserver import DevServer

        with self._state_lock:
            if self._dev_server is not None:
                raise DevServerStateError("dev server already running")
        pipeline = self.pipeline()
        self._ensure_default_processors(pipeline)
        dev_server = DevServer(pipeline, **options)
        with self._state_lock:
            if self._dev_server is not None:
                raise DevServerStateError("dev server already running")
            self._dev_server = dev_server
        try:
            await dev_server.start()
        except BaseException:
            with self._state_lock:
                self._dev_server = None
            await dev_server.close()
            raise
        return dev_server

    async def stop_dev_server(self) -> None:
        with self._state_lock:
            dev_server, self._dev_server = self._dev_server, None
        if dev_server is not None:
            await dev_server.close()

    @property
    def dev_server(self) -> Optional["DevServer"]:
        with self._state_lock:
            return self._dev_server

    def sse_endpoint(self):
        """The dev server's SSE endpoint, or None when it is not running."""
        dev_server = self.dev_server
        if dev_server is None:
            return None
        return dev_server.sse_endpoint

    def hot_reload_script(self) -> str:
        dev_server = self.dev_server
        if dev_server is None:
            return ""
        return dev_server.hot_reload_script()
