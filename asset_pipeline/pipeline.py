from __future__ import annotations

import asyncio
import logging
import shutil
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from core.metrics import observe_build

from .errors import PipelineError, ProcessorError

if TYPE_CHECKING:
    from .manager import AssetManager


logger = logging.getLogger("asset_pipeline.pipeline")

_BOOL = TypeAdapter(bool)


class ProcessorConfig(BaseModel):
    """What a processor gets for one build."""

    model_config = ConfigDict(frozen=True)

    input_dir: str
    output_dir: str
    is_dev: bool = False
    minify: bool = False
    source_maps: bool = False
    watch: bool = False
    custom: Dict[str, Any] = Field(default_factory=dict)


class PipelineConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_dir: str = "assets"
    output_dir: str = "dist"
    is_dev: bool = False
    minify: bool = False
    source_maps: bool = False
    watch: bool = False
    clean_output: bool = False
    verbose: bool = False
    manifest_name: str = "manifest.json"
    # Production builds are always minified unless this is switched off
    force_production_minify: bool = True
    custom: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("input_dir", "output_dir", mode="before")
    @classmethod
    def _default_dirs(cls, value, info) -> str:
        val = str(value or "").strip()
        if val:
            return val
        return "assets" if info.field_name == "input_dir" else "dist"

    @model_validator(mode="before")
    @classmethod
    def _production_minify(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        try:
            is_dev = _BOOL.validate_python(data.get("is_dev", False))
            force = _BOOL.validate_python(data.get("force_production_minify", True))
        except ValidationError:
            # field validation reports the bad value
            return data
        if not is_dev and force:
            data = {**data, "minify": True}
        return data

    def processor_config(self) -> ProcessorConfig:
        return ProcessorConfig(
            input_dir=self.input_dir,
            output_dir=self.output_dir,
            is_dev=self.is_dev,
            minify=self.minify,
            source_maps=self.source_maps,
            watch=self.watch,
            custom=dict(self.custom),
        )


@runtime_checkable
class Processor(Protocol):
    """A build step (CSS compiler, JS bundler, copier...).

    The pipeline treats processors as opaque and runs them in the order they
    were added; a processor may rely on the output of the ones before it.
    """

    name: str
    file_types: Sequence[str]

    async def process(self, config: ProcessorConfig) -> None:
        ...


class Pipeline:
    """Runs processors in registration order, stopping at the first failure."""

    def __init__(self, config: Optional[PipelineConfig] = None, manager: Optional["AssetManager"] = None) -> None:
        self._config = config or PipelineConfig()
        self._processors: List[Processor] = []
        self._lock = threading.Lock()
        self._manager = manager

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def manager(self) -> Optional["AssetManager"]:
        return self._manager

    def add_processor(self, processor: Processor) -> "Pipeline":
        with self._lock:
            self._processors.append(processor)
        return self

    def processor_count(self) -> int:
        with self._lock:
            return len(self._processors)

    def processors(self) -> List[Processor]:
        with self._lock:
            return list(self._processors)

    async def build(self) -> None:
        """Run every processor once.

        Raises ``ProcessorError`` naming the first processor that failed; the
        remaining processors are skipped and partial output is left in place.
        """
        cfg = self._config
        started = time.perf_counter()
        outcome = "error"
        try:
            if cfg.clean_output:
                self._clean_output()
            try:
                Path(cfg.output_dir).mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise PipelineError(f"failed to create output directory: {exc}") from exc

            proc_config = cfg.processor_config()
            for processor in self.processors():
                if cfg.verbose:
                    logger.info("Running processor: %s", processor.name, extra={"processor": processor.name})
                try:
                    await processor.process(proc_config)
                except asyncio.CancelledError:
                    outcome = "cancelled"
                    raise
                except Exception as exc:
                    logger.error("Processor %s failed: %s", processor.name, exc, extra={"processor": processor.name})
                    raise ProcessorError(processor.name, exc) from exc
                if cfg.verbose:
                    logger.info("Processor %s completed", processor.name, extra={"processor": processor.name})

            if not cfg.is_dev and self._manager is not None:
                self._generate_manifest()
            outcome = "ok"
        finally:
            observe_build(outcome, time.perf_counter() - started)

    def _clean_output(self) -> None:
        out = Path(self._config.output_dir)
        if not out.exists():
            return
        try:
            shutil.rmtree(out)
        except OSError as exc:
            raise PipelineError(f"failed to clean output: {exc}") from exc

    def _generate_manifest(self) -> None:
        manager = self._manager
        if manager is None:
            return
        manifest_path = Path(self._config.output_dir) / self._config.manifest_name
        try:
            manager.fingerprint_all(exclude=(self._config.manifest_name,))
            manager.save_manifest(manifest_path)
            # The new build's manifest replaces whatever the manager had loaded
            manager.load_manifest(manifest_path)
        except Exception as exc:
            raise PipelineError(f"failed to generate manifest: {exc}") from exc
        logger.info("Generated manifest: %s", manifest_path)
