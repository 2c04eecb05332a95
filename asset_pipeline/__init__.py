from .devserver import DevServer
from .errors import (
    AssetError,
    AssetNotFoundError,
    DevServerStateError,
    HashIOError,
    ManifestError,
    PathValidationError,
    PipelineError,
    ProcessorError,
    WatcherSetupError,
)
from .filesystem import AssetFileSystem, DiskFileSystem, FileInfo, MemoryFileSystem, PackageFileSystem
from .fingerprint import is_fingerprinted, is_valid_path, strip_fingerprint
from .handler import AssetHandler
from .manager import AssetManager
from .manifest import Manifest, generate_manifest
from .pipeline import Pipeline, PipelineConfig, Processor, ProcessorConfig
from .processors import CommandProcessor, CopyProcessor
from .watcher import FileWatcher, WatchEvent, WatchOp

__all__ = [
    "AssetError",
    "AssetFileSystem",
    "AssetHandler",
    "AssetManager",
    "AssetNotFoundError",
    "CommandProcessor",
    "CopyProcessor",
    "DevServer",
    "DevServerStateError",
    "DiskFileSystem",
    "FileInfo",
    "FileWatcher",
    "HashIOError",
    "Manifest",
    "ManifestError",
    "MemoryFileSystem",
    "PackageFileSystem",
    "PathValidationError",
    "Pipeline",
    "PipelineConfig",
    "PipelineError",
    "Processor",
    "ProcessorConfig",
    "ProcessorError",
    "WatchEvent",
    "WatchOp",
    "WatcherSetupError",
    "generate_manifest",
    "is_fingerprinted",
    "is_valid_path",
    "strip_fingerprint",
]
