from __future__ import annotations

from typing import Optional


class AssetError(Exception):
    """Base class for asset pipeline failures."""


class PathValidationError(AssetError):
    """Requested path is absolute or tries to traverse out of the asset root."""

    status_code = 400


class AssetNotFoundError(AssetError):
    """Asset is missing, or a directory was requested as a file."""

    status_code = 404


class HashIOError(AssetError):
    """Asset content could not be read while computing its fingerprint."""


class ManifestError(AssetError):
    pass


class PipelineError(AssetError):
    pass


class ProcessorError(PipelineError):
    def __init__(self, processor: str, cause: Optional[BaseException] = None) -> None:
        self.processor = processor
        self.cause = cause
        super().__init__(f"processor {processor} failed: {cause}")


class WatcherSetupError(AssetError):
    pass


class DevServerStateError(AssetError):
    pass
