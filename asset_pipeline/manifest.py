from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, Optional, Union

from pydantic import Field, RootModel, ValidationError

from .errors import ManifestError

if TYPE_CHECKING:
    from .manager import AssetManager


logger = logging.getLogger("asset_pipeline.manifest")


class Manifest(RootModel[Dict[str, str]]):
    """Logical asset path -> fingerprinted path, as written by a production build."""

    root: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Manifest":
        """Read a manifest file. Missing files raise ``FileNotFoundError``."""
        data = Path(path).read_bytes()
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ManifestError(f"invalid manifest {path}: not UTF-8 ({exc.reason} at byte {exc.start})") from exc
        try:
            return cls.model_validate_json(text)
        except ValidationError as exc:
            raise ManifestError(f"invalid manifest {path}: {exc.error_count()} error(s)") from exc

    def save(self, path: Union[str, Path]) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_json(), encoding="utf-8")

    def to_json(self) -> str:
        return json.dumps(self.root, ensure_ascii=False, indent=2)

    def get(self, path: str) -> Optional[str]:
        return self.root.get(path)

    def set(self, path: str, fingerprinted: str) -> None:
        self.root[path] = fingerprinted

    def as_dict(self) -> Dict[str, str]:
        return dict(self.root)

    def __contains__(self, path: object) -> bool:
        return path in self.root

    def __len__(self) -> int:
        return len(self.root)

    def __iter__(self) -> Iterator[str]:  # type: ignore[override]
        return iter(self.root)


def generate_manifest(manager: "AssetManager", exclude: Iterable[str] = ()) -> Manifest:
    """Fingerprint every file under the manager's asset root, bypassing its cache.

    ``exclude`` lists logical paths to leave out, such as a previous manifest.
    """
    skip = set(exclude)
    manifest = Manifest()
    for rel in manager.file_system.walk():
        if rel in skip:
            continue
        manifest.set(rel, manager.fingerprint(rel))
    logger.debug("Generated manifest with %d entries", len(manifest))
    return manifest
