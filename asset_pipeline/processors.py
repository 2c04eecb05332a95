from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Sequence

from .pipeline import Processor, ProcessorConfig


logger = logging.getLogger("asset_pipeline.processors")


DEFAULT_COPY_TYPES = (
    ".css",
    ".js",
    ".mjs",
    ".map",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".webp",
    ".ico",
    ".woff",
    ".woff2",
)


class CopyProcessor:
    """Copy source files with the given extensions into the output tree."""

    def __init__(self, file_types: Sequence[str] = DEFAULT_COPY_TYPES, name: str = "copy") -> None:
        self.name = name
        self.file_types = tuple(t.lower() for t in file_types)

    def _wanted(self, path: Path) -> bool:
        return path.suffix.lower() in self.file_types

    async def process(self, config: ProcessorConfig) -> None:
        src = Path(config.input_dir)
        dst = Path(config.output_dir)
        if not src.is_dir():
            raise FileNotFoundError(f"input directory not found: {src}")
        if src.resolve() == dst.resolve():
            return
        copied = await asyncio.to_thread(self._copy_tree, src, dst)
        logger.debug("Copied %d files from %s to %s", copied, src, dst, extra={"processor": self.name})

    def _copy_tree(self, src: Path, dst: Path) -> int:
        dst_resolved = dst.resolve()
        copied = 0
        for dirpath, dirnames, filenames in os.walk(src):
            here = Path(dirpath)
            # Do not descend into the output tree when it lives under the input
            dirnames[:] = [d for d in dirnames if (here / d).resolve() != dst_resolved]
            for name in filenames:
                path = here / name
                if not self._wanted(path):
                    continue
                target = dst / path.relative_to(src)
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(str(path), str(target))
                copied += 1
        return copied


class CommandProcessor:
    """Run an external build tool (esbuild, tailwindcss, sass...).

    ``argv`` items may use ``{input}``, ``{output}``, ``{minify}`` and
    ``{sourcemap}`` placeholders. Flags rendered from booleans expand to the
    given ``minify_flag``/``sourcemap_flag`` or are dropped when false.
    """

    def __init__(
        self,
        name: str,
        argv: Sequence[str],
        file_types: Sequence[str] = (),
        *,
        minify_flag: str = "--minify",
        sourcemap_flag: str = "--sourcemap",
        cwd: Optional[str] = None,
        env: Optional[dict] = None,
    ) -> None:
        if not argv:
            raise ValueError("CommandProcessor needs a command")
        self.name = name
        self.argv = list(argv)
        self.file_types = tuple(file_types)
        self.minify_flag = minify_flag
        self.sourcemap_flag = sourcemap_flag
        self.cwd = cwd
        self.env = env

    def render(self, config: ProcessorConfig) -> List[str]:
        values = {
            "input": config.input_dir,
            "output": config.output_dir,
            "minify": self.minify_flag if config.minify else "",
            "sourcemap": self.sourcemap_flag if config.source_maps else "",
        }
        rendered = [arg.format(**values) for arg in self.argv]
        return [arg for arg in rendered if arg]

    async def process(self, config: ProcessorConfig) -> None:
        cmd = self.render(config)
        if shutil.which(cmd[0]) is None and not Path(cmd[0]).exists():
            raise FileNotFoundError(f"{cmd[0]} not found on PATH")
        env = {**os.environ, **self.env} if self.env else None
        logger.debug("$ %s", " ".join(cmd), extra={"processor": self.name})
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
            env=env,
        )
        try:
            _, stderr = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise
        if proc.returncode != 0:
            detail = (stderr or b"").decode("utf-8", "replace").strip()
            raise RuntimeError(f"exit status {proc.returncode}: {detail[-500:]}")


def default_processors() -> List[Processor]:
    return [CopyProcessor()]
