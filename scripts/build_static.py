from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from asset_pipeline import (  # noqa: E402
    AssetManager,
    CommandProcessor,
    CopyProcessor,
    Pipeline,
    PipelineConfig,
    PipelineError,
    generate_manifest,
)
from core.logging_utils import maybe_enable_json_logging  # noqa: E402
from core.settings import get_settings  # noqa: E402


def _manager(args: argparse.Namespace) -> AssetManager:
    settings = get_settings()
    return AssetManager(
        public_dir=args.public or settings.public_dir,
        output_dir=args.output or settings.output_dir,
        static_path=settings.static_path,
        is_dev=False,
        manifest_path=getattr(args, "manifest", None) or settings.manifest,
    )


def cmd_build(args: argparse.Namespace) -> int:
    settings = get_settings()
    source = args.source or settings.public_dir
    output = args.output or settings.output_dir
    # The built tree is what gets served and fingerprinted
    manager = AssetManager(public_dir=output, output_dir=output, static_path=settings.static_path)
    pipeline = Pipeline(
        PipelineConfig(
            input_dir=source,
            output_dir=output,
            is_dev=False,
            minify=settings.minify,
            source_maps=settings.source_maps,
            clean_output=args.clean or settings.clean_output,
            verbose=True,
        ),
        manager=manager,
    )
    for command in args.command or []:
        argv = command.split()
        pipeline.add_processor(CommandProcessor(argv[0], argv))
    pipeline.add_processor(CopyProcessor())
    try:
        asyncio.run(pipeline.build())
    except PipelineError as exc:
        print(f"Build failed: {exc}", file=sys.stderr)
        return 1
    manifest_path = Path(output) / pipeline.config.manifest_name
    print(f"Built {len(manager.manifest())} assets → {manifest_path}")
    return 0


def cmd_manifest(args: argparse.Namespace) -> int:
    manager = _manager(args)
    target = Path(args.out or Path(manager.output_dir) / "manifest.json")
    # a manifest written inside the asset tree must not list itself
    try:
        own = [target.resolve().relative_to(Path(manager.public_dir).resolve()).as_posix()]
    except ValueError:
        own = []
    try:
        manifest = generate_manifest(manager, exclude=own)
    except OSError as exc:
        print(f"Cannot read {manager.public_dir}: {exc}", file=sys.stderr)
        return 1
    manifest.save(target)
    print(f"Wrote {len(manifest)} entries → {target}")
    return 0


def cmd_url(args: argparse.Namespace) -> int:
    manager = _manager(args)
    for path in args.paths:
        print(manager.url(path))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Static asset build tools")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("build", help="Run the production pipeline and write the manifest")
    p.add_argument("--source", help="Source asset directory (default: ASSETS_PUBLIC_DIR)")
    p.add_argument("--output", help="Output directory (default: ASSETS_OUTPUT_DIR)")
    p.add_argument("--clean", action="store_true", help="Remove the output directory first")
    p.add_argument(
        "--command",
        action="append",
        help="External build step run before copying, e.g. 'esbuild src/app.ts --outdir={output} {minify}'",
    )
    p.set_defaults(func=cmd_build)

    p = sub.add_parser("manifest", help="Fingerprint an asset tree and write a manifest")
    p.add_argument("--public", help="Asset directory (default: ASSETS_PUBLIC_DIR)")
    p.add_argument("--output", help="Output directory (default: ASSETS_OUTPUT_DIR)")
    p.add_argument("--out", help="Manifest file (default: <output>/manifest.json)")
    p.set_defaults(func=cmd_manifest)

    p = sub.add_parser("url", help="Print the public URL of assets")
    p.add_argument("paths", nargs="+")
    p.add_argument("--public", help="Asset directory (default: ASSETS_PUBLIC_DIR)")
    p.add_argument("--output", help="Output directory (default: ASSETS_OUTPUT_DIR)")
    p.add_argument("--manifest", help="Manifest to resolve against")
    p.set_defaults(func=cmd_url)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()  # JSON_LOGS etc. are read from os.environ
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    maybe_enable_json_logging()
    args = build_parser().parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    sys.exit(main())
