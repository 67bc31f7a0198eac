"""
Command-line interface for rename-split.

This file focuses on parsing arguments and dispatching to the pipeline.
It stands in for the desktop front end: it gathers an ordered list of
source images and a destination folder, then prints one line per item.
"""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List

from . import __version__
from .config import (
    DEFAULT_SPLIT,
    SplitOptions,
    deep_merge,
    dump_default_split_yaml,
    extract_split_section,
    load_yaml,
)
from .utils import (
    UserError,
    collect_image_files,
    ensure_dir_path,
    ensure_file_path,
    normalize_path,
)

if TYPE_CHECKING:
    from .pipeline import BatchReport


TOP_LEVEL_EXAMPLES = """Examples:
  python -m rename_split split scans/a.jpg scans/b.jpg --out_dir "out"
  python -m rename_split split --in_dir "scans" --glob "*.jpg" --out_dir "out" --naming sequence
  python -m rename_split split --dump-default-config
"""

SPLIT_EXAMPLES = """Examples:
  python -m rename_split split a.jpg b.png --out_dir "out"
  python -m rename_split split --in_dir "scans" --out_dir "out" --subdir SPL --format jpeg --quality 95
  python -m rename_split split --in_dir "scans" --out_dir "out" --dry-run --manifest "out\\manifest.json"
  python -m rename_split split --in_dir "scans" --out_dir "out" --config "configs\\split.yaml"
"""

SPLIT_KEYS = set(DEFAULT_SPLIT.keys())


def _build_split_effective_config(
    args: argparse.Namespace,
) -> tuple[Dict[str, Any], Path | None]:
    """Resolve defaults < YAML config < explicit CLI flags."""

    effective = deep_merge(DEFAULT_SPLIT, {})
    config_path: Path | None = None
    if hasattr(args, "config"):
        config_path = normalize_path(args.config)
        loaded = load_yaml(config_path)
        effective = deep_merge(effective, extract_split_section(loaded))

    raw_args = vars(args)
    cli_overrides: Dict[str, Any] = {}
    for key in SPLIT_KEYS:
        if key in raw_args:
            cli_overrides[key] = raw_args[key]

    effective = deep_merge(effective, cli_overrides)
    return effective, config_path


def _verbosity_from_args(args: argparse.Namespace) -> str:
    """Resolve global verbosity mode from top-level flags."""

    if getattr(args, "quiet", False):
        return "quiet"
    if getattr(args, "verbose", False):
        return "verbose"
    return "normal"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rename-split",
        description="Split images into left/right halves named <name>_1 and <name>_2.",
        epilog=TOP_LEVEL_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=__version__)
    verbosity_group = parser.add_mutually_exclusive_group()
    verbosity_group.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress non-error console logs.",
    )
    verbosity_group.add_argument(
        "--verbose",
        action="store_true",
        help="Show debug-level console logs.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    split_parser = subparsers.add_parser(
        "split",
        help="Split a batch of images into left/right halves.",
        epilog=SPLIT_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    split_parser.add_argument(
        "sources",
        nargs="*",
        help="Source images, processed in the order given.",
    )
    split_parser.add_argument(
        "--in_dir",
        default=argparse.SUPPRESS,
        help="Folder of source images (sorted by name) instead of listing files.",
    )
    split_parser.add_argument(
        "--out_dir",
        default=argparse.SUPPRESS,
        help="Destination folder (required unless --dump-default-config).",
    )
    split_parser.add_argument(
        "--config",
        default=argparse.SUPPRESS,
        help="Optional YAML config for split settings.",
    )
    split_parser.add_argument(
        "--dump-default-config",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Print default split YAML config and exit.",
    )
    split_parser.add_argument(
        "--glob",
        default=argparse.SUPPRESS,
        help='Glob pattern used with --in_dir (default: "*.jpg").',
    )
    split_parser.add_argument(
        "--format",
        dest="output_format",
        default=argparse.SUPPRESS,
        help="Output format: source (keep input format), jpeg, png, bmp, tiff, webp, gif.",
    )
    split_parser.add_argument(
        "--quality",
        type=int,
        default=argparse.SUPPRESS,
        help="JPEG/WEBP quality 1-100 (default: 100).",
    )
    dpi_group = split_parser.add_mutually_exclusive_group()
    dpi_group.add_argument(
        "--dpi",
        type=int,
        default=argparse.SUPPRESS,
        help="Density written to JPEG/PNG/TIFF outputs (default: 300).",
    )
    dpi_group.add_argument(
        "--keep-dpi",
        dest="dpi",
        action="store_const",
        const=None,
        default=argparse.SUPPRESS,
        help="Keep the source image's own density instead of --dpi.",
    )
    split_parser.add_argument(
        "--naming",
        choices=["identity", "sequence"],
        default=argparse.SUPPRESS,
        help="identity=<name>_1/<name>_2, sequence=01_1/01_2 in batch order.",
    )
    split_parser.add_argument(
        "--subdir",
        default=argparse.SUPPRESS,
        help="Write outputs into this sub-folder of --out_dir (e.g. SPL).",
    )
    split_parser.add_argument(
        "--workers",
        type=int,
        default=argparse.SUPPRESS,
        help="Worker threads (default: 0 = automatic).",
    )
    split_parser.add_argument(
        "--overwrite",
        dest="overwrite_existing",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Overwrite existing outputs.",
    )
    split_parser.add_argument(
        "--dry-run",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Show actions without writing files.",
    )
    split_parser.add_argument(
        "--manifest",
        default=argparse.SUPPRESS,
        help="Write a JSON manifest of the run to this path.",
    )

    return parser


def _command_string(argv: list[str]) -> str:
    """Reconstruct a command string for the manifest."""

    # list2cmdline produces a Windows-friendly command representation.
    return subprocess.list2cmdline(argv)


def _command_argv_for_manifest(argv: list[str] | None) -> list[str]:
    """Choose argv used to record manifest command faithfully."""

    if argv is None:
        return list(sys.argv)
    return [sys.argv[0], *argv]


def _resolve_sources(args: argparse.Namespace, pattern: str) -> List[Path]:
    """Positional files keep their order; --in_dir files are sorted by name."""

    listed = [normalize_path(value) for value in args.sources]
    if hasattr(args, "in_dir"):
        if listed:
            raise UserError("Use either source files or --in_dir, not both.")
        in_dir = normalize_path(args.in_dir)
        files = collect_image_files(in_dir, pattern)
        if not files:
            raise UserError(f"No files matched {pattern} in {in_dir}")
        return files
    if not listed:
        raise UserError("split requires source files or --in_dir.")
    return listed


def _print_report(report: "BatchReport", verbosity: str) -> None:
    """One status line per item, in input order, on stdout."""

    if verbosity == "quiet":
        return
    for result in report:
        if result.ok:
            print(f"[{result.status}] {result.source} -> {result.left_path}, {result.right_path}")
        else:
            print(f"[{result.status}] {result.source} ({result.stage.value}): {result.cause}")


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        command_string = _command_string(_command_argv_for_manifest(argv))
        verbosity = _verbosity_from_args(args)

        if args.command == "split":
            if getattr(args, "dump_default_config", False):
                print(dump_default_split_yaml())
                return 0

            if not hasattr(args, "out_dir"):
                raise UserError(
                    "split requires --out_dir unless --dump-default-config is used."
                )

            effective_cfg, config_path = _build_split_effective_config(args)
            options = SplitOptions.from_config(effective_cfg)
            out_dir = normalize_path(args.out_dir)
            ensure_dir_path(out_dir, "Output directory")
            if (
                hasattr(args, "in_dir")
                and options.subdir is None
                and normalize_path(args.in_dir).resolve() == out_dir.resolve()
            ):
                # Halves written here would match --glob on the next run.
                raise UserError(
                    "--out_dir is the same folder as --in_dir; "
                    "pass --subdir (e.g. SPL) or choose another --out_dir."
                )
            sources = _resolve_sources(args, str(effective_cfg["glob"]))

            manifest_value = effective_cfg.get("manifest")
            manifest_path = normalize_path(str(manifest_value)) if manifest_value else None
            if manifest_path is not None:
                ensure_file_path(manifest_path, "Manifest")

            manifest_options = options.to_dict()
            manifest_options["version"] = __version__
            manifest_options["verbosity"] = verbosity
            if config_path is not None:
                manifest_options["config_path"] = str(config_path)

            from .manifest import ManifestRecorder
            from .pipeline import TOOL_NAME, run_batch

            recorder = ManifestRecorder(
                tool_name=TOOL_NAME,
                tool_version=__version__,
                command=command_string,
                options=manifest_options,
                verbosity=verbosity,
            )
            report = run_batch(sources, out_dir, options, recorder=recorder)
            _print_report(report, verbosity)

            if manifest_path is not None:
                if options.dry_run:
                    recorder.log(f"[dry-run] Would write manifest to {manifest_path}")
                else:
                    recorder.outputs["manifest"] = str(manifest_path)
                    try:
                        recorder.write_manifest(manifest_path, report.summary())
                    except OSError as exc:
                        raise UserError(f"Failed to write manifest {manifest_path}: {exc}") from exc
            return 0 if report.ok else 1

        raise UserError("Unknown command. Use --help for usage.")
    except UserError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
