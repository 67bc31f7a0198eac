"""
Shared helpers for rename-split tests: in-process CLI runs, temp folders
and synthetic images.
"""

from __future__ import annotations

import importlib
import io
import shutil
import sys
from contextlib import contextmanager, redirect_stderr, redirect_stdout
from pathlib import Path
from typing import Iterator
from uuid import uuid4

from PIL import Image, ImageDraw


SRC_DIR = Path(__file__).resolve().parents[1] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


def _normalize_exit_code(value: object) -> int:
    """Normalize return values/SystemExit payloads into process-style int codes."""

    if value is None:
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        return 1


def run_rename_split_cli(argv: list[str]) -> tuple[int, str, str]:
    """
    Run rename-split CLI in-process with isolated argv and captured stdio.

    Returns: (exit_code, stdout_text, stderr_text)
    """

    original_argv = list(sys.argv)
    stdout_stream = io.StringIO()
    stderr_stream = io.StringIO()
    exit_code = 0

    try:
        sys.argv = ["rename-split", *argv]
        with redirect_stdout(stdout_stream), redirect_stderr(stderr_stream):
            cli_mod = importlib.import_module("rename_split.cli")
            try:
                result = cli_mod.main(argv)
            except SystemExit as exc:
                exit_code = _normalize_exit_code(exc.code)
            else:
                exit_code = _normalize_exit_code(result)
    finally:
        sys.argv = original_argv

    return exit_code, stdout_stream.getvalue(), stderr_stream.getvalue()


@contextmanager
def workspace_temp_dir(label: str = "test") -> Iterator[Path]:
    root = Path(__file__).resolve().parents[1] / ".tmp_tests"
    root.mkdir(parents=True, exist_ok=True)
    tmp = root / f"{label}_{uuid4().hex}"
    tmp.mkdir(parents=True, exist_ok=False)
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


def make_split_pattern(width: int, height: int, mode: str = "RGB") -> Image.Image:
    """Left half red, right half blue, so each output's origin is checkable."""

    image = Image.new("RGB", (width, height), color=(220, 20, 20))
    boundary = width // 2
    if boundary < width:
        draw = ImageDraw.Draw(image)
        draw.rectangle((boundary, 0, width - 1, height - 1), fill=(20, 20, 220))
    if mode != "RGB":
        image = image.convert(mode)
    return image


def write_image(path: Path, width: int, height: int, image_format: str | None = None) -> Path:
    """Save a synthetic image; format defaults to the one implied by the suffix."""

    path.parent.mkdir(parents=True, exist_ok=True)
    make_split_pattern(width, height).save(path, format=image_format)
    return path
