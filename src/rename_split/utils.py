"""
Shared utility helpers.

This module keeps the "sharp edges" (validation, error types and the atomic
file writer) in one place so the rest of the code can stay focused on
image work.
"""

from __future__ import annotations

from contextlib import contextmanager
import os
from pathlib import Path
import stat
import tempfile
from typing import Iterator, List


class UserError(Exception):
    """Raised for user-facing problems that should show a clear message."""


class PipelineError(Exception):
    """
    Base class for per-item failures inside a batch.

    The orchestrator converts these into an item failure instead of letting
    them abort the batch.
    """


class DecodeError(PipelineError):
    """Source unreadable, unrecognised, corrupt or degenerate."""


class SplitError(PipelineError):
    """Reserved for splits that can fail; the vertical halving never does."""


class EncodeError(PipelineError):
    """Output could not be written (format, permissions, disk, zero width)."""


class NamingCollisionError(PipelineError):
    """Output names could not be made unique for an item."""


def normalize_path(value: str) -> Path:
    """
    Convert user input to a Path.

    We do not resolve() here because we want to preserve relative paths in
    manifests and error messages.
    """

    return Path(value).expanduser()


def ensure_file_exists(path: Path, label: str) -> Path:
    """Validate that a path exists and is a file."""

    if not path.exists():
        raise UserError(f"{label} not found: {path}")
    if not path.is_file():
        raise UserError(f"{label} is not a file: {path}")
    return path


def ensure_dir(path: Path, dry_run: bool) -> None:
    """
    Create a directory if needed, unless this is a dry-run.

    Why: dry-run should never touch the filesystem, but real runs should
    create output folders automatically.
    """

    if dry_run:
        return
    path.mkdir(parents=True, exist_ok=True)


def ensure_dir_path(path: Path, label: str) -> None:
    """Ensure a path is either a directory or does not exist yet."""

    if path.exists() and not path.is_dir():
        raise UserError(f"{label} is not a directory: {path}")


def ensure_file_path(path: Path, label: str) -> None:
    """Ensure a path is a file path (not an existing directory)."""

    if path.exists() and path.is_dir():
        raise UserError(f"{label} is a directory, not a file: {path}")


def validate_int_range(value: int, low: int, high: int, label: str) -> int:
    """Validate an inclusive integer range such as JPEG quality."""

    if isinstance(value, bool) or not isinstance(value, int):
        raise UserError(f"{label} must be an integer.")
    if value < low or value > high:
        raise UserError(f"{label} must be in the range [{low}, {high}].")
    return value


def collect_image_files(in_dir: Path, pattern: str) -> List[Path]:
    """Return a sorted list of matching files for stable batch order."""

    if not in_dir.exists() or not in_dir.is_dir():
        raise UserError(f"Input directory not found: {in_dir}")
    return sorted(path for path in in_dir.glob(pattern) if path.is_file())


def _read_umask() -> int:
    # os.umask can only be read by setting it; do it once, at import time.
    current = os.umask(0)
    os.umask(current)
    return current


_UMASK = _read_umask()


def _output_mode(path: Path) -> int:
    """Keep the mode of a file being replaced, else 0666 minus the umask."""

    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        return 0o666 & ~_UMASK


@contextmanager
def atomic_output(path: Path) -> Iterator[Path]:
    """
    Yield a temp path next to ``path`` and move it into place on success.

    The temp file lives in the destination folder so the final replace() is
    a same-filesystem rename. On any error the temp file is removed and the
    final path is left untouched.
    """

    handle, temp_name = tempfile.mkstemp(
        prefix=f".{path.stem}_tmp_",
        suffix=path.suffix,
        dir=str(path.parent),
    )
    os.close(handle)
    temp_path = Path(temp_name)
    try:
        yield temp_path
        # mkstemp creates 0600 files; give the output normal file permissions.
        os.chmod(temp_path, _output_mode(path))
        temp_path.replace(path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
