"""
Configuration helpers for YAML-backed split options.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .codec import CANONICAL_EXTENSIONS, normalize_format
from .naming import NAMING_MODES
from .utils import UserError, ensure_file_exists, validate_int_range


DEFAULT_SPLIT: dict[str, Any] = {
    "glob": "*.jpg",
    "output_format": "source",
    "overwrite_existing": False,
    "quality": 100,
    "dpi": 300,
    "naming": "identity",
    "subdir": None,
    "workers": 0,
    "dry_run": False,
    "manifest": None,
}

CONFIG_SECTION = "split"


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file into a dictionary."""

    ensure_file_exists(path, "Config file")
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise UserError(f"Failed to parse YAML config {path}: {exc}") from exc
    except OSError as exc:
        raise UserError(f"Failed to read config {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise UserError(f"Config {path} must contain a YAML mapping/object at top level.")
    return loaded


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge dictionaries where overlay values win.
    """

    merged = deepcopy(base)
    for key, value in overlay.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def validate_keys(cfg: dict[str, Any], allowed: set[str], ctx: str) -> None:
    """
    Validate dictionary keys and fail fast on unknown entries.
    """

    unknown = sorted(key for key in cfg.keys() if key not in allowed)
    if unknown:
        allowed_list = ", ".join(sorted(allowed))
        unknown_list = ", ".join(unknown)
        raise UserError(
            f"Unknown keys in {ctx}: {unknown_list}. Allowed keys: {allowed_list}."
        )


def extract_split_section(loaded: Dict[str, Any]) -> Dict[str, Any]:
    """Support either root config keys or a split wrapper."""

    allowed = set(DEFAULT_SPLIT.keys())
    if CONFIG_SECTION in loaded:
        section = loaded[CONFIG_SECTION]
        if not isinstance(section, dict):
            raise UserError(f"config.{CONFIG_SECTION} must be a mapping/object.")
        validate_keys(section, allowed, f"config.{CONFIG_SECTION}")
        return section

    validate_keys(loaded, allowed, "config")
    return loaded


def dump_default_split_yaml() -> str:
    """Serialize wrapped split defaults as YAML."""

    return yaml.safe_dump({CONFIG_SECTION: DEFAULT_SPLIT}, sort_keys=False).rstrip()


def require_bool(value: Any, key: str) -> bool:
    """Require a strict boolean value from config/CLI merge output."""

    if isinstance(value, bool):
        return value
    raise UserError(f"{key} must be true or false.")


@dataclass(frozen=True)
class SplitOptions:
    """
    Options for one batch.

    Validated on construction so run_batch never sees a bad combination.
    """

    output_format: str = "source"
    overwrite_existing: bool = False
    quality: int = 100
    dpi: Optional[int] = 300
    naming: str = "identity"
    subdir: Optional[str] = None
    workers: int = 0
    dry_run: bool = False

    def __post_init__(self) -> None:
        fmt = self.output_format.strip().lower()
        if fmt != "source" and normalize_format(fmt) not in CANONICAL_EXTENSIONS:
            supported = ", ".join(["source", *sorted(f.lower() for f in CANONICAL_EXTENSIONS)])
            raise UserError(
                f"output_format must be one of: {supported}. Got '{self.output_format}'."
            )
        require_bool(self.overwrite_existing, "overwrite_existing")
        require_bool(self.dry_run, "dry_run")
        validate_int_range(self.quality, 1, 100, "quality")
        if self.dpi is not None:
            validate_int_range(self.dpi, 1, 10000, "dpi")
        if self.naming not in NAMING_MODES:
            raise UserError(
                f"naming must be one of: {', '.join(sorted(NAMING_MODES))}."
            )
        if self.subdir is not None:
            if not isinstance(self.subdir, str) or not self.subdir.strip():
                raise UserError("subdir must be a non-empty folder name or null.")
            if Path(self.subdir).is_absolute() or ".." in Path(self.subdir).parts:
                raise UserError("subdir must be a relative folder inside the output directory.")
        validate_int_range(self.workers, 0, 256, "workers")

    @property
    def dpi_pair(self) -> Optional[Tuple[int, int]]:
        if self.dpi is None:
            return None
        return (self.dpi, self.dpi)

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "SplitOptions":
        """Build options from an effective (merged) config mapping."""

        return cls(
            output_format=str(cfg["output_format"]),
            overwrite_existing=require_bool(
                cfg["overwrite_existing"], "config.overwrite_existing"
            ),
            quality=cfg["quality"],
            dpi=cfg["dpi"],
            naming=str(cfg["naming"]),
            subdir=cfg["subdir"],
            workers=cfg["workers"],
            dry_run=require_bool(cfg["dry_run"], "config.dry_run"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
