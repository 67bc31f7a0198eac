"""
Deterministic output names for a batch.

Why this module exists:
- Downstream print tools pair the halves by name, so names must depend only
  on the batch contents (identity, ordinal, side), never on timing.
- Two sources with the same base name must not overwrite each other.

Stems are computed once per batch; the extension is added per item because
it depends on the format sniffed at decode time.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .splitter import Side
from .utils import NamingCollisionError


NAMING_MODES = {"identity", "sequence"}


def compute_ordinal_digits(count: int) -> int:
    """Zero-pad ordinals for stable filenames like 01, 02 ... 10."""

    return max(2, len(str(count)))


def _collision_key(stem: str) -> str:
    # Case-insensitive so outputs stay distinct on Windows/macOS volumes.
    return stem.casefold()


def disambiguate_stems(
    identities: Sequence[str], max_rounds: Optional[int] = None
) -> List[Optional[str]]:
    """
    Make every stem unique by appending ordinals to colliding ones.

    Each round finds groups of equal stems and appends "_<ordinal>" to every
    member. A suffix can itself collide with another input's real name
    (e.g. "photo", "photo", "photo_00"), so rounds repeat until all stems are
    unique. Entries still colliding after max_rounds come back as None.
    """

    digits = compute_ordinal_digits(max(len(identities) - 1, 0))
    stems: List[str] = list(identities)
    rounds = max_rounds if max_rounds is not None else len(stems) + 1

    for _ in range(rounds):
        groups: Dict[str, List[int]] = {}
        for ordinal, stem in enumerate(stems):
            groups.setdefault(_collision_key(stem), []).append(ordinal)
        colliding = [members for members in groups.values() if len(members) > 1]
        if not colliding:
            return list(stems)
        for members in colliding:
            for ordinal in members:
                stems[ordinal] = f"{stems[ordinal]}_{ordinal:0{digits}d}"

    counts: Dict[str, int] = {}
    for stem in stems:
        key = _collision_key(stem)
        counts[key] = counts.get(key, 0) + 1
    return [stem if counts[_collision_key(stem)] == 1 else None for stem in stems]


class NamingStrategy:
    """
    Output paths for one batch.

    identity mode: <dest>/<stem>_1.<ext> and <dest>/<stem>_2.<ext>
    sequence mode: <dest>/01_1.<ext>, <dest>/01_2.<ext>, ... (1-based)
    """

    def __init__(
        self,
        dest_dir: Path,
        identities: Sequence[str],
        mode: str = "identity",
        subdir: Optional[str] = None,
    ) -> None:
        if mode not in NAMING_MODES:
            raise ValueError(f"Unknown naming mode: {mode}")
        self.dest_dir = dest_dir
        self.mode = mode
        self.out_dir = dest_dir / subdir if subdir else dest_dir
        self.identities = list(identities)

        if mode == "sequence":
            digits = compute_ordinal_digits(len(self.identities))
            self._stems: List[Optional[str]] = [
                f"{ordinal + 1:0{digits}d}" for ordinal in range(len(self.identities))
            ]
        else:
            self._stems = disambiguate_stems(self.identities)

    def __len__(self) -> int:
        return len(self._stems)

    def stem(self, ordinal: int) -> str:
        """Unique stem for an item, or NamingCollisionError."""

        if ordinal < 0 or ordinal >= len(self._stems):
            raise NamingCollisionError(
                f"Ordinal {ordinal} is outside the batch (size {len(self._stems)})."
            )
        stem = self._stems[ordinal]
        if stem is None:
            raise NamingCollisionError(
                f"Could not derive a unique output name for "
                f"'{self.identities[ordinal]}' (item {ordinal})."
            )
        return stem

    def is_disambiguated(self, ordinal: int) -> bool:
        return self.mode == "identity" and self._stems[ordinal] != self.identities[ordinal]

    def output_path(self, ordinal: int, side: Side, extension: str) -> Path:
        """Path for one half: stem + "_" + side suffix + extension."""

        if extension and not extension.startswith("."):
            extension = f".{extension}"
        return self.out_dir / f"{self.stem(ordinal)}_{side.value}{extension}"
