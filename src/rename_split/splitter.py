"""
Cut a decoded image into its left and right vertical halves.

The boundary is floor(W/2): the left half gets columns [0, boundary) and
the right half gets [boundary, W), so an odd extra column always lands on
the right. Rows, mode and palette are untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from PIL import Image

from .codec import SourceImage


class Side(str, Enum):
    """Which half of the source an output holds; the value is its suffix."""

    LEFT = "1"
    RIGHT = "2"


@dataclass
class HalfImage:
    side: Side
    offset_x: int
    image: Image.Image

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def mode(self) -> str:
        return self.image.mode

    def release(self) -> None:
        self.image.close()


def split_boundary(width: int) -> int:
    """Column index where the right half starts."""

    if width < 1:
        raise ValueError(f"Width must be >= 1, got {width}.")
    return width // 2


def _cut(image: Image.Image, left: int, right: int) -> Image.Image:
    """Copy columns [left, right) of image into a new, loaded image."""

    if right <= left:
        # Pillow refuses zero-area crops on some versions; build the empty
        # strip directly so W=1 still yields a well-formed left half.
        empty = Image.new(image.mode, (0, image.height))
        if image.mode in ("P", "PA"):
            palette = image.getpalette()
            if palette is not None:
                empty.putpalette(palette)
        empty.info = dict(image.info)
        return empty

    part = image.crop((left, 0, right, image.height))
    # Load pixel data now so the half no longer references the source.
    part.load()
    return part


def split(source: SourceImage) -> Tuple[HalfImage, HalfImage]:
    """Split a source image into (left, right) halves."""

    width, height = source.image.size
    boundary = split_boundary(width)

    left = HalfImage(side=Side.LEFT, offset_x=0, image=_cut(source.image, 0, boundary))
    right = HalfImage(
        side=Side.RIGHT,
        offset_x=boundary,
        image=_cut(source.image, boundary, width),
    )
    return left, right
