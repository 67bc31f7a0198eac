"""
Unit tests for the left/right split.

These tests build synthetic images in memory, so they are fast and do not
require filesystem fixtures.
"""

from __future__ import annotations

from pathlib import Path
import unittest

from PIL import Image

from helpers_cli import make_split_pattern

from rename_split.codec import SourceImage
from rename_split.splitter import Side, split, split_boundary


def _source(image: Image.Image) -> SourceImage:
    return SourceImage(path=Path("in/sample.png"), base_identity="sample", format="PNG", image=image)


class SplitBoundaryTests(unittest.TestCase):
    def test_even_and_odd_widths(self) -> None:
        self.assertEqual(split_boundary(100), 50)
        self.assertEqual(split_boundary(101), 50)
        self.assertEqual(split_boundary(2), 1)
        self.assertEqual(split_boundary(1), 0)

    def test_rejects_empty_width(self) -> None:
        with self.assertRaises(ValueError):
            split_boundary(0)


class SplitTests(unittest.TestCase):
    def test_widths_sum_and_right_gets_the_extra_column(self) -> None:
        for width in (2, 3, 10, 99, 100, 101, 257):
            with self.subTest(width=width):
                left, right = split(_source(make_split_pattern(width, 7)))
                self.assertEqual(left.width + right.width, width)
                self.assertEqual(right.width, (width + 1) // 2)
                self.assertEqual(left.width, width // 2)

    def test_heights_and_mode_are_preserved(self) -> None:
        for mode in ("RGB", "RGBA", "L", "P", "CMYK"):
            with self.subTest(mode=mode):
                image = make_split_pattern(31, 17, mode=mode)
                left, right = split(_source(image))
                self.assertEqual((left.height, right.height), (17, 17))
                self.assertEqual(left.mode, mode)
                self.assertEqual(right.mode, mode)

    def test_palette_is_kept(self) -> None:
        image = make_split_pattern(20, 4, mode="P")
        left, right = split(_source(image))
        self.assertEqual(left.image.getpalette(), image.getpalette())
        self.assertEqual(right.image.getpalette(), image.getpalette())

    def test_columns_land_on_the_expected_side(self) -> None:
        left, right = split(_source(make_split_pattern(101, 10)))
        self.assertEqual(left.side, Side.LEFT)
        self.assertEqual(right.side, Side.RIGHT)
        self.assertEqual(right.offset_x, 50)
        self.assertEqual(left.image.getpixel((left.width - 1, 5)), (220, 20, 20))
        self.assertEqual(right.image.getpixel((0, 5)), (20, 20, 220))
        self.assertEqual(right.image.getpixel((right.width - 1, 5)), (20, 20, 220))

    def test_halves_do_not_share_the_source_buffer(self) -> None:
        image = make_split_pattern(40, 10)
        source = _source(image)
        left, right = split(source)
        source.release()
        # Still readable after the source is closed.
        self.assertEqual(left.image.getpixel((0, 0)), (220, 20, 20))
        self.assertEqual(right.image.getpixel((0, 0)), (20, 20, 220))

    def test_single_column_yields_zero_width_left_half(self) -> None:
        left, right = split(_source(make_split_pattern(1, 9)))
        self.assertEqual(left.image.size, (0, 9))
        self.assertEqual(right.image.size, (1, 9))
        self.assertEqual(left.mode, "RGB")

    def test_side_suffixes(self) -> None:
        self.assertEqual(Side.LEFT.value, "1")
        self.assertEqual(Side.RIGHT.value, "2")


if __name__ == "__main__":
    unittest.main()
