"""
Decode source images and encode half images with Pillow.

Why this module exists:
- It is the only place that talks to image codecs, so every codec or
  filesystem problem turns into a DecodeError or EncodeError here.
- Output files are written atomically (temp file, then replace) so a failed
  or interrupted encode never leaves a truncated image at the final path.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from PIL import Image

from .utils import DecodeError, EncodeError, atomic_output


# Output formats we encode, with the canonical extension for each.
CANONICAL_EXTENSIONS: Dict[str, str] = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "BMP": ".bmp",
    "TIFF": ".tif",
    "WEBP": ".webp",
    "GIF": ".gif",
}

FORMAT_ALIASES: Dict[str, str] = {
    "JPG": "JPEG",
    "TIF": "TIFF",
    # Phone cameras often produce multi-picture JPEGs; the first frame is a
    # plain JPEG.
    "MPO": "JPEG",
}

DPI_FORMATS = {"JPEG", "PNG", "TIFF"}
QUALITY_FORMATS = {"JPEG", "WEBP"}
JPEG_MODES = {"RGB", "L", "CMYK"}


@dataclass
class SourceImage:
    """A decoded source file and the identity used to name its outputs."""

    path: Path
    base_identity: str
    format: str
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

    @property
    def dpi(self) -> Optional[Tuple[float, float]]:
        value = self.image.info.get("dpi")
        if not value:
            return None
        return (float(value[0]), float(value[1]))

    def release(self) -> None:
        """Drop the pixel buffer once both halves have been cut."""

        self.image.close()


def base_identity(path: Path) -> str:
    """File name without directory and extension."""

    return path.stem


def normalize_format(name: str) -> str:
    """Map user or Pillow format names onto the encoder names we support."""

    upper = name.strip().upper()
    return FORMAT_ALIASES.get(upper, upper)


def resolve_output_format(source_format: str, requested: str) -> str:
    """
    Pick the encoder for an item.

    "source" keeps whatever was sniffed from the input file.
    """

    if requested.strip().lower() == "source":
        chosen = normalize_format(source_format)
    else:
        chosen = normalize_format(requested)
    if chosen not in CANONICAL_EXTENSIONS:
        raise EncodeError(
            f"Unsupported output format '{chosen}'. "
            f"Supported: {', '.join(sorted(CANONICAL_EXTENSIONS))}."
        )
    return chosen


def extension_for(image_format: str, source_suffix: str = "") -> str:
    """
    Return the output file extension for a format.

    The source suffix is kept (lower-cased) when Pillow registers it for the
    same format, so "scan.jpeg" produces "scan_1.jpeg".
    """

    suffix = source_suffix.lower()
    if suffix:
        registered = Image.registered_extensions()
        if normalize_format(registered.get(suffix, "")) == image_format:
            return suffix
    return CANONICAL_EXTENSIONS[image_format]


def decode(path: Path) -> SourceImage:
    """
    Read an image file into memory.

    The format comes from the file content, not from its extension. The
    returned image is fully loaded, so the file handle is closed on return.
    """

    if not path.exists():
        raise DecodeError(f"Source image not found: {path}")
    if not path.is_file():
        raise DecodeError(f"Source image is not a file: {path}")

    try:
        with Image.open(path) as opened:
            detected = opened.format or ""
            opened.load()
            image = opened.copy()
    except Image.DecompressionBombError as exc:
        raise DecodeError(f"Image {path} is too large to decode safely: {exc}") from exc
    except (OSError, ValueError, SyntaxError) as exc:
        # UnidentifiedImageError is an OSError; truncated data shows up as
        # OSError or SyntaxError depending on the plugin.
        raise DecodeError(f"Failed to read image {path}: {exc}") from exc

    if not detected:
        image.close()
        raise DecodeError(f"Could not detect the image format of {path}.")

    width, height = image.size
    if width < 1 or height < 1:
        image.close()
        raise DecodeError(f"Image {path} has degenerate dimensions {width}x{height}.")

    return SourceImage(
        path=path,
        base_identity=base_identity(path),
        format=normalize_format(detected),
        image=image,
    )


def _prepare_for_format(image: Image.Image, image_format: str) -> Image.Image:
    """Convert modes an encoder cannot store (JPEG has no alpha or palette)."""

    if image_format == "JPEG" and image.mode not in JPEG_MODES:
        return image.convert("RGB")
    return image


def _save_options(
    image_format: str,
    quality: int,
    dpi: Optional[Tuple[float, float]],
) -> Dict[str, Any]:
    options: Dict[str, Any] = {}
    if image_format in QUALITY_FORMATS:
        options["quality"] = quality
    if dpi is not None and image_format in DPI_FORMATS:
        options["dpi"] = dpi
    return options


def encode(
    image: Image.Image,
    target_path: Path,
    image_format: str,
    *,
    quality: int = 100,
    dpi: Optional[Tuple[float, float]] = (300, 300),
) -> None:
    """
    Encode an image to target_path atomically.

    Zero-width or zero-height images are rejected before anything touches
    the filesystem.
    """

    image_format = normalize_format(image_format)
    if image_format not in CANONICAL_EXTENSIONS:
        raise EncodeError(f"Unsupported output format '{image_format}'.")

    width, height = image.size
    if width < 1 or height < 1:
        raise EncodeError(
            f"Refusing to encode a {width}x{height} image to {target_path}; "
            "both dimensions must be at least 1 pixel."
        )

    options = _save_options(image_format, quality, dpi)
    prepared = image
    try:
        prepared = _prepare_for_format(image, image_format)
        target_path.parent.mkdir(parents=True, exist_ok=True)
        with atomic_output(target_path) as temp_path:
            prepared.save(temp_path, format=image_format, **options)
    except (OSError, ValueError, KeyError) as exc:
        # OSError covers permissions and disk-full; ValueError/KeyError come
        # from encoders rejecting a mode or option.
        raise EncodeError(f"Failed to write {target_path}: {exc}") from exc
    finally:
        if prepared is not image:
            prepared.close()
