"""
Perceptual image fingerprints.

The fingerprint is the row-major sequence of packed ARGB values of a
32 pixel wide thumbnail. Two fingerprints are compared position by
position, so the comparison tolerates small color/brightness shifts but
not crops or rotations.
"""
import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from .. import config
from ..exceptions import ImageDecodeError
from ..models import ImageHash, MediaFile

# Try to register HEIC support
try:
    from pillow_heif import register_heif_opener
    register_heif_opener()
    HEIC_SUPPORTED = True
except ImportError:
    HEIC_SUPPORTED = False


@dataclass(frozen=True)
class ImageWithHash:
    file: MediaFile
    hash: ImageHash
    width: int
    height: int


def pack_argb(r: int, g: int, b: int, a: int) -> int:
    """Unsigned 32-bit 0xAARRGGBB."""
    return (a << 24) | (r << 16) | (g << 8) | b


class PerceptualHasher:
    def __init__(self, thumbnail_width: int = config.THUMBNAIL_WIDTH):
        self.thumbnail_width = thumbnail_width

    def thumbnail_size(self, width: int, height: int) -> Tuple[int, int]:
        """Keeps the aspect ratio, in floating point. At least one row."""
        if width <= 0 or height <= 0:
            raise ImageDecodeError(f"Invalid image size {width}x{height}")
        t_height = max(1, round(self.thumbnail_width / width * height))
        return self.thumbnail_width, t_height

    def generate(self, image: Image.Image) -> ImageHash:
        size = self.thumbnail_size(*image.size)
        thumbnail = image.convert("RGBA").resize(size, Image.Resampling.BILINEAR)
        raw = thumbnail.tobytes()
        return tuple(
            pack_argb(raw[i], raw[i + 1], raw[i + 2], raw[i + 3])
            for i in range(0, len(raw), 4)
        )

    def generate_for_file(self, file: MediaFile) -> ImageWithHash:
        logging.debug(f"Generating perceptual hash for {file.path}")
        try:
            with Image.open(file.path) as image:
                image.load()
                width, height = image.size
                image_hash = self.generate(image)
        except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as e:
            if file.path.suffix.lower() == ".heic" and not HEIC_SUPPORTED:
                logging.warning(f"HEIC support is not installed (pillow-heif), cannot decode {file.path}")
            raise ImageDecodeError(f"Image {file.path} could not be decoded: {e}") from e

        return ImageWithHash(file=file, hash=image_hash, width=width, height=height)

    @staticmethod
    def compare(h1: Sequence[int], h2: Sequence[int]) -> float:
        """Average per-position min/max ratio, as a percentage in [0, 100]."""
        if len(h1) != len(h2):
            return 0.0
        if not h1:
            return 100.0

        total = 0.0
        for v1, v2 in zip(h1, h2):
            if v1 == 0 and v2 == 0:
                total += 1.0
            elif v1 == 0 or v2 == 0:
                continue
            else:
                total += min(v1, v2) / max(v1, v2)

        return total / len(h1) * 100.0

    @staticmethod
    def format(image_hash: ImageHash) -> str:
        return "".join(str(v) for v in image_hash)
