"""Image decoding for the in-memory working set."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from PIL import Image, ImageOps

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = (1920, 1080)


def load_image(path: Path, max_size: tuple[int, int] = DEFAULT_MAX_SIZE) -> Image.Image:
    """Decode ``path`` into an RGB image scaled to fit ``max_size``.

    EXIF orientation is applied before scaling. The aspect ratio is kept, and
    images smaller than ``max_size`` are scaled up to fill it.
    """
    with Image.open(path) as im:
        im.load()
        try:
            im = ImageOps.exif_transpose(im)
        except (OSError, ValueError, AttributeError) as ex:
            logger.debug("EXIF transpose failed for %s: %s", path, ex)
        if im.mode != "RGB":
            im = im.convert("RGB")
        return ImageOps.contain(im, max_size, method=Image.Resampling.BICUBIC)
