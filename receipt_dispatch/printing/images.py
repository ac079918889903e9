"""
Image source boundary: load pictures with Pillow and pack them for GS v 0.

Images arrive at arbitrary resolution; they are scaled to a print-safe width
here, because the raster encoder writes pixel rows verbatim.
"""

from __future__ import annotations

import logging
import os
from typing import Union

from PIL import Image, ImageOps

from receipt_dispatch.core.errors import ImageLoadError
from receipt_dispatch.printing.commands import Raster

logger = logging.getLogger(__name__)

ImageSource = Union[str, "os.PathLike[str]", Image.Image]


def _flatten(img: Image.Image) -> Image.Image:
    """
    Return a grayscale copy with any transparency composited onto white.
    """
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        bg = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        bg.alpha_composite(rgba)
        return bg.convert("L")
    return img.convert("L")


def resize_to_width(img: Image.Image, width: int) -> Image.Image:
    """
    Scale to the given width keeping the aspect ratio (minimum height 1).
    """
    if width <= 0:
        raise ImageLoadError("target width must be positive")
    if img.width == width:
        return img
    height = max(1, round(img.height * width / img.width))
    return img.resize((width, height), Image.LANCZOS)


def to_raster(img: Image.Image) -> Raster:
    """
    Dither a grayscale image to 1 bit and pack it 8 dots per byte, black = 1.

    The canvas is padded with white to a multiple of 8 dots so row padding
    never prints as a dark edge.
    """
    gray = _flatten(img)
    padded_width = (gray.width + 7) // 8 * 8
    if padded_width != gray.width:
        canvas = Image.new("L", (padded_width, gray.height), 255)
        canvas.paste(gray, (0, 0))
        gray = canvas
    # Pillow's 1-bit mode packs white as 1; printers burn dots for 1
    mono = ImageOps.invert(gray).convert("1")
    return Raster(width=padded_width // 8, height=mono.height, data=mono.tobytes())


def load_raster(source: ImageSource, width: int) -> Raster:
    """
    Load an image from a path (or use an already open Pillow image), scale it
    to width dots, and return packed raster data.

    Raises ImageLoadError on any failure so callers can fall back to text.
    """
    try:
        if isinstance(source, Image.Image):
            img = source
        else:
            path = os.fspath(source)
            if not os.path.isfile(path):
                raise ImageLoadError(f"Image not found: {path}")
            with Image.open(path) as opened:
                opened.load()
                img = opened.copy()
        raster = to_raster(resize_to_width(img, width))
    except ImageLoadError:
        raise
    except Exception as e:
        raise ImageLoadError(f"Could not load image {source!r}: {e}") from e
    logger.debug("Loaded image as %dx%d raster bytes", raster.width, raster.height)
    return raster


__all__ = ["load_raster", "resize_to_width", "to_raster"]
