"""
Grid Sampler

Downsamples a source bitmap into a (rows, cols, 4) uint8 PixelBuffer that
matches the target cell grid. This buffer is the single source of truth for
every per-cell computation; nothing downstream re-samples the original image.

Resampling uses Pillow's BOX filter (area averaging), which is deterministic
for a fixed (image, cols, rows).
"""

import io
import math

import numpy as np
from PIL import Image

from .settings import StyleMode


# Monospace glyph cells are narrower than they are tall
GLYPH_WIDTH_RATIO = 0.6


def cell_dims(style_mode, cell_size):
    """Return (cell_w, cell_h) in output pixels for a style."""
    if StyleMode(style_mode) == StyleMode.glyph:
        return cell_size * GLYPH_WIDTH_RATIO, float(cell_size)
    return float(cell_size), float(cell_size)


def grid_shape(src_w, src_h, cols, style_mode, cell_size):
    """Compute (cols, rows) for a source image.

    rows = floor(cols * (src_h / src_w) * cell_aspect), where cell_aspect is
    cell_w / cell_h for glyph cells and 1.0 for every other style.
    """
    if cols < 1:
        raise ValueError(f"cols must be >= 1, got {cols}")
    if src_w <= 0 or src_h <= 0:
        raise ValueError(f"source image has no area: {src_w}x{src_h}")
    cell_w, cell_h = cell_dims(style_mode, cell_size)
    rows = math.floor(cols * (src_h / src_w) * (cell_w / cell_h))
    return cols, max(0, rows)


def sample(image, cols, rows):
    """Resize ``image`` to exactly cols x rows and read back RGBA bytes.

    Returns:
        (rows, cols, 4) uint8 array
    """
    if rows <= 0 or cols <= 0:
        return np.zeros((max(rows, 0), max(cols, 0), 4), dtype=np.uint8)
    rgba = image if image.mode == "RGBA" else image.convert("RGBA")
    small = rgba.resize((cols, rows), resample=Image.Resampling.BOX)
    return np.asarray(small, dtype=np.uint8).copy()


def load_image(source):
    """Decode an image from a path, bytes, or binary file object.

    Decode failures are not fatal: the caller gets None and the renderer
    stays idle until a usable image arrives.
    """
    try:
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)
        img = Image.open(source)
        img.load()
    except (OSError, ValueError) as e:
        print(f"[Grid] Could not load image: {e}")
        return None
    return img.convert("RGBA")
