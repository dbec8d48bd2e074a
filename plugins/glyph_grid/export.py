"""
Frame and Text Export

Text dumps reproduce the visual path exactly: same alpha gate, same
contrast / invert, same glyph bucket and blank gating. Glyph style exports
ramp characters; the block styles (bead, pixel, voxel) export the nearest
emoji square. Transparent cells become a space in both.
"""

import io

import numpy as np

from . import tone
from .renderer import glyph_grid
from .settings import StyleMode


EMOJI_BLOCKS = [
    ("🟥", (221, 46, 68)),
    ("🟧", (244, 144, 12)),
    ("🟨", (253, 203, 88)),
    ("🟩", (120, 177, 89)),
    ("🟦", (85, 172, 238)),
    ("🟪", (170, 142, 214)),
    ("🟫", (193, 105, 79)),
    ("⬛", (49, 55, 61)),
    ("⬜", (230, 231, 232)),
]

_EMOJI_CHARS = np.array([e[0] for e in EMOJI_BLOCKS])
_EMOJI_RGB = np.array([e[1] for e in EMOJI_BLOCKS], dtype=np.float64)


def nearest_emoji(rgb):
    """Nearest emoji block (Euclidean RGB) for each color in (..., 3)."""
    rgb = np.asarray(rgb, dtype=np.float64)
    d = ((rgb[..., None, :] - _EMOJI_RGB) ** 2).sum(axis=-1)
    return _EMOJI_CHARS[np.argmin(d, axis=-1)]


def text_grid(buffer, settings):
    """(rows, cols) array of output characters for a PixelBuffer."""
    visible = tone.is_visible(buffer[..., 3])
    if StyleMode(settings.style_mode) == StyleMode.glyph:
        chars = glyph_grid(buffer, settings)
        blank = np.char.isspace(chars)
        chars = np.where(blank, " ", chars)
    else:
        adjusted = tone.adjust(buffer, settings.contrast, settings.invert)
        chars = nearest_emoji(adjusted[..., :3])
    return np.where(visible, chars, " ")


def text_dump(buffer, settings):
    """Newline-delimited character grid (one newline after every row)."""
    grid = text_grid(buffer, settings)
    return "".join("".join(row) + "\n" for row in grid)


def write_text(text, path):
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return path


def to_png_bytes(frame):
    """Encode a PIL frame as PNG bytes."""
    buf = io.BytesIO()
    frame.save(buf, format="PNG")
    return buf.getvalue()


def save_png(frame, path):
    frame.save(path, format="PNG")
    return path


def to_float_frame(frame, background=(0, 0, 0)):
    """Composite an RGBA frame over ``background``.

    Returns:
        (H, W, 3) float32 array in [0, 1]
    """
    rgba = np.asarray(frame, dtype=np.float32) / 255.0
    if rgba.ndim != 3 or rgba.shape[0] == 0 or rgba.shape[1] == 0:
        return np.zeros((max(frame.height, 1), max(frame.width, 1), 3), dtype=np.float32)
    bg = np.asarray(background[:3], dtype=np.float32) / 255.0
    alpha = rgba[..., 3:4]
    return rgba[..., :3] * alpha + bg * (1.0 - alpha)
