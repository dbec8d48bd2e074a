"""
Chroma Key Pre-processing

Removes a key color from the source image before it reaches the Grid
Sampler, so keyed-out regions fall under the alpha gate and render as empty
cells instead of stray background cells.

    dist = |rgb - key|                    (Euclidean, 0-255 space)
    dist < tolerance * 4.4                -> alpha 0
    dist < thresh + softness * 2          -> alpha *= (dist - thresh) / soft
"""

import numpy as np
from PIL import Image


TOLERANCE_SCALE = 4.4
SOFTNESS_SCALE = 2.0


def key_alpha(rgba, key_color, tolerance=30, softness=10):
    """New alpha channel for an (H, W, 4) uint8 array.

    Args:
        rgba: Source pixels
        key_color: (r, g, b) to remove
        tolerance: 0-100, hard cut radius
        softness: 0-100, feathered band beyond the cut

    Returns:
        (H, W) uint8 alpha
    """
    rgb = rgba[..., :3].astype(np.float64)
    key = np.asarray(key_color[:3], dtype=np.float64)
    dist = np.sqrt(((rgb - key) ** 2).sum(axis=-1))

    thresh = tolerance * TOLERANCE_SCALE
    soft = softness * SOFTNESS_SCALE
    alpha = rgba[..., 3].astype(np.float64)

    band = (dist >= thresh) & (dist < thresh + soft)
    feather = (dist - thresh) / (soft if soft > 0 else 0.1)
    alpha = np.where(band, np.floor(alpha * feather), alpha)
    alpha = np.where(dist < thresh, 0.0, alpha)
    return np.clip(alpha, 0, 255).astype(np.uint8)


def chroma_key(image, key_color, tolerance=30, softness=10, crop=None):
    """Key out ``key_color`` and optionally crop.

    Args:
        image: PIL image
        key_color: (r, g, b)
        tolerance, softness: 0-100
        crop: Optional (x, y, w, h); ignored when empty

    Returns:
        New RGBA PIL image
    """
    rgba = np.asarray(image.convert("RGBA"), dtype=np.uint8).copy()
    rgba[..., 3] = key_alpha(rgba, key_color, tolerance, softness)
    out = Image.fromarray(rgba)
    if crop is not None:
        x, y, w, h = (int(v) for v in crop)
        if w > 0 and h > 0:
            out = out.crop((x, y, x + w, y + h))
    return out


def pick_color(image, x, y):
    """Sample the original (un-keyed) color at (x, y)."""
    x = min(max(int(x), 0), image.width - 1)
    y = min(max(int(y), 0), image.height - 1)
    r, g, b = image.convert("RGB").getpixel((x, y))
    return r, g, b
