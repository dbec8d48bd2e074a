"""
Tone / Color Pipeline

Pure functions mapping raw RGBA samples to adjusted RGBA. Every function
accepts either a single sample (tuple / 1D array of 4) or any (..., 4)
array, so the renderer, the palette builder and the text exporter all share
exactly the same arithmetic.

Order of operations:
  1. Contrast stretch around mid-grey 128, clamped to [0, 255]
  2. Inversion (channels for color consumers, brightness for glyph consumers)
  3. Alpha gate: samples with alpha < ALPHA_GATE are never drawn
"""

import numpy as np


# Single transparency cutoff shared by render and text-export paths
ALPHA_GATE = 128

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def apply_contrast(rgb, contrast):
    """Stretch channels around 128: clamp((v - 128) * contrast + 128).

    Args:
        rgb: (..., 3) array-like of channel values in [0, 255]
        contrast: Multiplier, 1.0 = unchanged

    Returns:
        float64 array of the same shape, clamped to [0, 255]
    """
    rgb = np.asarray(rgb, dtype=np.float64)
    if contrast == 1.0:
        return rgb.copy()
    return np.clip((rgb - 128.0) * contrast + 128.0, 0.0, 255.0)


def invert_channels(rgb):
    return 255.0 - np.asarray(rgb, dtype=np.float64)


def adjust(sample, contrast=1.0, invert=False, for_luminance=False):
    """Apply the tone pipeline to one sample or an array of samples.

    Alpha is passed through untouched. When ``for_luminance`` is set the
    channels are not inverted; glyph consumers flip the brightness scalar
    instead (see brightness()).

    Returns:
        float64 array shaped like the input, (..., 4)
    """
    sample = np.asarray(sample, dtype=np.float64)
    out = np.empty_like(sample)
    rgb = apply_contrast(sample[..., :3], contrast)
    if invert and not for_luminance:
        rgb = invert_channels(rgb)
    out[..., :3] = rgb
    out[..., 3] = sample[..., 3]
    return out


def luminance(rgb):
    """Normalized luminance L = (0.299R + 0.587G + 0.114B) / 255."""
    rgb = np.asarray(rgb, dtype=np.float64)
    return (rgb[..., :3] @ LUMA_WEIGHTS) / 255.0


def brightness(rgb, contrast=1.0, invert=False):
    """Luminance after contrast, flipped to 1 - L when inverted."""
    lum = luminance(apply_contrast(np.asarray(rgb)[..., :3], contrast))
    if invert:
        lum = 1.0 - lum
    return lum


def is_visible(alpha):
    """True where a sample passes the alpha gate."""
    return np.asarray(alpha) >= ALPHA_GATE


def to_bytes(rgb):
    """Round float channels to the nearest uint8."""
    return np.clip(np.floor(np.asarray(rgb, dtype=np.float64) + 0.5), 0, 255).astype(np.uint8)


def blend(rgb, target, amount):
    """Move a color ``amount`` (0-1) of the way toward ``target``."""
    rgb = np.asarray(rgb, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)
    return rgb + (target - rgb) * amount
