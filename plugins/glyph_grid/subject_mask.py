"""
Subject Mask Extractor

Crude high-pass edge filter: a cell is "subject" when its luminance differs
from its axis-adjacent neighbors (left, right, up, down; fewer at the
borders) by more than the threshold on average. Differences are measured on
the raw 0-255 luminance scale so the 0-100 UI threshold compares directly
against channel-difference magnitudes.

This is not segmentation. High local contrast approximates silhouette and
texture edges; flat regions come out as background and are skipped in
Particles mode.
"""

import numpy as np
from scipy.ndimage import convolve

from .tone import LUMA_WEIGHTS


# 4-neighborhood (von Neumann), center excluded
_CROSS = np.array([[0, 1, 0],
                   [1, 0, 1],
                   [0, 1, 0]], dtype=np.float64)


def luminance_255(buffer):
    """Per-cell luminance on the 0-255 scale from an (rows, cols, 4) buffer."""
    return buffer[..., :3].astype(np.float64) @ LUMA_WEIGHTS


def neighbor_counts(rows, cols):
    """Number of in-bounds 4-neighbors for every cell."""
    ones = np.ones((rows, cols), dtype=np.float64)
    return convolve(ones, _CROSS, mode="constant", cval=0.0)


def mean_abs_diff(lum):
    """Mean |L(cell) - L(neighbor)| over each cell's existing 4-neighbors."""
    rows, cols = lum.shape
    total = np.zeros_like(lum)

    dh = np.abs(np.diff(lum, axis=1))  # (rows, cols-1)
    total[:, :-1] += dh
    total[:, 1:] += dh

    dv = np.abs(np.diff(lum, axis=0))  # (rows-1, cols)
    total[:-1, :] += dv
    total[1:, :] += dv

    counts = neighbor_counts(rows, cols)
    out = np.zeros_like(lum)
    np.divide(total, counts, out=out, where=counts > 0)
    return out


def extract(buffer, threshold):
    """Build the SubjectMask for a PixelBuffer.

    Args:
        buffer: (rows, cols, 4) uint8 PixelBuffer
        threshold: 0-100, compared against the mean neighbor difference

    Returns:
        (rows, cols) uint8 array of {0, 1}
    """
    rows, cols = buffer.shape[:2]
    if rows == 0 or cols == 0:
        return np.zeros((rows, cols), dtype=np.uint8)
    diff = mean_abs_diff(luminance_255(buffer))
    return (diff > threshold).astype(np.uint8)
