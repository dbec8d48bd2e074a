"""
Bead Palette Builder

Quantizes every visible cell to a coarse "bead color" and ranks the distinct
colors by frequency. Ids are 1-based ranks (1 = most frequent) and are shown
to the user as persistent labels, so the build is a pure function of
(buffer, contrast, invert): ties are broken by first occurrence in row-major
order.
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple

import numpy as np

from . import tone


QUANT_STEP = 4


@dataclass(frozen=True)
class PaletteEntry:
    id: int
    r: int
    g: int
    b: int
    a: int
    frequency: int

    @property
    def rgb(self):
        return (self.r, self.g, self.b)


@dataclass(frozen=True)
class Palette:
    """Frequency-ranked bead colors plus a color-key -> id lookup."""

    entries: Tuple[PaletteEntry, ...] = ()
    lookup: Dict[int, int] = field(default_factory=dict)

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def id_for(self, r, g, b):
        """Palette id for a quantized color, or None if absent."""
        if not self.lookup:
            return None
        return self.lookup.get(color_key(r, g, b))

    def legend(self):
        """List of (id, '#rrggbb', frequency) rows for display."""
        return [(e.id, f"#{e.r:02x}{e.g:02x}{e.b:02x}", e.frequency)
                for e in self.entries]


def quantize(rgb):
    """Round channels to the nearest multiple of QUANT_STEP, capped at 255."""
    rgb = np.asarray(rgb, dtype=np.float64)
    q = np.floor(rgb / QUANT_STEP + 0.5) * QUANT_STEP
    return np.minimum(q, 255).astype(np.int64)


def color_key(r, g, b):
    return (int(r) << 16) | (int(g) << 8) | int(b)


def bead_colors(buffer, contrast=1.0, invert=False):
    """Tone-adjust and quantize a whole buffer.

    Returns:
        ((rows, cols, 3) int64 quantized RGB, (rows, cols) bool visibility)
    """
    adjusted = tone.adjust(buffer, contrast, invert)
    visible = tone.is_visible(buffer[..., 3])
    return quantize(adjusted[..., :3]), visible


def build(buffer, contrast=1.0, invert=False):
    """Build the Palette for a PixelBuffer.

    Args:
        buffer: (rows, cols, 4) uint8 PixelBuffer
        contrast: Tone contrast
        invert: Channel inversion

    Returns:
        Palette
    """
    quant, visible = bead_colors(buffer, contrast, invert)
    flat_rgb = quant.reshape(-1, 3)[visible.reshape(-1)]
    flat_a = buffer[..., 3].reshape(-1)[visible.reshape(-1)]
    if flat_rgb.shape[0] == 0:
        return Palette(entries=(), lookup={})

    keys = (flat_rgb[:, 0] << 16) | (flat_rgb[:, 1] << 8) | flat_rgb[:, 2]
    uniq, first_idx, counts = np.unique(keys, return_index=True, return_counts=True)
    # Primary: count descending. Secondary: first row-major occurrence.
    order = np.lexsort((first_idx, -counts))

    entries = []
    lookup = {}
    for rank, i in enumerate(order, start=1):
        key = int(uniq[i])
        first = int(first_idx[i])
        entries.append(PaletteEntry(
            id=rank,
            r=(key >> 16) & 0xFF,
            g=(key >> 8) & 0xFF,
            b=key & 0xFF,
            a=int(flat_a[first]),
            frequency=int(counts[i]),
        ))
        lookup[key] = rank
    return Palette(entries=tuple(entries), lookup=lookup)
