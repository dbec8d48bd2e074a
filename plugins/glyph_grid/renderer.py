"""
GridRenderer: render session for the image-to-grid pipeline

Owns the per-session caches and draws frames:

    source image -> PixelBuffer -> {SubjectMask, Palette} -> frame

Each cache is rebuilt only when its own dependency key changes:

    PixelBuffer  (image version, resolution_cols, style_mode, cell_size)
    SubjectMask  (PixelBuffer key, subject_threshold)
    Palette      (PixelBuffer key, contrast, invert)   bead style only

Recomputes build new arrays and publish them as one immutable RenderSnapshot
by reference swap, so a frame never sees a half-built cache.

Usage:
    from glyph_grid.renderer import GridRenderer
    r = GridRenderer(settings, image)
    frame = r.render(elapsed=0.0)  # PIL RGBA image, or None while idle
"""

import time
from typing import NamedTuple, Optional

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from . import palette as palette_mod
from . import subject_mask, tone
from .displacement import DisplacementEngine
from .palette import Palette
from .sampler import cell_dims, grid_shape, sample
from .settings import RampOrder, RenderSettings, StyleMode


BEAD_RADIUS_RATIO = 0.425
LABEL_SIZE_RATIO = 0.45
BEVEL_RATIO = 0.125
BEVEL_SHADE = 0.2

_WHITE = (255.0, 255.0, 255.0)
_BLACK = (0.0, 0.0, 0.0)

_FONT_CANDIDATES = [
    "/System/Library/Fonts/Menlo.ttc",
    "/System/Library/Fonts/SFNSMono.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSansMono-Bold.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
    "DejaVuSansMono.ttf",
]
_font_cache = {}


def load_font(size):
    """Monospace font at ``size`` px, falling back to Pillow's default font."""
    size = max(1, int(round(size)))
    font = _font_cache.get(size)
    if font is not None:
        return font
    for path in _FONT_CANDIDATES:
        try:
            font = ImageFont.truetype(path, size)
            break
        except OSError:
            continue
    else:
        font = ImageFont.load_default(size=size)
    _font_cache[size] = font
    return font


def glyph_indices(bright, ramp_len, ramp_order=RampOrder.dark_to_light):
    """Ramp index per cell: floor(clamp(b, 0, 1) * (n - 1)).

    For light->dark ramps the brightness is read from the other end.
    """
    b = np.clip(np.asarray(bright, dtype=np.float64), 0.0, 1.0)
    if RampOrder(ramp_order) == RampOrder.light_to_dark:
        b = 1.0 - b
    # 1e-9 absorbs float error so pure white lands on the last glyph
    return np.floor(b * (ramp_len - 1) + 1e-9).astype(np.int64)


def glyph_grid(buffer, settings):
    """Characters selected for every cell (before alpha gating)."""
    bright = tone.brightness(buffer[..., :3], settings.contrast, settings.invert)
    idx = glyph_indices(bright, len(settings.glyph_ramp), settings.ramp_order)
    ramp = np.array(list(settings.glyph_ramp))
    return ramp[idx]


def _cell_rect(px, py, cell_w, cell_h):
    x0 = int(round(px))
    y0 = int(round(py))
    x1 = int(round(px + cell_w)) - 1
    y1 = int(round(py + cell_h)) - 1
    return x0, y0, max(x0, x1), max(y0, y1)


def _rgba(rgb):
    r, g, b = tone.to_bytes(rgb)[:3]
    return int(r), int(g), int(b), 255


class RenderSnapshot(NamedTuple):
    """Read-only caches shared by every frame until the next recompute."""
    buffer: np.ndarray
    mask: np.ndarray
    palette: Optional[Palette]
    buffer_key: tuple
    mask_key: tuple
    palette_key: Optional[tuple]

    @property
    def rows(self):
        return self.buffer.shape[0]

    @property
    def cols(self):
        return self.buffer.shape[1]


class GridRenderer:
    """Render session: cached grid inputs plus the per-frame draw loop.

    Args:
        settings: RenderSettings (defaults if omitted)
        image: PIL image, or None to start idle
    """

    def __init__(self, settings=None, image=None):
        self.settings = settings if settings is not None else RenderSettings()
        self.engine = DisplacementEngine(self.settings.displacement_script)
        self._image = None
        self._image_version = 0
        self._snapshot = None
        self.start_time = None
        if image is not None:
            self.set_image(image)

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def set_image(self, image):
        """Install a new source image (None returns the session to idle)."""
        self._image_version += 1
        if image is None:
            self._image = None
        else:
            self._image = image if image.mode == "RGBA" else image.convert("RGBA")
        self._snapshot = None

    def update_settings(self, settings):
        """Replace settings wholesale. Caches are re-keyed on next prepare()."""
        if settings.displacement_script != self.settings.displacement_script:
            self.engine.install(settings.displacement_script)
        self.settings = settings

    def set_displacement(self, source):
        """Install a non-text displacement source (Genome or callable)."""
        self.engine.install(source)

    @property
    def ready(self):
        return self._image is not None

    @property
    def needs_animation(self):
        """Continuous redraw is only needed in Particles mode."""
        return self.ready and self.settings.is_animated

    def grid_shape(self):
        """(cols, rows) for the current image and settings."""
        s = self.settings
        return grid_shape(self._image.width, self._image.height,
                          s.resolution_cols, s.style_mode, s.cell_size)

    def prepare(self):
        """Rebuild stale caches and return the current RenderSnapshot.

        Returns None while no image is loaded.
        """
        if self._image is None:
            return None
        s = self.settings
        snap = self._snapshot

        buffer_key = (self._image_version, s.resolution_cols, s.style_mode, s.cell_size)
        mask_key = (buffer_key, s.subject_threshold)
        palette_key = None
        if s.style_mode == StyleMode.bead:
            palette_key = (buffer_key, s.contrast, s.invert)

        if (snap is not None and snap.buffer_key == buffer_key
                and snap.mask_key == mask_key and snap.palette_key == palette_key):
            return snap

        if snap is not None and snap.buffer_key == buffer_key:
            buffer = snap.buffer
        else:
            cols, rows = self.grid_shape()
            buffer = sample(self._image, cols, rows)
            buffer.setflags(write=False)
            snap = None

        if snap is not None and snap.mask_key == mask_key:
            mask = snap.mask
        else:
            mask = subject_mask.extract(buffer, s.subject_threshold)
            mask.setflags(write=False)

        palette = None
        if palette_key is not None:
            if snap is not None and snap.palette_key == palette_key:
                palette = snap.palette
            else:
                palette = palette_mod.build(buffer, s.contrast, s.invert)

        self._snapshot = RenderSnapshot(buffer, mask, palette, buffer_key, mask_key, palette_key)
        return self._snapshot

    @property
    def palette(self):
        snap = self.prepare()
        return snap.palette if snap is not None else None

    def start(self):
        """Mark the animation start for render_now()."""
        self.start_time = time.perf_counter()

    def render_now(self):
        """Render using wall-clock time since start()."""
        if self.start_time is None:
            self.start()
        return self.render(time.perf_counter() - self.start_time)

    def render(self, elapsed=0.0):
        """Draw one frame.

        Args:
            elapsed: Wall-clock seconds since animation start; scaled by
                animation_speed before reaching the displacement function.

        Returns:
            PIL RGBA image, or None while no image is loaded
        """
        snap = self.prepare()
        if snap is None:
            return None
        s = self.settings
        return draw_frame(snap, s, self.engine, elapsed * s.animation_speed)

    def render_array(self, elapsed=0.0):
        """Render to a (H, W, 4) uint8 array, or None while idle."""
        frame = self.render(elapsed)
        return None if frame is None else np.asarray(frame)

    def text(self):
        """Text dump of the current grid, or None while idle."""
        from .export import text_dump

        snap = self.prepare()
        if snap is None:
            return None
        return text_dump(snap.buffer, self.settings)


# ---------------------------------------------------------------------------
# Frame drawing
# ---------------------------------------------------------------------------

def draw_frame(snap, settings, engine, t):
    """Draw every cell of ``snap`` in the active style.

    Cells are visited row-major. In Particles mode non-subject cells are
    skipped entirely and subject cells are offset by the displacement field.
    """
    s = settings
    cell_w, cell_h = cell_dims(s.style_mode, s.cell_size)
    rows, cols = snap.rows, snap.cols
    width = int(round(cols * cell_w))
    height = int(round(rows * cell_h))

    bg = (0, 0, 0, 0) if s.transparent_background else tuple(s.background_color)
    frame = Image.new("RGBA", (width, height), bg)
    if rows == 0 or cols == 0:
        return frame
    draw = ImageDraw.Draw(frame)

    buffer = snap.buffer
    active = tone.is_visible(buffer[..., 3])
    if s.is_animated:
        active = active & (snap.mask == 1)
        dx, dy = engine.field(cols, rows, t, s.animation_intensity)
    else:
        dx = dy = np.zeros((rows, cols))

    style = StyleMode(s.style_mode)
    if style == StyleMode.glyph:
        _draw_glyphs(draw, buffer, active, dx, dy, s, cell_w, cell_h)
    elif style == StyleMode.bead:
        _draw_beads(draw, buffer, active, dx, dy, s, snap.palette, cell_w, cell_h)
    else:
        _draw_blocks(draw, buffer, active, dx, dy, s, cell_w, cell_h,
                     bevel=(style == StyleMode.voxel))
    return frame


def _draw_glyphs(draw, buffer, active, dx, dy, s, cell_w, cell_h):
    # Brightness picks the glyph; ink is always the foreground color
    chars = glyph_grid(buffer, s)
    font = load_font(s.cell_size)
    fill = tuple(s.foreground_color)
    rows, cols = chars.shape
    for y in range(rows):
        for x in range(cols):
            if not active[y, x]:
                continue
            ch = chars[y, x]
            if ch.isspace():
                continue
            draw.text((x * cell_w + dx[y, x], y * cell_h + dy[y, x]), ch,
                      font=font, fill=fill)


def _draw_beads(draw, buffer, active, dx, dy, s, palette, cell_w, cell_h):
    quant, _ = palette_mod.bead_colors(buffer, s.contrast, s.invert)
    radius = cell_w * BEAD_RADIUS_RATIO
    label_font = load_font(cell_w * LABEL_SIZE_RATIO) if s.show_labels else None
    rows, cols = active.shape
    for y in range(rows):
        for x in range(cols):
            if not active[y, x]:
                continue
            r, g, b = (int(c) for c in quant[y, x])
            cx = x * cell_w + cell_w / 2 + dx[y, x]
            cy = y * cell_h + cell_h / 2 + dy[y, x]
            draw.ellipse([cx - radius, cy - radius, cx + radius, cy + radius],
                         fill=(r, g, b, 255))
            if label_font is None or palette is None:
                continue
            bead_id = palette.id_for(r, g, b)
            if bead_id is None:
                continue
            text_fill = (0, 0, 0, 255) if tone.luminance((r, g, b)) > 0.5 else (255, 255, 255, 255)
            draw.text((cx, cy), str(bead_id), font=label_font, fill=text_fill, anchor="mm")


def _draw_blocks(draw, buffer, active, dx, dy, s, cell_w, cell_h, bevel=False):
    adjusted = tone.adjust(buffer, s.contrast, s.invert)
    bevel_w = max(1, int(round(cell_w * BEVEL_RATIO)))
    rows, cols = active.shape
    for y in range(rows):
        for x in range(cols):
            if not active[y, x]:
                continue
            rgb = adjusted[y, x, :3]
            x0, y0, x1, y1 = _cell_rect(x * cell_w + dx[y, x], y * cell_h + dy[y, x],
                                        cell_w, cell_h)
            draw.rectangle([x0, y0, x1, y1], fill=_rgba(rgb))
            if not bevel:
                continue
            light = _rgba(tone.blend(rgb, _WHITE, BEVEL_SHADE))
            dark = _rgba(tone.blend(rgb, _BLACK, BEVEL_SHADE))
            b = min(bevel_w, x1 - x0 + 1, y1 - y0 + 1)
            draw.rectangle([x0, y0, x1, y0 + b - 1], fill=light)   # top
            draw.rectangle([x0, y0, x0 + b - 1, y1], fill=light)   # left
            draw.rectangle([x0, y1 - b + 1, x1, y1], fill=dark)    # bottom
            draw.rectangle([x1 - b + 1, y0, x1, y1], fill=dark)    # right
