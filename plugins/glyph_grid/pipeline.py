"""
Glyph Grid Pipeline for DayDream Scope

Video-source pipeline that renders a still image as an animated glyph /
bead / pixel / voxel grid. No video input needed: the grid render is the
video source.

The render session runs in a background thread. Particles mode redraws
continuously at the target fps; Static mode draws once per settings change
and then idles. When Scope requests a frame it grabs the latest finished one
from the background thread.

Uses BasePipelineConfig + Pipeline ABC when Scope's formal API is available.
Falls back to plain class for local dev without Scope.
"""

import enum
import threading
import time

import numpy as np
import torch
from pydantic import ValidationError

from .export import to_float_frame
from .presets import RAMPS, RAMP_ORDER
from .renderer import GridRenderer
from .sampler import load_image
from .settings import AnimationMode, RenderSettings, StyleMode, replace


# Scope kwarg name -> RenderSettings field
_KWARG_FIELDS = {
    "style": "style_mode",
    "cols": "resolution_cols",
    "cell_size": "cell_size",
    "contrast": "contrast",
    "invert": "invert",
    "animation": "animation_mode",
    "speed": "animation_speed",
    "intensity": "animation_intensity",
    "threshold": "subject_threshold",
    "labels": "show_labels",
    "transparent": "transparent_background",
    "foreground": "foreground_color",
    "background": "background_color",
    "script": "displacement_script",
}


class RampEnum(str, enum.Enum):
    """Built-in glyph ramps. Scope renders enum fields as dropdowns."""
    standard = "standard"
    simple = "simple"
    complex = "complex"
    blocks = "blocks"
    matrix = "matrix"


# ── Background Render Thread ─────────────────────────────────────────────

class _GridBackgroundRender(threading.Thread):
    """Background thread that owns the GridRenderer.

    Other threads never touch the renderer: they hand over new settings via
    submit() and read finished frames via get_latest_frame().
    """

    def __init__(self, renderer):
        super().__init__(daemon=True)
        self.renderer = renderer
        self._frame_lock = threading.Lock()
        self._latest_frame = None   # (H,W,3) float32 [0,1]
        self._pending = None        # RenderSettings waiting to be applied
        self._dirty = True
        self._running = True
        self._target_fps = 20

    def submit(self, settings):
        """Queue settings for the next frame (reference swap, no lock needed)."""
        self._pending = settings

    def latest_settings(self):
        """Most recently submitted settings, or the ones already rendering."""
        pending = self._pending
        return pending if pending is not None else self.renderer.settings

    def run(self):
        print("[Grid] Background render thread started")
        self.renderer.start()
        while self._running:
            now = time.perf_counter()

            pending, self._pending = self._pending, None
            try:
                if pending is not None and pending != self.renderer.settings:
                    self.renderer.update_settings(pending)
                    self._dirty = True

                if self._dirty or self.renderer.needs_animation:
                    frame = self.renderer.render_now()
                    if frame is not None:
                        bg = self.renderer.settings.background_color
                        frame_np = to_float_frame(frame, bg)
                        with self._frame_lock:
                            self._latest_frame = frame_np
                    self._dirty = False
            except Exception as e:
                print(f"[Grid] Background render error: {e}")

            elapsed = time.perf_counter() - now
            sleep_time = max(0, (1.0 / self._target_fps) - elapsed)
            if sleep_time > 0:
                time.sleep(sleep_time)

    def get_latest_frame(self):
        """Return the most recent frame (H,W,3) float32 [0,1] or None."""
        with self._frame_lock:
            return self._latest_frame

    def stop(self):
        self._running = False


# ── Shared __init__ and __call__ logic (used by both API branches) ────────

def settings_from_kwargs(base, **kwargs):
    """Overlay Scope runtime kwargs onto ``base`` settings.

    Unknown kwargs are ignored. A ramp that is not a built-in name is used
    as literal characters. Invalid values raise ValidationError.
    """
    changes = {}
    for key, field in _KWARG_FIELDS.items():
        if key in kwargs and kwargs[key] is not None:
            changes[field] = getattr(kwargs[key], "value", kwargs[key])
    ramp = kwargs.get("ramp")
    if ramp is not None:
        name = getattr(ramp, "value", ramp)
        changes["glyph_ramp"] = RAMPS.get(name, name)
    if not changes:
        return base
    return replace(base, **changes)


def _grid_init(self, image_path: str = "", **kwargs):
    """Shared __init__ body for both formal and fallback GridPipeline.

    Loads the source image, builds the render session and starts the
    background render thread.

    Args:
        image_path: Source image to stylize. A missing or undecodable file
            leaves the pipeline idle (black frames).
    """
    image = load_image(image_path) if image_path else None
    try:
        settings = settings_from_kwargs(RenderSettings(), **kwargs)
    except ValidationError as e:
        print(f"[Grid] Invalid load settings, using defaults: {e}")
        settings = RenderSettings()
    self.renderer = GridRenderer(settings, image)
    self._bg_render = _GridBackgroundRender(self.renderer)
    self._bg_render.start()


def _grid_call(self, prompt: str = "", **kwargs) -> dict:
    """Shared __call__ body for both formal and fallback GridPipeline.

    Args:
        prompt: Ignored (image-driven pipeline, no prompt needed).
        **kwargs: Runtime parameters from Scope UI:
            style (StyleMode|str), cols (int), cell_size (float),
            ramp (RampEnum|str), contrast (float), invert (bool),
            animation (AnimationMode|str), speed (float), intensity (float),
            threshold (int), labels (bool), transparent (bool),
            foreground, background (hex str), script (str)

    Returns:
        {"video": tensor} where tensor is (1, H, W, 3) float32 [0,1]
    """
    try:
        settings = settings_from_kwargs(self._bg_render.latest_settings(), **kwargs)
    except ValidationError as e:
        print(f"[Grid] Rejected runtime settings: {e}")
    else:
        self._bg_render.submit(settings)

    frame_np = self._bg_render.get_latest_frame()
    if frame_np is None:
        # Idle (no image yet) or first frame not rendered yet: return black
        frame_np = np.zeros((512, 512, 3), dtype=np.float32)

    tensor = torch.from_numpy(frame_np.copy()).unsqueeze(0)
    return {"video": tensor}


def _grid_stop(self):
    self._bg_render.stop()


# ── Try formal Scope API (BasePipelineConfig + Pipeline ABC) ──────────────

try:
    from pydantic import Field
    from scope.core.pipelines.base_schema import (
        BasePipelineConfig, ModeDefaults, UsageType, ui_field_config,
    )
    from scope.core.pipelines.interface import Pipeline
    _HAS_SCOPE_API = True
except ImportError:
    _HAS_SCOPE_API = False


if _HAS_SCOPE_API:
    # ── Formal Scope API branch ──────────────────────────────────────

    class GridPipelineConfig(BasePipelineConfig):
        pipeline_id = "glyph-grid"
        pipeline_name = "Glyph Grid"
        pipeline_description = (
            "Still image rendered as an animated glyph / bead / pixel grid"
        )
        supports_prompts = False
        usage = [UsageType.PREPROCESSOR]
        modes = {"video": ModeDefaults(default=True)}

        # Load-time
        image_path: str = Field(
            default="",
            description="Source image to stylize",
            json_schema_extra=ui_field_config(
                order=1, label="Image", is_load_param=True,
            ),
        )
        # Runtime
        style: StyleMode = Field(
            default=StyleMode.glyph,
            json_schema_extra=ui_field_config(order=1, label="Style"),
        )
        cols: int = Field(
            default=120, ge=8, le=400,
            json_schema_extra=ui_field_config(order=2, label="Columns"),
        )
        cell_size: float = Field(
            default=10.0, ge=4.0, le=40.0,
            json_schema_extra=ui_field_config(order=3, label="Cell Size"),
        )
        ramp: RampEnum = Field(
            default=RampEnum.complex,
            json_schema_extra=ui_field_config(order=4, label="Glyph Ramp"),
        )
        contrast: float = Field(
            default=1.0, ge=0.1, le=5.0,
            json_schema_extra=ui_field_config(order=5, label="Contrast"),
        )
        invert: bool = Field(
            default=False,
            json_schema_extra=ui_field_config(order=6, label="Invert"),
        )
        animation: AnimationMode = Field(
            default=AnimationMode.static,
            json_schema_extra=ui_field_config(order=10, label="Animation"),
        )
        speed: float = Field(
            default=1.0, ge=0.0, le=5.0,
            json_schema_extra=ui_field_config(order=11, label="Speed"),
        )
        intensity: float = Field(
            default=1.0, ge=0.0, le=10.0,
            json_schema_extra=ui_field_config(order=12, label="Intensity"),
        )
        threshold: int = Field(
            default=20, ge=0, le=100,
            json_schema_extra=ui_field_config(order=13, label="Subject Threshold"),
        )
        labels: bool = Field(
            default=False,
            json_schema_extra=ui_field_config(order=20, label="Bead Labels"),
        )
        transparent: bool = Field(
            default=False,
            json_schema_extra=ui_field_config(order=21, label="Transparent BG"),
        )

    from scope.core.pipelines.interface import Requirements as _Requirements

    class GridPipeline(Pipeline):
        """Formal Scope pipeline using BasePipelineConfig + Pipeline ABC."""

        @classmethod
        def get_config_class(cls):
            return GridPipelineConfig

        def prepare(self, **kwargs):
            """Declare video input so Scope treats the grid as a preprocessor.

            The actual video input is ignored; frames come from the image.
            """
            return _Requirements(input_size=1)

        __init__ = _grid_init
        __call__ = _grid_call
        stop = _grid_stop

else:
    # ── Fallback for local dev without Scope installed ────────────────

    class GridPipeline:
        """Fallback grid pipeline (plain class, no Scope API dependency)."""

        __init__ = _grid_init
        __call__ = _grid_call
        stop = _grid_stop

        @staticmethod
        def ui_field_config():
            """Configure how parameters appear in Scope UI.

            Returns:
                dict: UI configuration for each parameter.
                      Load-time params go in 'settings' panel.
                      Runtime params go in 'controls' panel.
            """
            return {
                # --- Load-time (Settings panel, requires pipeline reload) ---
                "image_path": {
                    "order": 1, "panel": "settings", "label": "Image",
                    "is_load_param": True,
                },
                # --- Runtime (Controls panel, updates live per-frame) ---
                "style": {
                    "order": 1, "panel": "controls", "label": "Style",
                    "choices": [m.value for m in StyleMode],
                },
                "cols": {
                    "order": 2, "panel": "controls", "label": "Columns",
                    "min": 8, "max": 400, "step": 1,
                },
                "cell_size": {
                    "order": 3, "panel": "controls", "label": "Cell Size",
                    "min": 4.0, "max": 40.0, "step": 1.0,
                },
                "ramp": {
                    "order": 4, "panel": "controls", "label": "Glyph Ramp",
                    "choices": RAMP_ORDER,
                },
                "contrast": {
                    "order": 5, "panel": "controls", "label": "Contrast",
                    "min": 0.1, "max": 5.0, "step": 0.1,
                },
                "invert": {
                    "order": 6, "panel": "controls", "label": "Invert",
                    "type": "toggle",
                },
                "animation": {
                    "order": 10, "panel": "controls", "label": "Animation",
                    "choices": [m.value for m in AnimationMode],
                },
                "speed": {
                    "order": 11, "panel": "controls", "label": "Speed",
                    "min": 0.0, "max": 5.0, "step": 0.1,
                },
                "intensity": {
                    "order": 12, "panel": "controls", "label": "Intensity",
                    "min": 0.0, "max": 10.0, "step": 0.1,
                },
                "threshold": {
                    "order": 13, "panel": "controls", "label": "Subject Threshold",
                    "min": 0, "max": 100, "step": 1,
                },
                "labels": {
                    "order": 20, "panel": "controls", "label": "Bead Labels",
                    "type": "toggle",
                },
                "transparent": {
                    "order": 21, "panel": "controls", "label": "Transparent BG",
                    "type": "toggle",
                },
            }
