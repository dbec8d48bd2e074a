"""
Render Settings, Settings History, and Tuner Patches

RenderSettings is an immutable pydantic model replaced wholesale on every
edit. Structural parameters (resolution, cell size, glyph ramp) fail fast with
a ValidationError; cosmetic numbers (contrast, speed, intensity, threshold)
are clamped into their documented ranges instead.
"""

import enum
from typing import Tuple

from PIL import ImageColor
from pydantic import BaseModel, ConfigDict, Field, field_validator


class StyleMode(str, enum.Enum):
    """Cell geometry. Scope renders str enums as dropdowns."""
    glyph = "glyph"
    bead = "bead"
    pixel = "pixel"
    voxel = "voxel"


class AnimationMode(str, enum.Enum):
    static = "static"
    particles = "particles"


class RampOrder(str, enum.Enum):
    """Which end of the glyph ramp is selected by dark samples."""
    dark_to_light = "dark_to_light"
    light_to_dark = "light_to_dark"


RGBA = Tuple[int, int, int, int]

# Matches the classic "COMPLEX" density set (dark -> light, ends in blank)
DEFAULT_RAMP = (
    "$@B%8&WM#*oahkbdpqwmZO0QLCJUYXzcvunxrjft/\\|()1{}[]?-_+~<>i!lI;:,\"^`'. "
)

DEFAULT_SCRIPT = (
    "dx = sin(t * 2 + y * 0.15) * 1.5 * intensity\n"
    "dy = cos(t * 2 + x * 0.15) * 1.5 * intensity"
)

CONTRAST_RANGE = (0.01, 5.0)
THRESHOLD_RANGE = (0, 100)

# Fields a parameter-tuner collaborator is allowed to overwrite
TUNABLE_FIELDS = ("animation_speed", "animation_intensity", "subject_threshold")


def parse_color(value):
    """Parse '#rrggbb', '#rrggbbaa', CSS names, or 3/4-tuples to RGBA."""
    if isinstance(value, str):
        try:
            value = ImageColor.getrgb(value)
        except ValueError as e:
            raise ValueError(f"unrecognized color {value!r}") from e
    value = tuple(int(c) for c in value)
    if len(value) == 3:
        value = value + (255,)
    if len(value) != 4 or any(c < 0 or c > 255 for c in value):
        raise ValueError(f"color must have 3 or 4 channels in 0-255, got {value}")
    return value


class RenderSettings(BaseModel):
    """Complete configuration for one render session."""

    model_config = ConfigDict(frozen=True, use_enum_values=False, allow_inf_nan=False)

    # Structural (fail fast)
    resolution_cols: int = Field(default=120, ge=1, description="Grid columns")
    style_mode: StyleMode = StyleMode.glyph
    glyph_ramp: str = Field(default=DEFAULT_RAMP, min_length=1)
    ramp_order: RampOrder = RampOrder.dark_to_light
    cell_size: float = Field(default=10.0, gt=0, description="Cell edge in px")

    # Colors
    foreground_color: RGBA = (0, 255, 65, 255)
    background_color: RGBA = (0, 0, 0, 255)
    transparent_background: bool = False

    # Tone (cosmetic, clamped)
    contrast: float = 1.0
    invert: bool = False

    # Animation
    animation_mode: AnimationMode = AnimationMode.static
    animation_speed: float = 1.0
    animation_intensity: float = 1.0
    subject_threshold: int = 20
    displacement_script: str = DEFAULT_SCRIPT

    show_labels: bool = False

    @field_validator("foreground_color", "background_color", mode="before")
    @classmethod
    def _parse_color(cls, v):
        return parse_color(v)

    @field_validator("contrast")
    @classmethod
    def _clamp_contrast(cls, v):
        return min(max(v, CONTRAST_RANGE[0]), CONTRAST_RANGE[1])

    @field_validator("animation_speed", "animation_intensity")
    @classmethod
    def _clamp_non_negative(cls, v):
        return max(v, 0.0)

    @field_validator("subject_threshold")
    @classmethod
    def _clamp_threshold(cls, v):
        return min(max(v, THRESHOLD_RANGE[0]), THRESHOLD_RANGE[1])

    @property
    def is_animated(self):
        return self.animation_mode == AnimationMode.particles


def replace(settings, **changes):
    """Return a re-validated copy of ``settings`` with fields overwritten."""
    data = settings.model_dump()
    data.update(changes)
    return RenderSettings.model_validate(data)


def apply_tuning(settings, patch):
    """Merge a parameter-tuner patch by plain field overwrite.

    Only TUNABLE_FIELDS are honored; anything else in the patch is dropped.
    """
    accepted = {k: v for k, v in patch.items() if k in TUNABLE_FIELDS}
    ignored = sorted(set(patch) - set(accepted))
    if ignored:
        print(f"[Grid] Tuning patch ignored fields: {', '.join(ignored)}")
    if not accepted:
        return settings
    return replace(settings, **accepted)


class SettingsHistory:
    """Append-only history of immutable settings snapshots with a cursor.

    commit() pushes only when the snapshot differs from the one under the
    cursor, and drops any redo branch beyond the cursor.
    """

    def __init__(self, initial=None):
        self._snapshots = [initial if initial is not None else RenderSettings()]
        self._cursor = 0

    @property
    def current(self):
        return self._snapshots[self._cursor]

    @property
    def can_undo(self):
        return self._cursor > 0

    @property
    def can_redo(self):
        return self._cursor < len(self._snapshots) - 1

    def __len__(self):
        return len(self._snapshots)

    def commit(self, settings):
        """Record a snapshot. Returns True if a new step was added."""
        if settings == self.current:
            return False
        del self._snapshots[self._cursor + 1:]
        self._snapshots.append(settings)
        self._cursor = len(self._snapshots) - 1
        return True

    def undo(self):
        if self.can_undo:
            self._cursor -= 1
        return self.current

    def redo(self):
        if self.can_redo:
            self._cursor += 1
        return self.current
