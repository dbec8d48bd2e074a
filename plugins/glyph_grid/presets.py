"""
Glyph Ramps and Render Presets

Ramps are ordered character sets selected by brightness bucket. All built-in
ramps run dark -> light and end in a blank so near-white cells draw nothing.

Each render preset is a partial RenderSettings dict plus a display name and
description. The "style_mode" field determines which cell geometry is used.
"""

from .settings import RenderSettings


RAMPS = {
    "standard": "Ñ@#W$9876543210?!abc;:+=-,._ ",
    "simple": "@%#*+=-:. ",
    "complex": "$@B%8&WM#*oahkbdpqwmZO0QLCJUYXzcvunxrjft/\\|()1{}[]?-_+~<>i!lI;:,\"^`'. ",
    "blocks": "█▓▒░ ",
    "matrix": "ｦｧｨｩｪｫｬｭｮｯｱｲｳｴｵｶｷｸｹｺｻｼｽｾｿﾀﾁﾂﾃﾄﾅﾆﾇﾈﾉﾊﾋﾌﾍﾎﾏﾐﾑﾒﾓﾔﾕﾖﾗﾘﾙﾚﾛﾜﾝ123457890:・.=*+-<>",
}

RAMP_ORDER = list(RAMPS.keys())


PRESETS = {
    # =====================================================================
    # GLYPH
    # =====================================================================
    "terminal": {
        "name": "Terminal",
        "description": "Green-on-black character art (default look)",
        "style_mode": "glyph", "glyph_ramp": RAMPS["complex"],
        "foreground_color": "#00ff41", "background_color": "#000000",
        "resolution_cols": 120, "cell_size": 10,
    },
    "newsprint": {
        "name": "Newsprint",
        "description": "Black ink on paper, short ramp",
        "style_mode": "glyph", "glyph_ramp": RAMPS["simple"],
        "foreground_color": "#111111", "background_color": "#f4f1e8",
        "resolution_cols": 100, "cell_size": 12,
    },
    "blocks": {
        "name": "Blocks",
        "description": "Shade-block characters, chunky",
        "style_mode": "glyph", "glyph_ramp": RAMPS["blocks"],
        "foreground_color": "#e0e0e0", "background_color": "#101010",
        "resolution_cols": 80, "cell_size": 14,
    },
    "drift": {
        "name": "Drift",
        "description": "Glyph edges drifting on a slow wave",
        "style_mode": "glyph", "glyph_ramp": RAMPS["standard"],
        "animation_mode": "particles", "subject_threshold": 12,
        "animation_speed": 1.0, "animation_intensity": 1.5,
    },

    # =====================================================================
    # BEAD
    # =====================================================================
    "beads": {
        "name": "Bead Pattern",
        "description": "Fuse-bead circles with a numbered color legend",
        "style_mode": "bead", "resolution_cols": 48, "cell_size": 20,
        "background_color": "#d2d2d2", "show_labels": True,
    },
    "bead_jiggle": {
        "name": "Bead Jiggle",
        "description": "Beads shaking on their subject edges",
        "style_mode": "bead", "resolution_cols": 48, "cell_size": 16,
        "animation_mode": "particles", "animation_intensity": 2.0,
        "subject_threshold": 8,
    },

    # =====================================================================
    # PIXEL / VOXEL
    # =====================================================================
    "pixel": {
        "name": "Pixel Art",
        "description": "Flat color squares",
        "style_mode": "pixel", "resolution_cols": 64, "cell_size": 12,
    },
    "voxel": {
        "name": "Voxel Blocks",
        "description": "Beveled blocks that read as 3D faces",
        "style_mode": "voxel", "resolution_cols": 48, "cell_size": 16,
        "transparent_background": True,
    },
}

PRESET_ORDER = list(PRESETS.keys())

_META_KEYS = ("name", "description")


def get_preset(name):
    """Get a preset by name. Returns None if not found."""
    return PRESETS.get(name)


def get_ramp(name):
    """Ramp characters by name. Raises KeyError for unknown ramps."""
    return RAMPS[name]


def list_presets(style=None):
    """Return list of (key, name, description) for presets.
    If style is specified, filter to that style only."""
    return [(k, p["name"], p["description"])
            for k, p in PRESETS.items()
            if style is None or p["style_mode"] == style]


def settings_from_preset(name, **overrides):
    """Build RenderSettings from a preset plus field overrides."""
    preset = get_preset(name)
    if preset is None:
        raise KeyError(f"Unknown preset: {name}")
    fields = {k: v for k, v in preset.items() if k not in _META_KEYS}
    fields.update(overrides)
    return RenderSettings(**fields)
