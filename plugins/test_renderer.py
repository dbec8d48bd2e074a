#!/usr/bin/env python3
"""
Test script for the GridRenderer and its outputs.

Verifies:
1. Frames are deterministic and honor the alpha gate
2. Glyph / bead / pixel / voxel drawing
3. Particles mode falls back to zero offsets on displacement failure
4. Cache keys (PixelBuffer, SubjectMask, Palette) rebuild only when stale
5. Text export, settings history, tuner patches, presets and chroma key
"""

import os
import tempfile

import numpy as np
from PIL import Image
from pydantic import ValidationError

from glyph_grid.chroma_key import chroma_key, key_alpha, pick_color
from glyph_grid.export import (
    nearest_emoji, save_png, text_dump, to_float_frame, to_png_bytes, write_text,
)
from glyph_grid.__main__ import ramp_from_arg
from glyph_grid.presets import (
    PRESET_ORDER, RAMPS, get_preset, get_ramp, list_presets, settings_from_preset,
)
from glyph_grid.renderer import GridRenderer, glyph_indices
from glyph_grid.settings import (
    AnimationMode, RampOrder, RenderSettings, SettingsHistory, StyleMode,
    apply_tuning, replace,
)


def _image(w, h, rgba):
    arr = np.zeros((h, w, 4), dtype=np.uint8)
    arr[...] = rgba
    return Image.fromarray(arr)


def _checker_image(w, h):
    arr = np.zeros((h, w, 4), dtype=np.uint8)
    arr[..., 3] = 255
    white = (np.add.outer(np.arange(h), np.arange(w)) % 2) == 0
    arr[white, :3] = 255
    return Image.fromarray(arr)


def test_idle_without_image():
    """No image loaded: render and text return None."""
    print("Testing idle renderer...")
    r = GridRenderer(RenderSettings(), None)
    assert not r.ready
    assert r.render(0.0) is None
    assert r.text() is None
    assert r.palette is None
    print("  ✓ Idle renderer returns None")


def test_render_deterministic():
    """Same image and settings produce identical frames."""
    print("Testing render determinism...")
    rng = np.random.default_rng(5)
    img = Image.fromarray(rng.integers(0, 256, size=(40, 60, 4), dtype=np.uint8))
    for style in StyleMode:
        settings = RenderSettings(style_mode=style, resolution_cols=12, cell_size=8)
        a = GridRenderer(settings, img).render_array(0.0)
        b = GridRenderer(settings, img).render_array(0.0)
        assert np.array_equal(a, b), f"{style.value} frames differ"
    print("  ✓ Frames deterministic")


def test_pixel_frame_size_and_color():
    """Pixel cells tile the frame exactly in the cell color."""
    print("Testing pixel style...")
    settings = RenderSettings(style_mode="pixel", resolution_cols=2, cell_size=4)
    frame = GridRenderer(settings, _image(2, 2, (255, 0, 0, 255))).render_array()
    assert frame.shape == (8, 8, 4)
    assert (frame == (255, 0, 0, 255)).all()
    print("  ✓ Pixel cells correct")


def test_alpha_gating():
    """Cells below the alpha gate are never drawn."""
    print("Testing alpha gating...")
    arr = np.zeros((4, 4, 4), dtype=np.uint8)
    arr[..., 0] = 255
    arr[:, :2, 3] = 255
    arr[:, 2:, 3] = 100
    img = Image.fromarray(arr)
    for style in (StyleMode.pixel, StyleMode.voxel, StyleMode.bead):
        settings = RenderSettings(style_mode=style, resolution_cols=4, cell_size=6,
                                  transparent_background=True)
        frame = GridRenderer(settings, img).render_array()
        assert (frame[:, 12:, 3] == 0).all(), f"{style.value}: gated cells drawn"
        assert (frame[:, :12, 3] > 0).any(), f"{style.value}: visible cells missing"

    # Glyph ink may spill past its own cell, so keep gated cells well clear of it
    arr = np.zeros((10, 10, 4), dtype=np.uint8)
    arr[:, :2, 3] = 255
    arr[:, 2:, 3] = 100
    settings = RenderSettings(style_mode="glyph", resolution_cols=10, cell_size=20,
                              transparent_background=True)
    frame = GridRenderer(settings, Image.fromarray(arr)).render_array()
    assert frame.shape[1] == 120
    assert (frame[:, 60:, 3] == 0).all(), "glyph: gated cells drawn"
    assert (frame[:, :60, 3] > 0).any(), "glyph: visible cells missing"
    print("  ✓ Alpha gate respected")


def test_voxel_bevel():
    """Voxel cells carry a light top-left and dark bottom-right edge."""
    print("Testing voxel bevel...")
    settings = RenderSettings(style_mode="voxel", resolution_cols=1, cell_size=8)
    frame = GridRenderer(settings, _image(1, 1, (255, 0, 0, 255))).render_array()
    assert tuple(frame[4, 4]) == (255, 0, 0, 255)
    assert tuple(frame[0, 4]) == (255, 51, 51, 255)
    assert tuple(frame[7, 4]) == (204, 0, 0, 255)
    print("  ✓ Voxel bevel drawn")


def test_bead_circles_and_labels():
    """Beads are circles in the quantized color; labels change the frame."""
    print("Testing bead style...")
    arr = np.array([
        [[255, 0, 0, 255], [0, 255, 0, 255]],
        [[0, 0, 255, 255], [255, 255, 255, 255]],
    ], dtype=np.uint8)
    img = Image.fromarray(arr)
    settings = RenderSettings(style_mode="bead", resolution_cols=2, cell_size=20,
                              background_color="#808080")
    r = GridRenderer(settings, img)
    plain = r.render_array()
    assert plain.shape == (40, 40, 4)
    assert tuple(plain[10, 10]) == (255, 0, 0, 255)
    assert tuple(plain[10, 30]) == (0, 255, 0, 255)
    assert tuple(plain[0, 0]) == (128, 128, 128, 255), "Corners stay background"
    assert len(r.palette) == 4

    palette_before = r.palette
    r.update_settings(replace(settings, show_labels=True))
    labeled = r.render_array()
    assert not np.array_equal(plain, labeled), "Labels should draw ids"
    assert r.palette is palette_before, "Toggling labels must not rebuild the palette"
    assert [e.rgb for e in r.palette] == [e.rgb for e in palette_before]
    print("  ✓ Bead circles and labels drawn")


def test_glyph_ink_and_blank():
    """Dark cells draw ink; white maps to the blank glyph and draws nothing."""
    print("Testing glyph style...")
    fg = (0, 255, 65, 255)
    dark = RenderSettings(resolution_cols=10, cell_size=20)
    frame = GridRenderer(dark, _image(10, 10, (0, 0, 0, 255))).render_array()
    assert (frame == fg).all(axis=-1).any(), "Dark cells should draw foreground ink"

    white = RenderSettings(resolution_cols=10, cell_size=20, glyph_ramp=" .:-=+*#%@",
                           ramp_order=RampOrder.light_to_dark)
    r = GridRenderer(white, _image(10, 10, (255, 255, 255, 255)))
    frame = r.render_array()
    assert (frame == (0, 0, 0, 255)).all(), "White cells should draw nothing"
    assert r.text() == (" " * 10 + "\n") * 6
    print("  ✓ Glyph ink and blank correct")


def test_glyph_indices_monotonic():
    """Brighter cells never pick an earlier ramp glyph."""
    print("Testing glyph bucket monotonicity...")
    b = np.linspace(-0.2, 1.2, 101)
    idx = glyph_indices(b, 10)
    assert idx[0] == 0 and idx[-1] == 9
    assert np.all(np.diff(idx) >= 0)
    rev = glyph_indices(b, 10, RampOrder.light_to_dark)
    assert np.all(np.diff(rev) <= 0)
    assert glyph_indices(1.0, 1) == 0
    print("  ✓ Glyph buckets monotonic")


def test_particles_failure_matches_zero():
    """A displacement source that always raises renders like zero offsets."""
    print("Testing displacement fallback...")

    def boom(x, y, t, intensity, w, h):
        raise RuntimeError("boom")

    img = _checker_image(8, 8)
    settings = RenderSettings(style_mode="pixel", resolution_cols=8, cell_size=4,
                              animation_mode=AnimationMode.particles, subject_threshold=0)
    failing = GridRenderer(settings, img)
    failing.set_displacement(boom)
    zero = GridRenderer(settings, img)
    zero.set_displacement(None)

    a = failing.render_array(0.7)
    b = zero.render_array(0.7)
    assert np.array_equal(a, b)
    assert failing.engine.failures == 64

    static = GridRenderer(replace(settings, animation_mode="static"), img).render_array()
    assert np.array_equal(a, static), "All-subject particles at rest equal static"
    print("  ✓ Failing displacement renders as zero")


def test_particles_skip_background():
    """Particles mode omits non-subject cells."""
    print("Testing particles background skip...")
    img = _image(4, 4, (200, 50, 50, 255))
    settings = RenderSettings(style_mode="pixel", resolution_cols=4, cell_size=4,
                              animation_mode="particles", transparent_background=True)
    r = GridRenderer(settings, img)
    assert r.needs_animation
    frame = r.render_array(1.0)
    assert (frame[..., 3] == 0).all(), "Flat image has no subject cells to draw"
    print("  ✓ Background cells skipped")


def test_cache_keys():
    """Each cache rebuilds only when its own dependencies change."""
    print("Testing cache invalidation...")
    img = _checker_image(16, 16)
    settings = RenderSettings(style_mode="bead", resolution_cols=8, cell_size=6)
    r = GridRenderer(settings, img)
    snap = r.prepare()
    assert r.prepare() is snap, "Unchanged settings reuse the snapshot"
    assert not snap.buffer.flags.writeable

    r.update_settings(replace(settings, subject_threshold=50))
    snap2 = r.prepare()
    assert snap2.buffer is snap.buffer and snap2.palette is snap.palette
    assert snap2.mask is not snap.mask

    r.update_settings(replace(settings, subject_threshold=50, contrast=2.0))
    snap3 = r.prepare()
    assert snap3.buffer is snap.buffer and snap3.mask is snap2.mask
    assert snap3.palette is not snap2.palette

    r.update_settings(replace(settings, subject_threshold=50, contrast=2.0, resolution_cols=4))
    snap4 = r.prepare()
    assert snap4.buffer.shape == (4, 4, 4)

    r.set_image(_checker_image(16, 16))
    assert r.prepare().buffer is not snap4.buffer, "New image resamples"
    print("  ✓ Caches keyed correctly")


def test_text_export():
    """Glyph text uses ramp characters; block styles use emoji."""
    print("Testing text export...")
    buf = np.zeros((6, 10, 4), dtype=np.uint8)
    buf[:, :5, 3] = 255

    settings = RenderSettings(resolution_cols=10)
    text = text_dump(buf, settings)
    lines = text.split("\n")
    assert text.endswith("\n") and len(lines) == 7
    assert lines[0] == "$" * 5 + " " * 5

    red = np.zeros((2, 3, 4), dtype=np.uint8)
    red[..., 0] = 255
    red[..., 3] = 255
    text = text_dump(red, RenderSettings(style_mode="bead"))
    assert text == "🟥🟥🟥\n🟥🟥🟥\n"

    assert nearest_emoji((0, 0, 0)) == "⬛"
    assert nearest_emoji((255, 255, 255)) == "⬜"
    print("  ✓ Text export correct")


def test_export_files():
    """PNG and text writers produce readable files."""
    print("Testing file export...")
    settings = RenderSettings(style_mode="pixel", resolution_cols=2, cell_size=4)
    r = GridRenderer(settings, _image(2, 2, (0, 0, 255, 255)))
    with tempfile.TemporaryDirectory() as d:
        png = save_png(r.render(), os.path.join(d, "out.png"))
        assert Image.open(png).size == (8, 8)
        txt = write_text(r.text(), os.path.join(d, "out.txt"))
        with open(txt, encoding="utf-8") as f:
            assert f.read() == "🟦🟦\n🟦🟦\n"

    assert to_png_bytes(r.render())[:8] == b"\x89PNG\r\n\x1a\n"

    rgb = to_float_frame(r.render(), (0, 0, 0))
    assert rgb.shape == (8, 8, 3) and rgb.dtype == np.float32
    assert np.allclose(rgb[0, 0], (0, 0, 1))
    print("  ✓ Files written")


def test_settings_validation():
    """Structural fields fail fast; cosmetic numbers are clamped."""
    print("Testing settings validation...")
    for bad in ({"resolution_cols": 0}, {"cell_size": 0}, {"glyph_ramp": ""},
                {"style_mode": "mosaic"}, {"foreground_color": "not-a-color"}):
        try:
            RenderSettings(**bad)
        except ValidationError:
            pass
        else:
            raise AssertionError(f"Should reject {bad}")

    for field in ("contrast", "animation_speed", "animation_intensity", "cell_size"):
        for value in (float("nan"), float("inf"), float("-inf")):
            try:
                RenderSettings(**{field: value})
            except ValidationError:
                pass
            else:
                raise AssertionError(f"Should reject {field}={value}")

    s = RenderSettings(contrast=100, subject_threshold=-5, animation_speed=-1)
    assert s.contrast == 5.0 and s.subject_threshold == 0 and s.animation_speed == 0.0
    assert RenderSettings(foreground_color="#ff0000").foreground_color == (255, 0, 0, 255)

    defaults = RenderSettings()
    assert defaults.resolution_cols == 120 and defaults.cell_size == 10
    assert defaults.foreground_color == (0, 255, 65, 255)
    assert defaults.subject_threshold == 20
    print("  ✓ Settings validated")


def test_settings_history():
    """Commit dedupes, truncates the redo branch, undo/redo move the cursor."""
    print("Testing settings history...")
    base = RenderSettings()
    h = SettingsHistory(base)
    assert not h.commit(base), "Identical snapshot is not a new step"
    a = replace(base, contrast=2.0)
    b = replace(base, contrast=3.0)
    assert h.commit(a) and h.commit(b)
    assert len(h) == 3 and h.current == b

    assert h.undo() == a and h.undo() == base
    assert not h.can_undo and h.undo() == base
    assert h.redo() == a

    c = replace(base, invert=True)
    h.commit(c)
    assert len(h) == 3 and not h.can_redo, "Commit drops the redo branch"
    print("  ✓ Settings history working")


def test_apply_tuning():
    """Tuner patches only overwrite speed, intensity and threshold."""
    print("Testing tuner patch...")
    base = RenderSettings()
    tuned = apply_tuning(base, {"animation_speed": 2.0, "subject_threshold": 40,
                                "style_mode": "bead"})
    assert tuned.animation_speed == 2.0 and tuned.subject_threshold == 40
    assert tuned.style_mode == StyleMode.glyph
    assert apply_tuning(base, {"contrast": 3}) is base
    print("  ✓ Tuner patch merged")


def test_presets():
    """Every preset builds valid settings."""
    print("Testing presets...")
    for key in PRESET_ORDER:
        s = settings_from_preset(key)
        assert s.style_mode == StyleMode(get_preset(key)["style_mode"])
    assert settings_from_preset("terminal", resolution_cols=33).resolution_cols == 33
    assert get_preset("missing") is None
    assert {k for k, _, _ in list_presets("bead")} == {"beads", "bead_jiggle"}
    for ramp in RAMPS.values():
        assert len(ramp) >= 2
    try:
        settings_from_preset("missing")
    except KeyError:
        pass
    else:
        raise AssertionError("Unknown preset should raise KeyError")
    assert get_ramp("simple") == RAMPS["simple"]
    try:
        get_ramp("missing")
    except KeyError:
        pass
    else:
        raise AssertionError("Unknown ramp should raise KeyError")
    assert ramp_from_arg("simple") == RAMPS["simple"]
    assert ramp_from_arg("01") == "01"
    print("  ✓ Presets valid")


def test_newsprint_paper_stays_blank():
    """Newsprint puts dark ink on dark source and leaves white source as paper."""
    print("Testing newsprint preset...")
    settings = settings_from_preset("newsprint", resolution_cols=10)
    white = GridRenderer(settings, _image(10, 10, (255, 255, 255, 255)))
    assert white.text().strip() == "", "White source should be blank paper"
    black = GridRenderer(settings, _image(10, 10, (0, 0, 0, 255)))
    assert set(black.text().replace("\n", "")) == {RAMPS["simple"][0]}
    print("  ✓ Newsprint inks dark cells only")


def test_chroma_key():
    """Key color goes transparent; feathered band scales alpha."""
    print("Testing chroma key...")
    arr = np.zeros((1, 3, 4), dtype=np.uint8)
    arr[..., 3] = 255
    arr[0, 0, :3] = (0, 255, 0)
    arr[0, 1, :3] = (255, 0, 0)
    arr[0, 2, :3] = (0, 205, 0)
    out = np.asarray(chroma_key(Image.fromarray(arr), (0, 255, 0), tolerance=5, softness=10))
    assert out[0, 0, 3] == 0
    assert out[0, 1, 3] == 255
    assert out[0, 2, 3] == 255  # distance 50 is past the 22 + 20 band

    alpha = key_alpha(np.array([[[50, 0, 0, 255]]], dtype=np.uint8), (0, 0, 0),
                      tolerance=0, softness=50)
    assert alpha[0, 0] == 127

    big = _image(10, 8, (1, 2, 3, 255))
    assert chroma_key(big, (0, 0, 0), crop=(2, 1, 4, 3)).size == (4, 3)
    assert chroma_key(big, (0, 0, 0), crop=(0, 0, 0, 0)).size == (10, 8)
    assert pick_color(big, 50, -3) == (1, 2, 3)
    print("  ✓ Chroma key working")


if __name__ == "__main__":
    print("\n=== Testing Grid Renderer ===\n")

    test_idle_without_image()
    test_render_deterministic()
    test_pixel_frame_size_and_color()
    test_alpha_gating()
    test_voxel_bevel()
    test_bead_circles_and_labels()
    test_glyph_ink_and_blank()
    test_glyph_indices_monotonic()
    test_particles_failure_matches_zero()
    test_particles_skip_background()
    test_cache_keys()
    test_text_export()
    test_export_files()
    test_settings_validation()
    test_settings_history()
    test_apply_tuning()
    test_presets()
    test_newsprint_paper_stays_blank()
    test_chroma_key()

    print("\n✓ All tests passed!\n")
