"""
Glyph Grid - Entry Point

Usage:
    python -m glyph_grid IMAGE [preset] [options]

Examples:
    python -m glyph_grid photo.png
    python -m glyph_grid photo.png beads --cols 40 --labels
    python -m glyph_grid photo.png --style voxel --snap out.png
    python -m glyph_grid photo.png --ramp simple --text out.txt
    python -m glyph_grid photo.png drift --frames 24 --snap drift.png

Options:
    --preset NAME    Start from a named preset (same as the positional form)
    --style S        glyph | bead | pixel | voxel
    --cols N         Grid columns
    --cell PX        Cell size in pixels
    --ramp R         Built-in ramp name or literal characters
    --invert         Invert tone
    --contrast C     Contrast multiplier
    --particles      Animate subject cells with the displacement field
    --threshold N    Subject mask threshold (0-100)
    --labels         Number beads by palette id
    --snap OUT.png   Headless: render and save PNG, then exit
    --text OUT.txt   Headless: write the text dump, then exit
    --frames N       With --snap: also save N animation frames at 20 fps
    --key COLOR      Chroma-key COLOR out of the image before sampling
    --window WxH     Viewer window size

Use --list to see all available presets.
"""

import os
import sys

from pydantic import ValidationError

from .presets import PRESET_ORDER, RAMPS, get_ramp, list_presets, settings_from_preset
from .settings import RenderSettings, StyleMode, parse_color, replace


FRAME_DT = 1.0 / 20


def ramp_from_arg(value):
    """Built-in ramp by name, otherwise the literal characters."""
    try:
        return get_ramp(value)
    except KeyError:
        return value


def snap(image, settings, snap_path=None, text_path=None, frames=0):
    """Headless mode: render once (or N frames), save outputs, exit."""
    from .export import save_png, write_text
    from .renderer import GridRenderer

    renderer = GridRenderer(settings, image)
    cols, rows = renderer.grid_shape()
    print(f"  grid: {cols}x{rows} cells ({StyleMode(settings.style_mode).value})")

    if snap_path:
        frame = renderer.render(0.0)
        save_png(frame, snap_path)
        print(f"  saved: {snap_path}")
        if frames > 0:
            stem, ext = os.path.splitext(snap_path)
            for i in range(frames):
                path = f"{stem}_{i:04d}{ext or '.png'}"
                save_png(renderer.render(i * FRAME_DT), path)
            print(f"  saved {frames} frames: {stem}_0000{ext or '.png'} ...")

    if text_path:
        write_text(renderer.text(), text_path)
        print(f"  saved: {text_path}")


def main():
    image_path = None
    preset = None
    overrides = {}
    snap_path = None
    text_path = None
    frames = 0
    key_color = None
    win_w, win_h = 900, 900

    args = sys.argv[1:]
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--style" and i + 1 < len(args):
            overrides["style_mode"] = args[i + 1]
            i += 2
        elif arg == "--cols" and i + 1 < len(args):
            overrides["resolution_cols"] = int(args[i + 1])
            i += 2
        elif arg == "--cell" and i + 1 < len(args):
            overrides["cell_size"] = float(args[i + 1])
            i += 2
        elif arg == "--ramp" and i + 1 < len(args):
            overrides["glyph_ramp"] = ramp_from_arg(args[i + 1])
            i += 2
        elif arg == "--contrast" and i + 1 < len(args):
            overrides["contrast"] = float(args[i + 1])
            i += 2
        elif arg == "--threshold" and i + 1 < len(args):
            overrides["subject_threshold"] = int(args[i + 1])
            i += 2
        elif arg == "--invert":
            overrides["invert"] = True
            i += 1
        elif arg == "--particles":
            overrides["animation_mode"] = "particles"
            i += 1
        elif arg == "--labels":
            overrides["show_labels"] = True
            i += 1
        elif arg == "--snap" and i + 1 < len(args):
            snap_path = args[i + 1]
            i += 2
        elif arg == "--text" and i + 1 < len(args):
            text_path = args[i + 1]
            i += 2
        elif arg == "--frames" and i + 1 < len(args):
            frames = int(args[i + 1])
            i += 2
        elif arg == "--preset" and i + 1 < len(args):
            preset = args[i + 1]
            i += 2
        elif arg == "--key" and i + 1 < len(args):
            key_color = args[i + 1]
            i += 2
        elif arg == "--window" and i + 1 < len(args):
            parts = args[i + 1].split("x")
            win_w, win_h = int(parts[0]), int(parts[1])
            i += 2
        elif arg == "--list":
            print("\nAvailable presets:")
            for style in StyleMode:
                entries = list_presets(style.value)
                if not entries:
                    continue
                print(f"\n  [{style.value}]")
                for key, name, desc in entries:
                    print(f"    {key:16s} {name:20s} {desc}")
            print("\nRamps: " + ", ".join(RAMPS))
            print()
            return
        elif arg in ("--help", "-h"):
            print(__doc__)
            return
        elif arg in PRESET_ORDER:
            preset = arg
            i += 1
        elif not arg.startswith("--") and image_path is None:
            image_path = arg
            i += 1
        else:
            print(f"Unknown argument: {arg}")
            print("Use --list to see available presets")
            return

    if image_path is None:
        print(__doc__)
        return

    try:
        if preset is not None:
            settings = settings_from_preset(preset, **overrides)
        else:
            settings = replace(RenderSettings(), **overrides)
    except (ValidationError, KeyError) as e:
        print(f"Invalid settings: {e}")
        return

    from .sampler import load_image

    image = load_image(image_path)
    if image is None:
        return
    if key_color is not None:
        from .chroma_key import chroma_key

        try:
            rgb = parse_color(key_color)[:3]
        except ValueError as e:
            print(f"Invalid key color: {e}")
            return
        image = chroma_key(image, rgb)

    if snap_path or text_path:
        print(f"Headless snap mode: {image_path} ({image.width}x{image.height})")
        snap(image, settings, snap_path, text_path, frames)
        return

    print("Starting Glyph Grid Viewer")
    print(f"  Image: {image_path}")
    print(f"  Preset: {preset or 'default'}")
    print(f"  Window: {win_w}x{win_h}")
    print()

    from .viewer import Viewer

    name = os.path.splitext(os.path.basename(image_path))[0]
    viewer = Viewer(image, settings, width=win_w, height=win_h, name=name)
    viewer.run()


if __name__ == "__main__":
    main()
