"""
Interactive Pygame Viewer for Glyph Grid

Shows a still image rendered through the GridRenderer and lets you flip
styles, tone and animation live. Every edit is committed to a
SettingsHistory so it can be undone.

Controls:
  1-4         Style: glyph / bead / pixel / voxel
  SPACE       Toggle Static / Particles animation
  I           Invert
  L           Toggle bead labels
  + / -       Contrast up / down
  [ / ]       Fewer / more columns
  Z / Y       Undo / Redo
  G           Next genome in the current population
  E           Evolve: breed a new population from the current genome
  R           Reseed: restart evolution from the next seed (runner/jumper/shaker)
  S           Save PNG screenshot
  T           Save text dump
  H           Toggle HUD overlay
  Q / ESC     Quit
"""

import os
import time

import numpy as np
import pygame

from .export import save_png, to_float_frame, write_text
from .genome import SEED_KINDS, evolve, genome_to_script, initial_population, reseed_population
from .renderer import GridRenderer
from .settings import AnimationMode, RenderSettings, SettingsHistory, StyleMode, replace


STYLE_KEYS = {
    pygame.K_1: StyleMode.glyph,
    pygame.K_2: StyleMode.bead,
    pygame.K_3: StyleMode.pixel,
    pygame.K_4: StyleMode.voxel,
}
CONTRAST_STEP = 0.1
COLS_STEP = 8
MIN_COLS = 8
BG_COLOR = (12, 12, 16)


def _screenshots_dir():
    path = os.path.join(
        os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
        "screenshots"
    )
    os.makedirs(path, exist_ok=True)
    return path


class Viewer:
    def __init__(self, image, settings=None, width=900, height=900, name="grid"):
        self.canvas_w = width
        self.canvas_h = height
        self.name = name
        self.running = True
        self.show_hud = True
        self.fps_history = []

        settings = settings if settings is not None else RenderSettings()
        self.history = SettingsHistory(settings)
        self.renderer = GridRenderer(settings, image)

        # Evolution state: population of genomes, index of the active one
        self.population = initial_population()
        self.genome_index = None
        self.seed_index = -1

        self._surface = None
        self._dirty = True

    @property
    def settings(self):
        return self.history.current

    # ------------------------------------------------------------------
    # Settings edits
    # ------------------------------------------------------------------

    def _apply(self, settings):
        """Push ``settings`` to the renderer without touching history."""
        self.renderer.update_settings(settings)
        self._dirty = True

    def _edit(self, **changes):
        new = replace(self.settings, **changes)
        if self.history.commit(new):
            self._apply(new)

    def _undo(self):
        if self.history.can_undo:
            self._apply(self.history.undo())

    def _redo(self):
        if self.history.can_redo:
            self._apply(self.history.redo())

    def _use_genome(self, index):
        self.genome_index = index % len(self.population)
        genome = self.population[self.genome_index]
        print(f"[Grid] Genome {genome.id} (gen {genome.generation})")
        self._edit(displacement_script=genome_to_script(genome),
                   animation_mode=AnimationMode.particles)

    def _evolve(self):
        if self.genome_index is None:
            self._use_genome(0)
            return
        survivor = self.population[self.genome_index]
        self.population = evolve(survivor)
        self._use_genome(0)

    def _reseed(self):
        self.seed_index = (self.seed_index + 1) % len(SEED_KINDS)
        kind = SEED_KINDS[self.seed_index]
        print(f"[Grid] Reseeding population from {kind}")
        self.population = reseed_population(kind)
        self._use_genome(len(self.population) - 1)

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def _render_surface(self):
        """Render the current grid to a pygame surface (None while idle)."""
        frame = self.renderer.render_now()
        if frame is None:
            return None
        rgb = (to_float_frame(frame, self.settings.background_color) * 255).astype(np.uint8)
        return pygame.surfarray.make_surface(rgb.swapaxes(0, 1).copy())

    def _fit(self, surface):
        """Scale a surface to fit the canvas, preserving aspect."""
        w, h = surface.get_size()
        scale = min(self.canvas_w / max(w, 1), self.canvas_h / max(h, 1))
        size = (max(1, int(w * scale)), max(1, int(h * scale)))
        return pygame.transform.smoothscale(surface, size)

    def _draw_hud(self, screen, fps):
        if not self.show_hud:
            return
        s = self.settings
        mode = "particles" if s.is_animated else "static"
        line = (f"{StyleMode(s.style_mode).value}  |  {s.resolution_cols} cols  |  "
                f"contrast {s.contrast:.1f}  |  {mode}  |  "
                f"history {len(self.history)}  |  FPS: {fps:.0f}")
        if s.invert:
            line = "[INV]  " + line

        padding = 6
        bg_surface = pygame.Surface((self.canvas_w, 24), pygame.SRCALPHA)
        bg_surface.fill((0, 0, 0, 140))
        screen.blit(bg_surface, (0, 0))
        text_surface = self.hud_font.render(line, True, (210, 215, 225))
        screen.blit(text_surface, (padding + 4, padding))

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def _save_screenshot(self):
        frame = self.renderer.render_now()
        if frame is None:
            print("[Grid] Nothing to save (no image loaded)")
            return
        timestamp = time.strftime("%Y%m%d_%H%M%S")
        path = os.path.join(_screenshots_dir(), f"grid_{self.name}_{timestamp}.png")
        save_png(frame, path)
        save_png(frame, os.path.join(_screenshots_dir(), "latest.png"))
        print(f"Screenshot saved: {path}")

    def _save_text(self):
        text = self.renderer.text()
        if text is None:
            print("[Grid] Nothing to save (no image loaded)")
            return
        timestamp = time.strftime("%Y%m%d_%H%M%S")
        path = os.path.join(_screenshots_dir(), f"grid_{self.name}_{timestamp}.txt")
        write_text(text, path)
        print(f"Text saved: {path}")

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self):
        """Main viewer loop."""
        pygame.init()

        screen = pygame.display.set_mode((self.canvas_w, self.canvas_h), pygame.RESIZABLE)
        pygame.display.set_caption("Glyph Grid")
        clock = pygame.time.Clock()
        self.hud_font = pygame.font.SysFont("menlo", 13)

        self.renderer.start()

        while self.running:
            frame_start = time.time()

            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    self.running = False
                elif event.type == pygame.KEYDOWN:
                    self._handle_keydown(event)
                elif event.type == pygame.VIDEORESIZE:
                    self.canvas_w, self.canvas_h = event.w, event.h
                    screen = pygame.display.set_mode(
                        (self.canvas_w, self.canvas_h), pygame.RESIZABLE
                    )

            # Static mode draws once per edit; Particles redraws every frame
            if self._dirty or self.renderer.needs_animation:
                self._surface = self._render_surface()
                self._dirty = False

            screen.fill(BG_COLOR)
            if self._surface is not None:
                scaled = self._fit(self._surface)
                x = (self.canvas_w - scaled.get_width()) // 2
                y = (self.canvas_h - scaled.get_height()) // 2
                screen.blit(scaled, (x, y))

            frame_time = time.time() - frame_start
            self.fps_history.append(frame_time)
            if len(self.fps_history) > 30:
                self.fps_history.pop(0)
            avg_fps = 1.0 / max(np.mean(self.fps_history), 0.001)

            self._draw_hud(screen, avg_fps)

            pygame.display.flip()
            clock.tick(60)

        pygame.quit()

    def _handle_keydown(self, event):
        key = event.key
        s = self.settings

        if key in (pygame.K_q, pygame.K_ESCAPE):
            self.running = False

        elif key in STYLE_KEYS:
            self._edit(style_mode=STYLE_KEYS[key])

        elif key == pygame.K_SPACE:
            mode = AnimationMode.static if s.is_animated else AnimationMode.particles
            self._edit(animation_mode=mode)

        elif key == pygame.K_i:
            self._edit(invert=not s.invert)

        elif key == pygame.K_l:
            self._edit(show_labels=not s.show_labels)

        elif key in (pygame.K_PLUS, pygame.K_EQUALS, pygame.K_KP_PLUS):
            self._edit(contrast=round(s.contrast + CONTRAST_STEP, 2))

        elif key in (pygame.K_MINUS, pygame.K_KP_MINUS):
            self._edit(contrast=round(s.contrast - CONTRAST_STEP, 2))

        elif key == pygame.K_LEFTBRACKET:
            self._edit(resolution_cols=max(MIN_COLS, s.resolution_cols - COLS_STEP))

        elif key == pygame.K_RIGHTBRACKET:
            self._edit(resolution_cols=s.resolution_cols + COLS_STEP)

        elif key == pygame.K_z:
            self._undo()

        elif key == pygame.K_y:
            self._redo()

        elif key == pygame.K_g:
            nxt = 0 if self.genome_index is None else self.genome_index + 1
            self._use_genome(nxt)

        elif key == pygame.K_e:
            self._evolve()

        elif key == pygame.K_r:
            self._reseed()

        elif key == pygame.K_s:
            self._save_screenshot()

        elif key == pygame.K_t:
            self._save_text()

        elif key == pygame.K_h:
            self.show_hud = not self.show_hud
