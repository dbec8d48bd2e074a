"""
Genome -> Displacement Compiler

A Genome is a fixed set of numeric / enum genes that compiles
deterministically into a displacement script:

    dx = ampX * fX(t * baseSpeed * freqX + y * shear + phaseX) * intensity
    dy = ampY * fY(t * baseSpeed * freqY + phaseY) * intensity

with fX, fY in {sin, cos}. Genomes are created randomly, seeded from named
presets, or mutated; the evolution helpers build four-way populations for a
pick-the-survivor loop.
"""

import math
from dataclasses import dataclass, replace

import numpy as np

from .displacement import compile_script


WAVE_FUNCS = ("sin", "cos")
SEED_KINDS = ("runner", "jumper", "shaker")

# Per-gene mutation jitter (+/- uniform range)
MUTATION_RANGES = {
    "base_speed": 0.5,
    "amp_x": 3.0,
    "amp_y": 3.0,
    "freq_x": 0.5,
    "freq_y": 0.5,
    "phase_x": 0.5,
    "phase_y": 0.5,
    "shear": 0.05,
    "compression": 0.05,
}
FUNC_FLIP_RATE = 0.1
MIN_BASE_SPEED = 0.1

# Mutation rates for the next generation: mild, medium, heavy (+ survivor)
EVOLVE_RATES = (0.1, 0.3, 0.6)


@dataclass(frozen=True)
class Genome:
    id: str
    generation: int
    base_speed: float
    amp_x: float
    amp_y: float
    freq_x: float
    freq_y: float
    phase_x: float
    phase_y: float
    func_x: str = "sin"
    func_y: str = "sin"
    shear: float = 0.0
    # Carried through mutation; not part of the compiled formula
    compression: float = 0.0

    def __post_init__(self):
        for f in (self.func_x, self.func_y):
            if f not in WAVE_FUNCS:
                raise ValueError(f"wave function must be one of {WAVE_FUNCS}, got {f!r}")


def _rng(rng):
    return rng if rng is not None else np.random.default_rng()


def _new_id(rng):
    alphabet = "0123456789abcdefghijklmnopqrstuvwxyz"
    return "".join(alphabet[i] for i in rng.integers(0, len(alphabet), size=9))


def create_random_genome(generation=0, rng=None):
    rng = _rng(rng)
    return Genome(
        id=_new_id(rng),
        generation=generation,
        base_speed=float(rng.uniform(0.5, 2.0)),
        amp_x=float(rng.uniform(0.0, 10.0)),
        amp_y=float(rng.uniform(0.0, 10.0)),
        freq_x=float(rng.uniform(0.1, 2.0)),
        freq_y=float(rng.uniform(0.1, 2.0)),
        phase_x=float(rng.uniform(0.0, 2 * math.pi)),
        phase_y=float(rng.uniform(0.0, 2 * math.pi)),
        func_x=WAVE_FUNCS[int(rng.integers(0, 2))],
        func_y=WAVE_FUNCS[int(rng.integers(0, 2))],
    )


def seed_genome(kind, rng=None):
    """Genome approximating a named action: runner, jumper, or shaker."""
    base = create_random_genome(0, rng)
    if kind == "runner":
        # Lean forward (shear), sway in x, bob faster in y
        return replace(base, base_speed=1.5, amp_x=2.0, amp_y=5.0,
                       freq_x=0.5, freq_y=2.0, func_x="cos", func_y="sin",
                       shear=0.15, compression=0.0)
    if kind == "jumper":
        return replace(base, base_speed=1.2, amp_x=0.0, amp_y=15.0,
                       freq_y=1.0, func_y="sin", phase_y=0.0,
                       shear=0.0, compression=0.2)
    if kind == "shaker":
        return replace(base, base_speed=3.0, amp_x=5.0, amp_y=5.0,
                       freq_x=5.0, freq_y=5.0, shear=0.0, compression=0.0)
    raise ValueError(f"Unknown seed kind {kind!r}, expected one of {SEED_KINDS}")


def mutate_genome(parent, mutation_rate=0.3, rng=None):
    """Jitter each numeric gene with independent probability ``mutation_rate``."""
    rng = _rng(rng)
    changes = {}
    for gene, spread in MUTATION_RANGES.items():
        value = getattr(parent, gene)
        if rng.random() < mutation_rate:
            value = value + float(rng.uniform(-spread, spread))
        changes[gene] = value
    changes["base_speed"] = max(MIN_BASE_SPEED, changes["base_speed"])
    for gene in ("func_x", "func_y"):
        if rng.random() < FUNC_FLIP_RATE:
            changes[gene] = WAVE_FUNCS[int(rng.integers(0, 2))]
    return replace(parent, id=_new_id(rng), generation=parent.generation + 1, **changes)


def initial_population(rng=None):
    rng = _rng(rng)
    return [seed_genome(kind, rng) for kind in SEED_KINDS] + [create_random_genome(0, rng)]


def evolve(survivor, rng=None):
    """Next generation: mild, medium and heavy mutants plus the survivor."""
    rng = _rng(rng)
    return [mutate_genome(survivor, rate, rng) for rate in EVOLVE_RATES] + [survivor]


def reseed_population(kind, rng=None):
    """Restart evolution from a named seed."""
    rng = _rng(rng)
    seed = seed_genome(kind, rng)
    return [mutate_genome(seed, rate, rng) for rate in (0.1, 0.2, 0.3)] + [seed]


def genome_to_script(g):
    """Render a genome as displacement script text."""
    x_arg = (f"t * {g.base_speed:.2f} * {g.freq_x:.2f} + y * {g.shear:.3f} "
             f"+ {g.phase_x:.2f}")
    y_arg = f"t * {g.base_speed:.2f} * {g.freq_y:.2f} + {g.phase_y:.2f}"
    return (
        f"dx = {g.amp_x:.2f} * {g.func_x}({x_arg}) * intensity\n"
        f"dy = {g.amp_y:.2f} * {g.func_y}({y_arg}) * intensity"
    )


def compile_genome(g):
    """Compile a genome into a DisplacementProgram."""
    return compile_script(genome_to_script(g))
