"""
Displacement Engine

Per-cell, per-frame 2D offsets:  (x, y, t, intensity, w, h) -> (dx, dy)

Displacement sources are written in a small assignment language instead of
live script. A program is one or more ``name = expression`` statements and
must assign ``dx`` and ``dy``:

    dx = sin(t * 2 + y * 0.15) * 1.5 * intensity
    dy = cos(t * 2 + x * 0.15) * 1.5 * intensity

Expressions allow numeric literals, + - * / % **, unary minus, parentheses,
the inputs x y t intensity (alias i) w h, the constant pi, earlier assigned
names, and the functions sin cos tan abs sqrt min max floor fract. Text is
parsed with the ``ast`` module, checked against a whitelist, and evaluated by
walking the tree with numpy ufuncs; nothing is handed to eval().

Evaluation never aborts a frame: a cell whose offset raises or comes out
non-finite gets (0, 0), and the failure is reported once per installed source.
"""

import ast
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np


INPUT_NAMES = ("x", "y", "t", "intensity", "w", "h")
ALIASES = {"i": "intensity"}
CONSTANTS = {"pi": math.pi}
OUTPUT_NAMES = ("dx", "dy")
MAX_SCRIPT_LENGTH = 4000
MAX_EXPR_DEPTH = 64


def _fract(v):
    return v - np.floor(v)


FUNCS = {
    "sin": np.sin,
    "cos": np.cos,
    "tan": np.tan,
    "abs": np.abs,
    "sqrt": np.sqrt,
    "floor": np.floor,
    "fract": _fract,
    "min": np.minimum,
    "max": np.maximum,
}

_FUNC_ARITY = {name: (2 if name in ("min", "max") else 1) for name in FUNCS}

BIN_OPS = {
    ast.Add: np.add,
    ast.Sub: np.subtract,
    ast.Mult: np.multiply,
    ast.Div: np.divide,
    ast.Mod: np.mod,
    ast.Pow: np.power,
}

ALLOWED_NODES = (
    ast.Module,
    ast.Assign,
    ast.Expression,
    ast.BinOp,
    ast.UnaryOp,
    ast.Call,
    ast.Name,
    ast.Load,
    ast.Store,
    ast.Constant,
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.Mod,
    ast.Pow,
    ast.USub,
    ast.UAdd,
)


class DisplacementError(ValueError):
    pass


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------

def _check_expr(node, known):
    stack = [(node, 1)]
    while stack:
        n, depth = stack.pop()
        if depth > MAX_EXPR_DEPTH:
            raise DisplacementError(f"Expression nested deeper than {MAX_EXPR_DEPTH} levels")
        stack.extend((child, depth + 1) for child in ast.iter_child_nodes(n))
        if not isinstance(n, ALLOWED_NODES):
            raise DisplacementError(f"Not allowed in displacement script: {type(n).__name__}")
        if isinstance(n, ast.Constant):
            if isinstance(n.value, bool) or not isinstance(n.value, (int, float)):
                raise DisplacementError("Only numeric constants allowed")
        elif isinstance(n, ast.Call):
            if not isinstance(n.func, ast.Name) or n.func.id not in FUNCS:
                raise DisplacementError("Only sin, cos, tan, abs, sqrt, floor, fract, min, max may be called")
            if n.keywords:
                raise DisplacementError(f"{n.func.id}() takes no keyword arguments")
            if len(n.args) != _FUNC_ARITY[n.func.id]:
                raise DisplacementError(
                    f"{n.func.id}() takes {_FUNC_ARITY[n.func.id]} argument(s), got {len(n.args)}")
        elif isinstance(n, ast.Name) and isinstance(n.ctx, ast.Load):
            if n.id in FUNCS:
                continue
            if n.id not in known:
                raise DisplacementError(f"Unknown name: {n.id}")


def compile_script(text):
    """Parse and validate displacement script text.

    Raises:
        DisplacementError: on syntax errors, disallowed constructs, unknown
            names, scripts that are too long or too deeply nested, or a program
            that does not assign both dx and dy.
    """
    if not isinstance(text, str) or not text.strip():
        raise DisplacementError("Displacement script is empty")
    if len(text) > MAX_SCRIPT_LENGTH:
        raise DisplacementError(f"Displacement script longer than {MAX_SCRIPT_LENGTH} characters")
    try:
        tree = ast.parse(text.strip(), mode="exec")
    except SyntaxError as e:
        raise DisplacementError(f"Syntax error: {e.msg} (line {e.lineno})") from e
    except (RecursionError, MemoryError, ValueError) as e:
        raise DisplacementError(f"Cannot parse displacement script: {type(e).__name__}") from e

    known = set(INPUT_NAMES) | set(ALIASES) | set(CONSTANTS)
    reserved = known | set(FUNCS)
    statements = []
    for stmt in tree.body:
        if not isinstance(stmt, ast.Assign):
            raise DisplacementError(f"Only assignments allowed, got {type(stmt).__name__}")
        if len(stmt.targets) != 1 or not isinstance(stmt.targets[0], ast.Name):
            raise DisplacementError("Assign to exactly one plain name per statement")
        name = stmt.targets[0].id
        if name in reserved:
            raise DisplacementError(f"Cannot assign to reserved name: {name}")
        _check_expr(stmt.value, known)
        statements.append((name, stmt.value))
        known.add(name)

    missing = [n for n in OUTPUT_NAMES if n not in known]
    if missing:
        raise DisplacementError(f"Script must assign {', '.join(missing)}")
    return DisplacementProgram(source=text, statements=tuple(statements))


def _eval(node, env):
    if isinstance(node, ast.Constant):
        return float(node.value)
    if isinstance(node, ast.Name):
        return env[node.id]
    if isinstance(node, ast.BinOp):
        return BIN_OPS[type(node.op)](_eval(node.left, env), _eval(node.right, env))
    if isinstance(node, ast.UnaryOp):
        v = _eval(node.operand, env)
        return np.negative(v) if isinstance(node.op, ast.USub) else v
    if isinstance(node, ast.Call):
        return FUNCS[node.func.id](*[_eval(a, env) for a in node.args])
    raise DisplacementError(f"Unsupported node: {type(node).__name__}")


@dataclass(frozen=True)
class DisplacementProgram:
    """A validated displacement script. Pure: no state between calls."""

    source: str
    statements: Tuple = ()

    def evaluate(self, x, y, t, intensity, w, h):
        """Evaluate on scalars or broadcastable numpy arrays.

        Returns raw (dx, dy); non-finite values are left for the caller.
        """
        env = {"x": x, "y": y, "t": t, "intensity": intensity, "w": w, "h": h}
        env.update(CONSTANTS)
        for alias, target in ALIASES.items():
            env[alias] = env[target]
        with np.errstate(all="ignore"):
            for name, expr in self.statements:
                env[name] = _eval(expr, env)
        return env["dx"], env["dy"]

    def __call__(self, x, y, t, intensity, w, h):
        dx, dy = self.evaluate(float(x), float(y), float(t), float(intensity), float(w), float(h))
        return float(dx), float(dy)


def zero_displacement(x, y, t, intensity, w, h):
    return 0.0, 0.0


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class DisplacementEngine:
    """Holds the installed displacement source and evaluates it safely.

    Sources: script text, a DisplacementProgram, a Genome, a trusted Python
    callable with the (x, y, t, intensity, w, h) -> (dx, dy) signature, or
    None for no displacement.
    """

    def __init__(self, source=None):
        self.program = None
        self.func = zero_displacement
        self.label = "none"
        self.failures = 0
        self._warned = False
        self.install(source)

    def install(self, source):
        """Swap in a new displacement source.

        A script that fails to compile is reported once and replaced by
        the zero displacement rather than raising.
        """
        from .genome import Genome, compile_genome

        self.program = None
        self.func = zero_displacement
        self.failures = 0
        self._warned = False

        if source is None:
            self.label = "none"
            return
        if isinstance(source, Genome):
            source = compile_genome(source)
        if isinstance(source, str):
            try:
                source = compile_script(source)
            except DisplacementError as e:
                self.label = "invalid"
                self._warn(f"Displacement script rejected, using zero offset: {e}")
                return
        if isinstance(source, DisplacementProgram):
            self.program = source
            self.func = source
            self.label = "script"
        elif callable(source):
            self.func = source
            self.label = getattr(source, "__name__", "callable")
        else:
            raise TypeError(f"Unsupported displacement source: {type(source).__name__}")

    def _warn(self, msg):
        if not self._warned:
            self._warned = True
            print(f"[Grid] {msg}")

    def displace(self, x, y, t, intensity, w, h):
        """Offset for one cell; (0, 0) if the evaluation fails."""
        try:
            dx, dy = self.func(x, y, t, intensity, w, h)
            dx, dy = float(dx), float(dy)
        except Exception as e:
            self.failures += 1
            self._warn(f"Displacement failed at cell ({x}, {y}), using zero offset: {e}")
            return 0.0, 0.0
        if not (math.isfinite(dx) and math.isfinite(dy)):
            self.failures += 1
            self._warn(f"Displacement not finite at cell ({x}, {y}), using zero offset")
            return 0.0, 0.0
        return dx, dy

    def field(self, cols, rows, t, intensity):
        """Offsets for the whole grid.

        Scripts are evaluated vectorized; callables cell by cell.

        Returns:
            (dx, dy) float64 arrays shaped (rows, cols)
        """
        shape = (rows, cols)
        if self.func is zero_displacement or rows == 0 or cols == 0:
            return np.zeros(shape), np.zeros(shape)

        if self.program is not None:
            ys, xs = np.mgrid[:rows, :cols].astype(np.float64)
            try:
                dx, dy = self.program.evaluate(xs, ys, float(t), float(intensity),
                                               float(cols), float(rows))
                dx = np.broadcast_to(np.asarray(dx, dtype=np.float64), shape).copy()
                dy = np.broadcast_to(np.asarray(dy, dtype=np.float64), shape).copy()
            except Exception as e:
                self._warn(f"Vectorized displacement failed, evaluating per cell: {e}")
            else:
                bad = ~(np.isfinite(dx) & np.isfinite(dy))
                if bad.any():
                    self.failures += int(bad.sum())
                    self._warn(f"Displacement not finite at {int(bad.sum())} cell(s), using zero offset")
                    dx[bad] = 0.0
                    dy[bad] = 0.0
                return dx, dy

        dx = np.zeros(shape)
        dy = np.zeros(shape)
        for y in range(rows):
            for x in range(cols):
                dx[y, x], dy[y, x] = self.displace(x, y, t, intensity, cols, rows)
        return dx, dy
