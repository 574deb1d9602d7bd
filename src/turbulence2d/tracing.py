from __future__ import annotations

from typing import Literal
from collections.abc import Sequence

import logging
import math
import numpy as np

from .turbulence2d import (
    ArrayLike2D,
    Bounds,
    FieldEvaluator,
    FloatArray,
    _as_float_array2,
    bounds_contains,
)

logger = logging.getLogger(__name__)

STALL_EPS: float = 1e-2        # |v| below this stops a streamline
FOLD_COS: float = -0.9         # direction reversal that marks a sink / stagnation point
Integrator = Literal["euler", "rk2", "rk4"]


# ------------------------------
# Sampling plans
# ------------------------------
def _grid_shape(count: int, bounds: Bounds) -> tuple[int, int, float]:
    xmin, xmax, ymin, ymax = bounds
    w = max(xmax - xmin, 0.0)
    h = max(ymax - ymin, 0.0)
    count = max(int(count), 1)
    if w <= 0.0 or h <= 0.0:
        return 0, 0, 0.0
    spacing = math.sqrt(w * h / count)
    return int(w // spacing), int(h // spacing), spacing


def plan_samples(
    line_count: int,
    bounds: Bounds,
    *,
    jitter: float = 0.0,
    seed: int | None = None,
) -> FloatArray:
    """Cell centres of a square grid holding roughly ``line_count`` cells.

    jitter: fraction of the cell spacing by which each point may be displaced.
    """
    if line_count < 1:
        logger.warning("line_count=%r clamped to 1", line_count)
        line_count = 1
    cols, rows, spacing = _grid_shape(line_count, bounds)
    if cols == 0 or rows == 0:
        return np.zeros((0, 2), dtype=np.float64)
    xmin, _, ymin, _ = bounds
    ii, jj = np.meshgrid(np.arange(cols), np.arange(rows), indexing="xy")
    pts = np.stack([
        xmin + ii.ravel() * spacing + 0.5 * spacing,
        ymin + jj.ravel() * spacing + 0.5 * spacing,
    ], axis=1).astype(np.float64)
    if jitter > 0.0:
        rng = np.random.default_rng(seed)
        amp = min(float(jitter), 1.0) * 0.5 * spacing
        pts += rng.uniform(-amp, amp, size=pts.shape)
    return pts


def plan_seeds(count: int, bounds: Bounds, *, seed: int | None = None) -> FloatArray:
    """Jittered grid of streamline seeds: one uniform point per cell.

    Rows and columns follow the aspect ratio of ``bounds`` so the cells tile
    the whole area and there are roughly ``count`` of them.
    """
    count = max(int(count), 1)
    xmin, xmax, ymin, ymax = bounds
    w = max(xmax - xmin, 0.0)
    h = max(ymax - ymin, 0.0)
    if w <= 0.0 or h <= 0.0:
        return np.zeros((0, 2), dtype=np.float64)
    spacing = math.sqrt(w * h / count)
    cols = max(int(round(w / spacing)), 1)
    rows = max(int(round(h / spacing)), 1)
    cw, ch = w / cols, h / rows
    rng = np.random.default_rng(seed)
    i = np.arange(cols * rows)
    x = xmin + (i % cols) * cw + rng.uniform(0.0, cw, size=i.size)
    y = ymin + (i // cols) * ch + rng.uniform(0.0, ch, size=i.size)
    return np.stack([x, y], axis=1).astype(np.float64)


def glyph_segments(
    points: ArrayLike2D,
    evaluator: FieldEvaluator,
    time: float,
    line_length: float,
    *,
    gain: float = 1.0,
    min_length: float = 0.1,
) -> FloatArray:
    """Segments (M,2,2) oriented along the field, length ``min(|v|*gain, line_length)``."""
    pts = _as_float_array2(points, "points") if len(points) else np.zeros((0, 2))
    if pts.shape[0] == 0:
        return np.zeros((0, 2, 2), dtype=np.float64)
    u = evaluator.velocities(pts, time)
    mag = np.linalg.norm(u, axis=1)
    length = np.minimum(mag * gain, line_length)
    keep = (length > min_length) & (mag > 0.0)
    direction = u[keep] / mag[keep, None]
    start = pts[keep]
    end = start + direction * length[keep, None]
    return np.stack([start, end], axis=1)


# ------------------------------
# Streamlines
# ------------------------------
def trace_many(
    seeds: ArrayLike2D,
    evaluator: FieldEvaluator,
    steps: int,
    step_size: float,
    bounds: Bounds,
    *,
    time: float = 0.0,
) -> list[FloatArray]:
    """Trace all ``seeds`` at once with constant arc-length steps.

    Each polyline has at most ``steps + 1`` points. A line stops when the
    field stalls, when it folds back on itself, or just before it would
    leave ``bounds``.
    """
    if len(seeds) == 0:
        return []
    x = _as_float_array2(seeds, "seeds").copy()
    if steps < 1:
        logger.warning("steps=%r clamped to 1", steps)
        steps = 1
    if not (math.isfinite(step_size) and step_size > 0.0):
        logger.warning("step_size=%r clamped to 1e-3", step_size)
        step_size = 1e-3
    n = x.shape[0]
    paths: list[list[np.ndarray]] = [[x[k].copy()] for k in range(n)]
    alive = np.ones(n, dtype=bool)
    prev_dir = np.zeros((n, 2), dtype=np.float64)
    for _ in range(int(steps)):
        idx = np.nonzero(alive)[0]
        if idx.size == 0:
            break
        v = evaluator.velocities(x[idx], time)
        mag = np.linalg.norm(v, axis=1)
        moving = mag >= STALL_EPS
        d = np.zeros_like(v)
        d[moving] = v[moving] / mag[moving, None]
        folded = np.einsum("ij,ij->i", d, prev_dir[idx]) < FOLD_COS
        go = moving & ~folded
        alive[idx[~go]] = False
        idx = idx[go]
        if idx.size == 0:
            break
        nxt = x[idx] + d[go] * step_size
        inside = bounds_contains(bounds, nxt[:, 0], nxt[:, 1])
        alive[idx[~inside]] = False
        idx = idx[inside]
        x[idx] = nxt[inside]
        prev_dir[idx] = d[go][inside]
        for k in idx:
            paths[k].append(x[k].copy())
    return [np.asarray(p, dtype=np.float64) for p in paths]


def trace(
    seed: ArrayLike2D | Sequence[float],
    evaluator: FieldEvaluator,
    steps: int,
    step_size: float,
    bounds: Bounds,
    *,
    time: float = 0.0,
) -> FloatArray:
    """Polyline (k,2) through the field starting at ``seed``; k <= steps + 1."""
    return trace_many(_as_float_array2(seed, "seed"), evaluator, steps, step_size, bounds, time=time)[0]


class StreamlineIntegrator:
    """Traces streamlines from a seed set that stays fixed between frames."""

    def __init__(self, steps: int = 100, step_size: float = 2.0, *, seed: int | None = None) -> None:
        self.steps = int(steps)
        self.step_size = float(step_size)
        self._seed = seed
        self._key: tuple[int, Bounds] | None = None
        self._seeds: FloatArray = np.zeros((0, 2), dtype=np.float64)

    def reset(self, seed: int | None = None) -> None:
        """Forget the current seed set; the next call re-randomizes it."""
        self._seed = seed
        self._key = None

    def seeds(self, count: int, bounds: Bounds) -> FloatArray:
        key = (max(int(count), 1), tuple(float(b) for b in bounds))
        if key != self._key:
            self._seeds = plan_seeds(key[0], bounds, seed=self._seed)
            self._key = key  # type: ignore[assignment]
            logger.debug("Planned %d streamline seeds", self._seeds.shape[0])
        return self._seeds.copy()

    def trace(self, seed: Sequence[float], evaluator: FieldEvaluator, bounds: Bounds, *, time: float = 0.0) -> FloatArray:
        return trace(seed, evaluator, self.steps, self.step_size, bounds, time=time)

    def trace_all(self, count: int, evaluator: FieldEvaluator, bounds: Bounds, *, time: float = 0.0) -> list[FloatArray]:
        return trace_many(self.seeds(count, bounds), evaluator, self.steps, self.step_size, bounds, time=time)


# ------------------------------
# Particles
# ------------------------------
class ParticleAdvector:
    """Fixed-size population of points carried by the field frame to frame."""

    def __init__(
        self,
        count: int,
        bounds: Bounds,
        *,
        max_age: int = 200,
        boundary: Literal["wrap", "respawn"] = "wrap",
        integrator: Integrator = "euler",
        seed: int | None = None,
    ) -> None:
        if boundary not in ("wrap", "respawn"):
            raise ValueError("boundary must be one of {'wrap','respawn'}.")
        if integrator not in ("euler", "rk2", "rk4"):
            raise ValueError("integrator must be one of {'euler','rk2','rk4'}.")
        self._bounds: Bounds = tuple(float(b) for b in bounds)  # type: ignore[assignment]
        self._rng = np.random.default_rng(seed)
        self.max_age = max(int(max_age), 1)
        self.boundary = boundary
        self.integrator = integrator
        self._x = np.zeros((0, 2), dtype=np.float64)
        self._age = np.zeros(0, dtype=np.int64)
        self.reconfigure(count)

    @property
    def positions(self) -> FloatArray:
        return np.asarray(self._x.copy(), dtype=np.float64)

    @property
    def ages(self) -> np.ndarray:
        return self._age.copy()

    @property
    def count(self) -> int:
        return int(self._x.shape[0])

    @property
    def bounds(self) -> Bounds:
        return self._bounds

    def _random_points(self, n: int) -> FloatArray:
        xmin, xmax, ymin, ymax = self._bounds
        return np.stack([
            self._rng.uniform(xmin, xmax, size=n),
            self._rng.uniform(ymin, ymax, size=n),
        ], axis=1).astype(np.float64)

    def reconfigure(self, count: int) -> None:
        """Resize the population; ages are staggered so respawns don't synchronize."""
        if count < 1:
            logger.warning("particle count=%r clamped to 1", count)
            count = 1
        count = int(count)
        self._x = self._random_points(count)
        self._age = self._rng.integers(0, self.max_age, size=count).astype(np.int64)

    def place(self, positions: ArrayLike2D) -> None:
        """Replace the population with ``positions``, all at age 0."""
        self._x = _as_float_array2(positions, "positions").copy()
        self._age = np.zeros(self._x.shape[0], dtype=np.int64)

    def set_bounds(self, bounds: Bounds) -> None:
        self._bounds = tuple(float(b) for b in bounds)  # type: ignore[assignment]
        self.reconfigure(self.count)

    def _advance(self, evaluator: FieldEvaluator, dt: float, time: float) -> FloatArray:
        x0 = self._x
        if self.integrator == "euler":
            return x0 + dt * evaluator.velocities(x0, time)
        if self.integrator == "rk2":
            k1 = evaluator.velocities(x0, time)
            k2 = evaluator.velocities(x0 + 0.5 * dt * k1, time)
            return x0 + dt * k2
        k1 = evaluator.velocities(x0, time)
        k2 = evaluator.velocities(x0 + 0.5 * dt * k1, time)
        k3 = evaluator.velocities(x0 + 0.5 * dt * k2, time)
        k4 = evaluator.velocities(x0 + dt * k3, time)
        return x0 + (dt / 6.0) * (k1 + 2 * k2 + 2 * k3 + k4)

    def step(self, evaluator: FieldEvaluator, dt: float, *, time: float = 0.0) -> FloatArray:
        """Advance every particle by ``dt`` and apply the age / boundary policy."""
        x = self._advance(evaluator, float(dt), time)
        self._age += 1
        xmin, xmax, ymin, ymax = self._bounds
        respawn = self._age > self.max_age
        respawn |= ~np.isfinite(x).all(axis=1)
        if self.boundary == "wrap":
            w = xmax - xmin
            h = ymax - ymin
            ok = ~respawn
            if w > 0.0:
                x[ok, 0] = xmin + np.mod(x[ok, 0] - xmin, w)
            if h > 0.0:
                x[ok, 1] = ymin + np.mod(x[ok, 1] - ymin, h)
        else:
            respawn |= ~bounds_contains(self._bounds, x[:, 0], x[:, 1])
        n = int(respawn.sum())
        if n:
            x[respawn] = self._random_points(n)
            self._age[respawn] = 0
        self._x = x
        return self.positions
