from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Literal, NamedTuple
from collections.abc import Iterator, Mapping, Sequence

import logging
import math
import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)


# ---------------------------
# Optional Numba (JIT) support
# ---------------------------
try:
    from numba import njit  # type: ignore
    _NUMBA = True
except Exception:  # pragma: no cover
    _NUMBA = False

def _maybe_njit(func):
    # Decorate with njit if available; else return original
    if _NUMBA:  # pragma: no cover
        return njit(cache=True, fastmath=False, nogil=True)(func)  # type: ignore[misc]
    return func

# kind codes shared by the numpy and JIT kernels
_KIND_VORTEX = 0
_KIND_RADIAL = 1
_KIND_UNIFORM = 2

@_maybe_njit
def _singularity_jit(xq: np.ndarray, xsrc: np.ndarray, strength: np.ndarray, kind: np.ndarray,
                     angle_rad: np.ndarray, eps: float) -> np.ndarray:
    M = xq.shape[0]
    N = xsrc.shape[0]
    out = np.zeros((M, 2), dtype=np.float64)
    for i in range(M):
        u0 = 0.0
        u1 = 0.0
        for j in range(N):
            s = strength[j]
            if kind[j] == 2:
                u0 += s * math.cos(angle_rad[j])
                u1 += s * math.sin(angle_rad[j])
                continue
            dx = xq[i, 0] - xsrc[j, 0]
            dy = xq[i, 1] - xsrc[j, 1]
            r = max(math.sqrt(dx * dx + dy * dy), eps)
            coef = s / (r * r)
            if kind[j] == 0:
                # k x r = (-dy, dx)
                u0 += -dy * coef
                u1 += dx * coef
            else:
                u0 += dx * coef
                u1 += dy * coef
        out[i, 0] = u0
        out[i, 1] = u1
    return out

FloatArray = NDArray[np.float64]
ArrayLike2D = np.ndarray | Sequence[Sequence[float]]
Bounds = tuple[float, float, float, float]  # (xmin, xmax, ymin, ymax)
SourceType = Literal["vortex", "source", "sink", "uniform"]

SOURCE_TYPES: tuple[str, ...] = ("vortex", "source", "sink", "uniform")
DEFAULT_BOUNDS: Bounds = (0.0, 1200.0, 0.0, 800.0)
R_EPS: float = 1e-3          # distance clamp near a singularity
SCALE_EPS: float = 1e-6      # smallest accepted noise frequency
NOISE_DECORRELATION: float = 1000.0


# ---------------------------
# Utility
# ---------------------------
def _as_float_array2(x: ArrayLike2D, name: str) -> FloatArray:
    """Convert to contiguous float64 (N,2)."""
    arr = np.asarray(x, dtype=np.float64)
    if arr.ndim == 1 and arr.shape[0] == 2:
        arr = arr[None, :]
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"{name} must have shape (N,2).")
    if not np.isfinite(arr).all():
        raise ValueError(f"{name} contains non-finite values.")
    return np.ascontiguousarray(arr)

def _finite_or(value: float, fallback: float, name: str) -> float:
    v = float(value)
    if not math.isfinite(v):
        logger.warning("%s=%r is not finite; using %r", name, value, fallback)
        return fallback
    return v

def _at_least(value: float, lo: float, name: str) -> float:
    v = _finite_or(value, lo, name)
    if v < lo:
        logger.warning("%s=%r below minimum; clamped to %r", name, value, lo)
        return lo
    return v

def _positive(value: float, eps: float, name: str) -> float:
    v = _finite_or(value, eps, name)
    if v <= 0.0:
        logger.warning("%s=%r must be positive; clamped to %r", name, value, eps)
        return eps
    return v

def bounds_contains(bounds: Bounds, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    xmin, xmax, ymin, ymax = bounds
    return (x >= xmin) & (x <= xmax) & (y >= ymin) & (y <= ymax)


class Vector2(NamedTuple):
    x: float
    y: float

    @property
    def magnitude(self) -> float:
        return math.hypot(self.x, self.y)

    @property
    def angle(self) -> float:
        return math.atan2(self.y, self.x)


# ---------------------------
# Settings snapshots
# ---------------------------
class _Mergeable:
    """Partial-merge setter shared by the frozen settings snapshots."""

    __slots__ = ()

    def merged(self, partial: Mapping[str, Any] | None = None, **changes: Any):
        updates = {**(partial or {}), **changes}
        known = {f.name for f in fields(self)}  # type: ignore[arg-type]
        unknown = set(updates) - known
        if unknown:
            raise ValueError(f"Unknown {type(self).__name__} fields: {sorted(unknown)}")
        return replace(self, **updates)  # type: ignore[type-var]


@dataclass(frozen=True, slots=True)
class NoiseSettings(_Mergeable):
    """Multi-octave value noise parameters.

    scale: base spatial frequency (lattice cells per unit length)
    octaves: number of summed layers
    persistence: amplitude ratio between consecutive octaves
    lacunarity: frequency ratio between consecutive octaves
    seed: any finite float; its bit pattern keys the lattice hash
    """
    scale: float = 0.01
    octaves: int = 4
    persistence: float = 0.5
    lacunarity: float = 2.0
    seed: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "scale", _positive(self.scale, SCALE_EPS, "scale"))
        octaves = int(self.octaves) if math.isfinite(float(self.octaves)) else 1
        if octaves < 1:
            logger.warning("octaves=%r treated as 1", self.octaves)
            octaves = 1
        object.__setattr__(self, "octaves", octaves)
        p = _positive(self.persistence, 1e-3, "persistence")
        if p > 1.0:
            logger.warning("persistence=%r clamped to 1.0", self.persistence)
            p = 1.0
        object.__setattr__(self, "persistence", p)
        object.__setattr__(self, "lacunarity", _at_least(self.lacunarity, 1.0, "lacunarity"))
        object.__setattr__(self, "seed", _finite_or(self.seed, 0.0, "seed"))


@dataclass(frozen=True, slots=True)
class FlowSettings(_Mergeable):
    enabled: bool = True
    base_velocity: float = 0.5
    base_angle: float = 0.0  # degrees

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_velocity", _at_least(self.base_velocity, 0.0, "base_velocity"))
        object.__setattr__(self, "base_angle", _finite_or(self.base_angle, 0.0, "base_angle"))


class VisualizationMode(str, Enum):
    VECTOR = "vector"
    STREAMLINE = "streamline"
    PARTICLE = "particle"


@dataclass(frozen=True, slots=True)
class TurbulenceSettings(_Mergeable):
    line_count: int = 2000
    line_length: float = 30.0
    show_sources: bool = True
    mode: VisualizationMode = VisualizationMode.VECTOR
    streamline_steps: int = 100
    streamline_step_size: float = 2.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "line_count", max(1, int(_positive(self.line_count, 1, "line_count"))))
        object.__setattr__(self, "line_length", _positive(self.line_length, 1e-3, "line_length"))
        object.__setattr__(self, "mode", VisualizationMode(self.mode))
        object.__setattr__(
            self, "streamline_steps", max(1, int(_positive(self.streamline_steps, 1, "streamline_steps")))
        )
        object.__setattr__(
            self, "streamline_step_size", _positive(self.streamline_step_size, 1e-3, "streamline_step_size")
        )

    @classmethod
    def from_flags(cls, *, streamline_mode: bool = False, flowing_mode: bool = False, **kwargs: Any) -> TurbulenceSettings:
        """Build settings from the two UI toggles; both off means vector glyphs."""
        if streamline_mode and flowing_mode:
            logger.warning("streamline_mode and flowing_mode both set; using streamline mode")
        if streamline_mode:
            mode = VisualizationMode.STREAMLINE
        elif flowing_mode:
            mode = VisualizationMode.PARTICLE
        else:
            mode = VisualizationMode.VECTOR
        return cls(mode=mode, **kwargs)

    @property
    def streamline_mode(self) -> bool:
        return self.mode is VisualizationMode.STREAMLINE

    @property
    def flowing_mode(self) -> bool:
        return self.mode is VisualizationMode.PARTICLE

    @property
    def streamline_count(self) -> int:
        # streamlines are drawn a hundred times sparser than glyphs
        return max(1, self.line_count // 100)


@dataclass(slots=True)
class AnimationState:
    is_animating: bool = True
    speed: float = 1.0
    intensity: float = 1.0
    time: float = 0.0

    def advance(self, dt: float) -> float:
        """Accumulate ``speed * dt`` into ``time`` while animating; returns the new time."""
        if self.is_animating:
            inc = float(self.speed) * float(dt)
            if math.isfinite(inc) and inc > 0.0:
                self.time += inc
        return self.time


@dataclass(slots=True)
class NumbaConfig:
    """Toggle Numba JIT for the singularity sum.
    If enabled and numba is available, use the compiled kernel.
    """
    enabled: bool = False


# ---------------------------
# Noise
# ---------------------------
_M1 = np.uint64(0x9E3779B97F4A7C15)
_M2 = np.uint64(0xC2B2AE3D27D4EB4F)
_M3 = np.uint64(0xFF51AFD7ED558CCD)
_M4 = np.uint64(0xC4CEB9FE1A85EC53)
_GOLD = np.uint64(0x632BE59BD9B4E019)
_S33 = np.uint64(33)
_S11 = np.uint64(11)
_INV_2_53 = 1.0 / float(1 << 53)


def _fmix(h: np.ndarray) -> np.ndarray:
    h ^= h >> _S33
    h *= _M3
    h ^= h >> _S33
    h *= _M4
    h ^= h >> _S33
    return h


def _lattice(ix: np.ndarray, iy: np.ndarray, seed_bits: np.uint64) -> np.ndarray:
    """Pure hash of integer lattice coordinates to values in [-1, 1).

    Coordinates are mixed one after the other so that (i, j) and (-i, -j)
    land on unrelated values.
    """
    h = _fmix((ix.view(np.uint64) * _M1) ^ (seed_bits ^ _GOLD))
    h = _fmix(h + iy.view(np.uint64) * _M2)
    return (h >> _S11).astype(np.float64) * (2.0 * _INV_2_53) - 1.0


def _smoothstep(t: np.ndarray) -> np.ndarray:
    return t * t * (3.0 - 2.0 * t)


def _value_noise(x: np.ndarray, y: np.ndarray, seed_bits: np.uint64) -> np.ndarray:
    fx = np.floor(x)
    fy = np.floor(y)
    ix = fx.astype(np.int64)
    iy = fy.astype(np.int64)
    u = _smoothstep(x - fx)
    v = _smoothstep(y - fy)
    one = np.int64(1)
    r00 = _lattice(ix, iy, seed_bits)
    r10 = _lattice(ix + one, iy, seed_bits)
    r01 = _lattice(ix, iy + one, seed_bits)
    r11 = _lattice(ix + one, iy + one, seed_bits)
    a = r00 + (r10 - r00) * u
    b = r01 + (r11 - r01) * u
    return a + (b - a) * v


class NoiseField:
    """Deterministic fractal value noise in [-1, 1]."""

    @staticmethod
    def sample(x: float | np.ndarray, y: float | np.ndarray, settings: NoiseSettings) -> Any:
        scalar = np.ndim(x) == 0 and np.ndim(y) == 0
        xs, ys = np.broadcast_arrays(
            np.atleast_1d(np.asarray(x, dtype=np.float64)),
            np.atleast_1d(np.asarray(y, dtype=np.float64)),
        )
        seed_bits = np.array([settings.seed], dtype=np.float64).view(np.uint64)[0]
        total = np.zeros(xs.shape, dtype=np.float64)
        amp_sum = 0.0
        amplitude = 1.0
        frequency = settings.scale
        for _ in range(max(int(settings.octaves), 1)):
            total += amplitude * _value_noise(xs * frequency, ys * frequency, seed_bits)
            amp_sum += amplitude
            amplitude *= settings.persistence
            frequency *= settings.lacunarity
        out = np.clip(total / amp_sum, -1.0, 1.0)
        if scalar:
            return float(out[0])
        return out


# ---------------------------
# Singularities
# ---------------------------
_TYPE_NAMES = {"vortex": "Vortex", "source": "Source", "sink": "Sink", "uniform": "Flow"}


@dataclass(frozen=True, slots=True)
class SingularitySource:
    id: str
    name: str
    type: SourceType
    x: float
    y: float
    strength: float = 50.0
    angle: float = 0.0  # degrees, uniform only

    def __post_init__(self) -> None:
        if self.type not in SOURCE_TYPES:
            raise ValueError(f"Unknown source type: {self.type!r}")
        object.__setattr__(self, "x", _finite_or(self.x, 0.0, "x"))
        object.__setattr__(self, "y", _finite_or(self.y, 0.0, "y"))
        object.__setattr__(self, "strength", _finite_or(self.strength, 0.0, "strength"))
        angle = _finite_or(self.angle, 0.0, "angle") % 360.0
        # tiny negative angles round up to 360.0
        object.__setattr__(self, "angle", 0.0 if angle >= 360.0 else angle)

    @property
    def position(self) -> Vector2:
        return Vector2(self.x, self.y)


def _pack_sources(sources: Sequence[SingularitySource]) -> tuple[FloatArray, FloatArray, np.ndarray, FloatArray]:
    xsrc = np.array([[s.x, s.y] for s in sources], dtype=np.float64).reshape(-1, 2)
    strength = np.array([s.strength for s in sources], dtype=np.float64)
    kind = np.array(
        [_KIND_VORTEX if s.type == "vortex" else _KIND_UNIFORM if s.type == "uniform" else _KIND_RADIAL
         for s in sources],
        dtype=np.int64,
    )
    angle = np.radians(np.array([s.angle for s in sources], dtype=np.float64))
    return xsrc, strength, kind, angle


def singularity_velocities(
    xq: ArrayLike2D,
    sources: Sequence[SingularitySource],
    *,
    eps: float = R_EPS,
    numba: NumbaConfig | None = None,
) -> FloatArray:
    """Superposed analytic velocity of ``sources`` at query points (M,2)."""
    xq = _as_float_array2(xq, "xq")
    out = np.zeros_like(xq)
    if not sources:
        return out
    xsrc, strength, kind, angle = _pack_sources(sources)
    if numba is not None and numba.enabled and _NUMBA:
        return np.asarray(_singularity_jit(xq, xsrc, strength, kind, angle, eps), dtype=np.float64)

    r = xq[:, None, :] - xsrc[None, :, :]                       # (m,n,2)
    dist = np.maximum(np.sqrt(np.sum(r * r, axis=2)), eps)      # (m,n)
    coef = strength[None, :] / (dist * dist)
    is_vortex = (kind == _KIND_VORTEX)[None, :]
    ux = np.where(is_vortex, -r[..., 1], r[..., 0]) * coef
    uy = np.where(is_vortex, r[..., 0], r[..., 1]) * coef
    uniform = (kind == _KIND_UNIFORM)
    ux[:, uniform] = 0.0
    uy[:, uniform] = 0.0
    out[:, 0] = ux.sum(axis=1)
    out[:, 1] = uy.sum(axis=1)
    if uniform.any():
        out[:, 0] += float(np.sum(strength[uniform] * np.cos(angle[uniform])))
        out[:, 1] += float(np.sum(strength[uniform] * np.sin(angle[uniform])))
    return out


def velocity_at(source: SingularitySource, px: float, py: float, *, eps: float = R_EPS) -> Vector2:
    u = singularity_velocities([[px, py]], (source,), eps=eps)[0]
    return Vector2(float(u[0]), float(u[1]))


# ---------------------------
# Field evaluator
# ---------------------------
@dataclass(frozen=True, slots=True)
class FieldEvaluator:
    """Immutable snapshot of everything that shapes the field at one frame.

    Safe to share between threads: it holds a tuple of frozen sources and
    frozen settings, and evaluation never mutates it.
    """
    sources: tuple[SingularitySource, ...] = ()
    noise: NoiseSettings = field(default_factory=NoiseSettings)
    flow: FlowSettings = field(default_factory=FlowSettings)
    intensity: float = 1.0
    drift_rate: float = 0.5
    noise_gain: float = 0.5
    wave_gain: float = 1.0
    numba: NumbaConfig | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "sources", tuple(self.sources))
        object.__setattr__(self, "intensity", _finite_or(self.intensity, 0.0, "intensity"))

    def with_sources(self, sources: Sequence[SingularitySource]) -> FieldEvaluator:
        return replace(self, sources=tuple(sources))

    def with_intensity(self, intensity: float) -> FieldEvaluator:
        return replace(self, intensity=intensity)

    def velocities(self, xq: ArrayLike2D, time: float = 0.0) -> FloatArray:
        """Velocity at query points (M,2) and time ``time``."""
        xq = _as_float_array2(xq, "xq")
        u = singularity_velocities(xq, self.sources, numba=self.numba)
        if self.flow.enabled and self.flow.base_velocity > 0.0:
            th = math.radians(self.flow.base_angle)
            u[:, 0] += self.flow.base_velocity * math.cos(th)
            u[:, 1] += self.flow.base_velocity * math.sin(th)
        if self.intensity != 0.0:
            u += self.intensity * self._turbulence(xq[:, 0], xq[:, 1], float(time))
        return u

    def evaluate(self, px: float, py: float, time: float = 0.0) -> Vector2:
        u = self.velocities(np.array([[px, py]], dtype=np.float64), time)[0]
        return Vector2(float(u[0]), float(u[1]))

    def _turbulence(self, x: np.ndarray, y: np.ndarray, t: float) -> FloatArray:
        out = np.zeros((x.shape[0], 2), dtype=np.float64)
        shift = t * self.drift_rate
        if self.noise_gain != 0.0:
            out[:, 0] = self.noise_gain * NoiseField.sample(x + shift, y, self.noise)
            out[:, 1] = self.noise_gain * NoiseField.sample(x, y + NOISE_DECORRELATION + shift, self.noise)
        if self.wave_gain != 0.0:
            # slow travelling waves that keep the field moving between noise cells
            out[:, 0] += self.wave_gain * (
                0.3 * np.sin(t * 0.3 + x * 0.01 + y * 0.008)
                + 0.2 * np.cos(t * 0.7 + x * 0.005 - y * 0.012)
            )
            out[:, 1] += self.wave_gain * (
                0.3 * np.cos(t * 0.4 + y * 0.01 + x * 0.009)
                + 0.2 * np.sin(t * 0.6 - x * 0.007 + y * 0.011)
            )
        return out

    def sample_velocity_grid(
        self, xmin: float, xmax: float, ymin: float, ymax: float, nx: int, ny: int, time: float = 0.0
    ) -> tuple[FloatArray, FloatArray, FloatArray, FloatArray]:
        xs = np.linspace(xmin, xmax, nx)
        ys = np.linspace(ymin, ymax, ny)
        X, Y = np.meshgrid(xs, ys, indexing="xy")
        pts = np.stack([X.ravel(), Y.ravel()]).T
        UV = self.velocities(pts, time)
        U = UV[:, 0].reshape(ny, nx)
        V = UV[:, 1].reshape(ny, nx)
        return X, Y, U, V


# ---------------------------
# Source collection
# ---------------------------
class SourceManager:
    """Ordered, mutable collection of singularities with stable string ids."""

    def __init__(self, bounds: Bounds = DEFAULT_BOUNDS, *, seed: int | None = None) -> None:
        self._bounds: Bounds = tuple(float(b) for b in bounds)  # type: ignore[assignment]
        self._rng = np.random.default_rng(seed)
        self._sources: list[SingularitySource] = []
        self._next_id = 1

    @property
    def bounds(self) -> Bounds:
        return self._bounds

    def set_bounds(self, bounds: Bounds) -> None:
        """New area for random placement; existing sources keep their positions."""
        self._bounds = tuple(float(b) for b in bounds)  # type: ignore[assignment]

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self) -> Iterator[SingularitySource]:
        return iter(tuple(self._sources))

    def __contains__(self, source_id: object) -> bool:
        return any(s.id == source_id for s in self._sources)

    def add(
        self,
        type: SourceType,
        x: float | None = None,
        y: float | None = None,
        *,
        strength: float | None = None,
        angle: float = 0.0,
    ) -> str:
        if type not in SOURCE_TYPES:
            raise ValueError(f"Unknown source type: {type!r}")
        xmin, xmax, ymin, ymax = self._bounds
        if x is None:
            x = float(self._rng.uniform(xmin, xmax))
        if y is None:
            y = float(self._rng.uniform(ymin, ymax))
        if strength is None:
            strength = -50.0 if type == "sink" else 50.0
        sid = str(self._next_id)
        self._next_id += 1
        src = SingularitySource(
            id=sid,
            name=f"{_TYPE_NAMES[type]} {len(self._sources) + 1}",
            type=type,
            x=x,
            y=y,
            strength=strength,
            angle=angle,
        )
        self._sources.append(src)
        logger.debug("Added %s %s at (%.1f, %.1f)", type, sid, src.x, src.y)
        return sid

    def _index(self, source_id: str) -> int | None:
        for i, s in enumerate(self._sources):
            if s.id == source_id:
                return i
        return None

    def get(self, source_id: str) -> SingularitySource | None:
        i = self._index(source_id)
        return None if i is None else self._sources[i]

    def remove(self, source_id: str) -> bool:
        i = self._index(source_id)
        if i is None:
            logger.debug("remove: unknown source id %r", source_id)
            return False
        del self._sources[i]
        return True

    def update(self, source_id: str, partial: Mapping[str, Any] | None = None, **changes: Any) -> bool:
        """Merge ``changes`` into a source. Unknown ids return False before any validation."""
        i = self._index(source_id)
        if i is None:
            logger.debug("update: unknown source id %r", source_id)
            return False
        updates = {**(partial or {}), **changes}
        if "id" in updates and updates["id"] != source_id:
            raise ValueError("Source id cannot be changed.")
        updates.pop("id", None)
        unknown = set(updates) - {f.name for f in fields(SingularitySource)}
        if unknown:
            raise ValueError(f"Unknown source fields: {sorted(unknown)}")
        self._sources[i] = replace(self._sources[i], **updates)
        return True

    def move(self, source_id: str, x: float, y: float) -> bool:
        return self.update(source_id, x=x, y=y)

    def find_near(self, x: float, y: float, radius: float = 15.0) -> SingularitySource | None:
        """Topmost (last added) source within ``radius`` of (x, y)."""
        for s in reversed(self._sources):
            if math.hypot(x - s.x, y - s.y) <= radius:
                return s
        return None

    def list(self) -> list[SingularitySource]:
        return list(self._sources)

    def snapshot(self) -> tuple[SingularitySource, ...]:
        return tuple(self._sources)

    def clear(self) -> None:
        self._sources.clear()

    def restore(self, sources: Sequence[SingularitySource]) -> None:
        """Replace the collection, keeping ids; the counter moves past every restored id."""
        ids = [s.id for s in sources]
        if len(set(ids)) != len(ids):
            raise ValueError("Duplicate source ids.")
        self._sources = list(sources)
        numeric = [int(i) for i in ids if i.isdigit()]
        self._next_id = max([self._next_id, *(n + 1 for n in numeric)])

    def evaluator(
        self,
        noise: NoiseSettings | None = None,
        flow: FlowSettings | None = None,
        intensity: float = 1.0,
        **kwargs: Any,
    ) -> FieldEvaluator:
        return FieldEvaluator(
            sources=self.snapshot(),
            noise=noise or NoiseSettings(),
            flow=flow or FlowSettings(),
            intensity=intensity,
            **kwargs,
        )
