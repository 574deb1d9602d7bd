
from __future__ import annotations

from dataclasses import dataclass, field, fields, asdict, replace
from typing import Literal, Mapping, Any

import logging
import numpy as np

from .turbulence2d import (
    AnimationState,
    Bounds,
    DEFAULT_BOUNDS,
    FieldEvaluator,
    FlowSettings,
    FloatArray,
    NoiseSettings,
    NumbaConfig,
    SingularitySource,
    SourceManager,
    TurbulenceSettings,
    VisualizationMode,
)
from .tracing import ParticleAdvector, StreamlineIntegrator, glyph_segments, plan_samples

logger = logging.getLogger(__name__)


# ----------------------
# Configuration objects
# ----------------------

@dataclass(slots=True)
class SceneConfig:
    """Scene-wide options that are not user sliders.

    Validates the domain and the particle policy.
    """
    bounds: Bounds = DEFAULT_BOUNDS
    seed: int | None = None
    max_age: int = 200
    boundary: Literal["wrap", "respawn"] = "wrap"
    integrator: Literal["euler", "rk2", "rk4"] = "euler"
    drift_rate: float = 0.5
    numba: NumbaConfig = field(default_factory=NumbaConfig)

    def __post_init__(self) -> None:
        self.bounds = tuple(float(b) for b in self.bounds)  # type: ignore[assignment]
        xmin, xmax, ymin, ymax = self.bounds
        if not (xmax > xmin and ymax > ymin):
            raise ValueError(f"bounds must satisfy xmin<xmax and ymin<ymax, got {self.bounds}")
        if self.boundary not in {"wrap", "respawn"}:
            raise ValueError(f"Unknown boundary policy: {self.boundary}")
        if self.max_age < 1:
            logger.warning("max_age=%r clamped to 1", self.max_age)
            self.max_age = 1


@dataclass(slots=True)
class FrameGeometry:
    """Renderer-agnostic output of one frame.

    Only the member matching ``mode`` is populated; the others are empty.
    """
    mode: VisualizationMode
    time: float
    glyphs: FloatArray = field(default_factory=lambda: np.zeros((0, 2, 2)))
    streamlines: list[FloatArray] = field(default_factory=list)
    particles: FloatArray = field(default_factory=lambda: np.zeros((0, 2)))
    sources: tuple[SingularitySource, ...] = ()

    @property
    def shape_count(self) -> int:
        if self.mode is VisualizationMode.VECTOR:
            return int(self.glyphs.shape[0])
        if self.mode is VisualizationMode.STREAMLINE:
            return len(self.streamlines)
        return int(self.particles.shape[0])


# ----------------------
# Scene (frame driver)
# ----------------------

class Scene:
    """Owns sources, settings snapshots and the animation clock.

    ``frame(dt)`` advances the clock once, snapshots the field, and returns
    the geometry for the active visualization mode.
    """

    def __init__(
        self,
        config: SceneConfig | None = None,
        *,
        turbulence: TurbulenceSettings | None = None,
        noise: NoiseSettings | None = None,
        flow: FlowSettings | None = None,
        animation: AnimationState | None = None,
    ) -> None:
        self.config = config or SceneConfig()
        self.turbulence = turbulence or TurbulenceSettings()
        self.noise = noise or NoiseSettings(seed=float(np.random.default_rng(self.config.seed).uniform(0.0, 1000.0)))
        self.flow = flow or FlowSettings()
        self.animation = animation or AnimationState()
        self.sources = SourceManager(self.config.bounds, seed=self.config.seed)
        self.streamlines = StreamlineIntegrator(
            self.turbulence.streamline_steps, self.turbulence.streamline_step_size, seed=self.config.seed
        )
        self._particles: ParticleAdvector | None = None

    @property
    def bounds(self) -> Bounds:
        return self.config.bounds

    @property
    def time(self) -> float:
        return self.animation.time

    @property
    def particles(self) -> ParticleAdvector:
        if self._particles is None:
            self._particles = ParticleAdvector(
                self.turbulence.line_count,
                self.bounds,
                max_age=self.config.max_age,
                boundary=self.config.boundary,
                integrator=self.config.integrator,
                seed=self.config.seed,
            )
        return self._particles

    # -------- partial-merge setters --------
    def update_noise(self, partial: Mapping[str, Any] | None = None, **changes: Any) -> NoiseSettings:
        self.noise = self.noise.merged(partial, **changes)
        return self.noise

    def update_flow(self, partial: Mapping[str, Any] | None = None, **changes: Any) -> FlowSettings:
        self.flow = self.flow.merged(partial, **changes)
        return self.flow

    def update_turbulence(self, partial: Mapping[str, Any] | None = None, **changes: Any) -> TurbulenceSettings:
        old = self.turbulence
        self.turbulence = old.merged(partial, **changes)
        self.streamlines.steps = self.turbulence.streamline_steps
        self.streamlines.step_size = self.turbulence.streamline_step_size
        if self._particles is not None and self.turbulence.line_count != old.line_count:
            self._particles.reconfigure(self.turbulence.line_count)
        return self.turbulence

    def update_animation(self, partial: Mapping[str, Any] | None = None, **changes: Any) -> AnimationState:
        updates = {**(partial or {}), **changes}
        known = {f.name for f in fields(AnimationState)}
        unknown = set(updates) - known
        if unknown:
            raise ValueError(f"Unknown AnimationState fields: {sorted(unknown)}")
        for key, value in updates.items():
            setattr(self.animation, key, value)
        return self.animation

    def reset_seeds(self, seed: int | None = None) -> None:
        """Re-randomize streamline seeds and the particle population."""
        self.streamlines.reset(seed)
        self._particles = None

    def resize(self, bounds: Bounds) -> Bounds:
        """Change the drawing area. Sources stay put; seeds and particles are re-planned."""
        self.config = replace(self.config, bounds=bounds)
        self.sources.set_bounds(self.config.bounds)
        self.streamlines.reset(self.config.seed)
        if self._particles is not None:
            self._particles.set_bounds(self.config.bounds)
        logger.debug("Scene resized to %s", self.config.bounds)
        return self.config.bounds

    def reset(self) -> None:
        """Restore default settings, drop all sources and rewind the clock. Bounds are kept."""
        self.turbulence = TurbulenceSettings()
        self.noise = NoiseSettings(seed=float(np.random.default_rng(self.config.seed).uniform(0.0, 1000.0)))
        self.flow = FlowSettings()
        self.animation = AnimationState()
        self.sources.clear()
        self.streamlines = StreamlineIntegrator(
            self.turbulence.streamline_steps, self.turbulence.streamline_step_size, seed=self.config.seed
        )
        self._particles = None

    # -------- evaluation --------
    def evaluator(self) -> FieldEvaluator:
        """Field snapshot for the current sources and settings."""
        return FieldEvaluator(
            sources=self.sources.snapshot(),
            noise=self.noise,
            flow=self.flow,
            intensity=self.animation.intensity,
            drift_rate=self.config.drift_rate,
            numba=self.config.numba,
        )

    def geometry(self, evaluator: FieldEvaluator | None = None) -> FrameGeometry:
        """Geometry at the current time without advancing the clock."""
        ev = evaluator or self.evaluator()
        t = self.animation.time
        mode = self.turbulence.mode
        shown = ev.sources if self.turbulence.show_sources else ()
        geo = FrameGeometry(mode=mode, time=t, sources=shown)
        if mode is VisualizationMode.VECTOR:
            pts = plan_samples(self.turbulence.line_count, self.bounds)
            geo.glyphs = glyph_segments(pts, ev, t, self.turbulence.line_length)
        elif mode is VisualizationMode.STREAMLINE:
            lines = self.streamlines.trace_all(self.turbulence.streamline_count, ev, self.bounds, time=t)
            # very short traces render as dots; drop them
            geo.streamlines = [p for p in lines if p.shape[0] > 5]
        else:
            geo.particles = self.particles.positions
        return geo

    def frame(self, dt: float = 1.0) -> FrameGeometry:
        """Advance one animation tick and return its geometry."""
        self.animation.advance(dt)
        ev = self.evaluator()
        if self.turbulence.mode is VisualizationMode.PARTICLE and self.animation.is_animating:
            self.particles.step(ev, dt * self.animation.speed, time=self.animation.time)
        return self.geometry(ev)

    def diagnostics(self) -> dict[str, Any]:
        ev = self.evaluator()
        pts = plan_samples(min(self.turbulence.line_count, 400), self.bounds)
        speed = np.linalg.norm(ev.velocities(pts, self.time), axis=1) if pts.size else np.zeros(0)
        return {
            "time": self.time,
            "mode": self.turbulence.mode.value,
            "n_sources": len(self.sources),
            "mean_speed": float(speed.mean()) if speed.size else 0.0,
            "max_speed": float(speed.max(initial=0.0)),
        }


# ----------------------
# Checkpoint I/O (.npz)
# ----------------------

_SCHEMA_VERSION = 1


def save_npz(scene: Scene, path: str, metadata: Mapping[str, Any] | None = None) -> None:
    """Save a scene to .npz with schema versioning and basic metadata.

    Arrays stored:
      - source_xy:       float64 [N,2]
      - source_strength: float64 [N]
      - source_angle:    float64 [N]
    Object entries:
      - source_meta (ids, names, types), settings dicts, config dict
    Scalars:
      - time, schema_version
    """
    srcs = scene.sources.list()
    turb = asdict(scene.turbulence)
    turb["mode"] = scene.turbulence.mode.value
    cfg = {
        "bounds": scene.config.bounds,
        "seed": scene.config.seed,
        "max_age": scene.config.max_age,
        "boundary": scene.config.boundary,
        "integrator": scene.config.integrator,
        "drift_rate": scene.config.drift_rate,
    }
    data: dict[str, Any] = {
        "source_xy": np.array([[s.x, s.y] for s in srcs], dtype=np.float64).reshape(-1, 2),
        "source_strength": np.array([s.strength for s in srcs], dtype=np.float64),
        "source_angle": np.array([s.angle for s in srcs], dtype=np.float64),
        "source_meta": np.array([(s.id, s.name, s.type) for s in srcs] or [], dtype=object),
        "noise": np.array(asdict(scene.noise), dtype=object),
        "flow": np.array(asdict(scene.flow), dtype=object),
        "turbulence": np.array(turb, dtype=object),
        "animation": np.array(asdict(scene.animation), dtype=object),
        "config": np.array(cfg, dtype=object),
        "time": float(scene.time),
        "schema_version": int(_SCHEMA_VERSION),
    }
    if metadata:
        data["metadata"] = np.array(dict(metadata), dtype=object)

    np.savez(path, **data)
    logger.info("Saved scene with %d sources to %s", len(srcs), path)


def load_npz(path: str) -> Scene:
    """Load a scene from .npz and rebuild its sources with their original ids.

    Unknown/extra fields are ignored. Requires a compatible schema_version.
    """
    with np.load(path, allow_pickle=True) as npz:
        schema = int(npz["schema_version"]) if "schema_version" in npz else 0
        if schema != _SCHEMA_VERSION:
            raise ValueError(f"Incompatible schema_version {schema}; expected {_SCHEMA_VERSION}.")

        cfg = dict(npz["config"].item())
        config = SceneConfig(
            bounds=tuple(cfg["bounds"]),
            seed=cfg.get("seed"),
            max_age=int(cfg.get("max_age", 200)),
            boundary=cfg.get("boundary", "wrap"),
            integrator=cfg.get("integrator", "euler"),
            drift_rate=float(cfg.get("drift_rate", 0.5)),
        )
        turb = dict(npz["turbulence"].item())
        scene = Scene(
            config,
            turbulence=TurbulenceSettings(**turb),
            noise=NoiseSettings(**dict(npz["noise"].item())),
            flow=FlowSettings(**dict(npz["flow"].item())),
            animation=AnimationState(**dict(npz["animation"].item())),
        )
        xy = np.asarray(npz["source_xy"], dtype=np.float64).reshape(-1, 2)
        strength = np.asarray(npz["source_strength"], dtype=np.float64)
        angle = np.asarray(npz["source_angle"], dtype=np.float64)
        meta = list(npz["source_meta"])
        scene.sources.restore([
            SingularitySource(
                id=str(m[0]), name=str(m[1]), type=str(m[2]),  # type: ignore[arg-type]
                x=float(p[0]), y=float(p[1]), strength=float(g), angle=float(a),
            )
            for m, p, g, a in zip(meta, xy, strength, angle)
        ])
        scene.animation.time = float(npz["time"]) if "time" in npz else 0.0
    logger.info("Loaded scene with %d sources from %s", len(scene.sources), path)
    return scene
