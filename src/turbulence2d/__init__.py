from .turbulence2d import (
    Vector2,
    NoiseSettings,
    FlowSettings,
    TurbulenceSettings,
    VisualizationMode,
    AnimationState,
    NumbaConfig,
    NoiseField,
    SingularitySource,
    FieldEvaluator,
    SourceManager,
    singularity_velocities,
    velocity_at,
)
from .tracing import (
    trace,
    trace_many,
    StreamlineIntegrator,
    ParticleAdvector,
    plan_samples,
    plan_seeds,
    glyph_segments,
)
from .api import (
    save_npz, load_npz,
    Scene, SceneConfig, FrameGeometry,
)
from .export import to_svg, save_svg, SvgStyle
from .plotting import AnimationConfig, plot_snapshot, run_animation
from .plotly_viz import (
    plot_snapshot_interactive,
    run_animation_interactive,
    PlotlySnapshotConfig,
)
from .logging_config import setup_logging

__all__ = [
    "Vector2", "NoiseSettings", "FlowSettings", "TurbulenceSettings", "VisualizationMode",
    "AnimationState", "NumbaConfig",
    "NoiseField", "SingularitySource", "FieldEvaluator", "SourceManager",
    "singularity_velocities", "velocity_at",
    "trace", "trace_many", "StreamlineIntegrator", "ParticleAdvector",
    "plan_samples", "plan_seeds", "glyph_segments",
    "save_npz", "load_npz", "Scene", "SceneConfig", "FrameGeometry",
    "to_svg", "save_svg", "SvgStyle",
    "AnimationConfig", "plot_snapshot", "run_animation",
    "plot_snapshot_interactive", "run_animation_interactive", "PlotlySnapshotConfig",
    "setup_logging",
]
