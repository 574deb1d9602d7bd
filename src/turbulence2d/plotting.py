from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
import matplotlib.pyplot as plt
from matplotlib import animation
from matplotlib.collections import LineCollection

from .api import FrameGeometry, Scene
from .turbulence2d import Bounds, SingularitySource, VisualizationMode

_SOURCE_COLORS = {"vortex": "tab:purple", "source": "tab:red", "sink": "tab:blue", "uniform": "tab:green"}


# ------------------------------
# Plot helpers
# ------------------------------
@dataclass(slots=True)
class AnimationConfig:
    frames: int = 300
    dt: float = 1.0
    figsize: tuple[float, float] = (9.0, 6.0)
    show_sources: bool = True
    color: str = "black"
    particle_size: float = 2.0


def _segments(geometry: FrameGeometry) -> list[np.ndarray]:
    if geometry.mode is VisualizationMode.VECTOR:
        return list(geometry.glyphs)
    return list(geometry.streamlines)


def _draw_sources(ax: Any, sources: tuple[SingularitySource, ...]) -> Any:
    if not sources:
        return None
    xy = np.array([[s.x, s.y] for s in sources])
    colors = [_SOURCE_COLORS[s.type] for s in sources]
    sc = ax.scatter(xy[:, 0], xy[:, 1], s=40.0, c=colors, edgecolors="k", linewidths=0.5, zorder=3)
    for s in sources:
        ax.annotate(s.name, (s.x, s.y), textcoords="offset points", xytext=(0, 9), ha="center", fontsize=7)
    return sc


def _setup_axes(ax: Any, bounds: Bounds) -> None:
    xmin, xmax, ymin, ymax = bounds
    ax.set_xlim(xmin, xmax)
    # screen convention: y grows downward
    ax.set_ylim(ymax, ymin)
    ax.set_aspect("equal", adjustable="box")
    ax.set_xticks([])
    ax.set_yticks([])


def plot_snapshot(
    scene: Scene,
    *,
    geometry: FrameGeometry | None = None,
    figsize: tuple[float, float] = (9.0, 6.0),
    show: bool = True,
) -> Any:
    """Draw the scene's current geometry; returns the Figure."""
    geo = geometry or scene.geometry()
    fig, ax = plt.subplots(figsize=figsize)
    if geo.mode is VisualizationMode.PARTICLE:
        ax.scatter(geo.particles[:, 0], geo.particles[:, 1], s=2.0, c="black", marker=".")
    else:
        lw = 0.5 if geo.mode is VisualizationMode.VECTOR else 0.8
        ax.add_collection(LineCollection(_segments(geo), colors="black", linewidths=lw, alpha=0.85))
    if scene.turbulence.show_sources:
        _draw_sources(ax, geo.sources)
    _setup_axes(ax, scene.bounds)
    ax.set_title(f"{geo.mode.value} field — t = {geo.time:.2f}, {geo.shape_count} shapes")
    if show:
        plt.show()
    return fig


def run_animation(
    scene: Scene,
    *,
    config: AnimationConfig | None = None,
    save_path: str | None = None,
    fps: int = 30,
    show: bool = True,
) -> Any:
    """Animate ``scene`` frame by frame; returns the FuncAnimation."""
    if config is None:
        config = AnimationConfig()

    geo = scene.geometry()
    fig, ax = plt.subplots(figsize=config.figsize)
    lines: LineCollection | None = None
    dots: Any | None = None
    if geo.mode is VisualizationMode.PARTICLE:
        dots = ax.scatter(geo.particles[:, 0], geo.particles[:, 1], s=config.particle_size,
                          c=config.color, marker=".")
    else:
        lines = LineCollection(_segments(geo), colors=config.color, linewidths=0.6, alpha=0.85)
        ax.add_collection(lines)
    src_sc = _draw_sources(ax, geo.sources) if config.show_sources else None
    _setup_axes(ax, scene.bounds)
    ttl = ax.set_title(f"t = {scene.time:.2f}")

    def _update(_i: int) -> list[Any]:
        g = scene.frame(config.dt)
        if dots is not None:
            dots.set_offsets(g.particles)
        if lines is not None:
            lines.set_segments(_segments(g))
        if src_sc is not None and g.sources:
            src_sc.set_offsets(np.array([[s.x, s.y] for s in g.sources]))
        ttl.set_text(f"t = {g.time:.2f}")
        return [ttl]

    anim = animation.FuncAnimation(fig, _update, frames=config.frames, interval=1000 / fps, blit=False)

    if save_path:
        if save_path.lower().endswith(".mp4"):
            Writer = animation.FFMpegWriter
            writer = Writer(fps=fps, metadata={"artist": "turbulence2d"}, bitrate=1800)
            anim.save(save_path, writer=writer, dpi=150)
        elif save_path.lower().endswith(".gif"):
            anim.save(save_path, writer="pillow", fps=fps, dpi=100)
        else:
            raise ValueError("Unsupported extension. Use .mp4 or .gif")

    if show:
        plt.show()
    return anim
