
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Any

import numpy as np

try:
    import plotly.graph_objects as go
    _PLOTLY = True
except Exception:  # pragma: no cover
    _PLOTLY = False

from .api import FrameGeometry, Scene
from .turbulence2d import VisualizationMode


@dataclass(slots=True)
class PlotlySnapshotConfig:
    nx: int = 120
    ny: int = 80
    show_speed: bool = True
    show_sources: bool = True
    colorscale: str = "Viridis"
    norm: Literal["linear", "log"] = "linear"
    cbar_label: str = "Speed"


def _polyline_xy(lines: list[np.ndarray]) -> tuple[list[float | None], list[float | None]]:
    """Join polylines into one Scatter trace separated by None gaps."""
    xs: list[float | None] = []
    ys: list[float | None] = []
    for line in lines:
        xs.extend(line[:, 0].tolist())
        ys.extend(line[:, 1].tolist())
        xs.append(None)
        ys.append(None)
    return xs, ys


def _apply_norm(speed: np.ndarray, mode: Literal["linear", "log"]) -> tuple[np.ndarray, str]:
    if mode == "linear":
        return speed, "linear"
    # log
    eps = max(1e-12, float(speed.max()) * 1e-6)
    return np.log10(speed + eps), "log10"


def _geometry_traces(geo: FrameGeometry) -> list[Any]:
    if geo.mode is VisualizationMode.PARTICLE:
        return [go.Scattergl(x=geo.particles[:, 0], y=geo.particles[:, 1], mode="markers",
                             marker=dict(size=2, color="black"), name="particles")]
    lines = list(geo.glyphs) if geo.mode is VisualizationMode.VECTOR else geo.streamlines
    qx, qy = _polyline_xy(lines)
    return [go.Scatter(x=qx, y=qy, mode="lines", line=dict(width=1, color="black"), name=geo.mode.value)]


def plot_snapshot_interactive(
    scene: Scene,
    *,
    config: PlotlySnapshotConfig | None = None,
    save_html: str | None = None,
) -> Any:
    """Interactive snapshot with Plotly (pan/zoom, hover). Returns the Figure."""
    if not _PLOTLY:
        raise RuntimeError("plotly is not installed. `pip install plotly`")

    cfg = config or PlotlySnapshotConfig()
    xmin, xmax, ymin, ymax = scene.bounds
    ev = scene.evaluator()
    geo = scene.geometry(ev)

    fig = go.Figure()
    if cfg.show_speed:
        X, Y, U, V = ev.sample_velocity_grid(xmin, xmax, ymin, ymax, cfg.nx, cfg.ny, scene.time)
        z, norm_name = _apply_norm(np.sqrt(U * U + V * V), cfg.norm)
        fig.add_trace(go.Heatmap(
            x=X[0, :], y=Y[:, 0], z=z,
            colorscale=cfg.colorscale,
            colorbar=dict(title=f"{cfg.cbar_label} ({norm_name})"),
            zsmooth="best", opacity=0.6,
        ))

    for trace in _geometry_traces(geo):
        fig.add_trace(trace)

    if cfg.show_sources and geo.sources:
        fig.add_trace(go.Scatter(
            x=[s.x for s in geo.sources], y=[s.y for s in geo.sources], mode="markers+text",
            text=[s.name for s in geo.sources], textposition="top center",
            marker=dict(size=10, color="black", line=dict(width=1.5, color="white")),
            customdata=[[s.type, s.strength] for s in geo.sources],
            hovertemplate="%{text}<br>type=%{customdata[0]}<br>strength=%{customdata[1]}<extra></extra>",
            name="sources",
        ))

    fig.update_layout(
        title=f"{geo.mode.value} field — t = {geo.time:.2f}",
        xaxis=dict(scaleanchor="y", scaleratio=1, range=[xmin, xmax]),
        yaxis=dict(range=[ymax, ymin]),
        template="plotly_white",
        legend=dict(x=0.01, y=0.99),
    )

    if save_html:
        fig.write_html(save_html, include_plotlyjs="cdn")
    return fig


def run_animation_interactive(
    scene: Scene,
    *,
    steps: int,
    dt: float = 1.0,
    save_html: str | None = None,
) -> Any:
    """Interactive animation using Plotly frames. Returns the Figure with controls."""
    if not _PLOTLY:
        raise RuntimeError("plotly is not installed. `pip install plotly`")

    xmin, xmax, ymin, ymax = scene.bounds
    base_fig = go.Figure(data=_geometry_traces(scene.geometry()))
    base_fig.update_layout(
        title=f"t = {scene.time:.2f}",
        xaxis=dict(scaleanchor="y", scaleratio=1, range=[xmin, xmax]),
        yaxis=dict(range=[ymax, ymin]),
        template="plotly_white",
        updatemenus=[
            dict(
                type="buttons",
                buttons=[
                    dict(label="Play", method="animate", args=[None, {"fromcurrent": True}]),
                    dict(label="Pause", method="animate", args=[[None], {"mode": "immediate"}]),
                ],
                x=0.02, y=1.07, xanchor="left", yanchor="top",
            )
        ],
    )

    frames = []
    slider_steps = []
    for k in range(steps):
        geo = scene.frame(dt)
        frames.append(go.Frame(data=_geometry_traces(geo), name=f"{k}"))
        slider_steps.append(dict(method="animate", label=str(k), args=[[f"{k}"], {"mode": "immediate"}]))

    base_fig.frames = frames
    base_fig.update_layout(sliders=[dict(active=0, steps=slider_steps, x=0.1, xanchor="left", len=0.8)])

    if save_html:
        base_fig.write_html(save_html, include_plotlyjs="cdn")
    return base_fig
