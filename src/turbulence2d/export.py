"""SVG serialization of frame geometry.

One shape element is written per glyph (``<line>``), streamline (``<path>``)
and particle (``<circle>``). Sources are drawn on top as a filled marker with
a type symbol and a name label.
"""
from __future__ import annotations

from dataclasses import dataclass
from collections.abc import Sequence

import logging
import xml.etree.ElementTree as ET
import numpy as np

from .api import FrameGeometry
from .turbulence2d import Bounds, FloatArray, SingularitySource, TurbulenceSettings

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"
SOURCE_SYMBOLS = {"vortex": "⟲", "source": "+", "sink": "−", "uniform": "→"}


@dataclass(slots=True)
class SvgStyle:
    stroke: str = "black"
    background: str = "white"
    glyph_width: float = 0.5
    glyph_opacity: float = 0.8
    streamline_width: float = 0.8
    streamline_opacity: float = 0.9
    particle_radius: float = 1.0
    particle_opacity: float = 0.8
    source_radius: float = 6.0
    precision: int = 2


def _fmt(v: float, precision: int) -> str:
    s = f"{float(v):.{precision}f}"
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return "0" if s == "-0" else s


def streamline_path(points: FloatArray, precision: int = 2) -> str:
    """Path data through ``points`` smoothed with quadratic midpoint curves."""
    pts = np.asarray(points, dtype=np.float64)
    f = lambda v: _fmt(v, precision)  # noqa: E731
    d = [f"M{f(pts[0, 0])},{f(pts[0, 1])}"]
    if pts.shape[0] == 2:
        d.append(f"L{f(pts[1, 0])},{f(pts[1, 1])}")
    for j in range(1, pts.shape[0] - 1):
        cx, cy = pts[j]
        mx, my = 0.5 * (pts[j] + pts[j + 1])
        d.append(f"Q{f(cx)},{f(cy)} {f(mx)},{f(my)}")
    return " ".join(d)


def build_svg(
    geometry: FrameGeometry,
    bounds: Bounds,
    *,
    sources: Sequence[SingularitySource] | None = None,
    style: SvgStyle | None = None,
    settings: TurbulenceSettings | None = None,
) -> ET.Element:
    st = style or SvgStyle()
    p = st.precision
    xmin, xmax, ymin, ymax = bounds
    w, h = xmax - xmin, ymax - ymin
    root = ET.Element("svg", {
        "xmlns": SVG_NS,
        "width": _fmt(w, p),
        "height": _fmt(h, p),
        "viewBox": f"{_fmt(xmin, p)} {_fmt(ymin, p)} {_fmt(w, p)} {_fmt(h, p)}",
    })
    ET.SubElement(root, "rect", {
        "x": _fmt(xmin, p), "y": _fmt(ymin, p), "width": _fmt(w, p), "height": _fmt(h, p),
        "fill": st.background,
    })

    for (x0, y0), (x1, y1) in geometry.glyphs:
        ET.SubElement(root, "line", {
            "x1": _fmt(x0, p), "y1": _fmt(y0, p), "x2": _fmt(x1, p), "y2": _fmt(y1, p),
            "stroke": st.stroke, "stroke-width": str(st.glyph_width), "opacity": str(st.glyph_opacity),
        })
    for line in geometry.streamlines:
        if len(line) < 2:
            continue
        ET.SubElement(root, "path", {
            "d": streamline_path(line, p), "stroke": st.stroke, "fill": "none",
            "stroke-width": str(st.streamline_width), "opacity": str(st.streamline_opacity),
        })
    for x, y in geometry.particles:
        ET.SubElement(root, "circle", {
            "cx": _fmt(x, p), "cy": _fmt(y, p), "r": str(st.particle_radius),
            "fill": st.stroke, "opacity": str(st.particle_opacity),
        })

    if settings is not None and not settings.show_sources:
        sources = None
    for s in (sources if sources is not None else ()):
        r = st.source_radius
        ET.SubElement(root, "circle", {
            "cx": _fmt(s.x, p), "cy": _fmt(s.y, p), "r": str(r),
            "fill": "black", "stroke": "white", "stroke-width": "2",
        })
        sym = ET.SubElement(root, "text", {
            "x": _fmt(s.x, p), "y": _fmt(s.y + 3, p), "text-anchor": "middle",
            "fill": "white", "font-size": "10", "font-family": "sans-serif",
        })
        sym.text = SOURCE_SYMBOLS[s.type]
        label = ET.SubElement(root, "text", {
            "x": _fmt(s.x, p), "y": _fmt(s.y + r + 12, p), "text-anchor": "middle",
            "fill": "black", "font-size": "10", "font-family": "sans-serif",
        })
        label.text = s.name
    return root


def to_svg(
    geometry: FrameGeometry,
    bounds: Bounds,
    *,
    sources: Sequence[SingularitySource] | None = None,
    style: SvgStyle | None = None,
    settings: TurbulenceSettings | None = None,
) -> str:
    """Serialize ``geometry`` to an SVG document string."""
    root = build_svg(geometry, bounds, sources=sources, style=style, settings=settings)
    ET.indent(root, space="  ")
    return ET.tostring(root, encoding="unicode")


def save_svg(
    path: str,
    geometry: FrameGeometry,
    bounds: Bounds,
    *,
    sources: Sequence[SingularitySource] | None = None,
    style: SvgStyle | None = None,
    settings: TurbulenceSettings | None = None,
) -> None:
    doc = to_svg(geometry, bounds, sources=sources, style=style, settings=settings)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(doc)
    logger.info("Wrote %d shapes to %s", geometry.shape_count, path)
