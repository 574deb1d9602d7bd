from __future__ import annotations

import xml.etree.ElementTree as ET

import numpy as np
import pytest

from turbulence2d import (
    FrameGeometry,
    Scene,
    SceneConfig,
    TurbulenceSettings,
    VisualizationMode,
    load_npz,
    plan_samples,
    save_npz,
    save_svg,
    to_svg,
)

NS = "{http://www.w3.org/2000/svg}"


def make_scene(mode: VisualizationMode, line_count: int = 600) -> Scene:
    scene = Scene(SceneConfig(seed=0), turbulence=TurbulenceSettings(line_count=line_count, mode=mode))
    scene.sources.add("vortex", 300.0, 300.0)
    scene.sources.add("sink", 900.0, 500.0)
    return scene


def count(svg: str, tag: str) -> int:
    return len(ET.fromstring(svg).findall(f"{NS}{tag}"))


def test_plan_samples_grid() -> None:
    pts = plan_samples(2000, (0.0, 1200.0, 0.0, 800.0))
    spacing = np.sqrt(1200.0 * 800.0 / 2000)
    assert pts.shape == (int(1200 // spacing) * int(800 // spacing), 2)
    assert pts[0] == pytest.approx([spacing / 2, spacing / 2])
    assert np.array_equal(pts, plan_samples(2000, (0.0, 1200.0, 0.0, 800.0)))


def test_plan_samples_jitter_stays_in_cell() -> None:
    base = plan_samples(300, (0.0, 600.0, 0.0, 400.0))
    jit = plan_samples(300, (0.0, 600.0, 0.0, 400.0), jitter=1.0, seed=1)
    spacing = np.sqrt(600.0 * 400.0 / 300)
    assert np.all(np.abs(jit - base) <= spacing / 2 + 1e-9)


def test_vector_frame_produces_bounded_glyphs() -> None:
    scene = make_scene(VisualizationMode.VECTOR)
    geo = scene.frame(1.0)
    assert geo.mode is VisualizationMode.VECTOR
    assert geo.glyphs.ndim == 3 and geo.glyphs.shape[1:] == (2, 2)
    lengths = np.linalg.norm(geo.glyphs[:, 1] - geo.glyphs[:, 0], axis=1)
    assert np.all(lengths <= scene.turbulence.line_length + 1e-9)
    assert geo.streamlines == [] and geo.particles.shape == (0, 2)


def test_streamline_seeds_stable_between_frames() -> None:
    scene = make_scene(VisualizationMode.STREAMLINE, line_count=3000)
    scene.update_animation(is_animating=False)
    a = scene.frame(1.0)
    b = scene.frame(1.0)
    assert len(a.streamlines) == len(b.streamlines)
    for la, lb in zip(a.streamlines, b.streamlines):
        assert np.array_equal(la, lb)


def test_particle_frames_keep_population() -> None:
    scene = make_scene(VisualizationMode.PARTICLE, line_count=300)
    for _ in range(5):
        geo = scene.frame(1.0)
    assert geo.particles.shape == (300, 2)
    assert scene.time == pytest.approx(5.0)
    scene.update_turbulence(line_count=120)
    assert scene.frame(1.0).particles.shape == (120, 2)


def test_frame_snapshots_sources() -> None:
    scene = make_scene(VisualizationMode.VECTOR)
    ev = scene.evaluator()
    scene.sources.clear()
    assert len(ev.sources) == 2
    assert scene.geometry().sources == ()


def test_svg_has_one_shape_per_element() -> None:
    scene = make_scene(VisualizationMode.VECTOR)
    geo = scene.frame(1.0)
    svg = to_svg(geo, scene.bounds, sources=geo.sources)
    assert count(svg, "line") == geo.glyphs.shape[0]
    # background + nothing else
    assert count(svg, "rect") == 1
    # one marker per source
    assert count(svg, "circle") == 2
    assert count(svg, "text") == 4


def test_svg_streamlines_and_particles() -> None:
    lines = [np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 1.0]]), np.array([[5.0, 5.0], [6.0, 5.0]])]
    geo = FrameGeometry(mode=VisualizationMode.STREAMLINE, time=0.0, streamlines=lines)
    svg = to_svg(geo, (0.0, 10.0, 0.0, 10.0))
    paths = ET.fromstring(svg).findall(f"{NS}path")
    assert len(paths) == 2
    assert paths[0].get("d") == "M0,0 Q1,1 1.5,1"
    assert paths[1].get("d") == "M5,5 L6,5"

    pts = FrameGeometry(mode=VisualizationMode.PARTICLE, time=0.0, particles=np.array([[1.0, 2.0], [3.0, 4.0]]))
    assert count(to_svg(pts, (0.0, 10.0, 0.0, 10.0)), "circle") == 2


def test_save_svg_writes_file(tmp_path) -> None:
    scene = make_scene(VisualizationMode.STREAMLINE, line_count=2000)
    geo = scene.frame(1.0)
    out = tmp_path / "field.svg"
    save_svg(str(out), geo, scene.bounds)
    root = ET.parse(out).getroot()
    assert root.tag == f"{NS}svg"
    assert len(root.findall(f"{NS}path")) == len(geo.streamlines)


def test_npz_round_trip(tmp_path) -> None:
    scene = make_scene(VisualizationMode.PARTICLE)
    scene.sources.add("uniform", strength=2.0, angle=45.0)
    scene.update_noise(seed=12.5, octaves=5)
    scene.frame(2.0)
    path = tmp_path / "scene.npz"
    save_npz(scene, str(path), metadata={"note": "test"})
    loaded = load_npz(str(path))
    assert loaded.sources.list() == scene.sources.list()
    assert loaded.noise == scene.noise
    assert loaded.flow == scene.flow
    assert loaded.turbulence == scene.turbulence
    assert loaded.time == pytest.approx(scene.time)
    assert loaded.bounds == scene.bounds
    # counter continues past restored ids
    assert loaded.sources.add("vortex") not in {s.id for s in scene.sources.list()}


def test_npz_rejects_other_schema(tmp_path) -> None:
    path = tmp_path / "bad.npz"
    np.savez(str(path), schema_version=99)
    with pytest.raises(ValueError):
        load_npz(str(path))


def test_diagnostics_keys() -> None:
    d = make_scene(VisualizationMode.VECTOR).diagnostics()
    assert set(d) == {"time", "mode", "n_sources", "mean_speed", "max_speed"}
    assert d["n_sources"] == 2


def test_hidden_sources_are_left_out_of_geometry_and_svg() -> None:
    scene = make_scene(VisualizationMode.VECTOR)
    scene.update_turbulence(show_sources=False)
    geo = scene.frame(1.0)
    assert geo.sources == ()
    svg = to_svg(geo, scene.bounds, sources=geo.sources)
    assert count(svg, "circle") == 0 and count(svg, "text") == 0

    shown = scene.evaluator().sources
    assert count(to_svg(geo, scene.bounds, sources=shown, settings=scene.turbulence), "circle") == 0
    visible = scene.turbulence.merged(show_sources=True)
    assert count(to_svg(geo, scene.bounds, sources=shown, settings=visible), "circle") == 2


def test_resize_replans_seeds_and_particles() -> None:
    scene = make_scene(VisualizationMode.PARTICLE, line_count=200)
    scene.frame(1.0)
    new = (0.0, 400.0, 0.0, 300.0)
    assert scene.resize(new) == new
    assert scene.bounds == new and scene.sources.bounds == new
    # existing sources keep their positions
    assert [(s.x, s.y) for s in scene.sources] == [(300.0, 300.0), (900.0, 500.0)]
    x = scene.frame(1.0).particles
    assert x.shape == (200, 2)
    assert np.all((x[:, 0] >= 0.0) & (x[:, 0] <= 400.0) & (x[:, 1] >= 0.0) & (x[:, 1] <= 300.0))
    seeds = scene.streamlines.seeds(scene.turbulence.streamline_count, scene.bounds)
    assert np.all(seeds[:, 0] <= 400.0) and np.all(seeds[:, 1] <= 300.0)
    s = scene.sources.get(scene.sources.add("vortex"))
    assert s is not None and 0.0 <= s.x <= 400.0 and 0.0 <= s.y <= 300.0
    with pytest.raises(ValueError):
        scene.resize((10.0, 0.0, 0.0, 5.0))


def test_reset_restores_defaults() -> None:
    scene = make_scene(VisualizationMode.STREAMLINE)
    scene.resize((0.0, 600.0, 0.0, 400.0))
    scene.update_noise(octaves=7)
    scene.update_flow(enabled=False)
    scene.update_animation(speed=3.0, intensity=2.0)
    scene.frame(1.0)
    scene.reset()
    assert len(scene.sources) == 0
    assert scene.turbulence == TurbulenceSettings()
    assert scene.noise.octaves == 4
    assert scene.flow.enabled is True
    assert scene.time == 0.0
    assert (scene.animation.speed, scene.animation.intensity) == (1.0, 1.0)
    assert scene.bounds == (0.0, 600.0, 0.0, 400.0)
