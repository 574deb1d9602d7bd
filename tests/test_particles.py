from __future__ import annotations

import math

import numpy as np
import pytest

from turbulence2d import FieldEvaluator, FlowSettings, NoiseSettings, ParticleAdvector

BOUNDS = (0.0, 1200.0, 0.0, 800.0)


class RotField:
    """Duck-typed evaluator providing velocities(x, t). Solid body rotation with angular rate w."""
    def __init__(self, w: float) -> None:
        self.w = float(w)

    def velocities(self, x: np.ndarray, time: float = 0.0) -> np.ndarray:
        # u = (-w y, w x)
        return np.stack([-self.w * x[:, 1], self.w * x[:, 0]], axis=1)


def final_position_exact(x0: np.ndarray, w: float, T: float) -> np.ndarray:
    c, s = math.cos(w * T), math.sin(w * T)
    R = np.array([[c, -s], [s, c]], dtype=float)
    return (R @ x0.T).T


@pytest.mark.parametrize("integrator,order", [("euler", 1.0), ("rk2", 2.0), ("rk4", 4.0)])
def test_temporal_order(integrator: str, order: float) -> None:
    w = 2.0
    T = 0.5
    field = RotField(w)
    x0 = np.array([[0.3, 0.1], [-0.2, 0.4], [0.0, -0.35]], dtype=float)

    def run(dt: float) -> float:
        pa = ParticleAdvector(3, (-10.0, 10.0, -10.0, 10.0), max_age=10_000, integrator=integrator)  # type: ignore[arg-type]
        pa.place(x0)
        n = int(round(T / dt))
        for _ in range(n):
            pa.step(field, dt)  # type: ignore[arg-type]
        x_exact = final_position_exact(x0, w, n * dt)
        return float(np.linalg.norm(pa.positions - x_exact) / (np.linalg.norm(x_exact) + 1e-12))

    e1 = run(0.08)
    e2 = run(0.04)
    observed_order = math.log(e1 / max(e2, 1e-15), 2)
    assert observed_order > order - 0.6, (integrator, observed_order)


def test_population_is_fixed_and_stays_in_bounds() -> None:
    ev = FieldEvaluator(noise=NoiseSettings(seed=3), flow=FlowSettings(base_velocity=5.0))
    pa = ParticleAdvector(500, BOUNDS, max_age=50, seed=1)
    t = 0.0
    for _ in range(120):
        t += 1.0
        x = pa.step(ev, 1.0, time=t)
        assert x.shape == (500, 2)
        assert np.all((x[:, 0] >= 0.0) & (x[:, 0] <= 1200.0))
        assert np.all((x[:, 1] >= 0.0) & (x[:, 1] <= 800.0))
    assert pa.count == 500


def test_wrap_is_toroidal() -> None:
    ev = FieldEvaluator(flow=FlowSettings(enabled=True, base_velocity=10.0, base_angle=0.0), intensity=0.0)
    pa = ParticleAdvector(1, BOUNDS, max_age=1000)
    pa.place([[1195.0, 400.0]])
    x = pa.step(ev, 1.0)
    assert x[0, 0] == pytest.approx(5.0)
    assert x[0, 1] == pytest.approx(400.0)


def test_respawn_policy_replaces_escaped_particles() -> None:
    ev = FieldEvaluator(flow=FlowSettings(enabled=True, base_velocity=10.0, base_angle=0.0), intensity=0.0)
    pa = ParticleAdvector(1, BOUNDS, max_age=1000, boundary="respawn", seed=2)
    pa.place([[1195.0, 400.0]])
    pa.step(ev, 1.0)
    assert pa.ages[0] == 0
    x = pa.positions
    assert 0.0 <= x[0, 0] <= 1200.0 and 0.0 <= x[0, 1] <= 800.0


def test_old_particles_respawn_with_age_zero() -> None:
    ev = FieldEvaluator(flow=FlowSettings(enabled=False), intensity=0.0)
    pa = ParticleAdvector(4, BOUNDS, max_age=3, seed=5)
    pa.place(np.full((4, 2), 600.0))
    for _ in range(3):
        pa.step(ev, 1.0)
    assert np.all(pa.ages == 3)
    assert np.all(pa.positions == 600.0)
    pa.step(ev, 1.0)
    assert np.all(pa.ages == 0)
    assert not np.all(pa.positions == 600.0)


def test_initial_ages_are_staggered() -> None:
    pa = ParticleAdvector(200, BOUNDS, max_age=100, seed=0)
    assert pa.ages.min() >= 0 and pa.ages.max() < 100
    assert len(np.unique(pa.ages)) > 10


def test_same_seed_same_population() -> None:
    a = ParticleAdvector(50, BOUNDS, seed=11)
    b = ParticleAdvector(50, BOUNDS, seed=11)
    assert np.array_equal(a.positions, b.positions)


def test_reconfigure_changes_count() -> None:
    pa = ParticleAdvector(10, BOUNDS, seed=0)
    pa.reconfigure(25)
    assert pa.count == 25
    pa.reconfigure(0)
    assert pa.count == 1


def test_bad_policy_is_rejected() -> None:
    with pytest.raises(ValueError):
        ParticleAdvector(10, BOUNDS, boundary="bounce")  # type: ignore[arg-type]


def test_set_bounds_moves_population_into_new_area() -> None:
    pa = ParticleAdvector(100, BOUNDS, seed=4)
    pa.set_bounds((2000.0, 2100.0, -50.0, 0.0))
    x = pa.positions
    assert pa.count == 100
    assert np.all((x[:, 0] >= 2000.0) & (x[:, 0] <= 2100.0))
    assert np.all((x[:, 1] >= -50.0) & (x[:, 1] <= 0.0))
