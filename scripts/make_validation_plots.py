from __future__ import annotations

import os

import numpy as np
import matplotlib.pyplot as plt

from turbulence2d import (
    FieldEvaluator,
    FlowSettings,
    NoiseField,
    NoiseSettings,
    SingularitySource,
    trace,
)


ART = os.environ.get("ARTIFACTS_DIR", "artifacts")
os.makedirs(ART, exist_ok=True)


def vortex_decay_plot() -> None:
    S = 50.0
    vortex = SingularitySource(id="1", name="Vortex 1", type="vortex", x=0.0, y=0.0, strength=S)
    ev = FieldEvaluator(sources=(vortex,), flow=FlowSettings(enabled=False), intensity=0.0)

    r = np.linspace(1.0, 300.0, 300)
    xq = np.stack([r, np.zeros_like(r)], axis=1)
    u = ev.velocities(xq)

    plt.figure()
    plt.loglog(r, np.abs(u[:, 1]), label="|u_θ| (num)")
    plt.loglog(r, S / r, "--", label="S / r")
    plt.xlabel("r")
    plt.ylabel("tangential speed")
    plt.title("Point vortex: 1/r decay")
    plt.legend()
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(os.path.join(ART, "vortex_decay.png"), dpi=150)


def noise_octaves_plot() -> None:
    x = np.linspace(0.0, 1200.0, 2400)
    y = np.full_like(x, 400.0)
    plt.figure(figsize=(9, 4))
    for octaves in (1, 2, 4, 8):
        s = NoiseSettings(scale=0.01, octaves=octaves, seed=42.0)
        plt.plot(x, NoiseField.sample(x, y, s), lw=0.8, label=f"{octaves} octave(s)")
    plt.xlabel("x")
    plt.ylabel("noise")
    plt.title("Fractal value noise along y = 400")
    plt.legend()
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(os.path.join(ART, "noise_octaves.png"), dpi=150)


def streamline_circle_plot() -> None:
    vortex = SingularitySource(id="1", name="Vortex 1", type="vortex", x=600.0, y=400.0, strength=80.0)
    ev = FieldEvaluator(sources=(vortex,), flow=FlowSettings(enabled=False), intensity=0.0)
    plt.figure()
    radii = []
    for r0 in (50.0, 100.0, 200.0):
        line = trace([600.0 + r0, 400.0], ev, 400, 1.0, (0.0, 1200.0, 0.0, 800.0))
        radii.append(np.linalg.norm(line - [600.0, 400.0], axis=1))
        plt.plot(line[:, 0], line[:, 1], lw=0.8)
    plt.gca().set_aspect("equal")
    plt.title("Streamlines around a point vortex")
    plt.tight_layout()
    plt.savefig(os.path.join(ART, "vortex_streamlines.png"), dpi=150)

    plt.figure()
    for rr in radii:
        plt.plot((rr - rr[0]) / rr[0])
    plt.xlabel("step")
    plt.ylabel("relative radius drift")
    plt.title("Arc-length stepping: radius drift")
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(os.path.join(ART, "vortex_radius_drift.png"), dpi=150)


if __name__ == "__main__":
    vortex_decay_plot()
    noise_octaves_plot()
    streamline_circle_plot()
