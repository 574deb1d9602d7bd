from __future__ import annotations

import argparse
import tracemalloc
import numpy as np
from turbulence2d import NumbaConfig, ParticleAdvector, SourceManager


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--N", type=int, default=20000, help="particle count")
    ap.add_argument("--sources", type=int, default=16)
    ap.add_argument("--frames", type=int, default=10)
    ap.add_argument("--numba", action="store_true")
    args = ap.parse_args()

    bounds = (0.0, 1200.0, 0.0, 800.0)
    sm = SourceManager(bounds, seed=0)
    for k in range(args.sources):
        sm.add(("vortex", "source", "sink")[k % 3])
    ev = sm.evaluator(numba=NumbaConfig(enabled=bool(args.numba)))
    particles = ParticleAdvector(args.N, bounds, seed=0)

    tracemalloc.start()
    for f in range(args.frames):
        particles.step(ev, 1.0, time=float(f))
    current, peak = tracemalloc.get_traced_memory()
    tracemalloc.stop()
    speed = np.linalg.norm(ev.velocities(particles.positions), axis=1)
    print(f"step(N={args.N}, sources={args.sources}, numba={args.numba}) peak={peak/1e6:.1f} MB "
          f"mean|u|={speed.mean():.3f}")

if __name__ == "__main__":
    main()
