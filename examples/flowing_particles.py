from __future__ import annotations

from turbulence2d import (
    AnimationConfig,
    AnimationState,
    NoiseSettings,
    Scene,
    SceneConfig,
    TurbulenceSettings,
    run_animation,
)


def main() -> None:
    scene = Scene(
        SceneConfig(seed=1, max_age=240, integrator="rk2"),
        turbulence=TurbulenceSettings.from_flags(flowing_mode=True, line_count=2500),
        noise=NoiseSettings(scale=0.006, octaves=5, seed=42.0),
        animation=AnimationState(speed=1.0, intensity=1.5),
    )
    scene.sources.add("vortex", 600.0, 400.0, strength=150.0)
    scene.sources.add("source", 200.0, 200.0, strength=40.0)
    scene.sources.add("uniform", strength=0.8, angle=30.0)

    cfg = AnimationConfig(frames=600, dt=1.0, particle_size=1.5)
    run_animation(scene, config=cfg, save_path=None, fps=30)

if __name__ == "__main__":
    main()
