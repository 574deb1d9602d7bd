from __future__ import annotations

from turbulence2d import (
    Scene,
    SceneConfig,
    TurbulenceSettings,
    VisualizationMode,
    plot_snapshot,
    save_svg,
    setup_logging,
)


def main() -> None:
    setup_logging()
    scene = Scene(
        SceneConfig(seed=7),
        turbulence=TurbulenceSettings(line_count=3000, mode=VisualizationMode.STREAMLINE),
    )
    scene.sources.add("vortex", 400.0, 400.0, strength=120.0)
    scene.sources.add("vortex", 800.0, 400.0, strength=-120.0)
    scene.sources.add("sink", 1000.0, 650.0)

    geo = scene.frame(1.0)
    save_svg("vortex_pair.svg", geo, scene.bounds, sources=geo.sources)
    plot_snapshot(scene, geometry=geo)

if __name__ == "__main__":
    main()
