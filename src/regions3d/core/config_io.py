from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .models import (
    GrayWindow,
    ProjectConfig,
    RegionConfig,
    SmoothingStep,
    ThresholdTier,
)


def _path_from_yaml(value: Any, base_dir: Path) -> Optional[Path]:
    """
    Convert a YAML path value (string or None) to a Path relative to base_dir.
    """
    if value is None:
        return None
    p = Path(str(value))
    if not p.is_absolute():
        p = base_dir / p
    return p


def _path_to_yaml(path: Optional[Path], base_dir: Path) -> Optional[str]:
    """
    Convert a Path to a relative string for YAML, relative to base_dir.
    """
    if path is None:
        return None
    try:
        rel = Path(path).relative_to(base_dir)
    except ValueError:
        # If not under base_dir, keep the path as given
        rel = Path(path)
    return str(rel)


def _tiers_from_yaml(value: Any) -> Tuple[ThresholdTier, ...]:
    tiers: List[ThresholdTier] = []
    for row in value:
        if len(row) != 2:
            raise ValueError(f"regions.tiers rows must be [min_width, fraction], got {row!r}")
        tiers.append(ThresholdTier(float(row[0]), float(row[1])))
    if not tiers:
        raise ValueError("regions.tiers must not be empty")
    return tuple(tiers)


def _smoothing_from_yaml(value: Any) -> Tuple[SmoothingStep, ...]:
    steps: List[SmoothingStep] = []
    for row in value:
        if len(row) != 3:
            raise ValueError(
                f"regions.smoothing rows must be [min_points, n_iter, relaxation], got {row!r}"
            )
        steps.append(SmoothingStep(int(row[0]), int(row[1]), float(row[2])))
    if not steps:
        raise ValueError("regions.smoothing must not be empty")
    return tuple(steps)


def region_config_from_dict(d: Dict[str, Any]) -> RegionConfig:
    """Build a RegionConfig from a (possibly partial) mapping; missing keys keep defaults."""
    defaults = RegionConfig()
    return RegionConfig(
        tiers=_tiers_from_yaml(d["tiers"]) if "tiers" in d else defaults.tiers,
        window_bias=float(d.get("window_bias", defaults.window_bias)),
        lower_retry_fraction=float(d.get("lower_retry_fraction", defaults.lower_retry_fraction)),
        lowest_retry_fraction=float(d.get("lowest_retry_fraction", defaults.lowest_retry_fraction)),
        max_vertices=int(d.get("max_vertices", defaults.max_vertices)),
        shed_fraction=float(d.get("shed_fraction", defaults.shed_fraction)),
        mask_level=float(d.get("mask_level", defaults.mask_level)),
        crop_margin=int(d.get("crop_margin", defaults.crop_margin)),
        smoothing_enabled=bool(d.get("smoothing_enabled", defaults.smoothing_enabled)),
        smoothing=(
            _smoothing_from_yaml(d["smoothing"]) if "smoothing" in d else defaults.smoothing
        ),
        default_opacity=float(d.get("default_opacity", defaults.default_opacity)),
        max_workers=int(d.get("max_workers", defaults.max_workers)),
    )


def region_config_to_dict(cfg: RegionConfig) -> Dict[str, Any]:
    return {
        "tiers": [[t.min_width, t.fraction] for t in cfg.tiers],
        "window_bias": cfg.window_bias,
        "lower_retry_fraction": cfg.lower_retry_fraction,
        "lowest_retry_fraction": cfg.lowest_retry_fraction,
        "max_vertices": cfg.max_vertices,
        "shed_fraction": cfg.shed_fraction,
        "mask_level": cfg.mask_level,
        "crop_margin": cfg.crop_margin,
        "smoothing_enabled": cfg.smoothing_enabled,
        "smoothing": [[s.min_points, s.n_iter, s.relaxation_factor] for s in cfg.smoothing],
        "default_opacity": cfg.default_opacity,
        "max_workers": cfg.max_workers,
    }


def load_project_config(path: Path) -> ProjectConfig:
    """
    Load a ProjectConfig from a YAML file.

    Paths inside the YAML are interpreted as relative to the YAML file
    location.
    """
    path = Path(path)
    base_dir = path.parent

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    window: Optional[GrayWindow] = None
    window_val = data.get("gray_window")
    if window_val is not None:
        if len(window_val) != 2:
            raise ValueError(
                f"gray_window must be a list of 2 numbers, got {window_val!r}"
            )
        window = GrayWindow(float(window_val[0]), float(window_val[1]))

    return ProjectConfig(
        name=str(data.get("name", "regions3d project")),
        intensity_path=_path_from_yaml(data.get("intensity"), base_dir),
        label_path=_path_from_yaml(data.get("labels"), base_dir),
        gray_window=window,
        regions=region_config_from_dict(data.get("regions", {}) or {}),
        config_path=path,
    )


def save_project_config(cfg: ProjectConfig, path: Path) -> None:
    """
    Save a ProjectConfig to YAML.

    Paths are stored as strings relative to the YAML file location.
    """
    path = Path(path)
    base_dir = path.parent
    base_dir.mkdir(parents=True, exist_ok=True)

    window = cfg.gray_window
    data: Dict[str, Any] = {
        "name": cfg.name,
        "intensity": _path_to_yaml(cfg.intensity_path, base_dir),
        "labels": _path_to_yaml(cfg.label_path, base_dir),
        "gray_window": [window.min_gray, window.max_gray] if window is not None else None,
        "regions": region_config_to_dict(cfg.regions),
    }

    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(
            data,
            f,
            sort_keys=False,
            default_flow_style=False,
        )
