from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

import numpy as np

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

RegionId = int                          # positive label value, 0 is background
Vector3D = Tuple[float, float, float]   # (x, y, z) in physical units (mm)
Dimensions3D = Tuple[int, int, int]     # (nx, ny, nz) voxel counts
Extent = Tuple[int, int, int, int, int, int]
Bounds = Tuple[float, float, float, float, float, float]
ColorRGB = Tuple[float, float, float]   # normalized 0–1

INTENSITY = "intensity"
LABEL = "label"


# ---------------------------------------------------------------------------
# Interpolation kinds
# ---------------------------------------------------------------------------

class Interpolation(enum.Enum):
    """
    Interpolation kernel used when resampling a volume onto another grid.

    The value is the spline order handed to scipy.ndimage.
    """

    NEAREST = 0
    LINEAR = 1
    CUBIC = 3

    @property
    def order(self) -> int:
        return int(self.value)

    @classmethod
    def for_kind(cls, kind: str) -> "Interpolation":
        """Default kernel for a volume kind: nearest for labels, linear otherwise."""
        return cls.NEAREST if kind == LABEL else cls.LINEAR

    @classmethod
    def parse(cls, value: "str | Interpolation") -> "Interpolation":
        if isinstance(value, Interpolation):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(
                f"Unknown interpolation {value!r}; expected one of "
                f"{', '.join(m.name.lower() for m in cls)}"
            ) from None


# ---------------------------------------------------------------------------
# Grids and volumes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GridSpec:
    """
    Sampling of a regular 3D grid.

    dimensions / spacing / origin are all in physical (x, y, z) order.
    """

    dimensions: Dimensions3D
    spacing: Vector3D
    origin: Vector3D = (0.0, 0.0, 0.0)

    @property
    def shape(self) -> Tuple[int, int, int]:
        """Array shape in storage order [Z, Y, X]."""
        nx, ny, nz = self.dimensions
        return (int(nz), int(ny), int(nx))

    @property
    def extent(self) -> Extent:
        nx, ny, nz = self.dimensions
        return (0, int(nx) - 1, 0, int(ny) - 1, 0, int(nz) - 1)

    @property
    def bounds(self) -> Bounds:
        """Physical bounds of the voxel centres as (xmin, xmax, ymin, ymax, zmin, zmax)."""
        out = []
        for n, s, o in zip(self.dimensions, self.spacing, self.origin):
            end = o + (int(n) - 1) * s
            out.extend((min(o, end), max(o, end)))
        return tuple(out)  # type: ignore[return-value]


@dataclass
class ScalarVolume:
    """
    A 3D grid of numeric samples together with its physical placement.

    Volumes are stored in array order [Z, Y, X] while spacing and origin are
    in physical space order (x, y, z), the same convention used by the NRRD
    reader/writer in core.volume.

    Attributes
    ----------
    data : np.ndarray
        3D numpy array with shape (Z, Y, X).
    spacing : Tuple[float, float, float]
        Voxel size in millimeters as (sx, sy, sz).
    origin : Tuple[float, float, float]
        Physical position of voxel (0, 0, 0) as (ox, oy, oz).
    kind : str
        "intensity" (continuous) or "label" (discrete, 0 = background).
        A convention tag only; it selects default interpolation.
    source : Path, optional
        File the volume was loaded from, purely informational.
    """

    data: np.ndarray
    spacing: Vector3D = (1.0, 1.0, 1.0)
    origin: Vector3D = (0.0, 0.0, 0.0)
    kind: str = INTENSITY
    source: Optional[Path] = None

    def __post_init__(self) -> None:
        self.data = np.asarray(self.data)
        if self.data.ndim != 3:
            raise ValueError(
                f"ScalarVolume.data must be 3D [Z, Y, X], got shape {self.data.shape}"
            )
        if len(self.spacing) != 3:
            raise ValueError(f"spacing must have 3 elements, got {len(self.spacing)}")
        if len(self.origin) != 3:
            raise ValueError(f"origin must have 3 elements, got {len(self.origin)}")
        if self.kind not in (INTENSITY, LABEL):
            raise ValueError(f"kind must be {INTENSITY!r} or {LABEL!r}, got {self.kind!r}")
        self.spacing = tuple(float(s) for s in self.spacing)  # type: ignore[assignment]
        self.origin = tuple(float(o) for o in self.origin)  # type: ignore[assignment]

    @property
    def dimensions(self) -> Dimensions3D:
        nz, ny, nx = self.data.shape
        return (int(nx), int(ny), int(nz))

    @property
    def grid(self) -> GridSpec:
        return GridSpec(self.dimensions, self.spacing, self.origin)

    @property
    def extent(self) -> Extent:
        return self.grid.extent

    @property
    def bounds(self) -> Bounds:
        return self.grid.bounds

    @property
    def scalar_range(self) -> Tuple[float, float]:
        if self.data.size == 0:
            return (0.0, 0.0)
        return (float(self.data.min()), float(self.data.max()))

    def with_data(self, data: np.ndarray, kind: Optional[str] = None) -> "ScalarVolume":
        """New volume on the same grid holding `data`."""
        return ScalarVolume(
            data=data,
            spacing=self.spacing,
            origin=self.origin,
            kind=self.kind if kind is None else kind,
            source=self.source,
        )


# ---------------------------------------------------------------------------
# Gray value window
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GrayWindow:
    """
    Optional intensity window biasing isosurface threshold choice.

    Only considered active when min_gray < max_gray; otherwise the full
    scalar range of the intensity volume is used.
    """

    min_gray: float = 0.0
    max_gray: float = 0.0

    @property
    def active(self) -> bool:
        return self.min_gray < self.max_gray


# ---------------------------------------------------------------------------
# Geometry configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ThresholdTier:
    """
    One row of the dynamic-range threshold policy.

    Applies when the masked intensity range width is strictly greater than
    `min_width`; the threshold is then `min + fraction * width`.
    """

    min_width: float
    fraction: float


@dataclass(frozen=True)
class SmoothingStep:
    """
    One row of the smoothing schedule.

    Applies to surfaces with more than `min_points` vertices.
    """

    min_points: int
    n_iter: int
    relaxation_factor: float


DEFAULT_TIERS: Tuple[ThresholdTier, ...] = (
    ThresholdTier(1000.0, 0.35),
    ThresholdTier(100.0, 0.15),
    ThresholdTier(0.0, 0.05),
)

DEFAULT_SMOOTHING: Tuple[SmoothingStep, ...] = (
    SmoothingStep(50_000, 10, 0.05),
    SmoothingStep(10_000, 20, 0.08),
    SmoothingStep(0, 30, 0.10),
)


@dataclass
class RegionConfig:
    """
    Configuration for label volume -> region surfaces.

    Every constant of the geometry pipeline lives here so it can be tuned
    from YAML or the CLI without touching the algorithms.
    """

    # --- Threshold policy ---

    tiers: Tuple[ThresholdTier, ...] = DEFAULT_TIERS
    """Tiered policy, evaluated top to bottom; first tier whose min_width is exceeded wins."""

    window_bias: float = 0.5
    """With an active gray window the threshold moves to window_bias * window.min_gray."""

    # --- Degradation ladder ---

    lower_retry_fraction: float = 0.10
    """Fraction of range used when the primary threshold yields no geometry."""

    lowest_retry_fraction: float = 0.01
    """Used instead of lower_retry_fraction when the primary was already below it."""

    max_vertices: int = 100_000
    """Complexity ceiling. Larger surfaces are re-extracted at shed_fraction."""

    shed_fraction: float = 0.85
    """Fraction of range used to shed geometry from overly complex surfaces."""

    mask_level: float = 0.5
    """Isovalue used when extracting directly from the binary mask."""

    crop_margin: int = 1
    """Voxels kept around the region bounding box before extraction."""

    # --- Smoothing ---

    smoothing_enabled: bool = True
    """If False, surfaces are returned exactly as extracted."""

    smoothing: Tuple[SmoothingStep, ...] = DEFAULT_SMOOTHING
    """Iteration count / relaxation scaled inversely to vertex count."""

    # --- Regions ---

    default_opacity: float = 1.0
    """Initial opacity of every region (surface mode is fully opaque)."""

    max_workers: int = 1
    """Worker threads for per-label builds; 1 keeps the batch sequential."""


# ---------------------------------------------------------------------------
# Project-level configuration
# ---------------------------------------------------------------------------

@dataclass
class ProjectConfig:
    """
    Top-level configuration object for a regions3d session.

    This groups together the two input volume paths, the optional gray
    window and the geometry options (RegionConfig). It is what we
    load/save to YAML and hand from the CLI to the façade.
    """

    name: str = "regions3d project"
    """Human-readable project name."""

    intensity_path: Optional[Path] = None
    """Continuous-intensity scan (NIfTI or NRRD)."""

    label_path: Optional[Path] = None
    """Discrete label volume on the same subject (NIfTI or NRRD)."""

    gray_window: Optional[GrayWindow] = None
    """Optional process-wide gray window."""

    regions: RegionConfig = field(default_factory=RegionConfig)
    """Geometry / processing options."""

    config_path: Optional[Path] = None
    """Path of the YAML file this was loaded from. Informational only."""
