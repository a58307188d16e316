"""
Per-label surface construction.

Given an intensity volume, a label volume and a label id, build a smoothed
triangulated surface for that region:

  1. binarize the label volume at exactly `label`,
  2. reconcile the mask with the intensity grid (nearest neighbour),
  3. multiply intensity by mask,
  4. choose an isovalue from the masked range (tiered policy / gray window),
  5. extract the isosurface, walking a small fallback ladder when the result
     is empty and shedding geometry when it is too complex,
  6. smooth the result.

Failures never propagate out of `RegionGeometryBuilder.build`; they are
returned as a GeometryResult without a surface and a diagnostic reason.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import pyvista as pv
from skimage import measure

from .alignment import align, grids_match
from .errors import GeometryError, Regions3DError
from .models import GrayWindow, Interpolation, RegionConfig, ScalarVolume
from .volume import apply_mask, binarize_label, crop_to_nonzero

logger = logging.getLogger(__name__)

INTENSITY_SOURCE = "intensity"
MASK_SOURCE = "mask"


# ---------------------------------------------------------------------------
# Threshold policy
# ---------------------------------------------------------------------------

def tier_fraction(width: float, cfg: RegionConfig) -> float:
    """Fraction of the range width used by the tier matching `width`."""
    for tier in cfg.tiers:
        if width > tier.min_width:
            return tier.fraction
    return cfg.tiers[-1].fraction


def choose_threshold(
    vmin: float,
    vmax: float,
    window: Optional[GrayWindow],
    cfg: RegionConfig,
) -> float:
    """
    Isovalue for a masked-intensity range [vmin, vmax].

    Without an active window the dynamic-range tier applies
    (e.g. width > 1000 -> vmin + 0.35 * width). With an active window the
    threshold moves to window_bias * window.min_gray, clamped above vmin.
    """
    width = vmax - vmin
    if width <= 0:
        raise ValueError(f"Degenerate range [{vmin}, {vmax}]")

    if window is not None and window.active:
        floor = vmin + cfg.lowest_retry_fraction * width
        return float(max(cfg.window_bias * window.min_gray, floor))

    return float(vmin + tier_fraction(width, cfg) * width)


@dataclass(frozen=True)
class Attempt:
    """One rung of the extraction ladder."""

    name: str
    source: str
    level: float


def plan_ladder(
    vmin: float,
    vmax: float,
    window: Optional[GrayWindow],
    cfg: RegionConfig,
) -> List[Attempt]:
    """
    Ordered extraction attempts for a masked-intensity range.

    A degenerate range (vmax <= vmin or vmax == 0) skips straight to the
    mask. Otherwise: the primary threshold, one substantially lower retry,
    and finally the mask itself. Evaluation stops at the first non-empty
    surface.
    """
    mask_rung = Attempt("mask", MASK_SOURCE, cfg.mask_level)
    if vmax <= vmin or vmax == 0:
        return [mask_rung]

    width = vmax - vmin
    primary = choose_threshold(vmin, vmax, window, cfg)
    primary_fraction = (primary - vmin) / width
    lower_fraction = (
        cfg.lower_retry_fraction
        if primary_fraction > cfg.lower_retry_fraction
        else cfg.lowest_retry_fraction
    )

    return [
        Attempt("primary", INTENSITY_SOURCE, primary),
        Attempt("lower", INTENSITY_SOURCE, vmin + lower_fraction * width),
        mask_rung,
    ]


def preview_threshold(volume: ScalarVolume, window: Optional[GrayWindow], cfg: RegionConfig) -> float:
    """
    Tiered isovalue for a whole intensity volume.

    An active window clamps the effective range to its bounds; an empty
    effective range falls back to vmin + 0.1.
    """
    vmin, vmax = volume.scalar_range
    if window is not None and window.active:
        vmin = max(vmin, window.min_gray)
        vmax = min(vmax, window.max_gray)
    width = vmax - vmin
    if width <= 0:
        return vmin + 0.1
    return vmin + tier_fraction(width, cfg) * width


# ---------------------------------------------------------------------------
# Isosurface primitive
# ---------------------------------------------------------------------------

def _faces_to_vtk(faces: np.ndarray) -> np.ndarray:
    n_faces = len(faces)
    faces_vtk = np.empty((n_faces, 4), dtype=np.int64)
    faces_vtk[:, 0] = 3
    faces_vtk[:, 1:] = faces
    return faces_vtk.ravel()


def is_empty(surface: Optional[pv.PolyData]) -> bool:
    return surface is None or surface.n_points == 0 or surface.n_cells == 0


def extract_isosurface(
    data: np.ndarray,
    level: float,
    volume: ScalarVolume,
    index_offset: Tuple[int, int, int] = (0, 0, 0),
) -> Optional[pv.PolyData]:
    """
    Marching cubes on `data` (a [Z, Y, X] sub-block of `volume`) at `level`.

    `index_offset` is the (z, y, x) index of data[0, 0, 0] within the
    volume, which may be negative when the block was padded. Vertices are
    returned in physical (x, y, z) coordinates. Returns None when no surface
    crosses `level`.
    """
    dmin = float(data.min())
    dmax = float(data.max())
    if not (dmin < level < dmax):
        return None

    verts_vox, faces, _normals, _values = measure.marching_cubes(
        data.astype(np.float32, copy=False),
        level=level,
        spacing=(1.0, 1.0, 1.0),
    )
    if len(faces) == 0:
        return None

    # (z, y, x) block index -> (x, y, z) physical
    idx = verts_vox + np.asarray(index_offset, dtype=np.float64)[None, :]
    spacing = np.asarray(volume.spacing, dtype=np.float64)
    origin = np.asarray(volume.origin, dtype=np.float64)
    verts_phys = origin[None, :] + idx[:, ::-1] * spacing[None, :]

    return pv.PolyData(verts_phys.astype(np.float32), _faces_to_vtk(faces))


def smooth_surface(surface: pv.PolyData, cfg: RegionConfig) -> pv.PolyData:
    """
    Remove voxel stair-steps with Laplacian smoothing.

    Iteration count and relaxation come from the first schedule row whose
    min_points the surface exceeds: large meshes get fewer, gentler passes.
    Boundary smoothing is on, feature-edge smoothing off.
    """
    if not cfg.smoothing_enabled or is_empty(surface):
        return surface

    n_points = surface.n_points
    step = next((s for s in cfg.smoothing if n_points > s.min_points), cfg.smoothing[-1])
    logger.debug(
        "Smoothing %d points: n_iter=%d relaxation=%.3f",
        n_points, step.n_iter, step.relaxation_factor,
    )
    return surface.smooth(
        n_iter=step.n_iter,
        relaxation_factor=step.relaxation_factor,
        feature_smoothing=False,
        boundary_smoothing=True,
    )


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

@dataclass
class GeometryResult:
    """
    Outcome of building one region.

    `surface` is None when no geometry could be produced (`reason` then says
    why). `strategy` names the ladder rung that produced the surface.
    """

    label: int
    surface: Optional[pv.PolyData] = None
    threshold: Optional[float] = None
    strategy: Optional[str] = None
    reason: Optional[str] = None
    scalar_range: Tuple[float, float] = (0.0, 0.0)
    attempts: List[Tuple[str, float, int]] = field(default_factory=list)

    @property
    def has_geometry(self) -> bool:
        return not is_empty(self.surface)


class RegionGeometryBuilder:
    """
    Builds the surface of one label region.

    The builder only reads its two input volumes; it keeps no per-build
    state, so a single instance can serve parallel workers.
    """

    def __init__(self, config: Optional[RegionConfig] = None) -> None:
        self.config = config or RegionConfig()

    # ------------------------------------------------------------------ #
    def build(
        self,
        intensity: ScalarVolume,
        labels: ScalarVolume,
        label: int,
        gray_window: Optional[GrayWindow] = None,
    ) -> GeometryResult:
        result = GeometryResult(label=int(label))
        try:
            self._build(intensity, labels, int(label), gray_window, result)
        except (Regions3DError, ValueError, RuntimeError, MemoryError) as exc:
            result.surface = None
            result.reason = str(exc) or exc.__class__.__name__
            logger.warning("Region %d: no geometry (%s)", label, result.reason)
        return result

    # ------------------------------------------------------------------ #
    def mask_on_intensity_grid(
        self,
        intensity: ScalarVolume,
        labels: ScalarVolume,
        label: int,
    ) -> ScalarVolume:
        """0/1 mask of `label` resampled (nearest) onto the intensity grid."""
        mask = binarize_label(labels, label)
        if grids_match(mask, intensity):
            return mask
        logger.debug("Region %d: label grid differs from intensity grid, resampling mask", label)
        return align(mask, intensity, Interpolation.NEAREST)

    def _build(
        self,
        intensity: ScalarVolume,
        labels: ScalarVolume,
        label: int,
        gray_window: Optional[GrayWindow],
        result: GeometryResult,
    ) -> None:
        cfg = self.config

        mask = self.mask_on_intensity_grid(intensity, labels, label).data
        box = crop_to_nonzero(mask, margin=cfg.crop_margin)
        if box is None:
            raise GeometryError(f"label {label} has no voxels on the intensity grid")

        masked = apply_mask(intensity.data, mask)
        vmin = float(masked.min())
        vmax = float(masked.max())
        result.scalar_range = (vmin, vmax)

        ladder = plan_ladder(vmin, vmax, gray_window, cfg)
        logger.debug(
            "Region %d: masked range [%g, %g], ladder %s",
            label, vmin, vmax, [(a.name, round(a.level, 3)) for a in ladder],
        )

        # Pad by one voxel so surfaces touching the crop box stay closed.
        offset = tuple(s.start - 1 for s in box)
        blocks = {
            INTENSITY_SOURCE: np.pad(masked[box], 1, mode="constant", constant_values=min(vmin, 0.0)),
            MASK_SOURCE: np.pad(mask[box].astype(np.float32), 1, mode="constant", constant_values=0.0),
        }

        for attempt in ladder:
            surface = extract_isosurface(blocks[attempt.source], attempt.level, intensity, offset)
            n_points = 0 if surface is None else surface.n_points
            result.attempts.append((attempt.name, float(attempt.level), n_points))
            if is_empty(surface):
                continue

            result.surface = surface
            result.threshold = float(attempt.level)
            result.strategy = attempt.name
            break

        if not result.has_geometry:
            raise GeometryError(f"label {label}: isosurface empty after {len(ladder)} attempt(s)")

        if result.strategy != "mask" and result.surface.n_points > cfg.max_vertices:
            self._shed(result, blocks[INTENSITY_SOURCE], vmin, vmax, intensity, offset)

        result.surface = smooth_surface(result.surface, cfg)
        logger.debug(
            "Region %d: %s surface at %g, %d points",
            label, result.strategy, result.threshold, result.surface.n_points,
        )

    def _shed(
        self,
        result: GeometryResult,
        block: np.ndarray,
        vmin: float,
        vmax: float,
        intensity: ScalarVolume,
        offset: Tuple[int, int, int],
    ) -> None:
        """Re-extract an overly complex surface at a higher isovalue, if that yields anything."""
        level = vmin + self.config.shed_fraction * (vmax - vmin)
        surface = extract_isosurface(block, level, intensity, offset)
        n_points = 0 if surface is None else surface.n_points
        result.attempts.append(("shed", float(level), n_points))
        if is_empty(surface):
            logger.debug(
                "Region %d: shedding at %g yielded nothing, keeping %d points",
                result.label, level, result.surface.n_points,
            )
            return
        result.surface = surface
        result.threshold = float(level)
        result.strategy = "shed"

    # ------------------------------------------------------------------ #
    def build_preview(
        self,
        intensity: ScalarVolume,
        gray_window: Optional[GrayWindow] = None,
    ) -> Optional[pv.PolyData]:
        """Single unsmoothed surface of the whole intensity volume at the tiered threshold."""
        level = preview_threshold(intensity, gray_window, self.config)
        vmin = float(intensity.data.min())
        block = np.pad(
            intensity.data.astype(np.float32), 1, mode="constant", constant_values=vmin
        )
        return extract_isosurface(block, level, intensity, (-1, -1, -1))
