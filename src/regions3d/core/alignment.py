"""
Spatial alignment of volumes sampled on different grids.

Only same-subject alignment is supported: both volumes are assumed to live in
the same physical space, so reconciling them is a pure resampling of one grid
onto the other's spacing / origin / extent. No registration is performed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
from scipy import ndimage

from .errors import AlignmentError
from .models import GridSpec, Interpolation, LABEL, ScalarVolume
from .volume import distinct_labels

logger = logging.getLogger(__name__)


def _check_spacing(spacing: Sequence[float], what: str) -> None:
    arr = np.asarray(spacing, dtype=np.float64)
    if arr.shape != (3,) or not np.all(np.isfinite(arr)) or np.any(arr <= 0.0):
        raise AlignmentError(f"{what} has degenerate spacing {tuple(spacing)}")


def grids_match(a: ScalarVolume | GridSpec, b: ScalarVolume | GridSpec, atol: float = 1e-6) -> bool:
    """True if both grids have identical dimensions, spacing and origin."""
    ga = a.grid if isinstance(a, ScalarVolume) else a
    gb = b.grid if isinstance(b, ScalarVolume) else b
    return (
        tuple(ga.dimensions) == tuple(gb.dimensions)
        and np.allclose(ga.spacing, gb.spacing, atol=atol)
        and np.allclose(ga.origin, gb.origin, atol=atol)
    )


def align(
    source: ScalarVolume,
    target: GridSpec | ScalarVolume,
    interpolation: Interpolation | str | None = None,
) -> ScalarVolume:
    """
    Resample `source` onto the sampling of `target`.

    Parameters
    ----------
    source : ScalarVolume
        Volume to resample. It is never modified.
    target : GridSpec | ScalarVolume
        Grid whose dimensions / spacing / origin the result adopts.
    interpolation : Interpolation | str, optional
        NEAREST, LINEAR or CUBIC. Defaults to NEAREST for label volumes and
        LINEAR for intensity volumes. Label volumes must be resampled with
        NEAREST so no label id is blended into a new, meaningless value.

    Returns
    -------
    ScalarVolume
        New volume on the target grid. Samples falling outside the source
        extent are zero.

    Raises
    ------
    AlignmentError
        If either grid has zero/negative/non-finite spacing or the resample
        itself fails.
    """
    grid = target.grid if isinstance(target, ScalarVolume) else target
    interp = (
        Interpolation.for_kind(source.kind)
        if interpolation is None
        else Interpolation.parse(interpolation)
    )

    _check_spacing(source.spacing, "Source volume")
    _check_spacing(grid.spacing, "Target grid")
    if any(int(n) <= 0 for n in grid.dimensions):
        raise AlignmentError(f"Target grid has empty dimensions {grid.dimensions}")

    if source.kind == LABEL and interp is not Interpolation.NEAREST:
        logger.warning(
            "Resampling a label volume with %s interpolation may invent label ids",
            interp.name.lower(),
        )

    if grids_match(source, grid):
        return source.with_data(source.data.copy())

    # affine_transform maps output index -> input index in array order (z, y, x)
    src_spacing = np.asarray(source.spacing[::-1], dtype=np.float64)
    dst_spacing = np.asarray(grid.spacing[::-1], dtype=np.float64)
    src_origin = np.asarray(source.origin[::-1], dtype=np.float64)
    dst_origin = np.asarray(grid.origin[::-1], dtype=np.float64)

    scale = dst_spacing / src_spacing
    offset = (dst_origin - src_origin) / src_spacing

    if interp is Interpolation.NEAREST:
        data_in = source.data
        out_dtype = source.data.dtype
    else:
        data_in = source.data.astype(np.float32, copy=False)
        out_dtype = np.float32

    try:
        resampled = ndimage.affine_transform(
            data_in,
            scale,
            offset=offset,
            output_shape=grid.shape,
            output=out_dtype,
            order=interp.order,
            mode="constant",
            cval=0.0,
            prefilter=interp.order > 1,
        )
    except (ValueError, RuntimeError, MemoryError) as exc:
        raise AlignmentError(f"Resampling failed: {exc}") from exc

    logger.debug(
        "Resampled %s volume %s -> %s (%s)",
        source.kind, source.dimensions, grid.dimensions, interp.name.lower(),
    )

    return ScalarVolume(
        data=resampled,
        spacing=grid.spacing,
        origin=grid.origin,
        kind=source.kind,
        source=source.source,
    )


def align_labels_to_intensity(labels: ScalarVolume, intensity: ScalarVolume) -> ScalarVolume:
    """Label volume resampled (nearest neighbour) onto the intensity grid."""
    return align(labels, intensity, Interpolation.NEAREST)


def align_intensity_to_labels(
    intensity: ScalarVolume,
    labels: ScalarVolume,
    interpolation: Interpolation | str = Interpolation.LINEAR,
) -> ScalarVolume:
    """Intensity volume resampled onto the (usually coarser) label grid."""
    return align(intensity, labels, interpolation)


def resample_to_resolution(
    volume: ScalarVolume,
    spacing: Sequence[float],
    interpolation: Interpolation | str | None = None,
) -> ScalarVolume:
    """
    Resample a volume to a custom voxel spacing covering the same physical extent.
    """
    _check_spacing(spacing, "Requested resolution")
    dims = tuple(
        int(np.floor((n - 1) * s_old / s_new + 1e-9)) + 1
        for n, s_old, s_new in zip(volume.dimensions, volume.spacing, spacing)
    )
    grid = GridSpec(dims, tuple(float(s) for s in spacing), volume.origin)  # type: ignore[arg-type]
    return align(volume, grid, interpolation)


# ---------------------------------------------------------------------------
# Quality control
# ---------------------------------------------------------------------------

@dataclass
class LabelIntegrity:
    """
    Outcome of comparing label sets before and after resampling.

    `ok` is False only when the resampled volume contains ids absent from
    the original. Lost ids (tiny regions vanishing on a coarser grid) are
    reported but do not violate integrity.
    """

    original: List[int]
    resampled: List[int]
    introduced: List[int] = field(default_factory=list)
    lost: List[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.introduced


def validate_label_integrity(original: ScalarVolume, resampled: ScalarVolume) -> LabelIntegrity:
    """
    Check that `resampled` holds no label id that `original` does not.

    Violations are logged as data-quality warnings, never raised.
    """
    orig_labels = distinct_labels(original.data)
    new_labels = distinct_labels(resampled.data)
    orig_set = set(orig_labels)
    new_set = set(new_labels)

    report = LabelIntegrity(
        original=orig_labels,
        resampled=new_labels,
        introduced=sorted(new_set - orig_set),
        lost=sorted(orig_set - new_set),
    )

    if report.introduced:
        logger.warning(
            "Label integrity violated: resampling introduced ids %s", report.introduced
        )
    if report.lost:
        logger.warning(
            "Resampling dropped %d label id(s) %s (regions smaller than the target voxel size)",
            len(report.lost), report.lost,
        )
    return report


def _voxel_box(volume: ScalarVolume) -> np.ndarray:
    """Physical box covered by the voxels (centres +/- half spacing) as [[lo], [hi]]."""
    origin = np.asarray(volume.origin, dtype=np.float64)
    spacing = np.asarray(volume.spacing, dtype=np.float64)
    dims = np.asarray(volume.dimensions, dtype=np.float64)
    a = origin - 0.5 * spacing
    b = origin + (dims - 0.5) * spacing
    return np.stack([np.minimum(a, b), np.maximum(a, b)])


def compute_spatial_overlap(a: ScalarVolume, b: ScalarVolume) -> float:
    """
    Overlap of the physical boxes covered by two volumes, in [0, 1].

    Computed as intersection volume over union volume. Diagnostic only.
    """
    box_a = _voxel_box(a)
    box_b = _voxel_box(b)

    lo = np.maximum(box_a[0], box_b[0])
    hi = np.minimum(box_a[1], box_b[1])
    inter = float(np.prod(np.clip(hi - lo, 0.0, None)))

    vol_a = float(np.prod(box_a[1] - box_a[0]))
    vol_b = float(np.prod(box_b[1] - box_b[0]))
    union = vol_a + vol_b - inter
    if union <= 0.0:
        return 0.0
    return float(min(max(inter / union, 0.0), 1.0))


def describe_grid(volume: ScalarVolume, name: Optional[str] = None) -> str:
    """Human-readable spatial summary of a volume."""
    title = name or volume.kind
    nx, ny, nz = volume.dimensions
    sx, sy, sz = volume.spacing
    ox, oy, oz = volume.origin
    b = volume.bounds
    vmin, vmax = volume.scalar_range
    return "\n".join([
        f"{title} spatial info:",
        f"  spacing:    {sx:g} x {sy:g} x {sz:g}",
        f"  dimensions: {nx} x {ny} x {nz}",
        f"  origin:     {ox:g}, {oy:g}, {oz:g}",
        f"  bounds:     {b[0]:g}~{b[1]:g}, {b[2]:g}~{b[3]:g}, {b[4]:g}~{b[5]:g}",
        f"  range:      [{vmin:g}, {vmax:g}]",
    ])
