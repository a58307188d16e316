from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Tuple

import numpy as np

from .errors import InputError
from .models import INTENSITY, LABEL, ScalarVolume

logger = logging.getLogger(__name__)

NIFTI_SUFFIXES = (".nii", ".nii.gz")
NRRD_SUFFIXES = (".nrrd", ".nhdr")


# ---------------------------------------------------------------------------
# VolumeLoader
# ---------------------------------------------------------------------------

def _suffix(path: Path) -> str:
    name = path.name.lower()
    if name.endswith(".nii.gz"):
        return ".nii.gz"
    return path.suffix.lower()


def load_volume(path: str | Path, kind: str = INTENSITY) -> ScalarVolume:
    """
    Load a NIfTI or NRRD file into a ScalarVolume.

    Parameters
    ----------
    path : str | Path
        .nii, .nii.gz, .nrrd or .nhdr file.
    kind : str
        "intensity" or "label". Label volumes are rounded to integers.

    Returns
    -------
    ScalarVolume
        Volume in [Z, Y, X] array order with (x, y, z) spacing/origin.

    Raises
    ------
    InputError
        Empty path, missing file, unsupported suffix or unreadable content.
    """
    if path is None or str(path).strip() == "":
        raise InputError("No volume path given")

    path = Path(path)
    if not path.is_file():
        raise InputError(f"Volume file does not exist: {path}")

    suffix = _suffix(path)
    try:
        if suffix in NIFTI_SUFFIXES:
            volume = load_volume_nifti(path, kind=kind)
        elif suffix in NRRD_SUFFIXES:
            volume = load_volume_nrrd(path, kind=kind)
        else:
            raise InputError(
                f"Unsupported volume format {suffix!r} for {path.name}; "
                f"expected one of {', '.join(NIFTI_SUFFIXES + NRRD_SUFFIXES)}"
            )
    except InputError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise InputError(f"Could not read volume {path}: {exc}") from exc

    logger.debug(
        "Loaded %s volume %s: dimensions=%s spacing=%s origin=%s range=%s",
        kind, path.name, volume.dimensions, volume.spacing, volume.origin,
        volume.scalar_range,
    )
    return volume


def _finalize_array(data: np.ndarray, kind: str) -> np.ndarray:
    """Reduce to 3D and pick a dtype suited to the volume kind."""
    data = np.asarray(data)
    while data.ndim > 3 and data.shape[-1] == 1:
        data = data[..., 0]
    if data.ndim != 3:
        raise InputError(f"Expected a 3D volume, got array of shape {data.shape}")

    if kind == LABEL:
        return as_label_array(data)
    return data.astype(np.float32, copy=False)


def as_label_array(data: np.ndarray) -> np.ndarray:
    """Integer label ids (int32); non-integer values are rounded to the nearest id."""
    data = np.asarray(data)
    if np.issubdtype(data.dtype, np.integer):
        return data.astype(np.int32, copy=False)
    return np.rint(data).astype(np.int32)


def load_volume_nifti(path: str | Path, kind: str = INTENSITY) -> ScalarVolume:
    """
    Load a NIfTI file via nibabel.

    The image is reoriented to the closest canonical (RAS+) orientation so
    spacing is the positive voxel size and origin the affine translation.
    """
    import nibabel as nib

    path = Path(path)
    img = nib.as_closest_canonical(nib.load(str(path)))

    # nibabel arrays are (X, Y, Z); we store (Z, Y, X)
    raw = np.asanyarray(img.dataobj) if kind == LABEL else img.get_fdata(dtype=np.float32)
    data = _finalize_array(raw, kind)
    data = np.ascontiguousarray(np.transpose(data, (2, 1, 0)))

    spacing = tuple(float(v) for v in nib.affines.voxel_sizes(img.affine)[:3])
    origin = tuple(float(v) for v in img.affine[:3, 3])

    return ScalarVolume(data=data, spacing=spacing, origin=origin, kind=kind, source=path)


def load_volume_nrrd(path: str | Path, kind: str = INTENSITY) -> ScalarVolume:
    """
    Load a NRRD file via pynrrd.

    Spacing is taken from the diagonal of 'space directions' (or 'spacings'),
    origin from 'space origin'; both default to unit spacing / zero origin.
    """
    import nrrd

    path = Path(path)
    data_nrrd, header = nrrd.read(str(path))

    data = _finalize_array(data_nrrd, kind)
    # Transpose from (X, Y, Z) back to (Z, Y, X) for our convention
    data = np.ascontiguousarray(np.transpose(data, (2, 1, 0)))

    spacing: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    space_dirs = header.get("space directions")
    if space_dirs is not None:
        dirs = np.asarray(space_dirs, dtype=np.float64)
        if dirs.shape[0] >= 3 and dirs.shape[1] >= 3:
            spacing = tuple(float(np.linalg.norm(dirs[i])) for i in range(3))  # type: ignore[assignment]
    elif "spacings" in header:
        spacing = tuple(float(abs(s)) for s in list(header["spacings"])[:3])  # type: ignore[assignment]

    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    if "space origin" in header:
        origin = tuple(float(x) for x in list(header["space origin"])[:3])  # type: ignore[assignment]

    return ScalarVolume(data=data, spacing=spacing, origin=origin, kind=kind, source=path)


def save_volume_nrrd(volume: ScalarVolume, path: str | Path) -> None:
    """
    Save a ScalarVolume to NRRD format.

    Spacing and origin are written to the header; label volumes are written
    as int32, intensity volumes as float32. Uses gzip encoding for .nrrd.
    """
    import nrrd

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = volume.data.astype(np.int32 if volume.kind == LABEL else np.float32)
    data_nrrd = np.transpose(data, (2, 1, 0))  # (Z, Y, X) -> (X, Y, Z)

    sx, sy, sz = volume.spacing
    header = {
        "space": "left-posterior-superior",
        "space directions": [[sx, 0, 0], [0, sy, 0], [0, 0, sz]],
        "space origin": list(volume.origin),
        "encoding": "gzip" if path.suffix == ".nrrd" else "raw",
    }
    nrrd.write(str(path), data_nrrd, header=header)


# ---------------------------------------------------------------------------
# Label helpers
# ---------------------------------------------------------------------------

def distinct_labels(data: np.ndarray) -> List[int]:
    """Sorted distinct non-zero values of a label array."""
    values = np.unique(as_label_array(data))
    return [int(v) for v in values if v > 0]


def binarize_label(label_volume: ScalarVolume, label: int) -> ScalarVolume:
    """0/1 mask (uint8) of voxels equal to exactly `label`, on the label grid."""
    mask = (as_label_array(label_volume.data) == label).astype(np.uint8)
    return label_volume.with_data(mask, kind=LABEL)


def apply_mask(
    volume: np.ndarray,
    mask: np.ndarray,
) -> np.ndarray:
    """
    Multiply a volume by a 0/1 mask elementwise.

    Parameters
    ----------
    volume:
        3D [Z, Y, X] array.
    mask:
        3D [Z, Y, X] array of 0/1 (or bool) with the same shape.

    Returns
    -------
    np.ndarray
        float32 array holding the original values inside the mask and zero
        elsewhere.
    """
    if mask.ndim != 3:
        raise ValueError(f"Mask must be 3D [Z, Y, X], got shape {mask.shape}")

    if volume.shape != mask.shape:
        raise ValueError(
            f"Volume shape {volume.shape} does not match mask shape {mask.shape}"
        )

    return volume.astype(np.float32) * mask.astype(np.float32)


def crop_to_nonzero(
    mask: np.ndarray,
    margin: int = 0,
) -> Tuple[slice, slice, slice] | None:
    """
    Minimal bounding box (as slices) containing all non-zero voxels.

    Parameters
    ----------
    mask:
        3D [Z, Y, X] array.
    margin:
        Extra voxels to keep around the bounding box in each direction.

    Returns
    -------
    tuple of slices or None
        (sz, sy, sx) usable to index the array, or None if the mask is empty.
    """
    if mask.ndim != 3:
        raise ValueError(
            f"crop_to_nonzero expects a 3D array, got ndim {mask.ndim}"
        )

    coords = np.argwhere(mask != 0)
    if coords.size == 0:
        return None

    lo = np.maximum(coords.min(axis=0) - margin, 0)
    hi = np.minimum(coords.max(axis=0) + margin, np.asarray(mask.shape) - 1)

    return tuple(slice(int(a), int(b) + 1) for a, b in zip(lo, hi))  # type: ignore[return-value]
