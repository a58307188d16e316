from __future__ import annotations

import os
from pathlib import Path
from typing import Tuple

import numpy as np
import pytest

from regions3d.core.models import INTENSITY, LABEL, ScalarVolume

SHAPE = (20, 20, 20)  # (Z, Y, X)

# Two cubic regions on opposite corners of the volume.
CUBE_1 = (slice(2, 8), slice(2, 8), slice(2, 8))
CUBE_2 = (slice(12, 18), slice(12, 18), slice(12, 18))


def make_volume(
    data: np.ndarray,
    kind: str = INTENSITY,
    spacing=(1.0, 1.0, 1.0),
    origin=(0.0, 0.0, 0.0),
) -> ScalarVolume:
    return ScalarVolume(data=data, spacing=spacing, origin=origin, kind=kind)


@pytest.fixture
def label_volume() -> ScalarVolume:
    data = np.zeros(SHAPE, dtype=np.int32)
    data[CUBE_1] = 1
    data[CUBE_2] = 2
    return make_volume(data, kind=LABEL)


@pytest.fixture
def intensity_volume() -> ScalarVolume:
    data = np.zeros(SHAPE, dtype=np.float32)
    data[CUBE_1] = 1500.0
    data[CUBE_2] = 800.0
    return make_volume(data)


@pytest.fixture
def volume_pair(intensity_volume, label_volume) -> Tuple[ScalarVolume, ScalarVolume]:
    return intensity_volume, label_volume


def write_nifti(volume: ScalarVolume, path: Path) -> Path:
    """Write a [Z, Y, X] volume as NIfTI with a diagonal affine."""
    import nibabel as nib

    affine = np.diag(list(volume.spacing) + [1.0])
    affine[:3, 3] = volume.origin
    data = np.transpose(volume.data, (2, 1, 0))
    if volume.kind == LABEL:
        data = data.astype(np.int16)
    else:
        data = data.astype(np.float32)
    nib.save(nib.Nifti1Image(data, affine), str(path))
    return path


@pytest.fixture
def nifti_pair(tmp_path, intensity_volume, label_volume) -> Tuple[Path, Path]:
    return (
        write_nifti(intensity_volume, tmp_path / "t1.nii.gz"),
        write_nifti(label_volume, tmp_path / "labels.nii.gz"),
    )


@pytest.fixture(scope="session")
def qapp():
    """One QApplication for the whole session; widgets need it, signals accept it."""
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    QtWidgets = pytest.importorskip("PySide6.QtWidgets")
    app = QtWidgets.QApplication.instance()
    if app is None:
        app = QtWidgets.QApplication([])
    return app
