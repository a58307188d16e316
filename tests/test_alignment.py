from __future__ import annotations

import numpy as np
import pytest

from regions3d.core.alignment import (
    align,
    align_intensity_to_labels,
    align_labels_to_intensity,
    compute_spatial_overlap,
    describe_grid,
    grids_match,
    resample_to_resolution,
    validate_label_integrity,
)
from regions3d.core.errors import AlignmentError
from regions3d.core.models import LABEL, GridSpec, Interpolation
from regions3d.core.volume import distinct_labels

from conftest import make_volume


def coarse_labels():
    data = np.zeros((10, 10, 10), dtype=np.int32)
    data[1:4, 1:4, 1:4] = 3
    data[6:9, 6:9, 6:9] = 7
    return make_volume(data, kind=LABEL, spacing=(2.0, 2.0, 2.0))


def test_matching_grids_return_a_copy(label_volume):
    out = align(label_volume, label_volume)
    assert out is not label_volume
    assert out.data is not label_volume.data
    np.testing.assert_array_equal(out.data, label_volume.data)


def test_labels_adopt_intensity_grid(intensity_volume):
    labels = coarse_labels()
    aligned = align_labels_to_intensity(labels, intensity_volume)

    assert aligned.kind == LABEL
    assert aligned.data.shape == intensity_volume.data.shape
    assert aligned.spacing == intensity_volume.spacing
    assert aligned.origin == intensity_volume.origin
    assert aligned.data.dtype == labels.data.dtype
    assert grids_match(aligned, intensity_volume)


def test_nearest_resampling_never_invents_labels(intensity_volume):
    labels = coarse_labels()
    aligned = align_labels_to_intensity(labels, intensity_volume)

    assert set(distinct_labels(aligned.data)) <= set(distinct_labels(labels.data))
    report = validate_label_integrity(labels, aligned)
    assert report.ok
    assert report.introduced == []


def test_linear_resampling_of_labels_can_be_flagged(intensity_volume):
    labels = coarse_labels()
    blended = align(labels, intensity_volume, Interpolation.LINEAR)
    blended = blended.with_data(np.rint(blended.data).astype(np.int32))

    report = validate_label_integrity(labels, blended)
    assert not report.ok
    assert report.introduced


def test_lost_labels_do_not_violate_integrity():
    data = np.zeros((8, 8, 8), dtype=np.int32)
    data[1, 1, 1] = 5
    data[2:7, 2:7, 2:7] = 1
    fine = make_volume(data, kind=LABEL)
    # samples only voxels 0 and 4 along each axis
    coarse = resample_to_resolution(fine, (4.0, 4.0, 4.0))

    report = validate_label_integrity(fine, coarse)
    assert report.lost == [5]
    assert report.resampled == [1]
    assert report.ok


def test_outside_source_extent_is_zero():
    labels = make_volume(np.ones((4, 4, 4), dtype=np.int32), kind=LABEL)
    grid = GridSpec(dimensions=(8, 8, 8), spacing=(1.0, 1.0, 1.0), origin=(0.0, 0.0, 0.0))
    out = align(labels, grid)

    assert out.data[:4, :4, :4].min() == 1
    assert out.data[6:, 6:, 6:].max() == 0


def test_intensity_to_labels_is_linear(intensity_volume):
    out = align_intensity_to_labels(intensity_volume, coarse_labels())
    assert out.data.dtype == np.float32
    assert out.data.shape == (10, 10, 10)


def test_resample_to_resolution_keeps_extent():
    vol = make_volume(np.zeros((10, 10, 10), dtype=np.float32))
    out = resample_to_resolution(vol, (2.0, 2.0, 2.0))
    assert out.dimensions == (5, 5, 5)
    assert out.spacing == (2.0, 2.0, 2.0)
    assert out.origin == vol.origin


@pytest.mark.parametrize("spacing", [(0.0, 1.0, 1.0), (1.0, -1.0, 1.0)])
def test_degenerate_spacing_raises(intensity_volume, spacing):
    bad = GridSpec(dimensions=(4, 4, 4), spacing=spacing)
    with pytest.raises(AlignmentError):
        align(intensity_volume, bad)


def test_spatial_overlap(intensity_volume):
    assert compute_spatial_overlap(intensity_volume, intensity_volume) == pytest.approx(1.0)

    shifted = make_volume(intensity_volume.data, origin=(100.0, 0.0, 0.0))
    assert compute_spatial_overlap(intensity_volume, shifted) == 0.0

    half = make_volume(intensity_volume.data, origin=(10.0, 0.0, 0.0))
    assert 0.0 < compute_spatial_overlap(intensity_volume, half) < 1.0


def test_describe_grid_mentions_dimensions(label_volume):
    text = describe_grid(label_volume, "Labels")
    assert text.startswith("Labels spatial info:")
    assert "20 x 20 x 20" in text
