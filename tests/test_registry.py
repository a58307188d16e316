from __future__ import annotations

import numpy as np
import pytest
import pyvista as pv

from regions3d.core.errors import StateError
from regions3d.core.events import ERROR, REGION_VISIBILITY_CHANGED, REGIONS_PROCESSED, EventChannel
from regions3d.core.models import LABEL, RegionConfig
from regions3d.core.registry import RegionRegistry
from regions3d.core.volume import distinct_labels

from conftest import make_volume


@pytest.fixture
def events():
    channel = EventChannel()
    log = []
    channel.connect(ERROR, lambda msg: log.append((ERROR, msg)))
    channel.connect(REGIONS_PROCESSED, lambda: log.append((REGIONS_PROCESSED,)))
    channel.connect(REGION_VISIBILITY_CHANGED, lambda label, vis: log.append((REGION_VISIBILITY_CHANGED, label, vis)))
    channel.log = log
    return channel


def test_one_region_per_distinct_label(volume_pair, events):
    intensity, labels = volume_pair
    registry = RegionRegistry(events=events)
    result = registry.process_regions(intensity, labels)

    assert result == distinct_labels(labels.data) == [1, 2]
    assert registry.labels() == [1, 2]
    assert len(registry) == 2
    assert registry.processed
    assert events.log == [(REGIONS_PROCESSED,)]


def test_colors_follow_label_ids(volume_pair):
    registry = RegionRegistry()
    registry.process_regions(*volume_pair)

    assert registry.get(1).color == (1.0, 0.0, 0.0)
    assert registry.get(2).color == (0.0, 1.0, 0.0)


def test_centroids_of_cubes(volume_pair):
    registry = RegionRegistry()
    registry.process_regions(*volume_pair)

    np.testing.assert_allclose(registry.get(1).centroid, (4.5, 4.5, 4.5), atol=0.25)
    np.testing.assert_allclose(registry.get(2).centroid, (14.5, 14.5, 14.5), atol=0.25)


def test_reprocessing_replaces_the_set(volume_pair):
    intensity, labels = volume_pair
    registry = RegionRegistry()
    registry.process_regions(intensity, labels)
    old = registry.get(1)

    only_two = labels.with_data(np.where(labels.data == 2, 2, 0).astype(np.int32))
    registry.process_regions(intensity, only_two)

    assert registry.labels() == [2]
    assert registry.get(1) is None
    assert not old.has_geometry


def test_flat_intensity_uses_mask_surfaces(intensity_volume, events):
    data = np.zeros((20, 20, 20), dtype=np.int32)
    data[2:8, 2:8, 2:8] = 1
    data[0, 0, 0] = 4
    labels = make_volume(data, kind=LABEL)
    flat = intensity_volume.with_data(np.zeros_like(intensity_volume.data))

    registry = RegionRegistry(events=events)
    registry.process_regions(flat, labels)

    # both regions exist; the single-voxel one still gets a mask surface
    assert registry.labels() == [1, 4]
    assert registry.get(1).has_geometry
    assert registry.result(1).strategy == "mask"


def test_failed_region_is_kept_and_reported(intensity_volume, events):
    registry = RegionRegistry(RegionConfig(mask_level=2.0), events=events)
    flat = intensity_volume.with_data(np.zeros_like(intensity_volume.data))
    data = np.zeros((20, 20, 20), dtype=np.int32)
    data[2:8, 2:8, 2:8] = 3
    registry.process_regions(flat, make_volume(data, kind=LABEL))

    region = registry.get(3)
    assert region is not None
    assert not region.has_geometry
    np.testing.assert_array_equal(region.centroid, np.zeros(3))
    assert [e[0] for e in events.log] == [ERROR, REGIONS_PROCESSED]


def test_labels_on_coarser_grid_are_aligned_once(intensity_volume):
    data = np.zeros((10, 10, 10), dtype=np.int32)
    data[1:4, 1:4, 1:4] = 1
    data[6:9, 6:9, 6:9] = 2
    coarse = make_volume(data, kind=LABEL, spacing=(2.0, 2.0, 2.0))

    registry = RegionRegistry()
    registry.process_regions(intensity_volume, coarse)

    assert registry.aligned_labels.data.shape == intensity_volume.data.shape
    assert registry.integrity is not None and registry.integrity.ok
    assert registry.labels() == [1, 2]


def test_parallel_build_matches_sequential(volume_pair):
    sequential = RegionRegistry()
    sequential.process_regions(*volume_pair)
    parallel = RegionRegistry(RegionConfig(max_workers=4))
    parallel.process_regions(*volume_pair)

    assert parallel.labels() == sequential.labels()
    for label in sequential.labels():
        assert parallel.get(label).color == sequential.get(label).color
        np.testing.assert_allclose(parallel.get(label).centroid, sequential.get(label).centroid)


def test_sort_is_back_to_front(volume_pair):
    registry = RegionRegistry()
    registry.process_regions(*volume_pair)

    assert registry.sort_by_camera_distance((0.0, 0.0, 0.0)) == [2, 1]
    assert registry.sort_by_camera_distance((30.0, 30.0, 30.0)) == [1, 2]
    assert registry.draw_order == [1, 2]


def test_sort_ties_keep_label_order():
    labels = np.zeros((20, 20, 20), dtype=np.int32)
    labels[2:8, 2:8, 2:8] = 5
    labels[12:18, 2:8, 2:8] = 3
    intensity = make_volume((labels > 0).astype(np.float32) * 1000.0)
    registry = RegionRegistry()
    registry.process_regions(intensity, make_volume(labels, kind=LABEL))

    registry.get(5).set_geometry(pv.Box(bounds=(0, 2, 0, 2, 0, 2)))
    registry.get(3).set_geometry(pv.Box(bounds=(8, 10, 0, 2, 0, 2)))

    # camera halfway between both centroids
    assert registry.sort_by_camera_distance((5.0, 1.0, 1.0)) == [3, 5]


def test_sort_skips_hidden_regions(volume_pair, events):
    registry = RegionRegistry(events=events)
    registry.process_regions(*volume_pair)

    registry.get(2).set_visible(False)
    assert registry.sort_by_camera_distance((0.0, 0.0, 0.0)) == [1]

    registry.set_all_visible(False)
    assert registry.sort_by_camera_distance((0.0, 0.0, 0.0)) == []
    assert (REGION_VISIBILITY_CHANGED, 2, False) in events.log
    assert (REGION_VISIBILITY_CHANGED, 1, False) in events.log


def test_sort_requires_processing():
    with pytest.raises(StateError):
        RegionRegistry().sort_by_camera_distance((0.0, 0.0, 0.0))


def test_sort_rejects_bad_position(volume_pair):
    registry = RegionRegistry()
    registry.process_regions(*volume_pair)
    with pytest.raises(ValueError):
        registry.sort_by_camera_distance((0.0, 0.0))


def test_clear(volume_pair):
    registry = RegionRegistry()
    registry.process_regions(*volume_pair)
    registry.clear()
    assert len(registry) == 0
    assert not registry.processed
