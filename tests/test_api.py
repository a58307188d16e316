from __future__ import annotations

import numpy as np
import pytest

from regions3d.api import RegionVisualizer
from regions3d.core.events import ERROR, REGION_VISIBILITY_CHANGED, REGIONS_PROCESSED
from regions3d.core.models import LABEL

from conftest import CUBE_1, CUBE_2, SHAPE, make_volume


class RecordingScene:
    def __init__(self):
        self.calls = []
        self.regions = {}

    def add_region(self, region):
        self.calls.append(("add", region.label))
        self.regions[region.label] = region

    def remove_region(self, label):
        self.calls.append(("remove", label))
        self.regions.pop(label, None)

    def update_region(self, region):
        self.calls.append(("update", region.label))

    def apply_draw_order(self, labels):
        self.calls.append(("order", list(labels)))


@pytest.fixture
def viz():
    v = RegionVisualizer()
    v.errors = []
    v.events.connect(ERROR, v.errors.append)
    return v


@pytest.fixture
def loaded(viz, nifti_pair):
    intensity_path, label_path = nifti_pair
    assert viz.load_intensity_volume(intensity_path)
    assert viz.load_label_volume(label_path)
    return viz


def test_missing_file_reports_one_error(viz, tmp_path):
    assert not viz.load_intensity_volume(tmp_path / "missing.nii.gz")
    assert len(viz.errors) == 1
    assert not viz.has_intensity_data()

    assert not viz.load_label_volume("")
    assert len(viz.errors) == 2
    assert not viz.has_label_data()


def test_failed_load_keeps_previous_volume(loaded, tmp_path):
    before = loaded.intensity_volume
    assert not loaded.load_intensity_volume(tmp_path / "nope.nrrd")
    assert loaded.intensity_volume is before


def test_unsupported_format(viz, tmp_path):
    path = tmp_path / "scan.txt"
    path.write_text("not a volume")
    assert not viz.load_intensity_volume(path)
    assert len(viz.errors) == 1


def test_process_requires_both_volumes(viz, nifti_pair):
    assert not viz.process_regions()
    assert len(viz.errors) == 1

    viz.load_intensity_volume(nifti_pair[0])
    assert not viz.process_regions()
    assert len(viz.errors) == 2
    assert not viz.has_processed_regions()


def test_labels_property(loaded):
    processed = []
    loaded.events.connect(REGIONS_PROCESSED, lambda: processed.append(True))

    assert loaded.process_regions()
    assert loaded.get_all_labels() == [1, 2]
    assert loaded.region_count() == 2
    assert loaded.has_processed_regions()
    assert processed == [True]
    assert loaded.errors == []


def test_default_colors(loaded):
    loaded.process_regions()
    assert loaded.get_region_color(1) == (1.0, 0.0, 0.0)
    assert loaded.get_region_color(2) == (0.0, 1.0, 0.0)


def test_set_color_is_idempotent(loaded):
    loaded.process_regions()
    assert loaded.set_region_color(1, (0.2, 0.4, 0.6))
    assert loaded.set_region_color(1, (0.2, 0.4, 0.6))
    assert loaded.get_region_color(1) == pytest.approx((0.2, 0.4, 0.6))


def test_opacity(loaded):
    loaded.process_regions()
    assert loaded.get_region_opacity(2) == 1.0
    assert loaded.set_region_opacity(2, 0.25)
    assert loaded.get_region_opacity(2) == 0.25

    assert not loaded.set_region_opacity(2, 3.0)
    assert loaded.get_region_opacity(2) == 0.25
    assert len(loaded.errors) == 1


def test_unknown_region(loaded):
    loaded.process_regions()
    assert not loaded.set_region_visible(42, False)
    assert len(loaded.errors) == 1
    assert loaded.get_region_color(42) is None
    assert not loaded.is_region_visible(42)
    assert loaded.get_region_centroid(42) is None


def test_visibility_events(loaded):
    loaded.process_regions()
    seen = []
    loaded.events.connect(REGION_VISIBILITY_CHANGED, lambda label, vis: seen.append((label, vis)))

    loaded.set_region_visible(1, False)
    loaded.set_region_visible(1, False)
    assert seen == [(1, False)]
    assert not loaded.is_region_visible(1)


def test_hide_all_gives_empty_draw_order(loaded):
    loaded.process_regions()
    loaded.set_all_regions_visible(False)
    assert loaded.sort_by_camera((0.0, 0.0, 0.0)) == []

    loaded.set_all_regions_visible(True)
    assert loaded.sort_by_camera((0.0, 0.0, 0.0)) == [2, 1]


def test_sort_before_processing_is_an_error(viz):
    assert viz.sort_by_camera((0.0, 0.0, 0.0)) == []
    assert len(viz.errors) == 1


def test_gray_window_reaches_threshold(loaded):
    assert loaded.process_regions(1000.0, 1800.0)
    assert loaded.gray_window.active
    assert loaded.registry.result(1).threshold == pytest.approx(500.0)


def test_process_needs_both_window_bounds(loaded):
    assert not loaded.process_regions(10.0, None)
    assert len(loaded.errors) == 1


def test_centroid_query_returns_a_copy(loaded):
    loaded.process_regions()
    centroid = loaded.get_region_centroid(1)
    centroid[:] = 99.0
    np.testing.assert_allclose(loaded.get_region_centroid(1), (4.5, 4.5, 4.5), atol=0.25)


def test_clear_regions(loaded):
    loaded.process_regions()
    loaded.clear_regions()
    assert loaded.get_all_labels() == []
    assert not loaded.has_processed_regions()
    assert loaded.has_intensity_data()


def test_preview_surface(loaded):
    surface = loaded.preview_intensity_surface()
    assert surface is not None and surface.n_points > 0


def test_preview_without_volume(viz):
    assert viz.preview_intensity_surface() is None
    assert len(viz.errors) == 1


def test_scene_follows_regions(loaded):
    scene = RecordingScene()
    loaded.set_scene(scene)
    loaded.process_regions()
    assert sorted(scene.regions) == [1, 2]

    loaded.set_region_opacity(1, 0.5)
    assert scene.calls[-1] == ("update", 1)

    loaded.sort_by_camera((0.0, 0.0, 0.0))
    assert scene.calls[-1] == ("order", [2, 1])

    loaded.process_regions()
    assert ("remove", 1) in scene.calls
    assert sorted(scene.regions) == [1, 2]

    loaded.clear_regions()
    assert scene.regions == {}


def test_scene_attached_late_receives_existing_regions(loaded):
    loaded.process_regions()
    scene = RecordingScene()
    loaded.set_scene(scene)
    assert sorted(scene.regions) == [1, 2]

    loaded.set_scene(None)
    assert scene.regions == {}


def test_export(loaded, tmp_path):
    loaded.process_regions()
    out = tmp_path / "regions.txt"
    assert loaded.export_region_info(out)
    assert "Region 1:" in out.read_text()


def test_export_failure(loaded, tmp_path):
    loaded.process_regions()
    assert not loaded.export_region_info(tmp_path / "missing_dir" / "regions.txt")
    assert len(loaded.errors) == 1


def test_reprocessing_reproduces_colors(loaded):
    loaded.process_regions()
    first = {label: loaded.get_region_color(label) for label in loaded.get_all_labels()}
    loaded.process_regions()
    second = {label: loaded.get_region_color(label) for label in loaded.get_all_labels()}
    assert first == second


def test_in_memory_float_labels_are_rounded_to_ids(viz, intensity_volume):
    data = np.zeros(SHAPE, dtype=np.float32)
    data[CUBE_1] = 0.6
    data[CUBE_2] = 2.4
    viz.set_intensity_volume(intensity_volume)
    viz.set_label_volume(make_volume(data, kind=LABEL))

    assert viz.label_volume.data.dtype == np.int32
    assert viz.process_regions()
    assert viz.get_all_labels() == [1, 2]
    assert all(viz.get_region(label).has_geometry for label in (1, 2))
    assert viz.errors == []


def test_visibility_change_reapplies_draw_order(loaded):
    scene = RecordingScene()
    loaded.set_scene(scene)
    loaded.process_regions()
    assert loaded.sort_by_camera((0.0, 0.0, 0.0)) == [2, 1]

    loaded.set_region_visible(2, False)
    assert scene.calls[-1] == ("order", [1])
    assert loaded.draw_order == [1]

    loaded.set_region_visible(2, True)
    assert scene.calls[-1] == ("order", [2, 1])


def test_show_all_reorders_once(loaded):
    scene = RecordingScene()
    loaded.set_scene(scene)
    loaded.process_regions()
    loaded.sort_by_camera((0.0, 0.0, 0.0))

    scene.calls.clear()
    loaded.set_all_regions_visible(False)
    assert [c for c in scene.calls if c[0] == "order"] == [("order", [])]


def test_no_reorder_before_first_sort(loaded):
    scene = RecordingScene()
    loaded.set_scene(scene)
    loaded.process_regions()
    loaded.set_region_visible(1, False)
    assert not any(c[0] == "order" for c in scene.calls)
    assert loaded.errors == []
