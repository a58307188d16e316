from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .alignment import LabelIntegrity, align_labels_to_intensity, grids_match, validate_label_integrity
from .colors import color_for_label
from .errors import AlignmentError, StateError
from .events import ERROR, REGION_VISIBILITY_CHANGED, REGIONS_PROCESSED, EventChannel
from .geometry import GeometryResult, RegionGeometryBuilder
from .models import GrayWindow, RegionConfig, RegionId, ScalarVolume
from .region import VISIBILITY, RegionVolume
from .volume import distinct_labels

logger = logging.getLogger(__name__)


class RegionRegistry:
    """
    Owns every RegionVolume of the current processing run, keyed by label id.

    A processing run replaces the whole set; there is no incremental add or
    remove of single regions. References handed out by `get` are invalid
    after the next `process_regions` or `clear`.
    """

    def __init__(
        self,
        config: Optional[RegionConfig] = None,
        builder: Optional[RegionGeometryBuilder] = None,
        events: Optional[EventChannel] = None,
    ) -> None:
        self.config = config or RegionConfig()
        self.builder = builder or RegionGeometryBuilder(self.config)
        self.events = events or EventChannel()

        self._regions: Dict[RegionId, RegionVolume] = {}
        self._results: Dict[RegionId, GeometryResult] = {}
        self._draw_order: List[RegionId] = []
        self._processed = False

        self.aligned_labels: Optional[ScalarVolume] = None
        self.integrity: Optional[LabelIntegrity] = None

    # ------------------------------------------------------------------ #
    # Container protocol
    # ------------------------------------------------------------------ #
    def __len__(self) -> int:
        return len(self._regions)

    def __contains__(self, label: object) -> bool:
        return label in self._regions

    def __iter__(self) -> Iterator[RegionVolume]:
        for label in sorted(self._regions):
            yield self._regions[label]

    def get(self, label: RegionId) -> Optional[RegionVolume]:
        return self._regions.get(int(label))

    def labels(self) -> List[RegionId]:
        return sorted(self._regions)

    def result(self, label: RegionId) -> Optional[GeometryResult]:
        """Build diagnostics (threshold, ladder attempts, failure reason) of a region."""
        return self._results.get(int(label))

    @property
    def processed(self) -> bool:
        return self._processed

    @property
    def draw_order(self) -> List[RegionId]:
        return list(self._draw_order)

    # ------------------------------------------------------------------ #
    # Batch processing
    # ------------------------------------------------------------------ #
    def clear(self) -> None:
        """Discard every region and release its geometry."""
        for region in self._regions.values():
            region.release()
        self._regions.clear()
        self._results.clear()
        self._draw_order = []
        self._processed = False
        self.aligned_labels = None
        self.integrity = None

    def process_regions(
        self,
        intensity: ScalarVolume,
        labels: ScalarVolume,
        gray_window: Optional[GrayWindow] = None,
        max_workers: Optional[int] = None,
    ) -> List[RegionId]:
        """
        Build one RegionVolume per distinct non-zero label.

        Steps:
          1. discard the previous set,
          2. resample the label volume onto the intensity grid if they differ,
          3. for each label ascending: assign its color, build its surface,
          4. emit a single regions_processed event.

        Per-label failures never abort the batch: the region is kept without
        geometry and an error event describes the failure.

        Returns
        -------
        list of int
            Sorted label ids of the new set.
        """
        self.clear()

        window = gray_window if gray_window is not None and gray_window.active else None
        label_volume = self._reconcile_labels(intensity, labels)
        label_ids = distinct_labels(label_volume.data)
        logger.info("Processing %d region(s): %s", len(label_ids), label_ids)

        workers = self.config.max_workers if max_workers is None else max_workers
        built = self._build_all(intensity, label_volume, label_ids, window, max(1, int(workers)))

        # Insertion is serialized here, in ascending label order.
        for region, result in built:
            region.subscribe(self._on_region_changed)
            self._regions[region.label] = region
            self._results[region.label] = result
            if not result.has_geometry:
                self.events.emit(ERROR, f"Region {region.label}: no geometry ({result.reason})")

        self._processed = True
        n_ok = sum(1 for r in self._regions.values() if r.has_geometry)
        logger.info("Region processing complete: %d/%d with geometry", n_ok, len(self._regions))
        self.events.emit(REGIONS_PROCESSED)
        return self.labels()

    def _reconcile_labels(self, intensity: ScalarVolume, labels: ScalarVolume) -> ScalarVolume:
        if grids_match(labels, intensity):
            self.aligned_labels = labels
            return labels
        try:
            aligned = align_labels_to_intensity(labels, intensity)
        except AlignmentError as exc:
            # Each builder retries the reconciliation on its own mask.
            message = f"Label volume could not be aligned to the intensity grid: {exc}"
            logger.warning(message)
            self.events.emit(ERROR, message)
            self.aligned_labels = labels
            return labels
        self.integrity = validate_label_integrity(labels, aligned)
        self.aligned_labels = aligned
        return aligned

    def _build_one(
        self,
        intensity: ScalarVolume,
        labels: ScalarVolume,
        label: RegionId,
        window: Optional[GrayWindow],
    ) -> Tuple[RegionVolume, GeometryResult]:
        region = RegionVolume(
            label,
            color=color_for_label(label),
            opacity=self.config.default_opacity,
            gray_window=window,
        )
        result = self.builder.build(intensity, labels, label, window)
        region.set_geometry(result.surface, result.threshold, result.strategy, result.reason)
        return region, result

    def _build_all(
        self,
        intensity: ScalarVolume,
        labels: ScalarVolume,
        label_ids: Sequence[RegionId],
        window: Optional[GrayWindow],
        workers: int,
    ) -> List[Tuple[RegionVolume, GeometryResult]]:
        if workers <= 1 or len(label_ids) <= 1:
            return [self._build_one(intensity, labels, label, window) for label in label_ids]

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(self._build_one, intensity, labels, label, window)
                for label in label_ids
            ]
            return [f.result() for f in futures]

    # ------------------------------------------------------------------ #
    # Visibility and draw order
    # ------------------------------------------------------------------ #
    def set_all_visible(self, visible: bool) -> None:
        for region in self:
            region.set_visible(visible)

    def sort_by_camera_distance(self, camera_position: Sequence[float]) -> List[RegionId]:
        """
        Back-to-front draw order of the visible regions with geometry.

        Distance is measured from each centroid to `camera_position`, farthest
        first; ties keep ascending label order. The order always reflects the
        visibility set at call time.
        """
        if not self._processed:
            raise StateError("Regions must be processed before sorting by camera distance")
        if len(camera_position) != 3:
            raise ValueError(f"camera position must have 3 elements, got {camera_position!r}")

        candidates = [r for r in self if r.visible and r.has_geometry]
        candidates.sort(key=lambda r: r.distance_to(camera_position), reverse=True)
        self._draw_order = [r.label for r in candidates]
        logger.debug("Draw order for camera %s: %s", tuple(camera_position), self._draw_order)
        return list(self._draw_order)

    def _on_region_changed(self, region: RegionVolume, change: str) -> None:
        if change == VISIBILITY:
            self.events.emit(REGION_VISIBILITY_CHANGED, region.label, region.visible)
