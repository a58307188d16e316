"""
Public entry point of regions3d.

`RegionVisualizer` composes the volume loader, the spatial aligner, the
region registry and an optional Scene. Nothing raises past this boundary:
every failure becomes a boolean / empty return value plus one `error` event.

Example
-------
>>> viz = RegionVisualizer()
>>> viz.events.connect("error", print)
>>> viz.load_intensity_volume("t1.nii.gz")
>>> viz.load_label_volume("atlas.nii.gz")
>>> viz.process_regions()
>>> viz.sort_by_camera((0.0, -400.0, 0.0))
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np
import pyvista as pv

from .core import export as exportmod
from .core.errors import InputError, StateError
from .core.events import ERROR, REGION_VISIBILITY_CHANGED, REGIONS_PROCESSED, EventChannel
from .core.geometry import RegionGeometryBuilder
from .core.models import INTENSITY, LABEL, ColorRGB, GrayWindow, RegionConfig, RegionId, ScalarVolume
from .core.region import GEOMETRY, VISIBILITY, RegionVolume
from .core.registry import RegionRegistry
from .core.scene import Scene
from .core.volume import as_label_array, load_volume

logger = logging.getLogger(__name__)


class RegionVisualizer:
    """
    Façade over the region extraction pipeline.

    Events (see core.events): "error", "regions_processed",
    "region_visibility_changed".
    """

    def __init__(
        self,
        config: Optional[RegionConfig] = None,
        scene: Optional[Scene] = None,
    ) -> None:
        self.config = config or RegionConfig()
        self.events = EventChannel()
        self.builder = RegionGeometryBuilder(self.config)
        self.registry = RegionRegistry(self.config, self.builder, self.events)
        self._scene: Optional[Scene] = scene

        self._intensity: Optional[ScalarVolume] = None
        self._labels: Optional[ScalarVolume] = None
        self._gray_window: Optional[GrayWindow] = None
        self._camera_position: Optional[Tuple[float, float, float]] = None
        self._hold_draw_order = False

    # ------------------------------------------------------------------ #
    # Events / scene
    # ------------------------------------------------------------------ #
    def on_error(self, callback: Callable[[str], Any]) -> None:
        self.events.connect(ERROR, callback)

    def on_regions_processed(self, callback: Callable[[], Any]) -> None:
        self.events.connect(REGIONS_PROCESSED, callback)

    def on_region_visibility_changed(self, callback: Callable[[int, bool], Any]) -> None:
        self.events.connect(REGION_VISIBILITY_CHANGED, callback)

    def set_scene(self, scene: Optional[Scene]) -> None:
        """Attach a Scene (or detach with None); existing regions are pushed into it."""
        self._detach_all()
        self._scene = scene
        if scene is not None:
            for region in self.registry:
                if region.has_geometry:
                    scene.add_region(region)

    @property
    def scene(self) -> Optional[Scene]:
        return self._scene

    def _error(self, message: str) -> None:
        logger.error(message)
        self.events.emit(ERROR, message)

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #
    def load_intensity_volume(self, path: str | Path) -> bool:
        volume = self._load(path, INTENSITY)
        if volume is None:
            return False
        self._intensity = volume
        return True

    def load_label_volume(self, path: str | Path) -> bool:
        volume = self._load(path, LABEL)
        if volume is None:
            return False
        self._labels = volume
        return True

    def set_intensity_volume(self, volume: ScalarVolume) -> None:
        """Use an in-memory intensity volume instead of loading one."""
        self._intensity = volume if volume.kind == INTENSITY else volume.with_data(volume.data, INTENSITY)

    def set_label_volume(self, volume: ScalarVolume) -> None:
        """Use an in-memory label volume instead of loading one."""
        self._labels = volume.with_data(as_label_array(volume.data), LABEL)

    def _load(self, path: str | Path, kind: str) -> Optional[ScalarVolume]:
        try:
            return load_volume(path, kind=kind)
        except InputError as exc:
            self._error(f"Failed to load {kind} volume: {exc}")
            return None

    @property
    def intensity_volume(self) -> Optional[ScalarVolume]:
        return self._intensity

    @property
    def label_volume(self) -> Optional[ScalarVolume]:
        return self._labels

    # ------------------------------------------------------------------ #
    # Processing
    # ------------------------------------------------------------------ #
    def set_gray_window(self, min_gray: float, max_gray: float) -> None:
        """
        Store the process-wide gray window.

        Active only if min_gray < max_gray. Existing regions are not rebuilt;
        the window is picked up by the next `process_regions`.
        """
        self._gray_window = GrayWindow(float(min_gray), float(max_gray))
        logger.debug(
            "Gray window [%g, %g] (%s)", min_gray, max_gray,
            "active" if self._gray_window.active else "inactive",
        )

    @property
    def gray_window(self) -> Optional[GrayWindow]:
        return self._gray_window

    def process_regions(
        self,
        min_gray: Optional[float] = None,
        max_gray: Optional[float] = None,
    ) -> bool:
        """
        Rebuild every region from the loaded volumes.

        With `min_gray`/`max_gray` the gray window is updated first.
        Returns False (and emits one error) if either volume is missing.
        """
        if (min_gray is None) != (max_gray is None):
            self._error("process_regions needs both min_gray and max_gray, or neither")
            return False
        if not self._check_loaded():
            return False
        if min_gray is not None:
            self.set_gray_window(min_gray, max_gray)

        self._detach_all()
        self.registry.process_regions(self._intensity, self._labels, self._gray_window)
        for region in self.registry:
            self._attach(region)
        return True

    def _check_loaded(self) -> bool:
        if self._intensity is None or self._labels is None:
            self._error("Both intensity and label volumes must be loaded before processing regions")
            return False
        return True

    def clear_regions(self) -> None:
        self._detach_all()
        self.registry.clear()

    def preview_intensity_surface(self) -> Optional[pv.PolyData]:
        """Whole-volume surface at the tiered threshold, honouring the gray window."""
        if self._intensity is None:
            self._error("No intensity volume loaded")
            return None
        surface = self.builder.build_preview(self._intensity, self._gray_window)
        if surface is None:
            self._error("Intensity preview produced no surface")
        return surface

    # ------------------------------------------------------------------ #
    # Region control
    # ------------------------------------------------------------------ #
    def _region(self, label: RegionId) -> Optional[RegionVolume]:
        region = self.registry.get(label)
        if region is None:
            self._error(f"Unknown region {label}")
        return region

    def set_region_visible(self, label: RegionId, visible: bool) -> bool:
        region = self._region(label)
        if region is None:
            return False
        region.set_visible(visible)
        return True

    def set_all_regions_visible(self, visible: bool) -> None:
        self._hold_draw_order = True
        try:
            self.registry.set_all_visible(visible)
        finally:
            self._hold_draw_order = False
        self._refresh_draw_order()

    def set_region_color(self, label: RegionId, color) -> bool:
        region = self._region(label)
        if region is None:
            return False
        try:
            region.set_color(color)
        except ValueError as exc:
            self._error(f"Region {label}: {exc}")
            return False
        return True

    def set_region_opacity(self, label: RegionId, opacity: float) -> bool:
        region = self._region(label)
        if region is None:
            return False
        try:
            region.set_opacity(opacity)
        except ValueError as exc:
            self._error(f"Region {label}: {exc}")
            return False
        return True

    def sort_by_camera(self, camera_position: Sequence[float]) -> List[RegionId]:
        """
        Recompute the back-to-front draw order and apply it to the Scene.

        Returns the ordered label ids (farthest first), or [] on error.
        """
        try:
            order = self.registry.sort_by_camera_distance(camera_position)
        except (StateError, ValueError) as exc:
            self._error(str(exc))
            return []
        self._camera_position = tuple(float(c) for c in camera_position)
        if self._scene is not None:
            self._scene.apply_draw_order(order)
        return order

    def _refresh_draw_order(self) -> None:
        """Re-sort for the last camera position once the visible set has changed."""
        if self._camera_position is not None and self.registry.processed:
            self.sort_by_camera(self._camera_position)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def get_all_labels(self) -> List[RegionId]:
        return self.registry.labels()

    def get_region(self, label: RegionId) -> Optional[RegionVolume]:
        """Non-owning reference; invalid after the next process/clear."""
        return self.registry.get(label)

    def get_region_color(self, label: RegionId) -> Optional[ColorRGB]:
        region = self.registry.get(label)
        return region.color if region is not None else None

    def is_region_visible(self, label: RegionId) -> bool:
        region = self.registry.get(label)
        return region.visible if region is not None else False

    def get_region_opacity(self, label: RegionId) -> float:
        region = self.registry.get(label)
        return region.opacity if region is not None else 0.0

    def get_region_centroid(self, label: RegionId) -> Optional[np.ndarray]:
        region = self.registry.get(label)
        return region.centroid.copy() if region is not None else None

    def has_intensity_data(self) -> bool:
        return self._intensity is not None

    def has_label_data(self) -> bool:
        return self._labels is not None

    def region_count(self) -> int:
        return len(self.registry)

    def has_processed_regions(self) -> bool:
        return len(self.registry) > 0

    @property
    def draw_order(self) -> List[RegionId]:
        return self.registry.draw_order

    # ------------------------------------------------------------------ #
    # Export
    # ------------------------------------------------------------------ #
    def export_region_info(self, path: str | Path) -> bool:
        if path is None or str(path).strip() == "":
            self._error("No export path given")
            return False
        try:
            exportmod.export_region_info(self.registry, path)
        except OSError as exc:
            self._error(f"Could not write region info to {path}: {exc}")
            return False
        return True

    # ------------------------------------------------------------------ #
    # Scene plumbing
    # ------------------------------------------------------------------ #
    def _attach(self, region: RegionVolume) -> None:
        region.subscribe(self._on_region_changed)
        if self._scene is not None and region.has_geometry:
            self._scene.add_region(region)

    def _detach_all(self) -> None:
        if self._scene is None:
            return
        for region in self.registry:
            if region.has_geometry:
                self._scene.remove_region(region.label)

    def _on_region_changed(self, region: RegionVolume, change: str) -> None:
        if self._scene is not None and region.has_geometry and change != GEOMETRY:
            self._scene.update_region(region)
        if change == VISIBILITY and not self._hold_draw_order:
            self._refresh_draw_order()
