from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import numpy as np
import pyvista as pv

from .colors import normalize_color, to_hex
from .models import ColorRGB, GrayWindow, RegionId

logger = logging.getLogger(__name__)

# Change kinds passed to region listeners
COLOR = "color"
OPACITY = "opacity"
VISIBILITY = "visibility"
GEOMETRY = "geometry"


@dataclass
class Material:
    """
    Surface appearance of one region.

    Lighting coefficients are shared by every region so overlapping
    structures shade consistently.
    """

    color: ColorRGB = (1.0, 0.0, 0.0)
    opacity: float = 1.0
    ambient: float = 0.3
    diffuse: float = 0.7
    specular: float = 0.2
    specular_power: float = 10.0


class RegionVolume:
    """
    One label region: geometry, material, visibility and centroid.

    States: unbuilt (no geometry assigned yet), built (has a surface) or
    failed (build attempted, no surface). Visibility is an orthogonal axis.
    Hiding a region keeps its geometry and material intact for a later
    re-show. Without geometry the centroid stays at the origin.

    Listeners registered with `subscribe` are called as
    `callback(region, change)` where change is one of
    "color", "opacity", "visibility", "geometry".
    """

    def __init__(
        self,
        label: RegionId,
        color: ColorRGB = (1.0, 0.0, 0.0),
        opacity: float = 1.0,
        gray_window: Optional[GrayWindow] = None,
    ) -> None:
        if int(label) <= 0:
            raise ValueError(f"Region id must be a positive integer, got {label}")
        self.label: RegionId = int(label)
        self.material = Material(color=normalize_color(color), opacity=_check_opacity(opacity))
        self.visible: bool = True
        self.centroid: np.ndarray = np.zeros(3, dtype=np.float64)
        self.geometry: Optional[pv.PolyData] = None
        self.gray_window = gray_window
        self.built: bool = False
        self.failure_reason: Optional[str] = None
        self.threshold: Optional[float] = None
        self.strategy: Optional[str] = None
        self._listeners: List[Callable[["RegionVolume", str], Any]] = []

    def __repr__(self) -> str:
        return (
            f"RegionVolume(label={self.label}, color={to_hex(self.color)}, "
            f"opacity={self.opacity:g}, visible={self.visible}, "
            f"has_geometry={self.has_geometry})"
        )

    # ------------------------------------------------------------------ #
    # Read-only views
    # ------------------------------------------------------------------ #
    @property
    def color(self) -> ColorRGB:
        return self.material.color

    @property
    def opacity(self) -> float:
        return self.material.opacity

    @property
    def has_geometry(self) -> bool:
        return self.geometry is not None and self.geometry.n_points > 0

    @property
    def state(self) -> str:
        if not self.built:
            return "unbuilt"
        return "built" if self.has_geometry else "failed"

    # ------------------------------------------------------------------ #
    # Listeners
    # ------------------------------------------------------------------ #
    def subscribe(self, callback: Callable[["RegionVolume", str], Any]) -> None:
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[["RegionVolume", str], Any]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, change: str) -> None:
        for callback in list(self._listeners):
            callback(self, change)

    # ------------------------------------------------------------------ #
    # Mutators
    # ------------------------------------------------------------------ #
    def set_color(self, color) -> None:
        new_color = normalize_color(color)
        if np.allclose(new_color, self.material.color):
            return
        self.material.color = new_color
        logger.debug("Region %d color -> %s", self.label, to_hex(new_color))
        self._notify(COLOR)

    def set_opacity(self, opacity: float) -> None:
        opacity = _check_opacity(opacity)
        if opacity == self.material.opacity:
            return
        self.material.opacity = opacity
        self._notify(OPACITY)

    def set_visible(self, visible: bool) -> None:
        visible = bool(visible)
        if visible == self.visible:
            return
        self.visible = visible
        logger.debug("Region %d visible -> %s", self.label, visible)
        self._notify(VISIBILITY)

    def set_geometry(
        self,
        geometry: Optional[pv.PolyData],
        threshold: Optional[float] = None,
        strategy: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        """Attach the built surface (or None for a failed build) and refresh the centroid."""
        if geometry is not None and geometry.n_points == 0:
            geometry = None
        self.geometry = geometry
        self.built = True
        self.threshold = threshold if geometry is not None else None
        self.strategy = strategy if geometry is not None else None
        self.failure_reason = None if geometry is not None else (reason or "no geometry")
        self.recompute_centroid()
        self._notify(GEOMETRY)

    def recompute_centroid(self) -> np.ndarray:
        """
        Midpoint of the surface's axis-aligned bounding box.

        Not a mass centroid: cheap and stable, which is all depth sorting needs.
        Without geometry the centroid is the zero vector.
        """
        if not self.has_geometry:
            self.centroid = np.zeros(3, dtype=np.float64)
            return self.centroid

        xmin, xmax, ymin, ymax, zmin, zmax = self.geometry.bounds
        self.centroid = np.array(
            [(xmin + xmax) / 2.0, (ymin + ymax) / 2.0, (zmin + zmax) / 2.0],
            dtype=np.float64,
        )
        return self.centroid

    def distance_to(self, position) -> float:
        """Euclidean distance from the centroid to a physical position."""
        return float(np.linalg.norm(self.centroid - np.asarray(position, dtype=np.float64)))

    def release(self) -> None:
        """Drop geometry and listeners; the region is inert afterwards."""
        self.geometry = None
        self.centroid = np.zeros(3, dtype=np.float64)
        self._listeners.clear()


def _check_opacity(opacity: float) -> float:
    value = float(opacity)
    if not (0.0 <= value <= 1.0):
        raise ValueError(f"opacity must be between 0.0 and 1.0, got {opacity}")
    return value
