"""
PyVista rendering of region surfaces.

`PyVistaScene` works with any pyvista plotter (pv.Plotter, pyvistaqt's
QtInteractor or BackgroundPlotter) and does not import Qt itself.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Sequence

from regions3d.core.models import RegionId
from regions3d.core.region import RegionVolume

logger = logging.getLogger(__name__)


def actor_name(label: RegionId) -> str:
    return f"region_{int(label)}"


class PyVistaScene:
    """
    One actor per region with geometry, keyed by label id.

    The plotter draws actors in insertion order, so `apply_draw_order`
    removes and re-adds them farthest first for correct translucent
    blending.
    """

    def __init__(self, plotter: Any) -> None:
        self.plotter = plotter
        self._actors: Dict[RegionId, Any] = {}

    def __len__(self) -> int:
        return len(self._actors)

    def __contains__(self, label: object) -> bool:
        return label in self._actors

    def actor(self, label: RegionId) -> Any:
        return self._actors.get(int(label))

    def add_region(self, region: RegionVolume) -> None:
        if not region.has_geometry:
            return
        if region.label in self._actors:
            self.remove_region(region.label)

        mat = region.material
        actor = self.plotter.add_mesh(
            region.geometry,
            name=actor_name(region.label),
            color=mat.color,
            opacity=mat.opacity,
            smooth_shading=True,
            ambient=mat.ambient,
            diffuse=mat.diffuse,
            specular=mat.specular,
            specular_power=mat.specular_power,
            reset_camera=False,
        )
        actor.visibility = region.visible
        self._actors[region.label] = actor
        logger.debug("Scene: added region %d", region.label)

    def remove_region(self, label: RegionId) -> None:
        actor = self._actors.pop(int(label), None)
        if actor is not None:
            self.plotter.remove_actor(actor, render=False)

    def update_region(self, region: RegionVolume) -> None:
        actor = self._actors.get(region.label)
        if actor is None:
            return
        actor.prop.color = region.color
        actor.prop.opacity = region.opacity
        actor.visibility = region.visible
        self.plotter.render()

    def apply_draw_order(self, labels: Sequence[RegionId]) -> None:
        for label in labels:
            actor = self._actors.get(int(label))
            if actor is None:
                continue
            self.plotter.remove_actor(actor, render=False)
            self.plotter.add_actor(actor, reset_camera=False, name=actor_name(label), render=False)
        self.plotter.render()

    def clear(self) -> None:
        for label in list(self._actors):
            self.remove_region(label)
        self.plotter.render()
