from __future__ import annotations

from typing import Protocol, Sequence

from .models import RegionId
from .region import RegionVolume


class Scene(Protocol):
    """
    Rendering collaborator the façade pushes regions into.

    Implementations hold only non-owning references to regions and must
    drop them on `remove_region`; regions without geometry are never added.
    """

    def add_region(self, region: RegionVolume) -> None: ...

    def remove_region(self, label: RegionId) -> None: ...

    def update_region(self, region: RegionVolume) -> None: ...

    def apply_draw_order(self, labels: Sequence[RegionId]) -> None: ...
