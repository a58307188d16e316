"""
Flat text export of computed region metadata.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

from .colors import to_hex
from .region import RegionVolume

HEADER = "Region Information Export"


def format_region(region: RegionVolume) -> List[str]:
    """Text block for one region (no trailing blank line)."""
    x, y, z = (float(c) for c in region.centroid)
    return [
        f"Region {region.label}:",
        f"  Color: {to_hex(region.color)}",
        f"  Visible: {'Yes' if region.visible else 'No'}",
        f"  Opacity: {region.opacity:.3f}",
        f"  Geometry: {'Yes' if region.has_geometry else 'No'}",
        f"  Centroid: {x:.3f}, {y:.3f}, {z:.3f}",
    ]


def export_region_info(regions: Iterable[RegionVolume], path: str | Path) -> Path:
    """
    Write one text block per region to `path`.

    Raises
    ------
    OSError
        If the file cannot be written.
    """
    path = Path(path)
    lines = [HEADER, "=" * len(HEADER), ""]
    for region in sorted(regions, key=lambda r: r.label):
        lines.extend(format_region(region))
        lines.append("")

    with path.open("w", encoding="utf-8") as f:
        f.write("\n".join(lines))
    return path
