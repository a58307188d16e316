from __future__ import annotations

import colorsys
from typing import Tuple

import numpy as np

from .models import ColorRGB

# Hand-picked, maximally separated hues used for labels 1..12.
BASE_PALETTE_RGB255: Tuple[Tuple[int, int, int], ...] = (
    (255, 0, 0),       # red
    (0, 255, 0),       # green
    (0, 0, 255),       # blue
    (255, 255, 0),     # yellow
    (255, 0, 255),     # magenta
    (0, 255, 255),     # cyan
    (255, 128, 0),     # orange
    (128, 0, 255),     # purple
    (255, 0, 128),     # pink
    (128, 255, 0),     # lime
    (0, 128, 255),     # sky blue
    (255, 128, 128),   # light red
)

BASE_PALETTE: Tuple[ColorRGB, ...] = tuple(
    (r / 255.0, g / 255.0, b / 255.0) for r, g, b in BASE_PALETTE_RGB255
)

_SEED_MULTIPLIER = 12345


def color_for_label(label: int) -> ColorRGB:
    """
    Deterministic color for a label id.

    Labels 1..12 get the fixed palette entry label-1. Any other label gets a
    pseudo-random HSV color seeded from the label id itself, with saturation
    and value biased high to avoid muddy colors. The function is pure: the
    same label always yields the same color, with no shared state, so it is
    safe to call from parallel workers.
    """
    label = int(label)
    if 1 <= label <= len(BASE_PALETTE):
        return BASE_PALETTE[label - 1]

    rng = np.random.default_rng(abs(label) * _SEED_MULTIPLIER)
    hue = int(rng.integers(0, 360))
    saturation = int(rng.integers(180, 255))
    value = int(rng.integers(150, 255))

    r, g, b = colorsys.hsv_to_rgb(hue / 360.0, saturation / 255.0, value / 255.0)
    return (float(r), float(g), float(b))


def to_rgb255(color: ColorRGB) -> Tuple[int, int, int]:
    return tuple(int(round(max(0.0, min(1.0, c)) * 255)) for c in color)  # type: ignore[return-value]


def to_hex(color: ColorRGB) -> str:
    """'#rrggbb' for a normalized RGB color."""
    r, g, b = to_rgb255(color)
    return f"#{r:02x}{g:02x}{b:02x}"


def from_hex(text: str) -> ColorRGB:
    s = text.strip().lstrip("#")
    if len(s) != 6:
        raise ValueError(f"Expected a '#rrggbb' color, got {text!r}")
    return tuple(int(s[i:i + 2], 16) / 255.0 for i in (0, 2, 4))  # type: ignore[return-value]


def normalize_color(color) -> ColorRGB:
    """
    Accept a normalized (0–1) triple, a 0–255 triple or a '#rrggbb' string.

    A triple is treated as 0–255 only if one channel is greater than 1.
    """
    if isinstance(color, str):
        return from_hex(color)
    values = tuple(float(c) for c in color)
    if len(values) != 3:
        raise ValueError(f"color must have 3 channels, got {color!r}")
    if any(c > 1.0 for c in values):
        values = tuple(c / 255.0 for c in values)
    if any(c < 0.0 or c > 1.0 for c in values):
        raise ValueError(f"color channels out of range: {color!r}")
    return values  # type: ignore[return-value]
