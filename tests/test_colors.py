from __future__ import annotations

import pytest

from regions3d.core.colors import (
    BASE_PALETTE,
    color_for_label,
    from_hex,
    normalize_color,
    to_hex,
)


def test_first_labels_use_fixed_palette():
    assert color_for_label(1) == (1.0, 0.0, 0.0)
    assert color_for_label(2) == (0.0, 1.0, 0.0)
    assert color_for_label(3) == (0.0, 0.0, 1.0)
    assert [color_for_label(i) for i in range(1, 13)] == list(BASE_PALETTE)


def test_generated_colors_are_deterministic_and_bright():
    first = color_for_label(4021)
    assert color_for_label(4021) == first
    assert all(0.0 <= c <= 1.0 for c in first)
    # saturation >= 180/255, value >= 150/255
    assert max(first) >= 150 / 255 - 1e-9
    assert max(first) - min(first) >= (180 / 255) * (150 / 255) - 1e-6


def test_generated_colors_differ_between_labels():
    assert color_for_label(13) != color_for_label(14)


def test_hex_conversion():
    assert to_hex((1.0, 0.0, 0.0)) == "#ff0000"
    assert from_hex("#00ff00") == (0.0, 1.0, 0.0)


@pytest.mark.parametrize(
    "value, expected",
    [
        ((0.0, 0.5, 1.0), (0.0, 0.5, 1.0)),
        ((255, 0, 0), (1.0, 0.0, 0.0)),
        ("#0000ff", (0.0, 0.0, 1.0)),
    ],
)
def test_normalize_color(value, expected):
    assert normalize_color(value) == pytest.approx(expected)


@pytest.mark.parametrize("value", [(0.0, 0.5), (-1.0, 0.0, 0.0), (300, 0, 0), "red"])
def test_normalize_color_rejects_invalid(value):
    with pytest.raises(ValueError):
        normalize_color(value)
