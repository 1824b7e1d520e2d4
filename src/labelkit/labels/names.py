"""Label and shape type tags, and label colors."""

from __future__ import annotations

import enum


class LabelTypeName(str, enum.Enum):
    """Type tags of 3D labels as stored in :class:`~labelkit.store.LabelRecord`."""

    EMPTY = "empty"
    BOX_3D = "box3d"
    PLANE_3D = "plane3d"


class ShapeTypeName(str, enum.Enum):
    """Type tags of shapes as stored in :class:`~labelkit.store.ShapeRecord`."""

    GRID = "grid"
    CUBE = "cube"


def label_type_from_string(type_name: str) -> LabelTypeName:
    """Convert a stored type string to a label type; unknown strings map to EMPTY."""
    try:
        return LabelTypeName(type_name)
    except ValueError:
        return LabelTypeName.EMPTY


# Deterministic palette, uint8 RGB.
_PALETTE: list[tuple[int, int, int]] = [
    (31, 119, 180),  # blue
    (255, 127, 14),  # orange
    (44, 160, 44),  # green
    (214, 39, 40),  # red
    (148, 103, 189),  # purple
    (140, 86, 75),  # brown
    (227, 119, 194),  # pink
    (127, 127, 127),  # gray
    (188, 189, 34),  # olive
    (23, 190, 207),  # cyan
]


def color_for_label(label_id: int, track_id: int = -1) -> tuple[float, float, float, float]:
    """RGBA color in [0, 1] for a label.

    Tracked labels share their track's color across frames. Uncommitted
    labels (no id, no track) are black.
    """
    key = track_id if track_id >= 0 else label_id
    if key < 0:
        return (0.0, 0.0, 0.0, 1.0)
    r, g, b = _PALETTE[key % len(_PALETTE)]
    return (r / 255.0, g / 255.0, b / 255.0, 1.0)
