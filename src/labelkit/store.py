"""Read-only snapshot of the annotation store, and its JSON loader.

The store itself (reducers, persistence, session sync) lives outside
labelkit. Drawables only read these records; changes flow back out as
:class:`~labelkit.labels.LabelIntent` objects.
"""

from __future__ import annotations

import json
import warnings
from dataclasses import dataclass, field
from pathlib import Path

import torch

from .types import DTYPE, CameraExtrinsics, CameraIntrinsics

# Known supported version; warn on others but still attempt load
_KNOWN_VERSION = "1.0"

DEFAULT_VIEWING_DISTANCE = 10.0
"""How far above the reference plane the synthetic bird's-eye camera sits."""


@dataclass
class SensorRecord:
    """One sensor of the task.

    Attributes:
        id: Sensor id (key in :attr:`State.sensors`).
        name: Human-readable name.
        intrinsics: Pinhole intrinsics, or None when not calibrated.
        extrinsics: Camera-to-world pose, or None when not calibrated.
    """

    id: int
    name: str = ""
    intrinsics: CameraIntrinsics | None = None
    extrinsics: CameraExtrinsics | None = None


@dataclass
class ShapeRecord:
    """A persisted shape.

    Attributes:
        id: Shape id, unique within its item.
        type: Shape type tag (``"grid"`` or ``"cube"``).
        shape: Geometry snapshot as produced by ``Shape3D.to_state()``.
        label: Ids of the labels owning this shape.
    """

    id: int
    type: str
    shape: dict
    label: list[int] = field(default_factory=list)


@dataclass
class LabelRecord:
    """A persisted label.

    Attributes:
        id: Store-assigned id, -1 before commit.
        item: Index of the item (frame) the label belongs to.
        type: Label type tag (``"box3d"``, ``"plane3d"``).
        category: Selected category ids.
        attributes: Attribute id to selected value ids.
        parent: Parent label id, or None for a root label.
        children: Ordered, unique child label ids.
        shapes: Ids of the owned shapes.
        track: Track id, -1 when the label is not tracked.
        sensors: Sensor ids the label was drawn in.
    """

    id: int = -1
    item: int = -1
    type: str = ""
    category: list[int] = field(default_factory=list)
    attributes: dict[int, list[int]] = field(default_factory=dict)
    parent: int | None = None
    children: list[int] = field(default_factory=list)
    shapes: list[int] = field(default_factory=list)
    track: int = -1
    sensors: list[int] = field(default_factory=list)


@dataclass
class ItemRecord:
    """Labels and shapes of one item (frame)."""

    index: int
    labels: dict[int, LabelRecord] = field(default_factory=dict)
    shapes: dict[int, ShapeRecord] = field(default_factory=dict)


@dataclass
class Selection:
    """Current user selection.

    Attributes:
        item: Selected item index.
        labels: Item index to selected label ids.
    """

    item: int = 0
    labels: dict[int, list[int]] = field(default_factory=dict)


@dataclass
class ViewerConfig:
    """Per-viewer configuration.

    Attributes:
        type: Viewer type tag, e.g. ``"image"`` or ``"homography"``.
        sensor: Sensor id the viewer displays.
        distance: Bird's-eye viewing distance above the reference plane.
    """

    type: str = "image"
    sensor: int = 0
    distance: float = DEFAULT_VIEWING_DISTANCE


@dataclass
class State:
    """Immutable-by-convention snapshot of the store."""

    items: list[ItemRecord]
    sensors: dict[int, SensorRecord] = field(default_factory=dict)
    selection: Selection = field(default_factory=Selection)
    viewer_configs: dict[int, ViewerConfig] = field(default_factory=dict)

    @property
    def current_item(self) -> ItemRecord | None:
        """The selected item, or None when the index is out of range."""
        index = self.selection.item
        if 0 <= index < len(self.items):
            return self.items[index]
        return None

    def selected_label_ids(self) -> list[int]:
        """Label ids selected in the current item."""
        return list(self.selection.labels.get(self.selection.item, []))


def make_label(
    type: str,
    id: int = -1,
    item: int = -1,
    category: list[int] | None = None,
    sensors: list[int] | None = None,
    track: int = -1,
) -> LabelRecord:
    """Create a fresh, uncommitted label record."""
    return LabelRecord(
        id=id,
        item=item,
        type=type,
        category=list(category or []),
        sensors=list(sensors or []),
        track=track,
    )


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


def _parse_intrinsics(intr_dict: dict) -> CameraIntrinsics:
    """Parse an intrinsics sub-dict.

    Raises:
        KeyError: If a required field is missing.
        ValueError: If a focal length is zero.
    """
    focal_length = torch.tensor(intr_dict["focal_length"], dtype=DTYPE).reshape(2)
    focal_center = torch.tensor(intr_dict["focal_center"], dtype=DTYPE).reshape(2)
    if bool((focal_length == 0).any()):
        raise ValueError(f"zero focal length {focal_length.tolist()}")
    return CameraIntrinsics(focal_length=focal_length, focal_center=focal_center)


def _parse_extrinsics(extr_dict: dict) -> CameraExtrinsics:
    """Parse an extrinsics sub-dict; the rotation is normalised to unit length."""
    translation = torch.tensor(extr_dict["translation"], dtype=DTYPE).reshape(3)
    rotation = torch.tensor(extr_dict["rotation"], dtype=DTYPE).reshape(4)
    norm = torch.linalg.norm(rotation)
    if norm < 1e-12:
        raise ValueError("zero-length rotation quaternion")
    return CameraExtrinsics(translation=translation, rotation=rotation / norm)


def _parse_sensor(sensor_id: int, entry: dict) -> SensorRecord:
    intrinsics = _parse_intrinsics(entry["intrinsics"]) if entry.get("intrinsics") else None
    extrinsics = _parse_extrinsics(entry["extrinsics"]) if entry.get("extrinsics") else None
    return SensorRecord(
        id=sensor_id,
        name=str(entry.get("name", "")),
        intrinsics=intrinsics,
        extrinsics=extrinsics,
    )


def _parse_label(entry: dict, item_index: int) -> LabelRecord:
    parent = entry.get("parent")
    if parent is not None and int(parent) < 0:
        parent = None
    return LabelRecord(
        id=int(entry["id"]),
        item=int(entry.get("item", item_index)),
        type=str(entry["type"]),
        category=[int(c) for c in entry.get("category", [])],
        attributes={int(k): [int(v) for v in vals] for k, vals in entry.get("attributes", {}).items()},
        parent=None if parent is None else int(parent),
        children=[int(c) for c in entry.get("children", [])],
        shapes=[int(s) for s in entry.get("shapes", [])],
        track=int(entry.get("track", -1)),
        sensors=[int(s) for s in entry.get("sensors", [])],
    )


def _parse_item(index: int, entry: dict) -> ItemRecord:
    labels = {int(k): _parse_label(v, index) for k, v in entry.get("labels", {}).items()}
    shapes = {
        int(k): ShapeRecord(
            id=int(k),
            type=str(v["type"]),
            shape=dict(v["shape"]),
            label=[int(lbl) for lbl in v.get("label", [])],
        )
        for k, v in entry.get("shapes", {}).items()
    }
    return ItemRecord(index=int(entry.get("index", index)), labels=labels, shapes=shapes)


def load_state(source: str | Path | dict) -> State:
    """Load a store snapshot and return a typed :class:`State`.

    Accepts either a file path (str or Path) or a pre-parsed dict.

    Behaviour:
    - Unknown ``version`` values produce a :class:`UserWarning` but load proceeds.
    - Sensor entries with missing or invalid calibration are skipped with a
      :class:`UserWarning`; viewers on those sensors fall back to plain display.
    - ``parent`` values below zero are read as "no parent".

    Args:
        source: File path or pre-parsed ``dict``.

    Returns:
        State snapshot.

    Raises:
        FileNotFoundError: If ``source`` is a path that does not exist.
        ValueError: If the snapshot has no ``items`` section.
    """
    if isinstance(source, dict):
        raw: dict = source
    else:
        path = Path(source)
        with path.open("r", encoding="utf-8") as fh:
            raw = json.load(fh)

    version = raw.get("version")
    if version is not None and version != _KNOWN_VERSION:
        warnings.warn(
            f"Unknown state version {version!r}; expected {_KNOWN_VERSION!r}. "
            "Attempting to load anyway.",
            UserWarning,
            stacklevel=2,
        )

    if "items" not in raw:
        raise ValueError("State JSON missing required 'items' section.")

    sensors: dict[int, SensorRecord] = {}
    for sensor_key, sensor_entry in raw.get("sensors", {}).items():
        try:
            sensors[int(sensor_key)] = _parse_sensor(int(sensor_key), sensor_entry)
        except (KeyError, TypeError, ValueError, RuntimeError) as exc:
            warnings.warn(
                f"Sensor {sensor_key!r} skipped due to missing or invalid field: {exc}. "
                "Continuing with remaining sensors.",
                UserWarning,
                stacklevel=2,
            )

    items = [_parse_item(i, entry) for i, entry in enumerate(raw["items"])]

    select_raw = raw.get("select", {})
    selection = Selection(
        item=int(select_raw.get("item", 0)),
        labels={int(k): [int(v) for v in vals] for k, vals in select_raw.get("labels", {}).items()},
    )

    viewer_configs = {
        int(k): ViewerConfig(
            type=str(v.get("type", "image")),
            sensor=int(v.get("sensor", 0)),
            distance=float(v.get("distance", DEFAULT_VIEWING_DISTANCE)),
        )
        for k, v in raw.get("viewer_configs", {}).items()
    }

    return State(items=items, sensors=sensors, selection=selection, viewer_configs=viewer_configs)
