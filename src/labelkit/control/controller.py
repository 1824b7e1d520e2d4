"""Drag controller applying control-unit deltas to the label selection."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Sequence

import torch

from ..log import get_logger
from ..types import DTYPE, Intersection, Plane, Ray
from .protocol import ControlUnit, UnitVisual
from .units import RotationRing, ScaleAxis, TranslationAxis, TranslationPlane

if TYPE_CHECKING:
    from ..camera import CameraModel
    from ..labels.label_list import Label3DList

logger = get_logger(__name__)

_AXES = ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0))


class Controller:
    """Turns pointer drags on control units into transforms of the selection.

    Deltas are incremental: each move is measured from the previous move's
    intersection, never from the start of the drag. The labels receiving a
    delta are read from the arena's selection on every move.

    Args:
        labels: Label arena whose selection is transformed.
        units: Control units, tested for highlight in order.
        apply_scale: Apply the scale deltas reported by units.
    """

    def __init__(
        self,
        labels: Label3DList,
        units: Sequence[ControlUnit] | None = None,
        apply_scale: bool = False,
    ) -> None:
        self._labels = labels
        self._units: list[ControlUnit] = list(units) if units else []
        self._highlighted_unit: ControlUnit | None = None
        self._local = True
        self._intersection_point = torch.zeros(3, dtype=DTYPE)
        self._drag_plane: Plane | None = None
        self._projection: Ray | None = None
        self.apply_scale = apply_scale

    @property
    def units(self) -> list[ControlUnit]:
        return list(self._units)

    @property
    def highlighted(self) -> bool:
        return self._highlighted_unit is not None

    @property
    def highlighted_unit(self) -> ControlUnit | None:
        return self._highlighted_unit

    @property
    def local(self) -> bool:
        """True when units follow the selection's orientation."""
        return self._local

    @property
    def dragging(self) -> bool:
        return self._drag_plane is not None

    @property
    def intersection_point(self) -> torch.Tensor:
        return self._intersection_point.clone()

    def set_highlighted(self, intersection: Intersection | None = None) -> None:
        """Highlight the first unit the intersection hit and fade the rest."""
        self._highlighted_unit = None
        for unit in self._units:
            if unit.set_highlighted(intersection) and intersection is not None:
                self._highlighted_unit = unit
                self._intersection_point = intersection.point.to(DTYPE).clone()
                for other in self._units:
                    if other is not unit:
                        other.set_faded()
                break

    def on_mouse_down(self, camera: CameraModel) -> bool:
        """Start a drag on the highlighted unit.

        The drag plane faces the camera and passes through the last
        intersection point.
        """
        if self._highlighted_unit is None:
            return False
        self._drag_plane = Plane.from_normal_and_point(camera.view_direction, self._intersection_point)
        logger.debug("Drag started")
        return True

    def on_mouse_move(self, ray: Ray) -> bool:
        """Apply the highlighted unit's delta for ``ray`` to the selection."""
        if self._highlighted_unit is None or self._drag_plane is None:
            self._projection = ray
            return False

        translation, rotation, scale, new_intersection = self._highlighted_unit.get_delta(
            self._intersection_point, ray, self._drag_plane
        )
        for label in self._labels.selected_labels:
            label.translate(translation)
            label.rotate(rotation)
            if self.apply_scale:
                label.scale(scale, label.center)

        self._intersection_point = new_intersection
        self._projection = ray
        self.update_frame()
        return True

    def on_mouse_up(self) -> bool:
        """End the drag session. Persisting the result is left to the caller."""
        self._drag_plane = None
        return False

    def raycast(self, ray: Ray) -> list[Intersection]:
        """Hits of ``ray`` against every unit, nearest first."""
        hits = [hit for hit in (unit.hit_test(ray) for unit in self._units) if hit is not None]
        return sorted(hits, key=lambda h: h.distance)

    def toggle_frame(self) -> None:
        """Switch between local and world frames; no-op without a selection."""
        if self._labels.selected_labels:
            self._local = not self._local
            self.update_frame()

    def update_frame(self) -> None:
        """Re-anchor the units on the selection center and orientation."""
        selected = self._labels.selected_labels
        if not selected:
            return
        center = torch.stack([label.center for label in selected]).mean(dim=0)
        primary = selected[-1]
        if self._local:
            rotation = primary.orientation
        else:
            rotation = torch.tensor([0.0, 0.0, 0.0, 1.0], dtype=DTYPE)
        world_scale = primary.shapes()[0].world_pose().scale
        for unit in self._units:
            set_frame = getattr(unit, "set_frame", None)
            if set_frame is not None:
                set_frame(center, rotation)
            unit.update_scale(world_scale)

    def unit_states(self) -> list[tuple[ControlUnit, UnitVisual]]:
        """Per-unit visual state for handle rendering."""
        return [(unit, unit.visual) for unit in self._units]


class ControlMode(enum.Enum):
    TRANSLATE = "translate"
    ROTATE = "rotate"
    SCALE = "scale"


_COLORS = ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0))


def make_units(mode: ControlMode) -> list[ControlUnit]:
    """Standard handle set for one transformation mode."""
    if mode is ControlMode.TRANSLATE:
        units: list[ControlUnit] = [TranslationAxis(axis, color) for axis, color in zip(_AXES, _COLORS)]
        units += [TranslationPlane(normal, color) for normal, color in zip(_AXES, _COLORS)]
        return units
    if mode is ControlMode.ROTATE:
        return [RotationRing(axis, color) for axis, color in zip(_AXES, _COLORS)]
    return [ScaleAxis(axis, color) for axis, color in zip(_AXES, _COLORS)]


class TransformationControl(Controller):
    """Controller carrying the standard handle set of the current mode.

    Args:
        labels: Label arena whose selection is transformed.
        mode: Initial transformation mode.
        apply_scale: Apply the scale deltas reported by scale handles.
    """

    def __init__(
        self,
        labels: Label3DList,
        mode: ControlMode = ControlMode.TRANSLATE,
        apply_scale: bool = False,
    ) -> None:
        super().__init__(labels, make_units(mode), apply_scale)
        self._mode = mode

    @property
    def mode(self) -> ControlMode:
        return self._mode

    def set_mode(self, mode: ControlMode) -> None:
        """Swap the handle set; ends any drag in progress."""
        if mode is self._mode:
            return
        self._mode = mode
        self._units = make_units(mode)
        self._highlighted_unit = None
        self._drag_plane = None
        self.update_frame()
        logger.debug(f"Transformation mode set to {mode.value}")
