"""Plane label: a grid that holds other 3D labels."""

from __future__ import annotations

from typing import TYPE_CHECKING

import torch

from ..exceptions import MissingShapeError
from ..store import State, make_label
from ..types import PlaneReference
from .box3d import Box3D
from .label3d import Label3D
from .names import LabelTypeName
from .shape3d import Grid3D, Shape3D

if TYPE_CHECKING:
    from ..camera import CameraModel
    from .label_list import Label3DList


class Plane3D(Label3D):
    """Label owning a single :class:`Grid3D`.

    While selected, pressing the pointer spawns a temporary box on the plane
    that follows the drag until release.
    """

    type_name = LabelTypeName.PLANE_3D

    def __init__(self, labels: Label3DList) -> None:
        super().__init__(labels)
        self._shape = Grid3D(labels)
        self._temporary_label: Label3D | None = None

    @property
    def grid(self) -> Grid3D:
        return self._shape

    @property
    def temporary_label(self) -> Label3D | None:
        """The in-progress child being drawn, if any."""
        return self._temporary_label

    def plane_reference(self) -> PlaneReference:
        """Normal and center of the grid in world coordinates."""
        return PlaneReference(normal=self._shape.normal, center=self._shape.center)

    def shapes(self) -> list[Shape3D]:
        return [self._shape]

    def on_mouse_down(self, x: float, y: float, camera: CameraModel) -> bool:
        if self._record is None or not self.selected or not camera.has_projection:
            return False

        temporary = Box3D(self._labels)
        self._labels.add(temporary)
        temporary.init(self._record.item, 0, None, self._record.sensors, True)
        self.add_child(temporary)
        self._temporary_label = temporary
        if temporary.on_mouse_down(x, y, camera):
            return True

        # Press missed the plane; nothing to draw.
        self._labels.remove(temporary)
        self._temporary_label = None
        return False

    def on_mouse_move(self, x: float, y: float, camera: CameraModel) -> bool:
        if self._temporary_label is not None:
            return self._temporary_label.on_mouse_move(x, y, camera)
        return False

    def on_mouse_up(self) -> None:
        if self._temporary_label is not None:
            self._temporary_label.on_mouse_up()
            self._temporary_label = None

    def init(
        self,
        item_index: int,
        category: int,
        center: torch.Tensor | None = None,
        sensors: list[int] | None = None,
        temporary: bool = False,
    ) -> None:
        self._record = make_label(
            LabelTypeName.PLANE_3D.value, -1, item_index, [category], sensors
        )
        self._label_id = -1
        self._temporary = temporary
        if center is not None:
            self._shape.center = center

    def update_state(self, state: State, item_index: int, label_id: int) -> None:
        """Resync the grid and drop children no longer listed in the store.

        Raises:
            MissingShapeError: If the record has no shape or it is not in the item.
        """
        super().update_state(state, item_index, label_id)
        record = self.label
        item = state.items[item_index]
        if not record.shapes or record.shapes[0] not in item.shapes:
            raise MissingShapeError(f"Plane {label_id} has no grid shape", label_id)

        shape_id = record.shapes[0]
        self._shape.update_state(item.shapes[shape_id].shape, shape_id)

        for child in self.children:
            if not child.temporary and child.label_id not in record.children:
                self.remove_child(child)
