"""Box label: an oriented cuboid, optionally resting on a plane label."""

from __future__ import annotations

from typing import TYPE_CHECKING

import torch

from ..exceptions import MissingShapeError
from ..intersect import intersect_plane
from ..store import State, make_label
from ..transforms import quat_conjugate, quat_rotate
from ..types import DTYPE, Plane, Pose
from .label3d import Label3D
from .names import LabelTypeName
from .shape3d import Cube3D, Shape3D

if TYPE_CHECKING:
    from ..camera import CameraModel
    from .label_list import Label3DList

DEFAULT_BOX_HEIGHT = 1.0
"""Height given to boxes drawn on a plane."""

_MIN_EXTENT = 1e-3


class Box3D(Label3D):
    """Label owning a single :class:`Cube3D`.

    A temporary box draws its footprint corner-to-corner on its parent plane:
    the press fixes one corner, each move sets the opposite corner. The box
    rises from the plane on the side facing the camera. A committed,
    highlighted box is dragged along its supporting plane.
    """

    type_name = LabelTypeName.BOX_3D

    def __init__(self, labels: Label3DList) -> None:
        super().__init__(labels)
        self._shape = Cube3D(labels)
        self._first_corner: torch.Tensor | None = None
        self._drag_point: torch.Tensor | None = None
        self._drag_plane: Plane | None = None

    @property
    def cube(self) -> Cube3D:
        return self._shape

    @property
    def drawing(self) -> bool:
        """True between the press and release of a draw gesture."""
        return self._first_corner is not None

    def shapes(self) -> list[Shape3D]:
        return [self._shape]

    def _support_plane(self, camera: CameraModel) -> Plane:
        parent = self.parent
        if parent is not None and parent.type_name is LabelTypeName.PLANE_3D:
            return parent.grid.plane()
        return Plane.from_normal_and_point(camera.view_direction, self._shape.center)

    @staticmethod
    def _pick(x: float, y: float, camera: CameraModel, plane: Plane) -> torch.Tensor | None:
        ray = camera.ray_through(x, y)
        return intersect_plane(ray.origin, ray.direction, plane)

    def on_mouse_down(self, x: float, y: float, camera: CameraModel) -> bool:
        if not camera.has_projection:
            return False
        plane = self._support_plane(camera)
        hit = self._pick(x, y, camera, plane)
        if hit is None:
            return False

        if self._temporary:
            self._first_corner = hit
            self._set_footprint(hit, hit, plane, camera)
            return True
        if self._highlighted:
            self._drag_point = hit
            self._drag_plane = plane
            return True
        return False

    def on_mouse_move(self, x: float, y: float, camera: CameraModel) -> bool:
        if not camera.has_projection:
            return False

        if self._first_corner is not None:
            plane = self._support_plane(camera)
            hit = self._pick(x, y, camera, plane)
            if hit is None:
                return False
            self._set_footprint(self._first_corner, hit, plane, camera)
            return True

        if self._drag_point is not None and self._drag_plane is not None:
            hit = self._pick(x, y, camera, self._drag_plane)
            if hit is None:
                return False
            self.translate(hit - self._drag_point)
            self._drag_point = hit
            return True
        return False

    def on_mouse_up(self) -> None:
        self._first_corner = None
        self._drag_point = None
        self._drag_plane = None

    def _set_footprint(
        self, corner_a: torch.Tensor, corner_b: torch.Tensor, plane: Plane, camera: CameraModel
    ) -> None:
        parent = self.parent
        if parent is not None and parent.type_name is LabelTypeName.PLANE_3D:
            rotation = parent.grid.orientation
        else:
            rotation = self._shape.orientation

        local = quat_rotate(quat_conjugate(rotation), corner_b - corner_a)
        size = torch.stack(
            [
                local[0].abs().clamp(min=_MIN_EXTENT),
                local[1].abs().clamp(min=_MIN_EXTENT),
                torch.tensor(DEFAULT_BOX_HEIGHT, dtype=DTYPE),
            ]
        )
        up = plane.normal
        if torch.dot(camera.position.to(DTYPE) - corner_a, up) < 0:
            up = -up
        center = (corner_a + corner_b) / 2.0 + up * (DEFAULT_BOX_HEIGHT / 2.0)
        self._shape.set_world_pose(Pose(position=center, rotation=rotation.clone(), scale=size))

    def init(
        self,
        item_index: int,
        category: int,
        center: torch.Tensor | None = None,
        sensors: list[int] | None = None,
        temporary: bool = False,
    ) -> None:
        self._record = make_label(
            LabelTypeName.BOX_3D.value, -1, item_index, [category], sensors
        )
        self._label_id = -1
        self._temporary = temporary
        if center is not None:
            self._shape.center = center

    def update_state(self, state: State, item_index: int, label_id: int) -> None:
        """Resync the cube from the store snapshot.

        Raises:
            MissingShapeError: If the record has no shape or it is not in the item.
        """
        super().update_state(state, item_index, label_id)
        record = self.label
        item = state.items[item_index]
        if not record.shapes or record.shapes[0] not in item.shapes:
            raise MissingShapeError(f"Box {label_id} has no cube shape", label_id)

        shape_id = record.shapes[0]
        self._shape.update_state(item.shapes[shape_id].shape, shape_id)
