"""Concrete control units: translation axes and planes, rotation rings, scale axes.

Every unit lives in a frame (position + orientation) re-anchored by the
controller on the current selection. Handle geometry is given in that
frame, in units of the handle size set by :meth:`update_scale`.
"""

from __future__ import annotations

import math

import torch

from ..intersect import intersect_plane, ray_segment_distance
from ..transforms import quat_from_axis_angle, quat_rotate
from ..types import DTYPE, Intersection, Plane, Ray, as_tensor
from .protocol import UnitVisual

PICK_TOLERANCE = 0.1
"""Pick radius around handles, relative to the handle size."""


def _no_change(old_intersection: torch.Tensor):
    return (
        torch.zeros(3, dtype=DTYPE),
        torch.tensor([0.0, 0.0, 0.0, 1.0], dtype=DTYPE),
        torch.ones(3, dtype=DTYPE),
        old_intersection.clone(),
    )


class _UnitBase:
    """Frame, size and visual state shared by all units."""

    def __init__(self, color: tuple[float, float, float] = (1.0, 1.0, 1.0)) -> None:
        self.color = color
        self._visual = UnitVisual.NORMAL
        self._position = torch.zeros(3, dtype=DTYPE)
        self._rotation = torch.tensor([0.0, 0.0, 0.0, 1.0], dtype=DTYPE)
        self._size = 1.0

    @property
    def visual(self) -> UnitVisual:
        return self._visual

    @property
    def position(self) -> torch.Tensor:
        return self._position

    @property
    def size(self) -> float:
        return self._size

    def set_frame(self, position: torch.Tensor, rotation: torch.Tensor) -> None:
        self._position = position.to(DTYPE).clone()
        self._rotation = rotation.to(DTYPE).clone()

    def set_highlighted(self, intersection: Intersection | None = None) -> bool:
        hit = intersection is not None and intersection.target is self
        self._visual = UnitVisual.HIGHLIGHTED if hit else UnitVisual.NORMAL
        return hit

    def set_faded(self) -> None:
        self._visual = UnitVisual.FADED

    def update_scale(self, world_scale: torch.Tensor) -> None:
        self._size = max(float(world_scale.abs().max()), 1e-6)

    def _world(self, local: torch.Tensor) -> torch.Tensor:
        return quat_rotate(self._rotation, local)


class TranslationAxis(_UnitBase):
    """Arrow along one frame axis; drags are projected onto that axis.

    Args:
        direction: Axis in the unit frame, shape (3,).
        color: Handle color.
    """

    def __init__(self, direction, color: tuple[float, float, float] = (1.0, 1.0, 1.0)) -> None:
        super().__init__(color)
        direction = as_tensor(direction).reshape(3)
        self._direction = direction / torch.linalg.norm(direction)

    @property
    def axis(self) -> torch.Tensor:
        """World-space unit axis, shape (3,)."""
        return self._world(self._direction)

    def hit_test(self, ray: Ray) -> Intersection | None:
        end = self._position + self.axis * self._size
        dist, t, _ = ray_segment_distance(ray.origin, ray.direction, self._position, end)
        if dist > PICK_TOLERANCE * self._size:
            return None
        return Intersection(point=ray.at(t), target=self, distance=t)

    def get_delta(self, old_intersection: torch.Tensor, ray: Ray, drag_plane: Plane):
        hit = intersect_plane(ray.origin, ray.direction, drag_plane)
        if hit is None:
            return _no_change(old_intersection)
        axis = self.axis
        translation = torch.dot(hit - old_intersection, axis) * axis
        return (
            translation,
            torch.tensor([0.0, 0.0, 0.0, 1.0], dtype=DTYPE),
            torch.ones(3, dtype=DTYPE),
            old_intersection + translation,
        )


class TranslationPlane(_UnitBase):
    """Square handle between two axes; drags move freely within its plane.

    Args:
        normal: Plane normal in the unit frame, shape (3,).
        color: Handle color.
    """

    def __init__(self, normal, color: tuple[float, float, float] = (1.0, 1.0, 1.0)) -> None:
        super().__init__(color)
        normal = as_tensor(normal).reshape(3)
        self._normal = normal / torch.linalg.norm(normal)
        # In-plane axes: the two frame axes orthogonal to the normal.
        basis = torch.eye(3, dtype=DTYPE)
        order = torch.argsort(self._normal.abs())
        self._u = basis[order[0]]
        self._v = basis[order[1]]

    @property
    def normal(self) -> torch.Tensor:
        """World-space unit normal, shape (3,)."""
        return self._world(self._normal)

    def hit_test(self, ray: Ray) -> Intersection | None:
        hit = intersect_plane(ray.origin, ray.direction, Plane.from_normal_and_point(self.normal, self._position))
        if hit is None:
            return None
        offset = hit - self._position
        a = float(torch.dot(offset, self._world(self._u))) / self._size
        b = float(torch.dot(offset, self._world(self._v))) / self._size
        if not (0.25 <= a <= 0.5 and 0.25 <= b <= 0.5):
            return None
        return Intersection(point=hit, target=self, distance=float(torch.dot(hit - ray.origin, ray.direction)))

    def get_delta(self, old_intersection: torch.Tensor, ray: Ray, drag_plane: Plane):
        plane = Plane.from_normal_and_point(self.normal, old_intersection)
        hit = intersect_plane(ray.origin, ray.direction, plane)
        if hit is None:
            return _no_change(old_intersection)
        return (
            hit - old_intersection,
            torch.tensor([0.0, 0.0, 0.0, 1.0], dtype=DTYPE),
            torch.ones(3, dtype=DTYPE),
            hit,
        )


class RotationRing(_UnitBase):
    """Ring around one frame axis; drags rotate about that axis.

    The angle of each move is the signed angle between the previous and
    current pointer points as seen from the ring center.

    Args:
        axis: Rotation axis in the unit frame, shape (3,).
        color: Handle color.
    """

    def __init__(self, axis, color: tuple[float, float, float] = (1.0, 1.0, 1.0)) -> None:
        super().__init__(color)
        axis = as_tensor(axis).reshape(3)
        self._axis = axis / torch.linalg.norm(axis)

    @property
    def axis(self) -> torch.Tensor:
        """World-space unit rotation axis, shape (3,)."""
        return self._world(self._axis)

    def hit_test(self, ray: Ray) -> Intersection | None:
        hit = intersect_plane(ray.origin, ray.direction, Plane.from_normal_and_point(self.axis, self._position))
        if hit is None:
            return None
        radius = float(torch.linalg.norm(hit - self._position))
        if abs(radius - self._size) > PICK_TOLERANCE * self._size:
            return None
        return Intersection(point=hit, target=self, distance=float(torch.dot(hit - ray.origin, ray.direction)))

    def get_delta(self, old_intersection: torch.Tensor, ray: Ray, drag_plane: Plane):
        hit = intersect_plane(ray.origin, ray.direction, drag_plane)
        if hit is None:
            return _no_change(old_intersection)

        axis = self.axis
        v0 = old_intersection - self._position
        v1 = hit - self._position
        v0 = v0 - torch.dot(v0, axis) * axis
        v1 = v1 - torch.dot(v1, axis) * axis
        if float(torch.linalg.norm(v0)) < 1e-9 or float(torch.linalg.norm(v1)) < 1e-9:
            return _no_change(old_intersection)

        angle = math.atan2(
            float(torch.dot(axis, torch.linalg.cross(v0, v1))), float(torch.dot(v0, v1))
        )
        return (
            torch.zeros(3, dtype=DTYPE),
            quat_from_axis_angle(axis, angle),
            torch.ones(3, dtype=DTYPE),
            hit,
        )


class ScaleAxis(_UnitBase):
    """Handle along one frame axis; drags stretch the labels along that axis.

    The factor of each move is the ratio of the current to the previous
    pointer distance from the frame origin, measured along the axis.

    Args:
        direction: Axis in the unit frame, shape (3,).
        color: Handle color.
    """

    def __init__(self, direction, color: tuple[float, float, float] = (1.0, 1.0, 1.0)) -> None:
        super().__init__(color)
        direction = as_tensor(direction).reshape(3)
        self._direction = direction / torch.linalg.norm(direction)

    @property
    def axis(self) -> torch.Tensor:
        return self._world(self._direction)

    def hit_test(self, ray: Ray) -> Intersection | None:
        start = self._position + self.axis * (0.5 * self._size)
        end = self._position + self.axis * (0.75 * self._size)
        dist, t, _ = ray_segment_distance(ray.origin, ray.direction, start, end)
        if dist > PICK_TOLERANCE * self._size:
            return None
        return Intersection(point=ray.at(t), target=self, distance=t)

    def get_delta(self, old_intersection: torch.Tensor, ray: Ray, drag_plane: Plane):
        hit = intersect_plane(ray.origin, ray.direction, drag_plane)
        if hit is None:
            return _no_change(old_intersection)

        axis = self.axis
        before = float(torch.dot(old_intersection - self._position, axis))
        after = float(torch.dot(hit - self._position, axis))
        if abs(before) < 1e-9 or after / before <= 0.0:
            return _no_change(old_intersection)

        factor = after / before
        scale = torch.ones(3, dtype=DTYPE)
        scale = torch.where(self._direction.abs() > 0.5, torch.full_like(scale, factor), scale)
        return (
            torch.zeros(3, dtype=DTYPE),
            torch.tensor([0.0, 0.0, 0.0, 1.0], dtype=DTYPE),
            scale,
            hit,
        )
