"""Shapes owned by 3D labels.

A shape stores its pose relative to the frame it is attached to: the world
when unattached, otherwise the shape frame of a parent label (looked up
through the label arena by index). Attaching and detaching preserve the
world pose.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import torch

from ..intersect import intersect_plane
from ..transforms import (
    compose_poses,
    quat_conjugate,
    quat_from_rvec,
    quat_multiply,
    quat_normalize,
    quat_rotate,
    quat_to_rvec,
    relative_pose,
)
from ..types import DTYPE, Intersection, Plane, Pose, Ray, as_tensor
from .names import ShapeTypeName

if TYPE_CHECKING:
    from .label_list import Label3DList

_UNIT_Z = torch.tensor([0.0, 0.0, 1.0], dtype=DTYPE)


class Shape3D:
    """Base shape: an oriented, scaled frame owned by exactly one label.

    Args:
        labels: Arena the owning label lives in.
    """

    type_name: ShapeTypeName

    def __init__(self, labels: Label3DList) -> None:
        self._labels = labels
        self._id = -1
        self.label_index = -1
        self._parent_index: int | None = None
        self._pose = Pose.identity()
        self._highlighted = False
        self.selected = False

    @property
    def id(self) -> int:
        """Store id of the shape, -1 before commit."""
        return self._id

    @property
    def parent_index(self) -> int | None:
        """Arena index of the label this shape is attached to."""
        return self._parent_index

    @property
    def local_pose(self) -> Pose:
        return self._pose.clone()

    @property
    def highlighted(self) -> bool:
        return self._highlighted

    def _parent_pose(self) -> Pose | None:
        if self._parent_index is None:
            return None
        parent_shapes = self._labels.get(self._parent_index).shapes()
        if not parent_shapes:
            return None
        return parent_shapes[0].world_pose()

    def world_pose(self) -> Pose:
        """Pose in world coordinates."""
        parent = self._parent_pose()
        if parent is None:
            return self._pose.clone()
        return compose_poses(parent, self._pose)

    def set_world_pose(self, pose: Pose) -> None:
        """Place the shape at ``pose`` (world coordinates)."""
        parent = self._parent_pose()
        self._pose = pose.clone() if parent is None else relative_pose(parent, pose)

    def attach_to(self, parent_index: int) -> None:
        """Re-express this shape in the frame of label ``parent_index``."""
        world = self.world_pose()
        self._parent_index = parent_index
        self.set_world_pose(world)

    def detach(self) -> None:
        """Re-express this shape in world coordinates."""
        world = self.world_pose()
        self._parent_index = None
        self._pose = world

    @property
    def center(self) -> torch.Tensor:
        """World position, shape (3,)."""
        return self.world_pose().position

    @center.setter
    def center(self, value) -> None:
        pose = self.world_pose()
        pose.position = as_tensor(value).reshape(3)
        self.set_world_pose(pose)

    @property
    def orientation(self) -> torch.Tensor:
        """World orientation quaternion, shape (4,)."""
        return self.world_pose().rotation

    def translate(self, delta: torch.Tensor) -> None:
        pose = self.world_pose()
        pose.position = pose.position + delta.to(DTYPE)
        self.set_world_pose(pose)

    def rotate(self, quaternion: torch.Tensor) -> None:
        pose = self.world_pose()
        pose.rotation = quat_normalize(quat_multiply(quaternion.to(DTYPE), pose.rotation))
        self.set_world_pose(pose)

    def scale(self, scale: torch.Tensor, anchor: torch.Tensor) -> None:
        """Multiply the extent by ``scale``; move the center away from ``anchor``."""
        pose = self.world_pose()
        pose.scale = pose.scale * self._scale_mask(scale.to(DTYPE))
        pose.position = (pose.position - anchor) * scale + anchor
        self.set_world_pose(pose)

    def _scale_mask(self, scale: torch.Tensor) -> torch.Tensor:
        return scale

    def set_highlighted(self, intersection: Intersection | None = None) -> None:
        self._highlighted = intersection is not None

    def update_state(self, shape: dict, shape_id: int) -> None:
        """Load geometry from a store snapshot (world coordinates)."""
        self._id = shape_id
        self.set_world_pose(self._pose_from_state(shape))

    def _pose_from_state(self, shape: dict) -> Pose:
        raise NotImplementedError

    def to_state(self) -> dict:
        """Geometry snapshot in world coordinates."""
        raise NotImplementedError

    def hit_test(self, ray: Ray) -> Intersection | None:
        """Intersection of ``ray`` with this shape, or None."""
        raise NotImplementedError


class Grid3D(Shape3D):
    """Finite plane: unit square in local XY, scaled to the grid extent.

    The local +Z axis is the plane normal.
    """

    type_name = ShapeTypeName.GRID

    def __init__(self, labels: Label3DList) -> None:
        super().__init__(labels)
        self._pose.scale = torch.tensor([10.0, 10.0, 1.0], dtype=DTYPE)

    @property
    def normal(self) -> torch.Tensor:
        """World-space unit normal, shape (3,)."""
        return quat_rotate(self.orientation, _UNIT_Z)

    def plane(self) -> Plane:
        return Plane.from_normal_and_point(self.normal, self.center)

    def _scale_mask(self, scale: torch.Tensor) -> torch.Tensor:
        # A grid has no thickness.
        return torch.stack([scale[0], scale[1], torch.ones((), dtype=DTYPE)])

    def _pose_from_state(self, shape: dict) -> Pose:
        sx, sy = shape.get("scale", [10.0, 10.0])
        return Pose(
            position=as_tensor(shape["center"]).reshape(3),
            rotation=quat_from_rvec(as_tensor(shape.get("orientation", [0.0, 0.0, 0.0])).reshape(3)),
            scale=torch.tensor([float(sx), float(sy), 1.0], dtype=DTYPE),
        )

    def to_state(self) -> dict:
        pose = self.world_pose()
        return {
            "center": pose.position.tolist(),
            "orientation": quat_to_rvec(pose.rotation).tolist(),
            "scale": pose.scale[:2].tolist(),
        }

    def hit_test(self, ray: Ray) -> Intersection | None:
        pose = self.world_pose()
        hit = intersect_plane(ray.origin, ray.direction, self.plane())
        if hit is None:
            return None
        local = quat_rotate(quat_conjugate(pose.rotation), hit - pose.position)
        if abs(float(local[0])) > 0.5 * float(pose.scale[0]):
            return None
        if abs(float(local[1])) > 0.5 * float(pose.scale[1]):
            return None
        return Intersection(point=hit, target=self, distance=float(torch.dot(hit - ray.origin, ray.direction)))


class Cube3D(Shape3D):
    """Oriented box: unit cube centered at the origin, scaled to the box size."""

    type_name = ShapeTypeName.CUBE

    @property
    def size(self) -> torch.Tensor:
        """World-space extent (x, y, z), shape (3,)."""
        return self.world_pose().scale

    def _pose_from_state(self, shape: dict) -> Pose:
        return Pose(
            position=as_tensor(shape["center"]).reshape(3),
            rotation=quat_from_rvec(as_tensor(shape.get("orientation", [0.0, 0.0, 0.0])).reshape(3)),
            scale=as_tensor(shape.get("size", [1.0, 1.0, 1.0])).reshape(3),
        )

    def to_state(self) -> dict:
        pose = self.world_pose()
        return {
            "center": pose.position.tolist(),
            "orientation": quat_to_rvec(pose.rotation).tolist(),
            "size": pose.scale.tolist(),
        }

    def hit_test(self, ray: Ray) -> Intersection | None:
        # Slab test in the cube's local frame; the ray parameter is preserved
        # because the world-to-local map is affine.
        pose = self.world_pose()
        inv = quat_conjugate(pose.rotation)
        origin = quat_rotate(inv, ray.origin - pose.position) / pose.scale
        direction = quat_rotate(inv, ray.direction) / pose.scale

        t_near, t_far = -float("inf"), float("inf")
        for axis in range(3):
            o, d = float(origin[axis]), float(direction[axis])
            if abs(d) < 1e-12:
                if abs(o) > 0.5:
                    return None
                continue
            t1, t2 = (-0.5 - o) / d, (0.5 - o) / d
            t_near = max(t_near, min(t1, t2))
            t_far = min(t_far, max(t1, t2))

        if t_far < max(t_near, 0.0):
            return None
        t = t_near if t_near >= 0.0 else t_far
        return Intersection(point=ray.at(t), target=self, distance=t)
