"""Shared geometry types for all labelkit modules.

Camera frame: OpenCV convention (+X right, +Y down, +Z forward).
Extrinsics are camera-to-world: p_world = rotate(q, p_cam) + t.
Quaternions are stored as (x, y, z, w).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

import torch

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

Vec2: TypeAlias = torch.Tensor
"""Shape (2,) or (N, 2), float64. 2D vector or batch of 2D vectors."""

Vec3: TypeAlias = torch.Tensor
"""Shape (3,) or (N, 3), float64. 3D vector or batch of 3D vectors."""

Quat: TypeAlias = torch.Tensor
"""Shape (4,), float64. Unit quaternion in (x, y, z, w) order."""

Mat3: TypeAlias = torch.Tensor
"""Shape (3, 3), float64. 3x3 matrix."""

Mat4: TypeAlias = torch.Tensor
"""Shape (4, 4), float64. 4x4 homogeneous matrix."""

DTYPE = torch.float64
"""Default dtype for every tensor built by labelkit."""

# ---------------------------------------------------------------------------
# Coordinate system constants
# ---------------------------------------------------------------------------

CAMERA_FORWARD: torch.Tensor = torch.tensor([0.0, 0.0, 1.0], dtype=DTYPE)
"""Optical axis of a camera expressed in its own frame (shape (3,))."""

IDENTITY_QUAT: torch.Tensor = torch.tensor([0.0, 0.0, 0.0, 1.0], dtype=DTYPE)
"""Identity rotation in (x, y, z, w) order (shape (4,))."""


def as_tensor(values, device: torch.device | str | None = None) -> torch.Tensor:
    """Convert a sequence or tensor to a float64 tensor on ``device``."""
    if isinstance(values, torch.Tensor):
        return values.to(dtype=DTYPE, device=device or values.device)
    return torch.as_tensor(values, dtype=DTYPE, device=device)


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class CameraIntrinsics:
    """Pinhole intrinsic parameters in pixel units.

    Attributes:
        focal_length: (fx, fy), shape (2,). Both must be non-zero.
        focal_center: Principal point (cx, cy), shape (2,).
    """

    focal_length: torch.Tensor  # (2,)
    focal_center: torch.Tensor  # (2,)

    @property
    def K(self) -> torch.Tensor:
        """Intrinsic matrix [[fx, 0, cx], [0, fy, cy], [0, 0, 1]], shape (3, 3)."""
        fx, fy = self.focal_length.tolist()
        cx, cy = self.focal_center.tolist()
        return torch.tensor(
            [[fx, 0.0, cx], [0.0, fy, cy], [0.0, 0.0, 1.0]],
            dtype=DTYPE,
            device=self.focal_length.device,
        )


@dataclass
class CameraExtrinsics:
    """Camera pose in world space (camera-to-world).

    Attributes:
        translation: Camera position in world coordinates, shape (3,).
        rotation: Unit quaternion (x, y, z, w) rotating camera-frame vectors
            into the world frame, shape (4,).
    """

    translation: torch.Tensor  # (3,)
    rotation: torch.Tensor  # (4,)

    @property
    def position(self) -> torch.Tensor:
        """Camera center in world coordinates, shape (3,)."""
        return self.translation

    @property
    def forward(self) -> torch.Tensor:
        """Optical axis in world coordinates, shape (3,)."""
        from .transforms import quat_rotate

        return quat_rotate(self.rotation, CAMERA_FORWARD.to(self.rotation.device))


@dataclass
class PlaneReference:
    """Reference plane selected for the bird's-eye view.

    Attributes:
        normal: Unit plane normal in world space, shape (3,). The synthetic
            bird's-eye camera looks along this direction.
        center: Plane center in world space, shape (3,).
    """

    normal: torch.Tensor  # (3,)
    center: torch.Tensor  # (3,)

    @property
    def constant(self) -> float:
        """Plane constant d in dot(p, normal) = d."""
        return float(torch.dot(self.normal, self.center))


@dataclass
class Plane:
    """Infinite plane satisfying dot(point, normal) = constant.

    Attributes:
        normal: Unit normal, shape (3,).
        constant: Signed offset along the normal.
    """

    normal: torch.Tensor  # (3,)
    constant: float

    @classmethod
    def from_normal_and_point(cls, normal: torch.Tensor, point: torch.Tensor) -> Plane:
        """Build the plane through ``point`` orthogonal to ``normal``."""
        n = normal / torch.linalg.norm(normal).clamp(min=1e-12)
        return cls(normal=n, constant=float(torch.dot(n, point)))

    def distance_to(self, point: torch.Tensor) -> float:
        """Signed distance from ``point`` to the plane."""
        return float(torch.dot(self.normal, point)) - self.constant


@dataclass
class Pose:
    """Position, orientation and per-axis scale of a shape frame.

    Attributes:
        position: Frame origin, shape (3,).
        rotation: Unit quaternion (x, y, z, w), shape (4,).
        scale: Per-axis scale factors, shape (3,).
    """

    position: torch.Tensor  # (3,)
    rotation: torch.Tensor  # (4,)
    scale: torch.Tensor  # (3,)

    @classmethod
    def identity(cls, device: torch.device | str | None = None) -> Pose:
        """Pose at the origin with no rotation and unit scale."""
        return cls(
            position=torch.zeros(3, dtype=DTYPE, device=device),
            rotation=torch.tensor([0.0, 0.0, 0.0, 1.0], dtype=DTYPE, device=device),
            scale=torch.ones(3, dtype=DTYPE, device=device),
        )

    def clone(self) -> Pose:
        """Deep copy of this pose."""
        return Pose(self.position.clone(), self.rotation.clone(), self.scale.clone())


@dataclass
class Ray:
    """Half-line origin + t * direction, t >= 0.

    Attributes:
        origin: Ray origin, shape (3,).
        direction: Unit direction, shape (3,).
    """

    origin: torch.Tensor  # (3,)
    direction: torch.Tensor  # (3,)

    def at(self, t: float) -> torch.Tensor:
        """Point at parameter t along the ray."""
        return self.origin + t * self.direction


@dataclass
class Intersection:
    """Result of a pick ray hitting a shape or control unit.

    Attributes:
        point: Hit point in world coordinates, shape (3,).
        target: The object that was hit.
        distance: Ray parameter of the hit.
    """

    point: torch.Tensor  # (3,)
    target: object = None
    distance: float = 0.0
