"""Ray-plane and ray-point geometry used for picking and dragging."""

from __future__ import annotations

import torch

from .types import Plane


def ray_plane_intersection(
    origins: torch.Tensor,
    directions: torch.Tensor,
    normal: torch.Tensor,
    constant: float,
) -> tuple[torch.Tensor, torch.Tensor]:
    """Intersect a batch of rays with the plane dot(p, normal) = constant.

    Args:
        origins: Ray origins, shape (N, 3).
        directions: Unit ray directions, shape (N, 3).
        normal: Plane normal, shape (3,).
        constant: Plane offset along ``normal``.

    Returns:
        Tuple of (points, valid). ``points`` has shape (N, 3) and only rows
        with ``valid`` set are meaningful; a ray misses when it runs parallel
        to the plane or would have to travel backwards to reach it.
    """
    along = (directions * normal).sum(dim=-1)  # (N,)
    gap = constant - (origins * normal).sum(dim=-1)  # (N,)
    parallel = along.abs() < 1e-12
    t = gap / torch.where(parallel, torch.ones_like(along), along)
    valid = (t >= 0.0) & ~parallel
    return origins + t[:, None] * directions, valid


def intersect_plane(
    origin: torch.Tensor,
    direction: torch.Tensor,
    plane: Plane,
) -> torch.Tensor | None:
    """Single-ray convenience wrapper around :func:`ray_plane_intersection`.

    Returns:
        Intersection point, shape (3,), or None when the ray misses the plane.
    """
    points, valid = ray_plane_intersection(
        origin.reshape(1, 3), direction.reshape(1, 3), plane.normal, plane.constant
    )
    if not bool(valid[0]):
        return None
    return points[0]


def point_to_ray_distance(
    point: torch.Tensor,
    origin: torch.Tensor,
    direction: torch.Tensor,
) -> tuple[float, float]:
    """Perpendicular distance from a point to a ray.

    Args:
        point: Query point, shape (3,).
        origin: Ray origin, shape (3,).
        direction: Unit ray direction, shape (3,).

    Returns:
        Tuple of (distance, t) where t is the ray parameter of the closest
        point. Points behind the origin are measured from the origin (t = 0).
    """
    t = max(float(torch.dot(point - origin, direction)), 0.0)
    closest = origin + t * direction
    return float(torch.linalg.norm(point - closest)), t


def ray_segment_distance(
    origin: torch.Tensor,
    direction: torch.Tensor,
    start: torch.Tensor,
    end: torch.Tensor,
) -> tuple[float, float, torch.Tensor]:
    """Closest approach between a ray and a line segment.

    Args:
        origin: Ray origin, shape (3,).
        direction: Unit ray direction, shape (3,).
        start: Segment start, shape (3,).
        end: Segment end, shape (3,).

    Returns:
        Tuple of (distance, t, point) where t is the ray parameter of the
        closest approach and point the closest point on the segment.
    """
    seg = end - start
    w0 = origin - start
    a = float(torch.dot(direction, direction))
    b = float(torch.dot(direction, seg))
    c = float(torch.dot(seg, seg))
    d = float(torch.dot(direction, w0))
    e = float(torch.dot(seg, w0))
    denom = a * c - b * b

    if c < 1e-12:
        s = 0.0
    elif abs(denom) < 1e-12:
        s = min(max(e / c, 0.0), 1.0)
    else:
        s = min(max((a * e - b * d) / denom, 0.0), 1.0)

    on_segment = start + s * seg
    dist, t = point_to_ray_distance(on_segment, origin, direction)
    return dist, t, on_segment
