"""Rotation, quaternion and pose transformation utilities.

All functions are pure PyTorch, with no NumPy or OpenCV dependencies, so they
are device-agnostic and support autograd. Quaternions are (x, y, z, w).
"""

from __future__ import annotations

import torch

from .types import DTYPE, Pose

# Threshold below which (dot(from, to) + 1) is treated as antiparallel.
_ANTIPARALLEL_EPS = 1e-6


def rvec_to_matrix(rvec: torch.Tensor) -> torch.Tensor:
    """Rotation matrix of a Rodrigues vector (angle = norm, axis = direction).

    A zero vector gives the identity.
    """
    return quat_to_matrix(quat_from_rvec(rvec))


def matrix_to_rvec(R: torch.Tensor) -> torch.Tensor:
    """Rodrigues vector of a proper rotation matrix, with angle in [0, pi]."""
    return quat_to_rvec(matrix_to_quat(R))


def matrix_to_quat(R: torch.Tensor) -> torch.Tensor:
    """Unit quaternion of a rotation matrix.

    Branches on the largest of the trace and the diagonal entries so the
    divisor stays well away from zero, including at half-turns.
    """
    diag = torch.diagonal(R)
    trace = diag.sum()
    if trace > diag.max():
        s = 2.0 * torch.sqrt(1.0 + trace)
        q = torch.stack(
            [(R[2, 1] - R[1, 2]) / s, (R[0, 2] - R[2, 0]) / s, (R[1, 0] - R[0, 1]) / s, 0.25 * s]
        )
    else:
        i = int(torch.argmax(diag))
        j, k = (i + 1) % 3, (i + 2) % 3
        s = 2.0 * torch.sqrt(1.0 + R[i, i] - R[j, j] - R[k, k])
        xyz: list[torch.Tensor | None] = [None, None, None]
        xyz[i] = 0.25 * s
        xyz[j] = (R[j, i] + R[i, j]) / s
        xyz[k] = (R[k, i] + R[i, k]) / s
        q = torch.stack([*xyz, (R[k, j] - R[j, k]) / s])
    return quat_normalize(q)


# ---------------------------------------------------------------------------
# Quaternions
# ---------------------------------------------------------------------------


def quat_normalize(q: torch.Tensor) -> torch.Tensor:
    """Scale a quaternion to unit length."""
    return q / torch.linalg.norm(q).clamp(min=1e-12)


def quat_conjugate(q: torch.Tensor) -> torch.Tensor:
    """Conjugate of q, which is its inverse when q is a unit quaternion."""
    return torch.stack([-q[0], -q[1], -q[2], q[3]])


def quat_multiply(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """Hamilton product a * b (apply b first, then a)."""
    ax, ay, az, aw = a.unbind()
    bx, by, bz, bw = b.unbind()
    return torch.stack(
        [
            aw * bx + ax * bw + ay * bz - az * by,
            aw * by - ax * bz + ay * bw + az * bx,
            aw * bz + ax * by - ay * bx + az * bw,
            aw * bw - ax * bx - ay * by - az * bz,
        ]
    )


def quat_rotate(q: torch.Tensor, v: torch.Tensor) -> torch.Tensor:
    """Rotate vector(s) v by unit quaternion q.

    Args:
        q: Unit quaternion, shape (4,).
        v: Vectors, shape (3,) or (N, 3).

    Returns:
        Rotated vectors with the same shape as v.
    """
    u = q[:3].expand_as(v)
    w = q[3]
    t = 2.0 * torch.linalg.cross(u, v, dim=-1)
    return v + w * t + torch.linalg.cross(u, t, dim=-1)


def quat_to_matrix(q: torch.Tensor) -> torch.Tensor:
    """Rotation matrix of a unit quaternion, shape (3, 3)."""
    x, y, z, w = q.unbind()
    return torch.stack(
        [
            torch.stack([1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)]),
            torch.stack([2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)]),
            torch.stack([2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)]),
        ]
    )


def quat_from_axis_angle(axis: torch.Tensor, angle: float | torch.Tensor) -> torch.Tensor:
    """Quaternion rotating by ``angle`` radians about ``axis``.

    Edge cases:
        - zero-length axis: returns the identity quaternion.
    """
    norm = torch.linalg.norm(axis)
    if norm < 1e-12:
        return torch.tensor([0.0, 0.0, 0.0, 1.0], dtype=axis.dtype, device=axis.device)
    half = torch.as_tensor(angle, dtype=axis.dtype, device=axis.device) / 2.0
    xyz = axis / norm * torch.sin(half)
    return torch.cat([xyz, torch.cos(half).reshape(1)])


def quat_from_rvec(rvec: torch.Tensor) -> torch.Tensor:
    """Quaternion equivalent of a Rodrigues rotation vector."""
    return quat_from_axis_angle(rvec, torch.linalg.norm(rvec))


def quat_to_rvec(q: torch.Tensor) -> torch.Tensor:
    """Rodrigues rotation vector equivalent of a unit quaternion."""
    q = quat_normalize(q)
    if q[3] < 0:
        q = -q
    sin_half = torch.linalg.norm(q[:3])
    if sin_half < 1e-12:
        return torch.zeros(3, dtype=q.dtype, device=q.device)
    return q[:3] / sin_half * (2.0 * torch.atan2(sin_half, q[3]))


def quat_from_unit_vectors(v_from: torch.Tensor, v_to: torch.Tensor) -> torch.Tensor:
    """Minimal rotation carrying unit vector ``v_from`` onto unit vector ``v_to``.

    For antiparallel inputs the rotation axis is undefined; a half turn about
    an axis orthogonal to ``v_from`` is returned, chosen as (-y, x, 0) when
    |x| > |z| and (0, -z, y) otherwise.

    Args:
        v_from: Unit vector, shape (3,).
        v_to: Unit vector, shape (3,).

    Returns:
        Unit quaternion, shape (4,).
    """
    r = torch.dot(v_from, v_to) + 1.0

    if r < _ANTIPARALLEL_EPS:
        zero = torch.zeros((), dtype=v_from.dtype, device=v_from.device)
        if v_from[0].abs() > v_from[2].abs():
            q = torch.stack([-v_from[1], v_from[0], zero, zero])
        else:
            q = torch.stack([zero, -v_from[2], v_from[1], zero])
    else:
        q = torch.cat([torch.linalg.cross(v_from, v_to), r.reshape(1)])

    return quat_normalize(q)


# ---------------------------------------------------------------------------
# Poses
# ---------------------------------------------------------------------------


def compose_poses(parent: Pose, local: Pose) -> Pose:
    """Express a pose given in ``parent``'s frame in the parent's outer frame.

    Given a point p expressed in the local frame:
        p_outer = parent.position + rotate(parent.rotation, parent.scale * p_local)

    Args:
        parent: Pose of the parent frame.
        local: Pose relative to the parent frame.

    Returns:
        Composed pose in the parent's outer frame.
    """
    position = parent.position + quat_rotate(parent.rotation, parent.scale * local.position)
    rotation = quat_normalize(quat_multiply(parent.rotation, local.rotation))
    scale = parent.scale * local.scale
    return Pose(position, rotation, scale)


def relative_pose(parent: Pose, outer: Pose) -> Pose:
    """Inverse of compose_poses: express ``outer`` relative to ``parent``.

    Satisfies compose_poses(parent, relative_pose(parent, outer)) == outer.
    """
    inv = quat_conjugate(parent.rotation)
    position = quat_rotate(inv, outer.position - parent.position) / parent.scale
    rotation = quat_normalize(quat_multiply(inv, outer.rotation))
    scale = outer.scale / parent.scale
    return Pose(position, rotation, scale)


def identity_matrix(n: int = 3, device: torch.device | str | None = None) -> torch.Tensor:
    """Identity matrix in labelkit's default dtype."""
    return torch.eye(n, dtype=DTYPE, device=device)
