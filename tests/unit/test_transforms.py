"""Known-value tests for rotation, quaternion and pose utilities."""

from __future__ import annotations

import math

import torch

from labelkit.transforms import (
    compose_poses,
    matrix_to_rvec,
    quat_conjugate,
    quat_from_axis_angle,
    quat_from_rvec,
    quat_from_unit_vectors,
    quat_multiply,
    quat_normalize,
    quat_rotate,
    quat_to_matrix,
    quat_to_rvec,
    relative_pose,
    rvec_to_matrix,
)
from labelkit.types import DTYPE, Pose


def _vec(values, device) -> torch.Tensor:
    return torch.tensor(values, dtype=DTYPE, device=device)


class TestRodrigues:
    def test_zero_rvec_is_identity(self, device: torch.device) -> None:
        R = rvec_to_matrix(torch.zeros(3, dtype=DTYPE, device=device))
        torch.testing.assert_close(R, torch.eye(3, dtype=DTYPE, device=device))

    def test_quarter_turn_about_z(self, device: torch.device) -> None:
        R = rvec_to_matrix(_vec([0.0, 0.0, math.pi / 2], device))
        rotated = R @ _vec([1.0, 0.0, 0.0], device)
        torch.testing.assert_close(rotated, _vec([0.0, 1.0, 0.0], device), atol=1e-12, rtol=0)

    def test_round_trip(self, device: torch.device) -> None:
        rvec = _vec([0.3, -0.2, 0.5], device)
        torch.testing.assert_close(matrix_to_rvec(rvec_to_matrix(rvec)), rvec, atol=1e-10, rtol=0)

    def test_round_trip_near_pi(self, device: torch.device) -> None:
        rvec = _vec([0.0, math.pi, 0.0], device)
        torch.testing.assert_close(matrix_to_rvec(rvec_to_matrix(rvec)), rvec, atol=1e-6, rtol=0)


class TestQuaternions:
    def test_rotation_matrix_is_orthogonal(self, device: torch.device) -> None:
        """R^T R = I and det R = 1 for arbitrary unit quaternions."""
        gen = torch.Generator().manual_seed(0)
        for _ in range(20):
            q = quat_normalize(torch.randn(4, generator=gen, dtype=DTYPE).to(device))
            R = quat_to_matrix(q)
            torch.testing.assert_close(R.T @ R, torch.eye(3, dtype=DTYPE, device=device), atol=1e-12, rtol=0)
            assert abs(float(torch.linalg.det(R)) - 1.0) < 1e-12

    def test_rotation_preserves_length(self, device: torch.device) -> None:
        q = quat_normalize(_vec([0.1, 0.7, -0.3, 0.6], device))
        v = _vec([[1.0, 2.0, 3.0], [-4.0, 0.5, 2.0]], device)
        rotated = quat_rotate(q, v)
        torch.testing.assert_close(rotated.norm(dim=1), v.norm(dim=1))

    def test_rotate_matches_matrix(self, device: torch.device) -> None:
        q = quat_normalize(_vec([0.2, -0.4, 0.1, 0.9], device))
        v = _vec([0.3, -1.2, 2.0], device)
        torch.testing.assert_close(quat_rotate(q, v), quat_to_matrix(q) @ v)

    def test_multiply_composes_rotations(self, device: torch.device) -> None:
        a = quat_from_axis_angle(_vec([0.0, 0.0, 1.0], device), math.pi / 2)
        b = quat_from_axis_angle(_vec([1.0, 0.0, 0.0], device), math.pi / 2)
        v = _vec([0.0, 1.0, 0.0], device)
        torch.testing.assert_close(quat_rotate(quat_multiply(a, b), v), quat_rotate(a, quat_rotate(b, v)))

    def test_conjugate_inverts(self, device: torch.device) -> None:
        q = quat_normalize(_vec([0.5, 0.1, -0.2, 0.8], device))
        identity = quat_multiply(q, quat_conjugate(q))
        torch.testing.assert_close(identity, _vec([0.0, 0.0, 0.0, 1.0], device), atol=1e-12, rtol=0)

    def test_zero_axis_gives_identity(self, device: torch.device) -> None:
        q = quat_from_axis_angle(torch.zeros(3, dtype=DTYPE, device=device), 1.0)
        torch.testing.assert_close(q, _vec([0.0, 0.0, 0.0, 1.0], device))

    def test_rvec_round_trip(self, device: torch.device) -> None:
        rvec = _vec([-0.4, 0.2, 0.9], device)
        torch.testing.assert_close(quat_to_rvec(quat_from_rvec(rvec)), rvec, atol=1e-10, rtol=0)


class TestQuatFromUnitVectors:
    def test_maps_from_onto_to(self, device: torch.device) -> None:
        v_from = _vec([1.0, 0.0, 0.0], device)
        v_to = _vec([0.0, 0.6, 0.8], device)
        q = quat_from_unit_vectors(v_from, v_to)
        torch.testing.assert_close(quat_rotate(q, v_from), v_to, atol=1e-12, rtol=0)

    def test_equal_vectors_give_identity(self, device: torch.device) -> None:
        v = _vec([0.0, 0.0, 1.0], device)
        q = quat_from_unit_vectors(v, v)
        torch.testing.assert_close(q, _vec([0.0, 0.0, 0.0, 1.0], device))

    def test_antiparallel_is_half_turn(self, device: torch.device) -> None:
        v_from = _vec([0.0, 0.0, -1.0], device)
        v_to = _vec([0.0, 0.0, 1.0], device)
        q = quat_from_unit_vectors(v_from, v_to)
        # |x| <= |z|: axis (0, -z, y) = (0, 1, 0)
        torch.testing.assert_close(q, _vec([0.0, 1.0, 0.0, 0.0], device))
        torch.testing.assert_close(quat_rotate(q, v_from), v_to, atol=1e-12, rtol=0)

    def test_antiparallel_x_dominant_axis(self, device: torch.device) -> None:
        v_from = _vec([1.0, 0.0, 0.0], device)
        q = quat_from_unit_vectors(v_from, -v_from)
        torch.testing.assert_close(q, _vec([0.0, 1.0, 0.0, 0.0], device))


class TestPoses:
    def _parent(self, device: torch.device) -> Pose:
        return Pose(
            position=_vec([1.0, -2.0, 3.0], device),
            rotation=quat_from_axis_angle(_vec([0.0, 0.0, 1.0], device), 0.7),
            scale=_vec([2.0, 2.0, 1.0], device),
        )

    def test_identity_parent_is_noop(self, device: torch.device) -> None:
        local = Pose(_vec([1.0, 2.0, 3.0], device), _vec([0.0, 0.0, 0.0, 1.0], device), _vec([1.0, 1.0, 1.0], device))
        out = compose_poses(Pose.identity(device), local)
        torch.testing.assert_close(out.position, local.position)
        torch.testing.assert_close(out.rotation, local.rotation)

    def test_relative_inverts_compose(self, device: torch.device) -> None:
        parent = self._parent(device)
        outer = Pose(
            position=_vec([4.0, 0.5, -1.0], device),
            rotation=quat_normalize(_vec([0.1, 0.2, 0.3, 0.9], device)),
            scale=_vec([0.5, 1.5, 3.0], device),
        )
        back = compose_poses(parent, relative_pose(parent, outer))
        torch.testing.assert_close(back.position, outer.position)
        torch.testing.assert_close(back.rotation, outer.rotation)
        torch.testing.assert_close(back.scale, outer.scale)
