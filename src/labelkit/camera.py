"""Pinhole camera model with project/back-project operations.

Projection to pixels goes through OpenCV at the NumPy boundary, so
world_to_pixel() is NOT differentiable. Intrinsics are kept in pixel units.
"""

from __future__ import annotations

import cv2
import numpy as np
import torch

from .exceptions import ProjectionUnavailableError
from .transforms import quat_conjugate, quat_normalize, quat_rotate, quat_to_matrix
from .types import (
    DTYPE,
    CameraExtrinsics,
    CameraIntrinsics,
    Ray,
    as_tensor,
)

# OpenCV camera frame -> OpenGL camera frame (flip Y and Z).
_CV_TO_GL = torch.diag(torch.tensor([1.0, -1.0, -1.0], dtype=DTYPE))


class CameraModel:
    """Pinhole camera holding intrinsics, extrinsics and the image size.

    A camera without intrinsics is in the "no-projection" state: the
    projection methods raise :class:`ProjectionUnavailableError` and
    :attr:`has_projection` is False so callers can degrade instead.

    Args:
        image_size: (width, height) in pixels.
        intrinsics: Optional focal length / principal point.
        extrinsics: Optional camera-to-world pose. Defaults to the identity pose.
    """

    def __init__(
        self,
        image_size: tuple[int, int],
        intrinsics: CameraIntrinsics | None = None,
        extrinsics: CameraExtrinsics | None = None,
    ) -> None:
        self.image_size = (int(image_size[0]), int(image_size[1]))
        self._intrinsics: CameraIntrinsics | None = None
        self._K: torch.Tensor | None = None
        self._K_inv: torch.Tensor | None = None
        self._extrinsics = CameraExtrinsics(
            translation=torch.zeros(3, dtype=DTYPE),
            rotation=torch.tensor([0.0, 0.0, 0.0, 1.0], dtype=DTYPE),
        )
        if intrinsics is not None:
            self.set_intrinsics(intrinsics.focal_length, intrinsics.focal_center)
        if extrinsics is not None:
            self.set_extrinsics(extrinsics.translation, extrinsics.rotation)

    @classmethod
    def from_sensor(cls, sensor, image_size: tuple[int, int]) -> CameraModel:
        """Build a camera from a store sensor record.

        Args:
            sensor: :class:`~labelkit.store.SensorRecord`; its intrinsics and
                extrinsics may each be None.
            image_size: (width, height) of the sensor's current frame.
        """
        return cls(image_size, sensor.intrinsics, sensor.extrinsics)

    # -- setters -------------------------------------------------------------

    def set_intrinsics(self, focal_length, focal_center) -> None:
        """Set (fx, fy) and (cx, cy) and recompute K and its inverse.

        Raises:
            ValueError: If fx or fy is zero (K would be singular).
        """
        fl = as_tensor(focal_length).reshape(2)
        fc = as_tensor(focal_center, device=fl.device).reshape(2)
        if bool((fl == 0).any()):
            raise ValueError(f"Focal length must be non-zero, got {fl.tolist()}.")
        self._intrinsics = CameraIntrinsics(focal_length=fl, focal_center=fc)
        self._K = self._intrinsics.K
        self._K_inv = torch.linalg.inv(self._K)

    def set_extrinsics(self, translation, rotation) -> None:
        """Set the camera-to-world pose; the quaternion is re-normalized."""
        t = as_tensor(translation).reshape(3)
        q = quat_normalize(as_tensor(rotation, device=t.device).reshape(4))
        self._extrinsics = CameraExtrinsics(translation=t, rotation=q)

    def clear_intrinsics(self) -> None:
        """Return to the no-projection state."""
        self._intrinsics = None
        self._K = None
        self._K_inv = None

    # -- accessors -----------------------------------------------------------

    @property
    def has_projection(self) -> bool:
        """True when intrinsics are available."""
        return self._K is not None

    @property
    def intrinsics(self) -> CameraIntrinsics | None:
        return self._intrinsics

    @property
    def extrinsics(self) -> CameraExtrinsics:
        return self._extrinsics

    @property
    def intrinsic_matrix(self) -> torch.Tensor:
        """K, shape (3, 3)."""
        return self._require_K()[0]

    @property
    def intrinsic_inverse(self) -> torch.Tensor:
        """K^-1, shape (3, 3)."""
        return self._require_K()[1]

    @property
    def position(self) -> torch.Tensor:
        """Camera center in world coordinates, shape (3,)."""
        return self._extrinsics.position

    @property
    def view_direction(self) -> torch.Tensor:
        """Unit optical axis in world coordinates, shape (3,)."""
        return self._extrinsics.forward

    def _require_K(self) -> tuple[torch.Tensor, torch.Tensor]:
        if self._K is None or self._K_inv is None:
            raise ProjectionUnavailableError("Camera has no intrinsics.")
        return self._K, self._K_inv

    # -- frame changes -------------------------------------------------------

    def world_to_camera(self, points: torch.Tensor) -> torch.Tensor:
        """Transform world points (N, 3) into the camera frame."""
        q_inv = quat_conjugate(self._extrinsics.rotation)
        return quat_rotate(q_inv, points - self._extrinsics.translation)

    def camera_to_world(self, points: torch.Tensor) -> torch.Tensor:
        """Transform camera-frame points (N, 3) into the world frame."""
        return quat_rotate(self._extrinsics.rotation, points) + self._extrinsics.translation

    # -- projection ----------------------------------------------------------

    def world_to_pixel(self, points: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor]:
        """Project 3D world-frame points to 2D pixel coordinates.

        Args:
            points: World-frame 3D points, shape (N, 3).

        Returns:
            Tuple of:
                pixels: Pixel coordinates, shape (N, 2).
                valid: Boolean mask, shape (N,). True where z_cam > 0.
        """
        K, _ = self._require_K()
        device = points.device
        p_cam = self.world_to_camera(points.to(DTYPE))
        valid = p_cam[:, 2] > 0

        p_cam_np = p_cam.detach().cpu().numpy().astype(np.float64)
        K_np = K.detach().cpu().numpy().astype(np.float64)

        pixels_np, _ = cv2.projectPoints(
            p_cam_np.reshape(-1, 1, 3),
            rvec=np.zeros(3, dtype=np.float64),
            tvec=np.zeros(3, dtype=np.float64),
            cameraMatrix=K_np,
            distCoeffs=np.zeros(5, dtype=np.float64),
        )
        # cv2.projectPoints returns shape (N, 1, 2)
        pixels = torch.from_numpy(pixels_np.reshape(-1, 2)).to(device=device, dtype=DTYPE)
        return pixels, valid

    def pixel_to_ray(self, pixels: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor]:
        """Back-project pixel coordinates to world-frame rays.

        Args:
            pixels: Pixel coordinates, shape (N, 2).

        Returns:
            Tuple of:
                origins: Camera center repeated per ray, shape (N, 3).
                directions: Unit direction vectors in world frame, shape (N, 3).
        """
        _, K_inv = self._require_K()
        pixels = pixels.to(DTYPE)
        ones = torch.ones(pixels.shape[0], 1, dtype=DTYPE, device=pixels.device)
        homogeneous = torch.cat([pixels, ones], dim=1)  # (N, 3)

        rays_cam = homogeneous @ K_inv.to(pixels.device).T
        rays_cam = rays_cam / rays_cam.norm(dim=1, keepdim=True)
        directions = quat_rotate(self._extrinsics.rotation, rays_cam)
        origins = self._extrinsics.translation.expand_as(directions).clone()
        return origins, directions

    def ray_through(self, x: float, y: float) -> Ray:
        """Pick ray through pixel (x, y), in world coordinates."""
        origins, directions = self.pixel_to_ray(torch.tensor([[x, y]], dtype=DTYPE))
        return Ray(origin=origins[0], direction=directions[0])

    def view_matrix(self) -> torch.Tensor:
        """World-to-camera matrix in the OpenGL camera convention, shape (4, 4)."""
        R_wc = quat_to_matrix(quat_conjugate(self._extrinsics.rotation))
        t_wc = -R_wc @ self._extrinsics.translation
        flip = _CV_TO_GL.to(R_wc.device)
        view = torch.eye(4, dtype=DTYPE, device=R_wc.device)
        view[:3, :3] = flip @ R_wc
        view[:3, 3] = flip @ t_wc
        return view

    def projection_matrix(self, near: float = 0.1, far: float = 1000.0) -> torch.Tensor:
        """OpenGL clip-space projection reproducing the intrinsic matrix exactly.

        Combined with :meth:`view_matrix`, a world point maps to normalized
        device coordinates whose viewport transform equals world_to_pixel(),
        so 3D overlays align pixel-for-pixel with the image. The principal
        point may be off-center.

        Args:
            near: Near clipping distance (> 0).
            far: Far clipping distance (> near).

        Returns:
            Projection matrix, shape (4, 4).
        """
        K, _ = self._require_K()
        if not 0 < near < far:
            raise ValueError(f"Expected 0 < near < far, got near={near}, far={far}.")
        width, height = self.image_size
        fx, fy = float(K[0, 0]), float(K[1, 1])
        cx, cy = float(K[0, 2]), float(K[1, 2])

        P = torch.zeros(4, 4, dtype=DTYPE, device=K.device)
        P[0, 0] = 2.0 * fx / width
        P[0, 2] = 1.0 - 2.0 * cx / width
        P[1, 1] = 2.0 * fy / height
        P[1, 2] = 2.0 * cy / height - 1.0
        P[2, 2] = -(far + near) / (far - near)
        P[2, 3] = -2.0 * far * near / (far - near)
        P[3, 2] = -1.0
        return P

