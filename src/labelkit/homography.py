"""Bird's-eye homography computation and image resampling.

The homography re-projects a camera image onto a reference plane as seen by a
synthetic camera hovering ``viewing_distance`` above the plane and looking
along the plane normal.

Convention (all quantities in the source camera frame):
    n  = plane normal, flipped if needed so that it points away from the
         source camera (c . n > 0)
    c  = plane center
    R  = minimal rotation carrying n onto the optical axis (0, 0, 1)
    d  = c . n, distance from the source camera to the plane
    a  = c - viewing_distance * n, position of the synthetic camera
    H  = R + (R @ (0 - a)) outer n / d

so that a point X on the plane maps to R @ (X - a), its position in the
synthetic camera frame. The offset is expressed in the synthetic frame, so
it goes through R as well; an unrotated offset would not reduce H to the
identity for a source camera already viewing_distance in front of the plane.
Each output pixel p samples the source at K @ H^-1 @ K^-1 @ p. Resampling
goes through ``cv2.remap`` at the NumPy boundary and is NOT differentiable.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from typing import Callable, Mapping

import cv2
import numpy as np
import torch

from .camera import CameraModel
from .log import get_logger, log_performance
from .store import DEFAULT_VIEWING_DISTANCE, State
from .transforms import quat_conjugate, quat_from_unit_vectors, quat_rotate, quat_to_matrix
from .types import CAMERA_FORWARD, DTYPE, PlaneReference

logger = get_logger(__name__)

# Planes closer than this to the camera center are degenerate (d ~ 0).
_MIN_PLANE_DISTANCE = 1e-9

# Homographies with |det| below this are treated as singular.
_MIN_DETERMINANT = 1e-12

# Absorbs K @ K^-1 round-off before truncating to a pixel index.
_SNAP_EPS = 1e-6

# Output rows processed between cancellation checks.
DEFAULT_BAND_ROWS = 64


class HomographyState(enum.Enum):
    """Which inputs of the bird's-eye view are available."""

    NO_PLANE = "no_plane"
    PLANE_NO_INTRINSICS = "plane_no_intrinsics"
    READY = "ready"


class DisplayKind(enum.Enum):
    """Instruction for the presentation layer."""

    CLEAR = "clear"
    PLAIN_IMAGE = "plain_image"
    RASTER = "raster"


@dataclass
class BirdsEyeFrame:
    """One output of :meth:`BirdsEyeView.render`.

    Attributes:
        kind: What the presentation layer should do.
        raster: RGBA uint8 tensor, shape (H, W, 4). The resampled canvas for
            RASTER, the untouched source image for PLAIN_IMAGE, None for CLEAR.
        generation: Input generation the frame was computed from.
    """

    kind: DisplayKind
    raster: torch.Tensor | None
    generation: int


def resolve_state(camera: CameraModel | None, plane: PlaneReference | None) -> HomographyState:
    """Classify the inputs into one of the three homography states."""
    if plane is None:
        return HomographyState.NO_PLANE
    if camera is None or not camera.has_projection:
        return HomographyState.PLANE_NO_INTRINSICS
    return HomographyState.READY


def compute_homography(
    camera: CameraModel,
    plane: PlaneReference,
    viewing_distance: float = DEFAULT_VIEWING_DISTANCE,
) -> torch.Tensor | None:
    """Compute the bird's-eye homography for ``plane`` seen from ``camera``.

    Args:
        camera: Source camera. Must have intrinsics for a result.
        plane: Reference plane in world coordinates.
        viewing_distance: Height of the synthetic camera above the plane.

    Returns:
        H, shape (3, 3), float64; or None when the camera has no intrinsics,
        the camera lies on the plane, or H is singular or non-finite.
    """
    if not camera.has_projection:
        return None

    device = plane.normal.device
    q_inv = quat_conjugate(camera.extrinsics.rotation.to(device))

    normal = quat_rotate(q_inv, plane.normal.to(DTYPE))
    normal = normal / torch.linalg.norm(normal).clamp(min=1e-12)
    center = quat_rotate(q_inv, plane.center.to(DTYPE) - camera.position.to(device))

    distance = torch.dot(center, normal)
    if distance < 0:
        normal = -normal
        distance = -distance
    if distance < _MIN_PLANE_DISTANCE:
        logger.debug("Camera lies on the reference plane; homography undefined")
        return None

    rotation = quat_to_matrix(quat_from_unit_vectors(normal, CAMERA_FORWARD.to(device)))

    anchor = center - viewing_distance * normal
    camera_position = torch.zeros(3, dtype=DTYPE, device=device)
    translation = torch.outer(rotation @ (camera_position - anchor), normal) / distance

    homography = rotation + translation

    if not bool(torch.isfinite(homography).all()):
        return None
    if torch.abs(torch.linalg.det(homography)) < _MIN_DETERMINANT:
        logger.debug("Homography is singular")
        return None
    return homography


def source_coordinates(
    homography_inverse: torch.Tensor,
    intrinsic: torch.Tensor,
    intrinsic_inverse: torch.Tensor,
    xs: torch.Tensor,
    ys: torch.Tensor,
) -> tuple[torch.Tensor, torch.Tensor]:
    """Map destination pixels to source pixels, in destination-canvas units.

    Applies K^-1, then H^-1, then K to each homogeneous pixel (x, y, 1) and
    divides by the resulting z.

    Args:
        homography_inverse: H^-1, shape (3, 3).
        intrinsic: K, shape (3, 3).
        intrinsic_inverse: K^-1, shape (3, 3).
        xs: Destination x coordinates, shape (N,).
        ys: Destination y coordinates, shape (N,).

    Returns:
        Tuple (src_x, src_y), each shape (N,). Non-finite where z == 0.
    """
    pts = torch.stack([xs, ys, torch.ones_like(xs)], dim=-1).to(DTYPE)  # (N, 3)
    pts = pts @ intrinsic_inverse.T
    pts = pts @ homography_inverse.T
    pts = pts @ intrinsic.T
    return pts[:, 0] / pts[:, 2], pts[:, 1] / pts[:, 2]


def to_rgba(image: torch.Tensor) -> np.ndarray:
    """Convert an (H, W), (H, W, 3) or (H, W, 4) uint8 RGB(A) image to RGBA NumPy."""
    img_np = image.detach().cpu().numpy()
    if img_np.dtype != np.uint8:
        raise ValueError(f"Expected a uint8 image, got {img_np.dtype}.")
    if img_np.ndim == 2:
        return cv2.cvtColor(img_np, cv2.COLOR_GRAY2RGBA)
    if img_np.ndim == 3 and img_np.shape[2] == 3:
        return cv2.cvtColor(img_np, cv2.COLOR_RGB2RGBA)
    if img_np.ndim == 3 and img_np.shape[2] == 4:
        return np.ascontiguousarray(img_np)
    raise ValueError(f"Unsupported image shape {tuple(img_np.shape)}.")


def snap_to_pixel(coords: torch.Tensor, size: int) -> torch.Tensor:
    """Pixel index of each source coordinate, or -1 outside [0, size).

    The lower edge is tested after a small nudge that absorbs K K^-1 round-off
    below zero; the upper edge is tested before it, so coordinates just short
    of ``size`` still sample the last pixel.
    """
    nudged = coords + _SNAP_EPS
    # NaN compares False, so non-finite coordinates are outside.
    inside = (nudged >= 0) & (coords < size)
    index = torch.floor(nudged).clamp(max=size - 1)
    return torch.where(inside, index, torch.full_like(index, -1.0))


def build_remap(
    homography_inverse: torch.Tensor,
    intrinsic: torch.Tensor,
    intrinsic_inverse: torch.Tensor,
    rows: range,
    output_size: tuple[int, int],
    source_size: tuple[int, int],
) -> tuple[np.ndarray, np.ndarray]:
    """Integral remap tables for a band of output rows.

    Destination-canvas coordinates are rescaled by the source/destination
    size ratio. Coordinates outside [0, size) are marked with -1 so that
    ``cv2.remap`` fills them with the transparent border value.

    Args:
        homography_inverse: H^-1, shape (3, 3).
        intrinsic: K, shape (3, 3).
        intrinsic_inverse: K^-1, shape (3, 3).
        rows: Output row indices of the band.
        output_size: (width, height) of the bird's-eye canvas.
        source_size: (width, height) of the source image.

    Returns:
        ``(map_x, map_y)`` float32 arrays of shape (len(rows), width).
    """
    out_w, out_h = output_size
    src_w, src_h = source_size
    device = homography_inverse.device

    ys = torch.arange(rows.start, rows.stop, dtype=DTYPE, device=device)
    xs = torch.arange(out_w, dtype=DTYPE, device=device)
    grid_y, grid_x = torch.meshgrid(ys, xs, indexing="ij")

    sx, sy = source_coordinates(
        homography_inverse, intrinsic, intrinsic_inverse, grid_x.reshape(-1), grid_y.reshape(-1)
    )
    sx = sx / out_w * src_w
    sy = sy / out_h * src_h

    ix = snap_to_pixel(sx, src_w)
    iy = snap_to_pixel(sy, src_h)
    outside = (ix < 0) | (iy < 0)
    ix = torch.where(outside, torch.full_like(ix, -1.0), ix)
    iy = torch.where(outside, torch.full_like(iy, -1.0), iy)

    shape = (len(rows), out_w)
    map_x = ix.reshape(shape).cpu().numpy().astype(np.float32)
    map_y = iy.reshape(shape).cpu().numpy().astype(np.float32)
    return map_x, map_y


def resample(
    image: torch.Tensor,
    homography: torch.Tensor,
    intrinsic: torch.Tensor,
    intrinsic_inverse: torch.Tensor,
    output_size: tuple[int, int],
    should_cancel: Callable[[], bool] | None = None,
    band_rows: int = DEFAULT_BAND_ROWS,
) -> torch.Tensor | None:
    """Resample ``image`` into a bird's-eye RGBA raster.

    Every output pixel either copies exactly one source pixel (nearest, by
    truncation) or stays transparent black.

    Args:
        image: Source image, shape (H, W), (H, W, 3) or (H, W, 4), uint8.
        homography: H, shape (3, 3).
        intrinsic: K, shape (3, 3).
        intrinsic_inverse: K^-1, shape (3, 3).
        output_size: (width, height) of the bird's-eye canvas.
        should_cancel: Polled between bands of ``band_rows`` rows; when it
            returns True the partial result is discarded.
        band_rows: Rows per band.

    Returns:
        RGBA uint8 tensor of shape (out_h, out_w, 4) on ``image``'s device,
        or None when cancelled.
    """
    out_w, out_h = output_size
    source = to_rgba(image)
    src_h, src_w = source.shape[:2]
    output = np.zeros((out_h, out_w, 4), dtype=np.uint8)

    homography_inverse = torch.linalg.inv(homography.to(DTYPE))
    intrinsic = intrinsic.to(device=homography.device, dtype=DTYPE)
    intrinsic_inverse = intrinsic_inverse.to(device=homography.device, dtype=DTYPE)

    for start in range(0, out_h, band_rows):
        if should_cancel is not None and should_cancel():
            return None
        rows = range(start, min(start + band_rows, out_h))
        map_x, map_y = build_remap(
            homography_inverse, intrinsic, intrinsic_inverse, rows, (out_w, out_h), (src_w, src_h)
        )
        output[rows.start : rows.stop] = cv2.remap(
            source,
            map_x,
            map_y,
            cv2.INTER_NEAREST,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=(0, 0, 0, 0),
        )

    return torch.from_numpy(output).to(image.device)


class BirdsEyeView:
    """Bird's-eye viewer core: tracks inputs, recomputes H, renders rasters.

    Each :meth:`update` that changes an input recomputes the homography from
    scratch and bumps :attr:`generation`. A :meth:`render` whose generation
    goes stale while it runs is abandoned and returns None.

    Args:
        canvas_size: (width, height) of the bird's-eye canvas.
        viewing_distance: Default height of the synthetic camera.
        band_rows: Rows resampled between cancellation checks.
    """

    def __init__(
        self,
        canvas_size: tuple[int, int],
        viewing_distance: float = DEFAULT_VIEWING_DISTANCE,
        band_rows: int = DEFAULT_BAND_ROWS,
    ) -> None:
        self.canvas_size = (int(canvas_size[0]), int(canvas_size[1]))
        self.viewing_distance = float(viewing_distance)
        self.band_rows = band_rows
        self._camera: CameraModel | None = None
        self._plane: PlaneReference | None = None
        self._image: torch.Tensor | None = None
        self._homography: torch.Tensor | None = None
        self._state = HomographyState.NO_PLANE
        self._fingerprint: tuple | None = None
        self._generation = 0

    @property
    def state(self) -> HomographyState:
        return self._state

    @property
    def homography(self) -> torch.Tensor | None:
        """Current H, or None outside READY or for a degenerate configuration."""
        return self._homography

    @property
    def generation(self) -> int:
        return self._generation

    def _make_fingerprint(
        self,
        camera: CameraModel | None,
        plane: PlaneReference | None,
        image: torch.Tensor | None,
    ) -> tuple:
        cam_key = None
        if camera is not None:
            extr = camera.extrinsics
            K = tuple(camera.intrinsic_matrix.reshape(-1).tolist()) if camera.has_projection else None
            cam_key = (K, tuple(extr.translation.tolist()), tuple(extr.rotation.tolist()))
        plane_key = None
        if plane is not None:
            plane_key = (tuple(plane.normal.tolist()), tuple(plane.center.tolist()))
        image_key = None if image is None else (id(image), tuple(image.shape))
        return (cam_key, plane_key, image_key, self.viewing_distance)

    def update(
        self,
        camera: CameraModel | None,
        plane: PlaneReference | None,
        image: torch.Tensor | None,
        viewing_distance: float | None = None,
    ) -> bool:
        """Feed a new set of inputs.

        Args:
            camera: Source camera, or None when the sensor is not loaded.
            plane: Reference plane of the selected plane label, or None.
            image: Current source image (H, W[, C]) uint8, or None.
            viewing_distance: Overrides the synthetic camera height.

        Returns:
            True when any input changed (and H was recomputed).
        """
        if viewing_distance is not None:
            self.viewing_distance = float(viewing_distance)

        fingerprint = self._make_fingerprint(camera, plane, image)
        if fingerprint == self._fingerprint:
            return False

        self._fingerprint = fingerprint
        self._camera = camera
        self._plane = plane
        self._image = image
        self._generation += 1

        previous = self._state
        self._state = resolve_state(camera, plane)
        if previous is not self._state:
            logger.debug(f"Homography state {previous.value} -> {self._state.value}")

        self._homography = None
        if self._state is HomographyState.READY:
            self._homography = compute_homography(camera, plane, self.viewing_distance)
        return True

    def update_from_state(
        self,
        state: State,
        viewer_id: int,
        selected_label,
        images: Mapping[int, Mapping[int, torch.Tensor]],
    ) -> bool:
        """Derive inputs from a store snapshot and :meth:`update`.

        Args:
            state: Store snapshot.
            viewer_id: Key of this viewer in ``state.viewer_configs``.
            selected_label: Currently selected drawable label, or None. Only a
                plane label provides a reference plane.
            images: Loaded images, keyed by item index then sensor id.

        Returns:
            True when any input changed.
        """
        config = state.viewer_configs.get(viewer_id)
        if config is None:
            return self.update(None, None, None)

        image = images.get(state.selection.item, {}).get(config.sensor)

        plane = None
        plane_reference = getattr(selected_label, "plane_reference", None)
        if plane_reference is not None:
            plane = plane_reference()

        camera = None
        sensor = state.sensors.get(config.sensor)
        if image is not None and sensor is not None and sensor.extrinsics is not None:
            height, width = image.shape[:2]
            camera = CameraModel.from_sensor(sensor, (width, height))

        return self.update(camera, plane, image, config.distance)

    def render(self, should_cancel: Callable[[], bool] | None = None) -> BirdsEyeFrame | None:
        """Produce the display instruction for the current inputs.

        Args:
            should_cancel: Extra cancellation predicate polled between bands.

        Returns:
            The frame, or None when the render was cancelled or went stale.
        """
        generation = self._generation

        if self._image is None:
            return BirdsEyeFrame(DisplayKind.CLEAR, None, generation)

        if self._state is not HomographyState.READY:
            raster = torch.from_numpy(to_rgba(self._image)).to(self._image.device)
            return BirdsEyeFrame(DisplayKind.PLAIN_IMAGE, raster, generation)

        if self._homography is None:
            return BirdsEyeFrame(DisplayKind.CLEAR, None, generation)

        def cancelled() -> bool:
            if self._generation != generation:
                return True
            return should_cancel is not None and should_cancel()

        start = time.perf_counter()
        raster = resample(
            self._image,
            self._homography,
            self._camera.intrinsic_matrix,
            self._camera.intrinsic_inverse,
            self.canvas_size,
            should_cancel=cancelled,
            band_rows=self.band_rows,
        )
        if raster is None or self._generation != generation:
            logger.debug(f"Bird's-eye render for generation {generation} discarded")
            return None

        log_performance("bird's-eye resample", (time.perf_counter() - start) * 1000.0)
        return BirdsEyeFrame(DisplayKind.RASTER, raster, generation)
