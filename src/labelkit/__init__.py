"""labelkit: camera geometry, bird's-eye homography and 3D label editing."""

from importlib.metadata import PackageNotFoundError, version

from .camera import CameraModel
from .exceptions import (
    LabelKitError,
    LabelStateError,
    MissingShapeError,
    ProjectionUnavailableError,
    UninitializedLabelError,
)
from .homography import (
    BirdsEyeFrame,
    BirdsEyeView,
    DisplayKind,
    HomographyState,
    compute_homography,
    resample,
)
from .intersect import intersect_plane, ray_plane_intersection
from .log import configure_logging, get_logger
from .store import State, load_state
from .transforms import (
    compose_poses,
    matrix_to_rvec,
    quat_from_unit_vectors,
    quat_rotate,
    quat_to_matrix,
    relative_pose,
    rvec_to_matrix,
)
from .types import (
    CameraExtrinsics,
    CameraIntrinsics,
    Intersection,
    Mat3,
    Mat4,
    Plane,
    PlaneReference,
    Pose,
    Quat,
    Ray,
    Vec2,
    Vec3,
)

__all__ = [
    "BirdsEyeFrame",
    "BirdsEyeView",
    "CameraExtrinsics",
    "CameraIntrinsics",
    "CameraModel",
    "DisplayKind",
    "HomographyState",
    "Intersection",
    "LabelKitError",
    "LabelStateError",
    "Mat3",
    "Mat4",
    "MissingShapeError",
    "Plane",
    "PlaneReference",
    "Pose",
    "ProjectionUnavailableError",
    "Quat",
    "Ray",
    "State",
    "UninitializedLabelError",
    "Vec2",
    "Vec3",
    "compose_poses",
    "compute_homography",
    "configure_logging",
    "get_logger",
    "intersect_plane",
    "load_state",
    "matrix_to_rvec",
    "quat_from_unit_vectors",
    "quat_rotate",
    "quat_to_matrix",
    "ray_plane_intersection",
    "relative_pose",
    "resample",
    "rvec_to_matrix",
]

try:
    __version__ = version(__name__)
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"
