"""
Camera model module for projecting 3D points to pixel coordinates.

Implements the pinhole camera model with Brown-Conrady lens distortion and
a rigidly adjusted camera that applies a pose correction on top of any
underlying camera.

Coordinate System:
    - World frame: Cartesian (e.g. ECEF), meters
    - Camera frame: X-right, Y-down, Z-forward (looking along +Z)
    - Pixel frame: u-right, v-down (origin at top-left corner)

Projection Model:
    1. World to camera: p_cam = R^T (p - C), R is camera-to-world
    2. Perspective projection: x' = X/Z, y' = Y/Z
    3. Distortion (optional): Apply radial and tangential distortion
    4. Pixel mapping: u = (f * x'' + cu) / pixel_pitch, same for v
"""

import numpy as np
from typing import Optional, Sequence
from scipy.spatial.transform import Rotation
import logging

from .config import CameraIntrinsics

logger = logging.getLogger(__name__)


class ProjectionError(Exception):
    """Raised when a 3D point cannot be projected into a camera."""


class LensDistortion:
    """
    Brown-Conrady lens distortion acting on normalized coordinates.

    Parameters follow the OpenCV ordering (k1, k2, p1, p2, k3):
        r² = x'² + y'²
        x'' = x'(1 + k1*r² + k2*r⁴ + k3*r⁶) + 2*p1*x'*y' + p2*(r² + 2*x'²)
        y'' = y'(1 + k1*r² + k2*r⁴ + k3*r⁶) + p1*(r² + 2*y'²) + 2*p2*x'*y'
    """

    NUM_PARAMS = 5

    def __init__(self, params: Optional[Sequence[float]] = None):
        if params is None:
            params = np.zeros(self.NUM_PARAMS)
        self._params = np.array(params, dtype=np.float64)
        if self._params.shape != (self.NUM_PARAMS,):
            raise ValueError(
                f"Expected {self.NUM_PARAMS} distortion parameters, got {self._params.size}"
            )

    @classmethod
    def from_intrinsics(cls, intrinsics: CameraIntrinsics) -> "LensDistortion":
        return cls([intrinsics.k1, intrinsics.k2, intrinsics.p1, intrinsics.p2, intrinsics.k3])

    def distortion_parameters(self) -> np.ndarray:
        """Return a copy of the distortion coefficients."""
        return self._params.copy()

    def set_distortion_parameters(self, params: Sequence[float]) -> None:
        params = np.asarray(params, dtype=np.float64)
        if params.shape != self._params.shape:
            raise ValueError(
                f"Expected {self._params.size} distortion parameters, got {params.size}"
            )
        self._params = params.copy()

    def copy(self) -> "LensDistortion":
        return LensDistortion(self._params)

    def distort(self, x_norm: float, y_norm: float):
        """
        Apply lens distortion to normalized coordinates.

        Args:
            x_norm: Normalized x coordinate (X/Z)
            y_norm: Normalized y coordinate (Y/Z)

        Returns:
            Distorted (x, y) normalized coordinates
        """
        k1, k2, p1, p2, k3 = self._params

        r2 = x_norm ** 2 + y_norm ** 2
        r4 = r2 ** 2
        r6 = r2 ** 3

        radial = 1 + k1 * r2 + k2 * r4 + k3 * r6

        x_tangential = 2 * p1 * x_norm * y_norm + p2 * (r2 + 2 * x_norm ** 2)
        y_tangential = p1 * (r2 + 2 * y_norm ** 2) + 2 * p2 * x_norm * y_norm

        return x_norm * radial + x_tangential, y_norm * radial + y_tangential


class PinholeModel:
    """
    Pinhole camera with a pose in world coordinates.

    The rotation maps camera-frame vectors to world-frame vectors, and the
    camera center is the optical center in world coordinates. Focal lengths
    and the point offset are expressed in the same units as pixel_pitch.
    """

    def __init__(
        self,
        camera_center: Sequence[float],
        rotation: np.ndarray,
        fu: float,
        fv: float,
        cu: float,
        cv: float,
        distortion: Optional[LensDistortion] = None,
        pixel_pitch: float = 1.0,
    ):
        self._center = np.array(camera_center, dtype=np.float64)
        self._rotation = np.array(rotation, dtype=np.float64)
        if self._center.shape != (3,) or self._rotation.shape != (3, 3):
            raise ValueError("Camera center must be a 3-vector and rotation a 3x3 matrix")
        self._focal = np.array([fu, fv], dtype=np.float64)
        self._offset = np.array([cu, cv], dtype=np.float64)
        self._distortion = distortion if distortion is not None else LensDistortion()
        self._pixel_pitch = float(pixel_pitch)

    @classmethod
    def from_intrinsics(
        cls,
        intrinsics: CameraIntrinsics,
        camera_center: Sequence[float],
        rotation: np.ndarray,
    ) -> "PinholeModel":
        """Build a camera in pixel units from nominal intrinsics and a pose."""
        return cls(
            camera_center,
            rotation,
            intrinsics.fx,
            intrinsics.fy,
            intrinsics.cx,
            intrinsics.cy,
            LensDistortion.from_intrinsics(intrinsics),
        )

    def focal_length(self) -> np.ndarray:
        return self._focal.copy()

    def point_offset(self) -> np.ndarray:
        return self._offset.copy()

    def pixel_pitch(self) -> float:
        return self._pixel_pitch

    def lens_distortion(self) -> LensDistortion:
        return self._distortion

    def camera_center(self, point: Optional[np.ndarray] = None) -> np.ndarray:
        return self._center.copy()

    def camera_pose(self) -> np.ndarray:
        """Camera-to-world rotation matrix."""
        return self._rotation.copy()

    def pose_vector(self) -> np.ndarray:
        """Pose as a 6-vector: camera center followed by a rotation vector (radians)."""
        rotvec = Rotation.from_matrix(self._rotation).as_rotvec()
        return np.concatenate([self._center, rotvec])

    def point_to_pixel(self, point: np.ndarray) -> np.ndarray:
        """
        Project a world point to pixel coordinates.

        Raises:
            ProjectionError: If the point is behind the camera or the
                projection is not finite
        """
        X, Y, Z = self._rotation.T @ (np.asarray(point, dtype=np.float64) - self._center)

        if not Z > 0:
            raise ProjectionError(f"Point behind camera: Z={Z}")

        x_dist, y_dist = self._distortion.distort(X / Z, Y / Z)

        pixel = (self._focal * np.array([x_dist, y_dist]) + self._offset) / self._pixel_pitch
        if not np.all(np.isfinite(pixel)):
            raise ProjectionError(f"Projection of {point} is not finite")
        return pixel


class CameraAdjustment:
    """Rigid pose correction: translation (first 3) and rotation vector (last 3)."""

    def __init__(self, pose_vector: Sequence[float]):
        pose_vector = np.asarray(pose_vector, dtype=np.float64)
        self._position = pose_vector[0:3].copy()
        self._pose = Rotation.from_rotvec(pose_vector[3:6])

    def position(self) -> np.ndarray:
        return self._position.copy()

    def pose(self) -> Rotation:
        return self._pose


class AdjustedCameraModel:
    """
    Applies a rigid correction on top of an underlying camera.

    The point is rotated about the underlying camera center by the inverse
    correction rotation and shifted by the inverse translation before being
    handed to the underlying camera.
    """

    def __init__(self, camera, translation: np.ndarray, rotation: Rotation):
        self._camera = camera
        self._translation = np.asarray(translation, dtype=np.float64)
        self._rotation = rotation
        self._rotation_inverse = rotation.inv()

    def camera_center(self, point: Optional[np.ndarray] = None) -> np.ndarray:
        # Point that point_to_pixel maps onto the underlying camera center
        center = self._camera.camera_center(point)
        return center + self._rotation.apply(self._translation)

    def point_to_pixel(self, point: np.ndarray) -> np.ndarray:
        point = np.asarray(point, dtype=np.float64)
        center = self._camera.camera_center(point)
        new_point = self._rotation_inverse.apply(point - center) + center - self._translation
        return self._camera.point_to_pixel(new_point)
