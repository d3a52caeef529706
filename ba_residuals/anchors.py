"""
Anchor residuals: ground control points and camera pose priors.

These residuals involve no projection and always succeed.

    XYZError:         (point - reference) / sigma in Cartesian units
    LLHError:         (llh(point) - llh(reference)) / sigma, llh from a Datum
    CameraPriorError: pose drift with fixed per-axis weights times one caller weight
    RotTransError:    pose drift with caller-chosen translation and rotation weights

LLHError makes no attempt to unwrap longitude across the antimeridian, and
longitude is ill-conditioned at the poles.
"""

from typing import Optional, Sequence
import logging

import numpy as np

from .config import WeightSettings
from .layout import NUM_POINT_PARAMS, NUM_POSE_PARAMS
from .residuals import CostFunction, ResidualEvaluation
from .transforms import Datum

logger = logging.getLogger(__name__)


def _positive_vector(values, name: str) -> np.ndarray:
    values = np.array(values, dtype=np.float64)
    if values.shape != (NUM_POINT_PARAMS,):
        raise ValueError(f"{name} must be a 3-vector, got shape {values.shape}")
    if np.any(values <= 0):
        raise ValueError(f"{name} must be positive, got {values}")
    return values


class XYZError(CostFunction):
    """Ground control point residual in Cartesian coordinates."""

    num_residuals = NUM_POINT_PARAMS
    block_sizes = (NUM_POINT_PARAMS,)

    def __init__(self, observation: Sequence[float], xyz_sigma: Sequence[float]):
        self.observation = np.array(observation, dtype=np.float64)
        if self.observation.shape != (NUM_POINT_PARAMS,):
            raise ValueError("Observation must be a 3-vector")
        self.xyz_sigma = _positive_vector(xyz_sigma, "xyz_sigma")

    @classmethod
    def create(cls, observation, xyz_sigma) -> "XYZError":
        return cls(observation, xyz_sigma)

    def evaluate(self, blocks):
        point = np.asarray(blocks[0], dtype=np.float64)
        return ResidualEvaluation((point - self.observation) / self.xyz_sigma)  # Input units are meters


class LLHError(CostFunction):
    """
    Ground control point residual in geodetic coordinates.

    Both the floating point and the reference are converted to
    (longitude, latitude, height) so that horizontal and vertical
    uncertainties can be weighted independently.
    """

    num_residuals = NUM_POINT_PARAMS
    block_sizes = (NUM_POINT_PARAMS,)

    def __init__(self, observation_xyz: Sequence[float], sigma: Sequence[float], datum: Datum):
        self.observation_xyz = np.array(observation_xyz, dtype=np.float64)
        if self.observation_xyz.shape != (NUM_POINT_PARAMS,):
            raise ValueError("Observation must be a 3-vector")
        self.sigma = _positive_vector(sigma, "sigma")
        self.datum = datum
        self.observation_llh = datum.cartesian_to_geodetic(self.observation_xyz)

    @classmethod
    def create(cls, observation_xyz, sigma, datum) -> "LLHError":
        return cls(observation_xyz, sigma, datum)

    def evaluate(self, blocks):
        point_llh = self.datum.cartesian_to_geodetic(blocks[0])
        return ResidualEvaluation((point_llh - self.observation_llh) / self.sigma)


class _PosePrior(CostFunction):

    num_residuals = NUM_POSE_PARAMS
    block_sizes = (NUM_POSE_PARAMS,)

    def __init__(self, orig_cam: Sequence[float]):
        self.orig_cam = np.array(orig_cam, dtype=np.float64)
        if self.orig_cam.shape != (NUM_POSE_PARAMS,):
            raise ValueError(f"Original pose must have {NUM_POSE_PARAMS} values")
        self.orig_cam.setflags(write=False)

    def _weights(self) -> np.ndarray:
        raise NotImplementedError

    def evaluate(self, blocks):
        cam_vec = np.asarray(blocks[0], dtype=np.float64)
        return ResidualEvaluation(self._weights() * (cam_vec - self.orig_cam))


class CameraPriorError(_PosePrior):
    """Pose drift prior with fixed translation and rotation scales."""

    POSITION_WEIGHT = 1e-2  # Units are meters. Don't lock the camera down too tightly.
    ROTATION_WEIGHT = 5e1   # Units are in radianish range

    def __init__(self, orig_cam: Sequence[float], weight: float):
        super().__init__(orig_cam)
        self.weight = float(weight)

    @classmethod
    def create(cls, orig_cam, weight) -> "CameraPriorError":
        return cls(orig_cam, weight)

    def _weights(self):
        half = NUM_POSE_PARAMS // 2
        return self.weight * np.repeat([self.POSITION_WEIGHT, self.ROTATION_WEIGHT], half)


class RotTransError(_PosePrior):
    """Pose drift prior with independent translation and rotation weights."""

    def __init__(self, orig_cam: Sequence[float], rotation_weight: float, translation_weight: float):
        super().__init__(orig_cam)
        self.rotation_weight = float(rotation_weight)
        self.translation_weight = float(translation_weight)

    @classmethod
    def create(cls, orig_cam, rotation_weight, translation_weight) -> "RotTransError":
        return cls(orig_cam, rotation_weight, translation_weight)

    def _weights(self):
        half = NUM_POSE_PARAMS // 2
        return np.repeat([self.translation_weight, self.rotation_weight], half)


def create_pose_prior(orig_cam: Sequence[float], weights: WeightSettings) -> Optional[CostFunction]:
    """
    Pick the pose prior for a camera.

    Returns:
        RotTransError if a rotation or translation weight is set,
        CameraPriorError if only camera_weight is set, None otherwise
    """
    if weights.rotation_weight > 0 or weights.translation_weight > 0:
        return RotTransError.create(orig_cam, weights.rotation_weight, weights.translation_weight)
    if weights.camera_weight > 0:
        return CameraPriorError.create(orig_cam, weights.camera_weight)
    return None
