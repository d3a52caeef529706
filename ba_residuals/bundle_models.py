"""
Camera parameterizations for bundle adjustment.

A bundle model wraps one nominal camera and turns the optimizer's parameter
blocks into a predicted pixel for a 3D point. The nominal camera is never
modified: every evaluation builds a private effective camera, so a model can
be evaluated concurrently from several threads.

Block layouts:
    Pose-Only:        [point(3), pose(6)]
    Full-Intrinsics:  [point(3), pose(6), center(2), focus(1), distortion(N)]

Full-Intrinsics intrinsics blocks hold scale factors over the nominal
values. A nominal intrinsic equal to zero (typically an unused distortion
coefficient) therefore stays zero whatever its scale factor; this is a
limitation of the parameterization.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Sequence
import logging

import numpy as np

from .camera import AdjustedCameraModel, CameraAdjustment, PinholeModel
from .layout import NUM_POINT_PARAMS, NUM_POSE_PARAMS, BlockLayout, BlockLayoutError

logger = logging.getLogger(__name__)


class ModelKind(Enum):
    """Closed set of camera parameterizations."""
    POSE_ONLY = 'pose_only'
    FULL_INTRINSICS = 'full_intrinsics'


class BundleModel(ABC):
    """Maps parameter blocks to a predicted pixel."""

    kind: ModelKind

    def num_point_params(self) -> int:
        return NUM_POINT_PARAMS

    def num_pose_params(self) -> int:
        return NUM_POSE_PARAMS

    @abstractmethod
    def num_intrinsic_params(self) -> int:
        ...

    def num_params(self) -> int:
        return self.num_point_params() + self.num_pose_params() + self.num_intrinsic_params()

    @abstractmethod
    def num_parameter_blocks(self) -> int:
        ...

    def block_sizes(self) -> List[int]:
        return [self.num_point_params(), self.num_pose_params()]

    def layout(self) -> BlockLayout:
        layout = BlockLayout(tuple(self.block_sizes()))
        if layout.num_blocks != self.num_parameter_blocks() or layout.total != self.num_params():
            raise BlockLayoutError(
                f"{type(self).__name__} declares {self.num_parameter_blocks()} blocks and "
                f"{self.num_params()} parameters but its layout is {layout.sizes}"
            )
        return layout

    @abstractmethod
    def initial_blocks(self, point: Sequence[float]) -> List[np.ndarray]:
        """Parameter blocks that reproduce the nominal camera for the given point."""

    @abstractmethod
    def evaluate(self, blocks: Sequence[Sequence[float]]) -> np.ndarray:
        """
        Predict the pixel of the point block under the given parameters.

        Raises:
            ProjectionError: If the point does not project into the effective camera
        """


class AdjustedCameraBundleModel(BundleModel):
    """
    Pose-Only parameterization.

    The pose block is a rigid correction (translation, rotation vector)
    applied on top of the fixed underlying camera.
    """

    kind = ModelKind.POSE_ONLY

    def __init__(self, camera):
        self._underlying_camera = camera

    def num_intrinsic_params(self) -> int:
        return 0

    def num_parameter_blocks(self) -> int:
        return 2

    def initial_blocks(self, point):
        return [np.array(point, dtype=np.float64), np.zeros(NUM_POSE_PARAMS)]

    def evaluate(self, blocks):
        point = np.asarray(blocks[0], dtype=np.float64)
        correction = CameraAdjustment(blocks[1])
        cam = AdjustedCameraModel(self._underlying_camera, correction.position(), correction.pose())
        return cam.point_to_pixel(point)


class PinholeBundleModel(BundleModel):
    """
    Full-Intrinsics parameterization of a pinhole camera.

    The pose block is the absolute camera pose (center, rotation vector).
    The center, focus and distortion blocks are scale factors applied to
    the nominal optical center, focal length and lens coefficients. The
    single focus factor scales both nominal focal components.
    """

    kind = ModelKind.FULL_INTRINSICS

    def __init__(self, camera: PinholeModel):
        self._underlying_camera = camera
        if self.num_distortion_params() == 0:
            raise BlockLayoutError("Full-intrinsics model needs at least one distortion parameter")

    def num_distortion_params(self) -> int:
        return self._underlying_camera.lens_distortion().distortion_parameters().size

    def num_intrinsic_params(self) -> int:
        # Center, focus and lens distortion
        return 3 + self.num_distortion_params()

    def num_parameter_blocks(self) -> int:
        return 5

    def block_sizes(self):
        result = super().block_sizes()
        result.append(2)  # Center
        result.append(1)  # Focus
        result.append(self.num_distortion_params())
        return result

    def initial_blocks(self, point):
        return [
            np.array(point, dtype=np.float64),
            self._underlying_camera.pose_vector(),
            np.ones(2),
            np.ones(1),
            np.ones(self.num_distortion_params()),
        ]

    def evaluate(self, blocks):
        raw_point, raw_pose, raw_center, raw_focus, raw_lens = blocks
        nominal = self._underlying_camera

        point = np.asarray(raw_point, dtype=np.float64)
        correction = CameraAdjustment(raw_pose)

        center = np.asarray(raw_center, dtype=np.float64) * nominal.point_offset()
        fu, fv = raw_focus[0] * nominal.focal_length()

        distortion = nominal.lens_distortion().copy()
        lens = distortion.distortion_parameters()
        if lens.size != np.size(raw_lens):
            raise BlockLayoutError(
                f"Lens block has {np.size(raw_lens)} values, the nominal lens has {lens.size}"
            )
        distortion.set_distortion_parameters(lens * np.asarray(raw_lens, dtype=np.float64))

        cam = PinholeModel(
            correction.position(),
            correction.pose().as_matrix(),
            fu, fv,
            center[0], center[1],
            distortion,
            nominal.pixel_pitch(),
        )
        return cam.point_to_pixel(point)
