"""
Residual functors driven by camera projections.

A residual functor has a fixed output size (num_residuals), a fixed list of
parameter block sizes (block_sizes) and is called with the current values
of those blocks. It never raises for a bad parameter hypothesis: it returns
a ResidualEvaluation whose status tells the optimizer whether the residual
could be computed.

Two failure policies coexist:
    - ReprojectionError: a failed projection yields 1e20 sentinels, a
      FAILURE status, and is counted and logged through a DiagnosticsContext.
    - DisparityXYZError: a failed projection, an out-of-bounds pixel or an
      invalid disparity yields a bounded penalty with a SUCCESS status and
      is neither counted nor logged.

Parameter blocks whose sizes disagree with block_sizes are a configuration
error and raise BlockLayoutError.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple
import logging

import numpy as np

from .bundle_models import BundleModel
from .camera import ProjectionError
from .diagnostics import DiagnosticsContext, default_diagnostics
from .disparity import DisparityMap
from .layout import BlockLayoutError, check_block_sizes

logger = logging.getLogger(__name__)

PIXEL_SIZE = 2
FAILED_RESIDUAL = 1e20


class Status(Enum):
    SUCCESS = 'success'
    FAILURE = 'failure'


@dataclass(frozen=True)
class ResidualEvaluation:
    """Residual vector plus whether it could be computed."""
    residuals: np.ndarray
    status: Status = Status.SUCCESS

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS


class CostFunction(ABC):
    """Base class of all residual functors."""

    num_residuals: int
    block_sizes: Tuple[int, ...]

    def __call__(self, blocks: Sequence[Sequence[float]]) -> ResidualEvaluation:
        check_block_sizes(blocks, self.block_sizes)
        return self.evaluate(blocks)

    @abstractmethod
    def evaluate(self, blocks: Sequence[Sequence[float]]) -> ResidualEvaluation:
        """Compute the residuals of already validated blocks."""


class ReprojectionError(CostFunction):
    """
    Pixel reprojection residual of one observation in one camera.

    residual = (predicted - observed) / sigma, per axis.
    """

    num_residuals = PIXEL_SIZE

    def __init__(
        self,
        observation: Sequence[float],
        pixel_sigma: Sequence[float],
        model: BundleModel,
        diagnostics: Optional[DiagnosticsContext] = None,
    ):
        self.observation = np.array(observation, dtype=np.float64)
        self.pixel_sigma = np.array(pixel_sigma, dtype=np.float64)
        if self.observation.shape != (PIXEL_SIZE,) or self.pixel_sigma.shape != (PIXEL_SIZE,):
            raise ValueError("Observation and pixel sigma must be 2-vectors")
        if np.any(self.pixel_sigma <= 0):
            raise ValueError(f"Pixel sigma must be positive, got {self.pixel_sigma}")
        self.model = model
        self.block_sizes = tuple(model.layout().sizes)
        self.diagnostics = diagnostics if diagnostics is not None else default_diagnostics

    @classmethod
    def create(cls, observation, pixel_sigma, model, diagnostics=None) -> "ReprojectionError":
        return cls(observation, pixel_sigma, model, diagnostics)

    def evaluate(self, blocks):
        try:
            prediction = self.model.evaluate(blocks)
            residuals = (prediction - self.observation) / self.pixel_sigma  # Input units are pixels
        except BlockLayoutError:
            raise
        except Exception as e:
            self.diagnostics.record_failure(str(e))
            return ResidualEvaluation(np.full(PIXEL_SIZE, FAILED_RESIDUAL), Status.FAILURE)
        return ResidualEvaluation(residuals)


class DisparityXYZError(CostFunction):
    """
    Consistency of two cameras with a precomputed disparity field.

    A fixed reference point is projected into the left and the right
    camera. The disparity at the left pixel predicts where the right pixel
    should be; the residual is the difference to the right projection,
    scaled by reference_terrain_weight.

    The reference point is not optimized, so the registered blocks are the
    left camera's blocks after its point block, followed by the right
    camera's blocks after its point block.
    """

    num_residuals = PIXEL_SIZE

    def __init__(
        self,
        reference_xyz: Sequence[float],
        disparity: DisparityMap,
        left_model: BundleModel,
        right_model: BundleModel,
        max_disp_error: float = -1.0,
        reference_terrain_weight: float = 1.0,
    ):
        self.reference_xyz = np.array(reference_xyz, dtype=np.float64)
        if self.reference_xyz.shape != (3,):
            raise ValueError("Reference point must be a 3-vector")
        self.disparity = disparity
        self.left_model = left_model
        self.right_model = right_model
        self.max_disp_error = float(max_disp_error)
        self.reference_terrain_weight = float(reference_terrain_weight)

        left_sizes = left_model.layout().sizes[1:]
        right_sizes = right_model.layout().sizes[1:]
        self._num_left_blocks = len(left_sizes)
        self.block_sizes = tuple(left_sizes) + tuple(right_sizes)

    @classmethod
    def create(
        cls,
        reference_xyz,
        disparity,
        left_model,
        right_model,
        max_disp_error=-1.0,
        reference_terrain_weight=1.0,
    ) -> "DisparityXYZError":
        return cls(reference_xyz, disparity, left_model, right_model,
                   max_disp_error, reference_terrain_weight)

    def _penalty(self) -> ResidualEvaluation:
        value = self.max_disp_error * self.reference_terrain_weight
        return ResidualEvaluation(np.full(PIXEL_SIZE, value))

    def evaluate(self, blocks):
        # The first input of each camera is always the point block
        left_blocks = [self.reference_xyz] + list(blocks[:self._num_left_blocks])
        right_blocks = [self.reference_xyz] + list(blocks[self._num_left_blocks:])

        try:
            left_prediction = self.left_model.evaluate(left_blocks)
            right_prediction = self.right_model.evaluate(right_blocks)
        except ProjectionError:
            return self._penalty()

        if not self.disparity.in_bounds(left_prediction):
            return self._penalty()

        disp = self.disparity.sample(left_prediction)
        if disp is None:
            return self._penalty()

        right_prediction_from_disp = left_prediction + disp
        residuals = (right_prediction_from_disp - right_prediction) * self.reference_terrain_weight
        return ResidualEvaluation(residuals)
