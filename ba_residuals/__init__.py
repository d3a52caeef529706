"""
Bundle Adjustment Residuals Package

Residual functions for photogrammetric bundle adjustment: given pixel
observations of 3D points in several cameras, ground control points,
prior camera poses and stereo disparity, it defines the normalized error
vectors a nonlinear least-squares optimizer drives toward zero while
adjusting camera poses, intrinsics and point positions.

Parameter Blocks:
    point(3) → pose(6) → [center(2) → focus(1) → distortion(N)]

Residuals:
    - ReprojectionError: (predicted - observed) / sigma, pixels
    - DisparityXYZError: left/right consistency with a disparity field
    - XYZError, LLHError: ground control points (Cartesian, geodetic)
    - CameraPriorError, RotTransError: camera pose drift priors

Every residual is safe to evaluate concurrently; failed projections are
reported through a DiagnosticsContext rather than raised.
"""

from .config import (
    BundleAdjustConfig,
    CameraIntrinsics,
    DisparitySettings,
    SolverSettings,
    WeightSettings,
)
from .camera import (
    AdjustedCameraModel,
    CameraAdjustment,
    LensDistortion,
    PinholeModel,
    ProjectionError,
)
from .transforms import Datum
from .layout import BlockLayout, BlockLayoutError
from .bundle_models import (
    AdjustedCameraBundleModel,
    BundleModel,
    ModelKind,
    PinholeBundleModel,
)
from .diagnostics import DiagnosticsContext, default_diagnostics
from .disparity import DisparityMap
from .residuals import (
    CostFunction,
    DisparityXYZError,
    ReprojectionError,
    ResidualEvaluation,
    Status,
)
from .anchors import CameraPriorError, LLHError, RotTransError, XYZError, create_pose_prior
from .problem import Problem, ProblemEvaluation, SolveSummary

__version__ = "0.1.0"
__all__ = [
    "BundleAdjustConfig",
    "CameraIntrinsics",
    "DisparitySettings",
    "SolverSettings",
    "WeightSettings",
    "AdjustedCameraModel",
    "CameraAdjustment",
    "LensDistortion",
    "PinholeModel",
    "ProjectionError",
    "Datum",
    "BlockLayout",
    "BlockLayoutError",
    "AdjustedCameraBundleModel",
    "BundleModel",
    "ModelKind",
    "PinholeBundleModel",
    "DiagnosticsContext",
    "default_diagnostics",
    "DisparityMap",
    "CostFunction",
    "DisparityXYZError",
    "ReprojectionError",
    "ResidualEvaluation",
    "Status",
    "CameraPriorError",
    "LLHError",
    "RotTransError",
    "XYZError",
    "create_pose_prior",
    "Problem",
    "ProblemEvaluation",
    "SolveSummary",
]
