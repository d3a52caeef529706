"""
Configuration module for bundle adjustment residuals.

Handles loading and validation of the residual weights, disparity constants
and solver settings from YAML files.
"""

import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Tuple
import logging

logger = logging.getLogger(__name__)

# Loss names understood by scipy.optimize.least_squares
ROBUST_LOSSES = ('linear', 'huber', 'soft_l1', 'cauchy', 'arctan')


@dataclass
class CameraIntrinsics:
    """Nominal pinhole intrinsic parameters (pixels)."""
    fx: float  # Focal length in x (pixels)
    fy: float  # Focal length in y (pixels)
    cx: float  # Principal point x (pixels)
    cy: float  # Principal point y (pixels)
    k1: float = 0.0  # Radial distortion coefficient
    k2: float = 0.0  # Radial distortion coefficient
    k3: float = 0.0  # Radial distortion coefficient
    p1: float = 0.0  # Tangential distortion coefficient
    p2: float = 0.0  # Tangential distortion coefficient


@dataclass
class WeightSettings:
    """
    Weights of the camera pose priors.

    When either rotation_weight or translation_weight is positive, the
    independently weighted prior is used; otherwise camera_weight scales
    the fixed-weight prior (0 disables the prior).
    """
    camera_weight: float = 1.0
    rotation_weight: float = 0.0
    translation_weight: float = 0.0


@dataclass
class DisparitySettings:
    """Constants of the cross-view disparity residual."""
    max_disp_error: float = -1.0  # Penalty (pixels) when no residual can be computed
    reference_terrain_weight: float = 1.0


@dataclass
class SolverSettings:
    """Settings for the least-squares driver."""
    robust_loss: str = 'cauchy'
    robust_threshold: float = 0.5  # Loss scale (f_scale), in residual units
    max_function_evaluations: int = 100  # Passed to least_squares as max_nfev
    tolerance: float = 1e-8
    num_threads: int = 1


@dataclass
class BundleAdjustConfig:
    """
    Main configuration class for the residual layer.

    Attributes:
        datum: Name of the datum used by geodetic ground control residuals
        pixel_sigma: Default per-axis uncertainty of pixel observations
        max_logged_errors: Number of failed evaluations reported before going quiet
        weights: Camera pose prior weights
        disparity: Cross-view disparity constants
        solver: Least-squares driver settings
    """
    datum: str = 'WGS84'
    pixel_sigma: Tuple[float, float] = (1.0, 1.0)
    max_logged_errors: int = 100
    weights: WeightSettings = field(default_factory=WeightSettings)
    disparity: DisparitySettings = field(default_factory=DisparitySettings)
    solver: SolverSettings = field(default_factory=SolverSettings)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ValueError if any setting is out of range."""
        if len(self.pixel_sigma) != 2 or min(self.pixel_sigma) <= 0:
            raise ValueError(f"pixel_sigma must hold two positive values, got {self.pixel_sigma}")
        if self.max_logged_errors < 0:
            raise ValueError("max_logged_errors must be non-negative")
        if self.solver.robust_loss not in ROBUST_LOSSES:
            raise ValueError(
                f"Unknown robust loss '{self.solver.robust_loss}', expected one of {ROBUST_LOSSES}"
            )
        if self.solver.robust_threshold <= 0:
            raise ValueError("robust_threshold must be positive")
        if self.solver.num_threads < 1:
            raise ValueError("num_threads must be at least 1")
        for name in ('camera_weight', 'rotation_weight', 'translation_weight'):
            if getattr(self.weights, name) < 0:
                raise ValueError(f"{name} must be non-negative")

    @classmethod
    def from_yaml(cls, config_path: str) -> "BundleAdjustConfig":
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            BundleAdjustConfig object with loaded parameters

        Example YAML structure:
            datum: WGS84
            pixel_sigma: [1.0, 1.0]
            max_logged_errors: 100
            weights:
              camera_weight: 1.0
              rotation_weight: 0.0
              translation_weight: 0.0
            disparity:
              max_disp_error: 50.0
              reference_terrain_weight: 1.0
            solver:
              robust_loss: cauchy
              robust_threshold: 0.5
              max_function_evaluations: 100
              tolerance: 1.0e-8
              num_threads: 4
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        logger.info(f"Loading configuration from {config_path}")

        weight_data = data.get('weights', {})
        weights = WeightSettings(
            camera_weight=float(weight_data.get('camera_weight', 1.0)),
            rotation_weight=float(weight_data.get('rotation_weight', 0.0)),
            translation_weight=float(weight_data.get('translation_weight', 0.0)),
        )

        disp_data = data.get('disparity', {})
        disparity = DisparitySettings(
            max_disp_error=float(disp_data.get('max_disp_error', -1.0)),
            reference_terrain_weight=float(disp_data.get('reference_terrain_weight', 1.0)),
        )

        solver_data = data.get('solver', {})
        solver = SolverSettings(
            robust_loss=str(solver_data.get('robust_loss', 'cauchy')).lower(),
            robust_threshold=float(solver_data.get('robust_threshold', 0.5)),
            max_function_evaluations=int(solver_data.get('max_function_evaluations', 100)),
            tolerance=float(solver_data.get('tolerance', 1e-8)),
            num_threads=int(solver_data.get('num_threads', 1)),
        )

        sigma = data.get('pixel_sigma', [1.0, 1.0])

        return cls(
            datum=data.get('datum', 'WGS84'),
            pixel_sigma=(float(sigma[0]), float(sigma[1])),
            max_logged_errors=int(data.get('max_logged_errors', 100)),
            weights=weights,
            disparity=disparity,
            solver=solver,
        )

    def to_yaml(self, config_path: str) -> None:
        """Save configuration to a YAML file."""
        data = {
            'datum': self.datum,
            'pixel_sigma': [float(s) for s in self.pixel_sigma],
            'max_logged_errors': self.max_logged_errors,
            'weights': {
                'camera_weight': self.weights.camera_weight,
                'rotation_weight': self.weights.rotation_weight,
                'translation_weight': self.weights.translation_weight,
            },
            'disparity': {
                'max_disp_error': self.disparity.max_disp_error,
                'reference_terrain_weight': self.disparity.reference_terrain_weight,
            },
            'solver': {
                'robust_loss': self.solver.robust_loss,
                'robust_threshold': self.solver.robust_threshold,
                'max_function_evaluations': self.solver.max_function_evaluations,
                'tolerance': self.solver.tolerance,
                'num_threads': self.solver.num_threads,
            },
        }

        with open(config_path, 'w') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Configuration saved to {config_path}")
