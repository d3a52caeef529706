"""
Dense disparity field between a left and a right image.

Each cell holds the 2D offset from a left pixel to its corresponding right
pixel, or is marked invalid when the stereo correlator found no match.
Lookups at fractional pixels are bilinear; a sample is invalid as soon as
one of the cells it draws from is invalid.
"""

from pathlib import Path
from typing import Optional
import logging

import numpy as np
import rasterio
from scipy.interpolate import RegularGridInterpolator

logger = logging.getLogger(__name__)


class DisparityMap:
    """
    Read-only disparity field with bounds-checked fractional lookup.

    Args:
        dx: (rows, cols) horizontal offsets in pixels
        dy: (rows, cols) vertical offsets in pixels
        valid: Optional (rows, cols) boolean mask; cells with NaN offsets
            are always invalid
    """

    def __init__(self, dx: np.ndarray, dy: np.ndarray, valid: Optional[np.ndarray] = None):
        dx = np.asarray(dx, dtype=np.float64)
        dy = np.asarray(dy, dtype=np.float64)
        if dx.ndim != 2 or dx.shape != dy.shape:
            raise ValueError(f"dx and dy must be 2D arrays of equal shape, got {dx.shape} and {dy.shape}")
        if dx.shape[0] < 2 or dx.shape[1] < 2:
            raise ValueError(f"Disparity field must be at least 2x2, got {dx.shape}")

        mask = np.isfinite(dx) & np.isfinite(dy)
        if valid is not None:
            valid = np.asarray(valid, dtype=bool)
            if valid.shape != dx.shape:
                raise ValueError(f"Validity mask shape {valid.shape} does not match {dx.shape}")
            mask &= valid

        self.rows, self.cols = dx.shape
        values = np.stack([
            np.where(mask, dx, 0.0),
            np.where(mask, dy, 0.0),
            mask.astype(np.float64),
        ], axis=-1)

        self._interp = RegularGridInterpolator(
            (np.arange(self.rows, dtype=np.float64), np.arange(self.cols, dtype=np.float64)),
            values,
            method='linear',
            bounds_error=False,
            fill_value=np.nan,
        )
        logger.debug(f"Disparity map {self.cols}x{self.rows}, {int(mask.sum())} valid cells")

    @classmethod
    def from_raster(cls, path: str) -> "DisparityMap":
        """
        Read a disparity raster.

        Band 1 holds dx, band 2 dy and the optional band 3 a validity flag
        (non-zero = valid). Nodata values mark invalid cells.
        """
        if not Path(path).exists():
            raise FileNotFoundError(f"Disparity file not found: {path}")

        with rasterio.open(path) as src:
            if src.count < 2:
                raise ValueError(f"Disparity raster needs at least 2 bands, {path} has {src.count}")
            dx = src.read(1).astype(np.float64)
            dy = src.read(2).astype(np.float64)
            valid = np.ones(dx.shape, dtype=bool)
            if src.count >= 3:
                valid &= src.read(3) != 0
            if src.nodata is not None:
                valid &= (dx != src.nodata) & (dy != src.nodata)

        logger.info(f"Loaded disparity {path} ({dx.shape[1]}x{dx.shape[0]})")
        return cls(dx, dy, valid)

    def in_bounds(self, pixel) -> bool:
        x, y = pixel
        return bool(0 <= x <= self.cols - 1 and 0 <= y <= self.rows - 1)

    def sample(self, pixel) -> Optional[np.ndarray]:
        """Bilinear disparity at a fractional (x, y) pixel, or None if invalid."""
        if not self.in_bounds(pixel):
            return None
        x, y = pixel
        dx, dy, weight = self._interp([[y, x]])[0]
        if not weight >= 1.0 - 1e-9:
            return None
        return np.array([dx, dy])
