"""
Geodetic transformation module.

Provides the datum used by geodetic ground control residuals to convert
Cartesian (geocentric) coordinates to longitude, latitude and height.

Coordinate System Definitions:
    - Cartesian: Earth-Centered, Earth-Fixed (X towards 0°lon, Y towards 90°E, Z towards North Pole)
    - Geodetic: longitude and latitude in degrees, ellipsoidal height in meters

The conversion itself is delegated to pyproj (PROJ "cart" operation), which
is exact for any biaxial ellipsoid.
"""

import threading
import numpy as np
from typing import Dict, Tuple
from pyproj import Transformer
from pyproj.enums import TransformDirection
import logging

logger = logging.getLogger(__name__)

# WGS84 ellipsoid parameters
WGS84_A = 6378137.0  # Semi-major axis (m)
WGS84_F = 1 / 298.257223563  # Flattening
WGS84_B = WGS84_A * (1 - WGS84_F)  # Semi-minor axis

# Named datums: (semi-major axis, semi-minor axis) in meters
DATUMS: Dict[str, Tuple[float, float]] = {
    'WGS84': (WGS84_A, WGS84_B),
    'NAD83': (6378137.0, 6356752.31414036),
    'D_MOON': (1737400.0, 1737400.0),
    'D_MARS': (3396190.0, 3396190.0),
}


class Datum:
    """
    Reference ellipsoid for Cartesian/geodetic conversion.

    pyproj transformers are not shared between threads, so each thread
    lazily builds its own.
    """

    def __init__(self, name: str, semi_major_axis: float, semi_minor_axis: float):
        if semi_major_axis <= 0 or semi_minor_axis <= 0:
            raise ValueError(f"Datum axes must be positive, got {semi_major_axis}, {semi_minor_axis}")
        self.name = name
        self.semi_major_axis = float(semi_major_axis)
        self.semi_minor_axis = float(semi_minor_axis)
        self._pipeline = (
            "+proj=pipeline "
            f"+step +inv +proj=cart +a={self.semi_major_axis!r} +b={self.semi_minor_axis!r} "
            "+step +proj=unitconvert +xy_in=rad +xy_out=deg"
        )
        self._local = threading.local()
        logger.debug(f"Datum {name}: a={self.semi_major_axis}, b={self.semi_minor_axis}")

    @classmethod
    def from_name(cls, name: str) -> "Datum":
        """Build one of the named datums (WGS84, NAD83, D_MOON, D_MARS)."""
        key = name.upper()
        if key in ('WGS_1984', 'WGS 84'):
            key = 'WGS84'
        if key not in DATUMS:
            raise ValueError(f"Unknown datum '{name}', expected one of {sorted(DATUMS)}")
        a, b = DATUMS[key]
        return cls(key, a, b)

    def _transformer(self) -> Transformer:
        transformer = getattr(self._local, 'transformer', None)
        if transformer is None:
            transformer = Transformer.from_pipeline(self._pipeline)
            self._local.transformer = transformer
        return transformer

    def cartesian_to_geodetic(self, xyz) -> np.ndarray:
        """Return (longitude deg, latitude deg, height m) of a Cartesian point."""
        x, y, z = np.asarray(xyz, dtype=np.float64)
        lon, lat, h = self._transformer().transform(x, y, z)
        return np.array([lon, lat, h])

    def geodetic_to_cartesian(self, llh) -> np.ndarray:
        """Return the Cartesian point of (longitude deg, latitude deg, height m)."""
        lon, lat, h = np.asarray(llh, dtype=np.float64)
        x, y, z = self._transformer().transform(lon, lat, h, direction=TransformDirection.INVERSE)
        return np.array([x, y, z])

    def __repr__(self) -> str:
        return f"Datum({self.name!r}, {self.semi_major_axis}, {self.semi_minor_axis})"
