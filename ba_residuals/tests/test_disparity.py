"""
Tests for the disparity field lookup.
"""

import pytest
import numpy as np
import rasterio
from numpy.testing import assert_allclose

from ba_residuals.disparity import DisparityMap


@pytest.fixture
def ramp():
    """dx grows with column, dy with row."""
    rows, cols = 4, 5
    yy, xx = np.mgrid[0:rows, 0:cols].astype(np.float64)
    return DisparityMap(xx * 2.0, yy * -1.0)


class TestDisparityMap:

    def test_in_bounds(self, ramp):
        assert ramp.in_bounds((0, 0))
        assert ramp.in_bounds((4, 3))
        assert ramp.in_bounds((2.5, 1.5))
        assert not ramp.in_bounds((4.01, 0))
        assert not ramp.in_bounds((0, 3.01))
        assert not ramp.in_bounds((-0.01, 1))
        assert not ramp.in_bounds((np.nan, 1))

    def test_sample_on_grid(self, ramp):
        assert_allclose(ramp.sample((3, 2)), [6.0, -2.0])

    def test_bilinear_sample(self, ramp):
        assert_allclose(ramp.sample((2.25, 1.5)), [4.5, -1.5])

    def test_sample_on_far_edge(self, ramp):
        assert_allclose(ramp.sample((4, 3)), [8.0, -3.0])

    def test_out_of_bounds_sample(self, ramp):
        assert ramp.sample((10, 1)) is None

    def test_invalid_neighbour_invalidates_sample(self):
        valid = np.ones((3, 3), dtype=bool)
        valid[1, 1] = False
        disp = DisparityMap(np.ones((3, 3)), np.ones((3, 3)), valid)

        assert disp.sample((0.5, 0.5)) is None
        assert disp.sample((1, 1)) is None
        assert_allclose(disp.sample((0, 0)), [1, 1])
        assert_allclose(disp.sample((2, 0.5)), [1, 1])

    def test_nan_cells_are_invalid(self):
        dx = np.ones((3, 3))
        dx[2, 2] = np.nan
        disp = DisparityMap(dx, np.zeros((3, 3)))

        assert disp.sample((1.5, 1.5)) is None
        assert_allclose(disp.sample((0.5, 0.5)), [1, 0])

    def test_shape_validation(self):
        with pytest.raises(ValueError):
            DisparityMap(np.zeros((3, 3)), np.zeros((3, 4)))
        with pytest.raises(ValueError):
            DisparityMap(np.zeros(3), np.zeros(3))
        with pytest.raises(ValueError):
            DisparityMap(np.zeros((1, 3)), np.zeros((1, 3)))
        with pytest.raises(ValueError):
            DisparityMap(np.zeros((3, 3)), np.zeros((3, 3)), np.ones((2, 2), dtype=bool))


class TestDisparityRaster:

    def write_raster(self, path, bands, nodata=None):
        count, height, width = bands.shape
        with rasterio.open(
            path, 'w', driver='GTiff', height=height, width=width,
            count=count, dtype='float32', nodata=nodata,
        ) as dst:
            dst.write(bands.astype(np.float32))

    def test_three_band_raster(self, tmp_path):
        dx = np.full((4, 6), -10.0)
        dy = np.full((4, 6), 0.5)
        valid = np.ones((4, 6))
        valid[0, 0] = 0
        path = tmp_path / "disp.tif"
        self.write_raster(path, np.stack([dx, dy, valid]))

        disp = DisparityMap.from_raster(str(path))

        assert (disp.rows, disp.cols) == (4, 6)
        assert disp.sample((0, 0)) is None
        assert_allclose(disp.sample((3, 2)), [-10.0, 0.5])

    def test_nodata_is_invalid(self, tmp_path):
        dx = np.full((3, 3), 2.0)
        dx[1, 1] = -9999.0
        path = tmp_path / "disp_nodata.tif"
        self.write_raster(path, np.stack([dx, np.zeros((3, 3))]), nodata=-9999.0)

        disp = DisparityMap.from_raster(str(path))

        assert disp.sample((1, 1)) is None
        assert_allclose(disp.sample((0, 0)), [2.0, 0.0])

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DisparityMap.from_raster(str(tmp_path / "missing.tif"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
