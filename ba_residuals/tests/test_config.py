"""
Tests for configuration loading and validation.
"""

import pytest
import yaml

from ba_residuals.config import (
    BundleAdjustConfig,
    DisparitySettings,
    SolverSettings,
    WeightSettings,
)


class TestBundleAdjustConfig:

    def test_defaults(self):
        config = BundleAdjustConfig()
        assert config.datum == 'WGS84'
        assert config.pixel_sigma == (1.0, 1.0)
        assert config.max_logged_errors == 100
        assert config.weights.camera_weight == 1.0
        assert config.disparity.max_disp_error == -1.0
        assert config.disparity.reference_terrain_weight == 1.0
        assert config.solver.robust_loss == 'cauchy'

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "ba.yaml"
        path.write_text(
            "datum: D_MARS\n"
            "pixel_sigma: [0.5, 2.0]\n"
            "weights:\n"
            "  rotation_weight: 10.0\n"
            "  translation_weight: 0.1\n"
            "disparity:\n"
            "  max_disp_error: 50.0\n"
            "  reference_terrain_weight: 0.2\n"
            "solver:\n"
            "  robust_loss: Huber\n"
            "  num_threads: 4\n"
            "  max_function_evaluations: 250\n"
        )

        config = BundleAdjustConfig.from_yaml(str(path))

        assert config.datum == 'D_MARS'
        assert config.pixel_sigma == (0.5, 2.0)
        assert config.weights.camera_weight == 1.0
        assert config.weights.rotation_weight == 10.0
        assert config.weights.translation_weight == pytest.approx(0.1)
        assert config.disparity.max_disp_error == 50.0
        assert config.disparity.reference_terrain_weight == pytest.approx(0.2)
        assert config.solver.robust_loss == 'huber'
        assert config.solver.num_threads == 4
        assert config.solver.max_function_evaluations == 250

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert BundleAdjustConfig.from_yaml(str(path)) == BundleAdjustConfig()

    def test_round_trip(self, tmp_path):
        config = BundleAdjustConfig(
            datum='D_MOON',
            pixel_sigma=(0.3, 0.4),
            max_logged_errors=10,
            weights=WeightSettings(camera_weight=0.0, rotation_weight=1.0, translation_weight=2.0),
            disparity=DisparitySettings(max_disp_error=5.0, reference_terrain_weight=3.0),
            solver=SolverSettings(robust_loss='soft_l1', robust_threshold=1.5, num_threads=2),
        )
        path = tmp_path / "out.yaml"
        config.to_yaml(str(path))

        with open(path) as f:
            assert yaml.safe_load(f)['solver']['robust_loss'] == 'soft_l1'
        assert BundleAdjustConfig.from_yaml(str(path)) == config

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            BundleAdjustConfig.from_yaml(str(tmp_path / "missing.yaml"))

    @pytest.mark.parametrize("kwargs", [
        {'pixel_sigma': (0.0, 1.0)},
        {'pixel_sigma': (1.0,)},
        {'max_logged_errors': -1},
        {'solver': SolverSettings(robust_loss='tukey')},
        {'solver': SolverSettings(robust_threshold=0.0)},
        {'solver': SolverSettings(num_threads=0)},
        {'weights': WeightSettings(camera_weight=-1.0)},
    ])
    def test_invalid_settings(self, kwargs):
        with pytest.raises(ValueError):
            BundleAdjustConfig(**kwargs)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
