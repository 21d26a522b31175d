"""
Configuration Tests
===================
"""

import pytest
from pydantic import ValidationError

from geocrowd.config import DensityConfig, GeoConfig, PrecisionBand, Settings, load_config


ENV_VARS = [
    "GEOCROWD_CONFIG",
    "GEOCROWD_CELL_PRECISION",
    "GEOCROWD_GROUPING_PRECISION",
    "GEOCROWD_SEARCH_TIMEOUT",
    "GEOCROWD_MAX_BATCH_SIZE",
    "GEOCROWD_WORKERS",
    "GEOCROWD_QUEUE_SIZE",
    "GEOCROWD_LOG_LEVEL",
    "GEOCROWD_PORT",
    "PORT",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestDefaults:
    """Default values."""

    def test_settings_defaults(self):
        settings = Settings()
        assert settings.geo.cell_precision == 9
        assert settings.geo.grouping_precision == 5
        assert settings.density.elevated_above == 25
        assert settings.density.deep_above == 50
        assert settings.density.deep.color_hex == "#8B0000"
        assert settings.store.max_batch_size == 500
        assert settings.search.timeout_seconds == 5.0
        assert settings.server.port == 8002

    def test_default_precision_table(self):
        table = GeoConfig().precision_table
        assert [(b.max_radius_km, b.precision) for b in table] == [
            (0.02, 8), (0.15, 7), (1.2, 6), (5.0, 5), (20.0, 4), (80.0, 3), (None, 2),
        ]


class TestValidation:
    """Invalid configurations are rejected."""

    def test_cell_shorter_than_planner(self):
        with pytest.raises(ValidationError):
            GeoConfig(cell_precision=6)

    def test_grouping_longer_than_cell(self):
        with pytest.raises(ValidationError):
            GeoConfig(cell_precision=9, grouping_precision=10)

    def test_table_without_catch_all(self):
        with pytest.raises(ValidationError):
            GeoConfig(precision_table=[PrecisionBand(max_radius_km=1.0, precision=6)])

    def test_unordered_table(self):
        with pytest.raises(ValidationError):
            GeoConfig(precision_table=[
                PrecisionBand(max_radius_km=5.0, precision=5),
                PrecisionBand(max_radius_km=1.0, precision=6),
                PrecisionBand(precision=2),
            ])

    def test_thresholds_out_of_order(self):
        with pytest.raises(ValidationError):
            DensityConfig(elevated_above=50, deep_above=25)

    def test_bad_color(self):
        with pytest.raises(ValidationError):
            DensityConfig(base={"color_hex": "gold", "radius_meters": 75})


class TestLoadConfig:
    """YAML file and environment overrides."""

    def test_yaml_file(self, tmp_path, clean_env):
        path = tmp_path / "config.yaml"
        path.write_text(
            "geo:\n"
            "  cell_precision: 10\n"
            "  grouping_precision: 6\n"
            "density:\n"
            "  elevated_above: 10\n"
            "  deep_above: 20\n"
        )
        settings = load_config(str(path))
        assert settings.geo.cell_precision == 10
        assert settings.geo.grouping_precision == 6
        assert settings.density.elevated_above == 10
        assert settings.store.max_batch_size == 500

    def test_missing_file_uses_defaults(self, tmp_path, clean_env):
        settings = load_config(str(tmp_path / "absent.yaml"))
        assert settings.geo.cell_precision == 9

    def test_env_overrides(self, tmp_path, clean_env):
        clean_env.setenv("GEOCROWD_CELL_PRECISION", "11")
        clean_env.setenv("GEOCROWD_MAX_BATCH_SIZE", "100")
        clean_env.setenv("GEOCROWD_WORKERS", "2")
        clean_env.setenv("GEOCROWD_SEARCH_TIMEOUT", "1.5")
        clean_env.setenv("GEOCROWD_PORT", "9000")
        settings = load_config(str(tmp_path / "absent.yaml"))
        assert settings.geo.cell_precision == 11
        assert settings.store.max_batch_size == 100
        assert settings.workers.count == 2
        assert settings.search.timeout_seconds == 1.5
        assert settings.server.port == 9000

    def test_port_wins_over_service_port(self, tmp_path, clean_env):
        clean_env.setenv("PORT", "8080")
        clean_env.setenv("GEOCROWD_PORT", "9000")
        assert load_config(str(tmp_path / "absent.yaml")).server.port == 8080

    def test_env_beats_yaml(self, tmp_path, clean_env):
        path = tmp_path / "config.yaml"
        path.write_text("workers:\n  count: 8\n")
        clean_env.setenv("GEOCROWD_WORKERS", "3")
        assert load_config(str(path)).workers.count == 3

    def test_config_path_from_env(self, tmp_path, clean_env):
        path = tmp_path / "custom.yaml"
        path.write_text("store:\n  max_batch_size: 42\n")
        clean_env.setenv("GEOCROWD_CONFIG", str(path))
        assert load_config().store.max_batch_size == 42

    def test_invalid_env_value(self, tmp_path, clean_env):
        clean_env.setenv("GEOCROWD_CELL_PRECISION", "4")
        with pytest.raises(ValidationError):
            load_config(str(tmp_path / "absent.yaml"))
