"""Tests for configuration loading and validation."""

import os

import pytest
import yaml


class TestParseColor:
    """Tests for color parsing."""

    def test_hex(self):
        """Test that hex strings are parsed with or without the hash."""
        from mapvector.config import parse_color

        assert parse_color("#ff8000") == (255, 128, 0)
        assert parse_color("00ff00") == (0, 255, 0)

    def test_sequence(self):
        """Test that rgb sequences are accepted."""
        from mapvector.config import parse_color

        assert parse_color([1, 2, 3]) == (1, 2, 3)

    @pytest.mark.parametrize("value", ["#fff", [0, 0], [0, 0, 256], "#gg0000"])
    def test_invalid(self, value):
        """Test that malformed colors are rejected."""
        from mapvector.config import parse_color

        with pytest.raises(ValueError):
            parse_color(value)


class TestValidation:
    """Tests for section validation."""

    def test_defaults_valid(self, default_config):
        """Test that the default configuration is usable as is."""
        assert default_config.filter.radius == 1
        assert default_config.classification.number_of_colors == 8
        assert default_config.polygons.mode == "centerline"
        assert default_config.vectorization.speckle_size == 5

    def test_negative_radius(self):
        """Test that a negative filter radius is rejected."""
        from mapvector.config import FilterConfig

        with pytest.raises(ValueError):
            FilterConfig(radius=-1)

    def test_center_weight_needs_radius(self):
        """Test that a center weight below 1 is rejected for radius 0."""
        from mapvector.config import FilterConfig

        assert FilterConfig(radius=0, center_weight=1.0).center_weight == 1.0
        with pytest.raises(ValueError):
            FilterConfig(radius=0, center_weight=0.5)

    def test_unknown_kernel(self):
        """Test that an unknown kernel name is rejected."""
        from mapvector.config import FilterConfig

        with pytest.raises(ValueError):
            FilterConfig(kernel="gaussian")

    def test_alpha_order(self):
        """Test that min_alpha above init_alpha is rejected."""
        from mapvector.config import ClassificationConfig

        with pytest.raises(ValueError):
            ClassificationConfig(init_alpha=0.01, min_alpha=0.1)

    def test_predefined_needs_colors(self):
        """Test that a predefined palette source needs initial colors."""
        from mapvector.config import ClassificationConfig

        with pytest.raises(ValueError):
            ClassificationConfig(colors_source="predefined")

    def test_unknown_operation(self):
        """Test that unknown morphological operations are rejected."""
        from mapvector.config import MorphologyConfig

        with pytest.raises(ValueError):
            MorphologyConfig(operations=["opening"])

    def test_turn_policy(self):
        """Test that the turn policy must be known."""
        from mapvector.config import PolygonConfig

        with pytest.raises(ValueError):
            PolygonConfig(turn_policy="random")

    def test_balance_range(self):
        """Test that the distance/direction balance must be a fraction."""
        from mapvector.config import VectorizationConfig

        with pytest.raises(ValueError):
            VectorizationConfig(dist_dir_balance=1.5)


class TestLoadConfig:
    """Tests for YAML loading."""

    def test_missing_file_gives_defaults(self, temp_dir):
        """Test that a missing file falls back to defaults."""
        from mapvector.config import load_config

        config = load_config(os.path.join(temp_dir, "missing.yaml"))
        assert config.filter.kernel == "binomic"

    def test_merge_partial_yaml(self, temp_dir):
        """Test that values from YAML override only the named keys."""
        from mapvector.config import load_config

        path = os.path.join(temp_dir, "config.yaml")
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump({
                "filter": {"radius": 2},
                "polygons": {"mode": "boundary"},
                "vectorization": {"corner_min": 0.5},
            }, f)

        config = load_config(path)
        assert config.filter.radius == 2
        assert config.filter.kernel == "binomic"
        assert config.polygons.mode == "boundary"
        assert config.vectorization.corner_min == 0.5

    def test_merge_validates(self, temp_dir):
        """Test that invalid YAML values fail when loaded."""
        from mapvector.config import load_config

        path = os.path.join(temp_dir, "config.yaml")
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump({"classification": {"q": 2.0}}, f)

        with pytest.raises(ValueError):
            load_config(path)

    def test_save_default_round_trip(self, temp_dir):
        """Test that the written default config loads back to the defaults."""
        from mapvector.config import PipelineConfig, load_config, save_default_config

        path = os.path.join(temp_dir, "default.yaml")
        save_default_config(path)

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        assert "file_path" not in data["tracing"]

        assert load_config(path) == PipelineConfig()
