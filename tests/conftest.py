"""Pytest fixtures for mapvector tests."""

import os
import tempfile

import cv2
import numpy as np
import pytest


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def rectangle_mask():
    """A 20x24 filled rectangle, rows 5..24 and columns 8..31."""
    mask = np.zeros((32, 40), dtype=bool)
    mask[5:25, 8:32] = True
    return mask


@pytest.fixture
def ring_mask():
    """A 20x20 square with a 10x10 hole in the middle."""
    mask = np.zeros((30, 30), dtype=bool)
    mask[5:25, 5:25] = True
    mask[10:20, 10:20] = False
    return mask


@pytest.fixture
def disk_mask():
    """A filled disk of radius 15."""
    img = np.zeros((40, 40), dtype=np.uint8)
    cv2.circle(img, (20, 20), 15, 255, -1)
    return img > 0


@pytest.fixture
def two_color_image():
    """White paper with a dark filled rectangle, as a scanned map would show a building."""
    img = np.full((60, 80, 3), 255, dtype=np.uint8)
    cv2.rectangle(img, (20, 15), (59, 44), (20, 20, 20), -1)
    return img


@pytest.fixture
def line_map_image():
    """White paper with a dark L-shaped road line, 3 pixels wide."""
    img = np.full((80, 100, 3), 255, dtype=np.uint8)
    cv2.line(img, (15, 15), (15, 60), (30, 30, 30), 3)
    cv2.line(img, (15, 60), (85, 60), (30, 30, 30), 3)
    return img


@pytest.fixture
def default_config():
    """Create default pipeline configuration."""
    from mapvector.config import PipelineConfig
    return PipelineConfig()


@pytest.fixture
def fast_config():
    """Pipeline configuration with a two color palette learned in batch mode."""
    from mapvector.config import PipelineConfig
    config = PipelineConfig()
    config.classification.number_of_colors = 2
    config.classification.learn_method = "batch"
    config.classification.colors_source = "predefined"
    config.classification.initial_colors = ["#ffffff", "#000000"]
    config.classification.comments = ["paper", "ink"]
    return config


@pytest.fixture
def synthetic_input_file(temp_dir, two_color_image):
    """Write the two color image to disk for integration tests."""
    path = os.path.join(temp_dir, "test_input.png")
    cv2.imwrite(path, cv2.cvtColor(two_color_image, cv2.COLOR_RGB2BGR))
    return path
