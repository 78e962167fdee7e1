"""
Image loading utilities for mapvector.

Scans are read with OpenCV and handed to the pipeline as RGB arrays.
"""

import os

import cv2

from mapvector.tracer import get_tracer, trace


SUPPORTED_EXTENSIONS = (".png", ".jpg", ".jpeg", ".tiff", ".tif", ".bmp")


@trace(label="load_image")
def load_image(path):
    """
    Load an image from disk.

    Returns a tuple of (image, metadata) where:
    - image: RGB numpy array (H, W, 3), uint8
    - metadata: dict with width, height, source_path

    Raises FileNotFoundError if path does not exist.
    Raises ValueError if image cannot be loaded.
    """
    tracer = get_tracer()

    if not os.path.exists(path):
        raise FileNotFoundError(f"Image not found: {path}")

    img_bgr = cv2.imread(path, cv2.IMREAD_COLOR)

    if img_bgr is None:
        raise ValueError(f"Failed to load image: {path}")

    img_rgb = cv2.cvtColor(img_bgr, cv2.COLOR_BGR2RGB)
    height, width = img_rgb.shape[:2]

    tracer.event(f"Loaded image: {width}x{height}")

    metadata = {
        "width": width,
        "height": height,
        "source_path": os.path.abspath(path),
    }

    return img_rgb, metadata


def validate_image_input(path):
    """
    Check that path exists and looks like a readable image.

    Returns a list of error messages (empty if valid).
    """
    if not os.path.exists(path):
        return [f"File not found: {path}"]

    ext = os.path.splitext(path)[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        return [f"Unsupported image format: {path}"]

    return []
