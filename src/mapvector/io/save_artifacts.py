"""
Artifact saving utilities for mapvector.

Writes debug images, JSON metrics and SVG documents for a vectorization run.
"""

import json
import os

import cv2
import numpy as np

from mapvector.tracer import get_tracer


def ensure_dir(path):
    """Create directory if it does not exist."""
    if path:
        os.makedirs(path, exist_ok=True)


def get_debug_dir(out_dir, run_id, stage_name):
    """
    Get the debug directory path for a stage.

    Creates the directory if it does not exist.
    """
    debug_dir = os.path.join(out_dir, "debug", run_id, stage_name)
    ensure_dir(debug_dir)
    return debug_dir


def save_image(img, path, max_edge=None):
    """
    Save an image to disk.

    Boolean masks are written black on white. Optionally downscales to
    max_edge while preserving aspect ratio. RGB input is converted to BGR
    for OpenCV.
    """
    tracer = get_tracer()

    if img.dtype == np.bool_:
        img = np.where(img, 0, 255).astype(np.uint8)

    if max_edge and max(img.shape[:2]) > max_edge:
        scale = max_edge / max(img.shape[:2])
        new_size = (max(1, int(img.shape[1] * scale)), max(1, int(img.shape[0] * scale)))
        img = cv2.resize(img, new_size, interpolation=cv2.INTER_NEAREST)

    if len(img.shape) == 3 and img.shape[2] == 3:
        img_bgr = cv2.cvtColor(np.ascontiguousarray(img), cv2.COLOR_RGB2BGR)
    else:
        img_bgr = img

    ensure_dir(os.path.dirname(path))
    cv2.imwrite(path, img_bgr)
    tracer.event(f"Saved image: {path}", level="DEBUG")


def save_json(data, path, indent=2):
    """Save a dictionary or Pydantic model to JSON."""
    tracer = get_tracer()

    ensure_dir(os.path.dirname(path))

    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, default=str)

    tracer.event(f"Saved JSON: {path}")


def save_svg(svg_content, path):
    """Save an svgwrite drawing or SVG text to file."""
    tracer = get_tracer()

    ensure_dir(os.path.dirname(path))

    if hasattr(svg_content, "tostring"):
        content = svg_content.tostring()
    else:
        content = str(svg_content)

    with open(path, "w", encoding="utf-8") as f:
        f.write(content)

    tracer.event(f"Saved SVG: {path}")


def draw_overlay(base_img, polylines=None, points=None,
                 polyline_color=(0, 200, 0), point_color=(255, 0, 0)):
    """
    Draw debug overlay on a copy of an RGB or grayscale image.

    polylines: list of [[x, y], ...] point lists
    points: list of ([x, y], radius) tuples
    """
    if len(base_img.shape) == 2:
        overlay = cv2.cvtColor(base_img, cv2.COLOR_GRAY2BGR)
    else:
        overlay = cv2.cvtColor(np.ascontiguousarray(base_img), cv2.COLOR_RGB2BGR)

    # colors are given as RGB
    polyline_bgr = tuple(reversed(polyline_color))
    point_bgr = tuple(reversed(point_color))

    if polylines:
        for polyline in polylines:
            if len(polyline) < 2:
                continue
            pts = np.array(polyline, dtype=np.int32)
            cv2.polylines(overlay, [pts], isClosed=False, color=polyline_bgr, thickness=1)

    if points:
        for pt, radius in points:
            center = (int(pt[0]), int(pt[1]))
            cv2.circle(overlay, center, radius, point_bgr, -1)

    return cv2.cvtColor(overlay, cv2.COLOR_BGR2RGB)


class DebugArtifactWriter:
    """
    Helper class to manage debug artifact writing for a single run.

    Handles creation of debug directories and provides convenience methods
    for saving the artifact types every stage produces.
    """

    def __init__(self, out_dir, run_id, enabled=True, max_edge=1600):
        self.out_dir = out_dir
        self.run_id = run_id
        self.enabled = enabled
        self.max_edge = max_edge

    def get_stage_dir(self, stage_name):
        """Get the debug directory for a stage."""
        return get_debug_dir(self.out_dir, self.run_id, stage_name)

    def save_image(self, img, stage_name, filename):
        """Save an image artifact."""
        if not self.enabled:
            return
        path = os.path.join(self.get_stage_dir(stage_name), filename)
        save_image(img, path, max_edge=self.max_edge)

    def save_json(self, data, stage_name, filename):
        """Save a JSON artifact."""
        if not self.enabled:
            return
        path = os.path.join(self.get_stage_dir(stage_name), filename)
        save_json(data, path)
