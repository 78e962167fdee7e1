"""
Color space conversions and distances for the color classifier.

Colors are learned and compared as float coordinates in one of two spaces:
"rgb" (identity) or "hsv" mapped onto the cartesian HSV cone, so that
averaging two reds on either side of the hue wrap stays red.
"""

import math

import cv2
import numpy as np


def to_space(rgb, color_space):
    """
    Convert uint8 RGB values of shape (..., 3) to float coordinates.

    hsv coordinates are (s*v*cos h, s*v*sin h, v), scaled to 0..255.
    """
    rgb = np.asarray(rgb, dtype=np.uint8)
    if color_space == "rgb":
        return rgb.astype(np.float64)
    if color_space != "hsv":
        raise ValueError(f"Unknown color space: {color_space}")

    flat = rgb.reshape(-1, 1, 3).astype(np.float32) / 255.0
    hsv = cv2.cvtColor(flat, cv2.COLOR_RGB2HSV).reshape(-1, 3).astype(np.float64)
    h = np.radians(hsv[:, 0])
    s = hsv[:, 1]
    v = hsv[:, 2]
    out = np.stack([s * v * np.cos(h), s * v * np.sin(h), v], axis=1) * 255.0
    return out.reshape(rgb.shape)


def from_space(values, color_space):
    """Convert float coordinates back to uint8 RGB, rounding and clamping."""
    values = np.asarray(values, dtype=np.float64)
    if color_space == "rgb":
        return np.clip(np.rint(values), 0, 255).astype(np.uint8)
    if color_space != "hsv":
        raise ValueError(f"Unknown color space: {color_space}")

    flat = values.reshape(-1, 3) / 255.0
    v = np.clip(flat[:, 2], 0.0, 1.0)
    sv = np.hypot(flat[:, 0], flat[:, 1])
    s = np.divide(sv, v, out=np.zeros_like(sv), where=v > 0)
    s = np.clip(s, 0.0, 1.0)
    h = np.degrees(np.arctan2(flat[:, 1], flat[:, 0])) % 360.0

    hsv = np.stack([h, s, v], axis=1).astype(np.float32).reshape(-1, 1, 3)
    rgb = cv2.cvtColor(hsv, cv2.COLOR_HSV2RGB).reshape(-1, 3) * 255.0
    return np.clip(np.rint(rgb), 0, 255).astype(np.uint8).reshape(values.shape)


def minkowski(diff, p):
    """
    Minkowski norm of difference vectors along the last axis.

    p=1 is Manhattan, p=2 Euclidean and p=inf Chebyshev.
    """
    diff = np.abs(diff)
    if math.isinf(p):
        return diff.max(axis=-1)
    if p == 1:
        return diff.sum(axis=-1)
    if p == 2:
        return np.sqrt((diff * diff).sum(axis=-1))
    return (diff ** p).sum(axis=-1) ** (1.0 / p)


def pairwise_distances(values, centers, p):
    """Distances of shape (N, K) between N values and K centers."""
    values = np.asarray(values, dtype=np.float64).reshape(-1, 3)
    centers = np.asarray(centers, dtype=np.float64).reshape(-1, 3)
    return minkowski(values[:, None, :] - centers[None, :, :], p)


def nearest(values, centers, p):
    """
    Index of and distance to the nearest center for each value.

    Ties go to the lowest index.
    """
    dist = pairwise_distances(values, centers, p)
    idx = np.argmin(dist, axis=1)
    return idx, dist[np.arange(len(idx)), idx]
