"""
Boundary tracing of binary masks into closed lattice polygons.

Boundaries run along pixel edges. Pixel (x, y) covers the square with
corners (x, y) and (x + 1, y + 1), so every polygon point is a pixel corner.
Outer boundaries come out clockwise on screen (positive shoelace area with y
growing downward), holes counter-clockwise.
"""

import numpy as np

from mapvector.concurrency import ensure_progress
from mapvector.models import Polygon, PolygonList
from mapvector.tracer import get_tracer
from mapvector.tracer import trace as traced


TURN_POLICIES = ("black", "white", "left", "right", "minority", "majority")


def _pixel(mask, x, y):
    h, w = mask.shape
    if 0 <= x < w and 0 <= y < h:
        return bool(mask[y, x])
    return False


def majority(mask, x, y):
    """
    Dominant value around lattice point (x, y).

    Counts foreground against background on square rings of growing radius
    and returns True when foreground wins. A tie on every ring is background.
    """
    h, w = mask.shape
    for radius in range(2, 5):
        ct = 0
        for a in range(-radius, radius):
            for px, py in (
                (x + a, y - radius),
                (x + radius - 1, y + a),
                (x - a - 1, y + radius - 1),
                (x - radius, y - a - 1),
            ):
                if 0 <= px < w and 0 <= py < h:
                    ct += 1 if mask[py, px] else -1
        if ct > 0:
            return True
        if ct < 0:
            return False
    return False


def _turn_left_on_ambiguity(original, x, y, is_outer, turn_policy):
    """
    Resolve a diagonal pixel pair at (x, y).

    Turning left keeps the two diagonal pixels of the traced region
    connected, turning right separates them.
    """
    if turn_policy == "left":
        return True
    if turn_policy == "right":
        return False

    if turn_policy == "black":
        connect_foreground = True
    elif turn_policy == "white":
        connect_foreground = False
    elif turn_policy == "majority":
        connect_foreground = majority(original, x, y)
    else:
        connect_foreground = not majority(original, x, y)

    # the traced region of a hole is background
    return connect_foreground if is_outer else not connect_foreground


def find_path(work, original, x0, y0, is_outer, turn_policy, max_steps):
    """
    Follow the boundary of the region whose top-left pixel is (x0, y0).

    The walk keeps region pixels on its right. Returns the list of lattice
    points, or None if the path does not close within max_steps.
    """
    x, y = x0, y0
    dx, dy = 1, 0
    points = []

    for _ in range(max_steps):
        points.append([x, y])
        x += dx
        y += dy
        if x == x0 and y == y0:
            return points

        # pixels ahead of (x, y), left and right of the current direction
        ahead_left = _pixel(work, x + (dx + dy - 1) // 2, y + (dy - dx - 1) // 2)
        ahead_right = _pixel(work, x + (dx - dy - 1) // 2, y + (dy + dx - 1) // 2)

        if ahead_left and not ahead_right:
            if _turn_left_on_ambiguity(original, x, y, is_outer, turn_policy):
                dx, dy = dy, -dx
            else:
                dx, dy = -dy, dx
        elif ahead_left:
            dx, dy = dy, -dx
        elif not ahead_right:
            dx, dy = -dy, dx

    return None


def xor_path(work, points):
    """Invert every pixel inside a closed lattice path."""
    if not points:
        return
    xa = points[0][0]
    y1 = points[-1][1]
    for x, y in points:
        if y != y1:
            row = min(y, y1)
            lo, hi = (x, xa) if x < xa else (xa, x)
            work[row, lo:hi] ^= True
            y1 = y


def _find_next(work, start_y):
    """Top-most, left-most foreground pixel at or below start_y."""
    h = work.shape[0]
    for y in range(start_y, h):
        xs = np.flatnonzero(work[y])
        if len(xs):
            return int(xs[0]), y
    return None


@traced(label="trace_boundaries")
def trace(mask, turn_policy="minority", progress=None):
    """
    Trace every boundary of a binary mask.

    Outer contours and hole contours become separate closed polygons.
    Returns a PolygonList, or None if interrupted.
    """
    if turn_policy not in TURN_POLICIES:
        raise ValueError(f"Unknown turn policy: {turn_policy}")

    tracer = get_tracer()
    progress = ensure_progress(progress)
    original = np.asarray(mask, dtype=bool)
    h, w = original.shape
    result = PolygonList(width=w, height=h)

    work = original.copy()
    max_steps = 4 * (w + 1) * (h + 1)
    y = 0

    while True:
        if progress.is_interruption_requested():
            return None

        found = _find_next(work, y)
        if found is None:
            break
        x0, y = found
        is_outer = bool(original[y, x0])

        points = find_path(work, original, x0, y, is_outer, turn_policy, max_steps)
        if points is None:
            message = f"boundary at ({x0}, {y}) did not close within {max_steps} steps"
            result.warnings.append(message)
            tracer.event(message, level="WARN")
            work[y, x0] = False
            continue

        xor_path(work, points)

        if not is_outer:
            points = [points[0]] + points[:0:-1]
        result.polygons.append(Polygon(points=points, closed=True, is_hole=not is_outer))

        progress.set_percentage(100 * y // max(h, 1))

    progress.set_percentage(100)
    holes = sum(1 for p in result.polygons if p.is_hole)
    tracer.event(f"Traced {len(result.polygons)} boundaries ({holes} holes)")
    return result
