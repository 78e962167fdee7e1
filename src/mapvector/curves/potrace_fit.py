"""
Polygon to curve fitting after potrace.

A traced polygon goes through four steps:
1. straight subpaths: for every point, how far a straight line reaches
2. optimal polygon: fewest segments, ties broken by least squared deviation
3. vertex adjustment and smoothing into corner and Bezier segments
4. optional merging of consecutive Bezier segments

Closed boundary paths (unit lattice steps) use potrace's direction counting
for step 1. Open and diagonal polylines from centerline tracing use a
corridor test instead, and their end points are always corners.
"""

import math

import numpy as np

from mapvector.concurrency import ensure_progress
from mapvector.models import CurveSegment, PrivCurve, SegmentTag, compute_signed_area
from mapvector.tracer import get_tracer, trace


COS179 = math.cos(math.radians(179))

# half the diagonal of a pixel
CORRIDOR_TOLERANCE = math.sqrt(2.0) / 2.0

_INFTY = 10000000


# Geometry helpers on (x, y) tuples

def _sign(x):
    return int(x > 0) - int(x < 0)


def _mod(a, n):
    return a % n


def _floordiv(a, n):
    return a // n


def _cyclic(a, b, c):
    """True if a <= b < c cyclically."""
    if a <= c:
        return a <= b < c
    return a <= b or b < c


def _interval(t, a, b):
    return (a[0] + t * (b[0] - a[0]), a[1] + t * (b[1] - a[1]))


def _xprod(p1x, p1y, p2x, p2y):
    return p1x * p2y - p1y * p2x


def _dpara(p0, p1, p2):
    """(p1 - p0) x (p2 - p0), twice the signed triangle area."""
    return (p1[0] - p0[0]) * (p2[1] - p0[1]) - (p2[0] - p0[0]) * (p1[1] - p0[1])


def _ddenom(p0, p2):
    rx = -_sign(p2[1] - p0[1])
    ry = _sign(p2[0] - p0[0])
    return ry * (p2[0] - p0[0]) - rx * (p2[1] - p0[1])


def _cprod(p0, p1, p2, p3):
    return (p1[0] - p0[0]) * (p3[1] - p2[1]) - (p3[0] - p2[0]) * (p1[1] - p0[1])


def _iprod(p0, p1, p2):
    return (p1[0] - p0[0]) * (p2[0] - p0[0]) + (p1[1] - p0[1]) * (p2[1] - p0[1])


def _iprod1(p0, p1, p2, p3):
    return (p1[0] - p0[0]) * (p3[0] - p2[0]) + (p1[1] - p0[1]) * (p3[1] - p2[1])


def _ddist(p, q):
    return math.hypot(p[0] - q[0], p[1] - q[1])


def _bezier(t, p0, p1, p2, p3):
    s = 1 - t
    return (
        s * s * s * p0[0] + 3 * (s * s * t) * p1[0] + 3 * (t * t * s) * p2[0] + t * t * t * p3[0],
        s * s * s * p0[1] + 3 * (s * s * t) * p1[1] + 3 * (t * t * s) * p2[1] + t * t * t * p3[1],
    )


def _tangent(p0, p1, p2, p3, q0, q1):
    """Parameter in [0, 1] where the Bezier is parallel to q1 - q0, or -1."""
    a_ = _cprod(p0, p1, q0, q1)
    b_ = _cprod(p1, p2, q0, q1)
    c_ = _cprod(p2, p3, q0, q1)

    a = a_ - 2 * b_ + c_
    b = -2 * a_ + 2 * b_
    c = a_
    d = b * b - 4 * a * c

    if a == 0 or d < 0:
        return -1.0

    s = math.sqrt(d)
    r1 = (-b + s) / (2 * a)
    r2 = (-b - s) / (2 * a)
    if 0 <= r1 <= 1:
        return r1
    if 0 <= r2 <= 1:
        return r2
    return -1.0


class _FitPath:
    """Points of one path plus the cumulative sums used for fast line fits."""

    def __init__(self, points, closed):
        self.pt = points
        self.n = len(points)
        self.closed = closed
        self.x0, self.y0 = points[0]

        rel = np.asarray(points, dtype=np.float64) - (self.x0, self.y0)
        x, y = rel[:, 0], rel[:, 1]
        cols = np.stack([x, y, x * x, x * y, y * y], axis=1)
        sums = np.zeros((self.n + 1, 5), dtype=np.float64)
        np.cumsum(cols, axis=0, out=sums[1:])
        self.sums = sums.tolist()


def is_lattice_path(points):
    """True for a closed path of unit horizontal and vertical steps."""
    n = len(points)
    if n < 4:
        return False
    for i in range(n):
        x0, y0 = points[i]
        x1, y1 = points[(i + 1) % n]
        if x0 != int(x0) or y0 != int(y0):
            return False
        if abs(x1 - x0) + abs(y1 - y0) != 1:
            return False
    return True


# Step 1: straight subpaths

def calc_lon(points):
    """
    lon[i]: the furthest index reachable by a straight line from point i.

    Lattice paths only. A straight line from i to j exists when the path
    uses at most three of the four step directions between them and stays
    within the cone given by the constraints collected so far.
    """
    pt = [(int(p[0]), int(p[1])) for p in points]
    n = len(pt)
    pivk = [0] * n
    nc = [0] * n

    k = 0
    for i in range(n - 1, -1, -1):
        if pt[i][0] != pt[k][0] and pt[i][1] != pt[k][1]:
            k = i + 1
        nc[i] = k

    for i in range(n - 1, -1, -1):
        ct = [0, 0, 0, 0]
        nxt = pt[_mod(i + 1, n)]
        direction = int((3 + 3 * (nxt[0] - pt[i][0]) + (nxt[1] - pt[i][1])) // 2)
        ct[direction] += 1

        c0x = c0y = c1x = c1y = 0
        k = nc[i]
        k1 = i
        found = False

        while True:
            direction = int((3 + 3 * _sign(pt[k][0] - pt[k1][0]) + _sign(pt[k][1] - pt[k1][1])) // 2)
            ct[direction] += 1

            if ct[0] and ct[1] and ct[2] and ct[3]:
                pivk[i] = k1
                found = True
                break

            cur_x = pt[k][0] - pt[i][0]
            cur_y = pt[k][1] - pt[i][1]

            if _xprod(c0x, c0y, cur_x, cur_y) < 0 or _xprod(c1x, c1y, cur_x, cur_y) > 0:
                break

            if abs(cur_x) > 1 or abs(cur_y) > 1:
                off_x = cur_x + (1 if (cur_y >= 0 and (cur_y > 0 or cur_x < 0)) else -1)
                off_y = cur_y + (1 if (cur_x <= 0 and (cur_x < 0 or cur_y < 0)) else -1)
                if _xprod(c0x, c0y, off_x, off_y) >= 0:
                    c0x, c0y = off_x, off_y
                off_x = cur_x + (1 if (cur_y <= 0 and (cur_y < 0 or cur_x < 0)) else -1)
                off_y = cur_y + (1 if (cur_x >= 0 and (cur_x > 0 or cur_y < 0)) else -1)
                if _xprod(c1x, c1y, off_x, off_y) <= 0:
                    c1x, c1y = off_x, off_y

            k1 = k
            k = nc[k1]
            if not _cyclic(k, i, k1):
                break

        if found:
            continue

        # k1 is the last point satisfying the constraints; see how far
        # the segment towards k can be followed
        dk_x = _sign(pt[k][0] - pt[k1][0])
        dk_y = _sign(pt[k][1] - pt[k1][1])
        cur_x = pt[k1][0] - pt[i][0]
        cur_y = pt[k1][1] - pt[i][1]

        a = _xprod(c0x, c0y, cur_x, cur_y)
        b = _xprod(c0x, c0y, dk_x, dk_y)
        c = _xprod(c1x, c1y, cur_x, cur_y)
        d = _xprod(c1x, c1y, dk_x, dk_y)

        j = _INFTY
        if b < 0:
            j = _floordiv(a, -b)
        if d > 0:
            j = min(j, _floordiv(-c, d))
        pivk[i] = _mod(k1 + j, n)

    lon = [0] * n
    j = pivk[n - 1]
    lon[n - 1] = j
    for i in range(n - 2, -1, -1):
        if _cyclic(i + 1, pivk[i], j):
            j = pivk[i]
        lon[i] = j

    i = n - 1
    while _cyclic(_mod(i + 1, n), j, lon[i]):
        lon[i] = j
        i -= 1

    return lon


def clip_from_lon(lon):
    """Furthest end position of a segment starting at each position of a closed path."""
    n = len(lon)
    clip0 = [0] * n
    for i in range(n):
        c = _mod(lon[_mod(i - 1, n)] - 1, n)
        if c == i:
            c = _mod(i + 1, n)
        clip0[i] = n if c < i else c
    return clip0


def _wrap_angle(a):
    while a > math.pi:
        a -= 2 * math.pi
    while a <= -math.pi:
        a += 2 * math.pi
    return a


def corridor_reach(points, closed, tol=CORRIDOR_TOLERANCE):
    """
    Furthest end position of a straight segment from each start position.

    A chord from i to j is straight when every point between them lies within
    tol of it. Positions run 0..n for closed paths (n is point 0 again) and
    0..n-1 for open ones. The result never increases backwards, as the
    optimal polygon search requires.
    """
    n = len(points)
    last = n if closed else n - 1
    starts = n if closed else n - 1
    reach = [0] * starts

    for i in range(starts):
        ax, ay = points[i]
        lo, hi = -math.pi, math.pi
        ref = None
        best = i + 1
        j = i + 1

        while j <= last and j - i < n:
            px, py = points[j % n]
            dist = math.hypot(px - ax, py - ay)
            if dist > 0:
                theta = math.atan2(py - ay, px - ax)
                if ref is None:
                    ref = theta
                rel = _wrap_angle(theta - ref)
                if rel < lo or rel > hi:
                    break
                if dist > tol:
                    delta = math.asin(tol / dist)
                    lo = max(lo, rel - delta)
                    hi = min(hi, rel + delta)
            best = j
            if lo > hi:
                break
            j += 1

        reach[i] = min(best, last)

    for i in range(starts - 2, -1, -1):
        reach[i] = min(reach[i], reach[i + 1])
    return reach


# Step 2: optimal polygon

def penalty3(path, i, j):
    """Deviation of the path points between i and j from the chord i-j."""
    n = path.n
    pt = path.pt
    sums = path.sums

    r = 0
    if j >= n:
        j -= n
        r = 1

    sx, sy, sx2, sxy, sy2 = (
        sums[j + 1][c] - sums[i][c] + r * sums[n][c] for c in range(5)
    )
    k = j + 1 - i + r * n

    px = (pt[i][0] + pt[j][0]) / 2.0 - pt[0][0]
    py = (pt[i][1] + pt[j][1]) / 2.0 - pt[0][1]
    ey = pt[j][0] - pt[i][0]
    ex = -(pt[j][1] - pt[i][1])

    a = (sx2 - 2 * sx * px) / k + px * px
    b = (sxy - sx * py - sy * px) / k + px * py
    c = (sy2 - 2 * sy * py) / k + py * py

    s = ex * ex * a + 2 * ex * ey * b + ey * ey * c
    return math.sqrt(max(s, 0.0))


def best_polygon(path, clip0):
    """
    Vertex positions of the optimal polygon.

    clip0[i] is the furthest position a segment from i may reach; the last
    position is len(clip0). Among the polygons with the fewest segments the
    one with the least summed penalty wins. Position 0 is always a vertex.
    """
    end = len(clip0)

    clip1 = [0] * (end + 1)
    j = 1
    for i in range(end):
        while j <= clip0[i]:
            clip1[j] = i
            j += 1

    seg0 = []
    i = 0
    while i < end:
        seg0.append(i)
        i = clip0[i]
    seg0.append(end)
    m = len(seg0) - 1

    seg1 = [0] * (m + 1)
    i = end
    for j in range(m, 0, -1):
        seg1[j] = i
        i = clip1[i]
    seg1[0] = 0

    pen = [0.0] * (end + 1)
    prev = [0] * (end + 1)
    for j in range(1, m + 1):
        for i in range(seg1[j], seg0[j] + 1):
            best = -1.0
            for k in range(seg0[j - 1], clip1[i] - 1, -1):
                thispen = penalty3(path, k, i) + pen[k]
                if best < 0 or thispen < best:
                    prev[i] = k
                    best = thispen
            pen[i] = best

    po = [0] * m
    i = end
    j = m - 1
    while i > 0:
        i = prev[i]
        po[j] = i
        j -= 1
    return po


# Step 3: vertex adjustment and smoothing

def pointslope(path, i, j):
    """Center and unit direction of the best fitting line through points i..j."""
    n = path.n
    sums = path.sums
    r = 0

    while j >= n:
        j -= n
        r += 1
    while i >= n:
        i -= n
        r -= 1
    while j < 0:
        j += n
        r -= 1
    while i < 0:
        i += n
        r += 1

    x, y, x2, xy, y2 = (sums[j + 1][c] - sums[i][c] + r * sums[n][c] for c in range(5))
    k = j + 1 - i + r * n

    ctr = (x / k, y / k)

    a = (x2 - x * x / k) / k
    b = (xy - x * y / k) / k
    c = (y2 - y * y / k) / k

    lambda2 = (a + c + math.sqrt((a - c) * (a - c) + 4 * b * b)) / 2
    a -= lambda2
    c -= lambda2

    if abs(a) >= abs(c):
        length = math.sqrt(a * a + b * b)
        if length != 0:
            return ctr, (-b / length, a / length)
    else:
        length = math.sqrt(c * c + b * b)
        if length != 0:
            return ctr, (-c / length, b / length)
    return ctr, (0.0, 0.0)


def _quadform_of_line(ctr, direction):
    d = direction[0] ** 2 + direction[1] ** 2
    if d == 0.0:
        return np.zeros((3, 3))
    v = np.array([direction[1], -direction[0], 0.0])
    v[2] = -v[1] * ctr[1] - v[0] * ctr[0]
    return np.outer(v, v) / d


def _quadform(q, w):
    v = np.array([w[0], w[1], 1.0])
    return float(v @ q @ v)


def _best_vertex(q, s):
    """
    Point minimizing the quadratic form q, kept within the unit square around s.

    Coordinates are relative to the path origin.
    """
    q = q.copy()
    while True:
        det = q[0, 0] * q[1, 1] - q[0, 1] * q[1, 0]
        if det != 0.0:
            w = (
                (-q[0, 2] * q[1, 1] + q[1, 2] * q[0, 1]) / det,
                (q[0, 2] * q[1, 0] - q[1, 2] * q[0, 0]) / det,
            )
            break

        # singular: the two lines are parallel, add one through s
        if q[0, 0] > q[1, 1]:
            v = [-q[0, 1], q[0, 0]]
        elif q[1, 1]:
            v = [-q[1, 1], q[1, 0]]
        else:
            v = [1.0, 0.0]
        d = v[0] ** 2 + v[1] ** 2
        vec = np.array([v[0], v[1], -v[1] * s[1] - v[0] * s[0]])
        q += np.outer(vec, vec) / d

    if abs(w[0] - s[0]) <= 0.5 and abs(w[1] - s[1]) <= 0.5:
        return (float(w[0]), float(w[1]))

    best = _quadform(q, s)
    xmin, ymin = s

    if q[0, 0] != 0.0:
        for z in range(2):
            wy = s[1] - 0.5 + z
            wx = -(q[0, 1] * wy + q[0, 2]) / q[0, 0]
            cand = _quadform(q, (wx, wy))
            if abs(wx - s[0]) <= 0.5 and cand < best:
                best, xmin, ymin = cand, wx, wy

    if q[1, 1] != 0.0:
        for z in range(2):
            wx = s[0] - 0.5 + z
            wy = -(q[1, 0] * wx + q[1, 2]) / q[1, 1]
            cand = _quadform(q, (wx, wy))
            if abs(wy - s[1]) <= 0.5 and cand < best:
                best, xmin, ymin = cand, wx, wy

    for lx in range(2):
        for ky in range(2):
            corner = (s[0] - 0.5 + lx, s[1] - 0.5 + ky)
            cand = _quadform(q, corner)
            if cand < best:
                best, xmin, ymin = cand, corner[0], corner[1]

    return (float(xmin), float(ymin))


def adjust_vertices(path, po):
    """
    Move each polygon vertex to the intersection of its two fitted lines.

    For closed paths po lists the m vertex positions. For open paths it also
    contains the last position, and the two end vertices stay on the path.
    """
    n = path.n
    pt = path.pt
    x0, y0 = path.x0, path.y0

    if path.closed:
        m = len(po)
        forms = []
        for i in range(m):
            j = _mod(po[_mod(i + 1, m)] - po[i], n) + po[i]
            ctr, direction = pointslope(path, po[i], j)
            forms.append(_quadform_of_line(ctr, direction))

        vertices = []
        for i in range(m):
            s = (pt[po[i]][0] - x0, pt[po[i]][1] - y0)
            q = forms[_mod(i - 1, m)] + forms[i]
            w = _best_vertex(q, s)
            vertices.append(_finite_or(w, s, x0, y0))
        return vertices

    segments = len(po) - 1
    forms = []
    for i in range(segments):
        ctr, direction = pointslope(path, po[i], po[i + 1])
        forms.append(_quadform_of_line(ctr, direction))

    vertices = [(float(pt[po[0]][0]), float(pt[po[0]][1]))]
    for i in range(1, segments):
        s = (pt[po[i]][0] - x0, pt[po[i]][1] - y0)
        w = _best_vertex(forms[i - 1] + forms[i], s)
        vertices.append(_finite_or(w, s, x0, y0))
    vertices.append((float(pt[po[-1]][0]), float(pt[po[-1]][1])))
    return vertices


def _finite_or(w, s, x0, y0):
    if math.isfinite(w[0]) and math.isfinite(w[1]):
        return (float(w[0] + x0), float(w[1] + y0))
    return (float(s[0] + x0), float(s[1] + y0))


def vertex_smoothness(prev_v, v, next_v):
    """
    Raw potrace alpha of vertex v and its smoothness 1 - 0.75 * alpha.

    A sharp corner has alpha 4/3 and smoothness 0; a vertex on a gentle arc
    has alpha near 0 and smoothness near 1.
    """
    denom = _ddenom(prev_v, next_v)
    if denom != 0.0:
        dd = abs(_dpara(prev_v, v, next_v) / denom)
        alpha = (1 - 1.0 / dd) / 0.75 if dd > 1 else 0.0
    else:
        alpha = 4 / 3.0
    if not math.isfinite(alpha):
        alpha = 4 / 3.0
    return alpha, 1.0 - 0.75 * alpha


def _segment(prev_v, v, next_v, end_point, corner_min):
    alpha0, smoothness = vertex_smoothness(prev_v, v, next_v)

    if smoothness <= corner_min:
        return {
            "tag": SegmentTag.CORNER,
            "c": [v, v, end_point],
            "vertex": v,
            "alpha": alpha0,
            "alpha0": alpha0,
            "beta": 0.5,
        }

    alpha = min(1.0, max(0.55, alpha0))
    return {
        "tag": SegmentTag.CURVE,
        "c": [
            _interval(0.5 + 0.5 * alpha, prev_v, v),
            _interval(0.5 + 0.5 * alpha, next_v, v),
            end_point,
        ],
        "vertex": v,
        "alpha": alpha,
        "alpha0": alpha0,
        "beta": 0.5,
    }


def _corner(v, end_point):
    return {
        "tag": SegmentTag.CORNER,
        "c": [v, v, end_point],
        "vertex": v,
        "alpha": 4 / 3.0,
        "alpha0": 4 / 3.0,
        "beta": 0.5,
    }


def smooth(vertices, closed, corner_min):
    """
    Turn polygon vertices into corner and curve segments.

    Segment j ends at the midpoint between vertex j and the next vertex.
    Open paths start with a corner at the first vertex and end with one at
    the last.
    """
    m = len(vertices)

    if closed:
        segments = [None] * m
        for i in range(m):
            j = _mod(i + 1, m)
            k = _mod(i + 2, m)
            mid = _interval(0.5, vertices[k], vertices[j])
            segments[j] = _segment(vertices[i], vertices[j], vertices[k], mid, corner_min)
        return segments

    segments = [_corner(vertices[0], _interval(0.5, vertices[0], vertices[1]))]
    for j in range(1, m - 1):
        mid = _interval(0.5, vertices[j], vertices[j + 1])
        segments.append(_segment(vertices[j - 1], vertices[j], vertices[j + 1], mid, corner_min))
    segments.append(_corner(vertices[-1], vertices[-1]))
    return segments


# Step 4: curve optimization

def _opti_penalty(curve, i, j, opttolerance, convc, areac):
    """
    Try one Bezier from the end of segment i to the end of segment j.

    Returns (penalty, c0, c1, alpha, t, s) or None when the segments cannot
    be merged.
    """
    m = len(curve)

    if i == j:
        return None

    k = i
    i1 = _mod(i + 1, m)
    k1 = _mod(k + 1, m)
    conv = convc[k1]
    if conv == 0:
        return None

    d = _ddist(curve[i]["vertex"], curve[i1]["vertex"])
    k = k1
    while k != j:
        k1 = _mod(k + 1, m)
        k2 = _mod(k + 2, m)
        if convc[k1] != conv:
            return None
        if _sign(_cprod(curve[i]["vertex"], curve[i1]["vertex"], curve[k1]["vertex"], curve[k2]["vertex"])) != conv:
            return None
        if _iprod1(curve[i]["vertex"], curve[i1]["vertex"], curve[k1]["vertex"], curve[k2]["vertex"]) < \
                d * _ddist(curve[k1]["vertex"], curve[k2]["vertex"]) * COS179:
            return None
        k = k1

    p0 = curve[_mod(i, m)]["c"][2]
    p1 = curve[_mod(i + 1, m)]["vertex"]
    p2 = curve[_mod(j, m)]["vertex"]
    p3 = curve[_mod(j, m)]["c"][2]

    area = areac[j] - areac[i]
    area -= _dpara(curve[0]["vertex"], curve[i]["c"][2], curve[j]["c"][2]) / 2
    if i >= j:
        area += areac[m]

    a1 = _dpara(p0, p1, p2)
    a2 = _dpara(p0, p1, p3)
    a3 = _dpara(p0, p2, p3)
    a4 = a1 + a3 - a2

    if a2 == a1 or a3 == a4:
        return None

    t = a3 / (a3 - a4)
    s = a2 / (a2 - a1)
    a = a2 * t / 2.0
    if a == 0.0:
        return None

    r = area / a
    radicand = 4 - r / 0.3
    if radicand < 0:
        return None
    alpha = 2 - math.sqrt(radicand)
    if not 0.0 <= alpha <= 1.0:
        return None

    c0 = _interval(t * alpha, p0, p1)
    c1 = _interval(s * alpha, p3, p2)
    pen = 0.0

    k = _mod(i + 1, m)
    while k != j:
        k1 = _mod(k + 1, m)
        tt = _tangent(p0, c0, c1, p3, curve[k]["vertex"], curve[k1]["vertex"])
        if tt < -0.5:
            return None
        pt = _bezier(tt, p0, c0, c1, p3)
        d = _ddist(curve[k]["vertex"], curve[k1]["vertex"])
        if d == 0.0:
            return None
        d1 = _dpara(curve[k]["vertex"], curve[k1]["vertex"], pt) / d
        if abs(d1) > opttolerance:
            return None
        if _iprod(curve[k]["vertex"], curve[k1]["vertex"], pt) < 0 or \
                _iprod(curve[k1]["vertex"], curve[k]["vertex"], pt) < 0:
            return None
        pen += d1 * d1
        k = k1

    k = i
    while k != j:
        k1 = _mod(k + 1, m)
        tt = _tangent(p0, c0, c1, p3, curve[k]["c"][2], curve[k1]["c"][2])
        if tt < -0.5:
            return None
        pt = _bezier(tt, p0, c0, c1, p3)
        d = _ddist(curve[k]["c"][2], curve[k1]["c"][2])
        if d == 0.0:
            return None
        d1 = _dpara(curve[k]["c"][2], curve[k1]["c"][2], pt) / d
        d2 = _dpara(curve[k]["c"][2], curve[k1]["c"][2], curve[k1]["vertex"]) / d
        d2 *= 0.75 * curve[k1]["alpha"]
        if d2 < 0:
            d1 = -d1
            d2 = -d2
        if d1 < d2 - opttolerance:
            return None
        if d1 < d2:
            pen += (d1 - d2) ** 2
        k = k1

    return pen, c0, c1, alpha, t, s


def opticurve(curve, opttolerance):
    """
    Replace runs of convex curve segments by single Bezier segments.

    Dynamic programming over the closed curve: fewest segments first, then
    least penalty. Corners are never merged away.
    """
    m = len(curve)
    if m < 3:
        return curve

    convc = [0] * m
    for i in range(m):
        if curve[i]["tag"] == SegmentTag.CURVE:
            convc[i] = _sign(_dpara(
                curve[_mod(i - 1, m)]["vertex"], curve[i]["vertex"], curve[_mod(i + 1, m)]["vertex"]
            ))

    areac = [0.0] * (m + 1)
    area = 0.0
    p0 = curve[0]["vertex"]
    for i in range(m):
        i1 = _mod(i + 1, m)
        if curve[i1]["tag"] == SegmentTag.CURVE:
            alpha = curve[i1]["alpha"]
            area += 0.3 * alpha * (4 - alpha) * _dpara(curve[i]["c"][2], curve[i1]["vertex"], curve[i1]["c"][2]) / 2
            area += _dpara(p0, curve[i]["c"][2], curve[i1]["c"][2]) / 2
        areac[i + 1] = area

    pt = [0] * (m + 1)
    pen = [0.0] * (m + 1)
    length = [0] * (m + 1)
    opt = [None] * (m + 1)
    pt[0] = -1

    for j in range(1, m + 1):
        pt[j] = j - 1
        pen[j] = pen[j - 1]
        length[j] = length[j - 1] + 1
        for i in range(j - 2, -1, -1):
            o = _opti_penalty(curve, i, _mod(j, m), opttolerance, convc, areac)
            if o is None:
                break
            if length[j] > length[i] + 1 or (length[j] == length[i] + 1 and pen[j] > pen[i] + o[0]):
                opt[j] = o
                pt[j] = i
                pen[j] = pen[i] + o[0]
                length[j] = length[i] + 1

    om = length[m]
    ocurve = [None] * om
    s = [1.0] * om
    t = [1.0] * om

    j = m
    for i in range(om - 1, -1, -1):
        seg = curve[_mod(j, m)]
        if pt[j] == j - 1:
            ocurve[i] = dict(seg)
            s[i] = t[i] = 1.0
        else:
            o_pen, c0, c1, alpha, ot, os_ = opt[j]
            ocurve[i] = {
                "tag": SegmentTag.CURVE,
                "c": [c0, c1, seg["c"][2]],
                "vertex": _interval(os_, seg["c"][2], seg["vertex"]),
                "alpha": alpha,
                "alpha0": alpha,
                "beta": 0.5,
            }
            s[i] = os_
            t[i] = ot
        j = pt[j]

    for i in range(om):
        i1 = _mod(i + 1, om)
        denom = s[i] + t[i1]
        ocurve[i]["beta"] = s[i] / denom if denom else 0.5

    return ocurve


def _dedupe(points, closed):
    out = []
    for p in points:
        if not out or p != out[-1]:
            out.append(p)
    if closed and len(out) > 1 and out[0] == out[-1]:
        out.pop()
    return out


def fit(polygon, config):
    """
    Fit one polygon with corner and Bezier segments.

    config is a VectorizationConfig. Returns a PrivCurve, or None for
    speckles and degenerate (zero-area or single-point) input.
    """
    points = [(float(p[0]), float(p[1])) for p in polygon.points]
    if len(points) < config.speckle_size:
        return None

    closed = polygon.closed
    points = _dedupe(points, closed)
    if len(points) < 2:
        return None
    if closed and (len(points) < 3 or compute_signed_area(points) == 0.0):
        return None

    path = _FitPath(points, closed)

    if closed and is_lattice_path(points):
        clip0 = clip_from_lon(calc_lon(points))
    else:
        clip0 = corridor_reach(points, closed)

    po = best_polygon(path, clip0)
    if not closed:
        po = po + [len(clip0)]

    vertices = adjust_vertices(path, po)

    if closed and len(vertices) < 2:
        return None

    segments = smooth(vertices, closed, config.corner_min)
    if closed and config.optimize_curves:
        segments = opticurve(segments, config.opt_tolerance)

    return PrivCurve(
        segments=[
            CurveSegment(
                tag=seg["tag"],
                c=[list(p) for p in seg["c"]],
                vertex=list(seg["vertex"]),
                alpha=seg["alpha"],
                alpha0=seg["alpha0"],
                beta=seg["beta"],
            )
            for seg in segments
        ],
        closed=closed,
        sign="-" if polygon.is_hole else "+",
    )


@trace(label="fit_curves")
def fit_polygons(polygon_list, config, progress=None):
    """
    Fit every polygon of a PolygonList.

    Open polylines are joined first when config.do_connections is set.
    Returns the list of PrivCurve, or None if interrupted.
    """
    from mapvector.curves.joins import join_polylines

    tracer = get_tracer()
    progress = ensure_progress(progress)

    polygons = list(polygon_list.polygons)
    if config.do_connections:
        polygons = join_polylines(polygons, config)

    curves = []
    speckles = 0
    total = max(len(polygons), 1)

    for index, polygon in enumerate(polygons):
        if progress.is_interruption_requested():
            tracer.event("Curve fitting interrupted", level="WARN")
            return None
        curve = fit(polygon, config)
        if curve is None:
            speckles += 1
        else:
            curves.append(curve)
        progress.set_percentage(100 * (index + 1) // total)

    corners = sum(c.corner_count for c in curves)
    segments = sum(len(c.segments) for c in curves)
    tracer.event(
        f"Fitted {len(curves)} curves ({segments} segments, {corners} corners), "
        f"dropped {speckles}"
    )
    return curves
