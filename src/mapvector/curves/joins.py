"""
Joining of open polylines across small gaps.

Centerline tracing breaks lines at junctions and at gaps left by noise.
Before fitting, nearby line ends are connected again. Each candidate pair
of ends is scored by gap length and by how much the lines would have to
bend; the best candidates win and every end is used at most once. A chain
that comes back to its own start becomes a closed polyline.
"""

import math

from mapvector.models import Polygon
from mapvector.tracer import get_tracer


HEAD = 0
TAIL = 1

# points used to estimate the direction at a line end
TANGENT_SPAN = 3


def _end_point(points, side):
    return points[0] if side == HEAD else points[-1]


def end_tangent(points, side):
    """Outward direction of a polyline at one of its ends."""
    k = min(TANGENT_SPAN, len(points) - 1)
    if k <= 0:
        return (0.0, 0.0)
    if side == HEAD:
        a, b = points[0], points[k]
    else:
        a, b = points[-1], points[-1 - k]
    return (a[0] - b[0], a[1] - b[1])


def _bend_cosine(t_a, t_b):
    """
    Cosine of the turn needed to continue from one end into the other.

    Two ends facing each other along a straight line give 1.
    """
    norm = math.hypot(*t_a) * math.hypot(*t_b)
    if norm == 0:
        return 0.0
    return -(t_a[0] * t_b[0] + t_a[1] * t_b[1]) / norm


def join_score(gap, t_a, t_b, join_distance, balance):
    """Lower is better: balance weighs gap length against bending."""
    distance_term = gap / join_distance if join_distance > 0 else 0.0
    direction_term = (1.0 - _bend_cosine(t_a, t_b)) / 2.0
    return balance * distance_term + (1.0 - balance) * direction_term


def _ends(polylines):
    ends = []
    for index, points in enumerate(polylines):
        for side in (HEAD, TAIL):
            ends.append((index, side))
    return ends


def _candidates(polylines, join_distance):
    """All pairs of distinct ends within join_distance, with their gap."""
    ends = _ends(polylines)
    pairs = []
    for a_pos, a in enumerate(ends):
        pa = _end_point(polylines[a[0]], a[1])
        for b in ends[a_pos + 1:]:
            if a[0] == b[0] and len(polylines[a[0]]) < 3:
                continue
            pb = _end_point(polylines[b[0]], b[1])
            gap = math.hypot(pb[0] - pa[0], pb[1] - pa[1])
            if gap <= join_distance:
                pairs.append((a, b, gap))
    return pairs


def _scored_partners(polylines, config):
    partner = {}
    scored = []
    for a, b, gap in _candidates(polylines, config.join_distance):
        t_a = end_tangent(polylines[a[0]], a[1])
        t_b = end_tangent(polylines[b[0]], b[1])
        score = join_score(gap, t_a, t_b, config.join_distance, config.dist_dir_balance)
        scored.append((score, a, b))

    for score, a, b in sorted(scored):
        if a in partner or b in partner:
            continue
        partner[a] = b
        partner[b] = a
    return partner


def _simple_partners(polylines, config):
    """Join only ends that are each other's nearest and do not fold back."""
    nearest = {}
    for a, b, gap in _candidates(polylines, config.join_distance):
        for x, y in ((a, b), (b, a)):
            if x not in nearest or gap < nearest[x][1]:
                nearest[x] = (y, gap)

    partner = {}
    for a, (b, _gap) in sorted(nearest.items()):
        if a in partner or nearest.get(b, (None,))[0] != a:
            continue
        pa = _end_point(polylines[a[0]], a[1])
        pb = _end_point(polylines[b[0]], b[1])
        g = (pb[0] - pa[0], pb[1] - pa[1])
        t_a = end_tangent(polylines[a[0]], a[1])
        t_b = end_tangent(polylines[b[0]], b[1])
        if t_a[0] * g[0] + t_a[1] * g[1] < 0:
            continue
        if -(t_b[0] * g[0] + t_b[1] * g[1]) < 0:
            continue
        partner[a] = b
        partner[b] = a
    return partner


def _assemble(polylines, partner):
    """Concatenate joined polylines into chains and loops."""
    visited = set()
    result = []

    for index in range(len(polylines)):
        if index in visited:
            continue

        # walk backwards to the free end of the chain, or detect a loop
        entry = (index, HEAD)
        closed = False
        while entry in partner:
            other = partner[entry]
            if other[0] == index:
                closed = True
                entry = (index, HEAD)
                break
            entry = (other[0], 1 - other[1])

        points = []
        while entry[0] not in visited:
            visited.add(entry[0])
            part = polylines[entry[0]]
            if entry[1] == TAIL:
                part = part[::-1]
            for p in part:
                if not points or list(p) != list(points[-1]):
                    points.append(list(p))
            exit_end = (entry[0], 1 - entry[1])
            if exit_end not in partner:
                break
            entry = partner[exit_end]

        if closed and len(points) > 1 and points[0] == points[-1]:
            points.pop()
        result.append((points, closed and len(points) >= 3))

    return result


def join_polylines(polygons, config):
    """
    Connect open polylines whose ends lie within config.join_distance.

    Closed polygons pass through unchanged. Returns a new list of Polygon.
    """
    tracer = get_tracer()

    closed = [p for p in polygons if p.closed]
    open_lines = [p for p in polygons if not p.closed]
    if not open_lines:
        return list(polygons)

    polylines = [p.points for p in open_lines]
    if config.simple_connections_only:
        partner = _simple_partners(polylines, config)
    else:
        partner = _scored_partners(polylines, config)

    joined = [
        Polygon(points=points, closed=is_closed, is_hole=False)
        for points, is_closed in _assemble(polylines, partner)
    ]

    tracer.event(
        f"Joined {len(open_lines)} polylines into {len(joined)} "
        f"({len(partner) // 2} connections)"
    )
    return closed + joined
