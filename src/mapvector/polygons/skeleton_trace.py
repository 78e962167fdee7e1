"""
Centerline tracing of 1-pixel skeletons for line features.

Builds a pixel graph of the skeleton, then walks every chain of pixels
between end points and junctions. Isolated loops become closed polylines.
Points sit on pixel centers.
"""

import cv2
import networkx as nx
import numpy as np

from mapvector.concurrency import ensure_progress
from mapvector.io.save_artifacts import draw_overlay
from mapvector.models import Polygon, PolygonList
from mapvector.tracer import get_tracer, trace


NEIGHBORS_4 = [(-1, 0), (0, -1), (0, 1), (1, 0)]
DIAGONALS = [(-1, -1), (-1, 1), (1, -1), (1, 1)]


@trace(label="build_skeleton_graph")
def build_skeleton_graph(skeleton):
    """
    Graph with a node per skeleton pixel, keyed (y, x).

    Pixels are 8-connected, but a diagonal edge is left out when both pixels
    already share a 4-neighbor, so a staircase does not form triangles.
    """
    tracer = get_tracer()
    graph = nx.Graph()
    height, width = skeleton.shape
    ys, xs = np.nonzero(skeleton)

    for y, x in zip(ys.tolist(), xs.tolist()):
        graph.add_node((y, x))

    for y, x in zip(ys.tolist(), xs.tolist()):
        for dy, dx in NEIGHBORS_4:
            ny, nx_coord = y + dy, x + dx
            if 0 <= ny < height and 0 <= nx_coord < width and skeleton[ny, nx_coord]:
                graph.add_edge((y, x), (ny, nx_coord))
        for dy, dx in DIAGONALS:
            ny, nx_coord = y + dy, x + dx
            if not (0 <= ny < height and 0 <= nx_coord < width and skeleton[ny, nx_coord]):
                continue
            if skeleton[y, nx_coord] or skeleton[ny, x]:
                continue
            graph.add_edge((y, x), (ny, nx_coord))

    tracer.event(f"Graph: nodes={graph.number_of_nodes()}, edges={graph.number_of_edges()}")
    return graph


def _trace_path(graph, start, next_node, special_nodes, visited_edges):
    """
    Walk from start through next_node until a special node or a visited edge.

    Marks the walked edges as visited.
    """
    path = [start]
    current = start
    next_n = next_node

    while True:
        edge = tuple(sorted([current, next_n]))
        if edge in visited_edges:
            break

        visited_edges.add(edge)
        path.append(next_n)

        if next_n in special_nodes:
            break

        neighbors = [n for n in graph.neighbors(next_n) if n != current]
        if len(neighbors) != 1:
            break
        current = next_n
        next_n = neighbors[0]

    return path


def _to_polygon(path):
    closed = len(path) > 3 and path[0] == path[-1]
    if closed:
        path = path[:-1]
    points = [[x + 0.5, y + 0.5] for y, x in path]
    return Polygon(points=points, closed=closed, is_hole=False)


@trace(label="trace_centerlines")
def trace_centerlines(skeleton, progress=None, debug_writer=None):
    """
    Trace open and closed polylines along a skeleton mask.

    Returns a PolygonList, or None if interrupted.
    """
    tracer = get_tracer()
    progress = ensure_progress(progress)
    skeleton = np.asarray(skeleton, dtype=bool)
    height, width = skeleton.shape
    result = PolygonList(width=width, height=height)

    graph = build_skeleton_graph(skeleton)
    endpoints = sorted(n for n in graph.nodes() if graph.degree(n) == 1)
    junctions = sorted(n for n in graph.nodes() if graph.degree(n) >= 3)
    special_nodes = set(endpoints) | set(junctions)
    visited_edges = set()
    total_edges = max(graph.number_of_edges(), 1)

    with tracer.span("trace_paths", module="skeleton_trace"):
        for start_node in endpoints + junctions:
            for neighbor in sorted(graph.neighbors(start_node)):
                if progress.is_interruption_requested():
                    return None
                edge = tuple(sorted([start_node, neighbor]))
                if edge in visited_edges:
                    continue

                path = _trace_path(graph, start_node, neighbor, special_nodes, visited_edges)
                if len(path) >= 2:
                    result.polygons.append(_to_polygon(path))
                progress.set_percentage(100 * len(visited_edges) // total_edges)

        # components without end points or junctions are pure loops
        for start_node in sorted(graph.nodes()):
            if progress.is_interruption_requested():
                return None
            for neighbor in sorted(graph.neighbors(start_node)):
                edge = tuple(sorted([start_node, neighbor]))
                if edge in visited_edges:
                    continue
                path = _trace_path(graph, start_node, neighbor, {start_node}, visited_edges)
                if len(path) >= 2:
                    result.polygons.append(_to_polygon(path))

    progress.set_percentage(100)
    closed = sum(1 for p in result.polygons if p.closed)
    tracer.event(
        f"Polylines: count={len(result.polygons)}, closed={closed}, "
        f"endpoints={len(endpoints)}, junctions={len(junctions)}"
    )

    if debug_writer:
        overlay_img = cv2.cvtColor(skeleton.astype(np.uint8) * 255, cv2.COLOR_GRAY2RGB)
        overlay = draw_overlay(
            overlay_img,
            polylines=[p.points for p in result.polygons],
            points=[((x, y), 2) for y, x in endpoints],
        )
        debug_writer.save_image(overlay, "polygons", "01_centerlines_overlay.png")
        debug_writer.save_json(
            {
                "num_polylines": len(result.polygons),
                "num_closed": closed,
                "num_endpoints": len(endpoints),
                "num_junctions": len(junctions),
            },
            "polygons",
            "centerline_metrics.json",
        )

    return result
