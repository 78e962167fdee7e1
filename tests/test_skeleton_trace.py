"""Tests for skeleton graph construction and centerline tracing."""

import numpy as np
import pytest


class TestSkeletonGraph:
    """Tests for skeleton graph building."""

    def test_line_graph(self):
        """Test that a straight skeleton line is a simple path graph."""
        from mapvector.polygons.skeleton_trace import build_skeleton_graph

        skeleton = np.zeros((10, 20), dtype=bool)
        skeleton[5, 2:18] = True
        graph = build_skeleton_graph(skeleton)

        assert graph.number_of_nodes() == 16
        assert graph.number_of_edges() == 15
        degrees = sorted(d for _, d in graph.degree())
        assert degrees[:2] == [1, 1]

    def test_staircase_has_no_triangles(self):
        """Test that diagonal edges are skipped where a 4-neighbor path exists."""
        import networkx as nx
        from mapvector.polygons.skeleton_trace import build_skeleton_graph

        skeleton = np.zeros((6, 6), dtype=bool)
        skeleton[1, 1] = skeleton[1, 2] = skeleton[2, 2] = skeleton[2, 3] = True
        graph = build_skeleton_graph(skeleton)

        assert sum(nx.triangles(graph).values()) == 0
        assert graph.number_of_edges() == 3

    def test_edges_connect_neighbors(self, disk_mask):
        """Test that every edge joins 8-adjacent pixels."""
        from mapvector.morphology.engine import transform
        from mapvector.polygons.skeleton_trace import build_skeleton_graph

        graph = build_skeleton_graph(transform(disk_mask, "thinning_rosenfeld"))
        for u, v in graph.edges():
            assert abs(u[0] - v[0]) <= 1 and abs(u[1] - v[1]) <= 1


class TestTraceCenterlines:
    """Tests for polyline extraction."""

    def test_straight_line(self):
        """Test that a line becomes one open polyline on pixel centers."""
        from mapvector.polygons.skeleton_trace import trace_centerlines

        skeleton = np.zeros((10, 20), dtype=bool)
        skeleton[5, 2:18] = True
        result = trace_centerlines(skeleton)

        assert len(result.polygons) == 1
        polyline = result.polygons[0]
        assert not polyline.closed
        assert len(polyline.points) == 16
        assert polyline.points[0] == [2.5, 5.5]
        assert polyline.points[-1] == [17.5, 5.5]

    def test_closed_loop(self):
        """Test that a loop without ends becomes one closed polyline."""
        from mapvector.polygons.skeleton_trace import trace_centerlines

        skeleton = np.zeros((10, 10), dtype=bool)
        skeleton[2, 2:8] = True
        skeleton[7, 2:8] = True
        skeleton[2:8, 2] = True
        skeleton[2:8, 7] = True
        result = trace_centerlines(skeleton)

        assert len(result.polygons) == 1
        loop = result.polygons[0]
        assert loop.closed
        assert len(loop.points) == 20
        assert loop.points[0] != loop.points[-1]

    def test_t_junction(self):
        """Test that a T splits into three polylines meeting at the junction."""
        from mapvector.polygons.skeleton_trace import trace_centerlines

        skeleton = np.zeros((20, 30), dtype=bool)
        skeleton[10, 5:25] = True
        skeleton[3:10, 15] = True
        result = trace_centerlines(skeleton)

        assert len(result.polygons) == 3
        junction = [15.5, 10.5]
        for polyline in result.polygons:
            assert not polyline.closed
            assert junction in (polyline.points[0], polyline.points[-1])

    def test_empty_skeleton(self):
        """Test that an empty skeleton yields no polylines."""
        from mapvector.polygons.skeleton_trace import trace_centerlines

        result = trace_centerlines(np.zeros((5, 5), dtype=bool))
        assert result.polygons == []

    def test_interrupted(self):
        """Test that an interrupted trace returns None."""
        from mapvector.concurrency import Progress
        from mapvector.polygons.skeleton_trace import trace_centerlines

        skeleton = np.zeros((10, 20), dtype=bool)
        skeleton[5, 2:18] = True
        progress = Progress()
        progress.request_interruption()
        assert trace_centerlines(skeleton, progress=progress) is None
