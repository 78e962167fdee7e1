"""Tests for potrace-style curve fitting and SVG export of curves."""

import numpy as np
import pytest


def _line(points):
    from mapvector.models import Polygon
    return Polygon(points=[list(p) for p in points], closed=False)


class TestStraightSubpaths:
    """Tests for the straight-line reach computations."""

    def test_lattice_detection(self):
        """Test that only closed unit-step integer paths count as lattice paths."""
        from mapvector.curves.potrace_fit import is_lattice_path

        square = [(0, 0), (1, 0), (1, 1), (0, 1)]
        assert is_lattice_path(square)
        assert not is_lattice_path([(0.5, 0.5), (1.5, 0.5), (1.5, 1.5), (0.5, 1.5)])
        assert not is_lattice_path([(0, 0), (1, 1), (0, 2), (-1, 1)])

    def test_corridor_reach_straight(self):
        """Test that collinear points are reachable end to end."""
        from mapvector.curves.potrace_fit import corridor_reach

        points = [(float(x), 0.0) for x in range(10)]
        reach = corridor_reach(points, closed=False)
        assert reach[0] == 9
        assert all(r == 9 for r in reach)

    def test_corridor_reach_stops_at_corner(self):
        """Test that a right angle limits the reach."""
        from mapvector.curves.potrace_fit import corridor_reach

        points = [(float(x), 0.0) for x in range(6)] + [(5.0, float(y)) for y in range(1, 6)]
        reach = corridor_reach(points, closed=False)
        assert reach[0] == 5
        assert reach[5] == 10

    def test_reach_moves_forward(self, disk_mask):
        """Test that every start position reaches further along the path."""
        from mapvector.curves.potrace_fit import calc_lon, clip_from_lon, corridor_reach
        from mapvector.polygons.boundary_trace import trace

        points = [tuple(p) for p in trace(disk_mask).polygons[0].points]
        n = len(points)
        for clip in (clip_from_lon(calc_lon(points)), corridor_reach(points, closed=True)):
            assert len(clip) == n
            assert all(i < clip[i] <= n for i in range(n))

        corridor = corridor_reach(points, closed=True)
        assert all(corridor[i] <= corridor[i + 1] for i in range(n - 1))


class TestFit:
    """Tests for fitting polygons with corners and curves."""

    def test_rectangle_has_four_corners(self, rectangle_mask):
        """Test that a rectangle fits as four corners at its lattice corners."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit
        from mapvector.models import SegmentTag
        from mapvector.polygons.boundary_trace import trace

        polygon = trace(rectangle_mask).polygons[0]
        curve = fit(polygon, VectorizationConfig())

        assert curve.closed
        assert curve.sign == "+"
        assert len(curve.segments) == 4
        assert all(s.tag == SegmentTag.CORNER for s in curve.segments)
        vertices = sorted(tuple(s.vertex) for s in curve.segments)
        assert vertices == [(8, 5), (8, 25), (32, 5), (32, 25)]

    def test_disk_fits_with_curves(self, disk_mask):
        """Test that a disk is fitted with smooth segments and no corners."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit
        from mapvector.models import SegmentTag
        from mapvector.polygons.boundary_trace import trace

        polygon = trace(disk_mask).polygons[0]
        curve = fit(polygon, VectorizationConfig())

        assert curve.corner_count == 0
        assert all(s.tag == SegmentTag.CURVE for s in curve.segments)
        for seg in curve.segments:
            assert 0.0 <= seg.alpha <= 1.0
            cx, cy = seg.c[2]
            assert abs(np.hypot(cx - 20.5, cy - 20.5) - 15.5) < 1.5

    def test_optimization_reduces_segments(self, disk_mask):
        """Test that curve optimization merges segments of a smooth outline."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit
        from mapvector.polygons.boundary_trace import trace

        polygon = trace(disk_mask).polygons[0]
        plain = fit(polygon, VectorizationConfig(optimize_curves=False))
        optimized = fit(polygon, VectorizationConfig(optimize_curves=True))

        assert len(optimized.segments) < len(plain.segments)

    def test_corner_min_one_makes_all_corners(self, disk_mask):
        """Test that the highest threshold turns every vertex into a corner."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit
        from mapvector.polygons.boundary_trace import trace

        polygon = trace(disk_mask).polygons[0]
        curve = fit(polygon, VectorizationConfig(corner_min=1.0))
        assert curve.corner_count == len(curve.segments)

    def test_hole_sign(self, ring_mask):
        """Test that holes keep their sign."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit
        from mapvector.polygons.boundary_trace import trace

        hole = [p for p in trace(ring_mask).polygons if p.is_hole][0]
        assert fit(hole, VectorizationConfig()).sign == "-"

    def test_speckle_dropped(self):
        """Test that polygons with too few points are dropped."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit
        from mapvector.polygons.boundary_trace import trace

        mask = np.zeros((5, 5), dtype=bool)
        mask[2, 2] = True
        polygon = trace(mask).polygons[0]

        assert fit(polygon, VectorizationConfig(speckle_size=5)) is None
        assert fit(polygon, VectorizationConfig(speckle_size=4)) is not None

    def test_zero_area_dropped(self):
        """Test that a degenerate closed polygon yields no curve."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit
        from mapvector.models import Polygon

        flat = Polygon(points=[[0, 0], [1, 0], [2, 0], [3, 0], [2, 0], [1, 0]])
        assert fit(flat, VectorizationConfig()) is None

    def test_open_line_ends_are_corners(self):
        """Test that an open straight line fits as two end corners."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit
        from mapvector.models import SegmentTag

        line = _line([(x + 0.5, 5.5) for x in range(2, 18)])
        curve = fit(line, VectorizationConfig())

        assert not curve.closed
        assert len(curve.segments) == 2
        assert all(s.tag == SegmentTag.CORNER for s in curve.segments)
        assert curve.segments[0].vertex == [2.5, 5.5]
        assert curve.segments[-1].vertex == [17.5, 5.5]

    def test_open_l_shape(self):
        """Test that an L-shaped polyline keeps its bend as a corner."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit

        points = [(x + 0.5, 0.5) for x in range(11)] + [(10.5, y + 0.5) for y in range(1, 11)]
        curve = fit(_line(points), VectorizationConfig())

        assert len(curve.segments) == 3
        assert curve.corner_count == 3
        assert curve.segments[1].vertex == pytest.approx([10.5, 0.5])

    def test_fit_polygons_interrupted(self, rectangle_mask):
        """Test that fitting checks for interruption."""
        from mapvector.concurrency import Progress
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit_polygons
        from mapvector.polygons.boundary_trace import trace

        progress = Progress()
        progress.request_interruption()
        polygons = trace(rectangle_mask)
        assert fit_polygons(polygons, VectorizationConfig(), progress=progress) is None

    def test_fit_polygons_counts(self, ring_mask):
        """Test that every polygon of a list is fitted."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit_polygons
        from mapvector.polygons.boundary_trace import trace

        curves = fit_polygons(trace(ring_mask), VectorizationConfig())
        assert len(curves) == 2
        assert sorted(c.sign for c in curves) == ["+", "-"]


class TestSvg:
    """Tests for SVG output of fitted curves."""

    def test_closed_path_syntax(self, rectangle_mask):
        """Test that a closed curve becomes a closed path of line segments."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit
        from mapvector.curves.svg_emit import curve_to_svg_path
        from mapvector.polygons.boundary_trace import trace

        curve = fit(trace(rectangle_mask).polygons[0], VectorizationConfig())
        d = curve_to_svg_path(curve)

        assert d.startswith("M ")
        assert d.endswith("Z")
        assert "C" not in d
        assert d.count("L") == 8

    def test_curve_segments_use_cubic(self, disk_mask):
        """Test that smooth segments are written as cubic Beziers."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit
        from mapvector.curves.svg_emit import curve_to_svg_path
        from mapvector.polygons.boundary_trace import trace

        curve = fit(trace(disk_mask).polygons[0], VectorizationConfig())
        d = curve_to_svg_path(curve)
        assert d.count("C") == len(curve.segments)

    def test_open_path(self):
        """Test that an open curve starts at its first vertex and is not closed."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit
        from mapvector.curves.svg_emit import curve_to_svg_path

        curve = fit(_line([(x + 0.5, 5.5) for x in range(2, 18)]), VectorizationConfig())
        d = curve_to_svg_path(curve)

        assert d.startswith("M 2.50 5.50")
        assert d.rstrip().endswith("17.50 5.50")
        assert "Z" not in d

    def test_emit_document(self, rectangle_mask, default_config):
        """Test that the SVG document has one path per curve."""
        from mapvector.curves.potrace_fit import fit_polygons
        from mapvector.curves.svg_emit import emit_curves_svg
        from mapvector.polygons.boundary_trace import trace

        curves = fit_polygons(trace(rectangle_mask), default_config.vectorization)
        dwg = emit_curves_svg(curves, 40, 32, default_config.output)
        text = dwg.tostring()

        assert text.count("<path") == 1
        assert "viewBox" in text

    def test_emit_filled_uses_evenodd(self, ring_mask, default_config):
        """Test that filled output joins closed curves under the even-odd rule."""
        from mapvector.curves.potrace_fit import fit_polygons
        from mapvector.curves.svg_emit import emit_curves_svg
        from mapvector.polygons.boundary_trace import trace

        default_config.output.fill_color = "#336699"
        curves = fit_polygons(trace(ring_mask), default_config.vectorization)
        text = emit_curves_svg(curves, 30, 30, default_config.output).tostring()

        assert text.count("<path") == 1
        assert "evenodd" in text
        assert text.count("Z") == 2


class TestNumericTypes:
    """Tests that geometry works on numpy scalars as well as plain floats."""

    def test_small_square_fits(self):
        """Test that a 10x10 square fits to four plain float corners."""
        from mapvector.config import VectorizationConfig
        from mapvector.curves.potrace_fit import fit
        from mapvector.polygons.boundary_trace import trace

        mask = np.zeros((14, 14), dtype=bool)
        mask[2:12, 2:12] = True

        curve = fit(trace(mask).polygons[0], VectorizationConfig(corner_min=0.25))

        assert curve is not None
        assert curve.corner_count == 4
        for segment in curve.segments:
            assert all(type(c) is float for c in segment.vertex)

    def test_adjusted_vertices_are_floats(self, disk_mask):
        """Test that adjusted vertices never carry numpy scalars."""
        from mapvector.curves.potrace_fit import (
            _FitPath, adjust_vertices, best_polygon, calc_lon, clip_from_lon,
        )
        from mapvector.polygons.boundary_trace import trace

        points = [(float(p[0]), float(p[1])) for p in trace(disk_mask).polygons[0].points]
        path = _FitPath(points, closed=True)
        po = best_polygon(path, clip_from_lon(calc_lon(points)))

        vertices = adjust_vertices(path, po)
        assert all(type(c) is float for v in vertices for c in v)

    def test_smoothness_accepts_numpy_scalars(self):
        """Test that vertex smoothness takes numpy float coordinates."""
        from mapvector.curves.potrace_fit import vertex_smoothness

        prev_v = (np.float64(0.0), np.float64(0.0))
        v = (np.float64(5.0), np.float64(0.5))
        next_v = (np.float64(10.0), np.float64(0.0))

        alpha0, smoothness = vertex_smoothness(prev_v, v, next_v)
        assert np.isfinite(alpha0)
        assert smoothness <= 1.0
