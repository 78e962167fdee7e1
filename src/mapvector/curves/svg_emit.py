"""
SVG emission for fitted curves.

Each PrivCurve becomes one path. Corners are drawn as two line segments
through the vertex, curve segments as cubic Beziers.
"""

import svgwrite

from mapvector.models import SegmentTag
from mapvector.tracer import get_tracer, trace


def _fmt(point):
    return f"{point[0]:.2f} {point[1]:.2f}"


def curve_to_svg_path(curve):
    """
    Convert a PrivCurve to an SVG path d attribute.

    Closed curves start at the end point of their last segment and finish
    with Z; open curves start at their first vertex.
    """
    segments = curve.segments
    if not segments:
        return ""

    parts = []
    if curve.closed:
        parts.append(f"M {_fmt(segments[-1].c[2])}")
    else:
        parts.append(f"M {_fmt(segments[0].vertex)}")

    for index, seg in enumerate(segments):
        if seg.tag == SegmentTag.CURVE:
            parts.append(f"C {_fmt(seg.c[0])} {_fmt(seg.c[1])} {_fmt(seg.c[2])}")
            continue
        if curve.closed or index > 0:
            parts.append(f"L {_fmt(seg.vertex)}")
        if seg.c[2] != seg.vertex:
            parts.append(f"L {_fmt(seg.c[2])}")

    if curve.closed:
        parts.append("Z")

    return " ".join(parts)


@trace(label="emit_curves_svg")
def emit_curves_svg(curves, width, height, output_config):
    """
    Create an SVG document containing all curves.

    With a fill color, the closed curves share one path under the even-odd
    rule so holes stay empty. Open curves are always stroked only.

    Returns an svgwrite.Drawing.
    """
    tracer = get_tracer()

    dwg = svgwrite.Drawing(size=(f"{width}px", f"{height}px"))
    dwg.viewbox(0, 0, width, height)

    dwg.defs.add(dwg.style("""
        .curve { stroke-linecap: round; stroke-linejoin: round; }
    """))

    group = dwg.g(id="curves", fill="none", stroke=output_config.stroke_color,
                  stroke_width=output_config.stroke_width, class_="curve")

    filled = output_config.fill_color not in (None, "", "none")
    closed_paths = []

    for index, curve in enumerate(curves):
        d = curve_to_svg_path(curve)
        if not d:
            continue
        if filled and curve.closed:
            closed_paths.append(d)
        else:
            group.add(dwg.path(d=d, id=f"curve-{index}"))

    if closed_paths:
        group.add(dwg.path(d=" ".join(closed_paths), id="filled",
                           fill=output_config.fill_color, fill_rule="evenodd"))

    dwg.add(group)

    tracer.event(f"SVG emitted with {len(curves)} curves")

    return dwg
