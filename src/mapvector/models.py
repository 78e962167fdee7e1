"""
Pydantic data models for mapvector results.

Palettes, traced polygons and fitted curves flow between the stages as these
validated models, and the CLI exports them with model_dump.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SegmentTag(str, Enum):
    """Kind of a fitted curve segment."""
    CORNER = "corner"
    CURVE = "curve"


class PaletteEntry(BaseModel):
    """A single learned color of a palette."""
    color: List[int] = Field(..., min_length=3, max_length=3)  # r, g, b
    label: str = ""

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("color")
    @classmethod
    def _check_channels(cls, value):
        for channel in value:
            if channel < 0 or channel > 255:
                raise ValueError(f"color channel out of range: {channel}")
        return value

    @property
    def hex(self):
        r, g, b = self.color
        return f"#{r:02x}{g:02x}{b:02x}"


class Palette(BaseModel):
    """Ordered set of learned colors together with the metric used to compare them."""
    entries: List[PaletteEntry] = Field(default_factory=list)
    color_space: str = "rgb"
    p: float = 2.0

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check_unique_labels(self):
        labels = [e.label for e in self.entries]
        if len(set(labels)) != len(labels):
            raise ValueError(f"palette labels must be unique: {labels}")
        return self

    def __len__(self):
        return len(self.entries)

    @property
    def colors(self):
        return [tuple(e.color) for e in self.entries]


class Polygon(BaseModel):
    """
    A traced path of lattice points.

    Closure is implicit: the first point is not repeated at the end. Outer
    boundaries have positive shoelace area in image coordinates, holes
    negative.
    """
    points: List[List[float]] = Field(default_factory=list)
    closed: bool = True
    is_hole: bool = False

    model_config = ConfigDict(extra="forbid")

    @property
    def signed_area(self):
        return compute_signed_area(self.points) if self.closed else 0.0

    @property
    def bbox(self):
        return compute_bbox(self.points)


class PolygonList(BaseModel):
    """All polygons traced from one mask."""
    polygons: List[Polygon] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    width: int = 0
    height: int = 0

    model_config = ConfigDict(extra="forbid")


class CurveSegment(BaseModel):
    """
    One segment of a fitted curve, in potrace privcurve layout.

    For a corner c[0] is unused and c[1] is the vertex; for a curve c[0], c[1]
    are the Bezier control points. c[2] is always the segment end point.
    """
    tag: SegmentTag
    c: List[List[float]] = Field(..., min_length=3, max_length=3)
    vertex: List[float] = Field(..., min_length=2, max_length=2)
    alpha: float = 0.0
    alpha0: float = 0.0
    beta: float = 0.5

    model_config = ConfigDict(extra="forbid")

    @field_validator("alpha")
    @classmethod
    def _clamp_alpha(cls, value):
        if value != value:  # NaN
            return 0.0
        return min(1.0, max(0.0, value))


class PrivCurve(BaseModel):
    """A fitted curve: corner and curve segments in path order."""
    segments: List[CurveSegment] = Field(default_factory=list)
    closed: bool = True
    sign: str = "+"  # "+" outer boundary or open line, "-" hole

    model_config = ConfigDict(extra="forbid")

    @property
    def corner_count(self):
        return sum(1 for s in self.segments if s.tag == SegmentTag.CORNER)


class VectorizationResult(BaseModel):
    """Everything one pipeline run produces, ready for JSON export."""
    source_path: str = ""
    width: int
    height: int
    palette: Optional[Palette] = None
    selected_classes: List[int] = Field(default_factory=list)
    polygon_count: int = 0
    curves: List[PrivCurve] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


def compute_signed_area(points):
    """
    Shoelace area of a closed point list.

    Positive for paths running clockwise on screen (y grows downward).
    """
    n = len(points)
    if n < 3:
        return 0.0

    area = 0.0
    for i in range(n):
        x0, y0 = points[i][0], points[i][1]
        x1, y1 = points[(i + 1) % n][0], points[(i + 1) % n][1]
        area += x0 * y1 - x1 * y0
    return area / 2.0


def compute_bbox(points):
    """
    Compute bounding box from a list of [x, y] points.

    Returns [min_x, min_y, max_x, max_y].
    """
    if not points:
        return [0.0, 0.0, 0.0, 0.0]

    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return [min(xs), min(ys), max(xs), max(ys)]
