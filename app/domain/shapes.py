"""Per-shape outline construction.

One outline per frame serves as both the content clip and the visible
border. Outlines are svgpathtools paths so they can also be handed out as
SVG path data.
"""

import math
from typing import List, Optional, Tuple

from svgpathtools import Arc, Line, Path, QuadraticBezier

from app.delivery.schemas.body import FrameShape
from app.domain.geometry import Point, Rect, rotate_points

CURVE_SAMPLES = 24


def _rectangle(box: Rect) -> Path:
    x, y, w, h = box
    a, b, c, d = complex(x, y), complex(x + w, y), complex(x + w, y + h), complex(x, y + h)
    return Path(Line(a, b), Line(b, c), Line(c, d), Line(d, a))


def _rounded_rectangle(box: Rect, radius: float) -> Path:
    # The radius is not clamped to half the shorter side; oversized radii
    # give self-intersecting outlines.
    if radius <= 0:
        return _rectangle(box)
    x, y, w, h = box
    r = radius
    start = complex(x + r, y)
    segments = [
        Line(start, complex(x + w - r, y)),
        QuadraticBezier(complex(x + w - r, y), complex(x + w, y), complex(x + w, y + r)),
        Line(complex(x + w, y + r), complex(x + w, y + h - r)),
        QuadraticBezier(complex(x + w, y + h - r), complex(x + w, y + h), complex(x + w - r, y + h)),
        Line(complex(x + w - r, y + h), complex(x + r, y + h)),
        QuadraticBezier(complex(x + r, y + h), complex(x, y + h), complex(x, y + h - r)),
        Line(complex(x, y + h - r), complex(x, y + r)),
        QuadraticBezier(complex(x, y + r), complex(x, y), start),
    ]
    return Path(*segments)


def _circle(box: Rect) -> Path:
    x, y, w, h = box
    cx, cy = x + w / 2, y + h / 2
    r = min(w, h) / 2
    right, left = complex(cx + r, cy), complex(cx - r, cy)
    radius = complex(r, r)
    return Path(
        Arc(right, radius, 0, False, True, left),
        Arc(left, radius, 0, False, True, right),
    )


def polygon_vertices(box: Rect, sides: int) -> List[Point]:
    """Vertex i sits at angle i*2pi/N - pi/2, so vertex 0 points straight up."""
    x, y, w, h = box
    cx, cy = x + w / 2, y + h / 2
    r = min(w, h) / 2
    vertices = []
    for i in range(sides):
        angle = i * 2 * math.pi / sides - math.pi / 2
        vertices.append((cx + r * math.cos(angle), cy + r * math.sin(angle)))
    return vertices


def _polygon(box: Rect, sides: int) -> Path:
    pts = [complex(px, py) for px, py in polygon_vertices(box, sides)]
    return Path(*[Line(pts[i], pts[(i + 1) % len(pts)]) for i in range(len(pts))])


def frame_box(frame, scale: float = 1.0, origin: Optional[Tuple[float, float]] = None) -> Rect:
    """The frame's unrotated box in surface pixels.

    With `origin` the box is placed there instead (e.g. (0, 0) for a tile
    holding only this frame's content).
    """
    w, h = frame.width * scale, frame.height * scale
    if origin is None:
        return Rect(frame.x * scale, frame.y * scale, w, h)
    return Rect(origin[0], origin[1], w, h)


def shape_path(frame, scale: float = 1.0, origin: Optional[Tuple[float, float]] = None) -> Path:
    """Closed, unrotated outline of the frame's shape."""
    box = frame_box(frame, scale, origin)
    shape = FrameShape(frame.shape)
    if shape == FrameShape.ROUNDED_RECTANGLE:
        return _rounded_rectangle(box, frame.corner_radius * scale)
    if shape == FrameShape.CIRCLE:
        return _circle(box)
    if shape == FrameShape.POLYGON:
        return _polygon(box, frame.polygon_sides)
    return _rectangle(box)


def flatten(path: Path, samples: int = CURVE_SAMPLES) -> List[Point]:
    """Polyline through the path: line vertices exactly, curves sampled.

    The returned list repeats the start point at the end for a closed path.
    """
    points: List[complex] = []
    for segment in path:
        if isinstance(segment, Line):
            points.append(segment.start)
        else:
            points.extend(segment.point(i / samples) for i in range(samples))
    if len(path):
        points.append(path[-1].end)
    return [(p.real, p.imag) for p in points]


def outline_points(frame, scale: float = 1.0, origin: Optional[Tuple[float, float]] = None,
                   rotate: bool = True, samples: int = CURVE_SAMPLES) -> List[Point]:
    """Flattened outline, rotated by frame.rotation about the box center."""
    points = flatten(shape_path(frame, scale, origin), samples)
    if not rotate or frame.rotation % 360 == 0:
        return points
    box = frame_box(frame, scale, origin)
    center = (box.x + box.width / 2, box.y + box.height / 2)
    return [(float(px), float(py)) for px, py in rotate_points(points, center, frame.rotation)]


def svg_path_data(frame) -> str:
    return shape_path(frame).d()
