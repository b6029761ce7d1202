"""Rotation math, bounding boxes and the design-space/screen-space mapping.

Pure functions only. Angles are in degrees; the y axis points down, so a
positive angle turns clockwise on screen.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, NamedTuple, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

Point = Tuple[float, float]


class Bounds(NamedTuple):
    min_x: float
    max_x: float
    min_y: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


class Rect(NamedTuple):
    x: float
    y: float
    width: float
    height: float


def normalize_angle(angle: float) -> float:
    """Map any angle into [0, 360)."""
    result = angle % 360.0
    # -1e-17 % 360 == 360.0 in floating point
    return 0.0 if result >= 360.0 else result


def rotate_point(p: Point, center: Point, angle_deg: float) -> Point:
    rad = math.radians(angle_deg)
    cos_a, sin_a = math.cos(rad), math.sin(rad)
    dx, dy = p[0] - center[0], p[1] - center[1]
    return (center[0] + dx * cos_a - dy * sin_a, center[1] + dx * sin_a + dy * cos_a)


def rotate_points(points: Sequence[Point] | NDArray[np.float64], center: Point, angle_deg: float) -> NDArray[np.float64]:
    """Vectorised rotate_point for an (N, 2) point set."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if angle_deg % 360.0 == 0.0:
        return pts.copy()
    rad = math.radians(angle_deg)
    rot = np.array([[math.cos(rad), -math.sin(rad)], [math.sin(rad), math.cos(rad)]])
    c = np.asarray(center, dtype=np.float64)
    return (pts - c) @ rot.T + c


def frame_center(frame) -> Point:
    return (frame.x + frame.width / 2, frame.y + frame.height / 2)


def box_corners(x: float, y: float, width: float, height: float) -> list[Point]:
    """Axis-aligned corners, clockwise from top-left."""
    return [(x, y), (x + width, y), (x + width, y + height), (x, y + height)]


def rotated_corners(frame) -> list[Point]:
    """The frame's four corners rotated about its own center by frame.rotation."""
    corners = box_corners(frame.x, frame.y, frame.width, frame.height)
    rotated = rotate_points(corners, frame_center(frame), frame.rotation)
    return [(float(px), float(py)) for px, py in rotated]


def axis_aligned_bounds(points: Iterable[Point]) -> Bounds:
    pts = np.asarray(list(points), dtype=np.float64).reshape(-1, 2)
    if len(pts) == 0:
        return Bounds(0.0, 0.0, 0.0, 0.0)
    return Bounds(
        float(np.min(pts[:, 0])),
        float(np.max(pts[:, 0])),
        float(np.min(pts[:, 1])),
        float(np.max(pts[:, 1])),
    )


def to_local(p: Point, frame) -> Point:
    """Inverse-rotate a design-space point into the frame's unrotated space."""
    return rotate_point(p, frame_center(frame), -frame.rotation)


def distance(a: Point, b: Point) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def fit_rect(content_size: Tuple[float, float], box_size: Tuple[float, float]) -> Rect:
    """Aspect-fit `content_size` inside `box_size`, centered (letterboxed)."""
    cw, ch = content_size
    bw, bh = box_size
    if cw <= 0 or ch <= 0:
        return Rect(0.0, 0.0, float(bw), float(bh))
    content_ratio = cw / ch
    box_ratio = bw / bh
    if content_ratio > box_ratio:
        # wider than the box: fit to width
        w, h = float(bw), bw / content_ratio
        return Rect(0.0, (bh - h) / 2, w, h)
    w, h = bh * content_ratio, float(bh)
    return Rect((bw - w) / 2, 0.0, w, h)


@dataclass(frozen=True)
class DesignSpace:
    """The fixed logical canvas frames are defined in."""

    width: float = 1200
    height: float = 800

    @property
    def center(self) -> Point:
        return (self.width / 2, self.height / 2)

    def background_rect(self, image_size: Tuple[float, float]) -> Rect:
        return fit_rect(image_size, (self.width, self.height))

    def pixel_size(self, scale: float) -> Tuple[int, int]:
        return (int(round(self.width * scale)), int(round(self.height * scale)))


MIN_ZOOM = 0.1
MAX_ZOOM = 3.0
ZOOM_STEP = 1.2


@dataclass
class Viewport:
    """Zoom/pan state mapping screen pixels onto the design space.

    screen = (design + pan) * display_scale * zoom
    """

    zoom: float = 1.0
    display_scale: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0

    @property
    def factor(self) -> float:
        return self.display_scale * self.zoom

    def to_design(self, p: Point) -> Point:
        return (p[0] / self.factor - self.pan_x, p[1] / self.factor - self.pan_y)

    def to_screen(self, p: Point) -> Point:
        return ((p[0] + self.pan_x) * self.factor, (p[1] + self.pan_y) * self.factor)

    def zoom_in(self) -> None:
        self.zoom = min(self.zoom * ZOOM_STEP, MAX_ZOOM)

    def zoom_out(self) -> None:
        self.zoom = max(self.zoom / ZOOM_STEP, MIN_ZOOM)

    def reset_zoom(self) -> None:
        self.zoom = 1.0

    def fit_to(self, available_width: float, available_height: float, design: DesignSpace, padding: float = 64) -> None:
        """Pick the display scale that fits the design space in a container."""
        if available_width < 100 or available_height < 100:
            return
        scale_x = (available_width - padding) / design.width
        scale_y = (available_height - padding) / design.height
        self.display_scale = max(0.2, min(scale_x, scale_y, 1.0))


# Resize handles in drawing order, clockwise from the top-left corner.
HANDLE_NAMES = ("nw", "n", "ne", "e", "se", "s", "sw", "w")


def handle_anchors(frame) -> dict[str, Point]:
    """Resize handle anchors on the frame's unrotated box."""
    x, y, w, h = frame.x, frame.y, frame.width, frame.height
    return {
        "nw": (x, y),
        "n": (x + w / 2, y),
        "ne": (x + w, y),
        "e": (x + w, y + h / 2),
        "se": (x + w, y + h),
        "s": (x + w / 2, y + h),
        "sw": (x, y + h),
        "w": (x, y + h / 2),
    }


def rotate_handle_anchor(frame, offset: float) -> Point:
    """Rotate grip, `offset` units above the top edge of the unrotated box."""
    return (frame.x + frame.width / 2, frame.y - offset)
