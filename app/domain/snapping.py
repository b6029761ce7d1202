"""Grid and inter-frame alignment snapping for frame drags."""

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from app.config.settings import settings
from app.delivery.schemas.body import GuideLine
from app.domain.geometry import DesignSpace


@dataclass
class SnapResult:
    x: float
    y: float
    guide_lines: List[GuideLine] = field(default_factory=list)


@dataclass
class _Match:
    value: float      # snapped top-left coordinate on this axis
    line: float       # where the guide is drawn
    distance: float


def snap_to_grid(value: float, grid_size: float) -> float:
    """Nearest multiple of grid_size, halves rounding up."""
    if grid_size <= 0 or not math.isfinite(value):
        return value
    return math.floor(value / grid_size + 0.5) * grid_size


_ALIGNED_EPS = 1e-9


def _anchors(start: float, size: float) -> List[Tuple[float, float]]:
    return [(start, 0.0), (start + size, -size), (start + size / 2, -size / 2)]


def _aligned(anchors: List[Tuple[float, float]], targets: Iterable[float]) -> bool:
    return any(abs(position - target) <= _ALIGNED_EPS for target in targets for position, _ in anchors)


class SnapEngine:
    """Snaps a dragged frame's top-left corner.

    Grid snapping runs first; a frame alignment match within the threshold
    then overrides the grid value on that axis. When several targets match,
    the nearest wins and equal distances keep the later candidate. An axis
    that already sits on a target is not grid-rounded, which keeps
    snap(snap(p)) == snap(p).
    """

    def __init__(self, grid_size: float = settings.GRID_SIZE, fine_grid_size: float = settings.FINE_GRID_SIZE,
                 threshold: float = settings.SNAP_THRESHOLD, design: Optional[DesignSpace] = None,
                 snap_to_canvas_center: bool = True):
        self.grid_size = grid_size
        self.fine_grid_size = fine_grid_size
        self.threshold = threshold
        self.design = design or DesignSpace(settings.CANVAS_WIDTH, settings.CANVAS_HEIGHT)
        self.snap_to_canvas_center = snap_to_canvas_center

    def active_grid(self, fine: bool = False) -> float:
        return self.fine_grid_size if fine else self.grid_size

    def _best(self, anchors: List[Tuple[float, float]], targets: Iterable[float]) -> Optional[_Match]:
        # anchors: (position on the moving frame, offset back to its top-left)
        best = None
        for target in targets:
            for position, offset in anchors:
                d = abs(position - target)
                if d < self.threshold and (best is None or d <= best.distance):
                    best = _Match(value=target + offset, line=target, distance=d)
        return best

    def snap(self, x: float, y: float, width: float, height: float, frames: Iterable = (),
             exclude_id: Optional[str] = None, use_grid: bool = True, fine: bool = False) -> SnapResult:
        x_targets: List[float] = []
        y_targets: List[float] = []
        for frame in frames:
            if frame.id == exclude_id or not frame.visible:
                continue
            x_targets += [frame.x, frame.x + frame.width, frame.x + frame.width / 2]
            y_targets += [frame.y, frame.y + frame.height, frame.y + frame.height / 2]
        if self.snap_to_canvas_center:
            x_targets.append(self.design.width / 2)
            y_targets.append(self.design.height / 2)

        if use_grid:
            grid = self.active_grid(fine)
            if not _aligned(_anchors(x, width), x_targets):
                x = snap_to_grid(x, grid)
            if not _aligned(_anchors(y, height), y_targets):
                y = snap_to_grid(y, grid)

        result = SnapResult(x, y)
        x_match = self._best(_anchors(x, width), x_targets)
        if x_match is not None:
            if x_match.distance > _ALIGNED_EPS:
                result.x = x_match.value
            result.guide_lines.append(GuideLine(orientation="vertical", position=x_match.line))
        y_match = self._best(_anchors(y, height), y_targets)
        if y_match is not None:
            if y_match.distance > _ALIGNED_EPS:
                result.y = y_match.value
            result.guide_lines.append(GuideLine(orientation="horizontal", position=y_match.line))
        return result
