"""Pointer/keyboard driven editing session.

The session owns the frame list, the selection and at most one active
gesture. Gestures keep a snapshot of the frame and the pointer at gesture
start; every move recomputes the frame from that snapshot instead of
accumulating into the live record.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union

from PIL import Image

from app.config.settings import settings
from app.delivery.schemas.body import Frame, GuideLine, RenderOptions
from app.domain.frames import FrameList, State
from app.domain.geometry import (
    HANDLE_NAMES,
    Point,
    Viewport,
    distance,
    frame_center,
    handle_anchors,
    normalize_angle,
    rotate_handle_anchor,
    to_local,
)
from app.domain.renderer import SceneRenderer
from app.domain.snapping import SnapEngine

logger = logging.getLogger(__name__)

MIDDLE_BUTTON = 1
NUDGE_STEP = 1
NUDGE_STEP_LARGE = 10
ROTATE_STEP = 5
ROTATE_STEP_LARGE = 15


class GestureState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RESIZING = "resizing"
    ROTATING = "rotating"
    PANNING = "panning"


class InteractionMode(str, Enum):
    SELECT = "select"
    PAN = "pan"


@dataclass(frozen=True)
class Snapshot:
    frame: Frame       # geometry at gesture start
    pointer: Point     # design-space pointer at gesture start


@dataclass(frozen=True)
class Dragging:
    snapshot: Snapshot
    before: State


@dataclass(frozen=True)
class Resizing:
    snapshot: Snapshot
    handle: str
    before: State


@dataclass(frozen=True)
class Rotating:
    snapshot: Snapshot
    before: State


@dataclass(frozen=True)
class Panning:
    pointer: Point     # screen-space pointer at gesture start
    pan: Tuple[float, float]


ActiveGesture = Optional[Union[Dragging, Resizing, Rotating, Panning]]


@dataclass(frozen=True)
class Hit:
    frame: Frame
    target: str        # "body", "rotate" or a resize handle name


def resize_geometry(start: Frame, handle: str, dx: float, dy: float, min_size: float) -> dict:
    """New x/y/width/height for a resize drag; the opposite edge stays fixed."""
    x, y, width, height = start.x, start.y, start.width, start.height
    if "e" in handle:
        width = max(min_size, start.width + dx)
    if "w" in handle:
        width = max(min_size, start.width - dx)
        x = start.x + start.width - width
    if "s" in handle:
        height = max(min_size, start.height + dy)
    if "n" in handle:
        height = max(min_size, start.height - dy)
        y = start.y + start.height - height
    return {"x": x, "y": y, "width": width, "height": height}


def rotation_towards(center: Point, pointer: Point) -> float:
    angle = math.degrees(math.atan2(pointer[1] - center[1], pointer[0] - center[0]))
    return normalize_angle(angle)


class EditorSession:
    def __init__(self, frames: Optional[FrameList] = None, viewport: Optional[Viewport] = None,
                 snapper: Optional[SnapEngine] = None, renderer: Optional[SceneRenderer] = None,
                 read_only: bool = False, clamp_to_canvas: bool = True):
        self.frames = frames if frames is not None else FrameList()
        self.viewport = viewport or Viewport()
        self.snapper = snapper or SnapEngine(design=self.frames.design)
        self.renderer = renderer
        self.read_only = read_only
        self.clamp_to_canvas = clamp_to_canvas

        self.selected_id: Optional[str] = None
        self.gesture: ActiveGesture = None
        self.guide_lines: List[GuideLine] = []
        self.mode = InteractionMode.SELECT
        self.grid_enabled = True
        self.fine_grid = False
        self.snapping_enabled = True
        self.show_grid = False
        self.show_guides = True

        self.handle_radius = settings.HANDLE_HIT_RADIUS
        self.rotate_offset = settings.ROTATE_HANDLE_OFFSET
        self.min_size = settings.MIN_FRAME_SIZE

    @property
    def state(self) -> GestureState:
        if isinstance(self.gesture, Dragging):
            return GestureState.DRAGGING
        if isinstance(self.gesture, Resizing):
            return GestureState.RESIZING
        if isinstance(self.gesture, Rotating):
            return GestureState.ROTATING
        if isinstance(self.gesture, Panning):
            return GestureState.PANNING
        return GestureState.IDLE

    @property
    def selected(self) -> Optional[Frame]:
        return self.frames.find(self.selected_id)

    def select(self, frame_id: Optional[str]) -> None:
        if frame_id is not None:
            self.frames.get(frame_id)
        self.selected_id = frame_id

    # --- hit testing ---

    def _handle_at(self, frame: Frame, p: Point, include_rotate: bool) -> Optional[str]:
        local = to_local(p, frame)
        if include_rotate and distance(local, rotate_handle_anchor(frame, self.rotate_offset)) <= self.handle_radius:
            return "rotate"
        anchors = handle_anchors(frame)
        for name in HANDLE_NAMES:
            if distance(local, anchors[name]) <= self.handle_radius:
                return name
        return None

    @staticmethod
    def _inside(frame: Frame, p: Point) -> bool:
        lx, ly = to_local(p, frame)
        return frame.x <= lx <= frame.x + frame.width and frame.y <= ly <= frame.y + frame.height

    def hit_test(self, p: Point) -> Optional[Hit]:
        """Topmost interactive target under a design-space point.

        The pointer is inverse-rotated into each frame's local space, so body,
        resize handles and the rotate grip all follow the frame's rotation.
        Hidden and locked frames are skipped. Never raises.
        """
        if not all(math.isfinite(v) for v in p):
            return None
        selected = self.selected
        if selected is not None and selected.visible and not selected.locked:
            handle = self._handle_at(selected, p, include_rotate=True)
            if handle is not None:
                return Hit(selected, handle)
        for frame in reversed(self.frames.frames):
            if not frame.visible or frame.locked:
                continue
            handle = self._handle_at(frame, p, include_rotate=False)
            if handle is not None:
                return Hit(frame, handle)
            if self._inside(frame, p):
                return Hit(frame, "body")
        return None

    # --- pointer events ---

    def pointer_down(self, screen_x: float, screen_y: float, button: int = 0) -> GestureState:
        if self.read_only:
            return self.state
        if self.mode == InteractionMode.PAN or button == MIDDLE_BUTTON:
            self.gesture = Panning(pointer=(screen_x, screen_y), pan=(self.viewport.pan_x, self.viewport.pan_y))
            return self.state

        p = self.viewport.to_design((screen_x, screen_y))
        hit = self.hit_test(p)
        if hit is None:
            self.selected_id = None
            self.gesture = None
            return self.state

        snapshot = Snapshot(frame=hit.frame, pointer=p)
        before = self.frames.state()
        if hit.target == "rotate":
            self.gesture = Rotating(snapshot, before)
        elif hit.target == "body":
            self.gesture = Dragging(snapshot, before)
        else:
            self.gesture = Resizing(snapshot, hit.target, before)
        self.selected_id = hit.frame.id
        logger.debug(f"{self.state.value} frame {hit.frame.id}")
        return self.state

    def pointer_move(self, screen_x: float, screen_y: float, alt: bool = False, ctrl: bool = False) -> Optional[Frame]:
        """Apply the active gesture; returns the updated frame, if any.

        Alt disables grid snapping, Ctrl disables all snapping while dragging.
        """
        gesture = self.gesture
        if gesture is None:
            return None
        if isinstance(gesture, Panning):
            factor = self.viewport.factor
            self.viewport.pan_x = gesture.pan[0] + (screen_x - gesture.pointer[0]) / factor
            self.viewport.pan_y = gesture.pan[1] + (screen_y - gesture.pointer[1]) / factor
            return None

        p = self.viewport.to_design((screen_x, screen_y))
        if not all(math.isfinite(v) for v in p):
            return None
        start = gesture.snapshot.frame
        dx = p[0] - gesture.snapshot.pointer[0]
        dy = p[1] - gesture.snapshot.pointer[1]

        if isinstance(gesture, Dragging):
            changes = self._drag(start, start.x + dx, start.y + dy, use_grid=not alt, snapping=self.snapping_enabled and not ctrl)
        elif isinstance(gesture, Resizing):
            changes = resize_geometry(start, gesture.handle, dx, dy, self.min_size)
        else:
            changes = {"rotation": rotation_towards(frame_center(start), p)}

        updated = start.model_copy(update=changes)
        return self.frames.replace(updated)

    def _drag(self, start: Frame, x: float, y: float, use_grid: bool, snapping: bool) -> dict:
        if snapping:
            snapped = self.snapper.snap(
                x, y, start.width, start.height, self.frames, exclude_id=start.id,
                use_grid=use_grid and self.grid_enabled, fine=self.fine_grid,
            )
            x, y = snapped.x, snapped.y
            self.guide_lines = snapped.guide_lines
        else:
            self.guide_lines = []
        if self.clamp_to_canvas:
            design = self.frames.design
            clamped_x = max(0.0, min(design.width - start.width, x))
            clamped_y = max(0.0, min(design.height - start.height, y))
            # a clamped axis no longer touches the target its guide marks
            moved = {"vertical": clamped_x != x, "horizontal": clamped_y != y}
            self.guide_lines = [g for g in self.guide_lines if not moved[g.orientation]]
            x, y = clamped_x, clamped_y
        return {"x": x, "y": y}

    def pointer_up(self) -> None:
        gesture = self.gesture
        self.gesture = None
        self.guide_lines = []
        if gesture is not None and not isinstance(gesture, Panning):
            if self.frames.commit(gesture.before):
                logger.debug(f"Committed gesture on frame {gesture.snapshot.frame.id}")

    def pointer_leave(self) -> None:
        self.pointer_up()

    # --- keyboard ---

    def key_down(self, key: str, shift: bool = False, ctrl: bool = False) -> bool:
        """Keyboard shortcuts; returns True when the key was handled."""
        if self.read_only:
            return False
        lowered = key.lower()
        if not ctrl and lowered in ("v", "h"):
            self.mode = InteractionMode.SELECT if lowered == "v" else InteractionMode.PAN
            return True
        if key == "Escape":
            self.selected_id = None
            return True

        frame = self.selected
        if frame is None:
            return False
        design = self.frames.design
        step = NUDGE_STEP_LARGE if shift else NUDGE_STEP
        if key == "ArrowLeft":
            self.frames.update(frame.id, x=max(0.0, frame.x - step))
        elif key == "ArrowRight":
            self.frames.update(frame.id, x=min(design.width - frame.width, frame.x + step))
        elif key == "ArrowUp":
            self.frames.update(frame.id, y=max(0.0, frame.y - step))
        elif key == "ArrowDown":
            self.frames.update(frame.id, y=min(design.height - frame.height, frame.y + step))
        elif key in ("Delete", "Backspace"):
            self.delete_selected()
        elif ctrl and lowered == "r":
            angle = ROTATE_STEP_LARGE if shift else ROTATE_STEP
            # Shift+R arrives as "R": rotate the other way
            delta = -angle if key == "R" else angle
            self.rotate_selected(frame.rotation + delta)
        elif ctrl and key == "0":
            self.frames.update(frame.id, rotation=0.0)
        else:
            return False
        return True

    # --- actions ---

    def rotate_selected(self, angle: float) -> Optional[Frame]:
        """Explicit rotate action; the stored rotation is normalized."""
        if self.selected_id is None:
            return None
        return self.frames.update(self.selected_id, rotation=normalize_angle(angle))

    def delete_selected(self) -> None:
        if self.selected_id is None:
            return
        self.frames.delete(self.selected_id)
        self.selected_id = None

    def duplicate_selected(self) -> Optional[Frame]:
        if self.selected_id is None:
            return None
        clone = self.frames.duplicate(self.selected_id)
        self.selected_id = clone.id
        return clone

    def create_frame(self, kind, shape="rectangle") -> Frame:
        frame = self.frames.create(kind, shape)
        self.selected_id = frame.id
        return frame

    def undo(self) -> bool:
        changed = self.frames.undo()
        if self.selected_id not in self.frames:
            self.selected_id = None
        return changed

    def redo(self) -> bool:
        changed = self.frames.redo()
        if self.selected_id not in self.frames:
            self.selected_id = None
        return changed

    # --- rendering ---

    def render(self, background: Optional[Image.Image] = None, scale: float = 1.0) -> Image.Image:
        if self.renderer is None:
            self.renderer = SceneRenderer(design=self.frames.design)
        options = RenderOptions(show_grid=self.show_grid, fine_grid=self.fine_grid, show_guides=self.show_guides)
        return self.renderer.render_scene(background, self.frames.frames, self.selected_id,
                                          self.guide_lines, scale, options)
