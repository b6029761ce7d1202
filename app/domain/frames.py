# app/domain/frames.py
import logging
import time
import uuid
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from app.config.settings import settings
from app.delivery.schemas.body import Frame, FrameKind, FrameShape, Template, TextProperties
from app.domain.errors import FrameNotFoundError, InvalidGeometryError
from app.domain.geometry import DesignSpace
from app.domain.history import History

logger = logging.getLogger(__name__)

DEFAULT_SIZES = {
    FrameKind.IMAGE: (200.0, 200.0),
    FrameKind.TEXT: (300.0, 80.0),
}
STAGGER_STEP = 20
STAGGER_CYCLE = 10

State = Tuple[Frame, ...]


def new_frame_id() -> str:
    return f"frame_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class FrameList:
    """Ordered frames of one template; later entries are drawn on top.

    Every mutation replaces frame records instead of editing them in place,
    so a state tuple handed out earlier stays valid for undo/redo.
    """

    def __init__(self, frames: Sequence[Frame] = (), background: Optional[str] = None,
                 design: Optional[DesignSpace] = None, history_limit: int = settings.HISTORY_LIMIT):
        self._frames: List[Frame] = list(frames)
        self.background = background
        self.design = design or DesignSpace(settings.CANVAS_WIDTH, settings.CANVAS_HEIGHT)
        self.history: History[State] = History(history_limit)

    # --- reading ---

    def __iter__(self) -> Iterator[Frame]:
        return iter(list(self._frames))

    def __len__(self) -> int:
        return len(self._frames)

    def __contains__(self, frame_id: str) -> bool:
        return any(f.id == frame_id for f in self._frames)

    @property
    def frames(self) -> List[Frame]:
        return list(self._frames)

    @property
    def ids(self) -> List[str]:
        return [f.id for f in self._frames]

    def state(self) -> State:
        return tuple(self._frames)

    def _index(self, frame_id: str) -> int:
        for i, frame in enumerate(self._frames):
            if frame.id == frame_id:
                return i
        raise FrameNotFoundError(frame_id)

    def get(self, frame_id: str) -> Frame:
        return self._frames[self._index(frame_id)]

    def find(self, frame_id: Optional[str]) -> Optional[Frame]:
        if frame_id is None:
            return None
        return next((f for f in self._frames if f.id == frame_id), None)

    # --- mutation ---

    def _apply(self, frames: List[Frame], record: bool) -> None:
        previous = self.state()
        self._frames = frames
        if record:
            self.history.record(previous, self.state())

    def create(self, kind: FrameKind = FrameKind.IMAGE, shape: FrameShape = FrameShape.RECTANGLE,
               record: bool = True) -> Frame:
        kind = FrameKind(kind)
        width, height = DEFAULT_SIZES[kind]
        stagger = (len(self._frames) % STAGGER_CYCLE) * STAGGER_STEP
        frame = Frame(
            id=new_frame_id(),
            kind=kind,
            x=self.design.width / 2 - width / 2 + stagger,
            y=self.design.height / 2 - height / 2 + stagger,
            width=width,
            height=height,
            shape=shape,
            properties=TextProperties() if kind == FrameKind.TEXT else None,
        )
        self._apply(self._frames + [frame], record)
        logger.info(f"Created {kind.value} frame {frame.id}")
        return frame

    def add(self, frame: Frame, record: bool = True) -> Frame:
        if frame.id in self:
            raise ValueError(f"Frame id '{frame.id}' already exists")
        self._apply(self._frames + [frame], record)
        return frame

    def update(self, frame_id: str, record: bool = True, **changes: Any) -> Frame:
        """Merge `changes` into a frame and re-validate the whole record.

        Rotation is stored as given; only explicit rotate actions normalize it.
        """
        index = self._index(frame_id)
        if changes.get("id", frame_id) != frame_id:
            raise InvalidGeometryError("Frame id is immutable")
        current = self._frames[index]
        merged: Dict[str, Any] = current.model_dump()
        for key, value in changes.items():
            if key == "properties" and isinstance(value, dict) and merged.get("properties"):
                merged["properties"] = {**merged["properties"], **value}
            else:
                merged[key] = value
        try:
            updated = Frame.model_validate(merged)
        except ValidationError as e:
            raise InvalidGeometryError(f"Rejected update for frame {frame_id}: {e}") from e
        frames = list(self._frames)
        frames[index] = updated
        self._apply(frames, record)
        return updated

    def replace(self, frame: Frame, record: bool = False) -> Frame:
        """Swap in an already validated record (used while a gesture runs)."""
        index = self._index(frame.id)
        frames = list(self._frames)
        frames[index] = frame
        self._apply(frames, record)
        return frame

    def delete(self, frame_id: str, record: bool = True) -> Frame:
        index = self._index(frame_id)
        frames = list(self._frames)
        removed = frames.pop(index)
        self._apply(frames, record)
        logger.info(f"Deleted frame {frame_id}")
        return removed

    def duplicate(self, frame_id: str, record: bool = True) -> Frame:
        source = self.get(frame_id)
        offset = settings.DUPLICATE_OFFSET
        clone = source.model_copy(
            update={"id": new_frame_id(), "x": source.x + offset, "y": source.y + offset},
            deep=True,
        )
        self._apply(self._frames + [clone], record)
        return clone

    def reorder(self, new_order: Sequence[str], record: bool = True) -> None:
        if sorted(new_order) != sorted(self.ids):
            raise ValueError("new order must be a permutation of the current frame ids")
        by_id = {f.id: f for f in self._frames}
        self._apply([by_id[i] for i in new_order], record)

    def move(self, frame_id: str, direction: str, record: bool = True) -> None:
        """Stacking shortcuts: front, back, forward, backward."""
        index = self._index(frame_id)
        frames = list(self._frames)
        item = frames.pop(index)
        if direction == "front":
            frames.append(item)
        elif direction == "back":
            frames.insert(0, item)
        elif direction == "forward":
            frames.insert(min(len(self._frames) - 1, index + 1), item)
        elif direction == "backward":
            frames.insert(max(0, index - 1), item)
        else:
            raise ValueError(f"Unknown stacking direction: {direction}")
        self._apply(frames, record)

    # --- history ---

    def commit(self, previous: State) -> bool:
        """Record one history step from `previous` to the current state."""
        return self.history.record(previous, self.state())

    def undo(self) -> bool:
        previous = self.history.undo(self.state())
        if previous is None:
            return False
        self._frames = list(previous)
        return True

    def redo(self) -> bool:
        following = self.history.redo(self.state())
        if following is None:
            return False
        self._frames = list(following)
        return True

    # --- persistence layout ---

    def to_template(self) -> Template:
        return Template(background=self.background, frames=self.frames)

    @classmethod
    def from_template(cls, template: Template, **kwargs) -> "FrameList":
        return cls(template.frames, background=template.background, **kwargs)
