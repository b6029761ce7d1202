"""Shared test fixtures."""

import base64
import io
from concurrent.futures import ThreadPoolExecutor

import pytest
from PIL import Image

from app.delivery.schemas.body import Frame
from app.domain.frames import FrameList
from app.domain.geometry import DesignSpace
from app.domain.interaction import EditorSession
from app.domain.renderer import SceneRenderer
from app.domain.snapping import SnapEngine

RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)
WHITE = (255, 255, 255, 255)


def make_frame(id="f1", kind="image", x=100, y=100, width=200, height=200, **kwargs) -> Frame:
    return Frame(id=id, kind=kind, x=x, y=y, width=width, height=height, **kwargs)


def solid(size, color=RED) -> Image.Image:
    return Image.new("RGBA", size, color)


def banded(size=(200, 200)) -> Image.Image:
    """Green top quarter, red middle half, blue bottom quarter."""
    w, h = size
    img = Image.new("RGBA", size, RED)
    img.paste(GREEN, (0, 0, w, h // 4))
    img.paste(BLUE, (0, h - h // 4, w, h))
    return img


def png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def data_url(img: Image.Image) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes(img)).decode("ascii")


@pytest.fixture
def design() -> DesignSpace:
    return DesignSpace(1200, 800)


@pytest.fixture
def frame() -> Frame:
    return make_frame()


@pytest.fixture
def frame_list(design) -> FrameList:
    return FrameList([make_frame()], design=design)


@pytest.fixture
def renderer(design) -> SceneRenderer:
    return SceneRenderer(design=design)


@pytest.fixture
def session(frame_list, renderer) -> EditorSession:
    snapper = SnapEngine(grid_size=10, threshold=10, design=frame_list.design, snap_to_canvas_center=False)
    return EditorSession(frames=frame_list, snapper=snapper, renderer=renderer)


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=1)
    yield pool
    pool.shutdown(wait=True)
