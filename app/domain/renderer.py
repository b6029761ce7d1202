"""Single-frame drawing and full-scene compositing on a Pillow surface.

Content is drawn into a tile in the frame's own unrotated coordinates and
then shown through the frame's rotated outline. How the tile meets the
rotation is a strategy (RotationMode):

* UPRIGHT_CONTENT: the tile stays upright, only the clip window rotates.
* ROTATED_CONTENT: the tile is rotated with the frame, then clipped.

Borders and selection handles are stroked from the same outline used for
clipping.
"""

import math
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from PIL import Image, ImageChops, ImageDraw

from app.config.settings import settings
from app.delivery.schemas.body import Frame, FrameKind, GuideLine, RenderOptions
from app.domain.geometry import (
    DesignSpace,
    Point,
    Rect,
    axis_aligned_bounds,
    frame_center,
    handle_anchors,
    rotate_handle_anchor,
    rotate_point,
)
from app.domain.shapes import frame_box, outline_points
from app.domain.text_layout import layout_text
from app.infrastructure.fonts import FontResolver

PLACEHOLDER_BACKGROUND = "#f8f9fa"
IMAGE_PLACEHOLDER_FILL = (156, 163, 175, 77)
TEXT_PLACEHOLDER_FILL = (156, 163, 175, 26)
ICON_COLOR = "#6b7280"
BORDER_COLOR = "#6b7280"
SELECTED_COLOR = "#3b82f6"
GRID_COLOR = "#e5e7eb"
FINE_GRID_COLOR = "#f3f4f6"
HANDLE_SIZE = 8
DASH = (5, 5)


class RotationMode(str, Enum):
    UPRIGHT_CONTENT = "upright-content"
    ROTATED_CONTENT = "rotated-content"


def dashed_polyline(draw: ImageDraw.ImageDraw, points: Sequence[Point], dash: Tuple[float, float],
                    fill, width: int = 1) -> None:
    """Stroke a polyline with a dash pattern carried across vertices."""
    on, off = dash
    period = on + off
    phase = 0.0
    for (x0, y0), (x1, y1) in zip(points, points[1:]):
        length = math.hypot(x1 - x0, y1 - y0)
        if length == 0:
            continue
        ux, uy = (x1 - x0) / length, (y1 - y0) / length
        t = 0.0
        while t < length:
            pos = (phase + t) % period
            if pos < on:
                step = min(on - pos, length - t)
                draw.line([(x0 + ux * t, y0 + uy * t), (x0 + ux * (t + step), y0 + uy * (t + step))],
                          fill=fill, width=width)
            else:
                step = min(period - pos, length - t)
            t += step
        phase = (phase + length) % period


class SceneRenderer:
    def __init__(self, design: Optional[DesignSpace] = None, rotation_mode: RotationMode = None,
                 fonts: Optional[FontResolver] = None, rotate_handle_offset: float = settings.ROTATE_HANDLE_OFFSET,
                 grid_size: float = settings.GRID_SIZE, fine_grid_size: float = settings.FINE_GRID_SIZE):
        self.design = design or DesignSpace(settings.CANVAS_WIDTH, settings.CANVAS_HEIGHT)
        self.rotation_mode = RotationMode(rotation_mode or settings.ROTATION_MODE)
        self.fonts = fonts or FontResolver()
        self.rotate_handle_offset = rotate_handle_offset
        self.grid_size = grid_size
        self.fine_grid_size = fine_grid_size

    # --- surface & background ---

    def new_surface(self, scale: float, color=(0, 0, 0, 0)) -> Image.Image:
        return Image.new("RGBA", self.design.pixel_size(scale), color)

    def background_rect(self, background: Image.Image, scale: float) -> Rect:
        r = self.design.background_rect(background.size)
        return Rect(r.x * scale, r.y * scale, r.width * scale, r.height * scale)

    def draw_background(self, surface: Image.Image, background: Optional[Image.Image], scale: float) -> None:
        """Aspect-fit the background, centered; placeholder fill if it is missing."""
        if background is None:
            ImageDraw.Draw(surface).rectangle([(0, 0), surface.size], fill=PLACEHOLDER_BACKGROUND)
            return
        rect = self.background_rect(background, scale)
        size = (max(1, int(round(rect.width))), max(1, int(round(rect.height))))
        fitted = background.convert("RGBA").resize(size, Image.Resampling.LANCZOS)
        surface.alpha_composite(fitted, dest=(int(round(rect.x)), int(round(rect.y))))

    def draw_grid(self, surface: Image.Image, scale: float, fine: bool = False) -> None:
        step = (self.fine_grid_size if fine else self.grid_size) * scale
        if step < 2:
            return
        draw = ImageDraw.Draw(surface)
        color = FINE_GRID_COLOR if fine else GRID_COLOR
        w, h = surface.size
        x = 0.0
        while x <= w:
            draw.line([(x, 0), (x, h)], fill=color, width=1)
            x += step
        y = 0.0
        while y <= h:
            draw.line([(0, y), (w, y)], fill=color, width=1)
            y += step

    # --- content tiles ---

    def text_tile(self, frame: Frame, text: str, scale: float, fill=None) -> Image.Image:
        """Word-wrapped text in the frame's own unrotated box."""
        box = frame_box(frame, scale, origin=(0, 0))
        tile = Image.new("RGBA", (max(1, int(round(box.width))), max(1, int(round(box.height)))), fill or (0, 0, 0, 0))
        props = frame.properties
        if props is None or not text:
            return tile
        font_size = props.font_size * scale
        font = self.fonts.resolve(props.font_family, font_size)
        layout = layout_text(text, font.getlength, box.width, box.height, font_size)
        anchor, x = {"left": ("ls", 0), "right": ("rs", box.width)}.get(props.text_align, ("ms", box.width / 2))
        draw = ImageDraw.Draw(tile)
        for i, line in enumerate(layout.lines):
            draw.text((x, (i + 1) * layout.line_height), line, font=font, fill=props.color, anchor=anchor)
        return tile

    def placeholder_tile(self, frame: Frame, scale: float) -> Image.Image:
        if frame.kind == FrameKind.TEXT:
            props = frame.properties
            text = (props.content or props.placeholder) if props else ""
            return self.text_tile(frame, text, scale, fill=TEXT_PLACEHOLDER_FILL)
        box = frame_box(frame, scale, origin=(0, 0))
        tile = Image.new("RGBA", (max(1, int(round(box.width))), max(1, int(round(box.height)))), IMAGE_PLACEHOLDER_FILL)
        self._draw_camera_icon(tile, scale)
        return tile

    def _draw_camera_icon(self, tile: Image.Image, scale: float) -> None:
        draw = ImageDraw.Draw(tile)
        w, h = tile.size
        size = min(24 * scale, w / 2, h / 2)
        if size < 4:
            return
        cx, cy = w / 2, h / 2
        body = [(cx - size / 2, cy - size / 3), (cx + size / 2, cy + size / 3)]
        draw.rounded_rectangle(body, radius=size / 8, outline=ICON_COLOR, width=max(1, int(scale * 1.5)))
        r = size / 5
        draw.ellipse([(cx - r, cy - r), (cx + r, cy + r)], outline=ICON_COLOR, width=max(1, int(scale * 1.5)))
        draw.rectangle([(cx - size / 5, cy - size / 3 - size / 8), (cx + size / 5, cy - size / 3)], fill=ICON_COLOR)

    # --- frames ---

    def composite_frame(self, surface: Image.Image, frame: Frame, tile: Image.Image, scale: float) -> None:
        """Draw `tile` through the frame's rotated outline."""
        outline = outline_points(frame, scale)
        bounds = axis_aligned_bounds(outline)
        left = max(0, int(math.floor(bounds.min_x)))
        top = max(0, int(math.floor(bounds.min_y)))
        right = min(surface.width, int(math.ceil(bounds.max_x)))
        bottom = min(surface.height, int(math.ceil(bounds.max_y)))
        if right <= left or bottom <= top:
            return

        layer = Image.new("RGBA", (right - left, bottom - top), (0, 0, 0, 0))
        box = frame_box(frame, scale)
        if self.rotation_mode == RotationMode.ROTATED_CONTENT and frame.rotation % 360:
            # PIL rotates counter-clockwise; frame rotation is clockwise on screen
            rotated = tile.rotate(-frame.rotation, resample=Image.Resampling.BICUBIC, expand=True)
            cx, cy = box.x + box.width / 2, box.y + box.height / 2
            layer.paste(rotated, (int(round(cx - rotated.width / 2)) - left, int(round(cy - rotated.height / 2)) - top))
        else:
            layer.paste(tile, (int(round(box.x)) - left, int(round(box.y)) - top))

        mask = Image.new("L", layer.size, 0)
        ImageDraw.Draw(mask).polygon([(px - left, py - top) for px, py in outline], fill=255)
        layer.putalpha(ImageChops.multiply(layer.getchannel("A"), mask))
        surface.alpha_composite(layer, dest=(left, top))

    def draw_border(self, surface: Image.Image, frame: Frame, selected: bool, scale: float) -> None:
        draw = ImageDraw.Draw(surface)
        outline = outline_points(frame, scale)
        if selected:
            draw.line(outline, fill=SELECTED_COLOR, width=max(1, int(round(2 * scale))), joint="curve")
        else:
            dashed_polyline(draw, outline, (DASH[0] * scale, DASH[1] * scale), BORDER_COLOR,
                            width=max(1, int(round(scale))))

    def draw_handles(self, surface: Image.Image, frame: Frame, scale: float) -> None:
        """8 resize handles plus the rotate grip, under the frame's rotation."""
        draw = ImageDraw.Draw(surface)
        center = frame_center(frame)
        r = HANDLE_SIZE / 2 * scale

        def place(p: Point) -> Point:
            rx, ry = rotate_point(p, center, frame.rotation)
            return (rx * scale, ry * scale)

        top_center = place((frame.x + frame.width / 2, frame.y))
        grip = place(rotate_handle_anchor(frame, self.rotate_handle_offset))
        dashed_polyline(draw, [top_center, grip], (3 * scale, 3 * scale), SELECTED_COLOR, width=max(1, int(scale)))
        for anchor in list(handle_anchors(frame).values()) + [rotate_handle_anchor(frame, self.rotate_handle_offset)]:
            hx, hy = place(anchor)
            draw.ellipse([(hx - r, hy - r), (hx + r, hy + r)], fill="#ffffff", outline=SELECTED_COLOR,
                         width=max(1, int(scale)))

    def draw_frame(self, surface: Image.Image, frame: Frame, selected: bool, scale: float,
                   tile: Optional[Image.Image] = None) -> None:
        self.composite_frame(surface, frame, tile if tile is not None else self.placeholder_tile(frame, scale), scale)
        self.draw_border(surface, frame, selected, scale)
        if selected:
            self.draw_handles(surface, frame, scale)

    def draw_guides(self, surface: Image.Image, guide_lines: Iterable[GuideLine], scale: float) -> None:
        draw = ImageDraw.Draw(surface)
        w, h = surface.size
        dash = (DASH[0] * scale, DASH[1] * scale)
        width = max(1, int(round(2 * scale)))
        for line in guide_lines:
            pos = line.position * scale
            if line.orientation == "vertical":
                dashed_polyline(draw, [(pos, 0), (pos, h)], dash, SELECTED_COLOR, width)
            else:
                dashed_polyline(draw, [(0, pos), (w, pos)], dash, SELECTED_COLOR, width)

    # --- scene ---

    def render_scene(self, background: Optional[Image.Image], frames: Sequence[Frame],
                     selection_id: Optional[str] = None, guide_lines: Sequence[GuideLine] = (),
                     scale: float = 1.0, options: Optional[RenderOptions] = None) -> Image.Image:
        """Editor preview: background, frames in list order, then guides.

        Identical inputs always produce identical pixels.
        """
        options = options or RenderOptions()
        surface = self.new_surface(scale)
        self.draw_background(surface, background, scale)
        if options.show_grid:
            self.draw_grid(surface, scale, options.fine_grid)
        for frame in frames:
            if not frame.visible:
                continue
            self.draw_frame(surface, frame, frame.id == selection_id, scale)
        if options.show_guides and guide_lines:
            self.draw_guides(surface, guide_lines, scale)
        return surface


def render_scene(background: Optional[Image.Image], frames: List[Frame], selection_id: Optional[str] = None,
                 guide_lines: Sequence[GuideLine] = (), scale: float = 1.0,
                 options: Optional[RenderOptions] = None) -> Image.Image:
    return SceneRenderer().render_scene(background, frames, selection_id, guide_lines, scale, options)
