# app/domain/export_service.py
import asyncio
import gc
import io
import logging
import math
import os
import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import psutil
from PIL import Image, ImageChops

from app.config.settings import settings
from app.delivery.schemas.body import ExportRequest, Frame, ImageFill, ImageTransform, TextFill
from app.domain.errors import ExportError
from app.domain.renderer import SceneRenderer
from app.domain.shapes import frame_box, outline_points
from app.infrastructure import loader
from app.infrastructure.cv import image_process
from app.infrastructure.pdf import PdfEncoder
from app.infrastructure.watermark import TierWatermarker

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

EXPORT_BACKGROUND = (255, 255, 255, 255)

MEDIA_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "webp": "image/webp",
    "pdf": "application/pdf",
}


@dataclass
class FrameContent:
    """Resolved end-user content of one frame."""
    image: Optional[Image.Image] = None
    text: Optional[str] = None
    adjusted: bool = False


@dataclass
class ExportResult:
    content: bytes
    media_type: str
    filename: str


def _tile_size(frame: Frame, scale: float) -> Tuple[int, int]:
    box = frame_box(frame, scale, origin=(0, 0))
    return (max(1, int(round(box.width))), max(1, int(round(box.height))))


def adjust_image(image: Image.Image, frame: Frame, transform: ImageTransform, scale: float = 1.0) -> Image.Image:
    """Render the image-editor result for `frame`: a frame-sized tile.

    The image is drawn centred, rotated by the user rotation, scaled and
    offset (offset in the rotated, scaled space), then clipped to the
    frame's upright shape. Frame rotation is left to the compositor.
    """
    w, h = _tile_size(frame, scale)
    tile = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    zoom = transform.scale * scale
    if zoom <= 0:
        return tile

    src = image.convert("RGBA")
    size = (max(1, int(round(src.width * zoom))), max(1, int(round(src.height * zoom))))
    src = src.resize(size, Image.Resampling.LANCZOS)
    if transform.rotation % 360:
        src = src.rotate(-transform.rotation, resample=Image.Resampling.BICUBIC, expand=True)

    theta = math.radians(transform.rotation)
    ox, oy = transform.x * zoom, transform.y * zoom
    cx = w / 2 + ox * math.cos(theta) - oy * math.sin(theta)
    cy = h / 2 + ox * math.sin(theta) + oy * math.cos(theta)
    tile.paste(src, (int(round(cx - src.width / 2)), int(round(cy - src.height / 2))), src)

    mask = image_process.polygon_mask(tile.size, outline_points(frame, scale, origin=(0, 0), rotate=False))
    tile.putalpha(ImageChops.multiply(tile.getchannel("A"), mask))
    return tile


def content_tile(frame: Frame, content: FrameContent, scale: float, renderer: SceneRenderer) -> Optional[Image.Image]:
    if content.image is not None:
        w, h = _tile_size(frame, scale)
        if content.adjusted:
            return image_process.fit_verbatim(content.image.convert("RGBA"), w, h)
        return image_process.crop_to_fill(content.image.convert("RGBA"), w, h)
    if content.text:
        return renderer.text_tile(frame, content.text, scale)
    return None


def export_scene(background: Optional[Image.Image], frames: Sequence[Frame], contents: Mapping[str, FrameContent],
                 scale: float = settings.EXPORT_SCALE, renderer: Optional[SceneRenderer] = None) -> Image.Image:
    """Final composite: white base, fitted background, then every filled frame.

    Text frames without a fill fall back to their saved content. Frames with
    nothing to show are skipped, and no borders, handles or guides are drawn.
    """
    renderer = renderer or SceneRenderer()
    surface = renderer.new_surface(scale, EXPORT_BACKGROUND)
    if background is not None:
        renderer.draw_background(surface, background, scale)
    for frame in frames:
        if not frame.visible:
            continue
        content = contents.get(frame.id)
        if content is None and frame.properties is not None and frame.properties.content:
            content = FrameContent(text=frame.properties.content)
        if content is None:
            continue
        tile = content_tile(frame, content, scale, renderer)
        if tile is None:
            continue
        renderer.composite_frame(surface, frame, tile, scale)
    return surface


def autocrop(image: Image.Image, background_size: Tuple[int, int], scale: float,
             renderer: Optional[SceneRenderer] = None) -> Image.Image:
    """Crop the letterbox margins around the aspect-fitted background."""
    renderer = renderer or SceneRenderer()
    rect = renderer.design.background_rect(background_size)
    return image_process.crop_to_rect(image, (rect.x * scale, rect.y * scale, rect.width * scale, rect.height * scale))


def encode(image: Image.Image, fmt: str, quality: int = settings.JPEG_QUALITY, pdf: Optional[PdfEncoder] = None,
           title: str = "") -> bytes:
    if fmt == "pdf":
        return (pdf or PdfEncoder()).encode([image], title=title)
    buf = io.BytesIO()
    if fmt == "jpg":
        image.convert("RGB").save(buf, format="JPEG", quality=quality, optimize=True)
    elif fmt == "webp":
        image.save(buf, format="WEBP", quality=quality)
    elif fmt == "png":
        image.save(buf, format="PNG")
    else:
        raise ExportError(f"unsupported export format '{fmt}'")
    return buf.getvalue()


def _memory_mb() -> Optional[float]:
    try:
        return psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024
    except psutil.Error as mem_error:
        logger.warning(f"Could not get memory info: {mem_error}")
        return None


class ExportService:
    def __init__(self, cpu_executor: ThreadPoolExecutor, renderer: Optional[SceneRenderer] = None,
                 watermarker: Optional[TierWatermarker] = None):
        self.cpu_executor = cpu_executor
        self.renderer = renderer or SceneRenderer()
        self.watermarker = watermarker or TierWatermarker(self.renderer.fonts)

    def _log_memory(self, stage: str, run_id: str) -> None:
        memory_mb = _memory_mb()
        if memory_mb is not None:
            logger.info(f"Memory {stage}: {memory_mb:.1f}MB for Run ID: {run_id}")

    async def _load_assets(self, request: ExportRequest) -> Tuple[Optional[Image.Image], Dict[str, FrameContent]]:
        frame_ids = {f.id for f in request.template.frames}
        for unknown in sorted(set(request.fills) - frame_ids):
            logger.warning(f"Fill for unknown frame '{unknown}' ignored for Run ID: {request.id}")

        image_fills: List[Tuple[str, ImageFill]] = [
            (fid, fill) for fid, fill in request.fills.items() if fid in frame_ids and isinstance(fill, ImageFill)
        ]
        sources = [fill.source for _, fill in image_fills]
        if request.template.background:
            sources = [request.template.background] + sources

        images = await loader.load_many(sources)
        background = images.pop(0) if request.template.background else None

        contents: Dict[str, FrameContent] = {}
        for (fid, fill), image in zip(image_fills, images):
            contents[fid] = FrameContent(image=image, adjusted=fill.adjusted)
        for fid, fill in request.fills.items():
            if fid in frame_ids and isinstance(fill, TextFill):
                contents[fid] = FrameContent(text=fill.value)
        return background, contents

    def _compose(self, request: ExportRequest, background: Optional[Image.Image],
                 contents: Dict[str, FrameContent]) -> bytes:
        frames = {f.id: f for f in request.template.frames}
        for fid, fill in request.fills.items():
            # raw uploads with editor metadata are adjusted here, then drawn verbatim
            if isinstance(fill, ImageFill) and not fill.adjusted and fill.transform is not None and fid in contents:
                tile = adjust_image(contents[fid].image, frames[fid], fill.transform, request.scale)
                contents[fid] = FrameContent(image=tile, adjusted=True)

        final = export_scene(background, request.template.frames, contents, request.scale, self.renderer)
        if background is not None:
            final = autocrop(final, background.size, request.scale, self.renderer)
        if request.watermark:
            final = self.watermarker.apply(final, request.tier)
        pdf = PdfEncoder(request.pdf.page_format, request.pdf.orientation, request.pdf.margin)
        return encode(final, request.format, request.quality, pdf=pdf, title=request.id)

    async def export(self, request: ExportRequest) -> ExportResult:
        run_id = request.id
        logger.info(f"=== START EXPORT Run ID: {run_id} ({request.format}, x{request.scale}) ===")
        self._log_memory("at start", run_id)
        overall_start_time = time.perf_counter()

        try:
            logger.info(f"Stage 1/2: Loading background and {len(request.fills)} fill(s) for Run ID: {run_id}")
            background, contents = await self._load_assets(request)
            logger.info(f"Stage 1/2: Loading done (T+{time.perf_counter() - overall_start_time:.2f}s) for Run ID: {run_id}")
            self._log_memory("after loading", run_id)

            logger.info(f"Stage 2/2: Compositing {len(request.template.frames)} frame(s) for Run ID: {run_id}")
            loop = asyncio.get_running_loop()
            content = await loop.run_in_executor(self.cpu_executor, self._compose, request, background, contents)
            self._log_memory("after compositing", run_id)

            del background, contents
            gc.collect()

            overall_duration = time.perf_counter() - overall_start_time
            logger.info(f"=== COMPLETED EXPORT Run ID: {run_id} in {overall_duration:.2f}s ({len(content)} bytes) ===")
            return ExportResult(content=content, media_type=MEDIA_TYPES[request.format],
                                filename=f"{run_id}.{request.format}")
        except ExportError as e:
            logger.error(f"=== EXPORT ABORTED Run ID {run_id}: {e} ===")
            raise
        except Exception as e:
            logger.error(f"=== CRITICAL ERROR in export for Run ID {run_id}: {e}\n{traceback.format_exc()} ===")
            raise
