"""Tests for the export pipeline and its collaborators."""

import asyncio
import io

import pytest
from PIL import Image, ImageChops

from app.delivery.schemas.body import ExportRequest, ImageTransform, Template
from app.domain.errors import ExportError
from app.domain.export_service import (
    ExportService,
    FrameContent,
    adjust_image,
    autocrop,
    encode,
    export_scene,
)
from app.infrastructure.cv import image_process
from app.infrastructure.pdf import PdfEncoder, fit_on_page, page_size
from app.infrastructure.watermark import (
    SUBSCRIPTION_WATERMARKS,
    TierWatermarker,
    should_apply_watermark,
    watermark_positions,
)
from tests.conftest import BLUE, GREEN, RED, WHITE, banded, data_url, make_frame, png_bytes, solid


def _close(pixel, color, tol=8):
    return all(abs(a - b) <= tol for a, b in zip(pixel[:3], color[:3]))


# ---------------------------------------------------------------------------
# Image helpers
# ---------------------------------------------------------------------------


class TestImageProcess:
    def test_aspect_fill_crops_longer_axis(self):
        assert image_process.aspect_fill_crop_box((200, 100), (100, 100)) == (50, 0, 150, 100)
        assert image_process.aspect_fill_crop_box((100, 200), (100, 50)) == (0, 75, 100, 125)

    def test_crop_to_fill_size(self):
        assert image_process.crop_to_fill(solid((640, 480)), 120, 300).size == (120, 300)

    def test_decode_png_with_alpha(self):
        img = image_process.decode_image(png_bytes(solid((30, 20), (10, 20, 30, 128))))
        assert img.mode == "RGBA"
        assert img.size == (30, 20)
        assert img.getpixel((0, 0)) == (10, 20, 30, 128)

    def test_decode_garbage(self):
        assert image_process.decode_image(b"definitely not an image") is None

    def test_crop_to_rect_is_bounded(self):
        assert image_process.crop_to_rect(solid((100, 100)), (-10, 20, 500, 30)).size == (100, 30)


# ---------------------------------------------------------------------------
# Scene compositing
# ---------------------------------------------------------------------------


class TestExportScene:
    def test_raw_image_is_aspect_filled(self, renderer):
        frame = make_frame(x=0, y=0, width=100, height=50)
        out = export_scene(None, [frame], {"f1": FrameContent(image=banded())}, scale=1, renderer=renderer)
        # middle band only: the green top and blue bottom are cropped away
        assert _close(out.getpixel((50, 5)), RED)
        assert _close(out.getpixel((50, 45)), RED)

    def test_adjusted_image_is_drawn_verbatim(self, renderer):
        frame = make_frame(x=0, y=0, width=100, height=50)
        out = export_scene(None, [frame], {"f1": FrameContent(image=banded(), adjusted=True)}, scale=1,
                           renderer=renderer)
        assert _close(out.getpixel((50, 3)), GREEN)
        assert _close(out.getpixel((50, 47)), BLUE)

    def test_unfilled_and_hidden_frames_are_skipped(self, renderer):
        frames = [make_frame(id="empty"), make_frame(id="hidden", x=500, visible=False)]
        out = export_scene(None, frames, {"hidden": FrameContent(image=solid((10, 10)))}, scale=1,
                           renderer=renderer)
        assert out.getpixel((200, 200)) == WHITE
        assert out.getpixel((600, 200)) == WHITE

    def test_no_editor_chrome(self, renderer):
        out = export_scene(None, [make_frame()], {"f1": FrameContent(image=solid((50, 50)))}, scale=1,
                           renderer=renderer)
        # rotate grip position stays clean
        assert out.getpixel((200, 70)) == WHITE

    def test_text_fill(self, renderer):
        frame = make_frame(id="t", kind="text", x=0, y=0, width=300, height=80)
        out = export_scene(None, [frame], {"t": FrameContent(text="Hello world")}, scale=1, renderer=renderer)
        assert out.crop((0, 0, 300, 80)).convert("L").getextrema()[0] < 128

    def test_saved_text_content_is_used(self, renderer):
        frame = make_frame(id="t", kind="text", x=0, y=0, width=300, height=80,
                           properties={"content": "Saved"})
        out = export_scene(None, [frame], {}, scale=1, renderer=renderer)
        assert out.crop((0, 0, 300, 80)).convert("L").getextrema()[0] < 128

    def test_export_scale(self, renderer):
        assert export_scene(None, [], {}, scale=2, renderer=renderer).size == (2400, 1600)


class TestAutocrop:
    def test_removes_letterbox(self, renderer):
        canvas = Image.new("RGBA", (2400, 1600), WHITE)
        assert autocrop(canvas, (600, 200), 2, renderer).size == (2400, 800)

    def test_full_bleed_background_is_kept(self, renderer):
        canvas = Image.new("RGBA", (1200, 800), WHITE)
        assert autocrop(canvas, (300, 200), 1, renderer).size == (1200, 800)


class TestAdjustImage:
    def test_tile_is_frame_sized_and_clipped(self):
        frame = make_frame(width=100, height=100, shape="circle")
        tile = adjust_image(solid((400, 400)), frame, ImageTransform(scale=1))
        assert tile.size == (100, 100)
        assert tile.getpixel((50, 50)) == RED
        assert tile.getpixel((2, 2))[3] == 0

    def test_offset_moves_image(self):
        frame = make_frame(width=100, height=100)
        tile = adjust_image(solid((100, 100)), frame, ImageTransform(scale=1, x=60, y=0))
        assert tile.getpixel((5, 50))[3] == 0
        assert tile.getpixel((95, 50)) == RED

    def test_scale_factor(self):
        frame = make_frame(width=100, height=100)
        tile = adjust_image(solid((100, 100)), frame, ImageTransform(scale=0.5))
        assert tile.getpixel((50, 50)) == RED
        assert tile.getpixel((10, 10))[3] == 0


# ---------------------------------------------------------------------------
# Watermark / PDF collaborators
# ---------------------------------------------------------------------------


class TestWatermark:
    def test_only_free_tier_is_marked(self):
        assert should_apply_watermark("free")
        assert not should_apply_watermark("creator_pro")
        base = Image.new("RGBA", (400, 300), WHITE)
        assert TierWatermarker().apply(base, "creator_pro") is base

    def test_free_mark_sits_bottom_right(self):
        base = Image.new("RGBA", (400, 300), WHITE)
        marked = TierWatermarker().apply(base, "free")
        bbox = ImageChops.difference(base.convert("RGB"), marked.convert("RGB")).getbbox()
        assert bbox is not None
        assert bbox[0] > 200 and bbox[1] > 150
        assert bbox[2] <= 400 and bbox[3] <= 300

    def test_forced_diagonal_pattern(self):
        base = Image.new("RGBA", (400, 300), WHITE)
        marked = TierWatermarker().apply(base, "student_pro", force=True)
        assert ImageChops.difference(base.convert("RGB"), marked.convert("RGB")).getbbox() is not None

    def test_diagonal_positions(self):
        config = SUBSCRIPTION_WATERMARKS["department"]
        positions = watermark_positions(config, 400, 300)
        assert positions
        assert all(abs(x - y) < config.spacing / 2 for x, y in positions)


class TestPdf:
    def test_page_orientation(self):
        w, h = page_size("A4", "landscape")
        assert w > h
        w, h = page_size("Letter", "portrait")
        assert (w, h) == (612, 792)

    def test_image_is_fitted_and_centered(self):
        x, y, w, h = fit_on_page((200, 100), (600, 800), margin=50)
        assert (w, h) == (500, 250)
        assert (x, y) == (50, 275)

    def test_encode(self):
        data = PdfEncoder("A3", "landscape", 10).encode([solid((300, 200)), solid((100, 100))])
        assert data.startswith(b"%PDF")

    def test_encode_requires_an_image(self):
        with pytest.raises(ValueError):
            PdfEncoder().encode([])

    @pytest.mark.parametrize("fmt,magic", [("png", b"\x89PNG"), ("jpg", b"\xff\xd8"), ("webp", b"RIFF"),
                                           ("pdf", b"%PDF")])
    def test_encode_formats(self, fmt, magic):
        assert encode(solid((40, 30)), fmt).startswith(magic)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


def _request(**kwargs) -> ExportRequest:
    defaults = dict(
        id="run-1",
        template=Template(background=data_url(solid((600, 200), BLUE)),
                          frames=[make_frame(x=0, y=200, width=100, height=100)]),
        fills={"f1": {"type": "image", "source": data_url(solid((50, 50), RED))}},
        scale=1,
        watermark=False,
    )
    defaults.update(kwargs)
    return ExportRequest(**defaults)


class TestExportService:
    def test_png_export_is_autocropped(self, executor, renderer):
        service = ExportService(executor, renderer=renderer)
        result = asyncio.run(service.export(_request()))
        assert result.media_type == "image/png"
        assert result.filename == "run-1.png"
        image = Image.open(io.BytesIO(result.content))
        assert image.size == (1200, 400)
        # frame sat at the top-left corner of the fitted background
        assert _close(image.getpixel((50, 50)), RED)
        assert _close(image.getpixel((600, 200)), BLUE)

    def test_pdf_export(self, executor, renderer):
        result = asyncio.run(ExportService(executor, renderer=renderer).export(_request(format="pdf")))
        assert result.media_type == "application/pdf"
        assert result.content.startswith(b"%PDF")

    def test_transform_metadata_is_applied(self, executor, renderer):
        fills = {"f1": {"type": "image", "source": data_url(solid((100, 100), RED)),
                        "transform": {"scale": 0.5}}}
        result = asyncio.run(ExportService(executor, renderer=renderer).export(_request(fills=fills)))
        image = Image.open(io.BytesIO(result.content)).convert("RGBA")
        assert _close(image.getpixel((50, 50)), RED)
        # outside the shrunken image the background shows through
        assert _close(image.getpixel((5, 5)), BLUE)

    def test_unreachable_source_aborts(self, executor, renderer):
        fills = {"f1": {"type": "image", "source": "%%% not an image %%%"}}
        with pytest.raises(ExportError):
            asyncio.run(ExportService(executor, renderer=renderer).export(_request(fills=fills)))

    def test_broken_background_aborts(self, executor, renderer):
        request = _request(template=Template(background="%%% broken %%%", frames=[make_frame()]))
        with pytest.raises(ExportError):
            asyncio.run(ExportService(executor, renderer=renderer).export(request))
