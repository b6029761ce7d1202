# app/infrastructure/pdf.py
import io
from typing import Iterable, Tuple

import reportlab.lib.pagesizes
import reportlab.lib.units
import reportlab.lib.utils
import reportlab.pdfgen.canvas
from PIL import Image

PAGE_SIZES = {
    "A4": reportlab.lib.pagesizes.A4,
    "A3": reportlab.lib.pagesizes.A3,
    "Letter": reportlab.lib.pagesizes.letter,
}


def page_size(page_format: str, orientation: str) -> Tuple[float, float]:
    size = PAGE_SIZES.get(page_format, reportlab.lib.pagesizes.A4)
    if orientation == "landscape":
        return reportlab.lib.pagesizes.landscape(size)
    return reportlab.lib.pagesizes.portrait(size)


def fit_on_page(image_size: Tuple[int, int], page: Tuple[float, float],
                margin: float) -> Tuple[float, float, float, float]:
    """Largest (x, y, width, height) keeping the image ratio inside the page margins, centred."""
    page_w, page_h = page
    avail_w = max(1.0, page_w - 2 * margin)
    avail_h = max(1.0, page_h - 2 * margin)
    img_w, img_h = image_size
    ratio = img_w / img_h
    if avail_w / avail_h > ratio:
        h = avail_h
        w = h * ratio
    else:
        w = avail_w
        h = w / ratio
    return ((page_w - w) / 2, (page_h - h) / 2, w, h)


class PdfEncoder:
    """Places each bitmap on its own page, fitted within the margins and centred."""

    def __init__(self, page_format: str = "A4", orientation: str = "portrait", margin_mm: float = 20):
        self.page_format = page_format
        self.orientation = orientation
        self.margin_mm = margin_mm

    def encode(self, images: Iterable[Image.Image], title: str = "") -> bytes:
        buf = io.BytesIO()
        size = page_size(self.page_format, self.orientation)
        margin = self.margin_mm * reportlab.lib.units.mm
        pdf = reportlab.pdfgen.canvas.Canvas(buf, pagesize=size)
        if title:
            pdf.setTitle(title)
        pages = 0
        for image in images:
            x, y, w, h = fit_on_page(image.size, size, margin)
            pdf.drawImage(reportlab.lib.utils.ImageReader(image.convert("RGB")), x, y, width=w, height=h)
            pdf.showPage()
            pages += 1
        if pages == 0:
            raise ValueError("PDF needs at least one image")
        pdf.save()
        return buf.getvalue()
