# app/infrastructure/watermark.py
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from PIL import Image, ImageColor, ImageDraw

from app.infrastructure.fonts import FontResolver


@dataclass(frozen=True)
class WatermarkConfig:
    text: str = "Generated with GenEdit"
    font_size: int = 24
    font_family: str = "Arial"
    color: str = "#000000"
    opacity: float = 0.3
    rotation: float = -45
    # center | top-left | top-right | bottom-left | bottom-right | diagonal
    position: str = "diagonal"
    spacing: int = 100


DEFAULT_WATERMARK = WatermarkConfig()

SUBSCRIPTION_WATERMARKS: Dict[str, WatermarkConfig] = {
    "free": replace(DEFAULT_WATERMARK, text="Infinity Generation", font_size=10, opacity=0.2,
                    position="bottom-right", rotation=0, spacing=20),
    "student_pro": replace(DEFAULT_WATERMARK, text="Generated with GenEdit - Student Pro", font_size=20,
                           opacity=0.2, spacing=120),
    "creator_pro": replace(DEFAULT_WATERMARK, text="Generated with GenEdit - Creator Pro", font_size=16,
                           opacity=0.15, spacing=150),
    "department": replace(DEFAULT_WATERMARK, text="Generated with GenEdit - Department", font_size=18,
                          opacity=0.18, spacing=130),
    "church": replace(DEFAULT_WATERMARK, text="Generated with GenEdit - Church", font_size=18,
                      opacity=0.18, spacing=130),
    "faculty": replace(DEFAULT_WATERMARK, text="Generated with GenEdit - Faculty", font_size=18,
                       opacity=0.18, spacing=130),
}

# text anchor per position so corner marks stay inside the image
_ANCHORS = {
    "center": "mm",
    "top-left": "ls",
    "top-right": "rs",
    "bottom-left": "ls",
    "bottom-right": "rs",
    "diagonal": "ls",
}


def should_apply_watermark(tier: str) -> bool:
    return tier == "free"


def watermark_config(tier: str) -> WatermarkConfig:
    return SUBSCRIPTION_WATERMARKS.get(tier, DEFAULT_WATERMARK)


def watermark_positions(config: WatermarkConfig, width: int, height: int) -> List[Tuple[float, float]]:
    spacing = config.spacing
    if config.position == "center":
        return [(width / 2, height / 2)]
    if config.position == "top-left":
        return [(spacing, spacing)]
    if config.position == "top-right":
        return [(width - spacing, spacing)]
    if config.position == "bottom-left":
        return [(spacing, height - spacing)]
    if config.position == "bottom-right":
        return [(width - spacing, height - spacing)]

    positions = []
    for x in range(-width, width * 2, spacing):
        for y in range(-height, height * 2, spacing):
            if abs(x - y) < spacing / 2:
                positions.append((x, y))
    return positions


class TierWatermarker:
    """Burns a subscription-tier text overlay into an exported bitmap."""

    def __init__(self, fonts: Optional[FontResolver] = None):
        self.fonts = fonts or FontResolver()

    def _stamp(self, config: WatermarkConfig, text: str) -> Tuple[Image.Image, Tuple[float, float]]:
        """Text on a transparent tile, rotated; returns the tile and its anchor point."""
        font = self.fonts.resolve(config.font_family, config.font_size)
        anchor = _ANCHORS.get(config.position, "ls")
        length = int(font.getlength(text)) + 2 * config.font_size
        side = 2 * length
        tile = Image.new("RGBA", (side, side), (0, 0, 0, 0))
        r, g, b = ImageColor.getrgb(config.color)[:3]
        alpha = int(round(255 * max(0.0, min(1.0, config.opacity))))
        ImageDraw.Draw(tile).text((side / 2, side / 2), text, font=font, fill=(r, g, b, alpha), anchor=anchor)
        if config.rotation:
            # PIL rotates counter-clockwise for positive angles
            tile = tile.rotate(-config.rotation, resample=Image.Resampling.BICUBIC)
        return tile, (side / 2, side / 2)

    def apply(self, image: Image.Image, tier: str = "free", force: bool = False,
              custom_text: Optional[str] = None) -> Image.Image:
        """Return `image` unchanged unless the tier carries a watermark."""
        if not (force or should_apply_watermark(tier)):
            return image
        config = watermark_config(tier)
        text = custom_text or config.text
        base = image.convert("RGBA")
        overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
        stamp, (ax, ay) = self._stamp(config, text)
        for x, y in watermark_positions(config, base.width, base.height):
            left, top = int(round(x - ax)), int(round(y - ay))
            # alpha_composite only takes non-negative offsets, so clip the stamp first
            src_left, src_top = max(0, -left), max(0, -top)
            src_right = min(stamp.width, base.width - left)
            src_bottom = min(stamp.height, base.height - top)
            if src_right <= src_left or src_bottom <= src_top:
                continue
            overlay.alpha_composite(stamp, dest=(left + src_left, top + src_top),
                                    source=(src_left, src_top, src_right, src_bottom))
        return Image.alpha_composite(base, overlay)
