# app/infrastructure/cv/image_process.py
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw


def decode_image(b: bytes, max_side: Optional[int] = None) -> Optional[Image.Image]:
    """Decode encoded image bytes into an RGBA Pillow image, or None."""
    if not b:
        return None
    arr = np.frombuffer(b, np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_UNCHANGED)
    if img is None:
        return None
    if img.dtype != np.uint8:
        img = cv2.convertScaleAbs(img, alpha=255.0 / max(1, int(img.max())))
    h, w = img.shape[:2]
    if max_side and max(h, w) > max_side:
        scale = max_side / max(h, w)
        img = cv2.resize(img, (int(w * scale), int(h * scale)), interpolation=cv2.INTER_AREA)
    if img.ndim == 2:
        img = cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)
    elif img.shape[2] == 4:
        img = cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)
    else:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)
    return Image.fromarray(img)


def aspect_fill_crop_box(source_size: Tuple[float, float], target_size: Tuple[float, float]) -> Tuple[float, float, float, float]:
    """Source region (left, top, right, bottom) matching the target aspect ratio.

    The longer axis is cropped symmetrically; the other axis is kept whole.
    """
    source_w, source_h = source_size
    target_w, target_h = target_size
    target_ratio = target_w / target_h
    source_ratio = source_w / source_h

    if source_ratio > target_ratio:
        # wider than the target: crop the sides
        new_width = source_h * target_ratio
        left = (source_w - new_width) / 2
        return (left, 0, left + new_width, source_h)
    new_height = source_w / target_ratio
    top = (source_h - new_height) / 2
    return (0, top, source_w, top + new_height)


def crop_to_fill(image_pil: Image.Image, target_w: int, target_h: int) -> Image.Image:
    """Aspect-fill: crop the longer axis, then scale to exactly target_w x target_h."""
    target_w, target_h = max(1, int(target_w)), max(1, int(target_h))
    box = aspect_fill_crop_box(image_pil.size, (target_w, target_h))
    return image_pil.resize((target_w, target_h), Image.Resampling.LANCZOS, box=box)


def fit_verbatim(image_pil: Image.Image, target_w: int, target_h: int) -> Image.Image:
    """Scale to the target box without any cropping (pre-adjusted images)."""
    return image_pil.resize((max(1, int(target_w)), max(1, int(target_h))), Image.Resampling.LANCZOS)


def polygon_mask(size: Tuple[int, int], polygon: Sequence[Tuple[float, float]]) -> Image.Image:
    mask = Image.new("L", size, 0)
    ImageDraw.Draw(mask).polygon(list(polygon), fill=255)
    return mask


def crop_to_rect(image_pil: Image.Image, rect: Tuple[float, float, float, float]) -> Image.Image:
    """Crop to an (x, y, width, height) rectangle given in pixels."""
    x, y, w, h = rect
    left, top = int(round(x)), int(round(y))
    right, bottom = left + int(round(w)), top + int(round(h))
    left, top = max(0, left), max(0, top)
    right, bottom = min(image_pil.width, right), min(image_pil.height, bottom)
    return image_pil.crop((left, top, right, bottom))
