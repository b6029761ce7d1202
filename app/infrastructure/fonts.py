# app/infrastructure/fonts.py
import logging
import os
import re
from functools import lru_cache
from typing import List

from PIL import ImageFont

from app.config.settings import settings

logger = logging.getLogger(__name__)

FONT_EXTENSIONS = (".ttf", ".otf")
FALLBACK_FILES = ("DejaVuSans.ttf", "LiberationSans-Regular.ttf")


def _candidate_names(family: str) -> List[str]:
    compact = re.sub(r"\s+", "", family)
    dashed = re.sub(r"\s+", "-", family.strip())
    names = []
    for base in (family, compact, dashed, compact + "-Regular", dashed.lower(), compact.lower()):
        for ext in FONT_EXTENSIONS:
            names.append(base + ext)
    return list(dict.fromkeys(names))


class FontResolver:
    """Maps a font family name to a loaded TrueType font at a pixel size.

    Looks in FONTS_DIR first, then lets Pillow search the system font
    folders, then falls back to Pillow's bundled scalable font.
    """

    def __init__(self, fonts_dir: str = settings.FONTS_DIR, default_family: str = settings.DEFAULT_FONT_FAMILY):
        self.fonts_dir = fonts_dir
        self.default_family = default_family
        self._resolve = lru_cache(maxsize=256)(self._load)

    def resolve(self, family: str, size: float) -> ImageFont.FreeTypeFont:
        return self._resolve(family or self.default_family, max(1, int(round(size))))

    def _load(self, family: str, size: int):
        for name in _candidate_names(family):
            path = os.path.join(self.fonts_dir, name)
            if os.path.isfile(path):
                return ImageFont.truetype(path, size)
        for name in _candidate_names(family) + list(FALLBACK_FILES):
            try:
                return ImageFont.truetype(name, size)
            except OSError:
                continue
        logger.warning(f"Font '{family}' not found, using Pillow default font.")
        return ImageFont.load_default(size=size)
