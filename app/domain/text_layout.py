import math
from dataclasses import dataclass
from typing import Callable, List

LINE_HEIGHT_FACTOR = 1.2


@dataclass
class TextLayout:
    lines: List[str]
    line_height: float


def wrap_words(text: str, measure: Callable[[str], float], max_width: float) -> List[str]:
    """Greedy word wrap.

    A word joins the current line while the measured line stays within
    max_width; a single over-long word still gets a line of its own.
    Explicit newlines always break.
    """
    lines: List[str] = []
    for paragraph in text.split("\n"):
        current = ""
        for word in paragraph.split(" "):
            if not word:
                continue
            candidate = f"{current} {word}" if current else word
            if current and measure(candidate) > max_width:
                lines.append(current)
                current = word
            else:
                current = candidate
        lines.append(current)
    return lines


def layout_text(text: str, measure: Callable[[str], float], box_width: float, box_height: float,
                font_size: float) -> TextLayout:
    """Wrap `text` into a box; lines that do not fit vertically are dropped."""
    line_height = font_size * LINE_HEIGHT_FACTOR
    max_lines = int(math.floor(box_height / line_height)) if line_height > 0 else 0
    lines = wrap_words(text, measure, box_width)
    return TextLayout(lines=lines[:max_lines], line_height=line_height)
