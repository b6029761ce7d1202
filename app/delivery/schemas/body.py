import math
from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.config.settings import settings


class FrameKind(str, Enum):
    IMAGE = "image"
    TEXT = "text"


class FrameShape(str, Enum):
    RECTANGLE = "rectangle"
    ROUNDED_RECTANGLE = "rounded-rectangle"
    CIRCLE = "circle"
    POLYGON = "polygon"


class CamelModel(BaseModel):
    # persisted records use camelCase keys; python code uses snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TextProperties(CamelModel):
    font_family: str = "Arial"
    font_size: float = Field(default=24, gt=0)
    color: str = "#000000"
    text_align: Literal["left", "center", "right"] = "center"
    placeholder: str = "Enter your text here"
    content: Optional[str] = None


class Frame(CamelModel):
    id: str
    kind: FrameKind = Field(validation_alias=AliasChoices("kind", "type"))
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0.0
    shape: FrameShape = FrameShape.RECTANGLE
    corner_radius: float = Field(default=10, ge=0)
    polygon_sides: int = Field(default=6, ge=3, le=12)
    properties: Optional[TextProperties] = None
    visible: bool = True
    locked: bool = False

    @field_validator("x", "y", "width", "height", "rotation", "corner_radius")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("geometry must be a finite number")
        return value

    @field_validator("width", "height")
    @classmethod
    def _min_size(cls, value: float) -> float:
        if value < 0:
            raise ValueError("width and height must not be negative")
        return max(value, settings.MIN_FRAME_SIZE)

    @model_validator(mode="after")
    def _text_defaults(self) -> "Frame":
        if self.kind == FrameKind.TEXT and self.properties is None:
            self.properties = TextProperties()
        return self

    @property
    def center(self):
        return (self.x + self.width / 2, self.y + self.height / 2)


class Template(CamelModel):
    background: Optional[str] = None
    frames: List[Frame] = Field(default_factory=list)


class GuideLine(BaseModel):
    orientation: Literal["vertical", "horizontal"]
    position: float


class ImageTransform(BaseModel):
    # re-edit metadata produced by the image editor; opaque to the compositor
    scale: float = 1.0
    rotation: float = 0.0
    x: float = 0.0
    y: float = 0.0


class ImageFill(BaseModel):
    type: Literal["image"] = "image"
    source: str                          # URL, path, data URL or base64
    adjusted: bool = False               # True when already cropped by the image editor
    transform: Optional[ImageTransform] = None


class TextFill(BaseModel):
    type: Literal["text"] = "text"
    value: str


FrameFill = Union[ImageFill, TextFill]


class RenderOptions(BaseModel):
    show_grid: bool = False
    fine_grid: bool = False
    show_guides: bool = True


class RenderRequest(BaseModel):
    template: Template
    selection_id: Optional[str] = None
    guide_lines: List[GuideLine] = Field(default_factory=list)
    scale: float = Field(default=1.0, gt=0, le=8)
    options: RenderOptions = Field(default_factory=RenderOptions)


class PdfOptions(BaseModel):
    page_format: Literal["A4", "A3", "Letter"] = "A4"
    orientation: Literal["portrait", "landscape"] = "portrait"
    margin: float = Field(default=20, ge=0)  # millimetres


class ExportRequest(BaseModel):
    id: str
    template: Template
    # user content keyed by frame id
    fills: Dict[str, FrameFill] = Field(default_factory=dict)
    scale: float = Field(default=settings.EXPORT_SCALE, gt=0, le=8)
    format: Literal["png", "jpg", "webp", "pdf"] = "png"
    quality: int = Field(default=settings.JPEG_QUALITY, ge=1, le=100)
    tier: str = "free"
    watermark: bool = True
    pdf: PdfOptions = Field(default_factory=PdfOptions)
