"""
Models - Inputs and outputs of the GIF pipeline.

AnimationSpec and TextOverlay are declarative settings (the same JSON the
upload form sends, camelCase keys accepted). SourceImage wraps the decoded
upload, EncodedOutput carries the finished GIF and its metadata.
"""

import io
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Literal, Optional

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .config import MAX_DELAY_CS, MAX_DIMENSION, MAX_LOOP_COUNT, MAX_UPLOAD_BYTES
from .errors import InvalidAnimationError, InvalidImageError

ANIMATION_KINDS = ("none", "zoom", "pan", "fade", "bounce", "rotate", "pulse", "shake")
TEXT_ANIMATIONS = ("none", "fade", "slide", "bounce")
TEXT_ALIGNMENTS = ("left", "center", "right")

AnimationKind = Literal["none", "zoom", "pan", "fade", "bounce", "rotate", "pulse", "shake"]
TextAnimationKind = Literal["none", "fade", "slide", "bounce"]
TextAlign = Literal["left", "center", "right"]


def _drop_nulls(data: Any) -> Any:
    """JSON nulls mean "use the default"."""
    if isinstance(data, dict):
        return {k: v for k, v in data.items() if v is not None}
    return data


class AnimationSpec(BaseModel):
    """How the still image moves: kind, duration (s), frame rate and loops.

    loop_count 0 loops forever.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: AnimationKind = Field(default="none", alias="type")
    duration: float = Field(default=3.0, gt=0, allow_inf_nan=False)
    frame_rate: float = Field(default=10.0, gt=0, allow_inf_nan=False, alias="frameRate")
    loop_count: int = Field(default=0, ge=0, le=MAX_LOOP_COUNT, alias="loopCount")

    @model_validator(mode="before")
    @classmethod
    def fill_defaults(cls, data: Any) -> Any:
        return _drop_nulls(data)

    @model_validator(mode="after")
    def check_frame_delay(self) -> "AnimationSpec":
        # Delay is rounded to ms, then to the centiseconds a GIF can store
        if self.is_animated:
            longest_ms = MAX_DELAY_CS * 10 + 5
            if (
                self.frame_rate < 1000 / longest_ms
                or math.floor(math.floor(1000 / self.frame_rate + 0.5) / 10 + 0.5) > MAX_DELAY_CS
            ):
                raise ValueError(
                    f"frame rate {self.frame_rate} gives a frame delay longer than "
                    f"{MAX_DELAY_CS / 100:g}s"
                )
        return self

    @property
    def is_animated(self) -> bool:
        return self.kind != "none"

    @classmethod
    def from_dict(cls, data: dict) -> "AnimationSpec":
        """Validate raw settings, reporting problems as InvalidAnimationError."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidAnimationError(f"Invalid animation settings: {_first_error(e)}") from e


class TextOverlay(BaseModel):
    """A caption placed in percent of the output frame (0-100 on each axis)."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:8])
    text: str = ""
    x: float = Field(default=50.0, ge=0, le=100)
    y: float = Field(default=50.0, ge=0, le=100)
    width: float = Field(default=30.0, ge=0, le=100)
    height: float = Field(default=10.0, ge=0, le=100)
    font_size: float = Field(default=24.0, alias="fontSize")
    font_family: str = Field(default="Arial", alias="fontFamily")
    color: str = "#FFFFFF"
    text_align: TextAlign = Field(default="center", alias="textAlign")
    rotation: float = 0.0
    text_animation: TextAnimationKind = Field(default="none", alias="textAnimation")

    @model_validator(mode="before")
    @classmethod
    def fill_defaults(cls, data: Any) -> Any:
        return _drop_nulls(data)

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()

    @classmethod
    def from_dict(cls, data: dict) -> "TextOverlay":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidAnimationError(f"Invalid text overlay: {_first_error(e)}") from e


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = ".".join(str(part) for part in err.get("loc", ())) or "value"
    return f"{loc}: {err.get('msg', 'invalid')}"


def filter_overlays(raw_overlays: Optional[Iterable[Any]]) -> List[TextOverlay]:
    """
    Keep only usable overlays, in their original order.

    Drops entries with empty/whitespace text and entries whose x/y are not
    numbers within 0-100, the same filtering the upload endpoint applies.
    TextOverlay instances pass through unchanged unless blank.
    """
    result = []
    for raw in raw_overlays or []:
        if isinstance(raw, TextOverlay):
            if not raw.is_blank:
                result.append(raw)
            continue
        if not isinstance(raw, dict):
            continue
        text = raw.get("text")
        if not isinstance(text, str) or not text.strip():
            continue
        x, y = raw.get("x"), raw.get("y")
        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in (x, y)):
            continue
        if not (0 <= x <= 100 and 0 <= y <= 100):
            continue
        result.append(TextOverlay.from_dict(raw))
    return result


@dataclass(frozen=True)
class SourceImage:
    """Decoded upload. The pipeline only ever reads `image`."""
    image: Image.Image
    width: int
    height: int
    byte_size: int
    format: Optional[str] = None

    @classmethod
    def from_bytes(cls, raw: bytes) -> "SourceImage":
        """
        Decode and validate an uploaded image.

        Raises:
            InvalidImageError: empty or oversized buffer, undecodable data,
                or dimensions outside 1..MAX_DIMENSION.
        """
        if not raw:
            raise InvalidImageError("Invalid image buffer")
        if len(raw) > MAX_UPLOAD_BYTES:
            raise InvalidImageError(
                f"File size must be less than {MAX_UPLOAD_BYTES // (1024 * 1024)}MB"
            )

        try:
            img = Image.open(io.BytesIO(raw))
        except Image.DecompressionBombError as e:
            raise InvalidImageError(f"Invalid image dimensions: {e}") from e
        except (UnidentifiedImageError, OSError) as e:
            raise InvalidImageError("Invalid image format. Please ensure the image is valid.") from e

        width, height = img.size
        if width <= 0 or height <= 0 or width > MAX_DIMENSION or height > MAX_DIMENSION:
            raise InvalidImageError(f"Invalid image dimensions: {width}x{height}")

        fmt = img.format
        try:
            rgba = img.convert("RGBA")
        except (OSError, ValueError) as e:
            raise InvalidImageError("Unable to read image data") from e

        return cls(image=rgba, width=width, height=height, byte_size=len(raw), format=fmt)

    @classmethod
    def from_image(cls, img: Image.Image) -> "SourceImage":
        """Wrap an in-memory image (tests, previews)."""
        width, height = img.size
        if width <= 0 or height <= 0 or width > MAX_DIMENSION or height > MAX_DIMENSION:
            raise InvalidImageError(f"Invalid image dimensions: {width}x{height}")
        return cls(image=img.convert("RGBA"), width=width, height=height, byte_size=0)


@dataclass
class EncodedOutput:
    """Finished GIF bytes plus what the storage layer records about them."""
    data: bytes
    width: int
    height: int
    frame_count: int
    delay_ms: int
    loop_count: Optional[int]
    animation_kind: str
    warnings: List[str] = field(default_factory=list)

    @property
    def byte_size(self) -> int:
        return len(self.data)

    def metadata(self) -> dict:
        """Metadata record; frame info only exists for animated output."""
        meta = {"width": self.width, "height": self.height, "size": self.byte_size}
        if self.animation_kind != "none":
            meta["frameCount"] = self.frame_count
            meta["animationKind"] = self.animation_kind
        return meta
