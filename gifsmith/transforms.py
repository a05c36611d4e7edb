"""
Transforms - Per-frame motion for the animated GIF.

resolve_transform() maps (animation kind, progress) to a descriptor: a small
frozen record holding the resolved numbers for one frame (scale, crop box,
brightness or angle). apply_transform() turns a descriptor into pixels at
the exact output size.

Crop boxes are clamped inside the source. When clamping cannot produce a
usable box the frame falls back to a plain cover-resize of the whole image.
"""

import logging
import math
import random
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple, Union

from PIL import Image, ImageEnhance

from .errors import BoundsViolation, InvalidAnimationError
from .models import ANIMATION_KINDS

logger = logging.getLogger(__name__)

TWO_PI = 2 * math.pi

# Fully transparent white, so flattened corners end up white
ROTATE_FILL = (255, 255, 255, 0)


# ── Descriptors ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CropBox:
    """Integer rectangle in source pixels."""
    left: int
    top: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height

    def fits(self, width: int, height: int) -> bool:
        return (
            self.left >= 0 and self.top >= 0
            and self.width > 0 and self.height > 0
            and self.right <= width and self.bottom <= height
        )

    def as_pil(self) -> Tuple[int, int, int, int]:
        return (self.left, self.top, self.right, self.bottom)


@dataclass(frozen=True)
class Identity:
    """No geometric or photometric change."""


@dataclass(frozen=True)
class Scale:
    """Zoom about the centre; values below 1 are treated as 1."""
    scale: float


@dataclass(frozen=True)
class Crop:
    box: CropBox


@dataclass(frozen=True)
class Brightness:
    factor: float


@dataclass(frozen=True)
class Rotation:
    """Clockwise angle in degrees."""
    angle: float


@dataclass(frozen=True)
class CoverResize:
    """Whole-image resize, used when a crop could not be made valid."""
    reason: str = ""


TransformDescriptor = Union[Identity, Scale, Crop, Brightness, Rotation, CoverResize]


# ── Geometry helpers ───────────────────────────────────────────────────

def round_half_up(value: float) -> int:
    """Round .5 away from zero on the positive side (Math.round semantics)."""
    return int(math.floor(value + 0.5))


def clamp_box(left: float, top: float, width: float, height: float,
              src_w: int, src_h: int) -> CropBox:
    """
    Clamp a candidate rectangle inside src_w x src_h.

    Origin is clamped to [0, dim - 1], size to [1, dim - origin].

    Raises:
        BoundsViolation: if the input is not finite or the result still
            falls outside the source.
    """
    if src_w < 1 or src_h < 1:
        raise BoundsViolation(f"empty source {src_w}x{src_h}")
    if not all(math.isfinite(v) for v in (left, top, width, height)):
        raise BoundsViolation(f"non-finite crop ({left}, {top}, {width}, {height})")

    x = max(0, min(int(math.floor(left)), src_w - 1))
    y = max(0, min(int(math.floor(top)), src_h - 1))
    w = max(1, min(int(math.floor(width)), src_w - x))
    h = max(1, min(int(math.floor(height)), src_h - y))

    box = CropBox(x, y, w, h)
    if not box.fits(src_w, src_h):
        raise BoundsViolation(f"crop {box.as_pil()} outside {src_w}x{src_h}")
    return box


def _crop_or_fallback(left: float, top: float, width: float, height: float,
                      src_w: int, src_h: int) -> TransformDescriptor:
    try:
        return Crop(clamp_box(left, top, width, height, src_w, src_h))
    except BoundsViolation as e:
        logger.warning("Crop fallback to cover resize: %s", e)
        return CoverResize(str(e))


# ── Resolvers (one per animation kind) ─────────────────────────────────

def _none(p: float, w: int, h: int, rng: random.Random) -> TransformDescriptor:
    return Identity()


def _zoom(p: float, w: int, h: int, rng: random.Random) -> TransformDescriptor:
    return Scale(1 + math.sin(p * TWO_PI) * 0.2)


def _pulse(p: float, w: int, h: int, rng: random.Random) -> TransformDescriptor:
    return Scale(1 + math.sin(p * 2 * TWO_PI) * 0.15)


def _pan(p: float, w: int, h: int, rng: random.Random) -> TransformDescriptor:
    offset_x = round_half_up(math.sin(p * TWO_PI) * 0.15 * w)
    offset_y = round_half_up(math.cos(p * TWO_PI) * 0.15 * h)

    # 85% window, never smaller than half the image
    crop_w = math.floor(max(w * 0.5, w * 0.85))
    crop_h = math.floor(max(h * 0.5, h * 0.85))

    center_x = (w - crop_w) // 2
    center_y = (h - crop_h) // 2
    left = max(0, min(w - crop_w, center_x + offset_x))
    top = max(0, min(h - crop_h, center_y + offset_y))
    return _crop_or_fallback(left, top, crop_w, crop_h, w, h)


def _fade(p: float, w: int, h: int, rng: random.Random) -> TransformDescriptor:
    # The raw curve dips below zero; black is as dark as it gets
    return Brightness(max(0.0, 0.3 + math.sin(p * TWO_PI) * 0.7))


def _rotate(p: float, w: int, h: int, rng: random.Random) -> TransformDescriptor:
    return Rotation(p * 360.0)


def _bounce(p: float, w: int, h: int, rng: random.Random) -> TransformDescriptor:
    lift = abs(math.sin(p * 2 * TWO_PI)) * 0.15 * h
    return _crop_or_fallback(0, 0, w, h - lift, w, h)


def _shake(p: float, w: int, h: int, rng: random.Random) -> TransformDescriptor:
    margin_x = math.ceil(w * 0.03)
    margin_y = math.ceil(h * 0.03)
    jitter_x = rng.uniform(-1.0, 1.0) * w * 0.03
    jitter_y = rng.uniform(-1.0, 1.0) * h * 0.03
    return _crop_or_fallback(
        margin_x + jitter_x, margin_y + jitter_y,
        w - 2 * margin_x, h - 2 * margin_y,
        w, h,
    )


Resolver = Callable[[float, int, int, random.Random], TransformDescriptor]

_RESOLVERS: Dict[str, Resolver] = {
    "none": _none,
    "zoom": _zoom,
    "pan": _pan,
    "fade": _fade,
    "bounce": _bounce,
    "rotate": _rotate,
    "pulse": _pulse,
    "shake": _shake,
}

if set(_RESOLVERS) != set(ANIMATION_KINDS):
    raise RuntimeError(
        f"Transform resolvers out of sync with animation kinds: "
        f"{sorted(set(_RESOLVERS) ^ set(ANIMATION_KINDS))}"
    )


def resolve_transform(
    kind: str,
    progress: float,
    width: int,
    height: int,
    rng: Optional[random.Random] = None,
) -> TransformDescriptor:
    """
    Resolve the transform for one frame.

    Args:
        kind: Animation kind (see ANIMATION_KINDS)
        progress: Normalized animation time, 0.0 to 1.0
        width: Source width in pixels
        height: Source height in pixels
        rng: Random source for "shake". A fresh unseeded generator is used
            when omitted, so pass a seeded one for reproducible output.

    Returns:
        A descriptor whose crop box (if any) lies inside width x height.
    """
    resolver = _RESOLVERS.get(kind)
    if resolver is None:
        raise InvalidAnimationError(f"Unknown animation type: {kind}")
    return resolver(progress, width, height, rng or random.Random())


# ── Applying descriptors ───────────────────────────────────────────────

def resize_cover(image: Image.Image, target_width: int, target_height: int) -> Image.Image:
    """
    Resize image to cover target dimensions, cropping if necessary.
    This ensures no empty bars appear.
    """
    img_w, img_h = image.size
    target_ratio = target_width / target_height
    img_ratio = img_w / img_h

    if img_ratio > target_ratio:
        # Image is wider, fit to height and crop width
        new_height = target_height
        new_width = max(target_width, round(img_w * (target_height / img_h)))
    else:
        # Image is taller, fit to width and crop height
        new_width = target_width
        new_height = max(target_height, round(img_h * (target_width / img_w)))

    if (new_width, new_height) != image.size:
        image = image.resize((new_width, new_height), Image.Resampling.LANCZOS)

    # Center crop
    left = (new_width - target_width) // 2
    top = (new_height - target_height) // 2
    return image.crop((left, top, left + target_width, top + target_height))


def _apply_identity(image, d: Identity, w: int, h: int) -> Image.Image:
    if image.size == (w, h):
        return image.copy()
    return resize_cover(image, w, h)


def _apply_cover(image, d: CoverResize, w: int, h: int) -> Image.Image:
    return resize_cover(image, w, h)


def _apply_scale(image, d: Scale, w: int, h: int) -> Image.Image:
    """
    Centre zoom via affine transform.

    Works in floating point end to end so consecutive frames do not jitter
    from integer rounding of the crop window.
    """
    base = resize_cover(image, w, h) if image.size != (w, h) else image
    zoom = max(1.0, d.scale)
    if zoom == 1.0:
        return base.copy()

    crop_w = w / zoom
    crop_h = h / zoom
    cx = (w - crop_w) / 2.0
    cy = (h - crop_h) / 2.0

    affine_coeffs = (
        crop_w / w, 0.0, cx,
        0.0, crop_h / h, cy,
    )
    return base.transform(
        (w, h),
        Image.Transform.AFFINE,
        affine_coeffs,
        resample=Image.Resampling.BICUBIC,
    )


def _apply_crop(image, d: Crop, w: int, h: int) -> Image.Image:
    if not d.box.fits(*image.size):
        logger.warning("Crop %s does not fit %sx%s, resizing instead", d.box.as_pil(), *image.size)
        return resize_cover(image, w, h)
    return resize_cover(image.crop(d.box.as_pil()), w, h)


def _apply_brightness(image, d: Brightness, w: int, h: int) -> Image.Image:
    base = resize_cover(image, w, h) if image.size != (w, h) else image
    return ImageEnhance.Brightness(base).enhance(d.factor)


def _apply_rotation(image, d: Rotation, w: int, h: int) -> Image.Image:
    angle = d.angle % 360.0
    if angle == 0.0:
        return _apply_identity(image, Identity(), w, h)
    # Pillow rotates counter-clockwise
    rotated = image.rotate(
        -angle,
        resample=Image.Resampling.BICUBIC,
        expand=True,
        fillcolor=ROTATE_FILL,
    )
    return resize_cover(rotated, w, h)


_APPLIERS = {
    Identity: _apply_identity,
    Scale: _apply_scale,
    Crop: _apply_crop,
    Brightness: _apply_brightness,
    Rotation: _apply_rotation,
    CoverResize: _apply_cover,
}


def apply_transform(
    image: Image.Image,
    descriptor: TransformDescriptor,
    width: int,
    height: int,
) -> Image.Image:
    """Render descriptor against image, returning exactly width x height."""
    applier = _APPLIERS.get(type(descriptor))
    if applier is None:
        raise InvalidAnimationError(f"Unsupported transform: {descriptor!r}")
    result = applier(image, descriptor, width, height)
    if result.size != (width, height):
        result = resize_cover(result, width, height)
    return result
