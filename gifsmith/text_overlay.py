"""
Text Overlay - Rasterizes one caption into a transparent frame-sized layer.

Placement is in percent of the output frame. Per-frame text animation
(fade/slide/bounce) is applied before the anchor is clamped on-canvas.
Glyphs get a contrasting stroke and a soft drop shadow for readability.
"""

import logging
import math
import re
import threading
from typing import Callable, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from .config import FONTS_DIR, MAX_FONT_SIZE, MIN_FONT_SIZE
from .errors import OverlayRenderError
from .models import TextOverlay
from .transforms import round_half_up

logger = logging.getLogger(__name__)

TWO_PI = 2 * math.pi

# Pillow anchors: horizontal edge + vertical middle
ALIGN_ANCHORS = {"left": "lm", "center": "mm", "right": "rm"}

SHADOW_BLUR = 2
SHADOW_OFFSET = (1, 1)
SHADOW_OPACITY = 0.5

FALLBACK_FONTS = ["DejaVuSans-Bold.ttf", "arialbd.ttf", "Arial Bold.ttf"]

_HEX_RE = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", re.IGNORECASE)

_fonts = threading.local()


def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    """Convert #RRGGBB to an RGB tuple; anything else becomes white."""
    match = _HEX_RE.match(hex_color or "")
    if not match:
        return (255, 255, 255)
    return tuple(int(part, 16) for part in match.groups())


def get_font(family: str, size: int) -> ImageFont.ImageFont:
    """
    Load a font with fallback chain: project fonts, system fonts by name,
    then Pillow's built-in font at the requested size.

    Fonts are cached per thread since FreeType faces are not shared safely.
    """
    cache = getattr(_fonts, "cache", None)
    if cache is None:
        cache = _fonts.cache = {}
    key = (family, size)
    if key in cache:
        return cache[key]

    candidates = [
        FONTS_DIR / f"{family}-Bold.ttf",
        FONTS_DIR / f"{family}.ttf",
        f"{family}.ttf",
        family,
        *FALLBACK_FONTS,
    ]
    font = None
    for candidate in candidates:
        try:
            font = ImageFont.truetype(str(candidate), size)
            break
        except OSError:
            continue
    if font is None:
        logger.debug("Font '%s' not found, using default", family)
        font = ImageFont.load_default(size=size)

    cache[key] = font
    return font


def effective_font_size(overlay: TextOverlay) -> int:
    return int(max(MIN_FONT_SIZE, min(MAX_FONT_SIZE, round_half_up(overlay.font_size or 24))))


def stroke_style(color: Tuple[int, int, int], font_size: int) -> Tuple[Tuple[int, int, int], int]:
    """Black stroke for light text, white for dark; width grows with size."""
    brightness = sum(color) / 3
    stroke_color = (0, 0, 0) if brightness > 128 else (255, 255, 255)
    stroke_width = max(2, round_half_up(font_size / 12))
    return stroke_color, stroke_width


def overlay_anchor(overlay: TextOverlay, frame_w: int, frame_h: int) -> Tuple[float, float]:
    """Percent placement -> target-frame pixels (no animation, no clamping)."""
    return overlay.x / 100 * frame_w, overlay.y / 100 * frame_h


def animated_anchor(
    overlay: TextOverlay,
    frame_w: int,
    frame_h: int,
    progress: float,
) -> Tuple[float, float, float]:
    """
    Resolve the anchor and opacity for one frame.

    Returns:
        (x, y, opacity) with the anchor clamped so the text stays on canvas.
    """
    x, y = overlay_anchor(overlay, frame_w, frame_h)
    opacity = 1.0

    if overlay.text_animation == "fade":
        opacity = 0.5 + math.sin(progress * TWO_PI) * 0.5
    elif overlay.text_animation == "slide":
        x += math.sin(progress * TWO_PI) * (frame_w * 0.1)
    elif overlay.text_animation == "bounce":
        y -= abs(math.sin(progress * 2 * TWO_PI)) * (frame_h * 0.05)

    font_size = effective_font_size(overlay)
    x = _clamp_axis(x, frame_w, font_size * 0.5)
    y = _clamp_axis(y, frame_h, font_size * 0.5)
    return x, y, max(0.0, min(1.0, opacity))


def _clamp_axis(value: float, dimension: int, inset: float) -> float:
    low, high = inset, dimension - inset
    if low > high:
        return dimension / 2
    return max(low, min(value, high))


def wrap_text(text: str, font, max_width: float, draw: ImageDraw.ImageDraw,
              stroke_width: int = 0) -> List[str]:
    """Wrap text into lines fitting within max_width (explicit newlines kept)."""
    lines = []
    for segment in text.split("\n"):
        words = segment.split()
        if not words:
            lines.append("")
            continue
        current = []
        for word in words:
            test = " ".join(current + [word])
            bbox = draw.textbbox((0, 0), test, font=font, stroke_width=stroke_width)
            if bbox[2] - bbox[0] <= max_width or not current:
                current.append(word)
            else:
                lines.append(" ".join(current))
                current = [word]
        lines.append(" ".join(current))
    return lines


def _drop_shadow(layer: Image.Image) -> Image.Image:
    """Blurred, offset, half-transparent black copy of the glyph alpha."""
    alpha = layer.getchannel("A").point(lambda a: int(a * SHADOW_OPACITY))
    shadow = Image.new("RGBA", layer.size, (0, 0, 0, 0))
    black = Image.new("RGBA", layer.size, (0, 0, 0, 255))
    shadow.paste(black, SHADOW_OFFSET, alpha)
    return shadow.filter(ImageFilter.GaussianBlur(radius=SHADOW_BLUR))


def render_overlay(
    overlay: TextOverlay,
    frame_w: int,
    frame_h: int,
    progress: float = 0.0,
) -> Optional[Image.Image]:
    """
    Rasterize one overlay into a frame_w x frame_h RGBA layer.

    Returns None for blank text.

    Raises:
        OverlayRenderError: the text could not be drawn (bad glyph data,
            unusable font, ...). Callers skip the overlay and carry on.
    """
    if overlay.is_blank:
        return None

    try:
        x, y, opacity = animated_anchor(overlay, frame_w, frame_h, progress)
        font_size = effective_font_size(overlay)
        font = get_font(overlay.font_family, font_size)
        color = hex_to_rgb(overlay.color)
        stroke_color, stroke_width = stroke_style(color, font_size)

        layer = Image.new("RGBA", (frame_w, frame_h), (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)

        max_width = overlay.width / 100 * frame_w
        if max_width > 0:
            lines = wrap_text(overlay.text, font, max_width, draw, stroke_width)
        else:
            lines = overlay.text.split("\n")

        draw.text(
            (x, y),
            "\n".join(lines),
            font=font,
            fill=(*color, 255),
            anchor=ALIGN_ANCHORS.get(overlay.text_align, "mm"),
            align=overlay.text_align,
            spacing=max(1, int(font_size * 0.15)),
            stroke_width=stroke_width,
            stroke_fill=(*stroke_color, 255),
        )

        layer = Image.alpha_composite(_drop_shadow(layer), layer)

        rotation = overlay.rotation % 360
        if rotation:
            # Clockwise about the anchor; Pillow rotates counter-clockwise
            layer = layer.rotate(-rotation, resample=Image.Resampling.BICUBIC, center=(x, y))

        if opacity < 1.0:
            alpha = layer.getchannel("A").point(lambda a: int(a * opacity))
            layer.putalpha(alpha)

        return layer
    except (OSError, ValueError, TypeError) as e:
        raise OverlayRenderError(overlay.id, str(e)) from e


class OverlayCache:
    """
    Memoizes rendered layers by (overlay, progress, frame size).

    Optional: text layers repeat whenever the overlay has no animation,
    so the static case renders once per conversion.
    """

    def __init__(self):
        self._layers = {}
        self._lock = threading.Lock()
        self.hits = 0

    def get_or_render(
        self,
        overlay: TextOverlay,
        frame_w: int,
        frame_h: int,
        progress: float,
        render: Callable[..., Optional[Image.Image]] = render_overlay,
    ) -> Optional[Image.Image]:
        # Non-animated text looks the same on every frame
        key_progress = 0.0 if overlay.text_animation == "none" else round(progress, 6)
        key = (overlay, frame_w, frame_h, key_progress)
        with self._lock:
            if key in self._layers:
                self.hits += 1
                return self._layers[key]
        layer = render(overlay, frame_w, frame_h, progress)
        with self._lock:
            self._layers.setdefault(key, layer)
        return layer
