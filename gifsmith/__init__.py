"""
Still image + animation + text overlays -> animated GIF.

Modules:
  models        AnimationSpec, TextOverlay, SourceImage, EncodedOutput
  transforms    per-frame motion (zoom, pan, fade, bounce, rotate, pulse, shake)
  text_overlay  caption rasterizer with animation, stroke and shadow
  composer      one frame = transformed source + overlay layers
  encoder       GIF89a writer (palette, loop, delay, LZW)
  pipeline      frame count/delay, parallel frame synthesis, encoding
  coordinates   editor preview <-> percent <-> output pixel conversions
  storage       on-disk record of produced GIFs
"""

from .errors import (
    ConversionCancelled,
    EncodingError,
    GifConversionError,
    InvalidAnimationError,
    InvalidImageError,
)
from .models import AnimationSpec, EncodedOutput, SourceImage, TextOverlay, filter_overlays
from .pipeline import GifPipeline, convert_image_to_gif, frame_count, frame_delay_ms

__all__ = [
    "AnimationSpec",
    "ConversionCancelled",
    "EncodedOutput",
    "EncodingError",
    "GifConversionError",
    "GifPipeline",
    "InvalidAnimationError",
    "InvalidImageError",
    "SourceImage",
    "TextOverlay",
    "convert_image_to_gif",
    "filter_overlays",
    "frame_count",
    "frame_delay_ms",
]
