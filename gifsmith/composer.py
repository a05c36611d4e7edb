"""
Composer - Builds one fully resolved frame.

The transform descriptor is applied to the source first, then each text
overlay layer is alpha-composited on top in list order (later overlays are
drawn above earlier ones).
"""

import logging
from typing import List, Optional, Sequence

from PIL import Image

from .errors import FrameSizeError, OverlayRenderError
from .models import SourceImage, TextOverlay
from .text_overlay import OverlayCache, render_overlay
from .transforms import TransformDescriptor, apply_transform

logger = logging.getLogger(__name__)


def compose_frame(
    source: SourceImage,
    descriptor: TransformDescriptor,
    overlays: Sequence[TextOverlay],
    frame_w: int,
    frame_h: int,
    progress: float,
    diagnostics: Optional[List[str]] = None,
    cache: Optional[OverlayCache] = None,
) -> Image.Image:
    """
    Compose a single RGBA frame of exactly frame_w x frame_h.

    Overlays that fail to render are skipped; a message is appended to
    `diagnostics` when given.

    Raises:
        FrameSizeError: the composed frame has the wrong size.
    """
    frame = apply_transform(source.image, descriptor, frame_w, frame_h).convert("RGBA")

    for overlay in overlays:
        try:
            if cache is not None:
                layer = cache.get_or_render(overlay, frame_w, frame_h, progress)
            else:
                layer = render_overlay(overlay, frame_w, frame_h, progress)
        except OverlayRenderError as e:
            logger.warning("Skipping text overlay: %s", e)
            if diagnostics is not None:
                diagnostics.append(str(e))
            continue

        if layer is None:
            continue
        frame = Image.alpha_composite(frame, layer)

    if frame.size != (frame_w, frame_h):
        raise FrameSizeError(
            f"Composed frame is {frame.size[0]}x{frame.size[1]}, expected {frame_w}x{frame_h}"
        )
    return frame
