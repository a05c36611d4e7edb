"""
Coordinates - Overlay placement across the editor preview and the output.

Three spaces are involved:
  rendered px  the scaled preview an editor draws on screen
  percent      0-100 of each axis, what TextOverlay stores
  target px    pixels of the output GIF frame

Editors convert drag deltas from rendered px into percent; the renderer
converts percent into target px. Going through percent keeps both sides
consistent whatever the preview scale is.
"""

import math
from dataclasses import dataclass
from typing import Tuple

from .models import TextOverlay

MIN_OVERLAY_SIZE = 5.0


@dataclass(frozen=True)
class CoordinateSpace:
    """A pixel space of the given size (preview or output frame)."""
    width: float
    height: float

    def to_percent(self, x: float, y: float) -> Tuple[float, float]:
        return (
            x / self.width * 100 if self.width > 0 else 0.0,
            y / self.height * 100 if self.height > 0 else 0.0,
        )

    def from_percent(self, x_pct: float, y_pct: float) -> Tuple[float, float]:
        return x_pct / 100 * self.width, y_pct / 100 * self.height


def _clamp_percent(value: float, low: float = 0.0) -> float:
    return max(low, min(100.0, value))


def rendered_to_percent(x: float, y: float, rendered: CoordinateSpace) -> Tuple[float, float]:
    return rendered.to_percent(x, y)


def percent_to_rendered(x_pct: float, y_pct: float, rendered: CoordinateSpace) -> Tuple[float, float]:
    return rendered.from_percent(x_pct, y_pct)


def percent_to_target(x_pct: float, y_pct: float, target: CoordinateSpace) -> Tuple[float, float]:
    return target.from_percent(x_pct, y_pct)


def target_to_percent(x: float, y: float, target: CoordinateSpace) -> Tuple[float, float]:
    return target.to_percent(x, y)


def rendered_to_target(
    x: float,
    y: float,
    rendered: CoordinateSpace,
    target: CoordinateSpace,
) -> Tuple[float, float]:
    """Map a preview pixel to the output pixel under it."""
    return percent_to_target(*rendered_to_percent(x, y, rendered), target)


def move_by_drag(
    overlay: TextOverlay,
    delta_x: float,
    delta_y: float,
    rendered: CoordinateSpace,
) -> TextOverlay:
    """Move an overlay by a drag measured in preview pixels."""
    start_x, start_y = percent_to_rendered(overlay.x, overlay.y, rendered)
    new_x, new_y = rendered_to_percent(start_x + delta_x, start_y + delta_y, rendered)
    return overlay.model_copy(update={"x": _clamp_percent(new_x), "y": _clamp_percent(new_y)})


def resize_by_drag(
    overlay: TextOverlay,
    delta_x: float,
    delta_y: float,
    rendered: CoordinateSpace,
) -> TextOverlay:
    """
    Resize an overlay box symmetrically around its anchor.

    The drag distance counts twice (both edges move); the box never gets
    smaller than 5% of the frame.
    """
    width_pct, height_pct = rendered_to_percent(abs(delta_x) * 2, abs(delta_y) * 2, rendered)
    width_pct = _clamp_percent(width_pct, MIN_OVERLAY_SIZE)
    height_pct = _clamp_percent(height_pct, MIN_OVERLAY_SIZE)
    return overlay.model_copy(update={"width": width_pct, "height": height_pct})


def rotation_from_pointer(
    pointer_x: float,
    pointer_y: float,
    center_x: float,
    center_y: float,
) -> float:
    """
    Rotation (degrees, clockwise, 0 = handle straight up) for a rotate
    handle dragged to the pointer position. All values in one pixel space.
    """
    angle = math.degrees(math.atan2(pointer_y - center_y, pointer_x - center_x))
    return (angle + 90) % 360


def rotate_by_pointer(
    overlay: TextOverlay,
    pointer_x: float,
    pointer_y: float,
    rendered: CoordinateSpace,
) -> TextOverlay:
    center_x, center_y = percent_to_rendered(overlay.x, overlay.y, rendered)
    rotation = rotation_from_pointer(pointer_x, pointer_y, center_x, center_y)
    return overlay.model_copy(update={"rotation": rotation})
