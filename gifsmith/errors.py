"""Exceptions raised while turning an image into an animated GIF."""


class GifConversionError(Exception):
    """Base class for every failure the pipeline reports to its caller."""


class InvalidImageError(GifConversionError):
    """The uploaded buffer is empty, undecodable or has unusable dimensions."""


class InvalidAnimationError(GifConversionError):
    """The animation settings (or a crop derived from them) are unusable."""


class EncodingError(GifConversionError):
    """The GIF byte stream could not be produced or written."""


class ConversionCancelled(GifConversionError):
    """The caller abandoned the conversion between two frames."""


class FrameSizeError(GifConversionError):
    """A composed frame does not match the target size."""


class BoundsViolation(Exception):
    """A crop rectangle would leave the source image.

    Only raised inside the transform step, which recovers by resizing the
    whole image instead.
    """


class OverlayRenderError(Exception):
    """A single text overlay could not be rasterized."""

    def __init__(self, overlay_id: str, reason: str):
        super().__init__(f"overlay '{overlay_id}': {reason}")
        self.overlay_id = overlay_id
        self.reason = reason
