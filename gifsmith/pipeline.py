"""
Pipeline - Turns a still image into an animated GIF.

Computes the frame count and delay from the animation settings, composes
every frame (in parallel when allowed; frames are independent), puts them
back in order and hands the sequence to the encoder.
"""

import logging
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union

from PIL import Image

from .composer import compose_frame
from .config import (
    DEFAULT_BACKGROUND, DEFAULT_QUALITY, MAX_FRAMES, MAX_QUALITY, MIN_FRAMES, MIN_QUALITY,
    default_max_workers,
)
from .encoder import encode_gif
from .errors import ConversionCancelled, InvalidAnimationError
from .models import AnimationSpec, EncodedOutput, SourceImage, TextOverlay, filter_overlays
from .text_overlay import OverlayCache
from .transforms import Identity, resolve_transform, round_half_up

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def frame_count(spec: AnimationSpec) -> int:
    """Frames in the output: 1 for a still, otherwise clamped to 2..60."""
    if not spec.is_animated:
        return 1
    # Clamp before rounding; the product can overflow to inf
    return max(MIN_FRAMES, round_half_up(min(MAX_FRAMES, spec.duration * spec.frame_rate)))


def frame_delay_ms(spec: AnimationSpec) -> int:
    """Uniform delay between frames in milliseconds."""
    return round_half_up(1000 / spec.frame_rate)


def progress_for_frame(index: int, total: int) -> float:
    """Frame i of n maps to i / (n - 1), so the last frame lands on 1.0."""
    if total <= 1:
        return 0.0
    return index / (total - 1)


def _check_cancelled(cancel_event: Optional[threading.Event], index: int) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ConversionCancelled(f"Conversion cancelled before frame {index}")


class GifPipeline:
    """
    Frame synthesis + encoding for one conversion at a time.

    Args:
        quality: Encoder palette quality, 1 (best) to 30 (fastest)
        max_workers: Threads used to compose frames (1 = sequential)
        seed: Seed for the "shake" jitter; None draws fresh entropy
        cache_overlays: Reuse text layers that repeat across frames
        background: Colour shown through transparent pixels
        dither: Dither frames onto their palettes
    """

    def __init__(
        self,
        quality: int = DEFAULT_QUALITY,
        max_workers: Optional[int] = None,
        seed: Optional[int] = None,
        cache_overlays: bool = True,
        background: Tuple[int, int, int] = DEFAULT_BACKGROUND,
        dither: bool = False,
    ):
        if not (MIN_QUALITY <= quality <= MAX_QUALITY):
            raise InvalidAnimationError(
                f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {quality}"
            )
        self.quality = quality
        self.max_workers = max_workers or default_max_workers()
        self.seed = seed
        self.cache_overlays = cache_overlays
        self.background = background
        self.dither = dither

    def run(
        self,
        source: SourceImage,
        spec: AnimationSpec,
        overlays: Sequence[TextOverlay] = (),
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> EncodedOutput:
        """
        Convert one image.

        Returns:
            EncodedOutput with the GIF bytes and metadata.

        Raises:
            ConversionCancelled: cancel_event was set before a frame started.
            EncodingError: the frame sequence could not be encoded.
        """
        overlays = [o for o in overlays if not o.is_blank]
        width, height = source.width, source.height
        diagnostics: List[str] = []

        if not spec.is_animated:
            _check_cancelled(cancel_event, 0)
            frame = compose_frame(source, Identity(), overlays, width, height, 0.0, diagnostics)
            if on_progress:
                on_progress(1, 1)
            data = encode_gif(
                [frame], 0, loop_count=None,
                quality=self.quality, background=self.background, dither=self.dither,
            )
            logger.info("Encoded still GIF %dx%d (%d bytes)", width, height, len(data))
            return EncodedOutput(
                data=data, width=width, height=height, frame_count=1, delay_ms=0,
                loop_count=None, animation_kind="none", warnings=_unique(diagnostics),
            )

        total = frame_count(spec)
        delay_ms = frame_delay_ms(spec)
        logger.info(
            "Rendering %d frames (%s, %dms delay) at %dx%d",
            total, spec.kind, delay_ms, width, height,
        )

        # One generator per frame, drawn up front, so threading never
        # changes which jitter a frame gets
        master_rng = random.Random(self.seed)
        frame_rngs = [random.Random(master_rng.getrandbits(64)) for _ in range(total)]
        cache = OverlayCache() if self.cache_overlays else None

        def render(index: int) -> Tuple[Image.Image, List[str]]:
            _check_cancelled(cancel_event, index)
            progress = progress_for_frame(index, total)
            descriptor = resolve_transform(spec.kind, progress, width, height, frame_rngs[index])
            frame_diagnostics: List[str] = []
            frame = compose_frame(
                source, descriptor, overlays, width, height, progress,
                frame_diagnostics, cache,
            )
            logger.debug("Frame %d/%d: %s", index + 1, total, descriptor)
            return frame, frame_diagnostics

        start = time.time()
        frames = self._render_all(render, total, on_progress)
        for _, frame_diagnostics in frames:
            diagnostics.extend(frame_diagnostics)

        data = encode_gif(
            [frame for frame, _ in frames], delay_ms, loop_count=spec.loop_count,
            quality=self.quality, background=self.background, dither=self.dither,
        )
        logger.info(
            "Encoded %d frames in %.1fs (%d bytes)", total, time.time() - start, len(data)
        )
        return EncodedOutput(
            data=data,
            width=width,
            height=height,
            frame_count=total,
            delay_ms=delay_ms,
            loop_count=spec.loop_count,
            animation_kind=spec.kind,
            warnings=_unique(diagnostics),
        )

    def _render_all(
        self,
        render: Callable[[int], Tuple[Image.Image, List[str]]],
        total: int,
        on_progress: Optional[ProgressCallback],
    ) -> List[Tuple[Image.Image, List[str]]]:
        """Render frames 0..total-1 and return them in index order."""
        workers = max(1, min(self.max_workers, total))
        results = []

        if workers == 1:
            for index in range(total):
                results.append(render(index))
                if on_progress:
                    on_progress(index + 1, total)
            return results

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gif-frame") as pool:
            futures = [pool.submit(render, index) for index in range(total)]
            try:
                for index, future in enumerate(futures):
                    results.append(future.result())
                    if on_progress:
                        on_progress(index + 1, total)
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
        return results


def _unique(messages: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(messages))


def convert_image_to_gif(
    image_bytes: bytes,
    animation: Union[AnimationSpec, dict, None] = None,
    overlays: Optional[Iterable[Any]] = None,
    quality: int = DEFAULT_QUALITY,
    max_workers: Optional[int] = None,
    seed: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> EncodedOutput:
    """
    Decode an upload and convert it to a GIF.

    Args:
        image_bytes: Raw image file contents
        animation: AnimationSpec or its JSON dict; None makes a still GIF
        overlays: TextOverlay objects or dicts; blank/out-of-range ones are dropped
        quality: Encoder palette quality, 1 (best) to 30 (fastest)
        max_workers: Frame threads (default: CPU count)
        seed: Seed for reproducible "shake" output

    Raises:
        InvalidImageError: the upload is not a usable image.
        InvalidAnimationError: the animation settings are invalid.
        EncodingError: the GIF could not be produced.
    """
    source = SourceImage.from_bytes(image_bytes)

    if animation is None:
        spec = AnimationSpec()
    elif isinstance(animation, AnimationSpec):
        spec = animation
    else:
        spec = AnimationSpec.from_dict(animation)

    pipeline = GifPipeline(quality=quality, max_workers=max_workers, seed=seed)
    return pipeline.run(
        source, spec, filter_overlays(overlays),
        cancel_event=cancel_event, on_progress=on_progress,
    )
