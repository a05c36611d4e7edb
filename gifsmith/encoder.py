"""
GIF Encoder - Writes an ordered frame sequence as a GIF89a byte stream.

Stream layout:
  header, logical screen descriptor, global colour table (first frame's
  palette), NETSCAPE2.0 loop extension, then per frame a graphic control
  extension (uniform delay), image descriptor, local colour table (frames
  after the first) and LZW-compressed indices, and finally the trailer.

Palettes are built per frame with Pillow's median-cut quantizer from a
pixel sample; `quality` is the sampling stride (1 = every pixel, slowest
and most faithful). Frames are written exactly in the order given and are
never merged or reordered, even when two neighbours are identical.
"""

import io
import logging
import struct
from typing import BinaryIO, Iterable, Optional, Tuple

import numpy as np
from PIL import Image

from .config import DEFAULT_BACKGROUND, DEFAULT_QUALITY, MAX_QUALITY, MIN_QUALITY
from .errors import EncodingError, InvalidAnimationError
from .transforms import round_half_up

logger = logging.getLogger(__name__)

GIF_HEADER = b"GIF89a"
TRAILER = b"\x3b"
EXTENSION_INTRODUCER = 0x21
APPLICATION_LABEL = 0xFF
GRAPHIC_CONTROL_LABEL = 0xF9
IMAGE_SEPARATOR = 0x2C

PALETTE_SIZE = 256
# Packed colour-table size field: 2 ** (7 + 1) = 256 entries
TABLE_SIZE_BITS = 7
MIN_CODE_SIZE = 8
MAX_CODE_BITS = 12
MAX_CODES = 1 << MAX_CODE_BITS

# Leave the frame in place; every frame covers the whole screen anyway
DISPOSAL_NONE = 1

MAX_UINT16 = 0xFFFF


# ── LZW ────────────────────────────────────────────────────────────────

def lzw_compress(indices: bytes, min_code_size: int = MIN_CODE_SIZE) -> bytes:
    """
    Variable-width LZW as used by GIF image data.

    Code width grows one bit as soon as the next free code no longer fits;
    when all 4096 codes are taken a clear code resets the table.

    Returns:
        Packed code stream (not yet split into sub-blocks).
    """
    clear_code = 1 << min_code_size
    eoi_code = clear_code + 1

    out = bytearray()
    accumulator = 0
    accumulated_bits = 0

    n_bits = min_code_size + 1
    max_code = (1 << n_bits) - 1
    next_code = eoi_code + 1
    clear_pending = False
    table = {}

    def emit(code: int) -> None:
        nonlocal accumulator, accumulated_bits, n_bits, max_code, clear_pending
        accumulator |= code << accumulated_bits
        accumulated_bits += n_bits
        while accumulated_bits >= 8:
            out.append(accumulator & 0xFF)
            accumulator >>= 8
            accumulated_bits -= 8

        if clear_pending:
            n_bits = min_code_size + 1
            max_code = (1 << n_bits) - 1
            clear_pending = False
        elif next_code > max_code:
            n_bits += 1
            max_code = MAX_CODES if n_bits == MAX_CODE_BITS else (1 << n_bits) - 1

    emit(clear_code)

    if indices:
        pixels = iter(indices)
        prefix = next(pixels)
        for pixel in pixels:
            key = (prefix << 8) | pixel
            code = table.get(key)
            if code is not None:
                prefix = code
                continue

            emit(prefix)
            prefix = pixel
            if next_code < MAX_CODES:
                table[key] = next_code
                next_code += 1
            else:
                table.clear()
                next_code = eoi_code + 1
                clear_pending = True
                emit(clear_code)
        emit(prefix)

    emit(eoi_code)
    if accumulated_bits > 0:
        out.append(accumulator & 0xFF)
    return bytes(out)


def to_sub_blocks(data: bytes) -> bytes:
    """Split data into length-prefixed chunks of at most 255 bytes, 0-terminated."""
    chunks = bytearray()
    for start in range(0, len(data), 255):
        chunk = data[start:start + 255]
        chunks.append(len(chunk))
        chunks.extend(chunk)
    chunks.append(0)
    return bytes(chunks)


# ── Palette ────────────────────────────────────────────────────────────

def flatten(frame: Image.Image, background: Tuple[int, int, int] = DEFAULT_BACKGROUND) -> Image.Image:
    """Drop alpha by compositing over a solid background."""
    if frame.mode == "RGB":
        return frame
    rgba = frame.convert("RGBA")
    base = Image.new("RGB", rgba.size, background)
    base.paste(rgba, mask=rgba.getchannel("A"))
    return base


def quantize_frame(
    frame_rgb: Image.Image,
    quality: int = DEFAULT_QUALITY,
    dither: bool = False,
) -> Tuple[bytes, bytes]:
    """
    Reduce an RGB frame to 256 colours.

    The palette is learned from every `quality`-th pixel, then the full
    frame is mapped onto it.

    Returns:
        (indices, palette) where palette is exactly 768 bytes.
    """
    pixels = np.asarray(frame_rgb, dtype=np.uint8).reshape(-1, 3)
    sample = np.ascontiguousarray(pixels[::quality])
    sample_img = Image.fromarray(sample.reshape(1, -1, 3))

    palette_img = sample_img.quantize(
        colors=PALETTE_SIZE,
        method=Image.Quantize.MEDIANCUT,
        dither=Image.Dither.NONE,
    )
    indexed = frame_rgb.quantize(
        palette=palette_img,
        dither=Image.Dither.FLOYDSTEINBERG if dither else Image.Dither.NONE,
    )

    palette = bytes(indexed.getpalette("RGB") or [])[:PALETTE_SIZE * 3]
    palette = palette.ljust(PALETTE_SIZE * 3, b"\x00")
    return indexed.tobytes(), palette


# ── Blocks ─────────────────────────────────────────────────────────────

def _logical_screen_descriptor(width: int, height: int) -> bytes:
    # Global colour table present, 8 bits per primary, unsorted, 256 entries
    packed = 0x80 | (7 << 4) | TABLE_SIZE_BITS
    return struct.pack("<HHBBB", width, height, packed, 0, 0)


def _loop_extension(loop_count: int) -> bytes:
    return (
        bytes([EXTENSION_INTRODUCER, APPLICATION_LABEL, 11])
        + b"NETSCAPE2.0"
        + struct.pack("<BBHB", 3, 1, loop_count, 0)
    )


def _graphic_control_extension(delay_cs: int) -> bytes:
    packed = DISPOSAL_NONE << 2
    return struct.pack(
        "<BBBBHBB",
        EXTENSION_INTRODUCER, GRAPHIC_CONTROL_LABEL, 4,
        packed, delay_cs, 0, 0,
    )


def _image_descriptor(width: int, height: int, local_palette: bool) -> bytes:
    packed = (0x80 | TABLE_SIZE_BITS) if local_palette else 0
    return struct.pack("<BHHHHB", IMAGE_SEPARATOR, 0, 0, width, height, packed)


def delay_to_centiseconds(delay_ms: int) -> int:
    if not 0 <= delay_ms <= MAX_UINT16 * 10 + 4:
        raise EncodingError(f"Frame delay out of range: {delay_ms}ms")
    return round_half_up(delay_ms / 10)


# ── Writer ─────────────────────────────────────────────────────────────

class GifWriter:
    """
    Streams frames into a binary sink.

    The header is written with the first frame, whose palette doubles as
    the global colour table. Every later frame carries its own table.

    Usage:
        writer = GifWriter(fp, 800, 600, loop_count=0)
        for frame in frames:
            writer.add_frame(frame, delay_ms=100)
        writer.finish()
    """

    def __init__(
        self,
        fp: BinaryIO,
        width: int,
        height: int,
        loop_count: Optional[int] = 0,
        quality: int = DEFAULT_QUALITY,
        background: Tuple[int, int, int] = DEFAULT_BACKGROUND,
        dither: bool = False,
    ):
        if not (MIN_QUALITY <= quality <= MAX_QUALITY):
            raise InvalidAnimationError(
                f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {quality}"
            )
        if loop_count is not None and not (0 <= loop_count <= MAX_UINT16):
            raise InvalidAnimationError(f"Loop count out of range: {loop_count}")
        if not (0 < width <= MAX_UINT16 and 0 < height <= MAX_UINT16):
            raise EncodingError(f"Cannot encode a {width}x{height} GIF")

        self.fp = fp
        self.width = width
        self.height = height
        self.loop_count = loop_count
        self.quality = quality
        self.background = background
        self.dither = dither
        self.frames_written = 0
        self.finished = False

    def _write(self, data: bytes) -> None:
        try:
            self.fp.write(data)
        except (OSError, ValueError) as e:
            raise EncodingError(f"Failed to write GIF data: {e}") from e

    def add_frame(self, frame: Image.Image, delay_ms: int) -> None:
        if self.finished:
            raise EncodingError("Cannot add frames after finish()")
        if frame.size != (self.width, self.height):
            raise EncodingError(
                f"Frame {self.frames_written} is {frame.size[0]}x{frame.size[1]}, "
                f"expected {self.width}x{self.height}"
            )

        indices, palette = quantize_frame(flatten(frame, self.background), self.quality, self.dither)
        first = self.frames_written == 0

        if first:
            self._write(GIF_HEADER)
            self._write(_logical_screen_descriptor(self.width, self.height))
            self._write(palette)
            if self.loop_count is not None:
                self._write(_loop_extension(self.loop_count))

        self._write(_graphic_control_extension(delay_to_centiseconds(delay_ms)))
        self._write(_image_descriptor(self.width, self.height, local_palette=not first))
        if not first:
            self._write(palette)
        self._write(bytes([MIN_CODE_SIZE]))
        self._write(to_sub_blocks(lzw_compress(indices, MIN_CODE_SIZE)))

        self.frames_written += 1
        logger.debug("Encoded frame %d (%dx%d)", self.frames_written, self.width, self.height)

    def finish(self) -> None:
        if self.finished:
            return
        if self.frames_written == 0:
            raise EncodingError("No frames to encode")
        self._write(TRAILER)
        try:
            self.fp.flush()
        except (OSError, ValueError) as e:
            raise EncodingError(f"Failed to finalize GIF: {e}") from e
        self.finished = True


def encode_gif(
    frames: Iterable[Image.Image],
    delay_ms: int,
    loop_count: Optional[int] = 0,
    quality: int = DEFAULT_QUALITY,
    background: Tuple[int, int, int] = DEFAULT_BACKGROUND,
    dither: bool = False,
) -> bytes:
    """
    Encode frames (in order) into GIF bytes.

    Args:
        frames: Frames of identical size, RGB or RGBA
        delay_ms: Delay applied to every frame, stored in centiseconds
        loop_count: 0 = loop forever, n = n repeats, None = no loop block
        quality: Palette sampling stride, 1 (best) to 30 (fastest)
        background: Colour behind transparent pixels
        dither: Floyd-Steinberg dithering when mapping to the palette

    Raises:
        EncodingError: no frames, mismatched sizes or a failing sink.
    """
    frames = list(frames)
    if not frames:
        raise EncodingError("No frames to encode")

    width, height = frames[0].size
    buffer = io.BytesIO()
    writer = GifWriter(buffer, width, height, loop_count, quality, background, dither)
    for frame in frames:
        writer.add_frame(frame, delay_ms)
    writer.finish()
    return buffer.getvalue()
