#!/usr/bin/env python3
"""
Turn a still image into an animated GIF.

Usage:
    python animate_gif.py photo.jpg
    python animate_gif.py photo.jpg --animation zoom --duration 2 --fps 10
    python animate_gif.py photo.jpg -a shake --seed 7 --text "Hello!"
    python animate_gif.py photo.jpg -a pan --overlays overlays.json --store

Overlays file: JSON list of {"text", "x", "y", "fontSize", "color", ...}
with x/y/width/height in percent of the image.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from gifsmith.config import DEFAULT_QUALITY, OUTPUT_DIR
from gifsmith.errors import GifConversionError
from gifsmith.models import ANIMATION_KINDS, AnimationSpec
from gifsmith.pipeline import convert_image_to_gif
from gifsmith.storage import AssetStore


def _load_overlays(args) -> list:
    overlays = []
    if args.overlays:
        with open(args.overlays, "r", encoding="utf-8") as f:
            data = json.load(f)
        overlays.extend(data if isinstance(data, list) else data.get("overlays", []))
    for text in args.text or []:
        # Quick captions stack from the bottom up
        overlays.append({"text": text, "x": 50, "y": max(5, 85 - 12 * len(overlays))})
    return overlays


def _print_progress(done: int, total: int) -> None:
    pct = done * 100 // total
    print(f"\r  Frames: {done}/{total} ({pct}%)", end="", flush=True)
    if done == total:
        print()


def main():
    parser = argparse.ArgumentParser(description="Animate a still image into a GIF")
    parser.add_argument("image", type=str, help="Path to the source image")
    parser.add_argument(
        "--animation", "-a",
        choices=ANIMATION_KINDS,
        default="zoom",
        help="Animation type (default: zoom; 'none' makes a still GIF)"
    )
    parser.add_argument("--duration", "-d", type=float, default=3.0, help="Seconds (default: 3)")
    parser.add_argument("--fps", "-r", type=float, default=10.0, help="Frame rate (default: 10)")
    parser.add_argument(
        "--loops", "-l",
        type=int,
        default=0,
        help="Loop count, 0 = forever (default: 0)"
    )
    parser.add_argument(
        "--quality", "-q",
        type=int,
        default=DEFAULT_QUALITY,
        help=f"Palette quality 1 (best) to 30 (fastest) (default: {DEFAULT_QUALITY})"
    )
    parser.add_argument("--overlays", type=str, default=None, help="JSON file with text overlays")
    parser.add_argument("--text", "-t", action="append", help="Add a caption (repeatable)")
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible shake")
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output path (default: <image>.gif next to the source)"
    )
    parser.add_argument(
        "--store",
        action="store_true",
        help=f"Also register the result in the asset store ({OUTPUT_DIR})"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    image_path = Path(args.image)
    output_path = Path(args.output) if args.output else image_path.with_suffix(".gif")

    print("=" * 60)
    print("  GIFSMITH - Image to GIF")
    print("=" * 60)
    print(f"  Source:    {image_path}")
    print(f"  Animation: {args.animation} ({args.duration}s @ {args.fps} fps)")
    print()

    try:
        image_bytes = image_path.read_bytes()
        spec = AnimationSpec.from_dict({
            "type": args.animation,
            "duration": args.duration,
            "frameRate": args.fps,
            "loopCount": args.loops,
        })
        result = convert_image_to_gif(
            image_bytes,
            animation=spec,
            overlays=_load_overlays(args),
            quality=args.quality,
            seed=args.seed,
            on_progress=_print_progress,
        )
    except FileNotFoundError as e:
        print(f"\nError: file not found: {e.filename}")
        sys.exit(1)
    except (GifConversionError, json.JSONDecodeError) as e:
        print(f"\nError: {e}")
        sys.exit(1)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(result.data)

    print()
    print("GIF generated!")
    print(f"  Location: {output_path}")
    print(f"  Size:     {result.width}x{result.height}, {result.byte_size / 1024:.1f} KB")
    if result.animation_kind != "none":
        print(f"  Frames:   {result.frame_count} @ {result.delay_ms}ms")
    for warning in result.warnings:
        print(f"  Warning:  {warning}")

    if args.store:
        record = AssetStore().save(image_bytes, image_path.name, result)
        print(f"  Stored:   {record['id']}")


if __name__ == "__main__":
    main()
