#!/usr/bin/env python3
"""
Gifsmith - MCP Server
=====================
Model Context Protocol server that exposes the image-to-GIF pipeline
as MCP tools.

Tools:
  - convert_image_to_gif: Animate a still image (zoom, pan, fade...) with text overlays
  - list_animation_types: List animation types and text animations
  - inspect_gif: Report frame count, delays and loop setting of a GIF
  - list_gifs: List GIFs registered in the asset store

Run: python mcp_server.py
"""

import json
from pathlib import Path
from typing import Any

# MCP SDK imports
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent
from PIL import Image, UnidentifiedImageError

from gifsmith.config import BASE_DIR, DEFAULT_QUALITY, MAX_QUALITY, MIN_QUALITY, OUTPUT_DIR
from gifsmith.models import ANIMATION_KINDS, TEXT_ALIGNMENTS, TEXT_ANIMATIONS
from gifsmith.pipeline import convert_image_to_gif
from gifsmith.storage import AssetStore

ANIMATION_DESCRIPTIONS = {
    "none": "Still image, single frame",
    "zoom": "Smooth zoom in and out (up to 20%)",
    "pan": "Circular pan across an 85% crop",
    "fade": "Brightness fades out and back in",
    "bounce": "Vertical squash from the top edge",
    "rotate": "One full clockwise rotation",
    "pulse": "Two quick zoom pulses (up to 15%)",
    "shake": "Random camera shake (3% jitter)",
}


# ─── Helpers ───────────────────────────────────────────────────────────

def file_exists(path: Path) -> bool:
    return path.exists() and path.is_file()


def load_json_arg(value: Any, name: str) -> Any:
    """Tool args may arrive as JSON strings instead of objects."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"{name} is not valid JSON: {e}") from e
    return value


def describe_gif(path: Path) -> dict:
    """Decode a GIF with Pillow and summarize its timing."""
    with Image.open(path) as img:
        if img.format != "GIF":
            raise ValueError(f"Not a GIF: {path} ({img.format})")
        frames = getattr(img, "n_frames", 1)
        delays = []
        for i in range(frames):
            img.seek(i)
            delays.append(img.info.get("duration", 0))
        return {
            "width": img.width,
            "height": img.height,
            "frames": frames,
            "delays_ms": sorted(set(delays)),
            "total_ms": sum(delays),
            "loop": img.info.get("loop"),
            "size_bytes": path.stat().st_size,
        }


# ─── MCP Server ───────────────────────────────────────────────────────

app = Server("gifsmith")


@app.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="convert_image_to_gif",
            description=(
                "Convert a still image (PNG, JPEG, WebP...) into an animated GIF. "
                "Choose an animation type (see list_animation_types), duration and frame rate, "
                "and optionally add text overlays positioned in percent of the image. "
                "Returns the output path and GIF metadata."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "image_path": {
                        "type": "string",
                        "description": "Path to the source image",
                    },
                    "animation": {
                        "type": "object",
                        "description": (
                            "Animation settings: {type, duration, frameRate, loopCount}. "
                            "Defaults: none, 3s, 10fps, 0 (loop forever)"
                        ),
                    },
                    "overlays": {
                        "type": "array",
                        "description": (
                            "Text overlays: [{text, x, y, width, height, fontSize, fontFamily, "
                            "color, textAlign, rotation, textAnimation}], x/y in percent (0-100)"
                        ),
                        "items": {"type": "object"},
                    },
                    "quality": {
                        "type": "integer",
                        "description": f"Palette quality {MIN_QUALITY} (best) to {MAX_QUALITY} (fastest)",
                        "default": DEFAULT_QUALITY,
                    },
                    "seed": {
                        "type": "integer",
                        "description": "Seed for reproducible 'shake' output",
                    },
                    "output_path": {
                        "type": "string",
                        "description": "Where to write the GIF (default: next to the image)",
                    },
                    "store": {
                        "type": "boolean",
                        "description": "Also register the GIF in the asset store",
                        "default": False,
                    },
                },
                "required": ["image_path"],
            },
        ),
        Tool(
            name="list_animation_types",
            description="List the available animation types and text overlay animations.",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        Tool(
            name="inspect_gif",
            description=(
                "Inspect a GIF file: dimensions, frame count, frame delays and loop setting. "
                "Use it to verify a conversion."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Path to the GIF"},
                },
                "required": ["path"],
            },
        ),
        Tool(
            name="list_gifs",
            description=f"List GIFs registered in the asset store ({OUTPUT_DIR}), newest first.",
            inputSchema={
                "type": "object",
                "properties": {
                    "limit": {"type": "integer", "description": "Max records", "default": 20},
                },
                "required": [],
            },
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    try:
        result = await _handle_tool(name, arguments)
        return [TextContent(type="text", text=result)]
    except Exception as e:
        return [TextContent(type="text", text=f"ERROR: {str(e)}")]


async def _handle_tool(name: str, args: dict[str, Any]) -> str:

    # ── convert_image_to_gif ──────────────────────────────────────
    if name == "convert_image_to_gif":
        image_path = Path(args.get("image_path", ""))
        if not file_exists(image_path):
            return f"ERROR: Image not found: {image_path}"

        animation = load_json_arg(args.get("animation"), "animation")
        overlays = load_json_arg(args.get("overlays"), "overlays")
        output_path = Path(args["output_path"]) if args.get("output_path") else image_path.with_suffix(".gif")

        image_bytes = image_path.read_bytes()
        result = convert_image_to_gif(
            image_bytes,
            animation=animation,
            overlays=overlays,
            quality=args.get("quality", DEFAULT_QUALITY),
            seed=args.get("seed"),
        )

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(result.data)

        lines = [
            "GIF generated!",
            f"  Output: {output_path}",
            f"  Metadata: {json.dumps(result.metadata())}",
        ]
        if result.animation_kind != "none":
            lines.append(f"  Timing: {result.frame_count} frames @ {result.delay_ms}ms, loop={result.loop_count}")
        for warning in result.warnings:
            lines.append(f"  Warning: {warning}")

        if args.get("store"):
            record = AssetStore().save(image_bytes, image_path.name, result)
            lines.append(f"  Stored as: {record['id']} ({record['gifPath']})")
        return "\n".join(lines)

    # ── list_animation_types ──────────────────────────────────────
    elif name == "list_animation_types":
        lines = ["Animation types:"]
        for kind in ANIMATION_KINDS:
            lines.append(f"  - {kind}: {ANIMATION_DESCRIPTIONS[kind]}")
        lines.append("")
        lines.append(f"Text animations: {', '.join(TEXT_ANIMATIONS)}")
        lines.append(f"Text alignments: {', '.join(TEXT_ALIGNMENTS)}")
        return "\n".join(lines)

    # ── inspect_gif ───────────────────────────────────────────────
    elif name == "inspect_gif":
        path = Path(args.get("path", ""))
        if not file_exists(path):
            return f"ERROR: File not found: {path}"
        try:
            info = describe_gif(path)
        except UnidentifiedImageError:
            return f"ERROR: Not an image: {path}"
        return json.dumps(info, indent=2)

    # ── list_gifs ─────────────────────────────────────────────────
    elif name == "list_gifs":
        records = AssetStore().list()[: args.get("limit", 20)]
        if not records:
            return "No GIFs stored yet."
        lines = [f"{len(records)} GIF(s):"]
        for r in records:
            meta = r.get("metadata", {})
            lines.append(
                f"  - {r['id']}: {r.get('originalFileName', '?')} -> {r['gifPath']} "
                f"({meta.get('width')}x{meta.get('height')}, {meta.get('size', 0)} bytes)"
            )
        return "\n".join(lines)

    else:
        return f"ERROR: Unknown tool '{name}'"


# ─── Main ─────────────────────────────────────────────────────────────

async def main():
    from dotenv import load_dotenv
    load_dotenv(BASE_DIR / ".env")

    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


if __name__ == "__main__":
    import asyncio
    asyncio.run(main())
