"""Tests for gifsmith.pipeline - frame timing, ordering and end-to-end runs."""

import io
import threading

import pytest
from PIL import Image

import gifsmith.text_overlay as text_overlay
from gifsmith.errors import ConversionCancelled, InvalidAnimationError, InvalidImageError
from gifsmith.models import AnimationSpec, SourceImage, TextOverlay
from gifsmith.pipeline import (
    GifPipeline, convert_image_to_gif, frame_count, frame_delay_ms, progress_for_frame,
)

from conftest import make_image, to_bytes


def _spec(**kwargs):
    return AnimationSpec(**kwargs)


def _open(data: bytes) -> Image.Image:
    return Image.open(io.BytesIO(data))


# ── Timing ──────────────────────────────────────────────────────────────

class TestTiming:
    def test_frame_count_and_delay(self):
        spec = _spec(kind="zoom", duration=3, frameRate=15)
        assert frame_count(spec) == 45
        assert frame_delay_ms(spec) == 67

    def test_none_is_single_frame(self):
        assert frame_count(_spec(kind="none", duration=10, frameRate=30)) == 1

    def test_frame_count_clamped(self):
        assert frame_count(_spec(kind="fade", duration=0.1, frameRate=5)) == 2
        assert frame_count(_spec(kind="fade", duration=10, frameRate=30)) == 60

    def test_huge_duration_and_rate_clamp_to_max(self):
        assert frame_count(_spec(kind="zoom", duration=1e200, frameRate=1e200)) == 60
        assert frame_count(_spec(kind="zoom", duration=1e300, frameRate=10)) == 60

    def test_very_high_rate_has_zero_delay(self):
        assert frame_delay_ms(_spec(kind="zoom", frameRate=1e300)) == 0

    def test_frame_count_rounds_half_up(self):
        assert frame_count(_spec(kind="pan", duration=2.5, frameRate=3)) == 8

    def test_progress_ends_on_one(self):
        assert progress_for_frame(0, 20) == 0.0
        assert progress_for_frame(19, 20) == 1.0
        assert progress_for_frame(0, 1) == 0.0


# ── End to end ──────────────────────────────────────────────────────────

class TestRun:
    def test_zoom_scenario(self):
        source = SourceImage.from_image(Image.new("RGB", (800, 600), (40, 120, 200)))
        spec = _spec(kind="zoom", duration=2, frameRate=10, loopCount=0)
        result = GifPipeline(quality=30, max_workers=2).run(source, spec)

        assert result.frame_count == 20
        assert result.delay_ms == 100
        img = _open(result.data)
        assert img.size == (800, 600)
        assert img.n_frames == 20
        assert img.info["loop"] == 0
        for i in range(20):
            img.seek(i)
            assert img.info["duration"] == 100

    @pytest.mark.parametrize("kind", ["pan", "fade", "bounce", "rotate", "pulse", "shake"])
    def test_every_kind_decodes(self, kind):
        source = SourceImage.from_image(make_image(48, 32))
        result = GifPipeline(seed=1).run(source, _spec(kind=kind, duration=0.4, frameRate=10))
        img = _open(result.data)
        assert img.n_frames == 4
        assert img.size == (48, 32)

    def test_finite_loop_count(self):
        source = SourceImage.from_image(make_image(20, 20))
        result = GifPipeline().run(source, _spec(kind="fade", duration=0.3, frameRate=10, loopCount=2))
        assert _open(result.data).info["loop"] == 2

    def test_still_gif(self):
        source = SourceImage.from_image(make_image(40, 30))
        result = GifPipeline().run(source, _spec(kind="none"))
        img = _open(result.data)
        assert img.n_frames == 1
        assert "loop" not in img.info
        assert result.metadata() == {"width": 40, "height": 30, "size": len(result.data)}

    def test_animated_metadata(self):
        source = SourceImage.from_image(make_image(40, 30))
        result = GifPipeline().run(source, _spec(kind="rotate", duration=0.2, frameRate=10))
        meta = result.metadata()
        assert meta["frameCount"] == 2
        assert meta["animationKind"] == "rotate"

    def test_shake_reproducible_with_seed(self):
        source = SourceImage.from_image(make_image(60, 40))
        spec = _spec(kind="shake", duration=0.5, frameRate=10)
        first = GifPipeline(seed=99, max_workers=4).run(source, spec)
        second = GifPipeline(seed=99, max_workers=1).run(source, spec)
        assert first.data == second.data

    def test_progress_callback(self):
        source = SourceImage.from_image(make_image(20, 20))
        seen = []
        GifPipeline(max_workers=3).run(
            source, _spec(kind="zoom", duration=0.5, frameRate=10),
            on_progress=lambda done, total: seen.append((done, total)),
        )
        assert seen == [(i, 5) for i in range(1, 6)]

    def test_overlay_failure_is_a_warning(self, monkeypatch):
        def broken_font(family, size):
            raise OSError("bad font")

        monkeypatch.setattr(text_overlay, "get_font", broken_font)
        source = SourceImage.from_image(make_image(40, 30))
        overlay = TextOverlay(id="cap", text="Hello")
        result = GifPipeline().run(
            source, _spec(kind="zoom", duration=0.3, frameRate=10), [overlay],
        )
        assert _open(result.data).n_frames == 3
        assert result.warnings == ["overlay 'cap': bad font"]

    def test_cancelled_before_start(self):
        source = SourceImage.from_image(make_image(20, 20))
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ConversionCancelled):
            GifPipeline().run(source, _spec(kind="zoom"), cancel_event=cancel)

    def test_cancelled_mid_run(self):
        source = SourceImage.from_image(make_image(20, 20))
        cancel = threading.Event()

        def on_progress(done, total):
            if done == 2:
                cancel.set()

        with pytest.raises(ConversionCancelled):
            GifPipeline(max_workers=1).run(
                source, _spec(kind="pan", duration=1, frameRate=10),
                cancel_event=cancel, on_progress=on_progress,
            )

    def test_invalid_quality(self):
        with pytest.raises(InvalidAnimationError):
            GifPipeline(quality=0)


# ── convert_image_to_gif ────────────────────────────────────────────────

class TestConvertImageToGif:
    def test_from_bytes_and_dicts(self):
        result = convert_image_to_gif(
            to_bytes(make_image(50, 40), "JPEG"),
            animation={"type": "pulse", "duration": 0.5, "frameRate": 8, "loopCount": None},
            overlays=[
                {"text": "Hi", "x": 50, "y": 80, "fontSize": 16},
                {"text": "  ", "x": 50, "y": 50},
                {"text": "off", "x": 150, "y": 50},
            ],
        )
        assert result.frame_count == 4
        assert result.delay_ms == 125
        assert result.loop_count == 0
        assert result.warnings == []

    def test_default_is_still(self, png_bytes):
        result = convert_image_to_gif(png_bytes)
        assert result.frame_count == 1
        assert result.animation_kind == "none"

    def test_invalid_image(self):
        with pytest.raises(InvalidImageError):
            convert_image_to_gif(b"definitely not an image")

    def test_empty_buffer(self):
        with pytest.raises(InvalidImageError):
            convert_image_to_gif(b"")

    def test_invalid_animation(self, png_bytes):
        with pytest.raises(InvalidAnimationError):
            convert_image_to_gif(png_bytes, animation={"type": "wobble"})
        with pytest.raises(InvalidAnimationError):
            convert_image_to_gif(png_bytes, animation={"type": "zoom", "duration": 0})

    def test_gif_timing_limits_rejected_before_rendering(self, png_bytes):
        progress = []
        for animation in (
            {"type": "zoom", "loopCount": 70000},
            {"type": "zoom", "frameRate": 0.001},
        ):
            with pytest.raises(InvalidAnimationError):
                convert_image_to_gif(
                    png_bytes, animation=animation,
                    on_progress=lambda done, total: progress.append(done),
                )
        assert progress == []
