"""Tests for gifsmith.composer - transform + overlay layering."""

import pytest
from PIL import Image

import gifsmith.text_overlay as text_overlay
from gifsmith.composer import compose_frame
from gifsmith.models import SourceImage, TextOverlay
from gifsmith.text_overlay import OverlayCache
from gifsmith.transforms import Brightness, Identity, Rotation, Scale


@pytest.fixture
def source():
    return SourceImage.from_image(Image.new("RGB", (120, 80), (0, 0, 255)))


# ── Base frame ──────────────────────────────────────────────────────────

class TestBaseFrame:
    def test_identity_without_overlays(self, source):
        frame = compose_frame(source, Identity(), [], 120, 80, 0.0)
        assert frame.mode == "RGBA"
        assert frame.size == (120, 80)
        assert frame.getpixel((60, 40)) == (0, 0, 255, 255)

    @pytest.mark.parametrize("descriptor", [Scale(1.2), Brightness(0.5), Rotation(45.0)])
    def test_size_preserved(self, source, descriptor):
        assert compose_frame(source, descriptor, [], 120, 80, 0.3).size == (120, 80)


# ── Overlays ────────────────────────────────────────────────────────────

class TestOverlays:
    def test_overlay_drawn_over_image(self, source):
        overlay = TextOverlay(text="HI", x=50, y=50, fontSize=40, color="#FFFFFF")
        plain = compose_frame(source, Identity(), [], 120, 80, 0.0)
        frame = compose_frame(source, Identity(), [overlay], 120, 80, 0.0)
        assert frame.tobytes() != plain.tobytes()

    def test_blank_overlay_is_skipped(self, source):
        plain = compose_frame(source, Identity(), [], 120, 80, 0.0)
        frame = compose_frame(source, Identity(), [TextOverlay(text=" ")], 120, 80, 0.0)
        assert frame.tobytes() == plain.tobytes()

    def test_later_overlay_on_top(self, source):
        red = TextOverlay(id="red", text="MM", x=50, y=50, fontSize=48, color="#FF0000")
        green = TextOverlay(id="green", text="MM", x=50, y=50, fontSize=48, color="#00FF00")

        def green_pixels(frame):
            return sum(1 for r, g, b, _ in frame.getdata() if g > 200 and r < 80 and b < 80)

        green_on_top = compose_frame(source, Identity(), [red, green], 120, 80, 0.0)
        red_on_top = compose_frame(source, Identity(), [green, red], 120, 80, 0.0)
        assert green_pixels(green_on_top) > green_pixels(red_on_top)

    def test_failed_overlay_recorded_and_skipped(self, source, monkeypatch):
        real_render = text_overlay.render_overlay

        def flaky_render(overlay, w, h, progress=0.0):
            if overlay.id == "bad":
                raise text_overlay.OverlayRenderError(overlay.id, "no glyphs")
            return real_render(overlay, w, h, progress)

        monkeypatch.setattr("gifsmith.composer.render_overlay", flaky_render)
        diagnostics = []
        good = TextOverlay(id="good", text="OK", x=50, y=50)
        bad = TextOverlay(id="bad", text="??", x=50, y=50)

        frame = compose_frame(source, Identity(), [bad, good], 120, 80, 0.0, diagnostics)
        assert frame.size == (120, 80)
        assert diagnostics == ["overlay 'bad': no glyphs"]

    def test_cache_reused_across_frames(self, source):
        cache = OverlayCache()
        overlay = TextOverlay(text="static", x=50, y=50)
        for p in (0.0, 0.5, 1.0):
            compose_frame(source, Identity(), [overlay], 120, 80, p, cache=cache)
        assert cache.hits == 2
