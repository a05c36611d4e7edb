"""Tests for gifsmith.transforms - resolvers, clamping and appliers."""

import math
import random

import pytest

from gifsmith.errors import BoundsViolation, InvalidAnimationError
from gifsmith.models import ANIMATION_KINDS
from gifsmith.transforms import (
    Brightness, CoverResize, Crop, CropBox, Identity, Rotation, Scale,
    apply_transform, clamp_box, resolve_transform, resize_cover, round_half_up,
)

from conftest import make_image

SIZES = [(1, 1), (2, 3), (7, 1), (100, 100), (800, 600), (37, 999)]
PROGRESS = [0.0, 0.1, 0.25, 0.5, 0.75, 0.9, 1.0]


# ── round_half_up ───────────────────────────────────────────────────────

class TestRoundHalfUp:
    def test_halves_round_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(66.66) == 67

    def test_below_half(self):
        assert round_half_up(1.49) == 1


# ── clamp_box ───────────────────────────────────────────────────────────

class TestClampBox:
    def test_inside_unchanged(self):
        assert clamp_box(10, 20, 30, 40, 100, 100) == CropBox(10, 20, 30, 40)

    def test_overflow_is_trimmed(self):
        box = clamp_box(90, 95, 50, 50, 100, 100)
        assert box == CropBox(90, 95, 10, 5)
        assert box.fits(100, 100)

    def test_negative_origin(self):
        box = clamp_box(-5, -5, 20, 20, 100, 100)
        assert box.left == 0 and box.top == 0

    def test_zero_size_becomes_one(self):
        box = clamp_box(0, 0, 0, -3, 10, 10)
        assert (box.width, box.height) == (1, 1)

    def test_non_finite_raises(self):
        with pytest.raises(BoundsViolation):
            clamp_box(float("nan"), 0, 10, 10, 100, 100)
        with pytest.raises(BoundsViolation):
            clamp_box(0, 0, float("inf"), 10, 100, 100)


# ── resolve_transform ───────────────────────────────────────────────────

class TestResolveTransform:
    @pytest.mark.parametrize("kind", ANIMATION_KINDS)
    def test_crop_always_inside_source(self, kind):
        rng = random.Random(3)
        for width, height in SIZES:
            for p in PROGRESS:
                d = resolve_transform(kind, p, width, height, rng)
                if isinstance(d, Crop):
                    box = d.box
                    assert box.left >= 0 and box.top >= 0
                    assert box.right <= width and box.bottom <= height

    def test_none_is_identity(self):
        assert resolve_transform("none", 0.5, 100, 100) == Identity()

    def test_unknown_kind(self):
        with pytest.raises(InvalidAnimationError):
            resolve_transform("spin", 0.5, 100, 100)

    def test_zoom_curve(self):
        assert resolve_transform("zoom", 0.0, 100, 100).scale == pytest.approx(1.0)
        assert resolve_transform("zoom", 0.25, 100, 100).scale == pytest.approx(1.2)

    def test_pulse_curve(self):
        assert resolve_transform("pulse", 0.125, 100, 100).scale == pytest.approx(1.15)

    def test_pan_max_offset_stays_inside(self):
        d = resolve_transform("pan", 0.25, 100, 100)
        assert isinstance(d, Crop)
        assert d.box == CropBox(15, 7, 85, 85)
        assert d.box.fits(100, 100)

    def test_fade_floors_at_zero(self):
        assert resolve_transform("fade", 0.25, 10, 10).factor == pytest.approx(1.0)
        assert resolve_transform("fade", 0.75, 10, 10).factor == 0.0

    def test_rotate_angle(self):
        assert resolve_transform("rotate", 0.5, 10, 10) == Rotation(180.0)

    def test_bounce_keeps_top_edge(self):
        d = resolve_transform("bounce", 0.125, 100, 200)
        assert d.box.top == 0
        assert d.box.height == pytest.approx(170, abs=1)

    def test_shake_is_reproducible_with_seed(self):
        first = [resolve_transform("shake", p, 200, 100, random.Random(42)) for p in PROGRESS]
        second = [resolve_transform("shake", p, 200, 100, random.Random(42)) for p in PROGRESS]
        assert first == second

    def test_shake_stays_within_margin(self):
        rng = random.Random(1)
        for _ in range(200):
            box = resolve_transform("shake", 0.5, 200, 100, rng).box
            assert box.width == 200 - 2 * math.ceil(200 * 0.03)
            assert box.fits(200, 100)


# ── Fallback ────────────────────────────────────────────────────────────

class TestFallback:
    def test_nan_dimensions_fall_back_to_cover(self):
        d = resolve_transform("bounce", float("nan"), 100, 100)
        assert isinstance(d, CoverResize)
        assert "non-finite" in d.reason

    def test_fallback_renders(self, small_image):
        out = apply_transform(small_image, CoverResize("test"), 64, 48)
        assert out.size == (64, 48)


# ── apply_transform ─────────────────────────────────────────────────────

class TestApplyTransform:
    @pytest.mark.parametrize("kind", ANIMATION_KINDS)
    def test_output_size_matches_target(self, kind, small_image):
        rng = random.Random(0)
        source = small_image.convert("RGBA")
        for p in PROGRESS:
            d = resolve_transform(kind, p, 64, 48, rng)
            assert apply_transform(source, d, 64, 48).size == (64, 48)

    def test_scale_below_one_is_identity(self, small_image):
        out = apply_transform(small_image, Scale(0.8), 64, 48)
        assert out.tobytes() == small_image.tobytes()

    def test_brightness_zero_is_black(self, small_image):
        out = apply_transform(small_image, Brightness(0.0), 64, 48)
        assert out.getextrema() == ((0, 0), (0, 0), (0, 0))

    def test_crop_that_does_not_fit_resizes(self, small_image):
        out = apply_transform(small_image, Crop(CropBox(60, 40, 50, 50)), 64, 48)
        assert out.size == (64, 48)

    def test_full_rotation_is_identity(self, small_image):
        out = apply_transform(small_image, Rotation(360.0), 64, 48)
        assert out.tobytes() == small_image.tobytes()

    def test_unsupported_descriptor(self, small_image):
        with pytest.raises(InvalidAnimationError):
            apply_transform(small_image, object(), 64, 48)


# ── resize_cover ────────────────────────────────────────────────────────

class TestResizeCover:
    def test_wide_to_square(self):
        assert resize_cover(make_image(200, 100), 50, 50).size == (50, 50)

    def test_tall_to_wide(self):
        assert resize_cover(make_image(30, 300), 120, 40).size == (120, 40)
