"""Tests for rotation math, bounds and the viewport mapping."""

import math

import pytest

from app.domain.geometry import (
    MAX_ZOOM,
    MIN_ZOOM,
    DesignSpace,
    Viewport,
    axis_aligned_bounds,
    fit_rect,
    normalize_angle,
    rotate_point,
    rotate_points,
    rotated_corners,
    to_local,
)
from tests.conftest import make_frame


class TestRotation:
    def test_rotate_point_quarter_turn_is_clockwise_on_screen(self):
        x, y = rotate_point((10, 0), (0, 0), 90)
        assert x == pytest.approx(0, abs=1e-9)
        assert y == pytest.approx(10)

    def test_rotate_points_matches_rotate_point(self):
        pts = [(1, 2), (3, -4), (-5, 6)]
        vec = rotate_points(pts, (1, 1), 33)
        for (px, py), (vx, vy) in zip(pts, vec):
            ex, ey = rotate_point((px, py), (1, 1), 33)
            assert vx == pytest.approx(ex)
            assert vy == pytest.approx(ey)

    def test_to_local_inverts_rotation(self):
        f = make_frame(rotation=37)
        world = rotate_point((150, 120), f.center, f.rotation)
        lx, ly = to_local(world, f)
        assert lx == pytest.approx(150)
        assert ly == pytest.approx(120)

    @pytest.mark.parametrize("angle,expected", [(0, 0), (360, 0), (-90, 270), (725, 5), (-1e-17, 0)])
    def test_normalize_angle(self, angle, expected):
        result = normalize_angle(angle)
        assert 0 <= result < 360
        assert result == pytest.approx(expected)


class TestBounds:
    def test_unrotated_bounds_equal_box(self):
        b = axis_aligned_bounds(rotated_corners(make_frame(x=10, y=20, width=100, height=50)))
        assert (b.min_x, b.max_x, b.min_y, b.max_y) == (10, 110, 20, 70)

    def test_quarter_turn_swaps_extents(self):
        f = make_frame(x=0, y=0, width=200, height=100, rotation=90)
        b = axis_aligned_bounds(rotated_corners(f))
        assert b.width == pytest.approx(100)
        assert b.height == pytest.approx(200)
        # rotation happens about the center
        assert (b.min_x + b.max_x) / 2 == pytest.approx(100)
        assert (b.min_y + b.max_y) / 2 == pytest.approx(50)

    def test_bounds_contain_every_rotated_corner(self):
        f = make_frame(rotation=23)
        corners = rotated_corners(f)
        b = axis_aligned_bounds(corners)
        for x, y in corners:
            assert b.min_x - 1e-9 <= x <= b.max_x + 1e-9
            assert b.min_y - 1e-9 <= y <= b.max_y + 1e-9
        diag = math.hypot(f.width, f.height)
        assert b.width <= diag + 1e-9


class TestFit:
    def test_wide_content_is_letterboxed_vertically(self):
        r = fit_rect((600, 200), (1200, 800))
        assert r == (0.0, 200.0, 1200.0, 400.0)

    def test_tall_content_is_pillarboxed(self):
        r = fit_rect((100, 200), (1200, 800))
        assert r.height == 800
        assert r.width == pytest.approx(400)
        assert r.x == pytest.approx(400)

    def test_design_space_pixel_size(self):
        assert DesignSpace(1200, 800).pixel_size(2) == (2400, 1600)


class TestViewport:
    def test_round_trip(self):
        vp = Viewport(zoom=1.5, display_scale=0.8, pan_x=12, pan_y=-7)
        sx, sy = vp.to_screen((300, 200))
        dx, dy = vp.to_design((sx, sy))
        assert (dx, dy) == (pytest.approx(300), pytest.approx(200))

    def test_zoom_is_clamped(self):
        vp = Viewport()
        for _ in range(50):
            vp.zoom_in()
        assert vp.zoom == MAX_ZOOM
        for _ in range(100):
            vp.zoom_out()
        assert vp.zoom == MIN_ZOOM
        vp.reset_zoom()
        assert vp.zoom == 1.0

    def test_fit_to_container(self):
        vp = Viewport()
        vp.fit_to(664, 900, DesignSpace(1200, 800))
        assert vp.display_scale == pytest.approx(0.5)
