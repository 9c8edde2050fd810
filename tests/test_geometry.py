"""
Tests for geometry primitives.
"""

import math

import numpy as np
import pytest

from mosaicify.geometry import (
    Point,
    Rect,
    circle_mask,
    complement_bands,
    point_in_polygon,
    points_in_polygon,
    polygon_mask,
    rect_mask,
    round_half_up,
)


def regular_polygon(cx, cy, radius, sides, start_angle=-math.pi / 2):
    return [
        Point(cx + radius * math.cos(start_angle + 2 * math.pi * k / sides),
              cy + radius * math.sin(start_angle + 2 * math.pi * k / sides))
        for k in range(sides)
    ]


def pentagram(cx, cy, radius):
    """Five-pointed star drawn as one self-intersecting polygon."""
    outer = regular_polygon(cx, cy, radius, 5)
    return [outer[i] for i in (0, 2, 4, 1, 3)]


class TestRounding:
    """Test half-up rounding."""

    def test_halves_round_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(12.5) == 13
        assert round_half_up(2.5) == 3

    def test_regular_rounding(self):
        assert round_half_up(3.33) == 3
        assert round_half_up(3.67) == 4
        assert round_half_up(0) == 0


class TestPoint:
    """Test Point helpers."""

    def test_clamped(self):
        assert Point(-5, 10).clamped(100, 50) == Point(0, 10)
        assert Point(150, 80).clamped(100, 50) == Point(100, 50)
        assert Point(20, 30).clamped(100, 50) == Point(20, 30)

    def test_distance(self):
        assert Point(0, 0).distance_to(Point(3, 4)) == 5.0


class TestRect:
    """Test Rect helpers."""

    def test_from_corners_any_order(self):
        expected = Rect(10, 20, 30, 40)
        assert Rect.from_corners(Point(10, 20), Point(40, 60)) == expected
        assert Rect.from_corners(Point(40, 60), Point(10, 20)) == expected
        assert Rect.from_corners(Point(40, 20), Point(10, 60)) == expected

    def test_is_larger_than_is_strict(self):
        assert Rect(0, 0, 6, 6).is_larger_than(5)
        assert not Rect(0, 0, 5, 6).is_larger_than(5)
        assert not Rect(0, 0, 6, 5).is_larger_than(5)

    def test_pixel_bounds_snaps_outward(self):
        assert Rect(2.5, 3.2, 4.0, 4.0).pixel_bounds(100, 100) == (2, 3, 7, 8)

    def test_pixel_bounds_clamps(self):
        assert Rect(-10, -10, 50, 50).pixel_bounds(20, 30) == (0, 0, 20, 30)
        assert Rect(200, 200, 10, 10).pixel_bounds(20, 30) == (20, 30, 20, 30)


class TestPointInPolygon:
    """Test even-odd point-in-polygon classification."""

    def test_square(self):
        square = [Point(0, 0), Point(10, 0), Point(10, 10), Point(0, 10)]
        assert point_in_polygon(5, 5, square)
        assert not point_in_polygon(15, 5, square)
        assert not point_in_polygon(5, -1, square)

    @pytest.mark.parametrize("sides", [3, 4, 5, 6, 8, 12])
    def test_regular_polygon_centroid_is_inside(self, sides):
        polygon = regular_polygon(50, 40, 20, sides)
        assert point_in_polygon(50, 40, polygon)

    def test_deterministic(self):
        polygon = regular_polygon(50, 40, 20, 7)
        results = {point_in_polygon(52.3, 37.1, polygon) for _ in range(10)}
        assert len(results) == 1

    def test_concave_polygon(self):
        # U shape opening upwards
        u_shape = [
            Point(0, 0), Point(10, 0), Point(10, 30), Point(20, 30),
            Point(20, 0), Point(30, 0), Point(30, 40), Point(0, 40),
        ]
        assert point_in_polygon(5, 10, u_shape)
        assert point_in_polygon(25, 10, u_shape)
        assert not point_in_polygon(15, 10, u_shape)
        assert point_in_polygon(15, 35, u_shape)

    def test_self_intersecting_pentagram(self):
        star = pentagram(50, 50, 30)
        # Central pentagon is crossed twice: outside under even-odd
        assert not point_in_polygon(50, 50, star)
        # Inside the top spike
        assert point_in_polygon(50, 50 - 0.7 * 30, star)

    def test_bowtie(self):
        bowtie = [Point(0, 0), Point(20, 20), Point(20, 0), Point(0, 20)]
        assert point_in_polygon(3, 10, bowtie)
        assert point_in_polygon(17, 10, bowtie)
        assert not point_in_polygon(10, 3, bowtie)

    def test_vectorized_matches_scalar(self):
        star = pentagram(30, 30, 25)
        xs = np.linspace(0, 60, 31)[np.newaxis, :]
        ys = np.linspace(0, 60, 29)[:, np.newaxis]
        vectorized = points_in_polygon(xs, ys, star)
        for row, y in enumerate(ys[:, 0]):
            for col, x in enumerate(xs[0]):
                assert vectorized[row, col] == point_in_polygon(x, y, star)


class TestMasks:
    """Test mask construction."""

    def test_polygon_mask_uses_pixel_centres(self):
        square = [Point(2, 2), Point(6, 2), Point(6, 6), Point(2, 6)]
        mask = polygon_mask(square, 10, 10)
        expected = np.zeros((10, 10), dtype=bool)
        expected[2:6, 2:6] = True
        assert np.array_equal(mask, expected)

    def test_polygon_mask_needs_three_points(self):
        mask = polygon_mask([Point(0, 0), Point(5, 5)], 10, 10)
        assert not mask.any()

    def test_circle_mask(self):
        mask = circle_mask(Point(10, 10), 3, 20, 20)
        assert mask[9, 9] and mask[10, 10]
        assert not mask[10, 14]
        assert not mask[0, 0]

    def test_rect_mask(self):
        mask = rect_mask(Rect(1, 2, 3, 4), 10, 10)
        assert mask.sum() == 12
        assert mask[2:6, 1:4].all()


class TestComplementBands:
    """Test decomposition of a rectangle's complement."""

    @pytest.mark.parametrize("rect", [
        Rect(10, 5, 20, 15),
        Rect(0, 0, 15, 15),
        Rect(2.5, 3.7, 11.2, 9.9),
        Rect(-5, -5, 20, 20),
        Rect(30, 20, 40, 40),
        Rect(0, 0, 40, 30),
    ])
    def test_exact_partition(self, rect):
        width, height = 40, 30
        coverage = rect_mask(rect, width, height).astype(int)
        for band in complement_bands(rect, width, height):
            coverage += rect_mask(band, width, height).astype(int)
        assert (coverage == 1).all()

    def test_band_order(self):
        above, below, left, right = complement_bands(Rect(10, 5, 20, 15), 40, 30)
        assert above == Rect(0, 0, 40, 5)
        assert below == Rect(0, 20, 40, 10)
        assert left == Rect(0, 5, 10, 15)
        assert right == Rect(30, 5, 10, 15)
