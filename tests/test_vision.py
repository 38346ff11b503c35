import math

import numpy as np
import pytest

from powerrune.utility import point_direction_line_distance
from powerrune.vision import (
    Moments,
    Rect,
    RotatedRect,
    approx_poly_dp,
    arc_length,
    bounding_rect,
    contour_area,
    fill_convex_poly,
    find_contours,
    fit_line,
    min_area_rect,
    moments,
    partition,
    rodrigues,
)


def _rotated_corners(center, width, height, degrees):
    theta = math.radians(degrees)
    u = np.array([math.cos(theta), math.sin(theta)])
    v = np.array([-math.sin(theta), math.cos(theta)])
    c = np.array(center, dtype=float)
    return np.array(
        [
            c + u * width / 2 + v * height / 2,
            c - u * width / 2 + v * height / 2,
            c - u * width / 2 - v * height / 2,
            c + u * width / 2 - v * height / 2,
        ]
    )


def test_rect_top_left():
    rect = Rect(3.5, 7.0, 10.0, 2.0)
    assert rect.tl() == (3.5, 7.0)


def test_rotated_rect_points_pinned():
    pts = RotatedRect((10.0, 20.0), (4.0, 2.0), 0.0).points()
    expected = np.array([[8.0, 21.0], [8.0, 19.0], [12.0, 19.0], [12.0, 21.0]])
    assert np.allclose(pts, expected)


@pytest.mark.parametrize("angle", [-75.0, -30.0, 0.0, 45.0])
def test_rotated_rect_points_invariants(angle):
    rect = RotatedRect((5.0, -3.0), (6.0, 2.5), angle)
    pts = rect.points()
    assert np.allclose(pts.mean(axis=0), rect.center)
    assert math.dist(pts[0], pts[1]) == pytest.approx(rect.size[1])
    assert math.dist(pts[1], pts[2]) == pytest.approx(rect.size[0])


def test_find_contours_rectangle():
    image = np.zeros((10, 12), dtype=np.uint8)
    image[2:6, 3:9] = 255
    contours = find_contours(image)
    assert len(contours) == 1
    corners = {tuple(p) for p in contours[0]}
    assert corners == {(3, 2), (8, 2), (8, 5), (3, 5)}
    assert len(contours[0]) == 4
    rect = bounding_rect(contours[0])
    assert (rect.x, rect.y, rect.width, rect.height) == (3, 2, 9 - 3, 6 - 2)
    assert contour_area(contours[0]) == pytest.approx((8 - 3) * (5 - 2))


def test_find_contours_separate_regions_in_raster_order():
    image = np.zeros((20, 20), dtype=np.uint8)
    image[10:14, 2:5] = 1
    image[3:6, 12:16] = 1
    contours = find_contours(image)
    assert len(contours) == 2
    assert bounding_rect(contours[0]).y == 3
    assert bounding_rect(contours[1]).y == 10


def test_find_contours_single_pixel_and_empty():
    image = np.zeros((5, 5), dtype=np.uint8)
    assert find_contours(image) == []
    image[2, 3] = 1
    contours = find_contours(image)
    assert len(contours) == 1
    assert contours[0].tolist() == [[3, 2]]


def test_find_contours_diagonal_pixels_are_one_region():
    image = np.zeros((6, 6), dtype=np.uint8)
    image[1, 1] = image[2, 2] = image[3, 3] = 1
    contours = find_contours(image)
    assert len(contours) == 1
    assert {tuple(p) for p in contours[0]} == {(1, 1), (3, 3)}


def test_find_contours_rejects_non_2d():
    with pytest.raises(ValueError):
        find_contours(np.zeros((3, 3, 3)))


def test_contour_area_orientation_independent():
    square = [(0, 0), (4, 0), (4, 4), (0, 4)]
    assert contour_area(square) == pytest.approx(4 * 4)
    assert contour_area(list(reversed(square))) == pytest.approx(4 * 4)
    assert contour_area([(0, 0), (1, 1)]) == 0.0


def test_arc_length_closed_and_open():
    square = [(0, 0), (4, 0), (4, 4), (0, 4)]
    assert arc_length(square, True) == pytest.approx(4 * 4)
    assert arc_length(square, False) == pytest.approx(3 * 4)


def test_min_area_rect_recovers_rotated_rectangle():
    corners = _rotated_corners((50.0, 40.0), 10.0, 4.0, 30.0)
    rect = min_area_rect(corners)
    assert sorted(rect.size) == pytest.approx([4.0, 10.0])
    assert rect.center == pytest.approx((50.0, 40.0))
    assert -90.0 <= rect.angle < 0.0
    for corner in rect.points():
        assert min(math.dist(corner, c) for c in corners) < 1e-6


def test_min_area_rect_contains_all_points():
    rng = np.random.default_rng(3)
    pts = rng.uniform(0, 100, size=(40, 2))
    rect = min_area_rect(pts)
    theta = math.radians(rect.angle)
    u = np.array([math.cos(theta), math.sin(theta)])
    v = np.array([-math.sin(theta), math.cos(theta)])
    offsets = pts - np.array(rect.center)
    half_width, half_height = rect.size[0] / 2, rect.size[1] / 2
    assert float(np.max(np.abs(offsets @ u))) <= half_width + 1e-6
    assert float(np.max(np.abs(offsets @ v))) <= half_height + 1e-6
    span = pts.max(axis=0) - pts.min(axis=0)
    assert rect.size[0] * rect.size[1] <= float(span[0] * span[1]) + 1e-6


def test_min_area_rect_empty_raises():
    with pytest.raises(ValueError):
        min_area_rect([])


def test_bounding_rect_inclusive():
    rect = bounding_rect([(3, 4), (7, 9), (5, 6)])
    assert (rect.x, rect.y, rect.width, rect.height) == (3, 4, 7 - 3 + 1, 9 - 4 + 1)


def test_moments_rectangle():
    result = moments([(0, 0), (6, 0), (6, 4), (0, 4)])
    assert result.m00 == pytest.approx(6 * 4)
    assert result.centroid == pytest.approx((6 / 2, 4 / 2))
    reversed_result = moments([(0, 4), (6, 4), (6, 0), (0, 0)])
    assert reversed_result.m10 == pytest.approx(result.m10)
    assert reversed_result.m02 == pytest.approx(result.m02)


def test_moments_degenerate_centroid_is_nan():
    result = moments([(0, 0), (5, 0)])
    assert result.m00 == 0
    assert all(math.isnan(value) for value in result.centroid)
    assert math.isnan(Moments().centroid[0])


def test_approx_poly_dp_square_perimeter():
    side = 20
    perimeter = (
        [(x, 0) for x in range(side)]
        + [(side, y) for y in range(side)]
        + [(x, side) for x in range(side, 0, -1)]
        + [(0, y) for y in range(side, 0, -1)]
    )
    approx = approx_poly_dp(np.array(perimeter), 1.0, True)
    assert {tuple(p) for p in approx} == {(0, 0), (side, 0), (side, side), (0, side)}
    assert len(approx) == 4


def test_approx_poly_dp_open_keeps_endpoints():
    line = np.array([(x, 0) for x in range(10)])
    approx = approx_poly_dp(line, 0.5, False)
    assert approx.tolist() == [[0, 0], [9, 0]]


def test_fit_line_collinear_points():
    pts = [(1 + 3 * i, 2 + 4 * i) for i in range(6)]
    line = fit_line(pts)
    vx, vy, _, _ = line
    assert vx * vx + vy * vy == pytest.approx(1.0)
    assert abs(vx * 4 - vy * 3) < 1e-9
    for point in pts:
        assert point_direction_line_distance(point, line) < 1e-9


def test_fit_line_needs_two_points():
    with pytest.raises(ValueError):
        fit_line([(1, 1)])


def test_partition_groups_by_predicate():
    labels = partition([1, 2, 10, 11, 20], lambda a, b: abs(a - b) <= 1.5)
    assert labels == [0, 0, 1, 1, 2]


def test_partition_transitive_chain():
    labels = partition([0, 1, 2, 3], lambda a, b: abs(a - b) == 1)
    assert labels == [0] * 4
    assert partition([], lambda a, b: True) == []


def test_fill_convex_poly_square():
    mask = np.zeros((10, 10), dtype=np.uint8)
    result = fill_convex_poly(mask, [(2, 2), (5, 2), (5, 5), (2, 5)], (255, 255, 255))
    assert result is mask
    assert np.all(mask[2:6, 2:6] == 255)
    assert int(np.count_nonzero(mask)) == (5 - 2 + 1) ** 2


def test_fill_convex_poly_triangle_and_clipping():
    mask = np.zeros((8, 8), dtype=np.uint8)
    fill_convex_poly(mask, [(-3, -3), (6, 0), (0, 6)], 1)
    assert mask[0, 0] == 1
    assert mask[0, 6] == 1
    assert mask[7, 7] == 0
    assert mask[6, 6] == 0


def test_rodrigues_zero_and_quarter_turn():
    assert np.allclose(rodrigues([0.0, 0.0, 0.0]), np.eye(3))
    matrix = rodrigues([0.0, 0.0, math.pi / 2])
    assert np.allclose(matrix @ np.array([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0])


def test_rodrigues_round_trip():
    vector = np.array([0.1, -0.4, 0.25])
    assert np.allclose(rodrigues(rodrigues(vector)), vector)


def test_rodrigues_bad_shape():
    with pytest.raises(ValueError):
        rodrigues([1.0, 2.0])