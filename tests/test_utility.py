import math

import pytest

from powerrune.utility import (
    Frame,
    in_range,
    point_direction_line_distance,
    point_distance,
    point_line_distance,
    solve_quadratic,
)


def test_point_distance_2d():
    assert point_distance((0.0, 0.0), (3.0, 4.0)) == pytest.approx(5.0)


def test_point_distance_is_symmetric_3d():
    a = (1.5, -2.0, 7.0)
    b = (-3.0, 4.0, 0.5)
    assert point_distance(a, b) == pytest.approx(point_distance(b, a))
    assert point_distance(a, a) == 0.0


def test_point_distance_dimension_mismatch():
    with pytest.raises(ValueError):
        point_distance((0.0, 0.0), (1.0, 2.0, 3.0))


def test_point_line_distance_matches_foot_of_perpendicular():
    point = (2.0, 5.0)
    distance = point_line_distance(point, (0.0, 1.0), (10.0, 1.0))
    assert distance == pytest.approx(point_distance(point, (2.0, 1.0)))


def test_point_line_distance_point_on_line():
    assert point_line_distance((5.0, 5.0), (0.0, 0.0), (10.0, 10.0)) == pytest.approx(0.0)


def test_direction_line_distance_agrees_with_two_point_form():
    point = (2.0, 5.0)
    line = (1.0, 0.0, 0.0, 1.0)
    assert point_direction_line_distance(point, line) == pytest.approx(
        point_line_distance(point, (0.0, 1.0), (1.0, 1.0))
    )


@pytest.mark.parametrize("a,b,c", [(1.0, -3.0, 2.0), (-0.5, 2.0, 1.0), (2.0, 0.0, -8.0)])
def test_solve_quadratic_roots_satisfy_equation(a, b, c):
    for root in solve_quadratic(a, b, c):
        assert a * root * root + b * root + c == pytest.approx(0.0, abs=1e-9)


def test_solve_quadratic_order_for_positive_leading_coefficient():
    low, high = solve_quadratic(1.0, -3.0, 2.0)
    assert low == pytest.approx(1.0)
    assert high == pytest.approx(2.0)


def test_solve_quadratic_negative_discriminant_is_nan():
    result = solve_quadratic(1.0, 0.0, 1.0)
    assert [math.isnan(root) for root in result] == [True, True]


def test_solve_quadratic_zero_leading_coefficient():
    with pytest.raises(ValueError):
        solve_quadratic(0.0, 1.0, 1.0)


def test_in_range_inclusive_and_swapped_bounds():
    assert in_range(1.0, 1.0, 2.0) is True
    assert in_range(2.0, 1.0, 2.0) is True
    assert in_range(1.5, 2.0, 1.0) is True
    assert in_range(2.5, 2.0, 1.0) is False


def test_frame_defaults_roll():
    frame = Frame(image=None, time=1.5, pitch=3.0, yaw=-2.0)
    assert frame.roll == 0.0
    assert (frame.pitch, frame.yaw) == (3.0, -2.0)