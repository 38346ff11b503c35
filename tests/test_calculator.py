import math
from types import SimpleNamespace

import numpy as np
import pytest

from powerrune.calculator import Calculator
from powerrune.param import Param
from powerrune.utility import Direction, Frame, Mode

FX, FY, CX, CY = 1000.0, 1000.0, 640.0, 512.0
INTRINSIC = np.array([[FX, 0.0, CX], [0.0, FY, CY], [0.0, 0.0, 1.0]])


def make_param(mode=Mode.SMALL, **overrides):
    values = dict(
        fps=50,
        mode=mode,
        current_bullet_speed=0.0,
        min_bullet_speed=10.0,
        default_bullet_speed=25.0,
        camera_to_gimbal_translation_vector=(0.0, 0.0, 0.0),
        compensate_time=0.0,
        compensate_pitch=0.0,
        compensate_yaw=0.5,
        intrinsic_matrix=INTRINSIC,
        dist_coeffs=np.zeros(5),
        min_fit_data_size=10**6,
        max_fit_data_size=10**7,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def world_points():
    leaf, radius = Param.LEAF_RADIUS, Param.POWER_RUNE_RADIUS
    return [(0.0, -leaf), (leaf, 0.0), (0.0, leaf), (-leaf, 0.0), (0.0, radius)]


def project(theta=0.0, tz=6000.0):
    c, s = math.cos(theta), math.sin(theta)
    points = []
    for x, y in world_points():
        xr, yr = c * x - s * y, s * x + c * y
        points.append((FX * xr / tz + CX, FY * yr / tz + CY))
    return points


def frame(t):
    return Frame(image=None, time=t, pitch=0.0, yaw=0.0, roll=0.0)


def test_direction_threshold_has_a_floor_of_two():
    with Calculator(make_param(fps=10)) as calc:
        assert calc.direction_threshold == 2


def test_stable_rune_predicts_the_armor_itself():
    with Calculator(make_param()) as calc:
        results = [calc.calculate(frame(0.02 * i), project()) for i in range(5)]
        assert results == [False] * 4 + [True]
        assert calc.direction is Direction.STABLE
        assert calc.predict_robot == pytest.approx((0.0, 0.0, 6000.0), abs=1e-2)
        assert calc.predict_pixel == pytest.approx((CX, CY), abs=1e-3)
        pitch, yaw = calc.predict_pitch_yaw
        assert yaw == pytest.approx(0.5, abs=1e-6)
        assert 0.0 < pitch < 5.0


def test_default_bullet_speed_used_below_minimum():
    with Calculator(make_param()) as calc:
        calc.calculate(frame(0.0), project())
        assert calc.bullet_speed == 25.0
        assert calc.distance_to_target == pytest.approx(6.0, abs=1e-3)


def test_target_too_far_is_rejected():
    with Calculator(make_param()) as calc:
        assert calc.calculate(frame(0.0), project(tz=20000.0)) is False
        assert calc.direction is Direction.UNKNOWN


def test_clockwise_prediction_stays_on_rune_circle():
    with Calculator(make_param()) as calc:
        results = [calc.calculate(frame(0.02 * i), project(0.05 * i)) for i in range(6)]
        assert results[-1] is True
        assert calc.direction is Direction.CLOCKWISE
        distance = math.dist(calc.predict_robot, calc.center_robot)
        assert distance == pytest.approx(Param.POWER_RUNE_RADIUS, rel=1e-3)
        assert math.dist(calc.predict_robot, calc.armor_robot) > 1.0


def test_anti_clockwise_direction_detected():
    with Calculator(make_param()) as calc:
        for i in range(6):
            calc.calculate(frame(0.02 * i), project(-0.05 * i))
        assert calc.direction is Direction.ANTI_CLOCKWISE
        distance = math.dist(calc.predict_robot, calc.center_robot)
        assert distance == pytest.approx(Param.POWER_RUNE_RADIUS, rel=1e-3)


def test_big_mode_collects_samples_and_waits_for_fit():
    with Calculator(make_param(mode=Mode.BIG)) as calc:
        assert calc.is_fitting
        results = [calc.calculate(frame(0.02 * i), project(0.05 * i)) for i in range(8)]
        assert not any(results)
        data = calc.fit_data
        assert len(data) == 8
        times = [t for t, _ in data]
        assert times == sorted(times)
        assert all(angle >= 0 for _, angle in data)
    assert not calc.is_fitting


def test_small_mode_collects_no_samples():
    with Calculator(make_param()) as calc:
        for i in range(3):
            calc.calculate(frame(0.02 * i), project())
        assert calc.fit_data == []
        assert not calc.is_fitting