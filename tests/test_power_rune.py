from types import SimpleNamespace

import numpy as np
import pytest

from powerrune.power_rune import PowerRune, main
from powerrune.utility import Color, Direction, Mode, Status


def make_param():
    return SimpleNamespace(
        image_width=64,
        image_height=48,
        color=Color.RED,
        arrow_brightness_threshold=50,
        armor_brightness_threshold=50,
        min_arrow_lightline_area=10.0,
        max_arrow_lightline_area=1000.0,
        max_arrow_lightline_aspect_ratio=5.0,
        fps=50,
        mode=Mode.SMALL,
        current_bullet_speed=0.0,
        min_bullet_speed=10.0,
        default_bullet_speed=25.0,
        camera_to_gimbal_translation_vector=(0.0, 0.0, 0.0),
        compensate_time=0.0,
        compensate_pitch=0.0,
        compensate_yaw=0.0,
        intrinsic_matrix=np.eye(3),
        dist_coeffs=np.zeros(5),
        min_fit_data_size=10,
        max_fit_data_size=100,
    )


def test_blank_image_fails_at_arrow():
    with PowerRune(make_param()) as power_rune:
        image = np.zeros((48, 64, 3), dtype=np.uint8)
        assert power_rune.run_once(image, 0.0, 0.0) is False
        assert power_rune.detector.status is Status.ARROW_FAILURE
        assert power_rune.calculator.direction is Direction.UNKNOWN


def test_failure_resets_global_roi_to_whole_image():
    with PowerRune(make_param()) as power_rune:
        image = np.zeros((48, 64, 3), dtype=np.uint8)
        power_rune.run_once(image, 1.0, 2.0, 0.5)
        roi = power_rune.detector.global_roi
        assert (roi.x, roi.y, roi.width, roi.height) == (0.0, 0.0, 64.0, 48.0)


def test_single_channel_image_is_rejected():
    with PowerRune(make_param()) as power_rune:
        with pytest.raises(ValueError):
            power_rune.run_once(np.zeros((48, 64), dtype=np.uint8), 0.0, 0.0)


def test_main_help_exits_cleanly():
    with pytest.raises(SystemExit) as info:
        main(["--help"])
    assert info.value.code == 0