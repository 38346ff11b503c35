"""Detection and prediction for one frame at a time, and the video command."""

from __future__ import annotations

import argparse
import time

import numpy as np

from .calculator import Calculator
from .detector import Detector
from .param import Param
from .utility import Frame

DEFAULT_CONFIG_PATH = "../config.yaml"
DEFAULT_VIDEO_PATH = "../video.avi"


class PowerRune:
    """Runs the detector and, on success, the calculator on each image."""

    def __init__(self, param):
        self.param = param
        self.detector = Detector(param)
        self.calculator = Calculator(param)

    def run_once(self, image: np.ndarray, pitch: float, yaw: float, roll: float = 0.0) -> bool:
        """Process one BGR image with the gimbal angles in degrees; True when a prediction was made."""
        frame = Frame(image=image, time=time.monotonic(), pitch=pitch, yaw=yaw, roll=roll)
        if not self.detector.detect(frame):
            return False
        camera_points = self.detector.camera_points()
        result = self.calculator.calculate(frame, camera_points)
        if result:
            self.detector.draw_target_point(self.calculator.predict_pixel)
        return result

    def close(self) -> None:
        self.calculator.close()

    def __enter__(self) -> "PowerRune":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def main(argv=None) -> int:
    """Run the pipeline over a video file at the configured frame rate."""
    import imageio.v3 as iio

    parser = argparse.ArgumentParser(prog="powerrune", description="Detect and predict the power rune in a video.")
    parser.add_argument("video", nargs="?", default=DEFAULT_VIDEO_PATH, help="video file to read")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="YAML configuration file")
    args = parser.parse_args(argv)

    param = Param.load(args.config)
    period = (1000 // int(param.fps)) / 1000.0
    with PowerRune(param) as power_rune:
        for rgb in iio.imiter(args.video):
            start = time.monotonic()
            image = np.ascontiguousarray(np.asarray(rgb)[..., 2::-1])
            power_rune.run_once(image, 0.0, 0.0)
            remaining = start + period - time.monotonic()
            if remaining > 0:
                time.sleep(remaining)
    return 0