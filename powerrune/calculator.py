"""Pose solving, rotation tracking and hit-point prediction for a detected rune."""

from __future__ import annotations

import logging
import math
import threading
from typing import Sequence

import numpy as np

from .fitting import get_convexity, ransac_fitting, rotation_angle_big, rotation_angle_small
from .param import Param
from .transforms import (
    camera_to_gimbal,
    gimbal_to_robot,
    pitch_yaw_from_robot,
    pixel_from_robot,
    world_to_camera,
)
from .utility import Convexity, Direction, Frame, Mode, in_range

logger = logging.getLogger(__name__)

Point2 = tuple[float, float]
Point3 = tuple[float, float, float]


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _point3(vector: np.ndarray) -> Point3:
    return (float(vector[0]), float(vector[1]), float(vector[2]))


class Calculator:
    """Turns detected pixel points into a predicted aiming point.

    In big-rune mode a background thread keeps fitting the rotation curve; call
    close(), or use the calculator as a context manager, to stop it.
    """

    def __init__(self, param):
        self.param = param
        leaf = float(Param.LEAF_RADIUS)
        radius = float(Param.POWER_RUNE_RADIUS)
        self.world_points = np.array([
            (0.0, -leaf, 0.0),
            (leaf, 0.0, 0.0),
            (0.0, leaf, 0.0),
            (-leaf, 0.0, 0.0),
            (0.0, radius, 0.0),
        ])
        self.direction = Direction.UNKNOWN
        self.convexity = Convexity.UNKNOWN
        self.total_shift = 0
        self.bullet_speed = 0.0
        self.frame_time = 0.0
        self.start_time = 0.0
        self.roll = self.pitch = self.yaw = 0.0
        self.angle_rel = 0.0
        self.angle_last = 0.0
        self.distance_to_target = 0.0
        self.world_to_camera_matrix: np.ndarray | None = None
        self.world_to_robot_matrix: np.ndarray | None = None
        self.armor_robot: Point3 = (0.0, 0.0, 0.0)
        self.center_robot: Point3 = (0.0, 0.0, 0.0)
        self.predict_robot: Point3 = (0.0, 0.0, 0.0)
        self.predict_pixel: Point2 = (0.0, 0.0)
        self.predict_pitch = 0.0
        self.predict_yaw = 0.0
        period = 1000 // int(param.fps)
        self.direction_threshold = max(2, 100 // period)
        self._camera_points = np.zeros((0, 2))
        self._rotation_base: np.ndarray | None = None
        self._rotation: np.ndarray | None = None
        self._first_detect = True
        self._direction_data: list[float] = []
        self._fit_data: list[tuple[float, float]] = []
        self._params: tuple[float, ...] | None = None
        self._valid_params = False
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        if param.mode is Mode.BIG:
            self._thread = threading.Thread(target=self._fit_loop, name="rune-fit", daemon=True)
            self._thread.start()

    @property
    def predict_pitch_yaw(self) -> tuple[float, float]:
        return (self.predict_pitch, self.predict_yaw)

    @property
    def fit_data(self) -> list[tuple[float, float]]:
        """A copy of the (time, |angle|) samples kept for fitting."""
        with self._lock:
            return list(self._fit_data)

    @property
    def is_fitting(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def calculate(self, frame: Frame, camera_points: Sequence[Sequence[float]]) -> bool:
        """Process one detection; True when a prediction was made."""
        self._preprocess(frame, camera_points)
        if not self._matrix_cal():
            return False
        self._set_first_detect()
        self._angle_cal()
        self._direction_cal()
        if self.direction is Direction.UNKNOWN:
            return False
        return self._predict()

    def close(self) -> None:
        """Stop the fitting thread and wait for it."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()

    def __enter__(self) -> "Calculator":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _preprocess(self, frame: Frame, camera_points) -> None:
        self._camera_points = np.asarray(camera_points, dtype=np.float64).reshape(-1, 2)
        self.frame_time = float(frame.time)
        self.roll = float(frame.roll)
        self.pitch = float(frame.pitch)
        self.yaw = float(frame.yaw)
        current = float(getattr(self.param, "current_bullet_speed", 0.0))
        self.bullet_speed = (current if current > self.param.min_bullet_speed
                             else float(self.param.default_bullet_speed))

    def _matrix_cal(self) -> bool:
        w2c = world_to_camera(self.world_points, self._camera_points,
                              self.param.intrinsic_matrix, self.param.dist_coeffs)
        c2g = camera_to_gimbal(Param.CAMERA_TO_GIMBAL_ROTATION_VECTOR,
                               self.param.camera_to_gimbal_translation_vector)
        g2r = gimbal_to_robot(math.radians(self.pitch), math.radians(self.yaw),
                              math.radians(self.roll))
        w2r = g2r @ c2g @ w2c
        self.world_to_camera_matrix = w2c
        self.world_to_robot_matrix = w2r
        self._rotation = w2r[:3, :3].copy()
        self.distance_to_target = float(np.linalg.norm(w2c[:, 3])) * 1e-3
        if not in_range(self.distance_to_target, Param.MIN_DISTANCE_TO_TARGET,
                        Param.MAX_DISTANCE_TO_TARGET):
            return False
        self.armor_robot = _point3(w2r @ np.array([0.0, 0.0, 0.0, 1.0]))
        self.center_robot = _point3(w2r @ np.array([0.0, Param.POWER_RUNE_RADIUS, 0.0, 1.0]))
        logger.debug("armor centre %s, centre R %s", self.armor_robot, self.center_robot)
        return True

    def _set_first_detect(self) -> None:
        if self._first_detect:
            self._first_detect = False
            self._rotation_base = self._rotation.copy()
            self.start_time = self.frame_time

    def _angle_cal(self) -> None:
        relative = np.linalg.inv(self._rotation_base) @ self._rotation
        angle_abs = -math.atan2(relative[0, 1], relative[0, 0])
        change = angle_abs - self.angle_last
        self.angle_last = angle_abs
        self.total_shift += _round_half_away(change / Param.ANGLE_BETWEEN_FAN_BLADES)
        self.angle_rel = angle_abs - self.total_shift * Param.ANGLE_BETWEEN_FAN_BLADES
        elapsed = int((self.frame_time - self.start_time) * 1e6) / 1e6
        if self.param.mode is Mode.BIG:
            with self._lock:
                self._fit_data.append((elapsed, abs(self.angle_rel)))

    def _direction_cal(self) -> None:
        if self.direction not in (Direction.UNKNOWN, Direction.STABLE):
            return
        self._direction_data.append(self.angle_rel)
        if len(self._direction_data) < self.direction_threshold:
            return
        half = len(self._direction_data) // 2
        stable = anti = clockwise = 0
        for earlier, later in zip(self._direction_data[:half], self._direction_data[half:]):
            difference = later - earlier
            if difference > 1.5e-2:
                clockwise += 1
            elif difference < -1.5e-2:
                anti += 1
            else:
                stable += 1
        best = max(stable, clockwise, anti)
        if best == clockwise:
            self.direction = Direction.CLOCKWISE
        elif best == anti:
            self.direction = Direction.ANTI_CLOCKWISE
        else:
            self.direction = Direction.STABLE
        logger.debug("direction: %s", self.direction.name.lower())

    def _predict(self) -> bool:
        if self.direction is Direction.STABLE:
            angle = 0.0
        else:
            if self.param.mode is Mode.BIG:
                frame_ms = int((self.frame_time - self.start_time) * 1e3)
                with self._lock:
                    valid, params = self._valid_params, self._params
                if not valid or params is None:
                    return False
                angle = rotation_angle_big(self.distance_to_target, self.bullet_speed, params,
                                           self.param.compensate_time, frame_ms)
            else:
                angle = rotation_angle_small(self.distance_to_target, self.bullet_speed,
                                             Param.SMALL_POWER_RUNE_ROTATION_SPEED,
                                             self.param.compensate_time)
            if self.direction is Direction.ANTI_CLOCKWISE:
                angle = -angle
        radius = Param.POWER_RUNE_RADIUS
        world = np.array([radius * math.sin(angle), radius - radius * math.cos(angle), 0.0, 1.0])
        self.predict_robot = _point3(self.world_to_robot_matrix @ world)
        self.predict_pitch, self.predict_yaw = pitch_yaw_from_robot(
            self.predict_robot, self.bullet_speed,
            self.param.compensate_pitch, self.param.compensate_yaw)
        self.predict_pixel = pixel_from_robot(self.predict_robot, self.world_to_camera_matrix,
                                              self.world_to_robot_matrix,
                                              self.param.intrinsic_matrix)
        logger.debug("predict angle %s, point %s, pitch/yaw %s", angle, self.predict_robot,
                     self.predict_pitch_yaw)
        return True

    def _fit_loop(self) -> None:
        fps = float(self.param.fps)
        while not self._stop.is_set():
            with self._lock:
                data = list(self._fit_data)
            if len(data) < self.param.min_fit_data_size:
                self._stop.wait(1.0 / fps)
                continue
            if len(data) < 2 * self.param.min_fit_data_size:
                try:
                    self.convexity = get_convexity(data)
                except ValueError:
                    pass
            params = ransac_fitting(data, self.convexity)
            with self._lock:
                self._params = params
                self._valid_params = True
                if len(self._fit_data) > self.param.max_fit_data_size:
                    del self._fit_data[:len(self._fit_data) // 2]
            logger.info("params: %s", " ".join(str(value) for value in params))
            self._stop.wait(10.0 / fps)