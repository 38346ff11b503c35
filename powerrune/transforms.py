"""Coordinate transforms between world, camera, gimbal and robot frames, and aiming."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from scipy.optimize import least_squares

from .param import Param
from .utility import solve_quadratic
from .vision import rodrigues


def _homogeneous(rotation: np.ndarray, translation: Sequence[float]) -> np.ndarray:
    matrix = np.eye(4)
    matrix[:3, :3] = rotation
    matrix[:3, 3] = np.asarray(translation, dtype=np.float64).reshape(3)
    return matrix


def _coefficients(dist_coeffs) -> np.ndarray:
    """Distortion coefficients as (k1, k2, p1, p2, k3), missing ones taken as zero."""
    values = np.asarray(dist_coeffs if dist_coeffs is not None else [], dtype=np.float64).reshape(-1)
    if values.size > 5:
        raise ValueError("at most five distortion coefficients are supported")
    padded = np.zeros(5)
    padded[:values.size] = values
    return padded


def _intrinsic(intrinsic_matrix) -> np.ndarray:
    matrix = np.asarray(intrinsic_matrix, dtype=np.float64)
    if matrix.size != 9:
        raise ValueError("intrinsic matrix must be 3x3")
    return matrix.reshape(3, 3)


def _distort(x: np.ndarray, y: np.ndarray, coeffs: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    k1, k2, p1, p2, k3 = coeffs
    r2 = x * x + y * y
    radial = 1 + k1 * r2 + k2 * r2 * r2 + k3 * r2 * r2 * r2
    xd = x * radial + 2 * p1 * x * y + p2 * (r2 + 2 * x * x)
    yd = y * radial + p1 * (r2 + 2 * y * y) + 2 * p2 * x * y
    return xd, yd


def _undistort(pixels: np.ndarray, intrinsic: np.ndarray, coeffs: np.ndarray) -> np.ndarray:
    """Pixels to normalised, undistorted image coordinates."""
    homogeneous = np.column_stack([pixels, np.ones(len(pixels))])
    normalised = homogeneous @ np.linalg.inv(intrinsic).T
    xd = normalised[:, 0] / normalised[:, 2]
    yd = normalised[:, 1] / normalised[:, 2]
    x, y = xd.copy(), yd.copy()
    k1, k2, p1, p2, k3 = coeffs
    for _ in range(20):
        r2 = x * x + y * y
        radial = 1 + k1 * r2 + k2 * r2 * r2 + k3 * r2 * r2 * r2
        dx = 2 * p1 * x * y + p2 * (r2 + 2 * x * x)
        dy = p1 * (r2 + 2 * y * y) + 2 * p2 * x * y
        x = (xd - dx) / radial
        y = (yd - dy) / radial
    return np.column_stack([x, y])


def _project(world: np.ndarray, pose: np.ndarray, intrinsic: np.ndarray,
             coeffs: np.ndarray) -> np.ndarray:
    rotation = rodrigues(pose[:3])
    camera = world @ rotation.T + pose[3:]
    x = camera[:, 0] / camera[:, 2]
    y = camera[:, 1] / camera[:, 2]
    xd, yd = _distort(x, y, coeffs)
    u = intrinsic[0, 0] * xd + intrinsic[0, 1] * yd + intrinsic[0, 2]
    v = intrinsic[1, 1] * yd + intrinsic[1, 2]
    return np.column_stack([u, v])


def _normalisation(points: np.ndarray) -> np.ndarray:
    mean = points.mean(axis=0)
    spread = np.mean(np.hypot(*(points - mean).T))
    scale = math.sqrt(2) / spread if spread > 0 else 1.0
    return np.array([[scale, 0, -scale * mean[0]], [0, scale, -scale * mean[1]], [0, 0, 1]])


def _homography(source: np.ndarray, target: np.ndarray) -> np.ndarray:
    """Direct linear estimate of the homography taking source to target."""
    src_norm = _normalisation(source)
    dst_norm = _normalisation(target)
    src = np.column_stack([source, np.ones(len(source))]) @ src_norm.T
    dst = np.column_stack([target, np.ones(len(target))]) @ dst_norm.T
    rows = []
    for (sx, sy, _), (dx, dy, _) in zip(src, dst):
        rows.append([-sx, -sy, -1, 0, 0, 0, dx * sx, dx * sy, dx])
        rows.append([0, 0, 0, -sx, -sy, -1, dy * sx, dy * sy, dy])
    _, _, vt = np.linalg.svd(np.asarray(rows))
    normalised = vt[-1].reshape(3, 3)
    return np.linalg.inv(dst_norm) @ normalised @ src_norm


def _pose_from_homography(homography: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    h1, h2, h3 = homography.T
    scale = 2.0 / (np.linalg.norm(h1) + np.linalg.norm(h2))
    if h3[2] * scale < 0:
        scale = -scale
    r1, r2 = scale * h1, scale * h2
    rotation = np.column_stack([r1, r2, np.cross(r1, r2)])
    u, _, vt = np.linalg.svd(rotation)
    rotation = u @ vt
    if np.linalg.det(rotation) < 0:
        u[:, 2] = -u[:, 2]
        rotation = u @ vt
    return rotation, scale * h3


def world_to_camera(world_points, camera_points, intrinsic_matrix, dist_coeffs) -> np.ndarray:
    """4x4 world-to-camera transform from planar (z = 0) world points and their pixels."""
    world = np.asarray(world_points, dtype=np.float64).reshape(-1, 3)
    pixels = np.asarray(camera_points, dtype=np.float64).reshape(-1, 2)
    if len(world) != len(pixels):
        raise ValueError("world and camera points must pair up")
    if len(world) < 4:
        raise ValueError("at least four point pairs are required")
    if not np.allclose(world[:, 2], 0.0):
        raise ValueError("world points must lie in the z = 0 plane")
    intrinsic = _intrinsic(intrinsic_matrix)
    coeffs = _coefficients(dist_coeffs)

    normalised = _undistort(pixels, intrinsic, coeffs)
    rotation, translation = _pose_from_homography(_homography(world[:, :2], normalised))
    start = np.concatenate([rodrigues(rotation), translation])
    result = least_squares(
        lambda pose: (_project(world, pose, intrinsic, coeffs) - pixels).ravel(),
        start, method="lm",
    )
    return _homogeneous(rodrigues(result.x[:3]), result.x[3:])


def camera_to_gimbal(rotation: Sequence[float], translation: Sequence[float]) -> np.ndarray:
    """4x4 camera-to-gimbal transform from a rotation vector and a translation."""
    return _homogeneous(rodrigues(rotation), translation)


def gimbal_to_robot(pitch: float, yaw: float, roll: float) -> np.ndarray:
    """4x4 gimbal-to-robot rotation from pitch and yaw in radians; roll has no effect."""
    yaw_matrix = np.array([
        [math.cos(-yaw), 0, math.sin(-yaw), 0],
        [0, 1, 0, 0],
        [-math.sin(-yaw), 0, math.cos(-yaw), 0],
        [0, 0, 0, 1],
    ])
    pitch_matrix = np.array([
        [1, 0, 0, 0],
        [0, math.cos(pitch), -math.sin(pitch), 0],
        [0, math.sin(pitch), math.cos(pitch), 0],
        [0, 0, 0, 1],
    ])
    return yaw_matrix @ pitch_matrix


def pixel_from_camera(intrinsic_matrix, camera_point) -> tuple[float, float]:
    """Pinhole projection of a camera-frame point, ignoring distortion."""
    intrinsic = _intrinsic(intrinsic_matrix)
    x, y, z = np.asarray(camera_point, dtype=np.float64).reshape(-1)[:3]
    if z == 0:
        raise ValueError("point lies in the camera plane")
    u = (intrinsic[0, 0] * x + intrinsic[0, 2] * z) / z
    v = (intrinsic[1, 1] * y + intrinsic[1, 2] * z) / z
    return float(u), float(v)


def pixel_from_robot(robot, world_to_camera_matrix, world_to_robot_matrix,
                     intrinsic_matrix) -> tuple[float, float]:
    """Pixel of a robot-frame point, going back through the world frame."""
    point = np.append(np.asarray(robot, dtype=np.float64).reshape(-1)[:3], 1.0)
    world = np.linalg.inv(np.asarray(world_to_robot_matrix, dtype=np.float64)) @ point
    camera = np.asarray(world_to_camera_matrix, dtype=np.float64) @ world
    return pixel_from_camera(intrinsic_matrix, camera)


def pitch_yaw_from_robot(target, bullet_speed: float, compensate_pitch: float,
                         compensate_yaw: float) -> tuple[float, float]:
    """Pitch and yaw in degrees to hit a robot-frame target (mm), allowing for gravity."""
    x, y, z = (float(value) for value in np.asarray(target, dtype=np.float64).reshape(-1)[:3])
    horizontal = math.hypot(x, z) * 1e-3
    a = -0.5 * Param.GRAVITY * horizontal ** 2 / bullet_speed ** 2
    b = horizontal
    c = a + y * 1e-3
    result = solve_quadratic(a, b, c)[1]
    pitch = math.degrees(math.atan(result)) + compensate_pitch
    yaw = math.degrees(-math.atan2(x, z)) + compensate_yaw
    return pitch, yaw