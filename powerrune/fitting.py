"""Rotation models of the rune and fitting of the big rune's angle curve."""

from __future__ import annotations

import math
import random
from typing import Sequence

import numpy as np
from scipy.optimize import least_squares

from .utility import Convexity

Params = tuple[float, float, float, float, float]

_DEFAULT_PARAMS: Params = (0.470, 1.942, 0.0, 1.178, 0.0)
_SOFT_L1_SCALE = 0.1
_HUBER_SCALE = 0.1


def angle_big(time: float, params: Sequence[float]) -> float:
    """Big rune angle since first detection: -a*cos(w*(t + t0)) + b*t + c."""
    a, w, t0, b, c = params
    return -a * math.cos(w * (time + t0)) + b * time + c


def rotation_angle_small(distance: float, bullet_speed: float, rotation_speed: float,
                         compensate: float) -> float:
    """Small rune rotation during bullet flight plus a compensation in milliseconds."""
    return rotation_speed * (distance / bullet_speed + compensate / 1e3)


def rotation_angle_big(distance: float, bullet_speed: float, params: Sequence[float],
                       compensate: float, frame_time: float) -> float:
    """Big rune rotation from the frame time (ms) until the bullet arrives."""
    predict_time = distance / bullet_speed + (frame_time + compensate) * 1e-3
    current_time = frame_time * 1e-3
    return angle_big(predict_time, params) - angle_big(current_time, params)


def get_convexity(data: Sequence[tuple[float, float]]) -> Convexity:
    """Whether most samples lie below (concave) or above (convex) the end-to-end chord."""
    points = list(data)
    if not points:
        raise ValueError("at least one sample is required")
    (t_first, y_first), (t_last, y_last) = points[0], points[-1]
    span = t_last - t_first
    if span == 0:
        raise ValueError("samples must span a time interval")
    slope = (y_last - y_first) / span
    offset = (y_first * t_last - y_last * t_first) / span
    concave = sum(1 for t, y in points if slope * t + offset > y)
    convex = len(points) - concave
    standard = int(len(points) * 0.75)
    if concave > standard:
        return Convexity.CONCAVE
    if convex > standard:
        return Convexity.CONVEX
    return Convexity.UNKNOWN


def _soft_l1(z: np.ndarray) -> np.ndarray:
    b = _SOFT_L1_SCALE ** 2
    u = 1 + z / b
    root = np.sqrt(u)
    return np.vstack([2 * b * (root - 1), 1 / root, -0.5 / (b * u * root)])


def _huber(z: np.ndarray, weights: np.ndarray) -> np.ndarray:
    a = _HUBER_SCALE
    b = a * a
    inside = z <= b
    safe = np.maximum(z, b)
    root = np.sqrt(safe)
    rho = np.vstack([
        np.where(inside, z, 2 * a * root - b),
        np.where(inside, 1.0, a / root),
        np.where(inside, 0.0, -a / (2 * safe * root)),
    ])
    return rho * weights


def least_square_estimate(points: Sequence[tuple[float, float]], params: Sequence[float],
                          convexity: Convexity) -> Params:
    """Robust fit of the big rune model, pulled towards the starting a, w and b.

    With fewer than 100 samples and a known convexity the phase is bounded; a start
    outside those bounds is infeasible and is returned unchanged.
    """
    start = np.asarray(params, dtype=np.float64).reshape(-1)
    if start.size != 5:
        raise ValueError("five parameters are required")
    data = np.asarray(list(points), dtype=np.float64).reshape(-1, 2)
    times, angles = data[:, 0], data[:, 1]
    count = len(data)

    lower = np.full(5, -np.inf)
    upper = np.full(5, np.inf)
    if count < 100:
        if convexity is Convexity.CONCAVE:
            lower[2], upper[2] = -4.0, -2.8
        elif convexity is Convexity.CONVEX:
            lower[2], upper[2] = -2.3, -1.1
        weights = np.array([10.0, 1.0, 1.0])
    else:
        weights = np.array([60.0, 50.0, 50.0])
    if not np.all((lower <= start) & (start <= upper)):
        return tuple(float(value) for value in start)

    prior_index = [0, 1, 3]
    truths = start[prior_index]
    prior_jacobian = np.eye(5)[prior_index]

    def residuals(x: np.ndarray) -> np.ndarray:
        a, w, t0, b, c = x
        model = -a * np.cos(w * (times + t0)) + b * times + c
        return np.concatenate([model - angles, x[prior_index] - truths])

    def jacobian(x: np.ndarray) -> np.ndarray:
        a, w, t0, _, _ = x
        phase = w * (times + t0)
        cos, sin = np.cos(phase), np.sin(phase)
        data_rows = np.column_stack([
            -cos, a * (times + t0) * sin, a * w * sin, times, np.ones(count),
        ])
        return np.vstack([data_rows, prior_jacobian])

    def loss(z: np.ndarray) -> np.ndarray:
        return np.hstack([_soft_l1(z[:count]), _huber(z[count:], weights)])

    result = least_squares(residuals, start, jac=jacobian, bounds=(lower, upper),
                           loss=loss, method="trf", max_nfev=100)
    return tuple(float(value) for value in result.x)


def ransac_fitting(data: Sequence[tuple[float, float]], convexity: Convexity) -> Params:
    """Repeated robust fits; with over 800 samples the worst 5% are set aside each round."""
    samples = [(float(t), float(y)) for t, y in data]
    inliers = list(samples)
    outliers: list[tuple[float, float]] = []
    iterations = 200 if len(samples) < 400 else 20
    params: Params = _DEFAULT_PARAMS

    def error(point: tuple[float, float]) -> float:
        return abs(point[1] - angle_big(point[0], params))

    for _ in range(iterations):
        if len(inliers) > 400:
            head = inliers[:-100]
            random.shuffle(head)
            inliers[:-100] = head
            sample = inliers[-200:]
        else:
            sample = list(inliers)
        params = least_square_estimate(sample, params, convexity)
        if len(samples) > 800:
            errors = sorted(error(point) for point in inliers)
            threshold = errors[int(len(errors) * 0.95)]
            head, tail = inliers[:-100], inliers[-100:]
            rejected = [point for point in head if error(point) > threshold]
            kept = [point for point in head if error(point) <= threshold]
            returning = [point for point in outliers if error(point) < threshold]
            outliers = [point for point in outliers if error(point) >= threshold] + rejected
            inliers = list(reversed(returning)) + kept + tail
    return params