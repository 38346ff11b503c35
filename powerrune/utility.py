"""Shared enums, the frame record and small geometric helpers."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Sequence


class Direction(Enum):
    """Rotation direction of the rune."""

    UNKNOWN = auto()
    STABLE = auto()
    ANTI_CLOCKWISE = auto()
    CLOCKWISE = auto()


class Convexity(Enum):
    """Convexity of the angle curve being fitted."""

    UNKNOWN = auto()
    CONCAVE = auto()
    CONVEX = auto()


class Mode(Enum):
    """Small rune (constant speed) or big rune (sinusoidal speed)."""

    SMALL = auto()
    BIG = auto()


class Color(Enum):
    """Colour of the rune to detect."""

    RED = auto()
    BLUE = auto()


class Status(Enum):
    """Outcome of one detection pass."""

    SUCCESS = auto()
    ARROW_FAILURE = auto()
    ARMOR_FAILURE = auto()
    CENTER_FAILURE = auto()


@dataclass
class Frame:
    """One camera image with its timestamp (seconds) and gimbal attitude (degrees)."""

    image: Any
    time: float
    pitch: float
    yaw: float
    roll: float = 0.0


def point_distance(first: Sequence[float], second: Sequence[float]) -> float:
    """Euclidean distance between two 2-D or 3-D points."""
    if len(first) != len(second):
        raise ValueError("points must have the same dimension")
    return math.dist(first, second)


def point_line_distance(
    point: Sequence[float], line_start: Sequence[float], line_end: Sequence[float]
) -> float:
    """Distance from a point to the line through two points."""
    a = line_end[1] - line_start[1]
    b = line_start[0] - line_end[0]
    c = line_end[0] * line_start[1] - line_end[1] * line_start[0]
    return abs(a * point[0] + b * point[1] + c) / math.sqrt(a * a + b * b)


def point_direction_line_distance(point: Sequence[float], line: Sequence[float]) -> float:
    """Distance from a point to a line given as (vx, vy, x0, y0) with a unit direction."""
    vx, vy, x0, y0 = line
    dx = point[0] - x0
    dy = point[1] - y0
    return abs(dx * vy - dy * vx)


def solve_quadratic(a: float, b: float, c: float) -> tuple[float, float]:
    """Roots of a*x^2 + b*x + c = 0 as ((-b - sqrt(D)) / 2a, (-b + sqrt(D)) / 2a).

    A negative discriminant yields a pair of NaNs.
    """
    if a == 0:
        raise ValueError("leading coefficient must be non-zero")
    discriminant = b * b - 4 * a * c
    if discriminant < 0:
        return math.nan, math.nan
    root = math.sqrt(discriminant)
    return (-b - root) / (2 * a), (-b + root) / (2 * a)


def in_range(value: float, lower: float, upper: float) -> bool:
    """Whether value lies in the closed interval, whichever way the bounds are given."""
    if lower > upper:
        lower, upper = upper, lower
    return lower <= value <= upper