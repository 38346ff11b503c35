"""Rune features found in binary images: lightlines, the arrow, the armor and the centre R."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import numpy as np

from .param import Param
from .utility import (
    in_range,
    point_direction_line_distance,
    point_distance,
    point_line_distance,
)
from .vision import (
    Moments,
    Rect,
    RotatedRect,
    approx_poly_dp,
    arc_length,
    bounding_rect,
    contour_area,
    find_contours,
    fit_line,
    min_area_rect,
    moments,
    partition,
)

Point = tuple[float, float]


def _offset(*rois: Rect) -> Point:
    return (float(sum(roi.x for roi in rois)), float(sum(roi.y for roi in rois)))


def _shift(point: Sequence[float], offset: Sequence[float]) -> Point:
    return (float(point[0]) + float(offset[0]), float(point[1]) + float(offset[1]))


def _ratio(numerator: float, denominator: float) -> float:
    """Division that yields inf or NaN instead of raising on a zero denominator."""
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator)
    return numerator / denominator


def _by_theta(points: Iterable["PolarPoint"]) -> list["PolarPoint"]:
    return sorted(points, key=lambda point: point.theta)


def _by_rho(points: Iterable["PolarPoint"]) -> list["PolarPoint"]:
    return sorted(points, key=lambda point: point.rho, reverse=True)


@dataclass
class PolarPoint:
    """A point with its polar angle (degrees) and radius about some centre."""

    theta: float
    rho: float
    pt: Point


@dataclass
class Lightline:
    """A bright contour together with its bounding rotated rectangle."""

    contour: np.ndarray
    contour_area: float
    area: float
    rotated_rect: RotatedRect
    tl: Point
    tr: Point
    bl: Point
    br: Point
    center: Point
    length: float
    width: float
    angle: float
    aspect_ratio: float

    @property
    def x(self) -> float:
        return self.center[0]

    @property
    def y(self) -> float:
        return self.center[1]

    @classmethod
    def from_contour(cls, contour, *rois: Rect) -> "Lightline":
        """Measure a contour; corners and centre are shifted by the top-left of every roi."""
        points = np.asarray(contour).reshape(-1, 2)
        rect = min_area_rect(points)
        width, length = sorted(rect.size)
        corners = rect.points()
        if rect.size[0] > rect.size[1]:
            tl, tr, bl, br = corners[1], corners[2], corners[0], corners[3]
        else:
            tl, tr, bl, br = corners[0], corners[1], corners[3], corners[2]
        offset = _offset(*rois)
        return cls(
            contour=points,
            contour_area=contour_area(points),
            area=rect.size[0] * rect.size[1],
            rotated_rect=rect,
            tl=_shift(tl, offset),
            tr=_shift(tr, offset),
            bl=_shift(bl, offset),
            br=_shift(br, offset),
            center=_shift(rect.center, offset),
            length=length,
            width=width,
            angle=rect.angle,
            aspect_ratio=_ratio(length, width),
        )


@dataclass
class Armor:
    """The lit armor plate, described by its four corners and its centre."""

    top: Point = (0.0, 0.0)
    right: Point = (0.0, 0.0)
    inner: Point = (0.0, 0.0)
    left: Point = (0.0, 0.0)
    center: Point = (0.0, 0.0)
    points: list[PolarPoint] = field(default_factory=list)
    radius: float = 0.0

    @classmethod
    def from_points(cls, points: Sequence[PolarPoint], center: Sequence[float]) -> "Armor":
        """Corners in order top, right, inner, left; the radius is top-to-centre."""
        points = list(points)
        if len(points) < 4:
            raise ValueError("an armor needs four corner points")
        center = (float(center[0]), float(center[1]))
        top = points[0].pt
        return cls(
            top=top,
            right=points[1].pt,
            inner=points[2].pt,
            left=points[3].pt,
            center=center,
            points=points,
            radius=point_distance(top, center),
        )


@dataclass
class CenterR:
    """The R mark at the rotation centre of the rune."""

    lightline: Lightline | None = None
    center: Point = (0.0, 0.0)
    bounding_rect: Rect = field(default_factory=Rect)

    @property
    def x(self) -> float:
        return self.center[0]

    @property
    def y(self) -> float:
        return self.center[1]

    @classmethod
    def from_lightline(cls, lightline: Lightline) -> "CenterR":
        return cls(
            lightline=lightline,
            center=lightline.center,
            bounding_rect=bounding_rect(lightline.contour),
        )


@dataclass
class Arrow:
    """The arrow pointing from the centre R towards the lit armor."""

    contour: np.ndarray = field(default_factory=lambda: np.zeros((0, 2), dtype=np.int64))
    rotated_rect: RotatedRect = field(default_factory=RotatedRect)
    length: float = 0.0
    width: float = 0.0
    center: Point = (0.0, 0.0)
    angle: float = 0.0
    aspect_ratio: float = 0.0
    area: float = 0.0
    fill_ratio: float = 0.0

    @classmethod
    def from_lightlines(cls, lightlines: Sequence[Lightline], offset: Sequence[float]) -> "Arrow":
        """Merge lightlines into one arrow, dropping points far from their common line."""
        lightlines = list(lightlines)
        if not lightlines:
            raise ValueError("an arrow needs at least one lightline")
        points = np.vstack([lightline.contour for lightline in lightlines]).astype(np.float64)
        fill_area = sum(lightline.contour_area for lightline in lightlines)
        threshold = sum(lightline.length for lightline in lightlines) / len(lightlines)
        line = fit_line(points)
        kept = [point for point in points if point_direction_line_distance(point, line) < threshold]
        if not kept:
            raise ValueError("no arrow point lies near the fitted line")
        contour = np.rint(np.array(kept)).astype(np.int64)
        rect = min_area_rect(contour)
        width, length = rect.size
        if length < width:
            angle = rect.angle
            length, width = width, length
        else:
            angle = rect.angle + 90
        area = length * width
        return cls(
            contour=contour,
            rotated_rect=rect,
            length=length,
            width=width,
            center=_shift(rect.center, offset),
            angle=angle,
            aspect_ratio=_ratio(length, width),
            area=area,
            fill_ratio=_ratio(fill_area, area),
        )


@dataclass
class ArmorContour:
    """A candidate armor outline cut from a local roi."""

    contour: np.ndarray
    local_roi: Rect
    global_roi: Rect
    contour_area: float
    rotated_rect: RotatedRect
    length: float
    width: float
    angle: float
    aspect_ratio: float
    moments: Moments
    center: Point
    polar_points: list[PolarPoint] = field(default_factory=list)

    @classmethod
    def from_contour(cls, contour, local_roi: Rect, global_roi: Rect) -> "ArmorContour":
        points = np.asarray(contour).reshape(-1, 2)
        rect = min_area_rect(points)
        width, length = sorted(rect.size)
        shape_moments = moments(points)
        return cls(
            contour=points,
            local_roi=local_roi,
            global_roi=global_roi,
            contour_area=contour_area(points),
            rotated_rect=rect,
            length=length,
            width=width,
            angle=rect.angle,
            aspect_ratio=_ratio(length, width),
            moments=shape_moments,
            center=shape_moments.centroid,
        )

    def to_image_coordinates(self) -> None:
        """Shift the polar points and the centre by both roi offsets."""
        offset = _offset(self.local_roi, self.global_roi)
        for point in self.polar_points:
            point.pt = _shift(point.pt, offset)
        self.center = _shift(self.center, offset)


def find_arrow_lightlines(binary: np.ndarray, roi: Rect, param: Param) -> list[Lightline]:
    """Contours small enough and squat enough to be pieces of the arrow."""
    lightlines = []
    for contour in find_contours(binary):
        lightline = Lightline.from_contour(contour, roi)
        if not in_range(lightline.area, param.min_arrow_lightline_area,
                        param.max_arrow_lightline_area):
            continue
        if lightline.aspect_ratio > param.max_arrow_lightline_aspect_ratio:
            continue
        lightlines.append(lightline)
    return lightlines


def same_arrow(first: Lightline, second: Lightline, param: Param) -> bool:
    """Whether two lightlines are close and alike enough to belong to one arrow."""
    limit = param.max_same_arrow_area_ratio
    if not in_range(_ratio(first.area, second.area), _ratio(1.0, limit), limit):
        return False
    distance = point_distance(first.rotated_rect.center, second.rotated_rect.center)
    return distance <= 1.2 * (first.width + second.width)


def find_arrow(lightlines: Sequence[Lightline], roi: Rect, param: Param) -> Arrow | None:
    """Group lightlines, take the largest group and accept it if it looks like an arrow."""
    lightlines = list(lightlines)
    labels = partition(lightlines, lambda a, b: same_arrow(a, b, param))
    if not labels:
        return None
    counts: dict[int, int] = {}
    for label in labels:
        counts[label] = counts.get(label, 0) + 1
    best_label, best_count = max(counts.items(), key=lambda item: item[1])
    if not in_range(best_count, param.min_arrow_lightline_num, param.max_arrow_lightline_num):
        return None
    members = [line for line, label in zip(lightlines, labels) if label == best_label]
    try:
        arrow = Arrow.from_lightlines(members, roi.tl())
    except ValueError:
        return None
    if not in_range(arrow.aspect_ratio, param.min_arrow_aspect_ratio, param.max_arrow_aspect_ratio):
        return None
    if arrow.area > param.max_arrow_area:
        return None
    return arrow


def angle_between_lightlines(first: Lightline, second: Lightline) -> float:
    """Angle in degrees between the long sides of two lightlines."""
    vectors = []
    for lightline in (first, second):
        corners = lightline.rotated_rect.points()
        origin = corners[0]
        for corner in corners:
            if abs(point_distance(corner, origin) - lightline.length) < 1e-3:
                vectors.append(corner - origin)
                break
        else:
            raise ValueError("no side of the lightline matches its length")
    (ax, ay), (bx, by) = vectors
    magnitude = math.hypot(ax, ay) * math.hypot(bx, by)
    if magnitude == 0:
        return math.nan
    cosine = max(-1.0, min(1.0, (ax * bx + ay * by) / magnitude))
    return math.degrees(math.acos(cosine))


def same_armor(first: Lightline, second: Lightline, param: Param) -> bool:
    """Whether two lightlines are alike, spaced and parallel enough for one armor."""
    limit = param.max_same_armor_area_ratio
    if not in_range(_ratio(first.contour_area, second.contour_area), _ratio(1.0, limit), limit):
        return False
    distance = point_distance(first.center, second.center)
    if distance < param.min_same_armor_distance or distance > param.max_same_armor_distance:
        return False
    angle = angle_between_lightlines(first, second)
    return not 10 < angle < 170


def find_armor_lightlines(binary: np.ndarray, global_roi: Rect, local_roi: Rect,
                          param: Param) -> list[Lightline]:
    """Contours that fit the armor frame limits; an empty list means none was found."""
    lightlines = []
    for contour in find_contours(binary):
        lightline = Lightline.from_contour(contour, global_roi, local_roi)
        if not in_range(lightline.area, param.min_armor_lightline_area,
                        param.max_armor_lightline_area):
            continue
        if not in_range(lightline.contour_area, param.min_armor_lightline_contour_area,
                        param.max_armor_lightline_contour_area):
            continue
        if not in_range(lightline.aspect_ratio, param.min_armor_lightline_aspect_ratio,
                        param.max_armor_lightline_aspect_ratio):
            continue
        lightlines.append(lightline)
    return lightlines


def find_armor_contours(binary: np.ndarray, global_roi: Rect, local_roi: Rect) -> list[ArmorContour]:
    """Square-ish contours of armor size, largest first."""
    candidates = []
    for contour in find_contours(binary):
        candidate = ArmorContour.from_contour(contour, local_roi, global_roi)
        if not in_range(candidate.contour_area, Param.ARMOR_CONTOUR_AREA_MIN,
                        Param.ARMOR_CONTOUR_AREA_MAX):
            continue
        if not in_range(candidate.aspect_ratio, Param.AREA_RATIO_MIN, Param.AREA_RATIO_MAX):
            continue
        candidates.append(candidate)
    candidates.sort(key=lambda candidate: candidate.contour_area, reverse=True)
    return candidates


def match_points(points: Iterable[PolarPoint]) -> float | None:
    """Check that neighbouring points (by angle) are 80 to 100 degrees apart.

    Returns the ratio of the tracked largest to smallest gap, or None on a mismatch.
    A gap that lowers the running minimum is not considered for the maximum.
    """
    ordered = _by_theta(points)
    if not ordered:
        raise ValueError("at least one point is required")
    smallest, largest = 2000.0, -1.0
    for current, following in zip(ordered, ordered[1:]):
        gap = abs(current.theta - following.theta)
        if gap < smallest:
            smallest = gap
        elif gap > largest:
            largest = gap
        if not in_range(gap, Param.POINT_POINT_THETA_THRESHOLD_MIN,
                        Param.POINT_POINT_THETA_THRESHOLD_MAX):
            return None
    return largest / smallest


def get_combinations(groups: Sequence[Sequence[PolarPoint]]) -> list[list[PolarPoint]]:
    """Every way of taking one point from each group, the last group varying fastest."""
    return [list(combination) for combination in itertools.product(*groups)]


def _regroup(candidate: ArmorContour) -> None:
    """Cluster the polygon points into four corners and keep the most regular choice."""
    limit = math.sqrt(candidate.contour_area) / 2.2
    points = candidate.polar_points
    labels = partition(points, lambda a, b: point_distance(a.pt, b.pt) < limit)
    if not labels or max(labels) != 3:
        return
    groups: list[list[PolarPoint]] = [[] for _ in range(4)]
    for label, point in zip(labels, points):
        groups[label].append(point)
    groups = [_by_rho(group) for group in groups]
    best: list[PolarPoint] | None = None
    best_ratio = 2000.0
    for combination in get_combinations(groups):
        ordered = _by_theta(combination)
        ratio = match_points(ordered)
        if ratio is not None and ratio < best_ratio:
            best_ratio, best = ratio, ordered
    if best is not None:
        candidate.polar_points = best


def find_armor(armor_contours: Iterable[ArmorContour], arrow: Arrow) -> Armor | None:
    """First candidate with four right-angled corners lying at a plausible arrow distance."""
    for candidate in armor_contours:
        epsilon = 0.01 * arc_length(candidate.contour, True)
        approx = approx_poly_dp(candidate.contour, epsilon, True)
        cx, cy = candidate.center
        polar = []
        for x, y in approx:
            dx, dy = float(x) - cx, float(y) - cy
            polar.append(PolarPoint(math.degrees(math.atan2(dy, dx)), math.hypot(dx, dy),
                                    (float(x), float(y))))
        candidate.polar_points = _by_rho(polar)

        corners = candidate.polar_points[:4]
        crowded = len(corners) < 4 or any(
            point_distance(a.pt, b.pt) < 30 for a, b in zip(corners, corners[1:])
        )
        if crowded or match_points(corners) is None:
            _regroup(candidate)
            continue

        candidate.polar_points = _by_theta(corners)
        candidate.to_image_coordinates()
        distance = point_distance(candidate.center, arrow.center)
        if in_range(distance, arrow.length * 0.33, arrow.length * 3.0):
            return Armor.from_points(candidate.polar_points, candidate.center)
    return None


def find_center_lightlines(binary: np.ndarray, global_roi: Rect, local_roi: Rect,
                           param: Param) -> list[Lightline]:
    """Contours that could be the centre R; an empty list means none was found."""
    lightlines = []
    for contour in find_contours(binary):
        lightline = Lightline.from_contour(contour, global_roi, local_roi)
        if not in_range(lightline.area, param.min_center_area, param.max_center_area):
            continue
        if lightline.aspect_ratio > param.max_center_aspect_ratio:
            continue
        lightlines.append(lightline)
    return lightlines


def find_center_r(lightlines: Iterable[Lightline], arrow: Arrow, armor: Armor) -> CenterR | None:
    """The largest lightline at rune-radius distance from the armor and near the arrow axis."""
    expected = armor.radius * Param.POWER_RUNE_RADIUS * 1.13 / Param.LEAF_RADIUS
    ratio = 0.85
    lowest, highest = expected * ratio, expected / ratio
    max_line_distance = 0.75 * arrow.length
    candidates = []
    for lightline in lightlines:
        farthest = max((point_distance(point.pt, lightline.center) for point in armor.points),
                       default=-1.0)
        try:
            line_distance = point_line_distance(lightline.center, armor.center, arrow.center)
        except ZeroDivisionError:
            line_distance = math.nan
        if not in_range(farthest, lowest, highest):
            continue
        if line_distance > max_line_distance:
            continue
        candidates.append(lightline)
    if not candidates:
        return None
    return CenterR.from_lightline(max(candidates, key=lambda lightline: lightline.area))


def reset_roi(rect: Rect, rows: float, cols: float) -> Rect:
    """Clamp a roi into an image of rows x cols (truncated to whole pixels)."""
    rows, cols = int(rows), int(cols)
    x = 0.0 if rect.x < 0 else float(cols - 1) if rect.x >= cols else rect.x
    y = 0.0 if rect.y < 0 else float(rows - 1) if rect.y >= rows else rect.y
    width = cols - x - 1 if x + rect.width >= cols else rect.width
    height = rows - y - 1 if y + rect.height >= rows else rect.height
    return Rect(x, y, width if width >= 0 else 0.0, height if height >= 0 else 0.0)


def in_rect(point: Sequence[float], rect: Rect) -> bool:
    """Whether a point lies inside a rectangle, borders included."""
    return (rect.x <= point[0] <= rect.x + rect.width
            and rect.y <= point[1] <= rect.y + rect.height)