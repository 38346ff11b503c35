"""Image geometry primitives: contours, rectangles, moments, line fitting and masks."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence, TypeVar

import numpy as np
from scipy import ndimage
from scipy.spatial.transform import Rotation

T = TypeVar("T")

# Neighbour offsets (dx, dy) in clockwise order for an image whose y axis points down.
_DIRECTIONS = ((1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1))


@dataclass
class Rect:
    """Upright rectangle given by its top-left corner and size."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    def tl(self) -> tuple[float, float]:
        """Top-left corner."""
        return (self.x, self.y)


@dataclass
class RotatedRect:
    """Rectangle with a centre, a (width, height) size and an angle in degrees."""

    center: tuple[float, float] = (0.0, 0.0)
    size: tuple[float, float] = (0.0, 0.0)
    angle: float = 0.0

    def points(self) -> np.ndarray:
        """The four corners as a 4x2 array; p0->p1 spans the height, p1->p2 the width."""
        radians = math.radians(self.angle)
        b = math.cos(radians) * 0.5
        a = math.sin(radians) * 0.5
        cx, cy = self.center
        width, height = self.size
        p0 = (cx - a * height - b * width, cy + b * height - a * width)
        p1 = (cx + a * height - b * width, cy - b * height - a * width)
        p2 = (2 * cx - p0[0], 2 * cy - p0[1])
        p3 = (2 * cx - p1[0], 2 * cy - p1[1])
        return np.array([p0, p1, p2, p3], dtype=np.float64)


@dataclass
class Moments:
    """Spatial moments of a polygon up to the second order."""

    m00: float = 0.0
    m10: float = 0.0
    m01: float = 0.0
    m20: float = 0.0
    m11: float = 0.0
    m02: float = 0.0

    @property
    def centroid(self) -> tuple[float, float]:
        """Centre of mass; NaN coordinates for a polygon without area."""
        if self.m00 == 0:
            return (math.nan, math.nan)
        return (self.m10 / self.m00, self.m01 / self.m00)


def _as_points(points: Iterable[Sequence[float]] | np.ndarray, dtype=np.float64) -> np.ndarray:
    array = np.asarray(points, dtype=dtype)
    if array.size == 0:
        return array.reshape(0, 2)
    return array.reshape(-1, 2)


def _trace_boundary(grid: np.ndarray, start: tuple[int, int]) -> np.ndarray:
    """Follow the outer border of the component holding start, keeping only turning points."""
    x0, y0 = start

    def search(x: int, y: int, begin: int) -> int | None:
        for step in range(8):
            k = (begin + step) % 8
            dx, dy = _DIRECTIONS[k]
            if grid[y + 1 + dy, x + 1 + dx]:
                return k
        return None

    first = search(x0, y0, 4)
    if first is None:
        return np.array([[x0, y0]], dtype=np.int64)

    points: list[tuple[int, int]] = []
    steps: list[int] = []
    x, y, k = x0, y0, first
    while True:
        points.append((x, y))
        steps.append(k)
        dx, dy = _DIRECTIONS[k]
        x, y = x + dx, y + dy
        k = search(x, y, (k + 5) % 8)
        if (x, y) == (x0, y0) and k == first:
            break

    kept = [point for point, previous, current in zip(points, [steps[-1], *steps[:-1]], steps)
            if previous != current]
    return np.array(kept or points[:1], dtype=np.int64)


def find_contours(binary: np.ndarray) -> list[np.ndarray]:
    """Outer borders of the 8-connected non-zero regions, in raster order of their first pixel.

    Each contour is an Nx2 integer array of (x, y) points with straight runs compressed
    to their end points.
    """
    mask = np.asarray(binary) != 0
    if mask.ndim != 2:
        raise ValueError("binary image must be two-dimensional")
    labels, count = ndimage.label(mask, structure=np.ones((3, 3), dtype=bool))
    if count == 0:
        return []
    starts = []
    for index, region in enumerate(ndimage.find_objects(labels), start=1):
        if region is None:
            continue
        first_row = labels[region[0].start, region[1]] == index
        column = int(np.flatnonzero(first_row)[0])
        starts.append((region[0].start, region[1].start + column))
    starts.sort()
    grid = np.pad(mask, 1)
    return [_trace_boundary(grid, (column, row)) for row, column in starts]


def contour_area(contour: Iterable[Sequence[float]] | np.ndarray) -> float:
    """Unsigned area enclosed by a polygon."""
    pts = _as_points(contour)
    if len(pts) < 3:
        return 0.0
    x, y = pts[:, 0], pts[:, 1]
    return float(abs(np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y)) * 0.5)


def arc_length(contour: Iterable[Sequence[float]] | np.ndarray, closed: bool) -> float:
    """Length of a polyline, including the closing segment when closed."""
    pts = _as_points(contour)
    if len(pts) < 2:
        return 0.0
    if closed:
        pts = np.vstack([pts, pts[:1]])
    return float(np.sum(np.hypot(*np.diff(pts, axis=0).T)))


def _convex_hull(pts: np.ndarray) -> np.ndarray:
    unique = sorted({(float(x), float(y)) for x, y in pts})
    if len(unique) <= 2:
        return np.array(unique, dtype=np.float64)

    def cross(o, a, b) -> float:
        return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])

    lower: list[tuple[float, float]] = []
    for point in unique:
        while len(lower) >= 2 and cross(lower[-2], lower[-1], point) <= 0:
            lower.pop()
        lower.append(point)
    upper: list[tuple[float, float]] = []
    for point in reversed(unique):
        while len(upper) >= 2 and cross(upper[-2], upper[-1], point) <= 0:
            upper.pop()
        upper.append(point)
    return np.array(lower[:-1] + upper[:-1], dtype=np.float64)


def min_area_rect(points: Iterable[Sequence[float]] | np.ndarray) -> RotatedRect:
    """Smallest rotated rectangle holding all points; its angle lies in [-90, 0)."""
    pts = _as_points(points)
    if len(pts) == 0:
        raise ValueError("at least one point is required")
    hull = _convex_hull(pts)
    if len(hull) == 1:
        return RotatedRect((float(hull[0, 0]), float(hull[0, 1])), (0.0, 0.0), -90.0)

    best = None
    for start, end in zip(hull, np.roll(hull, -1, axis=0)):
        edge = end - start
        length = math.hypot(edge[0], edge[1])
        if length == 0:
            continue
        u = edge / length
        v = np.array([-u[1], u[0]])
        pu = hull @ u
        pv = hull @ v
        area = (pu.max() - pu.min()) * (pv.max() - pv.min())
        if best is None or area < best[0] - 1e-12:
            best = (area, u, v, pu.min(), pu.max(), pv.min(), pv.max())

    _, u, v, u_min, u_max, v_min, v_max = best
    center = u * (u_min + u_max) / 2 + v * (v_min + v_max) / 2
    extent_u = float(u_max - u_min)
    extent_v = float(v_max - v_min)
    angle_u = (math.degrees(math.atan2(u[1], u[0])) + 90.0) % 180.0 - 90.0
    if angle_u < 0:
        angle, width, height = angle_u, extent_u, extent_v
    else:
        angle, width, height = angle_u - 90.0, extent_v, extent_u
    return RotatedRect((float(center[0]), float(center[1])), (width, height), angle)


def bounding_rect(points: Iterable[Sequence[float]] | np.ndarray) -> Rect:
    """Smallest upright integer rectangle covering every point (inclusive of the far pixels)."""
    pts = _as_points(points)
    if len(pts) == 0:
        return Rect(0, 0, 0, 0)
    x_min, y_min = np.floor(pts.min(axis=0)).astype(int)
    x_max, y_max = np.floor(pts.max(axis=0)).astype(int)
    return Rect(int(x_min), int(y_min), int(x_max - x_min + 1), int(y_max - y_min + 1))


def moments(contour: Iterable[Sequence[float]] | np.ndarray) -> Moments:
    """Polygon moments computed with Green's theorem."""
    pts = _as_points(contour)
    if len(pts) == 0:
        return Moments()
    x1, y1 = pts[:, 0], pts[:, 1]
    x0, y0 = np.roll(x1, 1), np.roll(y1, 1)
    dxy = x0 * y1 - x1 * y0
    xs = x0 + x1
    ys = y0 + y1
    a00 = np.sum(dxy)
    a10 = np.sum(dxy * xs)
    a01 = np.sum(dxy * ys)
    a20 = np.sum(dxy * (x0 * xs + x1 * x1))
    a11 = np.sum(dxy * (x0 * (ys + y0) + x1 * (ys + y1)))
    a02 = np.sum(dxy * (y0 * ys + y1 * y1))
    sign = -1.0 if a00 < 0 else 1.0
    return Moments(
        m00=float(sign * a00 / 2),
        m10=float(sign * a10 / 6),
        m01=float(sign * a01 / 6),
        m20=float(sign * a20 / 12),
        m11=float(sign * a11 / 24),
        m02=float(sign * a02 / 12),
    )


def _segment_distances(pts: np.ndarray, start: np.ndarray, end: np.ndarray) -> np.ndarray:
    direction = end - start
    length = math.hypot(direction[0], direction[1])
    if length == 0:
        return np.hypot(*(pts - start).T)
    offset = pts - start
    return np.abs(offset[:, 0] * direction[1] - offset[:, 1] * direction[0]) / length


def _douglas_peucker(pts: np.ndarray, epsilon: float) -> list[int]:
    keep = {0, len(pts) - 1}
    stack = [(0, len(pts) - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue
        inner = pts[first + 1:last]
        distances = _segment_distances(inner, pts[first], pts[last])
        farthest = int(np.argmax(distances))
        if distances[farthest] > epsilon:
            index = first + 1 + farthest
            keep.add(index)
            stack.append((first, index))
            stack.append((index, last))
    return sorted(keep)


def approx_poly_dp(contour: Iterable[Sequence[float]] | np.ndarray, epsilon: float,
                   closed: bool) -> np.ndarray:
    """Simplify a polyline so that no dropped point lies farther than epsilon from it."""
    source = np.asarray(contour)
    pts = _as_points(source)
    dtype = source.dtype if source.size else np.float64
    count = len(pts)
    if count <= 2:
        return pts.astype(dtype)
    if not closed:
        return pts[_douglas_peucker(pts, epsilon)].astype(dtype)

    anchor = 0
    farthest = 0
    for iteration in range(3):
        distances = np.hypot(*(pts - pts[anchor]).T)
        farthest = int(np.argmax(distances))
        if distances[farthest] == 0:
            return pts[:1].astype(dtype)
        if iteration < 2:
            anchor, farthest = farthest, anchor
    rolled = np.roll(pts, -anchor, axis=0)
    split = (farthest - anchor) % count
    head = rolled[:split + 1]
    tail = np.vstack([rolled[split:], rolled[:1]])
    head_kept = head[_douglas_peucker(head, epsilon)]
    tail_kept = tail[_douglas_peucker(tail, epsilon)][1:-1]
    return np.vstack([head_kept, tail_kept]).astype(dtype)


def fit_line(points: Iterable[Sequence[float]] | np.ndarray) -> tuple[float, float, float, float]:
    """Least-squares line as (vx, vy, x0, y0): unit direction and a point on the line."""
    pts = _as_points(points)
    if len(pts) < 2:
        raise ValueError("at least two points are required")
    mean = pts.mean(axis=0)
    offset = pts - mean
    dx2 = float(np.mean(offset[:, 0] ** 2))
    dy2 = float(np.mean(offset[:, 1] ** 2))
    dxy = float(np.mean(offset[:, 0] * offset[:, 1]))
    theta = math.atan2(2 * dxy, dx2 - dy2) / 2
    return (math.cos(theta), math.sin(theta), float(mean[0]), float(mean[1]))


def partition(items: Iterable[T], predicate: Callable[[T, T], bool]) -> list[int]:
    """Label equivalence classes under predicate; labels are numbered by first appearance."""
    elements = list(items)
    parent = list(range(len(elements)))

    def root(index: int) -> int:
        while parent[index] != index:
            parent[index] = parent[parent[index]]
            index = parent[index]
        return index

    for i, first in enumerate(elements):
        for j, second in enumerate(elements):
            if i == j:
                continue
            root_i, root_j = root(i), root(j)
            if root_i != root_j and predicate(first, second):
                parent[root_j] = root_i

    numbering: dict[int, int] = {}
    return [numbering.setdefault(root(i), len(numbering)) for i in range(len(elements))]


def fill_convex_poly(mask: np.ndarray, points: Iterable[Sequence[float]] | np.ndarray,
                     value) -> np.ndarray:
    """Fill a convex polygon (boundary included) into mask in place and return the mask."""
    pts = np.rint(_as_points(points)).astype(np.int64)
    if len(pts) == 0:
        return mask
    if mask.ndim == 2 and isinstance(value, (tuple, list, np.ndarray)):
        value = value[0]
    rows, cols = mask.shape[:2]
    x_lo, y_lo = np.maximum(pts.min(axis=0), 0)
    x_hi = min(int(pts[:, 0].max()), cols - 1)
    y_hi = min(int(pts[:, 1].max()), rows - 1)
    if x_lo > x_hi or y_lo > y_hi:
        return mask
    ys, xs = np.mgrid[y_lo:y_hi + 1, x_lo:x_hi + 1]
    positive = np.ones(xs.shape, dtype=bool)
    negative = np.ones(xs.shape, dtype=bool)
    for start, end in zip(pts, np.roll(pts, -1, axis=0)):
        cross = (end[0] - start[0]) * (ys - start[1]) - (end[1] - start[1]) * (xs - start[0])
        positive &= cross >= 0
        negative &= cross <= 0
    mask[y_lo:y_hi + 1, x_lo:x_hi + 1][positive | negative] = value
    return mask


def rodrigues(rotation_vector) -> np.ndarray:
    """Rotation vector to 3x3 matrix, or a 3x3 rotation matrix back to its vector."""
    array = np.asarray(rotation_vector, dtype=np.float64)
    if array.shape == (3, 3):
        return Rotation.from_matrix(array).as_rotvec()
    vector = array.reshape(-1)
    if vector.size != 3:
        raise ValueError("rotation vector must have three components")
    return Rotation.from_rotvec(vector).as_matrix()