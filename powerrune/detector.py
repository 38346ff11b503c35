"""Rune detection: arrow, armor and centre R found in one camera frame."""

from __future__ import annotations

import math
import time
from typing import Sequence

import numpy as np

from .features import (
    Armor,
    Arrow,
    CenterR,
    find_armor,
    find_armor_contours,
    find_arrow,
    find_arrow_lightlines,
    find_center_lightlines,
    find_center_r,
    in_rect,
    reset_roi,
)
from .param import SHOW_IMAGE, Param
from .utility import Color, Frame, Status, point_distance
from .vision import Rect, RotatedRect, fill_convex_poly

Point = tuple[float, float]
ColorValue = tuple[int, int, int]


def _crop(image: np.ndarray, rect: Rect) -> np.ndarray:
    """Sub-image covered by a roi whose corners are rounded to whole pixels."""
    x, y = round(rect.x), round(rect.y)
    width, height = round(rect.width), round(rect.height)
    return image[max(y, 0):max(y + height, 0), max(x, 0):max(x + width, 0)]


def _paint(region: np.ndarray, mask: np.ndarray, color: Sequence[int]) -> None:
    if region.ndim == 2:
        region[mask] = color[0]
    else:
        region[mask] = np.asarray(color[:region.shape[2]], dtype=region.dtype)


def _draw_line(image: np.ndarray, start: Sequence[float], end: Sequence[float],
               color: Sequence[int], thickness: int) -> None:
    rows, cols = image.shape[:2]
    radius = max(thickness / 2, math.sqrt(0.5))
    x0, y0 = float(start[0]), float(start[1])
    x1, y1 = float(end[0]), float(end[1])
    lo_x = max(int(math.floor(min(x0, x1) - radius)), 0)
    hi_x = min(int(math.ceil(max(x0, x1) + radius)), cols - 1)
    lo_y = max(int(math.floor(min(y0, y1) - radius)), 0)
    hi_y = min(int(math.ceil(max(y0, y1) + radius)), rows - 1)
    if lo_x > hi_x or lo_y > hi_y:
        return
    ys, xs = np.mgrid[lo_y:hi_y + 1, lo_x:hi_x + 1]
    dx, dy = x1 - x0, y1 - y0
    length2 = dx * dx + dy * dy
    if length2 == 0:
        t = np.zeros(xs.shape)
    else:
        t = np.clip(((xs - x0) * dx + (ys - y0) * dy) / length2, 0.0, 1.0)
    distance = np.hypot(xs - (x0 + t * dx), ys - (y0 + t * dy))
    _paint(image[lo_y:hi_y + 1, lo_x:hi_x + 1], distance <= radius, color)


def _draw_circle(image: np.ndarray, center: Sequence[float], radius: int,
                 color: Sequence[int], thickness: int) -> None:
    rows, cols = image.shape[:2]
    cx, cy = round(center[0]), round(center[1])
    half = max(thickness / 2, 0.5)
    reach = radius + (0.5 if thickness < 0 else half)
    lo_x, hi_x = max(int(cx - reach), 0), min(int(math.ceil(cx + reach)), cols - 1)
    lo_y, hi_y = max(int(cy - reach), 0), min(int(math.ceil(cy + reach)), rows - 1)
    if lo_x > hi_x or lo_y > hi_y:
        return
    ys, xs = np.mgrid[lo_y:hi_y + 1, lo_x:hi_x + 1]
    distance = np.hypot(xs - cx, ys - cy)
    mask = distance <= radius + 0.5 if thickness < 0 else np.abs(distance - radius) <= half
    _paint(image[lo_y:hi_y + 1, lo_x:hi_x + 1], mask, color)


class Detector:
    """Finds the arrow, the lit armor and the centre R, keeping a region of interest between frames."""

    def __init__(self, param: Param):
        self.param = param
        width, height = float(param.image_width), float(param.image_height)
        self.local_mask = np.zeros((int(height), int(width)), dtype=np.uint8)
        self.global_roi = Rect(0.0, 0.0, width, height)
        self.armor_roi = Rect()
        self.center_roi = Rect()
        self.arrow = Arrow()
        self.armor = Armor()
        self.center_r = CenterR()
        self.status: Status | None = None
        self.light_armor_num = 0
        self.start_time = time.monotonic()
        self.frame_time = self.start_time
        self.overlay: np.ndarray | None = None
        self._image_arrow = np.zeros((0, 0), dtype=np.uint8)
        self._image_armor = np.zeros((0, 0), dtype=np.uint8)
        self._image_center = np.zeros((0, 0), dtype=np.uint8)

    def detect(self, frame: Frame) -> bool:
        """Run the full detection on a frame; False means some feature was not found."""
        self._preprocess(frame)
        if not self._detect_arrow():
            return self._fail(frame, Status.ARROW_FAILURE)
        self._set_local_roi()
        swapped = False
        while True:
            if not self._detect_armor():
                return self._fail(frame, Status.ARMOR_FAILURE)
            if self._detect_center_r():
                break
            if swapped:
                return self._fail(frame, Status.CENTER_FAILURE)
            self.armor_roi, self.center_roi = self.center_roi, self.armor_roi
            swapped = True
        self._set_armor()
        self._set_global_roi()
        self.status = Status.SUCCESS
        if self.overlay is not None:
            colors = (Param.WHITE, Param.PURPLE, Param.GREEN, Param.BLUE)
            for point, color in zip(self.camera_points(), colors):
                _draw_circle(self.overlay, (int(point[0]), int(point[1])), 2, color, -1)
        return True

    def camera_points(self) -> list[Point]:
        """Pixel points: armor top, right, inner and left corners, then the centre R."""
        return [self.armor.top, self.armor.right, self.armor.inner, self.armor.left,
                self.center_r.center]

    def draw_target_point(self, point: Sequence[float]) -> None:
        """Mark the predicted hit point on the overlay image."""
        if self.overlay is None:
            raise ValueError("no frame has been shown to draw on")
        _draw_circle(self.overlay, point, 4, self.param.draw_color, 2)

    def _fail(self, frame: Frame, status: Status) -> bool:
        self.status = status
        rows, cols = np.asarray(frame.image).shape[:2]
        self.global_roi = Rect(0.0, 0.0, float(cols), float(rows))
        self.light_armor_num = 0
        return False

    def _preprocess(self, frame: Frame) -> None:
        image = np.asarray(frame.image)
        if image.ndim != 3 or image.shape[2] < 3:
            raise ValueError("frame image must have three colour channels")
        self.overlay = image.copy() if SHOW_IMAGE != 0 else None
        self.frame_time = frame.time
        blue = _crop(image[..., 0], self.global_roi).astype(np.int16)
        red = _crop(image[..., 2], self.global_roi).astype(np.int16)
        difference = red - blue if self.param.color is Color.RED else blue - red
        gray = np.clip(difference, 0, 255).astype(np.uint8)
        self._image_arrow = np.where(gray > self.param.arrow_brightness_threshold,
                                     Param.MAX_BRIGHTNESS, 0).astype(np.uint8)
        self._image_armor = np.where(gray > self.param.armor_brightness_threshold,
                                     Param.MAX_BRIGHTNESS, 0).astype(np.uint8)
        self.local_mask = np.zeros_like(self._image_armor)

    def _detect_arrow(self) -> bool:
        lightlines = find_arrow_lightlines(self._image_arrow, self.global_roi, self.param)
        if SHOW_IMAGE >= 2:
            for lightline in lightlines:
                self._draw_polygon(lightline.rotated_rect.points(), Param.GREEN)
        arrow = find_arrow(lightlines, self.global_roi, self.param)
        if arrow is None:
            return False
        self.arrow = arrow
        if SHOW_IMAGE >= 1:
            self._draw_polygon(arrow.rotated_rect.points(), Param.WHITE, 2)
        return True

    def _set_local_roi(self) -> None:
        distance = self.arrow.length * self.param.local_roi_distance_ratio
        width = float(self.param.local_roi_width)
        radians = math.radians(self.arrow.angle)
        dx, dy = distance * math.cos(radians), distance * math.sin(radians)
        gx, gy = self.global_roi.tl()
        cx, cy = self.arrow.center
        up = (cx - gx + dx, cy - gy + dy)
        down = (cx - dx - gx, cy - gy - dy)
        side = float(int(width))
        for center in (up, down):
            corners = RotatedRect(center, (side, side), self.arrow.angle).points()
            corners[:, 0] = np.clip(corners[:, 0], 0, self.global_roi.width)
            corners[:, 1] = np.clip(corners[:, 1], 0, self.global_roi.height)
            fill_convex_poly(self.local_mask, corners, 255)
        rows, cols = self.global_roi.height, self.global_roi.width
        self.armor_roi = reset_roi(
            Rect(up[0] - width * 0.5, up[1] - width * 0.5, width, width), rows, cols)
        self.center_roi = reset_roi(
            Rect(down[0] - width * 0.5, down[1] - width * 0.5, width, width), rows, cols)
        center_global = Rect(self.center_roi.x + gx, self.center_roi.y + gy,
                             self.center_roi.width, self.center_roi.height)
        if not in_rect(self.center_r.center, center_global):
            self.armor_roi, self.center_roi = self.center_roi, self.armor_roi
        if SHOW_IMAGE >= 2:
            self._draw_rect(self.armor_roi, Param.YELLOW)
            self._draw_rect(self.center_roi, self.param.draw_color)

    def _masked(self) -> np.ndarray:
        return np.bitwise_and(self._image_armor, self.local_mask)

    def _detect_armor(self) -> bool:
        masked = self._masked()
        for attempt in range(2):
            image = _crop(masked, self.armor_roi)
            candidates = (find_armor_contours(image, self.global_roi, self.armor_roi)
                          if image.size else [])
            armor = find_armor(candidates, self.arrow) if candidates else None
            if armor is not None:
                self.armor = armor
                return True
            if attempt == 0:
                self.armor_roi, self.center_roi = self.center_roi, self.armor_roi
        return False

    def _detect_center_r(self) -> bool:
        self._image_center = _crop(self._masked(), self.center_roi)
        if not self._image_center.size:
            return False
        lightlines = find_center_lightlines(self._image_center, self.global_roi,
                                            self.center_roi, self.param)
        if not lightlines:
            return False
        if SHOW_IMAGE >= 2:
            for lightline in lightlines:
                self._draw_polygon(lightline.rotated_rect.points(), Param.YELLOW, 1,
                                   self.center_roi)
        center = find_center_r(lightlines, self.arrow, self.armor)
        if center is None:
            return False
        self.center_r = center
        if SHOW_IMAGE >= 1:
            self._draw_rect(center.bounding_rect, Param.WHITE, 2, self.center_roi)
        return True

    def _set_armor(self) -> None:
        """Reorder the armor corners so that the one farthest from the centre R is the top."""
        armor = self.armor
        center = self.center_r.center
        if center[1] < armor.center[1] - self.param.armor_center_vertical_distance_threshold:
            armor.top, armor.inner = armor.inner, armor.top
            armor.left, armor.right = armor.right, armor.left
        farthest = max(point_distance(center, point.pt) for point in armor.points)
        for _ in range(4):
            if point_distance(center, armor.top) == farthest:
                break
            armor.top, armor.right, armor.inner, armor.left = (
                armor.left, armor.top, armor.right, armor.inner)

    def _set_global_roi(self) -> None:
        width = (self.param.global_roi_length_ratio * 2
                 * point_distance(self.armor.center, self.center_r.center))
        cx, cy = self.center_r.center
        self.global_roi = reset_roi(Rect(cx - 0.5 * width, cy - 0.5 * width, width, width),
                                    self.param.image_height, self.param.image_width)
        if SHOW_IMAGE >= 2 and self.overlay is not None:
            roi = self.global_roi
            self._outline(roi.x, roi.y, roi.width, roi.height, self.param.draw_color, 1)

    def _draw_polygon(self, points, color: ColorValue, thickness: int = 1,
                      local_roi: Rect | None = None) -> None:
        if self.overlay is None:
            return
        ox = self.global_roi.x + (local_roi.x if local_roi else 0.0)
        oy = self.global_roi.y + (local_roi.y if local_roi else 0.0)
        shifted = [(float(x) + ox, float(y) + oy) for x, y in np.asarray(points).reshape(-1, 2)]
        for start, end in zip(shifted, shifted[1:] + shifted[:1]):
            _draw_line(self.overlay, start, end, color, thickness)

    def _draw_rect(self, rect: Rect, color: ColorValue, thickness: int = 1,
                   local_roi: Rect | None = None) -> None:
        if self.overlay is None:
            return
        x = rect.x + self.global_roi.x + (local_roi.x if local_roi else 0.0)
        y = rect.y + self.global_roi.y + (local_roi.y if local_roi else 0.0)
        self._outline(x, y, rect.width, rect.height, color, thickness)

    def _outline(self, x: float, y: float, width: float, height: float,
                 color: ColorValue, thickness: int) -> None:
        x0, y0 = round(x), round(y)
        x1, y1 = x0 + round(width) - 1, y0 + round(height) - 1
        corners = [(x0, y0), (x1, y0), (x1, y1), (x0, y1)]
        for start, end in zip(corners, corners[1:] + corners[:1]):
            _draw_line(self.overlay, start, end, color, thickness)