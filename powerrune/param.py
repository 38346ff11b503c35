"""Detection and calculation parameters, loaded from a YAML configuration."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Mapping

import numpy as np
import yaml

from .utility import Color, Mode

# 0: no windows; 1: arrow, armor, centre, prediction; 2: also lightlines and rois;
# 3: also binary images.
SHOW_IMAGE = 2
CONSOLE_OUTPUT = 1


class _ConfigLoader(yaml.SafeLoader):
    """Safe loader that also understands the opencv-matrix tag."""


def _construct_matrix(loader: yaml.SafeLoader, node: yaml.Node) -> np.ndarray:
    spec = loader.construct_mapping(node, deep=True)
    rows = int(spec["rows"])
    cols = int(spec["cols"])
    data = np.asarray(spec.get("data", []), dtype=np.float64)
    if data.size != rows * cols:
        raise ValueError(f"matrix data has {data.size} values, expected {rows * cols}")
    return data.reshape(rows, cols)


_ConfigLoader.add_constructor("tag:yaml.org,2002:opencv-matrix", _construct_matrix)


def _node(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, Mapping) or key not in data:
            return None
        data = data[key]
    return data


def _float(data: Any, *keys: str) -> float:
    value = _node(data, *keys)
    return 0.0 if value is None else float(value)


def _int(data: Any, *keys: str) -> int:
    value = _node(data, *keys)
    return 0 if value is None else int(round(float(value)))


def _matrix(data: Any, *keys: str) -> np.ndarray:
    value = _node(data, *keys)
    if value is None:
        return np.zeros((0, 0))
    return np.asarray(value, dtype=np.float64)


@dataclass
class Param:
    """All tunable parameters; constants of the rune geometry live on the class."""

    RED: ClassVar[tuple[int, int, int]] = (0, 0, 255)
    BLUE: ClassVar[tuple[int, int, int]] = (255, 0, 0)
    GREEN: ClassVar[tuple[int, int, int]] = (0, 255, 0)
    WHITE: ClassVar[tuple[int, int, int]] = (255, 255, 255)
    YELLOW: ClassVar[tuple[int, int, int]] = (0, 255, 255)
    PURPLE: ClassVar[tuple[int, int, int]] = (128, 0, 128)

    POWER_RUNE_RADIUS: ClassVar[float] = 700.0
    POINT_POINT_THETA_THRESHOLD_MIN: ClassVar[float] = 80.0
    POINT_POINT_THETA_THRESHOLD_MAX: ClassVar[float] = 100.0
    LEAF_RADIUS: ClassVar[float] = 150.0
    ARMOR_CONTOUR_AREA_MIN: ClassVar[float] = 1000.0
    ARMOR_CONTOUR_AREA_MAX: ClassVar[float] = 10000.0
    AREA_RATIO_MIN: ClassVar[float] = 0.9
    AREA_RATIO_MAX: ClassVar[float] = 1.1
    GRAVITY: ClassVar[float] = 9.8
    CAMERA_TO_GIMBAL_ROTATION_VECTOR: ClassVar[tuple[float, float, float]] = (0.0, 0.0, 0.0)
    ANGLE_BETWEEN_FAN_BLADES: ClassVar[float] = 72 * math.pi / 180
    SMALL_POWER_RUNE_ROTATION_SPEED: ClassVar[float] = 1.04719
    MIN_DISTANCE_TO_TARGET: ClassVar[float] = 4.0
    MAX_DISTANCE_TO_TARGET: ClassVar[float] = 10.0
    MAX_BRIGHTNESS: ClassVar[int] = 255

    color: Color = Color.RED
    fps: int = 0
    image_width: float = 0.0
    image_height: float = 0.0

    arrow_brightness_threshold: int = 0
    armor_brightness_threshold: int = 0
    local_roi_distance_ratio: float = 0.0
    local_roi_width: float = 0.0
    armor_center_vertical_distance_threshold: float = 0.0
    global_roi_length_ratio: float = 0.0

    min_arrow_lightline_area: float = 0.0
    max_arrow_lightline_area: float = 0.0
    max_arrow_lightline_aspect_ratio: float = 0.0
    min_arrow_lightline_num: int = 0
    max_arrow_lightline_num: int = 0
    max_same_arrow_area_ratio: float = 0.0
    min_arrow_aspect_ratio: float = 0.0
    max_arrow_aspect_ratio: float = 0.0
    max_arrow_area: float = 0.0

    min_armor_lightline_area: float = 0.0
    max_armor_lightline_area: float = 0.0
    min_armor_lightline_contour_area: float = 0.0
    max_armor_lightline_contour_area: float = 0.0
    min_armor_lightline_aspect_ratio: float = 0.0
    max_armor_lightline_aspect_ratio: float = 0.0
    max_same_armor_area_ratio: float = 0.0
    min_same_armor_distance: float = 0.0
    max_same_armor_distance: float = 0.0

    min_center_area: float = 0.0
    max_center_area: float = 0.0
    max_center_aspect_ratio: float = 0.0

    mode: Mode = Mode.SMALL
    current_bullet_speed: float = 0.0
    min_bullet_speed: float = 0.0
    default_bullet_speed: float = 0.0
    camera_to_gimbal_translation_vector: tuple[float, float, float] = (0.0, 0.0, 0.0)
    compensate_time: float = 0.0
    compensate_pitch: float = 0.0
    compensate_yaw: float = 0.0
    intrinsic_matrix: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    dist_coeffs: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))

    armor_outside_width: float = 0.0
    armor_outside_height: float = 0.0
    armor_outside_y: float = 0.0
    armor_inside_width: float = 0.0
    armor_inside_y: float = 0.0

    min_fit_data_size: int = 0
    max_fit_data_size: int = 0

    @property
    def draw_color(self) -> tuple[int, int, int]:
        """Colour used for overlays: the opposite of the rune colour."""
        return self.RED if self.color is Color.BLUE else self.BLUE

    @classmethod
    def load(cls, filename: str | Path) -> "Param":
        """Read parameters from a YAML file (an OpenCV-style header is accepted)."""
        text = Path(filename).read_text(encoding="utf-8")
        lines = text.splitlines()
        if lines and lines[0].startswith("%YAML"):
            lines = lines[1:]
        data = yaml.load("\n".join(lines), Loader=_ConfigLoader)
        return cls.from_mapping(data or {})

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Param":
        """Build parameters from an already parsed configuration mapping."""
        color_name = str(_node(data, "color") or "").lower()
        if color_name == "red":
            color = Color.RED
        elif color_name == "blue":
            color = Color.BLUE
        else:
            raise ValueError(f"unknown color {color_name}")

        detect = _node(data, "detect")
        brightness = _node(detect, "brightness_threshold", color_name)
        arrow = _node(detect, "arrow")
        armor = _node(detect, "armor")
        center = _node(detect, "centerR")

        mode_name = str(_node(data, "mode") or "").lower()
        if mode_name == "small":
            mode = Mode.SMALL
        elif mode_name == "big":
            mode = Mode.BIG
        else:
            raise ValueError(f"unknown mode {mode_name}")

        cal = _node(data, "calculate")
        translation = [0.0, 0.0, 0.0]
        tvec = _node(cal, "tvec_c2g")
        if isinstance(tvec, (list, tuple)):
            if len(tvec) > 3:
                raise ValueError("tvec_c2g must have at most 3 values")
            for index, value in enumerate(tvec):
                translation[index] = float(value)
        armor_geometry = _node(cal, "armor")

        return cls(
            color=color,
            fps=_int(data, "fps"),
            image_width=_float(data, "image", "width"),
            image_height=_float(data, "image", "height"),
            arrow_brightness_threshold=_int(brightness, "arrow"),
            armor_brightness_threshold=_int(brightness, "armor"),
            local_roi_distance_ratio=_float(detect, "local_roi", "distance_ratio"),
            local_roi_width=_float(detect, "local_roi", "width"),
            armor_center_vertical_distance_threshold=_float(
                detect, "armor_center_vertical_distance_threshold"
            ),
            global_roi_length_ratio=_float(detect, "global_roi_length_ratio"),
            min_arrow_lightline_area=_float(arrow, "lightline", "area", "min"),
            max_arrow_lightline_area=_float(arrow, "lightline", "area", "max"),
            max_arrow_lightline_aspect_ratio=_float(arrow, "lightline", "aspect_ratio_max"),
            min_arrow_lightline_num=_int(arrow, "lightline", "num", "min"),
            max_arrow_lightline_num=_int(arrow, "lightline", "num", "max"),
            max_same_arrow_area_ratio=_float(arrow, "same_area_ratio_max"),
            min_arrow_aspect_ratio=_float(arrow, "aspect_ratio", "min"),
            max_arrow_aspect_ratio=_float(arrow, "aspect_ratio", "max"),
            max_arrow_area=_float(arrow, "area_max"),
            min_armor_lightline_area=_float(armor, "lightline", "area", "min"),
            max_armor_lightline_area=_float(armor, "lightline", "area", "max"),
            min_armor_lightline_contour_area=_float(armor, "lightline", "contour_area", "min"),
            max_armor_lightline_contour_area=_float(armor, "lightline", "contour_area", "max"),
            min_armor_lightline_aspect_ratio=_float(armor, "lightline", "aspect_ratio", "min"),
            max_armor_lightline_aspect_ratio=_float(armor, "lightline", "aspect_ratio", "max"),
            max_same_armor_area_ratio=_float(armor, "same", "area_ratio_max"),
            min_same_armor_distance=_float(armor, "same", "distance", "min"),
            max_same_armor_distance=_float(armor, "same", "distance", "max"),
            min_center_area=_float(center, "area", "min"),
            max_center_area=_float(center, "area", "max"),
            max_center_aspect_ratio=_float(center, "aspect_ratio_max"),
            mode=mode,
            min_bullet_speed=_float(cal, "bullet_speed", "min"),
            default_bullet_speed=_float(cal, "bullet_speed", "default"),
            camera_to_gimbal_translation_vector=tuple(translation),
            compensate_time=_float(cal, "compansate", "time"),
            compensate_pitch=_float(cal, "compansate", "pitch"),
            compensate_yaw=_float(cal, "compansate", "yaw"),
            intrinsic_matrix=_matrix(cal, "intrinsic_matrix"),
            dist_coeffs=_matrix(cal, "distortion"),
            armor_outside_width=_float(armor_geometry, "outside", "width"),
            armor_outside_height=_float(armor_geometry, "outside", "height"),
            armor_outside_y=_float(armor_geometry, "outside", "y"),
            armor_inside_width=_float(armor_geometry, "inside", "width"),
            armor_inside_y=_float(armor_geometry, "inside", "y"),
            min_fit_data_size=_int(cal, "fit_data_size", "min"),
            max_fit_data_size=_int(cal, "fit_data_size", "max"),
        )