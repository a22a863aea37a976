from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from .errors import InvalidFrameError


Point = tuple[float, float]


@dataclass(frozen=True)
class Header:
    stamp_ns: int = 0
    frame_id: str = ""
    seq: int = 0


@dataclass(frozen=True)
class Frame:
    """Rectified 8-bit grayscale image with a row stride, like sensor_msgs/Image mono8."""

    header: Header
    width: int
    height: int
    step: int
    data: Any  # bytes-like, at least step * height long

    @classmethod
    def from_image(cls, header: Header, image: np.ndarray) -> "Frame":
        img = np.ascontiguousarray(image, dtype=np.uint8)
        if img.ndim != 2:
            raise InvalidFrameError(f"expected a 2-D mono8 image, got shape {img.shape}")
        h, w = img.shape
        return cls(header, int(w), int(h), int(w), img.reshape(-1))

    def as_array(self) -> np.ndarray:
        if self.step < self.width:
            raise InvalidFrameError(f"row stride {self.step} smaller than width {self.width}")
        buf = np.frombuffer(self.data, dtype=np.uint8)
        need = self.step * self.height
        if buf.size < need:
            raise InvalidFrameError(f"buffer holds {buf.size} bytes, {need} required")
        rows = buf[:need].reshape(self.height, self.step)
        return np.ascontiguousarray(rows[:, : self.width])


@dataclass(frozen=True)
class CameraInfo:
    header: Header
    p: tuple[float, ...]  # 3x4 row-major projection

    def projection(self) -> np.ndarray:
        return np.asarray(self.p, dtype=np.float64).reshape(3, 4)


@dataclass
class TagDetection:
    family: str
    tag_id: int
    hamming: int
    decision_margin: float
    centre: Point
    corners: tuple[Point, Point, Point, Point]
    homography: Any  # (3,3) ndarray


@dataclass(frozen=True)
class DetectionRecord:
    family: str
    id: int
    hamming: int
    decision_margin: float
    centre: Point
    corners: tuple[Point, Point, Point, Point]
    homography: tuple[float, ...]  # 9 values, row-major


@dataclass(frozen=True)
class TransformStamped:
    header: Header
    child_frame_id: str
    translation: tuple[float, float, float]
    rotation: tuple[float, float, float, float]  # x, y, z, w


@dataclass
class FrameResult:
    header: Header
    detections: list[DetectionRecord] = field(default_factory=list)
    transforms: list[TransformStamped] = field(default_factory=list)
    skipped: bool = False
