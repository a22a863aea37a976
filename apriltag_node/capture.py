from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import cv2
import numpy as np

from tag_pipeline.tp_types import Frame, Header

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".bmp", ".pgm", ".tif", ".tiff"}


class BaseCapture(ABC):
    """Source of rectified mono8 frames."""

    def __init__(self, frame_id: str = "camera"):
        self.frame_id = frame_id
        self.seq = 0

    def _header(self) -> Header:
        self.seq += 1
        return Header(time.time_ns(), self.frame_id, self.seq)

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def next_frame(self) -> Frame | None:
        """Next frame, or None when nothing could be read this time."""
        ...

    @property
    def exhausted(self) -> bool:
        return False

    @abstractmethod
    def stop(self) -> None: ...


class ImageFolderCapture(BaseCapture):
    """Replays a folder of already rectified images in name order."""

    def __init__(self, folder: str | Path, frame_id: str = "camera"):
        super().__init__(frame_id)
        self.folder = Path(folder)
        self._paths: list[Path] = []
        self._pos = 0

    def start(self) -> None:
        if not self.folder.is_dir():
            raise FileNotFoundError(f"Image folder not found: {self.folder}")
        self._paths = sorted(
            p for p in self.folder.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES
        )
        self._pos = 0

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._paths)

    def next_frame(self) -> Frame | None:
        if self.exhausted:
            return None
        path = self._paths[self._pos]
        self._pos += 1
        img = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
        if img is None:
            return None
        return Frame.from_image(self._header(), img)

    def stop(self) -> None:
        self._paths = []


class USBOpenCVCapture(BaseCapture):
    def __init__(self, device: int | str, fps: int, width: int, height: int, frame_id: str = "camera"):
        super().__init__(frame_id)
        self.device = device
        self.fps = fps
        self.width = width
        self.height = height
        self.cap: Any = None

    def start(self) -> None:
        if isinstance(self.device, int):
            self.cap = cv2.VideoCapture(self.device, cv2.CAP_V4L2)
        else:
            dev_str = str(self.device)
            match = re.match(r"^/dev/video(\d+)$", dev_str)
            if match:
                self.cap = cv2.VideoCapture(int(match.group(1)), cv2.CAP_V4L2)
            else:
                self.cap = cv2.VideoCapture(dev_str)

        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self.cap.set(cv2.CAP_PROP_FPS, self.fps)

        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open camera: {self.device}")

    def next_frame(self) -> Frame | None:
        ok, img = self.cap.read()
        if not ok:
            return None
        if img.ndim == 3:
            img = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
        return Frame.from_image(self._header(), img)

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


class SyntheticCapture(BaseCapture):
    def __init__(self, fps: int, width: int, height: int, frame_id: str = "camera"):
        super().__init__(frame_id)
        self.fps = fps
        self.width = width
        self.height = height
        self._last = 0.0

    def start(self) -> None:
        self._last = time.time()

    def next_frame(self) -> Frame | None:
        now = time.time()
        if self.fps > 0:
            wait = max(0.0, (1.0 / self.fps) - (now - self._last))
            if wait > 0:
                time.sleep(wait)
        self._last = time.time()
        img = np.zeros((self.height, self.width), dtype=np.uint8)
        return Frame.from_image(self._header(), img)

    def stop(self) -> None:
        return None


def build_capture(source, frame_id: str = "camera") -> BaseCapture:
    if source.type == "images":
        if not source.path:
            raise ValueError("source.path is required for an image folder source")
        return ImageFolderCapture(source.path, frame_id)
    if source.type == "v4l2":
        return USBOpenCVCapture(source.device, source.fps, source.width, source.height, frame_id)
    if source.type == "synthetic":
        return SyntheticCapture(source.fps, source.width, source.height, frame_id)
    raise ValueError(f"Unknown source type: {source.type}")
