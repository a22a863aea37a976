from pathlib import Path
from typing import Tuple

import cv2
import numpy as np
import yaml


def _from_opencv(path: str) -> Tuple[np.ndarray, tuple[int, int]]:
    fs = cv2.FileStorage(path, cv2.FILE_STORAGE_READ)
    try:
        node = fs.getNode("projection_matrix")
        if not node.empty():
            P = np.asarray(node.mat(), dtype=np.float64).reshape(3, 4)
        else:
            K = np.asarray(fs.getNode("camera_matrix").mat(), dtype=np.float64).reshape(3, 3)
            P = np.hstack([K, np.zeros((3, 1))])
        w = int(fs.getNode("image_width").real()); h = int(fs.getNode("image_height").real())
    finally:
        fs.release()
    return P, (w, h)


def _from_camera_info(data: dict) -> Tuple[np.ndarray, tuple[int, int]]:
    if "projection_matrix" in data:
        P = np.asarray(data["projection_matrix"]["data"], dtype=np.float64).reshape(3, 4)
    elif "camera_matrix" in data:
        K = np.asarray(data["camera_matrix"]["data"], dtype=np.float64).reshape(3, 3)
        P = np.hstack([K, np.zeros((3, 1))])
    else:
        raise ValueError("calibration has neither projection_matrix nor camera_matrix")
    return P, (int(data.get("image_width", 0)), int(data.get("image_height", 0)))


def load_projection(path: str) -> Tuple[np.ndarray, tuple[int, int]]:
    """
    3x4 projection matrix and image size from a calibration file.
    Reads ROS camera_info YAML, or OpenCV FileStorage YAML ("%YAML:1.0").
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Calibration not found: {p}")
    text = p.read_text(encoding="utf-8")
    if text.lstrip().startswith("%YAML:"):
        return _from_opencv(str(p))
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError("calibration root must be a mapping")
    return _from_camera_info(data)
