"""Single-camera AprilTag detection and pose service."""

from .config import NodeConfig
from .worker import CameraWorker

__all__ = ["NodeConfig", "CameraWorker"]
