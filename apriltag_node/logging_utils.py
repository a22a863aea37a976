import logging
from typing import Union

LOG_FORMAT = "%(asctime)s %(levelname)s [%(camera)s] %(name)s: %(message)s"


class CameraNameFilter(logging.Filter):
    """Stamps every record with the camera it came from."""

    def __init__(self, camera_name: str):
        super().__init__()
        self.camera_name = camera_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.camera = self.camera_name
        return True


def _handler(handler: logging.Handler, camera_name: str) -> logging.Handler:
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(CameraNameFilter(camera_name))
    return handler


def setup_logger(camera_name: str, level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Per-camera logger. Pipeline and store messages go through it as well."""
    logger = logging.getLogger(f"apriltag_node.{camera_name}")
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    if not logger.handlers:
        logger.addHandler(_handler(logging.StreamHandler(), camera_name))

    return logger


def add_file_handler(logger: logging.Logger, camera_name: str, log_path: str) -> logging.Handler:
    handler = _handler(logging.FileHandler(log_path), camera_name)
    logger.addHandler(handler)
    return handler


def remove_handler(logger: logging.Logger, handler: logging.Handler) -> None:
    logger.removeHandler(handler)
    handler.close()
