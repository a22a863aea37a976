from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from tag_pipeline.config import DetectorConfig


@dataclass
class SourceConfig:
    """Configuration for frame source (image folder, camera, synthetic)."""

    type: str = "images"  # "images", "v4l2", "synthetic"
    path: Optional[str] = None  # For "images": folder of rectified frames
    device: int | str = 0
    fps: int = 15
    width: int = 640
    height: int = 480

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MqttConfig:
    enabled: bool = False
    host: str = "localhost"
    port: int = 1883
    topic_prefix: str = "apriltag"
    control: bool = True  # subscribe to <prefix>/parameters
    qos: int = 0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class NodeConfig:
    camera_name: str = "camera"
    frame_id: str = "camera"
    calibration_path: str = "calib/camera_info.yaml"
    session_root: str = "data/sessions"
    duration_sec: float = 0.0
    max_frames: Optional[int] = None
    dry_run: bool = False
    save_csv: bool = True
    log_level: str = "INFO"

    # tag layout, read-only after startup
    family: str = "36h11"
    size: float = 1.0
    tag_ids: list[int] = field(default_factory=list)
    tag_frames: list[str] = field(default_factory=list)
    tag_sizes: list[float] = field(default_factory=list)

    # runtime parameters
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    max_hamming: int = 0
    profile: bool = False
    z_up: bool = True
    enabled: bool = True

    source: SourceConfig = field(default_factory=SourceConfig)
    mqtt: MqttConfig = field(default_factory=MqttConfig)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "NodeConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config root must be a mapping")
    return data


def _unwrap_ros_parameters(raw: dict[str, Any]) -> dict[str, Any]:
    """Accept ROS 2 parameter files: ``<node>: {ros__parameters: {...}}``."""
    if "ros__parameters" in raw:
        return dict(raw["ros__parameters"] or {})
    if len(raw) == 1:
        (inner,) = raw.values()
        if isinstance(inner, dict) and "ros__parameters" in inner:
            return dict(inner["ros__parameters"] or {})
    return raw


def _as_list(value: Any, cast) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [cast(v) for v in value]
    return [cast(value)]


def _merge_section(obj, raw: Any, name: str):
    if raw is None:
        return obj
    if not isinstance(raw, dict):
        raise ValueError(f"{name} must be a mapping")
    for f in fields(obj):
        if f.name in raw:
            default = getattr(obj, f.name)
            value = raw[f.name]
            if isinstance(default, bool):
                value = bool(value)
            elif isinstance(default, int) and not isinstance(value, str):
                value = int(value)
            elif isinstance(default, float):
                value = float(value)
            setattr(obj, f.name, value)
    return obj


def load_config(path: str | Path) -> NodeConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON/YAML object")
    raw = _unwrap_ros_parameters(raw)

    cfg = NodeConfig()
    cfg.camera_name = str(raw.get("camera_name", cfg.camera_name))
    cfg.frame_id = str(raw.get("frame_id", cfg.frame_id))
    cfg.calibration_path = str(raw.get("calibration_path", cfg.calibration_path))
    cfg.session_root = str(raw.get("session_root", cfg.session_root))
    cfg.duration_sec = float(raw.get("duration_sec", cfg.duration_sec))
    cfg.max_frames = raw.get("max_frames", cfg.max_frames)
    if cfg.max_frames is not None:
        cfg.max_frames = int(cfg.max_frames)
    cfg.dry_run = bool(raw.get("dry_run", cfg.dry_run))
    cfg.save_csv = bool(raw.get("save_csv", cfg.save_csv))
    cfg.log_level = str(raw.get("log_level", cfg.log_level)).upper()

    cfg.family = str(raw.get("family", cfg.family))
    cfg.size = float(raw.get("size", cfg.size))

    tag_raw = raw.get("tag") or {}
    if not isinstance(tag_raw, dict):
        raise ValueError("tag must be a mapping with ids/frames/sizes")
    cfg.tag_ids = _as_list(tag_raw.get("ids"), int)
    cfg.tag_frames = _as_list(tag_raw.get("frames"), str)
    cfg.tag_sizes = _as_list(tag_raw.get("sizes"), float)

    cfg.detector = _merge_section(DetectorConfig(), raw.get("detector"), "detector")
    cfg.max_hamming = int(raw.get("max_hamming", cfg.max_hamming))
    cfg.profile = bool(raw.get("profile", cfg.profile))
    cfg.z_up = bool(raw.get("z_up", cfg.z_up))
    cfg.enabled = bool(raw.get("enabled", cfg.enabled))

    cfg.source = _merge_section(SourceConfig(), raw.get("source"), "source")
    cfg.mqtt = _merge_section(MqttConfig(), raw.get("mqtt"), "mqtt")

    return cfg
