from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

import paho.mqtt.client as mqtt

from tag_pipeline.services.csv_writer import DetectionCsvWriter, TransformCsvWriter
from tag_pipeline.tp_types import FrameResult


class OutputSink(ABC):
    """Receives one detection batch and one transform batch per processed frame."""

    @abstractmethod
    def open(self, session_dir: Path) -> None: ...

    @abstractmethod
    def write_frame(self, result: FrameResult) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class CsvOutput(OutputSink):
    def __init__(self, detections_file: str = "detections.csv", transforms_file: str = "transforms.csv"):
        self.detections_file = detections_file
        self.transforms_file = transforms_file
        self._dets: Optional[DetectionCsvWriter] = None
        self._tfs: Optional[TransformCsvWriter] = None

    def open(self, session_dir: Path) -> None:
        self._dets = DetectionCsvWriter(str(session_dir / self.detections_file))
        self._tfs = TransformCsvWriter(str(session_dir / self.transforms_file))
        self._dets.open()
        self._tfs.open()

    def write_frame(self, result: FrameResult) -> None:
        if self._dets is None or self._tfs is None:
            return
        for d in result.detections:
            self._dets.append(result.header, d)
        for t in result.transforms:
            self._tfs.append(t)
        self._dets.flush()
        self._tfs.flush()

    def close(self) -> None:
        for w in (self._dets, self._tfs):
            if w is not None:
                w.close()
        self._dets = None
        self._tfs = None


def detections_payload(result: FrameResult) -> str:
    return json.dumps({
        "header": asdict(result.header),
        "detections": [asdict(d) for d in result.detections],
    })


def transforms_payload(result: FrameResult) -> str:
    return json.dumps({
        "header": asdict(result.header),
        "transforms": [
            {
                "child_frame_id": t.child_frame_id,
                "translation": list(t.translation),
                "rotation": list(t.rotation),
            }
            for t in result.transforms
        ],
    })


def make_mqtt_client(host: str, port: int = 1883, client_id: str = "") -> mqtt.Client:
    client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
    client.connect(host, port, 60)
    return client


class MqttOutput(OutputSink):
    """Publishes each batch as one JSON message on <prefix>/detections and <prefix>/tf."""

    def __init__(self, client: Any, topic_prefix: str = "apriltag", qos: int = 0, logger=None):
        self.client = client
        self.topic_prefix = topic_prefix.rstrip("/")
        self.qos = qos
        self.log = logger or logging.getLogger(__name__)

    @property
    def detections_topic(self) -> str:
        return f"{self.topic_prefix}/detections"

    @property
    def tf_topic(self) -> str:
        return f"{self.topic_prefix}/tf"

    def open(self, session_dir: Path) -> None:
        return None

    def write_frame(self, result: FrameResult) -> None:
        for topic, payload in (
            (self.detections_topic, detections_payload(result)),
            (self.tf_topic, transforms_payload(result)),
        ):
            info = self.client.publish(topic, payload, qos=self.qos)
            rc = getattr(info, "rc", mqtt.MQTT_ERR_SUCCESS)
            if rc != mqtt.MQTT_ERR_SUCCESS:
                self.log.warning("publish to %s failed: rc=%s", topic, rc)

    def close(self) -> None:
        return None


class NullOutput(OutputSink):
    def open(self, session_dir: Path) -> None:
        return None

    def write_frame(self, result: FrameResult) -> None:
        return None

    def close(self) -> None:
        return None
