"""Reconfiguration channel: named-value parameter updates delivered at runtime."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable

import yaml

ApplyFn = Callable[[list[tuple[str, Any]]], bool]


def parse_updates(payload: bytes | str, logger=None) -> list[tuple[str, Any]]:
    """Decode a JSON update message.

    Accepts ``{"name": value, ...}`` or ``[{"name": ..., "value": ...}, ...]``.
    Anything else decodes to an empty batch.
    """
    log = logger or logging.getLogger(__name__)
    try:
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode("utf-8")
        data = json.loads(payload)
    except (UnicodeDecodeError, ValueError) as e:
        log.warning("ignoring malformed parameter message: %s", e)
        return []

    if isinstance(data, dict):
        return [(str(k), v) for k, v in data.items()]
    if isinstance(data, list):
        out = []
        for item in data:
            if isinstance(item, dict) and "name" in item and "value" in item:
                out.append((str(item["name"]), item["value"]))
        return out
    log.warning("ignoring parameter message of type %s", type(data).__name__)
    return []


def parse_assignments(items: Iterable[str]) -> list[tuple[str, Any]]:
    """``["z_up=false", "detector.decimate=1.0"]`` -> typed (name, value) pairs."""
    out = []
    for item in items:
        name, sep, raw = item.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"expected NAME=VALUE, got {item!r}")
        out.append((name.strip(), yaml.safe_load(raw) if raw.strip() else raw))
    return out


class MqttParameterChannel:
    """Feeds JSON messages from <prefix>/parameters into a store's apply_updates.

    Messages arrive on the paho network thread, concurrently with frame
    processing on the worker thread.
    """

    def __init__(self, client, apply: ApplyFn, topic_prefix: str = "apriltag", qos: int = 0, logger=None):
        self.client = client
        self.apply = apply
        self.topic = f"{topic_prefix.rstrip('/')}/parameters"
        self.qos = qos
        self.log = logger or logging.getLogger(__name__)

    def start(self) -> None:
        self.client.message_callback_add(self.topic, self._on_message)
        self.client.on_connect = self._on_connect
        self.client.subscribe(self.topic, self.qos)
        self.log.info("listening for parameter updates on %s", self.topic)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        # subscriptions do not survive a reconnect with a clean session
        client.subscribe(self.topic, self.qos)

    def _on_message(self, client, userdata, message) -> None:
        updates = parse_updates(message.payload, self.log)
        if not updates:
            return
        self.apply(updates)
        self.log.info("applied parameters: %s", ", ".join(name for name, _ in updates))

    def stop(self) -> None:
        self.client.message_callback_remove(self.topic)
        self.client.unsubscribe(self.topic)
