"""Configuration store and the named-value reconfiguration protocol."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Union

from .config import DetectorConfig, RuntimeConfig, TagLayout


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in {"true", "1", "yes", "on"}:
            return True
        if v in {"false", "0", "no", "off"}:
            return False
        raise ValueError(f"not a boolean: {value!r}")
    if isinstance(value, (int, float)):
        return bool(value)
    raise TypeError(f"not a boolean: {value!r}")


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError(f"not an integer: {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"not an integer: {value!r}")
    return int(value)


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError(f"not a number: {value!r}")
    return float(value)


# parameter name -> (attribute, coercion)
DETECTOR_KEYS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "detector.threads": ("threads", _to_int),
    "detector.decimate": ("decimate", _to_float),
    "detector.blur": ("blur", _to_float),
    "detector.refine": ("refine", _to_bool),
    "detector.sharpening": ("sharpening", _to_float),
    "detector.debug": ("debug", _to_bool),
}

RUNTIME_KEYS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "max_hamming": ("max_hamming", _to_int),
    "profile": ("profile", _to_bool),
    "z_up": ("z_up", _to_bool),
    "enabled": ("enabled", _to_bool),
}

Updates = Union[Mapping[str, Any], Iterable[tuple[str, Any]]]


class ConfigurationStore:
    """Holds detector tuning, runtime flags and the fixed tag layout.

    Detector tuning is shared with the detector itself, so it is only written
    while holding ``_lock``, the same lock every detection call runs under
    (see :meth:`exclusive_detector`). The runtime flags are single attribute
    rebinds and are read without locking. The layout never changes.
    """

    def __init__(
        self,
        detector: Optional[DetectorConfig] = None,
        runtime: Optional[RuntimeConfig] = None,
        layout: Optional[TagLayout] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.detector = detector or DetectorConfig()
        self.runtime = runtime or RuntimeConfig()
        self.layout = layout or TagLayout()
        self.log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._revision = 1
        self._applied_revision = 0

    @property
    def revision(self) -> int:
        return self._revision

    def apply_updates(self, updates: Updates) -> bool:
        """Apply a batch of named updates. Unknown or malformed entries are ignored.

        Always returns True.
        """
        items = updates.items() if isinstance(updates, Mapping) else updates

        with self._lock:
            for name, value in items:
                self.log.debug("setting: %s=%r", name, value)

                if name in DETECTOR_KEYS:
                    attr, coerce = DETECTOR_KEYS[name]
                    target = self.detector
                elif name in RUNTIME_KEYS:
                    attr, coerce = RUNTIME_KEYS[name]
                    target = self.runtime
                else:
                    self.log.debug("ignoring unknown parameter %s", name)
                    continue

                try:
                    new_value = coerce(value)
                except (TypeError, ValueError) as e:
                    self.log.warning("ignoring parameter %s=%r: %s", name, value, e)
                    continue

                if getattr(target, attr) == new_value:
                    continue
                setattr(target, attr, new_value)
                if target is self.detector:
                    self._revision += 1

        return True

    @contextmanager
    def exclusive_detector(self, detector) -> Iterator[Any]:
        """Hold the detector lock, pushing pending tuning into ``detector`` first."""
        with self._lock:
            if self._applied_revision != self._revision:
                detector.configure(replace(self.detector))
                self._applied_revision = self._revision
            yield detector

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "detector": self.detector.as_dict(),
                "runtime": self.runtime.as_dict(),
                "default_size": self.layout.default_size,
                "frames": dict(self.layout.frames),
                "sizes": dict(self.layout.sizes),
            }
