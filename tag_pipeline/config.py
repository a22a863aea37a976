from __future__ import annotations

from dataclasses import dataclass, field, asdict
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence

from .errors import LayoutMismatchError


@dataclass
class DetectorConfig:
    """Live tuning of the AprilTag detector (mirrors apriltag_detector_t)."""

    threads: int = 1
    decimate: float = 2.0
    blur: float = 0.0
    refine: bool = True
    sharpening: float = 0.25
    debug: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RuntimeConfig:
    enabled: bool = True
    max_hamming: int = 0
    profile: bool = False
    z_up: bool = True

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TagLayout:
    """Per-ID frame names and edge sizes. Fixed for the life of the process."""

    default_size: float = 1.0
    frames: Mapping[int, str] = field(default_factory=lambda: MappingProxyType({}))
    sizes: Mapping[int, float] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_lists(
        cls,
        ids: Optional[Sequence[int]] = None,
        frames: Optional[Sequence[str]] = None,
        sizes: Optional[Sequence[float]] = None,
        default_size: float = 1.0,
    ) -> "TagLayout":
        ids = [int(i) for i in (ids or [])]
        frames = list(frames or [])
        sizes = list(sizes or [])

        frame_map: dict[int, str] = {}
        if frames:
            if len(ids) != len(frames):
                raise LayoutMismatchError(
                    f"Number of tag ids ({len(ids)}) and frames ({len(frames)}) mismatch!"
                )
            frame_map = {i: str(name) for i, name in zip(ids, frames)}

        size_map: dict[int, float] = {}
        if sizes:
            if len(ids) != len(sizes):
                raise LayoutMismatchError(
                    f"Number of tag ids ({len(ids)}) and sizes ({len(sizes)}) mismatch!"
                )
            size_map = {i: float(s) for i, s in zip(ids, sizes)}

        return cls(float(default_size), MappingProxyType(frame_map), MappingProxyType(size_map))

    def tracks(self, tag_id: int) -> bool:
        # an empty name table means every tag is tracked
        return not self.frames or tag_id in self.frames

    def frame_name(self, family: str, tag_id: int) -> str:
        name = self.frames.get(tag_id)
        if name is not None:
            return name
        return f"{family}:{tag_id}"

    def size(self, tag_id: int) -> float:
        return self.sizes.get(tag_id, self.default_size)
