from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

import numpy as np
from pupil_apriltags import Detector

from ..config import DetectorConfig
from ..errors import DetectorError, DetectorReleasedError, UnsupportedFamilyError
from ..tp_types import TagDetection

log = logging.getLogger(__name__)


class TagFamily(str, Enum):
    """AprilTag families shipped with the apriltag 3 library."""

    TAG_16H5 = "16h5"
    TAG_25H9 = "25h9"
    TAG_36H11 = "36h11"
    CIRCLE_21H7 = "Circle21h7"
    CIRCLE_49H12 = "Circle49h12"
    CUSTOM_48H12 = "Custom48h12"
    STANDARD_41H12 = "Standard41h12"
    STANDARD_52H13 = "Standard52h13"

    @property
    def library_name(self) -> str:
        return "tag" + self.value

    @classmethod
    def parse(cls, name: str) -> "TagFamily":
        key = (name or "").strip()
        if key.lower().startswith("tag"):
            key = key[3:]
        for fam in cls:
            if fam.value.lower() == key.lower():
                return fam
        raise UnsupportedFamilyError(name)


# DetectorConfig field -> apriltag_detector_t field
_NATIVE_FIELDS = (
    ("threads", "nthreads", int),
    ("decimate", "quad_decimate", float),
    ("blur", "quad_sigma", float),
    ("refine", "refine_edges", int),
    ("sharpening", "decode_sharpening", float),
    ("debug", "debug", int),
)


def _family_name(raw) -> str:
    if isinstance(raw, bytes):
        return raw.decode("ascii", errors="replace")
    return str(raw)


class AprilTagDetect:
    """
    Strategy: detect AprilTags in a mono8 image.
    Returns list[TagDetection] in detector order; pose is computed later
    from each homography by the Localize strategy.

    Owns the native detector and its family. Not thread-safe by itself:
    callers serialise configure() and detect() (see ConfigurationStore).
    """
    def __init__(self, family: str | TagFamily = TagFamily.TAG_36H11, config: Optional[DetectorConfig] = None):
        self.family = family if isinstance(family, TagFamily) else TagFamily.parse(family)
        self.config = config or DetectorConfig()
        self._detector: Optional[Detector] = Detector(
            families=self.family.library_name,
            nthreads=int(self.config.threads),
            quad_decimate=float(self.config.decimate),
            quad_sigma=float(self.config.blur),
            refine_edges=int(self.config.refine),
            decode_sharpening=float(self.config.sharpening),
            debug=int(self.config.debug),
        )
        log.debug("created detector for family %s", self.family.library_name)

    @property
    def released(self) -> bool:
        return self._detector is None

    def _require(self) -> Detector:
        if self._detector is None:
            raise DetectorReleasedError("detector has been released")
        return self._detector

    def configure(self, config: DetectorConfig) -> None:
        """Write tuning straight into the live native detector."""
        det = self._require()
        native = det.tag_detector_ptr.contents
        params = getattr(det, "params", None)
        for attr, field_name, cast in _NATIVE_FIELDS:
            value = cast(getattr(config, attr))
            setattr(native, field_name, value)
            if isinstance(params, dict):
                params[field_name] = value
        self.config = config

    def detect(self, image: np.ndarray) -> list[TagDetection]:
        det = self._require()
        try:
            raw = det.detect(image)
        except Exception as e:
            raise DetectorError(f"detection failed: {e}") from e

        dets: list[TagDetection] = []
        for r in raw:
            corners = np.asarray(r.corners, dtype=np.float64).reshape(4, 2)
            centre = np.asarray(r.center, dtype=np.float64).reshape(2)
            dets.append(TagDetection(
                family=_family_name(r.tag_family),
                tag_id=int(r.tag_id),
                hamming=int(r.hamming),
                decision_margin=float(r.decision_margin),
                centre=(float(centre[0]), float(centre[1])),
                corners=tuple((float(x), float(y)) for x, y in corners),
                homography=np.asarray(r.homography, dtype=np.float64).reshape(3, 3),
            ))
        return dets

    def release(self) -> None:
        """Destroy the native detector and family. Safe to call more than once."""
        if self._detector is None:
            return
        # pupil_apriltags frees the detector and its families when the last reference goes
        self._detector = None
        log.debug("released detector for family %s", self.family.library_name)

    def __enter__(self) -> "AprilTagDetect":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
