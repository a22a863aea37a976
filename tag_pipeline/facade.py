import logging
import time
from typing import Optional

from .params import ConfigurationStore
from .strategies.localize_homography import HomographyLocalize, inverse_intrinsics
from .tp_types import CameraInfo, DetectionRecord, Frame, FrameResult, TagDetection


def to_record(d: TagDetection) -> DetectionRecord:
    return DetectionRecord(
        family=d.family,
        id=d.tag_id,
        hamming=d.hamming,
        decision_margin=d.decision_margin,
        centre=d.centre,
        corners=d.corners,
        homography=tuple(float(v) for v in d.homography.reshape(-1)),
    )


class TagPipelineFacade:
    """
    Per-frame detection-to-pose pipeline.

    process() either returns both batches for the frame or raises; nothing is
    returned for a frame that failed part way through.
    """

    def __init__(
        self,
        detector,
        store: ConfigurationStore,
        localizer: Optional[HomographyLocalize] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.det = detector
        self.store = store
        self.loc = localizer or HomographyLocalize(store.layout)
        self.log = logger or logging.getLogger(__name__)

    def process(self, frame: Frame, camera_info: CameraInfo) -> FrameResult:
        runtime = self.store.runtime
        layout = self.store.layout

        if not runtime.enabled:
            return FrameResult(frame.header, skipped=True)

        Pinv = inverse_intrinsics(camera_info.p)
        image = frame.as_array()

        t0 = time.perf_counter()
        with self.store.exclusive_detector(self.det) as det:
            raw = det.detect(image)

        if runtime.profile:
            self.log.info(
                "profile: seq=%d size=%dx%d detect=%.2fms raw=%d",
                frame.header.seq, frame.width, frame.height,
                (time.perf_counter() - t0) * 1000.0, len(raw),
            )

        max_hamming = runtime.max_hamming
        accepted = []
        for d in raw:
            # ignore untracked tags
            if not layout.tracks(d.tag_id):
                continue
            # reject detections with more corrected bits than allowed
            if d.hamming > max_hamming:
                self.log.debug("rejected %s:%d hamming=%d", d.family, d.tag_id, d.hamming)
                continue
            accepted.append(d)

        detections = [to_record(d) for d in accepted]
        transforms = self.loc.estimate(frame.header, accepted, Pinv, runtime.z_up)

        return FrameResult(frame.header, detections, transforms)
