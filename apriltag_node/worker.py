from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

import numpy as np

from tag_pipeline.errors import FrameProcessingError
from tag_pipeline.factory import PipelineFactory
from tag_pipeline.services.calib import load_projection
from tag_pipeline.services.storage import SessionStorage
from tag_pipeline.tp_types import CameraInfo

from .capture import BaseCapture, SyntheticCapture, build_capture
from .config import NodeConfig
from .logging_utils import add_file_handler, remove_handler, setup_logger
from .output import CsvOutput, OutputSink


@dataclass
class SessionSummary:
    session_path: str
    frames_processed: int
    frames_skipped: int
    detections: int
    log_path: str
    avg_fps: float
    errors: int


def synthetic_projection(width: int, height: int) -> np.ndarray:
    f = float(max(width, height))
    return np.array([
        [f, 0.0, width / 2.0, 0.0],
        [0.0, f, height / 2.0, 0.0],
        [0.0, 0.0, 1.0, 0.0],
    ])


class CameraWorker:
    """Runs one camera stream through the tag pipeline.

    reconfigure() may be called from any thread while run() is active.
    """

    def __init__(
        self,
        config: NodeConfig,
        logger=None,
        outputs: Optional[list[OutputSink]] = None,
        capture: Optional[BaseCapture] = None,
        detector=None,
        projection: Optional[np.ndarray] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.camera_name, config.log_level)
        self.outputs = outputs if outputs is not None else ([CsvOutput()] if config.save_csv else [])
        self.capture = capture
        self.projection = projection
        self._stop_event = threading.Event()

        # fatal configuration errors surface here, before anything runs
        self.detector, self.store, self.pipeline = PipelineFactory.from_config(
            config, logger=self.logger, detector=detector
        )

    def stop(self) -> None:
        self._stop_event.set()

    def reconfigure(self, updates: Union[Mapping[str, Any], Iterable[tuple[str, Any]]]) -> bool:
        return self.store.apply_updates(updates)

    def close(self) -> None:
        self.detector.release()

    def _build_capture(self) -> BaseCapture:
        if self.capture is not None:
            return self.capture
        src = self.config.source
        if self.config.dry_run:
            return SyntheticCapture(src.fps, src.width, src.height, self.config.frame_id)
        return build_capture(src, self.config.frame_id)

    def _load_projection(self) -> np.ndarray:
        if self.projection is not None:
            return np.asarray(self.projection, dtype=np.float64).reshape(3, 4)
        if self.config.dry_run:
            return synthetic_projection(self.config.source.width, self.config.source.height)
        P, _size = load_projection(self.config.calibration_path)
        return P

    def run(self) -> SessionSummary:
        storage = SessionStorage(self.config.session_root, name=f"{self.config.camera_name}_session")
        session_path = storage.begin()
        storage.write_manifest(self.config.as_dict())

        log_file = str(storage.log_path)
        file_handler = add_file_handler(self.logger, self.config.camera_name, log_file)

        self.logger.info("session started: %s", session_path)
        self.logger.info("config: %s", self.config.as_dict())

        cap = None
        frames = 0
        skipped = 0
        detections = 0
        errors = 0
        t0 = time.time()

        try:
            P = tuple(float(v) for v in self._load_projection().reshape(-1))
            cap = self._build_capture()
            for out in self.outputs:
                out.open(Path(storage.session_dir))
            cap.start()

            while True:
                if self._stop_event.is_set():
                    break
                if self.config.duration_sec and (time.time() - t0) >= self.config.duration_sec:
                    break
                if self.config.max_frames and frames + skipped + errors >= self.config.max_frames:
                    break
                if cap.exhausted:
                    break

                f = cap.next_frame()
                if f is None:
                    errors += 1
                    continue

                try:
                    result = self.pipeline.process(f, CameraInfo(f.header, P))
                except FrameProcessingError as e:
                    errors += 1
                    self.logger.warning("frame seq=%d dropped: %s", f.header.seq, e)
                    continue

                if result.skipped:
                    skipped += 1
                    continue

                for out in self.outputs:
                    out.write_frame(result)

                detections += len(result.detections)
                self.logger.debug(
                    "frame=%d dets=%d children=%s",
                    f.header.seq,
                    len(result.detections),
                    [t.child_frame_id for t in result.transforms],
                )
                frames += 1

            avg = frames / max(1e-6, (time.time() - t0))
            summary = SessionSummary(
                str(session_path),
                frames,
                skipped,
                detections,
                log_file,
                avg,
                errors,
            )
            storage.write_summary(summary)
            self.logger.info(
                "summary frames=%d skipped=%d detections=%d avg_fps=%.2f errors=%d",
                frames, skipped, detections, avg, errors,
            )

        finally:
            if cap is not None:
                try:
                    cap.stop()
                except Exception:
                    self.logger.exception("failed to stop capture")

            for out in self.outputs:
                try:
                    out.close()
                except Exception:
                    self.logger.exception("failed to close output %s", type(out).__name__)

            self.close()
            remove_handler(self.logger, file_handler)

        return summary
