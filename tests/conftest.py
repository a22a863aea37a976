import threading

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from tag_pipeline.tp_types import CameraInfo, Frame, Header, TagDetection


K = np.array([
    [600.0, 0.0, 320.0],
    [0.0, 600.0, 240.0],
    [0.0, 0.0, 1.0],
])

P = tuple(np.hstack([K, np.zeros((3, 1))]).reshape(-1).tolist())


def tag_homography(R, t, size, K=K):
    """Homography of a tag with edge `size` at pose (R, t), canonical corners at +/-1."""
    R = np.asarray(R, dtype=np.float64)
    half = size / 2.0
    return K @ np.column_stack([R[:, 0] * half, R[:, 1] * half, np.asarray(t, dtype=np.float64)])


def make_detection(tag_id, hamming=0, family="tag36h11", H=None, margin=50.0):
    if H is None:
        H = tag_homography(np.eye(3), [0.0, 0.0, 2.0], 1.0)
    return TagDetection(
        family=family,
        tag_id=tag_id,
        hamming=hamming,
        decision_margin=margin,
        centre=(320.0, 240.0),
        corners=((10.0, 10.0), (20.0, 10.0), (20.0, 20.0), (10.0, 20.0)),
        homography=np.asarray(H, dtype=np.float64),
    )


def make_frame(seq=1, width=8, height=6):
    return Frame.from_image(Header(1_000 + seq, "camera", seq), np.zeros((height, width), dtype=np.uint8))


def camera_info(frame, p=P):
    return CameraInfo(frame.header, p)


class FakeDetector:
    def __init__(self, batches=None, error=None):
        """Return queued detection batches; repeat the last one when exhausted."""
        self.batches = list(batches or [[]])
        self.error = error
        self.configured = []
        self.images = []
        self.released = False
        self.in_detect = threading.Event()
        self.gate = None

    def configure(self, config):
        self.configured.append(config)

    def detect(self, image):
        self.images.append(image)
        if self.gate is not None:
            self.in_detect.set()
            self.gate.wait(5.0)
        if self.error is not None:
            raise self.error
        if len(self.batches) > 1:
            return list(self.batches.pop(0))
        return list(self.batches[0])

    def release(self):
        self.released = True


class RecordingOutput:
    def __init__(self):
        self.opened = None
        self.results = []
        self.closed = False

    def open(self, session_dir):
        self.opened = session_dir

    def write_frame(self, result):
        self.results.append(result)

    def close(self):
        self.closed = True


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def random_pose(rng):
    def _make():
        R = Rotation.from_rotvec(rng.uniform(-0.6, 0.6, 3)).as_matrix()
        t = np.array([rng.uniform(-0.5, 0.5), rng.uniform(-0.5, 0.5), rng.uniform(1.0, 4.0)])
        return R, t
    return _make
