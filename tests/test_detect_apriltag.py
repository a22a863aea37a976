from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from tag_pipeline.config import DetectorConfig
from tag_pipeline.errors import (
    DetectorError,
    DetectorReleasedError,
    FrameProcessingError,
    UnsupportedFamilyError,
)
from tag_pipeline.strategies.detect_apriltag import AprilTagDetect, TagFamily


DETECTOR = "tag_pipeline.strategies.detect_apriltag.Detector"


def _raw(tag_id, hamming=0, family=b"tag36h11"):
    return SimpleNamespace(
        tag_family=family,
        tag_id=tag_id,
        hamming=hamming,
        decision_margin=42.5,
        center=np.array([15.0, 16.0]),
        corners=np.array([[10.0, 10.0], [20.0, 10.0], [20.0, 20.0], [10.0, 20.0]]),
        homography=np.arange(9, dtype=np.float64).reshape(3, 3),
    )


@pytest.mark.parametrize(
    "name, expected",
    [
        ("36h11", TagFamily.TAG_36H11),
        ("tag36h11", TagFamily.TAG_36H11),
        ("16h5", TagFamily.TAG_16H5),
        ("tagStandard41h12", TagFamily.STANDARD_41H12),
        ("circle21h7", TagFamily.CIRCLE_21H7),
    ],
)
def test_family_parse(name, expected):
    assert TagFamily.parse(name) is expected


@pytest.mark.parametrize("name", ["", "36h10", "aruco4x4", "tag"])
def test_unknown_family_raises(name):
    with pytest.raises(UnsupportedFamilyError) as exc:
        TagFamily.parse(name)
    assert exc.value.family == name


def test_library_name():
    assert TagFamily.TAG_25H9.library_name == "tag25h9"
    assert TagFamily.CUSTOM_48H12.library_name == "tagCustom48h12"


@patch(DETECTOR)
def test_detector_created_with_config(mock_detector):
    cfg = DetectorConfig(threads=3, decimate=1.0, blur=0.8, refine=False, sharpening=0.5, debug=True)

    det = AprilTagDetect("tag16h5", cfg)

    assert det.family is TagFamily.TAG_16H5
    mock_detector.assert_called_once_with(
        families="tag16h5",
        nthreads=3,
        quad_decimate=1.0,
        quad_sigma=0.8,
        refine_edges=0,
        decode_sharpening=0.5,
        debug=1,
    )


@patch(DETECTOR)
def test_unknown_family_creates_nothing(mock_detector):
    with pytest.raises(UnsupportedFamilyError):
        AprilTagDetect("nope")
    mock_detector.assert_not_called()


@patch(DETECTOR)
def test_configure_writes_native_fields(mock_detector):
    native = mock_detector.return_value
    native.params = {}
    det = AprilTagDetect()

    det.configure(DetectorConfig(threads=2, decimate=3.0, blur=1.5, refine=True, sharpening=0.1, debug=False))

    fields = native.tag_detector_ptr.contents
    assert fields.nthreads == 2
    assert fields.quad_decimate == 3.0
    assert fields.quad_sigma == 1.5
    assert fields.refine_edges == 1
    assert fields.decode_sharpening == 0.1
    assert fields.debug == 0
    assert native.params["nthreads"] == 2
    assert det.config.decimate == 3.0


@patch(DETECTOR)
def test_detect_converts_results(mock_detector):
    mock_detector.return_value.detect.return_value = [_raw(5), _raw(9, hamming=1, family="tag36h11")]
    det = AprilTagDetect()
    image = np.zeros((6, 8), dtype=np.uint8)

    out = det.detect(image)

    assert [d.tag_id for d in out] == [5, 9]
    first = out[0]
    assert first.family == "tag36h11"
    assert first.hamming == 0
    assert first.decision_margin == 42.5
    assert first.centre == (15.0, 16.0)
    assert first.corners[2] == (20.0, 20.0)
    assert first.homography.shape == (3, 3)
    assert out[1].hamming == 1
    mock_detector.return_value.detect.assert_called_once_with(image)


@patch(DETECTOR)
def test_library_failure_becomes_frame_error(mock_detector):
    mock_detector.return_value.detect.side_effect = RuntimeError("boom")
    det = AprilTagDetect()

    with pytest.raises(DetectorError) as exc:
        det.detect(np.zeros((4, 4), dtype=np.uint8))

    assert isinstance(exc.value, FrameProcessingError)
    assert "boom" in str(exc.value)


@patch(DETECTOR)
def test_release_is_idempotent_and_final(mock_detector):
    det = AprilTagDetect()
    det.release()
    det.release()

    assert det.released
    with pytest.raises(DetectorReleasedError):
        det.detect(np.zeros((4, 4), dtype=np.uint8))
    with pytest.raises(DetectorReleasedError):
        det.configure(DetectorConfig())


@patch(DETECTOR, MagicMock())
def test_context_manager_releases():
    with AprilTagDetect() as det:
        assert not det.released
    assert det.released
