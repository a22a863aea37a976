import csv
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from tag_pipeline.services.calib import load_projection
from tag_pipeline.services.csv_writer import DetectionCsvWriter, TransformCsvWriter
from tag_pipeline.services.storage import SessionStorage
from tag_pipeline.facade import to_record
from tag_pipeline.tp_types import Header, TransformStamped

from conftest import make_detection


def test_session_storage_creates_dirs_and_manifest(tmp_path):
    """SessionStorage should create the session and log dirs and emit config."""
    storage = SessionStorage(tmp_path, name="demo")
    session_dir = Path(storage.begin())

    assert session_dir.name.startswith("demo_")
    assert (session_dir / "logs").exists()

    storage.write_manifest({"name": "demo", "path": tmp_path})
    manifest = json.loads((session_dir / "config.json").read_text())
    assert manifest["name"] == "demo"
    assert manifest["path"] == str(tmp_path)

    storage.write_summary({"frames": 3})
    assert json.loads((session_dir / "summary.json").read_text())["frames"] == 3
    assert storage.log_path == session_dir / "logs" / "session.log"


def test_detection_csv_rows(tmp_path):
    csv_path = tmp_path / "detections.csv"
    writer = DetectionCsvWriter(str(csv_path))
    writer.open()
    header = Header(123, "camera", 4)
    writer.append(header, to_record(make_detection(7, hamming=1, margin=33.25)))
    writer.close()
    writer.close()

    with open(csv_path, newline="") as fh:
        rows = list(csv.reader(fh))

    assert rows[0] == DetectionCsvWriter.HEADER
    assert len(rows[1]) == len(DetectionCsvWriter.HEADER)
    assert rows[1][:7] == ["123", "camera", "4", "tag36h11", "7", "1", "33.250000"]


def test_transform_csv_rows(tmp_path):
    csv_path = tmp_path / "transforms.csv"
    writer = TransformCsvWriter(str(csv_path))
    writer.open()
    writer.append(TransformStamped(Header(5, "camera", 2), "base", (0.1, 0.2, 1.5), (0.0, 0.0, 0.0, 1.0)))
    writer.flush()
    writer.close()

    lines = csv_path.read_text().strip().splitlines()
    assert lines[0].startswith("stamp_ns,frame_id,seq,child_frame_id")
    assert lines[1] == "5,camera,2,base,0.1,0.2,1.5,0.0,0.0,0.0,1.0"


def test_load_projection_from_camera_info_yaml(tmp_path):
    path = tmp_path / "camera.yaml"
    path.write_text(
        "image_width: 640\n"
        "image_height: 480\n"
        "camera_name: cam\n"
        "camera_matrix:\n"
        "  rows: 3\n"
        "  cols: 3\n"
        "  data: [600, 0, 320, 0, 600, 240, 0, 0, 1]\n"
        "projection_matrix:\n"
        "  rows: 3\n"
        "  cols: 4\n"
        "  data: [590, 0, 321, 0, 0, 590, 241, 0, 0, 0, 1, 0]\n"
    )

    P, size = load_projection(str(path))

    assert size == (640, 480)
    assert P.shape == (3, 4)
    assert P[0, 0] == 590.0
    assert P[1, 2] == 241.0


def test_load_projection_falls_back_to_camera_matrix(tmp_path):
    path = tmp_path / "camera.yaml"
    path.write_text("camera_matrix:\n  data: [600, 0, 320, 0, 600, 240, 0, 0, 1]\n")

    P, size = load_projection(str(path))

    assert size == (0, 0)
    assert np.allclose(P[:, :3], [[600, 0, 320], [0, 600, 240], [0, 0, 1]])
    assert np.allclose(P[:, 3], 0.0)


def test_load_projection_rejects_files_without_intrinsics(tmp_path):
    path = tmp_path / "camera.yaml"
    path.write_text("image_width: 640\n")
    with pytest.raises(ValueError):
        load_projection(str(path))


def test_load_projection_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_projection(str(tmp_path / "nope.yaml"))


def test_load_projection_reads_opencv_nodes(tmp_path):
    """OpenCV calibration files go through cv2.FileStorage."""
    path = tmp_path / "calib.yml"
    path.write_text("%YAML:1.0\n---\n")

    K = np.array([[500.0, 0.0, 300.0], [0.0, 500.0, 200.0], [0.0, 0.0, 1.0]])
    nodes = {
        "projection_matrix": MagicMock(**{"empty.return_value": True}),
        "camera_matrix": MagicMock(**{"mat.return_value": K}),
        "image_width": MagicMock(**{"real.return_value": 1280.0}),
        "image_height": MagicMock(**{"real.return_value": 720.0}),
    }
    fs = MagicMock()
    fs.getNode.side_effect = nodes.__getitem__

    with patch("tag_pipeline.services.calib.cv2.FileStorage", return_value=fs):
        P, size = load_projection(str(path))

    assert size == (1280, 720)
    assert np.allclose(P[:, :3], K)
    assert np.allclose(P[:, 3], 0.0)
    fs.release.assert_called_once()
