import csv

from ..tp_types import DetectionRecord, Header, TransformStamped


class _CsvFile:
    HEADER: list[str] = []

    def __init__(self, csv_path: str):
        self.csv_path = csv_path
        self._opened = False
        self._fh = None
        self._w = None

    def open(self):
        self._fh = open(self.csv_path, "w", newline="")
        self._w = csv.writer(self._fh)
        self._w.writerow(self.HEADER)
        self._opened = True

    def _write(self, row):
        self._w.writerow(row)

    def flush(self):
        if self._fh:
            self._fh.flush()

    def close(self):
        if self._opened and self._fh:
            self._fh.close()
            self._opened = False
            self._fh = None
            self._w = None


class DetectionCsvWriter(_CsvFile):
    HEADER = [
        "stamp_ns", "frame_id", "seq",
        "family", "id", "hamming", "decision_margin",
        "centre_x", "centre_y",
        *[f"corner{i}_{a}" for i in range(4) for a in ("x", "y")],
        *[f"h{r}{c}" for r in range(3) for c in range(3)],
    ]

    @staticmethod
    def row(header: Header, d: DetectionRecord) -> list:
        return [
            header.stamp_ns, header.frame_id, header.seq,
            d.family, d.id, d.hamming, f"{d.decision_margin:.6f}",
            *d.centre,
            *[v for corner in d.corners for v in corner],
            *d.homography,
        ]

    def append(self, header: Header, d: DetectionRecord):
        self._write(self.row(header, d))


class TransformCsvWriter(_CsvFile):
    HEADER = [
        "stamp_ns", "frame_id", "seq", "child_frame_id",
        "tx", "ty", "tz",
        "qx", "qy", "qz", "qw",
    ]

    @staticmethod
    def row(t: TransformStamped) -> list:
        return [
            t.header.stamp_ns, t.header.frame_id, t.header.seq, t.child_frame_id,
            *t.translation,
            *t.rotation,
        ]

    def append(self, t: TransformStamped):
        self._write(self.row(t))
