from dataclasses import asdict, is_dataclass
from pathlib import Path
from time import strftime
import json


class SessionStorage:
    """One directory per run: config.json, summary.json, logs/ and sink files."""

    def __init__(self, root: str, name: str = "session"):
        self.root = Path(root)
        self.session_dir = None
        self.logs_dir = None
        self.name = name

    def begin(self) -> str:
        sid = f"{self.name}_{strftime('%Y%m%d_%H%M%S')}"
        self.session_dir = self.root / sid
        self.logs_dir = self.session_dir / "logs"
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        return str(self.session_dir)

    @property
    def log_path(self) -> Path:
        return self.logs_dir / "session.log"

    def _dump(self, filename: str, data) -> Path:
        if is_dataclass(data):
            data = asdict(data)
        path = self.session_dir / filename
        with open(path, "w") as fp:
            json.dump(data, fp, indent=2, default=str)
        return path

    def write_manifest(self, meta: dict) -> Path:
        return self._dump("config.json", meta)

    def write_summary(self, summary) -> Path:
        return self._dump("summary.json", summary)
