import json
from pathlib import Path

from rankflow.errors import ExtractionFailure
from rankflow.schemas import Record


class ScriptedOracle:
    """Reads the "screenshot" bytes as JSON rows; files starting with FAIL raise."""

    def __init__(self) -> None:
        self.request_count = 0
        self.media_types: list[str] = []

    def extract(self, image: bytes, media_type: str = "image/jpeg") -> list[Record]:
        self.request_count += 1
        self.media_types.append(media_type)
        if image.startswith(b"FAIL"):
            raise ExtractionFailure("provider unavailable", "scripted", 503)
        return [Record(rank=row[0], commander_name=row[1], points=row[2]) for row in json.loads(image)]


def write_screenshot(path: Path, rows: list[tuple[int, str, int]] | None = None, *, fail: bool = False) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if fail:
        path.write_bytes(b"FAIL")
    else:
        path.write_text(json.dumps(rows or []), encoding="utf-8")
    return path
