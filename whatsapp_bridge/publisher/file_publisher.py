"""JSON Lines publisher used for dry runs."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping

from ..engine.errors import PublishError
from .base import BasePublisher


class FilePublisher(BasePublisher):
    """Append every publish as one ``{destination, subject, payload}`` line."""

    def __init__(self, path: Path, subjects: Mapping[str, str] | None = None) -> None:
        self.path = Path(path)
        if self.path.suffix == "" or self.path.is_dir():
            stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
            self.path = self.path / f"events-{stamp}.jsonl"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.subjects = dict(subjects or {})
        self._file = self.path.open("a", encoding="utf-8")
        self.count = 0

    def publish(self, destination: str, payload: bytes) -> None:
        if self._file.closed:
            raise PublishError(f"File publisher is closed: {self.path}")
        try:
            decoded = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PublishError(f"Payload is not UTF-8 JSON: {exc}") from exc
        line = {
            "destination": destination,
            "subject": self.subjects.get(destination, destination),
            "payload": decoded,
        }
        try:
            self._file.write(json.dumps(line, ensure_ascii=False) + "\n")
        except OSError as exc:
            raise PublishError(f"Failed to write {self.path}: {exc}") from exc
        self.count += 1

    def is_connected(self) -> bool:
        return not self._file.closed

    def flush(self) -> None:
        if self._file.closed:
            return
        try:
            self._file.flush()
        except OSError as exc:
            raise PublishError(f"Failed to flush {self.path}: {exc}") from exc

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()


__all__ = ["FilePublisher"]
