"""Utility helpers for reading record files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterator, List

from indexsync.records import TrackedRecord


def iter_jsonl_objects(path: Path) -> Iterator[dict]:
    """Yield one JSON object per non-empty line."""
    with path.open("r", encoding="utf-8") as handle:
        for line_no, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                value = json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{line_no}: invalid JSON ({exc.msg})") from exc
            if not isinstance(value, dict):
                raise ValueError(f"{path}:{line_no}: expected a JSON object")
            yield value


class JsonlRecordSource:
    """Persisted records read lazily from a JSON Lines file, one batch at a time."""

    def __init__(self, path: Path, type_name: str) -> None:
        self.path = Path(path)
        self.type_name = type_name

    def iter_batches(self, batch_size: int) -> Iterator[List[TrackedRecord]]:
        batch: List[TrackedRecord] = []
        for values in iter_jsonl_objects(self.path):
            batch.append(TrackedRecord(self.type_name, values, persisted=True))
            if len(batch) >= batch_size:
                yield batch
                batch = []
        if batch:
            yield batch


def load_jsonl_records(path: Path, type_name: str) -> List[TrackedRecord]:
    return [TrackedRecord(type_name, values, persisted=True) for values in iter_jsonl_objects(path)]
