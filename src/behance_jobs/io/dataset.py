# src/behance_jobs/io/dataset.py
from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import List


class JsonlDataset:
    """
    Append job items to a JSON Lines file.
    - One item per line, never rewritten.
    - Safe to call from several worker threads.
    - Returns number of items appended.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self.count = 0

    def push(self, items: list[dict]) -> int:
        if not items:
            return 0
        lines = "".join(json.dumps(it, ensure_ascii=False) + "\n" for it in items)
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(lines)
            self.count += len(items)
        return len(items)


class MemoryDataset:
    """Keeps pushed items in a list (dry runs, tests)."""

    def __init__(self) -> None:
        self.items: List[dict] = []
        self._lock = threading.Lock()

    def push(self, items: list[dict]) -> int:
        with self._lock:
            self.items.extend(items)
        return len(items)
