# src/behance_jobs/io/queue.py
"""
Deduplicating FIFO of work items, optionally journalled to disk.

The journal is JSON Lines with two record kinds:
  {"op": "add", "item": {...}}    item accepted into the queue
  {"op": "done", "key": "..."}    item handled (success or given up)
Replaying it on start restores pending items, so an interrupted run resumes
where it stopped. Items taken but not marked done are handed out again.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from pathlib import Path
from typing import Deque, Dict, Optional, Set

from behance_jobs.models import WorkItem

log = logging.getLogger(__name__)


class RequestQueue:
    def __init__(self, journal: Optional[str | Path] = None):
        self._pending: Deque[WorkItem] = deque()
        self._known: Set[str] = set()
        self._in_flight: Dict[str, WorkItem] = {}
        self._lock = threading.Lock()
        self._journal = Path(journal) if journal else None
        if self._journal and self._journal.exists():
            self._replay()

    def _replay(self) -> None:
        added: Dict[str, WorkItem] = {}
        done: Set[str] = set()
        with self._journal.open(encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    rec = json.loads(line)
                except ValueError:
                    # a torn last line from a crash
                    log.warning("Skipping unreadable journal line")
                    continue
                if rec.get("op") == "add":
                    item = WorkItem.from_dict(rec["item"])
                    added.setdefault(item.unique_key, item)
                elif rec.get("op") == "done":
                    done.add(rec["key"])
        self._known = set(added)
        self._pending.extend(item for key, item in added.items() if key not in done)
        log.info("Restored queue: %d known, %d pending", len(self._known), len(self._pending))

    def _write(self, rec: dict) -> None:
        if not self._journal:
            return
        with self._journal.open("a", encoding="utf-8") as f:
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")

    def add(self, item: WorkItem) -> bool:
        """False (and nothing happens) if an item with the same unique key was ever added."""
        with self._lock:
            key = item.unique_key
            if key in self._known:
                return False
            self._known.add(key)
            self._pending.append(item)
            self._write({"op": "add", "item": item.to_dict()})
            return True

    def fetch_next(self) -> Optional[WorkItem]:
        with self._lock:
            if not self._pending:
                return None
            item = self._pending.popleft()
            self._in_flight[item.unique_key] = item
            return item

    def mark_handled(self, item: WorkItem) -> None:
        with self._lock:
            self._in_flight.pop(item.unique_key, None)
            self._write({"op": "done", "key": item.unique_key})

    def pending_items(self) -> list:
        with self._lock:
            return list(self._pending)

    def is_finished(self) -> bool:
        with self._lock:
            return not self._pending and not self._in_flight
