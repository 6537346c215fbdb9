# src/behance_jobs/pipeline/diagnostics.py
from __future__ import annotations

import threading
from collections import Counter, deque
from typing import Deque, Dict, List, Optional

from behance_jobs.models import WorkItem
from behance_jobs.pipeline.compose import now_iso


class Diagnostics:
    """Request counters plus the last few failures, reported at run end."""

    def __init__(self, max_samples: int = 25):
        self.requests: Counter = Counter()
        self.statuses: Counter = Counter()
        self._samples: Deque[dict] = deque(maxlen=max_samples)
        self._lock = threading.Lock()

    def request(self, item: WorkItem, status: Optional[int] = None) -> None:
        with self._lock:
            self.requests[item.label.value] += 1
            if status is not None:
                self.statuses[str(status)] += 1

    def failure(self, item: WorkItem, error: BaseException) -> None:
        with self._lock:
            self._samples.append(
                {
                    "label": item.label.value,
                    "url": item.url,
                    "error": f"{type(error).__name__}: {error}",
                    "status": getattr(error, "status", None),
                    "at": now_iso(),
                }
            )

    def samples(self) -> List[dict]:
        with self._lock:
            return list(self._samples)

    def report(self) -> Dict[str, object]:
        with self._lock:
            return {
                "per_tier_request_counts": dict(self.requests),
                "status_code_histogram": dict(self.statuses),
                "recent_failure_samples": list(self._samples),
            }
