# src/behance_jobs/pipeline/state.py
"""
Shared, lock-guarded state for one run.

Handlers run on worker threads and all receive the same RunState. Anything
that decides scheduling (seen job ids, per-label page keys, budget slots) is a
test-and-set under the lock, done at the moment the decision is made.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Set, Tuple

from behance_jobs.models import Label, StopReason, WorkItem


class CookieJar:
    """Name -> value map. Merge only; serialised at the fetch boundary."""

    def __init__(self) -> None:
        self._cookies: Dict[str, str] = {}
        self._lock = threading.Lock()

    def merge_response(self, pairs: Iterable[Tuple[str, str]]) -> None:
        """Cookies httpx parsed off a response, as (name, value) pairs."""
        self.merge({name: value for name, value in pairs if name})

    def merge_browser(self, cookies: Iterable[dict]) -> None:
        self.merge({c["name"]: c.get("value", "") for c in cookies if c.get("name")})

    def merge(self, pairs: Dict[str, str]) -> None:
        if not pairs:
            return
        with self._lock:
            self._cookies.update(pairs)

    def as_dict(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._cookies)

    def header(self) -> str:
        return "; ".join(f"{k}={v}" for k, v in self.as_dict().items())


class RunState:
    def __init__(self, results_wanted: int, max_pages: int, empty_pages_limit: int = 3):
        self.results_wanted = results_wanted
        self.max_pages = max_pages
        self.empty_pages_limit = empty_pages_limit

        self.saved = 0
        self.list_pages_processed = 0
        self.details_processed = 0
        self.consecutive_empty_pages = 0
        self.pending_details = 0
        self.seen_job_ids: Set[str] = set()
        self.stop_reason: Optional[StopReason] = None
        self.cookies = CookieJar()

        self._scheduled: Dict[Label, Set[str]] = {label: set() for label in Label}
        self._parked: List[WorkItem] = []
        self._backlog: Deque[WorkItem] = deque()
        self._lock = threading.RLock()

    # ---- stop / budget -------------------------------------------------------------

    def stop(self, reason: StopReason) -> bool:
        """Record why the run stopped. The first reason wins."""
        with self._lock:
            if self.stop_reason is None:
                self.stop_reason = reason
                return True
            return False

    def budget_met(self) -> bool:
        with self._lock:
            return self.saved >= self.results_wanted

    def claim_slots(self, n: int) -> int:
        """Reserve up to ``n`` output slots; returns how many were granted."""
        with self._lock:
            granted = max(0, min(n, self.results_wanted - self.saved))
            self.saved += granted
            if granted and self.saved >= self.results_wanted:
                self.stop(StopReason.RESULTS_WANTED_REACHED)
            return granted

    # ---- dedup ------------------------------------------------------------------------

    def try_schedule(self, item: WorkItem) -> bool:
        """Test-and-set on the item's unique key within its label."""
        with self._lock:
            bucket = self._scheduled[item.label]
            if item.unique_key in bucket:
                return False
            bucket.add(item.unique_key)
            return True

    def reserve_details(self, job_ids: Iterable[str]) -> List[str]:
        """
        Mark job ids as seen and reserve a budget slot for each one that is new.
        Ids seen before are skipped; ids beyond the budget are not marked.
        """
        accepted: List[str] = []
        with self._lock:
            for jid in job_ids:
                if not jid or jid in self.seen_job_ids:
                    continue
                if not self._room():
                    break
                self.seen_job_ids.add(jid)
                self.pending_details += 1
                accepted.append(jid)
        return accepted

    def mark_seen(self, job_ids: Iterable[str]) -> List[str]:
        """Listing-only mode: mark ids as seen without reserving detail slots."""
        fresh: List[str] = []
        with self._lock:
            for jid in job_ids:
                if jid and jid not in self.seen_job_ids:
                    self.seen_job_ids.add(jid)
                    fresh.append(jid)
        return fresh

    def _room(self) -> bool:
        # caller holds the lock
        return self.saved + self.pending_details < self.results_wanted

    def park_if_full(self, item: WorkItem) -> bool:
        """Park a list page when every remaining slot is reserved. True if parked."""
        with self._lock:
            if self._room():
                return False
            self._parked.append(item)
            return True

    def defer_details(self, items: Iterable[WorkItem]) -> None:
        """Hold detail items that found no free slot until a reservation is released."""
        with self._lock:
            self._backlog.extend(i for i in items if i.job_id not in self.seen_job_ids)

    def _resume(self) -> List[WorkItem]:
        # caller holds the lock. Deferred details come before parked pages.
        resumed: List[WorkItem] = []
        while self._backlog and self._room():
            item = self._backlog.popleft()
            if item.job_id in self.seen_job_ids:
                continue
            self.seen_job_ids.add(item.job_id)
            self.pending_details += 1
            resumed.append(item)
        if self._parked and self._room():
            resumed.extend(self._parked)
            self._parked = []
        return resumed

    def finish_detail(self, ready: bool) -> Tuple[bool, List[WorkItem]]:
        """
        Settle a fetched detail. Returns (granted, resumed): ``granted`` says the
        composed item may be pushed; ``resumed`` are deferred details (already
        reserved) and parked pages to enqueue because the budget has room again.
        """
        with self._lock:
            self.pending_details = max(0, self.pending_details - 1)
            self.details_processed += 1
            granted = bool(self.claim_slots(1)) if ready else False
            return granted, self._resume()

    def release_detail(self) -> List[WorkItem]:
        """Give back a reservation for a detail that was never fetched."""
        with self._lock:
            self.pending_details = max(0, self.pending_details - 1)
            return self._resume()

    # ---- counters -------------------------------------------------------------------

    def list_page_done(self) -> None:
        with self._lock:
            self.list_pages_processed += 1

    def empty_page(self) -> int:
        with self._lock:
            self.consecutive_empty_pages += 1
            return self.consecutive_empty_pages

    def reset_empty_pages(self) -> None:
        with self._lock:
            self.consecutive_empty_pages = 0

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "saved": self.saved,
                "list_pages_processed": self.list_pages_processed,
                "details_processed": self.details_processed,
                "stop_reason": (self.stop_reason or StopReason.FINISHED).value,
            }
