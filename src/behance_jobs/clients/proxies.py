# src/behance_jobs/clients/proxies.py
"""
Round-robin proxy pool with a cool-down for identities that got blocked.

No proxies configured means every call to ``next()`` returns None (direct
connection) and ``mark_unhealthy`` only counts.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import Dict, List, Optional

log = logging.getLogger(__name__)


class ProxyPool:
    def __init__(self, proxy_urls: Optional[List[str]] = None, cooldown: float = 60.0):
        self._urls = list(proxy_urls or [])
        self._cycle = itertools.cycle(self._urls) if self._urls else None
        self._benched: Dict[str, float] = {}
        self._lock = threading.Lock()
        self.cooldown = cooldown
        self.unhealthy_marks = 0

    def next(self) -> Optional[str]:
        if not self._cycle:
            return None
        with self._lock:
            now = time.monotonic()
            for _ in range(len(self._urls)):
                url = next(self._cycle)
                if self._benched.get(url, 0.0) <= now:
                    return url
            # everyone is benched: the one freed soonest goes first
            return min(self._urls, key=lambda u: self._benched.get(u, 0.0))

    def mark_unhealthy(self, proxy: Optional[str]) -> None:
        with self._lock:
            self.unhealthy_marks += 1
            if proxy:
                self._benched[proxy] = time.monotonic() + self.cooldown
        if proxy:
            log.info("Rotating away from proxy %s", _redact(proxy))


def _redact(proxy: str) -> str:
    # drop credentials before logging
    return proxy.split("@", 1)[-1]
