# src/behance_jobs/errors.py
"""
Failure taxonomy for tier handlers.

- RetryableError: 5xx, timeouts, transport errors. Retried at the same tier.
- BlockedError: 4xx, bot-detection pages, unparsable payloads. Not retried;
  the next tier has usually been enqueued already (``escalated``).
- ExtractionError: nothing usable and no tier left. The item is abandoned.
"""

from __future__ import annotations

from typing import Optional


class ScrapeError(Exception):
    def __init__(self, message: str, *, url: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class RetryableError(ScrapeError):
    pass


class BlockedError(ScrapeError):
    def __init__(self, message: str, *, escalated: bool = False, **kw):
        super().__init__(message, **kw)
        self.escalated = escalated


class ExtractionError(ScrapeError):
    pass
