# src/behance_jobs/config.py
"""
Run settings: environment variables (usually from .env) overridden by CLI flags.

Numbers are coerced the forgiving way: junk for results_wanted means
"no limit", junk for max_pages falls back to 20, anything below 1 becomes 1.
"""

from __future__ import annotations

import os
import sys
from typing import Any, List, Optional, TypedDict

UNLIMITED = sys.maxsize


class Settings(TypedDict):
    keyword: str
    location: str
    job_type: str
    sort: str
    results_wanted: int
    max_pages: int
    collect_details: bool
    use_sitemap: bool
    sitemap_url: str
    start_urls: List[str]
    proxy_urls: List[str]
    max_concurrency: int
    max_request_retries: int
    retry_wait_min: float
    retry_wait_max: float
    request_timeout: float
    browser_timeout: float
    headless: bool
    empty_pages_limit: int
    output_path: str
    queue_journal: Optional[str]


def _int(value: Any, default: int, *, floor: int = 1) -> int:
    try:
        return max(floor, int(float(value)))
    except (TypeError, ValueError):
        return default


def _float(value: Any, default: float) -> float:
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return default


def _flag(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _csv(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [v.strip() for v in str(value).split(",") if v.strip()]


def _env(name: str) -> Optional[str]:
    return os.getenv(f"BEHANCE_{name.upper()}")


def load_settings(**overrides: Any) -> Settings:
    """
    Build Settings from BEHANCE_* env vars; keyword arguments that are not
    None win over the environment.
    """

    def get(name: str) -> Any:
        v = overrides.get(name)
        return v if v is not None else _env(name)

    return {
        "keyword": (get("keyword") or "").strip(),
        "location": (get("location") or "").strip(),
        "job_type": (get("job_type") or "").strip(),
        "sort": (get("sort") or "published_on").strip(),
        "results_wanted": _int(get("results_wanted"), UNLIMITED) if get("results_wanted") is not None else 100,
        "max_pages": _int(get("max_pages"), 20) if get("max_pages") is not None else 20,
        "collect_details": _flag(get("collect_details"), True),
        "use_sitemap": _flag(get("use_sitemap"), False),
        "sitemap_url": get("sitemap_url") or "https://www.behance.net/sitemap-jobs.xml",
        "start_urls": _csv(get("start_urls")),
        "proxy_urls": _csv(get("proxy_urls")),
        "max_concurrency": _int(get("max_concurrency"), 5),
        "max_request_retries": _int(get("max_request_retries"), 3, floor=0),
        "retry_wait_min": _float(get("retry_wait_min"), 1.0),
        "retry_wait_max": _float(get("retry_wait_max"), 16.0),
        "request_timeout": _float(get("request_timeout"), 30.0),
        "browser_timeout": _float(get("browser_timeout"), 25.0),
        "headless": _flag(get("headless"), True),
        "empty_pages_limit": _int(get("empty_pages_limit"), 3),
        "output_path": get("output_path") or "behance_jobs.jsonl",
        "queue_journal": get("queue_journal") or None,
    }
