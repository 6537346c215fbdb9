# src/behance_jobs/clients/behance.py

"""
Plain-function HTTP client for behance.net job pages.

- Keep *all* URL shapes and request headers here so handlers never build URLs.
- One fetch function that returns status/body/headers and never raises on
  4xx/5xx; the caller decides what a status means.
- Timeouts and connection errors become RetryableError (same as a 5xx).
"""

from __future__ import annotations

import logging
from typing import Dict, Optional
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from behance_jobs.errors import RetryableError
from behance_jobs.models import FetchResponse, FilterSet

log = logging.getLogger(__name__)

BASE_URL = "https://www.behance.net"
JOBLIST_URL = f"{BASE_URL}/joblist"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


# ---- URL builders --------------------------------------------------------------

def _list_params(page: int, filters: FilterSet) -> Dict[str, str]:
    params: Dict[str, str] = {"page": str(page)}
    if filters.keyword.strip():
        params["search"] = filters.keyword.strip()
    if filters.location.strip():
        params["location"] = filters.location.strip()
    if filters.job_type.strip():
        params["job_type"] = filters.job_type.strip()
    if filters.sort.strip():
        params["sort"] = filters.sort.strip()
    return params


def build_list_url(page: int, filters: FilterSet) -> str:
    """HTML listing page, e.g. /joblist?page=2&search=design&sort=published_on"""
    return f"{JOBLIST_URL}?{urlencode(_list_params(page, filters))}"


def build_api_list_url(page: int, filters: FilterSet) -> str:
    """
    Same path as the HTML listing; the site answers JSON when the request looks
    like its own XHR (see json_headers). The marker param keeps the two tiers'
    URLs distinct for caches and logs.
    """
    params = _list_params(page, filters)
    params["format"] = "json"
    return f"{JOBLIST_URL}?{urlencode(params)}"


def build_detail_url(job_id: str) -> str:
    return f"{JOBLIST_URL}/{job_id}"


def build_api_detail_url(job_id: str) -> str:
    return f"{JOBLIST_URL}/{job_id}?{urlencode({'format': 'json'})}"


def filters_from_url(url: str, base: FilterSet) -> tuple:
    """
    Read filter overrides and page number out of a listing URL.
    Returns (FilterSet, page). Params missing from the URL keep ``base`` values.
    """
    qs = parse_qs(urlparse(url).query)

    def one(key: str, default: str) -> str:
        vals = qs.get(key)
        return vals[0] if vals else default

    filters = FilterSet(
        keyword=one("search", base.keyword),
        location=one("location", base.location),
        job_type=one("job_type", base.job_type),
        sort=one("sort", base.sort),
    )
    try:
        page = max(1, int(one("page", "1")))
    except ValueError:
        page = 1
    return filters, page


# ---- Headers ---------------------------------------------------------------------

def html_headers() -> Dict[str, str]:
    return {
        "User-Agent": USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }


def json_headers() -> Dict[str, str]:
    return {
        "User-Agent": USER_AGENT,
        "Accept": "application/json, text/javascript, */*; q=0.01",
        "Accept-Language": "en-US,en;q=0.9",
        "X-Requested-With": "XMLHttpRequest",
        "Referer": JOBLIST_URL,
    }


def xml_headers() -> Dict[str, str]:
    return {"User-Agent": USER_AGENT, "Accept": "application/xml,text/xml;q=0.9,*/*;q=0.8"}


# ---- Fetch -----------------------------------------------------------------------

def fetch(
    url: str,
    headers: Dict[str, str],
    proxy: Optional[str] = None,
    *,
    timeout: float = 30.0,
) -> FetchResponse:
    """
    Do one GET and hand back what came over the wire.

    A fresh client per call: cookies are managed by the run's CookieJar and
    passed in ``headers``, so nothing should stick to a long-lived client.
    """
    try:
        with httpx.Client(timeout=timeout, proxy=proxy, follow_redirects=True) as client:
            resp = client.get(url, headers=headers)
    except httpx.TimeoutException as e:
        raise RetryableError(f"timeout fetching {url}: {e}", url=url) from e
    except httpx.TransportError as e:
        raise RetryableError(f"transport error fetching {url}: {e}", url=url) from e

    log.debug("GET %s -> %s", url, resp.status_code)
    return {
        "status_code": resp.status_code,
        "body": resp.text,
        "headers": [(k.lower(), v) for k, v in resp.headers.multi_items()],
        "cookies": [(c.name, c.value or "") for c in resp.cookies.jar],
    }


class HttpFetcher:
    """Fetch capability bound to a timeout, as handed to the tier handlers."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    def fetch(self, url: str, headers: Dict[str, str], proxy: Optional[str] = None) -> FetchResponse:
        return fetch(url, headers, proxy, timeout=self.timeout)
