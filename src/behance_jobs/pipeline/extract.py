# src/behance_jobs/pipeline/extract.py
"""
Pull job records out of fetched bodies.

HTML pages are searched in order of trust:
1. embedded state blobs in inline <script> tags (the same data the JSON API returns)
2. schema.org JobPosting linked data
3. job cards / job links (lists) or page markup (details)
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterator, List, Optional, Tuple

from bs4 import BeautifulSoup

from behance_jobs.models import JobRaw
from behance_jobs.pipeline.normalize import (
    clean_ws,
    job_id_from_url,
    normalize_api_job,
    normalize_jsonld_job,
    normalize_many,
    text_or_none,
    to_abs,
    to_iso_date,
)

log = logging.getLogger(__name__)

# window.__X__ = {...};
_STATE_ASSIGN = re.compile(
    r"window\.(?:__INITIAL_STATE__|__PRELOADED_STATE__|__APOLLO_STATE__|__BEHANCE_STATE__)\s*=\s*"
)
_STATE_SCRIPT_IDS = {"__NEXT_DATA__", "beconfig-store_state", "__NUXT_DATA__"}

_BLOCK_MARKERS = (
    "captcha",
    "cf-challenge",
    "challenge-platform",
    "px-captcha",
    "access denied",
    "verify you are a human",
    "unusual traffic",
)

_JOB_LINK = re.compile(r"/(?:joblist|job)/\d+", re.I)


# ---- JSON payloads -----------------------------------------------------------------

def parse_json(body: str) -> Optional[Any]:
    try:
        return json.loads(body)
    except (TypeError, ValueError):
        return None


def _walk(node: Any, depth: int = 0) -> Iterator[dict]:
    if depth > 12:
        return
    if isinstance(node, dict):
        yield node
        for v in node.values():
            yield from _walk(v, depth + 1)
    elif isinstance(node, list):
        for v in node:
            yield from _walk(v, depth + 1)


def jobs_in(payload: Any) -> Optional[List[dict]]:
    """
    The first ``jobs`` array anywhere in the payload (may be empty), or None
    when no such key exists.
    """
    for node in _walk(payload):
        jobs = node.get("jobs")
        if isinstance(jobs, list):
            return [j for j in jobs if isinstance(j, dict)]
        if isinstance(jobs, dict) and isinstance(jobs.get("items"), list):
            return [j for j in jobs["items"] if isinstance(j, dict)]
    return None


def job_in(payload: Any) -> Optional[dict]:
    for node in _walk(payload):
        job = node.get("job")
        if isinstance(job, dict) and (job.get("title") or job.get("id")):
            return job
    return None


_PAGING_KEYS = ("meta", "pagination", "pageInfo", "page_info", "paging")


def _list_holder(payload: Any) -> Optional[dict]:
    for node in _walk(payload):
        if isinstance(node.get("jobs"), (list, dict)):
            return node
    return None


def _paging_nodes(payload: dict) -> Iterator[dict]:
    # only the envelope around the job list; job records may carry their own has_more
    holder = _list_holder(payload)
    bases = [payload]
    if holder is not None:
        bases.append(holder)
        if isinstance(holder["jobs"], dict):
            bases.append(holder["jobs"])
    for base in bases:
        yield base
        for key in _PAGING_KEYS:
            if isinstance(base.get(key), dict):
                yield base[key]


def is_exhausted(payload: Any, page: int) -> bool:
    """True when the payload's pagination says there is nothing after ``page``."""
    if not isinstance(payload, dict):
        return False
    for node in _paging_nodes(payload):
        if node.get("has_more") is False or node.get("hasMore") is False:
            return True
        total = node.get("total_pages") or node.get("totalPages")
        if isinstance(total, int) and page >= total:
            return True
    return False


# ---- HTML --------------------------------------------------------------------------

def looks_blocked(html: str) -> bool:
    head = (html or "")[:20000].lower()
    return any(marker in head for marker in _BLOCK_MARKERS)


def embedded_states(soup: BeautifulSoup) -> List[Any]:
    blobs: List[Any] = []
    decoder = json.JSONDecoder()
    for script in soup.find_all("script"):
        text = script.string or script.get_text() or ""
        if not text.strip():
            continue
        if script.get("id") in _STATE_SCRIPT_IDS or script.get("type") == "application/json":
            data = parse_json(text)
            if data is not None:
                blobs.append(data)
            continue
        for m in _STATE_ASSIGN.finditer(text):
            try:
                data, _ = decoder.raw_decode(text, m.end())
            except ValueError:
                log.debug("embedded state at %d is not JSON", m.start())
                continue
            blobs.append(data)
    return blobs


def _flatten_jsonld(data: Any) -> List[dict]:
    if isinstance(data, list):
        return [x for d in data for x in _flatten_jsonld(d)]
    if not isinstance(data, dict):
        return []
    if isinstance(data.get("@graph"), list):
        return _flatten_jsonld(data["@graph"])
    if isinstance(data.get("itemListElement"), list):
        out = []
        for el in data["itemListElement"]:
            if isinstance(el, dict):
                out.extend(_flatten_jsonld(el.get("item", el)))
        return out
    return [data]


def _is_job_posting(item: dict) -> bool:
    t = item.get("@type", "")
    if isinstance(t, list):
        return any("JobPosting" in str(x) for x in t)
    return "JobPosting" in str(t)


def jsonld_postings(soup: BeautifulSoup) -> List[dict]:
    out: List[dict] = []
    for script in soup.find_all("script", type="application/ld+json"):
        data = parse_json(script.string or script.get_text() or "")
        if data is None:
            continue
        out.extend(x for x in _flatten_jsonld(data) if _is_job_posting(x))
    return out


def _first_text(node, selector: str) -> Optional[str]:
    el = node.select_one(selector)
    return text_or_none(el.get_text(" ")) if el else None


def job_cards(soup: BeautifulSoup, base: str) -> List[JobRaw]:
    jobs: List[JobRaw] = []
    seen = set()
    for card in soup.select('[class*="JobCard"], [class*="job-card"], .job-item, [data-job-id]'):
        link = card.select_one('a[href*="/joblist/"], a[href*="/job/"]')
        url = to_abs(link.get("href"), base) if link else None
        if not url or url in seen:
            continue
        seen.add(url)
        jobs.append({
            "id": card.get("data-job-id") or job_id_from_url(url),
            "title": _first_text(card, '[class*="title"], h2, h3') or text_or_none(link.get_text(" ")),
            "company": _first_text(card, '[class*="company"], [class*="employer"]'),
            "location": _first_text(card, '[class*="location"]'),
            "job_type": _first_text(card, '[class*="job-type"], [class*="employment"]'),
            "salary": _first_text(card, '[class*="salary"], [class*="compensation"]'),
            "url": url,
        })
    if jobs:
        return jobs
    # bare links as a last resort
    for a in soup.find_all("a", href=_JOB_LINK):
        url = to_abs(a.get("href"), base)
        if not url or url in seen:
            continue
        seen.add(url)
        jobs.append({"id": job_id_from_url(url), "title": text_or_none(a.get_text(" ")), "url": url})
    return jobs


def list_jobs_from_html(html: str, url: str) -> Tuple[List[JobRaw], Optional[str], Any]:
    """
    Returns (jobs, strategy, payload). ``strategy`` names the extractor that
    produced the jobs; ``payload`` is the embedded state, if any, for
    pagination hints.
    """
    soup = BeautifulSoup(html, "html.parser")
    for blob in embedded_states(soup):
        jobs = jobs_in(blob)
        if jobs:
            return normalize_many(jobs), "embedded_state", blob
    postings = jsonld_postings(soup)
    if postings:
        return [normalize_jsonld_job(p) for p in postings], "json_ld", None
    cards = job_cards(soup, url)
    if cards:
        return cards, "cards", None
    return [], None, None


def _posted_date(soup: BeautifulSoup) -> Optional[str]:
    stamp = soup.select_one("time[datetime]")
    parsed = to_iso_date(stamp["datetime"]) if stamp else None
    return parsed or to_iso_date(_first_text(soup, '[class*="posted"], [class*="date"], time'))


def _dom_detail(soup: BeautifulSoup, url: str) -> Optional[JobRaw]:
    title = _first_text(soup, 'h1, [class*="job-title"], [class*="JobTitle"]')
    if not title:
        return None
    desc = soup.select_one(
        '[class*="description"], [class*="Description"], .job-description, [class*="JobDescription"]'
    )
    return {
        "id": job_id_from_url(url),
        "title": title,
        "company": _first_text(soup, '[class*="company"], [class*="employer"], [class*="CompanyName"]'),
        "location": _first_text(soup, '[class*="location"], [class*="Location"]'),
        "job_type": _first_text(soup, '[class*="job-type"], [class*="employment-type"], [class*="JobType"]'),
        "salary": _first_text(soup, '[class*="salary"], [class*="compensation"], [class*="Salary"]'),
        "date_posted": _posted_date(soup),
        "description_html": desc.decode_contents().strip() if desc else None,
        "url": url,
    }


def detail_job_from_html(html: str, url: str) -> Tuple[Optional[JobRaw], Optional[str]]:
    soup = BeautifulSoup(html, "html.parser")
    for blob in embedded_states(soup):
        job = job_in(blob)
        if job:
            raw = normalize_api_job(job)
            raw["url"] = raw.get("url") or url
            return raw, "embedded_state"
    for posting in jsonld_postings(soup):
        return normalize_jsonld_job(posting, url), "json_ld"
    raw = _dom_detail(soup, url)
    return (raw, "dom") if raw else (None, None)


# ---- Sitemap -----------------------------------------------------------------------

def parse_sitemap(xml: str) -> Tuple[List[str], List[str]]:
    """Returns (job detail URLs, child sitemap URLs)."""
    soup = BeautifulSoup(xml, "html.parser")
    children = [clean_ws(s.loc.get_text()) for s in soup.find_all("sitemap") if s.loc]
    job_urls: List[str] = []
    for u in soup.find_all("url"):
        if not u.loc:
            continue
        loc = clean_ws(u.loc.get_text())
        if job_id_from_url(loc) and loc not in job_urls:
            job_urls.append(loc)
    return job_urls, children
