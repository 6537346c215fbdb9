# src/behance_jobs/pipeline/normalize.py
"""
Turn whatever a tier extracted into our JobRaw shape.

Behance answers in three dialects: the JSON API job object, schema.org
JobPosting linked data, and loose HTML cards. Each gets a mapper here, plus
the small text/URL/number helpers the rest of the pipeline shares.
"""

from __future__ import annotations

import datetime as dt
import re
from typing import Any, Iterable, List, Optional
from urllib.parse import parse_qs, urljoin, urlparse

from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from behance_jobs.models import JobRaw

BASE_URL = "https://www.behance.net"

_WS = re.compile(r"\s+")
# /joblist/123456/Some-Title, /job/123456, ?id=123456
_JOB_PATH_ID = re.compile(r"/(?:joblist|job|jobs)/(\d+)(?:[/?#]|$)", re.I)


def clean_ws(text: Any) -> str:
    if text is None:
        return ""
    return _WS.sub(" ", str(text)).strip()


def text_or_none(text: Any) -> Optional[str]:
    return clean_ws(text) or None


def icontains(haystack: Any, needle: Any) -> bool:
    """Case and whitespace insensitive substring check."""
    n = clean_ws(needle).lower()
    if not n:
        return True
    return n in clean_ws(haystack).lower()


def to_abs(href: Optional[str], base: str = BASE_URL) -> Optional[str]:
    if not href:
        return None
    try:
        return urljoin(base, href.strip())
    except ValueError:
        return None


def job_id_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    m = _JOB_PATH_ID.search(url)
    if m:
        return m.group(1)
    try:
        qs = parse_qs(urlparse(url).query)
    except ValueError:
        return None
    for key in ("id", "job_id", "jobId"):
        val = (qs.get(key) or [""])[0]
        if val.isdigit():
            return val
    return None


_NUMERIC = re.compile(r"^-?\d+(?:\.\d+)?$")
_RELATIVE = re.compile(r"\b(\d+|an?)\s*(minute|min|hour|hr|day|week|month|year)s?\s+ago", re.I)
_UNIT_DAYS = {"minute": 1 / 1440, "min": 1 / 1440, "hour": 1 / 24, "hr": 1 / 24, "day": 1, "week": 7, "month": 30, "year": 365}
_YEAR = re.compile(r"\b(?:19|20)\d{2}\b")


def _from_epoch(seconds: float) -> Optional[str]:
    # anything past year ~5000 in seconds is really milliseconds
    if seconds > 1e11:
        seconds /= 1000.0
    try:
        return dt.datetime.fromtimestamp(seconds, tz=dt.timezone.utc).isoformat(timespec="seconds")
    except (OverflowError, OSError, ValueError):
        return None


def _as_utc(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.isoformat(timespec="seconds")


def to_iso_date(value: Any, now: Optional[dt.datetime] = None) -> Optional[str]:
    """
    Coerce a posting date to ISO-8601, or None when it cannot be read.

    Accepts Unix seconds or milliseconds (numbers or numeric strings), ISO
    dates and timestamps, relative text like "Posted 3 days ago" (counted
    back from ``now``), and written dates that carry a year.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _from_epoch(float(value))
    if not isinstance(value, str):
        return None
    s = clean_ws(value)
    if not s:
        return None
    if _NUMERIC.match(s):
        return _from_epoch(float(s))
    try:
        return dt.date.fromisoformat(s).isoformat()
    except ValueError:
        pass

    now = now or dt.datetime.now(dt.timezone.utc)
    low = s.lower()
    if "just now" in low or "today" in low:
        return now.date().isoformat()
    if "yesterday" in low:
        return (now - dt.timedelta(days=1)).date().isoformat()
    m = _RELATIVE.search(low)
    if m:
        n = 1 if m.group(1).startswith("a") else int(m.group(1))
        return (now - dt.timedelta(days=n * _UNIT_DAYS[m.group(2)])).date().isoformat()

    try:
        return _as_utc(date_parser.isoparse(s))
    except (ValueError, OverflowError):
        pass
    if not _YEAR.search(s):
        # without a year, fuzzy parsing fills the gaps with today's date
        return None
    try:
        return _as_utc(date_parser.parse(s, fuzzy=True))
    except (ValueError, OverflowError):
        return None


def html_to_text(html: Optional[str]) -> Optional[str]:
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "iframe"]):
        tag.decompose()
    return text_or_none(soup.get_text(" "))


def _name_of(value: Any) -> Optional[str]:
    # company/location come as plain strings or {"name": ...} / {"display_name": ...}
    if isinstance(value, dict):
        for key in ("name", "display_name", "displayName", "title", "label"):
            if value.get(key):
                return text_or_none(value[key])
        return None
    return text_or_none(value)


def _str_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, (str, dict)):
        value = [value]
    out: List[str] = []
    for v in value:
        name = _name_of(v)
        if name and name not in out:
            out.append(name)
    return out


def _first(data: dict, *keys: str) -> Any:
    for k in keys:
        v = data.get(k)
        if v not in (None, "", [], {}):
            return v
    return None


def _salary_text(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        # {"min": 50, "max": 70, "currency": "USD", "period": "hour"}
        lo = _first(value, "min", "minValue", "from")
        hi = _first(value, "max", "maxValue", "to")
        cur = _first(value, "currency", "currency_code") or ""
        period = _first(value, "period", "unitText", "unit") or ""
        if lo is None and hi is None:
            inner = value.get("value")
            return _salary_text(inner) if inner is not None else text_or_none(value.get("text"))
        rng = f"{lo}-{hi}" if lo is not None and hi is not None and lo != hi else str(lo if lo is not None else hi)
        return clean_ws(f"{cur} {rng} {('/' + str(period).lower()) if period else ''}") or None
    return text_or_none(value)


def normalize_api_job(x: dict) -> JobRaw:
    """Map one job object from the Behance JSON API."""
    loc = x.get("location")
    city = country = None
    if isinstance(loc, dict):
        city = text_or_none(_first(loc, "city", "locality"))
        country = text_or_none(_first(loc, "country", "country_code", "countryName"))
        location = _name_of(loc) or ", ".join(p for p in (city, country) if p) or None
    else:
        location = text_or_none(loc)
    city = city or text_or_none(_first(x, "location_city", "city"))
    country = country or text_or_none(_first(x, "location_country", "country"))

    url = to_abs(_first(x, "url", "job_url", "permalink"))
    job_id = _first(x, "id", "job_id", "jobId")
    remote = _first(x, "allow_remote", "is_remote", "remote")

    return {
        "id": str(job_id) if job_id is not None else job_id_from_url(url),
        "title": text_or_none(_first(x, "title", "name")),
        "company": _name_of(_first(x, "company", "company_name", "organization", "owner")),
        "location": location,
        "location_city": city,
        "location_country": country,
        "salary": _salary_text(_first(x, "salary", "compensation", "pay")),
        "job_type": _name_of(_first(x, "job_type", "employment_type", "type")),
        "allow_remote": bool(remote) if remote is not None else None,
        "date_posted": to_iso_date(_first(x, "published_on", "posted_on", "created_on", "date_posted")),
        "description_html": _first(x, "description", "description_html", "body"),
        "application_url": to_abs(_first(x, "application_url", "apply_url")),
        "external_url": to_abs(_first(x, "external_url", "external_link")),
        "tags": _str_list(x.get("tags")),
        "fields": _str_list(_first(x, "fields", "creative_fields")),
        "categories": _str_list(x.get("categories")),
        "url": url,
    }


def normalize_jsonld_job(item: dict, page_url: Optional[str] = None) -> JobRaw:
    """Map a schema.org JobPosting object."""
    places = item.get("jobLocation") or []
    if isinstance(places, dict):
        places = [places]
    city = country = None
    for place in places:
        addr = (place or {}).get("address") or {}
        if isinstance(addr, dict):
            city = city or text_or_none(addr.get("addressLocality"))
            c = addr.get("addressCountry")
            country = country or _name_of(c)
    location = ", ".join(p for p in (city, country) if p) or None
    remote = "TELECOMMUTE" in str(item.get("jobLocationType") or "").upper()

    ident = item.get("identifier")
    if isinstance(ident, dict):
        ident = ident.get("value")
    url = to_abs(item.get("url")) or page_url
    job_type = item.get("employmentType")
    if isinstance(job_type, list):
        job_type = ", ".join(str(t) for t in job_type)

    return {
        "id": str(ident) if ident else job_id_from_url(url),
        "title": text_or_none(item.get("title") or item.get("name")),
        "company": _name_of(item.get("hiringOrganization")),
        "location": location,
        "location_city": city,
        "location_country": country,
        "salary": _salary_text(item.get("baseSalary")),
        "job_type": text_or_none(job_type),
        "allow_remote": True if remote else None,
        "date_posted": to_iso_date(item.get("datePosted")),
        "description_html": item.get("description"),
        "application_url": None,
        "external_url": None,
        "tags": [],
        "fields": _str_list(item.get("occupationalCategory")),
        "categories": _str_list(item.get("industry")),
        "url": url,
    }


def normalize_many(items: Iterable[dict]) -> List[JobRaw]:
    return [normalize_api_job(x) for x in items if isinstance(x, dict)]
