# src/behance_jobs/models.py
"""
Typed shapes that flow through the scraper.

Records are plain dicts with type hints (TypedDict). Work items are the one
exception: they are frozen dataclasses because the queue keys on them and they
must never change after they are created.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field, replace
from typing import List, Optional, TypedDict

_WS = re.compile(r"\s+")


class Tier(enum.Enum):
    """Extraction technology, ordered cheapest first."""

    JSON = "json"
    HTML = "html"
    BROWSER = "browser"

    def next(self) -> Optional["Tier"]:
        # BROWSER is terminal
        order = list(Tier)
        idx = order.index(self)
        return order[idx + 1] if idx + 1 < len(order) else None


class Label(str, enum.Enum):
    JSON_LIST = "JSON_LIST"
    JSON_DETAIL = "JSON_DETAIL"
    HTML_LIST = "HTML_LIST"
    HTML_DETAIL = "HTML_DETAIL"
    BROWSER_LIST = "BROWSER_LIST"
    BROWSER_DETAIL = "BROWSER_DETAIL"
    SITEMAP = "SITEMAP"

    @property
    def tier(self) -> Optional[Tier]:
        return _LABEL_TIER[self][0]

    @property
    def is_list(self) -> bool:
        return _LABEL_TIER[self][1] == "list"

    @property
    def is_detail(self) -> bool:
        return _LABEL_TIER[self][1] == "detail"

    @property
    def escalation(self) -> Optional["Label"]:
        """The label one tier up, or None for the browser tier and sitemaps."""
        tier = self.tier
        nxt = tier.next() if tier else None
        if nxt is None:
            return None
        return Label.for_tier(nxt, "list" if self.is_list else "detail")

    @classmethod
    def for_tier(cls, tier: Tier, kind: str) -> "Label":
        for label, (t, k) in _LABEL_TIER.items():
            if t is tier and k == kind:
                return label
        raise ValueError(f"No label for tier={tier} kind={kind}")


_LABEL_TIER = {
    Label.JSON_LIST: (Tier.JSON, "list"),
    Label.JSON_DETAIL: (Tier.JSON, "detail"),
    Label.HTML_LIST: (Tier.HTML, "list"),
    Label.HTML_DETAIL: (Tier.HTML, "detail"),
    Label.BROWSER_LIST: (Tier.BROWSER, "list"),
    Label.BROWSER_DETAIL: (Tier.BROWSER, "detail"),
    Label.SITEMAP: (None, "sitemap"),
}


class StopReason(str, enum.Enum):
    RESULTS_WANTED_REACHED = "results_wanted_reached"
    MAX_PAGES_REACHED = "max_pages_reached"
    EMPTY_JSON_PAGES = "empty_json_pages"
    NO_MORE_RESULTS = "no_more_results"
    FINISHED = "finished"


@dataclass(frozen=True)
class FilterSet:
    """Query constraints for one listing chain."""

    keyword: str = ""
    location: str = ""
    job_type: str = ""
    sort: str = "published_on"

    @property
    def key(self) -> str:
        return "|".join(_WS.sub(" ", v or "").strip().lower() for v in (self.keyword, self.location, self.job_type, self.sort))

    @property
    def is_empty(self) -> bool:
        # sort is an ordering, not a constraint
        return not (self.keyword.strip() or self.location.strip() or self.job_type.strip())


class PartialRecord(TypedDict, total=False):
    """Fields harvested from a listing before the detail page is fetched."""

    id: Optional[str]
    title: Optional[str]
    company: Optional[str]
    location: Optional[str]
    salary: Optional[str]
    job_type: Optional[str]
    date_posted: Optional[str]
    url: Optional[str]


class JobRaw(TypedDict, total=False):
    """
    One job as extracted by any tier, already mapped onto our field names.

    Every key is optional; the composer decides what survives.
    """

    id: Optional[str]
    title: Optional[str]
    company: Optional[str]
    location: Optional[str]
    location_city: Optional[str]
    location_country: Optional[str]
    salary: Optional[str]
    job_type: Optional[str]
    allow_remote: Optional[bool]
    date_posted: Optional[str]
    description_html: Optional[str]
    application_url: Optional[str]
    external_url: Optional[str]
    tags: List[str]
    fields: List[str]
    categories: List[str]
    url: Optional[str]


class JobItem(TypedDict):
    """Canonical output record pushed to the dataset."""

    id: str
    title: str
    company: Optional[str]
    location: Optional[str]
    location_city: Optional[str]
    location_country: Optional[str]
    salary: Optional[str]
    job_type: Optional[str]
    allow_remote: Optional[bool]
    date_posted: Optional[str]
    description_html: Optional[str]
    description_text: Optional[str]
    application_url: Optional[str]
    external_url: Optional[str]
    tags: List[str]
    fields: List[str]
    categories: List[str]
    url: Optional[str]
    scraped_at: str
    source: str


class FetchResponse(TypedDict):
    status_code: int
    body: str
    # header names lower-cased; repeated headers (set-cookie) keep every value
    headers: List[tuple]
    # (name, value) pairs httpx parsed from Set-Cookie
    cookies: List[tuple]


@dataclass(frozen=True)
class WorkItem:
    """One unit of scheduled fetch-and-interpret work."""

    url: str
    label: Label
    filters: FilterSet = field(default_factory=FilterSet)
    page_no: Optional[int] = None
    job_id: Optional[str] = None
    # dict is unhashable, so exclude it from eq/hash
    partial: Optional[PartialRecord] = field(default=None, compare=False)

    @property
    def unique_key(self) -> str:
        if self.label is Label.SITEMAP:
            return f"{self.label.value}|{self.url}"
        target = self.job_id if self.label.is_detail else self.page_no
        return f"{self.label.value}|{self.filters.key}|{target}"

    def escalated(self, url: str) -> Optional["WorkItem"]:
        """The same page or job one tier up, or None past the browser tier."""
        nxt = self.label.escalation
        if nxt is None:
            return None
        return replace(self, label=nxt, url=url)

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "label": self.label.value,
            "filters": {
                "keyword": self.filters.keyword,
                "location": self.filters.location,
                "job_type": self.filters.job_type,
                "sort": self.filters.sort,
            },
            "page_no": self.page_no,
            "job_id": self.job_id,
            "partial": dict(self.partial) if self.partial else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkItem":
        return cls(
            url=data["url"],
            label=Label(data["label"]),
            filters=FilterSet(**(data.get("filters") or {})),
            page_no=data.get("page_no"),
            job_id=data.get("job_id"),
            partial=data.get("partial"),
        )
