# src/behance_jobs/pipeline/compose.py
"""
Build the canonical output item from a tier's record and the partial record
collected on the listing page.
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from behance_jobs.models import JobItem, JobRaw, PartialRecord
from behance_jobs.pipeline.normalize import html_to_text, job_id_from_url

SOURCE = "behance.net"

_SCALAR_FIELDS = (
    "title",
    "company",
    "location",
    "location_city",
    "location_country",
    "salary",
    "job_type",
    "allow_remote",
    "date_posted",
    "description_html",
    "application_url",
    "external_url",
    "url",
)
_LIST_FIELDS = ("tags", "fields", "categories")


def _pick(primary, fallback):
    # empty strings count as missing; False is a real answer for allow_remote
    if primary is None or primary == "":
        return fallback
    return primary


def now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds")


def compose_job(
    raw: Optional[JobRaw],
    partial: Optional[PartialRecord] = None,
    *,
    url: Optional[str] = None,
    scraped_at: Optional[str] = None,
) -> Optional[JobItem]:
    """
    Merge ``raw`` over ``partial``. Raw values win when they are not null,
    partial values fill the gaps. Returns None when the result has no title
    or no resolvable id.
    """
    raw = raw or {}
    partial = partial or {}

    merged = {k: _pick(raw.get(k), partial.get(k)) for k in _SCALAR_FIELDS}
    merged["url"] = _pick(merged["url"], url)

    job_id = _pick(raw.get("id"), partial.get("id")) or job_id_from_url(merged["url"])
    if not merged["title"] or not job_id:
        return None

    desc_html = merged["description_html"]
    item: JobItem = {
        "id": str(job_id),
        **merged,
        "description_html": desc_html.strip() if isinstance(desc_html, str) else desc_html,
        "description_text": html_to_text(desc_html),
        **{k: list(raw.get(k) or []) for k in _LIST_FIELDS},
        "scraped_at": scraped_at or now_iso(),
        "source": SOURCE,
    }
    return item


def partial_from(raw: JobRaw) -> PartialRecord:
    """The listing-context subset carried forward to a detail fetch."""
    return {
        k: raw.get(k)
        for k in ("id", "title", "company", "location", "salary", "job_type", "date_posted", "url")
        if raw.get(k) is not None
    }
