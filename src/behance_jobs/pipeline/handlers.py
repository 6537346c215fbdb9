# src/behance_jobs/pipeline/handlers.py
"""
One handler per work-item label.

Every handler does one of four things: push finished items, enqueue more work
(next page, details, or the same page/job one tier up), raise, or return
quietly. Escalation happens only on a 4xx, an unreadable payload, or an empty
result that might mean the tier is degraded. It never skips a tier.

    JSON_LIST   -> HTML_LIST   -> BROWSER_LIST
    JSON_DETAIL -> HTML_DETAIL -> BROWSER_DETAIL
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from behance_jobs.clients import behance
from behance_jobs.config import Settings
from behance_jobs.errors import BlockedError, ExtractionError, RetryableError
from behance_jobs.models import FetchResponse, JobItem, JobRaw, Label, StopReason, WorkItem
from behance_jobs.pipeline.compose import compose_job, partial_from
from behance_jobs.pipeline.diagnostics import Diagnostics
from behance_jobs.pipeline.extract import (
    detail_job_from_html,
    is_exhausted,
    job_in,
    jobs_in,
    list_jobs_from_html,
    looks_blocked,
    parse_json,
    parse_sitemap,
)
from behance_jobs.pipeline.filter import filter_jobs, matches_filters
from behance_jobs.pipeline.normalize import job_id_from_url, normalize_api_job, normalize_many
from behance_jobs.pipeline.state import RunState

log = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """Everything a handler may touch. Built once per run by the controller."""

    settings: Settings
    state: RunState
    queue: Any  # add(item) -> bool
    sink: Any  # push(items)
    fetcher: Any  # fetch(url, headers, proxy) -> FetchResponse
    browser: Any  # launch(proxy, cookies) -> session
    proxies: Any  # next() / mark_unhealthy(proxy)
    diagnostics: Diagnostics

    def enqueue(self, item: WorkItem) -> bool:
        if not self.state.try_schedule(item):
            return False
        return self.queue.add(item)


# ---- URLs per label ---------------------------------------------------------------

def url_for(label: Label, item: WorkItem, page: Optional[int] = None) -> str:
    page = page if page is not None else (item.page_no or 1)
    if label is Label.JSON_LIST:
        return behance.build_api_list_url(page, item.filters)
    if label in (Label.HTML_LIST, Label.BROWSER_LIST):
        return behance.build_list_url(page, item.filters)
    if label is Label.JSON_DETAIL:
        return behance.build_api_detail_url(item.job_id)
    if label in (Label.HTML_DETAIL, Label.BROWSER_DETAIL):
        partial_url = (item.partial or {}).get("url")
        return partial_url or behance.build_detail_url(item.job_id)
    raise ValueError(f"no URL shape for {label}")


def escalate(ctx: PipelineContext, item: WorkItem) -> bool:
    """Enqueue the same page/job one tier up. False past the browser tier or if already done."""
    label = item.label.escalation
    if label is None:
        return False
    nxt = item.escalated(url_for(label, item))
    scheduled = ctx.enqueue(nxt)
    if scheduled:
        log.info("Escalating %s -> %s (%s)", item.label.value, nxt.label.value, nxt.url)
    return scheduled


# ---- HTTP plumbing ---------------------------------------------------------------

def _http_get(ctx: PipelineContext, item: WorkItem, headers: Dict[str, str]) -> tuple:
    proxy = ctx.proxies.next()
    cookie = ctx.state.cookies.header()
    if cookie:
        headers = {**headers, "Cookie": cookie}
    try:
        resp: FetchResponse = ctx.fetcher.fetch(item.url, headers, proxy)
    except RetryableError:
        ctx.diagnostics.request(item)
        ctx.proxies.mark_unhealthy(proxy)
        raise
    ctx.diagnostics.request(item, resp["status_code"])
    ctx.state.cookies.merge_response(resp.get("cookies") or [])
    return resp, proxy


def _check_status(ctx: PipelineContext, item: WorkItem, resp: FetchResponse, proxy: Optional[str]) -> None:
    status = resp["status_code"]
    if status >= 500:
        ctx.proxies.mark_unhealthy(proxy)
        raise RetryableError(f"{item.label.value} got {status}", url=item.url, status=status)
    if status >= 400:
        ctx.proxies.mark_unhealthy(proxy)
        escalated = escalate(ctx, item)
        raise BlockedError(f"{item.label.value} got {status}", url=item.url, status=status, escalated=escalated)


# ---- Shared outcomes -----------------------------------------------------------------

def settle_detail(ctx: PipelineContext, item: WorkItem, job: Optional[JobItem]) -> None:
    """Close out a reserved detail: push ``job`` if the budget allows, else release the slot."""
    granted, resumed = ctx.state.finish_detail(job is not None)
    if granted:
        ctx.sink.push([job])
        log.info('Saved job "%s" at %s (total: %d)', job["title"], job.get("company"), ctx.state.saved)
    elif job is None:
        log.debug("Released detail slot for job %s", item.job_id)
    _requeue(ctx, resumed)


def release_reservation(ctx: PipelineContext, item: WorkItem) -> None:
    """Hand back the slot of a detail that will never be fetched."""
    log.debug("Detail for job %s not scheduled, slot handed back", item.job_id)
    _requeue(ctx, ctx.state.release_detail())


def _requeue(ctx: PipelineContext, items: List[WorkItem]) -> None:
    for it in items:
        if not ctx.enqueue(it) and it.label.is_detail:
            release_reservation(ctx, it)


def schedule_details(ctx: PipelineContext, details: List[WorkItem]) -> int:
    """
    Reserve a slot and enqueue each detail (one per job id). Details past the
    budget wait in the backlog and are offered again when a slot frees up.
    Returns how many were reserved.
    """
    accepted = set(ctx.state.reserve_details(d.job_id for d in details))
    for d in details:
        if d.job_id in accepted and not ctx.enqueue(d):
            release_reservation(ctx, d)
    ctx.state.defer_details(d for d in details if d.job_id not in accepted)
    return len(accepted)


def _detail_item(item: WorkItem, raw: JobRaw) -> WorkItem:
    return WorkItem(
        url=behance.build_api_detail_url(raw["id"]),
        label=Label.JSON_DETAIL,
        filters=item.filters,
        job_id=raw["id"],
        partial=partial_from(raw),
    )


def process_list(ctx: PipelineContext, item: WorkItem, found: List[JobRaw], payload: Any = None) -> None:
    """Filter, schedule details or push, then decide whether to advance the chain."""
    page = item.page_no or 1
    jobs = [j for j in filter_jobs(found, item.filters) if j.get("id")]
    log.info("%s page %d: %d jobs, %d after filters", item.label.value, page, len(found), len(jobs))

    if ctx.settings["collect_details"]:
        by_id = {}
        for raw in jobs:
            by_id.setdefault(raw["id"], _detail_item(item, raw))
        schedule_details(ctx, list(by_id.values()))
    else:
        fresh = set(ctx.state.mark_seen(j["id"] for j in jobs))
        items = [it for it in (compose_job(j) for j in jobs if j["id"] in fresh) if it]
        granted = ctx.state.claim_slots(len(items))
        if granted:
            ctx.sink.push(items[:granted])
            log.info("Saved %d jobs (total: %d)", granted, ctx.state.saved)

    advance(ctx, item, payload)


def advance(ctx: PipelineContext, item: WorkItem, payload: Any = None) -> None:
    page = item.page_no or 1
    if ctx.state.budget_met():
        return
    if is_exhausted(payload, page):
        ctx.state.stop(StopReason.NO_MORE_RESULTS)
        return
    if page >= ctx.settings["max_pages"]:
        ctx.state.stop(StopReason.MAX_PAGES_REACHED)
        return
    nxt = WorkItem(url=url_for(item.label, item, page + 1), label=item.label, filters=item.filters, page_no=page + 1)
    if ctx.settings["collect_details"] and ctx.state.park_if_full(nxt):
        # every remaining slot is reserved by a pending detail
        return
    ctx.enqueue(nxt)


# ---- JSON tier -------------------------------------------------------------------------

def handle_json_list(ctx: PipelineContext, item: WorkItem) -> None:
    resp, proxy = _http_get(ctx, item, behance.json_headers())
    _check_status(ctx, item, resp, proxy)

    payload = parse_json(resp["body"])
    if not isinstance(payload, dict):
        escalated = escalate(ctx, item)
        raise BlockedError("JSON list payload unreadable", url=item.url, status=resp["status_code"], escalated=escalated)

    ctx.state.list_page_done()
    jobs = jobs_in(payload)
    if jobs:
        ctx.state.reset_empty_pages()
        process_list(ctx, item, normalize_many(jobs), payload)
        return

    page = item.page_no or 1
    if is_exhausted(payload, page):
        ctx.state.stop(StopReason.NO_MORE_RESULTS)
        return
    # empty could mean "done" or "tier degraded": chase both
    empties = ctx.state.empty_page()
    escalate(ctx, item)
    if empties >= ctx.settings["empty_pages_limit"]:
        log.warning("%d consecutive empty JSON pages; not advancing", empties)
        ctx.state.stop(StopReason.EMPTY_JSON_PAGES)
        return
    advance(ctx, item, payload)


def handle_json_detail(ctx: PipelineContext, item: WorkItem) -> None:
    resp, proxy = _http_get(ctx, item, behance.json_headers())
    _check_status(ctx, item, resp, proxy)

    job = job_in(parse_json(resp["body"]))
    if job is None:
        if not escalate(ctx, item):
            raise ExtractionError("JSON detail has no job body", url=item.url)
        return
    _finish_detail(ctx, item, normalize_api_job(job))


def _finish_detail(ctx: PipelineContext, item: WorkItem, raw: JobRaw) -> None:
    # detail payloads are more precise than list summaries, so filters run again
    if not matches_filters(raw, item.filters):
        log.debug("Job %s dropped by filters at detail time", item.job_id)
        settle_detail(ctx, item, None)
        return
    url = (item.partial or {}).get("url") or behance.build_detail_url(item.job_id)
    job = compose_job(raw, item.partial, url=url)
    if job is None:
        log.warning("No title found for %s, skipping", item.url)
    settle_detail(ctx, item, job)


# ---- HTML tier ------------------------------------------------------------------------

def handle_html_list(ctx: PipelineContext, item: WorkItem) -> None:
    resp, proxy = _http_get(ctx, item, behance.html_headers())
    _check_status(ctx, item, resp, proxy)

    found, strategy, payload = list_jobs_from_html(resp["body"], item.url)
    ctx.state.list_page_done()
    if not found:
        # an empty HTML page is never read as the end of results
        escalated = escalate(ctx, item)
        if looks_blocked(resp["body"]):
            raise BlockedError("bot check on HTML list page", url=item.url, status=resp["status_code"], escalated=escalated)
        return
    log.debug("HTML list extracted via %s", strategy)
    process_list(ctx, item, found, payload)


def handle_html_detail(ctx: PipelineContext, item: WorkItem) -> None:
    resp, proxy = _http_get(ctx, item, behance.html_headers())
    _check_status(ctx, item, resp, proxy)

    raw, strategy = detail_job_from_html(resp["body"], item.url)
    if raw is None:
        escalated = escalate(ctx, item)
        if looks_blocked(resp["body"]):
            raise BlockedError("bot check on HTML detail page", url=item.url, status=resp["status_code"], escalated=escalated)
        if not escalated:
            raise ExtractionError("HTML detail page has no job", url=item.url)
        return
    log.debug("HTML detail extracted via %s", strategy)
    raw["id"] = raw.get("id") or item.job_id
    _finish_detail(ctx, item, raw)


# ---- Browser tier ---------------------------------------------------------------------

def _browse(ctx: PipelineContext, item: WorkItem, predicate: Callable[[Any], bool]) -> Any:
    proxy = ctx.proxies.next()
    ctx.diagnostics.request(item)
    session = ctx.browser.launch(proxy, cookies=ctx.state.cookies.as_dict())
    try:
        timeout = ctx.settings["browser_timeout"]
        session.navigate(item.url, timeout)
        payload = session.observe_responses(predicate, timeout)
        if payload is None:
            raise ExtractionError(f"no matching API response captured for {item.url}", url=item.url)
        ctx.state.cookies.merge_browser(session.cookies())
        return payload
    except RetryableError:
        ctx.proxies.mark_unhealthy(proxy)
        raise
    finally:
        session.close()


def handle_browser_list(ctx: PipelineContext, item: WorkItem) -> None:
    payload = _browse(ctx, item, lambda d: jobs_in(d) is not None)
    ctx.state.list_page_done()
    jobs = jobs_in(payload) or []
    if not jobs:
        ctx.state.stop(StopReason.NO_MORE_RESULTS)
        return
    process_list(ctx, item, normalize_many(jobs), payload)


def handle_browser_detail(ctx: PipelineContext, item: WorkItem) -> None:
    payload = _browse(ctx, item, lambda d: job_in(d) is not None)
    raw = normalize_api_job(job_in(payload))
    raw["id"] = raw.get("id") or item.job_id
    _finish_detail(ctx, item, raw)


# ---- Sitemap ---------------------------------------------------------------------------

def handle_sitemap(ctx: PipelineContext, item: WorkItem) -> None:
    resp, proxy = _http_get(ctx, item, behance.xml_headers())
    status = resp["status_code"]
    if status >= 500:
        ctx.proxies.mark_unhealthy(proxy)
        raise RetryableError(f"sitemap got {status}", url=item.url, status=status)
    if status >= 400:
        ctx.proxies.mark_unhealthy(proxy)
        raise BlockedError(f"sitemap got {status}", url=item.url, status=status)

    urls, children = parse_sitemap(resp["body"])
    for child in children:
        ctx.enqueue(WorkItem(url=child, label=Label.SITEMAP, filters=item.filters))

    by_id = {}
    for u in urls:
        by_id.setdefault(job_id_from_url(u), u)
    details = [
        WorkItem(
            url=behance.build_api_detail_url(jid),
            label=Label.JSON_DETAIL,
            filters=item.filters,
            job_id=jid,
            partial={"id": jid, "url": u},
        )
        for jid, u in by_id.items()
    ]
    scheduled = schedule_details(ctx, details)
    log.info("Sitemap %s: %d job URLs, %d scheduled, %d child sitemaps", item.url, len(urls), scheduled, len(children))


HANDLERS: Dict[Label, Callable[[PipelineContext, WorkItem], None]] = {
    Label.JSON_LIST: handle_json_list,
    Label.JSON_DETAIL: handle_json_detail,
    Label.HTML_LIST: handle_html_list,
    Label.HTML_DETAIL: handle_html_detail,
    Label.BROWSER_LIST: handle_browser_list,
    Label.BROWSER_DETAIL: handle_browser_detail,
    Label.SITEMAP: handle_sitemap,
}
