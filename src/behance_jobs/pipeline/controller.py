# src/behance_jobs/pipeline/controller.py
"""
Seeds the queue, runs a bounded pool of workers over it, routes each work item
to its handler, and reports a summary when the queue drains.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from behance_jobs.clients import behance
from behance_jobs.clients.behance import HttpFetcher
from behance_jobs.clients.browser import PlaywrightLauncher
from behance_jobs.clients.proxies import ProxyPool
from behance_jobs.config import Settings
from behance_jobs.errors import BlockedError, RetryableError, ScrapeError
from behance_jobs.io.dataset import JsonlDataset
from behance_jobs.io.queue import RequestQueue
from behance_jobs.models import FilterSet, Label, WorkItem
from behance_jobs.pipeline.diagnostics import Diagnostics
from behance_jobs.pipeline.handlers import HANDLERS, PipelineContext, release_reservation, settle_detail
from behance_jobs.pipeline.normalize import job_id_from_url
from behance_jobs.pipeline.state import RunState

log = logging.getLogger(__name__)


class Controller:
    def __init__(
        self,
        settings: Settings,
        *,
        queue: Any = None,
        sink: Any = None,
        fetcher: Any = None,
        browser: Any = None,
        proxies: Any = None,
        idle_sleep: float = 0.05,
    ):
        self.settings = settings
        self.state = RunState(settings["results_wanted"], settings["max_pages"], settings["empty_pages_limit"])
        self.diagnostics = Diagnostics()
        self.idle_sleep = idle_sleep
        self.ctx = PipelineContext(
            settings=settings,
            state=self.state,
            queue=queue if queue is not None else RequestQueue(settings["queue_journal"]),
            sink=sink if sink is not None else JsonlDataset(settings["output_path"]),
            fetcher=fetcher if fetcher is not None else HttpFetcher(settings["request_timeout"]),
            browser=browser if browser is not None else PlaywrightLauncher(headless=settings["headless"]),
            proxies=proxies if proxies is not None else ProxyPool(settings["proxy_urls"]),
            diagnostics=self.diagnostics,
        )

    @property
    def queue(self):
        return self.ctx.queue

    # ---- seeding ------------------------------------------------------------------------

    def base_filters(self) -> FilterSet:
        s = self.settings
        return FilterSet(keyword=s["keyword"], location=s["location"], job_type=s["job_type"], sort=s["sort"])

    def seed(self) -> int:
        """Enqueue the first work items. Returns how many were accepted."""
        base = self.base_filters()
        seeds = []
        for url in self.settings["start_urls"]:
            jid = job_id_from_url(url)
            if jid:
                if self.state.reserve_details([jid]):
                    seeds.append(WorkItem(
                        url=behance.build_api_detail_url(jid),
                        label=Label.JSON_DETAIL,
                        filters=base,
                        job_id=jid,
                        partial={"id": jid, "url": url},
                    ))
                continue
            filters, page = behance.filters_from_url(url, base)
            seeds.append(WorkItem(
                url=behance.build_api_list_url(page, filters), label=Label.JSON_LIST, filters=filters, page_no=page
            ))

        if not self.settings["start_urls"]:
            seeds.append(WorkItem(url=behance.build_api_list_url(1, base), label=Label.JSON_LIST, filters=base, page_no=1))
            if self.settings["use_sitemap"] and base.is_empty:
                seeds.append(WorkItem(url=self.settings["sitemap_url"], label=Label.SITEMAP, filters=base))

        accepted = 0
        for item in seeds:
            if self.ctx.enqueue(item):
                accepted += 1
            elif item.label.is_detail:
                release_reservation(self.ctx, item)
        log.info("Seeded %d work items", accepted)
        return accepted

    # ---- dispatch ----------------------------------------------------------------------

    def dispatch(self, item: WorkItem) -> None:
        # single choke point: once the budget is met nothing else runs
        if self.state.budget_met():
            log.debug("Already reached target of %d results, skipping %s", self.state.results_wanted, item.unique_key)
            return
        HANDLERS[item.label](self.ctx, item)

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.settings["max_request_retries"] + 1),
            wait=wait_exponential(min=self.settings["retry_wait_min"], max=self.settings["retry_wait_max"]),
            retry=retry_if_exception_type(RetryableError),
            reraise=True,
        )

    def process(self, item: WorkItem) -> None:
        """Dispatch with retries; a failure here abandons this item only."""
        try:
            for attempt in self._retrying():
                with attempt:
                    self.dispatch(item)
        except BlockedError as e:
            self.diagnostics.failure(item, e)
            log.warning("%s blocked (%s)%s", item.url, e, ", escalated" if e.escalated else "")
            if item.label.is_detail and not e.escalated:
                settle_detail(self.ctx, item, None)
        except ScrapeError as e:
            self.diagnostics.failure(item, e)
            log.error("%s %s failed: %s", item.label.value, item.url, e)
            if item.label.is_detail:
                settle_detail(self.ctx, item, None)
        except Exception as e:
            # the run always finishes; an unexpected error costs one item
            self.diagnostics.failure(item, e)
            log.exception("%s %s crashed", item.label.value, item.url)
            if item.label.is_detail:
                settle_detail(self.ctx, item, None)

    # ---- run -------------------------------------------------------------------------------

    def _worker(self) -> None:
        while True:
            item = self.queue.fetch_next()
            if item is None:
                if self.queue.is_finished():
                    return
                time.sleep(self.idle_sleep)
                continue
            try:
                self.process(item)
            finally:
                self.queue.mark_handled(item)

    def run(self) -> Dict[str, Any]:
        self.seed()
        workers = self.settings["max_concurrency"]
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scrape") as pool:
            futures = [pool.submit(self._worker) for _ in range(workers)]
            for f in futures:
                f.result()
        summary = self.summary()
        log.info("Scraping completed. Saved %d job listings from Behance (%s).", summary["saved"], summary["stop_reason"])
        return summary

    def summary(self) -> Dict[str, Any]:
        return {**self.state.snapshot(), **self.diagnostics.report()}


def run_pipeline(settings: Settings, **collaborators: Optional[Any]) -> Dict[str, Any]:
    return Controller(settings, **collaborators).run()
