import json
import os

import pytest

from behance_jobs.config import load_settings
from behance_jobs.errors import RetryableError
from behance_jobs.io.dataset import MemoryDataset
from behance_jobs.io.queue import RequestQueue
from behance_jobs.pipeline.controller import Controller


def resp(status=200, body="", headers=None, cookies=None):
    if not isinstance(body, str):
        body = json.dumps(body)
    return {"status_code": status, "body": body, "headers": list(headers or []), "cookies": list(cookies or [])}


class FakeFetcher:
    """
    Serves canned responses by URL. A list of responses is consumed in order
    (the last one repeats). Unknown URLs get a 404.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def fetch(self, url, headers, proxy=None):
        self.calls.append({"url": url, "headers": dict(headers), "proxy": proxy})
        answer = self.routes.get(url, resp(404, "not found"))
        if isinstance(answer, list):
            answer = answer.pop(0) if len(answer) > 1 else answer[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    def urls(self):
        return [c["url"] for c in self.calls]


class FakeSession:
    def __init__(self, browser, proxy, cookies):
        self.browser = browser
        self.proxy = proxy
        self.start_cookies = cookies
        self.url = None
        self.closed = False

    def navigate(self, url, timeout):
        self.url = url
        if isinstance(self.browser.payloads.get(url), RetryableError):
            raise self.browser.payloads[url]

    def observe_responses(self, predicate, timeout):
        payload = self.browser.payloads.get(self.url)
        if payload is not None and predicate(payload):
            return payload
        return None

    def cookies(self):
        return list(self.browser.cookies)

    def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, payloads=None, cookies=None):
        self.payloads = dict(payloads or {})
        self.cookies = list(cookies or [])
        self.sessions = []

    def launch(self, proxy, cookies=None):
        s = FakeSession(self, proxy, cookies)
        self.sessions.append(s)
        return s


class FakeProxies:
    def __init__(self):
        self.unhealthy = []

    def next(self):
        return "http://proxy-1:8000"

    def mark_unhealthy(self, proxy):
        self.unhealthy.append(proxy)


@pytest.fixture
def make_settings(monkeypatch, tmp_path):
    # keep a developer's .env out of the tests
    for key in list(os.environ):
        if key.startswith("BEHANCE_"):
            monkeypatch.delenv(key, raising=False)

    def _make(**kw):
        base = dict(
            results_wanted=10,
            max_pages=5,
            max_concurrency=1,
            max_request_retries=1,
            retry_wait_min=0,
            retry_wait_max=0,
            output_path=str(tmp_path / "out.jsonl"),
        )
        base.update(kw)
        return load_settings(**base)

    return _make


@pytest.fixture
def make_controller(make_settings):
    def _make(routes=None, payloads=None, cookies=None, **settings_kw):
        settings = make_settings(**settings_kw)
        ctrl = Controller(
            settings,
            queue=RequestQueue(),
            sink=MemoryDataset(),
            fetcher=FakeFetcher(routes),
            browser=FakeBrowser(payloads, cookies),
            proxies=FakeProxies(),
            idle_sleep=0,
        )
        return ctrl

    return _make


def api_job(job_id, title="Designer", **extra):
    job = {
        "id": job_id,
        "title": title,
        "company": {"name": "Acme"},
        "location": "Berlin, DE",
        "url": f"https://www.behance.net/joblist/{job_id}/{title}",
    }
    job.update(extra)
    return job
