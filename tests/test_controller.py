from behance_jobs.clients import behance
from behance_jobs.io.dataset import MemoryDataset
from behance_jobs.io.queue import RequestQueue
from behance_jobs.models import FilterSet, Label, WorkItem
from behance_jobs.pipeline.controller import run_pipeline

from conftest import FakeBrowser, FakeFetcher, FakeProxies, api_job, resp

DESIGN = FilterSet(keyword="design")


def test_design_scenario_stops_at_results_wanted(make_controller):
    jobs = [api_job("1"), api_job("2"), api_job("3")]
    routes = {
        behance.build_api_list_url(1, DESIGN): resp(200, {"jobs": jobs}),
        behance.build_api_detail_url("1"): resp(200, {"job": {"id": 1, "title": "Designer 1", "description": "<p>a</p>"}}),
        behance.build_api_detail_url("2"): resp(200, {"job": {"id": 2, "title": "Designer 2"}}),
    }
    ctrl = make_controller(routes, keyword="design", results_wanted=2, collect_details=True)
    summary = ctrl.run()

    urls = ctrl.ctx.fetcher.urls()
    assert urls.count(behance.build_api_list_url(1, DESIGN)) == 1
    assert behance.build_api_list_url(2, DESIGN) not in urls
    assert behance.build_api_detail_url("3") not in urls
    assert sum(1 for u in urls if "/joblist/" in u) == 2

    items = ctrl.ctx.sink.items
    assert sorted(j["id"] for j in items) == ["1", "2"]
    assert {j["company"] for j in items} == {"Acme"}
    assert summary["saved"] == 2
    assert summary["stop_reason"] == "results_wanted_reached"
    assert summary["list_pages_processed"] == 1
    assert summary["details_processed"] == 2
    assert summary["per_tier_request_counts"] == {"JSON_LIST": 1, "JSON_DETAIL": 2}


def test_released_detail_resumes_parked_page(make_controller):
    berlin = FilterSet(keyword="design", location="Berlin")
    routes = {
        # list summaries carry no location, so both pass the list-time filter
        behance.build_api_list_url(1, berlin): resp(200, {"jobs": [{"id": 1, "title": "T"}]}),
        behance.build_api_list_url(2, berlin): resp(200, {"jobs": [{"id": 2, "title": "T"}]}),
        behance.build_api_detail_url("1"): resp(200, {"job": {"id": 1, "title": "T", "location": "Paris"}}),
        behance.build_api_detail_url("2"): resp(200, {"job": {"id": 2, "title": "T", "location": "Berlin"}}),
    }
    ctrl = make_controller(routes, keyword="design", location="Berlin", results_wanted=1)
    summary = ctrl.run()

    assert [j["id"] for j in ctrl.ctx.sink.items] == ["2"]
    assert behance.build_api_list_url(3, berlin) not in ctrl.ctx.fetcher.urls()
    assert summary["details_processed"] == 2
    assert summary["stop_reason"] == "results_wanted_reached"


def test_listing_mode_never_exceeds_budget(make_controller):
    routes = {
        behance.build_api_list_url(1, DESIGN): resp(200, {"jobs": [api_job("1"), api_job("2")]}),
        behance.build_api_list_url(2, DESIGN): resp(200, {"jobs": [api_job("3"), api_job("4")]}),
        behance.build_api_list_url(3, DESIGN): resp(200, {"jobs": [api_job("5")]}),
    }
    ctrl = make_controller(routes, keyword="design", results_wanted=3, collect_details=False)
    summary = ctrl.run()

    assert [j["id"] for j in ctrl.ctx.sink.items] == ["1", "2", "3"]
    assert behance.build_api_list_url(3, DESIGN) not in ctrl.ctx.fetcher.urls()
    assert summary["stop_reason"] == "results_wanted_reached"


def test_budget_holds_with_many_workers(make_settings):
    routes = {
        behance.build_api_list_url(p, DESIGN): resp(200, {"jobs": [api_job(f"{p}{i}") for i in range(3)]})
        for p in range(1, 6)
    }
    sink = MemoryDataset()
    settings = make_settings(keyword="design", results_wanted=7, collect_details=False, max_concurrency=4)
    summary = run_pipeline(
        settings, queue=RequestQueue(), sink=sink, fetcher=FakeFetcher(routes),
        browser=FakeBrowser(), proxies=FakeProxies(), idle_sleep=0,
    )
    ids = [j["id"] for j in sink.items]
    assert len(ids) == 7 == len(set(ids))
    assert summary["saved"] == 7


def test_duplicate_start_urls_are_processed_once(make_controller):
    url = "https://www.behance.net/joblist?search=design&page=1"
    api = behance.build_api_list_url(1, DESIGN)
    ctrl = make_controller({api: resp(200, {"jobs": [], "has_more": False})}, start_urls=[url, url])
    summary = ctrl.run()

    assert ctrl.ctx.fetcher.urls() == [api]
    assert summary["stop_reason"] == "no_more_results"


def test_start_url_overrides_filters(make_controller):
    url = "https://www.behance.net/joblist?search=motion&location=Remote&page=3"
    ctrl = make_controller(keyword="design", start_urls=[url])
    assert ctrl.seed() == 1
    [item] = ctrl.queue.pending_items()
    assert item.label is Label.JSON_LIST
    assert item.page_no == 3
    assert item.filters == FilterSet(keyword="motion", location="Remote")


def test_job_start_url_runs_detail_chain(make_controller):
    start = "https://www.behance.net/joblist/555/Type-Designer"
    page = '<script type="application/ld+json">{"@type": "JobPosting", "title": "Type Designer"}</script>'
    routes = {behance.build_api_detail_url("555"): resp(403), start: resp(200, page)}
    ctrl = make_controller(routes, start_urls=[start])
    summary = ctrl.run()

    assert ctrl.ctx.fetcher.urls() == [behance.build_api_detail_url("555"), start]
    [job] = ctrl.ctx.sink.items
    assert (job["id"], job["title"], job["url"]) == ("555", "Type Designer", start)
    assert summary["recent_failure_samples"][0]["status"] == 403


def test_sitemap_seeds_details_when_no_filters(make_controller):
    sitemap = "https://www.behance.net/sitemap-jobs.xml"
    xml = "<urlset>" + "".join(
        f"<url><loc>https://www.behance.net/joblist/{i}/Job</loc></url>" for i in (101, 102, 103)
    ) + "</urlset>"
    routes = {
        behance.build_api_list_url(1, FilterSet()): resp(200, {"jobs": [], "has_more": False}),
        sitemap: resp(200, xml),
        behance.build_api_detail_url("101"): resp(200, {"job": {"id": 101, "title": "A"}}),
        behance.build_api_detail_url("102"): resp(200, {"job": {"id": 102, "title": "B"}}),
    }
    ctrl = make_controller(routes, use_sitemap=True, results_wanted=2)
    summary = ctrl.run()

    assert sorted(j["id"] for j in ctrl.ctx.sink.items) == ["101", "102"]
    assert behance.build_api_detail_url("103") not in ctrl.ctx.fetcher.urls()
    assert summary["per_tier_request_counts"]["SITEMAP"] == 1
    # the exhausted list page reported first
    assert summary["stop_reason"] == "no_more_results"


def test_sitemap_job_past_budget_runs_when_another_fails(make_controller):
    sitemap = "https://www.behance.net/sitemap-jobs.xml"
    xml = "<urlset>" + "".join(
        f"<url><loc>https://www.behance.net/joblist/{i}/Job</loc></url>" for i in (101, 102, 103)
    ) + "</urlset>"
    routes = {
        behance.build_api_list_url(1, FilterSet()): resp(200, {"jobs": [], "has_more": False}),
        sitemap: resp(200, xml),
        # 101 is gone on every tier
        behance.build_api_detail_url("102"): resp(200, {"job": {"id": 102, "title": "B"}}),
        behance.build_api_detail_url("103"): resp(200, {"job": {"id": 103, "title": "C"}}),
    }
    ctrl = make_controller(routes, use_sitemap=True, results_wanted=2)
    summary = ctrl.run()

    assert sorted(j["id"] for j in ctrl.ctx.sink.items) == ["102", "103"]
    assert behance.build_api_detail_url("103") in ctrl.ctx.fetcher.urls()
    assert summary["saved"] == 2
    assert summary["details_processed"] == 3


def test_sitemap_skipped_when_filters_present(make_controller):
    ctrl = make_controller(keyword="design", use_sitemap=True)
    ctrl.seed()
    assert [i.label for i in ctrl.queue.pending_items()] == [Label.JSON_LIST]


def test_full_escalation_to_browser(make_controller):
    html_p1 = behance.build_list_url(1, DESIGN)
    routes = {
        behance.build_api_list_url(1, DESIGN): resp(403),
        html_p1: resp(200, "<html>please wait</html>"),
    }
    payloads = {html_p1: {"jobs": [api_job("1")], "has_more": False}}
    ctrl = make_controller(routes, payloads=payloads, keyword="design", collect_details=False)
    summary = ctrl.run()

    assert [j["id"] for j in ctrl.ctx.sink.items] == ["1"]
    assert summary["per_tier_request_counts"] == {"JSON_LIST": 1, "HTML_LIST": 1, "BROWSER_LIST": 1}
    assert summary["stop_reason"] == "no_more_results"


def test_budget_met_short_circuits_dispatch(make_controller):
    ctrl = make_controller(results_wanted=1, keyword="design")
    ctrl.state.claim_slots(1)
    ctrl.dispatch(WorkItem(url="u", label=Label.JSON_LIST, filters=DESIGN, page_no=1))
    assert ctrl.ctx.fetcher.calls == []
