from behance_jobs.models import FilterSet
from behance_jobs.pipeline.filter import filter_jobs, matches_filters, matches_job_type, matches_location


def test_remote_filter_accepts_allow_remote_flag():
    assert matches_location({"location": "Berlin, DE", "allow_remote": True}, "Remote")


def test_remote_filter_accepts_remote_or_anywhere_text():
    assert matches_location({"location": "Remote (EU)"}, "remote")
    assert matches_location({"location": "Anywhere"}, "Remote")


def test_remote_filter_rejects_explicit_city():
    assert not matches_location({"location": "Berlin, DE", "allow_remote": False}, "Remote")
    assert not matches_location({"location": "Berlin, DE"}, "Remote")


def test_city_filter_is_case_insensitive():
    assert matches_location({"location": "BERLIN, Germany"}, "berlin")
    assert not matches_location({"location": "Paris, FR"}, "Berlin")


def test_missing_location_is_not_contradicted():
    assert matches_location({}, "Berlin")


def test_job_type_normalises_separators():
    assert matches_job_type({"job_type": "Full-Time"}, "full_time")
    assert matches_job_type({"job_type": "FULL TIME"}, "full-time")
    assert not matches_job_type({"job_type": "Freelance"}, "full_time")
    assert matches_job_type({}, "freelance")


def test_matches_filters_combines_both():
    f = FilterSet(keyword="ignored", location="Remote", job_type="freelance")
    assert matches_filters({"allow_remote": True, "job_type": "Freelance"}, f)
    assert not matches_filters({"allow_remote": True, "job_type": "Full-time"}, f)


def test_filter_jobs_keeps_order():
    jobs = [{"id": "1", "location": "Paris"}, {"id": "2", "location": "Berlin"}, {"id": "3", "location": "Berlin"}]
    kept = filter_jobs(jobs, FilterSet(location="Berlin"))
    assert [j["id"] for j in kept] == ["2", "3"]
