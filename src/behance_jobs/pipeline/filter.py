# src/behance_jobs/pipeline/filter.py
from typing import Iterable, List

from behance_jobs.models import FilterSet, JobRaw
from behance_jobs.pipeline.normalize import clean_ws, icontains

REMOTE_WORDS = ("remote", "anywhere")


def _norm_type(s: str) -> str:
    # "Full-time", "FULL_TIME" and "full time" are the same thing
    return clean_ws(s.replace("-", " ").replace("_", " ")).lower()


def matches_location(job: JobRaw, wanted: str) -> bool:
    if not clean_ws(wanted):
        return True
    loc_text = " ".join(
        clean_ws(job.get(k)) for k in ("location", "location_city", "location_country")
    ).lower()
    if clean_ws(wanted).lower() in REMOTE_WORDS:
        return bool(job.get("allow_remote")) or any(w in loc_text for w in REMOTE_WORDS)
    if not loc_text.strip():
        # nothing to contradict the query; trust the server-side filter
        return True
    return icontains(loc_text, wanted)


def matches_job_type(job: JobRaw, wanted: str) -> bool:
    if not clean_ws(wanted):
        return True
    have = job.get("job_type")
    if not have:
        return True
    return _norm_type(wanted) in _norm_type(have)


def matches_filters(job: JobRaw, filters: FilterSet) -> bool:
    """
    Keep a job only if it satisfies the requested location and job type.
    Keyword and sort are left to the server.
    """
    return matches_location(job, filters.location) and matches_job_type(job, filters.job_type)


def filter_jobs(jobs: Iterable[JobRaw], filters: FilterSet) -> List[JobRaw]:
    return [j for j in jobs if matches_filters(j, filters)]
