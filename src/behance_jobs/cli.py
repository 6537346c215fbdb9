# src/behance_jobs/cli.py
"""
Command-line interface for the Behance job scraper.

This module provides CLI commands to:
- Run the tiered scraper (JSON API -> HTML -> browser) and write a JSONL dataset
- Preview the URLs each tier would request for a query (no network)
- Run the HTML extractors on a saved page to debug selectors (no network)
"""

from dotenv import load_dotenv
load_dotenv(override=True)  # automatically looks for a .env file in the project root

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer

from behance_jobs.clients import behance
from behance_jobs.config import load_settings
from behance_jobs.models import FilterSet
from behance_jobs.pipeline.controller import Controller
from behance_jobs.pipeline.extract import detail_job_from_html, list_jobs_from_html

# Typer app instance for CLI commands
app = typer.Typer(help="Behance job scraper")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(threadName)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


@app.command()
def run(
    keyword: Optional[str] = typer.Option(None, "--keyword", "-k", help="Search text"),
    location: Optional[str] = typer.Option(None, "--location", "-l", help='Location, e.g. "Berlin" or "Remote"'),
    job_type: Optional[str] = typer.Option(None, "--job-type", help="e.g. full_time, freelance"),
    sort: Optional[str] = typer.Option(None, "--sort", help="Sort order (default published_on)"),
    results_wanted: Optional[int] = typer.Option(None, "--results-wanted", "-n", help="Stop after this many jobs"),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", help="Listing page cap per query"),
    collect_details: Optional[bool] = typer.Option(None, "--details/--no-details", help="Fetch each job's detail page"),
    start_url: Optional[List[str]] = typer.Option(None, "--start-url", help="Listing or job URL to start from (repeatable)"),
    proxy: Optional[List[str]] = typer.Option(None, "--proxy", help="Proxy URL (repeatable)"),
    sitemap: Optional[bool] = typer.Option(None, "--sitemap/--no-sitemap", help="Also discover jobs via sitemap when no filters are set"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c", help="Worker threads"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="JSONL output path"),
    journal: Optional[str] = typer.Option(None, "--journal", help="Queue journal file; reuse it to resume a run"),
    headful: bool = typer.Option(False, "--headful", help="Show the browser window"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Scrape Behance jobs → dedupe → (optional) detail pages → append to a JSONL file.
    Prints the run summary as JSON.
    """
    _setup_logging(verbose)
    settings = load_settings(
        keyword=keyword,
        location=location,
        job_type=job_type,
        sort=sort,
        results_wanted=results_wanted,
        max_pages=max_pages,
        collect_details=collect_details,
        start_urls=start_url or None,
        proxy_urls=proxy or None,
        use_sitemap=sitemap,
        max_concurrency=concurrency,
        output_path=output,
        queue_journal=journal,
        headless=False if headful else None,
    )
    typer.echo(f"Scraping Behance jobs for {settings['keyword']!r} (want {settings['results_wanted']})...", err=True)

    summary = Controller(settings).run()
    typer.echo(json.dumps(summary, indent=2))


@app.command()
def preview_urls(
    keyword: str = typer.Option("", "--keyword", "-k"),
    location: str = typer.Option("", "--location", "-l"),
    job_type: str = typer.Option("", "--job-type"),
    sort: str = typer.Option("published_on", "--sort"),
    page: int = typer.Option(1, "--page"),
    job_id: Optional[str] = typer.Option(None, "--job-id"),
):
    """
    Quick check: show the URL every tier would request for this query.
    """
    filters = FilterSet(keyword=keyword, location=location, job_type=job_type, sort=sort)
    out = {
        "filter_key": filters.key,
        "json_list": behance.build_api_list_url(page, filters),
        "html_list": behance.build_list_url(page, filters),
    }
    if job_id:
        out["json_detail"] = behance.build_api_detail_url(job_id)
        out["html_detail"] = behance.build_detail_url(job_id)
    typer.echo(json.dumps(out, indent=2))


@app.command()
def parse_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Saved HTML page"),
    detail: bool = typer.Option(False, "--detail", help="Treat the page as a job detail page"),
    url: str = typer.Option(behance.JOBLIST_URL, "--url", help="URL the page was saved from"),
):
    """
    Debug: run the HTML extractors on a saved page and print what they find.
    """
    html = path.read_text(encoding="utf-8", errors="replace")
    if detail:
        raw, strategy = detail_job_from_html(html, url)
        typer.echo(json.dumps({"strategy": strategy, "job": raw}, indent=2, ensure_ascii=False))
        return
    jobs, strategy, _ = list_jobs_from_html(html, url)
    typer.echo(json.dumps({"strategy": strategy, "count": len(jobs), "jobs": jobs[:5]}, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    app()
