"""Multi-site search orchestration.

Flow per run:
  1. visit every registered site in registration order, one at a time
  2. build the search URL → fetch the page → extract records
  3. a failed site contributes an empty list; the run goes on
     (``on_site`` sees each outcome as it lands)
  4. wait ``delay_ms`` between sites (courtesy rate limit, not a retry)
  5. persist the aggregate; a persistence failure is logged, not raised
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from gunpla.config import DEFAULT_DELAY_MS, DEFAULT_TIMEOUT_MS, MAX_REDIRECTS
from gunpla.db import RunStore
from gunpla.errors import PersistenceError
from gunpla.extractor import extract_products
from gunpla.fetcher import browser_headers, fetch_page
from gunpla.models import FetchFailure, ProductRecord, RawPage, RunReport, SiteDescriptor, SiteOutcome
from gunpla.sites import SiteRegistry
from gunpla.urls import build_search_url

logger = logging.getLogger(__name__)

Fetch = Callable[..., "RawPage | FetchFailure"]


class Orchestrator:
    """Runs one search term across every site of a registry.

    Args:
        registry: sites to visit, in order
        store: where finished runs are saved; None skips persistence
        fetch: page fetcher, same signature as ``fetch_page``
        sleep: delay function taking seconds (tests pass a no-op)
        clock: monotonic clock in seconds
        max_run_seconds: optional cap on the whole run; sites not reached in
            time are recorded as empty
        on_site: called with each ``SiteOutcome`` as soon as its site is done
    """

    def __init__(
        self,
        registry: SiteRegistry,
        store: RunStore | None = None,
        fetch: Fetch = fetch_page,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        max_run_seconds: float | None = None,
        on_site: Callable[[SiteOutcome], None] | None = None,
    ):
        self.registry = registry
        self.store = store
        self._fetch = fetch
        self._sleep = sleep
        self._clock = clock
        self.max_run_seconds = max_run_seconds
        self._on_site = on_site

    def run_search(
        self,
        term: str,
        delay_ms: int = DEFAULT_DELAY_MS,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> dict[str, list[ProductRecord]]:
        """Search every site for *term* and return ``{site_id: records}``."""
        return self.search(term, delay_ms=delay_ms, timeout_ms=timeout_ms).results

    def search(
        self,
        term: str,
        delay_ms: int = DEFAULT_DELAY_MS,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> RunReport:
        """Like ``run_search`` but returns the full ``RunReport``."""
        logger.info("=== Search started: %r over %d sites ===", term, len(self.registry))
        start = self._clock()
        report = RunReport(search_term=term)
        sites = list(self.registry)

        for i, site in enumerate(sites):
            remaining = self._remaining(start)
            if remaining is not None and remaining <= 0:
                logger.warning("Run time limit reached, skipping %s", site.id)
                self._record(report, SiteOutcome(site.id, error="run time limit reached"))
                continue

            site_timeout = timeout_ms
            if remaining is not None:
                # never hand the fetcher a zero timeout
                site_timeout = max(1, min(timeout_ms, int(remaining * 1000)))
            self._record(report, self.scrape_site(site, term, site_timeout))

            if i < len(sites) - 1:
                self._wait(delay_ms, start)

        report.elapsed = self._clock() - start
        logger.info(
            "=== Search finished: %d results, %d/%d sites failed, %.1f s ===",
            report.total_results, len(report.failed_sites), len(sites), report.elapsed,
        )

        if self.store is not None:
            self._persist(report)
        return report

    def scrape_site(self, site: SiteDescriptor, term: str, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> SiteOutcome:
        """Build → fetch → extract for one site. Never raises."""
        logger.info("Scraping %s for %r", site.id, term)
        try:
            url = build_search_url(site.id, site.base_url, term, site.url_rule)
            logger.debug("%s: %s", site.id, url)

            page = self._fetch(url, browser_headers(), timeout_ms, MAX_REDIRECTS)
            if isinstance(page, FetchFailure):
                _log_failure(site.id, page)
                return SiteOutcome(site.id, failure=page)

            records = extract_products(page.html, site.rule, site.id)
        except Exception as e:
            logger.exception("Error scraping %s", site.id)
            return SiteOutcome(site.id, error=f"{type(e).__name__}: {e}")

        logger.info("Found %d results from %s", len(records), site.id)
        return SiteOutcome(site.id, records=records)

    def _record(self, report: RunReport, outcome: SiteOutcome) -> None:
        report.outcomes.append(outcome)
        if self._on_site is None:
            return
        try:
            self._on_site(outcome)
        except Exception:
            logger.exception("Site hook failed for %s", outcome.site_id)

    def _remaining(self, start: float) -> float | None:
        if self.max_run_seconds is None:
            return None
        return self.max_run_seconds - (self._clock() - start)

    def _wait(self, delay_ms: int, start: float) -> None:
        delay = delay_ms / 1000
        remaining = self._remaining(start)
        if remaining is not None:
            delay = min(delay, max(remaining, 0))
        if delay > 0:
            self._sleep(delay)

    def _persist(self, report: RunReport) -> None:
        try:
            report.run_id = self.store.save_run(report.search_term, report.results)
        except PersistenceError as e:
            report.persistence_error = str(e)
            logger.error("Failed to save search %r: %s", report.search_term, e)
            return
        logger.info("Saved search %r as run %d", report.search_term, report.run_id)


def _log_failure(site_id: str, failure: FetchFailure) -> None:
    if failure.status_code is not None:
        logger.error("Error %d from %s: %s", failure.status_code, site_id, failure.message)
    else:
        logger.error("%s from %s: %s", failure.kind.value, site_id, failure.message)
