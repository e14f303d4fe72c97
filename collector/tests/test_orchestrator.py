"""Unit tests for the orchestrator module."""

from unittest.mock import MagicMock

import pytest

from gunpla.db import RunStore
from gunpla.errors import PersistenceError
from gunpla.models import (
    FailureKind,
    FetchFailure,
    ProductRecord,
    RawPage,
    SiteDescriptor,
    UrlRule,
    UrlRuleKind,
)
from gunpla.orchestrator import Orchestrator
from gunpla.sites import DEFAULT_RULE, SiteRegistry

_PAGE = """
<div class="product"><h3></h3><span class="price">$10.00</span></div>
<div class="product"><h3>RX-78-2 Gundam</h3><span class="price">$45.00</span></div>
"""


class FakeFetch:
    """Serves canned pages by URL prefix and records every call."""

    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    def __call__(self, url, headers, timeout_ms, max_redirects):
        self.calls.append((url, timeout_ms, max_redirects))
        for prefix, page in self.pages.items():
            if url.startswith(prefix):
                if isinstance(page, Exception):
                    raise page
                if isinstance(page, FetchFailure):
                    return page
                return RawPage(url=url, html=page, status_code=200)
        raise AssertionError(f"unexpected url {url}")


@pytest.fixture()
def registry():
    return SiteRegistry.from_mapping({
        "A": "https://a.example/search?q=",
        "B": "https://b.example/search?q=",
    })


def _timeout(url):
    return FetchFailure(url, FailureKind.UPSTREAM_UNREACHABLE, "read timed out")


class TestRunSearch:
    """Tests for Orchestrator.run_search."""

    def test_partial_failure(self, registry):
        fetch = FakeFetch({"https://a.example": _PAGE, "https://b.example": _timeout("https://b.example")})
        orchestrator = Orchestrator(registry, fetch=fetch, sleep=lambda s: None)

        results = orchestrator.run_search("RX-78-2")

        assert results == {
            "A": [ProductRecord(title="RX-78-2 Gundam", price="$45.00", link="#", image="", source="A")],
            "B": [],
        }

    def test_sites_visited_in_order(self, registry):
        fetch = FakeFetch({"https://a.example": _PAGE, "https://b.example": _PAGE})
        Orchestrator(registry, fetch=fetch, sleep=lambda s: None).run_search("RG Gundam")

        assert [c[0] for c in fetch.calls] == [
            "https://a.example/search?q=RG%20Gundam",
            "https://b.example/search?q=RG%20Gundam",
        ]
        assert all(c[2] == 5 for c in fetch.calls)

    def test_delay_between_sites(self, registry):
        sleep = MagicMock()
        fetch = FakeFetch({"https://a.example": _PAGE, "https://b.example": _timeout("https://b.example")})
        Orchestrator(registry, fetch=fetch, sleep=sleep).run_search("RG")
        sleep.assert_called_once_with(2.0)

    def test_fast_delay_and_long_timeout(self, registry):
        sleep = MagicMock()
        fetch = FakeFetch({"https://a.example": _PAGE, "https://b.example": _PAGE})
        Orchestrator(registry, fetch=fetch, sleep=sleep).run_search("RG", delay_ms=500, timeout_ms=30000)

        sleep.assert_called_once_with(0.5)
        assert [c[1] for c in fetch.calls] == [30000, 30000]

    def test_exception_isolated(self, registry):
        fetch = FakeFetch({"https://a.example": RuntimeError("boom"), "https://b.example": _PAGE})
        results = Orchestrator(registry, fetch=fetch, sleep=lambda s: None).run_search("RG")

        assert results["A"] == []
        assert [r.title for r in results["B"]] == ["RX-78-2 Gundam"]

    def test_exception_marked_failed(self, registry):
        fetch = FakeFetch({"https://a.example": RuntimeError("boom"), "https://b.example": _PAGE})
        report = Orchestrator(registry, fetch=fetch, sleep=lambda s: None).search("RG")

        assert report.failed_sites == ["A"]
        assert report.outcomes[0].error == "RuntimeError: boom"
        assert report.outcomes[0].failure is None

    def test_descriptor_url_rule_used(self):
        registry = SiteRegistry([SiteDescriptor(
            id="A",
            base_url="https://a.example/search?type=kit",
            url_rule=UrlRule(UrlRuleKind.APPEND_ENCODED),
            rule=DEFAULT_RULE,
        )])
        fetch = FakeFetch({"https://a.example": _PAGE})
        Orchestrator(registry, fetch=fetch, sleep=lambda s: None).run_search("RG")

        assert fetch.calls[0][0] == "https://a.example/search?type=kitRG"


class TestSearchReport:
    """Tests for Orchestrator.search."""

    def test_failure_kind_kept(self, registry):
        fetch = FakeFetch({"https://a.example": _PAGE, "https://b.example": _timeout("https://b.example")})
        report = Orchestrator(registry, fetch=fetch, sleep=lambda s: None).search("RG")

        assert report.failed_sites == ["B"]
        assert report.outcomes[1].failure.kind is FailureKind.UPSTREAM_UNREACHABLE
        assert report.total_results == 1
        assert report.run_id is None

    def test_persistence_failure_not_raised(self, registry):
        store = MagicMock()
        store.save_run.side_effect = PersistenceError("database is locked")
        fetch = FakeFetch({"https://a.example": _PAGE, "https://b.example": _PAGE})

        report = Orchestrator(registry, store=store, fetch=fetch, sleep=lambda s: None).search("RG")

        assert report.persistence_error == "database is locked"
        assert report.total_results == 2
        store.save_run.assert_called_once_with("RG", report.results)

    def test_run_time_limit(self):
        registry = SiteRegistry.from_mapping({
            "A": "https://a.example/search?q=",
            "B": "https://b.example/search?q=",
            "C": "https://c.example/search?q=",
        })
        now = [0.0]

        def sleep(seconds):
            now[0] += seconds

        fetch = FakeFetch({"https://a.example": _PAGE, "https://b.example": _PAGE, "https://c.example": _PAGE})
        report = Orchestrator(
            registry, fetch=fetch, sleep=sleep, clock=lambda: now[0], max_run_seconds=3,
        ).search("RG")

        assert [c[1] for c in fetch.calls] == [3000, 1000]
        assert report.results["C"] == []
        assert now[0] == 3.0
        assert report.failed_sites == ["C"]
        assert report.outcomes[2].error == "run time limit reached"

    def test_timeout_never_zero(self, registry):
        now = [0.0]

        def fetch(url, headers, timeout_ms, max_redirects):
            fetch.timeouts.append(timeout_ms)
            now[0] += 2.9995
            return RawPage(url=url, html=_PAGE, status_code=200)

        fetch.timeouts = []
        report = Orchestrator(
            registry, fetch=fetch, sleep=lambda s: None, clock=lambda: now[0], max_run_seconds=3,
        ).search("RG", delay_ms=0)

        assert fetch.timeouts == [3000, 1]
        assert report.failed_sites == []

    def test_persistence_failure_real_store(self, registry, tmp_path):
        """A database that cannot be opened still leaves the scraped results."""
        store = RunStore(tmp_path)
        fetch = FakeFetch({"https://a.example": _PAGE, "https://b.example": _timeout("https://b.example")})

        report = Orchestrator(registry, store=store, fetch=fetch, sleep=lambda s: None).search("RX-78-2")

        assert report.run_id is None
        assert "unable to open database file" in report.persistence_error
        assert [r.title for r in report.results["A"]] == ["RX-78-2 Gundam"]


class TestSiteHook:
    """Tests for the on_site hook."""

    def test_called_per_site_in_order(self, registry):
        seen = []
        fetch = FakeFetch({"https://a.example": _PAGE, "https://b.example": _timeout("https://b.example")})
        Orchestrator(registry, fetch=fetch, sleep=lambda s: None, on_site=seen.append).search("RG")

        assert [o.site_id for o in seen] == ["A", "B"]
        assert len(seen[0].records) == 1
        assert not seen[1].ok

    def test_hook_failure_isolated(self, registry):
        hook = MagicMock(side_effect=OSError("disk full"))
        fetch = FakeFetch({"https://a.example": _PAGE, "https://b.example": _PAGE})
        results = Orchestrator(registry, fetch=fetch, sleep=lambda s: None, on_site=hook).run_search("RG")

        assert hook.call_count == 2
        assert len(results["A"]) == 1 and len(results["B"]) == 1


class TestEndToEnd:
    """Orchestrator and RunStore together."""

    def test_saved_total(self, registry, tmp_path):
        store = RunStore(tmp_path / "gunpla.db")
        store.init_db()
        store.sync_sites(registry)
        fetch = FakeFetch({"https://a.example": _PAGE, "https://b.example": _timeout("https://b.example")})

        report = Orchestrator(registry, store=store, fetch=fetch, sleep=lambda s: None).search("RX-78-2")

        runs = store.list_recent_runs()
        assert [r.id for r in runs] == [report.run_id]
        assert runs[0].total_results == 1
        assert store.get_run(report.run_id).results == report.results
