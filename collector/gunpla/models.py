"""Data model definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class UrlRuleKind(Enum):
    """How a site's search term is attached to its base URL."""

    APPEND_ENCODED = "append_encoded"
    REPLACE_PARAM = "replace_param"
    APPEND_QUERY_PARAM = "append_query_param"


@dataclass(frozen=True)
class UrlRule:
    kind: UrlRuleKind
    param: str | None = None  # only for REPLACE_PARAM (e.g. "k", "_nkw")


@dataclass(frozen=True)
class ExtractionRule:
    """CSS selectors describing one site's search-result markup."""

    container: str
    title: str
    price: str
    link: str = "a"
    image: str = "img"
    base_url: str | None = None  # prefix for relative links


@dataclass(frozen=True)
class SiteDescriptor:
    """One registered site."""

    id: str
    base_url: str
    url_rule: UrlRule
    rule: ExtractionRule


@dataclass
class ProductRecord:
    """One product listing extracted from a search-results page."""

    title: str
    price: str
    link: str
    image: str
    source: str  # site id


@dataclass
class RawPage:
    """A successfully fetched page."""

    url: str
    html: str
    status_code: int


class FailureKind(Enum):
    UPSTREAM_HTTP_ERROR = "upstream_http_error"  # non-2xx response
    UPSTREAM_UNREACHABLE = "upstream_unreachable"  # no response (DNS, timeout, ...)
    REQUEST_SETUP_ERROR = "request_setup_error"  # request never sent


@dataclass
class FetchFailure:
    url: str
    kind: FailureKind
    message: str
    status_code: int | None = None


@dataclass
class SiteOutcome:
    """Result of visiting one site: records, or the failure that emptied them.

    ``failure`` is set when the fetch failed; ``error`` when the site raised
    outside the fetcher or was never visited.
    """

    site_id: str
    records: list[ProductRecord] = field(default_factory=list)
    failure: FetchFailure | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None and self.error is None


@dataclass(frozen=True)
class SearchRun:
    """A persisted search run (row of ``searches``)."""

    id: int
    search_term: str
    timestamp: str  # ISO 8601
    total_results: int


@dataclass(frozen=True)
class RunProduct:
    """A persisted product row (row of ``products``)."""

    search_run_id: int
    site_id: int
    title: str
    price: str
    link: str
    image: str


@dataclass
class StoredRun:
    """A search run read back from the store, in the orchestrator's result shape."""

    run: SearchRun
    results: dict[str, list[ProductRecord]]


@dataclass
class RunReport:
    """Everything one orchestration run produced."""

    search_term: str
    outcomes: list[SiteOutcome] = field(default_factory=list)
    run_id: int | None = None
    persistence_error: str | None = None
    elapsed: float = 0.0

    @property
    def results(self) -> dict[str, list[ProductRecord]]:
        return {o.site_id: o.records for o in self.outcomes}

    @property
    def total_results(self) -> int:
        return sum(len(o.records) for o in self.outcomes)

    @property
    def failed_sites(self) -> list[str]:
        return [o.site_id for o in self.outcomes if not o.ok]
