"""Exception hierarchy.

Fetch failures are not exceptions: the fetcher returns a ``FetchFailure``
value and the orchestrator turns it into an empty site result.
"""


class GunplaError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(GunplaError):
    """The site configuration is unreadable or inconsistent."""


class PersistenceError(GunplaError):
    """Writing a search run failed and the transaction was rolled back."""


class UnknownSiteError(PersistenceError):
    """A result map references a site that is not in the ``sites`` table."""

    def __init__(self, site_id: str):
        super().__init__(f"Site not found: {site_id}")
        self.site_id = site_id


class RunNotFoundError(GunplaError):
    """No search run exists with the requested id."""

    def __init__(self, run_id: int):
        super().__init__(f"Search not found: {run_id}")
        self.run_id = run_id
