"""Gunpla listing scraper: multi-site search, extraction and run history."""

from gunpla.db import RunStore
from gunpla.orchestrator import Orchestrator
from gunpla.sites import SiteRegistry, load_sites

__all__ = ["Orchestrator", "RunStore", "SiteRegistry", "load_sites"]
