"""JSON dumps of search results."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from gunpla.models import ProductRecord

logger = logging.getLogger(__name__)


def results_to_dict(results: Mapping[str, list[ProductRecord]]) -> dict[str, list[dict[str, Any]]]:
    return {site_id: [asdict(r) for r in records] for site_id, records in results.items()}


def save_to_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")


def dump_site_results(data_dir: Path, site_id: str, records: list[ProductRecord]) -> Path:
    """Write one site's records to ``<data_dir>/<site_id>.json``."""
    path = data_dir / f"{site_id}.json"
    save_to_json(path, [asdict(r) for r in records])
    return path


def dump_run_results(
    data_dir: Path,
    search_term: str,
    results: Mapping[str, list[ProductRecord]],
    now: datetime | None = None,
) -> Path:
    """Write the combined ``all_results_<term>_<timestamp>.json``.

    Per-site files are written as each site finishes, see ``dump_site_results``.

    Returns:
        path of the combined file.
    """
    timestamp = (now or datetime.now()).strftime("%Y-%m-%dT%H-%M-%S")
    path = data_dir / f"all_results_{_slug(search_term)}_{timestamp}.json"
    save_to_json(path, results_to_dict(results))
    logger.info("Results written to %s", path)
    return path


def _slug(search_term: str) -> str:
    return re.sub(r"[\s/\\]+", "_", search_term.strip())
