"""Command-line entry point for the Gunpla listing scraper.

Commands:
  search TERM   scrape every registered site, save the run, dump JSON
  recent        list the most recent saved runs
  show RUN_ID   print one saved run
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime

from gunpla.config import (
    DATA_DIR,
    DB_PATH,
    DEFAULT_DELAY_MS,
    DEFAULT_RECENT_LIMIT,
    DEFAULT_TIMEOUT_MS,
    FAST_DELAY_MS,
    LOG_DIR,
    LONG_TIMEOUT_MS,
)
from gunpla.db import RunStore
from gunpla.errors import GunplaError
from gunpla.export import dump_run_results, dump_site_results
from gunpla.models import SiteOutcome
from gunpla.orchestrator import Orchestrator
from gunpla.sites import load_sites

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Initial logging setup."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / f"collector_{datetime.now().strftime('%Y%m%d')}.log"
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )


def build_parser() -> argparse.ArgumentParser:
    # accepted before or after the command; SUPPRESS keeps a subcommand from
    # resetting a value given at the top level
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--verbose", action="store_true", default=argparse.SUPPRESS, help="show debug output")
    common.add_argument("--db", default=argparse.SUPPRESS, help=f"SQLite database path (default {DB_PATH})")

    parser = argparse.ArgumentParser(
        prog="gunpla-scrape", description="Search Gunpla shops for a term.", parents=[common],
    )
    parser.set_defaults(verbose=False, db=str(DB_PATH))
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", parents=[common], help="scrape every site for a term")
    search.add_argument("term")
    search.add_argument("--fast", action="store_true",
                        help=f"{FAST_DELAY_MS} ms between sites instead of {DEFAULT_DELAY_MS} (may trigger rate limiting)")
    search.add_argument("--long-timeout", action="store_true",
                        help=f"{LONG_TIMEOUT_MS // 1000} s request timeout for slow sites")
    search.add_argument("--no-save", action="store_true", help="do not write the run to the database")
    search.add_argument("--no-json", action="store_true", help="do not write JSON dumps")

    recent = sub.add_parser("recent", parents=[common], help="list recent runs")
    recent.add_argument("--limit", type=int, default=DEFAULT_RECENT_LIMIT)

    show = sub.add_parser("show", parents=[common], help="print a saved run")
    show.add_argument("run_id", type=int)
    return parser


def _dump_site(outcome: SiteOutcome) -> None:
    dump_site_results(DATA_DIR, outcome.site_id, outcome.records)


def cmd_search(args: argparse.Namespace, store: RunStore) -> int:
    registry = load_sites()
    if not args.no_save:
        store.sync_sites(registry)

    orchestrator = Orchestrator(
        registry,
        store=None if args.no_save else store,
        on_site=None if args.no_json else _dump_site,
    )
    report = orchestrator.search(
        args.term,
        delay_ms=FAST_DELAY_MS if args.fast else DEFAULT_DELAY_MS,
        timeout_ms=LONG_TIMEOUT_MS if args.long_timeout else DEFAULT_TIMEOUT_MS,
    )

    print("\nResults summary:")
    print("----------------")
    for site_id, records in report.results.items():
        print(f"{site_id}: {len(records)} results")
    sites_with_results = sum(1 for records in report.results.values() if records)
    print("----------------")
    print(f"Total results: {report.total_results} from {sites_with_results} sites")

    if not args.no_json:
        path = dump_run_results(DATA_DIR, args.term, report.results)
        print(f"Full results saved to: {path}")

    if report.persistence_error:
        print(f"Results could not be saved to the database: {report.persistence_error}", file=sys.stderr)
        return 2
    if report.run_id is not None:
        print(f"Saved as run {report.run_id}")
    return 0


def cmd_recent(args: argparse.Namespace, store: RunStore) -> int:
    runs = store.list_recent_runs(args.limit)
    if not runs:
        print("No saved searches.")
    for run in runs:
        print(f"{run.id:>5}  {run.timestamp}  {run.total_results:>4} results  {run.search_term}")
    return 0


def cmd_show(args: argparse.Namespace, store: RunStore) -> int:
    stored = store.get_run(args.run_id)
    print(f"Search: {stored.run.search_term} ({stored.run.timestamp})")
    print(f"Total results: {stored.run.total_results}")
    for site_id, records in stored.results.items():
        print(f"\n[{site_id}] {len(records)} results")
        for r in records:
            print(f"  {r.title} | {r.price} | {r.link}")
    return 0


COMMANDS = {
    "search": cmd_search,
    "recent": cmd_recent,
    "show": cmd_show,
}


def run(argv: list[str] | None = None) -> int:
    """Main process."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    store = RunStore(args.db)
    try:
        store.init_db()
        return COMMANDS[args.command](args, store)
    except GunplaError as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(run())
