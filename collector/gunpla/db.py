"""SQLite run store.

Tables:
  searches  one row per saved run
  sites     registered sites, unique by name
  products  one row per extracted record; cascades from searches and sites

Each operation opens its own connection. ``save_run`` is a single
transaction, so readers never see a half-written run.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Mapping

from gunpla.config import DB_PATH, DEFAULT_RECENT_LIMIT, MISSING_LINK, PRICE_NOT_AVAILABLE
from gunpla.errors import PersistenceError, RunNotFoundError, UnknownSiteError
from gunpla.models import ProductRecord, RunProduct, SearchRun, SiteDescriptor, StoredRun

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS searches (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    search_term TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    total_results INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS sites (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    base_url TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    search_id INTEGER NOT NULL,
    site_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    price TEXT,
    link TEXT,
    image TEXT,
    FOREIGN KEY (search_id) REFERENCES searches (id) ON DELETE CASCADE,
    FOREIGN KEY (site_id) REFERENCES sites (id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_products_search_id ON products (search_id);
"""


class RunStore:
    """Append-only history of search runs."""

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = Path(db_path) if db_path is not None else DB_PATH

    def _connect(self) -> sqlite3.Connection:
        """Open a connection with foreign keys enabled."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _connection(self, action: str) -> Iterator[sqlite3.Connection]:
        """Yield an open connection; any database or filesystem failure becomes ``PersistenceError``.

        Usage::

            with self._connection("Failed to list searches") as conn:
                conn.execute("SELECT 1")
        """
        try:
            conn = self._connect()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"{action}: {e}") from e
        try:
            yield conn
        except sqlite3.Error as e:
            raise PersistenceError(f"{action}: {e}") from e
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create the tables. Safe to call on an existing database.

        Also switches the file to WAL journaling (persistent), so readers
        never block on an in-flight run.
        """
        with self._connection(f"Cannot initialise database {self.db_path}") as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)

    def sync_sites(self, sites: Iterable[SiteDescriptor]) -> None:
        """Register every site so product rows can reference it."""
        with self._connection("Failed to register sites") as conn:
            with conn:
                conn.executemany(
                    "INSERT OR IGNORE INTO sites (name, base_url) VALUES (?, ?)",
                    [(site.id, site.base_url) for site in sites],
                )

    def save_run(self, search_term: str, results: Mapping[str, list[ProductRecord]]) -> int:
        """Save one run and all of its products atomically.

        Args:
            search_term: the term that was searched
            results: ``{site_id: records}`` as returned by the orchestrator

        Returns:
            id of the new ``searches`` row.

        Raises:
            UnknownSiteError: a site with records is not in the ``sites`` table.
            PersistenceError: any database failure; nothing is written.
        """
        timestamp = datetime.now(timezone.utc).isoformat()
        total = sum(len(records) for records in results.values())

        with self._connection(f"Failed to save search {search_term!r}") as conn:
            with conn:
                site_ids = _resolve_site_ids(conn, [name for name, records in results.items() if records])

                cur = conn.execute(
                    "INSERT INTO searches (search_term, timestamp, total_results) VALUES (?, ?, ?)",
                    (search_term, timestamp, total),
                )
                run_id = cur.lastrowid

                for site_name, records in results.items():
                    for record in records:
                        self._insert_product(conn, RunProduct(
                            search_run_id=run_id,
                            site_id=site_ids[site_name],
                            title=record.title,
                            price=record.price or PRICE_NOT_AVAILABLE,
                            link=record.link or MISSING_LINK,
                            image=record.image or "",
                        ))

        logger.info("searches: run %d saved with %d products", run_id, total)
        return run_id

    def _insert_product(self, conn: sqlite3.Connection, product: RunProduct) -> None:
        conn.execute(
            "INSERT INTO products (search_id, site_id, title, price, link, image) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (product.search_run_id, product.site_id, product.title,
             product.price, product.link, product.image),
        )

    def get_run(self, run_id: int) -> StoredRun:
        """Read a run back as ``{site_id: records}`` over every known site.

        Raises:
            RunNotFoundError: no run with this id.
        """
        with self._connection(f"Failed to read search {run_id}") as conn:
            row = conn.execute(
                "SELECT id, search_term, timestamp, total_results FROM searches WHERE id = ?",
                (run_id,),
            ).fetchone()
            if row is None:
                raise RunNotFoundError(run_id)

            # every site starts empty so the key set is stable across runs
            results: dict[str, list[ProductRecord]] = {
                site["name"]: [] for site in conn.execute("SELECT name FROM sites ORDER BY id")
            }
            products = conn.execute(
                "SELECT p.title, p.price, p.link, p.image, s.name AS site_name "
                "FROM products p JOIN sites s ON p.site_id = s.id "
                "WHERE p.search_id = ? ORDER BY p.id",
                (run_id,),
            ).fetchall()

        for p in products:
            results[p["site_name"]].append(ProductRecord(
                title=p["title"],
                price=p["price"],
                link=p["link"],
                image=p["image"],
                source=p["site_name"],
            ))

        return StoredRun(run=_to_search_run(row), results=results)

    def list_recent_runs(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[SearchRun]:
        """Return up to *limit* runs, most recent first."""
        with self._connection("Failed to list searches") as conn:
            rows = conn.execute(
                "SELECT id, search_term, timestamp, total_results FROM searches "
                "ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [_to_search_run(row) for row in rows]

    def delete_run(self, run_id: int) -> bool:
        """Delete a run and, through the cascade, its products."""
        with self._connection(f"Failed to delete search {run_id}") as conn:
            with conn:
                cur = conn.execute("DELETE FROM searches WHERE id = ?", (run_id,))
        return cur.rowcount > 0


def _resolve_site_ids(conn: sqlite3.Connection, names: list[str]) -> dict[str, int]:
    """Map site names to ``sites.id``; raise before anything is written."""
    site_ids: dict[str, int] = {}
    for name in names:
        row = conn.execute("SELECT id FROM sites WHERE name = ?", (name,)).fetchone()
        if row is None:
            raise UnknownSiteError(name)
        site_ids[name] = row["id"]
    return site_ids


def _to_search_run(row: sqlite3.Row) -> SearchRun:
    return SearchRun(
        id=row["id"],
        search_term=row["search_term"],
        timestamp=row["timestamp"],
        total_results=row["total_results"],
    )
