"""Search-result extraction.

Each container node matched by the site's rule becomes at most one
``ProductRecord``. Containers without a title are skipped.
"""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup, Tag

from gunpla.config import MISSING_LINK, PRICE_NOT_AVAILABLE
from gunpla.models import ExtractionRule, ProductRecord
from gunpla.urls import has_scheme, join_relative_link

logger = logging.getLogger(__name__)


def extract_products(html: str, rule: ExtractionRule, source: str) -> list[ProductRecord]:
    """Extract product records from a search-results page.

    Args:
        html: page markup
        rule: selectors of the site the page came from
        source: site id stamped on every record

    Returns:
        Records in document order of their containers. An empty list is a
        valid result, not an error.
    """
    soup = BeautifulSoup(html, "html.parser")
    records: list[ProductRecord] = []

    for container in soup.select(rule.container):
        record = _extract_one(container, rule, source)
        if record is not None:
            records.append(record)

    logger.debug("%s: %d records from %d bytes", source, len(records), len(html))
    return records


def _extract_one(container: Tag, rule: ExtractionRule, source: str) -> ProductRecord | None:
    title = _text(container, rule.title)
    if not title:
        return None

    return ProductRecord(
        title=title,
        price=_text(container, rule.price) or PRICE_NOT_AVAILABLE,
        link=_resolve_link(_attr(container, rule.link, "href"), rule.base_url),
        image=_attr(container, rule.image, "src") or "",
        source=source,
    )


def _text(container: Tag, selector: str) -> str:
    node = container.select_one(selector)
    return node.get_text().strip() if node is not None else ""


def _attr(container: Tag, selector: str, name: str) -> str | None:
    node = container.select_one(selector)
    if node is None:
        return None
    value = node.get(name)
    # multi-valued attributes come back as lists
    if isinstance(value, list):
        value = " ".join(value)
    return value


def _resolve_link(href: str | None, base_url: str | None) -> str:
    if not href:
        return MISSING_LINK
    if base_url and not has_scheme(href) and not href.startswith("//"):
        return join_relative_link(base_url, href)
    return href
