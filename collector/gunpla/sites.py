"""Site registry: which sites are scraped and how their markup is read.

Known sites get a dedicated ``ExtractionRule`` keyed by the ``KnownSite``
enum; every other site id falls back to ``DEFAULT_RULE`` (or is rejected
when strict mode is on). The base URLs come from the site configuration
file, whose key order is the scraping order.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Iterator, Mapping

from gunpla.config import SITES_FILE, STRICT_SITES
from gunpla.errors import ConfigurationError
from gunpla.models import ExtractionRule, SiteDescriptor, UrlRule, UrlRuleKind

logger = logging.getLogger(__name__)


class KnownSite(str, Enum):
    P_BANDAI_USA = "p_bandai_usa"
    AMAZON = "amazon"
    EBAY = "ebay"
    GUNDAM_PLACE = "gundam_place"
    AZ_TOY_HOBBY = "az_toy_hobby"
    USAGS = "usags"
    NEWTYPE = "newtype"
    GUNDAM_GALAXY = "gundam_galaxy"


# Guesses at common storefront markup; used for any site without its own rule.
DEFAULT_RULE = ExtractionRule(
    container="div.product, div.item, div.product-item, div.product-card",
    title="h2, h3, h4, .title, .name",
    price=".price, .product-price",
)

_PRODUCT_ITEM = ExtractionRule(
    container=".product-item",
    title=".product-item-title",
    price=".product-item-price",
)

SITE_RULES: dict[KnownSite, ExtractionRule] = {
    KnownSite.P_BANDAI_USA: ExtractionRule(
        container=".product-list__item",
        title=".product-list__name",
        price=".product-list__price",
        base_url="https://p-bandai.com",
    ),
    KnownSite.AMAZON: ExtractionRule(
        container="div.s-result-item[data-component-type='s-search-result']",
        title="h2 span",
        price=".a-price .a-offscreen",
        link="h2 a, a.a-link-normal",
        image="img.s-image",
        base_url="https://www.amazon.com",
    ),
    KnownSite.EBAY: ExtractionRule(
        container="li.s-item",
        title=".s-item__title",
        price=".s-item__price",
        link="a.s-item__link",
        image=".s-item__image img",
    ),
    KnownSite.GUNDAM_PLACE: _PRODUCT_ITEM,
    KnownSite.AZ_TOY_HOBBY: ExtractionRule(
        container=".product-card",
        title=".product-card__title",
        price=".product-card__price",
        base_url="https://aztoyhobby.com",
    ),
    KnownSite.USAGS: _PRODUCT_ITEM,
    KnownSite.NEWTYPE: ExtractionRule(
        container=".product-card",
        title=".product-card__title",
        price=".product-card__price",
    ),
    KnownSite.GUNDAM_GALAXY: ExtractionRule(
        container=".item",
        title=".name",
        price=".price",
        base_url="https://www.thegundamgalaxy.com",
    ),
}

# Sites whose search term goes into a named query parameter of the base URL.
SEARCH_PARAMS: dict[KnownSite, str] = {
    KnownSite.P_BANDAI_USA: "text",
    KnownSite.AMAZON: "k",
    KnownSite.EBAY: "_nkw",
}


def _validate_rules() -> None:
    missing = [site.value for site in KnownSite if site not in SITE_RULES]
    if missing:
        raise ConfigurationError(f"No extraction rule for known sites: {', '.join(missing)}")
    for site, rule in [*SITE_RULES.items(), (None, DEFAULT_RULE)]:
        if not rule.container.strip():
            name = site.value if site else "default"
            raise ConfigurationError(f"Empty container selector for {name}")


_validate_rules()


def known_site(site_id: str) -> KnownSite | None:
    """Return the ``KnownSite`` member for *site_id*, or None."""
    try:
        return KnownSite(site_id)
    except ValueError:
        return None


def rule_for(site_id: str, strict: bool = False) -> ExtractionRule:
    """Return the extraction rule for *site_id*.

    Args:
        site_id: site identifier from the configuration file
        strict: raise instead of falling back to ``DEFAULT_RULE``

    Raises:
        ConfigurationError: strict mode and the site has no dedicated rule.
    """
    site = known_site(site_id)
    if site is not None:
        return SITE_RULES[site]
    if strict:
        raise ConfigurationError(f"No extraction rule registered for site: {site_id}")
    return DEFAULT_RULE


def search_param_for(site_id: str) -> str | None:
    """Return the named search parameter for *site_id*, if it has one."""
    site = known_site(site_id)
    return SEARCH_PARAMS.get(site) if site is not None else None


def url_rule_for(site_id: str, base_url: str) -> UrlRule:
    """Classify how the search term is attached to *base_url*.

    Mirrors the priority order of ``gunpla.urls.build_search_url``.
    """
    if "?" in base_url:
        if base_url.endswith("="):
            return UrlRule(UrlRuleKind.APPEND_ENCODED)
        param = search_param_for(site_id)
        if param is not None and _has_query_key(base_url, param):
            return UrlRule(UrlRuleKind.REPLACE_PARAM, param)
        return UrlRule(UrlRuleKind.APPEND_QUERY_PARAM)
    return UrlRule(UrlRuleKind.APPEND_ENCODED)


def _has_query_key(url: str, key: str) -> bool:
    query = url.split("?", 1)[1].split("#", 1)[0]
    return any(part.split("=", 1)[0] == key for part in query.split("&"))


class SiteRegistry:
    """Ordered, read-only collection of ``SiteDescriptor``."""

    def __init__(self, sites: list[SiteDescriptor]):
        self._sites = list(sites)
        self._by_id = {site.id: site for site in self._sites}
        if len(self._by_id) != len(self._sites):
            raise ConfigurationError("Duplicate site id in site configuration")

    @classmethod
    def from_mapping(cls, urls: Mapping[str, str], strict: bool = False) -> SiteRegistry:
        """Build a registry from a ``{site_id: base_url}`` mapping."""
        sites = []
        for site_id, base_url in urls.items():
            if not isinstance(base_url, str) or not base_url:
                raise ConfigurationError(f"Invalid base URL for site: {site_id}")
            if known_site(site_id) is None:
                if strict:
                    raise ConfigurationError(f"No extraction rule registered for site: {site_id}")
                logger.warning("No dedicated selectors for %s, using default rule", site_id)
            sites.append(SiteDescriptor(
                id=site_id,
                base_url=base_url,
                url_rule=url_rule_for(site_id, base_url),
                rule=rule_for(site_id),
            ))
        return cls(sites)

    def __iter__(self) -> Iterator[SiteDescriptor]:
        return iter(self._sites)

    def __len__(self) -> int:
        return len(self._sites)

    def __contains__(self, site_id: object) -> bool:
        return site_id in self._by_id

    def get(self, site_id: str) -> SiteDescriptor | None:
        return self._by_id.get(site_id)

    def ids(self) -> list[str]:
        return [site.id for site in self._sites]


def load_sites(path: Path | None = None, strict: bool | None = None) -> SiteRegistry:
    """Read the site configuration JSON and build the registry.

    Args:
        path: configuration file, ``{site_id: base_url}``. Defaults to ``SITES_FILE``.
        strict: reject sites without a dedicated rule. Defaults to ``STRICT_SITES``.

    Raises:
        ConfigurationError: the file is missing, not JSON, or not a mapping.
    """
    path = path or SITES_FILE
    strict = STRICT_SITES if strict is None else strict
    try:
        urls = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read site configuration {path}: {e}") from e
    if not isinstance(urls, dict):
        raise ConfigurationError(f"Site configuration must be a JSON object: {path}")

    registry = SiteRegistry.from_mapping(urls, strict=strict)
    logger.info("Loaded %d sites from %s", len(registry), path)
    return registry
