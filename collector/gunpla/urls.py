"""Search URL construction and relative link resolution."""

from __future__ import annotations

import re
from urllib.parse import quote

from gunpla.models import UrlRule, UrlRuleKind
from gunpla.sites import url_rule_for

_SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")


def encode_term(term: str) -> str:
    """Percent-encode a search term (spaces become %20)."""
    return quote(term, safe="")


def build_search_url(site_id: str, base_url: str, term: str, rule: UrlRule | None = None) -> str:
    """Build the search URL for *term* on one site.

    Priority order:
      1. query string ending in "=": append the encoded term
      2. site with a named search parameter present in the query: replace its value
      3. any other query string: append "&q=<term>"
      4. no query string: append the encoded term

    *rule* is the site's precomputed ``SiteDescriptor.url_rule``; it is
    derived from *site_id* and *base_url* when omitted.

    Never raises; unknown shapes end up in (3) or (4).
    """
    encoded = encode_term(term)
    if rule is None:
        rule = url_rule_for(site_id, base_url)

    if rule.kind is UrlRuleKind.REPLACE_PARAM:
        return _replace_param(base_url, rule.param, encoded)
    if rule.kind is UrlRuleKind.APPEND_QUERY_PARAM:
        return f"{base_url}&q={encoded}"
    return base_url + encoded


def _replace_param(url: str, param: str, value: str) -> str:
    """Substitute *value* for the first *param* value, leaving everything else as is."""
    head, _, rest = url.partition("?")
    query, hash_sign, fragment = rest.partition("#")

    parts = query.split("&")
    for i, part in enumerate(parts):
        if part.split("=", 1)[0] == param:
            parts[i] = f"{param}={value}"
            break

    return f"{head}?{'&'.join(parts)}{hash_sign}{fragment}"


def has_scheme(link: str) -> bool:
    return bool(_SCHEME_PATTERN.match(link))


def join_relative_link(base_url: str, link: str) -> str:
    """Prefix a relative *link* with *base_url* using exactly one "/"."""
    return f"{base_url.rstrip('/')}/{link.lstrip('/')}"
