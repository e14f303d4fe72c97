"""Search page fetching.

Every site receives the same browser-like header set. Failures come back
as ``FetchFailure`` values so that one bad site never stops a run.
"""

from __future__ import annotations

import logging

import requests

from gunpla.config import DEFAULT_TIMEOUT_MS, DESKTOP_USER_AGENT, MAX_REDIRECTS, REFERER
from gunpla.models import FailureKind, FetchFailure, RawPage

logger = logging.getLogger(__name__)

# Raised by requests before anything goes over the wire.
_SETUP_ERRORS = (
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidURL,
    requests.exceptions.InvalidHeader,
    requests.exceptions.URLRequired,
)


def browser_headers() -> dict[str, str]:
    """Return the request headers of a desktop browser."""
    return {
        "User-Agent": DESKTOP_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
        "Referer": REFERER,
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
        "Cache-Control": "max-age=0",
        "Pragma": "no-cache",
    }


def fetch_page(
    url: str,
    headers: dict[str, str] | None = None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    max_redirects: int = MAX_REDIRECTS,
) -> RawPage | FetchFailure:
    """Fetch one search page.

    Args:
        url: fully built search URL
        headers: request headers, ``browser_headers()`` when omitted
        timeout_ms: per-request timeout in milliseconds
        max_redirects: redirect cap

    Returns:
        ``RawPage`` on a 2xx response, otherwise a ``FetchFailure``.
    """
    with requests.Session() as session:
        session.max_redirects = max_redirects
        try:
            resp = session.get(
                url,
                headers=headers if headers is not None else browser_headers(),
                timeout=timeout_ms / 1000,
                allow_redirects=True,
            )
            resp.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            return FetchFailure(url, FailureKind.UPSTREAM_HTTP_ERROR, str(e), status)
        except requests.TooManyRedirects as e:
            return FetchFailure(url, FailureKind.UPSTREAM_HTTP_ERROR, str(e))
        except _SETUP_ERRORS as e:
            return FetchFailure(url, FailureKind.REQUEST_SETUP_ERROR, str(e))
        except requests.RequestException as e:
            return FetchFailure(url, FailureKind.UPSTREAM_UNREACHABLE, str(e))
        except ValueError as e:
            # urllib3 rejects bad timeouts and the like before connecting
            return FetchFailure(url, FailureKind.REQUEST_SETUP_ERROR, str(e))

    logger.debug("Fetched %s (%d, %d bytes)", url, resp.status_code, len(resp.text))
    return RawPage(url=url, html=resp.text, status_code=resp.status_code)
