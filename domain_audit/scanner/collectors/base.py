"""Collector contract and the single place collector failures are caught.

A collector turns a domain into one category's result mapping, or raises.
``run_collector`` is the only call site that converts a raised exception into
a ``CollectorOutcome`` error, so the orchestrator never sees an exception.
"""

import logging
from typing import Any, Callable, Dict

from domain_audit.scanner.http import HttpFetcher, PageFetch
from domain_audit.util.errors import CollectorError
from domain_audit.util.time import duration_ms, now_utc
from domain_audit.util.types import CollectorOutcome

logger = logging.getLogger(__name__)


class Collector:
    """Base class for the nine category collectors.

    ``category`` is the envelope field, ``cache_name`` the segment used in
    ``complete_scan:<cache_name>:<domain>`` and ``ttl`` the cache lifetime.
    """

    category = ""
    cache_name = ""
    ttl = 3600

    def collect(self, domain: str) -> Dict[str, Any]:
        raise NotImplementedError

    def fail(self, message: str) -> CollectorError:
        return CollectorError(self.category, message)


class PageCollector(Collector):
    """Collector that analyses the site's home page over HTTPS."""

    def __init__(self, fetcher: HttpFetcher):
        self.fetcher = fetcher

    @staticmethod
    def url_for(domain: str) -> str:
        return f"https://{domain}"

    def fetch(self, domain: str, allow_error_status: bool = False) -> PageFetch:
        return self.fetcher.fetch(self.url_for(domain), self.category, allow_error_status)


def run_collector(category: str, producer: Callable[[], Dict[str, Any]]) -> CollectorOutcome:
    """Run ``producer`` and capture any failure as an error outcome."""
    start = now_utc()
    try:
        value = producer()
    except CollectorError as e:
        logger.warning(f"{category} collector failed: {e.message}")
        return CollectorOutcome(category, error=e.message, duration_ms=duration_ms(start))
    except Exception as e:
        # Anything unexpected still must not abort the scan
        logger.warning(f"{category} collector crashed: {type(e).__name__}: {e}")
        return CollectorOutcome(category, error=f"{type(e).__name__}: {e}", duration_ms=duration_ms(start))

    if not isinstance(value, dict):
        return CollectorOutcome(category, error="Collector returned no data", duration_ms=duration_ms(start))
    if 'error' in value:
        return CollectorOutcome(category, error=str(value['error']), duration_ms=duration_ms(start))
    return CollectorOutcome(category, value=value, duration_ms=duration_ms(start))
