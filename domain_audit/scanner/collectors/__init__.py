"""Category collectors, one per field of the scan envelope."""

from typing import Dict, Optional

from domain_audit.scanner.collectors.base import Collector, PageCollector, run_collector
from domain_audit.scanner.collectors.blacklist import BlacklistCollector
from domain_audit.scanner.collectors.business_intelligence import BusinessIntelligenceCollector
from domain_audit.scanner.collectors.dns import DNSCollector, make_resolver
from domain_audit.scanner.collectors.performance import PerformanceCollector
from domain_audit.scanner.collectors.security_headers import SecurityHeadersCollector
from domain_audit.scanner.collectors.seo import SEOCollector
from domain_audit.scanner.collectors.ssl import SSLCollector
from domain_audit.scanner.collectors.technologies import TechnologyCollector
from domain_audit.scanner.collectors.whois import WhoisCollector
from domain_audit.scanner.http import HttpFetcher
from domain_audit.util.types import CATEGORIES


def default_collectors(config, fetcher: Optional[HttpFetcher] = None) -> Dict[str, Collector]:
    """Build the nine production collectors from ``config``, keyed by category.

    Page collectors share one fetcher (one HTTP session per thread).
    """
    fetcher = fetcher or HttpFetcher(config.http_timeout, config.user_agent)
    resolver = make_resolver(config.dns_timeout)

    collectors = [
        DNSCollector(resolver),
        WhoisCollector(resolver, config.whois_timeout),
        SSLCollector(config.tls_timeout),
        BlacklistCollector(resolver),
        SecurityHeadersCollector(fetcher),
        SEOCollector(fetcher),
        TechnologyCollector(fetcher),
        BusinessIntelligenceCollector(fetcher),
        PerformanceCollector(fetcher),
    ]
    by_category = {c.category: c for c in collectors}
    return {category: by_category[category] for category in CATEGORIES}


__all__ = [
    'Collector',
    'PageCollector',
    'run_collector',
    'default_collectors',
    'BlacklistCollector',
    'BusinessIntelligenceCollector',
    'DNSCollector',
    'PerformanceCollector',
    'SecurityHeadersCollector',
    'SEOCollector',
    'SSLCollector',
    'TechnologyCollector',
    'WhoisCollector',
]
