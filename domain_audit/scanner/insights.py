"""Stand-alone competitive insights for a single scan.

Without other domains to compare against, the best available signal is
how the site positions itself: a market-position score from SSL, modern
stack, analytics, CDN and SEO, plus notable differentiators.
"""

from typing import Any, Dict, List

from domain_audit.util.types import ScanResult

MARKET_LEVELS = [
    (80, 'Leader'),
    (60, 'Strong'),
    (40, 'Average'),
    (20, 'Developing'),
]


def market_level(score: float) -> str:
    for threshold, level in MARKET_LEVELS:
        if score >= threshold:
            return level
    return 'Emerging'


def market_position(result: ScanResult) -> Dict[str, Any]:
    score = 0.0
    factors = []
    tech = result.category('technologies')

    if result.category('ssl').get('valid'):
        score += 20
        factors.append('Has valid SSL certificate')
    if tech.get('frameworks'):
        score += 15
        factors.append('Uses modern frameworks')
    if tech.get('analytics'):
        score += 15
        factors.append('Has analytics tracking')
    if tech.get('cdn'):
        score += 20
        factors.append('Uses CDN for performance')

    seo_score = result.category('seo').get('seo_score', {}).get('score')
    if seo_score is not None:
        score += seo_score / 100 * 30
        factors.append(f"SEO score: {seo_score}/100")

    return {
        'score': round(score, 2),
        'max_score': 100,
        'level': market_level(score),
        'factors': factors,
    }


def differentiators(result: ScanResult) -> List[str]:
    found = []

    tech_count = result.category('technologies').get('summary', {}).get('total_technologies')
    if tech_count is not None and tech_count > 15:
        found.append(f"Rich technology stack ({tech_count} technologies)")

    models = result.category('business_intelligence').get('business_model', {})
    if sum(1 for active in models.values() if active) > 2:
        found.append('Multi-channel business model')

    hreflang = result.category('seo').get('international_seo', {}).get('hreflang', {})
    if len(hreflang) > 1:
        found.append(f"International presence ({len(hreflang)} languages)")

    security_score = result.category('security_headers').get('score')
    if security_score is not None and security_score >= 80:
        found.append('Strong security implementation')

    return found


def competitor_insights(result: ScanResult) -> Dict[str, Any]:
    """The ``competitors`` field of a scan envelope."""
    return {
        'market_position': market_position(result),
        'differentiators': differentiators(result),
    }
