"""
Recommendation Engine
=====================
Turns an assembled scan envelope into prioritized, actionable advice.

Every rule is independent: several may fire for one scan, and one sub-result
(the SEO issue list) can produce several entries.
"""

import logging
from typing import Dict, List, Optional

from domain_audit.util.types import Bucket, Recommendation, RecommendationSet, ScanResult

logger = logging.getLogger(__name__)

# Known SEO issue substrings -> remediation text
SEO_FIXES: Dict[str, str] = {
    'Missing title tag': 'Add a unique, descriptive <title> tag (30-60 characters)',
    'Missing meta description': 'Add a compelling meta description (120-160 characters)',
    'Missing H1 tag': 'Add a single H1 heading that describes the page content',
    'Multiple H1 tags': 'Use only one H1 tag per page',
    'Title length not optimal': 'Adjust title length to 30-60 characters',
    'Description length not optimal': 'Adjust description length to 120-160 characters',
    'Missing canonical URL': 'Add canonical URL to prevent duplicate content',
    'Not using HTTPS': 'Migrate to HTTPS with SSL certificate',
    'No structured data found': 'Implement Schema.org structured data (JSON-LD)',
    'images without alt text': 'Add descriptive alt text to every content image',
}
GENERIC_SEO_FIX = 'Review and fix this issue'

# SEO issues severe enough to be critical
CRITICAL_SEO_MARKERS = ('Missing title', 'Missing H1')

PERFORMANCE_THRESHOLD = 70


def seo_fix(issue: str) -> str:
    """Remediation for an SEO issue, matched by substring."""
    for marker, fix in SEO_FIXES.items():
        if marker in issue:
            return fix
    return GENERIC_SEO_FIX


def _header_names(missing: List) -> List[str]:
    names = []
    for item in missing:
        if isinstance(item, dict):
            names.append(str(item.get('header', '')))
        else:
            names.append(str(item))
    return [n for n in names if n]


class RecommendationEngine:
    """Generate remediation recommendations from a ScanResult"""

    def recommend(self, result: ScanResult) -> RecommendationSet:
        """
        Apply every rule to ``result``.

        Failed categories read as empty, so a failed SSL, technology or
        SEO scan is judged as no certificate, no CDN or analytics and no
        structured data.
        """
        recs = RecommendationSet()

        self._ssl(result, recs)
        self._seo_issues(result, recs)
        self._security_headers(result, recs)
        self._performance(result, recs)
        self._technologies(result, recs)
        self._mobile(result, recs)
        self._structured_data(result, recs)

        logger.debug(f"{result.domain}: {recs.total_recommendations} recommendations")
        return recs

    def _ssl(self, result: ScanResult, recs: RecommendationSet) -> None:
        if result.category('ssl').get('valid'):
            return
        recs.add(Bucket.CRITICAL, Recommendation(
            category='Security',
            issue='No valid SSL certificate',
            recommendation='Install a valid SSL certificate (free with Let\'s Encrypt)',
            impact='High - Affects trust, SEO, and security',
            effort='Low',
        ))

    def _seo_issues(self, result: ScanResult, recs: RecommendationSet) -> None:
        issues = result.category('seo').get('seo_score', {}).get('issues') or []
        for issue in issues:
            bucket = Bucket.CRITICAL if any(m in issue for m in CRITICAL_SEO_MARKERS) else Bucket.IMPORTANT
            recs.add(bucket, Recommendation(
                category='SEO',
                issue=issue,
                recommendation=seo_fix(issue),
                impact='Medium-High',
                effort='Low',
            ))

    def _security_headers(self, result: ScanResult, recs: RecommendationSet) -> None:
        missing = _header_names(result.category('security_headers').get('missing') or [])
        if not missing:
            return
        recs.add(Bucket.IMPORTANT, Recommendation(
            category='Security',
            issue='Missing security headers: ' + ', '.join(missing),
            recommendation='Add security headers to server configuration',
            impact='Medium',
            effort='Low',
        ))

    def _performance(self, result: ScanResult, recs: RecommendationSet) -> None:
        score: Optional[float] = result.category('performance').get('score')
        if score is None or score >= PERFORMANCE_THRESHOLD:
            return
        recs.add(Bucket.IMPORTANT, Recommendation(
            category='Performance',
            issue='Low performance score',
            recommendation='Optimize images, minify CSS/JS, enable compression, use CDN',
            impact='High - Affects user experience and SEO',
            effort='Medium',
        ))

    def _technologies(self, result: ScanResult, recs: RecommendationSet) -> None:
        # A failed technology scan counts as nothing detected
        tech = result.category('technologies')
        if not tech.get('cdn'):
            recs.add(Bucket.SUGGESTED, Recommendation(
                category='Performance',
                issue='No CDN detected',
                recommendation='Implement a CDN (Cloudflare, AWS CloudFront, etc.) to improve global performance',
                impact='Medium',
                effort='Low-Medium',
            ))
        if not tech.get('analytics'):
            recs.add(Bucket.SUGGESTED, Recommendation(
                category='Analytics',
                issue='No analytics detected',
                recommendation='Install web analytics (Google Analytics, Plausible, Matomo) to track visitors',
                impact='Medium',
                effort='Low',
            ))

    def _mobile(self, result: ScanResult, recs: RecommendationSet) -> None:
        # Only an explicit "no viewport" counts; an unscanned page says nothing
        if result.category('seo').get('mobile_seo', {}).get('viewport_meta') is not False:
            return
        recs.add(Bucket.IMPORTANT, Recommendation(
            category='Mobile',
            issue='Missing viewport meta tag',
            recommendation='Add <meta name="viewport" content="width=device-width, initial-scale=1"> to HTML',
            impact='High - Affects mobile experience',
            effort='Very Low',
        ))

    def _structured_data(self, result: ScanResult, recs: RecommendationSet) -> None:
        if result.category('seo').get('structured_data', {}).get('has_json_ld'):
            return
        recs.add(Bucket.SUGGESTED, Recommendation(
            category='SEO',
            issue='No structured data (Schema.org)',
            recommendation='Add JSON-LD structured data for better search results',
            impact='Medium',
            effort='Medium',
        ))
