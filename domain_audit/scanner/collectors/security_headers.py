"""Security headers collector.

Seven weighted response headers (weights sum to 100). A present header earns
its full weight when the value is sound, a fraction when it is weak, nothing
when it is unusable. ``score`` is the earned percentage.
"""

import logging
import re
from typing import Any, Dict, Tuple

from domain_audit.scanner.collectors.base import PageCollector
from domain_audit.scanner.http import PageFetch

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    'strict-transport-security': {
        'name': 'Strict-Transport-Security (HSTS)',
        'weight': 20,
        'description': 'Forces HTTPS and protects against downgrade attacks',
        'recommended': 'max-age=31536000; includeSubDomains; preload',
    },
    'content-security-policy': {
        'name': 'Content-Security-Policy (CSP)',
        'weight': 25,
        'description': 'Mitigates XSS and code injection',
        'recommended': "default-src 'self'",
    },
    'x-frame-options': {
        'name': 'X-Frame-Options',
        'weight': 15,
        'description': 'Prevents clickjacking by blocking framing',
        'recommended': 'DENY or SAMEORIGIN',
    },
    'x-content-type-options': {
        'name': 'X-Content-Type-Options',
        'weight': 10,
        'description': 'Prevents MIME type sniffing',
        'recommended': 'nosniff',
    },
    'x-xss-protection': {
        'name': 'X-XSS-Protection',
        'weight': 10,
        'description': 'Enables the legacy browser XSS filter',
        'recommended': '1; mode=block',
    },
    'referrer-policy': {
        'name': 'Referrer-Policy',
        'weight': 10,
        'description': 'Controls referrer information sent to other sites',
        'recommended': 'strict-origin-when-cross-origin',
    },
    'permissions-policy': {
        'name': 'Permissions-Policy',
        'weight': 10,
        'description': 'Restricts access to browser features and APIs',
        'recommended': 'geolocation=(), microphone=(), camera=()',
    },
}

VALID_REFERRER_POLICIES = {
    'no-referrer', 'no-referrer-when-downgrade', 'origin', 'origin-when-cross-origin',
    'same-origin', 'strict-origin', 'strict-origin-when-cross-origin',
}


def grade_header(key: str, value: str, weight: int) -> Tuple[str, float, str]:
    """Return (status, points, message) for one present header."""
    lower = value.strip().lower()

    if key == 'strict-transport-security':
        match = re.search(r'max-age=(\d+)', value, re.IGNORECASE)
        if not match:
            return 'fail', 0, 'max-age missing'
        max_age = int(match.group(1))
        if max_age >= 31536000:
            return 'pass', weight, 'HSTS configured correctly'
        if max_age >= 86400:
            return 'warning', weight * 0.5, 'max-age too low (recommended 31536000)'
        return 'fail', 0, 'max-age too low'

    if key == 'content-security-policy':
        if len(value) <= 20:
            return 'fail', 0, 'Policy too short to be effective'
        if 'unsafe-inline' in lower:
            return 'warning', weight * 0.7, "CSP allows 'unsafe-inline'"
        return 'pass', weight, 'CSP configured'

    if key == 'x-frame-options':
        if lower in ('deny', 'sameorigin'):
            return 'pass', weight, f'Clickjacking protection active ({value})'
        return 'warning', weight * 0.5, 'Value not optimal'

    if key == 'x-content-type-options':
        if lower == 'nosniff':
            return 'pass', weight, 'MIME sniffing disabled'
        return 'fail', 0, 'Unexpected value'

    if key == 'x-xss-protection':
        if re.match(r'1.*mode=block', lower):
            return 'pass', weight, 'XSS filter enabled'
        if lower == '1':
            return 'warning', weight * 0.7, 'XSS filter enabled without mode=block'
        return 'fail', 0, 'XSS filter disabled'

    if key == 'referrer-policy':
        policies = {p.strip() for p in lower.split(',')}
        if policies & VALID_REFERRER_POLICIES:
            return 'pass', weight, f'Policy configured: {value}'
        return 'fail', 0, 'Unsafe or unknown policy'

    if key == 'permissions-policy':
        if len(value) > 10:
            return 'pass', weight, 'Permissions policy configured'
        return 'fail', 0, 'Policy too short to be effective'

    return 'fail', 0, ''


def analyze_headers(page: PageFetch) -> Dict[str, Any]:
    headers = {}
    missing = []
    passed = []
    warnings = []
    earned = 0.0
    max_score = 0

    for key, info in SECURITY_HEADERS.items():
        max_score += info['weight']
        value = page.header(key)
        if value is None:
            headers[key] = {
                'present': False,
                'name': info['name'],
                'status': 'missing',
                'score': 0,
                'max_score': info['weight'],
            }
            missing.append({
                'header': info['name'],
                'description': info['description'],
                'recommended': info['recommended'],
            })
            continue

        status, points, message = grade_header(key, value, info['weight'])
        earned += points
        headers[key] = {
            'present': True,
            'name': info['name'],
            'value': value,
            'status': status,
            'message': message,
            'score': points,
            'max_score': info['weight'],
        }
        if status == 'pass':
            passed.append(info['name'])
        elif status == 'warning':
            warnings.append({'header': info['name'], 'message': message})

    return {
        'url': page.final_url,
        'status_code': page.status_code,
        'headers': headers,
        'score': round(earned / max_score * 100) if max_score else 0,
        'max_score': 100,
        'missing': missing,
        'passed': passed,
        'warnings': warnings,
        'additional_headers': additional_headers(page),
    }


def additional_headers(page: PageFetch) -> Dict[str, Any]:
    """Information-leak and cookie checks that don't count toward the score."""
    extra = {}
    server = page.header('server')
    if server:
        extra['server'] = {'value': server, 'exposes_version': bool(re.search(r'/\d', server))}
    powered_by = page.header('x-powered-by')
    if powered_by:
        extra['x-powered-by'] = {'value': powered_by, 'exposes_version': True}
    if page.set_cookies:
        cookies = [c.lower() for c in page.set_cookies]
        extra['cookies'] = {
            'total': len(cookies),
            'secure': sum('secure' in c for c in cookies),
            'httponly': sum('httponly' in c for c in cookies),
            'samesite': sum('samesite' in c for c in cookies),
        }
    return extra


class SecurityHeadersCollector(PageCollector):

    category = "security_headers"
    cache_name = "security"
    ttl = 3600

    def collect(self, domain: str) -> Dict[str, Any]:
        page = self.fetch(domain, allow_error_status=True)
        return analyze_headers(page)
