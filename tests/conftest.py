"""Shared fixtures: canned collector results and a scanner wired to fakes."""

import copy

import pytest

from domain_audit.scanner.collectors.base import Collector
from domain_audit.scanner.orchestrator import CompleteScan
from domain_audit.util.errors import CollectorError
from domain_audit.util.types import CATEGORIES


def _techs(*names):
    return [{'name': n, 'confidence': 70, 'matches': [], 'version': None} for n in names]


def healthy_results():
    """One realistic result per category for a well-built site."""
    return {
        'dns': {
            'records': {'A': [{'host': 'example.com', 'type': 'A', 'ttl': 300, 'ip': '93.184.216.34'}]},
            'errors': [],
            'stats': {'total_records': 12, 'record_types': ['A'], 'analysis_time': 4.2},
            'email': {'has_mx': True, 'has_spf': True, 'has_dmarc': True},
        },
        'whois': {'registrar': 'Example Registrar', 'expires': '2030-01-01', 'nameservers': []},
        'ssl': {'valid': True, 'issuer': "Let's Encrypt", 'expires': '2030-01-01', 'days_remaining': 400},
        'blacklist': {'is_blacklisted': False, 'listings': [], 'total_checks': 10},
        'security_headers': {
            'score': 85,
            'headers': {
                'strict-transport-security': {'present': True, 'name': 'Strict-Transport-Security (HSTS)'},
                'content-security-policy': {'present': True, 'name': 'Content-Security-Policy (CSP)'},
                'permissions-policy': {'present': False, 'name': 'Permissions-Policy'},
            },
            'missing': [{'header': 'Permissions-Policy', 'description': '', 'recommended': ''}],
            'passed': [],
            'warnings': [],
        },
        'seo': {
            'meta_tags': {'title': 'Example Domain - Home', 'description': 'An example'},
            'structured_data': {'has_json_ld': True, 'has_open_graph': True},
            'headings': {'h1': ['Welcome'], 'h1_count': 1},
            'links': {'internal': 10, 'external': 3},
            'images': {'with_alt': 5, 'without_alt': 0},
            'content': {'word_count': 640},
            'mobile_seo': {'viewport_meta': True, 'mobile_optimized': True},
            'international_seo': {'hreflang': {}},
            'seo_score': {'score': 92, 'grade': 'A', 'issues': []},
        },
        'technologies': {
            'cms': _techs('WordPress'),
            'frameworks': _techs('React', 'jQuery', 'Bootstrap', 'Tailwind CSS', 'Vue.js'),
            'analytics': _techs('Google Analytics', 'Google Tag Manager', 'Hotjar'),
            'marketing': _techs('HubSpot', 'Mailchimp', 'Intercom'),
            'ecommerce': _techs('WooCommerce', 'Stripe'),
            'cdn': _techs('Cloudflare', 'jsDelivr'),
            'hosting': _techs('AWS'),
            'security': _techs('reCAPTCHA', 'Sucuri', 'hCaptcha'),
            'summary': {'total_technologies': 20},
        },
        'business_intelligence': {
            'contact_info': {'emails': ['info@example.com'], 'phones': [], 'addresses': []},
            'company_info': {'name': 'Example Inc'},
            'social_profiles': {'linkedin': 'linkedin.com/company/example'},
            'business_model': {'ecommerce': True, 'blog': False},
        },
        'performance': {'score': 78, 'grade': 'C', 'timing': {'ttfb': 180.5}},
    }


class FakeCollector(Collector):
    """Returns a fixed value (or raises) and counts its calls."""

    def __init__(self, category, value=None, error=None, cache_name=None, ttl=3600):
        self.category = category
        self.cache_name = cache_name or category
        self.ttl = ttl
        self.value = value
        self.error = error
        self.calls = 0

    def collect(self, domain):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.value)


def fake_collectors(results=None, failing=()):
    """Collectors for every category; those named in ``failing`` raise."""
    results = results or healthy_results()
    collectors = {}
    for category in CATEGORIES:
        if category in failing:
            collectors[category] = FakeCollector(category, error=CollectorError(category, 'Connection timed out'))
        else:
            collectors[category] = FakeCollector(category, value=results[category])
    return collectors


@pytest.fixture
def collectors():
    return fake_collectors()


@pytest.fixture
def scanner(collectors):
    return CompleteScan(collectors)
