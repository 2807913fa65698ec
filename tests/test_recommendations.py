"""Tests for the recommendation engine."""

import pytest

from domain_audit.scanner.recommendation_engine import (
    GENERIC_SEO_FIX,
    RecommendationEngine,
    seo_fix,
)
from domain_audit.util.types import ScanResult

from conftest import healthy_results

ALL_HEADERS_MISSING = [
    {'header': name, 'description': '', 'recommended': ''}
    for name in ('Strict-Transport-Security (HSTS)', 'Content-Security-Policy (CSP)', 'X-Frame-Options',
                 'X-Content-Type-Options', 'X-XSS-Protection', 'Referrer-Policy', 'Permissions-Policy')
]


def make_result(**fields):
    result = ScanResult(domain='example.com', url='https://example.com',
                        scan_date='2026-01-01 00:00:00', scan_id='abc')
    for name, value in fields.items():
        setattr(result, name, value)
    return result


@pytest.fixture
def engine():
    return RecommendationEngine()


def test_invalid_ssl_and_no_headers(engine):
    result = make_result(
        ssl={'valid': False},
        security_headers={'score': 0, 'missing': ALL_HEADERS_MISSING},
    )

    recs = engine.recommend(result)

    assert len(recs.critical) == 1
    assert recs.critical[0].issue == 'No valid SSL certificate'
    assert len(recs.important) >= 1
    assert recs.important[0].issue.startswith('Missing security headers: Strict-Transport-Security (HSTS)')
    assert recs.total_recommendations == len(recs.critical) + len(recs.important) + len(recs.suggested)


def test_healthy_site_only_gets_header_advice(engine):
    recs = engine.recommend(make_result(**healthy_results()))

    assert recs.critical == []
    assert recs.suggested == []
    assert [r.issue for r in recs.important] == ['Missing security headers: Permissions-Policy']


def test_failed_ssl_collector_still_flags_certificate(engine):
    recs = engine.recommend(make_result(ssl={'error': 'Connection refused'}))
    assert [r.issue for r in recs.critical] == ['No valid SSL certificate']


def test_seo_issues_are_bucketed(engine):
    seo = {
        'seo_score': {'score': 55, 'issues': ['Missing title tag', 'Missing canonical URL', 'Missing H1 tag']},
        'structured_data': {'has_json_ld': True},
        'mobile_seo': {'viewport_meta': True},
    }
    recs = engine.recommend(make_result(ssl={'valid': True}, seo=seo))

    critical = [r.issue for r in recs.critical]
    assert critical == ['Missing title tag', 'Missing H1 tag']
    canonical = [r for r in recs.important if r.issue == 'Missing canonical URL']
    assert canonical[0].recommendation == 'Add canonical URL to prevent duplicate content'


def test_low_performance(engine):
    recs = engine.recommend(make_result(ssl={'valid': True}, performance={'score': 69}))
    assert [r.issue for r in recs.important] == ['Low performance score']

    recs = engine.recommend(make_result(ssl={'valid': True}, performance={'score': 70}))
    assert recs.important == []


def test_missing_cdn_and_analytics(engine):
    tech = {'cdn': [], 'analytics': [], 'summary': {'total_technologies': 0}}
    seo = {'structured_data': {'has_json_ld': True}}
    recs = engine.recommend(make_result(ssl={'valid': True}, technologies=tech, seo=seo))

    assert sorted(r.issue for r in recs.suggested) == ['No CDN detected', 'No analytics detected']


def test_failed_scans_count_as_nothing_detected(engine):
    recs = engine.recommend(make_result(
        ssl={'valid': True},
        technologies={'error': 'timeout'},
        seo={'error': 'HTTP 500'},
    ))

    assert [r.issue for r in recs.suggested] == [
        'No CDN detected',
        'No analytics detected',
        'No structured data (Schema.org)',
    ]


class TestViewport:

    def test_explicit_false_fires(self, engine):
        seo = {'mobile_seo': {'viewport_meta': False}, 'structured_data': {'has_json_ld': True}}
        recs = engine.recommend(make_result(ssl={'valid': True}, seo=seo))
        assert [r.issue for r in recs.important] == ['Missing viewport meta tag']

    def test_unknown_does_not_fire(self, engine):
        seo = {'structured_data': {'has_json_ld': True}}
        recs = engine.recommend(make_result(ssl={'valid': True}, seo=seo))
        assert recs.important == []


def test_structured_data(engine):
    tech = {'cdn': [{'name': 'Cloudflare'}], 'analytics': [{'name': 'Google Analytics'}]}

    recs = engine.recommend(make_result(ssl={'valid': True}, technologies=tech,
                                        seo={'structured_data': {'has_json_ld': False}}))
    assert [r.issue for r in recs.suggested] == ['No structured data (Schema.org)']

    recs = engine.recommend(make_result(ssl={'valid': True}, technologies=tech,
                                        seo={'structured_data': {'has_json_ld': True}}))
    assert recs.suggested == []


@pytest.mark.parametrize('issue,fix', [
    ('Missing meta description', 'Add a compelling meta description (120-160 characters)'),
    ('Title length not optimal (30-60 chars)', 'Adjust title length to 30-60 characters'),
    ('3 images without alt text', 'Add descriptive alt text to every content image'),
    ('Something nobody has seen before', GENERIC_SEO_FIX),
])
def test_seo_fix_lookup(issue, fix):
    assert seo_fix(issue) == fix


def test_to_dict_counts(engine):
    data = engine.recommend(make_result()).to_dict()
    assert set(data) == {'critical', 'important', 'suggested', 'total_recommendations'}
    # ssl, cdn, analytics, structured data
    assert data['total_recommendations'] == 4
