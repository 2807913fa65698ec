"""Tests for the complete scan orchestrator."""

import pytest

from domain_audit.scanner.orchestrator import CompleteScan
from domain_audit.util.cache import FileCache
from domain_audit.util.errors import ValidationError
from domain_audit.util.types import CATEGORIES

from conftest import FakeCollector, fake_collectors


class TestCompleteScan:

    def test_envelope_is_fully_populated(self, scanner):
        result = scanner.scan('https://Example.com/about')

        assert result.domain == 'example.com'
        assert result.url == 'https://example.com'
        assert len(result.scan_id) == 32
        assert result.failed_categories() == []
        assert result.overall_score.score == 90.6
        assert result.overall_score.grade == 'A+'
        assert result.execution_time >= 0
        assert result.competitors['market_position']['level'] == 'Leader'

        data = result.to_dict()
        for category in CATEGORIES:
            assert category in data
        assert data['recommendations']['total_recommendations'] == 1

    def test_one_failing_collector(self):
        scanner = CompleteScan(fake_collectors(failing=('seo',)))

        result = scanner.scan('example.com')

        assert result.seo == {'error': 'Connection timed out'}
        populated = [c for c in CATEGORIES if c != 'seo' and 'error' not in getattr(result, c)]
        assert len(populated) == 8
        assert 'seo' not in result.overall_score.breakdown
        # (85*20 + 78*20 + 100*15 + 100*10 + 100*10) / 75
        assert result.overall_score.score == 90.13

    def test_unexpected_exception_is_captured(self, collectors):
        collectors['whois'] = FakeCollector('whois', error=RuntimeError('socket closed'))
        result = CompleteScan(collectors).scan('example.com')
        assert result.whois == {'error': 'RuntimeError: socket closed'}

    def test_every_collector_failing_still_returns(self):
        scanner = CompleteScan(fake_collectors(failing=CATEGORIES))

        result = scanner.scan('example.com')

        assert result.failed_categories() == list(CATEGORIES)
        assert result.overall_score.score == 0.0
        assert result.overall_score.grade == 'F'
        assert result.recommendations.critical[0].issue == 'No valid SSL certificate'

    def test_missing_collector(self, collectors):
        del collectors['blacklist']
        result = CompleteScan(collectors).scan('example.com')
        assert 'No collector configured' in result.blacklist['error']

    @pytest.mark.parametrize('domain', ['', 'not a domain', 'localhost', '-bad-.com'])
    def test_invalid_domain_raises(self, scanner, domain):
        with pytest.raises(ValidationError):
            scanner.scan(domain)

    def test_thread_pool_gives_same_result(self):
        sequential = CompleteScan(fake_collectors(failing=('performance',))).scan('example.com')
        parallel = CompleteScan(fake_collectors(failing=('performance',)), workers=3).scan('example.com')

        for category in CATEGORIES:
            assert getattr(parallel, category) == getattr(sequential, category)
        assert parallel.overall_score == sequential.overall_score
        assert parallel.recommendations.to_dict() == sequential.recommendations.to_dict()


class TestCaching:

    def test_cache_key_format(self):
        assert CompleteScan.cache_key('tech', 'example.com') == 'complete_scan:tech:example.com'

    def test_results_are_served_from_cache(self, tmp_path, collectors):
        cache = FileCache(tmp_path / 'cache')
        scanner = CompleteScan(collectors, cache=cache)

        first = scanner.scan('example.com')
        second = scanner.scan('example.com')

        assert all(c.calls == 1 for c in collectors.values())
        assert second.seo == first.seo
        assert cache.get('complete_scan:seo:example.com') == first.seo

    def test_failures_are_not_cached(self, tmp_path):
        collectors = fake_collectors(failing=('ssl',))
        cache = FileCache(tmp_path / 'cache')
        scanner = CompleteScan(collectors, cache=cache)

        scanner.scan('example.com')
        scanner.scan('example.com')

        assert collectors['ssl'].calls == 2
        assert cache.get('complete_scan:ssl:example.com') is None

    def test_uses_collector_cache_name(self, tmp_path, collectors):
        collectors['technologies'].cache_name = 'tech'
        cache = FileCache(tmp_path / 'cache')

        CompleteScan(collectors, cache=cache).scan('example.com')

        assert cache.get('complete_scan:tech:example.com') is not None
        assert cache.get('complete_scan:technologies:example.com') is None

    def test_run_category(self, scanner):
        outcome = scanner.run_category('example.com', 'dns')
        assert outcome.ok
        assert outcome.value['stats']['total_records'] == 12
