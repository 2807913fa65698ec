"""
Collector tests - no network.

DNS and blacklist lookups go through a patched dns.resolver.Resolver.resolve,
TLS through a patched handshake, and the page analysers work on canned HTML.
"""

import datetime
import json
import threading
from unittest.mock import Mock, patch

import dns.resolver
import pytest
import requests
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from domain_audit.scanner.collectors.base import run_collector
from domain_audit.scanner.collectors.blacklist import (
    BlacklistCollector,
    interpret_response,
    reputation,
    reverse_ip,
)
from domain_audit.scanner.collectors.business_intelligence import analyze_business
from domain_audit.scanner.collectors.dns import DNSCollector, identify_email_provider
from domain_audit.scanner.collectors.performance import analyze_performance, performance_score
from domain_audit.scanner.collectors.security_headers import analyze_headers
from domain_audit.scanner.collectors.seo import analyze_seo
from domain_audit.scanner.collectors.ssl import SSLCollector
from domain_audit.scanner.collectors.technologies import detect_technologies
from domain_audit.scanner.collectors.whois import extract_referral, parse_whois
from domain_audit.scanner.http import HttpFetcher, PageFetch
from domain_audit.util.errors import CollectorError


class FakeAnswer:
    """Just enough of dns.resolver.Answer for the collectors."""

    def __init__(self, rdatas, ttl=300):
        self.rrset = Mock(ttl=ttl)
        self._rdatas = rdatas

    def __iter__(self):
        return iter(self._rdatas)

    def __getitem__(self, index):
        return self._rdatas[index]


def a_record(ip):
    return Mock(address=ip)


def answers_from(table):
    """side_effect for resolve(): look up (name, rtype), NoAnswer otherwise."""
    def resolve(name, rtype):
        answer = table.get((name, rtype))
        if answer is None:
            raise dns.resolver.NoAnswer()
        if isinstance(answer, Exception):
            raise answer
        return FakeAnswer(answer)
    return resolve


@pytest.fixture
def resolver():
    return dns.resolver.Resolver(configure=False)


class TestDNSCollector:

    @patch('dns.resolver.Resolver.resolve')
    def test_records_and_email_configuration(self, mock_resolve, resolver):
        mock_resolve.side_effect = answers_from({
            ('example.com', 'A'): [a_record('93.184.216.34')],
            ('www.example.com', 'A'): [a_record('93.184.216.34')],
            ('example.com', 'MX'): [Mock(preference=10, exchange='aspmx.l.google.com.')],
            ('example.com', 'TXT'): [Mock(strings=[b'v=spf1 include:_spf.google.com ~all'])],
            ('_dmarc.example.com', 'TXT'): [Mock(strings=[b'v=DMARC1; p=reject; rua=mailto:d@example.com'])],
        })

        result = DNSCollector(resolver).collect('example.com')

        assert result['stats']['total_records'] == 4
        assert [r['host'] for r in result['records']['A']] == ['example.com', 'www.example.com']
        assert result['records']['MX'][0] == {
            'host': 'example.com', 'type': 'MX', 'ttl': 300, 'pri': 10, 'target': 'aspmx.l.google.com',
        }
        email = result['email']
        assert email['email_provider'] == 'Google Workspace'
        assert email['has_spf'] is True
        assert email['dmarc_policy'] == 'reject'

    @patch('dns.resolver.Resolver.resolve')
    def test_nxdomain_fails_the_collector(self, mock_resolve, resolver):
        mock_resolve.side_effect = dns.resolver.NXDOMAIN()

        with pytest.raises(CollectorError) as exc:
            DNSCollector(resolver).collect('nope.example')
        assert 'NXDOMAIN' in exc.value.message

    @patch('dns.resolver.Resolver.resolve')
    def test_run_collector_turns_failure_into_outcome(self, mock_resolve, resolver):
        mock_resolve.side_effect = dns.resolver.NXDOMAIN()
        outcome = run_collector('dns', lambda: DNSCollector(resolver).collect('nope.example'))

        assert not outcome.ok
        assert outcome.as_field() == {'error': outcome.error}

    def test_identify_email_provider(self):
        assert identify_email_provider('example-com.mail.protection.outlook.com') == 'Microsoft 365'
        assert identify_email_provider('mx.self-hosted.example') is None


class TestBlacklist:

    ZONES = {'zen.spamhaus.org': 'Spamhaus ZEN', 'bl.spamcop.net': 'SpamCop'}

    @patch('dns.resolver.Resolver.resolve')
    def test_listed_ip(self, mock_resolve, resolver):
        mock_resolve.side_effect = answers_from({
            ('example.com', 'A'): [a_record('1.2.3.4')],
            ('4.3.2.1.zen.spamhaus.org', 'A'): [a_record('127.0.0.2')],
            ('4.3.2.1.bl.spamcop.net', 'A'): dns.resolver.NXDOMAIN(),
        })

        result = BlacklistCollector(resolver, zones=self.ZONES).collect('example.com')

        assert result['is_blacklisted'] is True
        assert result['listings'][0]['reason'] == 'SBL - Spammer'
        assert result['listings'][0]['source'] == 'web'
        assert result['statistics']['total_checks'] == 2
        assert result['reputation']['rating'] == 'Poor'

    @patch('dns.resolver.Resolver.resolve')
    def test_refused_query_is_an_error_not_a_listing(self, mock_resolve, resolver):
        mock_resolve.side_effect = answers_from({
            ('example.com', 'A'): [a_record('1.2.3.4')],
            ('4.3.2.1.zen.spamhaus.org', 'A'): [a_record('127.255.255.254')],
        })

        result = BlacklistCollector(resolver, zones=self.ZONES).collect('example.com')

        assert result['is_blacklisted'] is False
        assert 'query refused' in result['errors'][0]

    @patch('dns.resolver.Resolver.resolve')
    def test_no_addresses(self, mock_resolve, resolver):
        mock_resolve.side_effect = dns.resolver.NoAnswer()
        with pytest.raises(CollectorError):
            BlacklistCollector(resolver, zones=self.ZONES).collect('example.com')

    def test_helpers(self):
        assert reverse_ip('1.2.3.4') == '4.3.2.1'
        assert interpret_response('127.0.0.4', 'dnsbl.sorbs.net') == 'Listed (Compromised)'
        assert interpret_response('127.0.0.99', 'dnsbl.sorbs.net') == 'Listed (Code: 127.0.0.99)'
        assert reputation(0, 0)['rating'] == 'Unknown'
        assert reputation(10, 0)['rating'] == 'Excellent'


WHOIS_TEXT = """\
Domain Name: EXAMPLE.COM
Registrar WHOIS Server: whois.example-registrar.com
Registrar: Example Registrar, Inc.
Creation Date: 1995-08-14T04:00:00Z
Registry Expiry Date: 2030-08-13T04:00:00Z
Registrant Organization: REDACTED FOR PRIVACY
Name Server: A.IANA-SERVERS.NET
Name Server: B.IANA-SERVERS.NET
Domain Status: clientDeleteProhibited https://icann.org/epp#clientDeleteProhibited
DNSSEC: signedDelegation
"""


def test_parse_whois():
    info = parse_whois(WHOIS_TEXT)

    assert info['registrar'] == 'Example Registrar, Inc.'
    assert info['created'] == '1995-08-14'
    assert info['expires'] == '2030-08-13'
    assert info['domain_age_days'] > 10000
    assert info['nameservers'] == ['a.iana-servers.net', 'b.iana-servers.net']
    assert info['status'] == ['clientDeleteProhibited']
    assert info['dnssec'] is True
    assert info['privacy_protected'] is True
    assert 'registrant_org' not in info
    assert extract_referral(WHOIS_TEXT) == 'whois.example-registrar.com'


def self_signed_der(common_name='example.com', days=90):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, 'Example Org'),
    ])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=days))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(common_name)]), critical=False)
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.DER)


class TestSSLCollector:

    def test_valid_certificate(self, monkeypatch):
        der = self_signed_der(days=90)
        monkeypatch.setattr(SSLCollector, '_handshake',
                            lambda self, domain, context: (der, 'TLSv1.3', 'TLS_AES_256_GCM_SHA384'))

        result = SSLCollector().collect('example.com')

        assert result['valid'] is True
        assert result['issuer'] == 'Example Org'
        assert 88 <= result['days_remaining'] <= 90
        assert result['expiring_soon'] is False
        assert result['certificate']['san'] == ['example.com']
        assert result['certificate']['self_signed'] is True
        assert result['protocol'] == 'TLSv1.3'
        json.dumps(result)

    def test_no_tls_is_an_invalid_certificate(self, monkeypatch):
        def refuse(self, domain, context):
            raise ConnectionRefusedError('connection refused')

        monkeypatch.setattr(SSLCollector, '_handshake', refuse)

        result = SSLCollector().collect('example.com')

        assert result['valid'] is False
        assert 'TLS connection failed' in result['error_message']


def page(html='', headers=None, url='https://example.com/', **kwargs):
    return PageFetch(url=url, final_url=url, status_code=200, headers=headers or {}, html=html, **kwargs)


class TestSecurityHeaders:

    def test_partial_headers(self):
        result = analyze_headers(page(headers={
            'strict-transport-security': 'max-age=31536000; includeSubDomains',
            'x-frame-options': 'DENY',
            'x-content-type-options': 'nosniff',
            'server': 'nginx/1.25.3',
        }))

        assert result['score'] == 45
        assert len(result['missing']) == 4
        assert result['missing'][0]['header'] == 'Content-Security-Policy (CSP)'
        assert result['headers']['x-frame-options']['present'] is True
        assert result['headers']['permissions-policy']['present'] is False
        assert result['additional_headers']['server']['exposes_version'] is True

    def test_short_hsts_is_a_warning(self):
        result = analyze_headers(page(headers={'strict-transport-security': 'max-age=86400'}))

        assert result['headers']['strict-transport-security']['status'] == 'warning'
        assert result['score'] == 10

    def test_no_headers(self):
        result = analyze_headers(page())
        assert result['score'] == 0
        assert result['passed'] == []


GOOD_PAGE = """
<html lang="en">
<head>
  <title>Acme Widgets - Handmade widgets since 1999</title>
  <meta name="description" content="{description}">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <meta property="og:title" content="Acme Widgets">
  <link rel="canonical" href="https://example.com/">
  <link rel="icon" href="/favicon.ico">
  <script type="application/ld+json">{{"@context": "https://schema.org", "@type": "Organization", "name": "Acme"}}</script>
</head>
<body>
  <h1>Handmade widgets</h1>
  <h2>Our range</h2>
  <a href="/about">About</a>
  <a href="https://partner.example.org/" rel="nofollow">Partner</a>
  <img src="/w.png" alt="A widget" loading="lazy">
  <p>We build widgets.</p>
</body>
</html>
""".format(description='Acme builds handmade widgets for homes and offices, shipped worldwide '
                       'with a lifetime guarantee and free repairs on every single order.')


class TestSEO:

    def test_well_optimised_page(self):
        exists = Mock(return_value=True)

        result = analyze_seo(GOOD_PAGE, 'https://example.com/', exists=exists)

        assert result['seo_score'] == {'score': 100, 'grade': 'A', 'issues': [], 'total_checks': 8}
        assert result['structured_data']['schema_types'] == ['Organization']
        assert result['structured_data']['open_graph'] == {'title': 'Acme Widgets'}
        assert result['links'] == {'total': 2, 'internal': 1, 'external': 1, 'nofollow': 1, 'ratio': 1.0}
        assert result['images']['lazy_load'] == 1
        assert result['mobile_seo']['viewport_meta'] is True
        assert result['technical_seo']['robots_txt'] is True
        assert result['technical_seo']['canonical_proper'] is True
        exists.assert_any_call('https://example.com/sitemap.xml')

    def test_poor_page(self):
        html = '<html><head><title>Hi</title></head><body><h1>A</h1><h1>B</h1><img src="x.png"></body></html>'

        result = analyze_seo(html, 'https://example.com/')

        assert result['seo_score']['issues'] == [
            'Title length not optimal (30-60 chars)',
            'Missing meta description',
            'Multiple H1 tags found',
            'Missing canonical URL',
            '1 images without alt text',
            'No structured data found',
        ]
        assert result['seo_score']['score'] == 69
        assert result['seo_score']['grade'] == 'D'
        assert result['mobile_seo']['viewport_meta'] is False
        assert result['technical_seo']['robots_txt'] is None

    def test_noindex_header(self):
        result = analyze_seo(GOOD_PAGE, 'https://example.com/', headers={'x-robots-tag': 'noindex'})
        assert result['indexability']['indexable'] is False


class TestTechnologies:

    def test_wordpress_with_analytics_behind_cloudflare(self):
        html = """
        <html><head>
          <meta name="generator" content="WordPress 6.4.2">
          <link rel="stylesheet" href="/wp-content/themes/acme/style.css">
          <script async src="https://www.googletagmanager.com/gtag/js?id=G-ABC1234567"></script>
        </head><body></body></html>
        """

        result = detect_technologies(html, {'cf-ray': '8a1b2c3d4e5f-MXP', 'server': 'cloudflare'})

        wordpress = result['cms'][0]
        assert wordpress['name'] == 'WordPress'
        assert wordpress['confidence'] == 80
        assert wordpress['version'] == '6.4.2'
        assert [t['name'] for t in result['analytics']] == ['Google Analytics']
        assert [t['name'] for t in result['cdn']] == ['Cloudflare']
        assert result['server']['software'] == 'cloudflare'

        summary = result['summary']
        assert summary['total_technologies'] == 3
        assert summary['cms_name'] == 'WordPress'
        assert summary['has_cdn'] is True
        assert summary['is_ecommerce'] is False

    def test_confidence_is_capped(self):
        html = ('<meta name="generator" content="WordPress"><script src="/wp-includes/js/x.js"></script>'
                '/wp-content/ /wp-includes/ wp-json')
        result = detect_technologies(html, {})
        assert result['cms'][0]['confidence'] == 100

    def test_blank_page(self):
        result = detect_technologies('', {})
        assert result['summary']['total_technologies'] == 0
        assert result['summary']['cms_name'] is None


BUSINESS_PAGE = """
<html lang="it">
<head>
  <title>Acme Widgets</title>
  <link rel="alternate" hreflang="en-GB" href="https://example.com/en/">
  <script type="application/ld+json">
  {"@context": "https://schema.org", "@type": "Organization", "name": "Acme Widgets Srl",
   "foundingDate": "1999",
   "address": {"streetAddress": "Via Roma 1", "addressLocality": "Milano", "postalCode": "20100",
               "addressCountry": "IT"}}
  </script>
</head>
<body>
  <a href="mailto:sales@acme-widgets.it">Email us</a>
  <a href="tel:+390212345678">Call</a>
  <img src="/img/logo@2x.png">
  <p>Write to example@example.com</p>
  <a href="https://www.linkedin.com/company/acme-widgets">LinkedIn</a>
  <a href="/privacy-policy">Privacy</a>
  <form><input type="email" name="email"><textarea name="message"></textarea></form>
  <button>Add to cart</button>
  <p>Contact us for wholesale orders. Prices from €19.90 to €49.00</p>
</body>
</html>
"""


class TestBusinessIntelligence:

    @pytest.fixture
    def result(self):
        return analyze_business(BUSINESS_PAGE)

    def test_contact_info(self, result):
        contact = result['contact_info']
        assert contact['emails'] == ['sales@acme-widgets.it']
        assert '+390212345678' in contact['phones']
        assert contact['addresses'] == ['Via Roma 1, Milano, 20100, IT']
        assert contact['contact_form'] is True

    def test_company_and_social(self, result):
        assert result['company_info']['name'] == 'Acme Widgets Srl'
        assert result['company_info']['founded'] == '1999'
        assert result['social_profiles'] == {'linkedin': 'https://www.linkedin.com/company/acme-widgets'}

    def test_pricing_and_model(self, result):
        assert result['pricing']['currency'] == 'EUR'
        assert result['pricing']['price_range'] == {'min': 19.9, 'max': 49.0, 'count': 2}
        assert result['business_model']['ecommerce'] is True
        assert result['business_model']['lead_generation'] is True
        assert result['legal']['privacy_policy'] is True
        assert result['languages'] == ['it', 'en-GB']

    def test_name_falls_back_to_og_site_name(self):
        html = '<html><head><meta property="og:site_name" content="Acme"><title>Home</title></head></html>'
        assert analyze_business(html)['company_info']['name'] == 'Acme'


class TestPerformance:

    def test_fast_page_scores_full_marks(self):
        html = """
        <html><head>
          <link rel="stylesheet" href="/style.css">
          <script async src="/app.js"></script>
        </head><body><img src="https://cdn.other-host.net/a.png"></body></html>
        """
        result = analyze_performance(page(
            html,
            headers={'content-encoding': 'gzip', 'cache-control': 'public, max-age=86400', 'etag': '"abc"'},
            ttfb_ms=200.0, total_ms=400.0, size_bytes=50_000,
        ))

        assert result['score'] == 100
        assert result['grade'] == 'A'
        assert result['metrics']['lcp']['value'] == 900
        assert result['timing'] == {'ttfb': 200.0, 'total': 400.0, 'download': 200.0, 'redirects': 0}
        assert result['resources']['total'] == 3
        assert result['resources']['third_party']['domains'] == 1
        assert result['cache_analysis']['cache_score'] == 60
        assert [o['id'] for o in result['opportunities']] == ['minify-javascript']

    def test_slow_heavy_page(self):
        metrics = {
            'lcp': {'value': 5000, 'score': 'poor'},
            'fid': {'value': 150, 'score': 'needs-improvement'},
            'cls': {'value': 0, 'score': 'good'},
            'ttfb': {'value': 1200},
            'page_weight': {'value': 2_500_000},
        }
        js_css = {'render_blocking_resources': 3}
        resources = {'total': 40, 'third_party': {'total': 5}}

        result = performance_score(metrics, js_css, resources, compressed=False, cache_score=0)

        assert result['breakdown'] == {
            'core_web_vitals': 18,
            'ttfb': 5,
            'page_weight': 5,
            'resources': 10,
            'optimization': 0,
        }
        assert result['score'] == 38
        assert result['grade'] == 'F'


class TestHttpFetcher:

    def test_one_session_per_thread(self):
        fetcher = HttpFetcher(timeout=5, user_agent='DomainAudit/1.0')
        sessions = []

        worker = threading.Thread(target=lambda: sessions.append(fetcher.session))
        worker.start()
        worker.join()

        assert fetcher.session is fetcher.session
        assert sessions[0] is not fetcher.session
        assert sessions[0].headers['User-Agent'] == 'DomainAudit/1.0'
        assert fetcher.session.headers['Accept-Encoding'] == 'gzip, deflate'

    def test_explicit_session_is_shared(self):
        shared = requests.Session()
        fetcher = HttpFetcher(user_agent='DomainAudit/1.0', session=shared)
        sessions = []

        worker = threading.Thread(target=lambda: sessions.append(fetcher.session))
        worker.start()
        worker.join()

        assert sessions == [shared]
        assert fetcher.session is shared
        assert shared.headers['User-Agent'] == 'DomainAudit/1.0'
