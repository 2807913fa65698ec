"""Performance collector - timing, weight and front-end hygiene of the home page.

Core Web Vitals are estimated from a single fetch (no browser): LCP from
TTFB plus download time, FID from the amount of inline JavaScript, CLS is
assumed good.

Score out of 100:
  core web vitals 40 (lcp 15, fid 15, cls 10; half marks for needs-improvement)
  ttfb 15, page weight 15, resources 15, optimization 15
"""

import logging
import re
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from domain_audit.scanner.collectors.base import PageCollector
from domain_audit.scanner.http import PageFetch
from domain_audit.util.time import now_utc

logger = logging.getLogger(__name__)

MB = 1024 * 1024

THIRD_PARTY_CATEGORIES = {
    'analytics': ['google-analytics.com', 'googletagmanager.com', 'segment.com'],
    'cdn': ['cloudflare.com', 'cloudfront.net', 'akamaihd.net', 'fastly.net', 'jsdelivr.net'],
    'fonts': ['fonts.googleapis.com', 'fonts.gstatic.com', 'typekit.net'],
    'ads': ['doubleclick.net', 'googlesyndication.com', 'adsystem.com'],
    'social': ['facebook.com', 'facebook.net', 'twitter.com', 'linkedin.com', 'instagram.com'],
    'video': ['youtube.com', 'vimeo.com', 'wistia.com'],
    'maps': ['maps.googleapis.com', 'maps.google.com'],
    'payment': ['stripe.com', 'paypal.com', 'checkout.com'],
}


def rate(value: float, good: float, poor: float) -> str:
    if value < good:
        return 'good'
    if value < poor:
        return 'needs-improvement'
    return 'poor'


def format_bytes(size: float) -> str:
    for unit in ('B', 'KB', 'MB'):
        if size < 1024:
            return f"{round(size, 2)} {unit}"
        size /= 1024
    return f"{round(size, 2)} GB"


def estimate_js_blocking(html: str) -> int:
    """~1ms of main-thread time per KB of inline script."""
    inline = re.findall(r'<script(?![^>]*\bsrc=)[^>]*>(.*?)</script>', html, re.I | re.S)
    return round(sum(len(js) for js in inline) / 1024)


def third_party_category(host: str) -> str:
    for category, hosts in THIRD_PARTY_CATEGORIES.items():
        if any(known in host for known in hosts):
            return category
    return 'other'


def collect_metrics(page: PageFetch) -> Dict[str, Dict[str, Any]]:
    download = max(0.0, page.total_ms - page.ttfb_ms)
    lcp = round(page.ttfb_ms + download + 500)
    fid = estimate_js_blocking(page.html)
    return {
        'lcp': {'value': lcp, 'score': rate(lcp, 2500, 4000), 'display_value': f"{lcp} ms"},
        'fid': {'value': fid, 'score': rate(fid, 100, 300), 'display_value': f"{fid} ms"},
        'cls': {'value': 0, 'score': 'good', 'display_value': '0'},
        'ttfb': {'value': page.ttfb_ms, 'score': rate(page.ttfb_ms, 600, 1000),
                 'display_value': f"{page.ttfb_ms} ms"},
        'fcp': {'value': round(page.ttfb_ms + 100), 'score': 'needs-improvement',
                'display_value': f"{round(page.ttfb_ms + 100)} ms"},
        'speed_index': {'value': page.total_ms, 'score': rate(page.total_ms, 3000, 5000),
                        'display_value': f"{page.total_ms} ms"},
        'page_weight': {'value': page.size_bytes, 'score': rate(page.size_bytes, MB, 3 * MB),
                        'display_value': format_bytes(page.size_bytes)},
    }


def analyze_resources(soup: BeautifulSoup, base_url: str) -> Dict[str, Any]:
    host = urlparse(base_url).hostname or ''
    by_type: Dict[str, List[str]] = {'scripts': [], 'stylesheets': [], 'images': [], 'fonts': []}

    for script in soup.find_all('script', src=True):
        by_type['scripts'].append(urljoin(base_url, script['src']))
    for link in soup.find_all('link', href=True):
        rels = [r.lower() for r in (link.get('rel') or [])]
        if 'stylesheet' in rels:
            by_type['stylesheets'].append(urljoin(base_url, link['href']))
        elif 'preload' in rels and link.get('as') == 'font':
            by_type['fonts'].append(urljoin(base_url, link['href']))
    for img in soup.find_all('img', src=True):
        if not img['src'].startswith('data:'):
            by_type['images'].append(urljoin(base_url, img['src']))

    third_party: Dict[str, Dict[str, Any]] = {}
    for urls in by_type.values():
        for url in urls:
            res_host = urlparse(url).hostname or ''
            if res_host and res_host != host and not res_host.endswith(f'.{host}'):
                entry = third_party.setdefault(res_host, {'count': 0, 'category': third_party_category(res_host)})
                entry['count'] += 1

    return {
        'total': sum(len(v) for v in by_type.values()),
        'by_type': {k: len(v) for k, v in by_type.items()},
        'third_party': {
            'total': sum(e['count'] for e in third_party.values()),
            'domains': len(third_party),
            'by_domain': third_party,
        },
    }


def analyze_js_css(soup: BeautifulSoup) -> Dict[str, int]:
    blocking = 0
    stylesheets = [l for l in soup.find_all('link', href=True)
                   if 'stylesheet' in [r.lower() for r in (l.get('rel') or [])]]
    for link in stylesheets:
        if link.get('media') in (None, 'all', 'screen'):
            blocking += 1

    scripts = soup.find_all('script')
    for script in scripts:
        if script.has_attr('src') and not script.has_attr('async') and not script.has_attr('defer'):
            blocking += 1

    return {
        'render_blocking_resources': blocking,
        'inline_scripts': sum(1 for s in scripts if not s.has_attr('src') and (s.string or '').strip()),
        'inline_styles': len(soup.find_all('style')),
        'minified_css': sum(1 for l in stylesheets if 'min.css' in l['href']),
        'minified_js': sum(1 for s in scripts if s.has_attr('src') and 'min.js' in s['src']),
    }


def analyze_caching(headers: Dict[str, str]) -> Dict[str, Any]:
    analysis = {
        'cache_control': headers.get('cache-control'),
        'expires': headers.get('expires'),
        'etag': headers.get('etag'),
        'last_modified': headers.get('last-modified'),
        'cache_score': 0,
        'issues': [],
    }

    cache_control = analysis['cache_control']
    if cache_control is None:
        analysis['issues'].append('Missing Cache-Control header')
    elif 'no-cache' in cache_control or 'no-store' in cache_control:
        analysis['issues'].append('Caching disabled')
    else:
        match = re.search(r'max-age=(\d+)', cache_control)
        if match and int(match.group(1)) < 3600:
            analysis['issues'].append('Cache duration too short')
        elif match:
            analysis['cache_score'] += 40

    if analysis['expires']:
        try:
            if parsedate_to_datetime(analysis['expires']) > now_utc():
                analysis['cache_score'] += 20
        except (TypeError, ValueError):
            logger.debug(f"Unparseable Expires header: {analysis['expires']}")
    if analysis['etag']:
        analysis['cache_score'] += 20
    if analysis['last_modified']:
        analysis['cache_score'] += 20

    if analysis['cache_score'] == 0:
        analysis['issues'].append('No caching mechanism implemented')
    return analysis


def performance_score(metrics: Dict[str, Dict[str, Any]], js_css: Dict[str, int],
                      resources: Dict[str, Any], compressed: bool, cache_score: int) -> Dict[str, Any]:
    """Sum of the five sub-scores, with an A-F grade."""
    points = {'good': (15, 15, 10), 'needs-improvement': (8, 8, 5)}
    cwv = 0
    for index, name in enumerate(('lcp', 'fid', 'cls')):
        cwv += points.get(metrics[name]['score'], (0, 0, 0))[index]

    ttfb_value = metrics['ttfb']['value']
    ttfb = 15 - 5 * sum(1 for limit in (600, 1000, 1500) if ttfb_value > limit)

    weight_value = metrics['page_weight']['value']
    weight = 15 - 5 * sum(1 for limit in (MB, 2 * MB, 4 * MB) if weight_value > limit)

    res = 15
    if js_css['render_blocking_resources'] > 2:
        res -= 5
    if resources['total'] > 100:
        res -= 5
    if resources['third_party']['total'] > 20:
        res -= 5

    optimization = 15
    if not compressed:
        optimization -= 8
    if cache_score < 60:
        optimization -= 7

    breakdown = {
        'core_web_vitals': cwv,
        'ttfb': max(0, ttfb),
        'page_weight': max(0, weight),
        'resources': max(0, res),
        'optimization': max(0, optimization),
    }
    score = sum(breakdown.values())
    if score >= 90:
        grade = 'A'
    elif score >= 80:
        grade = 'B'
    elif score >= 70:
        grade = 'C'
    elif score >= 60:
        grade = 'D'
    elif score >= 50:
        grade = 'E'
    else:
        grade = 'F'
    return {'score': score, 'grade': grade, 'breakdown': breakdown}


def opportunities(js_css: Dict[str, int], resources: Dict[str, Any], compressed: bool,
                  cache_score: int, size_bytes: int) -> List[Dict[str, str]]:
    found = []
    if js_css['render_blocking_resources'] > 2:
        found.append({'id': 'eliminate-render-blocking', 'title': 'Eliminate render-blocking resources',
                      'impact': 'high', 'effort': 'medium',
                      'description': 'Use async/defer for scripts and inline critical CSS'})
    if not compressed:
        found.append({'id': 'enable-compression', 'title': 'Enable text compression',
                      'savings': format_bytes(size_bytes * 0.7), 'impact': 'high', 'effort': 'low',
                      'description': 'Enable gzip or brotli on the server'})
    if cache_score < 60:
        found.append({'id': 'optimize-caching', 'title': 'Improve cache policy',
                      'impact': 'medium', 'effort': 'low',
                      'description': 'Send Cache-Control, ETag and Last-Modified headers'})
    if resources['third_party']['total'] > 10:
        found.append({'id': 'reduce-third-party', 'title': 'Reduce third-party impact',
                      'impact': 'medium', 'effort': 'medium',
                      'description': 'Review whether every external resource is needed'})
    scripts = resources['by_type']['scripts']
    if scripts and js_css['minified_js'] < scripts:
        found.append({'id': 'minify-javascript', 'title': 'Minify JavaScript',
                      'impact': 'medium', 'effort': 'low',
                      'description': 'Serve minified script bundles'})
    return found


def analyze_performance(page: PageFetch) -> Dict[str, Any]:
    soup = BeautifulSoup(page.html, 'html.parser')
    metrics = collect_metrics(page)
    resources = analyze_resources(soup, page.final_url)
    js_css = analyze_js_css(soup)
    caching = analyze_caching(page.headers)
    compression = {
        'content_encoding': page.header('content-encoding'),
        'is_compressed': page.compressed,
        'size': page.size_bytes,
    }
    scoring = performance_score(metrics, js_css, resources, page.compressed, caching['cache_score'])

    return {
        'url': page.final_url,
        'score': scoring['score'],
        'grade': scoring['grade'],
        'breakdown': scoring['breakdown'],
        'metrics': metrics,
        'timing': {
            'ttfb': page.ttfb_ms,
            'total': page.total_ms,
            'download': round(max(0.0, page.total_ms - page.ttfb_ms), 2),
            'redirects': page.redirect_count,
        },
        'resources': resources,
        'js_css_analysis': js_css,
        'cache_analysis': caching,
        'compression_analysis': compression,
        'opportunities': opportunities(js_css, resources, page.compressed,
                                       caching['cache_score'], page.size_bytes),
    }


class PerformanceCollector(PageCollector):

    category = "performance"
    cache_name = "performance"
    ttl = 3600

    def collect(self, domain: str) -> Dict[str, Any]:
        return analyze_performance(self.fetch(domain))
