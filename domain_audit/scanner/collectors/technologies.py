"""Technology collector - signature matching against the home page.

Each signature source adds confidence: html substring +30, header +40,
meta generator +50, script src +30, stylesheet href +30, regex pattern +40.
Confidence is capped at 100; anything above 0 counts as detected.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from domain_audit.scanner.collectors.base import PageCollector

logger = logging.getLogger(__name__)

# headers: (header-name prefix, value substring or None)
SIGNATURES: Dict[str, Dict[str, Dict[str, Any]]] = {
    'cms': {
        'WordPress': {'html': ['/wp-content/', '/wp-includes/', 'wp-json'],
                      'meta': {'generator': 'WordPress'}, 'scripts': ['wp-includes/js']},
        'Joomla': {'html': ['/components/com_', '/media/jui/'], 'meta': {'generator': 'Joomla'}},
        'Drupal': {'html': ['/sites/default/', '/misc/drupal'], 'meta': {'generator': 'Drupal'},
                   'headers': [('x-drupal-cache', None), ('x-generator', 'drupal')]},
        'Shopify': {'html': ['cdn.shopify.com', 'shopify-analytics'], 'headers': [('x-shopid', None)]},
        'Magento': {'html': ['/skin/frontend/', 'Mage.Cookies']},
        'PrestaShop': {'html': ['/modules/blockuserinfo', 'prestashop'], 'meta': {'generator': 'PrestaShop'}},
        'Wix': {'html': ['static.wixstatic.com'], 'meta': {'generator': 'Wix'}},
        'Squarespace': {'html': ['static1.squarespace.com'], 'meta': {'generator': 'Squarespace'}},
        'Webflow': {'html': ['data-wf-page', 'webflow.com'], 'meta': {'generator': 'Webflow'}},
    },
    'frameworks': {
        'React': {'html': ['data-reactroot', '_reactRoot'], 'scripts': ['react.production', 'react-dom']},
        'Vue.js': {'html': ['data-v-', '__vue__'], 'scripts': ['vue.js', 'vue.min.js']},
        'Angular': {'html': ['ng-version', 'ng-app', '_ngcontent'], 'scripts': ['angular.js', '@angular']},
        'Next.js': {'html': ['__NEXT_DATA__', '_next/static'], 'scripts': ['/_next/']},
        'Nuxt.js': {'html': ['__NUXT__', '/_nuxt/'], 'scripts': ['/_nuxt/']},
        'Svelte': {'html': ['svelte-'], 'scripts': ['svelte']},
        'jQuery': {'scripts': ['jquery']},
        'Bootstrap': {'html': ['bootstrap.min'], 'styles': ['bootstrap']},
        'Tailwind CSS': {'html': ['tailwindcss'], 'styles': ['tailwind']},
    },
    'analytics': {
        'Google Analytics': {'html': ['google-analytics.com', 'gtag/js', 'analytics.js'],
                             'pattern': r'\bUA-\d+-\d+\b|\bG-[A-Z0-9]{6,}\b'},
        'Google Tag Manager': {'html': ['googletagmanager.com/gtm.js'], 'pattern': r'\bGTM-[A-Z0-9]+\b'},
        'Facebook Pixel': {'html': ['connect.facebook.net', 'fbq('], 'pattern': r'fbq\(\s*[\'"]init'},
        'Hotjar': {'html': ['static.hotjar.com', 'hjid']},
        'Mixpanel': {'html': ['cdn.mxpnl.com', 'mixpanel.init']},
        'Segment': {'html': ['cdn.segment.com', 'analytics.load']},
        'Matomo': {'html': ['matomo.js', 'piwik.js', '_paq.push']},
        'Plausible': {'html': ['plausible.io']},
    },
    'marketing': {
        'HubSpot': {'html': ['js.hs-scripts.com', 'hs-script']},
        'Mailchimp': {'html': ['chimpstatic.com', 'list-manage.com']},
        'Intercom': {'html': ['widget.intercom.io', 'intercomSettings']},
        'Drift': {'html': ['js.driftt.com', 'drift.com']},
        'Zendesk': {'html': ['static.zdassets.com', 'zendesk']},
        'LiveChat': {'html': ['livechatinc.com']},
        'Tawk.to': {'html': ['embed.tawk.to']},
        'Crisp': {'html': ['client.crisp.chat']},
    },
    'ecommerce': {
        'WooCommerce': {'html': ['woocommerce']},
        'Stripe': {'html': ['js.stripe.com']},
        'PayPal': {'html': ['paypal.com/sdk', 'paypalobjects.com']},
        'Snipcart': {'html': ['snipcart']},
    },
    'cdn': {
        'Cloudflare': {'headers': [('cf-ray', None), ('cf-cache-status', None)], 'html': ['cdnjs.cloudflare.com']},
        'Amazon CloudFront': {'headers': [('x-amz-cf-id', None), ('x-amz-cf-pop', None)], 'html': ['cloudfront.net']},
        'Fastly': {'headers': [('x-served-by', 'cache-'), ('fastly-', None)], 'html': ['fastly.net']},
        'Akamai': {'headers': [('x-akamai', None)], 'html': ['akamaihd.net']},
        'KeyCDN': {'headers': [('x-edge-location', None)], 'html': ['kxcdn.com']},
        'jsDelivr': {'html': ['cdn.jsdelivr.net']},
    },
    'hosting': {
        'Vercel': {'headers': [('x-vercel-id', None)]},
        'Netlify': {'headers': [('x-nf-request-id', None)]},
        'GitHub Pages': {'headers': [('x-github-request-id', None)]},
        'AWS': {'headers': [('x-amz-', None)]},
    },
    'security': {
        'reCAPTCHA': {'html': ['google.com/recaptcha', 'g-recaptcha']},
        'hCaptcha': {'html': ['hcaptcha.com']},
        'Cloudflare Turnstile': {'html': ['challenges.cloudflare.com/turnstile']},
        'Sucuri': {'headers': [('x-sucuri', None)]},
        'Wordfence': {'headers': [('x-wordfence', None)]},
    },
}

VERSION_PATTERNS = {
    'WordPress': r'WordPress ([0-9.]+)',
    'jQuery': r'jquery[.-]([0-9]+(?:\.[0-9]+)+)',
    'Google Analytics': r'(UA-\d+-\d+|G-[A-Z0-9]{6,})',
}


class _Page:
    """Pre-extracted bits of the page the signatures are checked against."""

    def __init__(self, html: str, headers: Dict[str, str]):
        self.html = html
        self.html_lower = html.lower()
        self.headers = {k.lower(): str(v).lower() for k, v in headers.items()}
        soup = BeautifulSoup(html, 'html.parser')
        self.meta = {}
        for tag in soup.find_all('meta', attrs={'name': True}):
            self.meta.setdefault(tag['name'].lower(), (tag.get('content') or '').lower())
        self.scripts = [s['src'].lower() for s in soup.find_all('script', src=True)]
        self.styles = [
            link.get('href', '').lower() for link in soup.find_all('link', rel=True)
            if 'stylesheet' in [r.lower() for r in link['rel']]
        ]

    def has_header(self, prefix: str, value: Optional[str]) -> bool:
        for name, header_value in self.headers.items():
            if name.startswith(prefix) and (value is None or value.lower() in header_value):
                return True
        return False


def detect_version(name: str, html: str) -> Optional[str]:
    pattern = VERSION_PATTERNS.get(name)
    if not pattern:
        return None
    match = re.search(pattern, html, re.IGNORECASE if name != 'Google Analytics' else 0)
    return match.group(1) if match else None


def detect_category(page: _Page, signatures: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    detected = []
    for name, sig in signatures.items():
        confidence = 0
        matches = []

        for pattern in sig.get('html', []):
            if pattern.lower() in page.html_lower:
                confidence += 30
                matches.append(f"HTML pattern: {pattern}")

        for prefix, value in sig.get('headers', []):
            if page.has_header(prefix, value):
                confidence += 40
                matches.append(f"Header: {prefix}" + (f" = {value}" if value else ""))

        for meta_name, content in sig.get('meta', {}).items():
            if content.lower() in page.meta.get(meta_name, ''):
                confidence += 50
                matches.append(f"Meta: {meta_name} = {content}")

        for script in sig.get('scripts', []):
            if any(script.lower() in src for src in page.scripts):
                confidence += 30
                matches.append(f"Script: {script}")

        for style in sig.get('styles', []):
            if any(style.lower() in href for href in page.styles):
                confidence += 30
                matches.append(f"Style: {style}")

        if sig.get('pattern') and re.search(sig['pattern'], page.html):
            confidence += 40
            matches.append("Pattern match")

        if confidence > 0:
            detected.append({
                'name': name,
                'confidence': min(100, confidence),
                'matches': matches,
                'version': detect_version(name, page.html),
            })

    detected.sort(key=lambda t: t['confidence'], reverse=True)
    return detected


def detect_technologies(html: str, headers: Dict[str, str]) -> Dict[str, Any]:
    """Detected technologies per category plus a summary block."""
    page = _Page(html, headers)
    result: Dict[str, Any] = {
        category: detect_category(page, signatures)
        for category, signatures in SIGNATURES.items()
    }

    by_category = {category: len(result[category]) for category in SIGNATURES}
    result['server'] = {
        'software': headers.get('server'),
        'powered_by': headers.get('x-powered-by'),
    }
    result['summary'] = {
        'total_technologies': sum(by_category.values()),
        'by_category': by_category,
        'cms_detected': bool(result['cms']),
        'cms_name': result['cms'][0]['name'] if result['cms'] else None,
        'has_analytics': bool(result['analytics']),
        'has_cdn': bool(result['cdn']),
        'is_ecommerce': bool(result['ecommerce']),
    }
    return result


class TechnologyCollector(PageCollector):

    category = "technologies"
    cache_name = "tech"
    ttl = 86400

    def collect(self, domain: str) -> Dict[str, Any]:
        page = self.fetch(domain)
        return detect_technologies(page.html, page.headers)
