"""SEO collector - on-page analysis of the home page.

``analyze_seo`` works on raw HTML so it can be exercised without a network;
the collector only adds the fetch and the robots.txt / sitemap.xml probes.
"""

import json
import logging
import math
import re
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from domain_audit.scanner.collectors.base import PageCollector

logger = logging.getLogger(__name__)

WORD_RE = re.compile(r"[^\W\d_]+(?:['-][^\W\d_]+)*")


def _meta(soup: BeautifulSoup, name: str) -> str:
    tag = soup.find('meta', attrs={'name': re.compile(f'^{re.escape(name)}$', re.I)})
    return (tag.get('content') or '').strip() if tag else ''


def _link_href(soup: BeautifulSoup, rel: str) -> str:
    for tag in soup.find_all('link', href=True):
        rels = tag.get('rel') or []
        if isinstance(rels, str):
            rels = rels.split()
        if rel in [r.lower() for r in rels]:
            return tag['href'].strip()
    return ''


def json_ld_blocks(soup: BeautifulSoup) -> List[Any]:
    """Every parseable application/ld+json block (invalid JSON is skipped)."""
    blocks = []
    for script in soup.find_all('script', attrs={'type': re.compile(r'application/ld\+json', re.I)}):
        try:
            data = json.loads(script.string or '')
        except (json.JSONDecodeError, TypeError):
            continue
        if data:
            blocks.append(data)
    return blocks


def seo_score(title: str, description: str, h1_count: int, canonical: str,
              https: bool, images_without_alt: int, has_json_ld: bool) -> Dict[str, Any]:
    """Start from 100 and subtract per issue found."""
    score = 100
    issues = []

    if not title:
        score -= 10
        issues.append('Missing title tag')
    elif not 30 <= len(title) <= 60:
        score -= 5
        issues.append('Title length not optimal (30-60 chars)')

    if not description:
        score -= 10
        issues.append('Missing meta description')
    elif not 120 <= len(description) <= 160:
        score -= 5
        issues.append('Description length not optimal (120-160 chars)')

    if h1_count == 0:
        score -= 10
        issues.append('Missing H1 tag')
    elif h1_count > 1:
        score -= 5
        issues.append('Multiple H1 tags found')

    if not canonical:
        score -= 5
        issues.append('Missing canonical URL')

    if not https:
        score -= 10
        issues.append('Not using HTTPS')

    if images_without_alt > 0:
        score -= min(10, images_without_alt)
        issues.append(f'{images_without_alt} images without alt text')

    if not has_json_ld:
        score -= 5
        issues.append('No structured data found')

    score = max(0, score)
    if score >= 90:
        grade = 'A'
    elif score >= 80:
        grade = 'B'
    elif score >= 70:
        grade = 'C'
    elif score >= 60:
        grade = 'D'
    else:
        grade = 'F'

    return {'score': score, 'grade': grade, 'issues': issues, 'total_checks': 8}


def analyze_seo(html: str, url: str, headers: Optional[Dict[str, str]] = None,
                exists: Optional[Callable[[str], bool]] = None) -> Dict[str, Any]:
    """Full on-page SEO report for ``html`` served at ``url``."""
    soup = BeautifulSoup(html, 'html.parser')
    headers = headers or {}
    host = urlparse(url).hostname or ''
    https = url.startswith('https://')

    # meta tags
    title = soup.title.get_text(strip=True) if soup.title else ''
    description = _meta(soup, 'description')
    viewport = _meta(soup, 'viewport')
    robots = _meta(soup, 'robots')
    canonical = _link_href(soup, 'canonical')
    html_tag = soup.find('html')
    language = (html_tag.get('lang') or '') if html_tag else ''
    charset_tag = soup.find('meta', charset=True)

    meta_tags = {
        'title': title,
        'description': description,
        'keywords': _meta(soup, 'keywords'),
        'robots': robots,
        'author': _meta(soup, 'author'),
        'viewport': viewport,
        'canonical': canonical,
        'language': language,
        'charset': charset_tag.get('charset') if charset_tag else 'UTF-8',
        'generator': _meta(soup, 'generator'),
        'theme_color': _meta(soup, 'theme-color'),
        'quality': {
            'title_length': len(title),
            'title_optimal': 30 <= len(title) <= 60,
            'description_length': len(description),
            'description_optimal': 120 <= len(description) <= 160,
            'has_canonical': bool(canonical),
            'has_viewport': bool(viewport),
        },
    }

    # structured data
    json_ld = json_ld_blocks(soup)
    open_graph = {
        tag['property'][3:]: tag.get('content', '')
        for tag in soup.find_all('meta', property=re.compile(r'^og:'))
    }
    twitter_card = {
        tag['name'][8:]: tag.get('content', '')
        for tag in soup.find_all('meta', attrs={'name': re.compile(r'^twitter:')})
    }
    microdata_count = len(soup.find_all(attrs={'itemscope': True}))
    schema_types = []
    for block in json_ld:
        if isinstance(block, list):
            items = block
        elif isinstance(block, dict):
            items = block.get('@graph', [block])
        else:
            continue
        for item in items:
            if isinstance(item, dict) and item.get('@type'):
                schema_types.append(item['@type'] if isinstance(item['@type'], str) else ','.join(item['@type']))

    structured_data = {
        'json_ld': json_ld,
        'schema_types': schema_types,
        'open_graph': open_graph,
        'twitter_card': twitter_card,
        'has_json_ld': bool(json_ld),
        'has_microdata': microdata_count > 0,
        'has_open_graph': bool(open_graph),
        'has_twitter_card': bool(twitter_card),
        'total_schemas': len(json_ld) + microdata_count,
    }

    # headings
    structure = {f'h{i}': [h.get_text(strip=True) for h in soup.find_all(f'h{i}')] for i in range(1, 7)}
    h1_count = len(structure['h1'])
    headings = {
        'structure': structure,
        'h1': structure['h1'],
        'h1_count': h1_count,
        'h2_count': len(structure['h2']),
        'total_headings': sum(len(v) for v in structure.values()),
        'hierarchy_proper': h1_count == 1,
    }

    # links
    internal = external = nofollow = 0
    for a in soup.find_all('a', href=True):
        href = a['href'].strip()
        if not href or href.startswith('#') or href.lower().startswith(('javascript:', 'mailto:', 'tel:')):
            continue
        link_host = urlparse(urljoin(url, href)).hostname or ''
        if link_host in (host, f'www.{host}') or host == f'www.{link_host}':
            internal += 1
        else:
            external += 1
        if 'nofollow' in ' '.join(a.get('rel') or []).lower():
            nofollow += 1
    links = {
        'total': internal + external,
        'internal': internal,
        'external': external,
        'nofollow': nofollow,
        'ratio': round(external / internal, 2) if internal else 0,
    }

    # images
    imgs = soup.find_all('img')
    with_alt = sum(1 for img in imgs if (img.get('alt') or '').strip())
    images = {
        'total': len(imgs),
        'with_alt': with_alt,
        'without_alt': len(imgs) - with_alt,
        'alt_percentage': round(with_alt / len(imgs) * 100, 2) if imgs else 0,
        'lazy_load': sum(1 for img in imgs if img.get('loading') == 'lazy'),
        'responsive': sum(1 for img in imgs if img.get('srcset')),
    }

    base = f"{urlparse(url).scheme}://{host}"
    technical_seo = {
        'https': https,
        'robots_txt': exists(f"{base}/robots.txt") if exists else None,
        'sitemap_xml': exists(f"{base}/sitemap.xml") if exists else None,
        'favicon': bool(_link_href(soup, 'icon') or _link_href(soup, 'apple-touch-icon')),
        'canonical_proper': bool(canonical) and urlparse(urljoin(url, canonical)).hostname == host,
        'amp': bool(_link_href(soup, 'amphtml')),
        'pagination': bool(_link_href(soup, 'prev') or _link_href(soup, 'next')),
    }

    mobile_seo = {
        'viewport_meta': bool(viewport),
        'mobile_optimized': 'width=device-width' in viewport,
    }

    hreflang = {
        tag['hreflang']: tag.get('href', '')
        for tag in soup.find_all('link', hreflang=True)
    }
    international_seo = {'hreflang': hreflang, 'language': language}

    x_robots = headers.get('x-robots-tag', '')
    indexability = {
        'robots_meta': robots,
        'x_robots_tag': x_robots or None,
        'indexable': 'noindex' not in (robots + ' ' + x_robots).lower(),
        'followable': 'nofollow' not in (robots + ' ' + x_robots).lower(),
    }

    scripts = soup.find_all('script', src=True)
    page_speed_indicators = {
        'defer_scripts': sum(1 for s in scripts if s.has_attr('defer')),
        'async_scripts': sum(1 for s in scripts if s.has_attr('async')),
        'external_scripts': len(scripts),
        'external_styles': sum(1 for link in soup.find_all('link', rel=True)
                               if 'stylesheet' in [r.lower() for r in link['rel']]),
        'inline_styles': len(soup.find_all('style')),
    }

    # content - last, because scripts and styles are stripped from the tree
    body = soup.body or soup
    for tag in body.find_all(['script', 'style', 'noscript']):
        tag.extract()
    text = re.sub(r'\s+', ' ', body.get_text(' ')).strip()
    word_count = len(WORD_RE.findall(text))
    content = {
        'word_count': word_count,
        'character_count': len(text),
        'reading_time': math.ceil(word_count / 200),
        'text_html_ratio': round(len(text) / len(html) * 100, 2) if html else 0,
        'has_sufficient_content': word_count >= 300,
    }

    return {
        'meta_tags': meta_tags,
        'structured_data': structured_data,
        'headings': headings,
        'links': links,
        'images': images,
        'content': content,
        'technical_seo': technical_seo,
        'mobile_seo': mobile_seo,
        'international_seo': international_seo,
        'indexability': indexability,
        'page_speed_indicators': page_speed_indicators,
        'seo_score': seo_score(title, description, h1_count, canonical, https,
                               images['without_alt'], bool(json_ld)),
    }


class SEOCollector(PageCollector):

    category = "seo"
    cache_name = "seo"
    ttl = 3600

    def collect(self, domain: str) -> Dict[str, Any]:
        page = self.fetch(domain)
        return analyze_seo(page.html, page.final_url, page.headers, exists=self.fetcher.exists)
