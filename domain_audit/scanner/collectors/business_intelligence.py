"""Business intelligence collector - who runs the site and how it sells.

Everything here is read from the home page: contact details, company facts,
social profiles, pricing hints, legal pages and a rough business model.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from domain_audit.scanner.collectors.base import PageCollector
from domain_audit.scanner.collectors.seo import json_ld_blocks

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}')
PHONE_PATTERNS = [
    re.compile(r'\+\d{1,3}[\s.-]?\(?\d{1,4}\)?[\s.-]?\d{1,4}[\s.-]?\d{1,9}'),
    re.compile(r'\(\d{3}\)[\s.-]?\d{3}[\s.-]?\d{4}'),
    re.compile(r'\b\d{3}[\s.-]\d{3}[\s.-]\d{4}\b'),
]

PLACEHOLDER_EMAILS = {'example@example.com', 'test@test.com', 'email@example.com'}
# retina assets like logo@2x.png look like addresses
ASSET_SUFFIXES = ('.png', '.jpg', '.jpeg', '.gif', '.svg', '.webp')

SOCIAL_PATTERNS = {
    'facebook': r'(?:https?:)?//(?:www\.)?facebook\.com/[a-zA-Z0-9.\-_]+',
    'twitter': r'(?:https?:)?//(?:www\.)?(?:twitter\.com|x\.com)/[a-zA-Z0-9_]+',
    'instagram': r'(?:https?:)?//(?:www\.)?instagram\.com/[a-zA-Z0-9.\-_]+',
    'linkedin': r'(?:https?:)?//(?:www\.)?linkedin\.com/(?:company|in)/[a-zA-Z0-9\-_]+',
    'youtube': r'(?:https?:)?//(?:www\.)?youtube\.com/(?:channel|c|user|@)/?[a-zA-Z0-9\-_]+',
    'tiktok': r'(?:https?:)?//(?:www\.)?tiktok\.com/@[a-zA-Z0-9.\-_]+',
    'pinterest': r'(?:https?:)?//(?:www\.)?pinterest\.com/[a-zA-Z0-9.\-_]+',
    'github': r'(?:https?:)?//(?:www\.)?github\.com/[a-zA-Z0-9\-_]+',
}

CHAT_MARKERS = ['intercom', 'drift', 'zendesk', 'livechat', 'tawk', 'crisp',
                'olark', 'freshchat', 'liveperson', 'chat-widget']
BOOKING_MARKERS = ['calendly', 'acuity', 'booking', 'appointment',
                   'schedule', 'book now', 'booksy', 'simplybook']
ORGANIZATION_TYPES = {'Organization', 'LocalBusiness', 'Corporation'}
INDUSTRY_TYPES = {'Restaurant', 'Hotel', 'Store', 'MedicalClinic', 'LegalService'}

CURRENCIES = [('€', 'EUR'), ('£', 'GBP'), ('¥', 'JPY'), ('CHF', 'CHF'), ('$', 'USD')]
PRICE_RE = re.compile(r'[$€£¥]\s*\d+(?:[.,]\d{2})?')
PAYMENT_METHODS = {
    'stripe': 'Stripe', 'paypal': 'PayPal', 'visa': 'Visa', 'mastercard': 'Mastercard',
    'amex': 'American Express', 'apple pay': 'Apple Pay', 'google pay': 'Google Pay',
    'klarna': 'Klarna',
}
CERTIFICATIONS = ['ISO 9001', 'ISO 27001', 'PCI DSS', 'GDPR compliant', 'SOC 2', 'HIPAA',
                  'FDA approved', 'CE marking', 'Google Partner', 'Microsoft Partner', 'AWS Partner']
COMPANY_SIZES = [
    ('enterprise', 'Enterprise (1000+ employees)'),
    ('large company', 'Large (200-1000 employees)'),
    ('medium-sized', 'Medium (50-200 employees)'),
    ('small business', 'Small (10-50 employees)'),
    ('startup', 'Startup (<10 employees)'),
]
BUSINESS_MODELS = {
    'ecommerce': ['add to cart', 'checkout', 'woocommerce'],
    'saas': ['subscription', 'pricing', 'sign up'],
    'marketplace': ['marketplace', 'seller', 'vendor'],
    'blog': ['blog', 'article'],
    'portfolio': ['portfolio', 'projects'],
    'lead_generation': ['contact us', 'get a quote', 'request demo'],
}
B2B_KEYWORDS = ['enterprise', 'business', 'corporate', 'b2b', 'solution', 'roi']
B2C_KEYWORDS = ['shop', 'buy', 'customer', 'personal', 'individual', 'b2c']


def _unique(items: List[str]) -> List[str]:
    seen = []
    for item in items:
        if item and item not in seen:
            seen.append(item)
    return seen


def _schema_items(blocks: List[Any]) -> List[Dict[str, Any]]:
    items = []
    for block in blocks:
        if isinstance(block, list):
            items.extend(b for b in block if isinstance(b, dict))
        elif isinstance(block, dict):
            items.extend(b for b in block.get('@graph', [block]) if isinstance(b, dict))
    return items


def _types(item: Dict[str, Any]) -> List[str]:
    value = item.get('@type', [])
    return [value] if isinstance(value, str) else list(value)


def format_address(address: Any) -> str:
    if isinstance(address, str):
        return address.strip()
    if not isinstance(address, dict):
        return ''
    parts = [address.get(k) for k in
             ('streetAddress', 'addressLocality', 'addressRegion', 'postalCode', 'addressCountry')]
    return ', '.join(str(p) for p in parts if p)


def extract_emails(html: str, soup: BeautifulSoup) -> List[str]:
    emails = EMAIL_RE.findall(html)
    for a in soup.find_all('a', href=re.compile(r'^mailto:', re.I)):
        emails.append(a['href'][7:].split('?')[0])
    return _unique([
        e for e in emails
        if e.lower() not in PLACEHOLDER_EMAILS and not e.lower().endswith(ASSET_SUFFIXES)
    ])


def extract_phones(text: str, soup: BeautifulSoup) -> List[str]:
    phones = []
    for pattern in PHONE_PATTERNS:
        phones.extend(m.strip() for m in pattern.findall(text))
    for a in soup.find_all('a', href=re.compile(r'^tel:', re.I)):
        phones.append(a['href'][4:].strip())
    return _unique(phones)


def has_contact_form(soup: BeautifulSoup) -> bool:
    """A form with both an email field and a message field."""
    for form in soup.find_all('form'):
        has_email = has_message = False
        for field in form.find_all(['input', 'textarea']):
            name = (field.get('name') or '').lower()
            if (field.get('type') or '').lower() == 'email' or 'email' in name:
                has_email = True
            if field.name == 'textarea' or 'message' in name:
                has_message = True
        if has_email and has_message:
            return True
    return False


def company_name(schema: List[Dict[str, Any]], soup: BeautifulSoup) -> Optional[str]:
    """JSON-LD Organization name, then og:site_name, then the page title."""
    for item in schema:
        if item.get('name') and ORGANIZATION_TYPES.intersection(_types(item)):
            return str(item['name'])
    og = soup.find('meta', property='og:site_name')
    if og and og.get('content'):
        return og['content'].strip()
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(strip=True)
    return None


def price_range(html: str) -> Optional[Dict[str, Any]]:
    prices = []
    for match in PRICE_RE.findall(html):
        digits = re.sub(r'[^\d.,]', '', match).replace(',', '.')
        try:
            prices.append(float(digits))
        except ValueError:
            continue
    if not prices:
        return None
    return {'min': min(prices), 'max': max(prices), 'count': len(prices)}


def analyze_business(html: str) -> Dict[str, Any]:
    soup = BeautifulSoup(html, 'html.parser')
    schema = _schema_items(json_ld_blocks(soup))
    lower = html.lower()
    text = soup.get_text(' ')
    hrefs = [a['href'].lower() for a in soup.find_all('a', href=True)]

    addresses = []
    for item in schema:
        addresses.append(format_address(item.get('address')))
        location = item.get('location')
        if isinstance(location, dict):
            addresses.append(format_address(location.get('address')))
    addresses.extend(el.get_text(' ', strip=True) for el in soup.find_all(attrs={'itemprop': 'address'}))

    contact_info = {
        'emails': extract_emails(html, soup),
        'phones': extract_phones(text, soup),
        'addresses': _unique(addresses),
        'contact_form': has_contact_form(soup),
        'live_chat': any(m in lower for m in CHAT_MARKERS),
        'whatsapp': 'wa.me' in lower or 'whatsapp' in lower,
        'appointment_booking': any(m in lower for m in BOOKING_MARKERS),
    }

    founded = next((str(i['foundingDate']) for i in schema if i.get('foundingDate')), None)
    if not founded:
        match = re.search(r'(?:founded|since).{0,20}?(\d{4})', text, re.I)
        founded = match.group(1) if match else None

    size = None
    match = re.search(r'(\d+[+\-]?)\s*employees?', lower)
    if match:
        size = f"{match.group(1)} employees"
    else:
        size = next((label for keyword, label in COMPANY_SIZES if keyword in lower), None)

    description = soup.find('meta', attrs={'name': re.compile('^description$', re.I)})
    vat = re.search(r'P\.?IVA[\s:]*(\d{11})', html) or re.search(r'\b[A-Z]{2}\d{8,12}\b', html)
    registration = re.search(r'registration.{0,30}?(\d{6,})', text, re.I)
    company_info = {
        'name': company_name(schema, soup),
        'description': description.get('content') if description else None,
        'founded': founded,
        'size': size,
        'industry': next((t for i in schema for t in _types(i) if t in INDUSTRY_TYPES), None),
        'vat_number': (vat.group(1) if vat.groups() else vat.group(0)) if vat else None,
        'registration_number': registration.group(1) if registration else None,
    }

    social_profiles = {}
    for platform, pattern in SOCIAL_PATTERNS.items():
        match = re.search(pattern, html, re.I)
        if match:
            social_profiles[platform] = match.group(0)

    prices = price_range(html)
    pricing = {
        'has_pricing': prices is not None,
        'currency': next((code for symbol, code in CURRENCIES if symbol in html), None),
        'price_range': prices,
        'payment_methods': [name for marker, name in PAYMENT_METHODS.items() if marker in lower],
    }

    members = [len(i.get('employee') or i.get('member') or []) for i in schema
               if isinstance(i.get('employee') or i.get('member'), list)]
    team = {
        'has_team_page': any(re.search(r'team|about|chi-siamo|staff|people', h) for h in hrefs),
        'team_size_estimate': max(members) if members and max(members) > 0 else None,
    }

    review_items = sum(1 for i in schema if 'review' in i or 'Review' in _types(i))
    review_elements = len(soup.find_all(class_=re.compile(r'testimonial|review')))
    testimonials = {
        'has_testimonials': bool(review_items or review_elements),
        'count': max(review_items, review_elements),
    }

    legal = {
        'privacy_policy': any('privacy' in h for h in hrefs),
        'terms_of_service': any('terms' in h for h in hrefs),
        'cookie_policy': any('cookie' in h for h in hrefs),
        'gdpr_compliant': any(m in lower for m in ('gdpr', 'cookie consent', 'cookie banner')),
        'age_restriction': any(m in lower for m in ('18+', 'age verification', 'adult content')),
    }

    html_tag = soup.find('html')
    hreflangs = [link['hreflang'] for link in soup.find_all('link', hreflang=True)]
    languages = _unique(([html_tag.get('lang')] if html_tag and html_tag.get('lang') else []) + hreflangs)

    b2b = sum(1 for k in B2B_KEYWORDS if k in lower)
    b2c = sum(1 for k in B2C_KEYWORDS if k in lower)
    target_audience = {
        'b2b': b2b > 0,
        'b2c': b2c > 0,
        'primary': 'B2B' if b2b > b2c else 'B2C' if b2c > b2b else 'Mixed',
        'geo_target': _unique([h[3:].upper() for h in hreflangs if len(h) == 5 and h[2] == '-']),
    }

    hours = next((i['openingHoursSpecification'] for i in schema if i.get('openingHoursSpecification')), [])

    return {
        'contact_info': contact_info,
        'company_info': company_info,
        'social_profiles': social_profiles,
        'business_hours': hours,
        'pricing': pricing,
        'team': team,
        'testimonials': testimonials,
        'certifications': [c for c in CERTIFICATIONS if c.lower() in lower],
        'legal': legal,
        'languages': languages,
        'target_audience': target_audience,
        'business_model': {
            model: any(marker in lower for marker in markers)
            for model, markers in BUSINESS_MODELS.items()
        },
    }


class BusinessIntelligenceCollector(PageCollector):

    category = "business_intelligence"
    cache_name = "business"
    ttl = 86400

    def collect(self, domain: str) -> Dict[str, Any]:
        page = self.fetch(domain)
        return analyze_business(page.html)
