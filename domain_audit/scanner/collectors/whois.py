"""WHOIS collector - raw port-43 queries with registry referral.

The registry server comes from a TLD table, falling back to whois.iana.org's
``refer:`` answer. Thin registries (.com/.net) point to the registrar's own
server, which is queried once more for the full record.
"""

import logging
import re
import socket
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import dns.exception
import dns.resolver

from domain_audit.scanner.collectors.base import Collector

logger = logging.getLogger(__name__)

WHOIS_SERVERS = {
    'com': 'whois.verisign-grs.com',
    'net': 'whois.verisign-grs.com',
    'org': 'whois.pir.org',
    'info': 'whois.afilias.net',
    'biz': 'whois.biz',
    'it': 'whois.nic.it',
    'eu': 'whois.eu',
    'de': 'whois.denic.de',
    'uk': 'whois.nic.uk',
    'fr': 'whois.nic.fr',
    'es': 'whois.nic.es',
    'ch': 'whois.nic.ch',
    'nl': 'whois.sidn.nl',
    'be': 'whois.dns.be',
    'at': 'whois.nic.at',
    'pl': 'whois.dns.pl',
    'se': 'whois.iis.se',
    'io': 'whois.nic.io',
    'co': 'whois.nic.co',
    'me': 'whois.nic.me',
    'ca': 'whois.cira.ca',
    'au': 'whois.auda.org.au',
    'jp': 'whois.jprs.jp',
    'br': 'whois.registro.br',
    'us': 'whois.nic.us',
    'dev': 'whois.nic.google',
    'app': 'whois.nic.google',
    'xyz': 'whois.nic.xyz',
}

IANA_WHOIS = 'whois.iana.org'

FIELD_LABELS = [
    ('registrar', ['Registrar:', 'Registrar Name:', 'Sponsoring Registrar:']),
    ('created', ['Creation Date:', 'Created Date:', 'Registration Date:', 'Created:', 'created:']),
    ('expires', ['Registry Expiry Date:', 'Registrar Registration Expiration Date:',
                 'Expiration Date:', 'Expiry Date:', 'Expire Date:', 'Expires:', 'paid-till:']),
    ('updated', ['Updated Date:', 'Last Update:', 'Last Modified:', 'Last Updated:', 'changed:']),
    ('registrant_org', ['Registrant Organization:', 'Registrant Organisation:', 'Organization:', 'org-name:']),
    ('registrant_country', ['Registrant Country:', 'Registrant Country Code:']),
    ('dnssec', ['DNSSEC:', 'dnssec:']),
]

PRIVACY_MARKERS = ('redacted', 'data protected', 'not disclosed', 'privacy', 'gdpr')

DATE_FORMATS = [
    '%Y-%m-%dT%H:%M:%SZ', '%Y-%m-%dT%H:%M:%S.%fZ', '%Y-%m-%dT%H:%M:%S%z',
    '%Y-%m-%d %H:%M:%S', '%Y-%m-%d', '%d-%b-%Y', '%d/%m/%Y', '%Y/%m/%d',
    '%Y.%m.%d', '%d.%m.%Y',
]


def parse_whois_date(value: str) -> Optional[datetime]:
    value = value.strip().split(' (')[0]
    for fmt in DATE_FORMATS:
        try:
            dt = datetime.strptime(value, fmt)
        except ValueError:
            continue
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    return None


def extract_referral(raw: str) -> Optional[str]:
    for pattern in (r'Registrar WHOIS Server:\s*(\S+)', r'Whois Server:\s*(\S+)', r'refer:\s*(\S+)'):
        match = re.search(pattern, raw, re.IGNORECASE)
        if match:
            server = match.group(1).strip().rstrip('.')
            server = re.sub(r'^[a-z]+://', '', server)
            if server and '.' in server:
                return server
    return None


def parse_whois(raw: str) -> Dict[str, Any]:
    """Pull the common registration fields out of free-form WHOIS text."""
    info: Dict[str, Any] = {}

    for key, labels in FIELD_LABELS:
        for label in labels:
            match = re.search(r'^\s*' + re.escape(label) + r'[ \t]*(.+)$', raw, re.IGNORECASE | re.MULTILINE)
            if not match:
                continue
            value = match.group(1).strip()
            if value and not any(m in value.lower() for m in PRIVACY_MARKERS):
                info[key] = value
            break

    nameservers = re.findall(r'^\s*(?:Name Server|nserver):\s*(\S+)', raw, re.IGNORECASE | re.MULTILINE)
    info['nameservers'] = list(dict.fromkeys(ns.lower().rstrip('.') for ns in nameservers))

    statuses = re.findall(r'^\s*(?:Domain )?Status:\s*(\S+)', raw, re.IGNORECASE | re.MULTILINE)
    info['status'] = list(dict.fromkeys(statuses))

    now = datetime.now(timezone.utc)
    for key in ('created', 'expires', 'updated'):
        if key in info:
            parsed = parse_whois_date(info[key])
            if parsed is None:
                continue
            info[key] = parsed.strftime('%Y-%m-%d')
            if key == 'expires':
                info['days_until_expiry'] = (parsed - now).days
            elif key == 'created':
                info['domain_age_days'] = (now - parsed).days

    dnssec = str(info.get('dnssec', '')).lower()
    info['dnssec'] = dnssec.startswith('signed') or dnssec == 'yes'
    info['privacy_protected'] = any(m in raw.lower() for m in ('redacted for privacy', 'data protected'))
    return info


class WhoisCollector(Collector):
    """Registrar, dates, nameservers and status for a registered domain."""

    category = "whois"
    cache_name = "whois"
    ttl = 86400

    def __init__(self, resolver: dns.resolver.Resolver, timeout: float = 10.0):
        self.resolver = resolver
        self.timeout = timeout

    def query(self, query: str, server: str, port: int = 43) -> Optional[str]:
        try:
            with socket.create_connection((server, port), timeout=self.timeout) as sock:
                sock.sendall((query + '\r\n').encode('utf-8'))
                response = b''
                while True:
                    chunk = sock.recv(4096)
                    if not chunk:
                        break
                    response += chunk
                    if len(response) > 65536:
                        break
            return response.decode('utf-8', errors='replace')
        except OSError as e:
            logger.debug(f"WHOIS query failed for {query}@{server}: {e}")
            return None

    def server_for(self, domain: str) -> Optional[str]:
        tld = domain.rsplit('.', 1)[-1]
        if tld in WHOIS_SERVERS:
            return WHOIS_SERVERS[tld]
        iana = self.query(tld, IANA_WHOIS)
        return extract_referral(iana) if iana else None

    def _nameservers_from_dns(self, domain: str) -> List[str]:
        try:
            return [str(r.target).rstrip('.').lower() for r in self.resolver.resolve(domain, 'NS')]
        except dns.exception.DNSException:
            return []

    def collect(self, domain: str) -> Dict[str, Any]:
        started = time.perf_counter()
        server = self.server_for(domain)
        if not server:
            raise self.fail(f"No WHOIS server found for {domain}")

        raw = self.query(domain, server)
        if not raw:
            raise self.fail(f"WHOIS query to {server} failed or returned empty")

        source = server
        referral = extract_referral(raw)
        if referral and referral != server:
            referred = self.query(domain, referral)
            if referred:
                raw = referred
                source = referral

        if re.search(r'^(No match|NOT FOUND|No entries found|Status:\s*AVAILABLE)', raw, re.IGNORECASE | re.MULTILINE):
            raise self.fail(f"{domain} is not registered")

        info = parse_whois(raw)
        if not info['nameservers']:
            info['nameservers'] = self._nameservers_from_dns(domain)

        info.update({
            'source': source,
            'raw_data': raw[:5000],
            'query_time': round((time.perf_counter() - started) * 1000, 2),
        })
        return info
