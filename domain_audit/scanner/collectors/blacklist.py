"""Blacklist collector - DNSBL lookups for the site and mail server IPs.

An IP is listed on a zone when ``<reversed-ip>.<zone>`` resolves to a
127.0.0.x address. Answers in 127.255.255.0/24 are the zone refusing the query
(typically through a public resolver) and count as errors, not listings.
"""

import ipaddress
import logging
import time
from typing import Any, Dict, List, Optional

import dns.exception
import dns.resolver

from domain_audit.scanner.collectors.base import Collector

logger = logging.getLogger(__name__)

DNSBL_ZONES = {
    'zen.spamhaus.org': 'Spamhaus ZEN',
    'bl.spamcop.net': 'SpamCop',
    'b.barracudacentral.org': 'Barracuda',
    'dnsbl.sorbs.net': 'SORBS',
    'cbl.abuseat.org': 'CBL Abuseat',
    'dnsbl-1.uceprotect.net': 'UCEPROTECT L1',
    'psbl.surriel.com': 'PSBL',
    'db.wpbl.info': 'WPBL',
    'ix.dnsbl.manitu.net': 'Manitu',
    'spam.spamrats.com': 'SpamRats Spam',
}

RESPONSE_CODES = {
    'zen.spamhaus.org': {
        '127.0.0.2': 'SBL - Spammer',
        '127.0.0.3': 'CSS - Spammer',
        '127.0.0.4': 'XBL - Exploited/Compromised',
        '127.0.0.9': 'PBL - Policy Block',
        '127.0.0.10': 'PBL - ISP Maintained',
        '127.0.0.11': 'PBL - Non-MTA IP',
    },
    'bl.spamcop.net': {
        '127.0.0.2': 'Listed for spam',
    },
}

GENERIC_CODES = {
    '2': 'Listed (Spam Source)',
    '3': 'Listed (Proxy/Relay)',
    '4': 'Listed (Compromised)',
    '9': 'Listed (Dynamic/Residential)',
}


def reverse_ip(ip: str) -> str:
    return '.'.join(reversed(ip.split('.')))


def interpret_response(response: str, zone: str) -> str:
    """Map a DNSBL answer to a human-readable listing reason."""
    specific = RESPONSE_CODES.get(zone, {}).get(response)
    if specific:
        return specific
    return GENERIC_CODES.get(response.rsplit('.', 1)[-1], f"Listed (Code: {response})")


def reputation(total_checks: int, total_listings: int) -> Dict[str, Any]:
    if total_checks == 0:
        return {'score': 0, 'rating': 'Unknown'}

    clean = (total_checks - total_listings) / total_checks * 100
    score = round(clean)
    if score == 100:
        rating = 'Excellent'
    elif score >= 95:
        rating = 'Very Good'
    elif score >= 90:
        rating = 'Good'
    elif score >= 80:
        rating = 'Fair'
    elif score >= 70:
        rating = 'Sufficient'
    elif score >= 50:
        rating = 'Poor'
    else:
        rating = 'Critical'
    return {
        'score': score,
        'rating': rating,
        'clean_percentage': round(clean, 2),
        'listed_percentage': round(100 - clean, 2),
    }


class BlacklistCollector(Collector):
    """Check A and MX addresses (IPv4 only) against the DNSBL zones."""

    category = "blacklist"
    cache_name = "blacklist"
    ttl = 7200

    def __init__(self, resolver: dns.resolver.Resolver, zones: Optional[Dict[str, str]] = None):
        self.resolver = resolver
        self.zones = zones if zones is not None else DNSBL_ZONES

    def _a_records(self, name: str) -> List[str]:
        try:
            return [r.address for r in self.resolver.resolve(name, 'A')]
        except dns.exception.DNSException:
            return []

    def ips_to_check(self, domain: str) -> Dict[str, str]:
        """IP -> where it came from (web, www, mail host)."""
        ips = {}
        for ip in self._a_records(domain):
            ips.setdefault(ip, 'web')
        if not domain.startswith('www.'):
            for ip in self._a_records(f"www.{domain}"):
                ips.setdefault(ip, 'www')
        try:
            mx_hosts = [str(r.exchange).rstrip('.') for r in self.resolver.resolve(domain, 'MX')]
        except dns.exception.DNSException:
            mx_hosts = []
        for host in mx_hosts:
            for ip in self._a_records(host):
                ips.setdefault(ip, f"mail ({host})")
        return ips

    def collect(self, domain: str) -> Dict[str, Any]:
        started = time.perf_counter()
        ips = self.ips_to_check(domain)
        if not ips:
            raise self.fail(f"No IP addresses found for {domain}")

        listings = []
        errors = []
        total_checks = 0

        for ip, source in ips.items():
            rev = reverse_ip(ip)
            for zone, name in self.zones.items():
                total_checks += 1
                try:
                    answer = self.resolver.resolve(f"{rev}.{zone}", 'A')
                except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
                    continue
                except dns.exception.DNSException as e:
                    errors.append(f"{name}: {e}")
                    continue

                response = answer[0].address
                if ipaddress.ip_address(response) in ipaddress.ip_network('127.255.255.0/24'):
                    errors.append(f"{name}: query refused ({response})")
                    continue

                listings.append({
                    'ip': ip,
                    'source': source,
                    'blacklist': name,
                    'dnsbl': zone,
                    'reason': interpret_response(response, zone),
                    'response': response,
                })

        if listings:
            logger.info(f"{domain}: {len(listings)} blacklist listing(s)")

        return {
            'domain': domain,
            'ips_checked': ips,
            'blacklists_checked': list(self.zones.values()),
            'is_blacklisted': bool(listings),
            'listings': listings,
            'errors': errors,
            'statistics': {
                'total_checks': total_checks,
                'total_listings': len(listings),
                'check_duration': round((time.perf_counter() - started) * 1000, 2),
            },
            'reputation': reputation(total_checks, len(listings)),
        }
