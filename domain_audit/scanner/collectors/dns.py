"""DNS collector - every common record type for the domain and its www host.

Also derives a small mail-configuration summary (MX provider, SPF, DMARC)
since it only needs records we already have plus one _dmarc lookup.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import dns.exception
import dns.resolver

from domain_audit.scanner.collectors.base import Collector

logger = logging.getLogger(__name__)

RECORD_TYPES = ('A', 'AAAA', 'CNAME', 'MX', 'NS', 'TXT', 'SOA', 'CAA')

EMAIL_PROVIDERS = {
    'Microsoft 365': ('outlook.com', 'mail.protection.outlook.com'),
    'Google Workspace': ('google.com', 'googlemail.com'),
    'Zoho Mail': ('zoho.com', 'zohomail.com'),
    'ProtonMail': ('protonmail.ch',),
    'FastMail': ('fastmail.com', 'messagingengine.com'),
    'Yandex': ('yandex.ru', 'yandex.net'),
    'Amazon WorkMail': ('awsapps.com',),
    'GoDaddy': ('secureserver.net',),
    'Rackspace': ('emailsrvr.com',),
    'OVH': ('ovh.net',),
    'Aruba': ('aruba.it', 'arubapec.it'),
}


def make_resolver(timeout: float) -> dns.resolver.Resolver:
    resolver = dns.resolver.Resolver()
    resolver.timeout = timeout
    resolver.lifetime = timeout * 2
    return resolver


def _txt_value(rdata) -> str:
    return b''.join(rdata.strings).decode('utf-8', errors='replace')


def rdata_to_dict(host: str, rtype: str, ttl: int, rdata) -> Dict[str, Any]:
    """Flatten one rdata into the record shape used throughout the reports."""
    record = {'host': host, 'type': rtype, 'ttl': ttl}
    if rtype == 'A':
        record['ip'] = rdata.address
    elif rtype == 'AAAA':
        record['ipv6'] = rdata.address
    elif rtype in ('CNAME', 'NS'):
        record['target'] = str(rdata.target).rstrip('.')
    elif rtype == 'MX':
        record['pri'] = rdata.preference
        record['target'] = str(rdata.exchange).rstrip('.')
    elif rtype == 'TXT':
        record['txt'] = _txt_value(rdata)
    elif rtype == 'SOA':
        record.update({
            'mname': str(rdata.mname).rstrip('.'),
            'rname': str(rdata.rname).rstrip('.'),
            'serial': rdata.serial,
            'refresh': rdata.refresh,
            'retry': rdata.retry,
            'expire': rdata.expire,
            'minimum_ttl': rdata.minimum,
        })
    elif rtype == 'CAA':
        record.update({
            'flags': rdata.flags,
            'tag': rdata.tag.decode() if isinstance(rdata.tag, bytes) else str(rdata.tag),
            'value': rdata.value.decode() if isinstance(rdata.value, bytes) else str(rdata.value),
        })
    else:
        record['value'] = rdata.to_text()
    return record


def identify_email_provider(mx_host: str) -> Optional[str]:
    mx_host = mx_host.lower()
    for provider, patterns in EMAIL_PROVIDERS.items():
        if any(p in mx_host for p in patterns):
            return provider
    return None


class DNSCollector(Collector):
    """Resolve A/AAAA/CNAME/MX/NS/TXT/SOA/CAA for ``domain`` and ``www.domain``."""

    category = "dns"
    cache_name = "dns"
    ttl = 3600

    def __init__(self, resolver: dns.resolver.Resolver):
        self.resolver = resolver

    def _query(self, name: str, rtype: str) -> List[Dict[str, Any]]:
        answer = self.resolver.resolve(name, rtype)
        ttl = answer.rrset.ttl if answer.rrset is not None else 0
        return [rdata_to_dict(name, rtype, ttl, r) for r in answer]

    def collect(self, domain: str) -> Dict[str, Any]:
        started = time.perf_counter()
        records: Dict[str, List[Dict[str, Any]]] = {}
        errors: List[str] = []

        hosts = [domain]
        if domain.startswith('www.'):
            hosts.append(domain[4:])
        else:
            hosts.append(f"www.{domain}")

        for host in hosts:
            for rtype in RECORD_TYPES:
                try:
                    found = self._query(host, rtype)
                except dns.resolver.NXDOMAIN:
                    errors.append(f"{host} does not exist (NXDOMAIN)")
                    break
                except (dns.resolver.NoAnswer, dns.resolver.NoMetaqueries):
                    continue
                except dns.exception.DNSException as e:
                    errors.append(f"{rtype} lookup for {host} failed: {e}")
                    continue

                bucket = records.setdefault(rtype, [])
                for record in found:
                    if record not in bucket:
                        bucket.append(record)

        total = sum(len(v) for v in records.values())
        if total == 0 and errors:
            raise self.fail(errors[0])

        records = dict(sorted(records.items()))
        return {
            'records': records,
            'errors': errors,
            'stats': {
                'total_records': total,
                'record_types': list(records.keys()),
                'analysis_time': round((time.perf_counter() - started) * 1000, 2),
            },
            'email': self._email_configuration(domain, records),
        }

    def _email_configuration(self, domain: str, records: Dict[str, List[Dict[str, Any]]]) -> Dict[str, Any]:
        mx_servers = [
            {'priority': mx['pri'], 'server': mx['target'], 'provider': identify_email_provider(mx['target'])}
            for mx in records.get('MX', []) if mx['host'] == domain
        ]
        mx_servers.sort(key=lambda m: m['priority'])
        providers = [m['provider'] for m in mx_servers if m['provider']]

        spf_record = None
        for txt in records.get('TXT', []):
            if txt['host'] == domain and txt['txt'].startswith('v=spf1'):
                spf_record = txt['txt']
                break

        dmarc_record = None
        try:
            for rec in self._query(f"_dmarc.{domain}", 'TXT'):
                if rec['txt'].startswith('v=DMARC1'):
                    dmarc_record = rec['txt']
                    break
        except dns.exception.DNSException as e:
            logger.debug(f"No DMARC record for {domain}: {e}")

        dmarc_policy = None
        if dmarc_record:
            for part in dmarc_record.split(';'):
                key, _, value = part.strip().partition('=')
                if key == 'p':
                    dmarc_policy = value.strip()

        return {
            'has_mx': bool(mx_servers),
            'mx_count': len(mx_servers),
            'mx_servers': mx_servers,
            'email_provider': providers[0] if providers else None,
            'has_spf': spf_record is not None,
            'spf_record': spf_record,
            'has_dmarc': dmarc_record is not None,
            'dmarc_record': dmarc_record,
            'dmarc_policy': dmarc_policy,
        }
