"""SSL collector - certificate validity and details for port 443.

Validity comes from a verified handshake (chain + hostname). When that fails
the certificate is fetched again without verification so the report can still
show what the server presents and why it is rejected.
"""

import logging
import socket
import ssl
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from cryptography import x509
from cryptography.x509.oid import ExtensionOID, NameOID

from domain_audit.scanner.collectors.base import Collector

logger = logging.getLogger(__name__)


def _name_attr(name: x509.Name, oid) -> Optional[str]:
    attrs = name.get_attributes_for_oid(oid)
    return attrs[0].value if attrs else None


def _not_after(cert: x509.Certificate) -> datetime:
    # cryptography >= 42 has the tz-aware variant
    value = getattr(cert, 'not_valid_after_utc', None)
    if value is None:
        value = cert.not_valid_after.replace(tzinfo=timezone.utc)
    return value


def _not_before(cert: x509.Certificate) -> datetime:
    value = getattr(cert, 'not_valid_before_utc', None)
    if value is None:
        value = cert.not_valid_before.replace(tzinfo=timezone.utc)
    return value


def describe_certificate(der: bytes) -> Dict[str, Any]:
    """Parse a DER certificate into the fields the reports show."""
    cert = x509.load_der_x509_certificate(der)

    try:
        san_ext = cert.extensions.get_extension_for_oid(ExtensionOID.SUBJECT_ALTERNATIVE_NAME)
        san = san_ext.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        san = []

    not_after = _not_after(cert)
    return {
        'subject': {
            'common_name': _name_attr(cert.subject, NameOID.COMMON_NAME),
            'organization': _name_attr(cert.subject, NameOID.ORGANIZATION_NAME),
        },
        'issuer': {
            'common_name': _name_attr(cert.issuer, NameOID.COMMON_NAME),
            'organization': _name_attr(cert.issuer, NameOID.ORGANIZATION_NAME),
        },
        'serial_number': format(cert.serial_number, 'X'),
        'version': cert.version.name,
        'valid_from': _not_before(cert).strftime('%Y-%m-%d %H:%M:%S'),
        'valid_to': not_after.strftime('%Y-%m-%d %H:%M:%S'),
        'san': san,
        'signature_algorithm': cert.signature_hash_algorithm.name if cert.signature_hash_algorithm else None,
        'self_signed': cert.issuer == cert.subject,
        '_not_after': not_after,
    }


class SSLCollector(Collector):
    """Handshake with ``domain:443`` and report the certificate."""

    category = "ssl"
    cache_name = "ssl"
    ttl = 86400

    def __init__(self, timeout: float = 8.0, port: int = 443):
        self.timeout = timeout
        self.port = port

    def _handshake(self, domain: str, context: ssl.SSLContext) -> Tuple[bytes, Optional[str], Optional[str]]:
        with socket.create_connection((domain, self.port), timeout=self.timeout) as sock:
            with context.wrap_socket(sock, server_hostname=domain) as tls:
                cipher = tls.cipher()
                return tls.getpeercert(binary_form=True), tls.version(), cipher[0] if cipher else None

    def collect(self, domain: str) -> Dict[str, Any]:
        verify_error = None
        try:
            der, protocol, cipher = self._handshake(domain, ssl.create_default_context())
            valid = True
        except ssl.SSLCertVerificationError as e:
            verify_error = e.verify_message or str(e)
            valid = False
            try:
                der, protocol, cipher = self._handshake(domain, ssl._create_unverified_context())
            except (OSError, ssl.SSLError) as e2:
                raise self.fail(f"TLS handshake with {domain} failed: {e2}") from e2
        except (OSError, ssl.SSLError) as e:
            # No TLS at all - report as an invalid certificate rather than a collector error
            logger.info(f"No TLS on {domain}:{self.port}: {e}")
            return {
                'valid': False,
                'error_message': f"TLS connection failed: {e}",
                'issuer': None,
                'expires': None,
                'days_remaining': None,
                'certificate': None,
                'protocol': None,
                'cipher': None,
            }

        if not der:
            raise self.fail(f"{domain} presented no certificate")

        cert = describe_certificate(der)
        not_after = cert.pop('_not_after')
        days_remaining = (not_after - datetime.now(timezone.utc)).days
        if days_remaining < 0:
            valid = False

        issuer = cert['issuer']['organization'] or cert['issuer']['common_name']
        return {
            'valid': valid,
            'error_message': verify_error,
            'issuer': issuer,
            'expires': not_after.strftime('%Y-%m-%d'),
            'days_remaining': days_remaining,
            'expiring_soon': 0 <= days_remaining <= 30,
            'certificate': cert,
            'protocol': protocol,
            'cipher': cipher,
        }
