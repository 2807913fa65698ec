"""Domain input cleaning and validation.

Every public entry point runs user-supplied domains through ``clean_domain``
before use: lowercase, trim, strip scheme and path, then a label-dot-tld check.
"""

import re
from typing import Iterable, List, Optional

DOMAIN_RE = re.compile(r'^([a-z0-9]+([\-a-z0-9]*[a-z0-9]+)?\.)+[a-z]{2,}$', re.IGNORECASE)

_SCHEME_RE = re.compile(r'^[a-z][a-z0-9+.\-]*://', re.IGNORECASE)


def normalize_domain(raw: str) -> str:
    """Lowercase, trim and strip scheme/path from a domain-ish string."""
    domain = (raw or "").strip().lower()
    domain = _SCHEME_RE.sub('', domain)
    domain = re.sub(r'[/?#].*$', '', domain)
    # drop credentials and port
    domain = domain.rsplit('@', 1)[-1].split(':', 1)[0]
    return domain.rstrip('.')


def is_valid_domain(domain: str) -> bool:
    """Check ``label(.label)*.tld`` with a tld of at least two letters."""
    if not domain or len(domain) > 253:
        return False
    return bool(DOMAIN_RE.match(domain))


def clean_domain(raw: str) -> Optional[str]:
    """Return the normalized domain, or None if it doesn't validate."""
    domain = normalize_domain(raw)
    if domain and is_valid_domain(domain):
        return domain
    return None


def clean_domain_list(domains: Iterable[str], dedupe: bool = True) -> List[str]:
    """Clean a list of domains, silently dropping invalid entries.

    Input order is preserved; duplicates are dropped when ``dedupe`` is set.
    """
    cleaned = []
    seen = set()
    for raw in domains:
        domain = clean_domain(raw)
        if domain is None:
            continue
        if dedupe and domain in seen:
            continue
        seen.add(domain)
        cleaned.append(domain)
    return cleaned
