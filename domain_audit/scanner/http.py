"""HTTP page fetcher shared by the page-based collectors.

Security headers, SEO, technology, business intelligence and performance all
start from one GET of the site's home page. Certificates are not verified here:
the SSL collector reports validity, the page collectors only need the content.
"""

import logging
import threading
import time
import warnings
from dataclasses import dataclass, field
from typing import Dict, Optional

import requests

from domain_audit.util.errors import CollectorError

logger = logging.getLogger(__name__)

warnings.filterwarnings('ignore', message='Unverified HTTPS request')


@dataclass
class PageFetch:
    """Everything the page collectors need from one HTTP response."""
    url: str
    final_url: str
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)  # lowercased names
    html: str = ""
    ttfb_ms: float = 0.0
    total_ms: float = 0.0
    size_bytes: int = 0
    redirect_count: int = 0
    set_cookies: list = field(default_factory=list)

    @property
    def https(self) -> bool:
        return self.final_url.startswith('https://')

    @property
    def compressed(self) -> bool:
        return self.headers.get('content-encoding', '').lower() in ('gzip', 'br', 'deflate', 'zstd')

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)


class HttpFetcher:
    """Thin requests wrapper: one timeout, one user agent, one session per thread.

    Page collectors may run on the orchestrator's thread pool, so each worker
    thread gets its own requests.Session. A session passed in explicitly is
    shared by every thread.
    """

    def __init__(self, timeout: float = 15.0, user_agent: str = "", session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.user_agent = user_agent
        self._shared = self._configure(session) if session is not None else None
        self._local = threading.local()

    def _configure(self, session: requests.Session) -> requests.Session:
        if self.user_agent:
            session.headers['User-Agent'] = self.user_agent
        session.headers.setdefault('Accept', 'text/html,application/xhtml+xml,*/*;q=0.8')
        session.headers['Accept-Encoding'] = 'gzip, deflate'
        return session

    @property
    def session(self) -> requests.Session:
        if self._shared is not None:
            return self._shared
        session = getattr(self._local, 'session', None)
        if session is None:
            session = self._local.session = self._configure(requests.Session())
        return session

    def fetch(self, url: str, category: str, allow_error_status: bool = False) -> PageFetch:
        """GET ``url`` following redirects.

        Raises CollectorError on connection failure, and on 4xx/5xx unless
        ``allow_error_status`` is set (header analysis still works on a 403).
        """
        start = time.perf_counter()
        try:
            resp = self.session.get(url, timeout=self.timeout, allow_redirects=True, verify=False)
            content = resp.content
        except requests.RequestException as e:
            logger.warning(f"{category}: request to {url} failed: {e}")
            raise CollectorError(category, f"HTTP request failed for {url}: {e}") from e
        total_ms = (time.perf_counter() - start) * 1000

        if resp.status_code >= 400 and not allow_error_status:
            raise CollectorError(category, f"HTTP {resp.status_code} from {url}")

        cookies = []
        raw_headers = getattr(resp.raw, 'headers', None)
        if raw_headers is not None and hasattr(raw_headers, 'getlist'):
            cookies = raw_headers.getlist('Set-Cookie')
        elif 'set-cookie' in resp.headers:
            cookies = [resp.headers['set-cookie']]

        return PageFetch(
            url=url,
            final_url=resp.url,
            status_code=resp.status_code,
            headers={k.lower(): v for k, v in resp.headers.items()},
            html=resp.text if content else "",
            ttfb_ms=round(resp.elapsed.total_seconds() * 1000, 2),
            total_ms=round(total_ms, 2),
            size_bytes=len(content),
            redirect_count=len(resp.history),
            set_cookies=cookies,
        )

    def exists(self, url: str) -> bool:
        """True if ``url`` answers 200 (used for robots.txt / sitemap.xml)."""
        try:
            resp = self.session.get(url, timeout=self.timeout, allow_redirects=True, verify=False)
        except requests.RequestException as e:
            logger.debug(f"Existence check for {url} failed: {e}")
            return False
        return resp.status_code == 200
