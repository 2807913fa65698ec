"""Configuration for the audit services.

Loads all settings from .env with sensible defaults.
Services receive a Config instance explicitly - nothing reads the environment
on its own.
"""

import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Configuration for scans, caching and bulk jobs.

    Single source of truth: every value comes from the environment (optionally
    seeded from a .env file) and falls back to a production-ready default.
    """

    DEFAULT_USER_AGENT = (
        'Mozilla/5.0 (compatible; DomainAudit/1.0; Web agency site analysis)'
    )

    def __init__(self, env_file: Optional[Path] = None):
        """Load configuration, reading ``env_file`` (or the repo .env) first."""
        if env_file is None:
            env_file = get_repo_root() / ".env"
        env_file = Path(env_file)
        if env_file.exists():
            load_dotenv(env_file)

        # ===== CACHE =====
        self.cache_enabled = _env_bool("CACHE_ENABLED", "true")
        self.cache_driver = os.getenv("CACHE_DRIVER", "file").lower()
        self.cache_dir = Path(os.getenv("CACHE_DIR", "cache"))
        self.redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")

        # ===== STATE / OUTPUT =====
        self.state_dir = Path(os.getenv("STATE_DIR", "state"))
        self.out_dir = Path(os.getenv("OUT_DIR", "out"))

        # ===== NETWORK SETTINGS =====
        self.http_timeout = float(os.getenv("HTTP_TIMEOUT", "15"))
        self.dns_timeout = float(os.getenv("DNS_TIMEOUT", "4.0"))
        self.tls_timeout = float(os.getenv("TLS_TIMEOUT", "8.0"))
        self.whois_timeout = float(os.getenv("WHOIS_TIMEOUT", "10"))
        self.user_agent = os.getenv("USER_AGENT", self.DEFAULT_USER_AGENT)

        # ===== BULK / PARALLELISM =====
        self.max_domains_per_batch = int(os.getenv("MAX_DOMAINS_PER_BATCH", "100"))
        self.max_concurrent = int(os.getenv("MAX_CONCURRENT", "5"))
        self.scan_workers = max(1, int(os.getenv("SCAN_WORKERS", "1")))

        # ===== LOGGING =====
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        log_file = os.getenv("LOG_FILE")
        self.log_file = Path(log_file) if log_file else None

    def to_dict(self) -> dict:
        """Convert config to dict for serialization."""
        return {
            'cache_enabled': self.cache_enabled,
            'cache_driver': self.cache_driver,
            'cache_dir': str(self.cache_dir),
            'state_dir': str(self.state_dir),
            'out_dir': str(self.out_dir),
            'http_timeout': self.http_timeout,
            'dns_timeout': self.dns_timeout,
            'tls_timeout': self.tls_timeout,
            'whois_timeout': self.whois_timeout,
            'max_domains_per_batch': self.max_domains_per_batch,
            'max_concurrent': self.max_concurrent,
            'scan_workers': self.scan_workers,
        }

    def __repr__(self) -> str:
        """Human-readable config summary."""
        return (
            f"Config(\n"
            f"  cache={self.cache_driver if self.cache_enabled else 'disabled'}\n"
            f"  state_dir={self.state_dir}\n"
            f"  out_dir={self.out_dir}\n"
            f"  max_domains_per_batch={self.max_domains_per_batch}\n"
            f"  scan_workers={self.scan_workers}\n"
            f")"
        )


def get_repo_root() -> Path:
    """Return the repository root directory."""
    return Path(__file__).parent.parent.parent
