"""Core data types and enums used across the auditor.

These types make scan results, scores and bulk job state explicit.
No magic strings floating around - every status and scan type has a defined meaning.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


CATEGORIES = (
    'dns',
    'whois',
    'ssl',
    'blacklist',
    'security_headers',
    'seo',
    'technologies',
    'business_intelligence',
    'performance',
)


def present(sub_result: Any) -> Dict[str, Any]:
    """Return a category result, or {} if it is missing or carries an error.

    Every consumer of the envelope goes through this so a failed collector
    reads as absent instead of leaking into scores or recommendations.
    """
    if not isinstance(sub_result, dict) or 'error' in sub_result:
        return {}
    return sub_result


class JobStatus(Enum):
    """Lifecycle of a bulk job: pending -> processing -> completed | cancelled."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskStatus(Enum):
    """Lifecycle of one domain inside a bulk job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class ScanType(Enum):
    """What a bulk job runs for each domain."""
    COMPLETE = "complete"
    DNS = "dns"
    WHOIS = "whois"
    SSL = "ssl"
    BLACKLIST = "blacklist"


class Bucket(Enum):
    """Recommendation priority tier."""
    CRITICAL = "critical"
    IMPORTANT = "important"
    SUGGESTED = "suggested"


@dataclass
class CollectorOutcome:
    """Either a collector's result mapping or the error that replaced it."""
    category: str
    value: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_field(self) -> Dict[str, Any]:
        """Shape stored in the envelope: the value itself, or {'error': msg}."""
        if self.ok:
            return self.value if self.value is not None else {}
        return {'error': self.error}


@dataclass
class OverallScore:
    """Weighted overall score derived from the category sub-scores."""
    score: float
    grade: str
    breakdown: Dict[str, float] = field(default_factory=dict)
    interpretation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'score': self.score,
            'grade': self.grade,
            'breakdown': dict(self.breakdown),
            'interpretation': self.interpretation,
        }


@dataclass
class Recommendation:
    """One actionable item for the site owner."""
    category: str
    issue: str
    recommendation: str
    impact: str
    effort: str

    def to_dict(self) -> Dict[str, str]:
        return {
            'category': self.category,
            'issue': self.issue,
            'recommendation': self.recommendation,
            'impact': self.impact,
            'effort': self.effort,
        }


@dataclass
class RecommendationSet:
    """Recommendations bucketed by priority."""
    critical: List[Recommendation] = field(default_factory=list)
    important: List[Recommendation] = field(default_factory=list)
    suggested: List[Recommendation] = field(default_factory=list)

    def add(self, bucket: Bucket, rec: Recommendation) -> None:
        getattr(self, bucket.value).append(rec)

    @property
    def total_recommendations(self) -> int:
        return len(self.critical) + len(self.important) + len(self.suggested)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'critical': [r.to_dict() for r in self.critical],
            'important': [r.to_dict() for r in self.important],
            'suggested': [r.to_dict() for r in self.suggested],
            'total_recommendations': self.total_recommendations,
        }


@dataclass
class ScanResult:
    """Unified per-domain envelope produced by a complete scan.

    Category fields hold the collector mapping or {'error': message}.
    """
    domain: str
    url: str
    scan_date: str
    scan_id: str
    dns: Dict[str, Any] = field(default_factory=dict)
    whois: Dict[str, Any] = field(default_factory=dict)
    ssl: Dict[str, Any] = field(default_factory=dict)
    blacklist: Dict[str, Any] = field(default_factory=dict)
    security_headers: Dict[str, Any] = field(default_factory=dict)
    seo: Dict[str, Any] = field(default_factory=dict)
    technologies: Dict[str, Any] = field(default_factory=dict)
    business_intelligence: Dict[str, Any] = field(default_factory=dict)
    performance: Dict[str, Any] = field(default_factory=dict)
    competitors: Dict[str, Any] = field(default_factory=dict)
    recommendations: RecommendationSet = field(default_factory=RecommendationSet)
    overall_score: Optional[OverallScore] = None
    execution_time: float = 0.0

    def category(self, name: str) -> Dict[str, Any]:
        """Usable result for one category ({} when absent or failed)."""
        return present(getattr(self, name, None))

    def failed_categories(self) -> List[str]:
        return [c for c in CATEGORIES if 'error' in (getattr(self, c) or {})]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        data = {
            'domain': self.domain,
            'url': self.url,
            'scan_date': self.scan_date,
            'scan_id': self.scan_id,
        }
        for name in CATEGORIES:
            data[name] = getattr(self, name)
        data['competitors'] = self.competitors
        data['recommendations'] = self.recommendations.to_dict()
        data['overall_score'] = self.overall_score.to_dict() if self.overall_score else None
        data['execution_time'] = self.execution_time
        return data


@dataclass
class BulkJob:
    """A batch of domains scanned with one scan type."""
    id: int
    user_id: int
    scan_type: str
    total_domains: int
    completed_domains: int = 0
    failed_domains: int = 0
    status: JobStatus = JobStatus.PENDING
    max_concurrent: int = 5
    options: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "BulkJob":
        return cls(
            id=row['id'],
            user_id=row['user_id'],
            scan_type=row['scan_type'],
            total_domains=row['total_domains'],
            completed_domains=row['completed_domains'],
            failed_domains=row['failed_domains'],
            status=JobStatus(row['status']),
            max_concurrent=row['max_concurrent'],
            options=json.loads(row['options']) if row['options'] else {},
            created_at=row['created_at'],
            started_at=row['started_at'],
            completed_at=row['completed_at'],
            updated_at=row['updated_at'],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'scan_type': self.scan_type,
            'total_domains': self.total_domains,
            'completed_domains': self.completed_domains,
            'failed_domains': self.failed_domains,
            'status': self.status.value,
            'max_concurrent': self.max_concurrent,
            'options': self.options,
            'created_at': self.created_at,
            'started_at': self.started_at,
            'completed_at': self.completed_at,
            'updated_at': self.updated_at,
        }


@dataclass
class BulkTask:
    """One domain inside a bulk job."""
    id: int
    job_id: int
    domain: str
    status: TaskStatus = TaskStatus.PENDING
    results: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "BulkTask":
        return cls(
            id=row['id'],
            job_id=row['job_id'],
            domain=row['domain'],
            status=TaskStatus(row['status']),
            results=json.loads(row['results']) if row['results'] else None,
            error_message=row['error_message'],
            created_at=row['created_at'],
            started_at=row['started_at'],
            completed_at=row['completed_at'],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'job_id': self.job_id,
            'domain': self.domain,
            'status': self.status.value,
            'results': self.results,
            'error_message': self.error_message,
            'created_at': self.created_at,
            'started_at': self.started_at,
            'completed_at': self.completed_at,
        }


@dataclass
class ComparisonReport:
    """Side-by-side comparison of two or more complete scans.

    Per-domain maps only hold domains whose scan (or category) succeeded;
    failed scans are listed in ``errors``.
    """
    domains: List[str]
    analysis_date: str
    overall_scores: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    seo: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    technologies: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    security: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    performance: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    business: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    winner: Dict[str, str] = field(default_factory=dict)
    insights: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'domains': list(self.domains),
            'analysis_date': self.analysis_date,
            'overall_scores': self.overall_scores,
            'seo': self.seo,
            'technologies': self.technologies,
            'security': self.security,
            'performance': self.performance,
            'business': self.business,
            'winner': self.winner,
            'insights': self.insights,
            'errors': self.errors,
        }
