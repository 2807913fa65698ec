"""Complete scan orchestrator - one domain, nine categories, one envelope.

This is where all the pieces come together:
1. Run every category collector through the cache
2. Capture failures per category (a scan never raises on collector errors)
3. Derive competitor insights, recommendations and the overall score
"""

import concurrent.futures
import uuid
from typing import Dict, Optional

from domain_audit.scanner.collectors.base import Collector, run_collector
from domain_audit.scanner.insights import competitor_insights
from domain_audit.scanner.recommendation_engine import RecommendationEngine
from domain_audit.scanner.scoring.model import ScoringModel
from domain_audit.util.cache import BaseCache, NullCache
from domain_audit.util.errors import ValidationError
from domain_audit.util.log import get_logger
from domain_audit.util.time import datetime_str, duration_ms, now_utc
from domain_audit.util.types import CATEGORIES, CollectorOutcome, ScanResult
from domain_audit.util.validation import clean_domain

logger = get_logger(__name__)

CACHE_PREFIX = "complete_scan"


class CompleteScan:
    """Orchestrates the complete audit of a single domain.

    Collaborators are injected: ``collectors`` maps category -> Collector,
    ``cache`` memoises each category with the collector's TTL.
    With ``workers`` > 1 the categories run on a thread pool; they write
    disjoint envelope fields so ordering does not matter.
    """

    def __init__(self, collectors: Dict[str, Collector], cache: Optional[BaseCache] = None,
                 scoring: Optional[ScoringModel] = None,
                 recommender: Optional[RecommendationEngine] = None,
                 workers: int = 1):
        self.collectors = collectors
        self.cache = cache or NullCache()
        self.scoring = scoring or ScoringModel()
        self.recommender = recommender or RecommendationEngine()
        self.workers = max(1, workers)

    @staticmethod
    def cache_key(cache_name: str, domain: str) -> str:
        return f"{CACHE_PREFIX}:{cache_name}:{domain}"

    def run_category(self, domain: str, category: str) -> CollectorOutcome:
        """Resolve one category for an already-clean domain, via the cache.

        Failed collections are not cached; the next scan retries them.
        """
        collector = self.collectors.get(category)
        if collector is None:
            return CollectorOutcome(category, error=f"No collector configured for {category}")

        key = self.cache_key(collector.cache_name or category, domain)
        return run_collector(
            category,
            lambda: self.cache.remember(key, lambda: collector.collect(domain), collector.ttl),
        )

    def _collect_all(self, domain: str) -> Dict[str, CollectorOutcome]:
        if self.workers == 1:
            return {category: self.run_category(domain, category) for category in CATEGORIES}

        outcomes = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = {
                executor.submit(self.run_category, domain, category): category
                for category in CATEGORIES
            }
            for future in concurrent.futures.as_completed(futures):
                outcomes[futures[future]] = future.result()
        return outcomes

    def scan(self, domain: str) -> ScanResult:
        """Run the complete audit for ``domain``.

        Raises ValidationError for an invalid domain; collector failures end
        up as ``{'error': message}`` in the matching field.
        """
        clean = clean_domain(domain)
        if clean is None:
            raise ValidationError(f"Invalid domain: {domain!r}")

        start = now_utc()
        logger.info(f"Starting complete scan for {clean}")

        result = ScanResult(
            domain=clean,
            url=f"https://{clean}",
            scan_date=datetime_str(start),
            scan_id=uuid.uuid4().hex,
        )

        for category, outcome in self._collect_all(clean).items():
            setattr(result, category, outcome.as_field())

        result.competitors = competitor_insights(result)
        result.recommendations = self.recommender.recommend(result)
        result.overall_score = self.scoring.score(result)
        result.execution_time = round(duration_ms(start), 2)

        failed = result.failed_categories()
        if failed:
            logger.warning(f"{clean}: {len(failed)} categories failed: {', '.join(failed)}")
        logger.info(
            f"Finished {clean} in {result.execution_time}ms - "
            f"score {result.overall_score.score} ({result.overall_score.grade})"
        )
        return result
