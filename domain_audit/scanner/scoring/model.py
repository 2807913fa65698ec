"""Overall scoring model.

Turns the category results of a scan into one weighted 0-100 score.
Only present categories count: a category whose collector failed is left out
of both the weighted sum and the divisor, so a missing category never drags
the score down. SSL and business are always present (they score 0 when empty).
"""

import logging
from typing import Dict, List, Optional, Tuple

from domain_audit.util.types import OverallScore, ScanResult

logger = logging.getLogger(__name__)

WEIGHTS: Dict[str, int] = {
    'seo': 25,
    'security': 20,
    'performance': 20,
    'technologies': 15,
    'ssl': 10,
    'business': 10,
}

# Inclusive lower bounds, checked top-down
GRADE_BANDS: List[Tuple[float, str]] = [
    (90, 'A+'),
    (85, 'A'),
    (80, 'B+'),
    (75, 'B'),
    (70, 'C+'),
    (65, 'C'),
    (60, 'D+'),
    (55, 'D'),
]

INTERPRETATIONS: List[Tuple[float, str]] = [
    (90, 'Excellent - This website follows best practices in almost all areas'),
    (80, 'Very Good - Strong performance with minor areas for improvement'),
    (70, 'Good - Solid foundation with some optimization opportunities'),
    (60, 'Fair - Several areas need attention for better performance'),
    (50, 'Poor - Significant improvements needed across multiple areas'),
]
CRITICAL_INTERPRETATION = 'Critical - Major issues require immediate attention'

# Technology count that earns a full technologies sub-score
FULL_TECH_STACK = 15


def _number(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class ScoringModel:
    """Computes the overall score of a ScanResult.

    Clear rules:
    - seo, security, performance pass through the collector's own 0-100 score
    - technologies = min(100, count / 15 * 100)
    - ssl = 100 if the certificate is valid, else 0
    - business = 30 (email) + 30 (social profile) + 40 (company name)
    """

    def __init__(self, weights: Optional[Dict[str, int]] = None):
        self.weights = dict(weights or WEIGHTS)

    def breakdown(self, result: ScanResult) -> Dict[str, float]:
        """Sub-score per present category (0-100)."""
        scores: Dict[str, float] = {}

        seo = _number(result.category('seo').get('seo_score', {}).get('score'))
        if seo is not None:
            scores['seo'] = seo

        security = _number(result.category('security_headers').get('score'))
        if security is not None:
            scores['security'] = security

        performance = _number(result.category('performance').get('score'))
        if performance is not None:
            scores['performance'] = performance

        tech_count = _number(result.category('technologies').get('summary', {}).get('total_technologies'))
        if tech_count is not None:
            scores['technologies'] = min(100.0, tech_count / FULL_TECH_STACK * 100)

        scores['ssl'] = 100.0 if result.category('ssl').get('valid') else 0.0

        business = result.category('business_intelligence')
        business_score = 0.0
        if business.get('contact_info', {}).get('emails'):
            business_score += 30
        if business.get('social_profiles'):
            business_score += 30
        if business.get('company_info', {}).get('name'):
            business_score += 40
        scores['business'] = business_score

        return scores

    def aggregate(self, breakdown: Dict[str, float]) -> float:
        """Weighted mean over the present categories, rounded to 2 decimals."""
        total_weight = sum(self.weights[c] for c in breakdown if c in self.weights)
        if total_weight == 0:
            return 0.0
        weighted = sum(breakdown[c] * self.weights[c] for c in breakdown if c in self.weights)
        return round(weighted / total_weight, 2)

    @staticmethod
    def grade(score: float) -> str:
        for threshold, grade in GRADE_BANDS:
            if score >= threshold:
                return grade
        return 'F'

    @staticmethod
    def interpret(score: float) -> str:
        for threshold, text in INTERPRETATIONS:
            if score >= threshold:
                return text
        return CRITICAL_INTERPRETATION

    def score(self, result: ScanResult) -> OverallScore:
        breakdown = self.breakdown(result)
        overall = self.aggregate(breakdown)
        logger.debug(f"{result.domain}: overall {overall} from {breakdown}")
        return OverallScore(
            score=overall,
            grade=self.grade(overall),
            breakdown={k: round(v, 2) for k, v in breakdown.items()},
            interpretation=self.interpret(overall),
        )
