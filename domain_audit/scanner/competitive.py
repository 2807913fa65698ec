"""Competitive analysis - compare complete scans of several domains.

Each domain is scanned independently by the orchestrator; one failed scan
is recorded under ``errors`` and never aborts the comparison. Winners are
picked with ties going to the first domain in input order.
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from domain_audit.scanner.orchestrator import CompleteScan
from domain_audit.util.errors import ValidationError
from domain_audit.util.io import write_csv
from domain_audit.util.log import get_logger
from domain_audit.util.time import datetime_str
from domain_audit.util.types import ComparisonReport, ScanResult
from domain_audit.util.validation import normalize_domain

logger = get_logger(__name__)

MAX_OPPORTUNITIES = 5


def _first_max(domains: List[str], values: Dict[str, float]) -> Optional[str]:
    """Domain with the highest value; the earliest one wins a tie."""
    candidates = [d for d in domains if d in values]
    if not candidates:
        return None
    return max(candidates, key=lambda d: values[d])


class CompetitiveAnalysis:
    """Side-by-side comparison of two or more domains."""

    def __init__(self, scanner: CompleteScan):
        self.scanner = scanner
        self.domains: List[str] = []

    def add_domain(self, domain: str) -> "CompetitiveAnalysis":
        """Queue a domain (lowercased, scheme and path stripped, deduplicated)."""
        domain = normalize_domain(domain)
        if domain and domain not in self.domains:
            self.domains.append(domain)
        return self

    def compare(self, domains: Optional[Iterable[str]] = None) -> ComparisonReport:
        """Scan every domain and build the comparison report.

        Domains queued with add_domain() are compared first, then ``domains``.
        The queue is emptied, so each call reports only its own domains.
        Raises ValidationError with fewer than two distinct domains.
        """
        for domain in domains or []:
            self.add_domain(domain)
        queued, self.domains = self.domains, []
        if len(queued) < 2:
            raise ValidationError('At least 2 domains required for competitive analysis')

        results: Dict[str, ScanResult] = {}
        errors: Dict[str, str] = {}
        for domain in queued:
            try:
                results[domain] = self.scanner.scan(domain)
            except Exception as e:
                logger.warning(f"Comparison scan of {domain} failed: {e}")
                errors[domain] = str(e)

        report = ComparisonReport(
            domains=queued,
            analysis_date=datetime_str(),
            errors=errors,
        )
        report.overall_scores = self.compare_overall_scores(results)
        report.seo = self.compare_seo(results)
        report.technologies = self.compare_technologies(results, queued)
        report.security = self.compare_security(results)
        report.performance = self.compare_performance(results)
        report.business = self.compare_business(results)
        report.winner = self.determine_winners(report)
        report.insights = self.generate_insights(report)
        return report

    def compare_overall_scores(self, results: Dict[str, ScanResult]) -> Dict[str, Dict[str, Any]]:
        scores = {}
        for domain, result in results.items():
            if result.overall_score is None:
                continue
            scores[domain] = {
                'score': result.overall_score.score,
                'grade': result.overall_score.grade,
                'breakdown': dict(result.overall_score.breakdown),
            }
        # sorted() is stable: equal scores keep input order
        ordered = sorted(scores.items(), key=lambda item: item[1]['score'], reverse=True)
        return dict(ordered)

    def compare_seo(self, results: Dict[str, ScanResult]) -> Dict[str, Dict[str, Any]]:
        comparison = {}
        for domain, result in results.items():
            seo = result.category('seo')
            if not seo:
                continue
            structured = seo.get('structured_data', {})
            comparison[domain] = {
                'score': seo.get('seo_score', {}).get('score', 0),
                'has_title': bool(seo.get('meta_tags', {}).get('title')),
                'has_description': bool(seo.get('meta_tags', {}).get('description')),
                'has_h1': bool(seo.get('headings', {}).get('h1')),
                'has_structured_data': bool(structured.get('has_json_ld')),
                'has_open_graph': bool(structured.get('has_open_graph')),
                'internal_links': seo.get('links', {}).get('internal', 0),
                'external_links': seo.get('links', {}).get('external', 0),
                'images_with_alt': seo.get('images', {}).get('with_alt', 0),
                'content_word_count': seo.get('content', {}).get('word_count', 0),
            }
        return comparison

    def compare_technologies(self, results: Dict[str, ScanResult],
                             domains: List[str]) -> Dict[str, Dict[str, Any]]:
        """Technology matrix: every detected technology with per-domain usage."""
        observed: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for domain in domains:
            result = results.get(domain)
            if result is None:
                continue
            for category, techs in result.category('technologies').items():
                if not isinstance(techs, list):
                    continue
                for tech in techs:
                    name = tech.get('name') if isinstance(tech, dict) else None
                    if not name:
                        continue
                    observed.setdefault(name, {}).setdefault(domain, {
                        'confidence': tech.get('confidence', 0),
                        'version': tech.get('version'),
                        'category': category,
                    })

        matrix = {}
        for name, usage in observed.items():
            first = next(iter(usage.values()))
            matrix[name] = {
                'category': first['category'],
                'usage': {
                    domain: {
                        'detected': domain in usage,
                        'confidence': usage[domain]['confidence'] if domain in usage else 0,
                        'version': usage[domain]['version'] if domain in usage else None,
                    }
                    for domain in domains
                },
            }
        return matrix

    def compare_security(self, results: Dict[str, ScanResult]) -> Dict[str, Dict[str, Any]]:
        comparison = {}
        for domain, result in results.items():
            ssl = result.category('ssl')
            headers = result.category('security_headers').get('headers', {})
            comparison[domain] = {
                'ssl_valid': bool(ssl.get('valid')),
                'ssl_issuer': ssl.get('issuer'),
                'ssl_expires': ssl.get('expires'),
                'is_blacklisted': bool(result.category('blacklist').get('is_blacklisted')),
                'security_headers': {
                    name: bool(info.get('present')) if isinstance(info, dict) else bool(info)
                    for name, info in headers.items()
                },
            }
        return comparison

    def compare_performance(self, results: Dict[str, ScanResult]) -> Dict[str, Dict[str, Any]]:
        comparison = {}
        for domain, result in results.items():
            performance = result.category('performance')
            comparison[domain] = {
                'execution_time': result.execution_time,
                'has_https': bool(result.category('ssl').get('valid')),
                'dns_records_count': result.category('dns').get('stats', {}).get('total_records', 0),
                'performance_score': performance.get('score'),
                'ttfb': performance.get('timing', {}).get('ttfb'),
            }
        return comparison

    def compare_business(self, results: Dict[str, ScanResult]) -> Dict[str, Dict[str, Any]]:
        comparison = {}
        for domain, result in results.items():
            bi = result.category('business_intelligence')
            if not bi:
                continue
            contact = bi.get('contact_info', {})
            comparison[domain] = {
                'has_email': bool(contact.get('emails')),
                'has_phone': bool(contact.get('phones')),
                'has_address': bool(contact.get('addresses')),
                'social_profiles_count': len(bi.get('social_profiles') or {}),
                'has_live_chat': bool(contact.get('live_chat')),
                'has_whatsapp': bool(contact.get('whatsapp')),
                'business_models': [m for m, active in bi.get('business_model', {}).items() if active],
            }
        return comparison

    def determine_winners(self, report: ComparisonReport) -> Dict[str, str]:
        winners = {}

        if report.overall_scores:
            winners['overall'] = next(iter(report.overall_scores))

        seo_winner = _first_max(report.domains, {d: s['score'] for d, s in report.seo.items()})
        if seo_winner:
            winners['seo'] = seo_winner

        security_scores = {}
        for domain, sec in report.security.items():
            score = 0
            if sec['ssl_valid']:
                score += 30
            if not sec['is_blacklisted']:
                score += 20
            score += 5 * sum(1 for present in sec['security_headers'].values() if present)
            security_scores[domain] = score
        security_winner = _first_max(report.domains, security_scores)
        if security_winner:
            winners['security'] = security_winner

        tech_counts = {
            domain: sum(1 for tech in report.technologies.values() if tech['usage'][domain]['detected'])
            for domain in report.domains if domain not in report.errors
        }
        tech_winner = _first_max(report.domains, tech_counts)
        if tech_winner:
            winners['technology'] = tech_winner

        return winners

    def generate_insights(self, report: ComparisonReport) -> Dict[str, Dict[str, List[str]]]:
        insights = {'strengths': {}, 'weaknesses': {}, 'opportunities': {}, 'recommendations': {}}

        for domain in report.domains:
            strengths, weaknesses = [], []
            seo = report.seo.get(domain)
            if seo is not None:
                if seo['score'] >= 80:
                    strengths.append('Strong SEO optimization')
                elif seo['score'] < 50:
                    weaknesses.append('Poor SEO performance')
                if not seo['has_structured_data']:
                    weaknesses.append('Missing structured data')

            security = report.security.get(domain)
            if security is not None:
                if security['ssl_valid']:
                    strengths.append('Valid SSL certificate')
                else:
                    weaknesses.append('Invalid or missing SSL')
                if security['is_blacklisted']:
                    weaknesses.append('Listed on spam blacklists')

            insights['strengths'][domain] = strengths
            insights['weaknesses'][domain] = weaknesses

        for domain in report.domains:
            opportunities = []
            if domain in report.errors:
                insights['opportunities'][domain] = opportunities
                continue
            for name, tech in report.technologies.items():
                if tech['usage'][domain]['detected']:
                    continue
                user = next((c for c in report.domains if c != domain and tech['usage'][c]['detected']), None)
                if user:
                    opportunities.append(f"Consider adopting {name} (used by {user})")
                if len(opportunities) == MAX_OPPORTUNITIES:
                    break
            insights['opportunities'][domain] = opportunities

        for domain in report.domains:
            recommendations = []
            overall = report.overall_scores.get(domain)
            if overall is not None and overall['score'] < 70:
                recommendations.append('Focus on improving overall website quality')
            seo = report.seo.get(domain)
            if seo is not None and seo['score'] < 60:
                recommendations.append('Invest in SEO optimization')
            security = report.security.get(domain)
            if security is not None and not security['ssl_valid']:
                recommendations.append('URGENT: Install valid SSL certificate')
            insights['recommendations'][domain] = recommendations

        return insights

    def export_csv(self, report: ComparisonReport, path: Path) -> Path:
        """One row per metric, one column per domain ('N/A' where unknown)."""
        def row(metric: str, values: Dict[str, Any]) -> Dict[str, Any]:
            data = {'Metric': metric}
            for domain in report.domains:
                value = values.get(domain)
                data[domain] = 'N/A' if value is None else value
            return data

        tech_counts = {
            d: sum(1 for t in report.technologies.values() if t['usage'][d]['detected'])
            for d in report.domains if d not in report.errors
        }
        rows = [
            row('Overall Score', {d: s['score'] for d, s in report.overall_scores.items()}),
            row('Grade', {d: s['grade'] for d, s in report.overall_scores.items()}),
            row('SEO Score', {d: s['score'] for d, s in report.seo.items()}),
            row('SSL Valid', {d: s['ssl_valid'] for d, s in report.security.items()}),
            row('Blacklisted', {d: s['is_blacklisted'] for d, s in report.security.items()}),
            row('Security Headers Present', {
                d: sum(1 for p in s['security_headers'].values() if p) for d, s in report.security.items()
            }),
            row('Performance Score', {d: p['performance_score'] for d, p in report.performance.items()}),
            row('Technologies Detected', tech_counts),
            row('Social Profiles', {d: b['social_profiles_count'] for d, b in report.business.items()}),
        ]
        path = Path(path)
        write_csv(path, rows, fieldnames=['Metric'] + list(report.domains))
        logger.info(f"Comparison exported to {path}")
        return path
