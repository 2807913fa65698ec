"""Command line entry point.

  python -m domain_audit scan example.com
  python -m domain_audit compare example.com competitor.com --csv out/compare.csv
  python -m domain_audit bulk --file domains.txt --type dns --format xlsx
  python -m domain_audit cache --stats
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from domain_audit.scanner.bulk import BulkScanManager
from domain_audit.scanner.collectors import default_collectors
from domain_audit.scanner.competitive import CompetitiveAnalysis
from domain_audit.scanner.orchestrator import CompleteScan
from domain_audit.scanner.output.exporter import EXPORT_FORMATS, ResultExporter
from domain_audit.state.bulk_store import BulkJobStore
from domain_audit.util.cache import BaseCache, FileCache, build_cache
from domain_audit.util.config import Config
from domain_audit.util.errors import (
    AlreadyCompleted,
    AuditError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from domain_audit.util.io import read_text_lines
from domain_audit.util.log import setup_logging
from domain_audit.util.types import ScanType

logger = logging.getLogger(__name__)

EXIT_CODES = [
    (ValidationError, 2),
    (NotFoundError, 3),
    (AlreadyCompleted, 4),
    (PersistenceError, 5),
]


def build_scanner(config: Config, cache: Optional[BaseCache] = None) -> CompleteScan:
    """Wire the production collectors, cache and scoring into one orchestrator."""
    return CompleteScan(
        default_collectors(config),
        cache=cache if cache is not None else build_cache(config),
        workers=config.scan_workers,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='domain_audit',
        description='Domain audit: DNS, WHOIS, SSL, blacklist, security headers, SEO, '
                    'technologies, business intelligence and performance in one scored report.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--env-file', type=Path, default=None, help='Path to a .env file')
    sub = parser.add_subparsers(dest='command', required=True)

    scan = sub.add_parser('scan', help='Complete scan of one domain')
    scan.add_argument('domain')
    scan.add_argument('--no-export', action='store_true', help='Do not write the JSON/CSV report')

    compare = sub.add_parser('compare', help='Compare two or more domains')
    compare.add_argument('domains', nargs='+')
    compare.add_argument('--csv', type=Path, default=None, help='Write the metric table to this CSV file')

    bulk = sub.add_parser('bulk', help='Run one scan type over a list of domains')
    bulk.add_argument('domains', nargs='*')
    bulk.add_argument('--file', '-f', type=Path, help='Text file with one domain per line')
    bulk.add_argument('--type', '-t', dest='scan_type', default=ScanType.COMPLETE.value,
                      choices=[t.value for t in ScanType])
    bulk.add_argument('--user-id', type=int, default=1)
    bulk.add_argument('--format', dest='fmt', default='csv', choices=EXPORT_FORMATS)

    cache = sub.add_parser('cache', help='Inspect or clear the scan cache')
    cache.add_argument('--stats', action='store_true')
    cache.add_argument('--clear', metavar='PATTERN', nargs='?', const='*',
                       help='Clear entries matching a glob pattern (default: all)')
    cache.add_argument('--cleanup', action='store_true', help='Drop expired file cache entries')

    return parser


def cmd_scan(args, config: Config) -> int:
    result = build_scanner(config).scan(args.domain)
    overall = result.overall_score

    print(f"\n✓ Scan complete for {result.domain} ({result.execution_time:.0f} ms)")
    print(f"  Overall score: {overall.score} ({overall.grade})")
    print(f"  {overall.interpretation}")
    for category, value in overall.breakdown.items():
        print(f"    {category:<14} {value:>6}")
    failed = result.failed_categories()
    if failed:
        print(f"  Failed categories: {', '.join(failed)}")
    recs = result.recommendations
    print(f"  Recommendations: {len(recs.critical)} critical, {len(recs.important)} important, "
          f"{len(recs.suggested)} suggested")

    if not args.no_export:
        path = ResultExporter(config.out_dir).export_scan(result)
        print(f"  Report: {path}")
    return 0


def cmd_compare(args, config: Config) -> int:
    analysis = CompetitiveAnalysis(build_scanner(config))
    report = analysis.compare(args.domains)

    print(f"\n✓ Compared {len(report.domains)} domains")
    for domain, score in report.overall_scores.items():
        print(f"  {domain:<30} {score['score']:>6} ({score['grade']})")
    for category, domain in report.winner.items():
        print(f"  Winner {category:<11} {domain}")
    for domain, error in report.errors.items():
        print(f"  ✗ {domain}: {error}")

    if args.csv:
        analysis.export_csv(report, args.csv)
        print(f"  CSV: {args.csv}")
    return 0


def cmd_bulk(args, config: Config) -> int:
    domains: List[str] = list(args.domains)
    if args.file:
        domains.extend(read_text_lines(args.file))

    manager = BulkScanManager(
        BulkJobStore(config.state_dir),
        build_scanner(config),
        ResultExporter(config.out_dir),
        max_domains_per_batch=config.max_domains_per_batch,
        max_concurrent=config.max_concurrent,
    )
    job_id = manager.create_bulk_scan(args.user_id, domains, args.scan_type)
    total = manager.get_job_status(job_id)['stats']['total']

    with tqdm(total=total, desc=f"Bulk job {job_id}", unit="domain") as bar:
        summary = manager.process_bulk_scan(job_id, progress=lambda task, status: bar.update(1))

    path = manager.export_results(job_id, args.user_id, args.fmt)
    print(f"\n✓ Bulk job {job_id}: {summary['completed']} completed, {summary['failed']} failed")
    print(f"  Export: {path}")
    return 0


def cmd_cache(args, config: Config) -> int:
    cache = build_cache(config)
    if args.clear:
        print(f"Cleared {cache.clear(args.clear)} cache entries")
    if args.cleanup and isinstance(cache, FileCache):
        print(f"Removed {cache.cleanup()} expired entries")
    if args.stats or not (args.clear or args.cleanup):
        for key, value in cache.stats().items():
            print(f"  {key}: {value}")
    return 0


COMMANDS = {
    'scan': cmd_scan,
    'compare': cmd_compare,
    'bulk': cmd_bulk,
    'cache': cmd_cache,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = Config(args.env_file)
    setup_logging(log_file=config.log_file, level=config.log_level)

    try:
        return COMMANDS[args.command](args, config)
    except AuditError as e:
        print(f"\n✗ {e}")
        for error_type, code in EXIT_CODES:
            if isinstance(e, error_type):
                return code
        return 1
    except KeyboardInterrupt:
        print("\n\n✗ Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
