"""CSV, JSON and Excel export of scan reports and bulk job results.

Output structure:
  out/
    scans/<domain>_<timestamp>.json              # full scan envelope
    scans/<domain>_<timestamp>_recommendations.csv
    bulk/bulk_scan_<job_id>_<timestamp>.<fmt>    # csv | json | xlsx
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from domain_audit.util.errors import PersistenceError, ValidationError
from domain_audit.util.io import ensure_dir, write_csv, write_json
from domain_audit.util.time import timestamp_str
from domain_audit.util.types import ScanResult

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ('csv', 'json', 'xlsx')
BULK_CSV_COLUMNS = ['Domain', 'Status', 'Completed At', 'Error Message']
RECOMMENDATION_COLUMNS = ['priority', 'category', 'issue', 'recommendation', 'impact', 'effort']


class ResultExporter:
    """Writes reports under ``out_dir``."""

    def __init__(self, out_dir: Path):
        self.out_dir = Path(out_dir)

    def export_scan(self, result: ScanResult) -> Path:
        """Full envelope as JSON plus a flat recommendations CSV next to it."""
        scan_dir = ensure_dir(self.out_dir / "scans")
        stem = f"{result.domain}_{timestamp_str()}"

        json_path = scan_dir / f"{stem}.json"
        write_json(json_path, result.to_dict())

        rows = []
        for priority in ('critical', 'important', 'suggested'):
            for rec in getattr(result.recommendations, priority):
                row = rec.to_dict()
                row['priority'] = priority
                rows.append(row)
        write_csv(scan_dir / f"{stem}_recommendations.csv", rows, fieldnames=RECOMMENDATION_COLUMNS)

        logger.info(f"Scan report for {result.domain} written to {json_path}")
        return json_path

    def export_bulk(self, job_id: int, data: Dict[str, Any], fmt: str = 'csv') -> Path:
        """Export ``{'job': ..., 'tasks': [...]}`` from the bulk runner."""
        if fmt not in EXPORT_FORMATS:
            raise ValidationError(f"Invalid export format: {fmt}")

        path = ensure_dir(self.out_dir / "bulk") / f"bulk_scan_{job_id}_{timestamp_str()}.{fmt}"
        if fmt == 'csv':
            write_csv(path, self._task_rows(data['tasks']), fieldnames=BULK_CSV_COLUMNS)
        elif fmt == 'json':
            write_json(path, data)
        else:
            self._write_excel(path, data)

        logger.info(f"Bulk job {job_id} exported to {path}")
        return path

    @staticmethod
    def _task_rows(tasks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [
            {
                'Domain': task['domain'],
                'Status': task['status'],
                'Completed At': task.get('completed_at') or '',
                'Error Message': task.get('error_message') or '',
            }
            for task in tasks
        ]

    def _write_excel(self, path: Path, data: Dict[str, Any]) -> None:
        """Tasks sheet plus a job summary sheet, via pandas + openpyxl."""
        tasks_df = pd.DataFrame(self._task_rows(data['tasks']), columns=BULK_CSV_COLUMNS)

        scores = []
        for task in data['tasks']:
            overall = (task.get('results') or {}).get('overall_score') or {}
            scores.append(overall.get('score'))
        tasks_df['Overall Score'] = scores

        job = data['job']
        summary_df = pd.DataFrame({
            'Metric': list(job.keys()),
            'Value': [str(v) if isinstance(v, (dict, list)) else v for v in job.values()],
        })

        try:
            with pd.ExcelWriter(path, engine='openpyxl') as writer:
                tasks_df.to_excel(writer, sheet_name='Tasks', index=False)
                summary_df.to_excel(writer, sheet_name='Job Summary', index=False)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to write Excel output {path}: {e}") from e
