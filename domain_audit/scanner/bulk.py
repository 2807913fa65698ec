"""Bulk scan runner - one scan type over a bounded list of domains.

Tasks are processed strictly one at a time in creation order. Job counters are
persisted after every task so an interrupted run leaves accurate progress.
A failure in one task (scan or persistence) is recorded on that task only.
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from domain_audit.scanner.orchestrator import CompleteScan
from domain_audit.scanner.output.exporter import ResultExporter
from domain_audit.state.bulk_store import BulkJobStore
from domain_audit.util.errors import (
    AlreadyCompleted,
    CollectorError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from domain_audit.util.log import get_logger
from domain_audit.util.types import BulkJob, BulkTask, JobStatus, ScanType, TaskStatus
from domain_audit.util.validation import clean_domain_list

logger = get_logger(__name__)

# Single-category scan types map onto envelope categories
CATEGORY_SCANS = {
    ScanType.DNS: 'dns',
    ScanType.WHOIS: 'whois',
    ScanType.SSL: 'ssl',
    ScanType.BLACKLIST: 'blacklist',
}

ProgressCallback = Callable[[BulkTask, TaskStatus], None]


class BulkScanManager:
    """Creates, runs and reports on bulk scan jobs."""

    def __init__(self, store: BulkJobStore, scanner: CompleteScan,
                 exporter: Optional[ResultExporter] = None,
                 max_domains_per_batch: int = 100, max_concurrent: int = 5):
        self.store = store
        self.scanner = scanner
        self.exporter = exporter or ResultExporter(Path("out"))
        self.max_domains_per_batch = max_domains_per_batch
        self.max_concurrent = max_concurrent

    def create_bulk_scan(self, user_id: int, domains: List[str], scan_type: str = 'complete',
                         options: Optional[Dict[str, Any]] = None) -> int:
        """Validate the domain list and store a pending job. Returns the job id.

        Invalid domains are dropped silently; the batch limit applies to the
        list as given, before cleaning.
        """
        if not domains:
            raise ValidationError('No domains provided')
        if len(domains) > self.max_domains_per_batch:
            raise ValidationError(f"Maximum {self.max_domains_per_batch} domains per batch")
        try:
            scan_type = ScanType(scan_type).value
        except ValueError:
            raise ValidationError(f"Invalid scan type: {scan_type}") from None

        cleaned = clean_domain_list(domains, dedupe=False)
        if not cleaned:
            raise ValidationError('No valid domains after filtering')

        job_id = self.store.create_job(user_id, scan_type, cleaned, self.max_concurrent, options)
        logger.info(f"Created bulk job {job_id}: {len(cleaned)} domains, scan type {scan_type}")
        return job_id

    def _require_job(self, job_id: int, user_id: Optional[int] = None) -> BulkJob:
        job = self.store.get_job(job_id, user_id)
        if job is None:
            raise NotFoundError(f"Bulk scan job {job_id} not found")
        return job

    def perform_scan(self, domain: str, scan_type: ScanType) -> Dict[str, Any]:
        """Run one task's scan. A failed single-category scan raises."""
        if scan_type == ScanType.COMPLETE:
            return self.scanner.scan(domain).to_dict()

        category = CATEGORY_SCANS[scan_type]
        outcome = self.scanner.run_category(domain, category)
        if not outcome.ok:
            raise CollectorError(category, outcome.error)
        return outcome.value

    def process_bulk_scan(self, job_id: int, progress: Optional[ProgressCallback] = None) -> Dict[str, Any]:
        """Run every unfinished task of the job, in creation order.

        Raises NotFoundError for an unknown job and AlreadyCompleted for a
        finished one. A cancelled job is left untouched; cancelling while
        running stops before the next task.
        """
        job = self._require_job(job_id)
        if job.status == JobStatus.COMPLETED:
            raise AlreadyCompleted(f"Bulk scan job {job_id} already completed")
        if job.status == JobStatus.CANCELLED:
            logger.warning(f"Bulk job {job_id} is cancelled - not processing")
            return {'job_id': job_id, 'total': 0, 'completed': job.completed_domains,
                    'failed': job.failed_domains, 'results': []}

        self.store.set_job_status(job_id, JobStatus.PROCESSING)
        scan_type = ScanType(job.scan_type)

        # tasks left in 'processing' by an interrupted run are picked up again
        tasks = [t for t in self.store.list_tasks(job_id) if not t.status.terminal]
        completed = job.completed_domains
        failed = job.failed_domains
        results = []
        logger.info(f"Processing bulk job {job_id}: {len(tasks)} tasks")

        for task in tasks:
            current = self.store.get_job(job_id)
            if current is not None and current.status == JobStatus.CANCELLED:
                logger.info(f"Bulk job {job_id} cancelled - stopping")
                return {'job_id': job_id, 'total': len(tasks), 'completed': completed,
                        'failed': failed, 'results': results, 'cancelled': True}

            status = self._run_task(task, scan_type)
            if status == TaskStatus.COMPLETED:
                completed += 1
                results.append({'domain': task.domain, 'status': 'success'})
            else:
                failed += 1
                results.append({'domain': task.domain, 'status': 'failed'})

            try:
                self.store.update_progress(job_id, completed, failed)
            except PersistenceError as e:
                logger.error(f"Could not record progress for job {job_id}: {e}")

            if progress is not None:
                progress(task, status)

        self.store.set_job_status(job_id, JobStatus.COMPLETED)
        logger.info(f"Bulk job {job_id} completed: {completed} ok, {failed} failed")
        return {'job_id': job_id, 'total': len(tasks), 'completed': completed,
                'failed': failed, 'results': results}

    def _run_task(self, task: BulkTask, scan_type: ScanType) -> TaskStatus:
        """Scan one domain and persist the outcome; never raises for task-level failures."""
        try:
            self.store.start_task(task.id)
            result = self.perform_scan(task.domain, scan_type)
            self.store.complete_task(task.id, result)
            return TaskStatus.COMPLETED
        except (CollectorError, PersistenceError, ValidationError) as e:
            message = str(e)
        except Exception as e:
            message = f"{type(e).__name__}: {e}"

        logger.warning(f"Bulk task {task.id} ({task.domain}) failed: {message}")
        try:
            self.store.fail_task(task.id, message)
        except PersistenceError as e:
            logger.error(f"Could not record failure of task {task.id}: {e}")
        return TaskStatus.FAILED

    def get_job_status(self, job_id: int, user_id: Optional[int] = None) -> Dict[str, Any]:
        job = self._require_job(job_id, user_id)
        counts = self.store.task_counts(job_id)
        total = sum(counts.values())
        done = counts['completed'] + counts['failed']
        return {
            'job': job.to_dict(),
            'stats': dict(counts, total=total),
            'progress': round(done / total * 100, 2) if total else 0,
        }

    def get_job_results(self, job_id: int, user_id: Optional[int] = None) -> Dict[str, Any]:
        job = self._require_job(job_id, user_id)
        return {
            'job': job.to_dict(),
            'tasks': [task.to_dict() for task in self.store.list_tasks(job_id)],
        }

    def cancel_job(self, job_id: int, user_id: int) -> bool:
        """Cancel a pending or processing job. Other states are left as they are."""
        cancelled = self.store.cancel_job(job_id, user_id)
        if cancelled:
            logger.info(f"Bulk job {job_id} cancelled by user {user_id}")
        return cancelled

    def export_results(self, job_id: int, user_id: int, fmt: str = 'csv') -> Path:
        return self.exporter.export_bulk(job_id, self.get_job_results(job_id, user_id), fmt)
