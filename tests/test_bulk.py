"""Tests for the bulk scan runner, its SQLite store and result export."""

import csv
import json

import pandas as pd
import pytest

from domain_audit.scanner.bulk import BulkScanManager
from domain_audit.scanner.orchestrator import CompleteScan
from domain_audit.scanner.output.exporter import ResultExporter
from domain_audit.state.bulk_store import BulkJobStore
from domain_audit.util.errors import AlreadyCompleted, NotFoundError, PersistenceError, ValidationError
from domain_audit.util.types import JobStatus, TaskStatus

from conftest import fake_collectors

USER = 7


@pytest.fixture
def store(tmp_path):
    return BulkJobStore(tmp_path / 'state')


@pytest.fixture
def manager(store, scanner, tmp_path):
    return BulkScanManager(store, scanner, exporter=ResultExporter(tmp_path / 'out'))


class TestCreateBulkScan:

    def test_empty_list(self, manager):
        with pytest.raises(ValidationError, match='No domains provided'):
            manager.create_bulk_scan(USER, [])

    def test_batch_limit(self, manager):
        domains = [f"site{i}.com" for i in range(101)]
        with pytest.raises(ValidationError, match='Maximum 100 domains per batch'):
            manager.create_bulk_scan(USER, domains)

    def test_batch_limit_counts_raw_entries(self, manager):
        # 100 entries is fine even when some are junk
        domains = [f"site{i}.com" for i in range(99)] + ['not a domain']
        job_id = manager.create_bulk_scan(USER, domains)
        assert manager.store.get_job(job_id).total_domains == 99

    def test_all_invalid(self, manager):
        with pytest.raises(ValidationError, match='No valid domains after filtering'):
            manager.create_bulk_scan(USER, ['nope', '', 'also nope'])

    def test_invalid_scan_type(self, manager):
        with pytest.raises(ValidationError, match='Invalid scan type: portscan'):
            manager.create_bulk_scan(USER, ['example.com'], scan_type='portscan')

    def test_invalid_domains_are_dropped(self, manager, store):
        job_id = manager.create_bulk_scan(USER, ['a.com', 'not valid', 'HTTPS://B.com/path'], 'dns',
                                          options={'notify': False})

        job = store.get_job(job_id)
        assert job.total_domains == 2
        assert job.status == JobStatus.PENDING
        assert job.scan_type == 'dns'
        assert job.options == {'notify': False}
        assert [t.domain for t in store.list_tasks(job_id)] == ['a.com', 'b.com']
        assert all(t.status == TaskStatus.PENDING for t in store.list_tasks(job_id))


class TestProcessBulkScan:

    def test_complete_scans(self, manager, store):
        job_id = manager.create_bulk_scan(USER, ['a.com', 'b.com', 'c.com'])
        seen = []

        summary = manager.process_bulk_scan(job_id, progress=lambda task, status: seen.append(task.domain))

        assert summary['completed'] == 3
        assert summary['failed'] == 0
        assert seen == ['a.com', 'b.com', 'c.com']

        job = store.get_job(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.started_at is not None
        assert job.completed_at is not None
        assert job.completed_domains + job.failed_domains == job.total_domains

        task = store.list_tasks(job_id)[0]
        assert task.results['overall_score']['grade'] == 'A+'
        assert task.error_message is None

    def test_already_completed(self, manager):
        job_id = manager.create_bulk_scan(USER, ['a.com'])
        manager.process_bulk_scan(job_id)

        with pytest.raises(AlreadyCompleted):
            manager.process_bulk_scan(job_id)

    def test_unknown_job(self, manager):
        with pytest.raises(NotFoundError):
            manager.process_bulk_scan(999)

    def test_single_category_failures(self, store, tmp_path):
        scanner = CompleteScan(fake_collectors(failing=('dns',)))
        manager = BulkScanManager(store, scanner, exporter=ResultExporter(tmp_path / 'out'))
        job_id = manager.create_bulk_scan(USER, ['a.com', 'b.com'], 'dns')

        summary = manager.process_bulk_scan(job_id)

        assert summary['failed'] == 2
        tasks = store.list_tasks(job_id)
        assert all(t.status == TaskStatus.FAILED for t in tasks)
        assert tasks[0].error_message == 'Connection timed out'
        assert store.get_job(job_id).status == JobStatus.COMPLETED

    def test_single_category_success(self, manager, store):
        job_id = manager.create_bulk_scan(USER, ['a.com'], 'ssl')
        manager.process_bulk_scan(job_id)
        assert store.list_tasks(job_id)[0].results['valid'] is True

    def test_persistence_failure_stays_on_its_task(self, manager, store, monkeypatch):
        job_id = manager.create_bulk_scan(USER, ['a.com', 'b.com', 'c.com'])
        original = store.complete_task

        def flaky(task_id, results):
            if results.get('domain') == 'b.com':
                raise PersistenceError('disk full')
            return original(task_id, results)

        monkeypatch.setattr(store, 'complete_task', flaky)

        summary = manager.process_bulk_scan(job_id)

        assert summary['completed'] == 2
        assert summary['failed'] == 1
        statuses = {t.domain: t.status for t in store.list_tasks(job_id)}
        assert statuses == {'a.com': TaskStatus.COMPLETED, 'b.com': TaskStatus.FAILED,
                            'c.com': TaskStatus.COMPLETED}
        assert store.list_tasks(job_id, TaskStatus.FAILED)[0].error_message == 'disk full'

    def test_interrupted_tasks_are_resumed(self, manager, store):
        job_id = manager.create_bulk_scan(USER, ['a.com', 'b.com'])
        first = store.list_tasks(job_id)[0]
        store.start_task(first.id)
        store.set_job_status(job_id, JobStatus.PROCESSING)

        summary = manager.process_bulk_scan(job_id)

        assert summary['completed'] == 2
        assert store.task_counts(job_id)['processing'] == 0


class TestCancel:

    def test_cancel_pending_job(self, manager, store):
        job_id = manager.create_bulk_scan(USER, ['a.com', 'b.com'])

        assert manager.cancel_job(job_id, user_id=USER + 1) is False
        assert manager.cancel_job(job_id, user_id=USER) is True
        assert manager.cancel_job(job_id, user_id=USER) is False

        summary = manager.process_bulk_scan(job_id)
        assert summary['results'] == []
        assert store.get_job(job_id).status == JobStatus.CANCELLED
        assert store.task_counts(job_id)['pending'] == 2

    def test_cancel_completed_job_is_noop(self, manager, store):
        job_id = manager.create_bulk_scan(USER, ['a.com'])
        manager.process_bulk_scan(job_id)

        assert manager.cancel_job(job_id, USER) is False
        assert store.get_job(job_id).status == JobStatus.COMPLETED

    def test_cancel_while_running(self, manager, store):
        job_id = manager.create_bulk_scan(USER, ['a.com', 'b.com', 'c.com'])

        def cancel_after_first(task, status):
            manager.cancel_job(job_id, USER)

        summary = manager.process_bulk_scan(job_id, progress=cancel_after_first)

        assert summary['cancelled'] is True
        assert summary['completed'] == 1
        assert store.get_job(job_id).status == JobStatus.CANCELLED
        assert store.task_counts(job_id) == {'pending': 2, 'processing': 0, 'completed': 1, 'failed': 0}


class TestStatusAndResults:

    def test_status_progress(self, manager):
        job_id = manager.create_bulk_scan(USER, ['a.com', 'b.com'])

        status = manager.get_job_status(job_id, USER)
        assert status['progress'] == 0
        assert status['stats']['total'] == 2

        manager.process_bulk_scan(job_id)
        status = manager.get_job_status(job_id, USER)
        assert status['progress'] == 100.0
        assert status['stats']['completed'] == 2
        assert status['job']['status'] == 'completed'

    def test_status_checks_owner(self, manager):
        job_id = manager.create_bulk_scan(USER, ['a.com'])
        with pytest.raises(NotFoundError):
            manager.get_job_status(job_id, user_id=USER + 1)

    def test_results(self, manager):
        job_id = manager.create_bulk_scan(USER, ['a.com', 'b.com'])
        manager.process_bulk_scan(job_id)

        data = manager.get_job_results(job_id, USER)

        assert data['job']['id'] == job_id
        assert [t['domain'] for t in data['tasks']] == ['a.com', 'b.com']
        assert data['tasks'][0]['status'] == 'completed'

    def test_list_jobs(self, manager, store):
        first = manager.create_bulk_scan(USER, ['a.com'])
        second = manager.create_bulk_scan(USER, ['b.com'])
        manager.create_bulk_scan(USER + 1, ['c.com'])

        assert [j.id for j in store.list_jobs(USER)] == [second, first]


class TestExport:

    @pytest.fixture
    def job_id(self, manager):
        job_id = manager.create_bulk_scan(USER, ['a.com', 'b.com'])
        manager.process_bulk_scan(job_id)
        return job_id

    def test_csv(self, manager, job_id):
        path = manager.export_results(job_id, USER, 'csv')

        assert path.name.startswith(f'bulk_scan_{job_id}_')
        with open(path, newline='') as f:
            rows = list(csv.DictReader(f))
        assert [r['Domain'] for r in rows] == ['a.com', 'b.com']
        assert rows[0]['Status'] == 'completed'
        assert rows[0]['Error Message'] == ''

    def test_json(self, manager, job_id):
        path = manager.export_results(job_id, USER, 'json')

        with open(path) as f:
            data = json.load(f)
        assert data['job']['id'] == job_id
        assert len(data['tasks']) == 2

    def test_xlsx(self, manager, job_id):
        path = manager.export_results(job_id, USER, 'xlsx')

        tasks = pd.read_excel(path, sheet_name='Tasks')
        assert list(tasks['Domain']) == ['a.com', 'b.com']
        assert list(tasks['Overall Score']) == [90.6, 90.6]
        summary = pd.read_excel(path, sheet_name='Job Summary')
        assert 'total_domains' in list(summary['Metric'])

    def test_invalid_format(self, manager, job_id):
        with pytest.raises(ValidationError):
            manager.export_results(job_id, USER, 'pdf')
