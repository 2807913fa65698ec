"""SQLite-backed persistence for bulk scan jobs and their tasks.

ARCHITECTURE:
- Single SQLite DB (state/bulk.db), WAL mode
- Tables: bulk_jobs, bulk_tasks (one row per domain, ordered by id)
- Every write is its own short transaction, so progress counters survive a
  crash between tasks
- Any sqlite3 failure surfaces as PersistenceError
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from domain_audit.util.errors import PersistenceError
from domain_audit.util.time import datetime_str
from domain_audit.util.types import BulkJob, BulkTask, JobStatus, TaskStatus

logger = logging.getLogger(__name__)


class BulkJobStore:
    """Persistent store for bulk jobs.

    Handles all disk I/O for the bulk runner: job rows, task rows, progress.
    """

    SCHEMA_VERSION = "1.0"

    def __init__(self, state_dir: Path, filename: str = "bulk.db"):
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.state_dir / filename
        self._init_db()
        logger.info(f"Bulk job store initialized: {self.db_path}")

    @contextmanager
    def _get_conn(self, timeout: int = 10):
        """Configured connection; sqlite errors become PersistenceError."""
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=timeout)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row

        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute(f"PRAGMA busy_timeout={timeout * 1000}")
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Database error: {e}") from e
        finally:
            conn.close()

    def _init_db(self):
        with self._get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bulk_jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    scan_type TEXT NOT NULL,
                    total_domains INTEGER NOT NULL,
                    completed_domains INTEGER NOT NULL DEFAULT 0,
                    failed_domains INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'pending',
                    max_concurrent INTEGER NOT NULL DEFAULT 5,
                    options TEXT,
                    created_at TEXT NOT NULL,
                    started_at TEXT,
                    completed_at TEXT,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_jobs_user ON bulk_jobs(user_id, status)")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS bulk_tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    job_id INTEGER NOT NULL,
                    domain TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    results TEXT,
                    error_message TEXT,
                    created_at TEXT NOT NULL,
                    started_at TEXT,
                    completed_at TEXT,
                    FOREIGN KEY (job_id) REFERENCES bulk_jobs(id)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_job ON bulk_tasks(job_id, status)")
            conn.commit()

    # ----- jobs -----

    def create_job(self, user_id: int, scan_type: str, domains: List[str],
                   max_concurrent: int = 5, options: Optional[Dict[str, Any]] = None) -> int:
        """Insert a pending job and one pending task per domain (single transaction)."""
        now = datetime_str()
        with self._get_conn() as conn:
            cursor = conn.execute("""
                INSERT INTO bulk_jobs (user_id, scan_type, total_domains, status, max_concurrent,
                                       options, created_at, updated_at)
                VALUES (?, ?, ?, 'pending', ?, ?, ?, ?)
            """, (user_id, scan_type, len(domains), max_concurrent, json.dumps(options or {}), now, now))
            job_id = cursor.lastrowid
            conn.executemany("""
                INSERT INTO bulk_tasks (job_id, domain, status, created_at)
                VALUES (?, ?, 'pending', ?)
            """, [(job_id, domain, now) for domain in domains])
            conn.commit()
        logger.debug(f"Created bulk job {job_id} with {len(domains)} tasks")
        return job_id

    def get_job(self, job_id: int, user_id: Optional[int] = None) -> Optional[BulkJob]:
        """Job by id, optionally restricted to its owner."""
        query = "SELECT * FROM bulk_jobs WHERE id = ?"
        params: list = [job_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        with self._get_conn() as conn:
            row = conn.execute(query, params).fetchone()
        return BulkJob.from_row(row) if row else None

    def list_jobs(self, user_id: int, limit: int = 50) -> List[BulkJob]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM bulk_jobs WHERE user_id = ? ORDER BY id DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [BulkJob.from_row(row) for row in rows]

    def set_job_status(self, job_id: int, status: JobStatus) -> None:
        """Move the job to ``status``, stamping started_at / completed_at."""
        now = datetime_str()
        with self._get_conn() as conn:
            if status == JobStatus.PROCESSING:
                conn.execute("""
                    UPDATE bulk_jobs SET status = ?, started_at = COALESCE(started_at, ?), updated_at = ?
                    WHERE id = ?
                """, (status.value, now, now, job_id))
            elif status == JobStatus.COMPLETED:
                conn.execute("""
                    UPDATE bulk_jobs SET status = ?, completed_at = ?, updated_at = ?
                    WHERE id = ?
                """, (status.value, now, now, job_id))
            else:
                conn.execute(
                    "UPDATE bulk_jobs SET status = ?, updated_at = ? WHERE id = ?",
                    (status.value, now, job_id),
                )
            conn.commit()

    def update_progress(self, job_id: int, completed: int, failed: int) -> None:
        with self._get_conn() as conn:
            conn.execute("""
                UPDATE bulk_jobs SET completed_domains = ?, failed_domains = ?, updated_at = ?
                WHERE id = ?
            """, (completed, failed, datetime_str(), job_id))
            conn.commit()

    def cancel_job(self, job_id: int, user_id: int) -> bool:
        """Cancel a pending/processing job. Returns False if nothing changed."""
        with self._get_conn() as conn:
            cursor = conn.execute("""
                UPDATE bulk_jobs SET status = 'cancelled', updated_at = ?
                WHERE id = ? AND user_id = ? AND status IN ('pending', 'processing')
            """, (datetime_str(), job_id, user_id))
            conn.commit()
            return cursor.rowcount > 0

    # ----- tasks -----

    def list_tasks(self, job_id: int, status: Optional[TaskStatus] = None) -> List[BulkTask]:
        """Tasks of a job in creation order."""
        query = "SELECT * FROM bulk_tasks WHERE job_id = ?"
        params: list = [job_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY id ASC"
        with self._get_conn() as conn:
            rows = conn.execute(query, params).fetchall()
        return [BulkTask.from_row(row) for row in rows]

    def task_counts(self, job_id: int) -> Dict[str, int]:
        """Number of tasks per status (every status present, 0 if none)."""
        counts = {status.value: 0 for status in TaskStatus}
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS cnt FROM bulk_tasks WHERE job_id = ? GROUP BY status",
                (job_id,),
            ).fetchall()
        for row in rows:
            counts[row['status']] = row['cnt']
        return counts

    def start_task(self, task_id: int) -> None:
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE bulk_tasks SET status = 'processing', started_at = ? WHERE id = ?",
                (datetime_str(), task_id),
            )
            conn.commit()

    def complete_task(self, task_id: int, results: Dict[str, Any]) -> None:
        try:
            payload = json.dumps(results, default=str)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Task {task_id} results are not serializable: {e}") from e
        with self._get_conn() as conn:
            conn.execute("""
                UPDATE bulk_tasks SET status = 'completed', results = ?, error_message = NULL,
                                      completed_at = ?
                WHERE id = ?
            """, (payload, datetime_str(), task_id))
            conn.commit()

    def fail_task(self, task_id: int, message: str) -> None:
        with self._get_conn() as conn:
            conn.execute("""
                UPDATE bulk_tasks SET status = 'failed', error_message = ?, completed_at = ?
                WHERE id = ?
            """, (message, datetime_str(), task_id))
            conn.commit()
