from datetime import timedelta
from unittest import mock

from django.test import TestCase
from django.utils import timezone

from compensation.exceptions import ConcurrencyConflict
from compensation.mlm.concurrency import guarded_update, retry_on_conflict
from compensation.mlm.engine_lock import SKIPPED, cleanup_job_locks, run_with_lock
from compensation.models import BinaryTreeNode, JobLock
from compensation.tests.helpers import join, make_company, node


class JobLockTest(TestCase):
    def setUp(self):
        make_company("acme")

    def test_runs_once_per_key(self):
        job = mock.Mock(return_value=7)

        self.assertEqual(run_with_lock("acme", "daily_matching", "2026-10-16", job), 7)
        self.assertIs(run_with_lock("acme", "daily_matching", "2026-10-16", job), SKIPPED)
        self.assertEqual(job.call_count, 1)

        lock = JobLock.objects.get(company_id="acme", job_type="daily_matching")
        self.assertEqual(lock.status, JobLock.COMPLETED)
        self.assertEqual(lock.execution_count, 1)

    def test_other_key_runs(self):
        job = mock.Mock(return_value=None)
        run_with_lock("acme", "daily_matching", "2026-10-16", job)
        run_with_lock("acme", "daily_matching", "2026-10-17", job)
        self.assertEqual(job.call_count, 2)

    def test_failed_run_can_be_retried(self):
        with self.assertRaises(RuntimeError):
            run_with_lock("acme", "flush_out", "2026-10-16", mock.Mock(side_effect=RuntimeError("db down")))

        lock = JobLock.objects.get(company_id="acme", job_type="flush_out")
        self.assertEqual(lock.status, JobLock.FAILED)
        self.assertEqual(lock.error, "db down")

        self.assertEqual(run_with_lock("acme", "flush_out", "2026-10-16", lambda: "ok"), "ok")
        lock.refresh_from_db()
        self.assertEqual((lock.status, lock.execution_count), (JobLock.COMPLETED, 2))

    def test_fresh_processing_lock_blocks(self):
        JobLock.objects.create(
            company_id="acme", job_type="flush_out", run_key="k",
            status=JobLock.PROCESSING, started_at=timezone.now(),
        )
        self.assertIs(run_with_lock("acme", "flush_out", "k", lambda: "ran"), SKIPPED)

    def test_stale_processing_lock_is_taken_over(self):
        JobLock.objects.create(
            company_id="acme", job_type="flush_out", run_key="k",
            status=JobLock.PROCESSING, started_at=timezone.now() - timedelta(minutes=30),
            execution_count=1,
        )
        self.assertEqual(run_with_lock("acme", "flush_out", "k", lambda: "ran"), "ran")
        self.assertEqual(JobLock.objects.get(run_key="k").execution_count, 2)

    def test_cleanup(self):
        JobLock.objects.create(
            company_id="acme", job_type="flush_out", run_key="old",
            status=JobLock.COMPLETED, finished_at=timezone.now() - timedelta(days=3),
        )
        self.assertEqual(cleanup_job_locks(older_than_hours=24), 1)


class OptimisticConcurrencyTest(TestCase):
    def setUp(self):
        make_company("acme")
        join("acme", "S")

    def test_stale_version_is_rejected(self):
        first, second = node("acme", "S"), node("acme", "S")
        guarded_update(BinaryTreeNode, first, own_volume=1, total_volume=1)

        with self.assertRaises(ConcurrencyConflict):
            guarded_update(BinaryTreeNode, second, own_volume=2, total_volume=2)

        self.assertEqual(node("acme", "S").own_volume, 1)

    def test_retry_until_success(self):
        calls = []

        @retry_on_conflict
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConcurrencyConflict("busy")
            return "done"

        self.assertEqual(flaky(), "done")
        self.assertEqual(len(calls), 3)

    def test_gives_up_after_three_attempts(self):
        calls = []

        @retry_on_conflict
        def always_busy():
            calls.append(1)
            raise ConcurrencyConflict("busy")

        with self.assertRaises(ConcurrencyConflict):
            always_busy()
        self.assertEqual(len(calls), 3)
