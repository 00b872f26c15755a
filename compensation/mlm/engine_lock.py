# compensation/mlm/engine_lock.py

import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from compensation.models import JobLock

logger = logging.getLogger(__name__)

SKIPPED = object()


def run_with_lock(company_id, job_type, run_key, job_func):
    """
    ✅ Per-company job lock for periodic engine runs

    - One row per (company, job_type, run_key), e.g. ("acme", "flush_out", "2026-10-16")
    - completed → never re-run
    - processing → skipped unless the lock is stale (crashed worker)
    - failed / stale → taken over, execution_count goes up

    Returns job_func()'s result, or SKIPPED.
    """
    now = timezone.now()
    stale_after = timedelta(minutes=settings.COMPENSATION["LOCK_TIMEOUT_MINUTES"])

    with transaction.atomic():
        lock, _ = JobLock.objects.select_for_update().get_or_create(
            company_id=company_id, job_type=job_type, run_key=run_key
        )

        if lock.status == JobLock.COMPLETED and lock.finished_at:
            logger.info("⛔ %s already completed for %s/%s — skipped", job_type, company_id, run_key)
            return SKIPPED

        if lock.status == JobLock.PROCESSING and lock.started_at:
            if now - lock.started_at <= stale_after:
                logger.info("⛔ %s already running for %s/%s — skipped", job_type, company_id, run_key)
                return SKIPPED
            logger.warning("Stale %s lock for %s/%s, taking over", job_type, company_id, run_key)

        lock.status = JobLock.PROCESSING
        lock.started_at = now
        lock.finished_at = None
        lock.error = ""
        lock.execution_count += 1
        lock.save(update_fields=["status", "started_at", "finished_at", "error", "execution_count"])

    try:
        result = job_func()
    except Exception as exc:
        JobLock.objects.filter(pk=lock.pk).update(
            status=JobLock.FAILED, error=str(exc), finished_at=timezone.now()
        )
        raise

    JobLock.objects.filter(pk=lock.pk).update(status=JobLock.COMPLETED, finished_at=timezone.now())
    return result


# flush_out keys stay live for a whole monthly window
def cleanup_job_locks(older_than_hours=24 * 45):
    cutoff = timezone.now() - timedelta(hours=older_than_hours)
    deleted, _ = JobLock.objects.filter(status=JobLock.COMPLETED, finished_at__lt=cutoff).delete()
    logger.info("Cleaned up %s finished job locks", deleted)
    return deleted
