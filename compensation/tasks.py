# compensation/tasks.py

import logging

from celery import shared_task

from compensation.exceptions import ConcurrencyConflict
from compensation.mlm.engine_lock import cleanup_job_locks
from compensation.mlm.matching import close_capping_period, run_matching_sweep
from compensation.mlm.ranks import evaluate_ranks_for_all_companies
from compensation.mlm.wallet_ledger import credit_due_transactions, credit_transaction
from compensation.models import Company
from compensation.services import run_event

logger = logging.getLogger(__name__)


def _companies_with_config():
    return Company.objects.filter(is_active=True, mlm_config__isnull=False).values_list("company_id", flat=True)


@shared_task(autoretry_for=(ConcurrencyConflict,), retry_backoff=True, max_retries=3)
def process_event_task(company_id, event_id):
    """Run a recorded registration / purchase event in the background."""
    result = run_event(company_id, event_id)
    return {"event_id": result.event_id, "status": result.status, "duplicate": result.duplicate}


@shared_task(autoretry_for=(ConcurrencyConflict,), retry_backoff=True, max_retries=3)
def credit_transaction_task(company_id, transaction_id):
    # the transaction id is the idempotency key, retries never double credit
    return credit_transaction(company_id, transaction_id)


@shared_task
def credit_due_transactions_task():
    return credit_due_transactions()


@shared_task
def run_matching_sweep_task():
    results = {}
    for company_id in _companies_with_config():
        summary = run_matching_sweep(company_id)
        results[company_id] = {
            key: (str(value) if key == "income" else value) for key, value in summary.items()
        }
    return results


@shared_task
def close_capping_periods_task():
    flushed = {}
    for company_id in _companies_with_config():
        flushed[company_id] = close_capping_period(company_id)
    logger.info("Capping periods closed: %s", flushed)
    return flushed


@shared_task
def evaluate_ranks_task():
    return evaluate_ranks_for_all_companies()


@shared_task
def cleanup_job_locks_task():
    return cleanup_job_locks()
