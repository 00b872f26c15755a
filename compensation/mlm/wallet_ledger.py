# ==========================================================
# compensation/mlm/wallet_ledger.py
# Wallet Ledger: pending → credited exactly once per transaction id
# ==========================================================

import logging

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from compensation.models import IncomeTransaction, Wallet

logger = logging.getLogger(__name__)


def credit_transaction(company_id, transaction_id, now=None) -> bool:
    """
    Move one pending transaction to credited and add it to the wallet.

    The status flip is a conditional update on (id, status=pending), so a
    second call, a retry or a concurrent worker finds nothing to flip and
    leaves the balance alone. Balance and status change in one DB
    transaction.

    Returns True only for the call that credited.
    """
    now = now or timezone.now()

    with transaction.atomic():
        flipped = (
            IncomeTransaction.objects.filter(
                company_id=company_id, pk=transaction_id, status=IncomeTransaction.PENDING
            )
            .filter(Q(credit_after__isnull=True) | Q(credit_after__lte=now))
            .update(status=IncomeTransaction.CREDITED, credited_at=now)
        )
        if not flipped:
            logger.info("Transaction %s not creditable (already credited, cancelled or not due)", transaction_id)
            return False

        txn = IncomeTransaction.objects.get(pk=transaction_id)
        wallet, _ = Wallet.objects.get_or_create(
            member_id=txn.member_id, defaults={"company_id": company_id, "currency": txn.currency}
        )

        # frozen wallets still earn, into the locked balance
        balance_field = "locked_balance" if wallet.is_frozen else "available_balance"
        Wallet.objects.filter(pk=wallet.pk).update(
            **{balance_field: F(balance_field) + txn.amount},
            total_earned=F("total_earned") + txn.amount,
            updated_at=now,
        )

    logger.info("✅ Credited %s %s to %s", txn.amount, txn.income_type, txn.member_id)
    return True


def credit_due_transactions(company_id=None, now=None) -> int:
    """Credit every pending transaction whose credit_after has passed."""
    now = now or timezone.now()
    pending = IncomeTransaction.objects.filter(status=IncomeTransaction.PENDING).filter(
        Q(credit_after__isnull=True) | Q(credit_after__lte=now)
    )
    if company_id:
        pending = pending.filter(company_id=company_id)

    credited = 0
    for company, txn_id in pending.order_by("created_at").values_list("company_id", "pk"):
        if credit_transaction(company, txn_id, now=now):
            credited += 1

    logger.info("Pending sweep credited %s transactions", credited)
    return credited


def cancel_transaction(company_id, transaction_id, now=None) -> bool:
    """Only pending transactions can be cancelled; credited ones are final."""
    now = now or timezone.now()
    cancelled = IncomeTransaction.objects.filter(
        company_id=company_id, pk=transaction_id, status=IncomeTransaction.PENDING
    ).update(status=IncomeTransaction.CANCELLED, cancelled_at=now)
    if cancelled:
        logger.warning("Transaction %s cancelled", transaction_id)
    return bool(cancelled)
