# ==========================================================
# compensation/services.py
# Event pipeline:
#   placement → volume → matching → direct / repurchase / sponsor
#   → ranks → crediting
# ==========================================================
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from django.db import DatabaseError, transaction
from django.db.models import Q
from django.utils import timezone

from compensation.config import get_mlm_config
from compensation.exceptions import ConcurrencyConflict, InvariantViolation, PlacementError
from compensation.mlm.income import post_direct_income, post_repurchase_income
from compensation.mlm.matching import evaluate_matching
from compensation.mlm.placement import Placement, place
from compensation.mlm.ranks import evaluate_rank
from compensation.mlm.sponsor_matching import evaluate_sponsor_matching
from compensation.mlm.volume import apply_volume_delta, to_volume
from compensation.mlm.wallet_ledger import credit_transaction
from compensation.models import CompensationEvent, IncomeTransaction, Member

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    event_id: str
    status: str
    duplicate: bool = False
    placement: Optional[Placement] = None
    transactions: list = field(default_factory=list)
    credited: int = 0
    deferred: int = 0
    ranks: dict = field(default_factory=dict)


# -------------------------------------------------------------
#  EVENT ENTRY POINTS
# -------------------------------------------------------------
def process_registration(company_id, event_id, member_id, sponsor_id=None, bv=0,
                         requested_side=None, name="", now=None) -> PipelineResult:
    """
    New member joins under `sponsor_id` (None only for the company root).
    Re-sending the same event_id never pays twice.
    """
    bv = to_volume(bv)
    sponsor = None
    if sponsor_id:
        sponsor = Member.objects.filter(company_id=company_id, member_id=sponsor_id).first()
        if sponsor is None:
            raise PlacementError(PlacementError.UNKNOWN_SPONSOR, f"{sponsor_id} is not a member of {company_id}")

    member, created = Member.objects.get_or_create(
        company_id=company_id,
        member_id=member_id,
        defaults={"sponsor": sponsor, "name": name, "package_bv": bv},
    )
    if created:
        logger.info("Registered %s/%s (sponsor %s)", company_id, member_id, sponsor_id or "-")

    _record_event(
        company_id, event_id, CompensationEvent.REGISTRATION, member, bv,
        sponsor_member_id=sponsor_id or "", requested_side=requested_side or "",
    )
    return run_event(company_id, event_id, now=now)


def process_purchase(company_id, event_id, member_id, bv, now=None) -> PipelineResult:
    bv = to_volume(bv)
    member = Member.objects.get(company_id=company_id, member_id=member_id)
    _record_event(company_id, event_id, CompensationEvent.PURCHASE, member, bv)
    return run_event(company_id, event_id, now=now)


def _record_event(company_id, event_id, kind, member, bv, **extra) -> CompensationEvent:
    event, created = CompensationEvent.objects.get_or_create(
        company_id=company_id,
        event_id=event_id,
        defaults={"kind": kind, "member": member, "bv": bv, **extra},
    )
    if not created:
        logger.info("Event %s/%s already recorded (%s)", company_id, event_id, event.status)
    return event


# -------------------------------------------------------------
#  PIPELINE
# -------------------------------------------------------------
def _claim(company_id, event_id) -> Optional[CompensationEvent]:
    with transaction.atomic():
        event = (
            CompensationEvent.objects.select_for_update()
            .select_related("member")
            .get(company_id=company_id, event_id=event_id)
        )
        if event.status != CompensationEvent.RECEIVED:
            return None
        event.status = CompensationEvent.PROCESSING
        event.attempts += 1
        event.save(update_fields=["status", "attempts"])
    return event


def _release(event, error):
    """Back to received: nothing irreversible happened yet, a retry may run it."""
    CompensationEvent.objects.filter(pk=event.pk).update(status=CompensationEvent.RECEIVED, error=str(error))


def _fail(event, error):
    CompensationEvent.objects.filter(pk=event.pk).update(
        status=CompensationEvent.FAILED, error=str(error), processed_at=timezone.now()
    )


def run_event(company_id, event_id, now=None) -> PipelineResult:
    """
    Run one recorded event through the engine, at most once.

    1️⃣ placement (registration only), retried freely, idempotent
    2️⃣ volume delta up the placement chain, progress recorded per step so a
       conflict leaves the event retryable
    3️⃣ income: binary matching per touched ancestor, direct, repurchase,
       sponsor matching. A failure here does not undo the volume
    4️⃣ rank evaluation for everyone whose stats moved
    5️⃣ crediting of instant incomes; failures fall back to a Celery retry
    """
    event = _claim(company_id, event_id)
    if event is None:
        status = CompensationEvent.objects.values_list("status", flat=True).get(
            company_id=company_id, event_id=event_id
        )
        logger.info("⛔ Event %s/%s is %s — skipped", company_id, event_id, status)
        return PipelineResult(event_id=event_id, status=status, duplicate=True)

    now = now or timezone.now()
    snapshot = get_mlm_config(company_id)
    member = event.member
    result = PipelineResult(event_id=event_id, status=CompensationEvent.PROCESSING)

    # -----------------------------
    # 1️⃣ placement
    # -----------------------------
    if event.kind == CompensationEvent.REGISTRATION:
        try:
            result.placement = place(
                company_id,
                member.member_id,
                event.sponsor_member_id or None,
                requested_side=event.requested_side or None,
                snapshot=snapshot,
            )
        except (PlacementError, ConcurrencyConflict) as exc:
            _release(event, exc)
            raise

    # -----------------------------
    # 2️⃣ volume
    # -----------------------------
    touched = []
    if not event.volume_applied:
        count_delta = 1 if event.kind == CompensationEvent.REGISTRATION else 0

        def record_step(step):
            CompensationEvent.objects.filter(pk=event.pk).update(volume_progress=step)

        try:
            touched = apply_volume_delta(
                company_id, member.member_id, event.bv, count_delta=count_delta, now=now,
                snapshot=snapshot, resume_after=event.volume_progress, on_step=record_step,
            )
        except InvariantViolation as exc:
            logger.critical("Event %s/%s aborted: %s", company_id, event_id, exc)
            _fail(event, exc)
            raise
        except Exception as exc:
            # written steps are recorded, a retry resumes after them
            _release(event, exc)
            raise
        CompensationEvent.objects.filter(pk=event.pk).update(volume_applied=True)

    try:
        # -----------------------------
        # 3️⃣ income
        # -----------------------------
        for ancestor in touched:
            try:
                result.transactions += evaluate_matching(
                    company_id, ancestor.member.member_id, snapshot=snapshot, now=now
                )
            except ConcurrencyConflict:
                # the daily sweep matches this node later
                logger.warning("Matching deferred for %s after repeated conflicts", ancestor.member_id)

        result.transactions += post_direct_income(snapshot, member, event.bv, event_id, now)
        if event.kind == CompensationEvent.PURCHASE:
            result.transactions += post_repurchase_income(snapshot, member, event.bv, event_id, now)
        result.transactions += evaluate_sponsor_matching(
            company_id, member.member_id, event.bv, snapshot=snapshot, now=now, event_id=event_id
        )

        _touch_activity(event, member, now)

        # -----------------------------
        # 4️⃣ ranks (before crediting so rewards are credited too)
        # -----------------------------
        for candidate in _rank_candidates(member, touched):
            result.ranks[candidate.member_id] = evaluate_rank(company_id, candidate.member_id, snapshot=snapshot)

        # -----------------------------
        # 5️⃣ crediting
        # -----------------------------
        _credit_all(company_id, event, result, now)
    except InvariantViolation as exc:
        logger.critical("Event %s/%s aborted: %s", company_id, event_id, exc)
        _fail(event, exc)
        raise
    except Exception as exc:
        _release(event, exc)
        raise

    CompensationEvent.objects.filter(pk=event.pk).update(
        status=CompensationEvent.COMPLETED, error="", processed_at=timezone.now()
    )
    result.status = CompensationEvent.COMPLETED
    logger.info("✅ Event %s/%s done: %s transactions, %s credited",
                company_id, event_id, len(result.transactions), result.credited)
    return result


def _touch_activity(event, member, now):
    if event.kind == CompensationEvent.PURCHASE:
        Member.objects.filter(pk=member.pk).update(package_bv=event.bv, last_activity_at=now)
    elif member.sponsor_id:
        # a new direct registration keeps the sponsor active
        Member.objects.filter(pk=member.sponsor_id).update(last_activity_at=now)


def _rank_candidates(member, touched):
    seen = {}
    candidates = [member] + [node.member for node in touched]
    if member.sponsor_id:
        candidates.append(Member.objects.get(pk=member.sponsor_id))
    for candidate in candidates:
        seen.setdefault(candidate.pk, candidate)
    return list(seen.values())


def _credit_all(company_id, event, result, now):
    from compensation.tasks import credit_transaction_task

    # rank rewards are posted by evaluate_rank; pick them up by key
    reward_keys = [f"rank:{member_id}:{code}" for member_id, code in result.ranks.items() if code]
    pending = (
        IncomeTransaction.objects.filter(company_id=company_id, status=IncomeTransaction.PENDING)
        .filter(Q(pk__in=[txn.pk for txn in result.transactions]) | Q(idempotency_key__in=reward_keys))
        .filter(Q(credit_after__isnull=True) | Q(credit_after__lte=now))
        .order_by("created_at")
        .values_list("pk", flat=True)
    )

    for txn_id in pending:
        try:
            if credit_transaction(company_id, txn_id, now=now):
                result.credited += 1
        except DatabaseError:
            logger.exception("Crediting %s failed, handing over to Celery", txn_id)
            credit_transaction_task.delay(company_id, str(txn_id))
            result.deferred += 1
