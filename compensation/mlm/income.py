# ==========================================================
# compensation/mlm/income.py
# Direct income (sponsor) + repurchase income (placement uplines)
# ==========================================================
from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from django.db import IntegrityError, transaction

from compensation.config import ConfigSnapshot
from compensation.mlm.periods import current_window
from compensation.mlm.tree_store import get_node, path_to_root
from compensation.models import IncomeTransaction, Member, money

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def _post_once(**fields) -> Optional[IncomeTransaction]:
    """Create unless the idempotency key already exists for the company."""
    try:
        with transaction.atomic():
            return IncomeTransaction.objects.create(**fields)
    except IntegrityError:
        logger.info("%s already posted, skipped", fields.get("idempotency_key"))
        return None


# -----------------------------
# Direct income
# -----------------------------
def direct_income_amount(config, bv: Decimal) -> Decimal:
    if config.direct_income_type == "fixed":
        return money(config.direct_income_value)
    return money(bv * config.direct_income_value / HUNDRED)


def post_direct_income(snapshot: ConfigSnapshot, member: Member, bv, event_id: str, now) -> list[IncomeTransaction]:
    """
    Sponsor earns on every registration / purchase of a direct referral.
    Delayed timing sets credit_after; the pending sweep credits it later.
    """
    config = snapshot.config
    if not config.direct_income_enabled or snapshot.income_paused or member.sponsor_id is None:
        return []

    amount = direct_income_amount(config, Decimal(bv))
    if amount <= 0:
        return []

    credit_after = None
    if config.direct_income_credit_timing == "delayed":
        credit_after = now + timedelta(hours=config.direct_income_delay_hours)

    sponsor = Member.objects.get(pk=member.sponsor_id)
    txn = _post_once(
        company_id=snapshot.company_id,
        member=sponsor,
        income_type=IncomeTransaction.DIRECT,
        amount=amount,
        gross_amount=amount,
        related_member=member,
        level=1,
        idempotency_key=f"{event_id}:direct",
        credit_after=credit_after,
        description=f"Direct income from {member.member_id}",
        created_at=now,
    )
    return [txn] if txn else []


# -----------------------------
# Repurchase income
# -----------------------------
def _earned_repurchase_in_month(upline: Member, snapshot: ConfigSnapshot, now) -> bool:
    start, end = current_window("monthly", now, snapshot.tz)
    return (
        IncomeTransaction.objects.filter(
            member=upline,
            income_type=IncomeTransaction.REPURCHASE,
            created_at__gte=start,
            created_at__lt=end,
        )
        .exclude(status=IncomeTransaction.CANCELLED)
        .exists()
    )


def post_repurchase_income(snapshot: ConfigSnapshot, member: Member, bv, event_id: str, now) -> list[IncomeTransaction]:
    """
    RULES:
    1️⃣ purchase BV must reach repurchase_min_bv
    2️⃣ uplines at the configured placement levels earn bv × percentage
    3️⃣ monthly qualification: one repurchase income per upline per month
    """
    config = snapshot.config
    bv = Decimal(bv)
    if not config.repurchase_enabled or snapshot.income_paused:
        return []
    if bv <= 0 or bv < config.repurchase_min_bv or not config.repurchase_levels:
        return []

    amount = money(bv * config.repurchase_percentage / HUNDRED)
    if amount <= 0:
        return []

    wanted = set(config.repurchase_levels)
    uplines = path_to_root(get_node(snapshot.company_id, member.member_id))
    created = []

    for level, node in enumerate(uplines, start=1):
        if level > max(wanted):
            break
        if level not in wanted:
            continue

        upline = Member.objects.get(pk=node.member_id)
        if config.repurchase_monthly_qualification and _earned_repurchase_in_month(upline, snapshot, now):
            logger.info("Repurchase income for %s already paid this month", upline.member_id)
            continue

        txn = _post_once(
            company_id=snapshot.company_id,
            member=upline,
            income_type=IncomeTransaction.REPURCHASE,
            amount=amount,
            gross_amount=amount,
            related_member=member,
            level=level,
            idempotency_key=f"{event_id}:repurchase:{level}",
            description=f"Level {level} repurchase from {member.member_id}",
            created_at=now,
        )
        if txn:
            created.append(txn)

    return created
