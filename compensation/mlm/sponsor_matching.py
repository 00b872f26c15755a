# ==========================================================
# compensation/mlm/sponsor_matching.py
# Sponsor Matching Engine: walk the SPONSOR chain (not placement)
# ==========================================================
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from compensation.config import ConfigSnapshot, get_mlm_config
from compensation.exceptions import InvariantViolation
from compensation.mlm.qualification import is_inactive, meets, member_stats
from compensation.mlm.tree_store import get_member
from compensation.models import IncomeTransaction, Member, money

logger = logging.getLogger(__name__)


def iter_sponsors(member: Member, max_levels: int):
    """Yield (level, sponsor) for up to `max_levels` sponsors above `member`."""
    seen = {member.pk}
    current = member
    for level in range(1, max_levels + 1):
        if current.sponsor_id is None:
            return
        if current.sponsor_id in seen:
            raise InvariantViolation(f"cycle in sponsor chain at member {current.sponsor_id}")
        seen.add(current.sponsor_id)

        sponsor = Member.objects.get(pk=current.sponsor_id)
        if sponsor.company_id != member.company_id:
            raise InvariantViolation(f"sponsor {sponsor.pk} crosses tenant boundary")
        yield level, sponsor
        current = sponsor


def evaluate_sponsor_matching(
    company_id: str,
    member_id: str,
    triggering_volume,
    snapshot: Optional[ConfigSnapshot] = None,
    now=None,
    event_id: Optional[str] = None,
) -> list[IncomeTransaction]:
    """
    RULES:
    1️⃣ level n = n-th sponsor above the member
    2️⃣ sponsor must meet every threshold set on level n, else that level is skipped
    3️⃣ auto_disable_if_inactive: an inactive sponsor ends the walk
    4️⃣ amount = triggering_volume × level percentage
    5️⃣ with an event_id, one transaction per (event, level)
    """
    if snapshot is None:
        snapshot = get_mlm_config(company_id)
    config = snapshot.config

    if not config.sponsor_matching_enabled or not snapshot.sponsor_levels:
        return []
    if snapshot.income_paused:
        logger.info("Income paused for %s, sponsor matching skipped", company_id)
        return []

    triggering_volume = Decimal(triggering_volume)
    if triggering_volume <= 0:
        return []

    now = now or timezone.now()
    member = get_member(company_id, member_id)
    levels = {row.level: row for row in snapshot.sponsor_levels}
    created = []

    for level, sponsor in iter_sponsors(member, max(levels)):
        if config.auto_disable_if_inactive and is_inactive(sponsor, config.inactive_days, now):
            logger.info("Sponsor %s inactive at level %s, chain stops", sponsor.member_id, level)
            break

        row = levels.get(level)
        if row is None:
            continue

        if not meets(member_stats(sponsor), team_volume=row.team_volume, pairs=row.pairs, directs=row.directs):
            logger.info("Sponsor %s not qualified for level %s", sponsor.member_id, level)
            continue

        amount = money(triggering_volume * row.percentage / Decimal("100"))
        if amount <= 0:
            continue

        key = f"{event_id}:sponsor_matching:{level}" if event_id else None
        txn = _post(company_id, sponsor, member, level, amount, row.percentage, key, now)
        if txn is not None:
            created.append(txn)

    return created


def _post(company_id, sponsor, member, level, amount, percentage, key, now) -> Optional[IncomeTransaction]:
    try:
        with transaction.atomic():
            txn = IncomeTransaction.objects.create(
                company_id=company_id,
                member=sponsor,
                income_type=IncomeTransaction.SPONSOR_MATCHING,
                amount=amount,
                gross_amount=amount,
                related_member=member,
                level=level,
                idempotency_key=key,
                description=f"Level {level} sponsor matching {percentage}% from {member.member_id}",
                created_at=now,
            )
    except IntegrityError:
        logger.info("Sponsor matching %s already posted, skipped", key)
        return None

    logger.info("✅ Sponsor matching L%s: %s → %s", level, amount, sponsor.member_id)
    return txn
