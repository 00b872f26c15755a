# compensation/mlm/ranks.py

import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from compensation.config import ConfigSnapshot, get_mlm_config
from compensation.mlm.qualification import meets, member_stats
from compensation.mlm.tree_store import get_member
from compensation.models import Company, IncomeTransaction, Member, Rank, money

logger = logging.getLogger(__name__)


def qualifies(rank: Rank, stats) -> bool:
    return meets(
        stats,
        team_volume=rank.team_volume,
        pairs=rank.pairs,
        directs=rank.directs,
        left_volume=rank.left_volume,
        right_volume=rank.right_volume,
    )


def highest_qualifying_rank(ranks, stats) -> Optional[Rank]:
    """`ranks` in descending level; manual-only ranks are never picked here."""
    for rank in ranks:
        if rank.auto_assign and qualifies(rank, stats):
            return rank
    return None


@transaction.atomic
def evaluate_rank(company_id: str, member_id: str, snapshot: Optional[ConfigSnapshot] = None) -> Optional[str]:
    """
    Assign the highest auto-assign rank the member qualifies for.

    Upgrade only: a member whose stats dropped keeps the rank already held.
    A first-time rank with a cash reward posts one rank_reward transaction.

    Returns the member's rank code after evaluation, or None.
    """
    if snapshot is None:
        snapshot = get_mlm_config(company_id)

    member = (
        Member.objects.select_for_update()
        .select_related("rank")
        .get(pk=get_member(company_id, member_id).pk)
    )
    current = member.rank

    best = highest_qualifying_rank(snapshot.ranks, member_stats(member))
    if best is None or (current is not None and best.level <= current.level):
        return current.code if current else None

    now = timezone.now()
    Member.objects.filter(pk=member.pk).update(rank=best, rank_assigned_at=now)
    logger.info("✅ Rank upgrade %s: %s → %s", member_id, current.code if current else "-", best.code)

    if best.reward_cash and not snapshot.income_paused:
        _post_reward(company_id, member, best, now)

    return best.code


def _post_reward(company_id, member, rank, now):
    try:
        with transaction.atomic():
            IncomeTransaction.objects.create(
                company_id=company_id,
                member=member,
                income_type=IncomeTransaction.RANK_REWARD,
                amount=money(rank.reward_cash),
                gross_amount=money(rank.reward_cash),
                idempotency_key=f"rank:{member.member_id}:{rank.code}",
                description=f"Rank reward {rank.name}",
                created_at=now,
            )
    except IntegrityError:
        logger.info("Rank reward %s for %s already posted", rank.code, member.member_id)


def evaluate_ranks_for_company(company_id: str) -> dict:
    snapshot = get_mlm_config(company_id)
    upgraded = 0
    checked = 0

    members = Member.objects.filter(company_id=company_id, is_active=True).select_related("rank")
    for member in members.iterator():
        before = member.rank.code if member.rank else None
        after = evaluate_rank(company_id, member.member_id, snapshot=snapshot)
        checked += 1
        if after != before:
            upgraded += 1

    logger.info("Rank evaluation %s: %s checked, %s upgraded", company_id, checked, upgraded)
    return {"checked": checked, "upgraded": upgraded}


def evaluate_ranks_for_all_companies() -> dict:
    results = {}
    companies = Company.objects.filter(is_active=True, mlm_config__isnull=False)
    for company_id in companies.values_list("company_id", flat=True):
        results[company_id] = evaluate_ranks_for_company(company_id)
    return results
