# compensation/mlm/qualification.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from compensation.models import BinaryTreeNode, Member


@dataclass(frozen=True)
class MemberStats:
    team_volume: Decimal
    pairs: int
    directs: int
    left_volume: Decimal
    right_volume: Decimal


def member_stats(member: Member) -> MemberStats:
    """Lifetime figures only; carried volume shrinks with matching and is not used here."""
    node = BinaryTreeNode.objects.filter(member=member).first()
    directs = Member.objects.filter(company_id=member.company_id, sponsor=member).count()
    if node is None:
        zero = Decimal("0.00")
        return MemberStats(zero, 0, directs, zero, zero)
    return MemberStats(
        team_volume=node.team_volume,
        pairs=node.lifetime_pairs,
        directs=directs,
        left_volume=node.lifetime_left_volume,
        right_volume=node.lifetime_right_volume,
    )


def meets(stats: MemberStats, team_volume=None, pairs=None, directs=None,
          left_volume=None, right_volume=None) -> bool:
    """All-of check; a threshold left as None is not required."""
    checks = (
        (team_volume, stats.team_volume),
        (pairs, stats.pairs),
        (directs, stats.directs),
        (left_volume, stats.left_volume),
        (right_volume, stats.right_volume),
    )
    return all(actual >= required for required, actual in checks if required is not None)


def is_inactive(member: Member, inactive_days: int, now=None) -> bool:
    if not member.is_active:
        return True
    now = now or timezone.now()
    return member.last_activity_at < now - timedelta(days=inactive_days)
