# ==========================================================
# compensation/mlm/matching.py
# Binary Matching Engine: pairs, capping, carry-forward / flush-out
# ==========================================================
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone

from compensation.config import ConfigSnapshot, get_mlm_config
from compensation.exceptions import CompensationError, InvariantViolation
from compensation.mlm.concurrency import guarded_update, retry_on_conflict
from compensation.mlm.engine_lock import SKIPPED, run_with_lock
from compensation.mlm.periods import current_window, previous_window
from compensation.mlm.tree_store import get_node
from compensation.models import LEFT, RIGHT, BinaryTreeNode, IncomeTransaction, MLMConfig, money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    matched_pairs: int      # pairs available on both legs
    paid_pairs: int         # pairs written to the transaction (funded pairs in partial mode)
    gross: Decimal          # income before the cap
    amount: Decimal         # income after the cap
    left_after: Decimal
    right_after: Decimal


def preserved_leg(weak_leg_logic: str, left: Decimal, right: Decimal) -> str:
    if weak_leg_logic in (LEFT, RIGHT):
        return weak_leg_logic
    return RIGHT if right < left else LEFT


def compute_match(left: Decimal, right: Decimal, config: MLMConfig, paid_in_period: Decimal) -> MatchResult:
    """
    Pure pair arithmetic for one node.

    1️⃣ ratio a:b with pair unit u → pairs = min(L // a·u, R // b·u)
    2️⃣ income = pairs × pair_income, capped by what is left of the period cap
    3️⃣ consumption ignores the cap, except when carry-forward is off and
       partial pairs are allowed: then only funded pairs are consumed, the
       unfunded matched volume stays on the preserved leg and is dropped
       from the other one. Once the cap is used up nothing is consumed
    """
    a, b = config.ratio()
    left_unit = a * config.pair_unit_bv
    right_unit = b * config.pair_unit_bv

    matched = min(int(left // left_unit), int(right // right_unit))
    if matched <= 0:
        return MatchResult(0, 0, money(0), money(0), left, right)

    pair_income = config.pair_income
    gross = money(matched * pair_income)

    remaining = None
    if config.capping_amount is not None:
        remaining = max(config.capping_amount - paid_in_period, Decimal("0"))

    amount = gross if remaining is None else min(gross, money(remaining))
    left_after = left - matched * left_unit
    right_after = right - matched * right_unit
    paid_pairs = matched

    partial = (
        remaining is not None
        and gross > remaining
        and config.allow_partial_pairs
        and not config.carry_forward
    )
    if partial:
        funded = int(remaining // pair_income) if pair_income > 0 else matched
        funded = min(funded, matched)
        if funded == 0:
            # cap used up: nothing is paid or consumed until the next window
            return MatchResult(0, 0, money(0), money(0), left, right)
        unfunded = matched - funded

        amount = money(funded * pair_income)
        paid_pairs = funded
        left_after = left - funded * left_unit
        right_after = right - funded * right_unit

        if preserved_leg(config.weak_leg_logic, left, right) == LEFT:
            right_after -= unfunded * right_unit
        else:
            left_after -= unfunded * left_unit

    return MatchResult(matched, paid_pairs, gross, amount, left_after, right_after)


def paid_in_window(member_pk: int, start, end) -> Decimal:
    total = (
        IncomeTransaction.objects.filter(
            member_id=member_pk,
            income_type=IncomeTransaction.BINARY_MATCHING,
            created_at__gte=start,
            created_at__lt=end,
        )
        .exclude(status=IncomeTransaction.CANCELLED)
        .aggregate(total=Sum("amount"))["total"]
    )
    return total or Decimal("0.00")


# ==========================================================
# evaluate_matching
# ==========================================================
def evaluate_matching(
    company_id: str,
    member_id: str,
    snapshot: Optional[ConfigSnapshot] = None,
    now=None,
) -> list[IncomeTransaction]:
    """
    Match the member's carried left/right volume and post one pending
    binary_matching transaction. Running it again without new volume
    finds zero pairs.
    """
    if snapshot is None:
        snapshot = get_mlm_config(company_id)
    config = snapshot.config

    if not config.binary_enabled:
        return []
    if snapshot.income_paused:
        logger.info("Income paused for %s, matching skipped for %s", company_id, member_id)
        return []

    now = now or timezone.now()
    node = get_node(company_id, member_id)
    if config.flush_out:
        _flush_before_matching(node, snapshot, now)
    txn = _match_node(node.pk, snapshot, now)
    return [txn] if txn is not None else []


@retry_on_conflict
def _match_node(node_pk: int, snapshot: ConfigSnapshot, now) -> Optional[IncomeTransaction]:
    config = snapshot.config
    start, end = current_window(config.capping_period, now, snapshot.tz)

    with transaction.atomic():
        node = BinaryTreeNode.objects.select_related("member").get(pk=node_pk)
        paid = paid_in_window(node.member_id, start, end)
        result = compute_match(node.left_volume, node.right_volume, config, paid)

        if result.matched_pairs == 0:
            return None

        consumed = (node.left_volume - result.left_after) + (node.right_volume - result.right_after)
        total_after = node.total_volume - consumed
        if result.left_after < 0 or result.right_after < 0 or total_after < 0:
            logger.critical("Matching on node %s would go negative: L=%s R=%s total=%s",
                            node.pk, result.left_after, result.right_after, total_after)
            raise InvariantViolation(f"negative volume after matching on node {node.pk}")

        guarded_update(
            BinaryTreeNode,
            node,
            left_volume=result.left_after,
            right_volume=result.right_after,
            total_volume=total_after,
            lifetime_pairs=node.lifetime_pairs + result.paid_pairs,
        )

        if result.amount < result.gross:
            description = f"{result.paid_pairs} pairs (capped from {result.gross})"
        else:
            description = f"{result.paid_pairs} pairs"

        txn = IncomeTransaction.objects.create(
            company_id=node.company_id,
            member=node.member,
            income_type=IncomeTransaction.BINARY_MATCHING,
            amount=result.amount,
            gross_amount=result.gross,
            pair_count=result.paid_pairs,
            description=description,
            created_at=now,
        )

    logger.info("✅ Binary matching %s: %s pairs, %s (gross %s)",
                node.member.member_id, result.paid_pairs, result.amount, result.gross)
    return txn


# ==========================================================
# Period close: flush-out of capped members
# ==========================================================
def _capped_transactions(company_id: str, start, end):
    return (
        IncomeTransaction.objects.filter(
            company_id=company_id,
            income_type=IncomeTransaction.BINARY_MATCHING,
            created_at__gte=start,
            created_at__lt=end,
            gross_amount__gt=F("amount"),
        )
        .exclude(status=IncomeTransaction.CANCELLED)
    )


def close_capping_period(company_id: str, now=None, snapshot: Optional[ConfigSnapshot] = None) -> int:
    """
    Flush the volume carried out of the window that just closed for every
    member that hit the cap in it. Only with flush_out enabled. Runs once
    per company and window; BV that arrived after the window closed stays.
    """
    if snapshot is None:
        snapshot = get_mlm_config(company_id)
    config = snapshot.config
    if not config.flush_out:
        return 0

    now = now or timezone.now()
    start, end = previous_window(config.capping_period, now, snapshot.tz)

    def job():
        capped_members = _capped_transactions(company_id, start, end).values_list("member_id", flat=True).distinct()
        flushed = 0
        for member_pk in capped_members:
            if _flush_node(member_pk, start, end):
                flushed += 1
        logger.info("Flush-out for %s window %s: %s nodes", company_id, start.date(), flushed)
        return flushed

    result = run_with_lock(company_id, "flush_out", start.date().isoformat(), job)
    return 0 if result is SKIPPED else result


def _flush_before_matching(node: BinaryTreeNode, snapshot: ConfigSnapshot, now) -> None:
    """A capped window's leftovers never pair with volume of the next window."""
    start, end = previous_window(snapshot.config.capping_period, now, snapshot.tz)
    if node.flushed_window_start is not None and node.flushed_window_start >= start:
        return
    if _capped_transactions(node.company_id, start, end).filter(member_id=node.member_id).exists():
        _flush_node(node.member_id, start, end)


@retry_on_conflict
def _flush_node(member_pk: int, start, end) -> bool:
    """
    Keep only the BV that reached each leg at or after `end`, clamped to
    what is still on the leg. Returns False when already flushed for this
    window or nothing had to go.
    """
    node = BinaryTreeNode.objects.get(member_id=member_pk)
    if node.flushed_window_start is not None and node.flushed_window_start >= start:
        return False

    if node.window_start is not None and node.window_start >= end:
        keep_left = max(node.window_left_volume, Decimal("0.00"))
        keep_right = max(node.window_right_volume, Decimal("0.00"))
    else:
        keep_left = keep_right = Decimal("0.00")

    before = (node.left_volume, node.right_volume)
    left = min(node.left_volume, keep_left)
    right = min(node.right_volume, keep_right)
    guarded_update(
        BinaryTreeNode,
        node,
        left_volume=left,
        right_volume=right,
        total_volume=node.own_volume + left + right,
        flushed_window_start=start,
    )
    return (left, right) != before


# ==========================================================
# Daily sweep
# ==========================================================
def run_matching_sweep(company_id: str, now=None) -> dict:
    """
    Re-evaluate matching for every node holding volume on both legs.
    Picks up events whose matching step failed. One run per company per
    tenant-local day.
    """
    snapshot = get_mlm_config(company_id)
    now = now or timezone.now()
    run_key = now.astimezone(snapshot.tz).date().isoformat()

    def job():
        summary = {"processed": 0, "pairs": 0, "income": Decimal("0.00"), "errors": []}
        candidates = (
            BinaryTreeNode.objects.filter(company_id=company_id, left_volume__gt=0, right_volume__gt=0)
            .select_related("member")
            .order_by("pk")
        )
        for node in candidates:
            try:
                for txn in evaluate_matching(company_id, node.member.member_id, snapshot=snapshot, now=now):
                    summary["pairs"] += txn.pair_count or 0
                    summary["income"] += txn.amount
            except InvariantViolation:
                raise
            except CompensationError as exc:
                logger.exception("Matching failed for %s/%s", company_id, node.member.member_id)
                summary["errors"].append(f"{node.member.member_id}: {exc}")
            summary["processed"] += 1
        return summary

    result = run_with_lock(company_id, "daily_matching", run_key, job)
    if result is SKIPPED:
        return {"skipped": True}
    logger.info("Matching sweep %s %s: %s", company_id, run_key, result)
    return result
