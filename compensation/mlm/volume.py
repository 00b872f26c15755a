# ==========================================================
# compensation/mlm/volume.py
# Volume Aggregator: push a BV delta from a member up to the root
# ==========================================================
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from compensation.config import ConfigSnapshot, get_mlm_config
from compensation.exceptions import InvariantViolation
from compensation.mlm.concurrency import guarded_update, retry_on_conflict
from compensation.mlm.periods import current_window
from compensation.mlm.tree_store import get_node, iter_ancestors
from compensation.models import CENT, LEFT, BinaryTreeNode

logger = logging.getLogger(__name__)


def to_volume(value) -> Decimal:
    """BV as a 2-digit decimal. Floats go through str() to avoid binary noise."""
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvariantViolation(f"volume {value!r} is not a number")
    if not amount.is_finite():
        raise InvariantViolation(f"volume {value!r} is not finite")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _checked(node: BinaryTreeNode, field: str, value):
    """Negative or overflowing aggregates are fatal, never clamped."""
    ceiling = settings.COMPENSATION["MAX_VOLUME"]
    if value < 0 or value > ceiling:
        logger.critical(
            "InvariantViolation on node %s (%s): %s=%s out of range [0, %s]",
            node.pk, node.company_id, field, value, ceiling,
        )
        raise InvariantViolation(f"{field}={value} out of range on node {node.pk}")
    return value


@retry_on_conflict
def _apply_own(node_pk: int, delta: Decimal) -> BinaryTreeNode:
    node = BinaryTreeNode.objects.get(pk=node_pk)
    changes = {
        "own_volume": _checked(node, "own_volume", node.own_volume + delta),
        "total_volume": _checked(node, "total_volume", node.total_volume + delta),
    }
    guarded_update(BinaryTreeNode, node, **changes)
    return node


@retry_on_conflict
def _apply_to_ancestor(node_pk: int, side: str, delta: Decimal, count_delta: int, window_start) -> BinaryTreeNode:
    node = BinaryTreeNode.objects.get(pk=node_pk)
    leg = "left" if side == LEFT else "right"

    changes = {
        f"{leg}_volume": _checked(node, f"{leg}_volume", getattr(node, f"{leg}_volume") + delta),
        f"lifetime_{leg}_volume": _checked(
            node, f"lifetime_{leg}_volume", getattr(node, f"lifetime_{leg}_volume") + delta
        ),
        f"{leg}_count": _checked(node, f"{leg}_count", getattr(node, f"{leg}_count") + count_delta),
        "total_volume": _checked(node, "total_volume", node.total_volume + delta),
        "total_count": _checked(node, "total_count", node.total_count + count_delta),
    }

    if node.window_start == window_start:
        changes[f"window_{leg}_volume"] = getattr(node, f"window_{leg}_volume") + delta
    else:
        changes["window_start"] = window_start
        changes["window_left_volume"] = delta if leg == "left" else Decimal("0.00")
        changes["window_right_volume"] = delta if leg == "right" else Decimal("0.00")

    left = changes.get("left_volume", node.left_volume)
    right = changes.get("right_volume", node.right_volume)
    if changes["total_volume"] != left + right + node.own_volume:
        logger.critical("Volume drift on node %s: total=%s left=%s right=%s own=%s",
                        node.pk, changes["total_volume"], left, right, node.own_volume)
        raise InvariantViolation(f"total_volume drift on node {node.pk}")

    guarded_update(BinaryTreeNode, node, **changes)
    return node


def apply_volume_delta(company_id: str, member_id: str, delta, count_delta: int = 0, now=None,
                       snapshot: Optional[ConfigSnapshot] = None, resume_after: int = 0,
                       on_step=None) -> list[BinaryTreeNode]:
    """
    Add `delta` BV to the member's own volume, then to the matching leg of
    every ancestor. `count_delta` is 1 for a fresh registration.

    Each ancestor write is its own version-guarded update; two events that
    share an ancestor serialize on that row only.

    Steps are numbered 1 (own volume) and 2.. (ancestors, nearest first).
    Steps up to `resume_after` were written by an earlier attempt and are
    skipped; `on_step(n)` runs in the same transaction as step n.

    Returns the touched ancestors, nearest first.
    """
    delta = to_volume(delta)
    node = get_node(company_id, member_id)
    if snapshot is None:
        snapshot = get_mlm_config(company_id)
    window_start, _ = current_window(snapshot.config.capping_period, now or timezone.now(), snapshot.tz)

    if delta and resume_after < 1:
        with transaction.atomic():
            _apply_own(node.pk, delta)
            if on_step is not None:
                on_step(1)

    touched = []
    for step, (ancestor, side) in enumerate(iter_ancestors(node), start=2):
        if step <= resume_after:
            touched.append(ancestor)
            continue
        with transaction.atomic():
            touched.append(_apply_to_ancestor(ancestor.pk, side, delta, count_delta, window_start))
            if on_step is not None:
                on_step(step)

    logger.info("Applied %s BV (+%s members) from %s to %s ancestors",
                delta, count_delta, member_id, len(touched))
    return touched
