# ==========================================================
# compensation/mlm/placement.py
# Placement Resolver: direct side placement + spillover search
# ==========================================================
from __future__ import annotations

import logging
from collections import deque
from typing import NamedTuple, Optional

from django.db import IntegrityError, transaction
from django.db.models import F

from compensation.config import ConfigSnapshot, get_mlm_config
from compensation.exceptions import ConcurrencyConflict, PlacementError
from compensation.mlm.concurrency import retry_on_conflict
from compensation.mlm.tree_store import find_node, get_member, get_root, insert_node
from compensation.models import LEFT, RIGHT, BinaryTreeNode, Member

logger = logging.getLogger(__name__)


class Placement(NamedTuple):
    placement_id: Optional[str]   # member_id of the parent node, None for the root
    side: Optional[str]


def _as_placement(node: BinaryTreeNode) -> Placement:
    if node.parent_id is None:
        return Placement(None, None)
    parent = BinaryTreeNode.objects.select_related("member").get(pk=node.parent_id)
    return Placement(parent.member.member_id, node.side)


def weak_leg(node: BinaryTreeNode, weak_leg_logic: str) -> str:
    if weak_leg_logic == LEFT:
        return LEFT
    if weak_leg_logic == RIGHT:
        return RIGHT
    # "smaller": lesser lifetime volume, then fewer members, then left
    left_key = (node.lifetime_left_volume, node.left_count)
    right_key = (node.lifetime_right_volume, node.right_count)
    return RIGHT if right_key < left_key else LEFT


def find_spillover_slot(sponsor_node: BinaryTreeNode, leg: str) -> tuple[BinaryTreeNode, str]:
    """
    Breadth-first search of `leg` under the sponsor.
    First node with a free slot wins, left before right at each node.
    """
    if not sponsor_node.child_on(leg):
        return sponsor_node, leg

    queue = deque([sponsor_node.child_on(leg)])
    while queue:
        current = BinaryTreeNode.objects.get(pk=queue.popleft())
        if current.left_child_id is None:
            return current, LEFT
        if current.right_child_id is None:
            return current, RIGHT
        queue.append(current.left_child_id)
        queue.append(current.right_child_id)

    # a finite binary tree always has a free slot at its frontier
    raise PlacementError(PlacementError.NO_AVAILABLE_SLOT, f"no slot under {sponsor_node.member_id}")


def resolve_slot(sponsor_node: BinaryTreeNode, requested_side: Optional[str], snapshot: ConfigSnapshot):
    """
    Rules:
      1️⃣ requested side empty on the sponsor → place directly
      2️⃣ manual mode → first empty leg of the sponsor, else NoAvailableSlot
      3️⃣ auto mode → BFS down the requested (or weak) leg
    """
    if requested_side and not sponsor_node.child_on(requested_side):
        return sponsor_node, requested_side

    config = snapshot.config
    if config.spillover_mode == "manual":
        for side in (LEFT, RIGHT):
            if not sponsor_node.child_on(side):
                return sponsor_node, side
        raise PlacementError(
            PlacementError.NO_AVAILABLE_SLOT,
            f"both legs of {sponsor_node.member.member_id} are occupied; place under a downstream sponsor",
        )

    leg = requested_side or weak_leg(sponsor_node, config.weak_leg_logic)
    return find_spillover_slot(sponsor_node, leg)


def place(
    company_id: str,
    new_member_id: str,
    sponsor_id: Optional[str],
    requested_side: Optional[str] = None,
    snapshot: Optional[ConfigSnapshot] = None,
) -> Placement:
    """
    Put `new_member_id` into the company tree and return where it landed.
    Calling it again for an already placed member returns the existing placement.
    Volumes and counts are left to the aggregator.
    """
    if requested_side is not None and requested_side not in (LEFT, RIGHT):
        raise PlacementError(PlacementError.INVALID_SIDE, f"side must be left/right, got {requested_side!r}")

    if snapshot is None:
        snapshot = get_mlm_config(company_id)
    return _place(company_id, new_member_id, sponsor_id, requested_side, snapshot)


@retry_on_conflict
def _place(company_id, new_member_id, sponsor_id, requested_side, snapshot) -> Placement:
    member = get_member(company_id, new_member_id)

    existing = BinaryTreeNode.objects.filter(member=member).first()
    if existing is not None:
        logger.info("Member %s already placed, returning existing placement", new_member_id)
        return _as_placement(existing)

    # -----------------------------
    # Root of the company tree
    # -----------------------------
    if sponsor_id is None:
        if get_root(company_id) is not None:
            raise PlacementError(PlacementError.DUPLICATE_PLACEMENT, f"company {company_id} already has a root")
        try:
            with transaction.atomic():
                insert_node(member)
        except IntegrityError:
            raise ConcurrencyConflict(f"concurrent placement of {new_member_id}")
        logger.info("Placed %s as root of %s", new_member_id, company_id)
        return Placement(None, None)

    sponsor_node = find_node(company_id, sponsor_id)
    if sponsor_node is None:
        raise PlacementError(PlacementError.UNKNOWN_SPONSOR, f"{sponsor_id} is not in the {company_id} tree")

    parent, side = resolve_slot(sponsor_node, requested_side, snapshot)
    child_field = "left_child" if side == LEFT else "right_child"

    try:
        with transaction.atomic():
            node = insert_node(member, parent, side)
            linked = BinaryTreeNode.objects.filter(
                pk=parent.pk, **{f"{child_field}__isnull": True}
            ).update(**{child_field: node, "version": F("version") + 1})
            if not linked:
                raise ConcurrencyConflict(f"{side} slot of node {parent.pk} taken concurrently")

            Member.objects.filter(pk=member.pk).update(placement_id=parent.member_id, placement_side=side)
    except IntegrityError:
        raise ConcurrencyConflict(f"concurrent placement of {new_member_id}")

    placement_id = Member.objects.values_list("member_id", flat=True).get(pk=parent.member_id)
    logger.info("Placed %s under %s (%s)", new_member_id, placement_id, side)
    return Placement(placement_id, side)
