# compensation/mlm/tree_store.py
from __future__ import annotations

from typing import Iterator, Optional

from compensation.exceptions import InvariantViolation
from compensation.models import LEFT, RIGHT, BinaryTreeNode, Member


def get_member(company_id: str, member_id: str) -> Member:
    """Point read, always tenant scoped. Raises Member.DoesNotExist."""
    return Member.objects.get(company_id=company_id, member_id=member_id)


def get_node(company_id: str, member_id: str) -> BinaryTreeNode:
    return BinaryTreeNode.objects.select_related("member").get(
        company_id=company_id, member__member_id=member_id
    )


def find_node(company_id: str, member_id: str) -> Optional[BinaryTreeNode]:
    return (
        BinaryTreeNode.objects.select_related("member")
        .filter(company_id=company_id, member__member_id=member_id)
        .first()
    )


def get_root(company_id: str) -> Optional[BinaryTreeNode]:
    return BinaryTreeNode.objects.filter(company_id=company_id, parent__isnull=True).first()


def insert_node(member: Member, parent: Optional[BinaryTreeNode] = None, side: Optional[str] = None) -> BinaryTreeNode:
    """Create the node only; linking the parent's child pointer is the caller's job."""
    return BinaryTreeNode.objects.create(
        company_id=member.company_id,
        member=member,
        parent=parent,
        side=side,
    )


def iter_ancestors(node: BinaryTreeNode) -> Iterator[tuple[BinaryTreeNode, str]]:
    """
    Walk parent pointers up to the root.
    Yields (ancestor, side) where side is the leg of `ancestor`
    through which `node` descends.
    """
    seen = {node.pk}
    child = node
    while child.parent_id is not None:
        if child.parent_id in seen:
            raise InvariantViolation(f"cycle in tree at node {child.parent_id}")
        seen.add(child.parent_id)

        parent = BinaryTreeNode.objects.get(pk=child.parent_id)
        if parent.company_id != node.company_id:
            raise InvariantViolation(f"node {parent.pk} crosses tenant boundary")
        if child.side not in (LEFT, RIGHT):
            raise InvariantViolation(f"node {child.pk} has parent but no side")

        yield parent, child.side
        child = parent


def path_to_root(node: BinaryTreeNode) -> list[BinaryTreeNode]:
    """[parent, grandparent, ..., root]"""
    return [ancestor for ancestor, _ in iter_ancestors(node)]
