# compensation/management/commands/show_tree.py

from django.core.management.base import BaseCommand

from compensation.mlm.tree_store import find_node, get_root
from compensation.models import BinaryTreeNode


class Command(BaseCommand):
    help = "Print a company binary tree with carried volumes and counts"

    def add_arguments(self, parser):
        parser.add_argument("company", type=str)
        parser.add_argument("--member", type=str, help="Start from this member instead of the root")
        parser.add_argument("--depth", type=int, default=4)

    def handle(self, *args, **options):
        company_id = options["company"]
        if options.get("member"):
            node = find_node(company_id, options["member"])
        else:
            node = get_root(company_id)

        if node is None:
            self.stdout.write(self.style.ERROR("❌ No such node"))
            return

        self._print(node, options["depth"], prefix="", label="ROOT")

    def _print(self, node, depth, prefix, label):
        node = BinaryTreeNode.objects.select_related("member").get(pk=node.pk)
        self.stdout.write(
            f"{prefix}{label}: {node.member.member_id} "
            f"L={node.left_volume} R={node.right_volume} own={node.own_volume} "
            f"({node.left_count}|{node.right_count}) pairs={node.lifetime_pairs}"
        )
        if depth <= 0:
            return
        for side, child_id in (("L", node.left_child_id), ("R", node.right_child_id)):
            if child_id:
                self._print(BinaryTreeNode(pk=child_id), depth - 1, prefix + "    ", side)
