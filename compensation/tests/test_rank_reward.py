from decimal import Decimal

from django.test import TestCase

from compensation.mlm.matching import evaluate_matching
from compensation.mlm.ranks import evaluate_rank, evaluate_ranks_for_company
from compensation.models import BinaryTreeNode, IncomeTransaction, Member, Rank
from compensation.tests.helpers import join, make_company


class RankEvaluatorTest(TestCase):
    def setUp(self):
        company = make_company("acme", pair_unit_bv=100, pair_income=10)
        Rank.objects.create(company=company, code="BRONZE", name="Bronze", level=1, team_volume=500)
        Rank.objects.create(company=company, code="SILVER", name="Silver", level=2, team_volume=500,
                            pairs=1, reward_cash=Decimal("50"))
        Rank.objects.create(company=company, code="GOLD", name="Gold", level=3, team_volume=500,
                            auto_assign=False)

        join("acme", "S")
        join("acme", "A", "S", side="left", bv=300)
        join("acme", "B", "S", side="right", bv=300)

    def rank_of(self, member_id):
        member = Member.objects.select_related("rank").get(company_id="acme", member_id=member_id)
        return member.rank.code if member.rank else None

    def test_highest_qualifying_auto_rank(self):
        self.assertEqual(evaluate_rank("acme", "S"), "BRONZE")

        evaluate_matching("acme", "S")
        self.assertEqual(evaluate_rank("acme", "S"), "SILVER")
        self.assertEqual(self.rank_of("S"), "SILVER")

    def test_no_rank_when_nothing_qualifies(self):
        self.assertIsNone(evaluate_rank("acme", "A"))

    def test_manual_rank_is_never_auto_assigned(self):
        evaluate_matching("acme", "S")
        self.assertNotEqual(evaluate_rank("acme", "S"), "GOLD")

    def test_rank_never_goes_down(self):
        evaluate_matching("acme", "S")
        evaluate_rank("acme", "S")

        BinaryTreeNode.objects.filter(member__member_id="S").update(
            lifetime_left_volume=0, lifetime_right_volume=0, lifetime_pairs=0
        )

        self.assertEqual(evaluate_rank("acme", "S"), "SILVER")
        self.assertEqual(self.rank_of("S"), "SILVER")

    def test_cash_reward_posted_once(self):
        evaluate_matching("acme", "S")
        evaluate_rank("acme", "S")
        evaluate_rank("acme", "S")

        rewards = IncomeTransaction.objects.filter(income_type=IncomeTransaction.RANK_REWARD)
        self.assertEqual(rewards.count(), 1)
        self.assertEqual(rewards.get().amount, Decimal("50.00"))

    def test_leg_minimums(self):
        Rank.objects.filter(code="BRONZE").update(left_volume=400)
        self.assertIsNone(evaluate_rank("acme", "S"))

    def test_bulk_evaluation(self):
        summary = evaluate_ranks_for_company("acme")
        self.assertEqual(summary, {"checked": 3, "upgraded": 1})
