from decimal import Decimal

from django.test import SimpleTestCase, TestCase

from compensation.config import pause_income_distribution
from compensation.mlm.matching import close_capping_period, compute_match, evaluate_matching
from compensation.mlm.volume import apply_volume_delta
from compensation.models import IncomeTransaction, MLMConfig
from compensation.tests.helpers import join, make_company, node, update_config, utc

NOW = utc(2026, 10, 16, 10, 0)
EARLIER = utc(2026, 10, 16, 9, 0)
AFTER_CLOSE = utc(2026, 10, 17, 0, 2)


class BinaryMatchingTest(TestCase):
    """S with A on the left (500 BV) and B on the right (300 BV), $50 per 100 BV pair."""

    def setUp(self):
        make_company("acme", pair_unit_bv=100, pair_income=50, capping_amount=500, carry_forward=True)
        join("acme", "S")
        join("acme", "A", "S", side="left", bv=500)
        join("acme", "B", "S", side="right", bv=300)

    def test_uncapped_match(self):
        [txn] = evaluate_matching("acme", "S", now=NOW)

        self.assertEqual(txn.amount, Decimal("150.00"))
        self.assertEqual(txn.pair_count, 3)
        self.assertEqual(txn.status, IncomeTransaction.PENDING)
        self.assertEqual(txn.income_type, IncomeTransaction.BINARY_MATCHING)
        self.assertEqual(txn.member.member_id, "S")

        s = node("acme", "S")
        self.assertEqual((s.left_volume, s.right_volume), (Decimal("200.00"), Decimal("0.00")))
        self.assertEqual(s.lifetime_pairs, 3)
        s.check_invariants()

    def test_cap_limits_amount_not_consumption(self):
        update_config("acme", capping_amount=100)

        [txn] = evaluate_matching("acme", "S", now=NOW)

        self.assertEqual(txn.amount, Decimal("100.00"))
        self.assertEqual(txn.gross_amount, Decimal("150.00"))
        self.assertEqual(txn.pair_count, 3)
        self.assertTrue(txn.was_capped)

        s = node("acme", "S")
        self.assertEqual((s.left_volume, s.right_volume), (Decimal("200.00"), Decimal("0.00")))

    def test_rerun_without_new_volume_matches_nothing(self):
        evaluate_matching("acme", "S", now=NOW)
        self.assertEqual(evaluate_matching("acme", "S", now=NOW), [])
        self.assertEqual(IncomeTransaction.objects.filter(member__member_id="S").count(), 1)

    def test_cap_is_shared_across_the_period(self):
        update_config("acme", capping_amount=200)
        evaluate_matching("acme", "S", now=NOW)

        apply_volume_delta("acme", "B", 300)
        [txn] = evaluate_matching("acme", "S", now=NOW.replace(hour=15))

        self.assertEqual(txn.gross_amount, Decimal("100.00"))
        self.assertEqual(txn.amount, Decimal("50.00"))

    def test_next_day_gets_a_fresh_cap(self):
        update_config("acme", capping_amount=100)
        evaluate_matching("acme", "S", now=NOW)

        apply_volume_delta("acme", "B", 200)
        [txn] = evaluate_matching("acme", "S", now=utc(2026, 10, 17, 9, 0))
        self.assertEqual(txn.amount, Decimal("100.00"))

    def test_exhausted_cap_still_consumes_pairs(self):
        update_config("acme", capping_amount=150)
        evaluate_matching("acme", "S", now=NOW)

        apply_volume_delta("acme", "B", 200)
        [txn] = evaluate_matching("acme", "S", now=NOW)

        self.assertEqual(txn.amount, Decimal("0.00"))
        self.assertEqual(txn.pair_count, 2)
        self.assertEqual(node("acme", "S").left_volume, Decimal("0.00"))

    def test_exhausted_cap_rerun_matches_nothing(self):
        update_config("acme", capping_amount=150)
        evaluate_matching("acme", "S", now=NOW)
        apply_volume_delta("acme", "B", 200)
        evaluate_matching("acme", "S", now=NOW)

        self.assertEqual(evaluate_matching("acme", "S", now=NOW), [])
        self.assertEqual(IncomeTransaction.objects.filter(member__member_id="S").count(), 2)

    def test_pair_ratio_two_to_one(self):
        update_config("acme", pair_ratio="2:1")

        [txn] = evaluate_matching("acme", "S", now=NOW)

        self.assertEqual(txn.pair_count, 2)
        s = node("acme", "S")
        self.assertEqual((s.left_volume, s.right_volume), (Decimal("100.00"), Decimal("100.00")))

    def test_binary_disabled(self):
        update_config("acme", binary_enabled=False)
        self.assertEqual(evaluate_matching("acme", "S", now=NOW), [])

    def test_paused_company_posts_nothing_and_keeps_volume(self):
        pause_income_distribution("acme", "audit")

        self.assertEqual(evaluate_matching("acme", "S", now=NOW), [])
        self.assertEqual(node("acme", "S").left_volume, Decimal("500.00"))

    def test_capping_window_follows_company_timezone(self):
        make_company("india", tz="Asia/Kolkata", pair_unit_bv=100, pair_income=50, capping_amount=100)
        join("india", "S")
        join("india", "A", "S", side="left", bv=200)
        join("india", "B", "S", side="right", bv=200)

        # 22:30 local on the 16th
        evaluate_matching("india", "S", now=utc(2026, 10, 16, 17, 0))

        apply_volume_delta("india", "A", 200)
        apply_volume_delta("india", "B", 200)
        # 01:30 local on the 17th: same UTC day, new local day
        [txn] = evaluate_matching("india", "S", now=utc(2026, 10, 16, 20, 0))
        self.assertEqual(txn.amount, Decimal("100.00"))


class PartialFundingTest(TestCase):
    def setUp(self):
        make_company(
            "acme", pair_unit_bv=100, pair_income=50, capping_amount=100,
            carry_forward=False, allow_partial_pairs=True,
        )
        join("acme", "S")
        join("acme", "A", "S", side="left", bv=500)
        join("acme", "B", "S", side="right", bv=300)

    def test_only_funded_pairs_are_consumed_smaller_leg_kept(self):
        [txn] = evaluate_matching("acme", "S", now=NOW)

        self.assertEqual(txn.pair_count, 2)
        self.assertEqual(txn.amount, Decimal("100.00"))
        self.assertEqual(txn.gross_amount, Decimal("150.00"))

        s = node("acme", "S")
        # unfunded pair stays on the smaller (right) leg, dropped from the left
        self.assertEqual((s.left_volume, s.right_volume), (Decimal("200.00"), Decimal("100.00")))
        s.check_invariants()

    def test_weak_leg_left_keeps_left_volume(self):
        update_config("acme", weak_leg_logic="left")

        evaluate_matching("acme", "S", now=NOW)

        s = node("acme", "S")
        self.assertEqual((s.left_volume, s.right_volume), (Decimal("300.00"), Decimal("0.00")))

    def test_rerun_after_the_cap_is_used_up_consumes_nothing(self):
        evaluate_matching("acme", "S", now=NOW)

        self.assertEqual(evaluate_matching("acme", "S", now=NOW.replace(hour=18)), [])

        s = node("acme", "S")
        self.assertEqual((s.left_volume, s.right_volume), (Decimal("200.00"), Decimal("100.00")))
        self.assertEqual(IncomeTransaction.objects.filter(member__member_id="S").count(), 1)

    def test_preserved_volume_matches_in_the_next_window(self):
        evaluate_matching("acme", "S", now=NOW)

        [txn] = evaluate_matching("acme", "S", now=utc(2026, 10, 17, 9, 0))

        self.assertEqual((txn.pair_count, txn.amount), (1, Decimal("50.00")))
        s = node("acme", "S")
        self.assertEqual((s.left_volume, s.right_volume), (Decimal("100.00"), Decimal("0.00")))


class FlushOutTest(TestCase):
    def setUp(self):
        make_company(
            "acme", pair_unit_bv=100, pair_income=50, capping_amount=100,
            carry_forward=False, flush_out=True,
        )
        join("acme", "S", now=EARLIER)
        join("acme", "A", "S", side="left", bv=500, now=EARLIER)
        join("acme", "B", "S", side="right", bv=300, now=EARLIER)

    def test_capped_member_is_flushed_at_period_close(self):
        evaluate_matching("acme", "S", now=NOW)
        self.assertEqual(node("acme", "S").left_volume, Decimal("200.00"))

        flushed = close_capping_period("acme", now=utc(2026, 10, 17, 0, 5))

        self.assertEqual(flushed, 1)
        s = node("acme", "S")
        self.assertEqual((s.left_volume, s.right_volume), (Decimal("0.00"), Decimal("0.00")))
        self.assertEqual(s.lifetime_left_volume, Decimal("500.00"))
        s.check_invariants()

    def test_rerun_without_new_volume_matches_nothing(self):
        evaluate_matching("acme", "S", now=NOW)
        self.assertEqual(evaluate_matching("acme", "S", now=NOW), [])

    def test_volume_that_arrives_after_the_boundary_survives(self):
        evaluate_matching("acme", "S", now=NOW)
        apply_volume_delta("acme", "B", 400, now=AFTER_CLOSE)

        self.assertEqual(close_capping_period("acme", now=utc(2026, 10, 17, 0, 5)), 1)

        s = node("acme", "S")
        self.assertEqual((s.left_volume, s.right_volume), (Decimal("0.00"), Decimal("400.00")))
        s.check_invariants()

    def test_first_match_in_the_new_window_flushes_before_pairing(self):
        evaluate_matching("acme", "S", now=NOW)
        apply_volume_delta("acme", "B", 400, now=AFTER_CLOSE)

        self.assertEqual(evaluate_matching("acme", "S", now=utc(2026, 10, 17, 0, 3)), [])
        s = node("acme", "S")
        self.assertEqual((s.left_volume, s.right_volume), (Decimal("0.00"), Decimal("400.00")))

        # already flushed, the scheduled close has nothing left to do
        self.assertEqual(close_capping_period("acme", now=utc(2026, 10, 17, 0, 5)), 0)
        self.assertEqual(node("acme", "S").right_volume, Decimal("400.00"))

    def test_period_closes_once(self):
        evaluate_matching("acme", "S", now=NOW)
        close_capping_period("acme", now=utc(2026, 10, 17, 0, 5))

        apply_volume_delta("acme", "A", 100)
        self.assertEqual(close_capping_period("acme", now=utc(2026, 10, 17, 1, 5)), 0)
        self.assertEqual(node("acme", "S").left_volume, Decimal("100.00"))

    def test_uncapped_member_keeps_volume(self):
        update_config("acme", capping_amount=500)
        evaluate_matching("acme", "S", now=NOW)

        self.assertEqual(close_capping_period("acme", now=utc(2026, 10, 17, 0, 5)), 0)
        self.assertEqual(node("acme", "S").left_volume, Decimal("200.00"))

    def test_carry_forward_company_never_flushes(self):
        update_config("acme", flush_out=False, carry_forward=True)
        evaluate_matching("acme", "S", now=NOW)

        self.assertEqual(close_capping_period("acme", now=utc(2026, 10, 17, 0, 5)), 0)


class ComputeMatchTest(SimpleTestCase):
    def config(self, **overrides):
        values = dict(pair_ratio="1:1", pair_unit_bv=Decimal("100"), pair_income=Decimal("50"),
                      capping_amount=None, carry_forward=True, allow_partial_pairs=False,
                      weak_leg_logic="smaller")
        values.update(overrides)
        return MLMConfig(**values)

    def test_no_pairs_below_one_unit(self):
        result = compute_match(Decimal("99.99"), Decimal("500"), self.config(), Decimal("0"))
        self.assertEqual(result.matched_pairs, 0)
        self.assertEqual(result.left_after, Decimal("99.99"))

    def test_no_cap(self):
        result = compute_match(Decimal("1000"), Decimal("1000"), self.config(), Decimal("0"))
        self.assertEqual((result.matched_pairs, result.amount), (10, Decimal("500.00")))

    def test_cap_already_used_up(self):
        result = compute_match(
            Decimal("300"), Decimal("300"), self.config(capping_amount=Decimal("100")), Decimal("100")
        )
        self.assertEqual(result.amount, Decimal("0.00"))
        self.assertEqual((result.left_after, result.right_after), (Decimal("0"), Decimal("0")))
