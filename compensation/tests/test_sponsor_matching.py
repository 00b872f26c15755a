from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from compensation.mlm.sponsor_matching import evaluate_sponsor_matching
from compensation.models import IncomeTransaction, Member, MLMConfig, SponsorMatchingLevel
from compensation.tests.helpers import join, make_company, update_config


class SponsorMatchingTest(TestCase):
    """Sponsor chain R → S1 → S2 → M."""

    def setUp(self):
        make_company("acme", sponsor_matching_enabled=True)
        config = MLMConfig.objects.get(company_id="acme")
        SponsorMatchingLevel.objects.create(config=config, level=1, percentage=Decimal("10"))
        SponsorMatchingLevel.objects.create(config=config, level=2, percentage=Decimal("5"))

        join("acme", "R")
        join("acme", "S1", "R")
        join("acme", "S2", "S1")
        join("acme", "M", "S2")

    def paid(self):
        return {
            (t.member.member_id, t.level): t.amount
            for t in IncomeTransaction.objects.filter(income_type=IncomeTransaction.SPONSOR_MATCHING)
        }

    def test_walks_sponsor_chain_up_to_configured_levels(self):
        created = evaluate_sponsor_matching("acme", "M", Decimal("200"))

        self.assertEqual(len(created), 2)
        self.assertEqual(self.paid(), {("S2", 1): Decimal("20.00"), ("S1", 2): Decimal("10.00")})
        self.assertTrue(all(t.related_member.member_id == "M" for t in created))
        self.assertTrue(all(t.status == IncomeTransaction.PENDING for t in created))

    def test_unqualified_level_is_skipped(self):
        config = MLMConfig.objects.get(company_id="acme")
        SponsorMatchingLevel.objects.filter(config=config, level=2).update(directs=2)

        evaluate_sponsor_matching("acme", "M", Decimal("200"))

        self.assertEqual(self.paid(), {("S2", 1): Decimal("20.00")})

    def test_all_thresholds_must_be_met(self):
        config = MLMConfig.objects.get(company_id="acme")
        # S2 has one direct but no team volume
        SponsorMatchingLevel.objects.filter(config=config, level=1).update(directs=1, team_volume=Decimal("1"))

        evaluate_sponsor_matching("acme", "M", Decimal("200"))

        self.assertEqual(self.paid(), {("S1", 2): Decimal("10.00")})

    def test_inactive_sponsor_breaks_the_chain(self):
        update_config("acme", auto_disable_if_inactive=True, inactive_days=30)
        Member.objects.filter(member_id="S2").update(last_activity_at=timezone.now() - timedelta(days=40))

        self.assertEqual(evaluate_sponsor_matching("acme", "M", Decimal("200")), [])

    def test_inactivity_higher_up_keeps_lower_levels(self):
        update_config("acme", auto_disable_if_inactive=True, inactive_days=30)
        Member.objects.filter(member_id="S1").update(is_active=False)

        evaluate_sponsor_matching("acme", "M", Decimal("200"))

        self.assertEqual(self.paid(), {("S2", 1): Decimal("20.00")})

    def test_inactivity_ignored_when_auto_disable_off(self):
        Member.objects.filter(member_id="S2").update(is_active=False)
        self.assertEqual(len(evaluate_sponsor_matching("acme", "M", Decimal("200"))), 2)

    def test_same_event_pays_once(self):
        evaluate_sponsor_matching("acme", "M", Decimal("200"), event_id="evt-1")
        again = evaluate_sponsor_matching("acme", "M", Decimal("200"), event_id="evt-1")

        self.assertEqual(again, [])
        self.assertEqual(len(self.paid()), 2)

    def test_amount_rounds_down_to_cents(self):
        evaluate_sponsor_matching("acme", "M", Decimal("333.33"))
        self.assertEqual(self.paid()[("S2", 1)], Decimal("33.33"))

    def test_disabled(self):
        update_config("acme", sponsor_matching_enabled=False)
        self.assertEqual(evaluate_sponsor_matching("acme", "M", Decimal("200")), [])
