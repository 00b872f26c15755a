from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from compensation.exceptions import InvariantViolation
from compensation.mlm.wallet_ledger import cancel_transaction, credit_due_transactions, credit_transaction
from compensation.models import IncomeTransaction, Member, Wallet
from compensation.tests.helpers import make_company


class WalletLedgerTest(TestCase):
    def setUp(self):
        make_company("acme")
        self.member = Member.objects.create(company_id="acme", member_id="S")

    def income(self, amount="100.00", **extra):
        return IncomeTransaction.objects.create(
            company_id="acme", member=self.member, income_type=IncomeTransaction.DIRECT,
            amount=Decimal(amount), gross_amount=Decimal(amount), **extra
        )

    def wallet(self):
        return Wallet.objects.get(member=self.member)

    def test_wallet_created_with_member(self):
        wallet = self.wallet()
        self.assertEqual(wallet.company_id, "acme")
        self.assertEqual(wallet.available_balance, Decimal("0.00"))

    def test_credit_is_exactly_once(self):
        txn = self.income()

        self.assertTrue(credit_transaction("acme", txn.pk))
        self.assertFalse(credit_transaction("acme", txn.pk))

        wallet = self.wallet()
        self.assertEqual(wallet.available_balance, Decimal("100.00"))
        self.assertEqual(wallet.total_earned, Decimal("100.00"))

        txn.refresh_from_db()
        self.assertEqual(txn.status, IncomeTransaction.CREDITED)
        self.assertIsNotNone(txn.credited_at)

    def test_credit_is_tenant_scoped(self):
        txn = self.income()
        make_company("other")
        self.assertFalse(credit_transaction("other", txn.pk))
        self.assertEqual(self.wallet().available_balance, Decimal("0.00"))

    def test_delayed_income_waits_for_credit_after(self):
        now = timezone.now()
        txn = self.income(credit_after=now + timedelta(hours=24))

        self.assertFalse(credit_transaction("acme", txn.pk, now=now))
        self.assertEqual(credit_due_transactions(now=now), 0)
        self.assertEqual(credit_due_transactions(now=now + timedelta(hours=25)), 1)
        self.assertEqual(self.wallet().available_balance, Decimal("100.00"))

    def test_frozen_wallet_credits_locked_balance(self):
        Wallet.objects.filter(member=self.member).update(is_frozen=True)
        credit_transaction("acme", self.income().pk)

        wallet = self.wallet()
        self.assertEqual(wallet.available_balance, Decimal("0.00"))
        self.assertEqual(wallet.locked_balance, Decimal("100.00"))
        self.assertEqual(wallet.total_earned, Decimal("100.00"))

    def test_cancelled_transaction_is_never_credited(self):
        txn = self.income()
        self.assertTrue(cancel_transaction("acme", txn.pk))
        self.assertFalse(credit_transaction("acme", txn.pk))
        self.assertEqual(self.wallet().total_earned, Decimal("0.00"))

    def test_credited_transaction_cannot_be_cancelled(self):
        txn = self.income()
        credit_transaction("acme", txn.pk)
        self.assertFalse(cancel_transaction("acme", txn.pk))

    def test_transactions_are_immutable(self):
        txn = self.income()
        txn.amount = Decimal("1000.00")
        with self.assertRaises(InvariantViolation):
            txn.save()
