# compensation/management/commands/credit_pending.py

from django.core.management.base import BaseCommand

from compensation.mlm.wallet_ledger import credit_due_transactions


class Command(BaseCommand):
    help = "Credit every pending income transaction that is due"

    def add_arguments(self, parser):
        parser.add_argument("--company", type=str, help="Only this company_id")

    def handle(self, *args, **options):
        credited = credit_due_transactions(company_id=options.get("company"))
        self.stdout.write(self.style.SUCCESS(f"✅ {credited} transactions credited"))
