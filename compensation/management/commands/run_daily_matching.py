# compensation/management/commands/run_daily_matching.py

from django.core.management.base import BaseCommand

from compensation.exceptions import ConfigurationError
from compensation.mlm.matching import run_matching_sweep
from compensation.models import Company


class Command(BaseCommand):
    help = "Re-run binary matching for every node with volume on both legs (once per company per day)"

    def add_arguments(self, parser):
        parser.add_argument("--company", type=str, help="Only this company_id")

    def handle(self, *args, **options):
        companies = Company.objects.filter(is_active=True)
        if options.get("company"):
            companies = companies.filter(company_id=options["company"])

        for company_id in companies.values_list("company_id", flat=True):
            try:
                summary = run_matching_sweep(company_id)
            except ConfigurationError as e:
                self.stdout.write(self.style.ERROR(f"❌ {company_id}: {e}"))
                continue

            if summary.get("skipped"):
                self.stdout.write(self.style.WARNING(f"⛔ {company_id}: already ran today"))
                continue

            self.stdout.write(self.style.SUCCESS(
                f"✅ {company_id}: {summary['processed']} nodes, {summary['pairs']} pairs, income {summary['income']}"
            ))
            for error in summary["errors"]:
                self.stdout.write(self.style.WARNING(f"   {error}"))
