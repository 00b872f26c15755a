# compensation/management/commands/close_capping_period.py

from django.core.management.base import BaseCommand

from compensation.exceptions import ConfigurationError
from compensation.mlm.matching import close_capping_period
from compensation.models import Company


class Command(BaseCommand):
    help = "Flush carried volume of capped members for the capping window that just closed"

    def add_arguments(self, parser):
        parser.add_argument("--company", type=str, help="Only this company_id")

    def handle(self, *args, **options):
        companies = Company.objects.filter(is_active=True)
        if options.get("company"):
            companies = companies.filter(company_id=options["company"])

        for company_id in companies.values_list("company_id", flat=True):
            try:
                flushed = close_capping_period(company_id)
            except ConfigurationError as e:
                self.stdout.write(self.style.ERROR(f"❌ {company_id}: {e}"))
                continue
            self.stdout.write(self.style.SUCCESS(f"✅ {company_id}: {flushed} nodes flushed"))
