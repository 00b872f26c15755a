# compensation/management/commands/evaluate_ranks.py

from django.core.management.base import BaseCommand

from compensation.mlm.ranks import evaluate_ranks_for_all_companies, evaluate_ranks_for_company


class Command(BaseCommand):
    help = "Evaluate auto-assign ranks (upgrade only) for active members"

    def add_arguments(self, parser):
        parser.add_argument("--company", type=str, help="Only this company_id")

    def handle(self, *args, **options):
        if options.get("company"):
            results = {options["company"]: evaluate_ranks_for_company(options["company"])}
        else:
            results = evaluate_ranks_for_all_companies()

        for company_id, summary in results.items():
            self.stdout.write(self.style.SUCCESS(
                f"✅ {company_id}: {summary['checked']} checked, {summary['upgraded']} upgraded"
            ))
