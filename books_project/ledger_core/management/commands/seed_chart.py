from django.core.management.base import BaseCommand, CommandError

from ledger_core.models import Company
from ledger_core.services import seed_default_chart


class Command(BaseCommand):
    help = "Install the default chart of accounts for a company."

    def add_arguments(self, parser):
        parser.add_argument("company", help="Company id or slug")

    def handle(self, *args, **options):
        ref = options["company"]
        lookup = {"pk": ref} if ref.isdigit() else {"slug": ref}
        try:
            company = Company.objects.get(**lookup)
        except Company.DoesNotExist:
            raise CommandError(f"No company '{ref}'")

        created = seed_default_chart(company)
        self.stdout.write(self.style.SUCCESS(
            f"{created} account(s) added to {company}"))
