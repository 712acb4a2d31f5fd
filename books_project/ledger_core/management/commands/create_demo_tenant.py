import datetime
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from ledger_core.models import Account, Company, Customer, Invoice, Item, Supplier
from ledger_core.services import (create_expense_voucher, post_document,
                                  post_voucher, seed_default_chart)

User = get_user_model()


class Command(BaseCommand):
    help = "Create a demo company with a chart of accounts and a few posted vouchers."

    def add_arguments(self, parser):
        parser.add_argument("--company-name", default="Demo Company")
        parser.add_argument("--username", default="demo")
        parser.add_argument("--password", default="demo123")

    @transaction.atomic
    def handle(self, *args, **options):
        company = Company.objects.create(name=options["company_name"])
        self.stdout.write(self.style.SUCCESS(f"Created company: {company} (id={company.pk})"))

        user, created = User.objects.get_or_create(
            username=options["username"],
            defaults={"email": f"{options['username']}@example.com"},
        )
        if created:
            user.set_password(options["password"])
        user.default_company = company
        user.save()
        company.owner = user
        company.save(update_fields=["owner"])

        seed_default_chart(company)
        ar = Account.objects.get(company=company, code="101210")
        ap = Account.objects.get(company=company, code="201010")
        customer = Customer.objects.create(company=company, name="Acme Stores", default_ar_account=ar)
        supplier = Supplier.objects.create(company=company, name="Office Depot", default_ap_account=ap)
        widget = Item.objects.create(company=company, sku="W-1", name="Widget",
                                     on_hand_quantity=Decimal("100"),
                                     default_unit_price=Decimal("50.00"))

        today = datetime.date.today()
        first = today.replace(day=1)

        # capital paid in, one sale on credit and a partial return
        post_document(company, "JV", {
            "date": first.isoformat(),
            "narration": "Share capital paid in",
            "lines": [
                {"accountCode": "101120", "debit": "10000.00"},
                {"accountCode": "301000", "credit": "10000.00"},
            ],
        }, user=user)
        post_document(company, "JV", {
            "date": first.isoformat(),
            "narration": "Invoice INV-0001",
            "lines": [
                {"accountCode": "101210", "debit": "1000.00", "customerId": customer.pk},
                {"accountCode": "401000", "credit": "1000.00"},
            ],
        }, user=user)
        invoice = Invoice.objects.create(company=company, customer=customer,
                                         invoice_number="INV-0001", date=first,
                                         total=Decimal("1000.00"))
        post_document(company, "CN", {
            "date": today.isoformat(),
            "customerId": customer.pk,
            "invoiceId": invoice.pk,
            "reason": "Damaged goods",
            "items": [{"itemId": widget.pk, "quantity": "2", "unitPrice": "50.00"}],
        }, user=user)

        rent = create_expense_voucher(company, {
            "date": today.isoformat(),
            "expenseAccountCode": "502100",
            "paymentAccountCode": "101120",
            "amount": "750.00",
            "supplierId": supplier.pk,
            "narration": "Office rent",
        }, user=user)
        post_voucher(rent, user=user)

        self.stdout.write(self.style.SUCCESS(
            f"Demo data ready for {company}; log in as {user.username}"))
