import datetime
from decimal import Decimal

from ledger_core.models import Account, Company, Customer, Invoice, Item, Supplier
from ledger_core.services import post_document, seed_default_chart

OCT_15 = datetime.date(2025, 10, 15)


def make_company(name="Test Co"):
    """Company with the default chart installed."""
    company = Company.objects.create(name=name)
    seed_default_chart(company)
    return company


def account(company, code):
    return Account.objects.for_company(company).get(code=code)


def make_customer(company, name="Acme Stores"):
    return Customer.objects.create(
        company=company,
        name=name,
        default_ar_account=account(company, "101210"),
    )


def make_supplier(company, name="Paper Mill"):
    return Supplier.objects.create(
        company=company,
        name=name,
        default_ap_account=account(company, "201010"),
    )


def make_invoice(company, customer, total="1000.00", number="INV-001"):
    return Invoice.objects.create(
        company=company,
        customer=customer,
        invoice_number=number,
        date=OCT_15,
        total=Decimal(total),
    )


def make_item(company, sku="SKU-1", on_hand="5"):
    return Item.objects.create(
        company=company,
        sku=sku,
        name="Widget",
        on_hand_quantity=Decimal(on_hand),
        default_unit_price=Decimal("50.00"),
    )


def journal_payload(date, *lines, **extra):
    """lines are (account code, debit, credit[, extra line fields])"""
    payload = {"date": str(date), "lines": []}
    for line in lines:
        code, debit, credit = line[:3]
        raw = {"accountCode": code, "debit": str(debit), "credit": str(credit)}
        if len(line) > 3:
            raw.update(line[3])
        payload["lines"].append(raw)
    payload.update(extra)
    return payload


def post_journal(company, date, *lines, **extra):
    return post_document(company, "JV", journal_payload(date, *lines, **extra))
