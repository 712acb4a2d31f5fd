"""
Payload parsing for document services.

Documents arrive as JSON-style dicts. Anything missing or malformed is a
django ValidationError raised before the first write; a reference that is
present but points at nothing in the tenant is a LedgerReferenceError.
"""
import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.core.exceptions import ValidationError
from django.utils.dateparse import parse_date

from ..exceptions import LedgerReferenceError
from ..models import Account, Customer, Invoice, Item, Supplier

CENT = Decimal("0.01")

# amounts are stored as DecimalField(max_digits=18, decimal_places=2)
MAX_AMOUNT = Decimal("1e16")


def require(payload, *fields):
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(
            {f: "This field is required." for f in missing})


def to_decimal(value, field, default=None, limit=None):
    """Parse a finite number, optionally bounded by abs(value) < limit."""
    if value in (None, ""):
        if default is None:
            raise ValidationError({field: "This field is required."})
        return default
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError({field: f"'{value}' is not a valid number."})
    if not number.is_finite():
        raise ValidationError({field: f"'{value}' is not a valid number."})
    if limit is not None and abs(number) >= limit:
        raise ValidationError({field: f"'{value}' is out of range."})
    return number


def to_money(value, field, default=None):
    """Parse a non-negative amount rounded to cents."""
    amount = to_decimal(value, field, default, limit=MAX_AMOUNT)
    if amount < 0:
        raise ValidationError({field: "Amount cannot be negative."})
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_rows(payload, field):
    """The list of objects under payload[field], empty when absent."""
    rows = payload.get(field)
    if rows in (None, ""):
        return []
    if not isinstance(rows, list):
        raise ValidationError({field: "Must be a list of objects."})
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValidationError({f"{field}[{index}]": "Must be an object."})
    return rows


def to_date(value, field="date"):
    if isinstance(value, datetime.date):
        return value
    if not value:
        raise ValidationError({field: "This field is required."})
    try:
        parsed = parse_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError({field: f"'{value}' is not a valid ISO date."})
    return parsed


# ------------------------------------
# Tenant-scoped reference resolution
# ------------------------------------
def resolve_account(company, code, field="accountCode"):
    if code in (None, ""):
        raise ValidationError({field: "This field is required."})
    account = Account.objects.for_company(company).filter(code=str(code)).first()
    if account is None:
        raise LedgerReferenceError(f"Unknown account code {code}.")
    if not account.is_active:
        raise ValidationError({field: f"Account {code} is inactive."})
    return account


def _resolve(model, company, pk, label):
    if pk in (None, ""):
        return None
    try:
        obj = model.objects.for_company(company).filter(pk=pk).first()
    except (TypeError, ValueError):
        raise ValidationError({label: f"'{pk}' is not a valid id."})
    if obj is None:
        raise LedgerReferenceError(f"Unknown {label} {pk}.")
    return obj


def resolve_customer(company, pk):
    return _resolve(Customer, company, pk, "customer")


def resolve_supplier(company, pk):
    return _resolve(Supplier, company, pk, "supplier")


def resolve_invoice(company, pk):
    return _resolve(Invoice, company, pk, "invoice")


def resolve_item(company, pk):
    return _resolve(Item, company, pk, "item")
