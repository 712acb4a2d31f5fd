"""
Draft documents.

Every document class is parsed from a JSON-style payload into header fields
plus draft lines or items. Totals are always recomputed here from the lines
and items; a total sent by the client is ignored. Drafts can be edited,
cancelled or deleted until they are posted.
"""
import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction

from ..exceptions import LedgerReferenceError
from ..models import Voucher, VoucherItem, VoucherLine
from .audit_helper import log_action, voucher_changes
from .numbering import save_with_number
from .posting import ZERO, LineSpec, check_balanced, post_voucher
from .validation import (require, resolve_account, resolve_customer,
                         resolve_invoice, resolve_item, resolve_supplier,
                         to_date, to_decimal, to_money, to_rows)

logger = logging.getLogger(__name__)

DRAFT_CLASSES = ("JV", "EXP", "RCT", "PV", "CN")


def _check_invoice_customer(invoice, customer):
    if invoice and customer and invoice.customer_id not in (None, customer.pk):
        raise ValidationError(
            f"Invoice {invoice.invoice_number} belongs to another customer.")


# ----------------------------------------------------------
# Payload parsers: payload -> (header fields, draft lines, items)
# ----------------------------------------------------------
def _parse_journal(company, payload):
    raw_lines = to_rows(payload, "lines")
    if len(raw_lines) < 2:
        raise ValidationError({"lines": "A journal voucher needs at least two lines."})

    lines = []
    for index, raw in enumerate(raw_lines):
        debit = to_money(raw.get("debit"), f"lines[{index}].debit", ZERO)
        credit = to_money(raw.get("credit"), f"lines[{index}].credit", ZERO)
        if debit > 0 and credit > 0:
            raise ValidationError(
                {f"lines[{index}]": "A line cannot carry both a debit and a credit."})
        if debit == 0 and credit == 0:
            raise ValidationError({f"lines[{index}]": "Line amount is zero."})
        lines.append({
            "account": resolve_account(company, raw.get("accountCode"),
                                       f"lines[{index}].accountCode"),
            "debit": debit,
            "credit": credit,
            "description": raw.get("description") or "",
            "customer": resolve_customer(company, raw.get("customerId")),
            "supplier": resolve_supplier(company, raw.get("supplierId")),
        })

    # reject before anything is numbered or written
    check_balanced([LineSpec(line["account"], line["debit"], line["credit"]) for line in lines])

    header = {
        "narration": payload.get("narration") or "",
        "reference": payload.get("reference") or "",
    }
    return header, lines, []


def _parse_expense(company, payload):
    require(payload, "expenseAccountCode", "paymentAccountCode", "amount")
    amount = to_money(payload.get("amount"), "amount")
    if amount == 0:
        raise ValidationError({"amount": "Amount must be greater than zero."})
    header = {
        "natural_account": resolve_account(
            company, payload.get("expenseAccountCode"), "expenseAccountCode"),
        "settlement_account": resolve_account(
            company, payload.get("paymentAccountCode"), "paymentAccountCode"),
        "amount": amount,
        "supplier": resolve_supplier(company, payload.get("supplierId")),
        "payment_method": payload.get("paymentMethod") or "",
        "narration": payload.get("narration") or payload.get("paidTo") or "",
        "reference": payload.get("reference") or "",
    }
    return header, [], []


def _parse_income(company, payload):
    require(payload, "incomeAccountCode", "receiptAccountCode", "amount")
    amount = to_money(payload.get("amount"), "amount")
    if amount == 0:
        raise ValidationError({"amount": "Amount must be greater than zero."})
    customer = resolve_customer(company, payload.get("customerId"))
    invoice = resolve_invoice(company, payload.get("invoiceId"))
    _check_invoice_customer(invoice, customer)
    if invoice and customer is None:
        customer = invoice.customer

    natural = resolve_account(company, payload.get("incomeAccountCode"), "incomeAccountCode")
    if invoice and not (natural.is_control_account and natural.ac_type == "asset"):
        raise ValidationError(
            {"incomeAccountCode": "A receipt against an invoice must credit a receivable control account."})
    header = {
        "natural_account": natural,
        "settlement_account": resolve_account(
            company, payload.get("receiptAccountCode"), "receiptAccountCode"),
        "amount": amount,
        "customer": customer,
        "invoice": invoice,
        "payment_method": payload.get("paymentMethod") or "",
        "narration": payload.get("narration") or "",
        "reference": payload.get("reference") or "",
    }
    return header, [], []


def _parse_payment(company, payload):
    require(payload, "paymentAccountCode")
    raw_lines = to_rows(payload, "lines")
    if not raw_lines:
        raise ValidationError({"lines": "A payment voucher needs at least one line."})

    lines = []
    for index, raw in enumerate(raw_lines):
        gross = to_money(raw.get("amount"), f"lines[{index}].amount")
        vat = to_money(raw.get("vatAmount"), f"lines[{index}].vatAmount", ZERO)
        wht = to_money(raw.get("whtAmount"), f"lines[{index}].whtAmount", ZERO)
        if gross == 0:
            raise ValidationError({f"lines[{index}].amount": "Amount must be greater than zero."})
        if vat > gross or wht > gross:
            raise ValidationError(
                {f"lines[{index}]": "VAT and withholding tax cannot exceed the line amount."})
        lines.append({
            "account": resolve_account(company, raw.get("accountCode"),
                                       f"lines[{index}].accountCode"),
            "debit": gross,
            "vat_amount": vat,
            "wht_amount": wht,
            "description": raw.get("description") or "",
        })

    header = {
        "settlement_account": resolve_account(
            company, payload.get("paymentAccountCode"), "paymentAccountCode"),
        "supplier": resolve_supplier(company, payload.get("supplierId")),
        "payment_method": payload.get("paymentMethod") or "",
        "narration": payload.get("narration") or "",
        "reference": payload.get("reference") or "",
    }
    return header, lines, []


def _parse_credit_note(company, payload):
    require(payload, "customerId")
    customer = resolve_customer(company, payload.get("customerId"))
    invoice = resolve_invoice(company, payload.get("invoiceId"))
    _check_invoice_customer(invoice, customer)

    raw_items = to_rows(payload, "items")
    if not raw_items:
        raise ValidationError({"items": "A credit note needs at least one item."})

    items = []
    for index, raw in enumerate(raw_items):
        quantity = to_decimal(raw.get("quantity"), f"items[{index}].quantity",
                              limit=Decimal("1e10"))
        if quantity <= 0:
            raise ValidationError({f"items[{index}].quantity": "Quantity must be positive."})
        tax_rate = raw.get("taxRate")
        items.append({
            "item": resolve_item(company, raw.get("itemId")),
            "description": raw.get("description") or raw.get("itemName") or "",
            "quantity": quantity,
            "unit_price": to_money(raw.get("unitPrice"), f"items[{index}].unitPrice"),
            "discount": to_money(raw.get("discount"), f"items[{index}].discount", ZERO),
            "tax_rate": (
                None if tax_rate in (None, "")
                else to_decimal(tax_rate, f"items[{index}].taxRate", limit=Decimal("1000"))
            ),
            "tax_amount": to_money(raw.get("tax"), f"items[{index}].tax", ZERO),
        })

    header = {
        "customer": customer,
        "invoice": invoice,
        "narration": payload.get("reason") or payload.get("narration") or "",
        "reference": payload.get("reference") or "",
    }
    return header, [], items


PARSERS = {
    "JV": _parse_journal,
    "EXP": _parse_expense,
    "RCT": _parse_income,
    "PV": _parse_payment,
    "CN": _parse_credit_note,
}


def _parse(company, doc_class, payload):
    if doc_class not in PARSERS:
        raise ValidationError(f"Unknown document class {doc_class}.")
    if not isinstance(payload, dict):
        raise ValidationError("Document payload must be an object.")
    entry_date = to_date(payload.get("date"), "date")
    header, lines, items = PARSERS[doc_class](company, payload)
    header["entry_date"] = entry_date
    return header, lines, items


def _write_children(voucher, lines, items):
    for position, line in enumerate(lines):
        VoucherLine.objects.create(
            company=voucher.company, voucher=voucher, position=position, **line)
    for position, item in enumerate(items):
        VoucherItem.objects.create(
            company=voucher.company, voucher=voucher, position=position, **item)


def recompute_totals(voucher):
    """Server-side money derivations for the header."""
    subtotal = discount = tax = total = ZERO

    if voucher.doc_class == "CN":
        for item in voucher.items.all():
            subtotal += item.line_subtotal
            discount += item.discount
            tax += item.tax_amount
            total += item.line_total
    elif voucher.doc_class == "PV":
        withheld = ZERO
        for line in voucher.draft_lines.all():
            subtotal += line.debit
            tax += line.vat_amount
            withheld += line.wht_amount
        # net payable leaves the bank
        total = subtotal - withheld
    elif voucher.doc_class == "JV":
        subtotal = total = sum(
            (line.debit for line in voucher.draft_lines.all()), Decimal("0.00"))
    else:
        subtotal = total = voucher.amount

    voucher.subtotal = subtotal
    voucher.discount_total = discount
    voucher.tax_total = tax
    voucher.total_amount = total
    voucher.save(update_fields=["subtotal", "discount_total", "tax_total", "total_amount"])
    return voucher


# ----------------------------------------------------------
# Draft lifecycle
# ----------------------------------------------------------
@transaction.atomic
def create_draft(company, doc_class, payload, user=None):
    header, lines, items = _parse(company, doc_class, payload)
    voucher = Voucher(
        company=company,
        doc_class=doc_class,
        created_by=user if getattr(user, "pk", None) else None,
        **header,
    )
    save_with_number(voucher)
    _write_children(voucher, lines, items)
    recompute_totals(voucher)

    log_action(action="create", instance=voucher, user=user,
               changes=voucher_changes(voucher))
    logger.info("Created draft %s for company %s", voucher.number, company.pk)
    return voucher


def create_journal_voucher(company, payload, user=None):
    return create_draft(company, "JV", payload, user)


def create_expense_voucher(company, payload, user=None):
    return create_draft(company, "EXP", payload, user)


def create_income_voucher(company, payload, user=None):
    return create_draft(company, "RCT", payload, user)


def create_payment_voucher(company, payload, user=None):
    return create_draft(company, "PV", payload, user)


def create_credit_note(company, payload, user=None):
    return create_draft(company, "CN", payload, user)


def _locked_draft(voucher):
    pk = voucher.pk if isinstance(voucher, Voucher) else voucher
    locked = Voucher.objects.select_for_update().filter(pk=pk).first()
    if locked is None:
        raise LedgerReferenceError(f"Voucher {pk} does not exist.")
    if not locked.is_draft:
        raise ValidationError(
            f"{locked.number} is {locked.status}; only drafts can be changed.")
    return locked


@transaction.atomic
def update_draft(voucher, payload, user=None):
    """Replace a draft's content; its number is kept."""
    voucher = _locked_draft(voucher)
    header, lines, items = _parse(voucher.company, voucher.doc_class, payload)
    for name, value in header.items():
        setattr(voucher, name, value)
    voucher.save()

    voucher.draft_lines.all().delete()
    voucher.items.all().delete()
    _write_children(voucher, lines, items)
    recompute_totals(voucher)

    log_action(action="update", instance=voucher, user=user,
               changes=voucher_changes(voucher))
    return voucher


@transaction.atomic
def cancel_draft(voucher, user=None):
    voucher = _locked_draft(voucher)
    voucher.transition_to("cancelled")
    log_action(action="cancel", instance=voucher, user=user,
               changes=voucher_changes(voucher))
    return voucher


@transaction.atomic
def delete_draft(voucher, user=None):
    voucher = _locked_draft(voucher)
    log_action(action="delete", instance=voucher, user=user,
               changes=voucher_changes(voucher))
    number = voucher.number
    voucher.delete()
    logger.info("Deleted draft %s", number)
    return number


@transaction.atomic
def post_document(company, doc_class, payload, user=None):
    """Create and post in one transaction; nothing persists on failure."""
    voucher = create_draft(company, doc_class, payload, user)
    return post_voucher(voucher, user=user)
