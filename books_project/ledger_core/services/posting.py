import logging
from dataclasses import dataclass, field
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone

from ..exceptions import (AlreadyPostedDifferentPayload, LedgerReferenceError,
                          UnbalancedEntryError)
from ..models import Invoice, Item, LedgerLine, Voucher
from .audit_helper import log_action, voucher_changes
from .coa import ChartOfAccounts
from .periods import assert_period_open

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def balance_tolerance():
    return Decimal(str(settings.LEDGER.get("BALANCE_TOLERANCE", "0.01")))


@dataclass(frozen=True)
class LineSpec:
    """One side of a posting, before it becomes a LedgerLine."""

    account: object
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str = ""
    customer: object = None
    supplier: object = None


@dataclass(frozen=True)
class PostingResult:
    document_id: int
    document_number: str
    ledger_line_ids: list = field(default_factory=list)
    status: str = "posted"


# ----------------------------------------------------------
# Line validation
# ----------------------------------------------------------
def validate_lines(company, lines):
    """Shape checks every posting must pass before anything is written."""
    if len(lines) < 2:
        raise ValidationError("A posting needs at least two lines.")

    for index, line in enumerate(lines, start=1):
        if line.debit < 0 or line.credit < 0:
            raise ValidationError(f"Line {index}: amounts cannot be negative.")
        if line.debit > 0 and line.credit > 0:
            raise ValidationError(
                f"Line {index}: a line cannot carry both a debit and a credit.")
        if line.debit == 0 and line.credit == 0:
            raise ValidationError(f"Line {index}: amount is zero.")
        if line.account.company_id != company.pk:
            raise LedgerReferenceError(
                f"Line {index}: account {line.account.code} belongs to another company.")
        if not line.account.is_active:
            raise ValidationError(
                f"Line {index}: account {line.account.code} is inactive.")

        # control accounts need their sub-ledger party
        if line.account.is_control_account:
            if line.account.ac_type == "asset" and line.customer is None:
                raise ValidationError(
                    f"Line {index}: receivable control account "
                    f"{line.account.code} requires a customer.")
            if line.account.ac_type == "liability" and line.supplier is None:
                raise ValidationError(
                    f"Line {index}: payable control account "
                    f"{line.account.code} requires a supplier.")


def check_balanced(lines):
    """Return (debits, credits); raise UnbalancedEntryError if they differ."""
    total_debit = sum((line.debit for line in lines), ZERO)
    total_credit = sum((line.credit for line in lines), ZERO)
    if abs(total_debit - total_credit) >= balance_tolerance():
        raise UnbalancedEntryError(
            f"Entry not balanced: debits={total_debit}, credits={total_credit}"
        )
    return total_debit, total_credit


# ----------------------------------------------------------
# Ledger lines per document class
# ----------------------------------------------------------
def _journal_lines(voucher, coa):
    return [
        LineSpec(
            account=line.account,
            debit=line.debit,
            credit=line.credit,
            description=line.description or voucher.narration,
            customer=line.customer or voucher.customer,
            supplier=line.supplier or voucher.supplier,
        )
        for line in voucher.draft_lines.select_related("account")
    ]


def _expense_lines(voucher, coa):
    # Dr expense, Cr the account it was paid from
    return [
        LineSpec(voucher.natural_account, debit=voucher.amount,
                 description=voucher.narration, supplier=voucher.supplier),
        LineSpec(voucher.settlement_account, credit=voucher.amount,
                 description=voucher.narration, supplier=voucher.supplier),
    ]


def _income_lines(voucher, coa):
    # Dr the account money came into, Cr income (or the customer's AR)
    return [
        LineSpec(voucher.settlement_account, debit=voucher.amount,
                 description=voucher.narration, customer=voucher.customer),
        LineSpec(voucher.natural_account, credit=voucher.amount,
                 description=voucher.narration, customer=voucher.customer),
    ]


def _payment_lines(voucher, coa):
    """
    Each draft line is a gross amount (VAT included). The VAT part goes to
    input VAT, withholding tax is kept back as a liability, and the bank
    pays the rest.
    """
    lines = []
    total_gross = total_vat = total_wht = ZERO
    for line in voucher.draft_lines.select_related("account"):
        net = line.debit - line.vat_amount
        if net > 0:
            lines.append(LineSpec(
                line.account, debit=net,
                description=line.description or voucher.narration,
                supplier=line.supplier or voucher.supplier,
            ))
        total_gross += line.debit
        total_vat += line.vat_amount
        total_wht += line.wht_amount

    if total_vat > 0:
        lines.append(LineSpec(coa.role_account("input_vat"), debit=total_vat,
                              description="Input VAT", supplier=voucher.supplier))
    if total_wht > 0:
        lines.append(LineSpec(coa.role_account("wht_payable"), credit=total_wht,
                              description="Withholding tax", supplier=voucher.supplier))
    net_payable = total_gross - total_wht
    if net_payable > 0:
        lines.append(LineSpec(voucher.settlement_account, credit=net_payable,
                              description=voucher.narration, supplier=voucher.supplier))
    return lines


def _credit_note_lines(voucher, coa):
    """Dr sales returns (net of discount), Dr output VAT, Cr customer AR."""
    customer = voucher.customer
    if customer is None:
        raise ValidationError("A credit note requires a customer.")
    ar_account = customer.default_ar_account or coa.role_account("receivables_control")

    lines = []
    net_sales = voucher.subtotal - voucher.discount_total
    if net_sales > 0:
        lines.append(LineSpec(coa.role_account("sales_returns"), debit=net_sales,
                              description=f"Returns {voucher.number}", customer=customer))
    if voucher.tax_total > 0:
        lines.append(LineSpec(coa.role_account("output_vat"), debit=voucher.tax_total,
                              description=f"VAT {voucher.number}", customer=customer))
    lines.append(LineSpec(ar_account, credit=voucher.total_amount,
                          description=voucher.narration or f"Credit note {voucher.number}",
                          customer=customer))
    return lines


LINE_BUILDERS = {
    "JV": _journal_lines,
    "EXP": _expense_lines,
    "RCT": _income_lines,
    "PV": _payment_lines,
    "CN": _credit_note_lines,
}


def build_lines(voucher, coa):
    try:
        builder = LINE_BUILDERS[voucher.doc_class]
    except KeyError:
        raise ValidationError(f"{voucher.doc_class} vouchers cannot be posted directly.")
    return builder(voucher, coa)


def write_ledger_lines(voucher, lines):
    return [
        LedgerLine.objects.create(
            company=voucher.company,
            voucher=voucher,
            account=line.account,
            entry_date=voucher.entry_date,
            debit=line.debit,
            credit=line.credit,
            description=(line.description or "")[:400],
            customer=line.customer,
            supplier=line.supplier,
        )
        for line in lines
    ]


# ----------------------------------------------------------
# Side effects on sub-ledgers (same transaction as the lines)
# ----------------------------------------------------------
def _locked_invoice(voucher):
    return Invoice.objects.select_for_update().get(pk=voucher.invoice_id)


def apply_side_effects(voucher, undo=False):
    if voucher.doc_class == "CN":
        if voucher.invoice_id:
            invoice = _locked_invoice(voucher)
            if undo:
                invoice.undo_settlement(voucher.total_amount)
            else:
                invoice.apply_settlement(voucher.total_amount)
        for row in voucher.items.exclude(item__isnull=True):
            delta = -row.quantity if undo else row.quantity
            Item.objects.filter(pk=row.item_id).update(
                on_hand_quantity=models.F("on_hand_quantity") + delta
            )

    elif voucher.doc_class == "RCT" and voucher.invoice_id:
        invoice = _locked_invoice(voucher)
        if undo:
            invoice.undo_settlement(voucher.amount)
        else:
            invoice.apply_settlement(voucher.amount)


def _result(voucher):
    return PostingResult(
        document_id=voucher.pk,
        document_number=voucher.number,
        ledger_line_ids=list(
            voucher.ledger_lines.order_by("id").values_list("id", flat=True)),
        status=voucher.status,
    )


# ----------------------------------------------------------
# Post
# ----------------------------------------------------------
@transaction.atomic
def post_voucher(voucher, user=None):
    """
    Turn a draft into ledger lines. All or nothing: a failure anywhere leaves
    the draft, the lines and every side effect as they were.

    Re-posting an already posted voucher is a no-op while its lines still
    match the fingerprint taken at posting time.
    """
    pk = voucher.pk if isinstance(voucher, Voucher) else voucher
    voucher = Voucher.objects.select_for_update().filter(pk=pk).first()
    if voucher is None:
        raise LedgerReferenceError(f"Voucher {pk} does not exist.")

    if voucher.status in ("posted", "reversed"):
        if voucher.posting_fingerprint == voucher.fingerprint():
            return _result(voucher)
        raise AlreadyPostedDifferentPayload(
            f"Voucher {voucher.number} already posted with different payload."
        )
    if voucher.status != "draft":
        raise ValidationError(f"Voucher {voucher.number} is {voucher.status}.")

    assert_period_open(voucher.company, voucher.entry_date)

    coa = ChartOfAccounts.load(voucher.company)
    lines = build_lines(voucher, coa)
    validate_lines(voucher.company, lines)
    total_debit, _ = check_balanced(lines)

    created = write_ledger_lines(voucher, lines)
    apply_side_effects(voucher)

    voucher.status = "posted"
    voucher.posted_at = timezone.now()
    voucher.posted_by = user if getattr(user, "pk", None) else None
    voucher.posting_fingerprint = voucher.fingerprint()
    voucher.save(update_fields=["status", "posted_at", "posted_by",
                                "posting_fingerprint"])

    log_action(action="post", instance=voucher, user=user,
               changes=voucher_changes(voucher, debits=str(total_debit)))
    logger.info(
        "Posted %s for company %s (%d lines, %s)",
        voucher.number, voucher.company_id, len(created), total_debit,
    )
    return PostingResult(voucher.pk, voucher.number, [line.pk for line in created])


# ----------------------------------------------------------
# Reverse
# ----------------------------------------------------------
@transaction.atomic
def reverse_voucher(voucher, user=None, entry_date=None, narration=None):
    """
    Offset a posted voucher with a REV voucher carrying the mirrored lines.
    The original is flagged `reversed`; a voucher can be reversed once and a
    reversal can't be reversed.
    """
    pk = voucher.pk if isinstance(voucher, Voucher) else voucher
    original = Voucher.objects.select_for_update().filter(pk=pk).first()
    if original is None:
        raise LedgerReferenceError(f"Voucher {pk} does not exist.")
    if original.doc_class == "REV":
        raise LedgerReferenceError(
            f"{original.number} is a reversal and cannot be reversed.")
    if original.status != "posted":
        raise LedgerReferenceError(
            f"{original.number} not found or already reversed (status {original.status}).")

    entry_date = entry_date or timezone.localdate()
    assert_period_open(original.company, entry_date)

    reversal = Voucher.objects.create(
        company=original.company,
        doc_class="REV",
        number=f"REV-{original.number}",
        status="posted",
        entry_date=entry_date,
        narration=narration or f"Reversal of {original.number}",
        reference=original.number,
        customer=original.customer,
        supplier=original.supplier,
        invoice=original.invoice,
        subtotal=original.subtotal,
        discount_total=original.discount_total,
        tax_total=original.tax_total,
        total_amount=original.total_amount,
        reversal_of=original,
        created_by=user if getattr(user, "pk", None) else None,
        posted_by=user if getattr(user, "pk", None) else None,
        posted_at=timezone.now(),
    )

    mirrored = [
        LineSpec(
            account=line.account,
            debit=line.credit,
            credit=line.debit,
            description=f"Reversal: {line.description}"[:400],
            customer=line.customer,
            supplier=line.supplier,
        )
        for line in original.ledger_lines.select_related(
            "account", "customer", "supplier").order_by("id")
    ]
    check_balanced(mirrored)
    created = write_ledger_lines(reversal, mirrored)

    apply_side_effects(original, undo=True)

    reversal.posting_fingerprint = reversal.fingerprint()
    reversal.save(update_fields=["posting_fingerprint"])
    original.transition_to("reversed")

    log_action(action="reverse", instance=original, user=user,
               changes=voucher_changes(original, reversal=reversal.number))
    logger.info(
        "Reversed %s with %s for company %s",
        original.number, reversal.number, original.company_id,
    )
    return PostingResult(reversal.pk, reversal.number, [line.pk for line in created])
