import hashlib
import json
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager, VoucherManager
from .account import Account
from .customer import Customer
from .entitymembership import Company
from .invoice import Invoice
from .item import Item
from .vendor import Supplier

CENT = Decimal("0.01")

DOC_CLASSES = [
    ("JV", "Journal voucher"),
    ("CN", "Credit note"),
    ("EXP", "Expense voucher"),
    ("RCT", "Income voucher"),
    ("PV", "Payment voucher"),
    ("REV", "Reversal"),
]

VOUCHER_STATUS = [
    ("draft", "Draft"),  # editable / deletable, no ledger lines yet
    ("posted", "Posted"),  # ledger lines written, immutable
    ("reversed", "Reversed"),  # offset by a REV voucher, kept for history
    ("cancelled", "Cancelled"),  # abandoned draft
]

ALLOWED_TRANSITIONS = {
    "draft": ["posted", "cancelled"],
    "posted": ["reversed"],
    "reversed": [],
    "cancelled": [],
}

# Header fields frozen once a voucher leaves draft
FROZEN_FIELDS = (
    "doc_class", "number", "entry_date", "narration", "customer_id",
    "supplier_id", "invoice_id", "natural_account_id",
    "settlement_account_id", "amount", "total_amount",
)


def money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


# ---------- Voucher (document header) ----------
class Voucher(models.Model):
    """
    Header of every business document that reaches the ledger.

    Journal and payment vouchers carry editable `draft_lines`; credit notes
    carry `items`; expense and income vouchers carry a natural account, a
    settlement account and an amount. Ledger lines are only written when the
    voucher is posted.
    """

    # Multi-tenant: each voucher belongs to a company
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    doc_class = models.CharField(max_length=8, choices=DOC_CLASSES)
    # Unique per company: "JV-202510-0001", "CN-00001", "REV-JV-202510-0001"
    number = models.CharField(max_length=64)
    status = models.CharField(
        max_length=10, choices=VOUCHER_STATUS, default="draft"
    )
    # Ledger lines inherit this date; it also picks the number's period tag
    entry_date = models.DateField()
    narration = models.TextField(blank=True, default="")
    reference = models.CharField(max_length=200, blank=True, default="")

    # Sub-ledger and counter-document references
    customer = models.ForeignKey(
        Customer, null=True, blank=True, on_delete=models.PROTECT
    )
    supplier = models.ForeignKey(
        Supplier, null=True, blank=True, on_delete=models.PROTECT
    )
    invoice = models.ForeignKey(
        Invoice, null=True, blank=True, on_delete=models.PROTECT,
        related_name="vouchers",
    )

    # Expense: natural = expense account, settlement = paid-from account
    # Income:  natural = income/AR account, settlement = received-into account
    # Payment: settlement = bank/cash account the payment leaves from
    natural_account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT,
        related_name="+",
    )
    settlement_account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT,
        related_name="+",
    )
    amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00")
    )
    payment_method = models.CharField(max_length=40, blank=True, default="")

    # Server-computed money derivations
    subtotal = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    discount_total = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    tax_total = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    total_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # Set on REV vouchers; voucher.reversal gives the offsetting document
    reversal_of = models.OneToOneField(
        "self", null=True, blank=True, on_delete=models.PROTECT,
        related_name="reversal",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="+",
    )
    posted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    posted_at = models.DateTimeField(null=True, blank=True)
    # Fingerprint-based idempotency for re-posting
    posting_fingerprint = models.CharField(max_length=64, null=True, blank=True)

    # Tenant scoping plus booked() / drafts()
    objects = VoucherManager()

    class Meta:
        # for status, date-range and per-class listings
        indexes = [
            models.Index(fields=["company", "status"], name="voucher_company_status_idx"),
            models.Index(fields=["company", "entry_date"], name="voucher_company_date_idx"),
            models.Index(fields=["company", "doc_class"], name="voucher_company_class_idx"),
        ]
        constraints = [
            # numbers never repeat inside a company
            models.UniqueConstraint(
                fields=["company", "number"], name="uq_voucher_company_number"
            ),
        ]

    def __str__(self):
        return f"{self.number} {self.entry_date} [{self.status}]"

    @property
    def is_draft(self):
        return self.status == "draft"

    def compute_totals(self):
        """Return debits, credits sums of the posted ledger lines"""
        aggs = self.ledger_lines.aggregate(
            total_debit=models.Sum("debit"),
            total_credit=models.Sum("credit"),
        )
        return (
            aggs["total_debit"] or Decimal("0.00"),
            aggs["total_credit"] or Decimal("0.00"),
        )

    def is_balanced(self, tolerance=CENT):
        debit, credit = self.compute_totals()
        return abs(debit - credit) < tolerance

    def _posting_payload(self):
        """
        Deterministic JSON of what was posted: same lines, same string.
        """
        lines = [
            {
                "acct": line.account_id,
                "debit": str(line.debit),
                "credit": str(line.credit),
            }
            for line in self.ledger_lines.order_by("id")
        ]
        payload = {
            "company": self.company_id,
            "number": self.number,
            "date": self.entry_date.isoformat(),
            "lines": lines,
        }
        return json.dumps(payload, separators=(",", ":"), sort_keys=True)

    def fingerprint(self):
        return hashlib.sha256(self._posting_payload().encode()).hexdigest()

    def clean(self):
        for field in ("customer", "supplier", "invoice",
                      "natural_account", "settlement_account"):
            ref = getattr(self, field)
            if ref is not None and ref.company_id != self.company_id:
                raise ValidationError(
                    f"{field} must belong to the same company as the voucher."
                )

    def save(self, *args, **kwargs):
        if self.pk:
            orig = Voucher.objects.filter(pk=self.pk).first()
            if orig and orig.status != self.status:
                if self.status not in ALLOWED_TRANSITIONS[orig.status]:
                    raise ValidationError(
                        f"Cannot go from {orig.status} to {self.status}")
            if orig and orig.status != "draft":
                changed = [
                    f for f in FROZEN_FIELDS
                    if getattr(orig, f) != getattr(self, f)
                ]
                if changed:
                    raise ValidationError(
                        f"Cannot modify {changed} on a {orig.status} voucher."
                    )
        # number uniqueness is left to the database (IntegrityError -> retry)
        self.full_clean(validate_unique=False, validate_constraints=False)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if self.status not in ("draft", "cancelled"):
            raise ValidationError(
                f"Only draft vouchers can be deleted ({self.number} is {self.status})."
            )
        return super().delete(*args, **kwargs)

    def transition_to(self, new_status):
        if new_status not in ALLOWED_TRANSITIONS.get(self.status, []):
            raise ValidationError(
                f"Cannot go from {self.status} to {new_status}")
        self.status = new_status
        self.save(update_fields=["status"])


class _DraftChildMixin:
    """Children of a voucher may only change while the voucher is a draft."""

    def _check_draft(self):
        status = (
            Voucher.objects.filter(pk=self.voucher_id)
            .values_list("status", flat=True).first()
        )
        if status is not None and status != "draft":
            raise ValidationError(
                "Lines and items can only change while the voucher is a draft."
            )

    def delete(self, *args, **kwargs):
        self._check_draft()
        return super().delete(*args, **kwargs)


# ---------- Draft lines (journal / payment vouchers) ----------
class VoucherLine(_DraftChildMixin, models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    voucher = models.ForeignKey(
        Voucher, on_delete=models.CASCADE, related_name="draft_lines"
    )
    position = models.PositiveIntegerField(default=0)
    account = models.ForeignKey(Account, on_delete=models.PROTECT)
    description = models.CharField(max_length=400, blank=True, default="")
    debit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # payment voucher lines: VAT included in debit, WHT withheld from it
    vat_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    wht_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    customer = models.ForeignKey(
        Customer, null=True, blank=True, on_delete=models.PROTECT)
    supplier = models.ForeignKey(
        Supplier, null=True, blank=True, on_delete=models.PROTECT)

    objects = TenantManager()

    class Meta:
        ordering = ("voucher", "position", "id")

    def __str__(self):
        return f"{self.account.code} D:{self.debit} C:{self.credit}"

    def clean(self):
        if min(self.debit, self.credit, self.vat_amount, self.wht_amount) < 0:
            raise ValidationError("Line amounts cannot be negative.")
        if self.debit > 0 and self.credit > 0:
            raise ValidationError(
                "A line cannot carry both a debit and a credit.")
        if self.account.company_id != self.company_id or (
            self.voucher.company_id != self.company_id
        ):
            raise ValidationError(
                "Line, voucher and account must belong to the same company.")

    def save(self, *args, **kwargs):
        self._check_draft()
        self.full_clean()
        return super().save(*args, **kwargs)


# ---------- Credit note items ----------
class VoucherItem(_DraftChildMixin, models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    voucher = models.ForeignKey(
        Voucher, on_delete=models.CASCADE, related_name="items"
    )
    position = models.PositiveIntegerField(default=0)
    item = models.ForeignKey(
        Item, null=True, blank=True, on_delete=models.PROTECT)
    description = models.CharField(max_length=400, blank=True, default="")
    quantity = models.DecimalField(max_digits=14, decimal_places=4)
    unit_price = models.DecimalField(max_digits=18, decimal_places=4)
    discount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # percentage; when set, tax_amount is derived from it
    tax_rate = models.DecimalField(
        max_digits=7, decimal_places=4, null=True, blank=True)
    tax_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    line_subtotal = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    line_total = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))

    objects = TenantManager()

    class Meta:
        ordering = ("voucher", "position", "id")
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="voucher_item_quantity_positive",
            ),
        ]

    def __str__(self):
        return f"{self.description or self.item} x{self.quantity}"

    def compute(self):
        """subtotal = qty x price; total = subtotal - discount + tax"""
        self.line_subtotal = money(self.quantity * self.unit_price)
        if self.tax_rate is not None:
            taxable = self.line_subtotal - self.discount
            self.tax_amount = money(taxable * self.tax_rate / Decimal("100"))
        self.line_total = self.line_subtotal - self.discount + self.tax_amount

    def clean(self):
        if self.unit_price < 0 or self.discount < 0 or self.tax_amount < 0:
            raise ValidationError("Item amounts cannot be negative.")
        if self.discount > self.line_subtotal:
            raise ValidationError("Discount cannot exceed the line subtotal.")
        if self.item and self.item.company_id != self.company_id:
            raise ValidationError("Item must belong to the same company.")

    def save(self, *args, **kwargs):
        self._check_draft()
        self.compute()
        self.full_clean()
        return super().save(*args, **kwargs)


# ---------- Ledger lines (posted footprint) ----------
class LedgerLine(models.Model):
    """
    Append-only. Written by the posting service only, never updated or
    deleted; a reversal adds an offsetting voucher instead.
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    voucher = models.ForeignKey(
        Voucher, on_delete=models.PROTECT, related_name="ledger_lines"
    )
    account = models.ForeignKey(Account, on_delete=models.PROTECT)
    entry_date = models.DateField()
    debit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    description = models.CharField(max_length=400, blank=True, default="")
    customer = models.ForeignKey(
        Customer, null=True, blank=True, on_delete=models.PROTECT)
    supplier = models.ForeignKey(
        Supplier, null=True, blank=True, on_delete=models.PROTECT)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "account", "entry_date"],
                         name="ll_company_account_date_idx"),
            models.Index(fields=["company", "entry_date"], name="ll_company_date_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(debit__gte=0) & models.Q(credit__gte=0),
                name="ll_non_negative_amounts",
            ),
            models.CheckConstraint(
                condition=~(models.Q(debit=0) & models.Q(credit=0)),
                name="ll_amount_nonzero",
            ),
            models.CheckConstraint(
                condition=models.Q(debit=0) | models.Q(credit=0),
                name="ll_debit_xor_credit",
            ),
        ]

    def __str__(self):
        return f"{self.voucher_id} | {self.account.code} | D:{self.debit} C:{self.credit}"

    def clean(self):
        if self.debit < 0 or self.credit < 0:
            raise ValidationError("Ledger amounts cannot be negative.")
        if (self.debit > 0) == (self.credit > 0):
            raise ValidationError(
                "Exactly one of debit or credit must be non-zero.")
        if self.account.company_id != self.company_id:
            raise ValidationError(
                "Ledger line account must belong to the line's company.")
        if self.voucher.company_id != self.company_id:
            raise ValidationError(
                "Ledger line voucher must belong to the line's company.")

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValidationError("Ledger lines are immutable once posted.")
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(
            "Ledger lines cannot be deleted; reverse the voucher instead.")
