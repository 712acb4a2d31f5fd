from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .entitymembership import Company

# Used to classify general ledger accounts
AC_TYPES = [
    ("asset", "Asset"),
    ("liability", "Liability"),
    ("equity", "Equity"),
    ("revenue", "Revenue"),
    ("cost_of_sales", "Cost of Sales"),
    ("expense", "Expense"),
]

# Debit-natural: asset/cost of sales/expense. Credit-natural: the rest.
DEBIT_NATURAL_TYPES = {"asset", "cost_of_sales", "expense"}


class Account(models.Model):
    """
    Ledger account in the Chart of Accounts.
    - code is unique per company and never reused; leading digits encode
      the hierarchy the classifier relies on
    - ac_type decides balance sheet vs P&L
    - sub_type is optional; blank means "derive from the code prefix"
    """

    # Each company has its own chart
    company = models.ForeignKey(Company, on_delete=models.CASCADE)

    # Natural key inside the company, e.g. "101100"
    code = models.CharField(max_length=32)
    name = models.CharField(max_length=200)  # "Cash on Hand"

    # Balance sheet types: asset/liability/equity. The rest are P&L
    ac_type = models.CharField(max_length=16, choices=AC_TYPES)
    # "cash", "receivables", "fixed_assets", ...
    sub_type = models.CharField(max_length=64, blank=True, default="")

    # Optional hierarchy (101100 Cash on Hand under 101000 Cash and Bank)
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="children",
    )

    # Soft deactivate (stop new postings) without deleting history
    is_active = models.BooleanField(default=True)
    # Accounts that must reconcile with a customer/supplier sub-ledger
    is_control_account = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # for loading the chart by type, code and parent
        indexes = [
            models.Index(fields=["company", "ac_type"], name="account_company_type_idx"),
            models.Index(fields=["company", "code"], name="account_company_code_idx"),
            models.Index(fields=["company", "parent"], name="account_company_parent_idx"),
        ]
        # One code per company
        constraints = [
            models.UniqueConstraint(
                fields=["company", "code"], name="uq_company_account_code"
            )
        ]
        ordering = ("company", "code")

    def __str__(self):
        return f"{self.code} {self.name}"

    @property
    def normal_balance(self):
        return "debit" if self.ac_type in DEBIT_NATURAL_TYPES else "credit"

    def is_used(self):
        if not self.pk:
            return False
        from .voucher import LedgerLine

        # any posted line counts, whatever its status
        return LedgerLine.objects.filter(account_id=self.pk).exists()

    def clean(self):
        if self.parent and self.parent.company_id != self.company_id:
            raise ValidationError(
                "Parent & child accounts must belong to the same company"
            )
        if self.parent_id and self.parent_id == self.pk:
            raise ValidationError("An account cannot be its own parent")

    def save(self, *args, **kwargs):
        """Codes are immutable once used; used accounts can't be disabled."""
        if self.pk:
            old = Account.objects.filter(pk=self.pk).first()
            if old and self.is_used():
                if old.code != self.code:
                    raise ValidationError(
                        "Cannot change the code of an account used in ledger lines."
                    )
                if old.is_active and not self.is_active:
                    raise ValidationError(
                        "Cannot disable an account that is used in ledger lines."
                    )
        self.full_clean()
        return super().save(*args, **kwargs)
