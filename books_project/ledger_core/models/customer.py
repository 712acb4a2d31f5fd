from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .account import Account
from .entitymembership import Company


def control_account_totals(lines, as_of=None):
    """(debits, credits) of sub-ledger lines booked on control accounts."""
    lines = lines.filter(account__is_control_account=True)
    if as_of is not None:
        lines = lines.filter(entry_date__lte=as_of)
    sums = lines.aggregate(debit=models.Sum("debit"), credit=models.Sum("credit"))
    return sums["debit"] or Decimal("0.00"), sums["credit"] or Decimal("0.00")


# ---------- Customer ----------
# Receives invoices and credit notes (AR sub-ledger)
class Customer(models.Model):
    # Multi-tenant: each customer belongs to a company
    company = models.ForeignKey(Company, on_delete=models.CASCADE)

    # Unique per company
    name = models.CharField(max_length=200)
    contact_email = models.EmailField(null=True, blank=True)

    # AR control account a credit note for this customer is credited to
    default_ar_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="customers_default_ar",
        help_text="Receivable control account credited by this customer's credit notes",
    )

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # for customer search by name
        indexes = [models.Index(fields=["company", "name"], name="customer_company_name_idx")]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"], name="uq_company_customer_name"
            ),
        ]

    def __str__(self):
        return self.name

    def receivable_balance(self, as_of=None):
        """What the customer owes: debits less credits on control accounts."""
        debit, credit = control_account_totals(self.ledgerline_set.all(), as_of)
        return debit - credit

    def clean(self):
        ar = self.default_ar_account
        if ar is None:
            return
        if ar.company_id != self.company_id:
            raise ValidationError(
                "Default AR account & customer must belong to the same company")
        if not (ar.is_control_account and ar.ac_type == "asset"):
            raise ValidationError(
                {"default_ar_account": "Must be an asset control account."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
