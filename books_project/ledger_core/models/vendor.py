from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .account import Account
from .customer import control_account_totals
from .entitymembership import Company


# ---------- Supplier ----------
# Paid through expense and payment vouchers (AP sub-ledger)
class Supplier(models.Model):
    # Multi-tenant: each supplier belongs to a company
    company = models.ForeignKey(Company, on_delete=models.CASCADE)

    # Unique per company
    name = models.CharField(max_length=200)
    contact_email = models.EmailField(null=True, blank=True)

    # AP control account for this supplier's open balance
    default_ap_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="suppliers_default_ap",
        help_text="Payable control account holding this supplier's open balance",
    )

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # for supplier search by name
        indexes = [models.Index(fields=["company", "name"], name="supplier_company_name_idx")]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"], name="uq_company_supplier_name"
            ),
        ]

    def __str__(self):
        return self.name

    def payable_balance(self, as_of=None):
        """What is owed to the supplier: credits less debits on control accounts."""
        debit, credit = control_account_totals(self.ledgerline_set.all(), as_of)
        return credit - debit

    def clean(self):
        ap = self.default_ap_account
        if ap is None:
            return
        if ap.company_id != self.company_id:
            raise ValidationError(
                "Default AP account & supplier must belong to the same company")
        if not (ap.is_control_account and ap.ac_type == "liability"):
            raise ValidationError(
                {"default_ap_account": "Must be a liability control account."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
