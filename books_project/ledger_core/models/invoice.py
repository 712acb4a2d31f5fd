from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .customer import Customer
from .entitymembership import Company

INV_STATUS_CHOICES = [
    ("open", "Open"),
    ("partially_paid", "Partially paid"),
    ("paid", "Paid"),
]


class Invoice(models.Model):
    """
    Customer invoice, kept here as the counter-document that receipts and
    credit notes settle against. `amount_due` only moves through posting.
    """

    # Multi-tenant: each invoice belongs to a company
    company = models.ForeignKey(Company, on_delete=models.CASCADE)

    # Who owes the money; a customer with invoices can't be deleted
    customer = models.ForeignKey(
        Customer,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
    )
    # Unique per company ("INV-0042")
    invoice_number = models.CharField(max_length=64)
    date = models.DateField()  # issue date
    due_date = models.DateField(null=True, blank=True)

    # Derived from amount_due vs total by refresh_status()
    status = models.CharField(
        max_length=16, choices=INV_STATUS_CHOICES, default="open"
    )
    # Gross invoice amount
    total = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00")
    )
    # Unpaid / uncredited part of total
    amount_due = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00")
    )
    description = models.TextField(null=True, blank=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "invoice_number"], name="invoice_company_number_idx"),
            models.Index(fields=["company", "customer"], name="invoice_company_customer_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "invoice_number"],
                name="uq_invoice_company_number",
            ),
            models.CheckConstraint(
                condition=models.Q(amount_due__gte=0),
                name="invoice_amount_due_non_negative",
            ),
        ]

    def __str__(self):
        return f"Inv {self.invoice_number}"

    def refresh_status(self):
        if self.amount_due <= 0:
            self.status = "paid"
        elif self.amount_due < self.total:
            self.status = "partially_paid"
        else:
            self.status = "open"

    def apply_settlement(self, amount):
        """Reduce amount_due by a receipt or credit note; never below zero."""
        if amount > self.amount_due:
            raise ValidationError(
                f"Amount {amount} exceeds invoice {self.invoice_number} "
                f"amount due {self.amount_due}."
            )
        self.amount_due -= amount
        self.refresh_status()
        self.save(update_fields=["amount_due", "status"])

    def undo_settlement(self, amount):
        """Put a reversed settlement back on the invoice."""
        if self.amount_due + amount > self.total:
            raise ValidationError(
                f"Reversal would raise invoice {self.invoice_number} "
                f"amount due above its total."
            )
        self.amount_due += amount
        self.refresh_status()
        self.save(update_fields=["amount_due", "status"])

    def clean(self):
        if self.customer and self.customer.company_id != self.company_id:
            raise ValidationError("Customer must belong to the same company.")
        if self.amount_due > self.total:
            raise ValidationError("amount_due cannot exceed total.")

    def save(self, *args, **kwargs):
        # new invoices start fully due
        if not self.pk and not self.amount_due:
            self.amount_due = self.total
        if not kwargs.get("update_fields"):
            self.refresh_status()
            self.full_clean()
        return super().save(*args, **kwargs)
