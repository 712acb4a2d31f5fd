from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .entitymembership import Company


# ---------- Period (accounting period) ----------
class Period(models.Model):
    """
    Optional time bucket for the books. Once is_closed=True no document
    dated inside it can be posted or reversed into it.
    """

    # Each company keeps its own calendar; periods holding vouchers can't go
    company = models.ForeignKey(Company, on_delete=models.PROTECT)

    # Human-readable label
    name = models.CharField(max_length=50)  # "2025-07", "FY2025-Q3"

    # Inclusive date range covered by the period
    start_date = models.DateField()
    end_date = models.DateField()

    # Closed periods reject postings and reversals dated inside them
    is_closed = models.BooleanField(default=False)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # for looking up the period covering a date, and open periods
        indexes = [
            models.Index(fields=["company", "start_date"], name="period_company_start_idx"),
            models.Index(fields=["company", "is_closed"], name="period_company_closed_idx"),
        ]
        # No duplicate period names inside one company
        constraints = [
            models.UniqueConstraint(fields=["company", "name"],
                                    name="uq_company_period_name"),
        ]
        ordering = ("company", "start_date")  # chronological per company

    def __str__(self):
        return f"{self.company.slug} {self.name}"  # "acme 2025-07"

    def clean(self):
        if self.start_date >= self.end_date:
            raise ValidationError("start_date must be before end_date")

    def save(self, *args, **kwargs):
        self.full_clean()  # run validations before saving
        return super().save(*args, **kwargs)
