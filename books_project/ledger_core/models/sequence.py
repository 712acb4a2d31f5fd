from django.db import models

from ..managers import TenantManager
from .entitymembership import Company


class DocumentSequence(models.Model):
    """
    Persisted "last number issued" counter per (company, document class,
    period tag). Rows are locked with select_for_update while a number is
    allocated, so only documents of the same class and period serialize.
    """

    # Counters are never shared between companies
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    doc_class = models.CharField(max_length=8)  # "JV", "CN", "EXP", "RCT", "PV"
    # "" for classes numbered without a period ("CN-00001")
    period_tag = models.CharField(max_length=8, blank=True, default="")
    # Highest sequence issued so far; 0 before the first document
    last_number = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # One counter row per company, class and period
        constraints = [
            models.UniqueConstraint(
                fields=["company", "doc_class", "period_tag"],
                name="uq_document_sequence",
            )
        ]

    def __str__(self):
        tag = f"-{self.period_tag}" if self.period_tag else ""
        return f"{self.doc_class}{tag} @ {self.last_number}"
