from decimal import Decimal

from django.db import models

from ..managers import TenantManager
from .entitymembership import Company


# ---------- Items (product/service) ----------
class Item(models.Model):  # Something a company sells and may take back on a credit note

    # Multi-tenant: each item belongs to a company
    company = models.ForeignKey(Company, on_delete=models.CASCADE)

    # Stock Keeping Unit, optional for pure services
    sku = models.CharField(max_length=80, null=True, blank=True)

    # Required human-readable name
    name = models.CharField(max_length=200)

    # Current stock level; credit notes put returned units back
    on_hand_quantity = models.DecimalField(
        max_digits=14,
        decimal_places=4,  # fractional units (kg, hours)
        default=0,
    )

    # Price suggested when the item is added to a document
    default_unit_price = models.DecimalField(
        max_digits=18, decimal_places=4, default=Decimal("0.00")
    )

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # for item search by name
        indexes = [models.Index(fields=["company", "name"], name="item_company_name_idx")]
        # A SKU is unique inside one company; NULL SKUs don't collide
        constraints = [
            models.UniqueConstraint(
                fields=["company", "sku"], name="uq_company_item_sku"
            )
        ]

    def __str__(self):
        return self.name
