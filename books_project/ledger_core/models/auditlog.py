from django.conf import settings
from django.db import models

from ..managers import TenantManager
from .entitymembership import Company


# ---------- Audit / Event log ----------
class AuditLog(models.Model):
    # Kept when the company is deleted
    company = models.ForeignKey(
        Company, null=True, blank=True, on_delete=models.SET_NULL,
    )
    # Nullable for automated actions (tasks, management commands)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL
    )
    action = models.CharField(max_length=50)  # create, post, reverse, ...
    object_type = models.CharField(max_length=100)  # "Voucher"
    object_id = models.CharField(max_length=100)
    # {"number": ..., "doc_class": ..., "status": ..., "total_amount": ...}
    changes = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # for "who did what" and timeline queries
        indexes = [
            models.Index(fields=["company", "user"], name="audit_company_user_idx"),
            models.Index(fields=["company", "created_at"], name="audit_company_created_idx"),
        ]

    def __str__(self):
        return (
            f"[{self.created_at:%Y-%m-%d %H:%M}] {self.user} {self.action} "
            f"{self.object_type}({self.object_id})"
        )
