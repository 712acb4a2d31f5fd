from typing import Optional

from ..models import AuditLog, Company


def log_action(
    *,
    action: str,
    instance,
    user=None,
    company: Optional[Company] = None,
    changes: dict | None = None,
):
    """
    Central audit logger. Runs inside the caller's transaction, so a rolled
    back posting leaves no audit row behind.
    """
    if not company:
        company = getattr(instance, "company", None)

    AuditLog.objects.create(
        company=company,
        user=user if getattr(user, "pk", None) else None,
        action=action,
        object_type=instance.__class__.__name__,
        object_id=str(instance.pk),
        changes=changes,
    )


def voucher_changes(voucher, **extra):
    """Small JSON summary of a voucher for the audit trail."""
    summary = {
        "number": voucher.number,
        "doc_class": voucher.doc_class,
        "status": voucher.status,
        "entry_date": voucher.entry_date.isoformat(),
        "total_amount": str(voucher.total_amount),
    }
    summary.update(extra)
    return summary
