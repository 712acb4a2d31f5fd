from django.core.exceptions import ValidationError
from django.db.models.signals import pre_delete
from django.dispatch import receiver

from .models import Period, Voucher

# Accounts, invoices and parties referenced by vouchers or ledger lines are
# protected by on_delete=PROTECT foreign keys. Periods carry no foreign key,
# so their guard lives here.


@receiver(pre_delete, sender=Period)
def prevent_delete_period_with_posted_vouchers(sender, instance, **kwargs):
    if (
        Voucher.objects.for_company(instance.company_id)
        .booked()
        .filter(entry_date__range=(instance.start_date, instance.end_date))
        .exists()
    ):
        raise ValidationError(
            "Cannot delete a period with posted vouchers.")
