import logging
from dataclasses import dataclass

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from ..exceptions import ConflictError
from ..models import DocumentSequence, Voucher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NumberFormat:
    prefix: str
    period_format: str | None  # strftime pattern of the period tag
    width: int

    def stem(self, period_tag=""):
        if self.period_format:
            return f"{self.prefix}-{period_tag}-"
        return f"{self.prefix}-"

    def render(self, period_tag, seq):
        return f"{self.stem(period_tag)}{str(seq).zfill(self.width)}"


NUMBER_FORMATS = {
    "JV": NumberFormat("JV", "%Y%m", 4),  # JV-202510-0001
    "CN": NumberFormat("CN", None, 5),  # CN-00001
    "EXP": NumberFormat("EXP", "%Y%m", 4),  # EXP-202510-0001
    "RCT": NumberFormat("RCT", "%Y%m%d", 4),  # RCT-20251019-0001
    "PV": NumberFormat("PV", None, 5),  # PV-00001
}


def _format_for(doc_class):
    try:
        return NUMBER_FORMATS[doc_class]
    except KeyError:
        raise ValidationError(f"No numbering format for document class {doc_class}.")


def period_tag_for(doc_class, date):
    fmt = _format_for(doc_class)
    return date.strftime(fmt.period_format) if fmt.period_format else ""


def highest_existing(company, doc_class, period_tag=""):
    """Largest sequence already used by a stored voucher number, or 0."""
    stem = _format_for(doc_class).stem(period_tag)
    numbers = (
        Voucher.objects.for_company(company)
        .filter(number__startswith=stem)
        .values_list("number", flat=True)
    )
    highest = 0
    for number in numbers:
        tail = number[len(stem):]
        if tail.isdigit():
            highest = max(highest, int(tail))
    return highest


@transaction.atomic
def next_number(company, doc_class, period_tag=None, resync=False):
    """
    Allocate the next number for (company, doc_class, period_tag).

    The counter row is locked for the rest of the caller's transaction, so two
    postings of the same class and period queue on it while other classes
    carry on. `resync` first lifts the counter to the highest stored number.
    """
    fmt = _format_for(doc_class)
    tag = period_tag or ""
    if fmt.period_format and not tag:
        raise ValidationError(f"{doc_class} numbers need a period tag.")
    if not fmt.period_format and tag:
        raise ValidationError(f"{doc_class} numbers do not take a period tag.")

    sequence, created = DocumentSequence.objects.get_or_create(
        company=company,
        doc_class=doc_class,
        period_tag=tag,
        defaults={"last_number": highest_existing(company, doc_class, tag)},
    )
    if created:
        logger.info(
            "Created %s sequence for company %s (period '%s') at %d",
            doc_class, company.pk, tag, sequence.last_number,
        )

    sequence = DocumentSequence.objects.select_for_update().get(pk=sequence.pk)

    if resync:
        highest = highest_existing(company, doc_class, tag)
        if highest > sequence.last_number:
            logger.warning(
                "%s sequence for company %s behind stored numbers (%d < %d); resyncing",
                doc_class, company.pk, sequence.last_number, highest,
            )
            sequence.last_number = highest

    sequence.last_number += 1
    sequence.save(update_fields=["last_number", "updated_at"])

    number = fmt.render(tag, sequence.last_number)
    logger.debug("Allocated %s for company %s", number, company.pk)
    return number


def save_with_number(voucher, attempts=2):
    """
    Number and insert a new voucher inside the caller's transaction.

    A unique violation on the number means the counter lost a race (or
    drifted behind imported data): resync and try once more, then give up
    with ConflictError. The failed attempt's number is burned, never reused.
    """
    tag = period_tag_for(voucher.doc_class, voucher.entry_date)
    for attempt in range(1, attempts + 1):
        voucher.number = next_number(
            voucher.company, voucher.doc_class, tag, resync=attempt > 1
        )
        try:
            with transaction.atomic():
                voucher.save(force_insert=True)
            return voucher
        except IntegrityError:
            taken = (
                Voucher.objects.for_company(voucher.company)
                .filter(number=voucher.number)
                .exists()
            )
            if not taken:
                raise
            logger.warning(
                "Number %s already taken for company %s (attempt %d of %d)",
                voucher.number, voucher.company.pk, attempt, attempts,
            )
            voucher.pk = None
    raise ConflictError(
        f"Could not allocate a unique {voucher.doc_class} number "
        f"after {attempts} attempts."
    )
