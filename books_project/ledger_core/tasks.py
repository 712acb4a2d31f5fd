import datetime
import logging

from celery import shared_task
from django.db import models

logger = logging.getLogger(__name__)


@shared_task  # register this function as a Celery task
def verify_ledger_integrity(company_id, as_of=None):
    """
    Re-check the ledger of one company: every booked voucher balances and
    the balance sheet ties out. Returns a JSON-friendly summary.
    """
    # import lazily to avoid circular imports at module import time
    from .models import Company, Voucher
    from .services.posting import balance_tolerance
    from .services.reports import balance_sheet

    company = Company.objects.get(pk=company_id)
    as_of = datetime.date.fromisoformat(as_of) if as_of else datetime.date.today()
    tolerance = balance_tolerance()

    vouchers = (
        Voucher.objects.for_company(company)
        .booked()
        .annotate(
            total_debit=models.Sum("ledger_lines__debit"),
            total_credit=models.Sum("ledger_lines__credit"),
        )
    )
    unbalanced = [
        v.number for v in vouchers
        if abs((v.total_debit or 0) - (v.total_credit or 0)) >= tolerance
    ]
    for number in unbalanced:
        logger.error("Voucher %s of company %s is not balanced", number, company_id)

    sheet = balance_sheet(company, as_of)
    if not sheet["totals"]["balanced"]:
        logger.error(
            "Balance sheet of company %s as of %s does not tie out (difference %s)",
            company_id, as_of, sheet["totals"]["difference"],
        )

    summary = {
        "company_id": company_id,
        "as_of": as_of.isoformat(),
        "vouchers_checked": len(vouchers),
        "unbalanced": unbalanced,
        "balance_sheet_difference": str(sheet["totals"]["difference"]),
        "ok": not unbalanced and sheet["totals"]["balanced"],
    }
    logger.info("Ledger integrity for company %s: %s", company_id, summary["ok"])
    return summary
