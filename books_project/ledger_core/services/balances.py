"""
Balance aggregation over posted ledger lines.

Raw balance = sum(credit) - sum(debit). Credit-natural accounts (liability,
equity, revenue) come out positive, debit-natural ones (asset, cost of sales,
expense) negative; reports flip the sign per account type when presenting.
"""
from dataclasses import dataclass
from decimal import Decimal

from django.db.models import Sum

from ..models import LedgerLine

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class AccountBalance:
    account_code: str
    balance: Decimal


@dataclass(frozen=True)
class BalanceWindow:
    account_code: str
    opening_balance: Decimal
    closing_balance: Decimal

    @property
    def movement(self):
        return self.closing_balance - self.opening_balance


def raw_totals(company, *, before=None, up_to=None, account_codes=None):
    """{account code: raw balance} for lines dated < before and/or <= up_to."""
    lines = LedgerLine.objects.for_company(company)
    if before is not None:
        lines = lines.filter(entry_date__lt=before)
    if up_to is not None:
        lines = lines.filter(entry_date__lte=up_to)
    if account_codes is not None:
        lines = lines.filter(account__code__in=list(account_codes))

    rows = (
        lines.values("account__code")
        .annotate(total_credit=Sum("credit"), total_debit=Sum("debit"))
        .order_by("account__code")
    )
    return {
        row["account__code"]: (row["total_credit"] or ZERO) - (row["total_debit"] or ZERO)
        for row in rows
    }


def balances(company, as_of=None, account_codes=None):
    """Point-in-time raw balance per account with posted activity."""
    totals = raw_totals(company, up_to=as_of, account_codes=account_codes)
    return [AccountBalance(code, totals[code]) for code in sorted(totals)]


def windowed_balances(company, date_from, date_to, account_codes=None):
    """Opening (before date_from) and closing (through date_to) per account."""
    opening = raw_totals(company, before=date_from, account_codes=account_codes)
    closing = raw_totals(company, up_to=date_to, account_codes=account_codes)
    return [
        BalanceWindow(code, opening.get(code, ZERO), closing.get(code, ZERO))
        for code in sorted(set(opening) | set(closing))
    ]


def window_activity(company, date_from, date_to):
    """{account code: (debits, credits)} posted inside [date_from, date_to]."""
    lines = LedgerLine.objects.for_company(company)
    if date_from is not None:
        lines = lines.filter(entry_date__gte=date_from)
    if date_to is not None:
        lines = lines.filter(entry_date__lte=date_to)
    rows = (
        lines.values("account__code")
        .annotate(total_debit=Sum("debit"), total_credit=Sum("credit"))
        .order_by("account__code")
    )
    return {
        row["account__code"]: (row["total_debit"] or ZERO, row["total_credit"] or ZERO)
        for row in rows
    }
