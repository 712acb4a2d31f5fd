"""
Financial statements derived from raw balances.

All four reports read the same aggregation (services.balances) and the same
classification (services.coa). They differ only in the window they read and
in the sign table applied when presenting amounts. Accounts that cannot be
classified are left out of the statement and listed under "excluded".
"""
import logging
from collections import OrderedDict
from decimal import Decimal

from django.core.exceptions import ValidationError

from . import coa as chart
from .balances import ZERO, balances, window_activity, windowed_balances
from .posting import balance_tolerance

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
CENT = Decimal("0.01")

# presented amount = raw balance x sign
SIGNS = {
    "balance_sheet": {"asset": -1, "liability": 1, "equity": 1},
    "profit_and_loss": {"revenue": 1, "cost_of_sales": -1, "expense": -1},
    # working-capital and other deltas enter the cash flow as they are:
    # an asset increase (raw down) is a use of cash, a liability increase a source
    "cash_flow": {t: 1 for t in chart.AC_TYPE_ORDER},
}

CASH_FLOW_SECTIONS = (
    (chart.OPERATING, "Operating Activities"),
    (chart.INVESTING, "Investing Activities"),
    (chart.FINANCING, "Financing Activities"),
)


def present(raw, ac_type, report):
    return raw * SIGNS[report][ac_type]


def _check_window(date_from, date_to):
    if date_from and date_to and date_from > date_to:
        raise ValidationError("'from' date must not be after 'to' date.")


def _classify_all(coa, codes, report):
    classified, excluded = {}, []
    for code in codes:
        result = coa.classify(code)
        if result is None:
            excluded.append(code)
        else:
            classified[code] = result
    if excluded:
        logger.warning(
            "%s for company %s: %d unclassified account(s) excluded: %s",
            report, coa.company.pk, len(excluded), ", ".join(excluded),
        )
    return classified, excluded


def _grouped(rows, classified, types, amount_key):
    """Nest rows into sections by type, then groups by sub-type."""
    sections = OrderedDict(
        (t, {"type": t, "label": chart.TYPE_LABELS[t], "groups": OrderedDict()})
        for t in types
    )
    for row in rows:
        cls = classified.get(row["account_code"]) if row["account_code"] else row["_class"]
        section = sections[cls.ac_type]
        group = section["groups"].setdefault(cls.sub_type, {
            "sub_type": cls.sub_type,
            "label": chart.SUB_TYPE_LABELS.get(cls.sub_type, cls.sub_type.replace("_", " ").title()),
            "rows": [],
        })
        row.pop("_class", None)
        group["rows"].append(row)

    result = []
    for section in sections.values():
        groups = list(section["groups"].values())
        for group in groups:
            for key in amount_key:
                group[key] = sum((r[key] for r in group["rows"]), ZERO)
        section["groups"] = groups
        for key in amount_key:
            section[key] = sum((g[key] for g in groups), ZERO)
        result.append(section)
    return result


# ----------------------------------------------------------
# Trial balance
# ----------------------------------------------------------
def _split(raw):
    """(debit, credit) columns for a raw balance."""
    return (-raw if raw < 0 else ZERO), (raw if raw > 0 else ZERO)


def trial_balance(company, date_from, date_to):
    """
    Trial balance for [from, to].

    Balance sheet accounts are shown at their closing balance on `to` and
    profit and loss accounts at their movement inside the window. Profit
    earned before `from` is carried as a synthetic opening retained earnings
    row, so debits equal credits without closing entries.

    Every account posted to inside the window is listed, including one whose
    debits and credits net to zero. Balance sheet accounts with a balance
    brought forward are listed too.
    """
    _check_window(date_from, date_to)
    coa = chart.ChartOfAccounts.load(company)
    windows = windowed_balances(company, date_from, date_to)
    activity = window_activity(company, date_from, date_to)
    classified, excluded = _classify_all(coa, [w.account_code for w in windows], "trial_balance")

    rows = []
    earlier_profit = ZERO
    for window in windows:
        cls = classified.get(window.account_code)
        if cls is None:
            continue
        period_debit, period_credit = activity.get(window.account_code, (ZERO, ZERO))
        if cls.ac_type in chart.PROFIT_AND_LOSS_TYPES:
            earlier_profit += window.opening_balance
            amount = window.movement
            if window.account_code not in activity:
                continue
        else:
            amount = window.closing_balance
            if window.account_code not in activity and amount == 0:
                continue
        debit, credit = _split(amount)
        rows.append({
            "account_code": window.account_code,
            "name": coa.name(window.account_code),
            "opening_balance": window.opening_balance,
            "movement": window.movement,
            "closing_balance": window.closing_balance,
            "period_debit": period_debit,
            "period_credit": period_credit,
            "debit": debit,
            "credit": credit,
        })

    if earlier_profit != 0:
        debit, credit = _split(earlier_profit)
        rows.append({
            "account_code": None,
            "name": "Retained Earnings (opening)",
            "opening_balance": earlier_profit,
            "movement": ZERO,
            "closing_balance": earlier_profit,
            "period_debit": ZERO,
            "period_credit": ZERO,
            "debit": debit,
            "credit": credit,
            "synthetic": True,
            "_class": chart.Classification("equity", "retained_earnings", chart.FINANCING),
        })

    sections = _grouped(rows, classified, chart.AC_TYPE_ORDER, ("debit", "credit"))
    total_debit = sum((s["debit"] for s in sections), ZERO)
    total_credit = sum((s["credit"] for s in sections), ZERO)
    difference = total_debit - total_credit
    return {
        "from": date_from,
        "to": date_to,
        "sections": sections,
        "totals": {
            "debit": total_debit,
            "credit": total_credit,
            "difference": difference,
            "balanced": abs(difference) < balance_tolerance(),
        },
        "excluded": excluded,
    }


# ----------------------------------------------------------
# Balance sheet
# ----------------------------------------------------------
def balance_sheet(company, as_of):
    """
    Assets = -raw, liabilities and equity = raw. Profit not yet closed into
    equity is shown as a synthetic Retained Earnings line, so the statement
    ties out without closing entries.
    """
    coa = chart.ChartOfAccounts.load(company)
    raw = balances(company, as_of)
    classified, excluded = _classify_all(coa, [b.account_code for b in raw], "balance_sheet")

    rows = []
    totals = {t: ZERO for t in chart.BALANCE_SHEET_TYPES}
    unclosed_profit = ZERO
    for item in raw:
        cls = classified.get(item.account_code)
        if cls is None:
            continue
        if cls.ac_type in chart.PROFIT_AND_LOSS_TYPES:
            unclosed_profit += item.balance
            continue
        amount = present(item.balance, cls.ac_type, "balance_sheet")
        totals[cls.ac_type] += amount
        if abs(amount) < CENT:
            continue
        rows.append({
            "account_code": item.account_code,
            "name": coa.name(item.account_code),
            "amount": amount,
        })

    totals["equity"] += unclosed_profit
    if abs(unclosed_profit) >= CENT:
        rows.append({
            "account_code": None,
            "name": "Retained Earnings (unclosed profit)",
            "amount": unclosed_profit,
            "synthetic": True,
            "_class": chart.Classification("equity", "retained_earnings", chart.FINANCING),
        })

    sections = _grouped(rows, classified, chart.BALANCE_SHEET_TYPES, ("amount",))
    # section totals include sub-cent balances hidden from the rows
    for section in sections:
        section["amount"] = totals[section["type"]]

    liabilities_and_equity = totals["liability"] + totals["equity"]
    difference = totals["asset"] - liabilities_and_equity
    return {
        "as_of": as_of,
        "sections": sections,
        "totals": {
            "assets": totals["asset"],
            "liabilities": totals["liability"],
            "equity": totals["equity"],
            "retained_earnings": unclosed_profit,
            "liabilities_and_equity": liabilities_and_equity,
            "difference": difference,
            "balanced": abs(difference) < balance_tolerance(),
        },
        "excluded": excluded,
    }


# ----------------------------------------------------------
# Profit & loss
# ----------------------------------------------------------
def _percent(amount, revenue):
    if not revenue:
        return None
    return (amount / revenue * HUNDRED).quantize(CENT)


def profit_and_loss(company, date_from, date_to):
    _check_window(date_from, date_to)
    coa = chart.ChartOfAccounts.load(company)
    windows = [w for w in windowed_balances(company, date_from, date_to) if w.movement != 0]
    classified, excluded = _classify_all(coa, [w.account_code for w in windows], "profit_and_loss")

    rows = []
    for window in windows:
        cls = classified.get(window.account_code)
        if cls is None or cls.ac_type not in chart.PROFIT_AND_LOSS_TYPES:
            continue
        rows.append({
            "account_code": window.account_code,
            "name": coa.name(window.account_code),
            "amount": present(window.movement, cls.ac_type, "profit_and_loss"),
        })

    sections = _grouped(rows, classified, chart.PROFIT_AND_LOSS_TYPES, ("amount",))
    by_type = {s["type"]: s["amount"] for s in sections}
    revenue = by_type["revenue"]
    cost_of_sales = by_type["cost_of_sales"]
    expenses = by_type["expense"]
    gross_profit = revenue - cost_of_sales
    net_profit = gross_profit - expenses

    for section in sections:
        section["percentage"] = _percent(section["amount"], revenue)
        for group in section["groups"]:
            for row in group["rows"]:
                row["percentage"] = _percent(row["amount"], revenue)

    return {
        "from": date_from,
        "to": date_to,
        "sections": sections,
        "totals": {
            "revenue": revenue,
            "cost_of_sales": cost_of_sales,
            "gross_profit": gross_profit,
            "expenses": expenses,
            "net_profit": net_profit,
            "gross_margin": _percent(gross_profit, revenue),
            "net_margin": _percent(net_profit, revenue),
        },
        "excluded": excluded,
    }


# ----------------------------------------------------------
# Cash flow (indirect method)
# ----------------------------------------------------------
def cash_flow(company, date_from, date_to):
    """
    Start from net income, add the period movement of every non-cash
    balance sheet account by activity, and check the result against the
    actual change in cash and bank accounts.
    """
    _check_window(date_from, date_to)
    coa = chart.ChartOfAccounts.load(company)
    windows = windowed_balances(company, date_from, date_to)
    classified, excluded = _classify_all(coa, [w.account_code for w in windows], "cash_flow")

    cash_accounts = []
    opening_cash = closing_cash = net_income = ZERO
    items = {activity: [] for activity, _ in CASH_FLOW_SECTIONS}

    for window in windows:
        cls = classified.get(window.account_code)
        if cls is None:
            continue
        if cls.is_cash:
            opening = present(window.opening_balance, "asset", "balance_sheet")
            closing = present(window.closing_balance, "asset", "balance_sheet")
            opening_cash += opening
            closing_cash += closing
            cash_accounts.append({
                "account_code": window.account_code,
                "name": coa.name(window.account_code),
                "opening_balance": opening,
                "closing_balance": closing,
            })
        elif cls.activity == chart.NET_INCOME:
            net_income += window.movement
        elif window.movement != 0:
            items[cls.activity].append({
                "account_code": window.account_code,
                "name": coa.name(window.account_code),
                "amount": present(window.movement, cls.ac_type, "cash_flow"),
            })

    items[chart.OPERATING].insert(0, {
        "account_code": None, "name": "Net Income", "amount": net_income,
    })

    sections = []
    section_totals = {}
    for activity, label in CASH_FLOW_SECTIONS:
        total = sum((i["amount"] for i in items[activity]), ZERO)
        section_totals[activity] = total
        sections.append({
            "activity": activity,
            "label": label,
            "items": items[activity],
            "total": total,
        })

    net_cash_flow = sum(section_totals.values(), ZERO)
    difference = opening_cash + net_cash_flow - closing_cash
    reconciled = abs(difference) < balance_tolerance()
    if not reconciled:
        logger.warning(
            "Cash flow for company %s %s..%s does not reconcile (difference %s)",
            company.pk, date_from, date_to, difference,
        )

    return {
        "from": date_from,
        "to": date_to,
        "sections": sections,
        "totals": {
            "net_income": net_income,
            "operating": section_totals[chart.OPERATING],
            "investing": section_totals[chart.INVESTING],
            "financing": section_totals[chart.FINANCING],
            "net_cash_flow": net_cash_flow,
            "opening_cash": opening_cash,
            "closing_cash": closing_cash,
            "difference": difference,
            "reconciled": reconciled,
        },
        "cash_accounts": cash_accounts,
        "excluded": excluded,
    }
