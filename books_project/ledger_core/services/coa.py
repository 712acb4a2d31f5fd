"""
Chart of Accounts registry.

Accounts are loaded once per tenant and classified by type and sub-type.
The account's own `ac_type` is authoritative; the sub-type comes from the
account when set, otherwise from the leading digits of its code. Each
sub-type maps to one cash-flow activity, so every report uses the same
table.
"""
import logging
from dataclasses import dataclass

from django.conf import settings
from django.db import transaction

from ..exceptions import LedgerReferenceError
from ..models import Account

logger = logging.getLogger(__name__)

CASH = "cash"
OPERATING = "operating"
INVESTING = "investing"
FINANCING = "financing"
NET_INCOME = "net_income"

AC_TYPE_ORDER = ("asset", "liability", "equity", "revenue", "cost_of_sales", "expense")
BALANCE_SHEET_TYPES = ("asset", "liability", "equity")
PROFIT_AND_LOSS_TYPES = ("revenue", "cost_of_sales", "expense")

TYPE_LABELS = {
    "asset": "Assets",
    "liability": "Liabilities",
    "equity": "Equity",
    "revenue": "Revenue",
    "cost_of_sales": "Cost of Sales",
    "expense": "Expenses",
}

# (code prefix, account type, sub-type); longest prefix wins
PREFIX_RULES = (
    ("1011", "asset", "cash"),
    ("1012", "asset", "receivables"),
    ("1013", "asset", "inventory"),
    ("1014", "asset", "other_current_assets"),
    ("102", "asset", "fixed_assets"),
    ("2010", "liability", "trade_payables"),
    ("2011", "liability", "payroll_liabilities"),
    ("2012", "liability", "tax_payables"),
    ("2013", "liability", "short_term_borrowings"),
    ("2014", "liability", "other_current_liabilities"),
    ("202", "liability", "long_term_liabilities"),
    ("3", "equity", "equity"),
    ("40", "revenue", "revenue"),
    ("501", "cost_of_sales", "cost_of_sales"),
    ("5", "expense", "operating_expenses"),
)

SUB_TYPE_ACTIVITY = {
    "cash": CASH,
    "receivables": OPERATING,
    "inventory": OPERATING,
    "other_current_assets": OPERATING,
    "fixed_assets": INVESTING,
    "trade_payables": OPERATING,
    "payroll_liabilities": OPERATING,
    "tax_payables": OPERATING,
    "short_term_borrowings": FINANCING,
    "other_current_liabilities": OPERATING,
    "long_term_liabilities": FINANCING,
    "equity": FINANCING,
    "retained_earnings": FINANCING,
}

# Sub-type and activity for codes outside the prefix table
TYPE_FALLBACK = {
    "asset": ("other_current_assets", OPERATING),
    "liability": ("other_current_liabilities", OPERATING),
    "equity": ("equity", FINANCING),
    "revenue": ("revenue", NET_INCOME),
    "cost_of_sales": ("cost_of_sales", NET_INCOME),
    "expense": ("operating_expenses", NET_INCOME),
}

SUB_TYPE_LABELS = {
    "cash": "Cash and Cash Equivalents",
    "receivables": "Trade and Other Receivables",
    "inventory": "Inventories",
    "other_current_assets": "Other Current Assets",
    "fixed_assets": "Property, Plant and Equipment",
    "trade_payables": "Trade and Other Payables",
    "payroll_liabilities": "Payroll Liabilities",
    "tax_payables": "Taxes Payable",
    "short_term_borrowings": "Short-term Borrowings",
    "other_current_liabilities": "Other Current Liabilities",
    "long_term_liabilities": "Long-term Liabilities",
    "equity": "Share Capital and Reserves",
    "retained_earnings": "Retained Earnings",
    "revenue": "Revenue",
    "cost_of_sales": "Cost of Sales",
    "operating_expenses": "Operating Expenses",
}

# Accounts the posting service books to without the caller naming them
DEFAULT_ROLE_ACCOUNTS = {
    "receivables_control": "101210",
    "payables_control": "201010",
    "input_vat": "101410",
    "output_vat": "201210",
    "wht_payable": "201220",
    "sales_returns": "402000",
    "other_income": "403000",
}

# code, name, type, sub-type, control account
DEFAULT_CHART = (
    ("101100", "Cash on Hand", "asset", "cash", False),
    ("101110", "Petty Cash", "asset", "cash", False),
    ("101120", "Bank - Current Account", "asset", "cash", False),
    ("101130", "Bank - Savings Account", "asset", "cash", False),
    ("101210", "Accounts Receivable", "asset", "receivables", True),
    ("101220", "Staff Advances", "asset", "receivables", False),
    ("101230", "Prepayments", "asset", "receivables", False),
    ("101310", "Inventory - Finished Goods", "asset", "inventory", False),
    ("101320", "Inventory - Raw Materials", "asset", "inventory", False),
    ("101410", "Input VAT Recoverable", "asset", "other_current_assets", False),
    ("101420", "Withholding Tax Receivable", "asset", "other_current_assets", False),
    ("102100", "Land and Buildings", "asset", "fixed_assets", False),
    ("102110", "Motor Vehicles", "asset", "fixed_assets", False),
    ("102120", "Office Equipment", "asset", "fixed_assets", False),
    ("102190", "Accumulated Depreciation", "asset", "fixed_assets", False),
    ("102200", "Capital Work in Progress", "asset", "fixed_assets", False),
    ("102300", "Intangible Assets", "asset", "fixed_assets", False),
    ("201010", "Accounts Payable", "liability", "trade_payables", True),
    ("201020", "Accrued Expenses", "liability", "trade_payables", False),
    ("201110", "Salaries Payable", "liability", "payroll_liabilities", False),
    ("201120", "Pension Payable", "liability", "payroll_liabilities", False),
    ("201210", "Output VAT Payable", "liability", "tax_payables", False),
    ("201220", "Withholding Tax Payable", "liability", "tax_payables", False),
    ("201230", "Income Tax Payable", "liability", "tax_payables", False),
    ("201310", "Bank Overdraft", "liability", "short_term_borrowings", False),
    ("201320", "Short-term Loans", "liability", "short_term_borrowings", False),
    ("201410", "Customer Advances", "liability", "other_current_liabilities", False),
    ("201420", "Refunds Payable", "liability", "other_current_liabilities", False),
    ("202100", "Long-term Loans", "liability", "long_term_liabilities", False),
    ("301000", "Share Capital", "equity", "equity", False),
    ("302000", "Retained Earnings", "equity", "retained_earnings", False),
    ("401000", "Sales Revenue", "revenue", "revenue", False),
    ("401100", "Service Revenue", "revenue", "revenue", False),
    ("402000", "Sales Returns and Allowances", "revenue", "revenue", False),
    ("403000", "Other Income", "revenue", "revenue", False),
    ("501000", "Cost of Goods Sold", "cost_of_sales", "cost_of_sales", False),
    ("502000", "Salaries and Wages", "expense", "operating_expenses", False),
    ("502100", "Rent Expense", "expense", "operating_expenses", False),
    ("502200", "Utilities", "expense", "operating_expenses", False),
    ("502300", "Office Supplies", "expense", "operating_expenses", False),
    ("502400", "Depreciation Expense", "expense", "operating_expenses", False),
    ("502500", "Bank Charges", "expense", "operating_expenses", False),
)


@dataclass(frozen=True)
class Classification:
    ac_type: str
    sub_type: str
    activity: str

    @property
    def is_cash(self):
        return self.activity == CASH


def prefix_rule(code):
    """Return (type, sub-type) of the longest matching prefix, or None."""
    best = None
    for prefix, ac_type, sub_type in PREFIX_RULES:
        if code.startswith(prefix) and (best is None or len(prefix) > len(best[0])):
            best = (prefix, ac_type, sub_type)
    return best[1:] if best else None


def classify_account(account):
    """Classification for one Account row, or None if its type is unknown."""
    if account.ac_type not in TYPE_FALLBACK:
        return None

    sub_type = account.sub_type
    if not sub_type:
        rule = prefix_rule(account.code)
        if rule and rule[0] == account.ac_type:
            sub_type = rule[1]
        else:
            sub_type = TYPE_FALLBACK[account.ac_type][0]

    if account.ac_type in PROFIT_AND_LOSS_TYPES:
        activity = NET_INCOME
    else:
        activity = SUB_TYPE_ACTIVITY.get(sub_type, TYPE_FALLBACK[account.ac_type][1])
    return Classification(account.ac_type, sub_type, activity)


class ChartOfAccounts:
    """Read-only view of one tenant's chart, loaded once."""

    def __init__(self, company, accounts):
        self.company = company
        self._accounts = {a.code: a for a in accounts}
        self._classes = {}

    @classmethod
    def load(cls, company):
        return cls(company, Account.objects.for_company(company).order_by("code"))

    def __contains__(self, code):
        return code in self._accounts

    def __iter__(self):
        return iter(self._accounts.values())

    def get(self, code):
        return self._accounts.get(code)

    def name(self, code):
        account = self._accounts.get(code)
        return account.name if account else ""

    def classify(self, code):
        if code not in self._classes:
            account = self._accounts.get(code)
            result = classify_account(account) if account else None
            if result is None:
                logger.warning(
                    "Account %s of company %s cannot be classified",
                    code, self.company.pk,
                )
            self._classes[code] = result
        return self._classes[code]

    def by_prefix(self, prefixes):
        if isinstance(prefixes, str):
            prefixes = (prefixes,)
        prefixes = tuple(prefixes)
        return [a for code, a in self._accounts.items() if code.startswith(prefixes)]

    def cash_codes(self):
        codes = set()
        for code in self._accounts:
            result = classify_account(self._accounts[code])
            if result and result.is_cash:
                codes.add(code)
        return codes

    def role_account(self, role):
        overrides = settings.LEDGER.get("ROLE_ACCOUNTS") or {}
        code = overrides.get(role, DEFAULT_ROLE_ACCOUNTS.get(role))
        account = self._accounts.get(code) if code else None
        if account is None:
            raise LedgerReferenceError(
                f"No account configured for role '{role}' (code {code})."
            )
        return account


@transaction.atomic
def seed_default_chart(company):
    """Install the default chart; existing codes are left alone."""
    created = 0
    for code, name, ac_type, sub_type, is_control in DEFAULT_CHART:
        _, was_created = Account.objects.get_or_create(
            company=company,
            code=code,
            defaults={
                "name": name,
                "ac_type": ac_type,
                "sub_type": sub_type,
                "is_control_account": is_control,
            },
        )
        created += int(was_created)
    logger.info("Seeded %d account(s) for company %s", created, company.pk)
    return created
