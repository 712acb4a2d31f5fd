import datetime
from decimal import Decimal

from django.test import TestCase

from ledger_core.services import (balances, create_journal_voucher,
                                  windowed_balances)

from .helpers import journal_payload, make_company, post_journal

SEP_01 = datetime.date(2025, 9, 1)
OCT_01 = datetime.date(2025, 10, 1)
OCT_10 = datetime.date(2025, 10, 10)
OCT_31 = datetime.date(2025, 10, 31)
NOV_05 = datetime.date(2025, 11, 5)


class BalanceTests(TestCase):
    def setUp(self):
        self.company = make_company()
        post_journal(self.company, SEP_01, ("101120", 5000, 0), ("301000", 0, 5000))
        post_journal(self.company, OCT_10, ("101100", 700, 0), ("401000", 0, 700))
        post_journal(self.company, OCT_10, ("502100", 200, 0), ("101100", 0, 200))
        post_journal(self.company, NOV_05, ("101100", 50, 0), ("401000", 0, 50))

    def as_dict(self, rows):
        return {b.account_code: b.balance for b in rows}

    def test_point_in_time(self):
        raw = self.as_dict(balances(self.company, OCT_31))
        self.assertEqual(raw, {
            "101100": Decimal("-500.00"),
            "101120": Decimal("-5000.00"),
            "301000": Decimal("5000.00"),
            "401000": Decimal("700.00"),
            "502100": Decimal("-200.00"),
        })

    def test_all_dates_when_no_as_of(self):
        raw = self.as_dict(balances(self.company))
        self.assertEqual(raw["101100"], Decimal("-550.00"))

    def test_raw_balances_sum_to_zero(self):
        self.assertEqual(sum(self.as_dict(balances(self.company)).values()), Decimal("0.00"))

    def test_as_of_is_inclusive(self):
        raw = self.as_dict(balances(self.company, OCT_10))
        self.assertEqual(raw["101100"], Decimal("-500.00"))

    def test_account_filter(self):
        rows = balances(self.company, OCT_31, account_codes=["101100", "101120"])
        self.assertEqual([b.account_code for b in rows], ["101100", "101120"])

    def test_accounts_without_activity_are_left_out(self):
        self.assertNotIn("101110", self.as_dict(balances(self.company)))

    def test_drafts_do_not_count(self):
        create_journal_voucher(
            self.company, journal_payload(OCT_10, ("101110", 80, 0), ("401000", 0, 80)))
        self.assertNotIn("101110", self.as_dict(balances(self.company)))

    def test_windowed(self):
        windows = {w.account_code: w for w in windowed_balances(self.company, OCT_01, OCT_31)}

        bank = windows["101120"]
        self.assertEqual(bank.opening_balance, Decimal("-5000.00"))
        self.assertEqual(bank.closing_balance, Decimal("-5000.00"))
        self.assertEqual(bank.movement, Decimal("0.00"))

        cash = windows["101100"]
        self.assertEqual(cash.opening_balance, Decimal("0.00"))
        self.assertEqual(cash.closing_balance, Decimal("-500.00"))
        self.assertEqual(cash.movement, Decimal("-500.00"))

    def test_tenant_scoped(self):
        other = make_company("Other Co")
        self.assertEqual(balances(other), [])
