import datetime
from decimal import Decimal

from django.test import TestCase

from ledger_core.exceptions import LedgerReferenceError
from ledger_core.models import LedgerLine, Voucher
from ledger_core.services import (balances, create_journal_voucher,
                                  post_document, reverse_voucher)

from .helpers import (OCT_15, journal_payload, make_company, make_customer,
                      make_invoice, make_item, post_journal)

OCT_20 = datetime.date(2025, 10, 20)


class ReversalTests(TestCase):
    def setUp(self):
        self.company = make_company()
        self.posted = post_journal(
            self.company, OCT_15, ("101100", 300, 0), ("401000", 0, 300))

    def test_reversal_offsets_the_original(self):
        result = reverse_voucher(self.posted.document_id, entry_date=OCT_20)

        self.assertEqual(result.document_number, "REV-JV-202510-0001")
        original = Voucher.objects.get(pk=self.posted.document_id)
        reversal = Voucher.objects.get(pk=result.document_id)
        self.assertEqual(original.status, "reversed")
        self.assertEqual(reversal.status, "posted")
        self.assertEqual(reversal.doc_class, "REV")
        self.assertEqual(reversal.reversal_of, original)
        self.assertEqual(reversal.entry_date, OCT_20)
        self.assertTrue(reversal.is_balanced())

        # original lines stay; mirrored lines net them out
        self.assertEqual(LedgerLine.objects.filter(voucher=original).count(), 2)
        raw = {b.account_code: b.balance for b in balances(self.company)}
        self.assertEqual(raw["101100"], Decimal("0.00"))
        self.assertEqual(raw["401000"], Decimal("0.00"))

        # before the reversal date the original still counts
        raw = {b.account_code: b.balance for b in balances(self.company, OCT_15)}
        self.assertEqual(raw["101100"], Decimal("-300.00"))

    def test_reversal_dated_today_by_default(self):
        result = reverse_voucher(self.posted.document_id)
        reversal = Voucher.objects.get(pk=result.document_id)
        self.assertIsNotNone(reversal.entry_date)
        self.assertEqual(reversal.narration, "Reversal of JV-202510-0001")

    def test_second_reversal_rejected(self):
        reverse_voucher(self.posted.document_id, entry_date=OCT_20)
        with self.assertRaises(LedgerReferenceError):
            reverse_voucher(self.posted.document_id, entry_date=OCT_20)

    def test_reversal_cannot_be_reversed(self):
        result = reverse_voucher(self.posted.document_id, entry_date=OCT_20)
        with self.assertRaises(LedgerReferenceError):
            reverse_voucher(result.document_id, entry_date=OCT_20)

    def test_draft_cannot_be_reversed(self):
        draft = create_journal_voucher(
            self.company, journal_payload(OCT_15, ("101100", 1, 0), ("401000", 0, 1)))
        with self.assertRaises(LedgerReferenceError):
            reverse_voucher(draft, entry_date=OCT_20)

    def test_missing_voucher(self):
        with self.assertRaises(LedgerReferenceError):
            reverse_voucher(987654, entry_date=OCT_20)


class CreditNoteReversalTests(TestCase):
    def test_reversal_undoes_invoice_and_stock(self):
        company = make_company()
        customer = make_customer(company)
        invoice = make_invoice(company, customer, total="1000.00")
        item = make_item(company, on_hand="5")
        result = post_document(company, "CN", {
            "date": "2025-10-15",
            "customerId": customer.pk,
            "invoiceId": invoice.pk,
            "items": [{"itemId": item.pk, "quantity": 10, "unitPrice": "50",
                       "discount": "20", "tax": "15"}],
        })

        reverse_voucher(result.document_id, entry_date=OCT_20)

        invoice.refresh_from_db()
        item.refresh_from_db()
        self.assertEqual(invoice.amount_due, Decimal("1000.00"))
        self.assertEqual(invoice.status, "open")
        self.assertEqual(item.on_hand_quantity, Decimal("5"))
