from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.test import TestCase

from ledger_core.exceptions import (AlreadyPostedDifferentPayload,
                                    LedgerReferenceError, UnbalancedEntryError)
from ledger_core.models import AuditLog, LedgerLine, Voucher, VoucherLine
from ledger_core.services import (balances, create_journal_voucher,
                                  post_document, post_voucher)
from ledger_core.services.posting import LineSpec, validate_lines

from .helpers import (OCT_15, account, journal_payload, make_company,
                      make_customer, post_journal)


""" Success tests """
class JournalPostingTests(TestCase):
    def setUp(self):
        self.company = make_company()

    def test_balanced_journal_posts(self):
        result = post_journal(
            self.company, OCT_15, ("101100", 1000, 0), ("401000", 0, 1000))

        voucher = Voucher.objects.get(pk=result.document_id)
        self.assertEqual(voucher.status, "posted")
        self.assertEqual(result.document_number, "JV-202510-0001")
        self.assertEqual(len(result.ledger_line_ids), 2)
        self.assertTrue(voucher.is_balanced())
        self.assertIsNotNone(voucher.posted_at)
        self.assertIsNotNone(voucher.posting_fingerprint)

        raw = {b.account_code: b.balance for b in balances(self.company)}
        # raw = credit - debit
        self.assertEqual(raw["101100"], Decimal("-1000.00"))
        self.assertEqual(raw["401000"], Decimal("1000.00"))

    def test_posting_writes_audit_entry(self):
        result = post_journal(
            self.company, OCT_15, ("101100", 10, 0), ("401000", 0, 10))
        actions = list(
            AuditLog.objects.for_company(self.company)
            .filter(object_id=str(result.document_id))
            .values_list("action", flat=True)
        )
        self.assertEqual(sorted(actions), ["create", "post"])

    def test_reposting_is_a_no_op(self):
        voucher = create_journal_voucher(
            self.company, journal_payload(OCT_15, ("101100", 50, 0), ("401000", 0, 50)))
        first = post_voucher(voucher)
        second = post_voucher(voucher)

        self.assertEqual(first.ledger_line_ids, second.ledger_line_ids)
        self.assertEqual(LedgerLine.objects.filter(voucher=voucher).count(), 2)

    def test_reposting_after_tampering_raises(self):
        result = post_journal(
            self.company, OCT_15, ("101100", 50, 0), ("401000", 0, 50))
        Voucher.objects.filter(pk=result.document_id).update(posting_fingerprint="0" * 64)

        with self.assertRaises(AlreadyPostedDifferentPayload):
            post_voucher(result.document_id)

    def test_line_description_defaults_to_narration(self):
        result = post_journal(
            self.company, OCT_15, ("101100", 5, 0), ("401000", 0, 5),
            narration="Cash sale")
        descriptions = set(
            LedgerLine.objects.filter(pk__in=result.ledger_line_ids)
            .values_list("description", flat=True))
        self.assertEqual(descriptions, {"Cash sale"})


""" Failure tests """
class JournalRejectionTests(TestCase):
    def setUp(self):
        self.company = make_company()

    def test_unbalanced_entry_persists_nothing(self):
        with self.assertRaises(UnbalancedEntryError) as ctx:
            post_journal(self.company, OCT_15, ("101100", 1000, 0), ("401000", 0, 900))

        self.assertIn("debits=1000.00, credits=900.00", str(ctx.exception))
        self.assertFalse(Voucher.objects.for_company(self.company).exists())
        self.assertFalse(LedgerLine.objects.for_company(self.company).exists())

    def test_single_line_rejected(self):
        with self.assertRaises(ValidationError):
            post_journal(self.company, OCT_15, ("101100", 10, 0))

    def test_line_with_debit_and_credit_rejected(self):
        with self.assertRaises(ValidationError):
            post_journal(self.company, OCT_15, ("101100", 10, 10), ("401000", 0, 10))

    def test_negative_amount_rejected(self):
        with self.assertRaises(ValidationError):
            post_journal(self.company, OCT_15, ("101100", -10, 0), ("401000", 0, -10))

    def test_unknown_account_code(self):
        with self.assertRaises(LedgerReferenceError):
            post_journal(self.company, OCT_15, ("109999", 10, 0), ("401000", 0, 10))

    def test_inactive_account(self):
        petty = account(self.company, "101110")
        petty.is_active = False
        petty.save()
        with self.assertRaises(ValidationError):
            post_journal(self.company, OCT_15, ("101110", 10, 0), ("401000", 0, 10))

    def test_control_account_needs_customer(self):
        with self.assertRaises(ValidationError):
            post_journal(self.company, OCT_15, ("101210", 10, 0), ("401000", 0, 10))
        self.assertFalse(Voucher.objects.for_company(self.company).exists())

    def test_control_account_with_customer_posts(self):
        customer = make_customer(self.company)
        result = post_journal(
            self.company, OCT_15,
            ("101210", 10, 0, {"customerId": customer.pk}),
            ("401000", 0, 10),
        )
        line = LedgerLine.objects.get(pk=result.ledger_line_ids[0])
        self.assertEqual(line.customer, customer)

    def test_missing_date(self):
        payload = journal_payload(OCT_15, ("101100", 10, 0), ("401000", 0, 10))
        del payload["date"]
        with self.assertRaises(ValidationError):
            post_document(self.company, "JV", payload)

    def test_validate_lines_rejects_foreign_account(self):
        other = make_company("Other Co")
        lines = [
            LineSpec(account(self.company, "101100"), debit=Decimal("10")),
            LineSpec(account(other, "401000"), credit=Decimal("10")),
        ]
        with self.assertRaises(LedgerReferenceError):
            validate_lines(self.company, lines)


class ImmutabilityTests(TestCase):
    def setUp(self):
        self.company = make_company()
        result = post_journal(
            self.company, OCT_15, ("101100", 100, 0), ("401000", 0, 100))
        self.voucher = Voucher.objects.get(pk=result.document_id)
        self.line = LedgerLine.objects.get(pk=result.ledger_line_ids[0])

    def test_ledger_line_cannot_be_updated(self):
        self.line.debit = Decimal("999.00")
        with self.assertRaises(ValidationError):
            self.line.save()

    def test_ledger_line_cannot_be_deleted(self):
        with self.assertRaises(ValidationError):
            self.line.delete()
        self.assertTrue(LedgerLine.objects.filter(pk=self.line.pk).exists())

    def test_posted_voucher_header_is_frozen(self):
        self.voucher.narration = "edited"
        with self.assertRaises(ValidationError):
            self.voucher.save()

    def test_posted_voucher_cannot_be_deleted(self):
        with self.assertRaises(ValidationError):
            self.voucher.delete()

    def test_posted_voucher_cannot_go_back_to_draft(self):
        with self.assertRaises(ValidationError):
            self.voucher.transition_to("draft")

    def test_no_new_draft_lines_on_posted_voucher(self):
        with self.assertRaises(ValidationError):
            VoucherLine.objects.create(
                company=self.company,
                voucher=self.voucher,
                account=account(self.company, "101100"),
                debit=Decimal("1.00"),
            )


@pytest.mark.django_db
def test_voucher_lines_reject_other_company_account():
    company = make_company()
    other = make_company("Other Co")
    voucher = create_journal_voucher(
        company, journal_payload(OCT_15, ("101100", 10, 0), ("401000", 0, 10)))

    with pytest.raises(ValidationError):
        VoucherLine.objects.create(
            company=company,
            voucher=voucher,
            account=account(other, "101100"),
            debit=Decimal("1.00"),
        )
