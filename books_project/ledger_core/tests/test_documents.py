from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from ledger_core.exceptions import LedgerReferenceError
from ledger_core.models import (Account, Customer, Invoice, LedgerLine,
                                Voucher)
from ledger_core.services import (cancel_draft, create_credit_note,
                                  create_expense_voucher, create_income_voucher,
                                  create_journal_voucher, delete_draft,
                                  post_document, post_voucher, update_draft)

from .helpers import (OCT_15, journal_payload, make_company, make_customer,
                      make_invoice, make_item, make_supplier)


def ledger_map(voucher_id):
    """{account code: (debit, credit)} of a posted voucher"""
    return {
        line.account.code: (line.debit, line.credit)
        for line in LedgerLine.objects.filter(voucher_id=voucher_id).select_related("account")
    }


class CreditNoteTests(TestCase):
    def setUp(self):
        self.company = make_company()
        self.customer = make_customer(self.company)
        self.invoice = make_invoice(self.company, self.customer, total="1000.00")
        self.item = make_item(self.company, on_hand="5")

    def payload(self, **extra):
        payload = {
            "date": "2025-10-15",
            "customerId": self.customer.pk,
            "invoiceId": self.invoice.pk,
            "reason": "Damaged goods",
            "items": [{
                "itemId": self.item.pk,
                "quantity": 10,
                "unitPrice": "50",
                "discount": "20",
                "tax": "15",
            }],
        }
        payload.update(extra)
        return payload

    def test_totals_are_recomputed(self):
        # the client's total is ignored
        voucher = create_credit_note(self.company, self.payload(totalAmount="9999"))
        self.assertEqual(voucher.number, "CN-00001")
        self.assertEqual(voucher.subtotal, Decimal("500.00"))
        self.assertEqual(voucher.discount_total, Decimal("20.00"))
        self.assertEqual(voucher.tax_total, Decimal("15.00"))
        self.assertEqual(voucher.total_amount, Decimal("495.00"))
        self.assertEqual(voucher.narration, "Damaged goods")

    def test_posting_settles_invoice_and_restocks(self):
        result = post_document(self.company, "CN", self.payload())

        self.invoice.refresh_from_db()
        self.item.refresh_from_db()
        self.assertEqual(self.invoice.amount_due, Decimal("505.00"))
        self.assertEqual(self.invoice.status, "partially_paid")
        self.assertEqual(self.item.on_hand_quantity, Decimal("15"))

        lines = ledger_map(result.document_id)
        self.assertEqual(lines["402000"], (Decimal("480.00"), Decimal("0.00")))
        self.assertEqual(lines["201210"], (Decimal("15.00"), Decimal("0.00")))
        self.assertEqual(lines["101210"], (Decimal("0.00"), Decimal("495.00")))

    def test_tax_rate_derives_tax(self):
        payload = self.payload()
        payload["items"][0].pop("tax")
        payload["items"][0]["taxRate"] = "7.5"
        voucher = create_credit_note(self.company, payload)
        # (500 - 20) x 7.5%
        self.assertEqual(voucher.tax_total, Decimal("36.00"))
        self.assertEqual(voucher.total_amount, Decimal("516.00"))

    def test_credit_above_amount_due_rolls_back(self):
        self.invoice.apply_settlement(Decimal("900.00"))
        with self.assertRaises(ValidationError):
            post_document(self.company, "CN", self.payload())

        self.item.refresh_from_db()
        self.assertEqual(self.item.on_hand_quantity, Decimal("5"))
        self.assertFalse(Voucher.objects.for_company(self.company).exists())

    def test_customer_required(self):
        payload = self.payload()
        del payload["customerId"]
        with self.assertRaises(ValidationError):
            create_credit_note(self.company, payload)

    def test_invoice_of_another_customer_rejected(self):
        other = make_customer(self.company, name="Other Customer")
        with self.assertRaises(ValidationError):
            create_credit_note(self.company, self.payload(customerId=other.pk))

    def test_non_positive_quantity_rejected(self):
        payload = self.payload()
        payload["items"][0]["quantity"] = 0
        with self.assertRaises(ValidationError):
            create_credit_note(self.company, payload)

    def test_unknown_item(self):
        payload = self.payload()
        payload["items"][0]["itemId"] = 999999
        with self.assertRaises(LedgerReferenceError):
            create_credit_note(self.company, payload)


class ExpenseAndIncomeTests(TestCase):
    def setUp(self):
        self.company = make_company()
        self.customer = make_customer(self.company)
        self.supplier = make_supplier(self.company)

    def test_expense_voucher(self):
        result = post_document(self.company, "EXP", {
            "date": "2025-10-15",
            "expenseAccountCode": "502100",
            "paymentAccountCode": "101120",
            "amount": "200",
            "supplierId": self.supplier.pk,
            "paidTo": "Landlord",
        })
        voucher = Voucher.objects.get(pk=result.document_id)
        self.assertEqual(voucher.number, "EXP-202510-0001")
        self.assertEqual(voucher.total_amount, Decimal("200.00"))
        self.assertEqual(voucher.narration, "Landlord")
        self.assertEqual(ledger_map(voucher.pk), {
            "502100": (Decimal("200.00"), Decimal("0.00")),
            "101120": (Decimal("0.00"), Decimal("200.00")),
        })

    def test_expense_amount_required(self):
        with self.assertRaises(ValidationError):
            create_expense_voucher(self.company, {
                "date": "2025-10-15",
                "expenseAccountCode": "502100",
                "paymentAccountCode": "101120",
            })

    def test_income_voucher(self):
        result = post_document(self.company, "RCT", {
            "date": "2025-10-15",
            "incomeAccountCode": "401100",
            "receiptAccountCode": "101100",
            "amount": "350.00",
        })
        self.assertEqual(result.document_number, "RCT-20251015-0001")
        self.assertEqual(ledger_map(result.document_id), {
            "101100": (Decimal("350.00"), Decimal("0.00")),
            "401100": (Decimal("0.00"), Decimal("350.00")),
        })

    def test_receipt_against_invoice(self):
        invoice = make_invoice(self.company, self.customer, total="1000.00")
        post_document(self.company, "RCT", {
            "date": "2025-10-15",
            "incomeAccountCode": "101210",
            "receiptAccountCode": "101120",
            "amount": "400",
            "invoiceId": invoice.pk,
        })
        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_due, Decimal("600.00"))
        self.assertEqual(invoice.status, "partially_paid")

        post_document(self.company, "RCT", {
            "date": "2025-10-15",
            "incomeAccountCode": "101210",
            "receiptAccountCode": "101120",
            "amount": "600",
            "invoiceId": invoice.pk,
        })
        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_due, Decimal("0.00"))
        self.assertEqual(invoice.status, "paid")

    def test_receipt_against_invoice_must_credit_receivables(self):
        invoice = make_invoice(self.company, self.customer)
        with self.assertRaises(ValidationError):
            create_income_voucher(self.company, {
                "date": "2025-10-15",
                "incomeAccountCode": "401000",
                "receiptAccountCode": "101120",
                "amount": "100",
                "invoiceId": invoice.pk,
            })

    def test_overpayment_rejected(self):
        invoice = make_invoice(self.company, self.customer, total="100.00")
        with self.assertRaises(ValidationError):
            post_document(self.company, "RCT", {
                "date": "2025-10-15",
                "incomeAccountCode": "101210",
                "receiptAccountCode": "101120",
                "amount": "150",
                "invoiceId": invoice.pk,
            })
        self.assertEqual(Invoice.objects.get(pk=invoice.pk).amount_due, Decimal("100.00"))
        self.assertFalse(LedgerLine.objects.for_company(self.company).exists())


class PaymentVoucherTests(TestCase):
    def setUp(self):
        self.company = make_company()
        self.supplier = make_supplier(self.company)

    def test_vat_and_withholding_tax(self):
        result = post_document(self.company, "PV", {
            "date": "2025-10-15",
            "paymentAccountCode": "101120",
            "supplierId": self.supplier.pk,
            "lines": [
                {"accountCode": "502300", "amount": "1150", "vatAmount": "150", "whtAmount": "50"},
            ],
        })
        voucher = Voucher.objects.get(pk=result.document_id)
        self.assertEqual(voucher.number, "PV-00001")
        self.assertEqual(voucher.subtotal, Decimal("1150.00"))
        self.assertEqual(voucher.tax_total, Decimal("150.00"))
        self.assertEqual(voucher.total_amount, Decimal("1100.00"))
        self.assertEqual(ledger_map(voucher.pk), {
            "502300": (Decimal("1000.00"), Decimal("0.00")),
            "101410": (Decimal("150.00"), Decimal("0.00")),
            "201220": (Decimal("0.00"), Decimal("50.00")),
            "101120": (Decimal("0.00"), Decimal("1100.00")),
        })

    def test_tax_above_line_amount_rejected(self):
        with self.assertRaises(ValidationError):
            post_document(self.company, "PV", {
                "date": "2025-10-15",
                "paymentAccountCode": "101120",
                "lines": [{"accountCode": "502300", "amount": "100", "vatAmount": "150"}],
            })

    def test_needs_a_line(self):
        with self.assertRaises(ValidationError):
            post_document(self.company, "PV", {
                "date": "2025-10-15",
                "paymentAccountCode": "101120",
                "lines": [],
            })


class DraftLifecycleTests(TestCase):
    def setUp(self):
        self.company = make_company()
        self.voucher = create_journal_voucher(
            self.company,
            journal_payload(OCT_15, ("101100", 100, 0), ("401000", 0, 100)),
        )

    def test_draft_has_number_and_no_ledger_lines(self):
        self.assertEqual(self.voucher.status, "draft")
        self.assertEqual(self.voucher.number, "JV-202510-0001")
        self.assertEqual(self.voucher.total_amount, Decimal("100.00"))
        self.assertFalse(self.voucher.ledger_lines.exists())

    def test_update_replaces_lines_and_keeps_number(self):
        voucher = update_draft(
            self.voucher,
            journal_payload(OCT_15, ("101120", 250, 0), ("401100", 0, 250),
                            narration="Corrected"),
        )
        self.assertEqual(voucher.number, "JV-202510-0001")
        self.assertEqual(voucher.narration, "Corrected")
        self.assertEqual(voucher.total_amount, Decimal("250.00"))
        self.assertEqual(
            sorted(voucher.draft_lines.values_list("account__code", flat=True)),
            ["101120", "401100"],
        )

        result = post_voucher(voucher)
        self.assertEqual(set(ledger_map(result.document_id)), {"101120", "401100"})

    def test_cancelled_draft_cannot_be_posted(self):
        cancel_draft(self.voucher)
        self.voucher.refresh_from_db()
        self.assertEqual(self.voucher.status, "cancelled")
        with self.assertRaises(ValidationError):
            post_voucher(self.voucher)

    def test_delete_draft(self):
        number = delete_draft(self.voucher)
        self.assertEqual(number, "JV-202510-0001")
        self.assertFalse(Voucher.objects.filter(pk=self.voucher.pk).exists())

    def test_posted_voucher_cannot_be_edited_or_deleted(self):
        post_voucher(self.voucher)
        payload = journal_payload(OCT_15, ("101100", 5, 0), ("401000", 0, 5))
        with self.assertRaises(ValidationError):
            update_draft(self.voucher, payload)
        with self.assertRaises(ValidationError):
            delete_draft(self.voucher)
        with self.assertRaises(ValidationError):
            cancel_draft(self.voucher)

    def test_deleted_number_is_not_reused(self):
        delete_draft(self.voucher)
        again = create_journal_voucher(
            self.company,
            journal_payload(OCT_15, ("101100", 100, 0), ("401000", 0, 100)),
        )
        self.assertEqual(again.number, "JV-202510-0002")


class SubLedgerBalanceTests(TestCase):
    def setUp(self):
        self.company = make_company()
        self.customer = make_customer(self.company)
        self.supplier = make_supplier(self.company)

    def test_receivable_balance(self):
        post_document(self.company, "JV", journal_payload(
            OCT_15,
            ("101210", 1000, 0, {"customerId": self.customer.pk}),
            ("401000", 0, 1000),
        ))
        post_document(self.company, "RCT", {
            "date": "2025-10-20",
            "incomeAccountCode": "101210",
            "receiptAccountCode": "101120",
            "amount": "400",
            "customerId": self.customer.pk,
        })
        self.assertEqual(self.customer.receivable_balance(), Decimal("600.00"))
        self.assertEqual(self.customer.receivable_balance(OCT_15), Decimal("1000.00"))

    def test_payable_balance(self):
        post_document(self.company, "JV", journal_payload(
            OCT_15,
            ("502100", 300, 0),
            ("201010", 0, 300, {"supplierId": self.supplier.pk}),
        ))
        post_document(self.company, "JV", journal_payload(
            OCT_15,
            ("201010", 100, 0, {"supplierId": self.supplier.pk}),
            ("101120", 0, 100),
        ))
        self.assertEqual(self.supplier.payable_balance(), Decimal("200.00"))

    def test_default_ar_account_must_be_receivable_control(self):
        with self.assertRaises(ValidationError):
            Customer.objects.create(
                company=self.company,
                name="Bad",
                default_ar_account=Account.objects.get(company=self.company, code="401000"),
            )


class MalformedPayloadTests(TestCase):
    def setUp(self):
        self.company = make_company()

    def expense(self, amount):
        return {
            "date": "2025-10-15",
            "expenseAccountCode": "502100",
            "paymentAccountCode": "101120",
            "amount": amount,
        }

    def test_non_finite_amounts_rejected(self):
        for amount in ("NaN", "Infinity", "-Infinity", "sNaN"):
            with self.subTest(amount=amount):
                with self.assertRaises(ValidationError) as ctx:
                    post_document(self.company, "EXP", self.expense(amount))
                self.assertIn("amount", ctx.exception.message_dict)

    def test_amount_beyond_storable_precision_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            post_document(self.company, "EXP", self.expense("1e30"))
        self.assertIn("amount", ctx.exception.message_dict)
        self.assertFalse(Voucher.objects.exists())

    def test_journal_lines_must_be_objects(self):
        with self.assertRaises(ValidationError) as ctx:
            post_document(self.company, "JV", {"date": "2025-10-05", "lines": ["a", "b"]})
        self.assertIn("lines[0]", ctx.exception.message_dict)

    def test_lines_must_be_a_list(self):
        with self.assertRaises(ValidationError) as ctx:
            post_document(self.company, "PV", {
                "date": "2025-10-05", "paymentAccountCode": "101120", "lines": "rent",
            })
        self.assertIn("lines", ctx.exception.message_dict)

    def test_credit_note_items_must_be_objects(self):
        customer = make_customer(self.company)
        with self.assertRaises(ValidationError) as ctx:
            create_credit_note(self.company, {
                "date": "2025-10-15", "customerId": customer.pk, "items": [{"quantity": 1}, 7],
            })
        self.assertIn("items[1]", ctx.exception.message_dict)

    def test_non_finite_quantity_rejected(self):
        customer = make_customer(self.company)
        item = make_item(self.company)
        with self.assertRaises(ValidationError) as ctx:
            create_credit_note(self.company, {
                "date": "2025-10-15",
                "customerId": customer.pk,
                "items": [{"itemId": item.pk, "quantity": "Infinity", "unitPrice": "5"}],
            })
        self.assertIn("items[0].quantity", ctx.exception.message_dict)
