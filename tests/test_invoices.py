import unittest
from decimal import Decimal

from freightbridge.core.errors import Forbidden, InvalidStateTransition, ValidationError
from freightbridge.services import invoice_service
from freightbridge.utils.invoice_state import InvoiceStatus
from tests.helpers.sandbox import DbSandbox, new_user, seed_booked_shipment


class InvoiceTrackerTest(unittest.TestCase):
    def setUp(self) -> None:
        self.sandbox = DbSandbox()
        self.db = self.sandbox.db
        self.shipment, self.client, self.vendor = seed_booked_shipment(self.db)
        self.admin = new_user("finance_admin")

    def tearDown(self) -> None:
        self.sandbox.cleanup()

    def _client_invoice(self):
        return invoice_service.issue_invoice(
            self.db, self.shipment.id, "client", self.shipment.final_price, admin_id=self.admin.id
        )

    def test_client_invoice_billed_to_shipment_owner(self) -> None:
        invoice = self._client_invoice()

        self.assertEqual(invoice.user_id, self.client.id)
        self.assertEqual(invoice.status, InvoiceStatus.UNPAID)
        self.assertEqual(invoice.amount, Decimal("1140.00"))

    def test_vendor_invoice_owed_to_selected_vendor(self) -> None:
        invoice = invoice_service.issue_invoice(self.db, self.shipment.id, "vendor", "1000")
        self.assertEqual(invoice.user_id, self.vendor.id)

    def test_issue_validation(self) -> None:
        with self.assertRaises(ValidationError):
            invoice_service.issue_invoice(self.db, self.shipment.id, "broker", "10")
        with self.assertRaises(ValidationError):
            invoice_service.issue_invoice(self.db, self.shipment.id, "client", "-5")

    def test_proof_then_admin_marks_paid(self) -> None:
        invoice = self._client_invoice()

        awaiting = invoice_service.upload_payment_proof(self.db, invoice.id, self.client, "/uploads/payments/p.pdf")
        self.assertEqual(awaiting.status, InvoiceStatus.AWAITING_VERIFICATION)
        self.assertEqual(awaiting.proof_url, "/uploads/payments/p.pdf")

        paid = invoice_service.mark_paid(self.db, invoice.id, self.admin.id)
        self.assertEqual(paid.status, InvoiceStatus.PAID)
        self.assertIsNotNone(paid.paid_at)

    def test_admin_can_mark_unpaid_invoice_paid(self) -> None:
        invoice = self._client_invoice()

        paid = invoice_service.mark_paid(self.db, invoice.id, self.admin.id)
        self.assertEqual(paid.status, InvoiceStatus.PAID)

    def test_paid_is_terminal(self) -> None:
        invoice = self._client_invoice()
        invoice_service.mark_paid(self.db, invoice.id, self.admin.id)

        with self.assertRaises(InvalidStateTransition):
            invoice_service.mark_paid(self.db, invoice.id, self.admin.id)
        with self.assertRaises(InvalidStateTransition):
            invoice_service.upload_payment_proof(self.db, invoice.id, self.client, "/late.pdf")

    def test_stranger_cannot_upload_proof(self) -> None:
        invoice = self._client_invoice()

        with self.assertRaises(Forbidden):
            invoice_service.upload_payment_proof(self.db, invoice.id, new_user("client"), "/p.pdf")

    def test_listing_filters(self) -> None:
        self._client_invoice()
        invoice_service.issue_invoice(self.db, self.shipment.id, "vendor", "1000")

        self.assertEqual(invoice_service.list_invoices(self.db, invoice_type="vendor").count(), 1)
        self.assertEqual(invoice_service.list_invoices(self.db, status="all").count(), 2)
        self.assertEqual(invoice_service.list_invoices(self.db, status="paid").count(), 0)
        self.assertEqual(invoice_service.list_for_user(self.db, self.client.id).count(), 1)


if __name__ == "__main__":
    unittest.main()
