import unittest
from decimal import Decimal

from freightbridge.core.errors import (
    AmendmentAlreadyOpen,
    Forbidden,
    InvalidAmendmentState,
    InvalidStateTransition,
    NotReady,
)
from freightbridge.db.models import Amendment, BillOfLading, Notification, ShipmentLog, ShipmentRequest
from freightbridge.services import amendment_service, bl_service
from freightbridge.utils.amendment_state import AmendmentStatus
from freightbridge.utils.shipment_state import ShipmentStatus
from tests.helpers.sandbox import DbSandbox, new_user, seed_booked_shipment, seed_draft_bl


class BillOfLadingTest(unittest.TestCase):
    def setUp(self) -> None:
        self.sandbox = DbSandbox()
        self.db = self.sandbox.db

    def tearDown(self) -> None:
        self.sandbox.cleanup()

    def test_first_draft_moves_shipment_to_draft_bl(self) -> None:
        shipment, _, _ = seed_draft_bl(self.db)

        self.assertEqual(shipment.status, ShipmentStatus.DRAFT_BL)
        draft = bl_service.get_bl(self.db, shipment.id, "draft")
        self.assertFalse(draft.approved)

    def test_only_selected_vendor_uploads(self) -> None:
        shipment, _, _ = seed_booked_shipment(self.db)

        with self.assertRaises(Forbidden):
            bl_service.upload_bl(self.db, shipment.id, new_user("vendor").id, "draft", "/x.pdf")

    def test_replacing_draft_keeps_one_row_and_resets_approval(self) -> None:
        shipment, _, vendor = seed_draft_bl(self.db)

        bl_service.upload_bl(self.db, shipment.id, vendor.id, "draft", "/uploads/bl/draft-v2.pdf")

        rows = self.db.query(BillOfLading).filter(BillOfLading.shipment_id == shipment.id).all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].file_url, "/uploads/bl/draft-v2.pdf")

    def test_client_approval_moves_to_final_bl(self) -> None:
        shipment, client, _ = seed_draft_bl(self.db)

        approved = bl_service.approve_bl(self.db, shipment.id, client, remarks="Looks right")

        self.assertEqual(approved.status, ShipmentStatus.FINAL_BL)
        draft = bl_service.get_bl(self.db, shipment.id, "draft")
        self.assertTrue(draft.approved)
        self.assertEqual(draft.approved_by, client.id)

    def test_approval_without_draft_is_not_ready(self) -> None:
        shipment, client, _ = seed_booked_shipment(self.db)

        with self.assertRaises(NotReady):
            bl_service.approve_bl(self.db, shipment.id, client)

    def test_other_client_cannot_approve(self) -> None:
        shipment, _, _ = seed_draft_bl(self.db)

        with self.assertRaises(Forbidden):
            bl_service.approve_bl(self.db, shipment.id, new_user("client"))

    def test_admin_may_approve_for_client(self) -> None:
        shipment, _, _ = seed_draft_bl(self.db)

        approved = bl_service.approve_bl(self.db, shipment.id, new_user("admin"))

        self.assertEqual(approved.status, ShipmentStatus.FINAL_BL)


class AmendmentWorkflowTest(unittest.TestCase):
    def setUp(self) -> None:
        self.sandbox = DbSandbox()
        self.db = self.sandbox.db
        self.shipment, self.client, self.vendor = seed_draft_bl(self.db)
        self.admin = new_user("admin")

    def tearDown(self) -> None:
        self.sandbox.cleanup()

    def _pushed_amendment(self, extra_cost="200"):
        amendment = amendment_service.open_amendment(
            self.db, self.shipment.id, self.vendor, "Port congestion surcharge",
            extra_cost=extra_cost, delay_days=3,
        )
        amendment_service.admin_review(self.db, amendment.id, self.admin, "review")
        return amendment_service.admin_review(self.db, amendment.id, self.admin, "push")

    def test_vendor_change_with_figures_starts_replied(self) -> None:
        amendment = amendment_service.open_amendment(
            self.db, self.shipment.id, self.vendor, "Vessel swap", extra_cost="150", delay_days=2
        )
        self.assertEqual(amendment.status, AmendmentStatus.VENDOR_REPLIED)
        self.assertIsNotNone(amendment.vendor_reply_at)

    def test_admin_amendment_starts_in_review(self) -> None:
        amendment = amendment_service.open_amendment(self.db, self.shipment.id, self.admin, "Consignee name")
        self.assertEqual(amendment.status, AmendmentStatus.ADMIN_REVIEW)

    def test_push_prices_the_change_for_the_client(self) -> None:
        amendment = self._pushed_amendment()

        self.assertEqual(amendment.status, AmendmentStatus.CLIENT_REVIEW)
        self.assertEqual(amendment.markup_amount, Decimal("28.00"))
        self.assertEqual(amendment_service.total_cost(amendment), Decimal("228.00"))

    def test_client_accept_rolls_shipment_back_to_draft(self) -> None:
        bl_service.approve_bl(self.db, self.shipment.id, self.client)
        amendment = self._pushed_amendment()

        accepted = amendment_service.client_respond(self.db, amendment.id, self.client, "accept")

        self.assertEqual(accepted.status, AmendmentStatus.ACCEPTED)
        self.assertIsNone(accepted.open_slot)
        self.db.refresh(self.shipment)
        self.assertEqual(self.shipment.status, ShipmentStatus.DRAFT_BL)
        draft = bl_service.get_bl(self.db, self.shipment.id, "draft")
        self.assertFalse(draft.approved)

    def test_client_cancel_leaves_shipment_alone(self) -> None:
        bl_service.approve_bl(self.db, self.shipment.id, self.client)
        amendment = self._pushed_amendment()

        cancelled = amendment_service.client_respond(self.db, amendment.id, self.client, "cancel")

        self.assertEqual(cancelled.status, AmendmentStatus.REJECTED)
        self.db.refresh(self.shipment)
        self.assertEqual(self.shipment.status, ShipmentStatus.FINAL_BL)

    def test_second_open_amendment_is_refused(self) -> None:
        amendment_service.open_amendment(self.db, self.shipment.id, self.client, "Change consignee")

        with self.assertRaises(AmendmentAlreadyOpen):
            amendment_service.open_amendment(self.db, self.shipment.id, self.vendor, "Extra storage", extra_cost="50")
        self.assertEqual(self.db.query(Amendment).count(), 1)

    def test_closed_amendment_frees_the_slot(self) -> None:
        first = amendment_service.open_amendment(self.db, self.shipment.id, self.client, "Change consignee")
        amendment_service.vendor_reply(self.db, first.id, self.vendor, accept=False)

        second = amendment_service.open_amendment(self.db, self.shipment.id, self.client, "Change notify party")
        self.assertEqual(second.status, AmendmentStatus.REQUESTED)

    def test_admin_reject_closes_unanswered_request(self) -> None:
        stuck = amendment_service.open_amendment(self.db, self.shipment.id, self.client, "Change consignee")

        rejected = amendment_service.admin_review(self.db, stuck.id, self.admin, "reject")

        self.assertEqual(rejected.status, AmendmentStatus.REJECTED)
        self.assertIsNone(rejected.open_slot)
        follow_up = amendment_service.open_amendment(self.db, self.shipment.id, self.client, "Change notify party")
        self.assertEqual(follow_up.status, AmendmentStatus.REQUESTED)

    def test_vendor_reply_then_admin_approve(self) -> None:
        requested = amendment_service.open_amendment(self.db, self.shipment.id, self.client, "Add a container")

        replied = amendment_service.vendor_reply(self.db, requested.id, self.vendor, accept=True, extra_cost="400")
        self.assertEqual(replied.status, AmendmentStatus.VENDOR_REPLIED)
        self.assertEqual(replied.extra_cost, Decimal("400.00"))

        approved = amendment_service.admin_review(self.db, requested.id, self.admin, "approve")
        self.assertEqual(approved.status, AmendmentStatus.ACCEPTED)
        self.assertEqual(approved.approved_by, self.admin.id)
        self.db.refresh(self.shipment)
        self.assertEqual(self.shipment.status, ShipmentStatus.DRAFT_BL)

    def test_wrong_state_action_changes_nothing(self) -> None:
        amendment = amendment_service.open_amendment(self.db, self.shipment.id, self.client, "Change consignee")

        with self.assertRaises(InvalidAmendmentState):
            amendment_service.client_respond(self.db, amendment.id, self.client, "accept")
        with self.assertRaises(InvalidAmendmentState):
            amendment_service.admin_review(self.db, amendment.id, self.admin, "push")

        self.db.refresh(amendment)
        self.assertEqual(amendment.status, AmendmentStatus.REQUESTED)

    def test_amendment_needs_bl_stage(self) -> None:
        booked, client, _ = seed_booked_shipment(self.db)

        with self.assertRaises(InvalidStateTransition):
            amendment_service.open_amendment(self.db, booked.id, client, "Too early")

    def test_unassigned_vendor_cannot_open(self) -> None:
        with self.assertRaises(Forbidden):
            amendment_service.open_amendment(self.db, self.shipment.id, new_user("vendor"), "Not mine", extra_cost="10")


class StaleSessionTest(unittest.TestCase):
    """A second session acting on rows it read before another session committed"""

    def setUp(self) -> None:
        self.sandbox = DbSandbox()
        self.db = self.sandbox.db
        self.shipment, self.client, self.vendor = seed_draft_bl(self.db)
        self.admin = new_user("admin")
        self.other = self.sandbox.Session()

    def tearDown(self) -> None:
        self.other.close()
        self.sandbox.cleanup()

    def _count_logs(self, action: str) -> int:
        return self.db.query(ShipmentLog).filter(
            ShipmentLog.shipment_id == self.shipment.id, ShipmentLog.action == action
        ).count()

    def test_amendment_is_pushed_once(self) -> None:
        amendment = amendment_service.open_amendment(
            self.db, self.shipment.id, self.vendor, "Port congestion surcharge", extra_cost="200", delay_days=3,
        )
        amendment_service.admin_review(self.db, amendment.id, self.admin, "review")

        stale = amendment_service.get_amendment(self.other, amendment.id)
        self.assertEqual(stale.status, AmendmentStatus.ADMIN_REVIEW)

        amendment_service.admin_review(self.db, amendment.id, self.admin, "push")
        with self.assertRaises(InvalidAmendmentState):
            amendment_service.admin_review(self.other, amendment.id, self.admin, "push", markup_rate="0.20")

        self.db.refresh(amendment)
        self.assertEqual(amendment.status, AmendmentStatus.CLIENT_REVIEW)
        self.assertEqual(amendment.markup_rate, Decimal("0.14"))
        self.assertEqual(self._count_logs("amendment:push"), 1)
        pushed_notices = self.db.query(Notification).filter(
            Notification.related_amendment_id == amendment.id, Notification.type == "amendment_pushed"
        ).count()
        self.assertEqual(pushed_notices, 1)

    def test_stale_bl_approval_writes_nothing(self) -> None:
        stale = self.other.query(ShipmentRequest).filter(ShipmentRequest.id == self.shipment.id).first()
        self.assertEqual(stale.status, ShipmentStatus.DRAFT_BL)

        bl_service.approve_bl(self.db, self.shipment.id, self.client, remarks="First")
        with self.assertRaises(InvalidStateTransition):
            bl_service.approve_bl(self.other, self.shipment.id, self.admin, remarks="Second")

        self.assertEqual(self._count_logs("status:final_bl"), 1)
        draft = bl_service.get_bl(self.db, self.shipment.id, "draft")
        self.db.refresh(draft)
        self.assertEqual(draft.approved_by, self.client.id)
        self.assertEqual(draft.remarks, "First")


if __name__ == "__main__":
    unittest.main()
