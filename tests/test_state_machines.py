import unittest
from decimal import Decimal

from freightbridge.core.errors import ValidationError
from freightbridge.utils.amendment_state import AmendmentAction, AmendmentStatus, AmendmentStateMachine
from freightbridge.utils.invoice_state import InvoiceStatus, InvoiceStateMachine
from freightbridge.utils.permissions import ActorRole, actor_for_role
from freightbridge.utils.pricing import apply_markup, markup_amount, resolve_markup, to_money
from freightbridge.utils.shipment_state import ShipmentStatus, ShipmentStateMachine, normalize_status


class ShipmentStateMachineTest(unittest.TestCase):
    def test_legacy_names_normalise(self) -> None:
        self.assertEqual(normalize_status("bids_received"), ShipmentStatus.AWAITING_BIDS)
        self.assertEqual(normalize_status("quote_received"), ShipmentStatus.AWAITING_BIDS)
        self.assertEqual(normalize_status("quote_confirmed"), ShipmentStatus.CLIENT_REVIEW)
        self.assertEqual(normalize_status("Draft_BL_Uploaded"), ShipmentStatus.DRAFT_BL)
        self.assertEqual(normalize_status("final_bl_uploaded"), ShipmentStatus.FINAL_BL)
        self.assertEqual(normalize_status("in_transit"), ShipmentStatus.SAILED)
        self.assertEqual(normalize_status("booked"), ShipmentStatus.BOOKED)
        self.assertIsNone(normalize_status(None))

    def test_each_transition_has_one_trigger(self) -> None:
        ok, _ = ShipmentStateMachine.validate_transition(
            ShipmentStatus.CLIENT_REVIEW, ShipmentStatus.BOOKING, ActorRole.CLIENT
        )
        self.assertTrue(ok)
        ok, message = ShipmentStateMachine.validate_transition(
            ShipmentStatus.CLIENT_REVIEW, ShipmentStatus.BOOKING, ActorRole.VENDOR
        )
        self.assertFalse(ok)
        self.assertIn("client", message)

    def test_skipping_stages_is_illegal(self) -> None:
        ok, _ = ShipmentStateMachine.validate_transition(
            ShipmentStatus.AWAITING_BIDS, ShipmentStatus.BOOKED, ActorRole.SYSTEM
        )
        self.assertFalse(ok)

    def test_admin_override_on_bl_approval(self) -> None:
        ok, _ = ShipmentStateMachine.validate_transition(
            ShipmentStatus.DRAFT_BL, ShipmentStatus.FINAL_BL, ActorRole.ADMIN
        )
        self.assertTrue(ok)

    def test_tracking_paths(self) -> None:
        path = ShipmentStateMachine.tracking_path
        self.assertEqual(path(ShipmentStatus.FINAL_BL, ShipmentStatus.LOADING), [ShipmentStatus.LOADING])
        self.assertEqual(path(ShipmentStatus.FINAL_BL, ShipmentStatus.SAILED), [ShipmentStatus.SAILED])
        self.assertEqual(
            path(ShipmentStatus.LOADING, ShipmentStatus.DELIVERED),
            [ShipmentStatus.SAILED, ShipmentStatus.DELIVERED],
        )
        self.assertEqual(path(ShipmentStatus.SAILED, ShipmentStatus.LOADING), [])
        self.assertEqual(path(ShipmentStatus.BOOKED, ShipmentStatus.SAILED), [])

    def test_delivered_is_terminal(self) -> None:
        self.assertTrue(ShipmentStateMachine.is_terminal_status(ShipmentStatus.DELIVERED))
        self.assertEqual(ShipmentStateMachine.get_allowed_transitions(ShipmentStatus.DELIVERED), [])


class AmendmentStateMachineTest(unittest.TestCase):
    def test_actions_belong_to_one_actor(self) -> None:
        self.assertEqual(
            sorted(AmendmentStateMachine.actions_for(ActorRole.CLIENT)),
            [AmendmentAction.ACCEPT, AmendmentAction.CANCEL],
        )
        self.assertEqual(
            sorted(AmendmentStateMachine.actions_for(ActorRole.VENDOR)),
            [AmendmentAction.DECLINE, AmendmentAction.REPLY],
        )

    def test_initial_status_by_initiator(self) -> None:
        initial = AmendmentStateMachine.initial_status
        self.assertEqual(initial(ActorRole.ADMIN), AmendmentStatus.ADMIN_REVIEW)
        self.assertEqual(initial(ActorRole.CLIENT), AmendmentStatus.REQUESTED)
        self.assertEqual(initial(ActorRole.VENDOR), AmendmentStatus.REQUESTED)
        self.assertEqual(initial(ActorRole.VENDOR, has_vendor_figures=True), AmendmentStatus.VENDOR_REPLIED)

    def test_unknown_action(self) -> None:
        with self.assertRaises(KeyError):
            AmendmentStateMachine.resolve("escalate")


class InvoiceStateMachineTest(unittest.TestCase):
    def test_transitions(self) -> None:
        can = InvoiceStateMachine.can_transition
        self.assertTrue(can(InvoiceStatus.UNPAID, InvoiceStatus.AWAITING_VERIFICATION))
        self.assertTrue(can(InvoiceStatus.AWAITING_VERIFICATION, InvoiceStatus.PAID))
        self.assertTrue(can(InvoiceStatus.UNPAID, InvoiceStatus.PAID))
        self.assertFalse(can(InvoiceStatus.PAID, InvoiceStatus.UNPAID))
        self.assertFalse(can(InvoiceStatus.AWAITING_VERIFICATION, InvoiceStatus.UNPAID))


class PricingTest(unittest.TestCase):
    def test_markup_is_fourteen_percent(self) -> None:
        self.assertEqual(apply_markup(Decimal("1000"), resolve_markup()), Decimal("1140.00"))

    def test_rounds_half_up_to_cents(self) -> None:
        self.assertEqual(to_money("10.005"), Decimal("10.01"))
        self.assertEqual(markup_amount("0.25", "0.14"), Decimal("0.04"))

    def test_rate_bounds(self) -> None:
        self.assertEqual(resolve_markup("0.05"), Decimal("0.05"))
        self.assertEqual(resolve_markup("0.50"), Decimal("0.50"))
        with self.assertRaises(ValidationError):
            resolve_markup("0.04")
        with self.assertRaises(ValidationError):
            resolve_markup("0.51")
        with self.assertRaises(ValidationError):
            resolve_markup("lots")

    def test_invalid_amount(self) -> None:
        with self.assertRaises(ValidationError):
            to_money("abc")


class RolesTest(unittest.TestCase):
    def test_sub_roles_collapse_to_actors(self) -> None:
        self.assertEqual(actor_for_role("bl_manager"), ActorRole.CLIENT)
        self.assertEqual(actor_for_role("pricing_agent"), ActorRole.VENDOR)
        self.assertEqual(actor_for_role("amendment_reviewer"), ActorRole.ADMIN)
        self.assertEqual(actor_for_role("Finance_Admin"), ActorRole.ADMIN)
        self.assertEqual(actor_for_role("shipper"), "")


if __name__ == "__main__":
    unittest.main()
