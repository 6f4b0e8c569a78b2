import unittest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from freightbridge.core.errors import InvalidStateTransition, ValidationError
from freightbridge.db.models import Bid, Notification, ShipmentLog, ShipmentRequest
from freightbridge.services import winner_selection
from freightbridge.utils.shipment_state import ShipmentStatus
from tests.helpers.sandbox import DbSandbox, new_user, seed_bid, seed_quote, seed_selected_quote


class WinnerSelectionTest(unittest.TestCase):
    def setUp(self) -> None:
        self.sandbox = DbSandbox()
        self.db = self.sandbox.db
        self.client = new_user("client")

    def tearDown(self) -> None:
        self.sandbox.cleanup()

    def test_third_bid_fires_selection_with_markup(self) -> None:
        quote, _, vendors = seed_selected_quote(self.db, costs=(1200, 1000, 1500))

        self.assertEqual(quote.status, ShipmentStatus.CLIENT_REVIEW)
        self.assertEqual(quote.selected_vendor_id, vendors[1].id)
        self.assertEqual(quote.final_price, Decimal("1140.00"))
        self.assertEqual(quote.markup_rate, Decimal("0.14"))

        bids = self.db.query(Bid).filter(Bid.quote_request_id == quote.id).all()
        statuses = sorted(bid.status for bid in bids)
        self.assertEqual(statuses, ["rejected", "rejected", "selected"])

    def test_two_bids_stay_pending_before_window(self) -> None:
        quote = seed_quote(self.db, self.client)
        seed_bid(self.db, quote, new_user("vendor"), 900)
        seed_bid(self.db, quote, new_user("vendor"), 950)

        now = quote.created_at + timedelta(hours=47)
        outcome = winner_selection.evaluate(self.db, quote.id, now=now)

        self.assertTrue(outcome.is_pending)
        self.assertFalse(outcome.fired)
        self.assertFalse(outcome.can_book)
        self.assertEqual(outcome.bid_count, 2)
        self.assertEqual(outcome.time_remaining, timedelta(hours=1))

    def test_window_elapsed_selects_single_bid(self) -> None:
        quote = seed_quote(self.db, self.client)
        vendor = new_user("vendor")
        seed_bid(self.db, quote, vendor, 2000)

        outcome = winner_selection.evaluate(self.db, quote.id, now=quote.created_at + timedelta(hours=48))

        self.assertTrue(outcome.fired)
        self.assertTrue(outcome.can_book)
        self.assertEqual(outcome.selected_vendor_id, vendor.id)
        self.assertEqual(outcome.final_price, Decimal("2280.00"))
        self.assertEqual(outcome.time_remaining, timedelta(0))

    def test_window_elapsed_without_bids_stays_open(self) -> None:
        quote = seed_quote(self.db, self.client)

        outcome = winner_selection.evaluate(self.db, quote.id, now=quote.created_at + timedelta(hours=72))

        self.assertTrue(outcome.is_pending)
        self.assertEqual(outcome.status, ShipmentStatus.AWAITING_BIDS)
        self.assertEqual(outcome.time_remaining, timedelta(0))

    def test_repeated_evaluation_is_idempotent(self) -> None:
        quote, _, _ = seed_selected_quote(self.db)
        first_selected_at = quote.selected_at
        logs_before = self.db.query(ShipmentLog).filter(ShipmentLog.shipment_id == quote.id).count()
        notes_before = self.db.query(Notification).count()

        again = winner_selection.evaluate(self.db, quote.id)

        self.assertFalse(again.fired)
        self.assertEqual(again.winning_bid_id, quote.winning_quote_id)
        self.db.refresh(quote)
        self.assertEqual(quote.selected_at, first_selected_at)
        self.assertEqual(self.db.query(ShipmentLog).filter(ShipmentLog.shipment_id == quote.id).count(), logs_before)
        self.assertEqual(self.db.query(Notification).count(), notes_before)

    def test_tie_goes_to_earliest_bid(self) -> None:
        quote = seed_quote(self.db, self.client)
        early, late = new_user("vendor"), new_user("vendor")
        early_bid = seed_bid(self.db, quote, early, 1000)
        late_bid = seed_bid(self.db, quote, late, 1000)
        late_bid.created_at = early_bid.created_at + timedelta(seconds=1)
        self.db.commit()

        outcome = winner_selection.evaluate(self.db, quote.id, now=quote.created_at + timedelta(hours=49))

        self.assertEqual(outcome.selected_vendor_id, early.id)

    def test_revised_bid_keeps_its_place_in_a_tie(self) -> None:
        quote = seed_quote(self.db, self.client)
        first, second = new_user("vendor"), new_user("vendor")
        first_bid = seed_bid(self.db, quote, first, 1200)
        second_bid = seed_bid(self.db, quote, second, 1000)
        second_bid.created_at = first_bid.created_at + timedelta(seconds=1)
        self.db.commit()

        # First vendor matches the price later; its original submission time still counts
        revised = seed_bid(self.db, quote, first, 1000)
        self.assertEqual(revised.revision_number, 2)
        self.assertEqual(revised.created_at, first_bid.created_at)

        outcome = winner_selection.evaluate(self.db, quote.id, now=quote.created_at + timedelta(hours=49))

        self.assertEqual(outcome.selected_vendor_id, first.id)

    def test_selection_notifies_client_and_every_bidder(self) -> None:
        quote, client, vendors = seed_selected_quote(self.db)

        recipients = {n.user_id for n in self.db.query(Notification).filter(
            Notification.related_shipment_id == quote.id
        )}
        self.assertIn(client.id, recipients)
        for vendor in vendors:
            self.assertIn(vendor.id, recipients)

    def test_admin_selects_specific_bid_with_custom_markup(self) -> None:
        quote = seed_quote(self.db, self.client)
        seed_bid(self.db, quote, new_user("vendor"), 1000)
        chosen_vendor = new_user("vendor")
        chosen = seed_bid(self.db, quote, chosen_vendor, 1100)

        outcome = winner_selection.select_bid(self.db, quote.id, chosen.id, new_user("admin").id, markup_rate="0.10")

        self.assertTrue(outcome.fired)
        self.assertEqual(outcome.selected_vendor_id, chosen_vendor.id)
        self.assertEqual(outcome.final_price, Decimal("1210.00"))

    def test_admin_select_after_selection_is_rejected(self) -> None:
        quote, _, _ = seed_selected_quote(self.db)
        other_bid = self.db.query(Bid).filter(
            Bid.quote_request_id == quote.id, Bid.status == "rejected"
        ).first()

        with self.assertRaises(InvalidStateTransition):
            winner_selection.select_bid(self.db, quote.id, other_bid.id, new_user("admin").id)

    def test_override_markup_reprices_and_checks_bounds(self) -> None:
        quote, _, _ = seed_selected_quote(self.db)
        admin = new_user("admin")

        repriced = winner_selection.override_markup(self.db, quote.id, "0.20", admin.id)
        self.assertEqual(repriced.final_price, Decimal("1200.00"))

        with self.assertRaises(ValidationError):
            winner_selection.override_markup(self.db, quote.id, "0.90", admin.id)
        self.db.refresh(quote)
        self.assertEqual(quote.final_price, Decimal("1200.00"))

    def test_sweep_selects_only_expired_requests(self) -> None:
        expired = seed_quote(self.db, self.client)
        seed_bid(self.db, expired, new_user("vendor"), 700)
        fresh = seed_quote(self.db, self.client)
        seed_bid(self.db, fresh, new_user("vendor"), 800)

        # Age the first request past its window
        expired.created_at = expired.created_at - timedelta(hours=49)
        self.db.commit()

        outcomes = winner_selection.sweep_expired(self.db)

        self.assertEqual([o.quote_id for o in outcomes], [expired.id])
        self.db.refresh(fresh)
        self.assertEqual(fresh.status, ShipmentStatus.AWAITING_BIDS)

    def test_sweep_moves_past_a_failing_request(self) -> None:
        broken = seed_quote(self.db, self.client)
        seed_bid(self.db, broken, new_user("vendor"), 700)
        healthy = seed_quote(self.db, self.client)
        seed_bid(self.db, healthy, new_user("vendor"), 800)
        for quote in (broken, healthy):
            quote.created_at = quote.created_at - timedelta(hours=49)
        self.db.commit()

        real_evaluate = winner_selection.evaluate
        broken_id, healthy_id = broken.id, healthy.id

        def evaluate(db, quote_id, now=None):
            if quote_id == broken_id:
                raise RuntimeError("database hiccup")
            return real_evaluate(db, quote_id, now=now)

        with patch.object(winner_selection, "evaluate", side_effect=evaluate):
            outcomes = winner_selection.sweep_expired(self.db)

        self.assertEqual([o.quote_id for o in outcomes], [healthy_id])
        self.db.refresh(healthy)
        self.assertEqual(healthy.status, ShipmentStatus.CLIENT_REVIEW)


class SelectionRaceTest(unittest.TestCase):
    """Two sessions evaluating the same due request"""

    def setUp(self) -> None:
        self.sandbox = DbSandbox()
        self.db = self.sandbox.db
        self.other = self.sandbox.Session()

    def tearDown(self) -> None:
        self.other.close()
        self.sandbox.cleanup()

    def test_stale_session_loses_and_reports_existing_winner(self) -> None:
        quote = seed_quote(self.db, new_user("client"))
        seed_bid(self.db, quote, new_user("vendor"), 1000)
        seed_bid(self.db, quote, new_user("vendor"), 1300)
        due = quote.created_at + timedelta(hours=49)

        stale_quote = self.other.query(ShipmentRequest).filter(ShipmentRequest.id == quote.id).first()
        self.assertEqual(stale_quote.status, ShipmentStatus.AWAITING_BIDS)

        first = winner_selection.evaluate(self.db, quote.id, now=due)
        second = winner_selection.evaluate(self.other, quote.id, now=due)

        self.assertTrue(first.fired)
        self.assertFalse(second.fired)
        self.assertEqual(second.state, first.state)
        self.assertEqual(second.final_price, Decimal("1140.00"))
        self.assertEqual(second.winning_bid_id, first.winning_bid_id)

        selected = self.db.query(Bid).filter(Bid.quote_request_id == quote.id, Bid.status == "selected").count()
        self.assertEqual(selected, 1)
        selections = self.db.query(ShipmentLog).filter(
            ShipmentLog.shipment_id == quote.id, ShipmentLog.action == "status:client_review"
        ).count()
        self.assertEqual(selections, 1)
        client_notices = self.db.query(Notification).filter(
            Notification.related_shipment_id == quote.id, Notification.type == "winner_selected"
        ).count()
        self.assertEqual(client_notices, 1)


if __name__ == "__main__":
    unittest.main()
