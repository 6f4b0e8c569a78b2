"""
Winner Selection Engine

Decides when a quote request stops collecting bids, picks the cheapest bid
and prices it for the client. Selection fires while the request is
``awaiting_bids`` once either enough bids arrived or the bidding window
elapsed. Firing is a single transaction guarded on the request's status, so
concurrent pollers, the scheduler sweep and admin actions can all call in
and only one of them selects.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from freightbridge.core.config import settings
from freightbridge.core.errors import NotFound, InvalidStateTransition, ValidationError
from freightbridge.db.models import ShipmentRequest, Bid, Notification
from freightbridge.services import bid_repository
from freightbridge.services.notification_service import (
    NotificationType,
    create_notification,
    queue_delivery,
)
from freightbridge.services.quote_service import get_quote
from freightbridge.services.shipment_log import record_event
from freightbridge.services.transitions import transition_shipment, update_if_status
from freightbridge.utils.permissions import ActorRole
from freightbridge.utils.pricing import apply_markup, resolve_markup
from freightbridge.utils.shipment_state import ShipmentStatus

logger = logging.getLogger(__name__)


class SelectionState:
    PENDING = "pending"
    SELECTED = "selected"


@dataclass
class SelectionOutcome:
    quote_id: UUID
    state: str
    status: str
    fired: bool
    bid_count: int
    deadline: datetime
    time_remaining: timedelta
    can_book: bool
    winning_bid_id: Optional[UUID] = None
    selected_vendor_id: Optional[UUID] = None
    final_price: Optional[Decimal] = None
    markup_rate: Optional[Decimal] = None
    winning_bid: Optional[Bid] = field(default=None, repr=False)

    @property
    def is_pending(self) -> bool:
        return self.state == SelectionState.PENDING


def bidding_deadline(quote: ShipmentRequest) -> datetime:
    return quote.created_at + timedelta(hours=settings.BIDDING_WINDOW_HOURS)


def _outcome(db: Session, quote: ShipmentRequest, now: datetime, fired: bool = False) -> SelectionOutcome:
    deadline = bidding_deadline(quote)
    remaining = max(timedelta(0), deadline - now)
    bid_count = bid_repository.count_for_quote(db, quote.id)

    if quote.winning_quote_id is None:
        return SelectionOutcome(
            quote_id=quote.id,
            state=SelectionState.PENDING,
            status=quote.status,
            fired=False,
            bid_count=bid_count,
            deadline=deadline,
            time_remaining=remaining,
            can_book=False,
        )

    winning_bid = bid_repository.get(db, quote.winning_quote_id)
    return SelectionOutcome(
        quote_id=quote.id,
        state=SelectionState.SELECTED,
        status=quote.status,
        fired=fired,
        bid_count=bid_count,
        deadline=deadline,
        time_remaining=timedelta(0),
        can_book=quote.status == ShipmentStatus.CLIENT_REVIEW,
        winning_bid_id=quote.winning_quote_id,
        selected_vendor_id=quote.selected_vendor_id,
        final_price=quote.final_price,
        markup_rate=quote.markup_rate,
        winning_bid=winning_bid,
    )


def is_eligible(bid_count: int, created_at: datetime, now: datetime) -> bool:
    """Enough bids, or the window elapsed with at least one bid"""
    if bid_count == 0:
        return False
    if bid_count >= settings.MIN_BIDS_FOR_SELECTION:
        return True
    return now >= created_at + timedelta(hours=settings.BIDDING_WINDOW_HOURS)


def _commit_selection(
    db: Session,
    quote: ShipmentRequest,
    pick_winner,
    markup_rate: Decimal,
    now: datetime,
    log_details: Optional[dict] = None,
) -> SelectionOutcome:
    """
    Select a winner in one transaction: request status and winner fields,
    winning bid, rejected siblings, log and notifications. A lost race rolls
    everything back and reports the selection that won.
    """
    notifications: List[Notification] = []
    try:
        locked = (
            db.query(ShipmentRequest)
            .filter(ShipmentRequest.id == quote.id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if locked is None or locked.status != ShipmentStatus.AWAITING_BIDS:
            raise InvalidStateTransition(f"Quote {quote.id} is no longer awaiting bids")

        bids = bid_repository.list_for_quote(db, quote.id)
        winner = pick_winner(bids)
        final_price = apply_markup(winner.cost_usd, markup_rate)

        details = {
            "winning_bid_id": winner.id,
            "vendor_id": winner.vendor_id,
            "cost_usd": winner.cost_usd,
            "markup_rate": markup_rate,
            "final_price": final_price,
            "bid_count": len(bids),
        }
        details.update(log_details or {})

        transition_shipment(
            db, quote, ShipmentStatus.CLIENT_REVIEW, ActorRole.SYSTEM,
            expected=ShipmentStatus.AWAITING_BIDS,
            log_details=details,
            selected_vendor_id=winner.vendor_id,
            winning_quote_id=winner.id,
            markup_rate=markup_rate,
            final_price=final_price,
            selected_at=now,
        )
        bid_repository.mark_selection(db, quote.id, winner.id)

        notifications.append(create_notification(
            db, quote.client_id, NotificationType.WINNER_SELECTED,
            title="Your quote is ready",
            message=f"Best offer for your {quote.container_type} {quote.commodity} shipment: USD {final_price}",
            related_shipment_id=quote.id,
        ))
        for bid in bids:
            won = bid.id == winner.id
            notifications.append(create_notification(
                db, bid.vendor_id,
                NotificationType.BID_SELECTED if won else NotificationType.BID_REJECTED,
                title="Bid selected" if won else "Bid not selected",
                message=(
                    f"Your bid of USD {bid.cost_usd} was selected." if won
                    else f"Another offer was selected for quote {quote.id}."
                ),
                related_shipment_id=quote.id,
            ))

        db.commit()
    except InvalidStateTransition:
        db.rollback()
        db.refresh(quote)
        logger.info(f"Selection for quote {quote.id} already made elsewhere; nothing to do")
        return _outcome(db, quote, now, fired=False)
    except Exception:
        db.rollback()
        raise

    queue_delivery(notifications)
    db.refresh(quote)
    logger.info(f"Selected bid {quote.winning_quote_id} for quote {quote.id} at USD {quote.final_price}")
    return _outcome(db, quote, now, fired=True)


def evaluate(db: Session, quote_id: UUID, now: Optional[datetime] = None) -> SelectionOutcome:
    """
    Fire selection if the quote is due, otherwise report how long is left.

    Safe to call repeatedly: once selected, later calls return the existing
    result untouched.
    """
    now = now or datetime.utcnow()
    quote = get_quote(db, quote_id)

    if quote.status != ShipmentStatus.AWAITING_BIDS:
        return _outcome(db, quote, now)

    bid_count = bid_repository.count_for_quote(db, quote.id)
    if not is_eligible(bid_count, quote.created_at, now):
        return _outcome(db, quote, now)

    trigger = "bid_count" if bid_count >= settings.MIN_BIDS_FOR_SELECTION else "window_elapsed"
    return _commit_selection(
        db, quote,
        pick_winner=lambda bids: bids[0],
        markup_rate=settings.MARKUP_RATE,
        now=now,
        log_details={"trigger": trigger},
    )


def select_bid(
    db: Session,
    quote_id: UUID,
    bid_id: UUID,
    admin_id: UUID,
    markup_rate=None,
    now: Optional[datetime] = None,
) -> SelectionOutcome:
    """Admin picks a specific bid instead of waiting for automatic selection"""
    now = now or datetime.utcnow()
    rate = resolve_markup(markup_rate)
    quote = get_quote(db, quote_id)

    if quote.status != ShipmentStatus.AWAITING_BIDS:
        raise InvalidStateTransition(
            f"Quote is '{quote.status}'. A bid can only be selected while '{ShipmentStatus.AWAITING_BIDS}'."
        )

    def pick(bids):
        for bid in bids:
            if bid.id == bid_id:
                return bid
        raise NotFound("Bid not found for this quote")

    outcome = _commit_selection(
        db, quote, pick_winner=pick, markup_rate=rate, now=now,
        log_details={"trigger": "manual", "admin_id": admin_id},
    )
    if not outcome.fired:
        raise InvalidStateTransition("Quote was selected concurrently")
    return outcome


def override_markup(db: Session, quote_id: UUID, markup_rate, admin_id: UUID) -> ShipmentRequest:
    """Reprice a selected quote before the client books it"""
    if markup_rate is None:
        raise ValidationError("markup_rate is required")
    rate = resolve_markup(markup_rate)
    quote = get_quote(db, quote_id)

    if quote.status != ShipmentStatus.CLIENT_REVIEW or quote.winning_quote_id is None:
        raise InvalidStateTransition(
            f"Quote is '{quote.status}'. Markup can only change while '{ShipmentStatus.CLIENT_REVIEW}'."
        )

    winning_bid = bid_repository.get(db, quote.winning_quote_id)
    final_price = apply_markup(winning_bid.cost_usd, rate)
    try:
        changed = update_if_status(db, ShipmentRequest, quote.id, ShipmentStatus.CLIENT_REVIEW, {
            "markup_rate": rate,
            "final_price": final_price,
            "updated_at": datetime.utcnow(),
        })
        if not changed:
            raise InvalidStateTransition("Quote left client review; re-fetch before retrying")
        record_event(db, quote.id, ActorRole.ADMIN, "markup_override", {
            "admin_id": admin_id, "markup_rate": rate, "final_price": final_price,
        })
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(quote)
    logger.info(f"Markup for quote {quote.id} set to {rate} by admin {admin_id}: USD {final_price}")
    return quote


def sweep_expired(db: Session, now: Optional[datetime] = None) -> List[SelectionOutcome]:
    """Evaluate every request whose bidding window has elapsed"""
    now = now or datetime.utcnow()
    cutoff = now - timedelta(hours=settings.BIDDING_WINDOW_HOURS)
    due = (
        db.query(ShipmentRequest.id)
        .filter(
            ShipmentRequest.status == ShipmentStatus.AWAITING_BIDS,
            ShipmentRequest.created_at <= cutoff,
        )
        .all()
    )
    outcomes = []
    for (quote_id,) in due:
        try:
            outcome = evaluate(db, quote_id, now=now)
        except Exception as e:
            db.rollback()
            logger.error(f"Selection sweep failed for quote {quote_id}: {str(e)}")
            continue
        if outcome.fired:
            outcomes.append(outcome)
    return outcomes
