"""
Booking Finalizer - commits the winning bid into the shipment record
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from freightbridge.core.config import settings
from freightbridge.core.errors import Forbidden, NoWinningQuote, NotReady, InvalidStateTransition
from freightbridge.db.models import ShipmentRequest, Notification
from freightbridge.services import bid_repository
from freightbridge.services.notification_service import NotificationType, create_notification, queue_delivery
from freightbridge.services.quote_service import get_quote
from freightbridge.services.transitions import transition_shipment
from freightbridge.utils.permissions import ActorRole
from freightbridge.utils.shipment_state import ShipmentStatus, ShipmentStateMachine

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    shipment: ShipmentRequest
    carrier_reference: str
    confirmed: bool


def carrier_reference_for(quote_id: UUID, carrier_name: Optional[str]) -> str:
    """
    Carrier prefix plus the first eight hex digits of the request id,
    e.g. ``MAERSK-1A2B3C4D``. The prefix is the carrier's first word.
    """
    words = re.findall(r"[A-Za-z0-9]+", carrier_name or "")
    prefix = words[0][:6] if words else settings.CARRIER_REFERENCE_PREFIX
    return f"{prefix}-{quote_id.hex[:8]}".upper()


def book(db: Session, quote_id: UUID, acting_client_id: UUID) -> BookingResult:
    """
    Book the selected offer on behalf of the owning client.

    Moves client_review -> booking and, unless bookings are confirmed by the
    scheduler, straight on to booked.
    """
    quote = get_quote(db, quote_id)

    if quote.client_id != acting_client_id:
        raise Forbidden("Not authorized to book this quote")
    if quote.winning_quote_id is None:
        raise NoWinningQuote("No offer has been selected for this quote yet")
    if not ShipmentStateMachine.can_book(quote.status):
        raise NotReady(f"Quote is '{quote.status}'. Booking requires '{ShipmentStatus.CLIENT_REVIEW}'.")

    winning_bid = bid_repository.get(db, quote.winning_quote_id)
    if winning_bid is None:
        raise NoWinningQuote("Selected offer no longer exists")

    reference = carrier_reference_for(quote.id, winning_bid.carrier_name)
    try:
        transition_shipment(
            db, quote, ShipmentStatus.BOOKING, ActorRole.CLIENT,
            expected=ShipmentStatus.CLIENT_REVIEW,
            log_details={"client_id": acting_client_id, "carrier_reference": reference},
            selected_vendor_id=winning_bid.vendor_id,
            sailing_date=winning_bid.sailing_date,
            carrier_reference=reference,
        )
        db.commit()
    except InvalidStateTransition as e:
        db.rollback()
        raise NotReady(str(e))
    except Exception:
        db.rollback()
        raise

    db.refresh(quote)
    logger.info(f"Quote {quote.id} booking started, carrier reference {reference}")

    confirmed = False
    if settings.BOOKING_AUTO_CONFIRM:
        confirm_booking(db, quote.id)
        db.refresh(quote)
        confirmed = quote.status == ShipmentStatus.BOOKED

    return BookingResult(shipment=quote, carrier_reference=reference, confirmed=confirmed)


def confirm_booking(db: Session, quote_id: UUID) -> ShipmentRequest:
    """System push booking -> booked; a no-op if already confirmed"""
    quote = get_quote(db, quote_id)
    if quote.status != ShipmentStatus.BOOKING:
        return quote

    notifications: List[Notification] = []
    try:
        now = datetime.utcnow()
        transition_shipment(
            db, quote, ShipmentStatus.BOOKED, ActorRole.SYSTEM,
            expected=ShipmentStatus.BOOKING,
            log_details={"carrier_reference": quote.carrier_reference},
            booked_at=now,
        )
        notifications.append(create_notification(
            db, quote.selected_vendor_id, NotificationType.BOOKING_CONFIRMED,
            title="Booking confirmed",
            message=f"Shipment {quote.carrier_reference} is booked. Please upload the draft BL.",
            related_shipment_id=quote.id,
        ))
        notifications.append(create_notification(
            db, quote.client_id, NotificationType.BOOKING_CONFIRMED,
            title="Booking confirmed",
            message=f"Your shipment is booked under reference {quote.carrier_reference}.",
            related_shipment_id=quote.id,
        ))
        db.commit()
    except InvalidStateTransition:
        db.rollback()
        db.refresh(quote)
        return quote
    except Exception:
        db.rollback()
        raise

    queue_delivery(notifications)
    db.refresh(quote)
    return quote


def confirm_pending_bookings(db: Session) -> int:
    """Scheduler entrypoint: confirm every booking still in flight"""
    pending = (
        db.query(ShipmentRequest.id)
        .filter(ShipmentRequest.status == ShipmentStatus.BOOKING)
        .all()
    )
    confirmed = 0
    for (quote_id,) in pending:
        quote = confirm_booking(db, quote_id)
        if quote.status == ShipmentStatus.BOOKED:
            confirmed += 1
    return confirmed
