"""
Quote requests and vendor bidding
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from freightbridge.core.errors import NotFound, Forbidden, ValidationError
from freightbridge.db.models import ShipmentRequest, Bid
from freightbridge.services import bid_repository
from freightbridge.services.shipment_log import record_event
from freightbridge.services.transitions import transition_shipment
from freightbridge.utils.permissions import ActorRole, CurrentUser, is_admin, can_view_shipment
from freightbridge.utils.pricing import to_money
from freightbridge.utils.shipment_state import ShipmentStatus, ShipmentStateMachine

logger = logging.getLogger(__name__)

MODES = ["Ex-Works", "FOB"]
CONTAINER_TYPES = ["20ft", "40ft", "40HC"]


def validate_request(
    mode: str,
    container_type: str,
    commodity: str,
    num_containers: int,
    shipment_date: date,
    collection_address: Optional[str],
    today: Optional[date] = None,
) -> Optional[str]:
    """
    Check a new quote request; returns the collection address to store
    (dropped unless the mode is Ex-Works).
    """
    today = today or datetime.utcnow().date()

    if mode not in MODES:
        raise ValidationError(f"Invalid mode '{mode}'. Must be one of {MODES}")
    if container_type not in CONTAINER_TYPES:
        raise ValidationError(f"Invalid container type '{container_type}'. Must be one of {CONTAINER_TYPES}")
    if not commodity or not commodity.strip():
        raise ValidationError("Commodity is required")
    if num_containers is None or num_containers < 1:
        raise ValidationError("At least one container is required")
    if shipment_date is None or shipment_date <= today:
        raise ValidationError("Shipment date must be in the future")

    address = (collection_address or "").strip()
    if mode == "Ex-Works":
        if not address:
            raise ValidationError("Collection address is required for Ex-Works shipments")
        return address
    return None


def create_quote(
    db: Session,
    client_id: UUID,
    mode: str,
    container_type: str,
    commodity: str,
    num_containers: int,
    shipment_date: date,
    weight_per_container: Optional[Decimal] = None,
    collection_address: Optional[str] = None,
) -> ShipmentRequest:
    """Create a quote request and open it for bids"""
    address = validate_request(
        mode, container_type, commodity, num_containers, shipment_date, collection_address
    )

    quote = ShipmentRequest(
        client_id=client_id,
        mode=mode,
        container_type=container_type,
        commodity=commodity.strip(),
        num_containers=num_containers,
        weight_per_container=weight_per_container,
        shipment_date=shipment_date,
        collection_address=address,
        status=ShipmentStatus.QUOTE_REQUESTED,
    )
    try:
        db.add(quote)
        db.flush()
        record_event(db, quote.id, ActorRole.CLIENT, "quote_requested", {"client_id": client_id})
        transition_shipment(db, quote, ShipmentStatus.AWAITING_BIDS, ActorRole.CLIENT)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(quote)
    logger.info(f"Quote {quote.id} created by client {client_id}")
    return quote


def get_quote(db: Session, quote_id: UUID) -> ShipmentRequest:
    quote = db.query(ShipmentRequest).filter(ShipmentRequest.id == quote_id).first()
    if not quote:
        raise NotFound("Quote not found")
    return quote


def get_quote_for(db: Session, quote_id: UUID, user: CurrentUser) -> ShipmentRequest:
    quote = get_quote(db, quote_id)
    if not can_view_shipment(user, quote):
        # Don't reveal other clients' quotes
        raise NotFound("Quote not found")
    return quote


def list_for_client(db: Session, client_id: UUID):
    return (
        db.query(ShipmentRequest)
        .filter(ShipmentRequest.client_id == client_id)
        .order_by(ShipmentRequest.created_at.desc())
    )


def list_open_requests(db: Session):
    """Quote requests vendors can still bid on"""
    return (
        db.query(ShipmentRequest)
        .filter(ShipmentRequest.status == ShipmentStatus.AWAITING_BIDS)
        .order_by(ShipmentRequest.created_at.asc())
    )


def list_by_status(db: Session, status: str):
    return (
        db.query(ShipmentRequest)
        .filter(ShipmentRequest.status == status)
        .order_by(ShipmentRequest.created_at.desc())
    )


def submit_bid(
    db: Session,
    quote_id: UUID,
    vendor_id: UUID,
    cost_usd,
    carrier_name: str,
    sailing_date: date,
) -> Bid:
    """
    Submit or revise a vendor's bid. Only allowed while the request is
    awaiting bids; a vendor holds one bid per request.
    """
    quote = get_quote(db, quote_id)

    if not ShipmentStateMachine.can_receive_bids(quote.status):
        raise Forbidden(
            f"Quote is '{quote.status}'. Bids can only be submitted while it is '{ShipmentStatus.AWAITING_BIDS}'."
        )

    cost = to_money(cost_usd)
    if cost <= 0:
        raise ValidationError("Cost must be positive")
    if not carrier_name or not carrier_name.strip():
        raise ValidationError("Carrier name is required")
    if sailing_date is None or sailing_date < datetime.utcnow().date():
        raise ValidationError("Sailing date cannot be in the past")

    try:
        bid = bid_repository.upsert(db, quote.id, vendor_id, cost, carrier_name.strip(), sailing_date)
        # The request may have closed while we were writing; the row lock
        # orders us against a concurrent selection
        still_open = db.query(ShipmentRequest.id).filter(
            ShipmentRequest.id == quote.id,
            ShipmentRequest.status == ShipmentStatus.AWAITING_BIDS,
        ).with_for_update().first()
        if still_open is None:
            raise Forbidden("Quote stopped accepting bids")
        record_event(
            db, quote.id, ActorRole.VENDOR, "bid_submitted",
            {"vendor_id": vendor_id, "cost_usd": cost, "revision": bid.revision_number or 1},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(bid)
    logger.info(f"Bid {bid.id} (rev {bid.revision_number}) from vendor {vendor_id} on quote {quote_id}")
    return bid


def bids_visible_to(db: Session, quote: ShipmentRequest, user: CurrentUser):
    """Admins see every bid; vendors only their own"""
    bids = bid_repository.list_for_quote(db, quote.id)
    if is_admin(user):
        return bids
    return [bid for bid in bids if bid.vendor_id == user.id]
