"""
Bid Repository - storage and retrieval of vendor bids per quote request.

Pure data access. Status policy lives with the callers.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from freightbridge.db.models import Bid


class BidStatus:
    SUBMITTED = "submitted"
    SELECTED = "selected"
    REJECTED = "rejected"


def get(db: Session, bid_id: UUID) -> Optional[Bid]:
    return db.query(Bid).filter(Bid.id == bid_id).first()


def get_for_vendor(db: Session, quote_request_id: UUID, vendor_id: UUID) -> Optional[Bid]:
    return db.query(Bid).filter(
        Bid.quote_request_id == quote_request_id,
        Bid.vendor_id == vendor_id,
    ).first()


def list_for_quote(db: Session, quote_request_id: UUID) -> List[Bid]:
    """Cheapest first; earliest submission wins a tie"""
    return (
        db.query(Bid)
        .filter(Bid.quote_request_id == quote_request_id)
        .order_by(Bid.cost_usd.asc(), Bid.created_at.asc(), Bid.id.asc())
        .all()
    )


def count_for_quote(db: Session, quote_request_id: UUID) -> int:
    return db.query(Bid).filter(Bid.quote_request_id == quote_request_id).count()


def list_for_vendor(db: Session, vendor_id: UUID):
    return db.query(Bid).filter(Bid.vendor_id == vendor_id).order_by(Bid.created_at.desc())


def upsert(
    db: Session,
    quote_request_id: UUID,
    vendor_id: UUID,
    cost_usd: Decimal,
    carrier_name: str,
    sailing_date,
) -> Bid:
    """
    Insert the vendor's bid, or revise it if the vendor already bid.

    One row per (quote, vendor) is guaranteed by a unique constraint; a
    concurrent first insert that loses the race falls back to a revision.
    Must be the first write of the caller's transaction. Does not commit.
    """
    existing = get_for_vendor(db, quote_request_id, vendor_id)
    if existing is None:
        bid = Bid(
            quote_request_id=quote_request_id,
            vendor_id=vendor_id,
            cost_usd=cost_usd,
            carrier_name=carrier_name,
            sailing_date=sailing_date,
            status=BidStatus.SUBMITTED,
        )
        db.add(bid)
        try:
            db.flush()
            return bid
        except IntegrityError:
            db.rollback()
            existing = get_for_vendor(db, quote_request_id, vendor_id)

    existing.cost_usd = cost_usd
    existing.carrier_name = carrier_name
    existing.sailing_date = sailing_date
    existing.revision_number = (existing.revision_number or 1) + 1
    existing.updated_at = datetime.utcnow()
    return existing


def mark_selection(db: Session, quote_request_id: UUID, winning_bid_id: UUID):
    """Winner becomes selected and every sibling rejected, in the caller's transaction"""
    now = datetime.utcnow()
    db.query(Bid).filter(
        Bid.quote_request_id == quote_request_id,
        Bid.id == winning_bid_id,
    ).update({"status": BidStatus.SELECTED, "updated_at": now})
    db.query(Bid).filter(
        Bid.quote_request_id == quote_request_id,
        Bid.id != winning_bid_id,
    ).update({"status": BidStatus.REJECTED, "updated_at": now})
