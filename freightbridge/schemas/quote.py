from pydantic import BaseModel, Field
from typing import Optional
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID


# ------------------------
# Quote request schemas
# ------------------------
class QuoteCreate(BaseModel):
    mode: str  # Ex-Works, FOB
    container_type: str  # 20ft, 40ft, 40HC
    commodity: str
    num_containers: int = 1
    weight_per_container: Optional[Decimal] = None
    shipment_date: date
    collection_address: Optional[str] = None  # required for Ex-Works


class QuoteOut(BaseModel):
    id: UUID
    client_id: UUID
    mode: str
    container_type: str
    commodity: str
    num_containers: int
    weight_per_container: Optional[Decimal] = None
    shipment_date: date
    collection_address: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    status_updated_at: Optional[datetime] = None

    # Populated once a bid is selected
    selected_vendor_id: Optional[UUID] = None
    winning_quote_id: Optional[UUID] = None
    markup_rate: Optional[Decimal] = None
    final_price: Optional[Decimal] = None
    selected_at: Optional[datetime] = None

    # Populated once booked
    carrier_reference: Optional[str] = None
    sailing_date: Optional[date] = None
    booked_at: Optional[datetime] = None
    eta: Optional[date] = None

    class Config:
        from_attributes = True


class QuoteResultOut(BaseModel):
    """Selection result as the client sees it: price only, no vendor cost"""
    quote_id: UUID
    status: str
    state: str  # pending, selected
    bid_count: int
    deadline: datetime
    time_remaining_seconds: int
    can_book: bool
    final_price: Optional[Decimal] = None
    markup_rate: Optional[Decimal] = None
    carrier_name: Optional[str] = None
    sailing_date: Optional[date] = None

    @classmethod
    def from_outcome(cls, outcome) -> "QuoteResultOut":
        bid = outcome.winning_bid
        return cls(
            quote_id=outcome.quote_id,
            status=outcome.status,
            state=outcome.state,
            bid_count=outcome.bid_count,
            deadline=outcome.deadline,
            time_remaining_seconds=int(outcome.time_remaining.total_seconds()),
            can_book=outcome.can_book,
            final_price=outcome.final_price,
            markup_rate=outcome.markup_rate,
            carrier_name=bid.carrier_name if bid else None,
            sailing_date=bid.sailing_date if bid else None,
        )


class BookingOut(BaseModel):
    shipment: QuoteOut
    carrier_reference: str
    confirmed: bool


class AdminQuoteAction(BaseModel):
    """Admin action on a quote: pick a bid, or reprice the selected one"""
    quote_id: UUID = Field(alias="quoteId")
    action: str  # select, override_markup
    bid_id: Optional[UUID] = Field(default=None, alias="bidId")
    markup_rate: Optional[Decimal] = Field(default=None, alias="markupRate")

    class Config:
        populate_by_name = True
