from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal


class BidCreate(BaseModel):
    cost_usd: Decimal
    carrier_name: str
    sailing_date: date


class BidOut(BaseModel):
    id: UUID
    quote_request_id: UUID
    vendor_id: UUID
    cost_usd: Decimal
    carrier_name: str
    sailing_date: date
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    # Revision tracking
    revision_number: int

    class Config:
        from_attributes = True


class OpenRequestOut(BaseModel):
    """What a vendor sees of a quote request it can bid on"""
    id: UUID
    mode: str
    container_type: str
    commodity: str
    num_containers: int
    weight_per_container: Optional[Decimal] = None
    shipment_date: date
    collection_address: Optional[str] = None
    status: str
    created_at: datetime

    class Config:
        from_attributes = True
