from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from datetime import datetime
from decimal import Decimal


class AmendmentOut(BaseModel):
    id: UUID
    bl_id: UUID
    shipment_id: UUID
    initiated_by: str
    initiated_by_id: UUID
    reason: str
    file_upload: Optional[str] = None
    extra_cost: Optional[Decimal] = None
    markup_rate: Optional[Decimal] = None
    markup_amount: Optional[Decimal] = None
    total_cost: Optional[Decimal] = None
    delay_days: Optional[int] = None
    status: str
    approved_by: Optional[UUID] = None
    vendor_reply_at: Optional[datetime] = None
    admin_review_at: Optional[datetime] = None
    client_response_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class VendorReply(BaseModel):
    accept: bool = True
    extra_cost: Optional[Decimal] = None
    delay_days: Optional[int] = None
    reason: Optional[str] = None


class AdminAmendmentAction(BaseModel):
    amendment_id: UUID = Field(alias="amendmentId")
    action: str  # review, approve, reject, push
    markup_rate: Optional[Decimal] = Field(default=None, alias="markupRate")

    class Config:
        populate_by_name = True


class ClientResponse(BaseModel):
    action: str  # accept, cancel
