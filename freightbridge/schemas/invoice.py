from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal


class InvoiceCreate(BaseModel):
    shipment_id: UUID
    type: str = "client"  # client, vendor
    amount: Decimal
    due_date: Optional[date] = None


class InvoiceOut(BaseModel):
    id: UUID
    shipment_id: UUID
    user_id: UUID
    amount: Decimal
    type: str
    status: str
    proof_url: Optional[str] = None
    due_date: Optional[date] = None
    paid_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceAction(BaseModel):
    invoice_id: UUID = Field(alias="invoiceId")
    action: str  # paid

    class Config:
        populate_by_name = True
