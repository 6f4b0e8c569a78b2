from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from datetime import datetime


class BillOfLadingOut(BaseModel):
    id: UUID
    shipment_id: UUID
    version: str  # draft, final
    file_url: str
    uploaded_by: UUID
    approved: bool
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    remarks: Optional[str] = None
    uploaded_at: datetime

    class Config:
        from_attributes = True


class BLApproval(BaseModel):
    remarks: Optional[str] = None
