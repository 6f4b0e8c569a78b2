from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from uuid import UUID
from datetime import date, datetime


class TrackingEvent(BaseModel):
    """A carrier status report pushed by an integration"""
    shipment_id: UUID
    status: str
    eta: Optional[date] = None
    source: str = "carrier"


class TrackingOut(BaseModel):
    shipment_id: UUID
    status: str
    carrier_reference: Optional[str] = None
    sailing_date: Optional[date] = None
    eta: Optional[date] = None
    status_updated_at: Optional[datetime] = None
    events: List[Dict[str, Any]] = []


class ShipmentLogOut(BaseModel):
    id: int
    actor: str
    action: str
    details: Dict[str, Any]
    timestamp: datetime
