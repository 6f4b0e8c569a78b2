from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from freightbridge.core.deps import get_current_user, get_db
from freightbridge.schemas.bl import BillOfLadingOut, BLApproval
from freightbridge.schemas.quote import QuoteOut
from freightbridge.schemas.tracking import ShipmentLogOut, TrackingOut
from freightbridge.services import bl_service, quote_service, shipment_log
from freightbridge.utils.permissions import CurrentUser

router = APIRouter(prefix="/shipments", tags=["shipments"])


@router.post("/{shipment_id}/approve-bl", response_model=QuoteOut)
def approve_bl(
    shipment_id: UUID,
    payload: Optional[BLApproval] = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Approve the draft BL; the shipment moves on to final_bl"""
    remarks = payload.remarks if payload else None
    return bl_service.approve_bl(db, shipment_id, current_user, remarks=remarks)


@router.get("/{shipment_id}/bls", response_model=List[BillOfLadingOut])
def list_bls(
    shipment_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    quote_service.get_quote_for(db, shipment_id, current_user)
    return bl_service.list_for_shipment(db, shipment_id)


@router.get("/{shipment_id}/tracking", response_model=TrackingOut)
def get_tracking(
    shipment_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Current stage, ETA and the status timeline"""
    shipment = quote_service.get_quote_for(db, shipment_id, current_user)
    events = [
        entry for entry in shipment_log.history(db, shipment.id)
        if entry["action"] == "tracking_update" or entry["action"].startswith("status:")
    ]
    return TrackingOut(
        shipment_id=shipment.id,
        status=shipment.status,
        carrier_reference=shipment.carrier_reference,
        sailing_date=shipment.sailing_date,
        eta=shipment.eta,
        status_updated_at=shipment.status_updated_at,
        events=events,
    )


@router.get("/{shipment_id}/history", response_model=List[ShipmentLogOut])
def get_history(
    shipment_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    quote_service.get_quote_for(db, shipment_id, current_user)
    return shipment_log.history(db, shipment_id)
