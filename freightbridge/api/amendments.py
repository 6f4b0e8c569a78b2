from fastapi import APIRouter, Depends, UploadFile, File, Form
from sqlalchemy.orm import Session
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from freightbridge.core.deps import get_current_user, get_db
from freightbridge.schemas.amendment import AmendmentOut, ClientResponse
from freightbridge.services import amendment_service, quote_service
from freightbridge.services.file_store import ATTACHMENT_TYPES, file_store
from freightbridge.utils.permissions import ActorRole, CurrentUser, require_role

router = APIRouter(prefix="/amendments", tags=["amendments"])


def amendment_out(amendment) -> AmendmentOut:
    """Serialize with the client-facing total (extra cost plus markup)"""
    out = AmendmentOut.model_validate(amendment)
    out.total_cost = amendment_service.total_cost(amendment)
    return out


@router.post("", response_model=AmendmentOut, status_code=201)
async def open_amendment(
    shipment_id: UUID = Form(...),
    reason: str = Form(...),
    extra_cost: Optional[Decimal] = Form(None),
    delay_days: Optional[int] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Open an amendment on a shipment's BL.
    Vendors propose post-booking changes, clients request them and admins
    raise them straight into review.
    """
    file_url = None
    if file is not None and file.filename:
        file_url = await file_store.store(file, "amendments", ATTACHMENT_TYPES)

    amendment = amendment_service.open_amendment(
        db, shipment_id, current_user,
        reason=reason,
        extra_cost=extra_cost,
        delay_days=delay_days,
        file_url=file_url,
    )
    return amendment_out(amendment)


@router.get("/shipment/{shipment_id}", response_model=List[AmendmentOut])
def list_for_shipment(
    shipment_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    quote_service.get_quote_for(db, shipment_id, current_user)
    return [amendment_out(a) for a in amendment_service.list_for_shipment(db, shipment_id)]


@router.get("/{amendment_id}", response_model=AmendmentOut)
def get_amendment(
    amendment_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return amendment_out(amendment_service.get_amendment_for(db, amendment_id, current_user))


@router.post("/{amendment_id}/respond", response_model=AmendmentOut)
def respond_to_amendment(
    amendment_id: UUID,
    payload: ClientResponse,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Client accepts or cancels an amendment pushed for review"""
    require_role(current_user, ActorRole.CLIENT)
    amendment = amendment_service.client_respond(db, amendment_id, current_user, payload.action)
    return amendment_out(amendment)
