from fastapi import APIRouter, Depends, UploadFile, File, Form
from sqlalchemy.orm import Session
from uuid import UUID

from freightbridge.core.deps import get_current_user, get_db
from freightbridge.api.amendments import amendment_out
from freightbridge.schemas.amendment import AmendmentOut, VendorReply
from freightbridge.schemas.bid import BidCreate, BidOut, OpenRequestOut
from freightbridge.schemas.bl import BillOfLadingOut
from freightbridge.services import amendment_service, bid_repository, bl_service, quote_service
from freightbridge.services.file_store import DOCUMENT_TYPES, file_store
from freightbridge.utils.pagination import PaginationParams, create_paginated_response, paginate_query
from freightbridge.utils.permissions import ActorRole, CurrentUser, require_role

router = APIRouter(prefix="/vendor", tags=["vendor"])


@router.get("/quotes")
def list_open_requests(
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Quote requests still accepting bids"""
    require_role(current_user, ActorRole.VENDOR)
    query = quote_service.list_open_requests(db)
    items, total = paginate_query(query, pagination.skip, pagination.limit)
    return create_paginated_response(items, total, pagination.skip, pagination.limit, schema=OpenRequestOut)


@router.post("/quotes/{quote_id}/bid", response_model=BidOut)
def submit_bid(
    quote_id: UUID,
    payload: BidCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Submit a bid, or revise this vendor's existing bid on the request"""
    require_role(current_user, ActorRole.VENDOR)
    return quote_service.submit_bid(
        db,
        quote_id=quote_id,
        vendor_id=current_user.id,
        cost_usd=payload.cost_usd,
        carrier_name=payload.carrier_name,
        sailing_date=payload.sailing_date,
    )


@router.get("/bids")
def list_my_bids(
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    require_role(current_user, ActorRole.VENDOR)
    query = bid_repository.list_for_vendor(db, current_user.id)
    items, total = paginate_query(query, pagination.skip, pagination.limit)
    return create_paginated_response(items, total, pagination.skip, pagination.limit, schema=BidOut)


@router.post("/upload-bl", response_model=BillOfLadingOut)
async def upload_bl(
    shipment_id: UUID = Form(...),
    version: str = Form("draft"),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Upload the draft or final BL for a shipment this vendor carries"""
    require_role(current_user, ActorRole.VENDOR)
    bl_service.check_upload(db, shipment_id, current_user.id, version)
    file_url = await file_store.store(file, "bl", DOCUMENT_TYPES)
    return bl_service.upload_bl(db, shipment_id, current_user.id, version, file_url)


@router.post("/amendments/{amendment_id}/reply", response_model=AmendmentOut)
def reply_to_amendment(
    amendment_id: UUID,
    payload: VendorReply,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Price a requested change (cost and/or delay) or decline it"""
    require_role(current_user, ActorRole.VENDOR)
    amendment = amendment_service.vendor_reply(
        db, amendment_id, current_user,
        accept=payload.accept,
        extra_cost=payload.extra_cost,
        delay_days=payload.delay_days,
        reason=payload.reason,
    )
    return amendment_out(amendment)
