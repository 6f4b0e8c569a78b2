from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from freightbridge.core.deps import get_current_user, get_db
from freightbridge.schemas.quote import QuoteCreate, QuoteOut, QuoteResultOut, BookingOut
from freightbridge.services import booking_service, quote_service, winner_selection
from freightbridge.utils.pagination import PaginationParams, create_paginated_response, paginate_query
from freightbridge.utils.permissions import ActorRole, CurrentUser, require_role

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post("", response_model=QuoteOut, status_code=201)
def create_quote(
    payload: QuoteCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Create a quote request - opens it for vendor bids"""
    require_role(current_user, ActorRole.CLIENT)
    return quote_service.create_quote(
        db,
        client_id=current_user.id,
        mode=payload.mode,
        container_type=payload.container_type,
        commodity=payload.commodity,
        num_containers=payload.num_containers,
        shipment_date=payload.shipment_date,
        weight_per_container=payload.weight_per_container,
        collection_address=payload.collection_address,
    )


@router.get("")
def list_my_quotes(
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """The client's own quote requests and shipments, newest first"""
    require_role(current_user, ActorRole.CLIENT)
    query = quote_service.list_for_client(db, current_user.id)
    items, total = paginate_query(query, pagination.skip, pagination.limit)
    return create_paginated_response(items, total, pagination.skip, pagination.limit, schema=QuoteOut)


@router.get("/{quote_id}", response_model=QuoteOut)
def get_quote(
    quote_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return quote_service.get_quote_for(db, quote_id, current_user)


@router.get("/{quote_id}/result", response_model=QuoteResultOut)
def get_quote_result(
    quote_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Poll the selection result. Evaluating fires the selection when the
    request is due, so the first poll after the third bid or the end of the
    bidding window returns the priced offer.
    """
    quote_service.get_quote_for(db, quote_id, current_user)
    outcome = winner_selection.evaluate(db, quote_id)
    return QuoteResultOut.from_outcome(outcome)


@router.post("/{quote_id}/book", response_model=BookingOut)
def book_quote(
    quote_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Book the selected offer"""
    require_role(current_user, ActorRole.CLIENT)
    result = booking_service.book(db, quote_id, current_user.id)
    return BookingOut(
        shipment=QuoteOut.model_validate(result.shipment),
        carrier_reference=result.carrier_reference,
        confirmed=result.confirmed,
    )
