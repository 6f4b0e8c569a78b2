"""
Admin (broker) endpoints: quote control, amendment review, invoicing and
carrier tracking.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from freightbridge.api.amendments import amendment_out
from freightbridge.core.deps import get_current_user, get_db
from freightbridge.core.errors import ValidationError
from freightbridge.schemas.amendment import AdminAmendmentAction, AmendmentOut
from freightbridge.schemas.bid import BidOut
from freightbridge.schemas.invoice import InvoiceAction, InvoiceCreate, InvoiceOut
from freightbridge.schemas.quote import AdminQuoteAction, QuoteOut
from freightbridge.schemas.tracking import TrackingEvent
from freightbridge.services import amendment_service, invoice_service, quote_service, tracking_service, winner_selection
from freightbridge.utils.pagination import PaginationParams, create_paginated_response, paginate_query
from freightbridge.utils.permissions import ActorRole, CurrentUser, require_role
from freightbridge.utils.shipment_state import normalize_status

router = APIRouter(prefix="/admin", tags=["admin"])

QUOTE_ACTIONS = ["select", "override_markup"]
INVOICE_ACTIONS = ["paid", "mark_paid"]


# ------------------------
# Quotes
# ------------------------
@router.get("/quotes")
def list_quotes(
    status: str = "awaiting_bids",
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    require_role(current_user, ActorRole.ADMIN)
    query = quote_service.list_by_status(db, normalize_status(status))
    items, total = paginate_query(query, pagination.skip, pagination.limit)
    return create_paginated_response(items, total, pagination.skip, pagination.limit, schema=QuoteOut)


@router.get("/quotes/{quote_id}/bids", response_model=List[BidOut])
def list_quote_bids(
    quote_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Every bid on a request, cheapest first"""
    require_role(current_user, ActorRole.ADMIN)
    quote = quote_service.get_quote(db, quote_id)
    return quote_service.bids_visible_to(db, quote, current_user)


@router.put("/quotes", response_model=QuoteOut)
def update_quote(
    payload: AdminQuoteAction,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    select: pick a bid manually (optionally with a custom markup)
    override_markup: reprice the selected bid while the client reviews it
    """
    require_role(current_user, ActorRole.ADMIN)
    if payload.action not in QUOTE_ACTIONS:
        raise ValidationError(f"Invalid action '{payload.action}'. Must be one of {QUOTE_ACTIONS}")

    if payload.action == "select":
        if payload.bid_id is None:
            raise ValidationError("bidId is required to select a bid")
        winner_selection.select_bid(
            db, payload.quote_id, payload.bid_id, current_user.id, markup_rate=payload.markup_rate
        )
        return quote_service.get_quote(db, payload.quote_id)

    return winner_selection.override_markup(db, payload.quote_id, payload.markup_rate, current_user.id)


# ------------------------
# Amendments
# ------------------------
@router.get("/amendments")
def list_amendments(
    status: Optional[str] = None,
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    require_role(current_user, ActorRole.ADMIN)
    query = amendment_service.list_by_status(db, status)
    items, total = paginate_query(query, pagination.skip, pagination.limit)
    return create_paginated_response(
        [amendment_out(a) for a in items], total, pagination.skip, pagination.limit
    )


@router.put("/amendments", response_model=AmendmentOut)
def review_amendment(
    payload: AdminAmendmentAction,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    require_role(current_user, ActorRole.ADMIN)
    amendment = amendment_service.admin_review(
        db, payload.amendment_id, current_user, payload.action, markup_rate=payload.markup_rate
    )
    return amendment_out(amendment)


# ------------------------
# Invoices
# ------------------------
@router.get("/invoices")
def list_invoices(
    type: Optional[str] = None,
    status: Optional[str] = None,
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    require_role(current_user, ActorRole.ADMIN)
    query = invoice_service.list_invoices(db, invoice_type=type, status=status)
    items, total = paginate_query(query, pagination.skip, pagination.limit)
    return create_paginated_response(items, total, pagination.skip, pagination.limit, schema=InvoiceOut)


@router.post("/invoices", response_model=InvoiceOut, status_code=201)
def issue_invoice(
    payload: InvoiceCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    require_role(current_user, ActorRole.ADMIN)
    return invoice_service.issue_invoice(
        db, payload.shipment_id, payload.type, payload.amount,
        due_date=payload.due_date, admin_id=current_user.id,
    )


@router.put("/invoices", response_model=InvoiceOut)
def update_invoice(
    payload: InvoiceAction,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Confirm payment of an invoice"""
    require_role(current_user, ActorRole.ADMIN)
    if payload.action not in INVOICE_ACTIONS:
        raise ValidationError(f"Invalid action '{payload.action}'. Must be 'paid'")
    return invoice_service.mark_paid(db, payload.invoice_id, current_user.id)


# ------------------------
# Tracking
# ------------------------
@router.post("/tracking/events", response_model=QuoteOut)
def push_tracking_event(
    payload: TrackingEvent,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Apply a carrier status report received out of band"""
    require_role(current_user, ActorRole.ADMIN)
    return tracking_service.apply_tracking_event(
        db, payload.shipment_id, payload.status, eta=payload.eta, source=payload.source
    )


@router.post("/tracking/run")
def run_tracking_sweep(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Poll carriers for every shipment in transit now"""
    require_role(current_user, ActorRole.ADMIN)
    return tracking_service.run_tracking_sweep(db)
