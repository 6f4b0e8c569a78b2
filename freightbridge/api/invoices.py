from fastapi import APIRouter, Depends, UploadFile, File
from sqlalchemy.orm import Session
from uuid import UUID

from freightbridge.core.deps import get_current_user, get_db
from freightbridge.schemas.invoice import InvoiceOut
from freightbridge.services import invoice_service
from freightbridge.services.file_store import PROOF_TYPES, file_store
from freightbridge.utils.pagination import PaginationParams, create_paginated_response, paginate_query
from freightbridge.utils.permissions import CurrentUser

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.get("")
def list_my_invoices(
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Invoices billed to a client or owed to a vendor"""
    query = invoice_service.list_for_user(db, current_user.id)
    items, total = paginate_query(query, pagination.skip, pagination.limit)
    return create_paginated_response(items, total, pagination.skip, pagination.limit, schema=InvoiceOut)


@router.post("/{invoice_id}/upload-payment", response_model=InvoiceOut)
async def upload_payment_proof(
    invoice_id: UUID,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Attach proof of payment; the invoice waits for admin verification"""
    invoice_service.check_proof_upload(db, invoice_id, current_user)
    proof_url = await file_store.store(file, "payments", PROOF_TYPES)
    return invoice_service.upload_payment_proof(db, invoice_id, current_user, proof_url)
