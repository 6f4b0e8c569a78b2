"""
Invoice/Payment Status Tracker
"""
import logging
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from freightbridge.core.errors import Forbidden, NotFound, ValidationError, InvalidStateTransition
from freightbridge.db.models import Invoice
from freightbridge.services.notification_service import NotificationType, create_notification, queue_delivery
from freightbridge.services.quote_service import get_quote
from freightbridge.services.shipment_log import record_event
from freightbridge.services.transitions import transition_invoice
from freightbridge.utils.invoice_state import InvoiceStatus, InvoiceType, InvoiceStateMachine
from freightbridge.utils.permissions import ActorRole, CurrentUser, is_admin
from freightbridge.utils.pricing import to_money

logger = logging.getLogger(__name__)


def get_invoice(db: Session, invoice_id: UUID) -> Invoice:
    invoice = db.query(Invoice).filter(Invoice.id == invoice_id).first()
    if not invoice:
        raise NotFound("Invoice not found")
    return invoice


def list_invoices(db: Session, invoice_type: Optional[str] = None, status: Optional[str] = None):
    query = db.query(Invoice)
    if invoice_type:
        query = query.filter(Invoice.type == invoice_type)
    if status and status != "all":
        query = query.filter(Invoice.status == status)
    return query.order_by(Invoice.created_at.desc())


def list_for_user(db: Session, user_id: UUID):
    return db.query(Invoice).filter(Invoice.user_id == user_id).order_by(Invoice.created_at.desc())


def issue_invoice(
    db: Session,
    shipment_id: UUID,
    invoice_type: str,
    amount,
    due_date: Optional[date] = None,
    admin_id: Optional[UUID] = None,
) -> Invoice:
    """Bill the client or record what is owed to the carrying vendor"""
    if invoice_type not in (InvoiceType.CLIENT, InvoiceType.VENDOR):
        raise ValidationError("Invoice type must be 'client' or 'vendor'")
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Invoice amount must be positive")

    shipment = get_quote(db, shipment_id)
    user_id = shipment.client_id if invoice_type == InvoiceType.CLIENT else shipment.selected_vendor_id
    if user_id is None:
        raise ValidationError("Shipment has no vendor to invoice")

    invoice = Invoice(
        shipment_id=shipment.id,
        user_id=user_id,
        amount=amount,
        type=invoice_type,
        status=InvoiceStatus.UNPAID,
        due_date=due_date,
    )
    try:
        db.add(invoice)
        db.flush()
        record_event(db, shipment.id, ActorRole.ADMIN, "invoice_issued", {
            "invoice_id": invoice.id, "type": invoice_type, "amount": amount, "admin_id": admin_id,
        })
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(invoice)
    return invoice


def check_proof_upload(db: Session, invoice_id: UUID, user: CurrentUser) -> Invoice:
    """Raise unless this user may attach payment proof to the invoice now"""
    invoice = get_invoice(db, invoice_id)
    if not is_admin(user) and invoice.user_id != user.id:
        raise Forbidden("Not authorized to pay this invoice")
    if not InvoiceStateMachine.can_transition(invoice.status, InvoiceStatus.AWAITING_VERIFICATION):
        raise InvalidStateTransition(f"Invoice is '{invoice.status}'; proof can only be uploaded while unpaid")
    return invoice


def upload_payment_proof(db: Session, invoice_id: UUID, user: CurrentUser, proof_url: str) -> Invoice:
    """Invoice holder (or an admin on their behalf) submits proof: unpaid -> awaiting_verification"""
    invoice = check_proof_upload(db, invoice_id, user)

    try:
        if not transition_invoice(
            db, invoice, InvoiceStatus.UNPAID, InvoiceStatus.AWAITING_VERIFICATION, proof_url=proof_url
        ):
            raise InvalidStateTransition("Invoice changed concurrently; re-fetch before retrying")
        record_event(db, invoice.shipment_id, user.actor, "payment_proof_uploaded", {
            "invoice_id": invoice.id, "proof_url": proof_url,
        })
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(invoice)
    logger.info(f"Payment proof uploaded for invoice {invoice.id}")
    return invoice


def mark_paid(db: Session, invoice_id: UUID, admin_id: UUID) -> Invoice:
    """Admin confirms payment, from unpaid or awaiting_verification"""
    invoice = get_invoice(db, invoice_id)
    if invoice.status not in InvoiceStateMachine.sources_of(InvoiceStatus.PAID):
        raise InvalidStateTransition(f"Invoice is already '{invoice.status}'")

    notifications = []
    try:
        if not transition_invoice(db, invoice, invoice.status, InvoiceStatus.PAID, paid_at=datetime.utcnow()):
            raise InvalidStateTransition("Invoice changed concurrently; re-fetch before retrying")
        record_event(db, invoice.shipment_id, ActorRole.ADMIN, "invoice_paid", {
            "invoice_id": invoice.id, "admin_id": admin_id,
        })
        notifications.append(create_notification(
            db, invoice.user_id, NotificationType.INVOICE_PAID,
            title="Invoice paid",
            message=f"Invoice for USD {invoice.amount} is marked as paid.",
            related_shipment_id=invoice.shipment_id,
        ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    queue_delivery(notifications)
    db.refresh(invoice)
    logger.info(f"Invoice {invoice.id} marked paid by admin {admin_id}")
    return invoice
