"""
Amendment Negotiation Workflow

A change request bound to a shipment's BL, carried through vendor, admin
and client round-trips. Every step is a guarded write on the amendment's
status; an accepted amendment rolls the shipment back to draft_bl in the
same transaction so the BL goes through approval again.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from freightbridge.core.config import settings
from freightbridge.core.errors import (
    AmendmentAlreadyOpen,
    Forbidden,
    InvalidStateTransition,
    InvalidAmendmentState,
    NotFound,
    NotReady,
    ValidationError,
)
from freightbridge.db.models import Amendment, BillOfLading, Notification
from freightbridge.services import bl_service
from freightbridge.services.notification_service import NotificationType, create_notification, queue_delivery
from freightbridge.services.quote_service import get_quote
from freightbridge.services.shipment_log import record_event
from freightbridge.services.transitions import transition_amendment, transition_shipment
from freightbridge.utils.amendment_state import AmendmentAction, AmendmentStatus, AmendmentStateMachine
from freightbridge.utils.permissions import ActorRole, CurrentUser, can_view_shipment
from freightbridge.utils.pricing import markup_amount, resolve_markup, to_money
from freightbridge.utils.shipment_state import ShipmentStatus, ShipmentStateMachine

logger = logging.getLogger(__name__)


def total_cost(amendment: Amendment) -> Decimal:
    """What the client pays for the change: extra cost plus broker markup"""
    extra = Decimal(str(amendment.extra_cost or 0))
    if amendment.markup_amount is not None:
        return to_money(extra + Decimal(str(amendment.markup_amount)))
    return to_money(extra + markup_amount(extra, amendment.markup_rate or settings.MARKUP_RATE))


def _check_figures(extra_cost, delay_days):
    if extra_cost is not None and to_money(extra_cost) < 0:
        raise ValidationError("Extra cost cannot be negative")
    if delay_days is not None and delay_days < 0:
        raise ValidationError("Delay days cannot be negative")


def get_amendment(db: Session, amendment_id: UUID) -> Amendment:
    amendment = db.query(Amendment).filter(Amendment.id == amendment_id).first()
    if not amendment:
        raise NotFound("Amendment not found")
    return amendment


def get_amendment_for(db: Session, amendment_id: UUID, user: CurrentUser) -> Amendment:
    amendment = get_amendment(db, amendment_id)
    shipment = get_quote(db, amendment.shipment_id)
    if not can_view_shipment(user, shipment):
        raise NotFound("Amendment not found")
    return amendment


def open_amendment_for(db: Session, shipment_id: UUID) -> Optional[Amendment]:
    return db.query(Amendment).filter(
        Amendment.shipment_id == shipment_id,
        Amendment.open_slot.isnot(None),
    ).first()


def list_by_status(db: Session, status: Optional[str] = None):
    query = db.query(Amendment)
    if status:
        query = query.filter(Amendment.status == status)
    return query.order_by(Amendment.created_at.desc())


def list_for_shipment(db: Session, shipment_id: UUID) -> List[Amendment]:
    return (
        db.query(Amendment)
        .filter(Amendment.shipment_id == shipment_id)
        .order_by(Amendment.created_at.asc())
        .all()
    )


def open_amendment(
    db: Session,
    shipment_id: UUID,
    user: CurrentUser,
    reason: str,
    extra_cost=None,
    delay_days: Optional[int] = None,
    file_url: Optional[str] = None,
) -> Amendment:
    """
    Start a negotiation. Vendors propose post-booking changes on shipments
    they carry, clients request changes on their own shipments, admins open
    one directly under review. One open amendment per shipment.
    """
    actor = user.actor
    if actor not in (ActorRole.VENDOR, ActorRole.CLIENT, ActorRole.ADMIN):
        raise Forbidden("Unknown actor")
    if not reason or not reason.strip():
        raise ValidationError("A reason is required")
    _check_figures(extra_cost, delay_days)

    shipment = get_quote(db, shipment_id)
    if actor == ActorRole.VENDOR and shipment.selected_vendor_id != user.id:
        raise Forbidden("Shipment is not assigned to you")
    if actor == ActorRole.CLIENT and shipment.client_id != user.id:
        raise Forbidden("Not authorized to amend this shipment")
    if not ShipmentStateMachine.can_amend(shipment.status):
        raise InvalidStateTransition(
            f"Shipment is '{shipment.status}'. Amendments are only possible in {ShipmentStateMachine.AMENDABLE}."
        )

    bl = bl_service.latest_bl(db, shipment.id)
    if bl is None:
        raise NotReady("Bill of Lading record not found")

    current = open_amendment_for(db, shipment.id)
    if current is not None:
        raise AmendmentAlreadyOpen(f"Amendment {current.id} is still '{current.status}' for this shipment")

    has_figures = extra_cost is not None or delay_days is not None
    status = AmendmentStateMachine.initial_status(actor, has_figures)
    now = datetime.utcnow()

    amendment = Amendment(
        bl_id=bl.id,
        shipment_id=shipment.id,
        initiated_by=actor,
        initiated_by_id=user.id,
        reason=reason.strip(),
        file_upload=file_url,
        extra_cost=to_money(extra_cost) if extra_cost is not None else None,
        delay_days=delay_days,
        status=status,
        open_slot=shipment.id,
        vendor_reply_at=now if status == AmendmentStatus.VENDOR_REPLIED else None,
        admin_review_at=now if status == AmendmentStatus.ADMIN_REVIEW else None,
    )

    notifications: List[Notification] = []
    try:
        db.add(amendment)
        try:
            db.flush()
        except IntegrityError:
            raise AmendmentAlreadyOpen("Another amendment was opened for this shipment")
        record_event(db, shipment.id, actor, "amendment_opened", {
            "amendment_id": amendment.id, "status": status,
            "extra_cost": amendment.extra_cost, "delay_days": delay_days,
        })
        if actor == ActorRole.CLIENT:
            notifications.append(create_notification(
                db, shipment.selected_vendor_id, NotificationType.AMENDMENT_REQUESTED,
                title="Amendment requested",
                message=f"The client requested a change on {shipment.carrier_reference}: {amendment.reason}",
                related_shipment_id=shipment.id,
                related_amendment_id=amendment.id,
            ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    queue_delivery(notifications)
    db.refresh(amendment)
    logger.info(f"Amendment {amendment.id} opened by {actor} on shipment {shipment.id} ({status})")
    return amendment


def _rollback_shipment(db: Session, amendment: Amendment, actor: str):
    """Send the shipment back into BL approval; the draft needs approving again"""
    shipment = get_quote(db, amendment.shipment_id)
    if shipment.status not in ShipmentStateMachine.ROLLBACK_SOURCES:
        raise InvalidStateTransition(
            f"Shipment is '{shipment.status}' and can no longer take amendment {amendment.id}"
        )
    transition_shipment(
        db, shipment, ShipmentStatus.DRAFT_BL, actor,
        expected=shipment.status,
        log_details={"amendment_id": amendment.id},
    )
    db.query(BillOfLading).filter(BillOfLading.shipment_id == shipment.id).update(
        {"approved": False, "approved_by": None, "approved_at": None}
    )
    return shipment


def _apply(
    db: Session,
    amendment: Amendment,
    action: str,
    user: CurrentUser,
    notify_user_id: Optional[UUID] = None,
    notify_type: str = NotificationType.AMENDMENT_DECIDED,
    notify_title: str = "",
    **values,
) -> Amendment:
    notifications: List[Notification] = []
    try:
        new_status = transition_amendment(db, amendment, action, user.actor, **values)
        if new_status == AmendmentStatus.ACCEPTED:
            _rollback_shipment(db, amendment, user.actor)
        if notify_user_id is not None:
            notifications.append(create_notification(
                db, notify_user_id, notify_type,
                title=notify_title or f"Amendment {new_status.replace('_', ' ')}",
                message=f"Amendment '{amendment.reason}' is now {new_status.replace('_', ' ')}.",
                related_shipment_id=amendment.shipment_id,
                related_amendment_id=amendment.id,
            ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    queue_delivery(notifications)
    db.refresh(amendment)
    return amendment


def vendor_reply(
    db: Session,
    amendment_id: UUID,
    user: CurrentUser,
    accept: bool,
    extra_cost=None,
    delay_days: Optional[int] = None,
    reason: Optional[str] = None,
) -> Amendment:
    """The carrying vendor prices a requested change, or declines it"""
    amendment = get_amendment(db, amendment_id)
    shipment = get_quote(db, amendment.shipment_id)
    if shipment.selected_vendor_id != user.id:
        raise NotFound("Amendment not found or you are not authorized to respond")

    if not accept:
        return _apply(
            db, amendment, AmendmentAction.DECLINE, user,
            notify_user_id=amendment.initiated_by_id,
            vendor_reply_at=datetime.utcnow(),
        )

    if extra_cost is None and delay_days is None:
        raise ValidationError("A reply needs an extra cost or a delay")
    _check_figures(extra_cost, delay_days)
    values = {
        "extra_cost": to_money(extra_cost) if extra_cost is not None else None,
        "delay_days": delay_days,
        "vendor_reply_at": datetime.utcnow(),
    }
    if reason and reason.strip():
        values["reason"] = reason.strip()
    return _apply(db, amendment, AmendmentAction.REPLY, user, **values)


ADMIN_ACTIONS = [AmendmentAction.REVIEW, AmendmentAction.APPROVE, AmendmentAction.REJECT, AmendmentAction.PUSH]
CLIENT_ACTIONS = [AmendmentAction.ACCEPT, AmendmentAction.CANCEL]


def admin_review(
    db: Session,
    amendment_id: UUID,
    user: CurrentUser,
    action: str,
    markup_rate=None,
) -> Amendment:
    """
    Admin decision on an amendment. ``push`` prices the change for the
    client with the given markup rate (or the configured one).
    """
    if action not in ADMIN_ACTIONS:
        raise InvalidAmendmentState(f"Invalid action '{action}'. Must be one of {ADMIN_ACTIONS}")

    amendment = get_amendment(db, amendment_id)
    shipment = get_quote(db, amendment.shipment_id)
    values = {"admin_review_at": datetime.utcnow()}

    if action == AmendmentAction.PUSH:
        rate = resolve_markup(markup_rate)
        values["markup_rate"] = rate
        values["markup_amount"] = markup_amount(amendment.extra_cost or 0, rate)
        return _apply(
            db, amendment, action, user,
            notify_user_id=shipment.client_id,
            notify_type=NotificationType.AMENDMENT_PUSHED,
            notify_title="Amendment awaiting your response",
            **values,
        )

    if action == AmendmentAction.APPROVE:
        values["approved_by"] = user.id

    notify = amendment.initiated_by_id if action in (AmendmentAction.APPROVE, AmendmentAction.REJECT) else None
    return _apply(db, amendment, action, user, notify_user_id=notify, **values)


def client_respond(db: Session, amendment_id: UUID, user: CurrentUser, action: str) -> Amendment:
    """Client accepts (shipment back to draft_bl) or cancels a pushed amendment"""
    if action not in CLIENT_ACTIONS:
        raise InvalidAmendmentState(f"Invalid response '{action}'. Must be one of {CLIENT_ACTIONS}")

    amendment = get_amendment(db, amendment_id)
    shipment = get_quote(db, amendment.shipment_id)
    if shipment.client_id != user.id:
        raise NotFound("Amendment not found")

    values = {"client_response_at": datetime.utcnow()}
    if action == AmendmentAction.ACCEPT:
        values["approved_by"] = user.id
    return _apply(db, amendment, action, user, notify_user_id=shipment.selected_vendor_id, **values)
