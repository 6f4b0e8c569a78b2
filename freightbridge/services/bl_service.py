"""
Bill of Lading lifecycle: vendor uploads, client (or admin) approval
"""
import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from freightbridge.core.errors import Forbidden, NotFound, NotReady, ValidationError, InvalidStateTransition
from freightbridge.db.models import BillOfLading, ShipmentRequest, Notification
from freightbridge.services.notification_service import NotificationType, create_notification, queue_delivery
from freightbridge.services.quote_service import get_quote
from freightbridge.services.shipment_log import record_event
from freightbridge.services.transitions import transition_shipment
from freightbridge.utils.permissions import ActorRole, CurrentUser, is_admin
from freightbridge.utils.shipment_state import ShipmentStatus

logger = logging.getLogger(__name__)


class BLVersion:
    DRAFT = "draft"
    FINAL = "final"


# Shipment statuses in which each version may be (re)uploaded
UPLOAD_WINDOWS = {
    BLVersion.DRAFT: [ShipmentStatus.BOOKED, ShipmentStatus.DRAFT_BL],
    BLVersion.FINAL: [ShipmentStatus.FINAL_BL],
}


def get_bl(db: Session, shipment_id: UUID, version: str) -> Optional[BillOfLading]:
    return db.query(BillOfLading).filter(
        BillOfLading.shipment_id == shipment_id,
        BillOfLading.version == version,
    ).first()


def latest_bl(db: Session, shipment_id: UUID) -> Optional[BillOfLading]:
    """The final BL if there is one, else the draft"""
    return get_bl(db, shipment_id, BLVersion.FINAL) or get_bl(db, shipment_id, BLVersion.DRAFT)


def list_for_shipment(db: Session, shipment_id: UUID) -> List[BillOfLading]:
    return (
        db.query(BillOfLading)
        .filter(BillOfLading.shipment_id == shipment_id)
        .order_by(BillOfLading.uploaded_at.asc())
        .all()
    )


def _write_bl(db: Session, shipment_id: UUID, version: str, file_url: str, vendor_id: UUID) -> BillOfLading:
    """Insert or replace the single row for (shipment, version); must be the first write"""
    bl = get_bl(db, shipment_id, version)
    if bl is None:
        bl = BillOfLading(shipment_id=shipment_id, version=version, file_url=file_url, uploaded_by=vendor_id)
        db.add(bl)
        try:
            db.flush()
            return bl
        except IntegrityError:
            db.rollback()
            bl = get_bl(db, shipment_id, version)

    bl.file_url = file_url
    bl.uploaded_by = vendor_id
    bl.uploaded_at = datetime.utcnow()
    bl.approved = False
    bl.approved_by = None
    bl.approved_at = None
    return bl


def check_upload(db: Session, shipment_id: UUID, vendor_id: UUID, version: str) -> ShipmentRequest:
    """Raise unless this vendor may upload this BL version now"""
    if version not in UPLOAD_WINDOWS:
        raise ValidationError(f"Invalid BL version '{version}'. Must be 'draft' or 'final'")

    shipment = get_quote(db, shipment_id)
    if shipment.selected_vendor_id != vendor_id:
        raise Forbidden("You are not authorized to upload BL for this shipment")
    if shipment.status not in UPLOAD_WINDOWS[version]:
        raise InvalidStateTransition(
            f"Shipment is '{shipment.status}'. A {version} BL can be uploaded only in {UPLOAD_WINDOWS[version]}."
        )
    return shipment


def upload_bl(db: Session, shipment_id: UUID, vendor_id: UUID, version: str, file_url: str) -> BillOfLading:
    """
    Attach a BL document. Only the vendor who won the shipment may upload.
    The first draft moves the shipment from booked to draft_bl.
    """
    shipment = check_upload(db, shipment_id, vendor_id, version)

    notifications: List[Notification] = []
    try:
        from_status = shipment.status
        bl = _write_bl(db, shipment.id, version, file_url, vendor_id)
        if version == BLVersion.DRAFT and from_status == ShipmentStatus.BOOKED:
            transition_shipment(
                db, shipment, ShipmentStatus.DRAFT_BL, ActorRole.VENDOR,
                expected=ShipmentStatus.BOOKED,
                log_details={"file_url": file_url},
            )
        else:
            record_event(db, shipment.id, ActorRole.VENDOR, f"{version}_bl_uploaded", {"file_url": file_url})

        notifications.append(create_notification(
            db, shipment.client_id,
            NotificationType.DRAFT_BL_UPLOADED if version == BLVersion.DRAFT else NotificationType.FINAL_BL_UPLOADED,
            title=f"{version.capitalize()} BL uploaded",
            message=f"A {version} Bill of Lading is available for shipment {shipment.carrier_reference}.",
            related_shipment_id=shipment.id,
        ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    queue_delivery(notifications)
    db.refresh(bl)
    logger.info(f"{version} BL uploaded for shipment {shipment_id} by vendor {vendor_id}")
    return bl


def approve_bl(db: Session, shipment_id: UUID, user: CurrentUser, remarks: Optional[str] = None) -> ShipmentRequest:
    """
    Client approval of the draft BL (admins may override): marks the draft
    approved and moves the shipment from draft_bl to final_bl.
    """
    shipment = get_quote(db, shipment_id)
    admin_override = is_admin(user)
    if not admin_override and shipment.client_id != user.id:
        raise Forbidden("Not authorized to approve BL for this shipment")

    draft = get_bl(db, shipment.id, BLVersion.DRAFT)
    if draft is None:
        raise NotReady("No draft BL has been uploaded for this shipment")
    if shipment.status != ShipmentStatus.DRAFT_BL:
        raise InvalidStateTransition(
            f"Shipment is '{shipment.status}'. BL approval requires '{ShipmentStatus.DRAFT_BL}'."
        )

    notifications: List[Notification] = []
    try:
        now = datetime.utcnow()
        updated = (
            db.query(BillOfLading)
            .filter(BillOfLading.id == draft.id)
            .update({"approved": True, "approved_by": user.id, "approved_at": now, "remarks": remarks})
        )
        if updated != 1:
            raise NotFound("Draft BL not found")
        transition_shipment(
            db, shipment, ShipmentStatus.FINAL_BL,
            ActorRole.ADMIN if admin_override else ActorRole.CLIENT,
            expected=ShipmentStatus.DRAFT_BL,
            log_details={"bl_id": draft.id, "approved_by": user.id, "admin_override": admin_override},
        )
        notifications.append(create_notification(
            db, shipment.selected_vendor_id, NotificationType.BL_APPROVED,
            title="Draft BL approved",
            message=f"The draft BL for {shipment.carrier_reference} was approved. Please issue the final BL.",
            related_shipment_id=shipment.id,
        ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    queue_delivery(notifications)
    db.refresh(shipment)
    logger.info(f"Draft BL for shipment {shipment_id} approved by {user.role} {user.id}")
    return shipment
