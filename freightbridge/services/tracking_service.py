"""
Carrier tracking integration.

Carrier reports, whether pulled by the sweep or pushed to the events
endpoint, are consumed by ``apply_tracking_event`` and go through the same
guarded transitions as user actions.
"""
import logging
import random
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from freightbridge.core.errors import ExternalIntegrationFailure, FreightError, ValidationError
from freightbridge.db.models import ShipmentRequest
from freightbridge.services.notification_service import NotificationType, create_notification, queue_delivery
from freightbridge.services.quote_service import get_quote
from freightbridge.services.shipment_log import record_event
from freightbridge.services.transitions import transition_shipment
from freightbridge.utils.permissions import ActorRole
from freightbridge.utils.shipment_state import ShipmentStatus, ShipmentStateMachine, normalize_status

logger = logging.getLogger(__name__)


@dataclass
class TrackingUpdate:
    status: str
    eta: Optional[date] = None


class CarrierTrackingClient:
    """
    Stand-in for the carriers' tracking APIs. The carrier is recognised from
    the reference prefix; unknown carriers report 'sailed'.
    """

    # carrier -> (probability of reporting delivered, max days to ETA)
    CARRIERS: Dict[str, tuple] = {
        "MAERSK": (0.3, 7),
        "MSC": (0.2, 10),
        "CMA": (0.4, 8),
    }

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def fetch(self, carrier_reference: str) -> TrackingUpdate:
        if not carrier_reference:
            raise ExternalIntegrationFailure("Missing carrier reference")

        reference = carrier_reference.upper()
        carrier = next((c for c in self.CARRIERS if reference.startswith(c)), None)
        today = datetime.utcnow().date()
        if carrier is None:
            return TrackingUpdate(status=ShipmentStatus.SAILED, eta=today + timedelta(days=7))

        delivered_chance, max_days = self.CARRIERS[carrier]
        status = ShipmentStatus.DELIVERED if self.rng.random() < delivered_chance else ShipmentStatus.SAILED
        eta = today + timedelta(days=self.rng.randint(1, max_days))
        return TrackingUpdate(status=status, eta=eta)


carrier_client = CarrierTrackingClient()


def apply_tracking_event(
    db: Session,
    shipment_id: UUID,
    reported_status: str,
    eta: Optional[date] = None,
    source: str = "carrier",
) -> ShipmentRequest:
    """
    Bring a shipment forward to the stage a carrier reported, one legal step
    at a time. Stale or repeated reports only refresh the ETA.
    """
    status = normalize_status(reported_status)
    if status not in ShipmentStateMachine.TRACKING_ORDER:
        raise ValidationError(f"Unsupported tracking status '{reported_status}'")

    shipment = get_quote(db, shipment_id)
    path = ShipmentStateMachine.tracking_path(shipment.status, status)

    notifications = []
    try:
        for step in path:
            transition_shipment(
                db, shipment, step, ActorRole.SYSTEM,
                log_details={"source": source, "reported": reported_status},
            )
        if eta is not None and eta != shipment.eta:
            db.query(ShipmentRequest).filter(ShipmentRequest.id == shipment.id).update({"eta": eta})
        record_event(db, shipment.id, ActorRole.SYSTEM, "tracking_update", {
            "source": source, "reported": reported_status, "eta": eta, "applied": path,
        })
        if path:
            notifications.append(create_notification(
                db, shipment.client_id, NotificationType.TRACKING_UPDATED,
                title="Shipment update",
                message=f"Shipment {shipment.carrier_reference} is now {path[-1]}.",
                related_shipment_id=shipment.id,
            ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    queue_delivery(notifications)
    db.refresh(shipment)
    return shipment


def run_tracking_sweep(db: Session, client: Optional[CarrierTrackingClient] = None) -> dict:
    """
    Poll the carrier for every shipment in a tracked stage. A failure on one
    shipment is logged and the sweep moves on.
    """
    client = client or carrier_client
    shipments = (
        db.query(ShipmentRequest.id, ShipmentRequest.carrier_reference, ShipmentRequest.status)
        .filter(
            ShipmentRequest.status.in_(ShipmentStateMachine.TRACKED),
            ShipmentRequest.carrier_reference.isnot(None),
        )
        .all()
    )

    updated: List[dict] = []
    failed: List[dict] = []
    for shipment_id, reference, old_status in shipments:
        try:
            update = client.fetch(reference)
            shipment = apply_tracking_event(db, shipment_id, update.status, update.eta, source="sweep")
            if shipment.status != old_status:
                updated.append({
                    "id": str(shipment_id),
                    "old_status": old_status,
                    "new_status": shipment.status,
                    "eta": shipment.eta.isoformat() if shipment.eta else None,
                })
        except Exception as e:
            db.rollback()
            error = e if isinstance(e, FreightError) else ExternalIntegrationFailure(f"{type(e).__name__}: {e}")
            logger.error(f"Tracking update failed for shipment {shipment_id} ({reference}): {error.message}")
            failed.append({"id": str(shipment_id), "error": error.message, "kind": error.kind})

    logger.info(f"Tracking sweep: {len(shipments)} checked, {len(updated)} updated, {len(failed)} failed")
    return {"checked": len(shipments), "updated": updated, "failed": failed}
