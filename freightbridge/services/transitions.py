"""
Guarded status writes.

Every status change is a conditional UPDATE that only matches while the row
still holds the expected pre-state. A zero row count means another caller got
there first; nothing is written and the caller's transaction is left for it
to roll back.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from freightbridge.core.errors import InvalidStateTransition, InvalidAmendmentState
from freightbridge.db.models import ShipmentRequest, Amendment, Invoice
from freightbridge.services.shipment_log import record_event
from freightbridge.utils.shipment_state import ShipmentStateMachine
from freightbridge.utils.amendment_state import AmendmentStateMachine

logger = logging.getLogger(__name__)


def update_if_status(db: Session, model, row_id, expected_status: str, values: dict) -> bool:
    """Compare-and-set on ``model.status``; True if exactly one row changed"""
    rows = (
        db.query(model)
        .filter(model.id == row_id, model.status == expected_status)
        .update(values)
    )
    return rows == 1


def transition_shipment(
    db: Session,
    shipment: ShipmentRequest,
    to_status: str,
    actor: str,
    expected: Optional[str] = None,
    log_details: Optional[dict] = None,
    **values,
) -> ShipmentRequest:
    """
    Validate and apply one shipment transition.

    ``expected`` defaults to the status the caller last read. Raises
    InvalidStateTransition without writing if the edge is illegal, the actor
    is wrong, or the stored status moved on.
    """
    from_status = expected or shipment.status
    is_valid, message = ShipmentStateMachine.validate_transition(from_status, to_status, actor)
    if not is_valid:
        raise InvalidStateTransition(message)

    now = datetime.utcnow()
    values.update({"status": to_status, "status_updated_at": now, "updated_at": now})
    if not update_if_status(db, ShipmentRequest, shipment.id, from_status, values):
        raise InvalidStateTransition(
            f"Shipment {shipment.id} is no longer '{from_status}'; re-fetch before retrying"
        )

    details = {"from": from_status, "to": to_status}
    details.update(log_details or {})
    record_event(db, shipment.id, actor, f"status:{to_status}", details)
    logger.info(f"Shipment {shipment.id}: {from_status} -> {to_status} by {actor}")
    return shipment


def transition_amendment(
    db: Session,
    amendment: Amendment,
    action: str,
    actor: str,
    **values,
) -> str:
    """Apply an amendment action; returns the new status"""
    try:
        owner, sources, to_status = AmendmentStateMachine.resolve(action)
    except KeyError:
        raise InvalidAmendmentState(f"Unknown amendment action '{action}'")

    if owner != actor:
        raise InvalidAmendmentState(f"Action '{action}' belongs to {owner}, not {actor}")

    from_status = amendment.status
    if from_status not in sources:
        raise InvalidAmendmentState(
            f"Cannot '{action}' an amendment in '{from_status}'. Requires one of {sources}"
        )

    values["status"] = to_status
    if AmendmentStateMachine.is_terminal_status(to_status):
        values["open_slot"] = None

    if not update_if_status(db, Amendment, amendment.id, from_status, values):
        raise InvalidAmendmentState(
            f"Amendment {amendment.id} is no longer '{from_status}'; re-fetch before retrying"
        )

    record_event(
        db, amendment.shipment_id, actor, f"amendment:{action}",
        {"amendment_id": amendment.id, "from": from_status, "to": to_status},
    )
    logger.info(f"Amendment {amendment.id}: {from_status} -> {to_status} ({action} by {actor})")
    return to_status


def transition_invoice(db: Session, invoice: Invoice, expected: str, to_status: str, **values) -> bool:
    values["status"] = to_status
    return update_if_status(db, Invoice, invoice.id, expected, values)
