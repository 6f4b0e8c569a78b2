"""
Shipment audit trail
"""
import json
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from freightbridge.db.models import ShipmentLog


def _default(value):
    if isinstance(value, (datetime,)):
        return value.isoformat()
    return str(value)


def record_event(
    db: Session,
    shipment_id: UUID,
    actor: str,
    action: str,
    details: Optional[Dict[str, Any]] = None,
) -> ShipmentLog:
    """Add a log row to the current transaction; the caller commits"""
    entry = ShipmentLog(
        shipment_id=shipment_id,
        actor=actor,
        action=action,
        details=json.dumps(details or {}, default=_default),
    )
    db.add(entry)
    return entry


def history(db: Session, shipment_id: UUID) -> List[dict]:
    rows = (
        db.query(ShipmentLog)
        .filter(ShipmentLog.shipment_id == shipment_id)
        .order_by(ShipmentLog.timestamp.asc(), ShipmentLog.id.asc())
        .all()
    )
    return [
        {
            "id": row.id,
            "actor": row.actor,
            "action": row.action,
            "details": json.loads(row.details) if row.details else {},
            "timestamp": row.timestamp,
        }
        for row in rows
    ]
