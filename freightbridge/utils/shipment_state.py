"""
Shipment State Machine - Manages the quote-to-delivery lifecycle
"""
from typing import Optional, List, Dict, Tuple

from freightbridge.utils.permissions import ActorRole


class ShipmentStatus:
    """Valid shipment status values"""
    QUOTE_REQUESTED = "quote_requested"
    AWAITING_BIDS = "awaiting_bids"
    CLIENT_REVIEW = "client_review"
    BOOKING = "booking"
    BOOKED = "booked"
    DRAFT_BL = "draft_bl"
    FINAL_BL = "final_bl"
    LOADING = "loading"
    SAILED = "sailed"
    DELIVERED = "delivered"

    ALL = [
        QUOTE_REQUESTED, AWAITING_BIDS, CLIENT_REVIEW, BOOKING, BOOKED,
        DRAFT_BL, FINAL_BL, LOADING, SAILED, DELIVERED,
    ]


# Names used by the quote-stage and shipment-stage vocabularies, mapped once
STATUS_ALIASES = {
    "quote_received": ShipmentStatus.AWAITING_BIDS,
    "bids_received": ShipmentStatus.AWAITING_BIDS,
    "quote_confirmed": ShipmentStatus.CLIENT_REVIEW,
    "draft_bl_uploaded": ShipmentStatus.DRAFT_BL,
    "final_bl_uploaded": ShipmentStatus.FINAL_BL,
    "in_transit": ShipmentStatus.SAILED,
}


def normalize_status(status: Optional[str]) -> Optional[str]:
    """Map any legacy status name onto the unified vocabulary"""
    if status is None:
        return None
    status = status.strip().lower()
    return STATUS_ALIASES.get(status, status)


class ShipmentStateMachine:
    """
    State machine for the shipment lifecycle.

    State Flow:
    quote_requested → awaiting_bids → client_review → booking → booked
        → draft_bl → final_bl → loading → sailed → delivered

    The only backward edge is the amendment rollback into draft_bl.
    Tracking may skip loading and report sailed straight from final_bl.
    """

    # (from, to) -> actor allowed to trigger it
    TRIGGERS: Dict[Tuple[str, str], str] = {
        (ShipmentStatus.QUOTE_REQUESTED, ShipmentStatus.AWAITING_BIDS): ActorRole.CLIENT,
        (ShipmentStatus.AWAITING_BIDS, ShipmentStatus.CLIENT_REVIEW): ActorRole.SYSTEM,
        (ShipmentStatus.CLIENT_REVIEW, ShipmentStatus.BOOKING): ActorRole.CLIENT,
        (ShipmentStatus.BOOKING, ShipmentStatus.BOOKED): ActorRole.SYSTEM,
        (ShipmentStatus.BOOKED, ShipmentStatus.DRAFT_BL): ActorRole.VENDOR,
        (ShipmentStatus.DRAFT_BL, ShipmentStatus.FINAL_BL): ActorRole.CLIENT,
        (ShipmentStatus.DRAFT_BL, ShipmentStatus.DRAFT_BL): ActorRole.CLIENT,  # amendment rollback
        (ShipmentStatus.FINAL_BL, ShipmentStatus.DRAFT_BL): ActorRole.CLIENT,  # amendment rollback
        (ShipmentStatus.FINAL_BL, ShipmentStatus.LOADING): ActorRole.SYSTEM,
        (ShipmentStatus.FINAL_BL, ShipmentStatus.SAILED): ActorRole.SYSTEM,
        (ShipmentStatus.LOADING, ShipmentStatus.SAILED): ActorRole.SYSTEM,
        (ShipmentStatus.SAILED, ShipmentStatus.DELIVERED): ActorRole.SYSTEM,
    }

    # Admins may stand in for the client on BL approval and amendment sign-off
    OVERRIDES: Dict[Tuple[str, str], List[str]] = {
        (ShipmentStatus.DRAFT_BL, ShipmentStatus.FINAL_BL): [ActorRole.ADMIN],
        (ShipmentStatus.DRAFT_BL, ShipmentStatus.DRAFT_BL): [ActorRole.ADMIN],
        (ShipmentStatus.FINAL_BL, ShipmentStatus.DRAFT_BL): [ActorRole.ADMIN],
    }

    ROLLBACK_SOURCES = [ShipmentStatus.DRAFT_BL, ShipmentStatus.FINAL_BL]
    AMENDABLE = [ShipmentStatus.DRAFT_BL, ShipmentStatus.FINAL_BL]
    TRACKED = [ShipmentStatus.FINAL_BL, ShipmentStatus.LOADING, ShipmentStatus.SAILED]

    # Forward order of the tracking stages, used to walk a carrier report
    TRACKING_ORDER = [
        ShipmentStatus.FINAL_BL, ShipmentStatus.LOADING,
        ShipmentStatus.SAILED, ShipmentStatus.DELIVERED,
    ]

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if transition from one status to another is valid"""
        return (from_status, to_status) in cls.TRIGGERS

    @classmethod
    def get_allowed_transitions(cls, current_status: str) -> List[str]:
        """Get list of allowed status transitions from current status"""
        return [to for (frm, to) in cls.TRIGGERS if frm == current_status]

    @classmethod
    def trigger_actor(cls, from_status: str, to_status: str) -> Optional[str]:
        return cls.TRIGGERS.get((from_status, to_status))

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str, actor: str) -> tuple[bool, str]:
        """
        Validate a status transition for the acting party.

        Returns:
            (is_valid, error_message)
        """
        if not cls.can_transition(from_status, to_status):
            allowed = cls.get_allowed_transitions(from_status)
            return False, f"Cannot transition from '{from_status}' to '{to_status}'. Allowed: {allowed}"

        expected_actor = cls.trigger_actor(from_status, to_status)
        if actor != expected_actor and actor not in cls.OVERRIDES.get((from_status, to_status), []):
            return False, f"Transition '{from_status}' -> '{to_status}' is triggered by {expected_actor}, not {actor}"

        return True, "Valid transition"

    @classmethod
    def is_terminal_status(cls, status: str) -> bool:
        return status == ShipmentStatus.DELIVERED

    @classmethod
    def can_receive_bids(cls, status: str) -> bool:
        """Check if the quote request is open to vendor bids"""
        return status == ShipmentStatus.AWAITING_BIDS

    @classmethod
    def can_book(cls, status: str) -> bool:
        return status == ShipmentStatus.CLIENT_REVIEW

    @classmethod
    def can_amend(cls, status: str) -> bool:
        """Amendments attach to a BL, so only during the BL stages"""
        return status in cls.AMENDABLE

    @classmethod
    def tracking_path(cls, from_status: str, reported_status: str) -> List[str]:
        """
        Steps needed to bring a shipment from its current tracking stage up to
        the stage a carrier reported. Empty if the report is stale or unknown.
        """
        if from_status not in cls.TRACKING_ORDER or reported_status not in cls.TRACKING_ORDER:
            return []
        start = cls.TRACKING_ORDER.index(from_status)
        end = cls.TRACKING_ORDER.index(reported_status)
        if end <= start:
            return []
        # final_bl may jump straight to sailed
        if from_status == ShipmentStatus.FINAL_BL and end >= cls.TRACKING_ORDER.index(ShipmentStatus.SAILED):
            return cls.TRACKING_ORDER[cls.TRACKING_ORDER.index(ShipmentStatus.SAILED):end + 1]
        return cls.TRACKING_ORDER[start + 1:end + 1]
