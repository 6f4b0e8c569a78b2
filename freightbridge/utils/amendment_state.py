"""
Amendment State Machine - Negotiation of a post-booking change
"""
from typing import Dict, List, Tuple

from freightbridge.utils.permissions import ActorRole


class AmendmentStatus:
    REQUESTED = "requested"
    VENDOR_REPLIED = "vendor_replied"
    ADMIN_REVIEW = "admin_review"
    CLIENT_REVIEW = "client_review"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    ALL = [REQUESTED, VENDOR_REPLIED, ADMIN_REVIEW, CLIENT_REVIEW, ACCEPTED, REJECTED]


class AmendmentAction:
    REPLY = "reply"
    DECLINE = "decline"
    REVIEW = "review"
    APPROVE = "approve"
    REJECT = "reject"
    PUSH = "push"
    ACCEPT = "accept"
    CANCEL = "cancel"


class AmendmentStateMachine:
    """
    requested → vendor_replied → admin_review → client_review → accepted
                              ↘ accepted | rejected            ↘ rejected

    Each action is owned by one actor and is legal from a fixed set of
    pre-states. An admin may reject any open amendment, including a request
    the vendor never answered.
    """

    # action -> (actor, allowed pre-states, resulting state)
    ACTIONS: Dict[str, Tuple[str, List[str], str]] = {
        AmendmentAction.REPLY: (ActorRole.VENDOR, [AmendmentStatus.REQUESTED], AmendmentStatus.VENDOR_REPLIED),
        AmendmentAction.DECLINE: (ActorRole.VENDOR, [AmendmentStatus.REQUESTED], AmendmentStatus.REJECTED),
        AmendmentAction.REVIEW: (ActorRole.ADMIN, [AmendmentStatus.VENDOR_REPLIED], AmendmentStatus.ADMIN_REVIEW),
        AmendmentAction.APPROVE: (ActorRole.ADMIN, [AmendmentStatus.VENDOR_REPLIED], AmendmentStatus.ACCEPTED),
        AmendmentAction.REJECT: (
            ActorRole.ADMIN,
            [AmendmentStatus.REQUESTED, AmendmentStatus.VENDOR_REPLIED, AmendmentStatus.ADMIN_REVIEW],
            AmendmentStatus.REJECTED,
        ),
        AmendmentAction.PUSH: (ActorRole.ADMIN, [AmendmentStatus.ADMIN_REVIEW], AmendmentStatus.CLIENT_REVIEW),
        AmendmentAction.ACCEPT: (ActorRole.CLIENT, [AmendmentStatus.CLIENT_REVIEW], AmendmentStatus.ACCEPTED),
        AmendmentAction.CANCEL: (ActorRole.CLIENT, [AmendmentStatus.CLIENT_REVIEW], AmendmentStatus.REJECTED),
    }

    @classmethod
    def actions_for(cls, actor: str) -> List[str]:
        return [name for name, (owner, _, _) in cls.ACTIONS.items() if owner == actor]

    @classmethod
    def resolve(cls, action: str) -> Tuple[str, List[str], str]:
        if action not in cls.ACTIONS:
            raise KeyError(action)
        return cls.ACTIONS[action]

    @classmethod
    def is_terminal_status(cls, status: str) -> bool:
        return status in [AmendmentStatus.ACCEPTED, AmendmentStatus.REJECTED]

    @classmethod
    def initial_status(cls, initiated_by: str, has_vendor_figures: bool = False) -> str:
        """
        Admin-initiated amendments start under admin review. A vendor that
        opens a change with its cost/delay already attached has replied.
        """
        if initiated_by == ActorRole.ADMIN:
            return AmendmentStatus.ADMIN_REVIEW
        if initiated_by == ActorRole.VENDOR and has_vendor_figures:
            return AmendmentStatus.VENDOR_REPLIED
        return AmendmentStatus.REQUESTED
