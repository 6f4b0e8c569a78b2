"""
Role-based access control utilities
"""
from dataclasses import dataclass
from uuid import UUID

from freightbridge.core.errors import Forbidden


class ActorRole:
    """The three marketplace actors"""
    CLIENT = "client"
    VENDOR = "vendor"
    ADMIN = "admin"
    SYSTEM = "system"


# Fine-grained roles collapse onto the actor they act for
ROLES = {
    # Client roles
    "client": ActorRole.CLIENT,
    "client_admin": ActorRole.CLIENT,
    "bl_manager": ActorRole.CLIENT,
    "pricing_reviewer": ActorRole.CLIENT,
    "accounts": ActorRole.CLIENT,
    # Vendor roles
    "vendor": ActorRole.VENDOR,
    "vendor_admin": ActorRole.VENDOR,
    "pricing_agent": ActorRole.VENDOR,
    "bl_manager_vendor": ActorRole.VENDOR,
    "accounts_vendor": ActorRole.VENDOR,
    # Admin (broker) roles
    "admin": ActorRole.ADMIN,
    "system_admin": ActorRole.ADMIN,
    "vendor_manager": ActorRole.ADMIN,
    "quote_control": ActorRole.ADMIN,
    "amendment_reviewer": ActorRole.ADMIN,
    "finance_admin": ActorRole.ADMIN,
    "analytics_officer": ActorRole.ADMIN,
}


@dataclass(frozen=True)
class CurrentUser:
    """Identity resolved upstream and trusted as-is"""
    id: UUID
    role: str

    @property
    def actor(self) -> str:
        return actor_for_role(self.role)


def actor_for_role(role: str) -> str:
    """Map a fine-grained role to its actor, or '' if unknown"""
    return ROLES.get((role or "").lower(), "")


def is_client(user: CurrentUser) -> bool:
    return user.actor == ActorRole.CLIENT


def is_vendor(user: CurrentUser) -> bool:
    return user.actor == ActorRole.VENDOR


def is_admin(user: CurrentUser) -> bool:
    return user.actor == ActorRole.ADMIN


def require_role(user: CurrentUser, *actors: str):
    """Raise Forbidden if the user does not act as one of the given actors"""
    if user.actor not in actors:
        raise Forbidden(f"Requires {' or '.join(actors)} role")


def can_view_shipment(user: CurrentUser, shipment) -> bool:
    """Owning client, selected vendor and admins can see a shipment"""
    if is_admin(user):
        return True
    if is_client(user) and shipment.client_id == user.id:
        return True
    if is_vendor(user) and shipment.selected_vendor_id == user.id:
        return True
    return False
