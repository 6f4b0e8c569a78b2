from typing import Optional
from uuid import UUID

from fastapi import Header

from freightbridge.core.errors import Unauthorized
from freightbridge.db.session import get_db  # noqa: F401  re-exported for routers
from freightbridge.utils.permissions import CurrentUser, actor_for_role


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> CurrentUser:
    """
    Resolve the caller from the identity headers set by the auth gateway.
    Authentication happens upstream; the pair is trusted once well-formed.
    """
    if not x_user_id or not x_user_role:
        raise Unauthorized("Missing identity headers")

    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise Unauthorized("Malformed user id")

    if not actor_for_role(x_user_role):
        raise Unauthorized(f"Unknown role '{x_user_role}'")

    return CurrentUser(id=user_id, role=x_user_role.lower())
