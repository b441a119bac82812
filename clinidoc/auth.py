# clinidoc/auth.py
"""
Shared authentication dependencies.

Authentication happens upstream in the identity provider; the gateway
forwards the signed-in user in X-User-Id and their role in X-User-Role.
"""

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status

from clinidoc.models import Role


@dataclass(frozen=True)
class ActingUser:
    """The user performing the current request."""
    user_id: str
    role: Role


ADMIN_ROLES = (Role.SUPER_ADMIN, Role.ADMIN)
ALL_ROLES = (Role.SUPER_ADMIN, Role.ADMIN, Role.STAFF)


def get_acting_user(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_role: str | None = Header(default=None, alias="X-User-Role"),
) -> ActingUser:
    """Resolve the acting user from identity headers. 401 when missing."""
    if not x_user_id or not x_user_id.strip() or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id or X-User-Role header",
        )

    try:
        role = Role(x_user_role.strip())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role: {x_user_role}",
        )

    return ActingUser(user_id=x_user_id.strip(), role=role)


def require_role(*roles: Role):
    """Dependency factory that admits only the given roles."""

    def dependency(user: ActingUser = Depends(get_acting_user)) -> ActingUser:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role {user.role.value} is not allowed to perform this action",
            )
        return user

    return dependency


require_admin = require_role(*ADMIN_ROLES)
require_super_admin = require_role(Role.SUPER_ADMIN)
require_any_role = require_role(*ALL_ROLES)
