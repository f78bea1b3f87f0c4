"""Role and admin derivation.

Pure functions of the current SessionState. Nothing here is cached, so the
answers always follow the latest state.
"""

from typing import Optional, Union

from auth_session.models import Profile, SessionState, UserRole


ADMIN_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPER_ADMIN})
SELLER_ROLES = frozenset({UserRole.SELLER}) | ADMIN_ROLES


def is_admin_role(role: Optional[UserRole]) -> bool:
    return role in ADMIN_ROLES


def is_admin_profile(profile: Optional[Profile]) -> bool:
    return profile is not None and is_admin_role(profile.role)


def can_access(state: SessionState, required_role: Union[UserRole, str]) -> bool:
    """Check whether the current user may access a role-gated area.

    admin requires an admin-tier role, seller requires seller or admin-tier,
    buyer is granted once any role is known. Without a profile nothing is
    granted.
    """
    if state.user is None:
        return False
    required = UserRole(required_role)
    role = state.user.role
    if required == UserRole.SUPER_ADMIN:
        return role == UserRole.SUPER_ADMIN
    if required == UserRole.ADMIN:
        return role in ADMIN_ROLES
    if required == UserRole.SELLER:
        return role in SELLER_ROLES
    return True
