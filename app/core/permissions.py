from typing import Iterable, Optional, Set
from uuid import UUID

from app.core.claims import (
    AdminClaims,
    Claims,
    OrgManagerClaims,
    PropertyManagerClaims,
    Role,
    PROPERTY_SCOPED_ROLES,
)
from app.core.errors import InvalidArgument, PermissionDenied
from app.models.property import Property

UNPRIVILEGED_MESSAGE = (
    "Your session does not carry a role for this action. "
    "If you just accepted an invitation, refresh your session and try again."
)


def is_admin(claims: Claims) -> bool:
    return isinstance(claims, AdminClaims)


def can_manage_organization(claims: Claims, organization_id: UUID) -> bool:
    """Admins manage every org, org managers their list, property managers their own org."""
    if isinstance(claims, AdminClaims):
        return True
    if isinstance(claims, OrgManagerClaims):
        return organization_id in claims.organization_ids
    if isinstance(claims, PropertyManagerClaims):
        return claims.organization_id == organization_id
    return False


def require_organization_access(claims: Claims, organization_id: UUID, action: str = "manage this organization") -> None:
    if not claims.is_privileged:
        raise PermissionDenied(UNPRIVILEGED_MESSAGE)
    if not can_manage_organization(claims, organization_id):
        raise PermissionDenied(f"You do not have permission to {action}.")


def grantable_roles(claims: Claims, organization_id: UUID) -> Set[Role]:
    """Roles the holder of `claims` may hand out inside `organization_id`."""
    if not can_manage_organization(claims, organization_id):
        return set()
    if isinstance(claims, AdminClaims):
        return {Role.ORGANIZATION_MANAGER, Role.PROPERTY_MANAGER, Role.RESIDENT}
    if isinstance(claims, OrgManagerClaims):
        return {Role.PROPERTY_MANAGER, Role.RESIDENT}
    if isinstance(claims, PropertyManagerClaims):
        return {Role.RESIDENT}
    return set()


def parse_roles(roles: Optional[Iterable[str]]) -> Role:
    """An invitation grants exactly one known role."""
    roles = list(roles or [])
    if not roles:
        raise InvalidArgument("rolesToAssign must contain at least one role.")
    parsed = set()
    for r in roles:
        try:
            parsed.add(Role(str(r).strip().lower()))
        except ValueError:
            raise InvalidArgument(f"Unknown role '{r}'.")
    if len(parsed) != 1:
        raise InvalidArgument("An invitation can assign only one role.")
    return parsed.pop()


def authorize_grant(
    claims: Claims,
    role: Role,
    organization_id: UUID,
    target_property: Optional[Property],
    inviter_account_id: Optional[UUID] = None,
) -> None:
    """
    Raise unless `claims` may invite someone as `role` for the org/property pair.

    The caller has already resolved `target_property` within `organization_id`.
    """
    if not claims.is_privileged:
        raise PermissionDenied(UNPRIVILEGED_MESSAGE)
    if role == Role.ADMIN:
        raise InvalidArgument("The admin role cannot be granted through an invitation.")
    if role in PROPERTY_SCOPED_ROLES and target_property is None:
        raise InvalidArgument("targetPropertyId is required for resident invitations.")
    if role not in PROPERTY_SCOPED_ROLES and target_property is not None:
        raise InvalidArgument(f"targetPropertyId is only valid for resident invitations, not {role.value}.")

    allowed = grantable_roles(claims, organization_id)
    if not allowed:
        raise PermissionDenied("You can only invite within organizations you manage.")
    if role not in allowed:
        raise PermissionDenied(f"You are not allowed to grant the {role.value} role.")

    if isinstance(claims, PropertyManagerClaims) and target_property is not None:
        if target_property.managed_by is not None and target_property.managed_by != inviter_account_id:
            raise PermissionDenied("Property managers can only invite residents to properties they manage.")
