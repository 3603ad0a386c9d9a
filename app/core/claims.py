"""
Role claims attached to an account.

Raw claims are the loosely-typed bag stored on the account row and embedded in
access tokens:

    {"roles": ["resident"], "organization_id": "...", "property_id": "..."}

Everything downstream works on the parsed variant instead, so a resident
without a property (or a property manager carrying a property scope) is
rejected at the boundary rather than trusted through optional fields.
"""
import enum
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class Role(str, enum.Enum):
    ADMIN = "admin"
    ORGANIZATION_MANAGER = "organization_manager"
    PROPERTY_MANAGER = "property_manager"
    RESIDENT = "resident"


# Roles that are scoped to a single property
PROPERTY_SCOPED_ROLES = {Role.RESIDENT}


class MalformedClaims(ValueError):
    """Raw claims do not describe exactly one valid role variant."""


class _Claims(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def is_privileged(self) -> bool:
        return True


class Unprivileged(_Claims):
    """Signed in, but no role (or claims the server no longer trusts)."""
    kind: Literal["unprivileged"] = "unprivileged"

    @property
    def is_privileged(self) -> bool:
        return False


class AdminClaims(_Claims):
    kind: Literal["admin"] = "admin"


class OrgManagerClaims(_Claims):
    kind: Literal["organization_manager"] = "organization_manager"
    # An organization manager can be provisioned before any org is assigned
    organization_ids: Tuple[UUID, ...] = ()


class PropertyManagerClaims(_Claims):
    kind: Literal["property_manager"] = "property_manager"
    organization_id: UUID


class ResidentClaims(_Claims):
    kind: Literal["resident"] = "resident"
    organization_id: UUID
    property_id: UUID


Claims = Annotated[
    Union[Unprivileged, AdminClaims, OrgManagerClaims, PropertyManagerClaims, ResidentClaims],
    Field(discriminator="kind"),
]

_claims_adapter = TypeAdapter(Claims)


def parse_claims(raw: Optional[Dict[str, Any]]) -> Claims:
    """Validate a raw claims bag into its role variant."""
    if not raw or not raw.get("roles"):
        if raw and any(raw.get(k) for k in ("organization_id", "organization_ids", "property_id")):
            raise MalformedClaims("Tenant scope present without a role")
        return Unprivileged()

    roles = raw["roles"]
    if not isinstance(roles, (list, tuple)) or len(set(roles)) != 1:
        raise MalformedClaims(f"Expected exactly one role, got {roles!r}")
    try:
        role = Role(roles[0])
    except ValueError:
        raise MalformedClaims(f"Unknown role {roles[0]!r}")

    payload: Dict[str, Any] = {"kind": role.value}
    for key in ("organization_id", "organization_ids", "property_id"):
        value = raw.get(key)
        if value not in (None, [], ()):
            payload[key] = value
    try:
        return _claims_adapter.validate_python(payload)
    except ValidationError as e:
        raise MalformedClaims(f"Invalid claims for role {role.value}: {e.errors()}")


def to_raw(claims: Claims) -> Dict[str, Any]:
    """Serialize a variant back to the raw bag (JSON-safe)."""
    if isinstance(claims, Unprivileged):
        return {"roles": []}
    raw: Dict[str, Any] = {"roles": [claims.kind]}
    if isinstance(claims, OrgManagerClaims):
        raw["organization_ids"] = [str(o) for o in claims.organization_ids]
    if isinstance(claims, (PropertyManagerClaims, ResidentClaims)):
        raw["organization_id"] = str(claims.organization_id)
    if isinstance(claims, ResidentClaims):
        raw["property_id"] = str(claims.property_id)
    return raw


def role_of(claims: Claims) -> Optional[Role]:
    if isinstance(claims, Unprivileged):
        return None
    return Role(claims.kind)


def claims_for_grant(
    role: Role,
    organization_id: UUID,
    property_id: Optional[UUID],
    existing: Claims,
) -> Claims:
    """
    Build the claims a redemption writes for a granted role.

    Organization managers accumulate organizations across invitations; every
    other grant replaces the (empty) existing claims.
    """
    if role == Role.ORGANIZATION_MANAGER:
        org_ids = list(existing.organization_ids) if isinstance(existing, OrgManagerClaims) else []
        if organization_id not in org_ids:
            org_ids.append(organization_id)
        return OrgManagerClaims(organization_ids=tuple(org_ids))
    if role == Role.PROPERTY_MANAGER:
        return PropertyManagerClaims(organization_id=organization_id)
    if role == Role.RESIDENT:
        if property_id is None:
            raise MalformedClaims("Resident grant requires a property")
        return ResidentClaims(organization_id=organization_id, property_id=property_id)
    raise MalformedClaims(f"Role {role.value} cannot be granted through an invitation")
