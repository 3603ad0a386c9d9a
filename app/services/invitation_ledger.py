"""
Invitation ledger: create, revoke, list and expire single invitations.

Status only moves forward (pending -> accepted | cancelled | expired). Every
status write is an UPDATE guarded on `status = 'pending'` so a revoke racing an
in-flight redemption loses cleanly instead of overwriting it.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.core.audit import log_security_event
from app.core.claims import Claims, role_of
from app.core.config import settings
from app.core.errors import AlreadyUsed, Expired, FailedPrecondition, InvalidArgument, NotFound
from app.core.permissions import authorize_grant, parse_roles, require_organization_access
from app.db.transaction import run_in_transaction
from app.models.audit_log import AuditEventType
from app.models.invitation import Invitation, InvitationStatus
from app.models.organization import Organization
from app.models.property import Property
from app.services import onboarding_email

logger = logging.getLogger(__name__)

# Deliberately loose: .local and other internal domains are accepted
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

REVOKED_MESSAGE = "This invitation was revoked. Ask your property manager to send a new one."


def normalize_email(email: Optional[str]) -> str:
    normalized = (email or "").strip().lower()
    if not normalized or not EMAIL_RE.match(normalized):
        raise InvalidArgument(f"'{email}' is not a valid email address.")
    return normalized


def check_redeemable(inv: Invitation, now: datetime) -> None:
    """Raise the error a redemption of `inv` would fail with, if any."""
    if inv.status == InvitationStatus.ACCEPTED:
        raise AlreadyUsed()
    if inv.status == InvitationStatus.CANCELLED:
        raise AlreadyUsed(REVOKED_MESSAGE)
    if inv.status == InvitationStatus.EXPIRED or inv.expires_at <= now:
        raise Expired()


def _get_property_in_org(db: Session, organization_id: UUID, property_id: Optional[UUID]) -> Optional[Property]:
    if property_id is None:
        return None
    prop = db.query(Property).filter(
        Property.id == property_id,
        Property.organization_id == organization_id,
    ).first()
    if not prop:
        raise NotFound("Property not found in this organization.")
    return prop


def create_invitation(
    db: Session,
    claims: Claims,
    actor_id: Optional[UUID],
    email: str,
    roles: List[str],
    organization_id: UUID,
    property_id: Optional[UUID] = None,
    invitee_name: Optional[str] = None,
) -> Invitation:
    email = normalize_email(email)
    role = parse_roles(roles)

    org = db.query(Organization).filter(Organization.id == organization_id).first()
    if not org:
        raise NotFound("Organization not found.")
    prop = _get_property_in_org(db, organization_id, property_id)
    authorize_grant(claims, role, organization_id, prop, actor_id)

    now = datetime.utcnow()
    existing = db.query(Invitation).filter(
        Invitation.organization_id == organization_id,
        func.lower(Invitation.invitee_email) == email,
        Invitation.status == InvitationStatus.PENDING,
        Invitation.expires_at > now,
    ).first()
    if existing:
        raise FailedPrecondition("An invitation for this email is already pending.")

    inv = Invitation(
        organization_id=organization_id,
        invitee_email=email,
        invitee_name=(invitee_name or "").strip() or None,
        roles_to_assign=[role.value],
        target_property_id=prop.id if prop else None,
        invited_by_role=role_of(claims).value,
        created_by=actor_id,
        status=InvitationStatus.PENDING,
        created_at=now,
        expires_at=now + timedelta(days=settings.INVITATION_TTL_DAYS),
    )
    db.add(inv)
    db.flush()
    log_security_event(
        db,
        AuditEventType.INVITATION_CREATED,
        organization_id=organization_id,
        account_id=actor_id,
        resource_type="invitation",
        resource_id=inv.id,
        details={"role": role.value, "property_id": prop.id if prop else None},
        commit=False,
    )
    db.commit()
    db.refresh(inv)
    logger.info(f"[INVITE] {actor_id} invited {email} as {role.value} to org {organization_id}")

    onboarding_email.send_invitation_email(
        email,
        role.value,
        org.name,
        onboarding_email.invitation_link(inv.id, organization_id),
        property_name=prop.name if prop else None,
        invitee_name=inv.invitee_name,
    )
    return inv


def revoke_invitation(
    db: Session,
    claims: Claims,
    actor_id: Optional[UUID],
    organization_id: UUID,
    invitation_id: UUID,
) -> None:
    """Cancel a pending invitation. A second revoke fails with FailedPrecondition."""

    def work(db: Session) -> None:
        inv = db.query(Invitation).filter(
            Invitation.id == invitation_id,
            Invitation.organization_id == organization_id,
        ).with_for_update().first()
        if not inv:
            raise NotFound("Invitation not found.")

        require_organization_access(claims, inv.organization_id, "revoke invitations in this organization")
        prop = db.query(Property).filter(Property.id == inv.target_property_id).first() if inv.target_property_id else None
        authorize_grant(claims, parse_roles(inv.roles_to_assign), inv.organization_id, prop, actor_id)

        if inv.status != InvitationStatus.PENDING:
            raise FailedPrecondition(
                f"Invitation is already {inv.status.value}; only pending invitations can be revoked."
            )

        now = datetime.utcnow()
        result = db.execute(
            update(Invitation)
            .where(Invitation.id == inv.id, Invitation.status == InvitationStatus.PENDING)
            .values(status=InvitationStatus.CANCELLED, cancelled_at=now, cancelled_by=actor_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.expire(inv)
            raise FailedPrecondition(
                f"Invitation is already {inv.status.value}; only pending invitations can be revoked."
            )
        log_security_event(
            db,
            AuditEventType.INVITATION_REVOKED,
            organization_id=inv.organization_id,
            account_id=actor_id,
            resource_type="invitation",
            resource_id=inv.id,
            commit=False,
        )

    run_in_transaction(db, work)
    logger.info(f"[INVITE] {actor_id} revoked invitation {invitation_id}")


def list_invitations(
    db: Session,
    claims: Claims,
    organization_id: UUID,
    status: Optional[str] = None,
    campaign_id: Optional[UUID] = None,
) -> List[Invitation]:
    require_organization_access(claims, organization_id, "view invitations for this organization")
    query = db.query(Invitation).filter(Invitation.organization_id == organization_id)
    if status:
        try:
            query = query.filter(Invitation.status == InvitationStatus(status))
        except ValueError:
            raise InvalidArgument(f"Unknown invitation status '{status}'.")
    if campaign_id:
        query = query.filter(Invitation.campaign_id == campaign_id)
    return query.order_by(Invitation.created_at.desc()).all()


def get_invitation_details(db: Session, organization_id: UUID, invitation_id: UUID) -> dict:
    """Public lookup used by the landing page to prefill the sign-up form."""
    inv = db.query(Invitation).filter(
        Invitation.id == invitation_id,
        Invitation.organization_id == organization_id,
    ).first()
    if not inv:
        raise NotFound("Invitation not found.")
    check_redeemable(inv, datetime.utcnow())

    org = db.query(Organization).filter(Organization.id == inv.organization_id).first()
    prop = db.query(Property).filter(Property.id == inv.target_property_id).first() if inv.target_property_id else None
    return {
        "invitation_id": inv.id,
        "organization_id": inv.organization_id,
        "organization_name": org.name if org else None,
        "invitee_email": inv.invitee_email,
        "invitee_name": inv.invitee_name,
        "roles_to_assign": list(inv.roles_to_assign),
        "target_property_id": inv.target_property_id,
        "property_name": prop.name if prop else None,
        "campaign_id": inv.campaign_id,
        "expires_at": inv.expires_at,
    }


def expire_stale_invitations(db: Session, claims: Claims, actor_id: Optional[UUID], organization_id: UUID) -> int:
    """Flip overdue pending invitations to expired. Redemption never relies on this."""
    require_organization_access(claims, organization_id, "manage invitations for this organization")
    now = datetime.utcnow()

    def work(db: Session) -> int:
        result = db.execute(
            update(Invitation)
            .where(
                Invitation.organization_id == organization_id,
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at <= now,
            )
            .values(status=InvitationStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            log_security_event(
                db,
                AuditEventType.INVITATIONS_EXPIRED,
                organization_id=organization_id,
                account_id=actor_id,
                resource_type="organization",
                resource_id=organization_id,
                details={"expired_count": result.rowcount},
                commit=False,
            )
        return result.rowcount

    count = run_in_transaction(db, work)
    logger.info(f"[INVITE] Expired {count} stale invitations in org {organization_id}")
    return count
