"""
Campaign ledger: lifecycle of bulk-invitation campaigns.

    processing -> active | error          (csv expansion)
    active <-> inactive                   (activate / deactivate)
    active -> completed | expired         (cap reached / expiry observed)

`total_accepted` is written only by the redemption transaction.
"""
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from app.core.audit import log_security_event
from app.core.claims import Claims, PROPERTY_SCOPED_ROLES
from app.core.config import settings
from app.core.errors import CapReached, Expired, FailedPrecondition, InvalidArgument, NotFound
from app.core.permissions import is_admin, parse_roles, require_organization_access
from app.db.transaction import run_in_transaction
from app.models.audit_log import AuditEventType
from app.models.campaign import Campaign, CampaignStatus, CampaignType, TERMINAL_CAMPAIGN_STATUSES
from app.models.invitation import Invitation, InvitationStatus
from app.models.organization import Organization
from app.models.property import Property

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 100
MAX_USES_LIMIT = 10000

CAMPAIGN_EXPIRED_MESSAGE = "This sign-up link has expired. Contact your property manager for a new one."
CAMPAIGN_INACTIVE_MESSAGE = "This sign-up link is not active right now. Contact your property manager."

UPDATABLE_STATUSES = {CampaignStatus.ACTIVE, CampaignStatus.INACTIVE}
DELETABLE_STATUSES = {CampaignStatus.INACTIVE} | TERMINAL_CAMPAIGN_STATUSES


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def validate_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise InvalidArgument(
            f"Campaign name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters."
        )
    return name


def validate_max_uses(max_uses: Optional[int]) -> Optional[int]:
    if max_uses is None:
        return None
    if not 1 <= max_uses <= MAX_USES_LIMIT:
        raise InvalidArgument(f"max_uses must be between 1 and {MAX_USES_LIMIT}, or empty for unlimited.")
    return max_uses


def validate_expires_at(expires_at: Optional[datetime], now: datetime) -> Optional[datetime]:
    expires_at = to_naive_utc(expires_at)
    if expires_at is not None and expires_at <= now:
        raise InvalidArgument("expires_at must be in the future.")
    return expires_at


def validate_campaign_roles(roles: Optional[List[str]]) -> List[str]:
    role = parse_roles(roles)
    if role not in PROPERTY_SCOPED_ROLES:
        raise InvalidArgument("Campaigns can only invite residents.")
    return [role.value]


def check_campaign_open(campaign: Campaign, now: datetime) -> None:
    """Raise the error a redemption against `campaign` would fail with, if any."""
    if campaign.status == CampaignStatus.COMPLETED:
        raise CapReached()
    if campaign.status == CampaignStatus.EXPIRED:
        raise Expired(CAMPAIGN_EXPIRED_MESSAGE)
    if campaign.status != CampaignStatus.ACTIVE:
        raise FailedPrecondition(CAMPAIGN_INACTIVE_MESSAGE)
    if campaign.is_expired(now):
        raise Expired(CAMPAIGN_EXPIRED_MESSAGE)
    if campaign.is_capped():
        raise CapReached()


def cancel_pending_invitations(db: Session, campaign_id: UUID, now: datetime, actor_id: Optional[UUID] = None) -> int:
    """Cancel every still-pending invitation of a campaign that stopped accepting sign-ups."""
    return db.execute(
        update(Invitation)
        .where(Invitation.campaign_id == campaign_id, Invitation.status == InvitationStatus.PENDING)
        .values(status=InvitationStatus.CANCELLED, cancelled_at=now, cancelled_by=actor_id)
        .execution_options(synchronize_session=False)
    ).rowcount


def resolve_scope(db: Session, claims: Claims, organization_id: UUID, property_id: UUID) -> Tuple[Organization, Property]:
    """Check the caller may run campaigns for the org and that the property belongs to it."""
    require_organization_access(claims, organization_id, "manage campaigns for this organization")
    org = db.query(Organization).filter(Organization.id == organization_id).first()
    if not org:
        raise NotFound("Organization not found.")
    prop = db.query(Property).filter(
        Property.id == property_id,
        Property.organization_id == organization_id,
    ).first()
    if not prop:
        raise NotFound("Property not found in this organization.")
    return org, prop


def public_access_url(campaign_id: UUID) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/join-public-campaign?campaign={campaign_id}"


def _load_for_update(db: Session, campaign_id: UUID) -> Campaign:
    campaign = db.query(Campaign).filter(Campaign.id == campaign_id).with_for_update().first()
    if not campaign:
        raise NotFound("Campaign not found.")
    return campaign


def _load_authorized(db: Session, claims: Claims, campaign_id: UUID, lock: bool = False) -> Campaign:
    if lock:
        campaign = _load_for_update(db, campaign_id)
    else:
        campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
        if not campaign:
            raise NotFound("Campaign not found.")
    require_organization_access(claims, campaign.organization_id, "manage campaigns for this organization")
    return campaign


def _audit(db: Session, event_type: AuditEventType, campaign: Campaign, actor_id: Optional[UUID], details: dict = None):
    log_security_event(
        db,
        event_type,
        organization_id=campaign.organization_id,
        account_id=actor_id,
        resource_type="campaign",
        resource_id=campaign.id,
        details=details,
        commit=False,
    )


def create_public_link_campaign(
    db: Session,
    claims: Claims,
    actor_id: Optional[UUID],
    organization_id: UUID,
    property_id: UUID,
    name: str,
    roles_to_assign: Optional[List[str]] = None,
    max_uses: Optional[int] = None,
    expires_at: Optional[datetime] = None,
) -> Campaign:
    now = datetime.utcnow()
    name = validate_name(name)
    roles = validate_campaign_roles(roles_to_assign or ["resident"])
    max_uses = validate_max_uses(max_uses)
    expires_at = validate_expires_at(expires_at, now)
    resolve_scope(db, claims, organization_id, property_id)

    campaign_id = uuid.uuid4()
    campaign = Campaign(
        id=campaign_id,
        organization_id=organization_id,
        property_id=property_id,
        name=name,
        campaign_type=CampaignType.PUBLIC_LINK,
        status=CampaignStatus.ACTIVE,
        roles_to_assign=roles,
        max_uses=max_uses,
        total_accepted=0,
        expires_at=expires_at,
        access_url=public_access_url(campaign_id),
        created_by=actor_id,
        created_at=now,
        updated_at=now,
    )
    db.add(campaign)
    db.flush()
    _audit(db, AuditEventType.CAMPAIGN_CREATED, campaign, actor_id, {"campaign_type": "public_link", "max_uses": max_uses})
    db.commit()
    db.refresh(campaign)
    logger.info(f"[CAMPAIGN] Public link campaign {campaign.id} created for property {property_id}")
    return campaign


def update_campaign(db: Session, claims: Claims, actor_id: Optional[UUID], campaign_id: UUID, changes: dict) -> Campaign:
    """
    Apply name / max_uses / expires_at changes. Only keys present in `changes`
    are touched; None clears max_uses or expires_at.
    """
    unknown = set(changes) - {"name", "max_uses", "expires_at"}
    if unknown:
        raise InvalidArgument(f"Cannot update {', '.join(sorted(unknown))}.")
    now = datetime.utcnow()
    values = {}
    if "name" in changes:
        values["name"] = validate_name(changes["name"])
    if "max_uses" in changes:
        values["max_uses"] = validate_max_uses(changes["max_uses"])
    if "expires_at" in changes:
        values["expires_at"] = validate_expires_at(changes["expires_at"], now)

    def work(db: Session) -> Campaign:
        campaign = _load_authorized(db, claims, campaign_id, lock=True)
        if campaign.status not in UPDATABLE_STATUSES:
            raise FailedPrecondition(f"A {campaign.status.value} campaign cannot be edited.")
        if not values:
            return campaign

        stmt = update(Campaign).where(
            Campaign.id == campaign.id,
            Campaign.status.in_(list(UPDATABLE_STATUSES)),
        )
        new_max = values.get("max_uses", campaign.max_uses)
        if "max_uses" in values and new_max is not None:
            # Re-checked in the UPDATE so a concurrent redemption can't slip past the new cap
            stmt = stmt.where(Campaign.total_accepted <= new_max)
        result = db.execute(
            stmt.values(updated_at=now, **values).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.expire(campaign)
            if campaign.status not in UPDATABLE_STATUSES:
                raise FailedPrecondition(f"A {campaign.status.value} campaign cannot be edited.")
            raise FailedPrecondition(
                f"max_uses cannot be lower than the {campaign.total_accepted} sign-ups already accepted."
            )

        db.expire(campaign)
        if campaign.status == CampaignStatus.ACTIVE and campaign.is_capped():
            campaign.status = CampaignStatus.COMPLETED
            cancel_pending_invitations(db, campaign.id, now, actor_id)
        _audit(db, AuditEventType.CAMPAIGN_UPDATED, campaign, actor_id, {"changes": sorted(values)})
        return campaign

    campaign = run_in_transaction(db, work)
    db.refresh(campaign)
    logger.info(f"[CAMPAIGN] Campaign {campaign_id} updated: {sorted(values)}")
    return campaign


def deactivate_campaign(db: Session, claims: Claims, actor_id: Optional[UUID], campaign_id: UUID) -> Tuple[Campaign, int]:
    """Stop a campaign and cancel its pending invitations. Returns (campaign, cancelled_count)."""

    def work(db: Session) -> Tuple[Campaign, int]:
        campaign = _load_authorized(db, claims, campaign_id, lock=True)
        if campaign.status == CampaignStatus.INACTIVE:
            return campaign, 0
        if campaign.status in TERMINAL_CAMPAIGN_STATUSES:
            raise FailedPrecondition(f"A {campaign.status.value} campaign cannot be deactivated.")

        now = datetime.utcnow()
        result = db.execute(
            update(Campaign)
            .where(
                Campaign.id == campaign.id,
                Campaign.status.in_([CampaignStatus.ACTIVE, CampaignStatus.PROCESSING]),
            )
            .values(status=CampaignStatus.INACTIVE, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.expire(campaign)
            if campaign.status == CampaignStatus.INACTIVE:
                return campaign, 0
            raise FailedPrecondition(f"A {campaign.status.value} campaign cannot be deactivated.")

        cancelled = cancel_pending_invitations(db, campaign.id, now, actor_id)
        db.expire(campaign)
        _audit(db, AuditEventType.CAMPAIGN_DEACTIVATED, campaign, actor_id, {"cancelled_invitations": cancelled})
        return campaign, cancelled

    campaign, cancelled = run_in_transaction(db, work)
    db.refresh(campaign)
    logger.info(f"[CAMPAIGN] Campaign {campaign_id} deactivated, {cancelled} pending invitations cancelled")
    return campaign, cancelled


def activate_campaign(db: Session, claims: Claims, actor_id: Optional[UUID], campaign_id: UUID) -> Campaign:

    def work(db: Session) -> Campaign:
        campaign = _load_authorized(db, claims, campaign_id, lock=True)
        if campaign.status == CampaignStatus.ACTIVE:
            return campaign
        if campaign.status != CampaignStatus.INACTIVE:
            raise FailedPrecondition(f"A {campaign.status.value} campaign cannot be activated.")
        now = datetime.utcnow()
        if campaign.is_expired(now):
            raise FailedPrecondition("This campaign's expiry date has passed. Extend it before activating.")
        if campaign.is_capped():
            raise FailedPrecondition("This campaign has reached its maximum uses. Raise the limit before activating.")

        result = db.execute(
            update(Campaign)
            .where(Campaign.id == campaign.id, Campaign.status == CampaignStatus.INACTIVE)
            .values(status=CampaignStatus.ACTIVE, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        db.expire(campaign)
        if result.rowcount != 1 and campaign.status != CampaignStatus.ACTIVE:
            raise FailedPrecondition(f"A {campaign.status.value} campaign cannot be activated.")
        _audit(db, AuditEventType.CAMPAIGN_ACTIVATED, campaign, actor_id)
        return campaign

    campaign = run_in_transaction(db, work)
    db.refresh(campaign)
    logger.info(f"[CAMPAIGN] Campaign {campaign_id} activated")
    return campaign


def delete_campaign(db: Session, claims: Claims, actor_id: Optional[UUID], campaign_id: UUID) -> None:
    """
    Delete a stopped campaign along with its pending/cancelled invitations.
    Accepted invitations keep their campaign_id for history.
    """
    def work(db: Session) -> Optional[str]:
        campaign = _load_authorized(db, claims, campaign_id, lock=True)
        if campaign.status not in DELETABLE_STATUSES:
            raise FailedPrecondition("Deactivate the campaign before deleting it.")
        if campaign.total_accepted > 0 and not is_admin(claims):
            raise FailedPrecondition(
                f"This campaign already has {campaign.total_accepted} accepted sign-ups and can only be deleted by an admin."
            )
        removed = db.query(Invitation).filter(
            Invitation.campaign_id == campaign.id,
            Invitation.status.in_([InvitationStatus.PENDING, InvitationStatus.CANCELLED]),
        ).delete(synchronize_session=False)
        _audit(
            db,
            AuditEventType.CAMPAIGN_DELETED,
            campaign,
            actor_id,
            {"name": campaign.name, "total_accepted": campaign.total_accepted, "removed_invitations": removed},
        )
        path = campaign.storage_file_path
        db.delete(campaign)
        return path

    file_path = run_in_transaction(db, work)
    if file_path and os.path.exists(file_path):
        try:
            os.remove(file_path)
        except OSError as e:
            logger.warning(f"[CAMPAIGN] Could not remove CSV {file_path}: {str(e)}")
    logger.info(f"[CAMPAIGN] Campaign {campaign_id} deleted by {actor_id}")


def get_campaign_details(db: Session, claims: Claims, campaign_id: UUID) -> Tuple[Campaign, List[Invitation]]:
    campaign = _load_authorized(db, claims, campaign_id)
    invitations = db.query(Invitation).filter(
        Invitation.campaign_id == campaign.id
    ).order_by(Invitation.created_at.desc()).all()
    return campaign, invitations


def list_campaigns(
    db: Session,
    claims: Claims,
    organization_id: UUID,
    property_id: Optional[UUID] = None,
) -> List[Campaign]:
    require_organization_access(claims, organization_id, "view campaigns for this organization")
    query = db.query(Campaign).filter(Campaign.organization_id == organization_id)
    if property_id:
        query = query.filter(Campaign.property_id == property_id)
    return query.order_by(Campaign.created_at.desc()).all()


def mark_lapsed(db: Session, campaign: Campaign, now: datetime) -> None:
    """Record an overdue or full active campaign as expired / completed."""
    if campaign.status != CampaignStatus.ACTIVE:
        return
    if campaign.is_expired(now):
        new_status = CampaignStatus.EXPIRED
    elif campaign.is_capped():
        new_status = CampaignStatus.COMPLETED
    else:
        return
    result = db.execute(
        update(Campaign)
        .where(Campaign.id == campaign.id, Campaign.status == CampaignStatus.ACTIVE)
        .values(status=new_status, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        cancel_pending_invitations(db, campaign.id, now)
    db.commit()
    db.refresh(campaign)
    logger.info(f"[CAMPAIGN] Campaign {campaign.id} marked {new_status.value}")


def active_campaign_filter(now: datetime):
    """SQL predicate mirroring check_campaign_open, for guarded updates."""
    return (
        Campaign.status == CampaignStatus.ACTIVE,
        or_(Campaign.max_uses.is_(None), Campaign.total_accepted < Campaign.max_uses),
        or_(Campaign.expires_at.is_(None), Campaign.expires_at > now),
    )
