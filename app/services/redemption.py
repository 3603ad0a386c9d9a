"""
Redemption protocol.

One transaction consumes an invitation (or mints and consumes one for a public
campaign link), creates or links the account, writes its claims and bumps the
campaign counter. The gating reads happen inside the transaction and every
write that depends on them is an UPDATE guarded on the same condition:

    UPDATE invitations SET status = 'accepted' ... WHERE id = :id AND status = 'pending'
    UPDATE campaigns SET total_accepted = total_accepted + 1 ...
     WHERE id = :id AND status = 'active' AND (max_uses IS NULL OR total_accepted < max_uses)

The redemption that reaches max_uses flips the campaign to `completed` and
cancels its remaining pending invitations before committing.

A guard that matches no row means a concurrent redemption won; the rows are
re-read, the matching error is raised and the whole transaction rolls back.
The caller gets the grant back but must refresh its token before the new
claims are honoured.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import case, and_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.audit import log_security_event
from app.core.claims import (
    MalformedClaims,
    OrgManagerClaims,
    Role,
    Unprivileged,
    claims_for_grant,
)
from app.core.config import settings
from app.core.errors import (
    AlreadyUsed,
    CapReached,
    EmailMismatch,
    FailedPrecondition,
    InvalidArgument,
    NotFound,
    PermissionDenied,
    RedemptionEngineError,
)
from app.core.permissions import parse_roles
from app.core.security import get_password_hash, verify_password
from app.db.transaction import run_in_transaction
from app.models.account import Account, claims_columns
from app.models.audit_log import AuditEventType
from app.models.campaign import Campaign, CampaignStatus, CampaignType
from app.models.invitation import Invitation, InvitationStatus
from app.models.organization_membership import OrganizationMembership
from app.models.resident_profile import ResidentProfile
from app.services.campaign_ledger import active_campaign_filter, cancel_pending_invitations, check_campaign_open
from app.services.invitation_ledger import check_redeemable, normalize_email

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


@dataclass
class RedemptionResult:
    account_id: UUID
    roles_granted: List[str]
    invitation_id: UUID
    organization_id: Optional[UUID] = None
    organization_ids: List[UUID] = field(default_factory=list)
    property_id: Optional[UUID] = None
    campaign_id: Optional[UUID] = None
    created_account: bool = False


@dataclass
class _Identity:
    email: str
    account_id: Optional[UUID] = None
    hashed_password: Optional[str] = None


def _resolve_identity(db: Session, account: Optional[Account], email: Optional[str], password: Optional[str]) -> _Identity:
    """
    Authenticated callers are identified by their account. Everyone else proves
    identity with credentials: a new account is created, or an existing one is
    linked when the password matches.
    """
    if account is not None:
        return _Identity(email=account.email, account_id=account.id)

    email = normalize_email(email)
    password = (password or "").strip()
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidArgument(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

    existing = db.query(Account).filter(Account.email == email).first()
    if existing:
        if not verify_password(password, existing.hashed_password):
            raise PermissionDenied(
                "An account with this email already exists. Sign in with its password to accept the invitation."
            )
        return _Identity(email=existing.email, account_id=existing.id)
    # Hash outside the transaction to keep it short
    return _Identity(email=email, hashed_password=get_password_hash(password))


def _load_campaign(db: Session, campaign_id: UUID) -> Optional[Campaign]:
    return db.query(Campaign).filter(Campaign.id == campaign_id).with_for_update().populate_existing().first()


def _check_invitation(inv: Invitation, campaign: Optional[Campaign], now: datetime) -> None:
    # A full or lapsed campaign cancels its leftovers; report why, not just "revoked"
    if campaign is not None and inv.status == InvitationStatus.CANCELLED and campaign.status in (
        CampaignStatus.COMPLETED,
        CampaignStatus.EXPIRED,
    ):
        check_campaign_open(campaign, now)
    check_redeemable(inv, now)
    if campaign is not None:
        check_campaign_open(campaign, now)


def _redeem_once(
    db: Session,
    identity: _Identity,
    invitation_id: Optional[UUID],
    campaign_id: Optional[UUID],
    display_name: Optional[str],
) -> RedemptionResult:
    now = datetime.utcnow()
    inv = None
    campaign = None

    # 1. Load (and validate) from inside the transaction
    if campaign_id is not None:
        campaign = _load_campaign(db, campaign_id)
        if not campaign:
            raise NotFound("Campaign not found.")
        if campaign.campaign_type != CampaignType.PUBLIC_LINK:
            raise InvalidArgument("This campaign does not have a public sign-up link.")
        check_campaign_open(campaign, now)
        organization_id = campaign.organization_id
        property_id = campaign.property_id
        roles = campaign.roles_to_assign
    else:
        # Campaign row before invitation row, the order a filling redemption
        # locks them in when it cancels the campaign's other invitations
        ref = db.query(Invitation.campaign_id).filter(Invitation.id == invitation_id).first()
        if ref is None:
            raise NotFound("Invitation not found.")
        if ref.campaign_id is not None:
            campaign = _load_campaign(db, ref.campaign_id)
        inv = db.query(Invitation).filter(Invitation.id == invitation_id).with_for_update().populate_existing().first()
        if not inv:
            raise NotFound("Invitation not found.")
        _check_invitation(inv, campaign, now)
        if inv.invitee_email and inv.invitee_email.lower() != identity.email.lower():
            raise EmailMismatch()
        organization_id = inv.organization_id
        property_id = inv.target_property_id
        roles = inv.roles_to_assign

    role = parse_roles(roles)

    account = None
    existing_claims = Unprivileged()
    if identity.account_id is not None:
        account = db.query(Account).filter(Account.id == identity.account_id).with_for_update().populate_existing().first()
        if not account:
            raise NotFound("Account not found.")
        try:
            existing_claims = account.claims
        except MalformedClaims:
            logger.error(f"[REDEEM] Account {account.id} has malformed claims: {account.raw_claims()}")
            raise FailedPrecondition("Your account's roles are inconsistent. Contact support before accepting invitations.")
        if existing_claims.is_privileged:
            if not (role == Role.ORGANIZATION_MANAGER and isinstance(existing_claims, OrgManagerClaims)):
                raise FailedPrecondition(
                    "Your account already has a role. Sign in with a different account to accept this invitation."
                )
            if organization_id in existing_claims.organization_ids:
                raise FailedPrecondition("You already manage this organization.")

    # 2. Writes. Anything raised from here on rolls all of them back.
    if inv is None:
        ttl = now + timedelta(hours=settings.PUBLIC_LINK_INVITATION_TTL_HOURS)
        inv = Invitation(
            organization_id=organization_id,
            invitee_email=None,
            roles_to_assign=list(roles),
            target_property_id=property_id,
            invited_by_role="campaign",
            status=InvitationStatus.PENDING,
            campaign_id=campaign.id,
            created_at=now,
            expires_at=min(ttl, campaign.expires_at) if campaign.expires_at else ttl,
        )
        db.add(inv)
        db.flush()

    # Claim the invitation first so a concurrent redeemer of the same id
    # fails here with AlreadyUsed rather than later on the account insert
    result = db.execute(
        update(Invitation)
        .where(
            Invitation.id == inv.id,
            Invitation.status == InvitationStatus.PENDING,
            Invitation.expires_at > now,
        )
        .values(status=InvitationStatus.ACCEPTED, accepted_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.refresh(inv)
        if campaign is not None:
            db.refresh(campaign)
        _check_invitation(inv, campaign, now)
        raise AlreadyUsed()

    if campaign is not None:
        result = db.execute(
            update(Campaign)
            .where(Campaign.id == campaign.id, *active_campaign_filter(now))
            .values(
                total_accepted=Campaign.total_accepted + 1,
                status=case(
                    (
                        and_(Campaign.max_uses.isnot(None), Campaign.total_accepted + 1 >= Campaign.max_uses),
                        CampaignStatus.COMPLETED.value,
                    ),
                    else_=Campaign.status,
                ),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.refresh(campaign)
            check_campaign_open(campaign, now)
            raise CapReached()
        db.refresh(campaign)
        if campaign.status == CampaignStatus.COMPLETED:
            cancelled = cancel_pending_invitations(db, campaign.id, now)
            logger.info(f"[REDEEM] Campaign {campaign.id} filled, {cancelled} pending invitations cancelled")

    created_account = False
    if account is None:
        account = Account(
            email=identity.email,
            hashed_password=identity.hashed_password,
            display_name=(display_name or "").strip() or inv.invitee_name,
            status="active",
            roles=[],
            organization_ids=[],
            claims_version=0,
            created_at=now,
            updated_at=now,
        )
        db.add(account)
        db.flush()
        created_account = True
    elif display_name and not account.display_name:
        account.display_name = display_name.strip()

    db.execute(
        update(Invitation)
        .where(Invitation.id == inv.id)
        .values(accepted_by=account.id)
        .execution_options(synchronize_session=False)
    )

    new_claims = claims_for_grant(role, organization_id, property_id, existing_claims)
    db.flush()
    # Guarded on the version read above so two grants to one account can't interleave
    result = db.execute(
        update(Account)
        .where(Account.id == account.id, Account.claims_version == account.claims_version)
        .values(claims_version=Account.claims_version + 1, updated_at=now, **claims_columns(new_claims))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise FailedPrecondition("Your account's roles changed while accepting this invitation. Refresh and try again.")
    db.refresh(account)

    if role == Role.RESIDENT:
        profile = db.query(ResidentProfile).filter(
            ResidentProfile.account_id == account.id,
            ResidentProfile.property_id == property_id,
        ).first()
        if not profile:
            db.add(ResidentProfile(
                account_id=account.id,
                organization_id=organization_id,
                property_id=property_id,
                email=account.email,
                display_name=account.display_name,
                unit_number=inv.unit_number,
                invited_by=inv.created_by,
                invitation_id=inv.id,
                status="active",
                created_at=now,
            ))
    else:
        membership = db.query(OrganizationMembership).filter(
            OrganizationMembership.account_id == account.id,
            OrganizationMembership.organization_id == organization_id,
        ).first()
        if not membership:
            db.add(OrganizationMembership(
                account_id=account.id,
                organization_id=organization_id,
                roles=[role.value],
                email=account.email,
                display_name=account.display_name,
                invited_by=inv.created_by,
                created_at=now,
            ))
    db.flush()

    log_security_event(
        db,
        AuditEventType.INVITATION_REDEEMED,
        organization_id=organization_id,
        account_id=account.id,
        resource_type="invitation",
        resource_id=inv.id,
        details={
            "role": role.value,
            "campaign_id": campaign.id if campaign else None,
            "created_account": created_account,
        },
        commit=False,
    )

    return RedemptionResult(
        account_id=account.id,
        roles_granted=[role.value],
        invitation_id=inv.id,
        organization_id=organization_id,
        organization_ids=list(getattr(new_claims, "organization_ids", ())),
        property_id=property_id if role == Role.RESIDENT else None,
        campaign_id=campaign.id if campaign else None,
        created_account=created_account,
    )


def redeem(
    db: Session,
    *,
    invitation_id: Optional[UUID] = None,
    campaign_id: Optional[UUID] = None,
    display_name: Optional[str] = None,
    account: Optional[Account] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> RedemptionResult:
    """
    Redeem an invitation id (emailed link) or a campaign id (public link).

    Pass `account` for a signed-in caller, or `email` + `password` to sign up.
    """
    if (invitation_id is None) == (campaign_id is None):
        raise InvalidArgument("Provide exactly one of invitation_id or campaign_id.")

    try:
        identity = _resolve_identity(db, account, email, password)
        result = run_in_transaction(
            db, lambda session: _redeem_once(session, identity, invitation_id, campaign_id, display_name)
        )
    except IntegrityError:
        # Lost a race creating an account for the same email
        error = FailedPrecondition("An account with this email was just created. Sign in and try again.")
        _record_rejection(db, error, invitation_id, campaign_id, email, ip_address)
        raise error
    except RedemptionEngineError as e:
        _record_rejection(db, e, invitation_id, campaign_id, account.email if account else email, ip_address)
        raise

    logger.info(
        f"[REDEEM] Account {result.account_id} granted {result.roles_granted} "
        f"via invitation {result.invitation_id} (campaign {result.campaign_id})"
    )
    return result


def _record_rejection(db, error, invitation_id, campaign_id, email, ip_address):
    logger.info(f"[REDEEM] Rejected {error.code} for invitation={invitation_id} campaign={campaign_id}: {error.message}")
    log_security_event(
        db,
        AuditEventType.REDEMPTION_REJECTED,
        resource_type="campaign" if campaign_id else "invitation",
        resource_id=campaign_id or invitation_id,
        ip_address=ip_address,
        details={"code": error.code, "email": email},
    )
