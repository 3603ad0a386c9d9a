"""
Invitation endpoints.

Operator routes live under /organizations/{org_id}/invitations and need a
fresh, privileged token. The landing-page routes (details, redeem) are public;
redeem accepts either a bearer token or new-account credentials.
"""
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from app.db.session import get_db
from app.api.deps import get_current_account, get_current_claims, get_optional_account
from app.core.claims import Claims
from app.core.rate_limit import rate_limit
from app.models.account import Account
from app.schemas.invitation import (
    CreateInvitationRequest,
    CreateInvitationResponse,
    ExpireStaleResponse,
    InvitationDetailsResponse,
    InvitationListResponse,
    InvitationResponse,
    RedeemRequest,
    RedeemResponse,
    SimpleResponse,
)
from app.services import invitation_ledger, redemption

organizations_router = APIRouter()
router = APIRouter()


@organizations_router.post("/{org_id}/invitations", response_model=CreateInvitationResponse, status_code=status.HTTP_201_CREATED)
@rate_limit(max_requests=50, window_seconds=900)  # 50 invites per 15 min per account
def create_invitation(
    org_id: UUID,
    body: CreateInvitationRequest,
    db: Session = Depends(get_db),
    current_account: Account = Depends(get_current_account),
    claims: Claims = Depends(get_current_claims),
):
    """Invite someone to the organization. The invitation email is best effort."""
    inv = invitation_ledger.create_invitation(
        db,
        claims,
        current_account.id,
        email=body.email,
        roles=body.roles_to_assign,
        organization_id=org_id,
        property_id=body.target_property_id,
        invitee_name=body.invitee_name,
    )
    return CreateInvitationResponse(
        invitation_id=inv.id,
        message=f"Invitation sent to {inv.invitee_email}.",
        invitation=InvitationResponse.from_model(inv),
    )


@organizations_router.get("/{org_id}/invitations", response_model=InvitationListResponse)
def list_invitations(
    org_id: UUID,
    status_filter: Optional[str] = Query(None, alias="status"),
    campaign_id: Optional[UUID] = None,
    db: Session = Depends(get_db),
    claims: Claims = Depends(get_current_claims),
):
    invitations = invitation_ledger.list_invitations(db, claims, org_id, status=status_filter, campaign_id=campaign_id)
    return InvitationListResponse(invitations=[InvitationResponse.from_model(i) for i in invitations])


@organizations_router.post("/{org_id}/invitations/expire-stale", response_model=ExpireStaleResponse)
def expire_stale_invitations(
    org_id: UUID,
    db: Session = Depends(get_db),
    current_account: Account = Depends(get_current_account),
    claims: Claims = Depends(get_current_claims),
):
    count = invitation_ledger.expire_stale_invitations(db, claims, current_account.id, org_id)
    return ExpireStaleResponse(expired_count=count)


@organizations_router.post("/{org_id}/invitations/{invitation_id}/revoke", response_model=SimpleResponse)
def revoke_invitation(
    org_id: UUID,
    invitation_id: UUID,
    db: Session = Depends(get_db),
    current_account: Account = Depends(get_current_account),
    claims: Claims = Depends(get_current_claims),
):
    invitation_ledger.revoke_invitation(db, claims, current_account.id, org_id, invitation_id)
    return SimpleResponse(message="Invitation revoked.")


@router.post("/redeem", response_model=RedeemResponse)
@rate_limit(max_requests=20, window_seconds=900)  # 20 attempts per 15 min per account/IP
def redeem_invitation(
    body: RedeemRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_account: Optional[Account] = Depends(get_optional_account),
):
    """
    Accept an emailed invitation or a public campaign link.

    The response carries the grant but no new token: the client must call
    /auth/refresh (or log in) before its new role is honoured.
    """
    result = redemption.redeem(
        db,
        invitation_id=body.invitation_id,
        campaign_id=body.campaign_id,
        display_name=body.display_name,
        account=current_account,
        email=body.email,
        password=body.password,
        ip_address=request.client.host if request.client else None,
    )
    if result.created_account:
        message = "Your account has been created. Sign in to continue."
    else:
        message = "Invitation accepted. Refresh your session to continue."
    return RedeemResponse(
        account_id=result.account_id,
        roles_granted=result.roles_granted,
        organization_id=result.organization_id,
        organization_ids=result.organization_ids,
        property_id=result.property_id,
        invitation_id=result.invitation_id,
        campaign_id=result.campaign_id,
        created_account=result.created_account,
        message=message,
    )


@router.get("/{org_id}/{invitation_id}", response_model=InvitationDetailsResponse)
@rate_limit(max_requests=30, window_seconds=300)  # 30 lookups per 5 min per IP
def get_invitation_details(
    org_id: UUID,
    invitation_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
):
    """Public: prefill data for the accept-invitation page."""
    return InvitationDetailsResponse(**invitation_ledger.get_invitation_details(db, org_id, invitation_id))
