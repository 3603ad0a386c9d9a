"""
Campaign endpoints: operator CRUD plus the public-link entry points.
"""
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional
from uuid import UUID
from app.db.session import get_db
from app.api.deps import get_current_account, get_current_claims
from app.core.claims import Claims
from app.core.config import settings
from app.core.rate_limit import rate_limit
from app.models.account import Account
from app.schemas.campaign import (
    CampaignDetailsResponse,
    CampaignEnvelope,
    CampaignListResponse,
    CampaignResponse,
    CreatePublicLinkCampaignRequest,
    PublicLinkInvitationResponse,
    UpdateCampaignRequest,
)
from app.schemas.invitation import InvitationResponse, SimpleResponse
from app.services import campaign_intake, campaign_ledger

router = APIRouter()


@router.post("", response_model=CampaignEnvelope, status_code=status.HTTP_201_CREATED)
def create_public_link_campaign(
    body: CreatePublicLinkCampaignRequest,
    db: Session = Depends(get_db),
    current_account: Account = Depends(get_current_account),
    claims: Claims = Depends(get_current_claims),
):
    campaign = campaign_ledger.create_public_link_campaign(
        db,
        claims,
        current_account.id,
        organization_id=body.organization_id,
        property_id=body.property_id,
        name=body.name,
        roles_to_assign=body.roles_to_assign,
        max_uses=body.max_uses,
        expires_at=body.expires_at,
    )
    return CampaignEnvelope(message="Public link campaign created.", campaign=CampaignResponse.from_model(campaign))


@router.post("/csv", response_model=CampaignEnvelope, status_code=status.HTTP_201_CREATED)
def create_csv_campaign(
    organization_id: UUID = Form(...),
    property_id: UUID = Form(...),
    name: str = Form(...),
    max_uses: Optional[int] = Form(None),
    expires_at: Optional[datetime] = Form(None),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_account: Account = Depends(get_current_account),
    claims: Claims = Depends(get_current_claims),
):
    """
    Upload a recipient list. The campaign is returned in `active` when every row
    was valid, or in `error` with error_details when any row was not.
    """
    content = file.file.read(settings.CAMPAIGN_CSV_MAX_BYTES + 1)
    campaign = campaign_intake.create_csv_campaign(
        db,
        claims,
        current_account.id,
        organization_id=organization_id,
        property_id=property_id,
        name=name,
        content=content,
        source_file_name=file.filename,
        max_uses=max_uses,
        expires_at=expires_at,
    )
    if campaign.status.value == "error":
        message = f"Campaign could not be created: {campaign.error_details}"
    else:
        message = f"Campaign created with {campaign.total_invited_from_csv} invitations."
    return CampaignEnvelope(message=message, campaign=CampaignResponse.from_model(campaign))


@router.get("", response_model=CampaignListResponse)
def list_campaigns(
    organization_id: UUID,
    property_id: Optional[UUID] = None,
    db: Session = Depends(get_db),
    claims: Claims = Depends(get_current_claims),
):
    campaigns = campaign_ledger.list_campaigns(db, claims, organization_id, property_id)
    return CampaignListResponse(campaigns=[CampaignResponse.from_model(c) for c in campaigns])


@router.get("/join")
@rate_limit(max_requests=60, window_seconds=300)  # 60 link clicks per 5 min per IP
def join_public_campaign(
    request: Request,
    campaign: UUID = Query(...),
    db: Session = Depends(get_db),
):
    """Landing target of a public link: mint an invitation and send the browser to the sign-up page."""
    inv = campaign_intake.process_public_link(db, campaign)
    join_url = (
        f"{settings.FRONTEND_URL.rstrip('/')}/join-campaign"
        f"?invitationId={inv.id}&campaignId={inv.campaign_id}&organizationId={inv.organization_id}"
    )
    return RedirectResponse(url=join_url, status_code=status.HTTP_302_FOUND)


@router.get("/{campaign_id}", response_model=CampaignDetailsResponse)
def get_campaign_details(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    claims: Claims = Depends(get_current_claims),
):
    campaign, invitations = campaign_ledger.get_campaign_details(db, claims, campaign_id)
    return CampaignDetailsResponse(
        campaign=CampaignResponse.from_model(campaign),
        invitations=[InvitationResponse.from_model(i) for i in invitations],
    )


@router.patch("/{campaign_id}", response_model=CampaignEnvelope)
def update_campaign(
    campaign_id: UUID,
    body: UpdateCampaignRequest,
    db: Session = Depends(get_db),
    current_account: Account = Depends(get_current_account),
    claims: Claims = Depends(get_current_claims),
):
    campaign = campaign_ledger.update_campaign(
        db, claims, current_account.id, campaign_id, body.model_dump(exclude_unset=True)
    )
    return CampaignEnvelope(message="Campaign updated.", campaign=CampaignResponse.from_model(campaign))


@router.post("/{campaign_id}/activate", response_model=CampaignEnvelope)
def activate_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    current_account: Account = Depends(get_current_account),
    claims: Claims = Depends(get_current_claims),
):
    campaign = campaign_ledger.activate_campaign(db, claims, current_account.id, campaign_id)
    return CampaignEnvelope(message="Campaign is active.", campaign=CampaignResponse.from_model(campaign))


@router.post("/{campaign_id}/deactivate", response_model=CampaignEnvelope)
def deactivate_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    current_account: Account = Depends(get_current_account),
    claims: Claims = Depends(get_current_claims),
):
    campaign, cancelled = campaign_ledger.deactivate_campaign(db, claims, current_account.id, campaign_id)
    return CampaignEnvelope(
        message=f"Campaign deactivated; {cancelled} pending invitations cancelled.",
        campaign=CampaignResponse.from_model(campaign),
    )


@router.delete("/{campaign_id}", response_model=SimpleResponse)
def delete_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    current_account: Account = Depends(get_current_account),
    claims: Claims = Depends(get_current_claims),
):
    campaign_ledger.delete_campaign(db, claims, current_account.id, campaign_id)
    return SimpleResponse(message="Campaign deleted.")


@router.post("/{campaign_id}/public-link", response_model=PublicLinkInvitationResponse)
@rate_limit(max_requests=60, window_seconds=300)  # 60 link clicks per 5 min per IP
def process_public_campaign_link(
    campaign_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
):
    """Mint an invitation for one public-link visitor and return what the join page needs."""
    inv = campaign_intake.process_public_link(db, campaign_id)
    return PublicLinkInvitationResponse(
        invitation_id=inv.id,
        campaign_id=inv.campaign_id,
        organization_id=inv.organization_id,
        target_property_id=inv.target_property_id,
        roles_to_assign=list(inv.roles_to_assign),
        expires_at=inv.expires_at,
    )
