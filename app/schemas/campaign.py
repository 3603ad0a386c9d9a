from pydantic import BaseModel, Field
from typing import Annotated, Optional, List, Literal, Union
from datetime import datetime
from uuid import UUID

from app.schemas.invitation import InvitationResponse


class CreatePublicLinkCampaignRequest(BaseModel):
    organization_id: UUID
    property_id: UUID
    name: str
    roles_to_assign: List[str] = ["resident"]
    max_uses: Optional[int] = None
    expires_at: Optional[datetime] = None


class UpdateCampaignRequest(BaseModel):
    """Only fields present in the request body are changed; null clears max_uses/expires_at."""
    name: Optional[str] = None
    max_uses: Optional[int] = None
    expires_at: Optional[datetime] = None


class CsvImportDetails(BaseModel):
    type: Literal["csv_import"] = "csv_import"
    total_invited_from_csv: Optional[int] = None
    storage_file_path: str
    source_file_name: Optional[str] = None


class PublicLinkDetails(BaseModel):
    type: Literal["public_link"] = "public_link"
    access_url: str


CampaignDetails = Annotated[Union[CsvImportDetails, PublicLinkDetails], Field(discriminator="type")]


class CampaignResponse(BaseModel):
    id: UUID
    organization_id: UUID
    property_id: UUID
    name: str
    campaign_type: str
    status: str
    roles_to_assign: List[str]
    max_uses: Optional[int] = None
    total_accepted: int
    expires_at: Optional[datetime] = None
    error_details: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
    details: CampaignDetails

    @classmethod
    def from_model(cls, campaign) -> "CampaignResponse":
        if campaign.campaign_type.value == "csv_import":
            details = CsvImportDetails(
                total_invited_from_csv=campaign.total_invited_from_csv,
                storage_file_path=campaign.storage_file_path,
                source_file_name=campaign.source_file_name,
            )
        else:
            details = PublicLinkDetails(access_url=campaign.access_url)
        return cls(
            id=campaign.id,
            organization_id=campaign.organization_id,
            property_id=campaign.property_id,
            name=campaign.name,
            campaign_type=campaign.campaign_type.value,
            status=campaign.status.value,
            roles_to_assign=list(campaign.roles_to_assign or []),
            max_uses=campaign.max_uses,
            total_accepted=campaign.total_accepted,
            expires_at=campaign.expires_at,
            error_details=campaign.error_details,
            created_by=campaign.created_by,
            created_at=campaign.created_at,
            updated_at=campaign.updated_at,
            details=details,
        )


class CampaignEnvelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    campaign: CampaignResponse


class CampaignListResponse(BaseModel):
    success: bool = True
    campaigns: List[CampaignResponse]


class CampaignDetailsResponse(BaseModel):
    success: bool = True
    campaign: CampaignResponse
    invitations: List[InvitationResponse]


class PublicLinkInvitationResponse(BaseModel):
    """Everything the join page needs to render the sign-up step."""
    success: bool = True
    invitation_id: UUID
    campaign_id: UUID
    organization_id: UUID
    target_property_id: UUID
    roles_to_assign: List[str]
    expires_at: datetime
