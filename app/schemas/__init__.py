from app.schemas.account import Account, AccountCreate, AccountLogin, Token
from app.schemas.invitation import (
    CreateInvitationRequest, InvitationResponse, RedeemRequest, RedeemResponse,
)
from app.schemas.campaign import (
    CreatePublicLinkCampaignRequest, UpdateCampaignRequest, CampaignResponse,
    CsvImportDetails, PublicLinkDetails,
)

__all__ = [
    "Account", "AccountCreate", "AccountLogin", "Token",
    "CreateInvitationRequest", "InvitationResponse", "RedeemRequest", "RedeemResponse",
    "CreatePublicLinkCampaignRequest", "UpdateCampaignRequest", "CampaignResponse",
    "CsvImportDetails", "PublicLinkDetails",
]
