from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID


class CreateInvitationRequest(BaseModel):
    """Operator: invite one person into an organization (optionally scoped to a property)."""
    email: str
    roles_to_assign: List[str]
    target_property_id: Optional[UUID] = None
    invitee_name: Optional[str] = None


class InvitationResponse(BaseModel):
    id: UUID
    organization_id: UUID
    invitee_email: Optional[str] = None
    invitee_name: Optional[str] = None
    roles_to_assign: List[str]
    target_property_id: Optional[UUID] = None
    invited_by_role: Optional[str] = None
    created_by: Optional[UUID] = None
    status: str
    campaign_id: Optional[UUID] = None
    unit_number: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None
    created_at: datetime
    expires_at: datetime
    accepted_by: Optional[UUID] = None
    accepted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_model(cls, inv, now: datetime = None) -> "InvitationResponse":
        """Serialize with overdue pending rows reported as expired."""
        response = cls.model_validate(inv)
        response.status = inv.effective_status(now).value
        return response


class CreateInvitationResponse(BaseModel):
    success: bool = True
    invitation_id: UUID
    message: str
    invitation: InvitationResponse


class InvitationListResponse(BaseModel):
    success: bool = True
    invitations: List[InvitationResponse]


class InvitationDetailsResponse(BaseModel):
    """Public: what the landing page needs to prefill the sign-up form."""
    success: bool = True
    invitation_id: UUID
    organization_id: UUID
    organization_name: Optional[str] = None
    invitee_email: Optional[str] = None
    invitee_name: Optional[str] = None
    roles_to_assign: List[str]
    target_property_id: Optional[UUID] = None
    property_name: Optional[str] = None
    campaign_id: Optional[UUID] = None
    expires_at: datetime


class RedeemRequest(BaseModel):
    """
    Accept an invitation or a public campaign link.

    Exactly one of invitation_id / campaign_id. Signed-in callers send a bearer
    token; everyone else sends email + password for a new account.
    """
    invitation_id: Optional[UUID] = None
    campaign_id: Optional[UUID] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class RedeemResponse(BaseModel):
    success: bool = True
    account_id: UUID
    roles_granted: List[str]
    organization_id: Optional[UUID] = None
    organization_ids: List[UUID] = []
    property_id: Optional[UUID] = None
    invitation_id: UUID
    campaign_id: Optional[UUID] = None
    created_account: bool = False
    # Claims are not visible to role-gated endpoints until the client refreshes
    refresh_required: bool = True
    message: str


class SimpleResponse(BaseModel):
    success: bool = True
    message: str


class ExpireStaleResponse(BaseModel):
    success: bool = True
    expired_count: int
