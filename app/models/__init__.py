from app.models.organization import Organization
from app.models.property import Property
from app.models.account import Account
from app.models.organization_membership import OrganizationMembership
from app.models.resident_profile import ResidentProfile
from app.models.invitation import Invitation, InvitationStatus
from app.models.campaign import Campaign, CampaignStatus, CampaignType
from app.models.audit_log import AuditLog, AuditEventType

__all__ = [
    "Organization", "Property", "Account", "OrganizationMembership", "ResidentProfile",
    "Invitation", "InvitationStatus", "Campaign", "CampaignStatus", "CampaignType",
    "AuditLog", "AuditEventType",
]
