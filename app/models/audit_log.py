from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, Text, Uuid
import uuid
from datetime import datetime
import enum
from app.db.session import Base


class AuditEventType(str, enum.Enum):
    """Invitation, campaign and redemption events to audit"""
    INVITATION_CREATED = "invitation_created"
    INVITATION_REVOKED = "invitation_revoked"
    INVITATION_REDEEMED = "invitation_redeemed"
    INVITATIONS_EXPIRED = "invitations_expired"
    REDEMPTION_REJECTED = "redemption_rejected"
    CAMPAIGN_CREATED = "campaign_created"
    CAMPAIGN_UPDATED = "campaign_updated"
    CAMPAIGN_ACTIVATED = "campaign_activated"
    CAMPAIGN_DEACTIVATED = "campaign_deactivated"
    CAMPAIGN_DELETED = "campaign_deleted"
    CAMPAIGN_EXPANDED = "campaign_expanded"
    CAMPAIGN_FAILED = "campaign_failed"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    UNAUTHORIZED_ACCESS = "unauthorized_access"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # No FKs: audit rows outlive deleted campaigns and organizations
    organization_id = Column(Uuid, nullable=True, index=True)
    account_id = Column(Uuid, nullable=True, index=True)
    event_type = Column(
        SQLEnum(AuditEventType, name="auditeventtype", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    resource_type = Column(String, nullable=True)  # e.g., "invitation", "campaign"
    resource_id = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    details = Column(Text, nullable=True)  # JSON string with additional details
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
