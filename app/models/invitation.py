from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Enum as SQLEnum, Index, Uuid
import uuid
import enum
from datetime import datetime
from app.db.session import Base


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Invitation(Base):
    """
    One invitee of an organization. Consumed at most once by the redemption
    transaction; cancelled/expired rows are kept for audit.
    """
    __tablename__ = "invitations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    invitee_email = Column(String(255), nullable=True, index=True)  # null for public-link invitations
    invitee_name = Column(String, nullable=True)
    roles_to_assign = Column(JSON, nullable=False)
    target_property_id = Column(Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=True)
    invited_by_role = Column(String(50), nullable=True)
    created_by = Column(Uuid, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    status = Column(
        SQLEnum(InvitationStatus, name="invitationstatus", values_callable=lambda e: [m.value for m in e]),
        default=InvitationStatus.PENDING,
        nullable=False,
    )
    campaign_id = Column(Uuid, nullable=True, index=True)  # no FK: accepted rows outlive a deleted campaign
    unit_number = Column(String(50), nullable=True)
    additional_data = Column(JSON, nullable=True)  # extra CSV columns

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    accepted_by = Column(Uuid, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    accepted_at = Column(DateTime, nullable=True)
    cancelled_by = Column(Uuid, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_invitations_campaign_status", "campaign_id", "status"),
    )

    def effective_status(self, now: datetime = None) -> InvitationStatus:
        """Stored status, with overdue pending rows reported as expired."""
        now = now or datetime.utcnow()
        if self.status == InvitationStatus.PENDING and self.expires_at <= now:
            return InvitationStatus.EXPIRED
        return self.status
