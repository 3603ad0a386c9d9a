from sqlalchemy import Column, String, DateTime, Integer, JSON, ForeignKey, CheckConstraint, Enum as SQLEnum, Uuid
import uuid
import enum
from datetime import datetime
from app.db.session import Base


class CampaignStatus(str, enum.Enum):
    PROCESSING = "processing"
    ACTIVE = "active"
    INACTIVE = "inactive"
    COMPLETED = "completed"
    EXPIRED = "expired"
    ERROR = "error"


TERMINAL_CAMPAIGN_STATUSES = {CampaignStatus.COMPLETED, CampaignStatus.EXPIRED, CampaignStatus.ERROR}


class CampaignType(str, enum.Enum):
    CSV_IMPORT = "csv_import"
    PUBLIC_LINK = "public_link"


def _values(e):
    return [m.value for m in e]


class Campaign(Base):
    """
    A bulk-invitation effort for one property.

    csv_import campaigns own the invitations expanded from an uploaded file;
    public_link campaigns mint an invitation per link click and share the
    `max_uses` cap.
    """
    __tablename__ = "campaigns"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    property_id = Column(Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    campaign_type = Column(SQLEnum(CampaignType, name="campaigntype", values_callable=_values), nullable=False)
    status = Column(SQLEnum(CampaignStatus, name="campaignstatus", values_callable=_values), nullable=False)
    roles_to_assign = Column(JSON, nullable=False)

    max_uses = Column(Integer, nullable=True)  # null = unlimited
    total_accepted = Column(Integer, default=0, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    error_details = Column(String, nullable=True)

    # csv_import only
    total_invited_from_csv = Column(Integer, nullable=True)
    storage_file_path = Column(String, nullable=True)
    source_file_name = Column(String, nullable=True)
    # public_link only
    access_url = Column(String, nullable=True)

    created_by = Column(Uuid, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "(campaign_type = 'public_link' AND access_url IS NOT NULL AND storage_file_path IS NULL "
            "AND total_invited_from_csv IS NULL) OR "
            "(campaign_type = 'csv_import' AND access_url IS NULL AND storage_file_path IS NOT NULL)",
            name="ck_campaigns_type_fields",
        ),
        CheckConstraint(
            "max_uses IS NULL OR total_accepted <= max_uses",
            name="ck_campaigns_total_accepted_within_cap",
        ),
    )

    def is_expired(self, now: datetime = None) -> bool:
        now = now or datetime.utcnow()
        return self.expires_at is not None and self.expires_at <= now

    def is_capped(self) -> bool:
        return self.max_uses is not None and self.total_accepted >= self.max_uses
