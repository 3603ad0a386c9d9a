from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint, Uuid
import uuid
from datetime import datetime
from app.db.session import Base


class ResidentProfile(Base):
    __tablename__ = "resident_profiles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id = Column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    property_id = Column(Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    display_name = Column(String, nullable=True)
    unit_number = Column(String(50), nullable=True)
    invited_by = Column(Uuid, nullable=True)
    invitation_id = Column(Uuid, nullable=True)
    status = Column(String(20), default="active", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("account_id", "property_id", name="uq_resident_profiles_account_property"),
    )
