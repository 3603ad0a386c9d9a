from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, UniqueConstraint, Uuid
import uuid
from datetime import datetime
from app.db.session import Base


class OrganizationMembership(Base):
    """
    Per-organization profile of a manager account.
    Organization managers get one row per organization they manage.
    """
    __tablename__ = "organization_memberships"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id = Column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    roles = Column(JSON, default=list, nullable=False)
    email = Column(String(255), nullable=False)
    display_name = Column(String, nullable=True)
    invited_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("account_id", "organization_id", name="uq_organization_memberships_account_org"),
    )
