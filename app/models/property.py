from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid
import uuid
from datetime import datetime
from app.db.session import Base


class Property(Base):
    """A property inside an organization; residents and campaigns are scoped to one."""
    __tablename__ = "properties"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=True)
    managed_by = Column(Uuid, nullable=True, index=True)  # property manager account id
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
