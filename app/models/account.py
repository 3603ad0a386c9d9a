from sqlalchemy import Column, String, DateTime, Integer, JSON, ForeignKey, Uuid
import uuid
from datetime import datetime
from app.db.session import Base
from app.core.claims import parse_claims, to_raw


def claims_columns(claims) -> dict:
    """Column values for storing a parsed claims variant."""
    raw = to_raw(claims)
    return {
        "roles": raw["roles"],
        "organization_id": uuid.UUID(raw["organization_id"]) if raw.get("organization_id") else None,
        "organization_ids": raw.get("organization_ids", []),
        "property_id": uuid.UUID(raw["property_id"]) if raw.get("property_id") else None,
    }


class Account(Base):
    """
    A sign-in identity plus the role claims that scope it.

    Claims columns are written only by the redemption transaction (and admin
    bootstrap). `claims_version` is bumped on every write so tokens minted
    before the change can be recognised as stale.
    """
    __tablename__ = "accounts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)  # stored lower-cased
    hashed_password = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    status = Column(String(20), default="active", nullable=False)

    roles = Column(JSON, default=list, nullable=False)
    organization_id = Column(Uuid, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True)
    organization_ids = Column(JSON, default=list, nullable=False)
    property_id = Column(Uuid, ForeignKey("properties.id", ondelete="SET NULL"), nullable=True)
    claims_version = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def raw_claims(self) -> dict:
        return {
            "roles": list(self.roles or []),
            "organization_id": str(self.organization_id) if self.organization_id else None,
            "organization_ids": list(self.organization_ids or []),
            "property_id": str(self.property_id) if self.property_id else None,
        }

    @property
    def claims(self):
        return parse_claims(self.raw_claims())

    def set_claims(self, claims) -> None:
        for column, value in claims_columns(claims).items():
            setattr(self, column, value)
        self.claims_version = (self.claims_version or 0) + 1
