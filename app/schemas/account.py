from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID


class AccountLogin(BaseModel):
    email: str
    password: str


class AccountCreate(BaseModel):
    email: str  # str rather than EmailStr so .local test domains are accepted
    password: str
    display_name: Optional[str] = None


class Account(BaseModel):
    id: UUID
    email: str
    display_name: Optional[str] = None
    status: str
    roles: List[str] = []
    organization_id: Optional[UUID] = None
    organization_ids: List[UUID] = []
    property_id: Optional[UUID] = None
    claims_version: int
    created_at: datetime

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str
    claims: Dict[str, Any]
    claims_version: int
