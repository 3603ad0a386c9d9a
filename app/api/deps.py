from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional
import logging
import uuid
from app.db.session import get_db
from app.models.account import Account
from app.core.claims import Claims, MalformedClaims, Unprivileged, parse_claims
from app.core.security import decode_access_token

logger = logging.getLogger(__name__)

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _account_from_token(token: str, db: Session) -> Account:
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    account_id: Optional[str] = payload.get("account_id")
    try:
        account_uuid = uuid.UUID(account_id) if account_id else None
    except (ValueError, TypeError):
        account_uuid = None
    if account_uuid is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )

    account = db.query(Account).filter(Account.id == account_uuid).first()
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found",
        )
    if account.status != "active":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This account is disabled",
        )
    account.token_payload = payload
    return account


def get_current_account(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Account:
    """Resolve the bearer token to its account. Claims are not checked here."""
    return _account_from_token(credentials.credentials, db)


def get_optional_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db: Session = Depends(get_db),
) -> Optional[Account]:
    if credentials is None:
        return None
    return _account_from_token(credentials.credentials, db)


def get_current_claims(account: Account = Depends(get_current_account)) -> Claims:
    """
    Claims carried by the caller's token.

    A token minted before the account's last claims write is stale: the caller
    is treated as unprivileged until it calls /auth/refresh.
    """
    payload = account.token_payload
    if payload.get("cv") != account.claims_version:
        logger.info(
            f"[AUTH] Stale claims for account {account.id}: token cv={payload.get('cv')}, "
            f"current={account.claims_version}"
        )
        return Unprivileged()
    try:
        return parse_claims(payload.get("claims"))
    except MalformedClaims as e:
        logger.warning(f"[AUTH] Malformed claims in token for account {account.id}: {e}")
        return Unprivileged()


